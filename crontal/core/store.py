"""
store.py — RFQ Store and Quote Ledger repositories.

Callers (normalizer, routes) only see the RFQStore / QuoteLedger interfaces,
so a persistent backend can replace the memory ones without touching them.

The memory implementations keep records for the lifetime of the process and
nothing more. Records are deep-copied in and out; every operation holds the
store's lock, so a ledger append is all-or-nothing under threaded serving.
"""

import copy
import logging
import threading

from crontal.core.errors import NotFound, ValidationFailure

log = logging.getLogger("crontal.store")


class RFQStore:
    """Keyed registry of RFQ records."""

    def get(self, rfq_id: str):
        """Return the RFQ or None."""
        raise NotImplementedError

    def put(self, rfq: dict) -> None:
        """Insert or replace the whole record keyed by rfq['id']."""
        raise NotImplementedError

    def exists(self, rfq_id: str) -> bool:
        return self.get(rfq_id) is not None

    def require(self, rfq_id: str) -> dict:
        rfq = self.get(rfq_id)
        if rfq is None:
            raise NotFound("RFQ not found", detail=rfq_id)
        return rfq

    def count(self) -> int:
        raise NotImplementedError


class QuoteLedger:
    """Append-only, per-RFQ ordered quotes."""

    def append(self, rfq_id: str, quote: dict) -> int:
        """Append and return the new ledger length."""
        raise NotImplementedError

    def list(self, rfq_id: str) -> list:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError


class MemoryRFQStore(RFQStore):
    def __init__(self):
        self._rfqs = {}
        self._lock = threading.Lock()

    def get(self, rfq_id):
        with self._lock:
            rfq = self._rfqs.get(rfq_id)
            return copy.deepcopy(rfq) if rfq is not None else None

    def put(self, rfq):
        rfq_id = rfq.get("id")
        if not rfq_id:
            raise ValueError("RFQ record has no id")
        with self._lock:
            self._rfqs[rfq_id] = copy.deepcopy(rfq)
        log.debug("Stored RFQ %s (%d items)", rfq_id, len(rfq.get("line_items", [])))

    def count(self):
        with self._lock:
            return len(self._rfqs)


class MemoryQuoteLedger(QuoteLedger):
    def __init__(self):
        self._quotes = {}
        self._lock = threading.Lock()

    def append(self, rfq_id, quote):
        entry = copy.deepcopy(quote)
        with self._lock:
            ledger = self._quotes.setdefault(rfq_id, [])
            ledger.append(entry)
            return len(ledger)

    def list(self, rfq_id):
        with self._lock:
            return copy.deepcopy(self._quotes.get(rfq_id, []))

    def count(self):
        with self._lock:
            return sum(len(v) for v in self._quotes.values())


def submit_quote(rfqs: RFQStore, ledger: QuoteLedger, rfq_id: str, quote) -> int:
    """Attach a supplier quote to an existing RFQ. Returns the ledger length."""
    if not rfqs.exists(rfq_id):
        raise NotFound("RFQ not found", detail=rfq_id)
    if not isinstance(quote, dict):
        raise ValidationFailure("Invalid quote payload",
                                detail="quote must be a JSON object")
    length = ledger.append(rfq_id, quote)
    log.info("Quote #%d submitted for %s", length, rfq_id, extra={"rfq_id": rfq_id})
    return length


def list_quotes(rfqs: RFQStore, ledger: QuoteLedger, rfq_id: str) -> list:
    """Quotes for an existing RFQ in submission order ([] when none)."""
    if not rfqs.exists(rfq_id):
        raise NotFound("RFQ not found", detail=rfq_id)
    return ledger.list(rfq_id)
