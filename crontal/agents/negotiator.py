"""
negotiator.py — Negotiation Advisor: RFQ + one supplier quote -> buyer guidance.

Output is opaque free text; nothing is parsed out of it.
"""

import json
import logging

from crontal.core import rfq_schema
from crontal.core.errors import NegotiationFailure
from crontal.core.llm import LLMError

log = logging.getLogger("crontal.negotiator")

DEFAULT_GOAL = "negotiate this quote in the buyer's favor"

_SYSTEM = """You are Crontal's negotiation assistant helping an industrial buyer negotiate RFQs with suppliers.

Given:
- rfq: structured JSON of what the buyer is procuring
- quote: a supplier's quote including prices, lead time, payment terms, notes
- goal: a short string describing the buyer's negotiation objective

Tasks:
1. Briefly restate what the supplier is offering (1-2 sentences).
2. Provide 2-4 concrete negotiation suggestions aligned with the goal.
3. Draft a short sample email paragraph the buyer could send to the supplier to open the negotiation.

Keep it practical, professional, and under about 200 words.
Return plain text (no JSON)."""


def build_context(rfq: dict, quote: dict) -> dict:
    return {
        "rfq": {
            "id": rfq.get("id"),
            "commercial": rfq.get("commercial"),
            "items": [rfq_schema.item_digest(li) for li in rfq.get("line_items") or []],
        },
        "quote": quote,
    }


class Negotiator:
    def __init__(self, llm):
        self.llm = llm

    def advise(self, rfq: dict, quote: dict, goal: str = None) -> str:
        context = build_context(rfq, quote)
        content = ("RFQ and quote data:\n" + json.dumps(context, indent=2, default=str) +
                   "\n\nNegotiation goal: " + (goal or DEFAULT_GOAL))
        try:
            advice = self.llm.complete_text(_SYSTEM, [{"role": "user", "content": content}])
        except LLMError as e:
            log.error("Negotiation failed for %s: %s", rfq.get("id"), e)
            raise NegotiationFailure("Negotiation failed", detail=str(e)) from e
        return (advice or "").strip()
