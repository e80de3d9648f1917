"""
Shared pytest fixtures for the Crontal RFQ test suite.

The model is never called: every app/agent under test gets a FakeLLM that
returns canned replies and records what it was sent.
"""
import copy
import os
import sys

import pytest

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from crontal.core.store import MemoryQuoteLedger, MemoryRFQStore  # noqa: E402


class FakeLLM:
    """Stand-in for crontal.core.llm.LLMClient.

    json_reply: dict returned by complete_json (or an exception to raise)
    text_reply: str returned by complete_text (or an exception to raise)
    """
    def __init__(self, json_reply=None, text_reply="Noted. What delivery date do you need?"):
        self.json_reply = json_reply if json_reply is not None else {"project_name": None,
                                                                      "line_items": []}
        self.text_reply = text_reply
        self.json_calls = []
        self.text_calls = []

    def complete_json(self, system, user):
        self.json_calls.append({"system": system, "user": user})
        if isinstance(self.json_reply, Exception):
            raise self.json_reply
        return copy.deepcopy(self.json_reply)

    def complete_text(self, system, messages):
        self.text_calls.append({"system": system, "messages": copy.deepcopy(messages)})
        if isinstance(self.text_reply, Exception):
            raise self.text_reply
        return self.text_reply

    def status(self):
        return {"agent": "fake", "model": "fake", "api_key_set": True, "timeout_s": 1}


# ── Sample data factories ─────────────────────────────────────────────────────

@pytest.fixture
def pipe_payload():
    """What the model returns for 'Need 20 pcs 2-inch SS316 seamless pipe to Houston, NET30'."""
    return {
        "project_name": None,
        "line_items": [
            {
                "item_id": "1",
                "raw_description": "20 pcs 2-inch SS316 seamless pipe",
                "product_category": "pipe",
                "product_type": "seamless pipe",
                "material_grade": "SS316",
                "standard_or_spec": None,
                "size": {
                    "outer_diameter": {"value": 2, "unit": "in"},
                    "wall_thickness": {"value": None, "unit": None},
                    "length": {"value": None, "unit": None},
                },
                "quantity": 20,
                "unit": "pcs",
                "delivery_location": "Houston",
                "required_delivery_date": None,
                "incoterm": None,
                "payment_terms": "NET30",
                "other_requirements": [],
            }
        ],
    }


@pytest.fixture
def sample_rfq():
    """Canonical RFQ record with commercial terms filled in by the buyer."""
    return {
        "id": "RFQ-TEST001",
        "rfq_id": "RFQ-TEST001",
        "project_name": "Houston Tank Farm",
        "original_text": "Need 20 pcs 2-inch SS316 seamless pipe to Houston, NET30",
        "source": "text",
        "commercial": {"destination": "Houston, TX", "incoterm": "DAP", "payment_terms": "NET30"},
        "line_items": [
            {
                "item_id": "1",
                "raw_description": "20 pcs 2-inch SS316 seamless pipe",
                "product_category": "pipe",
                "product_type": "seamless pipe",
                "material_grade": "SS316",
                "standard_or_spec": "ASTM A312",
                "size": {
                    "outer_diameter": {"value": 2, "unit": "in"},
                    "wall_thickness": {"value": None, "unit": None},
                    "length": {"value": 6, "unit": "m"},
                },
                "quantity": 20,
                "unit": "pcs",
                "delivery_location": "Houston",
                "required_delivery_date": None,
                "incoterm": None,
                "payment_terms": "NET30",
                "other_requirements": ["EN 10204 3.1 MTC"],
            },
        ],
    }


@pytest.fixture
def sample_quote():
    return {"supplier": "Gulf Alloys", "unit_price": 148.5, "currency": "USD",
            "lead_time_days": 28, "payment_terms": "50% advance", "notes": "Ex-works Dubai"}


# ── Stores, fake model, Flask app ────────────────────────────────────────────

@pytest.fixture
def rfq_store():
    return MemoryRFQStore()


@pytest.fixture
def quote_ledger():
    return MemoryQuoteLedger()


@pytest.fixture
def fake_llm(pipe_payload):
    return FakeLLM(json_reply=pipe_payload)


@pytest.fixture
def app(tmp_path, monkeypatch, rfq_store, quote_ledger, fake_llm):
    """Flask app wired to memory stores and the fake model."""
    monkeypatch.setenv("DISABLE_RATE_LIMIT", "true")
    public = tmp_path / "public"
    public.mkdir()
    (public / "buyer-demo.html").write_text("<html><body>Crontal RFQ</body></html>")
    (public / "supplier-demo.html").write_text("<html><body>Supplier</body></html>")

    from app import create_app
    flask_app = create_app(
        rfq_store=rfq_store, quote_ledger=quote_ledger, llm=fake_llm,
        config={"TESTING": True,
                "UPLOAD_DIR": str(tmp_path / "uploads"),
                "PUBLIC_DIR": str(public)},
    )
    return flask_app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def seed_rfq(rfq_store, sample_rfq):
    """Put sample RFQ in the store, return its id."""
    rfq_store.put(sample_rfq)
    return sample_rfq["id"]
