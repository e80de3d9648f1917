"""
clarifier.py — Clarification Engine: one buyer/assistant refinement turn.

Reads an RFQ plus the conversation so far and returns the next assistant
message. Performs no writes: the RFQ, the history and the store are left
exactly as they came in.

"Don't re-ask for what we already know" is enforced by handing the model a
compact RFQ summary as ground truth, not by local field checks. The summary
must therefore reflect the RFQ as it is at call time.
"""

import json
import logging

from crontal.core import rfq_schema
from crontal.core.errors import ClarificationFailure
from crontal.core.llm import LLMError

log = logging.getLogger("crontal.clarifier")

DEFAULT_REPLY = ("I've interpreted your RFQ and populated the table. Let me know what "
                 "delivery location, dates, and payment terms you want so I can tighten "
                 "it further.")

_SYSTEM = """You are Crontal's RFQ conversation assistant for industrial stainless steel / metal procurement.

Goal:
- Help the buyer refine a structured RFQ (already parsed) through short, concrete messages.
- Always reference the STRUCTURED RFQ JSON you receive, not just the raw text.

VERY IMPORTANT:
- Before asking for more information, carefully READ the existing line_items and commercial fields.
- ONLY ask for details that are still missing across MOST line items.
  - If description, grade and size are already present, do NOT say they are missing.
  - If destination, incoterm, or payment_terms are already set, do NOT ask for them again.

Your job:
1) Briefly confirm what you have understood.
2) Call out IMPORTANT missing details ONLY if they are truly missing.
3) Make 1-3 SPECIFIC suggestions about what to update in the table on the right.
4) Ask 1 clear follow-up question.

Style:
- Be concise (3-6 sentences).
- Use plain, professional language.
- Do NOT repeat what Crontal is or greet again."""


def summarize_rfq(rfq: dict) -> dict:
    """Compact ground-truth view of an RFQ (canonical shape expected)."""
    return {
        "rfq_id": rfq.get("id"),
        "project_name": rfq.get("project_name"),
        "commercial": rfq.get("commercial"),
        "line_items": [rfq_schema.item_digest(li) for li in rfq.get("line_items") or []],
    }


def replay_history(history) -> list:
    """History turns as model messages; unknown roles become 'user'.

    Turns without text content are dropped: the Messages API rejects empty
    messages.
    """
    if not isinstance(history, list):
        return []
    messages = []
    for turn in history:
        if not isinstance(turn, dict):
            continue
        content = turn.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        role = "assistant" if turn.get("role") == "assistant" else "user"
        messages.append({"role": role, "content": content})
    return messages


def build_messages(rfq: dict, history=None, latest_message: str = None) -> list:
    summary = json.dumps(summarize_rfq(rfq), indent=2, default=str)
    messages = [{
        "role": "user",
        "content": ("Here is the current structured RFQ JSON:\n\n" + summary +
                    "\n\nUse this as ground truth for what has been parsed so far."),
    }]
    messages.extend(replay_history(history))
    if latest_message:
        messages.append({
            "role": "user",
            "content": ("Latest buyer message (may clarify destination, dates, "
                        "payment, etc.):\n\n" + latest_message),
        })
    else:
        messages.append({
            "role": "user",
            "content": "No new buyer message; just suggest next refinements based on the RFQ JSON.",
        })
    return messages


class Clarifier:
    def __init__(self, llm):
        self.llm = llm

    def clarify(self, rfq: dict, history=None, latest_message: str = None) -> str:
        messages = build_messages(rfq, history, latest_message)
        try:
            reply = self.llm.complete_text(_SYSTEM, messages)
        except LLMError as e:
            log.error("Clarify failed for %s: %s", rfq.get("id"), e)
            raise ClarificationFailure("Clarify failed", detail=str(e)) from e
        reply = (reply or "").strip()
        if not reply:
            log.info("Empty clarify reply for %s, using default", rfq.get("id"))
            return DEFAULT_REPLY
        return reply
