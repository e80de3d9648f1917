"""
rfq_normalizer.py — Unstructured procurement text -> canonical RFQ record.

Pipeline position:
  (Extract) → NORMALIZE → RFQ Store → Clarify / Negotiate

Two entry points, one contract:
  normalize_text(text, hint)    buyer-typed free text (parse-request)
  normalize_files(texts, hint)  extractor outputs for an upload batch,
                                joined with FILE_SEPARATOR (upload-specs)

Both truncate the source to MAX_SOURCE_CHARS, ask the model for the
LINE_ITEM_SCHEMA payload, run every item through rfq_schema.coerce_line_items
(no invented values), resolve project_name (extracted → hint → placeholder),
mint a uuid-based id and write the record to the store before returning.
"""

import logging

from crontal.core import rfq_schema
from crontal.core.errors import NormalizationFailure
from crontal.core.llm import LLMDecodeError, LLMError

log = logging.getLogger("crontal.normalizer")

MAX_SOURCE_CHARS = 12000
TRUNCATION_MARKER = "\n\n[TRUNCATED]"
FILE_SEPARATOR = "\n\n----- FILE SEPARATOR -----\n\n"

_TEXT_SYSTEM = f"""You turn messy natural-language procurement text into a structured RFQ JSON object
for industrial stainless steel / metal products.

The input text may be an email, bullets, or a long paragraph.
Identify each distinct product (tube/pipe/fitting/valve, etc) and commercial terms.

Return ONLY JSON in this schema:

{rfq_schema.LINE_ITEM_SCHEMA}

Rules:
- One line_item per distinct product (size/material/use).
- If numerical details are unclear, set value to null and put text in other_requirements.
- Do NOT invent data. Use null when not given.
- project_name can be inferred from context or null.
- Return ONLY the JSON object, no extra text."""

_FILES_SYSTEM = f"""You are a procurement assistant for industrial stainless steel / metal projects.

You receive long, complex technical content: engineering drawings, design specifications, BOM tables, datasheets.

Your job is to extract a CLEAN LIST of procurement line items in THIS JSON schema:

{rfq_schema.LINE_ITEM_SCHEMA}

Rules:
- Focus on items that must be physically procured (pipes, tubes, fittings, valves, plates, structural steel, fasteners, gaskets, instruments, etc.).
- If multiple distinct sizes, ratings or materials are present, split them into separate line_items.
- Use "other_requirements" for free-text like "cut to 500-1000 mm", "plywood case", "ISO9001 and MTC".
- Only use null when the document truly does not specify the value.
- Do NOT invent sizes, grades or quantities.
- project_name can be inferred from context or null.
- Return ONLY the JSON object, no extra text."""


def truncate_source(text: str, limit: int = MAX_SOURCE_CHARS) -> str:
    """Deterministic prefix with a marker when anything was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _text_prompt(source: str, hint) -> str:
    return (f'Buyer RFQ text:\n"""{source}"""\n\n'
            f"Provided project_name (may be null): {hint or 'null'}\n\n"
            "Extract line_items and commercial terms.")


def _files_prompt(source: str, hint) -> str:
    return ("Below are one or more files from a project specification package\n"
            "(engineering PDFs and Excel tech specs).\n\n"
            "Please extract a clean list of line_items that a buyer would need "
            "to source from suppliers.\n\n"
            f"Provided project_name (may be null): {hint or 'null'}\n\n"
            f'TEXT STARTS:\n"""{source}"""')


class RFQNormalizer:
    """Normalizes source text into RFQ records and registers them."""

    def __init__(self, llm, store):
        self.llm = llm
        self.store = store

    def normalize(self, source_text: str, project_name_hint: str = None,
                  source: str = "text") -> dict:
        """Core contract shared by both entry points. Returns the stored RFQ."""
        if source_text is None:
            source_text = ""
        truncated = truncate_source(source_text)
        if len(truncated) != len(source_text):
            log.info("Source truncated from %d to %d chars", len(source_text), MAX_SOURCE_CHARS)

        if source == "upload":
            system, user = _FILES_SYSTEM, _files_prompt(truncated, project_name_hint)
        else:
            system, user = _TEXT_SYSTEM, _text_prompt(truncated, project_name_hint)

        try:
            parsed = self.llm.complete_json(system, user)
        except LLMDecodeError as e:
            log.error("Normalization returned unparseable content: %s (raw=%.200r)", e, e.raw)
            raise NormalizationFailure("Parsing failed", detail=str(e)) from e
        except LLMError as e:
            log.error("Normalization model call failed: %s", e)
            raise NormalizationFailure("Parsing failed", detail=str(e)) from e

        if not isinstance(parsed, dict):
            raise NormalizationFailure(
                "Parsing failed", detail="model payload is not a JSON object")
        raw_items = parsed.get("line_items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise NormalizationFailure(
                "Parsing failed",
                detail=f"line_items must be a list, got {type(raw_items).__name__}")

        project_name = (rfq_schema.clean_text(parsed.get("project_name"))
                        or rfq_schema.clean_text(project_name_hint)
                        or rfq_schema.PLACEHOLDER_PROJECT)

        rfq = rfq_schema.build_rfq(
            project_name=project_name,
            line_items=rfq_schema.coerce_line_items(raw_items),
            original_text=source_text,
            source=source,
        )
        self.store.put(rfq)
        log.info("RFQ %s created from %s: %d line items", rfq["id"], source,
                 len(rfq["line_items"]), extra={"rfq_id": rfq["id"]})
        return rfq

    def normalize_text(self, text: str, project_name_hint: str = None) -> dict:
        return self.normalize(text, project_name_hint, source="text")

    def normalize_files(self, texts: list, project_name_hint: str = None) -> dict:
        return self.normalize(FILE_SEPARATOR.join(texts), project_name_hint,
                              source="upload")
