"""
rfq_schema.py — Canonical RFQ / Line Item shape.

One shape is used everywhere inside the pipeline:

    RFQ:       id, rfq_id, project_name, line_items, original_text,
               commercial?, created_at, source
    Line Item: item_id, raw_description, product_category, product_type,
               material_grade, standard_or_spec, size{outer_diameter,
               wall_thickness, length -> {value, unit}}, quantity, unit,
               delivery_location, required_delivery_date, incoterm,
               payment_terms, other_requirements[]

Unknown is None. Nothing here ever guesses a value: numbers that cannot be
read as numbers become None and their text moves to other_requirements.

Older frontends post RFQs as `items` with `grade`/`description`/`uom`/`line`
keys. canonicalize_rfq() is the single place those names are mapped.
"""

import copy
import logging
import math
import re
import uuid
from datetime import datetime, timezone

log = logging.getLogger("crontal.schema")

PLACEHOLDER_PROJECT = "Untitled RFQ"

SIZE_FIELDS = ("outer_diameter", "wall_thickness", "length")

TEXT_FIELDS = (
    "product_category", "product_type", "material_grade", "standard_or_spec",
    "unit", "delivery_location", "required_delivery_date", "incoterm",
    "payment_terms",
)

# Strings the model uses when it means "not stated"
_NULL_WORDS = {"", "null", "none", "n/a", "na", "unknown", "not specified", "-"}

# Legacy line item key -> canonical key
_LEGACY_ITEM_KEYS = {
    "grade": "material_grade",
    "uom": "unit",
    "qty": "quantity",
    "line": "item_id",
    "description": "raw_description",
}

# JSON schema text handed to the model; mirrors coerce_line_item()
LINE_ITEM_SCHEMA = """{
  "project_name": string|null,
  "line_items": [
    {
      "item_id": string,
      "raw_description": string,
      "product_category": string|null,
      "product_type": string|null,
      "material_grade": string|null,
      "standard_or_spec": string|null,
      "size": {
        "outer_diameter": { "value": number|null, "unit": string|null },
        "wall_thickness": { "value": number|null, "unit": string|null },
        "length":        { "value": number|null, "unit": string|null }
      },
      "quantity": number|null,
      "unit": string|null,
      "delivery_location": string|null,
      "required_delivery_date": string|null,
      "incoterm": string|null,
      "payment_terms": string|null,
      "other_requirements": string[]
    }
  ]
}"""


def new_rfq_id() -> str:
    return "RFQ-" + uuid.uuid4().hex.upper()


def clean_text(value):
    """Return a stripped string, or None for absent/placeholder values."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.lower() in _NULL_WORDS:
        return None
    return text


def to_number(value):
    """Read a number without inventing one.

    Returns (number_or_None, leftover_text_or_None). leftover is the literal
    input when it was stated but is not a plain number ("approx 20", "2 1/2").
    """
    if value is None or isinstance(value, bool):
        return None, None
    if isinstance(value, int):
        return value, None
    if isinstance(value, float):
        if math.isfinite(value):
            return (int(value) if value.is_integer() else value), None
        return None, None
    text = clean_text(value)
    if text is None:
        return None, None
    candidate = re.sub(r"(?<=\d),(?=\d{3}\b)", "", text)
    try:
        number = float(candidate)
    except ValueError:
        return None, text
    if not math.isfinite(number):
        return None, text
    return (int(number) if number.is_integer() else number), None


def _coerce_dimension(raw, label: str, notes: list) -> dict:
    if not isinstance(raw, dict):
        raw = {"value": raw} if raw not in (None, "") else {}
    value, leftover = to_number(raw.get("value"))
    unit = clean_text(raw.get("unit"))
    if leftover:
        notes.append(f"{label}: {leftover}" + (f" {unit}" if unit else ""))
    return {"value": value, "unit": unit}


def coerce_line_item(raw: dict, position: int) -> dict:
    """Map one model/client line item onto the canonical shape."""
    if not isinstance(raw, dict):
        raw = {"raw_description": raw}

    notes = []
    size_raw = raw.get("size") if isinstance(raw.get("size"), dict) else {}
    size = {
        name: _coerce_dimension(size_raw.get(name), name.replace("_", " "), notes)
        for name in SIZE_FIELDS
    }

    quantity, qty_text = to_number(raw.get("quantity"))
    if qty_text:
        notes.append(f"quantity: {qty_text}")

    item = {
        "item_id": clean_text(raw.get("item_id")) or str(position),
        "raw_description": clean_text(raw.get("raw_description")) or "",
    }
    for field in TEXT_FIELDS:
        item[field] = clean_text(raw.get(field))
    item["size"] = size
    item["quantity"] = quantity

    other = raw.get("other_requirements")
    if isinstance(other, str):
        other = [other]
    elif not isinstance(other, list):
        other = []
    requirements = [t for t in (clean_text(o) for o in other) if t]
    item["other_requirements"] = requirements + [n for n in notes if n not in requirements]

    # keep display order stable: identity, classifiers, size, quantity, commercial
    ordered = {k: item[k] for k in (
        "item_id", "raw_description", "product_category", "product_type",
        "material_grade", "standard_or_spec", "size", "quantity", "unit",
        "delivery_location", "required_delivery_date", "incoterm",
        "payment_terms", "other_requirements")}
    return ordered


def coerce_line_items(raw_items) -> list:
    """Coerce a list of items and make item_id unique within the RFQ."""
    items = []
    seen = set()
    for position, raw in enumerate(raw_items or [], start=1):
        item = coerce_line_item(raw, position)
        if item["item_id"] in seen:
            log.debug("Duplicate item_id %r at position %d, renumbering",
                      item["item_id"], position)
            item["item_id"] = str(position)
            suffix = 1
            while item["item_id"] in seen:
                suffix += 1
                item["item_id"] = f"{position}-{suffix}"
        seen.add(item["item_id"])
        items.append(item)
    return items


def build_rfq(project_name: str, line_items: list, original_text: str,
              source: str = "text") -> dict:
    rfq_id = new_rfq_id()
    return {
        "id": rfq_id,
        "rfq_id": rfq_id,
        "project_name": project_name,
        "line_items": line_items,
        "original_text": original_text,
        "source": source,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def canonicalize_rfq(payload: dict) -> dict:
    """Boundary compat step: accept either naming, return the canonical names.

    Only keys are renamed. Values pass through as the client sent them, so a
    quantity stated as "20 pcs" still reaches the model as "20 pcs". A legacy
    `description` is kept next to `raw_description` for item_digest().
    Does not mutate `payload`.
    """
    rfq = copy.deepcopy(payload)
    rfq_id = rfq.get("id") or rfq.get("rfq_id")
    if rfq_id:
        rfq["id"] = rfq["rfq_id"] = str(rfq_id)

    raw_items = rfq.pop("items", None)
    if rfq.get("line_items") is None:
        rfq["line_items"] = raw_items
    if not isinstance(rfq["line_items"], list):
        rfq["line_items"] = []

    items = []
    for raw in rfq["line_items"]:
        if not isinstance(raw, dict):
            items.append({"raw_description": clean_text(raw) or ""})
            continue
        for legacy, canonical in _LEGACY_ITEM_KEYS.items():
            if legacy not in raw:
                continue
            if raw.get(canonical) in (None, ""):
                raw[canonical] = raw[legacy]
            if legacy != "description":
                del raw[legacy]
        items.append(raw)
    rfq["line_items"] = items

    if not isinstance(rfq.get("commercial"), dict):
        rfq.pop("commercial", None)
    return rfq


def item_digest(item: dict) -> dict:
    """Per-item summary fed to the model as ground truth."""
    return {
        "line": item.get("item_id"),
        "description": (item.get("description") or item.get("product_type")
                        or item.get("raw_description")),
        "grade": item.get("material_grade"),
        "quantity": item.get("quantity"),
        "uom": item.get("unit"),
    }
