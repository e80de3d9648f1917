"""Pipeline steps.

Modules:
    text_extractor   — Uploaded PDF / spreadsheet / text file to tagged text
    rfq_normalizer   — Source text to canonical RFQ (model-backed, stored)
    clarifier        — One buyer refinement turn, read-only
    negotiator       — Negotiation advice for a supplier quote
"""
