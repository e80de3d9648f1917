"""
text_extractor.py — Uploaded file -> provenance-tagged text blob.

Pipeline position:
  Upload → EXTRACT → Normalize → Store

Every file yields a string. Content problems never raise: they come back as
one of the fixed sentinel strings below so the model (and the buyer) can see
that a file was unreadable instead of losing it silently.

  Spreadsheets (xlsx/xlsm/xls/csv): each sheet to comma-delimited text,
      with a "SHEET: <name>" header per sheet.
  PDF: page text via pypdf, raw UTF-8 byte decode when pypdf cannot open
      the file. No OCR: scanned PDFs get the NO_PDF_TEXT sentinel.
  Anything else: UTF-8 text, undecodable bytes replaced.

extract_batch() owns the temp files: each one is deleted once extracted,
even when extraction blows up, and one bad file never stops its siblings.
"""

import csv
import io
import logging
import os
from collections import namedtuple

import openpyxl
from pypdf import PdfReader

log = logging.getLogger("crontal.extract")

# ─── Sentinels ───────────────────────────────────────────────────────────────

NO_PDF_TEXT = ("[NO CLEAR TEXT EXTRACTED - PDF may be scanned or graphical. "
               "Buyer may need to upload a BOM or type the scope in text.]")
NO_TEXT = "[NO TEXT EXTRACTED]"
PDF_READ_FAILED = "[UNABLE TO READ PDF BYTES - {reason}]"
FILE_READ_FAILED = "[UNABLE TO READ FILE CONTENT - {reason}]"
SHEET_READ_FAILED = "[UNABLE TO READ SPREADSHEET - {reason}]"
UNREADABLE_FILE = "FILE: {name} (no readable content extracted; likely scanned or unsupported format)"

SPREADSHEET_EXTS = {"xlsx", "xlsm", "xltx", "xltm", "xls"}
KIND_BY_EXT = {"pdf": "pdf", "csv": "csv"}
KIND_BY_EXT.update({ext: "spreadsheet" for ext in SPREADSHEET_EXTS})

UploadedFile = namedtuple("UploadedFile", ["path", "filename"])


def infer_kind(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    return KIND_BY_EXT.get(ext, "text")


def _reason(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


def _has_printable(text: str) -> bool:
    return any(ch.isprintable() and not ch.isspace() and ch != "�" for ch in text)


# ─── Spreadsheets ────────────────────────────────────────────────────────────

def _rows_to_csv(rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        cells = ["" if v is None else str(v) for v in row]
        # openpyxl pads to max_column; drop rows that are entirely blank
        if any(c.strip() for c in cells):
            writer.writerow(cells)
    return buf.getvalue()


def _extract_spreadsheet(path: str, filename: str) -> str:
    try:
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as e:
        log.error("Workbook open failed for %s: %s", filename, e)
        return f"EXCEL FILE: {filename}\n\n" + SHEET_READ_FAILED.format(reason=_reason(e))

    sheets_text = ""
    has_rows = False
    try:
        for ws in wb.worksheets:
            body = _rows_to_csv(ws.iter_rows(values_only=True))
            has_rows = has_rows or bool(body)
            sheets_text += f"\n\nSHEET: {ws.title}\n{body}"
    finally:
        wb.close()

    if not has_rows:
        log.warning("No useful content found in Excel file %s", filename)
    return f"EXCEL FILE: {filename}\n{sheets_text}"


def _extract_csv(path: str, filename: str) -> str:
    try:
        with open(path, newline="", encoding="utf-8", errors="replace") as f:
            body = _rows_to_csv(csv.reader(f))
    except OSError as e:
        log.error("CSV read failed for %s: %s", filename, e)
        return f"FILE: {filename}\n\n" + FILE_READ_FAILED.format(reason=_reason(e))
    if not body.strip():
        log.warning("CSV file %s has no rows", filename)
    sheet = os.path.splitext(filename)[0] or filename
    return f"EXCEL FILE: {filename}\n\n\nSHEET: {sheet}\n{body}"


# ─── PDF ─────────────────────────────────────────────────────────────────────

def _pdf_page_text(path: str) -> str:
    reader = PdfReader(path)
    return "\n\n".join((page.extract_text() or "") for page in reader.pages)


def _pdf_bytes_text(path: str, filename: str) -> str:
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as e:
        log.error("Raw read failed for PDF %s: %s", filename, e)
        return PDF_READ_FAILED.format(reason=_reason(e))
    return raw.decode("utf-8", errors="replace")


def _extract_pdf(path: str, filename: str) -> str:
    try:
        text = _pdf_page_text(path)
    except Exception as e:
        log.warning("pypdf could not read %s (%s), decoding raw bytes", filename, e)
        text = _pdf_bytes_text(path, filename)

    if not _has_printable(text):
        log.warning("No clear text extracted from PDF %s. Likely scanned or mostly graphical.",
                    filename)
        text = NO_PDF_TEXT
    return f"PDF FILE: {filename}\n\n{text}"


# ─── Plain text ──────────────────────────────────────────────────────────────

def _extract_plain(path: str, filename: str) -> str:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            raw = f.read()
    except OSError as e:
        log.error("Raw read failed for %s: %s", filename, e)
        return f"FILE: {filename}\n\n" + FILE_READ_FAILED.format(reason=_reason(e))
    if not _has_printable(raw):
        log.warning("File %s appears empty as text.", filename)
        return f"FILE: {filename}\n\n{NO_TEXT}"
    return f"FILE: {filename}\n\n{raw}"


_EXTRACTORS = {
    "spreadsheet": _extract_spreadsheet,
    "csv": _extract_csv,
    "pdf": _extract_pdf,
    "text": _extract_plain,
}


# ─── Public API ──────────────────────────────────────────────────────────────

def extract_text(path: str, filename: str, kind: str = None) -> str:
    """Extract one file to a provenance-tagged text blob (never raises on bad content)."""
    kind = kind or infer_kind(filename)
    extractor = _EXTRACTORS.get(kind, _extract_plain)
    return extractor(path, filename)


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except OSError as e:
        log.debug("Temp cleanup failed for %s: %s", path, e)


def extract_batch(files: list) -> list:
    """Extract a batch of UploadedFile entries, best effort.

    Returns the non-empty texts in upload order. Each temp file is removed
    after its extraction, whatever the outcome.
    """
    texts = []
    for upload in files:
        try:
            text = extract_text(upload.path, upload.filename)
            if text and text.strip():
                texts.append(text)
        except Exception as e:
            log.error("Failed to extract from %s: %s", upload.filename, e, exc_info=True)
        finally:
            _remove_quietly(upload.path)
    log.info("Extracted %d/%d files", len(texts), len(files))
    return texts


def fallback_batch_text(filenames: list) -> str:
    """Stand-in text when no file in a batch produced anything."""
    return "\n".join(UNREADABLE_FILE.format(name=name) for name in filenames)
