"""
crontal/core/paths.py — Centralized Path Configuration

Single source of truth for directory paths and upload limits.
Every module imports from here instead of computing its own paths.

Env overrides:
  CRONTAL_UPLOAD_DIR  — scratch space for multipart uploads (deleted after extraction)
  CRONTAL_PUBLIC_DIR  — static single-page frontend
  CRONTAL_LOG_DIR     — rotating log files
"""

import os
import logging

log = logging.getLogger("crontal.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

# ── Core Directories ─────────────────────────────────────────────────────────
UPLOAD_DIR = os.environ.get("CRONTAL_UPLOAD_DIR") or os.path.join(PROJECT_ROOT, "uploads")
PUBLIC_DIR = os.environ.get("CRONTAL_PUBLIC_DIR") or os.path.join(PROJECT_ROOT, "public")
LOG_DIR = os.environ.get("CRONTAL_LOG_DIR") or os.path.join(PROJECT_ROOT, "logs")

# Shell served for every unmatched GET
SPA_SHELL = "buyer-demo.html"

# ── Upload limits ────────────────────────────────────────────────────────────
MAX_UPLOAD_FILES = 5
MAX_UPLOAD_BYTES = 25 * 1024 * 1024  # per file
# Whole-request ceiling enforced by Flask (413 beyond this)
MAX_CONTENT_LENGTH = MAX_UPLOAD_FILES * MAX_UPLOAD_BYTES + 1024 * 1024


def validate_paths(upload_dir: str = UPLOAD_DIR, public_dir: str = PUBLIC_DIR) -> dict:
    """Runtime validation — call at app startup to catch path issues early.

    Returns:
        {"ok": bool, "errors": [str], "warnings": [str], "resolved": {name: path}}
    """
    result = {"ok": True, "errors": [], "warnings": [], "resolved": {}}

    checks = {
        "UPLOAD_DIR": (upload_dir, True),
        "PUBLIC_DIR": (public_dir, False),
    }
    for name, (path, required) in checks.items():
        result["resolved"][name] = path
        if not os.path.isdir(path):
            if required:
                result["errors"].append(f"{name} not found: {path}")
                result["ok"] = False
            else:
                result["warnings"].append(f"{name} not found: {path}")

    if not result["ok"]:
        return result

    # Verify UPLOAD_DIR is writable
    test_file = os.path.join(upload_dir, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"UPLOAD_DIR not writable: {e}")
        result["ok"] = False

    return result
