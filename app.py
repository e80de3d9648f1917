#!/usr/bin/env python3
"""
Crontal RFQ — Application Entry Point
Creates the Flask app, wires the pipeline services and registers the API Blueprint.

    gunicorn "app:create_app()"
    python app.py            (dev server, PORT env, default 4000)
"""

import os
import time
import logging

from flask import Flask, request

from crontal.agents.clarifier import Clarifier
from crontal.agents.negotiator import Negotiator
from crontal.agents.rfq_normalizer import RFQNormalizer
from crontal.core import paths, secrets
from crontal.core.llm import LLMClient
from crontal.core.store import MemoryQuoteLedger, MemoryRFQStore

log = logging.getLogger("crontal")


def create_app(rfq_store=None, quote_ledger=None, llm=None, config=None):
    """Application factory.

    Args:
        rfq_store / quote_ledger: repository implementations (memory by default)
        llm: one collaborator shared by every agent; by default each agent
             gets its own LLMClient scoped to its API key
        config: extra Flask config (UPLOAD_DIR, PUBLIC_DIR, TESTING, ...)
    """
    app = Flask(__name__, static_folder=None)
    app.config.update(
        UPLOAD_DIR=paths.UPLOAD_DIR,
        PUBLIC_DIR=paths.PUBLIC_DIR,
        MAX_CONTENT_LENGTH=paths.MAX_CONTENT_LENGTH,
    )
    app.json.sort_keys = False
    if config:
        app.config.update(config)

    rfqs = rfq_store if rfq_store is not None else MemoryRFQStore()
    quotes = quote_ledger if quote_ledger is not None else MemoryQuoteLedger()
    app.extensions["crontal"] = {
        "rfqs": rfqs,
        "quotes": quotes,
        "normalizer": RFQNormalizer(llm or LLMClient("normalizer"), rfqs),
        "clarifier": Clarifier(llm or LLMClient("clarifier")),
        "negotiator": Negotiator(llm or LLMClient("negotiator")),
    }

    try:
        os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)
    except OSError as e:
        log.warning("Upload dir unavailable (%s): %s", app.config["UPLOAD_DIR"], e)
    path_report = paths.validate_paths(app.config["UPLOAD_DIR"], app.config["PUBLIC_DIR"])
    for msg in path_report["errors"]:
        log.error("PATH: %s", msg)
    for msg in path_report["warnings"]:
        log.warning("PATH: %s", msg)

    if llm is None:
        secrets.startup_check()

    # ── Request-level structured logging ────────────────────────────────────
    @app.before_request
    def _log_request_start():
        request._start_time = time.time()

    @app.after_request
    def _log_request_end(response):
        if hasattr(request, "_start_time"):
            duration_ms = round((time.time() - request._start_time) * 1000, 1)
            if request.path.startswith("/api/") and request.path != "/api/health":
                log.info("%s %s → %d (%.0fms)",
                         request.method, request.path, response.status_code, duration_ms,
                         extra={"route": request.path, "method": request.method,
                                "status": response.status_code, "duration_ms": duration_ms})
        return response

    from crontal.api.routes import bp
    app.register_blueprint(bp)

    from crontal.api.security import init_security
    init_security(app)

    return app


if __name__ == "__main__":
    from logging_config import setup_logging
    setup_logging()
    port = int(os.environ.get("PORT", 4000))
    create_app().run(host="0.0.0.0", port=port, debug=False, threaded=True)
