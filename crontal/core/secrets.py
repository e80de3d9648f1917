"""
secrets.py — Centralized Agent Secret Management for Crontal

Single source of truth for the model API keys and tuning knobs.
Each agent gets its own scoped key that falls back to the shared key.

Env vars:
  ANTHROPIC_API_KEY       — Shared Claude API key (fallback for all agents)
  AGENT_NORMALIZER_KEY    — RFQ Normalizer (parse-request, upload-specs)
  AGENT_CLARIFIER_KEY     — Clarification Engine
  AGENT_NEGOTIATOR_KEY    — Negotiation Advisor
  CRONTAL_LLM_MODEL       — Model name for every agent
  CRONTAL_LLM_TIMEOUT     — Seconds before a model call is abandoned
  CRONTAL_LLM_MAX_TOKENS  — Completion budget per call

Security:
  - Keys are never logged in full (masked to first 8 chars)
  - Health endpoint shows which keys are set (not values)
"""

import os
import logging

log = logging.getLogger("crontal.secrets")

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_TOKENS = 4096

# ─── Secret Definitions ─────────────────────────────────────────────────────

_REGISTRY = {
    "anthropic_shared": {
        "env": "ANTHROPIC_API_KEY",
        "required": True,
        "desc": "Shared Claude API key — fallback for all agents",
        "agents": ["all"],
        "sensitive": True,
    },
    "agent_normalizer": {
        "env": "AGENT_NORMALIZER_KEY",
        "fallback": "ANTHROPIC_API_KEY",
        "required": False,
        "desc": "RFQ Normalizer — text/spec sheets to line items",
        "agents": ["normalizer"],
        "sensitive": True,
    },
    "agent_clarifier": {
        "env": "AGENT_CLARIFIER_KEY",
        "fallback": "ANTHROPIC_API_KEY",
        "required": False,
        "desc": "Clarification Engine — buyer refinement turns",
        "agents": ["clarifier"],
        "sensitive": True,
    },
    "agent_negotiator": {
        "env": "AGENT_NEGOTIATOR_KEY",
        "fallback": "ANTHROPIC_API_KEY",
        "required": False,
        "desc": "Negotiation Advisor — quote negotiation guidance",
        "agents": ["negotiator"],
        "sensitive": True,
    },
    "llm_model": {
        "env": "CRONTAL_LLM_MODEL",
        "required": False,
        "desc": "Claude model used by every agent",
        "agents": ["all"],
        "default": DEFAULT_MODEL,
    },
}


# ─── Public API ──────────────────────────────────────────────────────────────

def get_key(name: str) -> str:
    """Get a secret value by registry name. Returns empty string if not set."""
    entry = _REGISTRY.get(name)
    if not entry:
        log.warning("Unknown secret requested: %s", name)
        return ""

    val = os.environ.get(entry["env"], "")
    if not val and "fallback" in entry:
        val = os.environ.get(entry["fallback"], "")
    if not val and "default" in entry:
        val = entry["default"]
    return val


def get_agent_key(agent_name: str) -> str:
    """Get the API key for a specific agent. Falls back to shared key."""
    agent_map = {
        "normalizer": "agent_normalizer",
        "clarifier": "agent_clarifier",
        "negotiator": "agent_negotiator",
    }
    reg_name = agent_map.get(agent_name, "anthropic_shared")
    return get_key(reg_name)


def get_model() -> str:
    return get_key("llm_model")


def _env_number(env: str, default: float, cast=float):
    raw = os.environ.get(env, "")
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        log.warning("Ignoring non-numeric %s=%r, using %s", env, raw, default)
        return default


def get_timeout() -> float:
    return _env_number("CRONTAL_LLM_TIMEOUT", DEFAULT_TIMEOUT)


def get_max_tokens() -> int:
    return _env_number("CRONTAL_LLM_MAX_TOKENS", DEFAULT_MAX_TOKENS, int)


def mask(value: str) -> str:
    """Mask a secret for safe logging. Shows first 8 chars."""
    if not value:
        return "(not set)"
    if len(value) <= 12:
        return value[:4] + "****"
    return value[:8] + "****" + f"({len(value)} chars)"


def validate_all() -> dict:
    """Validate all secrets. Returns status report."""
    results = {}
    warnings = []
    for name, entry in _REGISTRY.items():
        val = get_key(name)
        is_set = bool(val)
        results[name] = {
            "set": is_set,
            "env": entry["env"],
            "desc": entry["desc"],
            "masked": mask(val) if not entry.get("sensitive") else ("set" if is_set else "not set"),
            "required": entry.get("required", False),
            "agents": entry["agents"],
        }
        if entry.get("required") and not is_set:
            warnings.append(f"REQUIRED secret missing: {entry['env']} ({entry['desc']})")
        if "fallback" in entry:
            results[name]["fallback"] = entry["fallback"]
            results[name]["using_fallback"] = (
                not os.environ.get(entry["env"]) and bool(os.environ.get(entry["fallback"]))
            )

    return {
        "secrets": results,
        "total": len(results),
        "set": sum(1 for r in results.values() if r["set"]),
        "missing": sum(1 for r in results.values() if not r["set"]),
        "warnings": warnings,
    }


def startup_check():
    """Run on startup. Logs warnings for missing critical secrets."""
    report = validate_all()
    log.info("Secrets: %d/%d configured", report["set"], report["total"])
    for w in report["warnings"]:
        log.warning("SECRET: %s — all AI endpoints will fail until it is provided", w)
    return report
