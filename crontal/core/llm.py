"""
llm.py — Reasoning collaborator boundary (Claude Messages API).

Every agent talks to the model through LLMClient:

    complete_text(system, messages) -> str     free text (clarify, negotiate)
    complete_json(system, user)     -> dict    schema-constrained (normalize)

The model is untrusted for strict schema compliance. complete_json runs an
explicit decode step that strips markdown fences, locates the JSON object and
raises LLMDecodeError when nothing parseable comes back. Transport, timeout
and API failures surface as LLMError. No retries: the SDK client is built
with max_retries=0 and the caller decides what to tell its own caller.
"""

import json
import logging
import re
import time

import anthropic

from crontal.core import secrets

log = logging.getLogger("crontal.llm")


class LLMError(Exception):
    """Model call failed (missing key, network, timeout, API status)."""


class LLMDecodeError(LLMError):
    """Model answered, but not with a JSON object."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


_FENCE_OPEN = re.compile(r"^```\w*\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")


def decode_json_object(text: str) -> dict:
    """Parse a model reply as a JSON object.

    Accepts bare JSON, fenced ```json blocks, and JSON surrounded by chatter
    (first '{' to last '}'). Anything else raises LLMDecodeError.
    """
    if text is None:
        raise LLMDecodeError("Model returned no content", raw="")
    body = text.strip()
    if body.startswith("```"):
        body = _FENCE_OPEN.sub("", body)
        body = _FENCE_CLOSE.sub("", body).strip()

    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as e:
        start, end = body.find("{"), body.rfind("}")
        if start == -1 or end <= start:
            raise LLMDecodeError(f"Model returned non-JSON: {e}", raw=text) from e
        try:
            parsed = json.loads(body[start:end + 1])
        except json.JSONDecodeError as e2:
            raise LLMDecodeError(f"Model returned non-JSON: {e2}", raw=text) from e2

    if not isinstance(parsed, dict):
        raise LLMDecodeError(
            f"Model returned JSON {type(parsed).__name__}, expected object", raw=text)
    return parsed


class LLMClient:
    """Thin wrapper over anthropic.Anthropic scoped to one agent's key."""

    def __init__(self, agent: str, api_key: str = None, model: str = None,
                 timeout: float = None, max_tokens: int = None):
        self.agent = agent
        self.api_key = api_key if api_key is not None else secrets.get_agent_key(agent)
        self.model = model or secrets.get_model()
        self.timeout = timeout if timeout is not None else secrets.get_timeout()
        self.max_tokens = max_tokens or secrets.get_max_tokens()
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        if not self.api_key:
            raise LLMError(
                f"No API key for agent '{self.agent}' (set ANTHROPIC_API_KEY)")
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete_text(self, system: str, messages: list) -> str:
        """Send a conversation and return the concatenated text blocks."""
        client = self._get_client()
        t0 = time.time()
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=messages,
            )
        except anthropic.APITimeoutError as e:
            log.warning("%s: model call timed out after %.0fs", self.agent, self.timeout)
            raise LLMError(f"Model call timed out after {self.timeout:.0f}s") from e
        except anthropic.APIError as e:
            log.warning("%s: model call failed: %s", self.agent, e)
            raise LLMError(str(e)) from e

        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
            if getattr(block, "type", "") == "text"
        )
        log.info("%s: model reply %d chars in %.0fms", self.agent, len(text),
                 (time.time() - t0) * 1000,
                 extra={"agent": self.agent, "duration_ms": round((time.time() - t0) * 1000, 1)})
        return text

    def complete_json(self, system: str, user: str) -> dict:
        """Single-turn call whose reply must decode to a JSON object."""
        text = self.complete_text(system, [{"role": "user", "content": user}])
        return decode_json_object(text)

    def status(self) -> dict:
        return {
            "agent": self.agent,
            "model": self.model,
            "api_key_set": self.configured,
            "timeout_s": self.timeout,
        }
