"""Tests for the RFQ Normalizer."""

import pytest

from conftest import FakeLLM
from crontal.agents.rfq_normalizer import (
    FILE_SEPARATOR, MAX_SOURCE_CHARS, TRUNCATION_MARKER, RFQNormalizer, truncate_source,
)
from crontal.core.errors import NormalizationFailure
from crontal.core.llm import LLMDecodeError, LLMError
from crontal.core.store import MemoryRFQStore

PIPE_TEXT = "Need 20 pcs 2-inch SS316 seamless pipe to Houston, NET30"


@pytest.fixture
def normalizer(fake_llm, rfq_store):
    return RFQNormalizer(fake_llm, rfq_store)


class TestTruncateSource:
    def test_short_text_untouched(self):
        assert truncate_source("abc") == "abc"

    def test_exact_limit_untouched(self):
        text = "x" * MAX_SOURCE_CHARS
        assert truncate_source(text) == text

    def test_long_text_cut_with_marker(self):
        text = "a" * (MAX_SOURCE_CHARS + 500)
        out = truncate_source(text)
        assert out == "a" * MAX_SOURCE_CHARS + TRUNCATION_MARKER

    def test_deterministic(self):
        text = "".join(chr(65 + i % 26) for i in range(30000))
        assert truncate_source(text) == truncate_source(text)


class TestNormalizeText:
    def test_pipe_example(self, normalizer):
        rfq = normalizer.normalize_text(PIPE_TEXT)
        assert len(rfq["line_items"]) == 1
        li = rfq["line_items"][0]
        assert li["material_grade"] == "SS316"
        assert li["quantity"] == 20
        assert li["delivery_location"] == "Houston"
        assert li["payment_terms"] == "NET30"
        assert li["size"]["outer_diameter"]["value"] == 2
        assert li["size"]["outer_diameter"]["unit"]
        # not stated in the text -> stays unknown
        assert li["size"]["length"]["value"] is None
        assert li["size"]["wall_thickness"]["value"] is None

    def test_original_text_and_source_kept(self, normalizer):
        rfq = normalizer.normalize_text(PIPE_TEXT)
        assert rfq["original_text"] == PIPE_TEXT
        assert rfq["source"] == "text"

    def test_written_to_store(self, normalizer, rfq_store):
        rfq = normalizer.normalize_text(PIPE_TEXT)
        assert rfq_store.get(rfq["id"]) == rfq

    def test_ids_unique_across_calls(self, normalizer):
        ids = {normalizer.normalize_text(PIPE_TEXT)["id"] for _ in range(25)}
        assert len(ids) == 25

    def test_prompt_carries_text_and_hint(self, normalizer, fake_llm):
        normalizer.normalize_text(PIPE_TEXT, "Tank Farm")
        user = fake_llm.json_calls[0]["user"]
        assert PIPE_TEXT in user
        assert "Tank Farm" in user

    def test_prompt_is_truncated(self, normalizer, fake_llm):
        long_text = "pipe " * 5000
        rfq = normalizer.normalize_text(long_text)
        assert TRUNCATION_MARKER in fake_llm.json_calls[0]["user"]
        assert rfq["original_text"] == long_text


class TestProjectName:
    def test_extracted_wins(self, rfq_store):
        llm = FakeLLM(json_reply={"project_name": "Extracted", "line_items": []})
        rfq = RFQNormalizer(llm, rfq_store).normalize_text("x", "Hint")
        assert rfq["project_name"] == "Extracted"

    def test_hint_second(self, rfq_store):
        llm = FakeLLM(json_reply={"project_name": None, "line_items": []})
        assert RFQNormalizer(llm, rfq_store).normalize_text("x", "Hint")["project_name"] == "Hint"

    def test_placeholder_last(self, rfq_store):
        llm = FakeLLM(json_reply={"project_name": "", "line_items": []})
        assert RFQNormalizer(llm, rfq_store).normalize_text("x")["project_name"] == "Untitled RFQ"


class TestNoInventedValues:
    def test_missing_fields_are_none(self, rfq_store):
        llm = FakeLLM(json_reply={"line_items": [{"raw_description": "some flanges"}]})
        li = RFQNormalizer(llm, rfq_store).normalize_text("some flanges")["line_items"][0]
        assert li["quantity"] is None
        assert li["material_grade"] is None
        assert all(li["size"][d]["value"] is None for d in li["size"])

    def test_vague_quantity_preserved_as_text(self, rfq_store):
        llm = FakeLLM(json_reply={"line_items": [
            {"raw_description": "flanges", "quantity": "a few"}]})
        li = RFQNormalizer(llm, rfq_store).normalize_text("a few flanges")["line_items"][0]
        assert li["quantity"] is None
        assert "quantity: a few" in li["other_requirements"]

    def test_missing_line_items_is_empty_list(self, rfq_store):
        llm = FakeLLM(json_reply={"project_name": "P"})
        assert RFQNormalizer(llm, rfq_store).normalize_text("x")["line_items"] == []


class TestFailures:
    def test_decode_error(self, rfq_store):
        llm = FakeLLM(json_reply=LLMDecodeError("Model returned non-JSON", raw="nope"))
        with pytest.raises(NormalizationFailure) as exc:
            RFQNormalizer(llm, rfq_store).normalize_text("x")
        assert "non-JSON" in exc.value.detail
        assert rfq_store.count() == 0

    def test_collaborator_error(self, rfq_store):
        llm = FakeLLM(json_reply=LLMError("timed out"))
        with pytest.raises(NormalizationFailure):
            RFQNormalizer(llm, rfq_store).normalize_text("x")
        assert rfq_store.count() == 0

    def test_line_items_not_a_list(self, rfq_store):
        llm = FakeLLM(json_reply={"line_items": "pipes"})
        with pytest.raises(NormalizationFailure):
            RFQNormalizer(llm, rfq_store).normalize_text("x")


class TestNormalizeFiles:
    def test_joined_with_separator(self, normalizer, fake_llm):
        rfq = normalizer.normalize_files(["FILE: a.txt\n\nA", "FILE: b.txt\n\nB"])
        assert rfq["original_text"] == "FILE: a.txt\n\nA" + FILE_SEPARATOR + "FILE: b.txt\n\nB"
        assert rfq["source"] == "upload"
        assert "FILE SEPARATOR" in fake_llm.json_calls[0]["user"]

    def test_same_coercion_rules(self, fake_llm):
        store = MemoryRFQStore()
        n = RFQNormalizer(fake_llm, store)
        from_text = n.normalize_text(PIPE_TEXT)
        from_files = n.normalize_files([PIPE_TEXT])
        assert from_text["line_items"] == from_files["line_items"]

    def test_uses_spec_package_prompt(self, normalizer, fake_llm):
        normalizer.normalize_files(["x"])
        assert "specification package" in fake_llm.json_calls[0]["user"]
