"""Unit tests for extraction payload parsing and graph extraction."""

import json
from unittest.mock import AsyncMock

import pytest

from kgrag.config.schema import AppConfig
from kgrag.entities import Chunk
from kgrag.graph import EntityGraph
from kgrag.graph.extraction import (
    EXTRACTION_PROMPT,
    ExtractionPayload,
    GraphExtractor,
    apply_extraction,
    parse_extraction,
    strip_code_fence,
)
from kgrag.pipelines.extraction import GraphExtractionPipeline
from kgrag.providers.base import ProviderError
from kgrag.providers.mock import MockLLMProvider

PAYLOAD = {
    "entities": [
        {"name": "Parser", "type": "Class", "attributes": "turns tokens into a tree"},
        {"name": "Lexer", "type": "Class", "attributes": "produces tokens"},
    ],
    "relationships": [
        {"source": "Parser", "target": "Lexer", "type": "uses", "description": "reads tokens from"},
    ],
}


class TestParseExtraction:
    def test_plain_json(self):
        payload = parse_extraction(json.dumps(PAYLOAD))
        assert [e.name for e in payload.entities] == ["Parser", "Lexer"]
        assert payload.relationships[0].type == "uses"

    def test_keys_are_case_insensitive(self):
        raw = json.dumps(
            {
                "Entities": [{"Name": "Parser", "Type": "Class", "Attributes": ""}],
                "Relationships": [{"Source": "Parser", "Target": "Parser", "Type": "self"}],
            }
        )
        payload = parse_extraction(raw)
        assert payload.entities[0].name == "Parser"
        assert payload.relationships[0].target == "Parser"

    def test_code_fence_is_stripped(self):
        raw = "```json\n" + json.dumps(PAYLOAD) + "\n```"
        assert len(parse_extraction(raw).entities) == 2

    def test_strip_code_fence_leaves_plain_text(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_missing_sections_default_to_empty(self):
        payload = parse_extraction("{}")
        assert payload.entities == []
        assert payload.relationships == []

    def test_decoded_object_accepted(self):
        assert len(parse_extraction(PAYLOAD).relationships) == 1

    @pytest.mark.parametrize(
        "raw",
        [
            "not json at all",
            '{"entities": [{"type": "Class"}]}',
            '{"entities": "Parser"}',
            "[1, 2, 3]",
        ],
    )
    def test_malformed_input_returns_none(self, raw):
        assert parse_extraction(raw) is None


class TestApplyExtraction:
    def test_adds_entities_then_relationships(self):
        graph = EntityGraph()
        result = apply_extraction(graph, ExtractionPayload.model_validate(PAYLOAD), "src/parser.py")

        assert (result.entities_added, result.relationships_added) == (2, 1)
        assert graph.get_entity("Parser").source_reference == "src/parser.py"
        assert [e.name for e in graph.outgoing_neighbors("Parser", "uses")] == ["Lexer"]

    def test_existing_entities_and_dangling_relationships_not_counted(self):
        graph = EntityGraph()
        apply_extraction(graph, ExtractionPayload.model_validate(PAYLOAD))
        payload = ExtractionPayload.model_validate(
            {
                "entities": [{"name": "Parser", "type": "Function"}],
                "relationships": [{"source": "Parser", "target": "Ghost", "type": "haunts"}],
            }
        )

        result = apply_extraction(graph, payload)

        assert (result.entities_added, result.relationships_added) == (0, 0)
        assert graph.get_entity("Parser").type == "Class"


@pytest.mark.asyncio
class TestGraphExtractor:
    async def test_sends_prompt_and_parses_response(self):
        llm = MockLLMProvider(response=json.dumps(PAYLOAD))
        payload = await GraphExtractor(llm).extract("class Parser uses Lexer")

        assert len(payload.entities) == 2
        assert llm.prompts == [(EXTRACTION_PROMPT, "class Parser uses Lexer")]

    async def test_unusable_response_gives_none(self):
        llm = MockLLMProvider(response="Sorry, I can't help with that.")
        assert await GraphExtractor(llm).extract("text") is None


@pytest.mark.asyncio
class TestGraphExtractionPipeline:
    async def test_payloads_applied_in_chunk_order(self):
        first = {"entities": [{"name": "Parser", "type": "Class"}], "relationships": []}
        second = {"entities": [{"name": "Parser", "type": "Module"}, {"name": "Lexer"}], "relationships": []}
        llm = AsyncMock()
        llm.generate.side_effect = [json.dumps(first), json.dumps(second)]

        graph = EntityGraph()
        pipeline = GraphExtractionPipeline(AppConfig(), llm, graph)
        chunks = [Chunk(reference="a.py", content="one"), Chunk(reference="b.py", content="two")]

        result = await pipeline.extract(chunks)

        assert result.extracted_count == 2
        assert result.entities_added == 2
        assert graph.get_entity("Parser").type == "Class"
        assert graph.get_entity("Lexer").source_reference == "b.py"

    async def test_failed_calls_are_skipped(self):
        llm = AsyncMock()
        llm.generate.side_effect = [
            ProviderError(message="boom", provider="mock"),
            json.dumps(PAYLOAD),
            "garbage",
        ]
        graph = EntityGraph()
        pipeline = GraphExtractionPipeline(AppConfig(), llm, graph)
        chunks = [Chunk(reference=f"{i}.md", content=str(i)) for i in range(3)]

        result = await pipeline.extract(chunks)

        assert result.chunk_count == 3
        assert result.skipped_count == 2
        assert result.relationships_added == 1
        assert graph.entity_count == 2
