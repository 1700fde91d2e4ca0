"""Entity/relationship extraction payloads.

Why this exists:
- Gives the LLM a fixed JSON shape to fill in
- Validates whatever comes back before it touches the graph
- Applies a validated payload to an EntityGraph

Parsing is tolerant: keys are matched case-insensitively ("Name" or "name")
and a markdown code fence around the JSON is stripped. Anything that still
fails validation is logged and dropped.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from kgrag.graph.models import Entity
from kgrag.graph.store import EntityGraph
from kgrag.observability.logging import get_logger
from kgrag.providers.base import LLMProvider

logger = get_logger(__name__)

EXTRACTION_PROMPT = """You are an expert at extracting entities and relationships from text and code.
Extract all important entities (people, places, organizations, concepts, functions, variables etc.) and their relationships from the provided text.

For each entity, identify:
- Entity name
- Entity type (Person, Organization, Location, Concept, etc.)
- Key attributes or descriptions

For each relationship, identify:
- Source entity
- Target entity
- Relationship type (works_for, located_in, part_of, etc.)
- Relationship description

Respond with a single JSON object and nothing else, shaped as:
{"entities": [{"name": "", "type": "", "attributes": ""}],
 "relationships": [{"source": "", "target": "", "type": "", "description": ""}]}
"""

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(v) for v in value]
    return value


class _CaseInsensitiveModel(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def lower_keys(cls, data: Any) -> Any:
        return _lower_keys(data)


class EntityRecord(_CaseInsensitiveModel):
    name: str = Field(..., min_length=1)
    type: str = ""
    attributes: str = ""


class RelationshipRecord(_CaseInsensitiveModel):
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: str = ""
    description: str = ""


class ExtractionPayload(_CaseInsensitiveModel):
    """Entities and relationships extracted from one piece of text."""

    entities: list[EntityRecord] = Field(default_factory=list)
    relationships: list[RelationshipRecord] = Field(default_factory=list)


@dataclass
class ExtractionResult:
    """Counts of what a payload actually changed in the graph."""

    entities_added: int = 0
    relationships_added: int = 0

    def __add__(self, other: "ExtractionResult") -> "ExtractionResult":
        return ExtractionResult(
            self.entities_added + other.entities_added,
            self.relationships_added + other.relationships_added,
        )


def strip_code_fence(raw: str) -> str:
    text = raw.strip()
    match = _FENCE.match(text)
    return match.group(1).strip() if match else text


def parse_extraction(raw: str | dict) -> Optional[ExtractionPayload]:
    """Parse an LLM response (or an already decoded object) into a payload.

    Returns:
        The validated payload, or None when the input is not valid JSON of the
        expected shape.
    """
    try:
        data = json.loads(strip_code_fence(raw)) if isinstance(raw, str) else raw
        return ExtractionPayload.model_validate(data)
    except json.JSONDecodeError as e:
        logger.warning("extraction_payload_invalid_json", error=str(e))
    except ValidationError as e:
        logger.warning("extraction_payload_invalid", error_count=e.error_count())
    return None


def apply_extraction(
    graph: EntityGraph, payload: ExtractionPayload, source_reference: str = ""
) -> ExtractionResult:
    """Add the payload's entities, then its relationships, to graph.

    Entities whose name already exists and relationships with an unknown
    endpoint are skipped and not counted.
    """
    result = ExtractionResult()

    for record in payload.entities:
        if record.name in graph:
            continue
        graph.add_entity(
            Entity(
                name=record.name,
                type=record.type,
                attributes=record.attributes,
                source_reference=source_reference,
            )
        )
        result.entities_added += 1

    for record in payload.relationships:
        relationship = graph.add_relationship(
            record.source,
            record.target,
            record.type,
            record.description,
            source_reference,
        )
        if relationship is not None:
            result.relationships_added += 1

    skipped = len(payload.relationships) - result.relationships_added
    if skipped:
        logger.warning(
            "relationships_skipped_missing_entity",
            reference=source_reference,
            skipped=skipped,
        )
    return result


class GraphExtractor:
    """Asks an LLM to extract entities and relationships from text."""

    def __init__(self, llm_provider: LLMProvider, max_tokens: Optional[int] = None) -> None:
        self.llm_provider = llm_provider
        self.max_tokens = max_tokens

    async def extract(self, content: str) -> Optional[ExtractionPayload]:
        """Return the extracted payload, or None when the response is unusable.

        Raises:
            ProviderError: If the LLM call itself fails
        """
        response = await self.llm_provider.generate(
            prompt=content,
            system_prompt=EXTRACTION_PROMPT,
            max_tokens=self.max_tokens,
            temperature=0.0,
        )
        return parse_extraction(response)
