"""
Curriculum Loader.

Reads curriculum documents (YAML or JSON) into a CompetenceGraph:

    version: 1
    name: CP 2025
    competences:
      - code: CP.MA.N1.1
        label: Count up to 20
    prerequisites:
      - target: CP.MA.N1.4
        source: CP.MA.N1.1
        kind: required
        threshold: 85
        weight: 3.0
    scoring_profiles:
      handwriting:
        pass_threshold: 75
        weights: {precision: 0.4, speed: 0.15, fluidity: 0.25, inclination: 0.15, pressure: 0.05}

Scoring profiles are returned raw; the adaptive package validates them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from fastrev.core.errors import ConfigurationError
from fastrev.graph.competence_graph import (
    DEFAULT_MASTERY_THRESHOLD,
    MAX_EDGE_WEIGHT,
    MIN_EDGE_WEIGHT,
    CompetenceGraph,
    CompetenceNode,
    PrerequisiteEdge,
    PrerequisiteKind,
)

# ========================================
# Document models
# ========================================


class CompetenceDocument(BaseModel):
    """A competence entry of a curriculum document."""

    code: str = Field(..., min_length=1, description="Stable code, e.g. CP.FR.L1.1")
    label: str = Field("", description="Human-readable name")
    school_level: str | None = Field(None, description="Defaults to the first code segment")
    subject: str | None = Field(None, description="Defaults to the second code segment")
    domain: str | None = Field(None, description="Defaults to the third code segment")

    def to_node(self) -> CompetenceNode:
        parts = self.code.split(".")
        derived = parts[:3] if len(parts) >= 4 else ["", "", ""]
        return CompetenceNode(
            code=self.code,
            label=self.label,
            school_level=self.school_level if self.school_level is not None else derived[0],
            subject=self.subject if self.subject is not None else derived[1],
            domain=self.domain if self.domain is not None else derived[2],
        )


class PrerequisiteDocument(BaseModel):
    """A prerequisite entry: `source` must be progressed before `target`."""

    target: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    kind: PrerequisiteKind = PrerequisiteKind.REQUIRED
    threshold: int = Field(DEFAULT_MASTERY_THRESHOLD, ge=0, le=100)
    weight: float = Field(1.0, ge=MIN_EDGE_WEIGHT, le=MAX_EDGE_WEIGHT)
    description: str = ""

    def to_edge(self) -> PrerequisiteEdge:
        return PrerequisiteEdge(
            target=self.target,
            source=self.source,
            kind=self.kind,
            threshold=self.threshold,
            weight=self.weight,
            description=self.description,
        )


class CurriculumDocument(BaseModel):
    """Top-level curriculum document."""

    version: int = Field(1, ge=1)
    name: str = ""
    competences: list[CompetenceDocument] = Field(..., min_length=1)
    prerequisites: list[PrerequisiteDocument] = Field(default_factory=list)
    scoring_profiles: dict[str, dict[str, Any]] = Field(default_factory=dict)


@dataclass
class Curriculum:
    """A loaded curriculum: its graph plus raw scoring profiles."""

    name: str
    graph: CompetenceGraph
    scoring_profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def nodes(self) -> list[CompetenceNode]:
        return self.graph.nodes

    @property
    def edges(self) -> list[PrerequisiteEdge]:
        return self.graph.edges


# ========================================
# Loading
# ========================================


def _read_document(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def parse_curriculum(raw: Any, source: str = "<memory>") -> Curriculum:
    """
    Validate a parsed curriculum document and build its graph.

    Raises:
        ConfigurationError: Schema violations, unknown nodes or cycles
    """
    try:
        document = CurriculumDocument.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid curriculum {source}: {e}") from e

    graph = CompetenceGraph.build(
        (c.to_node() for c in document.competences),
        (p.to_edge() for p in document.prerequisites),
        version=document.version,
    )
    return Curriculum(
        name=document.name or source,
        graph=graph,
        scoring_profiles=document.scoring_profiles,
    )


def load_curriculum(path: str | Path) -> Curriculum:
    """
    Load a curriculum document from a YAML or JSON file.

    Args:
        path: Document path (.yaml, .yml or .json)

    Returns:
        Curriculum with a validated graph

    Raises:
        ConfigurationError: Missing file, unparsable document or invalid graph
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Curriculum file not found: {path}")

    try:
        raw = _read_document(path)
    except (yaml.YAMLError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot parse curriculum {path}: {e}") from e

    curriculum = parse_curriculum(raw, source=str(path))
    logger.info(f"Loaded curriculum '{curriculum.name}' from {path}")
    return curriculum
