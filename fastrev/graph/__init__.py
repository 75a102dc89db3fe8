"""
Graph: curriculum competence graph.

- competence_graph: CompetenceGraph, GraphRegistry and their data models
- curriculum_loader: YAML/JSON curriculum documents -> CompetenceGraph
"""

from fastrev.graph.competence_graph import (
    CompetenceGraph,
    CompetenceNode,
    GraphRegistry,
    PrerequisiteEdge,
    PrerequisiteKind,
)
from fastrev.graph.curriculum_loader import Curriculum, load_curriculum, parse_curriculum

__all__ = [
    "CompetenceGraph",
    "CompetenceNode",
    "GraphRegistry",
    "PrerequisiteEdge",
    "PrerequisiteKind",
    "Curriculum",
    "load_curriculum",
    "parse_curriculum",
]
