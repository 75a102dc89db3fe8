"""
Competence Graph.

Prerequisite-aware DAG of curriculum competences:
- Build-time validation (unknown nodes, bounds, duplicates)
- Cycle detection on required edges (Kahn's algorithm)
- Per-student unlock checks and blocking reasons
- Dependents lookup for unlock cascades
- Topological levels for path ordering

The graph is immutable once built. Curriculum updates publish a new
version through GraphRegistry; readers keep whichever complete graph
they grabbed.
"""
from __future__ import annotations

import threading
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from fastrev.core.errors import ConfigurationError, NotFoundError
from fastrev.core.mastery import CompetenceState

# Bounds enforced by the curriculum schema
MIN_EDGE_WEIGHT = 0.1
MAX_EDGE_WEIGHT = 5.0
DEFAULT_MASTERY_THRESHOLD = 80


# =============================================================================
# DATA MODELS
# =============================================================================


class PrerequisiteKind(str, Enum):
    """Strength of a prerequisite relationship."""

    REQUIRED = "required"  # Blocks until the threshold is met
    RECOMMENDED = "recommended"  # Never blocks, biases ordering and priority
    HELPFUL = "helpful"  # Never blocks


@dataclass(frozen=True)
class CompetenceNode:
    """A curriculum competence identified by a stable code (e.g. CP.MA.N1.4)."""

    code: str
    label: str = ""
    school_level: str = ""  # CP, CE1, ...
    subject: str = ""  # FRANCAIS, MATHEMATIQUES, ...
    domain: str = ""  # N1, L2, ...


@dataclass(frozen=True)
class PrerequisiteEdge:
    """`source` must reach `threshold` progress before `target` is unlocked."""

    target: str
    source: str
    kind: PrerequisiteKind = PrerequisiteKind.REQUIRED
    threshold: int = DEFAULT_MASTERY_THRESHOLD  # 0-100, on source progress_percent
    weight: float = 1.0
    description: str = ""

    @property
    def is_required(self) -> bool:
        return self.kind is PrerequisiteKind.REQUIRED

    def is_satisfied(self, progress_percent: int) -> bool:
        """Check the source progress against this edge's threshold."""
        return progress_percent >= self.threshold


# =============================================================================
# GRAPH
# =============================================================================


class CompetenceGraph:
    """
    Immutable competence DAG.

    Usage:
        graph = CompetenceGraph.build(nodes, edges)
        if graph.is_unlocked(states, "CP.MA.N1.4"):
            ...
    """

    def __init__(
        self,
        nodes: dict[str, CompetenceNode],
        edges: list[PrerequisiteEdge],
        topological_order: list[str],
        levels: dict[str, int],
        version: int = 1,
    ):
        self._nodes = nodes
        self._edges = edges
        self._topological_order = topological_order
        self._levels = levels
        self.version = version

        self._incoming: dict[str, list[PrerequisiteEdge]] = defaultdict(list)
        self._outgoing: dict[str, list[PrerequisiteEdge]] = defaultdict(list)
        for edge in edges:
            self._incoming[edge.target].append(edge)
            self._outgoing[edge.source].append(edge)

        self._order_index = {code: i for i, code in enumerate(topological_order)}

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        nodes: Iterable[CompetenceNode],
        edges: Iterable[PrerequisiteEdge],
        version: int = 1,
    ) -> CompetenceGraph:
        """
        Validate nodes and edges and build the graph.

        Args:
            nodes: Competence nodes (codes must be unique)
            edges: Prerequisite edges between known nodes
            version: Graph version number

        Returns:
            Built CompetenceGraph

        Raises:
            ConfigurationError: Unknown node, out-of-bounds edge, duplicate,
                or a cycle among required edges (reported with its path)
        """
        node_map: dict[str, CompetenceNode] = {}
        for node in nodes:
            if node.code in node_map:
                raise ConfigurationError(f"Duplicate competence code: {node.code}")
            node_map[node.code] = node

        edge_list = list(edges)
        seen: set[tuple[str, str]] = set()
        for edge in edge_list:
            cls._validate_edge(edge, node_map, seen)

        levels, order = cls._topological_levels(node_map, edge_list)

        graph = cls(node_map, edge_list, order, levels, version=version)
        logger.info(
            f"Competence graph v{version} built: {len(node_map)} competences, "
            f"{len(edge_list)} prerequisites"
        )
        return graph

    @staticmethod
    def _validate_edge(
        edge: PrerequisiteEdge,
        node_map: Mapping[str, CompetenceNode],
        seen: set[tuple[str, str]],
    ) -> None:
        for code in (edge.target, edge.source):
            if code not in node_map:
                raise ConfigurationError(
                    f"Prerequisite {edge.source} -> {edge.target} references unknown competence {code}"
                )
        if edge.target == edge.source:
            raise ConfigurationError(f"Competence {edge.target} cannot be its own prerequisite")
        key = (edge.target, edge.source)
        if key in seen:
            raise ConfigurationError(f"Duplicate prerequisite {edge.source} -> {edge.target}")
        seen.add(key)
        if not 0 <= edge.threshold <= 100:
            raise ConfigurationError(
                f"Prerequisite {edge.source} -> {edge.target}: threshold {edge.threshold} outside 0-100"
            )
        if not MIN_EDGE_WEIGHT <= edge.weight <= MAX_EDGE_WEIGHT:
            raise ConfigurationError(
                f"Prerequisite {edge.source} -> {edge.target}: weight {edge.weight} outside "
                f"{MIN_EDGE_WEIGHT}-{MAX_EDGE_WEIGHT}"
            )

    @staticmethod
    def _topological_levels(
        node_map: Mapping[str, CompetenceNode],
        edges: list[PrerequisiteEdge],
    ) -> tuple[dict[str, int], list[str]]:
        """
        Kahn's algorithm over required edges, processed layer by layer.

        Returns:
            (level per code, topological order)

        Raises:
            ConfigurationError: When some required edges form a cycle
        """
        in_degree = {code: 0 for code in node_map}
        successors: dict[str, list[str]] = defaultdict(list)
        for edge in edges:
            if edge.is_required:
                successors[edge.source].append(edge.target)
                in_degree[edge.target] += 1

        levels: dict[str, int] = {}
        order: list[str] = []
        frontier = sorted(code for code, degree in in_degree.items() if degree == 0)
        level = 0
        while frontier:
            next_frontier: list[str] = []
            for code in frontier:
                levels[code] = level
                order.append(code)
                for target in successors[code]:
                    in_degree[target] -= 1
                    if in_degree[target] == 0:
                        next_frontier.append(target)
            frontier = sorted(next_frontier)
            level += 1

        if len(order) < len(node_map):
            remaining = {code for code in node_map if code not in levels}
            cycle = _find_cycle(remaining, successors)
            logger.error(f"Required prerequisites form a cycle: {' -> '.join(cycle)}")
            raise ConfigurationError(
                f"Required prerequisites form a cycle: {' -> '.join(cycle)}",
                cycle=cycle,
            )

        return levels, order

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def __contains__(self, code: object) -> bool:
        return code in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> list[CompetenceNode]:
        return [self._nodes[code] for code in self._topological_order]

    @property
    def edges(self) -> list[PrerequisiteEdge]:
        return list(self._edges)

    @property
    def topological_order(self) -> list[str]:
        return list(self._topological_order)

    def node(self, code: str) -> CompetenceNode:
        """Get a node by code, raising NotFoundError when unknown."""
        self.require(code)
        return self._nodes[code]

    def require(self, code: str) -> None:
        """Raise NotFoundError unless `code` is a known competence."""
        if code not in self._nodes:
            raise NotFoundError("competence", code)

    def level_of(self, code: str) -> int:
        """Kahn layer of a competence (0 = no required prerequisites)."""
        self.require(code)
        return self._levels[code]

    def order_index(self, code: str) -> int:
        self.require(code)
        return self._order_index[code]

    def prerequisites_of(
        self, code: str, kind: PrerequisiteKind | None = None
    ) -> list[PrerequisiteEdge]:
        """Incoming edges of a competence, optionally filtered by kind."""
        self.require(code)
        edges = self._incoming.get(code, [])
        if kind is None:
            return list(edges)
        return [edge for edge in edges if edge.kind is kind]

    def dependents_of(self, code: str) -> set[str]:
        """Competences with a required or recommended edge from `code`."""
        self.require(code)
        return {
            edge.target
            for edge in self._outgoing.get(code, [])
            if edge.kind in (PrerequisiteKind.REQUIRED, PrerequisiteKind.RECOMMENDED)
        }

    def competence_weight(self, code: str) -> float:
        """Maximum weight of the recommended edges pointing at `code` (0 if none)."""
        self.require(code)
        weights = [
            edge.weight
            for edge in self._incoming.get(code, [])
            if edge.kind is PrerequisiteKind.RECOMMENDED
        ]
        return max(weights, default=0.0)

    # -------------------------------------------------------------------------
    # Unlock checks
    # -------------------------------------------------------------------------

    def blocking_reasons(
        self, student_states: Mapping[str, CompetenceState], code: str
    ) -> set[str]:
        """
        Required prerequisites whose threshold the student has not met.

        Args:
            student_states: The student's states keyed by competence code
            code: Competence to check

        Returns:
            Set of unmet prerequisite codes (empty means unlocked)
        """
        self.require(code)
        blocking = set()
        for edge in self._incoming.get(code, []):
            if not edge.is_required:
                continue
            state = student_states.get(edge.source)
            progress = state.progress_percent if state is not None else 0
            if not edge.is_satisfied(progress):
                blocking.add(edge.source)
        return blocking

    def is_unlocked(self, student_states: Mapping[str, CompetenceState], code: str) -> bool:
        """True iff every required prerequisite meets its threshold."""
        return not self.blocking_reasons(student_states, code)


def _find_cycle(remaining: set[str], successors: Mapping[str, list[str]]) -> list[str]:
    """Walk required edges backwards inside the unsorted remainder until a node repeats."""
    predecessors: dict[str, list[str]] = defaultdict(list)
    for source, targets in successors.items():
        if source not in remaining:
            continue
        for target in targets:
            if target in remaining:
                predecessors[target].append(source)

    path: list[str] = []
    position: dict[str, int] = {}
    current = min(remaining)
    while current not in position:
        position[current] = len(path)
        path.append(current)
        # Every node left over by Kahn's algorithm keeps a predecessor in the remainder
        current = min(predecessors[current])
    cycle = path[position[current]:] + [current]
    cycle.reverse()
    return cycle


# =============================================================================
# GRAPH REGISTRY
# =============================================================================


class GraphRegistry:
    """
    Process-wide holder of the current competence graph.

    Rebuilds are rare (curriculum updates) and happen off to the side;
    the swap itself is a single reference assignment under a lock.
    """

    def __init__(self, graph: CompetenceGraph):
        self._graph = graph
        self._lock = threading.Lock()

    @property
    def current(self) -> CompetenceGraph:
        return self._graph

    @property
    def version(self) -> int:
        return self._graph.version

    def publish(
        self,
        nodes: Iterable[CompetenceNode],
        edges: Iterable[PrerequisiteEdge],
    ) -> CompetenceGraph:
        """
        Build a new graph version and make it current.

        A ConfigurationError propagates and the previous graph keeps serving.
        """
        with self._lock:
            graph = CompetenceGraph.build(nodes, edges, version=self._graph.version + 1)
            self._graph = graph
        logger.info(f"Competence graph v{graph.version} published")
        return graph
