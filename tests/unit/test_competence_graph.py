"""
Unit tests for CompetenceGraph and GraphRegistry.

Tests:
- Build-time validation (unknown nodes, bounds, duplicates, cycles)
- Topological levels
- Unlock checks and blocking reasons
- Dependents and competence weights
- Versioned graph swaps
"""

import pytest
from conftest import node, recommended, required

from fastrev.core.errors import ConfigurationError, NotFoundError
from fastrev.core.mastery import CompetenceState
from fastrev.graph.competence_graph import (
    CompetenceGraph,
    GraphRegistry,
    PrerequisiteEdge,
    PrerequisiteKind,
)


def states(**progress):
    """Build a student state map from code=progress keyword pairs (dots as underscores)."""
    result = {}
    for key, value in progress.items():
        code = key.replace("_", ".")
        result[code] = CompetenceState("s1", code, progress_percent=value)
    return result


class TestBuildValidation:
    """Tests for configuration errors raised at build time."""

    def test_dag_builds(self):
        """A plain chain builds and keeps every node."""
        graph = CompetenceGraph.build(
            [node("A"), node("B"), node("C")],
            [required("B", "A"), required("C", "B")],
        )

        assert len(graph) == 3
        assert graph.topological_order == ["A", "B", "C"]

    def test_unknown_node_rejected(self):
        """Edges must reference known competences."""
        with pytest.raises(ConfigurationError, match="unknown competence Z"):
            CompetenceGraph.build([node("A")], [required("A", "Z")])

    def test_self_edge_rejected(self):
        with pytest.raises(ConfigurationError, match="own prerequisite"):
            CompetenceGraph.build([node("A")], [required("A", "A")])

    def test_duplicate_code_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate competence"):
            CompetenceGraph.build([node("A"), node("A")], [])

    def test_duplicate_edge_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate prerequisite"):
            CompetenceGraph.build(
                [node("A"), node("B")],
                [required("B", "A"), recommended("B", "A")],
            )

    @pytest.mark.parametrize("threshold", [-1, 101])
    def test_threshold_bounds(self, threshold):
        with pytest.raises(ConfigurationError, match="threshold"):
            CompetenceGraph.build([node("A"), node("B")], [required("B", "A", threshold=threshold)])

    @pytest.mark.parametrize("weight", [0.05, 5.5])
    def test_weight_bounds(self, weight):
        with pytest.raises(ConfigurationError, match="weight"):
            CompetenceGraph.build([node("A"), node("B")], [required("B", "A", weight=weight)])


class TestCycleDetection:
    """Tests for Kahn's algorithm over required edges."""

    def test_required_cycle_is_fatal(self):
        """A cycle among required edges is reported with its path."""
        with pytest.raises(ConfigurationError) as exc_info:
            CompetenceGraph.build(
                [node("A"), node("B"), node("C")],
                [required("B", "A"), required("C", "B"), required("A", "C")],
            )

        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B", "C"}
        assert len(cycle) == 4

    def test_cycle_path_follows_edges(self):
        """Consecutive cycle entries are source -> target of a required edge."""
        edges = [required("B", "A"), required("C", "B"), required("A", "C")]
        with pytest.raises(ConfigurationError) as exc_info:
            CompetenceGraph.build([node("A"), node("B"), node("C")], edges)

        pairs = {(e.source, e.target) for e in edges}
        cycle = exc_info.value.cycle
        for source, target in zip(cycle, cycle[1:]):
            assert (source, target) in pairs

    def test_cycle_found_past_downstream_nodes(self):
        """Nodes that only hang off a cycle do not hide it."""
        with pytest.raises(ConfigurationError) as exc_info:
            CompetenceGraph.build(
                [node("A"), node("B"), node("D")],
                [required("B", "A"), required("A", "B"), required("D", "B")],
            )

        assert set(exc_info.value.cycle) == {"A", "B"}

    def test_recommended_cycle_is_allowed(self):
        """Only required edges have to form a DAG."""
        graph = CompetenceGraph.build(
            [node("A"), node("B")],
            [required("B", "A"), recommended("A", "B")],
        )

        assert graph.topological_order == ["A", "B"]


class TestTopologicalLevels:
    """Tests for Kahn layers."""

    def test_levels(self, math_graph):
        assert math_graph.level_of("CP.MA.N1.1") == 0
        assert math_graph.level_of("CP.MA.N1.4") == 1
        assert math_graph.level_of("CP.MA.N2.3") == 2
        # Recommended edges do not push a competence down
        assert math_graph.level_of("CP.MA.N3.1") == 0

    def test_order_is_layered_then_alphabetical(self, math_graph):
        assert math_graph.topological_order == [
            "CP.FR.L1.1",
            "CP.MA.N1.1",
            "CP.MA.N3.1",
            "CP.MA.N1.4",
            "CP.MA.N2.3",
        ]

    def test_unknown_code_raises_not_found(self, math_graph):
        with pytest.raises(NotFoundError) as exc_info:
            math_graph.level_of("CP.XX.Z9.9")

        assert exc_info.value.kind == "competence"
        assert exc_info.value.key == "CP.XX.Z9.9"


class TestUnlocking:
    """Tests for unlock checks and blocking reasons."""

    def test_no_prerequisites_is_unlocked(self, math_graph):
        assert math_graph.is_unlocked({}, "CP.MA.N1.1")
        assert math_graph.blocking_reasons({}, "CP.MA.N1.1") == set()

    def test_missing_state_counts_as_zero(self, math_graph):
        assert math_graph.blocking_reasons({}, "CP.MA.N1.4") == {"CP.MA.N1.1"}

    def test_threshold_is_inclusive(self, math_graph):
        assert not math_graph.is_unlocked(states(CP_MA_N1_1=79), "CP.MA.N1.4")
        assert math_graph.is_unlocked(states(CP_MA_N1_1=80), "CP.MA.N1.4")

    def test_recommended_edges_never_block(self, math_graph):
        assert math_graph.is_unlocked({}, "CP.MA.N3.1")

    def test_and_semantics_across_required_edges(self):
        """Every required prerequisite must be met, each with its own threshold."""
        graph = CompetenceGraph.build(
            [node("X"), node("Y"), node("Z")],
            [required("X", "Y", threshold=80), required("X", "Z", threshold=50)],
        )

        assert graph.blocking_reasons(states(Y=90, Z=40), "X") == {"Z"}
        assert graph.blocking_reasons(states(Y=60, Z=40), "X") == {"Y", "Z"}
        assert graph.is_unlocked(states(Y=80, Z=50), "X")

    def test_scenario_progress_60_then_85(self):
        """X blocked by Y at 60 progress, unlocked once Y reaches 85."""
        graph = CompetenceGraph.build([node("X"), node("Y")], [required("X", "Y", threshold=80)])

        assert not graph.is_unlocked(states(Y=60), "X")
        assert graph.blocking_reasons(states(Y=60), "X") == {"Y"}
        assert graph.is_unlocked(states(Y=85), "X")


class TestDependentsAndWeights:
    """Tests for cascade targets and recommended-edge weights."""

    def test_dependents_follow_required_and_recommended(self, math_graph):
        assert math_graph.dependents_of("CP.MA.N1.1") == {"CP.MA.N1.4"}
        assert math_graph.dependents_of("CP.MA.N2.3") == {"CP.MA.N3.1"}
        assert math_graph.dependents_of("CP.FR.L1.1") == set()

    def test_helpful_edges_are_not_dependents(self):
        graph = CompetenceGraph.build(
            [node("A"), node("B")],
            [PrerequisiteEdge(target="B", source="A", kind=PrerequisiteKind.HELPFUL)],
        )

        assert graph.dependents_of("A") == set()

    def test_competence_weight_is_max_recommended_weight(self):
        graph = CompetenceGraph.build(
            [node("A"), node("B"), node("C")],
            [
                recommended("C", "A", weight=1.5),
                recommended("C", "B", weight=3.0),
                required("B", "A", weight=4.0),
            ],
        )

        assert graph.competence_weight("C") == 3.0
        # Required edges do not count
        assert graph.competence_weight("B") == 0.0

    def test_prerequisites_of_filters_by_kind(self, math_graph):
        edges = math_graph.prerequisites_of("CP.MA.N3.1", kind=PrerequisiteKind.RECOMMENDED)

        assert [e.source for e in edges] == ["CP.MA.N2.3"]
        assert math_graph.prerequisites_of("CP.MA.N3.1", kind=PrerequisiteKind.REQUIRED) == []


class TestGraphRegistry:
    """Tests for versioned graph swaps."""

    def test_publish_increments_version(self, math_graph):
        registry = GraphRegistry(math_graph)

        graph = registry.publish([node("A"), node("B")], [required("B", "A")])

        assert registry.version == 2
        assert registry.current is graph
        assert "A" in registry.current

    def test_failed_publish_keeps_current_graph(self, math_graph):
        registry = GraphRegistry(math_graph)

        with pytest.raises(ConfigurationError):
            registry.publish([node("A"), node("B")], [required("B", "A"), required("A", "B")])

        assert registry.current is math_graph
        assert registry.version == 1
