"""
Unit tests for curriculum document loading.
"""

import json

import pytest

from fastrev.core.errors import ConfigurationError
from fastrev.graph.competence_graph import PrerequisiteKind
from fastrev.graph.curriculum_loader import load_curriculum, parse_curriculum


@pytest.fixture
def sample_path(project_root):
    return project_root / "data" / "curriculum" / "cp2025_sample.yaml"


def document(competences, prerequisites=()):
    return {
        "name": "test",
        "competences": [{"code": code} for code in competences],
        "prerequisites": list(prerequisites),
    }


class TestSampleCurriculum:
    """Tests against the shipped sample curriculum."""

    def test_loads(self, sample_path):
        curriculum = load_curriculum(sample_path)

        assert curriculum.name == "CP 2025 sample"
        assert len(curriculum.nodes) == 14
        assert len(curriculum.edges) == 13

    def test_reading_chain_levels(self, sample_path):
        graph = load_curriculum(sample_path).graph

        assert graph.level_of("CP.FR.L1.1") == 0
        assert graph.level_of("CP.FR.L1.4") == 3

    def test_kinds_and_profiles(self, sample_path):
        curriculum = load_curriculum(sample_path)
        kinds = {(e.target, e.source): e.kind for e in curriculum.edges}

        assert kinds[("CP.FR.E1.1", "CP.FR.L1.1")] is PrerequisiteKind.HELPFUL
        assert kinds[("CP.MA.N3.1", "CP.MA.N2.3")] is PrerequisiteKind.RECOMMENDED
        assert curriculum.scoring_profiles["handwriting"]["pass_threshold"] == 75


class TestParseCurriculum:
    """Tests for document validation."""

    def test_tags_derived_from_code(self):
        graph = parse_curriculum(document(["CP.MA.N1.1"])).graph

        node = graph.node("CP.MA.N1.1")
        assert (node.school_level, node.subject, node.domain) == ("CP", "MA", "N1")

    def test_explicit_tags_win(self):
        raw = {"competences": [{"code": "CP.MA.N1.1", "subject": "Maths"}]}

        assert parse_curriculum(raw).graph.node("CP.MA.N1.1").subject == "Maths"

    def test_short_code_has_no_tags(self):
        node = parse_curriculum(document(["X"])).graph.node("X")

        assert node.school_level == ""

    def test_name_defaults_to_source(self):
        raw = {"competences": [{"code": "X"}]}

        assert parse_curriculum(raw, source="inline").name == "inline"

    def test_cycle_reported(self):
        raw = document(
            ["A", "B", "C"],
            [
                {"target": "B", "source": "A"},
                {"target": "C", "source": "B"},
                {"target": "A", "source": "C"},
            ],
        )

        with pytest.raises(ConfigurationError) as exc_info:
            parse_curriculum(raw)

        assert set(exc_info.value.cycle) == {"A", "B", "C"}

    def test_recommended_edges_may_close_a_loop(self):
        raw = document(
            ["A", "B"],
            [
                {"target": "B", "source": "A"},
                {"target": "A", "source": "B", "kind": "recommended"},
            ],
        )

        assert parse_curriculum(raw).graph.topological_order == ["A", "B"]

    def test_unknown_source(self):
        with pytest.raises(ConfigurationError, match="GHOST"):
            parse_curriculum(document(["A"], [{"target": "A", "source": "GHOST"}]))

    @pytest.mark.parametrize(
        "prerequisite",
        [
            {"target": "B", "source": "A", "threshold": 120},
            {"target": "B", "source": "A", "weight": 9.0},
            {"target": "B", "source": "A", "kind": "optional"},
        ],
    )
    def test_out_of_bounds_edges(self, prerequisite):
        with pytest.raises(ConfigurationError, match="Invalid curriculum"):
            parse_curriculum(document(["A", "B"], [prerequisite]))

    def test_empty_curriculum(self):
        with pytest.raises(ConfigurationError):
            parse_curriculum({"competences": []})


class TestLoadCurriculum:
    """Tests for file handling."""

    def test_json_document(self, tmp_path):
        path = tmp_path / "curriculum.json"
        path.write_text(json.dumps(document(["A", "B"], [{"target": "B", "source": "A"}])))

        graph = load_curriculum(path).graph

        assert graph.topological_order == ["A", "B"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_curriculum(tmp_path / "missing.yaml")

    def test_unparsable_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("competences: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Cannot parse"):
            load_curriculum(path)

    def test_non_utf8_file(self, tmp_path):
        path = tmp_path / "latin1.yaml"
        path.write_bytes(b"\xff\xfe\x00bad")

        with pytest.raises(ConfigurationError, match="Cannot parse"):
            load_curriculum(path)
