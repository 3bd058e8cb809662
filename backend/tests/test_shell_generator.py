"""
test_shell_generator.py — Unit tests for generate_shells.

Tests cover:
  - Per-area discipline shells and project-level add-ons, in order
  - Primary designation (first architecture shell, fallback to first shell)
  - Discipline sqft fallback to the area size
  - CAD deliverable and custom line items (add-on vs discount)
  - Determinism across runs
  - Empty records

All tests are pure unit tests; no database or external services required.
"""

import pytest

from app.models.quote_models import (
    Discipline,
    ScopingRecord,
    ShellCategory,
)
from app.services.shell_generator import generate_shells


def _record(**overrides):
    data = {
        "id": "sr-test",
        "areas": [{"id": "a1", "area_type": "Office", "square_footage": 10_000}],
    }
    data.update(overrides)
    return ScopingRecord.from_dict(data)


# ===========================================================================
# Class 1: Acceptance decomposition
# ===========================================================================

class TestAcceptanceDecomposition:
    """The 45,000 sqft acceptance record."""

    def test_shell_sequence(self, acceptance_record):
        shells = generate_shells(acceptance_record)
        sequence = [(s.category, s.discipline, s.cost_key) for s in shells]
        assert sequence == [
            (ShellCategory.MODELING, Discipline.ARCHITECTURE, "architecture"),
            (ShellCategory.MODELING, Discipline.STRUCTURE, "structure"),
            (ShellCategory.MODELING, Discipline.MEPF, "mepf"),
            (ShellCategory.ADD_ON, None, "georeferencing"),
            (ShellCategory.TRAVEL, None, "travel"),
        ]

    def test_primary_is_architecture(self, acceptance_record):
        shells = generate_shells(acceptance_record)
        primaries = [s for s in shells if s.is_primary]
        assert len(primaries) == 1
        assert primaries[0].discipline == Discipline.ARCHITECTURE

    def test_shells_are_unpriced(self, acceptance_record):
        for shell in generate_shells(acceptance_record):
            assert shell.vendor_cost is None
            assert shell.client_price is None

    def test_architecture_description(self, acceptance_record):
        arch = generate_shells(acceptance_record)[0]
        assert "45,000 SF" in arch.description
        assert "LoD 300" in arch.description
        assert "Full Scope" in arch.description

    def test_project_level_shells_have_no_area(self, acceptance_record):
        shells = generate_shells(acceptance_record)
        assert shells[3].area_id is None
        assert shells[4].area_id is None

    def test_travel_description_mentions_mode_and_distance(self, acceptance_record):
        travel = generate_shells(acceptance_record)[4]
        assert "Local" in travel.description
        assert "12 mi" in travel.description

    def test_discipline_sqft_falls_back_to_area(self, acceptance_record):
        shells = generate_shells(acceptance_record)
        assert shells[1].square_feet == 45_000
        assert shells[2].square_feet == 45_000


# ===========================================================================
# Class 2: Area options
# ===========================================================================

class TestAreaOptions:

    def test_discipline_specific_sqft(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 20_000,
            "structural": {"enabled": True, "sqft": 8_000},
        }])
        shells = generate_shells(record)
        assert shells[1].discipline == Discipline.STRUCTURE
        assert shells[1].square_feet == 8_000

    def test_disabled_discipline_not_emitted(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 20_000,
            "mepf": {"enabled": False, "sqft": 5_000},
        }])
        assert len(generate_shells(record)) == 1

    def test_discipline_lod_override(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 20_000, "lod": "300",
            "discipline_lods": {"mepf": "200"},
            "mepf": {"enabled": True},
        }])
        shells = generate_shells(record)
        assert shells[0].lod == "300"
        assert shells[1].lod == "200"

    def test_cad_shell_follows_disciplines(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 20_000,
            "structural": {"enabled": True},
            "cad_deliverable": "Floor Plans",
        }])
        shells = generate_shells(record)
        assert [s.cost_key for s in shells] == ["architecture", "structure", "cad"]
        assert shells[2].category == ShellCategory.ADD_ON
        assert shells[2].square_feet == 20_000

    @pytest.mark.parametrize("value", [None, "No", "none", ""])
    def test_cad_not_requested(self, value):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 20_000, "cad_deliverable": value,
        }])
        assert all(s.cost_key != "cad" for s in generate_shells(record))

    def test_custom_items_verbatim(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 20_000,
            "custom_line_items": [
                {"description": "Drone roof capture", "amount": 1_200, "vendor_cost": 400},
                {"description": "Repeat client discount", "amount": -500},
            ],
        }])
        shells = generate_shells(record)
        drone, discount = shells[1], shells[2]
        assert drone.category == ShellCategory.ADD_ON
        assert drone.description == "Drone roof capture"
        assert drone.preset_amount == 1_200
        assert drone.preset_vendor_cost == 400
        assert discount.category == ShellCategory.DISCOUNT
        assert discount.preset_amount == -500

    def test_areas_in_order(self):
        record = _record(areas=[
            {"id": "a1", "area_type": "Office", "square_footage": 10_000},
            {"id": "a2", "area_type": "Warehouse", "square_footage": 30_000},
        ])
        shells = generate_shells(record)
        assert [s.area_id for s in shells] == ["a1", "a2"]
        assert shells[0].is_primary
        assert not shells[1].is_primary

    def test_scope_label(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 10_000, "project_scope": "interior_only",
        }])
        assert "Interior Only" in generate_shells(record)[0].description

    def test_non_positive_area_rejected(self):
        with pytest.raises(ValueError):
            _record(areas=[{"id": "a1", "area_type": "Office", "square_footage": 0}])

    def test_mixed_scope_carries_interior_and_exterior_lods(self):
        record = _record(areas=[{
            "id": "a1", "area_type": "Office", "square_footage": 10_000, "project_scope": "mixed",
            "lod": "300", "mixed_exterior_lod": "200", "structural": {"enabled": True},
        }])
        architecture, structure = generate_shells(record)
        assert architecture.attributes == {"mixed_interior_lod": "300", "mixed_exterior_lod": "200"}
        assert "Mixed Scope (Interior LoD 300, Exterior LoD 200)" in architecture.description
        assert structure.attributes == {}


# ===========================================================================
# Class 3: Project-level shells, primary fallback, empty input
# ===========================================================================

class TestProjectLevel:

    def test_expedited_is_last(self):
        record = _record(expedited=True, georeferencing=True, one_way_miles=40)
        keys = [s.cost_key for s in generate_shells(record)]
        assert keys == ["architecture", "georeferencing", "travel", "expedited"]

    def test_no_travel_when_zero_miles(self):
        record = _record(one_way_miles=0)
        assert all(s.category != ShellCategory.TRAVEL for s in generate_shells(record))

    def test_primary_falls_back_to_first_shell(self):
        record = ScopingRecord.from_dict({"id": "sr-x", "georeferencing": True, "one_way_miles": 10})
        shells = generate_shells(record)
        assert len(shells) == 2
        assert shells[0].is_primary
        assert shells[0].cost_key == "georeferencing"
        assert sum(s.is_primary for s in shells) == 1

    def test_empty_record_returns_empty_list(self):
        assert generate_shells(ScopingRecord(id="sr-empty")) == []

    def test_expedited_only_record_has_expedited_primary(self):
        shells = generate_shells(ScopingRecord.from_dict({"id": "sr-e", "expedited": True}))
        assert [(s.cost_key, s.is_primary) for s in shells] == [("expedited", True)]

    def test_floor_count_recorded_on_primary_only(self):
        shells = generate_shells(_record(floor_count=3, georeferencing=True))
        assert shells[0].attributes["floor_count"] == 3
        assert "floor_count" not in shells[1].attributes

    @pytest.mark.parametrize("floors", [0, -2])
    def test_non_positive_floor_count_rejected(self, floors):
        with pytest.raises(ValueError):
            _record(floor_count=floors)


# ===========================================================================
# Class 4: Determinism
# ===========================================================================

class TestDeterminism:

    def test_same_structure_on_rerun(self, acceptance_record):
        first = [s.signature() for s in generate_shells(acceptance_record)]
        second = [s.signature() for s in generate_shells(acceptance_record)]
        assert first == second

    def test_exactly_one_primary_for_varied_records(self):
        records = [
            _record(),
            _record(georeferencing=True, expedited=True, one_way_miles=5),
            _record(areas=[
                {"id": "a1", "area_type": "Lab", "square_footage": 5_000, "mepf": {"enabled": True}},
                {"id": "a2", "area_type": "Office", "square_footage": 7_000, "structural": {"enabled": True}},
            ]),
        ]
        for record in records:
            shells = generate_shells(record)
            assert sum(s.is_primary for s in shells) == 1
