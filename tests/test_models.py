"""
Tests for the schedule data model (day-groups, patients, flatten / rebuild, normalisation)
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hemo_scheduler.models import (
    DayGroup,
    Patient,
    create_empty_schedule,
    flatten_schedule,
    matches_same_person,
    normalize_data,
    rebuild_schedule,
)
from hemo_scheduler.schedule_config import ALL_CHAIRS


@pytest.fixture
def populated():
    data = create_empty_schedule()
    data = data.with_slot(DayGroup.MWF, "01", 1, Patient(
        id="p1", name="MARIA SILVA", specific_days=("SEG", "QUA", "SEX")))
    data = data.with_slot(DayGroup.MWF, "Leito 09", 2, Patient(
        id="p2", name="JOSÉ SOUZA", treatment="HDF", start_time="10:00",
        specific_days=("SEG", "QUA", "SEX")))
    data = data.with_slot(DayGroup.TTS, "05", 3, Patient(
        id="p3", name="ANA LIMA", start_time="15:30", duration="03:30",
        frequency="Diário", specific_days=("TER", "QUI", "SÁB")))
    return data


class TestDayGroup:

    def test_parse_value_and_name(self):
        assert DayGroup.parse("SEG/QUA/SEX") is DayGroup.MWF
        assert DayGroup.parse("ter/qui/sab") is DayGroup.TTS
        assert DayGroup.parse("TTS") is DayGroup.TTS
        assert DayGroup.parse(DayGroup.MWF) is DayGroup.MWF

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            DayGroup.parse("DOM")

    def test_days(self):
        assert DayGroup.TTS.days == ("TER", "QUI", "SÁB")


class TestPatient:

    def test_minutes(self):
        p = Patient(id="x", name="A", start_time="05:30", duration="04:00")
        assert p.start_minutes == 330
        assert p.end_minutes == 570

    def test_day_groups_from_days(self):
        p = Patient(id="x", name="A", specific_days=("SEG", "TER", "QUA", "QUI", "SEX", "SÁB"))
        assert p.day_groups == [DayGroup.MWF, DayGroup.TTS]

    def test_for_group_restricts_days(self):
        p = Patient(id="x", name="A", specific_days=("SEG", "TER"))
        assert p.for_group(DayGroup.MWF).specific_days == ("SEG",)
        assert p.for_group(DayGroup.TTS).specific_days == ("TER",)

    def test_for_group_falls_back_to_group_days(self):
        p = Patient(id="x", name="A", specific_days=("SEG",))
        assert p.for_group(DayGroup.TTS).specific_days == DayGroup.TTS.days

    def test_from_dict_defaults_days_to_group(self):
        p = Patient.from_dict({"id": "x", "name": "A"}, DayGroup.TTS)
        assert p.specific_days == ("TER", "QUI", "SÁB")
        assert p.start_time == "05:30"
        assert p.duration == "04:00"


class TestSamePerson:

    def test_same_first_name(self):
        assert matches_same_person("Maria Silva", "MARIA SOUZA")

    def test_accents_ignored(self):
        assert matches_same_person("José", "JOSE CARLOS")

    def test_different(self):
        assert not matches_same_person("Maria", "Mariana")
        assert not matches_same_person("", "Maria")


class TestScheduleData:

    def test_empty_has_full_roster(self):
        data = create_empty_schedule()
        for group in DayGroup:
            assert [c.chair_number for c in data.chairs(group)] == list(ALL_CHAIRS)
        assert data.is_empty()

    def test_with_slot_is_non_destructive(self):
        data = create_empty_schedule()
        updated = data.with_slot(DayGroup.MWF, "01", 1, Patient(id="x", name="A"))
        assert data.is_empty()
        assert updated.record_count() == 1

    def test_groups_are_read_only(self, populated):
        with pytest.raises(TypeError):
            populated.groups[DayGroup.MWF] = ()
        assert populated.record_count() == 3

    def test_hashable_and_equal_by_value(self, populated):
        same = normalize_data(populated.to_dict())
        assert same == populated
        assert hash(same) == hash(populated)
        assert len({populated, same, create_empty_schedule()}) == 2

    def test_unknown_chair_rejected(self):
        with pytest.raises(ValueError):
            create_empty_schedule().with_slot(DayGroup.MWF, "21", 1, Patient(id="x", name="A"))

    def test_invalid_turn(self, populated):
        with pytest.raises(ValueError):
            populated.chair(DayGroup.MWF, "01").get_turn(4)

    def test_first_free_turn(self, populated):
        assert populated.chair(DayGroup.MWF, "01").first_free_turn() == 2
        assert populated.chair(DayGroup.MWF, "02").first_free_turn() == 1


class TestFlattenRebuild:

    def test_one_record_per_slot(self, populated):
        records = flatten_schedule(populated)
        assert len(records) == 3
        ids = {r.unique_id for r in records}
        assert "p2_SEG/QUA/SEX_Leito 09_2" in ids

    def test_round_trip(self, populated):
        assert rebuild_schedule(flatten_schedule(populated)) == populated

    def test_idempotent(self, populated):
        once = rebuild_schedule(flatten_schedule(populated))
        twice = rebuild_schedule(flatten_schedule(once))
        assert once == twice


class TestNormalizeData:

    def test_json_round_trip(self, populated):
        assert normalize_data(populated.to_dict()) == populated

    def test_extra_and_missing_chairs(self):
        raw = {
            "SEG/QUA/SEX": [
                {"chairNumber": "21", "turn1": {"id": "x", "name": "A"}, "turn2": None, "turn3": None},
                {"chairNumber": "03", "turn1": {"id": "y", "name": "B"}, "turn2": None, "turn3": None},
            ],
        }
        data = normalize_data(raw)
        assert len(data.chairs(DayGroup.MWF)) == len(ALL_CHAIRS)
        assert data.record_count() == 1
        assert data.chair(DayGroup.MWF, "03").turn1.specific_days == ("SEG", "QUA", "SEX")
        assert data.chair(DayGroup.MWF, "21") is None

    def test_garbage_is_empty(self):
        assert normalize_data(None).is_empty()
        assert normalize_data("not a schedule").is_empty()

    def test_input_not_mutated(self):
        raw = {"SEG/QUA/SEX": [{"chairNumber": "01", "turn1": {"id": "x", "name": "A"}}]}
        normalize_data(raw)
        assert "specificDays" not in raw["SEG/QUA/SEX"][0]["turn1"]
