import json

import pytest

from plan_engine import PlanEngine
from plan_io import (
    EXPORT_COLUMNS,
    entry_from_record,
    export_csv,
    export_filename,
    export_rows,
    plan_to_records,
    restore,
    snapshot,
)
from plan_utils import make_exam, make_rules
from requirements import MANDATORY, OPTIONAL


@pytest.fixture
def catalog():
    return [
        make_exam("Machine Learning", "2|B", period=1, pillar="AI", subpillar="Learning", link="http://ml"),
        make_exam("Data Mining", "2|B|C", period=2, pillar="AI", subpillar="Data", link="http://dm"),
        make_exam("Bioinformatics", "2|C", period=3, pillar="MED", subpillar="Bio", link="http://bio"),
        make_exam("Algorithms", "1|A", period=1, pillar="ALG", subpillar="Algo", link="http://alg"),
    ]


@pytest.fixture
def engine(catalog):
    engine = PlanEngine(catalog, make_rules(), year="2024/2025", curriculum="F94", lang="en")
    engine.init_defaults()
    for exam in catalog:
        engine.add_exam(exam)
    engine.add_custom_exam("Erasmus Seminar", 3)
    return engine


class TestSnapshot:
    def test_snapshot_shape(self, engine):
        snap = snapshot(engine)
        assert snap["year"] == "2024/2025"
        assert snap["curriculum"] == "F94"
        assert snap["plan"][0] == {
            "id": "prova-finale",
            "examId": None,
            "name": "Prova Finale",
            "cfu": 12,
            "table": MANDATORY,
            "isCustom": True,
            "removable": False,
        }

    def test_round_trip_keeps_validation(self, engine, catalog):
        before = engine.validate()
        stored = json.loads(json.dumps(snapshot(engine)))

        restored = PlanEngine(catalog, make_rules(), lang="en")
        restore(restored, stored)

        assert restored.year == "2024/2025"
        assert restored.curriculum == "F94"
        assert plan_to_records(restored.plan) == stored["plan"]
        assert restored.validate() == before

    def test_restore_does_not_duplicate_ids(self, engine, catalog):
        stored = snapshot(engine)
        stored["plan"].append(dict(stored["plan"][1]))
        restored = PlanEngine(catalog, make_rules())
        restore(restored, stored)
        assert len(restored.plan) == len(engine.plan)

    def test_legacy_record_without_removable(self):
        mandatory = entry_from_record(
            {"id": "tesi", "examId": None, "name": "Tesi", "cfu": 30, "table": MANDATORY, "isCustom": True}
        )
        extra = entry_from_record(
            {"id": "custom-1", "examId": None, "name": "X", "cfu": 6, "table": OPTIONAL, "isCustom": True}
        )
        assert mandatory.removable is False
        assert extra.removable is True


class TestExport:
    def test_rows(self, engine):
        rows = export_rows(engine)
        by_exam = {row["Exam"]: row for row in rows}
        assert by_exam["Prova Finale"]["Type"] == "Mandatory"
        assert by_exam["Prova Finale"]["Pillar"] == "N/D"
        assert by_exam["Erasmus Seminar"]["Type"] == "Extra"
        assert by_exam["Erasmus Seminar"]["Link"] == ""
        assert by_exam["Data Mining"]["Type"] == "Curricolar"
        assert by_exam["Data Mining"]["4 month period"] == 2
        assert by_exam["Data Mining"]["SubPillar"] == "Data"
        assert by_exam["Algorithms"]["Table"] == "A"

    def test_csv(self, engine):
        lines = export_csv(engine).splitlines()
        assert lines[0] == ",".join(EXPORT_COLUMNS)
        assert len(lines) == 1 + len(engine.plan)
        assert lines[1].startswith("Prova Finale,12,N/D,Obbligatori,")

    def test_filename(self):
        assert export_filename("FBA", "2025/2026") == "piano_studi_FBA_2025-2026.csv"
