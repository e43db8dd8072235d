"""
Plan snapshots and CSV export.

Snapshots use the same field names the browser client stores
({id, examId, name, cfu, table, isCustom, removable}) so a saved plan can be
posted back unchanged.
"""

import pandas as pd

from messages import translate
from models import PlanEntry
from requirements import MANDATORY

NOT_AVAILABLE = "N/D"

EXPORT_COLUMNS = [
    "Exam",
    "CFU",
    "4 month period",
    "Table",
    "Pillar",
    "SubPillar",
    "Type",
    "Link",
]


def entry_to_record(entry: PlanEntry) -> dict:
    return {
        "id": entry.id,
        "examId": entry.exam_id,
        "name": entry.name,
        "cfu": entry.cfu,
        "table": entry.table,
        "isCustom": entry.is_custom,
        "removable": entry.removable,
    }


def entry_from_record(record: dict) -> PlanEntry:
    is_custom = bool(record.get("isCustom", False))
    exam_id = record.get("examId")
    table = str(record.get("table", "") or "")
    removable = record.get("removable")
    if removable is None:
        # Older snapshots lack the flag: mandatory defaults were custom entries.
        removable = not (is_custom and table == MANDATORY)
    return PlanEntry(
        id=str(record["id"]),
        exam_id=None if exam_id in (None, "") else str(exam_id),
        name=str(record.get("name", "") or ""),
        cfu=int(record.get("cfu", 0) or 0),
        table=table,
        is_custom=is_custom,
        removable=bool(removable),
    )


def plan_to_records(plan: list[PlanEntry]) -> list[dict]:
    return [entry_to_record(entry) for entry in plan]


def plan_from_records(records: list[dict]) -> list[PlanEntry]:
    return [entry_from_record(record) for record in records]


def snapshot(engine) -> dict:
    return {
        "year": engine.year,
        "curriculum": engine.curriculum,
        "plan": plan_to_records(engine.plan),
    }


def restore(engine, snap: dict) -> None:
    """
    Load a saved snapshot into `engine`: year, then curriculum, then the
    entries as saved. Tables are not reassigned, so validate() reports the
    plan exactly as it was stored.
    """
    engine.set_year(snap.get("year"))
    engine.set_curriculum(snap.get("curriculum"))
    engine.replace_plan(plan_from_records(snap.get("plan") or []))


def entry_type_key(entry: PlanEntry) -> str:
    if entry.is_custom and entry.table == MANDATORY:
        return "csv_mandatory"
    if entry.is_custom:
        return "csv_extra"
    return "csv_curricolar"


def export_rows(engine, lang: str | None = None) -> list[dict]:
    lang = lang or engine.lang
    rows = []
    for entry in engine.plan:
        exam = engine.get_exam(entry.exam_id)
        rows.append({
            "Exam": entry.name,
            "CFU": entry.cfu,
            "4 month period": exam.period if exam is not None else NOT_AVAILABLE,
            "Table": entry.table,
            "Pillar": exam.pillar if exam is not None else NOT_AVAILABLE,
            "SubPillar": exam.subpillar if exam is not None else NOT_AVAILABLE,
            "Type": translate(entry_type_key(entry), lang),
            "Link": exam.link if exam is not None else "",
        })
    return rows


def export_csv(engine, lang: str | None = None) -> str:
    df = pd.DataFrame(export_rows(engine, lang), columns=EXPORT_COLUMNS)
    return df.to_csv(index=False)


def export_filename(curriculum: str, year: str) -> str:
    return f"piano_studi_{curriculum}_{year.replace('/', '-')}.csv"
