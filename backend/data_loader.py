import csv
import json
import os
import re
import sys

import pandas as pd

from models import ExamDescriptor
from requirements import RequirementRules, parse_requirement_rules

EXAMS_FILE = "exams.csv"
RULES_FILE = "rules.json"

DEFAULT_CFU = 6
DEFAULT_PERIOD = 1

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def safe_int(val, default):
    """Leading-integer parse ('6 CFU' -> 6). Empty, unparsable or 0 -> default."""
    if val is None:
        return default
    try:
        if pd.isna(val):
            return default
    except (TypeError, ValueError):
        pass
    m = _LEADING_INT.match(str(val))
    if not m:
        return default
    return int(m.group(1)) or default


def _text(row, col: str) -> str:
    val = row.get(col, "")
    if val is None:
        return ""
    try:
        if pd.isna(val):
            return ""
    except (TypeError, ValueError):
        pass
    return str(val).strip()


def parse_exam_row(row) -> ExamDescriptor:
    """Normalize one catalog row (dict or pandas Series) into an ExamDescriptor."""
    name = _text(row, "Exams")
    ordinamento_raw = _text(row, "ordinamento")
    return ExamDescriptor(
        id=name,
        name=name,
        link=_text(row, "link"),
        cfu=safe_int(row.get("CFU"), DEFAULT_CFU),
        language=_text(row, "Language"),
        period=safe_int(row.get("Period"), DEFAULT_PERIOD),
        ordinamento=tuple(x.strip() for x in ordinamento_raw.split("|")) if ordinamento_raw else (),
        raw_table=_text(row, "table"),
        ssd=_text(row, "SSD"),
        pillar=_text(row, "Pillar"),
        subpillar=_text(row, "Subpillar"),
        availability=_text(row, "avaiability"),
    )


def _normalize_exams_df(exams_df: pd.DataFrame) -> pd.DataFrame:
    exams_df = exams_df.rename(columns=lambda c: str(c).strip())

    # The published sheet spells the column "avaiability"; accept both.
    if "avaiability" not in exams_df.columns and "availability" in exams_df.columns:
        exams_df = exams_df.rename(columns={"availability": "avaiability"})

    if "Exams" not in exams_df.columns:
        raise ValueError("Exam catalog is missing the 'Exams' column.")
    return exams_df


def _read_catalog_frame(path: str) -> pd.DataFrame:
    """
    Read the catalog into an all-string DataFrame, keeping only records whose
    field count matches the header. Width is checked per parsed record, so
    quoted commas and quoted newlines do not count as extra fields.
    """
    with open(path, encoding="utf-8-sig", newline="") as f:
        records = [record for record in csv.reader(f) if record]
    if not records:
        raise ValueError(f"Exam catalog {path} is empty.")

    header, rows = records[0], records[1:]
    kept = [row for row in rows if len(row) == len(header)]
    if len(kept) != len(rows):
        print(f"[WARN] Dropped {len(rows) - len(kept)} catalog row(s) with a column-count mismatch in {path}")
    return pd.DataFrame(kept, columns=header, dtype=str)


def load_exam_catalog(path: str) -> list[ExamDescriptor]:
    """
    Load the exam catalog CSV. Raises on file errors, an empty file or a
    missing 'Exams' column; malformed rows are dropped with a warning.
    """
    exams_df = _normalize_exams_df(_read_catalog_frame(path))

    unnamed = exams_df["Exams"].astype(str).str.strip() == ""
    if unnamed.any():
        print(f"[WARN] Dropped {int(unnamed.sum())} catalog row(s) without an exam name in {path}")
        exams_df = exams_df[~unnamed]

    return [parse_exam_row(row) for _, row in exams_df.iterrows()]


def load_requirement_rules(path: str) -> RequirementRules:
    """Load and type-check the rules JSON. Raises RulesError on bad content."""
    with open(path, encoding="utf-8") as f:
        doc = json.load(f)
    return parse_requirement_rules(doc)


def index_exams(exams: list[ExamDescriptor]) -> dict[str, ExamDescriptor]:
    """Map exam id -> descriptor. First occurrence wins on duplicates."""
    by_id: dict[str, ExamDescriptor] = {}
    duplicates = []
    for exam in exams:
        if exam.id in by_id:
            duplicates.append(exam.id)
            continue
        by_id[exam.id] = exam
    if duplicates:
        print(
            f"[WARN] {len(duplicates)} duplicate exam id(s) in catalog; keeping first: "
            f"{sorted(set(duplicates))}",
            file=sys.stderr,
        )
    return by_id


def load_data(data_path: str) -> dict:
    """Load the catalog and the rules from a data directory. Raises on file/schema errors."""
    exams_path = os.path.join(data_path, EXAMS_FILE)
    rules_path = os.path.join(data_path, RULES_FILE)

    exams = load_exam_catalog(exams_path)
    exams_by_id = index_exams(exams)
    exams = list(exams_by_id.values())
    rules = load_requirement_rules(rules_path)

    print(f"[INFO] Catalog source: {exams_path} ({len(exams)} exams)")
    for curriculum in rules.programs:
        cur_rules = rules.for_curriculum(curriculum)
        print(
            f"[INFO] Curriculum {curriculum}: {len(cur_rules.table_rules)} table rule(s), "
            f"aggregate={'yes' if cur_rules.aggregate else 'no'}"
        )

    return {
        "exams": exams,
        "exams_by_id": exams_by_id,
        "rules": rules,
    }
