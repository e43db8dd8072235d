"""
Pure input-validation helpers for the /api/plan endpoints.
No Flask or data-loader imports.
"""

from typing import Dict, List, Optional, Tuple

from normalizer import normalize_year
from requirements import ALL_TABLES, CURRICULUM_TABLES

ACTION_TYPES = {
    "add",
    "add_custom",
    "remove",
    "move",
    "set_year",
    "set_curriculum",
    "reset",
}

MAX_CUSTOM_CFU = 60


def _is_int_like(value) -> bool:
    if isinstance(value, bool):
        return False
    try:
        int(value)
    except (TypeError, ValueError):
        return False
    return True


def validate_plan_record(record, index: int) -> Optional[str]:
    """Return an error message for a malformed plan entry, else None."""
    if not isinstance(record, dict):
        return f"plan[{index}] must be an object."
    if not str(record.get("id", "") or "").strip():
        return f"plan[{index}] is missing 'id'."
    if not _is_int_like(record.get("cfu", 0)):
        return f"plan[{index}].cfu must be an integer."
    table = record.get("table")
    if table not in ALL_TABLES:
        return f"plan[{index}].table '{table}' is not a known table."
    return None


def validate_plan_body(body) -> Tuple[Optional[str], Optional[str]]:
    """Returns (error_code, message) on invalid input, (None, None) on success."""
    if body is None or not isinstance(body, dict):
        return "INVALID_INPUT", "Request body must be a JSON object."

    year = body.get("year")
    if year not in (None, "") and normalize_year(year) is None:
        return "INVALID_INPUT", f"'year' value '{year}' is not a valid academic year (e.g. '2025/2026')."

    curriculum = body.get("curriculum")
    if curriculum not in (None, "") and curriculum not in CURRICULUM_TABLES:
        return "INVALID_INPUT", f"'curriculum' must be one of: {', '.join(CURRICULUM_TABLES)}."

    plan = body.get("plan", [])
    if plan is None:
        plan = []
    if not isinstance(plan, list):
        return "INVALID_INPUT", "'plan' must be a list of entries."
    for i, record in enumerate(plan):
        msg = validate_plan_record(record, i)
        if msg:
            return "INVALID_INPUT", msg
    return None, None


def validate_action(action) -> Tuple[Optional[str], Optional[str]]:
    """Returns (error_code, message) for a malformed action, (None, None) on success."""
    if not isinstance(action, dict):
        return "INVALID_INPUT", "'action' must be an object."
    kind = action.get("type")
    if kind not in ACTION_TYPES:
        return "INVALID_INPUT", f"Unknown action type '{kind}'."

    if kind == "add" and not str(action.get("exam_id", "") or "").strip():
        return "INVALID_INPUT", "'add' needs 'exam_id'."
    if kind == "add_custom":
        if not str(action.get("name", "") or "").strip():
            return "INVALID_INPUT", "'add_custom' needs a non-empty 'name'."
        cfu = action.get("cfu")
        if not _is_int_like(cfu) or not (1 <= int(cfu) <= MAX_CUSTOM_CFU):
            return "INVALID_INPUT", f"'cfu' must be an integer between 1 and {MAX_CUSTOM_CFU}."
    if kind in ("remove", "move") and not str(action.get("entry_id", "") or "").strip():
        return "INVALID_INPUT", f"'{kind}' needs 'entry_id'."
    if kind == "move" and action.get("table") not in ALL_TABLES:
        return "INVALID_INPUT", f"'table' value '{action.get('table')}' is not a known table."
    if kind == "set_year" and normalize_year(action.get("year")) is None:
        return "INVALID_INPUT", f"'year' value '{action.get('year')}' is not a valid academic year."
    if kind == "set_curriculum" and action.get("curriculum") not in CURRICULUM_TABLES:
        return "INVALID_INPUT", f"'curriculum' must be one of: {', '.join(CURRICULUM_TABLES)}."
    return None, None


def find_plan_inconsistencies(
    records: List[dict],
    catalog_ids: set,
) -> List[dict]:
    """
    Return issues in a saved plan that the engine silently tolerates.

    Each item:
      {"entry_id": str, "issue": "duplicate_id" | "unknown_exam" | "duplicate_exam"}
    """
    issues: List[dict] = []
    seen_ids: set = set()
    seen_exams: Dict[str, str] = {}

    for record in records:
        entry_id = str(record.get("id", ""))
        if entry_id in seen_ids:
            issues.append({"entry_id": entry_id, "issue": "duplicate_id"})
            continue
        seen_ids.add(entry_id)

        if record.get("isCustom"):
            continue
        exam_id = record.get("examId")
        if exam_id not in catalog_ids:
            issues.append({"entry_id": entry_id, "issue": "unknown_exam"})
        elif exam_id in seen_exams:
            issues.append({"entry_id": entry_id, "issue": "duplicate_exam"})
        else:
            seen_exams[exam_id] = entry_id
    return issues
