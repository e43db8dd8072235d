"""
Data-quality gate for the exam catalog and the requirement rules.

Loads a data directory (exams.csv + rules.json) the same way the server does
and reports problems that the planner would otherwise tolerate silently.
Designed to be importable for tests and runnable as a standalone CLI.

Usage:
    python scripts/check_rules.py
    python scripts/check_rules.py --path path/to/data
"""

import argparse
import os
import re
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from data_loader import EXAMS_FILE, RULES_FILE, load_exam_catalog, load_requirement_rules
from plan_engine import mandatory_entry_id
from requirements import AGGREGATE_SOURCES, CURRICULUM_TABLES, RulesError

DEFAULT_DATA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "data")

_KNOWN_TABLE_TAGS = {t for tables in CURRICULUM_TABLES.values() for t in tables}
_FROM_YEAR = re.compile(r"^from\s+\d{4}(/\d{2,4})?$", re.IGNORECASE)


# ── Check result ──────────────────────────────────────────────────────────────

class CheckResult:
    """Collects errors and warnings for a single data directory."""

    def __init__(self, path: str):
        self.path = path
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Data '{self.path}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def is_recognized_availability(text: str) -> bool:
    """True for the availability forms the planner understands."""
    lowered = (text or "").strip().lower()
    if lowered in ("", "enabled", "disabled"):
        return True
    if _FROM_YEAR.match(lowered):
        return True
    return "biennial" in lowered and ("even" in lowered or "odd" in lowered)


def check_table_tags(exams, result: CheckResult) -> None:
    """Every exam with table tags should match at least one curriculum table."""
    for exam in exams:
        if not exam.raw_table:
            continue
        tags = [p.strip() for p in exam.raw_table.split("|") if p.strip()]
        unknown = [t for t in tags if t not in _KNOWN_TABLE_TAGS]
        if unknown:
            result.warn(f"Exam '{exam.id}' has unknown table tag(s): {unknown}")
        if tags and not set(tags) & _KNOWN_TABLE_TAGS:
            result.error(f"Exam '{exam.id}' matches no table of any curriculum ({exam.raw_table!r}).")


def check_availability(exams, result: CheckResult) -> None:
    """Unrecognized availability text is treated as available by the planner."""
    for exam in exams:
        if not is_recognized_availability(exam.availability):
            result.warn(
                f"Exam '{exam.id}' has unrecognized availability {exam.availability!r}; "
                "it will be shown as available."
            )


def check_mandatory_collisions(exams, rules, result: CheckResult) -> None:
    """Mandatory entry ids must not collide with catalog exam ids."""
    catalog_ids = {exam.id for exam in exams}
    for mandatory in rules.common.mandatory_exams:
        entry_id = mandatory_entry_id(mandatory.name)
        if entry_id in catalog_ids or mandatory.name in catalog_ids:
            result.error(
                f"Mandatory exam '{mandatory.name}' collides with a catalog exam id."
            )


def check_programs(rules, result: CheckResult) -> None:
    for curriculum in CURRICULUM_TABLES:
        if curriculum not in rules.programs:
            result.warn(f"No rules for curriculum {curriculum}; its tables will be uncapped.")
            continue
        cur_rules = rules.for_curriculum(curriculum)
        configured = {rule.source for rule in cur_rules.table_rules}
        missing = [t for t in CURRICULUM_TABLES[curriculum] if t not in configured]
        if missing:
            result.warn(f"Curriculum {curriculum} has no minimum for table(s) {missing}.")
        aggregate = cur_rules.aggregate
        if aggregate is not None:
            individual = sum(
                rule.min_credits for rule in cur_rules.table_rules
                if rule.source in AGGREGATE_SOURCES[aggregate.source]
            )
            if aggregate.min_credits < individual:
                result.warn(
                    f"Curriculum {curriculum}: aggregate {aggregate.source} minimum "
                    f"({aggregate.min_credits}) is below the sum of its table minimums ({individual})."
                )


def check_data(data_path: str) -> CheckResult:
    result = CheckResult(data_path)
    exams_path = os.path.join(data_path, EXAMS_FILE)
    rules_path = os.path.join(data_path, RULES_FILE)

    try:
        exams = load_exam_catalog(exams_path)
    except (OSError, ValueError) as exc:
        result.error(f"Cannot load catalog: {exc}")
        exams = []

    try:
        rules = load_requirement_rules(rules_path)
    except RulesError as exc:
        result.error(f"Invalid rules: {exc}")
        rules = None
    except (OSError, ValueError) as exc:
        result.error(f"Cannot load rules: {exc}")
        rules = None

    check_table_tags(exams, result)
    check_availability(exams, result)
    if rules is not None:
        check_mandatory_collisions(exams, rules, result)
        check_programs(rules, result)
    return result


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check exam catalog and requirement rules.")
    parser.add_argument("--path", default=DEFAULT_DATA_PATH, help="Data directory (exams.csv, rules.json).")
    args = parser.parse_args(argv)

    result = check_data(os.path.abspath(args.path))
    print(result.summary())
    return 0 if result.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
