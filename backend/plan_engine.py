import re
import uuid

from data_loader import DEFAULT_CFU, safe_int
from messages import DEFAULT_LANG, normalize_lang, translate
from models import ExamDescriptor, PlanEntry
from normalizer import normalize_year, year_start
from requirements import (
    ALL_TABLES,
    CURRICULUM_TABLES,
    DEFAULT_CURRICULUM,
    FREE_TABLES,
    MANDATORY,
    OPTIONAL,
    OUT_OF_PLAN,
    PRIORITY_ORDERED,
    RequirementRules,
    table_schema,
)

DEFAULT_YEAR = "2025/2026"

# A table with no configured minimum never stops accepting exams.
UNCAPPED = float("inf")


def mandatory_entry_id(name: str) -> str:
    """'Prova Finale' -> 'prova-finale'"""
    return re.sub(r"\s+", "-", name.lower())


class PlanEngine:
    """
    Holds one student's plan and keeps it consistent with the requirement rules.

    Every mutating call ends with rebalance_buckets(), so callers can read
    `plan` or call validate() right after any operation.
    """

    def __init__(
        self,
        exams: list[ExamDescriptor],
        rules: RequirementRules,
        year: str = DEFAULT_YEAR,
        curriculum: str = DEFAULT_CURRICULUM,
        lang: str = DEFAULT_LANG,
    ):
        self.exams = list(exams)
        self.rules = rules
        self.year = normalize_year(year) or DEFAULT_YEAR
        self.curriculum = curriculum if curriculum in CURRICULUM_TABLES else DEFAULT_CURRICULUM
        self.lang = normalize_lang(lang)
        self.plan: list[PlanEntry] = []
        self._entries: dict[str, PlanEntry] = {}
        self._exams_by_id: dict[str, ExamDescriptor] = {}
        for exam in self.exams:
            self._exams_by_id.setdefault(exam.id, exam)

    # ── Lookup ───────────────────────────────────────────────────────────────

    def get_exam(self, exam_id: str | None) -> ExamDescriptor | None:
        if exam_id is None:
            return None
        return self._exams_by_id.get(exam_id)

    def find_entry(self, entry_id: str) -> PlanEntry | None:
        return self._entries.get(entry_id)

    def _set_plan(self, entries: list[PlanEntry]) -> None:
        self.plan = entries
        self._entries = {entry.id: entry for entry in entries}

    def replace_plan(self, entries: list[PlanEntry]) -> None:
        """Install a previously saved plan as-is, without reassigning tables."""
        unique: list[PlanEntry] = []
        seen: set[str] = set()
        for entry in entries:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            unique.append(entry)
        self._set_plan(unique)

    def _t(self, key: str, **params) -> str:
        return translate(key, self.lang, **params)

    # ── Year / curriculum ────────────────────────────────────────────────────

    def set_year(self, year: str) -> bool:
        token = normalize_year(year)
        if token is None:
            return False
        self.year = token
        return True

    def set_curriculum(self, curriculum: str) -> bool:
        if curriculum not in CURRICULUM_TABLES:
            return False
        self.curriculum = curriculum
        self.migrate_plan()
        return True

    def migrate_plan(self) -> None:
        migrated: list[PlanEntry] = []
        for entry in self.plan:
            if entry.table == MANDATORY or entry.is_custom:
                migrated.append(entry)
                continue
            exam = self.get_exam(entry.exam_id)
            if exam is None:
                continue
            allowed = self.get_allowed_tables(exam)
            entry.table = allowed[0] if allowed else OPTIONAL
            migrated.append(entry)
        self._set_plan(migrated)
        self.rebalance_buckets()

    def get_allowed_tables(self, exam: ExamDescriptor) -> list[str]:
        parts = [p.strip() for p in (exam.raw_table or "").split("|")]
        tables = CURRICULUM_TABLES[self.curriculum]
        allowed = [p for p in parts if p in tables]
        if self.curriculum in PRIORITY_ORDERED:
            allowed.sort(key=tables.index)
        return allowed

    # ── Availability ─────────────────────────────────────────────────────────

    def is_exam_available(self, exam: ExamDescriptor) -> bool:
        avail = (exam.availability or "").strip()
        lowered = avail.lower()
        if not avail or lowered == "enabled":
            return True
        if lowered == "disabled":
            return False

        current_start = year_start(self.year)
        if lowered.startswith("from "):
            from_start = year_start(avail[5:].strip())
            if from_start is None or current_start is None:
                return True
            return current_start >= from_start

        if "biennial" in lowered and current_start is not None:
            is_even_year = current_start % 2 == 0
            if "even" in lowered:
                return is_even_year
            if "odd" in lowered:
                return not is_even_year
        return True

    def get_next_availability_info(self, exam: ExamDescriptor) -> str | None:
        if self.is_exam_available(exam):
            return None
        avail = (exam.availability or "").strip()
        lowered = avail.lower()

        if lowered.startswith("from "):
            return self._t("available_from", date=avail[5:].strip())

        if "biennial" in lowered:
            if "even" in lowered:
                return self._t("next_activation_even")
            if "odd" in lowered:
                return self._t("next_activation_odd")
        return avail

    # ── Plan mutations ───────────────────────────────────────────────────────

    def add_exam(self, exam: ExamDescriptor, target_table: str | None = None) -> bool:
        if any(entry.exam_id == exam.id for entry in self.plan):
            return False
        if exam.id in self._entries:
            # A custom or mandatory entry already holds this id.
            return False

        table = target_table
        if not table:
            allowed = self.get_allowed_tables(exam)
            table = allowed[0] if allowed else OPTIONAL

        entry = PlanEntry(
            id=exam.id,
            exam_id=exam.id,
            name=exam.name,
            cfu=exam.cfu,
            table=table,
            is_custom=False,
        )
        self._set_plan(self.plan + [entry])
        self.rebalance_buckets()
        return True

    def add_custom_exam(self, name: str, cfu, table: str = OPTIONAL) -> PlanEntry:
        entry = PlanEntry(
            id=f"custom-{uuid.uuid4().hex}",
            exam_id=None,
            name=name,
            cfu=safe_int(cfu, DEFAULT_CFU),
            table=table,
            is_custom=True,
        )
        self._set_plan(self.plan + [entry])
        self.rebalance_buckets()
        return entry

    def remove_exam(self, entry_id: str) -> bool:
        entry = self.find_entry(entry_id)
        if entry is None or entry.table == MANDATORY or not entry.removable:
            return False
        self._set_plan([e for e in self.plan if e.id != entry_id])
        self.rebalance_buckets()
        return True

    def move_exam(self, entry_id: str, new_table: str) -> bool:
        entry = self.find_entry(entry_id)
        if entry is None or new_table not in ALL_TABLES:
            return False
        if not entry.removable and new_table != MANDATORY:
            # Mandatory defaults stay pinned.
            return False
        if not entry.is_custom and new_table not in FREE_TABLES:
            exam = self.get_exam(entry.exam_id)
            if exam is None or new_table not in self.get_allowed_tables(exam):
                return False
        entry.table = new_table
        self.rebalance_buckets()
        return True

    # ── Allocation ───────────────────────────────────────────────────────────

    def rebalance_buckets(self) -> None:
        """
        Reassign every non-mandatory entry with one greedy pass in plan order.

        An entry takes the first allowed table that is still below its minimum,
        or that belongs to the aggregate pair while the pair sum is below the
        aggregate minimum. Otherwise it goes to Optional while that has room,
        and to OutOfPlan after that. Later entries see the fill left by earlier
        ones, so the add order changes outcomes.
        """
        cur_rules = self.rules.for_curriculum(self.curriculum)
        limits = cur_rules.table_minimums()
        aggregate = cur_rules.aggregate
        aggregate_tables = set(aggregate.tables) if aggregate else set()
        free_limit = self.rules.common.free_exams_credits

        mandatory = [e for e in self.plan if e.table == MANDATORY]
        active = [e for e in self.plan if e.table != MANDATORY]

        placed: dict[str, int] = {}

        def aggregate_sum() -> int:
            return sum(placed.get(t, 0) for t in aggregate_tables)

        for entry in active:
            exam = None if entry.is_custom else self.get_exam(entry.exam_id)
            allowed = self.get_allowed_tables(exam) if exam is not None else []

            assigned = None
            for table in allowed:
                current = placed.get(table, 0)
                if current < limits.get(table, UNCAPPED):
                    assigned = table
                    break
                if table in aggregate_tables and aggregate_sum() < aggregate.min_credits:
                    assigned = table
                    break

            if assigned is None:
                assigned = OPTIONAL if placed.get(OPTIONAL, 0) < free_limit else OUT_OF_PLAN

            entry.table = assigned
            placed[assigned] = placed.get(assigned, 0) + entry.cfu

        self._set_plan(mandatory + active)

    # ── Validation ───────────────────────────────────────────────────────────

    def validate(self) -> dict:
        """
        Check the plan against the rules of the active curriculum.

        Returns:
          {
            "total_credits": 96,
            "tables": {"Obbligatori": {"current": 12, "min": 12}, ...},
            "aggregates": [{"source": "BC", "current": 40, "min": 48, ...}],
            "is_valid": False,
            "messages": ["Table 2: Missing 18 CFU", ...],
          }
        """
        common = self.rules.common
        cur_rules = self.rules.for_curriculum(self.curriculum)
        report = {
            "total_credits": 0,
            "tables": {t: {"current": 0, "min": 0} for t in table_schema(self.curriculum)},
            "aggregates": [],
            "is_valid": True,
            "messages": [],
        }
        tables = report["tables"]

        for entry in self.plan:
            if entry.table != OUT_OF_PLAN:
                report["total_credits"] += entry.cfu
            # Tables outside the active schema still count toward the total.
            tables.setdefault(entry.table, {"current": 0, "min": 0})
            tables[entry.table]["current"] += entry.cfu

        def fail(message: str) -> None:
            report["is_valid"] = False
            report["messages"].append(message)

        tables[MANDATORY]["min"] = common.mandatory_credits
        tables[OPTIONAL]["min"] = common.free_exams_credits

        for rule in cur_rules.ordered:
            if rule is cur_rules.aggregate:
                current = sum(tables.get(t, {"current": 0})["current"] for t in rule.tables)
                satisfied = current >= rule.min_credits
                report["aggregates"].append({
                    "source": rule.source,
                    "label": self._t("sum_bc_label"),
                    "tables": list(rule.tables),
                    "current": current,
                    "min": rule.min_credits,
                    "satisfied": satisfied,
                })
                if not satisfied:
                    fail(self._t("sum_bc_missing", missing=rule.min_credits - current))
                continue

            table = tables.get(rule.source)
            if table is None:
                continue
            table["min"] = rule.min_credits
            if table["current"] < rule.min_credits:
                fail(self._t(
                    "table_missing_cfu",
                    table=rule.source,
                    missing=rule.min_credits - table["current"],
                ))

        if tables[MANDATORY]["current"] < tables[MANDATORY]["min"]:
            fail(self._t("mandatory_incomplete"))

        if report["total_credits"] < common.total_credits:
            fail(self._t(
                "total_cfu_status",
                current=report["total_credits"],
                min=common.total_credits,
            ))

        return report

    # ── Defaults ─────────────────────────────────────────────────────────────

    def reset(self) -> None:
        self._set_plan([])
        self.init_defaults()

    def init_defaults(self) -> None:
        entries = list(self.plan)
        for exam in self.rules.common.mandatory_exams:
            entry_id = mandatory_entry_id(exam.name)
            if entry_id in self._entries:
                continue
            entries.append(PlanEntry(
                id=entry_id,
                exam_id=None,
                name=exam.name,
                cfu=exam.credits,
                table=MANDATORY,
                is_custom=True,
                removable=False,
            ))
            self._entries[entry_id] = entries[-1]
        self._set_plan(entries)
        self.rebalance_buckets()
