from dataclasses import dataclass, field

# Table tokens, kept identical to the values stored in saved plans.
MANDATORY = "Obbligatori"
OPTIONAL = "Facoltativi"
OUT_OF_PLAN = "Fuori Piano"

FBA = "FBA"
F94 = "F94"
DEFAULT_CURRICULUM = FBA

# Curriculum tables in priority order.
CURRICULUM_TABLES = {
    FBA: ("1", "2"),
    F94: ("A", "B", "C"),
}

# Curricula whose allowed tables are re-sorted by the order above
# ("C|A" -> A, C). Others keep the catalog order.
PRIORITY_ORDERED = {F94}

# Tables outside the curriculum schedule; moves into these are never checked.
FREE_TABLES = (MANDATORY, OPTIONAL, OUT_OF_PLAN)

ALL_TABLES = (MANDATORY, "1", "2", "A", "B", "C", OPTIONAL, OUT_OF_PLAN)

# Aggregate rule marker -> tables summed by it.
AGGREGATE_SOURCES = {
    "BC": ("B", "C"),
}
AGGREGATE_MIN_FIELD = "min_sumBC_credits"

# Fallbacks used when the rules document omits the flat targets.
DEFAULT_FREE_EXAMS_CREDITS = 12
DEFAULT_TOTAL_CREDITS = 120


class RulesError(ValueError):
    """Raised when a requirement rules document has an unsupported shape."""


@dataclass(frozen=True)
class MandatoryExam:
    name: str
    credits: int


@dataclass(frozen=True)
class CommonRules:
    mandatory_exams: tuple = ()
    free_exams_credits: int = DEFAULT_FREE_EXAMS_CREDITS
    total_credits: int = DEFAULT_TOTAL_CREDITS

    @property
    def mandatory_credits(self) -> int:
        return sum(ex.credits for ex in self.mandatory_exams)


@dataclass(frozen=True)
class TableRule:
    source: str
    min_credits: int


@dataclass(frozen=True)
class AggregateRule:
    source: str
    tables: tuple
    min_credits: int


@dataclass(frozen=True)
class CurriculumRules:
    table_rules: tuple = ()
    aggregate: AggregateRule | None = None
    # Rule order as written in the document, aggregate included.
    ordered: tuple = ()

    def table_minimums(self) -> dict[str, int]:
        return {rule.source: rule.min_credits for rule in self.table_rules}


@dataclass(frozen=True)
class RequirementRules:
    common: CommonRules = field(default_factory=CommonRules)
    programs: dict = field(default_factory=dict)

    def for_curriculum(self, curriculum: str) -> CurriculumRules:
        return self.programs.get(curriculum) or CurriculumRules()


def _credits(value, where: str) -> int:
    if isinstance(value, bool):
        raise RulesError(f"{where}: expected an integer, got {value!r}")
    try:
        out = int(value)
    except (TypeError, ValueError):
        raise RulesError(f"{where}: expected an integer, got {value!r}") from None
    if out < 0:
        raise RulesError(f"{where}: credits cannot be negative ({out})")
    return out


def _parse_common(doc: dict) -> CommonRules:
    if not isinstance(doc, dict):
        raise RulesError("common_rules must be an object")
    mandatory = []
    for i, item in enumerate(doc.get("mandatory_exams") or []):
        if not isinstance(item, dict) or not str(item.get("name", "") or "").strip():
            raise RulesError(f"common_rules.mandatory_exams[{i}]: missing name")
        mandatory.append(
            MandatoryExam(
                name=str(item["name"]).strip(),
                credits=_credits(item.get("credits"), f"mandatory exam '{item['name']}'"),
            )
        )
    free = doc.get("free_exams_credits")
    total = doc.get("total_credits")
    return CommonRules(
        mandatory_exams=tuple(mandatory),
        free_exams_credits=(
            DEFAULT_FREE_EXAMS_CREDITS if free is None
            else _credits(free, "common_rules.free_exams_credits")
        ),
        total_credits=(
            DEFAULT_TOTAL_CREDITS if total is None
            else _credits(total, "common_rules.total_credits")
        ),
    )


def _parse_curriculum(curriculum: str, rules: list) -> CurriculumRules:
    allowed = CURRICULUM_TABLES[curriculum]
    table_rules: list[TableRule] = []
    aggregate = None
    ordered = []
    seen: set[str] = set()

    for i, rule in enumerate(rules or []):
        where = f"programs.{curriculum}.curriculum_rules[{i}]"
        if not isinstance(rule, dict):
            raise RulesError(f"{where}: rule must be an object")
        source = str(rule.get("source", "") or "").strip()

        if source in AGGREGATE_SOURCES:
            tables = AGGREGATE_SOURCES[source]
            if not set(tables).issubset(allowed):
                raise RulesError(
                    f"{where}: aggregate '{source}' does not apply to curriculum {curriculum}"
                )
            if aggregate is not None:
                raise RulesError(f"{where}: only one aggregate rule is allowed per curriculum")
            if AGGREGATE_MIN_FIELD not in rule:
                raise RulesError(f"{where}: aggregate rule needs '{AGGREGATE_MIN_FIELD}'")
            aggregate = AggregateRule(
                source=source,
                tables=tables,
                min_credits=_credits(rule[AGGREGATE_MIN_FIELD], where),
            )
            ordered.append(aggregate)
            continue

        if source not in allowed:
            raise RulesError(
                f"{where}: unknown source '{source}' (expected one of "
                f"{', '.join(allowed + tuple(AGGREGATE_SOURCES))})"
            )
        if source in seen:
            raise RulesError(f"{where}: duplicate rule for table '{source}'")
        if "min_credits" not in rule:
            raise RulesError(f"{where}: table rule needs 'min_credits'")
        seen.add(source)
        table_rule = TableRule(source=source, min_credits=_credits(rule["min_credits"], where))
        table_rules.append(table_rule)
        ordered.append(table_rule)

    return CurriculumRules(
        table_rules=tuple(table_rules),
        aggregate=aggregate,
        ordered=tuple(ordered),
    )


def parse_requirement_rules(doc: dict) -> RequirementRules:
    """
    Build typed requirement rules from a rules document.

    Accepts the bare document ({"common_rules", "programs"}) or the same
    content wrapped in {"degree_requirements": ...}. Raises RulesError on
    unknown curricula, unknown rule sources or malformed credit values.
    """
    if not isinstance(doc, dict):
        raise RulesError("rules document must be an object")
    if "degree_requirements" in doc:
        doc = doc["degree_requirements"]
        if not isinstance(doc, dict):
            raise RulesError("degree_requirements must be an object")

    common = _parse_common(doc.get("common_rules") or {})

    programs: dict[str, CurriculumRules] = {}
    for curriculum, program in (doc.get("programs") or {}).items():
        if curriculum not in CURRICULUM_TABLES:
            raise RulesError(
                f"programs: unknown curriculum '{curriculum}' "
                f"(expected one of {', '.join(CURRICULUM_TABLES)})"
            )
        if not isinstance(program, dict):
            raise RulesError(f"programs.{curriculum} must be an object")
        programs[curriculum] = _parse_curriculum(curriculum, program.get("curriculum_rules"))

    return RequirementRules(common=common, programs=programs)


def table_schema(curriculum: str) -> list[str]:
    """Tables shown in a report for `curriculum`, in display order."""
    return [MANDATORY, *CURRICULUM_TABLES[curriculum], OPTIONAL, OUT_OF_PLAN]
