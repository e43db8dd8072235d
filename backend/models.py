from dataclasses import dataclass, field


@dataclass(frozen=True)
class ExamDescriptor:
    """One catalog row. `id` and `name` both come from the exam title."""

    id: str
    name: str
    cfu: int = 6
    raw_table: str = ""
    period: int = 1
    availability: str = ""
    pillar: str = ""
    subpillar: str = ""
    link: str = ""
    language: str = ""
    ordinamento: tuple = field(default_factory=tuple)
    ssd: str = ""


@dataclass
class PlanEntry:
    id: str
    name: str
    cfu: int
    table: str
    exam_id: str | None = None
    is_custom: bool = False
    removable: bool = True
