import re

# Matches: 2025/2026, 2025/26, 2025-2026, 2025 - 26
ACADEMIC_YEAR = re.compile(r'^(\d{4})\s*[/-]\s*(\d{2}|\d{4})$')


def normalize_year(raw: str) -> str | None:
    """
    Normalizes an academic year token to canonical 'YYYY/YYYY' format.
    Handles: '2025/2026', '2025/26', '2025-2026', ' 2025 / 2026 '
    Returns None if the string is not a pair of consecutive years.
    """
    if not raw or not str(raw).strip():
        return None
    m = ACADEMIC_YEAR.match(str(raw).strip())
    if not m:
        return None
    start = int(m.group(1))
    end_raw = m.group(2)
    if len(end_raw) == 2:
        end = (start // 100) * 100 + int(end_raw)
        if end < start:
            end += 100
    else:
        end = int(end_raw)
    if end != start + 1:
        return None
    return f"{start}/{end}"


def year_start(token: str) -> int | None:
    """Integer before the '/' of a year token ('2025/2026' -> 2025)."""
    if token is None:
        return None
    m = re.match(r'^\s*(\d+)', str(token).split("/")[0])
    return int(m.group(1)) if m else None


def academic_years(first_start: int, last_start: int) -> list[str]:
    """
    Year tokens for a selector, newest first.

    academic_years(2023, 2025) -> ['2025/2026', '2024/2025', '2023/2024']
    """
    return [f"{y}/{y + 1}" for y in range(last_start, first_start - 1, -1)]


def current_academic_year(today) -> str:
    """Academic year ending in today's calendar year ('2026' -> '2025/2026')."""
    return f"{today.year - 1}/{today.year}"
