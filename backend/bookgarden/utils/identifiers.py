from __future__ import annotations

from bookgarden.errors import InvalidReference


def parse_id(value, kind: str = "id") -> int:
    if isinstance(value, bool):
        raise InvalidReference(f"Invalid {kind} reference")
    if isinstance(value, int):
        parsed = value
    else:
        raw = str(value if value is not None else "").strip()
        if not raw or not raw.isdigit():
            raise InvalidReference(f"Invalid {kind} reference: {raw[:40]!r}")
        parsed = int(raw)
    if parsed <= 0:
        raise InvalidReference(f"Invalid {kind} reference: {parsed}")
    return parsed


def parse_id_list(values, kind: str = "id") -> list[int]:
    """Parse a list of ids, dropping repeats while keeping first-seen order."""
    if not isinstance(values, (list, tuple)):
        raise InvalidReference(f"{kind} list required")
    out: list[int] = []
    seen: set[int] = set()
    for value in values:
        parsed = parse_id(value, kind)
        if parsed in seen:
            continue
        seen.add(parsed)
        out.append(parsed)
    return out
