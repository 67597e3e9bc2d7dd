"""Small string helpers shared by the SQL synthesis stages."""

from __future__ import annotations

import dataclasses
from typing import Any

TX_BEGIN = "BEGIN TRANSACTION;"
TX_COMMIT = "COMMIT;"


def add_extra_space_if_exist(value: str) -> str:
    """Prefix a non-empty fragment with a single space."""
    if value:
        return " " + value
    return ""


def wrap_tx(sql: str, exprs: list[str] | None = None) -> str:
    """Wrap statements in a BEGIN TRANSACTION / COMMIT block.

    Auxiliary statements come first, the main statement last.
    """
    lines = [TX_BEGIN]
    for expr in exprs or []:
        lines.append(f"\t{expr};")
    lines.append(f"\t{sql};")
    lines.append(TX_COMMIT)
    return "\n".join(lines)


def unwrap_tx(sql: str) -> list[str]:
    """Return the statements inside a transaction block.

    A plain statement (not produced by wrap_tx) is returned as a
    single-element list.
    """
    text = sql.strip()
    if not (text.startswith(TX_BEGIN) and text.endswith(TX_COMMIT)):
        return [text] if text else []

    body = text[len(TX_BEGIN):-len(TX_COMMIT)]
    statements = []
    for line in body.split("\n"):
        line = line.strip()
        if not line:
            continue
        if line.endswith(";"):
            line = line[:-1].rstrip()
        if line:
            statements.append(line)
    return statements


def to_snake_case(name: str) -> str:
    """Convert a CamelCase class name to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0 and not name[i - 1].isupper():
            result.append("_")
        elif char.isupper() and 0 < i < len(name) - 1 and name[i + 1].islower():
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def pluralize(word: str) -> str:
    """Naive English pluralization for table names."""
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def to_searchable_map(value: Any) -> dict[str, Any]:
    """Flatten a record into a {field name: value} mapping.

    Nested records (relationships) are left out; only scalar fields
    participate in update attribute assignment.
    """
    if isinstance(value, dict):
        return dict(value)
    if not dataclasses.is_dataclass(value) or isinstance(value, type):
        raise TypeError(f"cannot convert {type(value).__name__} to a map")
    result: dict[str, Any] = {}
    for f in dataclasses.fields(value):
        item = getattr(value, f.name)
        if dataclasses.is_dataclass(item) and not isinstance(item, type):
            continue
        result[f.name] = item
    return result
