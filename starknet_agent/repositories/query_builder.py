"""
Fluent SQL text builder.

Used by storage backends that talk SQL instead of MongoDB documents.
Values passed through ``append_joined_list_type`` are rendered as SQL
literals; everything else is appended verbatim.
"""
from typing import Any, List, Optional

DEFAULT = "DEFAULT"


def sql_literal(value: Any) -> str:
    """Render a Python value as an SQL literal."""
    if value is None:
        return "NULL"
    if value == DEFAULT:
        return DEFAULT
    # bool before int: True is an int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, (list, tuple)):
        joined = ",".join(str(v) for v in value)
        return "'" + joined.replace("'", "''") + "'"
    raise TypeError(f"Unsupported SQL value type: {type(value).__name__}")


class QueryBuilder:
    """Collects query fragments and joins them with spaces."""

    def __init__(self):
        self.query: List[str] = []

    def append(self, text: str) -> "QueryBuilder":
        self.query.append(text)
        return self

    def append_if(self, condition: bool, text: str) -> "QueryBuilder":
        if condition is True:
            self.query.append(text)
        return self

    def append_joined_list(
        self, items: Optional[List[Any]] = None, separator: str = ", "
    ) -> "QueryBuilder":
        """Append identifiers or raw fragments joined by ``separator``."""
        if items:
            self.query.append(separator.join(str(item) for item in items))
        return self

    def append_joined_list_type(
        self, items: Optional[List[Any]] = None, separator: str = ", "
    ) -> "QueryBuilder":
        """Append values rendered as SQL literals joined by ``separator``."""
        self.query.append(separator.join(sql_literal(item) for item in items or []))
        return self

    def build(self) -> str:
        return " ".join(self.query) + ";"
