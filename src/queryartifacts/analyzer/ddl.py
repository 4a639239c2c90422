"""
DDL text for recommendations.

Descriptive output only; nothing here is ever executed. Generated index
names are deterministic: the same table and columns always produce the
same name, shortened with a hash suffix when they would exceed the
configured length.
"""

from __future__ import annotations

import hashlib
import re
from typing import Sequence

from queryartifacts.catalog.models import IndexColumn, IndexMetadata, SortOrder

_PLAIN_IDENTIFIER = re.compile(r"[A-Z][A-Z0-9_$#]*")


def quote_identifier(name: str) -> str:
    """Quote names Oracle would not accept bare (mixed case, spaces, ...)."""
    if _PLAIN_IDENTIFIER.fullmatch(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def qualified(owner: str | None, name: str) -> str:
    if owner:
        return f"{quote_identifier(owner)}.{quote_identifier(name)}"
    return quote_identifier(name)


def index_name_for(table: str, columns: Sequence[str], max_length: int = 30) -> str:
    """
    IX_<TABLE>_<COL1>_<COL2>..., or IX_<TABLE>_<HASH> when too long.

    Example:
        index_name_for("EMP", ["DEPT_ID", "HIRE_DATE"])
        -> "IX_EMP_DEPT_ID_HIRE_DATE"
    """
    name = "_".join(["IX", table, *columns]).upper()
    name = re.sub(r"[^A-Z0-9_$#]", "_", name)
    if len(name) <= max_length:
        return name

    digest = hashlib.sha1("|".join([table, *columns]).encode("utf-8"))
    suffix = digest.hexdigest()[:8].upper()
    prefix = re.sub(r"[^A-Z0-9_$#]", "_", f"IX_{table}".upper())
    prefix = prefix[: max_length - len(suffix) - 1].rstrip("_")
    return f"{prefix}_{suffix}"


def _column_list(columns: Sequence[IndexColumn]) -> str:
    return ", ".join(
        quote_identifier(c.name) + (" DESC" if c.order == SortOrder.DESC else "")
        for c in columns
    )


def create_index_ddl(
    owner: str | None,
    table: str,
    index_name: str,
    columns: Sequence[IndexColumn],
) -> str:
    return (
        f"CREATE INDEX {qualified(owner, index_name)} "
        f"ON {qualified(owner, table)} ({_column_list(columns)});"
    )


def extend_index_ddl(index: IndexMetadata, columns: Sequence[IndexColumn]) -> str:
    """Oracle cannot add key columns in place: drop and recreate under the same name."""
    return "\n".join([
        f"DROP INDEX {qualified(index.owner, index.index_name)};",
        create_index_ddl(index.owner, index.table, index.index_name, columns),
    ])


def drop_redundant_ddl(index: IndexMetadata) -> str:
    """Make the index invisible first; the DROP stays commented out."""
    name = qualified(index.owner, index.index_name)
    return "\n".join([
        f"ALTER INDEX {name} INVISIBLE;",
        "-- After confirming no plan regressed:",
        f"-- DROP INDEX {name};",
    ])
