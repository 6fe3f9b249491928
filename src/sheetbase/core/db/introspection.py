"""Native SQLite introspection.

Only used to discover what physically exists; the catalog stays authoritative
for type hints, labels and ordering. Callers must pass identifiers that have
already been validated, since PRAGMA arguments cannot be bound.
"""

from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

HOUSEKEEPING_COLUMNS = ("id", "created_at", "updated_at")


@dataclass(frozen=True)
class PhysicalColumn:
    name: str
    declared_type: str
    not_null: bool
    default: str | None
    primary_key: bool


async def physical_columns(conn: AsyncConnection, table: str, *, include_housekeeping: bool = False) -> list[PhysicalColumn]:
    result = await conn.execute(text(f"PRAGMA table_info({table})"))
    columns = []
    for row in result.mappings():
        if not include_housekeeping and row["name"] in HOUSEKEEPING_COLUMNS:
            continue
        columns.append(
            PhysicalColumn(
                name=row["name"],
                declared_type=(row["type"] or "").upper(),
                not_null=bool(row["notnull"]),
                default=row["dflt_value"],
                primary_key=bool(row["pk"]),
            )
        )
    return columns


async def table_exists(conn: AsyncConnection, table: str) -> bool:
    result = await conn.execute(
        text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND lower(name) = lower(:name)"),
        {"name": table},
    )
    return result.first() is not None


async def list_tables(conn: AsyncConnection) -> list[str]:
    result = await conn.execute(
        text("SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' ORDER BY name")
    )
    return [row[0] for row in result]
