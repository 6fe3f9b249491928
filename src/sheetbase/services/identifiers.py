"""Identifier allowlist for table and column names.

Identifiers are interpolated into DDL/DML unquoted, so they are validated
here and never escaped anywhere else.
"""

import re

from ..core.db.introspection import HOUSEKEEPING_COLUMNS
from ..core.exceptions import EmptyFieldNameError, EmptyNameError, InvalidIdentifierError
from ..models.catalog import CATALOG_TABLES

IDENTIFIER_PATTERN = re.compile(r"^[^\W\d]\w{0,62}$")

SQLITE_KEYWORDS = frozenset(
    """
    ABORT ACTION ADD AFTER ALL ALTER ALWAYS ANALYZE AND AS ASC ATTACH AUTOINCREMENT
    BEFORE BEGIN BETWEEN BY CASCADE CASE CAST CHECK COLLATE COLUMN COMMIT CONFLICT
    CONSTRAINT CREATE CROSS CURRENT CURRENT_DATE CURRENT_TIME CURRENT_TIMESTAMP
    DATABASE DEFAULT DEFERRABLE DEFERRED DELETE DESC DETACH DISTINCT DO DROP EACH
    ELSE END ESCAPE EXCEPT EXCLUDE EXCLUSIVE EXISTS EXPLAIN FAIL FILTER FIRST
    FOLLOWING FOR FOREIGN FROM FULL GENERATED GLOB GROUP GROUPS HAVING IF IGNORE
    IMMEDIATE IN INDEX INDEXED INITIALLY INNER INSERT INSTEAD INTERSECT INTO IS
    ISNULL JOIN KEY LAST LEFT LIKE LIMIT MATCH MATERIALIZED NATURAL NO NOT NOTHING
    NOTNULL NULL NULLS OF OFFSET ON OR ORDER OTHERS OUTER OVER PARTITION PLAN
    PRAGMA PRECEDING PRIMARY QUERY RAISE RANGE RECURSIVE REFERENCES REGEXP REINDEX
    RELEASE RENAME REPLACE RESTRICT RETURNING RIGHT ROLLBACK ROW ROWS SAVEPOINT
    SELECT SET TABLE TEMP TEMPORARY THEN TIES TO TRANSACTION TRIGGER UNBOUNDED
    UNION UNIQUE UPDATE USING VACUUM VALUES VIEW VIRTUAL WHEN WHERE WINDOW WITH
    WITHOUT
    """.split()
)

RESERVED_COLUMN_NAMES = frozenset(name.lower() for name in HOUSEKEEPING_COLUMNS) | {"rowid", "oid", "_rowid_"}


def is_valid_identifier(name: str) -> bool:
    return bool(IDENTIFIER_PATTERN.match(name)) and name.upper() not in SQLITE_KEYWORDS


def validate_table_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise EmptyNameError("table name required")
    if not is_valid_identifier(name):
        raise InvalidIdentifierError(f"invalid table name: {name}", table=name)
    lowered = name.lower()
    if lowered in CATALOG_TABLES or lowered.startswith("sqlite_"):
        raise InvalidIdentifierError(f"table name is reserved: {name}", table=name)
    return name


def validate_column_name(name: str | None, *, table: str | None = None) -> str:
    name = (name or "").strip()
    if not name:
        raise EmptyFieldNameError("field name must not be empty", table=table)
    if not is_valid_identifier(name):
        raise InvalidIdentifierError(f"invalid field name: {name}", table=table, column=name)
    if name.lower() in RESERVED_COLUMN_NAMES:
        raise InvalidIdentifierError(f"field name is reserved: {name}", table=table, column=name)
    return name
