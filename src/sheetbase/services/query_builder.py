"""Filter, sort and paging clauses for reads over a managed table.

Column names are only ever taken from ``known_columns``; every user-supplied
value travels as a named bound parameter.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..schemas.table import QueryOptions

DEFAULT_PAGE_SIZE = 20
DEFAULT_ORDER = "ORDER BY id DESC"


@dataclass
class QueryPlan:
    where: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    order_by: str = DEFAULT_ORDER
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _like(column: str, param: str) -> str:
    return f"{column} LIKE :{param} ESCAPE '\\'"


def build_filter(options: QueryOptions, known_columns: Sequence[str]) -> tuple[str, dict[str, Any]]:
    """Return ``(where_clause, params)`` for the search text and column filters.

    Filter keys outside ``known_columns`` are dropped without error.
    """
    known = list(known_columns)
    clauses: list[str] = []
    params: dict[str, Any] = {}

    search = options.search or ""
    if search and known:
        params["search"] = f"%{escape_like(search)}%"
        parts = [_like(column, "search") for column in known]
        clauses.append("(" + " OR ".join(parts) + ")")

    for index, (column, value) in enumerate((options.filters or {}).items()):
        if column not in known:
            continue
        param = f"filter_{index}"
        params[param] = f"%{escape_like(value or '')}%"
        clauses.append(_like(column, param))

    if not clauses:
        return "", {}
    return "WHERE " + " AND ".join(clauses), params


def build_order(options: QueryOptions, known_columns: Sequence[str]) -> str:
    if options.sort_by and options.sort_by in known_columns:
        direction = "DESC" if options.sort_desc else "ASC"
        return f"ORDER BY {options.sort_by} {direction}, id {direction}"
    return DEFAULT_ORDER


def resolve_paging(
    page: int | None,
    page_size: int | None,
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int | None = None,
) -> tuple[int, int]:
    """Clamp a 1-based page and a page size; returns ``(page, page_size)``."""
    page = page if page and page >= 1 else 1
    page_size = page_size if page_size and page_size >= 1 else default_page_size
    if max_page_size is not None:
        page_size = min(page_size, max_page_size)
    return page, page_size


def build_query_plan(
    options: QueryOptions,
    known_columns: Sequence[str],
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int | None = None,
) -> QueryPlan:
    where, params = build_filter(options, known_columns)
    page, page_size = resolve_paging(
        options.page,
        options.page_size,
        default_page_size=default_page_size,
        max_page_size=max_page_size,
    )
    return QueryPlan(
        where=where,
        params=params,
        order_by=build_order(options, known_columns),
        limit=page_size,
        offset=(page - 1) * page_size,
        page=page,
        page_size=page_size,
    )


def in_clause(column: str, values: Sequence[Any], prefix: str = "id") -> tuple[str, dict[str, Any]]:
    """Build ``column IN (:p0, :p1, ...)`` with one bound parameter per value."""
    params = {f"{prefix}_{index}": value for index, value in enumerate(values)}
    placeholders = ", ".join(f":{name}" for name in params)
    return f"{column} IN ({placeholders})", params
