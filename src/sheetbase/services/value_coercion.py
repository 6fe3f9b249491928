"""Type hints, physical storage types and value coercion.

A type hint is the user-facing category of a column ("decimal", "数值",
"bool", ...). Each hint maps to exactly one :class:`TypeCategory`, and each
category to one SQLite storage type. Coercion turns loosely typed input
(JSON values, CSV/spreadsheet cells) into the value stored for the category.
"""

import json
import math
import re
from enum import Enum
from typing import Any, TypeAlias

from ..core.exceptions import InvalidValueError, UnsupportedTypeError

CellValue: TypeAlias = None | bool | int | float | str
RowValues: TypeAlias = dict[str, CellValue]


class TypeCategory(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    INTEGER = "integer"
    # Legacy yes/no columns stored and validated as plain integers.
    FLAG = "flag"
    BOOLEAN = "boolean"
    DATE = "date"


TYPE_HINT_CATEGORIES: dict[str, TypeCategory] = {
    "text": TypeCategory.TEXT,
    "string": TypeCategory.TEXT,
    "长文本": TypeCategory.TEXT,
    "短文本": TypeCategory.TEXT,
    "number": TypeCategory.NUMBER,
    "decimal": TypeCategory.NUMBER,
    "float": TypeCategory.NUMBER,
    "数值": TypeCategory.NUMBER,
    "浮点": TypeCategory.NUMBER,
    "integer": TypeCategory.INTEGER,
    "int": TypeCategory.INTEGER,
    "计数": TypeCategory.INTEGER,
    "布尔": TypeCategory.FLAG,
    "boolean": TypeCategory.BOOLEAN,
    "bool": TypeCategory.BOOLEAN,
    "是/否": TypeCategory.BOOLEAN,
    "date": TypeCategory.DATE,
    "datetime": TypeCategory.DATE,
    "日期": TypeCategory.DATE,
    "时间": TypeCategory.DATE,
}

PHYSICAL_TYPES: dict[TypeCategory, str] = {
    TypeCategory.TEXT: "TEXT",
    TypeCategory.NUMBER: "REAL",
    TypeCategory.INTEGER: "INTEGER",
    TypeCategory.FLAG: "INTEGER",
    TypeCategory.BOOLEAN: "INTEGER",
    TypeCategory.DATE: "TEXT",
}

NUMERIC_CATEGORIES = frozenset({TypeCategory.NUMBER, TypeCategory.INTEGER})

TRUE_STRINGS = frozenset({"true", "1", "是", "yes"})
FALSE_STRINGS = frozenset({"false", "0", "否", "no"})

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def resolve_category(type_hint: str | None) -> TypeCategory | None:
    return TYPE_HINT_CATEGORIES.get((type_hint or "").strip().lower())


def physical_type(type_hint: str | None) -> str:
    """Return the SQLite storage type for a hint, or raise UnsupportedTypeError."""
    category = resolve_category(type_hint)
    if category is None:
        raise UnsupportedTypeError(f"unsupported type {type_hint!r}")
    return PHYSICAL_TYPES[category]


def is_numeric(type_hint: str | None) -> bool:
    return resolve_category(type_hint) in NUMERIC_CATEGORIES


def is_boolean(type_hint: str | None) -> bool:
    return resolve_category(type_hint) is TypeCategory.BOOLEAN


def coerce_value(type_hint: str | None, raw: Any) -> CellValue:
    """Convert ``raw`` into the value stored for ``type_hint``.

    ``None`` and blank strings become ``None`` for every category; whether a
    null is acceptable is decided by the caller. Unknown hints coerce as text,
    since hints are validated when the schema is defined.
    """
    if raw is None:
        return None
    if isinstance(raw, str) and not raw.strip():
        return None

    category = resolve_category(type_hint) or TypeCategory.TEXT
    if category in (TypeCategory.INTEGER, TypeCategory.FLAG):
        return _coerce_integer(raw)
    if category is TypeCategory.NUMBER:
        return _coerce_number(raw)
    if category is TypeCategory.BOOLEAN:
        return _coerce_boolean(raw)
    return _coerce_text(raw)


def _coerce_integer(raw: Any) -> int:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        candidate = raw.strip()
        if _INTEGER_PATTERN.fullmatch(candidate):
            return int(candidate, 10)
    raise InvalidValueError(f"integer required, got {raw!r}")


def _coerce_number(raw: Any) -> float:
    if isinstance(raw, bool):
        raise InvalidValueError(f"number required, got {raw!r}")
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str) and "_" not in raw and raw.isascii():
        try:
            value = float(raw.strip())
        except ValueError:
            raise InvalidValueError(f"number required, got {raw!r}") from None
    else:
        raise InvalidValueError(f"number required, got {raw!r}")
    if not math.isfinite(value):
        raise InvalidValueError(f"finite number required, got {raw!r}")
    return value


def _coerce_boolean(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        token = raw.strip().lower()
        if token in TRUE_STRINGS:
            return True
        if token in FALSE_STRINGS:
            return False
    raise InvalidValueError(f"yes/no value required, got {raw!r}")


def _coerce_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    if isinstance(raw, (dict, list)):
        return json.dumps(raw, ensure_ascii=False)
    return str(raw)


def sql_literal(type_hint: str | None, raw: Any) -> str | None:
    """Render a column default as a SQL literal after coercing it.

    DDL cannot take bound parameters, so defaults are coerced first and text
    is quoted with doubled single quotes.
    """
    value = coerce_value(type_hint, raw)
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + value.replace("'", "''") + "'"
