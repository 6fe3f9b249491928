"""Catalog relations describing every managed table and its columns."""

from sqlalchemy import JSON, Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.db.database import Base

CATALOG_TABLES = ("table_meta", "column_meta")


class TableMeta(Base):
    """One row per managed table."""

    __tablename__ = "table_meta"

    table_name: Mapped[str] = mapped_column(Text, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(Text, default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)


class ColumnMeta(Base):
    """One row per declared column of a managed table."""

    __tablename__ = "column_meta"
    __table_args__ = (UniqueConstraint("table_name", "column_name", name="uq_column_meta_table_column"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, init=False)
    table_name: Mapped[str] = mapped_column(Text, index=True)
    column_name: Mapped[str] = mapped_column(Text)
    type_hint: Mapped[str] = mapped_column(String(64))
    labels: Mapped[list[str]] = mapped_column(JSON, default_factory=list)
    allow_null: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1")
    display_order: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
