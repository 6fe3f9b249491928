from .catalog import ColumnMeta, TableMeta

__all__ = ["ColumnMeta", "TableMeta"]
