from dinein.managers.table.table import TableCriteria, TableManager

__all__ = ["TableManager", "TableCriteria"]
