"""
fmsql.sql.metadata - Table metadata
===================================

The Data API does not expose primary keys, so they are declared here.
Tables without a declaration use FileMaker's own record id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from fmsql.sql.parser import REC_ID


@dataclass
class TableInfo:
    """
    Information about one table (FileMaker layout).

    Attributes
    ----------
    name : str
        Table / layout name
    primary_key : str
        Column holding the logical primary key
    """
    name: str
    primary_key: str = REC_ID


class SchemaMetadata:
    """
    Registry of primary key columns per table.

    Parameters
    ----------
    primary_keys : dict, optional
        Mapping of table name to primary key column
    default : str
        Primary key assumed for unregistered tables

    Examples
    --------
    >>> meta = SchemaMetadata({"Contacts": "id"})
    >>> meta.primary_key("Contacts")
    'id'
    >>> meta.primary_key("Invoices")
    'rec_id'
    """

    def __init__(
        self,
        primary_keys: Optional[Dict[str, str]] = None,
        *,
        default: str = REC_ID,
    ) -> None:
        self.default = default
        self._tables: Dict[str, TableInfo] = {}
        for table, column in (primary_keys or {}).items():
            self.register(table, column)

    def register(self, table: str, primary_key: str) -> TableInfo:
        info = TableInfo(name=table, primary_key=primary_key)
        self._tables[table] = info
        return info

    def tables(self) -> List[str]:
        return sorted(self._tables.keys())

    def get_table_info(self, table: str) -> Optional[TableInfo]:
        return self._tables.get(table)

    def primary_key(self, table: str) -> str:
        info = self._tables.get(table)
        return info.primary_key if info else self.default
