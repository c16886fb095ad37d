"""
fmsql.sql - SQL handling
========================

- substitute: Parameter binding with sanitizing
- parse / QueryDescription: SQL parsing (sqlglot)
- QueryTranslator / RequestDescriptor: Data API request building
- SchemaMetadata: Primary key declarations
- Statement: Execution and forward-only row fetching

"""

from fmsql.sql.params import sanitize, substitute
from fmsql.sql.parser import Condition, QueryDescription, SelectedColumn, parse
from fmsql.sql.metadata import SchemaMetadata, TableInfo
from fmsql.sql.translator import QueryTranslator, RequestDescriptor, escape_find_literal
from fmsql.sql.statement import Statement

__all__ = [
    "sanitize",
    "substitute",
    "parse",
    "QueryDescription",
    "SelectedColumn",
    "Condition",
    "SchemaMetadata",
    "TableInfo",
    "QueryTranslator",
    "RequestDescriptor",
    "escape_find_literal",
    "Statement",
]
