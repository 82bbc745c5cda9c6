"""Product projection, row mapping and CSV assembly."""

from .csv_assembler import CsvAssembler, decompress, parse_csv
from .transformer import DEFAULT_FIELDS, FIELD_COLUMNS, project_product, validate_fields

__all__ = [
    "CsvAssembler",
    "DEFAULT_FIELDS",
    "FIELD_COLUMNS",
    "decompress",
    "parse_csv",
    "project_product",
    "validate_fields",
]
