"""
Output header definition for the flattened Form 990 table.

The header is a fixed, hand-maintained list of columns. Each column binds one
or more canonical record paths; several paths cover the same field across IRS
schema versions (for example TaxYr in 2013+ returns, TaxYear before that).
A column can instead take the document's file name.

Header definitions are plain dictionaries (loaded from JSON or YAML by the
ConfigManager) of the form:

    {
        "columns": [
            {"name": "FileName", "source": "file_name"},
            {"name": "EIN", "paths": ["Return/ReturnHeader/Filer/EIN"]}
        ]
    }
"""

from typing import Any, Dict, List, Optional

from ..exceptions import SchemaValidationError
from ..models import ColumnSource, HeaderColumn, HeaderSchema
from ..utils import PathUtils


DEFAULT_HEADER_DEFINITION: Dict[str, Any] = {
    "columns": [
        {
            "name": "FileName",
            "source": "file_name",
            "description": "Name of the source XML document",
        },
        {
            "name": "EIN",
            "paths": ["Return/ReturnHeader/Filer/EIN"],
            "description": "Employer identification number of the filer",
        },
        {
            "name": "OrganizationName",
            "paths": [
                "Return/ReturnHeader/Filer/BusinessName/BusinessNameLine1Txt",
                "Return/ReturnHeader/Filer/BusinessName/BusinessNameLine1",
                "Return/ReturnHeader/Filer/Name/BusinessNameLine1",
            ],
            "description": "First line of the filer's legal name",
        },
        {
            "name": "TaxYear",
            "paths": [
                "Return/ReturnHeader/TaxYr",
                "Return/ReturnHeader/TaxYear",
            ],
        },
        {
            "name": "ReturnType",
            "paths": [
                "Return/ReturnHeader/ReturnTypeCd",
                "Return/ReturnHeader/ReturnType",
            ],
            "description": "990, 990EZ, 990PF or 990T",
        },
    ]
}


def _parse_source(raw_source: Optional[str], column_name: str) -> ColumnSource:
    if raw_source is None:
        return ColumnSource.XML_PATH
    try:
        return ColumnSource(str(raw_source).strip().lower())
    except ValueError:
        valid = ", ".join(source.value for source in ColumnSource)
        raise SchemaValidationError(f"Column '{column_name}' has unknown source '{raw_source}' (expected one of: {valid})")


def build_header_schema(definition: Dict[str, Any], source_path: str = None) -> HeaderSchema:
    """
    Build an immutable HeaderSchema from a raw definition.

    Args:
        definition: Dictionary with a "columns" list
        source_path: Optional file the definition was read from (for error reporting)

    Returns:
        Validated HeaderSchema with canonical paths

    Raises:
        SchemaValidationError: If the definition is structurally invalid
    """
    if not isinstance(definition, dict):
        raise SchemaValidationError("Header definition must be a mapping with a 'columns' list", source_path)

    raw_columns = definition.get('columns')
    if not isinstance(raw_columns, list) or not raw_columns:
        raise SchemaValidationError("Header definition must contain a non-empty 'columns' list", source_path)

    columns: List[HeaderColumn] = []
    for index, raw_column in enumerate(raw_columns):
        if isinstance(raw_column, str):
            raise SchemaValidationError(
                f"Column #{index + 1} ('{raw_column}') must be a mapping with 'name' and 'paths'", source_path
            )
        if not isinstance(raw_column, dict):
            raise SchemaValidationError(f"Column #{index + 1} must be a mapping", source_path)

        name = str(raw_column.get('name') or '').strip()
        source = _parse_source(raw_column.get('source'), name or f"#{index + 1}")

        raw_paths = raw_column.get('paths')
        if raw_paths is None and raw_column.get('path'):
            raw_paths = [raw_column['path']]
        if isinstance(raw_paths, str):
            raw_paths = [raw_paths]

        try:
            paths = tuple(PathUtils.canonical_paths(raw_paths or []))
            columns.append(HeaderColumn(
                name=name,
                paths=paths,
                source=source,
                description=raw_column.get('description'),
            ))
        except ValueError as e:
            raise SchemaValidationError(f"Invalid column #{index + 1}: {e}", source_path)

    try:
        return HeaderSchema(columns=tuple(columns))
    except ValueError as e:
        raise SchemaValidationError(f"Invalid header definition: {e}", source_path)


def default_header_schema() -> HeaderSchema:
    """Return the built-in canonical header for Form 990 returns."""
    return build_header_schema(DEFAULT_HEADER_DEFINITION)


def header_from_paths(column_paths: Dict[str, Any]) -> HeaderSchema:
    """
    Build a header from a simple {column_name: path or [paths]} mapping.

    Convenience for callers that do not need file name columns or descriptions.
    """
    return build_header_schema({
        "columns": [
            {"name": name, "paths": paths if isinstance(paths, list) else [paths]}
            for name, paths in column_paths.items()
        ]
    })
