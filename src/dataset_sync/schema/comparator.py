"""Schema comparison using set operations.

Compares the columns a ``DatasetSchema`` expects against the columns the
live database has.  Pure logic -- no I/O, no database connections.

Usage:
    from dataset_sync.schema.comparator import validate_schema
    from dataset_sync.schema.introspector import SchemaIntrospector

    with SchemaIntrospector(database_url) as introspector:
        actual_columns = introspector.get_column_names()

    result = validate_schema(actual_columns, schema.expected_columns())
    if not result.valid:
        print(result.format_report())
"""

from dataset_sync.schema.models import ColumnDiff, SchemaValidationResult


def validate_schema(
    actual_columns: dict[str, set[str]],
    expected_columns: dict[str, set[str]],
) -> SchemaValidationResult:
    """Validate actual database columns against the expected ones.

    - Missing tables: in *expected_columns* but not in *actual_columns*
    - Missing columns: expected but absent from an existing table
    - Extra tables: in *actual_columns* only (warning, ``valid`` unaffected)

    Args:
        actual_columns: Table name -> column names, as returned by
            ``SchemaIntrospector.get_column_names()``.
        expected_columns: Table name -> column names, usually
            ``DatasetSchema.expected_columns()``.

    Returns:
        ``SchemaValidationResult``; ``valid`` is ``True`` when nothing is
        missing.

    Examples:
        >>> validate_schema({"incid": {"incid", "habitat"}}, {"incid": {"incid"}}).valid
        True
        >>> result = validate_schema({"incid": {"incid"}}, {"incid": {"incid", "habitat"}})
        >>> result.missing_columns[0].column
        'habitat'
    """
    actual_tables = set(actual_columns)
    expected_tables = set(expected_columns)

    missing_tables = sorted(expected_tables - actual_tables)
    extra_tables = sorted(actual_tables - expected_tables)

    missing_columns: list[ColumnDiff] = []
    for table_name in sorted(expected_tables & actual_tables):
        missing = expected_columns[table_name] - actual_columns[table_name]
        for col_name in sorted(missing):
            missing_columns.append(
                ColumnDiff(
                    table=table_name,
                    column=col_name,
                    message=f"Column '{col_name}' missing from table '{table_name}'",
                )
            )

    return SchemaValidationResult(
        valid=not missing_tables and not missing_columns,
        missing_tables=missing_tables,
        missing_columns=missing_columns,
        extra_tables=extra_tables,
    )
