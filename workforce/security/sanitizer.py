"""
Data Sanitizer - Saneamiento de exportaciones
Protects exported spreadsheets and CSV files against formula injection.
"""

from typing import Any

import pandas as pd


# Characters that make a spreadsheet cell evaluate as a formula
FORMULA_TRIGGERS = ('=', '+', '-', '@', '\t', '\r', '\n')


def sanitize_for_spreadsheet(value: Any) -> Any:
    """
    Prefix formula-like strings with an apostrophe.

    Examples:
        >>> sanitize_for_spreadsheet("=SUM(A1:A10)")
        "'=SUM(A1:A10)"
        >>> sanitize_for_spreadsheet("Pérez")
        'Pérez'
        >>> sanitize_for_spreadsheet(-12.5)
        -12.5
    """
    if not isinstance(value, str):
        return value

    stripped = value.lstrip()
    if stripped and stripped[0] in FORMULA_TRIGGERS:
        return "'" + value

    return value


def sanitize_dataframe_for_export(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of the DataFrame with every text column sanitized."""
    result = df.copy()

    for column in result.columns:
        if pd.api.types.is_string_dtype(result[column].dtype):
            result[column] = result[column].apply(sanitize_for_spreadsheet)

    return result
