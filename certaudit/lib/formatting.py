"""
Formatting utilities for Certaudit.

This module provides functions for formatting data into human-readable forms:
case conversion, boolean rendering and fixed-width tables.
"""

from typing import Any, Callable, List, Optional, Sequence

# Type aliases for better readability
PrintFunc = Callable[..., Any]


def to_pascal_case(snake_str: str) -> str:
    """
    Convert a snake_case string to PascalCase.

    Example:
        >>> to_pascal_case("enrollee_supplies_subject")
        "EnrolleeSuppliesSubject"
    """
    components = snake_str.split("_")
    return "".join(x.title() for x in components)


def yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def format_table(
    columns: Sequence[str], rows: Sequence[Sequence[Optional[Any]]]
) -> List[str]:
    """
    Render rows as a left-aligned text table.

    Each column is as wide as its longest cell or header. A dashed line
    separates the header from the rows. None cells are rendered empty.

    Args:
        columns: Column headers
        rows: Row values, one sequence per row, in column order

    Returns:
        The table lines, without trailing whitespace

    Example:
        >>> format_table(["Name", "Host"], [["T1", "ca.corp.local"]])
        ['Name Host', '---- -------------', 'T1   ca.corp.local']
    """
    cells = [["" if value is None else str(value) for value in row] for row in rows]

    widths = [len(column) for column in columns]
    for row in cells:
        if len(row) != len(columns):
            raise ValueError(
                f"Row has {len(row)} values but the table has {len(columns)} columns"
            )
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))

    def _line(values: Sequence[str]) -> str:
        return " ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    lines = [_line(columns), _line(["-" * w for w in widths])]
    lines.extend(_line(row) for row in cells)

    return lines


def print_table(
    columns: Sequence[str],
    rows: Sequence[Sequence[Optional[Any]]],
    print_func: PrintFunc = print,
) -> None:
    for line in format_table(columns, rows):
        print_func(line)
