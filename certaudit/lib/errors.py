"""
Error types and error reporting helpers for Certaudit.

Exceptions:
    DirectoryUnavailable: The directory data source could not be reached or queried
    MalformedAttribute: A directory attribute is present but cannot be interpreted

Functions:
    handle_error: Print a stacktrace in verbose mode, or a hint otherwise
"""

import traceback
from typing import Any

from certaudit.lib.logger import is_verbose, logging


class DirectoryUnavailable(Exception):
    """
    Raised when the PKI configuration container cannot be reached, bound or queried.

    The evaluation never starts on incomplete input, so this error always aborts
    the run and is reported by the command-line entry point.
    """


class MalformedAttribute(ValueError):
    """
    Raised when a directory attribute holds a value of an unexpected shape.

    Attributes:
        attribute: Name of the offending attribute
        value: The value that could not be interpreted
    """

    def __init__(self, attribute: str, value: Any) -> None:
        self.attribute = attribute
        self.value = value
        super().__init__(f"Malformed value for attribute {attribute!r}: {value!r}")


def handle_error(is_warning: bool = False) -> None:
    """
    Report the exception currently being handled.

    In verbose mode the full traceback is printed; otherwise a hint on how to
    get it is logged.

    Args:
        is_warning: Log the hint as a warning instead of an error
    """
    if is_verbose():
        traceback.print_exc()
    else:
        msg = "Use -debug to print a stacktrace"
        if is_warning:
            logging.warning(msg)
        else:
            logging.error(msg)
