"""
File handling utilities for Certaudit.

This module provides functions for writing result files with a fallback to
stdout when the file cannot be written.
"""

import os
import uuid

from certaudit.lib.errors import handle_error
from certaudit.lib.logger import logging


def try_to_save_file(data: str, output_path: str, abort_on_fail: bool = False) -> str:
    """
    Try to write data to a file, or to stdout if writing fails.

    If the file already exists, the user is asked to confirm overwriting.

    Args:
        data: Text to write
        output_path: Path to output file
        abort_on_fail: If True, re-raise instead of falling back to stdout

    Returns:
        The path written to, or "stdout"
    """
    logging.debug(f"Attempting to write data to {output_path!r}")

    # Keep the output in the working directory
    output_path = output_path.replace("\\", "_").replace("/", "_").replace(":", "_")

    output_path = _handle_file_exists(output_path)

    try:
        with open(output_path, "w") as f:
            f.write(data)
        logging.debug(f"Data written to {output_path!r}")
        return output_path
    except OSError as e:
        if abort_on_fail:
            logging.error(f"Error writing output file: {e}")
            raise
        logging.error(f"Error writing output file: {e}. Dumping to stdout instead")
        handle_error()
        print(data)
        return "stdout"


def _handle_file_exists(path: str) -> str:
    """
    Ask before overwriting an existing file.

    If the user declines, a UUID is appended to the file name.

    Returns:
        Final path to use (either original or new unique path)
    """
    if os.path.exists(path):
        overwrite = input(
            f"File {path!r} already exists. Overwrite? (y/n - saying no will save with a unique filename): "
        )
        if overwrite.strip().lower() != "y":
            base, ext = os.path.splitext(path)
            new_path = f"{base}_{uuid.uuid4()}{ext}"
            logging.debug(f"Using alternative filename: {new_path!r}")
            return new_path
    return path
