"""
Parser for the certificate template impersonation check.

This module defines the command-line interface for the 'find' command, which
reads certificate templates and enterprise CAs over LDAP and reports templates
that allow requesting certificates for arbitrary identities.
"""

import argparse
from typing import Callable, Tuple

from . import target

# Command name identifier
NAME = "find"


def entry(options: argparse.Namespace) -> None:
    """
    Entry point for the find command.

    Args:
        options: Parsed command-line arguments
    """
    from certaudit.commands import find

    find.entry(options)


def add_output_group(subparser: argparse.ArgumentParser) -> None:
    """
    Add the result file options shared by find and parse.
    """
    output_group = subparser.add_argument_group("output options")
    _ = output_group.add_argument(
        "-json",
        action="store_true",
        help="Also write the findings as JSON",
    )
    _ = output_group.add_argument(
        "-csv",
        action="store_true",
        help="Also write the findings as CSV",
    )
    _ = output_group.add_argument(
        "-output",
        action="store",
        metavar="prefix",
        help="Filename prefix for writing results to (default: current timestamp)",
    )


def add_subparser(subparsers: argparse._SubParsersAction) -> Tuple[str, Callable]:  # type: ignore
    """
    Add the find command subparser to the main parser.

    Args:
        subparsers: Parent parser to attach the subparser to

    Returns:
        Tuple of (command_name, entry_function) for command registration
    """
    subparser = subparsers.add_parser(
        NAME,
        help="Find templates allowing impersonation through the directory",
        description=(
            "Read certificate templates and enterprise CAs from the PKI configuration "
            "container and report published templates where the enrollee supplies the "
            "subject and requests are issued without manager approval."
        ),
    )

    add_output_group(subparser)

    target.add_argument_group(subparser)

    return NAME, entry
