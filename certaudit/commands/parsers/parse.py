"""
Parser for the offline certificate template check.

This module defines the command-line interface for the 'parse' command, which
evaluates certificate templates exported from the template cache of a Windows
host instead of querying the directory.
"""

import argparse
from typing import Callable, Tuple

from .find import add_output_group

# Command name identifier
NAME = "parse"


def entry(options: argparse.Namespace) -> None:
    """
    Entry point for the parse command.

    Args:
        options: Parsed command-line arguments
    """
    from certaudit.commands import parse

    parse.entry(options)


def add_subparser(subparsers: argparse._SubParsersAction) -> Tuple[str, Callable]:  # type: ignore
    """
    Add the parse command subparser to the main parser.

    Args:
        subparsers: Parent parser to attach the subparser to

    Returns:
        Tuple of (command_name, entry_function) for command registration
    """
    subparser = subparsers.add_parser(
        NAME,
        help="Offline check of cached certificate templates",
        description=(
            "Parse certificate templates from an export of the registry template "
            "cache and report those allowing impersonation, as published by the "
            "CA described with -ca, -ca-host and -published."
        ),
    )

    _ = subparser.add_argument(
        "file", help="File to parse (BOF output or .reg file from registry export)"
    )

    add_output_group(subparser)

    parse_group = subparser.add_argument_group("parse options")
    _ = parse_group.add_argument(
        "-format",
        metavar="format",
        help="Input format: BOF output or Windows .reg file (default: bof)",
        choices=["bof", "reg"],
        default="bof",
    )
    _ = parse_group.add_argument(
        "-ca",
        metavar="ca name",
        help="Name of the CA publishing the templates (default: UNKNOWN)",
        default="UNKNOWN",
    )
    _ = parse_group.add_argument(
        "-ca-host",
        metavar="hostname",
        help="DNS host name of the CA publishing the templates",
    )
    _ = parse_group.add_argument(
        "-published",
        metavar="templates",
        help="Comma separated list of template names published by the CA",
        type=lambda arg: [name.strip() for name in arg.split(",") if name.strip()],
        default=[],
    )

    return NAME, entry
