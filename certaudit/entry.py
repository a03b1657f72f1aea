# PYTHON_ARGCOMPLETE_OK
import argparse
import logging
import sys

import argcomplete

from certaudit import version
from certaudit.commands.parsers import ENTRY_PARSERS
from certaudit.lib import logger
from certaudit.lib.errors import DirectoryUnavailable, handle_error


def main() -> None:
    logger.init()

    print(version.BANNER, file=sys.stderr)

    if "-debug" in sys.argv or "--debug" in sys.argv:
        sys.argv = [arg for arg in sys.argv if arg not in ["-debug", "--debug"]]
        logger.logging.setLevel(logging.DEBUG)
        logger.set_verbose(True)
    else:
        logger.logging.setLevel(logging.INFO)
        logger.set_verbose(False)

    for arg in sys.argv:
        if arg.lower() in ["--version", "-v", "-version"]:
            return

    parser = argparse.ArgumentParser(
        add_help=False,
        description="Find AD CS certificate templates allowing user impersonation",
    )

    _ = parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Show Certaudit's version number and exit",
        default=argparse.SUPPRESS,
    )
    _ = parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help="Show this help message and exit",
    )
    _ = parser.add_argument(
        "-debug",
        action="store_true",
        help="Turn on debug output and stacktraces",
        default=argparse.SUPPRESS,
    )

    subparsers = parser.add_subparsers(help="Action", dest="action", required=True)

    actions = {}

    for entry_parser in ENTRY_PARSERS:
        action, entry = entry_parser.add_subparser(subparsers)
        actions[action] = entry

    argcomplete.autocomplete(parser, always_complete_options=False)

    # Without an action, check the directory with the ambient Kerberos credentials
    options = parser.parse_args(sys.argv[1:] or ["find"])

    try:
        actions[options.action](options)
    except DirectoryUnavailable as e:
        logger.logging.error(f"Directory unavailable: {e}")
        handle_error()
        sys.exit(1)
    except Exception as e:
        logger.logging.error(f"Got error: {e}")
        handle_error()
        sys.exit(1)


if __name__ == "__main__":
    main()
