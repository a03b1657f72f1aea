"""
Offline certificate template check for Certaudit.

This module reads certificate templates from the local template cache of a
Windows host, exported either as a .reg file or as the output of a registry
query BOF, and runs the same evaluation as the `find` command.

The cache holds no CA objects, so the CA publishing the templates is described
on the command line.
"""

import argparse
import re
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional

from certaudit.commands import find
from certaudit.lib.constants import (
    ATTR_CERTIFICATE_TEMPLATES,
    ATTR_DNS_HOST_NAME,
    ATTR_EXTENDED_KEY_USAGE,
    ATTR_NAME,
    ATTR_TEMPLATE_NAME,
    TEMPLATE_CACHE_KEY,
)
from certaudit.lib.errors import DirectoryUnavailable
from certaudit.lib.logger import logging
from certaudit.lib.registry import RegEntry


class ParserType(Enum):
    """Supported input formats for template cache data."""

    BOF = "bof"  # Beacon Object File output
    REG = "reg"  # Windows Registry export file


class Parse(find.Find):
    """
    Base parser for cached certificate templates.

    Subclasses implement get_certificate_templates for their input format.
    """

    def __init__(
        self,
        file: str,
        ca: str = "UNKNOWN",
        ca_host: Optional[str] = None,
        published: Optional[List[str]] = None,
        **kwargs,  # type: ignore
    ):
        """
        Args:
            file: Path to the file containing template data
            ca: Name of the CA publishing the templates
            ca_host: DNS host name of that CA
            published: Names of the templates the CA publishes
            kwargs: Additional arguments to pass to Find
        """
        super().__init__(**kwargs)

        self.file = file
        self.ca = ca
        self.ca_host = ca_host
        self.published = published or []

        # Mappings between registry value names and LDAP attribute names
        self.mappings = {
            "DisplayName": "displayName",
            "ExtKeyUsageSyntax": ATTR_EXTENDED_KEY_USAGE,
        }

    def get_certificate_authorities(self) -> List[RegEntry]:  # type: ignore
        """
        Build a CA entry publishing the templates given on the command line.

        Returns:
            A single CA entry, or an empty list when nothing is published
        """
        if not self.published:
            logging.warning(
                "No published templates specified (-published). Nothing can be reported"
            )
            return []

        ca = RegEntry(
            attributes={
                ATTR_TEMPLATE_NAME: self.ca,
                ATTR_NAME: self.ca,
                ATTR_DNS_HOST_NAME: self.ca_host,
                ATTR_CERTIFICATE_TEMPLATES: self.published,
            }
        )

        return [ca]

    def read_file(self, encoding: str, newline: Optional[str] = None) -> str:
        """
        Read the whole input file.

        Raises:
            DirectoryUnavailable: If the file cannot be read
        """
        path = Path(self.file)
        if not path.is_file():
            raise DirectoryUnavailable(f"Input file not found: {self.file}")

        try:
            with open(path, "r", encoding=encoding, newline=newline) as f:
                return f.read()
        except (OSError, UnicodeError) as e:
            raise DirectoryUnavailable(f"Failed to read {self.file!r}: {e}") from e

    def new_template(self, template_name: str) -> RegEntry:
        template = RegEntry()
        template.set(ATTR_TEMPLATE_NAME, template_name)
        template.set(ATTR_NAME, template_name)
        return template

    def set_value(self, template: Optional[RegEntry], name: str, data: object) -> None:
        if template is None:
            return

        template.set(self.mappings.get(name, name), data)


class ParseBof(Parse):
    """
    Parser for template cache data from BOF `reg query` output.
    """

    def get_certificate_templates(self) -> List[RegEntry]:  # type: ignore
        contents = self.read_file("utf-8")

        # Remove the headers beacon inserts between output chunks
        data = re.sub(
            r"\n\n\d{2}\/\d{2} (\d{2}:){2}\d{2} UTC \[output\]\nreceived output:\n",
            "",
            contents,
        )
        lines = iter(data.splitlines())

        templates = []
        template = None

        line = next(lines, None)
        while line is not None:
            next_line = None
            try:
                if TEMPLATE_CACHE_KEY in line:
                    if template is not None:
                        templates.append(template)

                    template = self.new_template(line.split("\\")[-1].strip())

                elif line.startswith("\t"):
                    parts = re.split(r"\s+", line.strip(), maxsplit=2)
                    if len(parts) >= 2:
                        name, datatype = parts[0], parts[1]
                        value = parts[2] if len(parts) > 2 else ""

                        if datatype == "REG_DWORD":
                            self.set_value(template, name, int(value, 0))
                        elif datatype == "REG_SZ":
                            self.set_value(template, name, value)
                        elif datatype == "REG_MULTI_SZ":
                            self.set_value(
                                template, name, value.split("\\0") if value else []
                            )
                        elif datatype == "REG_BINARY":
                            # Binary data continues on indented lines
                            hex_values = []
                            next_line = next(lines, None)
                            while next_line is not None and next_line.startswith(" "):
                                hex_values.extend(re.split(r"\s+", next_line.strip()))
                                next_line = next(lines, None)

                            self.set_value(
                                template, name, bytes.fromhex("".join(hex_values))
                            )
                            line = next_line
                            continue
            except ValueError as e:
                logging.debug(f"Error parsing line {line!r}: {e}")
                if next_line is not None:
                    line = next_line
                    continue

            line = next(lines, None)

        if template is not None:
            templates.append(template)

        logging.info(f"Parsed {len(templates)} templates from BOF output")
        return templates


class ParseReg(Parse):
    """
    Parser for template cache data exported as a Windows .reg file.
    """

    def get_certificate_templates(self) -> List[RegEntry]:  # type: ignore
        contents = self.read_file("utf-16-le", newline="\r\n")

        # Byte order mark
        contents = contents.lstrip("\ufeff")

        lines = iter(contents.splitlines())

        firstline = next(lines, "")
        if "Windows Registry Editor Version" not in firstline:
            raise DirectoryUnavailable(
                "Unexpected file format, Windows registry file expected"
            )

        templates = []
        template = None

        for line in lines:
            try:
                if line.startswith("[" + TEMPLATE_CACHE_KEY):
                    if template is not None:
                        templates.append(template)

                    template = self.new_template(line.strip()[1:-1].split("\\")[-1])
                    continue

                if not line.startswith('"'):
                    continue

                key_value = line.strip().split("=", 1)
                if len(key_value) < 2:
                    continue

                name = key_value[0][1:-1]
                raw_data = key_value[1]

                if raw_data.startswith('"'):
                    # REG_SZ
                    data = raw_data[1:-1]
                elif raw_data.startswith("dword:"):
                    # REG_DWORD
                    data = int(raw_data[6:], 16)
                elif raw_data.startswith("hex:"):
                    # REG_BINARY
                    data = self._parse_hex_data(raw_data[4:], lines)
                elif raw_data.startswith("hex(7):"):
                    # REG_MULTI_SZ
                    hex_data = self._parse_hex_data(raw_data[7:], lines)
                    text = hex_data.decode("utf-16le").rstrip("\x00")
                    data = text.split("\x00") if text else []
                else:
                    logging.debug(f"Unknown value type: {raw_data}")
                    continue

                self.set_value(template, name, data)
            except ValueError as e:
                logging.debug(f"Error parsing line {line!r}: {e}")

        if template is not None:
            templates.append(template)

        logging.info(f"Parsed {len(templates)} templates from registry file")
        return templates

    def _parse_hex_data(self, initial_data: str, lines_iter: Iterator[str]) -> bytes:
        """
        Parse hex data that might continue on following lines.

        Returns:
            Bytes object containing the parsed hex data
        """
        values = []
        data = initial_data.strip()

        # A trailing backslash continues the value on the next line
        while True:
            values.extend(v for v in data.rstrip("\\").split(",") if v.strip())
            if not data.endswith("\\"):
                break

            data = next(lines_iter, "").strip()

        return bytes.fromhex("".join(v.strip() for v in values))


def get_parser(parser_type: ParserType, **kwargs) -> Parse:  # type: ignore
    """
    Factory function to get the parser for an input format.

    Raises:
        ValueError: If an unsupported parser type is provided
    """
    if parser_type == ParserType.BOF:
        return ParseBof(**kwargs)
    elif parser_type == ParserType.REG:
        return ParseReg(**kwargs)
    else:
        raise ValueError(f"Unsupported parser type: {parser_type}")


def entry(options: argparse.Namespace) -> None:
    """
    Command-line entry point for the parse command.

    Args:
        options: Command line arguments
    """
    parser_type = ParserType(options.format.lower())
    options.__delattr__("format")

    parser = get_parser(parser_type, **vars(options))
    _ = parser.find()
