from . import find, parse

ENTRY_PARSERS = [
    find,
    parse,
]
