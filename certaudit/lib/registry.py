"""
Registry-backed directory entries.

Certificate templates cached in the registry are parsed into RegEntry objects,
which expose the same accessors as LDAPEntry so they flow through the same
directory conversion code.
"""

from typing import List, Union

from certaudit.lib.ldap import LDAPEntry


class RegEntry(LDAPEntry):
    """
    Entry built from registry values rather than an LDAP search result.

    Values are stored decoded under "attributes"; raw values are derived from
    them on demand.
    """

    def __init__(self, *args, **kwargs) -> None:  # type: ignore
        super().__init__(*args, **kwargs)
        if "attributes" not in self:
            self["attributes"] = {}

    def get_raw(self, key: str) -> Union[bytes, List[bytes], None]:
        """
        Get a raw (bytes) representation of an attribute value.

        - String values are encoded to bytes
        - List values have each string item encoded to bytes
        - Other values are returned as-is
        """
        data = self.get(key)

        if isinstance(data, str):
            return data.encode()
        elif isinstance(data, list):
            return [x.encode() if isinstance(x, str) else x for x in data]

        return data
