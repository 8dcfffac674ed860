"""PostgreSQL server version parsing and comparison."""

from __future__ import annotations

import re
from typing import NamedTuple

from pgprobe.exceptions import VersionUnparseableError

# SELECT version() -> "PostgreSQL 9.6.2 on x86_64-pc-linux-gnu, compiled by gcc ..."
VERBOSE_VERSION_RE = re.compile(r"^\w+ ((\d+)(\.\d+)?(\.\d+)?)")
# SHOW server_version -> "13.3 (Debian 13.3-1.pgdg100+1)"
SERVER_VERSION_RE = re.compile(r"^((\d+)(\.\d+)?(\.\d+)?)")


class ServerVersion(NamedTuple):
    """Semantic server version; tuple ordering gives version ordering."""

    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> ServerVersion:
        """Parse ``"16"``, ``"16.4"`` or ``"16.4.1"``, padding missing parts with 0.

        Raises:
            VersionUnparseableError: If ``text`` is not one to three dot-separated integers.
        """
        parts = text.strip().split(".")
        if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
            msg = f"could not parse version from {text!r}"
            raise VersionUnparseableError(msg)
        return cls(*(int(p) for p in parts))

    def gte(self, other: ServerVersion) -> bool:
        return self >= other

    def lt(self, other: ServerVersion) -> bool:
        return self < other

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def match_version(text: str, pattern: re.Pattern[str]) -> ServerVersion | None:
    """Extract a version from ``text`` using ``pattern``'s first group.

    Returns:
        The parsed version, or None if ``pattern`` does not match.
    """
    match = pattern.match(text)
    if match is None:
        return None
    return ServerVersion.parse(match.group(1))


PG16 = ServerVersion(16, 0, 0)
PG17 = ServerVersion(17, 0, 0)
