"""Parsing and rewriting of libpq connection descriptors.

Two dialects are understood:

- URI: ``postgres[ql]://[user[:password]@]host[:port][,host[:port]...][/database][?params]``
- key=value: whitespace-separated ``key=value`` tokens, values optionally
  single-quoted with backslash escapes.

Both are parsed into a structured intermediate that keeps the raw text of
everything it does not touch, so a rewritten descriptor differs from the
original only in the database it targets.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import parse_qsl, quote, unquote, urlencode

from pgprobe.exceptions import InvalidDescriptorError

URI_SCHEMES = ("postgres", "postgresql")

_URI_REST_RE = re.compile(
    r"(?P<authority>[^/?#]*)"
    r"(?P<path>/[^?#]*)?"
    r"(?:\?(?P<query>[^#]*))?"
    r"(?:#(?P<fragment>.*))?",
    re.DOTALL,
)
_KEY_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# libpq keyword asyncpg takes as a connect() argument, not a server setting.
_TIMEOUT_KEY = "connect_timeout"


@dataclass(frozen=True)
class UriDescriptor:
    """A URI-shaped descriptor split into its components.

    ``path`` excludes the leading slash and is kept percent-encoded.
    ``query`` is None when the descriptor has no ``?`` at all.
    """

    scheme: str
    authority: str
    path: str
    query: str | None = None
    fragment: str | None = None

    @property
    def database(self) -> str | None:
        return unquote(self.path) if self.path else None

    def with_database(self, database: str) -> UriDescriptor:
        return replace(self, path=quote(database, safe=""))

    def render(self) -> str:
        text = f"{self.scheme}://{self.authority}"
        if self.path or self.query is not None or self.fragment is not None:
            text += f"/{self.path}"
        if self.query is not None:
            text += f"?{self.query}"
        if self.fragment is not None:
            text += f"#{self.fragment}"
        return text


@dataclass(frozen=True)
class KeyValueToken:
    """One ``key=value`` token; ``raw`` is the token exactly as written."""

    key: str
    value: str
    raw: str


@dataclass(frozen=True)
class KeyValueDescriptor:
    """A key=value descriptor as an ordered sequence of tokens."""

    tokens: tuple[KeyValueToken, ...]

    @property
    def database(self) -> str | None:
        for token in self.tokens:
            if token.key == "dbname":
                return token.value
        return None

    def with_database(self, database: str) -> KeyValueDescriptor:
        new_token = KeyValueToken("dbname", database, f"dbname={_quote_value(database)}")
        tokens: list[KeyValueToken] = []
        replaced = False
        for token in self.tokens:
            if token.key != "dbname":
                tokens.append(token)
            elif not replaced:
                tokens.append(new_token)
                replaced = True
        if not replaced:
            tokens.append(new_token)
        return KeyValueDescriptor(tuple(tokens))

    def render(self) -> str:
        return " ".join(token.raw for token in self.tokens)


Descriptor = UriDescriptor | KeyValueDescriptor


def parse_descriptor(descriptor: str) -> Descriptor:
    """Parse a connection descriptor into its structured form.

    Args:
        descriptor: A libpq URI or key=value connection string.

    Returns:
        A UriDescriptor or KeyValueDescriptor.

    Raises:
        InvalidDescriptorError: If the text matches neither dialect.
    """
    scheme, sep, rest = descriptor.partition("://")
    if sep and scheme in URI_SCHEMES:
        return _parse_uri(scheme, rest, descriptor)
    return _parse_key_value(descriptor)


def rewrite_database(descriptor: str, database: str) -> str:
    """Return ``descriptor`` pointed at ``database`` instead.

    Credentials, host, port and every other parameter are preserved.
    A descriptor without a database gets one added.

    Args:
        descriptor: A libpq URI or key=value connection string.
        database: Name of the database to target.

    Returns:
        The rewritten descriptor in the same dialect.

    Raises:
        InvalidDescriptorError: If ``descriptor`` cannot be parsed.
    """
    return parse_descriptor(descriptor).with_database(database).render()


def asyncpg_connect_kwargs(descriptor: str) -> dict[str, Any]:
    """Translate a descriptor into keyword arguments for ``asyncpg.connect``.

    asyncpg only accepts URIs, so key=value tokens become query parameters
    of an authority-less ``postgresql://`` URI. ``connect_timeout`` is lifted
    out of the query into asyncpg's ``timeout`` argument.

    Args:
        descriptor: A libpq URI or key=value connection string.

    Returns:
        Keyword arguments with at least ``dsn``.

    Raises:
        InvalidDescriptorError: If ``descriptor`` cannot be parsed or its
            ``connect_timeout`` is not a number.
    """
    parsed = parse_descriptor(descriptor)
    if isinstance(parsed, UriDescriptor):
        params = parse_qsl(parsed.query or "", keep_blank_values=True)
        base = replace(parsed, query=None, fragment=None)
    else:
        params = [(token.key, token.value) for token in parsed.tokens]
        base = UriDescriptor(scheme="postgresql", authority="", path="")

    kwargs: dict[str, Any] = {}
    remaining: list[tuple[str, str]] = []
    for key, value in params:
        if key != _TIMEOUT_KEY:
            remaining.append((key, value))
            continue
        try:
            kwargs["timeout"] = float(value)
        except ValueError as exc:
            msg = f"connect_timeout must be a number, got {value!r}"
            raise InvalidDescriptorError(msg) from exc

    dsn = replace(base, query=urlencode(remaining, quote_via=quote) if remaining else None)
    kwargs["dsn"] = dsn.render()
    return kwargs


def _parse_uri(scheme: str, rest: str, original: str) -> UriDescriptor:
    match = _URI_REST_RE.fullmatch(rest)
    if match is None:
        msg = f"malformed connection URI: {redact_password(original)}"
        raise InvalidDescriptorError(msg)
    for host in match.group("authority").rpartition("@")[2].split(","):
        if not _valid_port(host):
            msg = f"invalid port in connection URI: {redact_password(original)}"
            raise InvalidDescriptorError(msg)
    path = match.group("path") or ""
    return UriDescriptor(
        scheme=scheme,
        authority=match.group("authority"),
        path=path[1:],
        query=match.group("query"),
        fragment=match.group("fragment"),
    )


def _valid_port(host: str) -> bool:
    """Check the optional ``:port`` of one host in a (possibly multi-host) authority."""
    if host.startswith("["):
        host = host.partition("]")[2]
    port = host.partition(":")[2]
    return not port or (port.isdigit() and 0 < int(port) <= 65535)


def _parse_key_value(text: str) -> KeyValueDescriptor:
    """Tokenize a key=value descriptor the way libpq's conninfo parser does."""
    tokens: list[KeyValueToken] = []
    pos, end = 0, len(text)
    while True:
        while pos < end and text[pos].isspace():
            pos += 1
        if pos >= end:
            break
        start = pos

        key_match = _KEY_RE.match(text, pos)
        if key_match is None:
            msg = f"expected keyword at position {pos} in connection string"
            raise InvalidDescriptorError(msg)
        key = key_match.group()
        pos = key_match.end()
        while pos < end and text[pos].isspace():
            pos += 1
        if pos >= end or text[pos] != "=":
            msg = f"missing '=' after {key!r} in connection string"
            raise InvalidDescriptorError(msg)
        pos += 1
        while pos < end and text[pos].isspace():
            pos += 1

        value, pos = _read_value(text, pos)
        tokens.append(KeyValueToken(key, value, text[start:pos]))

    if not tokens:
        msg = "empty connection string"
        raise InvalidDescriptorError(msg)
    return KeyValueDescriptor(tuple(tokens))


def _read_value(text: str, pos: int) -> tuple[str, int]:
    chars: list[str] = []
    end = len(text)
    if pos < end and text[pos] == "'":
        pos += 1
        while True:
            if pos >= end:
                msg = "unterminated quoted string in connection string"
                raise InvalidDescriptorError(msg)
            char = text[pos]
            if char == "\\" and pos + 1 < end:
                chars.append(text[pos + 1])
                pos += 2
            elif char == "'":
                return "".join(chars), pos + 1
            else:
                chars.append(char)
                pos += 1

    while pos < end and not text[pos].isspace():
        if text[pos] == "\\" and pos + 1 < end:
            chars.append(text[pos + 1])
            pos += 2
        else:
            chars.append(text[pos])
            pos += 1
    return "".join(chars), pos


def _quote_value(value: str) -> str:
    if value and not any(c.isspace() or c in "'\\" for c in value):
        return value
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


_URI_PASSWORD_RE = re.compile(r"(postgres(?:ql)?://[^:/?#@\s]*:)[^@/?#\s]*@")
_KV_PASSWORD_RE = re.compile(r"(\bpassword\s*=\s*)('(?:[^'\\]|\\.)*'|\S*)")


def redact_password(text: str) -> str:
    """Mask passwords of any descriptors embedded in ``text``.

    Handles both URI user info and ``password=`` tokens, so error messages
    and log lines can safely quote a descriptor.
    """
    text = _URI_PASSWORD_RE.sub(r"\1****@", text)
    return _KV_PASSWORD_RE.sub(r"\1****", text)
