from collections.abc import Iterable
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field

from sockproxy.utils import strutils


# While headers _should_ be ASCII, it's not uncommon for certain headers to be utf-8 encoded.
def _native(x: bytes) -> str:
    return x.decode("utf-8", "surrogateescape")


def _always_bytes(x: str | bytes) -> bytes:
    return strutils.always_bytes(x, "utf-8", "surrogateescape")


class Headers:
    """
    Ordered header container which allows both convenient access to individual
    headers as well as direct access to the underlying raw data.

    Create headers from a list of raw (header_name, header_value) byte tuples:
    >>> h = Headers([
        (b"Host", b"example.com"),
        (b"Accept", b"text/html"),
        (b"accept", b"application/xml")
    ])

    Headers are case insensitive:
    >>> h["host"]
    "example.com"

    Multiple headers are folded into a single header as per RFC 7230:
    >>> h["Accept"]
    "text/html, application/xml"

    Original casing, order and duplicates are kept in `h.fields`, and
    `bytes(h)` returns an HTTP/1 header block built from them:
    >>> print(bytes(h))
    Host: example.com
    Accept: text/html
    accept: application/xml

    Keyword arguments are appended after `fields`, with underscores in the name
    transformed to dashes:
    >>> Headers(content_type="text/plain")
    """

    fields: tuple[tuple[bytes, bytes], ...]

    def __init__(self, fields: Iterable[tuple[bytes, bytes]] = (), **headers):
        self.fields = tuple(tuple(f) for f in fields)  # type: ignore

        for key, value in self.fields:
            if not isinstance(key, bytes) or not isinstance(value, bytes):
                raise TypeError("Header fields must be bytes.")

        for name, value in headers.items():
            self.add(name.replace("_", "-"), value)

    @staticmethod
    def _kconv(key: bytes) -> bytes:
        # Headers are case-insensitive
        return key.lower()

    def get_all(self, name: str | bytes) -> list[str]:
        """
        Like `Headers.get`, but does not fold multiple headers into a single one.
        """
        key = self._kconv(_always_bytes(name))
        return [_native(v) for k, v in self.fields if self._kconv(k) == key]

    def get(self, name: str | bytes, default: str | None = None) -> str | None:
        values = self.get_all(name)
        if not values:
            return default
        return ", ".join(values)

    def add(self, name: str | bytes, value: str | bytes) -> None:
        """Append a header, keeping any existing headers with the same name."""
        self.fields += ((_always_bytes(name), _always_bytes(value)),)

    def __getitem__(self, name: str | bytes) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, bytes)):
            return False
        return bool(self.get_all(name))

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for k, _ in self.fields:
            if self._kconv(k) not in seen:
                seen.add(self._kconv(k))
                yield _native(k)

    def __len__(self) -> int:
        return len(self.fields)

    def __eq__(self, other) -> bool:
        if isinstance(other, Headers):
            return self.fields == other.fields
        return False

    def __repr__(self) -> str:
        return f"Headers[{', '.join(f'{_native(k)}: {_native(v)}' for k, v in self.fields)}]"

    def __bytes__(self) -> bytes:
        if self.fields:
            return b"\r\n".join(b": ".join(field) for field in self.fields) + b"\r\n"
        else:
            return b""

    def items(self, multi=False):
        if multi:
            return ((_native(k), _native(v)) for k, v in self.fields)
        else:
            return ((k, self[k]) for k in self)


@dataclass(frozen=True)
class InboundRequest:
    """
    A request as received from the client, before it is forwarded.
    """

    method: str
    target: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    client: str = "unknown"


@dataclass(frozen=True)
class RawWireMessage:
    """
    A complete HTTP/1.1 message ready to be written to a connection.

    `head` holds the start line, the header block and the terminating blank line,
    so that it can be written separately from `body`.
    """

    head: bytes
    body: bytes = b""

    def __bytes__(self) -> bytes:
        return self.head + self.body

    def __len__(self) -> int:
        return len(self.head) + len(self.body)


@dataclass(frozen=True)
class ParsedResponse:
    """
    A backend response split into its parts. `headers` are in wire order.
    """

    status_code: int
    reason: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""


def client_identity(headers: Headers, peername: tuple | None = None) -> str:
    """
    Best-effort identity of the client for diagnostics: the first hop in
    X-Forwarded-For, otherwise the peer host, otherwise "unknown".

    Never use this for authorization or routing.
    """
    if forwarded := headers.get("x-forwarded-for"):
        if first := forwarded.split(",")[0].strip():
            return first
    if peername:
        return str(peername[0])
    return "unknown"
