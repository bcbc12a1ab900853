"""did:web identifier <-> HTTPS document location.

Examples:
    did:web:example.com                      -> https://example.com/.well-known/did.json
    did:web:example.com:user:alice           -> https://example.com/user/alice/did.json
    did:web:localhost%3A8443                 -> https://localhost:8443/.well-known/did.json
    did:web:example.com:path:some%2Bsubpath  -> https://example.com/path/some+subpath/did.json

Path segments use form-style escaping (``+`` for space, ``%XX`` for
everything outside ``[A-Za-z0-9_.~-]``) so that ``parse(x).did() == x`` for
any identifier whose segments are themselves canonically escaped.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List
from urllib.parse import parse_qs, quote, quote_plus, unquote_plus, urlsplit

from .exceptions import EncodingError, MalformedIdentifierError, NotAWellKnownPathError

DID_METHOD_PREFIX = "did:web:"
WELL_KNOWN_SEGMENT = ".well-known"
DID_DOCUMENT_FILENAME = "did.json"

# A '%' not followed by two hex digits
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

# Characters left unescaped when a segment is placed in a URL path
_PATH_SAFE = "$&+,:;=@"


def _has_control(text: str) -> bool:
    return any(ord(c) < 0x20 or c == "\x7f" for c in text)


def _unescape(part: str) -> str:
    """Strict form-unescape of one identifier token."""
    if _BAD_ESCAPE.search(part):
        raise EncodingError(f"invalid unescape of path part: {part!r}")
    try:
        return unquote_plus(part, errors="strict")
    except UnicodeDecodeError:
        raise EncodingError(f"invalid unescape of path part: {part!r}")


@dataclass
class DIDWebURL:
    """A parsed did:web identifier.

    Attributes:
        raw_host: Host token exactly as it appeared in the identifier
            (possibly percent-encoded, possibly carrying an escaped port).
        parts: Unescaped path segments, in order.
        query_params: Query parameters found after the last path segment.
        anchor: Fragment found after the last path segment.
    """
    raw_host: str
    parts: List[str] = field(default_factory=list)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    anchor: str = ""

    def host(self) -> str:
        """Decoded host, with a numeric port re-attached as host:port.

        Falls back to the raw host when it cannot be decoded or when the
        suffix after ':' is not a port number.
        """
        try:
            decoded = _unescape(self.raw_host)
        except EncodingError:
            return self.raw_host

        if ":" not in decoded:
            return decoded
        if decoded.count(":") > 1:
            return self.raw_host

        hostname, _, port_text = decoded.partition(":")
        if not (port_text.isascii() and port_text.isdigit()):
            return self.raw_host
        port = int(port_text)
        if port > 0:
            return f"{hostname}:{port}"
        return hostname

    def id(self) -> str:
        """Method-specific id: raw host followed by escaped path segments."""
        if not self.parts:
            return self.raw_host
        escaped = [quote_plus(part, safe="") for part in self.parts]
        return ":".join([self.raw_host, *escaped])

    def did(self) -> str:
        return DID_METHOD_PREFIX + self.id()

    def url(self) -> str:
        """HTTPS location of the DID document."""
        parts = self.parts or [WELL_KNOWN_SEGMENT]
        path = "/".join(quote(part, safe=_PATH_SAFE) for part in parts)
        return f"https://{self.host()}/{path}/{DID_DOCUMENT_FILENAME}"


def parse(identifier: str) -> DIDWebURL:
    """Parse a did:web identifier.

    Args:
        identifier: e.g. ``did:web:example.com:user:alice``.

    Returns:
        DIDWebURL for the identifier.

    Raises:
        MalformedIdentifierError: Fewer than three ':'-separated tokens,
            a prefix other than ``did:web``, an empty host, or a path
            segment that decodes to a control character.
        EncodingError: A path token is not valid percent-encoding.
    """
    tokens = identifier.split(":")
    if len(tokens) < 3 or tokens[0] != "did" or tokens[1] != "web":
        raise MalformedIdentifierError()

    result = DIDWebURL(raw_host=tokens[2])
    if not result.raw_host:
        raise MalformedIdentifierError()

    path = [_unescape(token) for token in tokens[3:] if token]
    if any(_has_control(part) for part in path):
        raise MalformedIdentifierError("invalid did, path segments must not contain control characters")

    # Rejoining the unescaped segments as a URL path separates any query or
    # fragment the last segment carried.
    try:
        split = urlsplit(f"https://{result.host()}/{'/'.join(path)}")
    except ValueError as e:
        raise MalformedIdentifierError(f"invalid did, must be in format did:web:example.org:john: {e}")

    if path:
        result.parts = [part for part in split.path.split("/") if part]
    result.anchor = split.fragment
    result.query_params = parse_qs(split.query, keep_blank_values=True)
    return result


def parse_path(path: str) -> DIDWebURL:
    """Map an inbound ``<host>/<segments...>/did.json`` path to an identifier.

    ``<host>/.well-known/did.json`` maps to the bare host identifier.

    Raises:
        NotAWellKnownPathError: Path has fewer than two segments or does not
            end in did.json.
        MalformedIdentifierError, EncodingError: From parse().
    """
    parts = path.split("/")
    if len(parts) < 2:
        raise NotAWellKnownPathError()
    if parts[-1].lower() != DID_DOCUMENT_FILENAME:
        raise NotAWellKnownPathError()

    parts = parts[:-1]
    if parts[-1].lower() == WELL_KNOWN_SEGMENT:
        parts = parts[:-1]

    return parse(DID_METHOD_PREFIX + ":".join(parts))
