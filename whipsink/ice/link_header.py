"""
Link header parsing for ICE server discovery.

WHIP servers advertise STUN/TURN servers in RFC 8288 ``Link`` headers::

    Link: <stun:stun.example.net>; rel="ice-server",
          <turn:turn.example.net?transport=udp>; rel="ice-server";
          username="user"; credential="pass"; credential-type="password"

Parsing is deliberately lenient: members we do not recognise are ignored and
entries missing what their variant needs are dropped, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..errors import MalformedLinkHeader

LOG = logging.getLogger(__name__)

ENTRY_SEPARATOR = ", "
MEMBER_SEPARATOR = "; "
ICE_SERVER_REL = 'rel="ice-server"'
PASSWORD_CREDENTIAL = "password"

# prefix -> (field, trailing delimiter)
_MEMBER_PREFIXES = (
    ("<stun:", "stun", ">"),
    ("<turn:", "turn", ">"),
    ("<turns:", "turns", ">"),
    ('username="', "username", '"'),
    ('credential="', "credential", '"'),
    ('credential-type="', "credential_type", '"'),
    ('credential-type: "', "credential_type", '"'),
)


class IceServerKind(str, Enum):
    STUN = "stun"
    TURN = "turn"
    TURNS = "turns"


@dataclass(frozen=True)
class IceServer:
    """
    ICE server descriptor derived from one Link header entry.

    ``url`` is the ``host:port`` part of the link target (query parameters
    kept), without scheme and angle brackets.
    """

    kind: IceServerKind
    url: str
    username: Optional[str] = None
    credential: Optional[str] = None

    def as_url(self) -> str:
        """Format the descriptor the way webrtcbin expects it."""

        if self.kind is IceServerKind.STUN:
            return f"stun://{self.url}"
        return f"{self.kind.value}://{self.username}:{self.credential}@{self.url}"

    def redacted_url(self) -> str:
        if self.kind is IceServerKind.STUN:
            return self.as_url()
        return f"{self.kind.value}://{self.username}:***@{self.url}"


def join_link_headers(values: Iterable[str]) -> str:
    """Combine repeated ``Link`` header lines into one comma separated value."""

    return ENTRY_SEPARATOR.join(value.strip() for value in values if value and value.strip())


def _strip_member(member: str, prefix: str, delimiter: str) -> str:
    value = member[len(prefix):]
    if value.endswith(delimiter):
        value = value[: -len(delimiter)]
    return value.strip()


def _parse_members(entry: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for raw_member in entry.split(MEMBER_SEPARATOR):
        member = raw_member.strip()
        lowered = member.lower()
        for prefix, name, delimiter in _MEMBER_PREFIXES:
            if lowered.startswith(prefix):
                fields[name] = _strip_member(member, prefix, delimiter)
                break
    return fields


def _has_password_credentials(fields: Dict[str, str]) -> bool:
    credential_type = fields.get("credential_type", "")
    return (
        credential_type.lower() == PASSWORD_CREDENTIAL
        and bool(fields.get("username"))
        and bool(fields.get("credential"))
    )


def _build_server(fields: Dict[str, str], entry: str) -> Optional[IceServer]:
    # STUN wins over TURN/TURNS within the same entry.
    if "stun" in fields:
        if not fields["stun"]:
            LOG.debug("Dropping STUN link entry with empty URL: %s", entry)
            return None
        return IceServer(kind=IceServerKind.STUN, url=fields["stun"])

    for name, kind in (("turn", IceServerKind.TURN), ("turns", IceServerKind.TURNS)):
        if name not in fields:
            continue
        if not fields[name]:
            LOG.debug("Dropping %s link entry with empty URL", kind.value.upper())
            return None
        if not _has_password_credentials(fields):
            LOG.warning(
                "Ignoring %s server %s: password credentials are required",
                kind.value.upper(),
                fields[name],
            )
            return None
        return IceServer(
            kind=kind,
            url=fields[name],
            username=fields["username"],
            credential=fields["credential"],
        )

    LOG.debug("Link entry does not name a STUN/TURN server: %s", entry)
    return None


def parse_link_header(link_header: Optional[str], *, strict: bool = False) -> List[IceServer]:
    """
    Extract ICE servers from a ``Link`` header value.

    Only entries carrying ``rel="ice-server"`` are considered.  With
    ``strict=True`` a header that yields no usable server raises
    :class:`MalformedLinkHeader` instead of returning an empty list.
    """

    servers: List[IceServer] = []
    if not link_header:
        if strict:
            raise MalformedLinkHeader("Link header is empty")
        return servers

    for entry in link_header.split(ENTRY_SEPARATOR):
        if ICE_SERVER_REL not in entry.lower():
            continue
        LOG.debug("ice-server link entry: %s", entry)
        server = _build_server(_parse_members(entry), entry)
        if server is not None:
            servers.append(server)

    if strict and not servers:
        raise MalformedLinkHeader(f"no usable ice-server entry in Link header {link_header!r}")
    return servers


__all__ = [
    "IceServer",
    "IceServerKind",
    "join_link_headers",
    "parse_link_header",
]
