"""
Session description value type.

The WHIP exchange only needs SDP as text, so this module keeps the blob opaque
and performs the light structural validation webrtc engines expect before an
answer is applied.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from .errors import SdpParseError

_LINE_RE = re.compile(r"^[a-z]=.*$")
_DIRECTIONS = ("sendrecv", "sendonly", "recvonly", "inactive")


class SdpType(str, Enum):
    """Role of a session description in the offer/answer exchange."""

    OFFER = "offer"
    ANSWER = "answer"


def _split_lines(text: str) -> List[str]:
    return [line for line in re.split(r"\r?\n", text) if line.strip()]


@dataclass(frozen=True)
class SessionDescription:
    """
    An SDP offer or answer.

    Instances are immutable and compare by value, so a description received
    from the server can be checked against what was handed to the peer.
    """

    type: SdpType
    sdp: str

    @classmethod
    def parse(cls, text: str, sdp_type: SdpType = SdpType.ANSWER) -> "SessionDescription":
        """
        Validate ``text`` and wrap it.

        Raises :class:`SdpParseError` when the body is empty, does not start with
        a ``v=`` line, or contains lines that are not ``<type>=<value>``.
        """

        if text is None:
            raise SdpParseError("SDP body is missing")
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise SdpParseError("SDP body is not valid UTF-8") from exc
        lines = _split_lines(str(text))
        if not lines:
            raise SdpParseError("SDP body is empty")
        if not lines[0].startswith("v="):
            raise SdpParseError(f"SDP must start with a version line, got {lines[0][:32]!r}")
        for number, line in enumerate(lines, start=1):
            if not _LINE_RE.match(line):
                raise SdpParseError(f"invalid SDP line {number}: {line[:64]!r}")
        return cls(type=SdpType(sdp_type), sdp=str(text))

    def as_text(self) -> str:
        """Return the description with CRLF line endings, as sent on the wire."""

        return "\r\n".join(_split_lines(self.sdp)) + "\r\n"

    def media_sections(self) -> List[Tuple[str, str]]:
        """
        Return ``(media, direction)`` for every ``m=`` section.

        The direction falls back to the session level attribute, then to
        ``sendrecv``.
        """

        session_direction = "sendrecv"
        sections: List[List[str]] = []
        for line in _split_lines(self.sdp):
            if line.startswith("m="):
                media = line[2:].split(" ", 1)[0]
                sections.append([media, ""])
                continue
            if line.startswith("a=") and line[2:] in _DIRECTIONS:
                if sections:
                    sections[-1][1] = line[2:]
                else:
                    session_direction = line[2:]
        return [(media, direction or session_direction) for media, direction in sections]

    def __str__(self) -> str:
        return self.sdp


__all__ = ["SdpType", "SessionDescription"]
