"""Tests covering session description validation."""

import pytest

from conftest import ANSWER_SDP, OFFER_SDP

from whipsink.errors import SdpParseError
from whipsink.sdp import SdpType, SessionDescription


def test_parse_answer() -> None:
    answer = SessionDescription.parse(ANSWER_SDP, SdpType.ANSWER)

    assert answer.type is SdpType.ANSWER
    assert str(answer) == ANSWER_SDP
    assert answer.media_sections() == [("video", "recvonly")]


def test_as_text_normalises_line_endings() -> None:
    offer = SessionDescription(type=SdpType.OFFER, sdp=OFFER_SDP.replace("\r\n", "\n"))

    assert offer.as_text() == OFFER_SDP


def test_session_level_direction_is_inherited() -> None:
    sdp = "v=0\no=- 1 1 IN IP4 0.0.0.0\ns=-\nt=0 0\na=sendonly\nm=audio 9 RTP/AVP 111\n"

    offer = SessionDescription.parse(sdp, SdpType.OFFER)

    assert offer.media_sections() == [("audio", "sendonly")]


def test_bytes_are_decoded() -> None:
    assert SessionDescription.parse(ANSWER_SDP.encode("utf-8")).sdp == ANSWER_SDP


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   \r\n",
        "o=- 1 1 IN IP4 0.0.0.0\r\nv=0\r\n",
        "v=0\r\nthis is not sdp\r\n",
        "<html>Created</html>",
    ],
)
def test_invalid_sdp_raises(text: str) -> None:
    with pytest.raises(SdpParseError):
        SessionDescription.parse(text)


def test_descriptions_compare_by_value() -> None:
    assert SessionDescription.parse(ANSWER_SDP) == SessionDescription(type=SdpType.ANSWER, sdp=ANSWER_SDP)
