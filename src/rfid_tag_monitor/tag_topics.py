"""
MQTT topic contract for BAC RFID readers.

Readers publish tag presence on:
  <bac_name>/get/rfidtag/<reader_number>

Payload is UTF-8 text: the tag id, or the literal "NONE" when no tag is present.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

SUBSCRIPTION_TOPIC = "+/get/rfidtag/+"
NO_TAG_PAYLOAD = "NONE"

_TOPIC_SEGMENTS = 4
_WILDCARD_CHARS = ("/", "+", "#")


class TopicError(ValueError):
    """Raised when an invalid identifier is used to construct topics."""


def _validate_bac_name(bac_name: str) -> str:
    if not isinstance(bac_name, str) or not bac_name:
        raise TopicError("bac_name must be a non-empty string")
    for ch in _WILDCARD_CHARS:
        if ch in bac_name:
            raise TopicError(f"bac_name '{bac_name}' is invalid; must not contain {ch!r}")
    return bac_name


def subscription_topic(bac_name: Optional[str] = None) -> str:
    """
    Topic filter for tag reports. None subscribes to every BAC; a name narrows
    the filter to that BAC's readers.
    """
    if bac_name is None:
        return SUBSCRIPTION_TOPIC
    return f"{_validate_bac_name(bac_name)}/get/rfidtag/+"


def tag_topic(bac_name: str, reader_number: int) -> str:
    """Concrete topic a single reader publishes on."""
    if isinstance(reader_number, bool) or not isinstance(reader_number, int) or reader_number < 0:
        raise TopicError(f"reader_number must be a non-negative int, got {reader_number!r}")
    return f"{_validate_bac_name(bac_name)}/get/rfidtag/{reader_number}"


@dataclass(frozen=True, slots=True)
class InboundMessage:
    topic: str
    payload: bytes


@dataclass(frozen=True, slots=True)
class TagEvent:
    bac_name: str
    reader_number: int
    tag_id: Optional[str] = None  # None when no tag is on the reader

    @property
    def tag_present(self) -> bool:
        return self.tag_id is not None


class DecodeFailureKind(enum.Enum):
    MALFORMED_TOPIC = "malformed_topic"
    MISSING_READER_NUMBER = "missing_reader_number"


@dataclass(frozen=True, slots=True)
class DecodeFailure:
    kind: DecodeFailureKind
    raw_topic: str


DecodeResult = Union[TagEvent, DecodeFailure]


def _parse_reader_number(raw: str) -> Optional[int]:
    # Stricter than int(): no sign, whitespace or "_", unlike .NET int.TryParse; no Int32 upper bound.
    if not raw.isascii() or not raw.isdigit():
        return None
    return int(raw)


def _payload_text(payload: Union[bytes, bytearray, str]) -> str:
    if isinstance(payload, str):
        return payload
    return bytes(payload).decode("utf-8", errors="replace")


def decode_message(topic: str, payload: Union[bytes, bytearray, str]) -> DecodeResult:
    """
    Map one received (topic, payload) pair to a TagEvent, or a DecodeFailure
    when the topic does not follow <bac_name>/get/rfidtag/<reader_number>.

    Pure: no logging, no state.
    """
    segments = topic.split("/")
    if len(segments) != _TOPIC_SEGMENTS or not all(segments):
        return DecodeFailure(DecodeFailureKind.MALFORMED_TOPIC, topic)

    reader_number = _parse_reader_number(segments[3])
    if reader_number is None:
        return DecodeFailure(DecodeFailureKind.MISSING_READER_NUMBER, topic)

    text = _payload_text(payload)
    tag_id = None if text == NO_TAG_PAYLOAD else text
    return TagEvent(bac_name=segments[0], reader_number=reader_number, tag_id=tag_id)


def decode(message: InboundMessage) -> DecodeResult:
    return decode_message(message.topic, message.payload)
