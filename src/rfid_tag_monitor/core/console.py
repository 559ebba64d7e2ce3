"""
Console sinks for decoded tag reports.

The subscriber hands values to plain callables; these are the ones the CLI wires in.
"""

from __future__ import annotations

import logging

from rfid_tag_monitor.tag_topics import DecodeFailure, DecodeFailureKind, TagEvent

logger = logging.getLogger("rfid_tag_monitor.events")

_FAILURE_TEXT = {
    DecodeFailureKind.MALFORMED_TOPIC: "Unexpected topic in subscription",
    DecodeFailureKind.MISSING_READER_NUMBER: "Couldn't determine the reader number from the topic",
}


def format_event(event: TagEvent) -> str:
    tag = event.tag_id if event.tag_present else "not present"
    return f"BAC {event.bac_name}, Reader {event.reader_number}:  Tag is {tag}."


def format_failure(failure: DecodeFailure) -> str:
    return f"{_FAILURE_TEXT[failure.kind]}: {failure.raw_topic}"


def print_event(event: TagEvent) -> None:
    logger.info("%s", format_event(event))


def print_decode_failure(failure: DecodeFailure) -> None:
    logger.warning("%s", format_failure(failure))

