"""
Turns recovered JSON frames into validated action records.

A frame that balances its braces but does not describe a known action is
logged and dropped. One bad frame must never cost the records that follow it.
"""
import logging
from typing import Iterable, Iterator, Optional

from pydantic import ValidationError

from data_models import ActionRecord, action_record_adapter
from frame_extractor import iter_json_frames


def parse_action_record(frame: str) -> Optional[ActionRecord]:
    """
    Validates a single JSON frame against the action-record schema.

    Returns:
        The typed record, or None if the frame is not a valid action.
    """
    try:
        return action_record_adapter.validate_json(frame)
    except ValidationError as e:
        logging.warning(f"Skipping malformed action record ({e.error_count()} error(s)): {frame[:200]}")
        return None


def iter_action_records(text_deltas: Iterable[str]) -> Iterator[ActionRecord]:
    """
    Decodes the assistant's text deltas into action records, in arrival order.

    All deltas of one provider call share a single frame buffer, so a record
    may be split across any number of deltas.
    """
    for frame in iter_json_frames(text_deltas):
        record = parse_action_record(frame)
        if record is not None:
            yield record
