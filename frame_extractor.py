"""
Recovers complete JSON objects from a growing, arbitrarily chunked text stream.

Streaming LLM APIs deliver text in chunks whose boundaries have nothing to do
with the JSON objects the model is writing. This module finds the next
balanced, string-aware, JSON-valid object in a buffer and hands back whatever
tail could still become one once more text arrives.

The buffer is an explicit value: callers thread it through `drain_frames` (or
let `iter_json_frames` do it for them), so the extractor keeps no state of its
own and can be exercised without a live stream.
"""

import json
from typing import Iterable, Iterator, Optional


def _find_closing_brace(buffer: str, start_index: int) -> int:
    """
    Scans forward from the opening brace at `start_index` and returns the index
    of the brace that balances it, or -1 if the buffer ends first.

    Braces only count outside of string literals, and an escaped quote inside a
    string does not end the string.
    """
    depth = 0
    in_string = False
    is_escaped = False
    for index in range(start_index, len(buffer)):
        char = buffer[index]
        if in_string:
            if is_escaped:
                is_escaped = False
            elif char == "\\":
                is_escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def extract_next_json_object(buffer: str) -> tuple[Optional[str], str]:
    """
    Pulls the next complete JSON object out of `buffer`.

    Returns:
        A tuple (frame, remainder):
        - (object_text, text_after_object) when a valid object was found;
        - (None, buffer_from_open_brace) when an object has started but not
          yet closed; everything before that brace is discarded;
        - (None, "") when the buffer holds no opening brace at all.

    A balanced span that is not valid JSON (for example braces inside prose
    that precedes the real output) is skipped, and scanning resumes at the
    next '{' after the rejected span's opening brace.
    """
    search_index = 0
    while True:
        start_index = buffer.find("{", search_index)
        if start_index == -1:
            return None, ""

        end_index = _find_closing_brace(buffer, start_index)
        if end_index == -1:
            return None, buffer[start_index:]

        candidate = buffer[start_index : end_index + 1]
        try:
            json.loads(candidate)
        except json.JSONDecodeError:
            search_index = start_index + 1
            continue
        return candidate, buffer[end_index + 1 :]


def drain_frames(buffer: str) -> tuple[list[str], str]:
    """
    Extracts every complete object currently in `buffer`.

    Returns the frames in order and the remainder that must be kept until more
    text arrives.
    """
    frames = []
    while True:
        frame, buffer = extract_next_json_object(buffer)
        if frame is None:
            return frames, buffer
        frames.append(frame)


def iter_json_frames(chunks: Iterable[str]) -> Iterator[str]:
    """
    Folds a stream of text chunks into a stream of JSON object frames.

    The accumulating buffer lives only for the duration of this generator, so
    one call to a provider gets exactly one buffer.
    """
    buffer = ""
    for chunk in chunks:
        if not chunk:
            continue
        frames, buffer = drain_frames(buffer + chunk)
        yield from frames
