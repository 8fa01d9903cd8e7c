"""
Applies decoded action records to the project state.

`apply_action` is a pure step: it takes a snapshot and a record and returns
the next snapshot. The orchestrator calls it once per record, strictly in the
order the provider adapter yields them, and publishes the result.
"""
import logging
import time
from typing import Optional

from data_models import (
    ActionRecord,
    AppendToFileAction,
    CreateFileAction,
    ErrorAction,
    FinishAction,
    GenerationStats,
    GenerationStatus,
    ProjectState,
    ThinkingAction,
)
from file_tree import add_node_to_tree


def calculate_stats(file_contents: dict[str, str], started_at: Optional[float], now: float) -> GenerationStats:
    """
    Summarizes the generated files.

    Lines are counted as the number of '\\n'-separated segments per file, the
    size is the UTF-8 byte count, and the duration is measured from the start
    of the current call.
    """
    contents = file_contents.values()
    elapsed = 0.0 if started_at is None else max(0.0, now - started_at)
    return GenerationStats(
        total_files=len(file_contents),
        total_lines=sum(len(content.split("\n")) for content in contents),
        total_size=sum(len(content.encode("utf-8")) for content in contents),
        duration=int(elapsed * 1000),
    )


def apply_action(state: ProjectState, record: ActionRecord, now: Optional[float] = None) -> ProjectState:
    """
    Returns the snapshot that results from applying `record` to `state`.

    Args:
        state: The current snapshot. It is never mutated.
        record: The next action record from the stream.
        now: A time.monotonic() reading, used for the duration statistic.
    """
    if isinstance(record, ThinkingAction):
        if not record.content:
            return state
        return state.model_copy(update={"thinking_log": [*state.thinking_log, record.content]})

    if isinstance(record, CreateFileAction):
        if not record.file_path:
            logging.warning("Ignoring CREATE_FILE without a file path.")
            return state
        # Re-creating an existing path is how the model replaces a file.
        return state.model_copy(
            update={
                "file_tree": add_node_to_tree(state.file_tree, record.file_path, "file"),
                "file_contents": {**state.file_contents, record.file_path: ""},
            }
        )

    if isinstance(record, AppendToFileAction):
        if not record.file_path or not record.content:
            return state
        if record.file_path not in state.file_contents:
            logging.debug(f"APPEND_TO_FILE for unknown path '{record.file_path}', starting from empty content.")
        existing = state.file_contents.get(record.file_path, "")
        return state.model_copy(
            update={"file_contents": {**state.file_contents, record.file_path: existing + record.content}}
        )

    if isinstance(record, FinishAction):
        if not record.is_complete:
            return state
        now = time.monotonic() if now is None else now
        return state.model_copy(
            update={
                "status": GenerationStatus.FINISHED,
                "stats": calculate_stats(state.file_contents, state.started_at, now),
                "suggestions": list(record.suggestions),
                "can_continue": False,
                "last_error": None,
            }
        )

    if isinstance(record, ErrorAction):
        return state.model_copy(
            update={
                "status": GenerationStatus.ERRORED,
                "last_error": record.message,
                "can_continue": bool(state.file_contents),
            }
        )

    logging.warning(f"Unhandled action record: {record!r}")
    return state
