"""
The project state machine.

A ProjectState snapshot bundles the file tree, the file content store and the
generation session. The functions here are the transitions around a provider
call (begin / end) and the user's direct edits; the per-record transitions
live in action_interpreter.apply_action.

    idle --new--> streaming
    streaming --FINISH(complete)--> finished
    streaming --ERROR--> errored (can_continue if files exist)
    streaming --stream ended early--> awaiting_continuation
    finished | errored | awaiting_continuation --continue/update/new--> streaming
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from data_models import (
    ConversationTurn,
    FileNode,
    GenerationMode,
    GenerationStatus,
    Project,
    ProjectState,
)
from file_tree import add_node_to_tree, build_tree, find_node, remove_node, split_path
from prompts import CONTINUATION_PROMPT, build_update_prompt

EMPTY_RESPONSE_MESSAGE = "The model returned an empty response. Please try again."


class GenerationError(Exception):
    """Raised when a prompt cannot be submitted in the current state."""


def begin_generation(
    state: ProjectState,
    prompt: str,
    mode: GenerationMode = GenerationMode.NEW,
    now: Optional[float] = None,
) -> tuple[ProjectState, str]:
    """
    Moves the session to `streaming` and works out what to send to the model.

    Args:
        state: The current snapshot.
        prompt: The user's text. Ignored for continuations.
        mode: NEW starts from scratch, CONTINUE resumes the last call, UPDATE
              applies `prompt` to the existing project.
        now: A time.monotonic() reading marking the start of the call.

    Returns:
        The streaming snapshot (with the user turn recorded) and the prompt
        for the model.

    Raises:
        GenerationError: If the submission is not possible in this state.
    """
    if state.status == GenerationStatus.STREAMING:
        raise GenerationError("A generation is already in progress.")
    prompt = (prompt or "").strip()
    common = {
        "status": GenerationStatus.STREAMING,
        "last_error": None,
        "can_continue": False,
        "suggestions": [],
        "started_at": time.monotonic() if now is None else now,
    }

    if mode == GenerationMode.CONTINUE:
        if not state.conversation_history:
            raise GenerationError("Cannot continue: no active generation session was found.")
        prompt_for_model = CONTINUATION_PROMPT
        updates = {}
    elif mode == GenerationMode.UPDATE:
        if not prompt:
            raise GenerationError("Please describe the change to make.")
        if not state.file_contents:
            raise GenerationError("There is no existing project to update.")
        prompt_for_model = build_update_prompt(state.prompt, prompt, state.file_tree, state.file_contents)
        # The update prompt carries the whole project, so earlier turns are dropped.
        updates = {"conversation_history": [], "thinking_log": [], "stats": None}
    else:
        if not prompt:
            raise GenerationError("Please enter a prompt.")
        prompt_for_model = prompt
        updates = {
            "prompt": prompt,
            "file_tree": [],
            "file_contents": {},
            "conversation_history": [],
            "thinking_log": [],
            "stats": None,
            "project_id": None,
            "project_name": None,
            "created_at": None,
        }

    history = updates.get("conversation_history", state.conversation_history)
    updates["conversation_history"] = [*history, ConversationTurn(role="user", text=prompt_for_model)]
    return state.model_copy(update={**updates, **common}), prompt_for_model


def end_generation(state: ProjectState, transcript: list[str], received_any: bool) -> ProjectState:
    """
    Closes the bookkeeping of a provider call.

    The assistant's non-terminal records, as JSON lines, become its turn in
    the history so a later continuation has context. If nothing at all came
    back, the unanswered user turn is rolled back instead.
    """
    history = list(state.conversation_history)
    if transcript:
        history.append(ConversationTurn(role="assistant", text="\n".join(transcript)))
    elif history and history[-1].role == "user":
        history.pop()

    updates: dict = {"conversation_history": history}
    if state.status == GenerationStatus.STREAMING:
        if received_any:
            # The stream stopped without FINISH: partial output stays and the user may continue.
            updates.update(status=GenerationStatus.AWAITING_CONTINUATION, can_continue=True)
        else:
            updates.update(
                status=GenerationStatus.ERRORED,
                last_error=EMPTY_RESPONSE_MESSAGE,
                can_continue=bool(state.file_contents),
            )
    return state.model_copy(update=updates)


# --- Direct edits ---


def create_file(state: ProjectState, path: str) -> ProjectState:
    path = "/".join(split_path(path))
    if not path:
        raise GenerationError("A file path is required.")
    return state.model_copy(
        update={
            "file_tree": add_node_to_tree(state.file_tree, path, "file"),
            "file_contents": {**state.file_contents, path: state.file_contents.get(path, "")},
        }
    )


def create_folder(state: ProjectState, path: str) -> ProjectState:
    path = "/".join(split_path(path))
    if not path:
        raise GenerationError("A folder path is required.")
    return state.model_copy(update={"file_tree": add_node_to_tree(state.file_tree, path, "folder")})


def delete_node(state: ProjectState, path: str) -> ProjectState:
    """Removes a file or folder and every content entry at or beneath its path."""
    prefix = path.rstrip("/") + "/"
    contents = {p: c for p, c in state.file_contents.items() if p != path and not p.startswith(prefix)}
    removed = len(state.file_contents) - len(contents)
    logging.info(f"Deleted '{path}' ({removed} file(s) removed from the content store).")
    return state.model_copy(update={"file_tree": remove_node(state.file_tree, path), "file_contents": contents})


def update_file_content(state: ProjectState, path: str, content: str) -> ProjectState:
    """Replaces the content of an existing file, as typed in the editor."""
    node: Optional[FileNode] = find_node(state.file_tree, path)
    if path not in state.file_contents and (node is None or node.type != "file"):
        raise GenerationError(f"File '{path}' does not exist.")
    return state.model_copy(update={"file_contents": {**state.file_contents, path: content}})


# --- Persistence glue ---


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_project(state: ProjectState) -> Project:
    """Builds the record to save, reusing the project's id once it has one."""
    return Project(
        id=state.project_id or uuid.uuid4().hex,
        name=state.project_name or state.prompt[:50] or "Untitled project",
        prompt=state.prompt,
        file_tree=state.file_tree,
        file_contents=state.file_contents,
        stats=state.stats,
        created_at=state.created_at or _utc_now_iso(),
    )


def with_project_metadata(state: ProjectState, project: Project) -> ProjectState:
    return state.model_copy(
        update={"project_id": project.id, "project_name": project.name, "created_at": project.created_at}
    )


def load_project(project: Project) -> ProjectState:
    """A fresh, finished session holding a saved project."""
    return ProjectState(
        status=GenerationStatus.FINISHED,
        prompt=project.prompt,
        file_tree=project.file_tree,
        file_contents=project.file_contents,
        stats=project.stats,
        project_id=project.id,
        project_name=project.name,
        created_at=project.created_at,
    )


def import_files(file_contents: dict[str, str], name: str) -> ProjectState:
    """A fresh, finished session holding files read from an archive."""
    return ProjectState(
        status=GenerationStatus.FINISHED,
        prompt=f"Project imported from {name}",
        file_tree=build_tree(file_contents.keys()),
        file_contents=dict(file_contents),
        project_id=uuid.uuid4().hex,
        project_name=name.removesuffix(".zip"),
        created_at=_utc_now_iso(),
    )
