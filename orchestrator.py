"""
Drives a generation from prompt submission to the final snapshot.

A submission is validated and recorded synchronously (so two prompts can never
start two streams), then the stream is consumed in a background task: every
blocking pull from the provider runs in eventlet's thread pool, each record is
applied by the action interpreter, and the resulting snapshot is published to
the session and to the client.
"""
import logging

from eventlet import tpool

from action_interpreter import apply_action
from audit_logger import audit_log
from data_models import ExecutionPart, GenerationMode, GenerationStatus, ProjectState
from error_classifier import classify_error, create_error_action
from file_tree import find_first_file
from project_state import GenerationError, begin_generation, end_generation
from providers import CodeExecutionUnavailable, start_execution_chat, stream_code_execution
from session_models import ActiveSession
from tracer import log_event, trace

_STREAM_END = object()
_TERMINAL_ACTIONS = ("FINISH", "ERROR")


def _emit_error(socketio, session_id: str, message: str) -> None:
    socketio.emit("log_message", {"type": "error", "data": message}, to=session_id)


def emit_state(socketio, session_id: str, state: ProjectState) -> None:
    """Sends the full snapshot to the client."""
    socketio.emit("project_state_update", state.model_dump(mode="json", by_alias=True), to=session_id)


def emit_loaded_project(socketio, session_id: str, state: ProjectState) -> None:
    """Sends a freshly loaded or imported project and opens its first file."""
    emit_state(socketio, session_id, state)
    if first_file := find_first_file(state.file_tree):
        socketio.emit("select_file", {"path": first_file}, to=session_id)


@trace
def submit_generation(session_data: ActiveSession, prompt: str, mode: GenerationMode = GenerationMode.NEW) -> str:
    """
    Moves the session into `streaming` and returns the prompt for the model.

    Raises:
        GenerationError: If the prompt cannot be submitted right now.
    """
    if not session_data.settings.api_key:
        raise GenerationError("The API key is not set. Please enter it in the settings.")
    state, prompt_for_model = begin_generation(session_data.state, prompt, mode)
    session_data.state = state
    return prompt_for_model


@trace
def run_generation(socketio, session_data: ActiveSession, session_id: str, prompt_for_model: str) -> ProjectState:
    """
    Consumes the provider stream for a submitted generation.

    Records are applied strictly in arrival order. Consumption stops at the
    first terminal record and the stream is closed, which aborts the transport.
    Whatever was applied up to that point stays in the project.

    Args:
        socketio: The SocketIO server instance for real-time client communication.
        session_data: The session whose state was moved to `streaming` by submit_generation.
        session_id: The client's unique session ID.
        prompt_for_model: The prompt returned by submit_generation.

    Returns:
        The final snapshot of this call.
    """
    state = session_data.state
    # The user turn for this call is already the last history entry.
    history = state.conversation_history[:-1]
    audit_log.log_event(
        "Generation Started",
        session_id=session_id,
        session_name=session_data.name,
        source="Orchestrator",
        destination=session_data.settings.provider.value,
        details={"model": session_data.settings.model, "history_turns": len(history)},
    )
    socketio.emit("generation_started", {"status": state.status.value}, to=session_id)

    transcript: list[str] = []
    received_any = False
    records = session_data.service.stream_generation(history, prompt_for_model)
    try:
        while state.status == GenerationStatus.STREAMING:
            record = tpool.execute(next, records, _STREAM_END)
            if record is _STREAM_END:
                break
            received_any = True
            state = apply_action(state, record)
            session_data.state = state
            if record.action not in _TERMINAL_ACTIONS:
                transcript.append(record.to_wire_json())
            socketio.emit("stream_action", record.model_dump(by_alias=True), to=session_id)
            socketio.sleep(0)  # Yield to other greenlets, keeping the server responsive.
    except Exception as e:
        logging.exception(f"Generation stream failed for session {session_id}.")
        state = apply_action(state, create_error_action(e))
    finally:
        close = getattr(records, "close", None)
        if close:
            close()

    state = end_generation(state, transcript, received_any)
    session_data.state = state
    log_event("GENERATION_ENDED", {"status": state.status.value, "files": len(state.file_contents)})

    if state.status == GenerationStatus.ERRORED:
        _emit_error(socketio, session_id, state.last_error or "Code generation failed.")
    emit_state(socketio, session_id, state)
    audit_log.log_event(
        f"Generation {state.status.value.replace('_', ' ').title()}",
        session_id=session_id,
        session_name=session_data.name,
        source="Orchestrator",
        destination="Client",
        details={
            "files": len(state.file_contents),
            "can_continue": state.can_continue,
            "error": state.last_error,
        },
    )
    logging.info(f"Generation ended for session {session_id} with status '{state.status.value}'.")
    return state


@trace
def execute_code(socketio, session_data: ActiveSession, session_id: str, prompt: str) -> None:
    """
    Sends a prompt to the session's code-execution chat and streams the
    structured parts to the client as `execution_output` events.
    """
    session_data.executing = True
    try:
        if session_data.execution_chat is None:
            try:
                session_data.execution_chat = start_execution_chat(session_data.settings)
            except CodeExecutionUnavailable as e:
                socketio.emit("execution_output", {"error": str(e)}, to=session_id)
                return
            except Exception as e:
                logging.error(f"Failed to start execution session for {session_id}: {e}")
                socketio.emit("execution_output", {"error": classify_error(e)}, to=session_id)
                return

        socketio.emit("execution_output", {"text": f"> {prompt}"}, to=session_id)
        parts = stream_code_execution(session_data.execution_chat, prompt)
        while True:
            part: ExecutionPart = tpool.execute(next, parts, _STREAM_END)
            if part is _STREAM_END:
                break
            socketio.emit("execution_output", part.model_dump(exclude_none=True), to=session_id)
            socketio.sleep(0)
        socketio.emit("execution_finished", {}, to=session_id)
    finally:
        session_data.executing = False


def execute_generation(
    socketio, session_data: ActiveSession, session_id: str, prompt: str, mode: GenerationMode = GenerationMode.NEW
) -> ProjectState:
    """Submits and runs a generation in the calling greenlet."""
    try:
        prompt_for_model = submit_generation(session_data, prompt, mode)
    except GenerationError as e:
        _emit_error(socketio, session_id, str(e))
        return session_data.state
    return run_generation(socketio, session_data, session_id, prompt_for_model)
