"""
Handles all SocketIO event logic for the application.

This module centralizes the real-time communication between the client (UI)
and the server: sessions and their provider settings, generation requests,
direct edits to the project, and the saved-project list. It is designed to be
registered by the main kiln.py script.
"""

import logging
from typing import Callable, Optional

from flask import request
from flask_socketio import SocketIO
from pydantic import ValidationError

from audit_logger import audit_log
from data_models import ApiSettings, GenerationMode, GenerationStatus, ProjectState
from orchestrator import emit_loaded_project, emit_state, execute_code, run_generation, submit_generation
from project_state import (
    GenerationError,
    create_file,
    create_folder,
    delete_node,
    load_project,
    to_project,
    update_file_content,
    with_project_metadata,
)
from project_store import ProjectStore
from session_models import ActiveSession
from tracer import global_tracer, trace
from utils import default_settings, get_timestamp, load_api_key

# --- Module-level state ---
# Holds the state for all active user connections.
chat_sessions: dict[str, ActiveSession] = {}
# A reference to the project store initialized in kiln.py
_project_store: Optional[ProjectStore] = None


@trace
def _create_new_session(session_id: str) -> ActiveSession:
    """
    Creates a new user session with the default provider settings.

    Args:
        session_id: The unique SocketIO session identifier.

    Returns:
        An initialized ActiveSession object.
    """
    new_session_name = f"Session_{get_timestamp()}"
    logging.info(f"Creating new session '{new_session_name}' for client {session_id}.")
    session_data = ActiveSession(name=new_session_name, settings=default_settings())
    session_data.apply_settings(session_data.settings)
    return session_data


def _emit_error(socketio: SocketIO, session_id: str, message: str) -> None:
    socketio.emit("log_message", {"type": "error", "data": message}, to=session_id)


def _settings_payload(settings: ApiSettings) -> dict:
    # The key itself never goes back to the browser.
    return {"provider": settings.provider.value, "model": settings.model, "hasApiKey": bool(settings.api_key)}


def _project_summaries(projects) -> list[dict]:
    return [{"id": p.id, "name": p.name, "createdAt": p.created_at} for p in projects]


def _get_idle_session(socketio: SocketIO, session_id: str) -> Optional[ActiveSession]:
    """Returns the session if it exists and is not generating; reports why otherwise."""
    session_data = chat_sessions.get(session_id)
    if not session_data:
        _emit_error(socketio, session_id, "No active session. Please refresh.")
        return None
    if session_data.state.status == GenerationStatus.STREAMING:
        _emit_error(socketio, session_id, "Please wait for the current generation to finish.")
        return None
    return session_data


def _apply_edit(socketio: SocketIO, session_id: str, edit: Callable[[ProjectState], ProjectState]) -> None:
    session_data = _get_idle_session(socketio, session_id)
    if not session_data:
        return
    try:
        session_data.state = edit(session_data.state)
    except GenerationError as e:
        _emit_error(socketio, session_id, str(e))
        return
    emit_state(socketio, session_id, session_data.state)


@trace
def register_events(socketio: SocketIO, project_store: ProjectStore):
    """
    Registers all SocketIO event handlers with the main application.

    This function acts as the entry point for this module, setting up the
    global project store reference and connecting the event handlers.
    """
    global _project_store
    _project_store = project_store

    @socketio.on("connect")
    @trace
    def handle_connect(auth=None) -> None:
        """
        Handles a new client connection by creating and initializing a new session.
        """
        session_id = request.sid
        logging.info(f"Client connected: {session_id}")
        try:
            session_data = _create_new_session(session_id)
        except Exception as e:
            logging.exception(f"Could not create session for {session_id}: {e}")
            _emit_error(socketio, session_id, "Failed to initialize session.")
            return
        chat_sessions[session_id] = session_data

        # Send initial state information to the newly connected client.
        socketio.emit("session_name_update", {"name": session_data.name}, to=session_id)
        socketio.emit("settings_update", _settings_payload(session_data.settings), to=session_id)
        emit_state(socketio, session_id, session_data.state)

    @socketio.on("disconnect")
    @trace
    def handle_disconnect(auth=None) -> None:
        """Handles client disconnection by cleaning up session data."""
        session_id = request.sid
        if session_data := chat_sessions.pop(session_id, None):
            logging.info(f"Client disconnected: {session_id}, Session: {session_data.name}")

    @socketio.on("update_settings")
    @trace
    def handle_update_settings(data: dict) -> None:
        """
        Switches the session's provider, model or API key.

        Args:
            data: A dictionary of the form {"provider": "Google", "model": "...", "apiKey": "..."}.
                  A missing key keeps the current one, unless the provider changes;
                  an empty key falls back to the one configured for the provider.
        """
        session_id = request.sid
        session_data = _get_idle_session(socketio, session_id)
        if not session_data:
            return
        data = data or {}
        merged = {**session_data.settings.model_dump(by_alias=True, mode="json"), **data}
        try:
            settings = ApiSettings.model_validate(merged)
        except ValidationError as e:
            _emit_error(socketio, session_id, f"Invalid settings: {e.errors()[0]['msg']}")
            return
        if not {"apiKey", "api_key"} & data.keys() and settings.provider != session_data.settings.provider:
            # A key entered for one provider is never sent to another.
            settings = settings.model_copy(update={"api_key": ""})
        if not settings.api_key:
            settings = settings.model_copy(update={"api_key": load_api_key(settings.provider)})
        session_data.apply_settings(settings)
        logging.info(f"Session {session_data.name} now uses {settings.provider.value} / {settings.model}.")
        socketio.emit("settings_update", _settings_payload(settings), to=session_id)

    def _start(session_id: str, prompt: str, mode: GenerationMode) -> None:
        session_data = chat_sessions.get(session_id)
        if not session_data:
            _emit_error(socketio, session_id, "No active session. Please refresh.")
            return
        try:
            prompt_for_model = submit_generation(session_data, prompt, mode)
        except GenerationError as e:
            _emit_error(socketio, session_id, str(e))
            return
        emit_state(socketio, session_id, session_data.state)
        # Stream in a background task to keep the server responsive.
        socketio.start_background_task(run_generation, socketio, session_data, session_id, prompt_for_model)

    @socketio.on("start_generation")
    @trace
    def handle_start_generation(data: dict) -> None:
        """
        Starts a new project, or applies a change to the current one.

        Args:
            data: A dictionary of the form {"prompt": "...", "mode": "new" | "update"}.
        """
        data = data or {}
        try:
            mode = GenerationMode(data.get("mode", GenerationMode.NEW.value))
        except ValueError:
            _emit_error(socketio, request.sid, f"Unknown generation mode '{data.get('mode')}'.")
            return
        _start(request.sid, data.get("prompt", ""), mode)

    @socketio.on("continue_generation")
    @trace
    def handle_continue_generation(data=None) -> None:
        """Resumes a generation that stopped before it was complete."""
        _start(request.sid, "", GenerationMode.CONTINUE)

    @socketio.on("create_file")
    @trace
    def handle_create_file(data: dict) -> None:
        path = (data or {}).get("path", "")
        _apply_edit(socketio, request.sid, lambda state: create_file(state, path))

    @socketio.on("create_folder")
    @trace
    def handle_create_folder(data: dict) -> None:
        path = (data or {}).get("path", "")
        _apply_edit(socketio, request.sid, lambda state: create_folder(state, path))

    @socketio.on("delete_node")
    @trace
    def handle_delete_node(data: dict) -> None:
        path = (data or {}).get("path", "")
        _apply_edit(socketio, request.sid, lambda state: delete_node(state, path))

    @socketio.on("update_file_content")
    @trace
    def handle_update_file_content(data: dict) -> None:
        """Stores the editor's content for a file. Not echoed back; the client already has it."""
        data = data or {}
        session_id = request.sid
        session_data = _get_idle_session(socketio, session_id)
        if not session_data:
            return
        try:
            session_data.state = update_file_content(session_data.state, data.get("path", ""), data.get("content", ""))
        except GenerationError as e:
            _emit_error(socketio, session_id, str(e))

    @socketio.on("save_project")
    @trace
    def handle_save_project(data=None) -> None:
        """Saves the current project, replacing its earlier save if it has one."""
        session_id = request.sid
        session_data = _get_idle_session(socketio, session_id)
        if not session_data:
            return
        if not session_data.state.file_contents:
            _emit_error(socketio, session_id, "There is nothing to save yet.")
            return
        project = to_project(session_data.state)
        if not _project_store.save_project(project):
            _emit_error(socketio, session_id, "Failed to save project. Storage might be full.")
            return
        session_data.state = with_project_metadata(session_data.state, project)
        audit_log.log_event(
            "Project Saved",
            session_id=session_id,
            session_name=session_data.name,
            source="Client",
            destination="ProjectStore",
            details={"project_id": project.id, "files": len(project.file_contents)},
        )
        socketio.emit("project_saved", {"id": project.id, "name": project.name}, to=session_id)
        socketio.emit("project_list_update", _project_summaries(_project_store.list_projects()), to=session_id)

    @socketio.on("request_project_list")
    @trace
    def handle_project_list_request(data=None) -> None:
        """Handles a client's request for the list of saved projects."""
        socketio.emit("project_list_update", _project_summaries(_project_store.list_projects()), to=request.sid)

    @socketio.on("load_project")
    @trace
    def handle_load_project(data: dict) -> None:
        """
        Replaces the session's project with a saved one.

        Args:
            data: A dictionary of the form {"id": "<project id>"}.
        """
        session_id = request.sid
        session_data = _get_idle_session(socketio, session_id)
        if not session_data:
            return
        project_id = (data or {}).get("id")
        project = _project_store.load_project(project_id) if project_id else None
        if not project:
            _emit_error(socketio, session_id, f"Project '{project_id}' was not found.")
            return
        session_data.state = load_project(project)
        audit_log.log_event(
            "Project Loaded",
            session_id=session_id,
            session_name=session_data.name,
            source="ProjectStore",
            destination="Client",
            details={"project_id": project.id},
        )
        emit_loaded_project(socketio, session_id, session_data.state)

    @socketio.on("delete_project")
    @trace
    def handle_delete_project(data: dict) -> None:
        session_id = request.sid
        project_id = (data or {}).get("id")
        if not project_id:
            _emit_error(socketio, session_id, "A project id is required.")
            return
        remaining = _project_store.delete_project(project_id)
        session_data = chat_sessions.get(session_id)
        audit_log.log_event(
            "Project Deleted",
            session_id=session_id,
            session_name=session_data.name if session_data else None,
            source="Client",
            destination="ProjectStore",
            details={"project_id": project_id},
        )
        socketio.emit("project_list_update", _project_summaries(remaining), to=session_id)

    @socketio.on("execute_code")
    @trace
    def handle_execute_code(data: dict) -> None:
        """
        Sends a prompt to the code-execution chat.

        Args:
            data: A dictionary of the form {"prompt": "Plot a sine wave."}.
        """
        session_id = request.sid
        session_data = chat_sessions.get(session_id)
        if not session_data:
            _emit_error(socketio, session_id, "No active session. Please refresh.")
            return
        prompt = ((data or {}).get("prompt") or "").strip()
        if not prompt:
            return
        if session_data.executing:
            _emit_error(socketio, session_id, "Code execution is already running. Please wait for it to finish.")
            return
        # Claimed here so a second request sees it before the task starts.
        session_data.executing = True
        socketio.start_background_task(execute_code, socketio, session_data, session_id, prompt)

    @socketio.on("reset_tracer")
    @trace
    def handle_reset_tracer(data=None):
        """Handles a request to reset the global tracer."""
        logging.info("Received request to reset global tracer.")
        global_tracer.reset()

    @socketio.on("get_trace_log")
    @trace
    def handle_get_trace_log(data=None):
        """Handles a request for the trace log and sends it back."""
        logging.info("Received request to get trace log.")
        socketio.emit("trace_log_response", {"trace": global_tracer.get_trace()}, to=request.sid)
