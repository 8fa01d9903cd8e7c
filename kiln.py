"""
Main application bootstrap file.

This script initializes the Flask application and the SocketIO server, opens
the saved-project store, and registers the web routes and SocketIO event
handlers. It is responsible for starting the server and bringing all
components of the application online.
"""
import io
import logging

import debugpy
from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from flask_socketio import SocketIO

import events
from archive import ArchiveError, archive_filename, export_project_zip, import_project_zip
from audit_logger import audit_log
from config import DEBUG_MODE, SERVER_PORT
from data_models import GenerationStatus
from orchestrator import emit_loaded_project
from project_state import import_files
from project_store import ProjectStore
from tracer import trace

# --- CONFIGURATION ---
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
app = Flask(__name__)
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode="eventlet")

# --- GLOBAL INITIALIZATION ---
audit_log.register_socketio(socketio)
project_store = ProjectStore()
# Register all event handlers from the events module.
events.register_events(socketio, project_store)


# --- SERVER ROUTES ---
@app.route("/api/sessions/<session_id>/export")
@trace
def export_project(session_id: str):
    """Downloads the session's project as a ZIP archive."""
    session_data = events.chat_sessions.get(session_id)
    if not session_data:
        return jsonify({"error": "No active session."}), 404
    if not session_data.state.file_contents:
        return jsonify({"error": "There are no files to export."}), 400

    data = export_project_zip(session_data.state.file_contents)
    audit_log.log_event(
        "Project Exported",
        session_id=session_id,
        session_name=session_data.name,
        source="Server",
        destination="Client",
        details={"files": len(session_data.state.file_contents), "bytes": len(data)},
    )
    return send_file(
        io.BytesIO(data),
        mimetype="application/zip",
        as_attachment=True,
        download_name=archive_filename(session_data.state.prompt),
    )


@app.route("/api/sessions/<session_id>/import", methods=["POST"])
@trace
def import_project(session_id: str):
    """Replaces the session's project with the files of an uploaded ZIP archive."""
    session_data = events.chat_sessions.get(session_id)
    if not session_data:
        return jsonify({"error": "No active session."}), 404
    if session_data.state.status == GenerationStatus.STREAMING:
        return jsonify({"error": "Please wait for the current generation to finish."}), 409
    upload = request.files.get("archive")
    if upload is None:
        return jsonify({"error": "No archive was uploaded."}), 400

    try:
        file_contents = import_project_zip(upload.read())
    except ArchiveError as e:
        logging.warning(f"Rejected archive upload for session {session_id}: {e}")
        return jsonify({"error": str(e)}), 400

    session_data.state = import_files(file_contents, upload.filename or "project.zip")
    audit_log.log_event(
        "Project Imported",
        session_id=session_id,
        session_name=session_data.name,
        source="Client",
        destination="Server",
        details={"files": len(file_contents)},
    )
    emit_loaded_project(socketio, session_id, session_data.state)
    return jsonify({"status": "success", "files": len(file_contents)})


# --- MAIN EXECUTION ---
if __name__ == "__main__":
    if DEBUG_MODE:
        debugpy.listen(("0.0.0.0", 5678))
        app.logger.info("Debugpy server listening. Waiting for debugger to attach...")
        debugpy.wait_for_client()
        app.logger.info("Debugger attached.")

    app.logger.info(f"Starting Kiln server on http://127.0.0.1:{SERVER_PORT}")
    socketio.run(app, port=SERVER_PORT)
