import csv
import json
import os
import threading
from datetime import datetime

from config import AUDIT_LOG_PATH


class AuditLogger:
    """
    Appends project lifecycle events (generations, saves, imports, exports) to a
    CSV trail and mirrors them to connected clients once Socket.IO is registered.
    """

    HEADER = ["Timestamp", "Event", "SessionID", "SessionName", "Source", "Destination", "Details"]

    def __init__(self, filepath: str = AUDIT_LOG_PATH):
        self.filepath = filepath
        self.lock = threading.Lock()
        self.socketio = None
        self._initialized = False

    def register_socketio(self, sio):
        """Allows the main app to register the Socket.IO instance."""
        self.socketio = sio

    def _initialize_file(self):
        """Creates the CSV file and writes the header if it doesn't exist."""
        os.makedirs(os.path.dirname(self.filepath), exist_ok=True)
        if not os.path.exists(self.filepath) or os.path.getsize(self.filepath) == 0:
            with open(self.filepath, "w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(self.HEADER)
        self._initialized = True

    def log_event(self, event, session_id=None, session_name=None, source=None, destination=None, details=None):
        """Logs a new event to the CSV file and broadcasts it over Socket.IO."""
        details_str = json.dumps(details, default=str) if details is not None else ""
        row = [
            datetime.now().isoformat(),
            str(event),
            session_id or "N/A",
            session_name or "N/A",
            source or "N/A",
            destination or "N/A",
            details_str,
        ]

        with self.lock:
            if not self._initialized:
                self._initialize_file()
            with open(self.filepath, "a", newline="", encoding="utf-8") as f:
                csv.writer(f, quoting=csv.QUOTE_ALL).writerow(row)

            if self.socketio:
                payload = {
                    "event": event,
                    "source": source,
                    "destination": destination,
                    "session_id": session_id,
                    "details": details,
                }
                self.socketio.start_background_task(self.socketio.emit, "new_audit_event", payload)


# Create a single, global instance to be used by the entire application
audit_log = AuditLogger()
