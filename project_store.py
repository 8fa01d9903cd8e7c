"""
A small, capacity-bounded store for saved projects.

Projects are kept in a single JSON file, most recent first. Saving an existing
id replaces it in place; saving a new one puts it at the front and drops
whatever falls past the capacity.
"""
import json
import logging
import os
import threading
from typing import Optional

from pydantic import ValidationError

from config import MAX_SAVED_PROJECTS, PROJECT_STORE_PATH
from data_models import Project
from tracer import trace


class ProjectStore:
    """Reads and writes the saved-project list."""

    def __init__(self, path: str = PROJECT_STORE_PATH, capacity: int = MAX_SAVED_PROJECTS):
        self.path = path
        self.capacity = capacity
        self.lock = threading.Lock()

    def _read(self) -> list[Project]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw_projects = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return []
        projects = []
        for raw in raw_projects if isinstance(raw_projects, list) else []:
            try:
                projects.append(Project.model_validate(raw))
            except ValidationError as e:
                logging.warning(f"Skipping unreadable saved project: {e.error_count()} error(s).")
        return projects

    def _write(self, projects: list[Project]) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([p.model_dump(mode="json", by_alias=True) for p in projects], f, indent=2)

    @trace
    def list_projects(self) -> list[Project]:
        with self.lock:
            return self._read()

    @trace
    def save_project(self, project: Project) -> bool:
        """Upserts `project`. Returns False if the file could not be written."""
        with self.lock:
            projects = self._read()
            index = next((i for i, p in enumerate(projects) if p.id == project.id), None)
            if index is not None:
                projects[index] = project
            else:
                projects.insert(0, project)
            try:
                self._write(projects[: self.capacity])
            except OSError as e:
                logging.error(f"Failed to save project '{project.id}': {e}")
                return False
        logging.info(f"Saved project '{project.name}' ({project.id}).")
        return True

    @trace
    def load_project(self, project_id: str) -> Optional[Project]:
        with self.lock:
            return next((p for p in self._read() if p.id == project_id), None)

    @trace
    def delete_project(self, project_id: str) -> list[Project]:
        """Removes a project and returns the remaining list."""
        with self.lock:
            remaining = [p for p in self._read() if p.id != project_id]
            try:
                self._write(remaining)
            except OSError as e:
                logging.error(f"Failed to delete project '{project_id}': {e}")
            return remaining
