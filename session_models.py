"""
Defines the state held for each connected browser session.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from data_models import ApiSettings, ProjectState
from providers import get_api_service


class ActiveSession(BaseModel):
    """
    Represents a live user session: its provider settings, the adapter built
    from them, and the latest published project snapshot.

    The orchestrator is the only writer of `state` while a generation runs;
    socket handlers replace it only when the session is not streaming.
    """

    # Allows the adapter and the SDK chat object, which are not pydantic types.
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # The display name of the session (e.g., 'Session_07AUG2025_...').
    name: str
    settings: ApiSettings
    state: ProjectState = Field(default_factory=ProjectState)
    # The provider adapter (a GenerationService) built from `settings`.
    service: Any = None
    # The code-execution chat, opened on first use.
    execution_chat: Optional[Any] = None
    # True while a code-execution request is running against `execution_chat`.
    executing: bool = False

    def apply_settings(self, settings: ApiSettings) -> None:
        """Switches provider settings and rebuilds the adapter."""
        self.settings = settings
        self.service = get_api_service(settings)
        self.execution_chat = None
