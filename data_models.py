"""
Defines the core data structures for the application using Pydantic.

This module provides the validated models shared by the stream decoder, the
action interpreter, the project state machine and the persistence layer.
Wire and storage formats use camelCase keys; the Python attributes are
snake_case and the camelCase names are declared as aliases, so a model can be
built from either form and dumped back with `by_alias=True`.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

DEFAULT_ERROR_MESSAGE = "An unknown error occurred during code generation."


class _WireModel(BaseModel):
    """Base for models that travel over the wire under camelCase names."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire_json(self) -> str:
        """Serializes the model exactly as the streaming protocol spells it."""
        return self.model_dump_json(by_alias=True)


# --- Action records: the units of the streaming protocol ---


class ThinkingAction(_WireModel):
    """A plan note from the model. It never touches files."""

    action: Literal["THINKING"] = "THINKING"
    content: str = ""


class CreateFileAction(_WireModel):
    """Declares a new file, or overwrites an existing one with empty content."""

    action: Literal["CREATE_FILE"] = "CREATE_FILE"
    file_path: str = Field(..., alias="filePath")


class AppendToFileAction(_WireModel):
    """Appends a fragment to a file's content, in arrival order."""

    action: Literal["APPEND_TO_FILE"] = "APPEND_TO_FILE"
    file_path: str = Field(..., alias="filePath")
    content: str = ""


class FinishAction(_WireModel):
    """Terminal success. `suggestions` are follow-up prompts for the user."""

    action: Literal["FINISH"] = "FINISH"
    is_complete: bool = Field(False, alias="isComplete")
    suggestions: list[str] = Field(default_factory=list)

    @field_validator("suggestions", mode="before")
    @classmethod
    def _null_suggestions(cls, value):
        # Models occasionally emit "suggestions": null on finish.
        return [] if value is None else value


class ErrorAction(_WireModel):
    """Terminal failure, either emitted by the model or built from a transport error."""

    action: Literal["ERROR"] = "ERROR"
    error: str = DEFAULT_ERROR_MESSAGE

    @property
    def message(self) -> str:
        return self.error


ActionRecord = Annotated[
    Union[ThinkingAction, CreateFileAction, AppendToFileAction, FinishAction, ErrorAction],
    Field(discriminator="action"),
]

action_record_adapter: TypeAdapter = TypeAdapter(ActionRecord)


# --- Project state ---


class FileNode(BaseModel):
    """One entry of the virtual file tree. `path` is the '/'-joined ancestor names."""

    name: str
    path: str
    type: Literal["file", "folder"]
    children: list["FileNode"] = Field(default_factory=list)


class GenerationStats(_WireModel):
    """Statistics captured when a generation finishes."""

    total_files: int = Field(0, alias="totalFiles")
    total_lines: int = Field(0, alias="totalLines")
    # Size in UTF-8 bytes.
    total_size: int = Field(0, alias="totalSize")
    # Wall-clock duration in milliseconds.
    duration: int = 0


class GenerationStatus(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINISHED = "finished"
    ERRORED = "errored"
    AWAITING_CONTINUATION = "awaiting_continuation"


class GenerationMode(str, Enum):
    """How a submitted prompt relates to the current project."""

    NEW = "new"
    CONTINUE = "continue"
    UPDATE = "update"


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    text: str


class ProjectState(_WireModel):
    """
    A snapshot of the project being generated and of the generation session.

    Snapshots are treated as immutable values: every transition returns a new
    ProjectState and the session object publishes it.
    """

    status: GenerationStatus = GenerationStatus.IDLE
    # The original request that produced the project.
    prompt: str = ""
    file_tree: list[FileNode] = Field(default_factory=list, alias="fileTree")
    file_contents: dict[str, str] = Field(default_factory=dict, alias="fileContents")
    conversation_history: list[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")
    thinking_log: list[str] = Field(default_factory=list, alias="thinkingLog")
    last_error: Optional[str] = Field(default=None, alias="lastError")
    suggestions: list[str] = Field(default_factory=list)
    # True when an errored or interrupted generation already produced output.
    can_continue: bool = Field(False, alias="canContinue")
    stats: Optional[GenerationStats] = None
    # time.monotonic() value captured when the current call began.
    started_at: Optional[float] = Field(default=None, exclude=True)
    project_id: Optional[str] = Field(default=None, alias="projectId")
    project_name: Optional[str] = Field(default=None, alias="projectName")
    created_at: Optional[str] = Field(default=None, alias="createdAt")


# --- Persistence and settings ---


class Project(_WireModel):
    """A saved project record as kept by the project store."""

    id: str
    name: str
    prompt: str = ""
    file_tree: list[FileNode] = Field(default_factory=list, alias="fileTree")
    file_contents: dict[str, str] = Field(default_factory=dict, alias="fileContents")
    stats: Optional[GenerationStats] = None
    created_at: str = Field(..., alias="createdAt")


class Provider(str, Enum):
    GOOGLE = "Google"
    AVALAI = "AvalAI"
    GAPGPT = "GapGPT"
    TALKBOT = "TalkBot"


class ApiSettings(_WireModel):
    provider: Provider = Provider.GOOGLE
    api_key: str = Field("", alias="apiKey")
    model: str = "gemini-2.5-flash"


# --- Code execution output ---


class ExecutableCode(BaseModel):
    language: Optional[str] = None
    code: str = ""


class CodeExecutionResult(BaseModel):
    outcome: Optional[str] = None
    output: str = ""


class ExecutionPart(BaseModel):
    """One structured part streamed back by the code-execution chat."""

    text: Optional[str] = None
    executable_code: Optional[ExecutableCode] = None
    code_execution_result: Optional[CodeExecutionResult] = None
    # Service-level failure, already classified for display.
    error: Optional[str] = None


# Resolve the self-reference of FileNode.children.
FileNode.model_rebuild()
