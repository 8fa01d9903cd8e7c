import pytest
from unittest.mock import MagicMock

from data_models import (
    ApiSettings,
    AppendToFileAction,
    CreateFileAction,
    ErrorAction,
    ExecutionPart,
    FinishAction,
    GenerationMode,
    GenerationStatus,
    ThinkingAction,
)
from orchestrator import execute_code, execute_generation, run_generation, submit_generation
from project_state import EMPTY_RESPONSE_MESSAGE, GenerationError
from providers import CodeExecutionUnavailable
from session_models import ActiveSession


class FakeService:
    """Replays a fixed list of records and remembers how it was called."""

    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.calls = []
        self.closed = False

    def stream_generation(self, history, prompt):
        self.calls.append((list(history), prompt))
        return self._stream()

    def _stream(self):
        try:
            yield from self.records
            if self.error:
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def setup_mocks(mocker):
    """
    Creates mock objects for the external dependencies of the orchestrator:
    the SocketIO server, eventlet's thread pool and the audit log.
    """
    mock_socketio = MagicMock()
    # Run pulls inline instead of in eventlet's OS-thread pool.
    mocker.patch("orchestrator.tpool.execute", side_effect=lambda fn, *args: fn(*args))
    mock_audit = mocker.patch("orchestrator.audit_log")
    session_data = ActiveSession(name="test-session", settings=ApiSettings(api_key="test-key"))
    return {"socketio": mock_socketio, "audit_log": mock_audit, "session_data": session_data, "session_id": "sid-1"}


def _emitted(socketio, event):
    return [c.args[1] for c in socketio.emit.call_args_list if c.args[0] == event]


def test_full_generation_finishes(setup_mocks):
    # 1. ARRANGE
    mocks = setup_mocks
    service = FakeService(
        [
            ThinkingAction(content="One page"),
            CreateFileAction(file_path="index.html"),
            AppendToFileAction(file_path="index.html", content="<h1>Hi</h1>"),
            FinishAction(is_complete=True, suggestions=["Add CSS"]),
            # Anything after the terminal record is never consumed.
            CreateFileAction(file_path="late.txt"),
        ]
    )
    mocks["session_data"].service = service

    # 2. ACT
    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "A landing page")

    # 3. ASSERT
    assert state.status == GenerationStatus.FINISHED
    assert state.file_contents == {"index.html": "<h1>Hi</h1>"}
    assert state.suggestions == ["Add CSS"]
    assert mocks["session_data"].state == state
    assert service.closed is True
    assert service.calls == [([], "A landing page")]
    assert [e["action"] for e in _emitted(mocks["socketio"], "stream_action")] == [
        "THINKING",
        "CREATE_FILE",
        "APPEND_TO_FILE",
        "FINISH",
    ]
    final_update = _emitted(mocks["socketio"], "project_state_update")[-1]
    assert final_update["status"] == "finished"
    assert final_update["fileContents"] == {"index.html": "<h1>Hi</h1>"}
    # The assistant turn holds the non-terminal records as JSON lines.
    assistant_turn = state.conversation_history[-1]
    assert assistant_turn.role == "assistant"
    assert len(assistant_turn.text.splitlines()) == 3
    assert '"filePath":"index.html"' in assistant_turn.text


def test_stream_ending_without_finish_awaits_continuation(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].service = FakeService([CreateFileAction(file_path="a.txt")])

    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")

    assert state.status == GenerationStatus.AWAITING_CONTINUATION
    assert state.can_continue is True


def test_continuation_sends_prior_history(setup_mocks):
    # 1. ARRANGE
    mocks = setup_mocks
    first = FakeService([CreateFileAction(file_path="a.txt")])
    mocks["session_data"].service = first
    execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")
    second = FakeService([AppendToFileAction(file_path="a.txt", content="done"), FinishAction(is_complete=True)])
    mocks["session_data"].service = second

    # 2. ACT
    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "", GenerationMode.CONTINUE)

    # 3. ASSERT
    history, prompt = second.calls[0]
    assert [t.role for t in history] == ["user", "assistant"]
    assert prompt.startswith("Continue generating the project.")
    assert state.status == GenerationStatus.FINISHED
    assert state.file_contents == {"a.txt": "done"}


def test_error_record_stops_the_stream_and_keeps_files(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].service = FakeService(
        [CreateFileAction(file_path="a.txt"), ErrorAction(error="Quota exceeded"), CreateFileAction(file_path="b.txt")]
    )

    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")

    assert state.status == GenerationStatus.ERRORED
    assert state.last_error == "Quota exceeded"
    assert state.can_continue is True
    assert list(state.file_contents) == ["a.txt"]
    assert {"type": "error", "data": "Quota exceeded"} in _emitted(mocks["socketio"], "log_message")


def test_unexpected_stream_exception_is_classified(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].service = FakeService([CreateFileAction(file_path="a.txt")], error=RuntimeError("boom"))

    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")

    assert state.status == GenerationStatus.ERRORED
    assert state.last_error == "boom"


def test_empty_response_is_an_error_and_rolls_back_history(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].service = FakeService([])

    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")

    assert state.status == GenerationStatus.ERRORED
    assert state.last_error == EMPTY_RESPONSE_MESSAGE
    assert state.conversation_history == []


def test_missing_api_key_is_reported(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].settings = ApiSettings(api_key="")
    mocks["session_data"].service = FakeService([])

    state = execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")

    assert state.status == GenerationStatus.IDLE
    assert "API key is not set" in _emitted(mocks["socketio"], "log_message")[0]["data"]
    assert mocks["session_data"].service.calls == []


def test_submit_marks_session_streaming_before_the_stream_starts(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].service = FakeService([FinishAction(is_complete=True)])

    prompt_for_model = submit_generation(mocks["session_data"], "An app")

    assert mocks["session_data"].state.status == GenerationStatus.STREAMING
    with pytest.raises(GenerationError):
        submit_generation(mocks["session_data"], "Another app")
    state = run_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], prompt_for_model)
    assert state.status == GenerationStatus.FINISHED


def test_generation_is_audited(setup_mocks):
    mocks = setup_mocks
    mocks["session_data"].service = FakeService([FinishAction(is_complete=True)])

    execute_generation(mocks["socketio"], mocks["session_data"], mocks["session_id"], "An app")

    events = [c.args[0] for c in mocks["audit_log"].log_event.call_args_list]
    assert events == ["Generation Started", "Generation Finished"]


def test_execute_code_streams_parts(setup_mocks, mocker):
    # 1. ARRANGE
    mocks = setup_mocks
    chat = MagicMock()
    mocker.patch("orchestrator.start_execution_chat", return_value=chat)
    mock_stream = mocker.patch(
        "orchestrator.stream_code_execution",
        return_value=iter([ExecutionPart(text="Computing"), ExecutionPart(error="quota")]),
    )

    # 2. ACT
    execute_code(mocks["socketio"], mocks["session_data"], mocks["session_id"], "Sum 1..10")

    # 3. ASSERT
    mock_stream.assert_called_once_with(chat, "Sum 1..10")
    assert mocks["session_data"].execution_chat is chat
    assert _emitted(mocks["socketio"], "execution_output") == [
        {"text": "> Sum 1..10"},
        {"text": "Computing"},
        {"error": "quota"},
    ]
    assert _emitted(mocks["socketio"], "execution_finished") == [{}]


def test_execute_code_unavailable_for_provider(setup_mocks, mocker):
    mocks = setup_mocks
    mocker.patch("orchestrator.start_execution_chat", side_effect=CodeExecutionUnavailable("Google only"))

    execute_code(mocks["socketio"], mocks["session_data"], mocks["session_id"], "Sum 1..10")

    assert _emitted(mocks["socketio"], "execution_output") == [{"error": "Google only"}]
    assert mocks["session_data"].execution_chat is None


def test_execute_code_releases_the_session_when_done(setup_mocks, mocker):
    mocks = setup_mocks
    mocks["session_data"].executing = True
    mocker.patch("orchestrator.start_execution_chat", return_value=MagicMock())
    mocker.patch("orchestrator.stream_code_execution", return_value=iter([ExecutionPart(text="55")]))

    execute_code(mocks["socketio"], mocks["session_data"], mocks["session_id"], "Sum 1..10")

    assert mocks["session_data"].executing is False


def test_execute_code_releases_the_session_when_the_stream_fails(setup_mocks, mocker):
    mocks = setup_mocks
    mocker.patch("orchestrator.start_execution_chat", return_value=MagicMock())
    mocker.patch("orchestrator.stream_code_execution", side_effect=RuntimeError("socket closed"))

    with pytest.raises(RuntimeError):
        execute_code(mocks["socketio"], mocks["session_data"], mocks["session_id"], "Sum 1..10")

    assert mocks["session_data"].executing is False


def test_execute_code_releases_the_session_when_unavailable(setup_mocks, mocker):
    mocks = setup_mocks
    mocker.patch("orchestrator.start_execution_chat", side_effect=CodeExecutionUnavailable("Google only"))

    execute_code(mocks["socketio"], mocks["session_data"], mocks["session_id"], "Sum 1..10")

    assert mocks["session_data"].executing is False
