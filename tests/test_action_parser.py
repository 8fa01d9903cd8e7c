import logging

from action_parser import iter_action_records, parse_action_record
from data_models import (
    AppendToFileAction,
    CreateFileAction,
    ErrorAction,
    FinishAction,
    ThinkingAction,
)


def test_parse_each_action_kind():
    assert parse_action_record('{"action": "THINKING", "content": "plan"}') == ThinkingAction(content="plan")
    assert parse_action_record('{"action": "CREATE_FILE", "filePath": "a.txt"}') == CreateFileAction(file_path="a.txt")
    assert parse_action_record(
        '{"action": "APPEND_TO_FILE", "filePath": "a.txt", "content": "x"}'
    ) == AppendToFileAction(file_path="a.txt", content="x")
    assert parse_action_record('{"action": "ERROR", "error": "boom"}') == ErrorAction(error="boom")


def test_finish_defaults_and_null_suggestions():
    finish = parse_action_record('{"action": "FINISH", "isComplete": true, "suggestions": null}')

    assert isinstance(finish, FinishAction)
    assert finish.is_complete is True
    assert finish.suggestions == []
    assert parse_action_record('{"action": "FINISH"}').is_complete is False


def test_error_without_message_uses_default():
    record = parse_action_record('{"action": "ERROR"}')

    assert record.message == "An unknown error occurred during code generation."


def test_unknown_action_is_dropped_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        assert parse_action_record('{"action": "DELETE_EVERYTHING"}') is None
    assert "Skipping malformed action record" in caplog.text


def test_missing_required_field_is_dropped():
    assert parse_action_record('{"action": "CREATE_FILE"}') is None
    assert parse_action_record('{"content": "no action"}') is None


def test_iter_action_records_skips_bad_frames_and_keeps_order():
    deltas = [
        'Sure! {"action": "THINKING", "con',
        'tent": "plan"}\n{"action": "NOPE"}\n{"action": "CREATE_FILE", ',
        '"filePath": "index.html"}\n{"action": "APPEND_TO_FILE", "filePath": "index.html", "content": "<h1>{hi}</h1>"}',
        '\n{"action": "FINISH", "isComplete": true}',
    ]

    records = list(iter_action_records(deltas))

    assert [r.action for r in records] == ["THINKING", "CREATE_FILE", "APPEND_TO_FILE", "FINISH"]
    assert records[2].content == "<h1>{hi}</h1>"


def test_wire_json_uses_protocol_names():
    record = AppendToFileAction(file_path="a.txt", content="x")

    assert parse_action_record(record.to_wire_json()) == record
    assert '"filePath":"a.txt"' in record.to_wire_json()
