# tests/test_core/test_session.py
"""Unit tests for `EditorSession`.
==================================

Document management, the message pump that applies background results on
the UI thread, completion in synchronous mode and running the active file.
"""

import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from redcli.core.CompletionEngine import CompletionResult
from redcli.core.ExecutionRunner import JobState, JobStatus
from redcli.core.Session import EditorSession
from redcli.core.TextBuffer import Position
from redcli.utils.utils import deep_merge


@pytest.fixture
def session(mock_config: dict[str, Any]) -> EditorSession:
    config = deep_merge(
        mock_config, {"execution": {"runners": {"python": [sys.executable, "-u", "{file}"]}}}
    )
    return EditorSession(config)


class TestDocuments:
    def test_active_creates_scratch_document(self, session: EditorSession) -> None:
        assert session.documents == []
        doc = session.active
        assert session.documents == [doc]
        assert doc.path is None

    def test_open_existing_and_refocus(self, session: EditorSession, test_file_path: Path) -> None:
        doc = session.open(str(test_file_path))
        assert doc is not None
        assert doc.language == "python"
        assert session.status_message.startswith("Opened test_file.py")

        session.new_document("scratch")
        assert session.active is not doc
        assert session.open(str(test_file_path)) is doc
        assert session.active is doc
        assert len(session.documents) == 2

    def test_open_missing_file_is_new_buffer(self, session: EditorSession, temp_dir: Path) -> None:
        doc = session.open(str(temp_dir / "fresh.py"))
        assert doc is not None
        assert doc.buffer.text() == ""
        assert session.status_message == "New file: fresh.py"

    def test_open_directory_reports_error(self, session: EditorSession, temp_dir: Path) -> None:
        assert session.open(str(temp_dir / "subdir")) is None
        assert "Error opening" in session.status_message

    def test_close_and_cycle(self, session: EditorSession) -> None:
        first = session.new_document("1")
        second = session.new_document("2")
        third = session.new_document("3")
        assert session.next_document() is first
        assert session.next_document(-1) is third
        session.close(third)
        assert session.active is second
        session.close()
        session.close()
        assert session.documents == []
        assert session.active_index == -1

    def test_create_rename_delete(self, session: EditorSession, temp_dir: Path) -> None:
        path = temp_dir / "made.txt"
        doc = session.create(str(path))
        assert doc is not None and path.exists()
        assert session.create(str(path)) is None

        renamed = temp_dir / "moved.txt"
        assert session.rename(str(path), str(renamed))
        assert doc.path == str(renamed)

        assert session.delete(str(renamed))
        assert doc not in session.documents
        assert not renamed.exists()

    def test_save_active_failure_is_reported(self, session: EditorSession, temp_dir: Path) -> None:
        session.new_document("data")
        assert not session.save_active(str(temp_dir / "subdir"))
        assert session.status_message.startswith("Error saving file")


class TestCompletion:
    def test_synchronous_request_fills_popup(self, session: EditorSession) -> None:
        doc = session.new_document("alphabet alpha\nal", language="text")
        doc.set_cursor(Position(1, 2))
        token = session.request_completion()
        assert token == session.completion.latest_token
        assert [s.label for s in session.suggestions] == ["alpha", "alphabet"]

        assert session.accept_suggestion()
        assert doc.buffer.line(1) == "alpha"
        assert session.suggestions == []
        doc.history.undo()
        assert doc.buffer.line(1) == "al"

    def test_empty_prefix_dismisses(self, session: EditorSession) -> None:
        doc = session.new_document("x = ", language="python")
        doc.set_cursor(Position(0, 4))
        assert session.request_completion() is None
        assert session.suggestions == []

    def test_disabled_completion(self, mock_config: dict[str, Any]) -> None:
        session = EditorSession(deep_merge(mock_config, {"completion": {"enabled": False}}))
        doc = session.new_document("pri", language="python")
        doc.set_cursor(Position(0, 3))
        assert session.request_completion() is None

    def test_async_request_is_submitted_not_ranked(self, mock_config: dict[str, Any]) -> None:
        async_engine = MagicMock()
        session = EditorSession(mock_config, async_engine=async_engine)
        doc = session.new_document("pri", language="python")
        doc.set_cursor(Position(0, 3))
        token = session.request_completion()
        async_engine.submit_task.assert_called_once_with(
            {"type": "completion", "engine": session.completion, "token": token}
        )
        assert session.suggestions == []

    def test_stale_result_from_queue_is_dropped(self, session: EditorSession) -> None:
        doc = session.new_document("pri", language="python")
        doc.set_cursor(Position(0, 3))
        context = doc.completion_context()
        token = session.completion.request(context)
        doc.insert_text("n")
        result = CompletionResult(token, context, session.completion.complete(context))
        session.messages.put({"type": "completion_result", "result": result})
        assert session.process_messages() is False
        assert session.suggestions == []


class TestMessages:
    def test_task_error_sets_status(self, session: EditorSession) -> None:
        session.messages.put({"type": "task_error", "task_type": "completion", "error": "boom"})
        assert session.process_messages()
        assert session.status_message == "Background task failed: boom"

    def test_unknown_message_is_ignored(self, session: EditorSession) -> None:
        session.messages.put({"type": "mystery"})
        assert session.process_messages() is False

    def test_output_is_split_into_lines(self, session: EditorSession) -> None:
        job = MagicMock()
        session.output_job = job
        session.output_lines = [""]
        session.messages.put({"type": "job_output", "job": job, "text": "one\ntw"})
        session.messages.put({"type": "job_output", "job": job, "text": "o\r\nthree"})
        session.process_messages()
        assert session.output_lines == ["one", "two", "three"]

    def test_job_finished_nonzero_exit(self, session: EditorSession) -> None:
        job = MagicMock()
        job.id = 7
        session.output_job = job
        session.messages.put({"type": "job_finished", "job": job, "state": JobState.completed(2)})
        session.process_messages()
        assert session.status_message == "Process exited with code 2"
        assert session.output_lines[-1] == "[Completed(2)]"


class TestExecution:
    def test_unsaved_buffer_cannot_run(self, session: EditorSession) -> None:
        session.new_document("print(1)", language="python")
        assert session.run_active() is None
        assert session.status_message == "Save the file before running it"

    def test_run_saves_and_streams_output(self, session: EditorSession, temp_dir: Path) -> None:
        path = temp_dir / "hello.py"
        doc = session.open(str(path))
        doc.insert_text("print('hi from redcli')")
        job = session.run_active()
        assert job is not None
        assert not doc.modified
        assert path.read_text() == "print('hi from redcli')"

        assert job.wait(10)
        session.process_messages()
        assert "hi from redcli" in session.output_lines
        assert session.output_lines[-1] == "[Completed(0)]"
        assert job.state.status is JobStatus.COMPLETED
        assert session.runner.jobs == []

    def test_spawn_error_goes_to_output_panel(self, mock_config: dict[str, Any], temp_dir: Path) -> None:
        session = EditorSession(
            deep_merge(mock_config, {"execution": {"runners": {"python": ["no-such-python-xyz", "{file}"]}}})
        )
        session.open(str(temp_dir / "file2.py"))
        assert session.run_active() is None
        assert "not found on PATH" in session.status_message
        assert session.output_lines[0].startswith("[Interpreter")

    def test_cancel_without_job(self, session: EditorSession) -> None:
        assert not session.cancel_job()
        assert session.status_message == "No running job"
