# redcli/core/Session.py
"""Session Module
================
The editor session: the explicit context object that owns the open
documents, the execution jobs, the completion engine and the message queue
that background work reports into.

The UI calls :meth:`EditorSession.process_messages` once per loop iteration;
it drains the queue without blocking and applies each message on the UI
thread. Background work never touches documents directly.
"""

import logging
import os
import queue
from typing import Any, Optional

from redcli.core.AsyncEngine import AsyncEngine
from redcli.core.CompletionEngine import CompletionEngine, CompletionResult, Suggestion
from redcli.core.Document import Document
from redcli.core.EditorErrors import SpawnError
from redcli.core.ExecutionRunner import ExecutionRunner, ExternalJob, JobStatus


logger = logging.getLogger("redcli")


# ==================== EditorSession Class ====================
class EditorSession:
    """Class EditorSession
    =====================
    Owned state of one editor instance.

    Attributes:
        config (dict): Editor configuration.
        messages (queue.Queue): Results from background threads.
        documents (list[Document]): Open documents.
        active_index (int): Index of the focused document.
        runner (ExecutionRunner): Execution jobs.
        completion (CompletionEngine): Completion requests.
        suggestions (list[Suggestion]): Current popup contents.
        suggestion_index (int): Highlighted popup row.
        output_lines (list[str]): Output panel contents of the last job.
        status_message (str): Latest status-bar message.
    """

    def __init__(
        self,
        config: dict[str, Any],
        messages: Optional[queue.Queue[dict[str, Any]]] = None,
        async_engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.config = config
        self.messages: queue.Queue[dict[str, Any]] = messages or queue.Queue()
        self.async_engine = async_engine
        self.documents: list[Document] = []
        self.active_index = -1
        self.runner = ExecutionRunner(self.messages, config)
        self.completion = CompletionEngine(
            config, submit=async_engine.submit_task if async_engine else None
        )
        self.suggestions: list[Suggestion] = []
        self.suggestion_index = 0
        self.output_lines: list[str] = []
        self.output_job: Optional[ExternalJob] = None
        self.status_message = ""

    def _set_status_message(self, message: str) -> None:
        self.status_message = message
        logger.debug(f"Status: {message}")

    # ---- documents -----------------------------------------------------

    @property
    def active(self) -> Document:
        if not self.documents:
            self.new_document()
        return self.documents[self.active_index]

    def _add(self, document: Document) -> Document:
        self.documents.append(document)
        self.active_index = len(self.documents) - 1
        self.dismiss_completion()
        return document

    def new_document(self, text: str = "", language: Optional[str] = None) -> Document:
        return self._add(
            Document(text, config=self.config, language=language, on_status=self._set_status_message)
        )

    def find_document(self, path: str) -> Optional[Document]:
        target = os.path.abspath(path)
        for document in self.documents:
            if document.path and os.path.abspath(document.path) == target:
                return document
        return None

    def open(self, path: str) -> Optional[Document]:
        """Opens ``path`` (or focuses it if already open).

        A missing file yields an empty document that will be created on
        save. I/O errors are reported and return None.
        """
        existing = self.find_document(path)
        if existing is not None:
            self.active_index = self.documents.index(existing)
            return existing
        if not os.path.exists(path):
            document = Document(path=path, config=self.config, on_status=self._set_status_message)
            self._set_status_message(f"New file: {document.name}")
            return self._add(document)
        try:
            document = Document.open(path, self.config, on_status=self._set_status_message)
        except OSError as e:
            logger.error(f"Failed to open '{path}': {e}")
            self._set_status_message(f"Error opening {os.path.basename(path)}: {e}")
            return None
        self._set_status_message(f"Opened {document.name} ({document.encoding})")
        return self._add(document)

    def create(self, path: str) -> Optional[Document]:
        """Creates an empty file on disk and opens it."""
        try:
            with open(path, "x", encoding="utf-8"):
                pass
        except OSError as e:
            self._set_status_message(f"Cannot create {os.path.basename(path)}: {e}")
            return None
        return self.open(path)

    def delete(self, path: str) -> bool:
        """Deletes the file and closes its document, if open."""
        try:
            os.remove(path)
        except OSError as e:
            self._set_status_message(f"Cannot delete {os.path.basename(path)}: {e}")
            return False
        document = self.find_document(path)
        if document is not None:
            self.close(document)
        self._set_status_message(f"Deleted {os.path.basename(path)}")
        return True

    def rename(self, old: str, new: str) -> bool:
        """Renames a file; an open document follows it."""
        try:
            os.rename(old, new)
        except OSError as e:
            self._set_status_message(f"Cannot rename {os.path.basename(old)}: {e}")
            return False
        document = self.find_document(old)
        if document is not None:
            document.path = new
            try:
                document.mtime = os.path.getmtime(new)
            except OSError:
                document.mtime = None
        self._set_status_message(f"Renamed to {os.path.basename(new)}")
        return True

    def close(self, document: Optional[Document] = None) -> None:
        document = document or self.active
        if document not in self.documents:
            return
        index = self.documents.index(document)
        self.documents.remove(document)
        if index < self.active_index or self.active_index >= len(self.documents):
            self.active_index = max(0, self.active_index - 1)
        if not self.documents:
            self.active_index = -1
        self.dismiss_completion()

    def next_document(self, step: int = 1) -> Document:
        if self.documents:
            self.active_index = (self.active_index + step) % len(self.documents)
        self.dismiss_completion()
        return self.active

    def save_active(self, path: Optional[str] = None) -> bool:
        document = self.active
        try:
            document.save(path)
        except OSError as e:
            logger.error(f"Failed to save '{path or document.path}': {e}")
            self._set_status_message(f"Error saving file: {e}")
            return False
        return True

    def check_external_changes(self) -> list[Document]:
        """Documents whose file changed on disk since it was read."""
        return [doc for doc in self.documents if doc.has_external_changes()]

    # ---- execution -----------------------------------------------------

    def run_active(self) -> Optional[ExternalJob]:
        """Saves the active document and runs it."""
        document = self.active
        if not document.path:
            self._set_status_message("Save the file before running it")
            return None
        if document.modified and not self.save_active():
            return None
        try:
            job = self.runner.run(document.language, document.path)
        except SpawnError as e:
            self.output_lines = [f"[{e}]"]
            self._set_status_message(str(e))
            return None
        self.output_job = job
        self.output_lines = [f"$ {' '.join(job.command)}", ""]
        self._set_status_message(f"Running {document.name}...")
        return job

    def cancel_job(self, job: Optional[ExternalJob] = None) -> bool:
        job = job or self.output_job
        if job is None or not self.runner.cancel(job):
            self._set_status_message("No running job")
            return False
        self._set_status_message(f"Job {job.id} cancelled")
        return True

    def _append_output(self, text: str) -> None:
        # The last entry of output_lines is the line still being written.
        pieces = (self.output_lines.pop() if self.output_lines else "") + text
        self.output_lines.extend(pieces.replace("\r\n", "\n").split("\n"))

    # ---- completion ----------------------------------------------------

    def request_completion(self) -> Optional[int]:
        """Issues a completion request for the cursor, or dismisses the popup."""
        if not self.completion.enabled:
            return None
        document = self.active
        prefix = document.completion_prefix()
        if len(prefix) < self.completion.min_prefix:
            self.dismiss_completion()
            return None
        context = document.completion_context()
        token = self.completion.request(context)
        if self.async_engine is None:
            # No background loop (lightweight mode): rank in place.
            self._show_result(CompletionResult(token, context, self.completion.complete(context)))
        return token

    def dismiss_completion(self) -> None:
        self.completion.cancel_pending()
        self.suggestions = []
        self.suggestion_index = 0

    def _show_result(self, result: CompletionResult) -> bool:
        suggestions = self.completion.accept(result, self.active.version if self.documents else None)
        if suggestions is None:
            return False
        self.suggestions = suggestions
        self.suggestion_index = 0
        return True

    def accept_suggestion(self) -> bool:
        if not self.suggestions:
            return False
        suggestion = self.suggestions[self.suggestion_index]
        document = self.active
        document.history.begin_compound_action()
        try:
            document.apply_completion(suggestion)
        finally:
            document.history.end_compound_action()
        self.suggestions = []
        return True

    # ---- message pump --------------------------------------------------

    def process_messages(self, limit: int = 200) -> bool:
        """Drains up to ``limit`` background messages; True if a redraw is needed."""
        changed = False
        for _ in range(limit):
            try:
                message = self.messages.get_nowait()
            except queue.Empty:
                break
            changed = self._handle_message(message) or changed
        return changed

    def _handle_message(self, message: dict[str, Any]) -> bool:
        kind = message.get("type")
        if kind == "completion_result":
            return self._show_result(message["result"])
        if kind == "job_output":
            if message.get("job") is self.output_job:
                self._append_output(message.get("text", ""))
                return True
            return False
        if kind == "job_started":
            return False
        if kind == "job_finished":
            job: ExternalJob = message["job"]
            state = message.get("state", job.state)
            if state.status is JobStatus.COMPLETED and state.exit_code:
                self._set_status_message(f"Process exited with code {state.exit_code}")
            else:
                self._set_status_message(f"Job {job.id}: {state}")
            if job is self.output_job:
                self._append_output(f"\n[{state}]")
            self.runner.acknowledge(job)
            return True
        if kind == "task_error":
            self._set_status_message(f"Background task failed: {message.get('error')}")
            return True
        logger.warning(f"EditorSession: unknown message type {kind!r}")
        return False

    def shutdown(self) -> None:
        self.runner.shutdown()
        if self.async_engine is not None:
            self.async_engine.stop()
