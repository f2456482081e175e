# redcli/core/ExecutionRunner.py
"""ExecutionRunner Module
========================
Runs the current file through an external interpreter or compiler and
streams its output back to the UI.

Each run is an :class:`ExternalJob`. The process is started with piped
stdout/stderr; one reader thread per pipe decodes output incrementally and
posts ``job_output`` messages to the UI queue as soon as bytes arrive, and a
waiter thread posts ``job_finished`` when the process exits. The UI thread
never blocks on a job.

Job states::

    Pending -> Running -> Completed(code) | Failed(reason) | Cancelled

Once a job reaches a terminal state it never leaves it; in particular a
cancelled job stays Cancelled even if its process exits normally later.

Classes:
--------
- JobStatus, JobState: Job state values.
- ExternalJob: One spawned process, its state and captured output.
- ExecutionRunner: Command table, spawning, cancellation.
"""

import codecs
import itertools
import logging
import os
import queue
import shutil
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum
from typing import IO, Any, Optional

from redcli.core.EditorErrors import SpawnError


# argv templates; "{file}" is the source path and "{dir}" its directory.
DEFAULT_RUNNERS: dict[str, list[str]] = {
    "python": ["python3", "-u", "{file}"],
    "rust": ["cargo", "run"],
    "csharp": ["dotnet", "run", "{file}"],
    "javascript": ["node", "{file}"],
    "typescript": ["npx", "ts-node", "{file}"],
    "go": ["go", "run", "{file}"],
    "ruby": ["ruby", "{file}"],
    "shell": ["sh", "{file}"],
    "php": ["php", "{file}"],
    "perl": ["perl", "{file}"],
    "lua": ["lua", "{file}"],
}

READ_CHUNK = 4096


class JobStatus(Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class JobState:
    status: JobStatus
    exit_code: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def pending(cls) -> "JobState":
        return cls(JobStatus.PENDING)

    @classmethod
    def running(cls) -> "JobState":
        return cls(JobStatus.RUNNING)

    @classmethod
    def completed(cls, exit_code: int) -> "JobState":
        return cls(JobStatus.COMPLETED, exit_code=exit_code)

    @classmethod
    def failed(cls, reason: str) -> "JobState":
        return cls(JobStatus.FAILED, reason=reason)

    @classmethod
    def cancelled(cls) -> "JobState":
        return cls(JobStatus.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def __str__(self) -> str:
        if self.status is JobStatus.COMPLETED:
            return f"Completed({self.exit_code})"
        if self.status is JobStatus.FAILED:
            return f"Failed({self.reason})"
        return self.status.value


# ==================== ExternalJob Class ====================
class ExternalJob:
    """Class ExternalJob
    ===================
    One spawned execution.

    Attributes:
        id (int): Session-unique job number.
        language (str): Language tag the command was chosen for.
        path (str): Source file that was run.
        command (list[str]): Resolved argv.
        cwd (str): Working directory of the process.
        process (Optional[subprocess.Popen]): Process handle once spawned.
        output (list[tuple[str, str]]): ``(stream, text)`` chunks in arrival order.
    """

    _ids = itertools.count(1)

    def __init__(self, language: str, path: str, command: list[str], cwd: str) -> None:
        self.id = next(self._ids)
        self.language = language
        self.path = path
        self.command = command
        self.cwd = cwd
        self.process: Optional[subprocess.Popen[bytes]] = None
        self.output: list[tuple[str, str]] = []
        self._state = JobState.pending()
        self._lock = threading.Lock()
        self._finished = threading.Event()

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    def transition(self, new_state: JobState) -> bool:
        """Moves to ``new_state`` unless the job is already terminal."""
        with self._lock:
            if self._state.is_terminal:
                return False
            self._state = new_state
        logging.debug(f"Job {self.id}: -> {new_state}")
        return True

    def append_output(self, stream: str, text: str) -> None:
        with self._lock:
            self.output.append((stream, text))

    def output_text(self, stream: Optional[str] = None) -> str:
        with self._lock:
            return "".join(text for name, text in self.output if stream in (None, name))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the process and its readers are done (tests, shutdown)."""
        return self._finished.wait(timeout)

    def __repr__(self) -> str:
        return f"<ExternalJob {self.id} {' '.join(self.command)!r} {self.state}>"


# ==================== ExecutionRunner Class ====================
class ExecutionRunner:
    """Class ExecutionRunner
    =======================
    Spawns and supervises execution jobs.

    Messages posted to ``to_ui_queue``:
        {"type": "job_started", "job": job}
        {"type": "job_output", "job": job, "stream": "stdout"|"stderr", "text": str}
        {"type": "job_finished", "job": job, "state": JobState}
    """

    def __init__(self, to_ui_queue: queue.Queue[dict[str, Any]], config: dict[str, Any]) -> None:
        settings = config.get("execution", {})
        self.to_ui_queue = to_ui_queue
        self.runners: dict[str, list[str]] = dict(DEFAULT_RUNNERS)
        for language, command in settings.get("runners", {}).items():
            if isinstance(command, str):
                command = command.split()
            self.runners[language] = list(command)
        self.kill_timeout: float = float(settings.get("kill_timeout", 3.0))
        self.jobs: list[ExternalJob] = []

    def command_for(self, language: str, source_path: str) -> tuple[list[str], str]:
        """Resolves the argv and working directory for a run."""
        template = self.runners.get(language)
        if not template:
            raise SpawnError(f"No runner configured for language '{language}'")
        path = os.path.abspath(source_path)
        directory = os.path.dirname(path)
        command = [part.format(file=path, dir=directory) for part in template]
        return command, directory

    def run(self, language: str, source_path: str) -> ExternalJob:
        """Starts ``source_path`` with the runner for ``language``.

        Raises:
            SpawnError: No runner for the language, the interpreter is not on
                PATH, or the OS refused to start the process.
        """
        command, cwd = self.command_for(language, source_path)
        if shutil.which(command[0]) is None:
            raise SpawnError(f"Interpreter '{command[0]}' not found on PATH", command)

        job = ExternalJob(language, source_path, command, cwd)
        env = os.environ.copy()
        env["PYTHONUNBUFFERED"] = "1"
        logging.info(f"ExecutionRunner: starting job {job.id}: {command} in {cwd}")
        try:
            job.process = subprocess.Popen(
                command,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            job.transition(JobState.failed(str(e)))
            logging.error(f"ExecutionRunner: failed to spawn {command}: {e}")
            raise SpawnError(f"Failed to start '{command[0]}': {e}", command) from e

        job.transition(JobState.running())
        self.jobs.append(job)
        self.to_ui_queue.put({"type": "job_started", "job": job})

        readers = [
            threading.Thread(
                target=self._pump,
                args=(job, name, pipe),
                daemon=True,
                name=f"Job{job.id}-{name}",
            )
            for name, pipe in (("stdout", job.process.stdout), ("stderr", job.process.stderr))
        ]
        for reader in readers:
            reader.start()
        threading.Thread(
            target=self._supervise, args=(job, readers), daemon=True, name=f"Job{job.id}-wait"
        ).start()
        return job

    def _pump(self, job: ExternalJob, stream: str, pipe: Optional[IO[bytes]]) -> None:
        if pipe is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = pipe.read1(READ_CHUNK)  # type: ignore[attr-defined]
                if not chunk:
                    break
                self._emit(job, stream, decoder.decode(chunk))
            self._emit(job, stream, decoder.decode(b"", final=True))
        except (OSError, ValueError) as e:
            logging.warning(f"Job {job.id}: reading {stream} failed: {e}")
        finally:
            pipe.close()

    def _emit(self, job: ExternalJob, stream: str, text: str) -> None:
        if not text:
            return
        job.append_output(stream, text)
        self.to_ui_queue.put({"type": "job_output", "job": job, "stream": stream, "text": text})

    def _supervise(self, job: ExternalJob, readers: list[threading.Thread]) -> None:
        assert job.process is not None
        code = job.process.wait()
        for reader in readers:
            reader.join()
        if code < 0:
            job.transition(JobState.failed(f"terminated by signal {-code}"))
        else:
            job.transition(JobState.completed(code))
        final = job.state
        logging.info(f"ExecutionRunner: job {job.id} finished: {final}")
        self.to_ui_queue.put({"type": "job_finished", "job": job, "state": final})
        job._finished.set()

    def cancel(self, job: ExternalJob) -> bool:
        """Marks the job Cancelled and asks its process to terminate.

        Escalates to kill after ``kill_timeout`` seconds without blocking.
        Returns False when the job had already finished.
        """
        if not job.transition(JobState.cancelled()):
            return False
        process = job.process
        if process is None:
            job._finished.set()
            return True
        if process.poll() is None:
            logging.info(f"ExecutionRunner: terminating job {job.id}")
            try:
                process.terminate()
            except ProcessLookupError:
                return True
            timer = threading.Timer(self.kill_timeout, self._kill_if_alive, args=(job,))
            timer.daemon = True
            timer.start()
        return True

    @staticmethod
    def _kill_if_alive(job: ExternalJob) -> None:
        if job.process is not None and job.process.poll() is None:
            logging.warning(f"ExecutionRunner: job {job.id} ignored SIGTERM, killing")
            job.process.kill()

    def acknowledge(self, job: ExternalJob) -> None:
        """Forgets a finished job."""
        if job.state.is_terminal and job in self.jobs:
            self.jobs.remove(job)

    @property
    def active_jobs(self) -> list[ExternalJob]:
        return [job for job in self.jobs if not job.state.is_terminal]

    def shutdown(self) -> None:
        for job in self.active_jobs:
            self.cancel(job)
