# redcli/core/AsyncEngine.py
"""AsyncEngine Module
==================
This module provides the `AsyncEngine` class, which runs asynchronous tasks
in a dedicated background thread on its own `asyncio` event loop. Work that
must not stall the curses loop, such as debounced completion requests, is
submitted here and its results are posted back through a thread-safe queue
that the UI drains once per iteration.

Key Features:
-------------
- Runs an asyncio event loop in a separate daemon thread.
- Thread-safe task submission (`submit_task`) and result delivery
  (`to_ui_queue`).
- Dispatches tasks by their ``type`` key; failures are reported to the UI as
  ``task_error`` messages instead of crashing the loop.
- Graceful shutdown that cancels outstanding tasks.

Classes:
--------
- AsyncEngine: Lifecycle of the background loop, task dispatch and results.
"""

import asyncio
import logging
import queue
import threading
from typing import Any, Awaitable, Callable, Optional

from redcli.core.CompletionEngine import CompletionEngine


# Tasks (dictionaries) or None as the stop signal.
QueueItem = Optional[dict[str, Any]]


# ==================== AsyncEngine Class ====================
class AsyncEngine:
    """Class AsyncEngine
    ===================
    Manages an asyncio event loop in a background thread.

    Attributes:
        loop (Optional[asyncio.AbstractEventLoop]): The loop running in the background thread.
        thread (Optional[threading.Thread]): The background thread.
        from_ui_queue (queue.Queue): Tasks submitted by the UI thread.
        to_ui_queue (queue.Queue): Results sent back to the UI thread.
        _tasks (set): Currently running asyncio tasks.
        config (dict): Editor configuration.

    Methods:
        start(): Starts the loop thread.
        submit_task(task_data): Queues a task from the UI thread.
        stop(): Stops the loop and joins the thread.
        main_loop(): Receives tasks and schedules them.
        dispatch_task(task_data): Routes a task to its handler in `_handlers`.
    """

    def __init__(
        self, to_ui_queue: queue.Queue[dict[str, Any]], config: dict[str, Any]
    ) -> None:
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None
        self.from_ui_queue: queue.Queue[QueueItem] = queue.Queue()
        self.to_ui_queue: queue.Queue[dict[str, Any]] = to_ui_queue
        self._tasks: set[asyncio.Task[Any]] = set()
        self.config: dict[str, Any] = config
        # Task type -> coroutine returning the UI message to post, or None.
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]] = {
            "completion": self._handle_completion,
        }

    def _start_loop_in_thread(self) -> None:
        """Internal method to set up and run the event loop."""
        try:
            self.loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self.loop)
            self.loop.run_until_complete(self.main_loop())
        finally:
            if self.loop:
                if self.loop.is_running():
                    self.loop.stop()
                self.loop.close()
            logging.info("AsyncEngine event loop has shut down.")

    def start(self) -> None:
        """Starts the asyncio event loop in a background thread."""
        if self.thread is not None:
            logging.warning("AsyncEngine already started.")
            return
        logging.info("Starting AsyncEngine background thread...")
        self.thread = threading.Thread(
            target=self._start_loop_in_thread, daemon=True, name="AsyncEngineThread"
        )
        self.thread.start()

    async def main_loop(self) -> None:
        """Listens for tasks from the UI thread until a None stop signal."""
        if not self.loop:
            logging.error("Event loop not initialized before starting main_loop.")
            return

        logging.info("AsyncEngine main_loop is running and waiting for tasks.")

        while True:
            try:
                task_data = await self.loop.run_in_executor(
                    None, self.from_ui_queue.get
                )
                if task_data is None:
                    logging.info("AsyncEngine received stop signal. Breaking main_loop.")
                    break

                task = self.loop.create_task(self.dispatch_task(task_data))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

            except Exception as e:
                if self.loop and self.loop.is_running():
                    logging.error(
                        f"Critical error in AsyncEngine main_loop: {e}", exc_info=True
                    )
                    await asyncio.sleep(1)
                else:
                    logging.info("Exception in main_loop during shutdown, likely normal")
                    break

        await self._shutdown_tasks()

    async def dispatch_task(self, task_data: dict[str, Any]) -> None:
        """Routes a task to the handler registered for its ``type``.

        Handler failures are posted as ``task_error`` messages; an unknown
        type is only logged.
        """
        task_type = task_data.get("type")
        handler = self._handlers.get(str(task_type))
        if handler is None:
            logging.warning(f"AsyncEngine received unknown task type: {task_type}")
            return
        logging.debug(f"AsyncEngine dispatching '{task_type}' to {handler.__name__}")

        try:
            message = await handler(task_data)
        except asyncio.CancelledError:
            logging.debug(f"AsyncEngine task '{task_type}' cancelled")
            raise
        except Exception as e:
            logging.error(f"Async task '{task_type}' failed: {e}", exc_info=True)
            self.to_ui_queue.put({"type": "task_error", "task_type": task_type, "error": str(e)})
            return
        if message is not None:
            self.to_ui_queue.put(message)

    async def _handle_completion(self, task_data: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Runs a debounced completion request; None if it was superseded."""
        engine = task_data.get("engine")
        token = task_data.get("token")
        if not isinstance(engine, CompletionEngine) or not isinstance(token, int):
            raise ValueError("Missing or invalid 'engine' or 'token' for completion task.")
        result = await engine.run_request(token)
        if result is None:
            return None
        return {"type": "completion_result", "result": result}

    def submit_task(self, task_data: dict[str, Any]) -> None:
        """Thread-safe method for the UI thread to submit a task."""
        self.from_ui_queue.put(task_data)

    async def _shutdown_tasks(self) -> None:
        """Cancels all running async tasks."""
        if not self._tasks:
            return
        logging.info(f"Cancelling {len(self._tasks)} outstanding async tasks...")
        tasks_to_cancel = list(self._tasks)
        for task in tasks_to_cancel:
            task.cancel()
        await asyncio.gather(*tasks_to_cancel, return_exceptions=True)
        logging.info("All async tasks cancelled.")

    def stop(self) -> None:
        """Gracefully and thread-safely stops the asyncio event loop and its tasks."""
        if not self.thread or not self.loop or not self.thread.is_alive():
            logging.debug("AsyncEngine.stop() called, but no active loop or thread to stop.")
            return

        logging.info("Stopping AsyncEngine...")
        try:
            self.from_ui_queue.put(None)
            self.thread.join(timeout=2.0)
            if self.thread.is_alive():
                logging.error("AsyncEngine thread did not stop gracefully within the timeout.")
                self.loop.call_soon_threadsafe(self.loop.stop)
            else:
                logging.info("AsyncEngine thread has been successfully stopped and joined.")
        except Exception as e:
            logging.error(
                f"An exception occurred while stopping AsyncEngine thread: {e}",
                exc_info=True,
            )
