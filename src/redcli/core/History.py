# redcli/core/History.py
"""History Module
================
Undo/redo for a :class:`~redcli.core.Document.Document`.

The history listens to the document's buffer and records every applied
:class:`~redcli.core.TextBuffer.Edit`. An undo step is a group of edits;
outside a compound action each edit is its own group, inside one all edits
are collected into a single group so that multi-edit commands (replace all,
toggling comments over a selection, snippet insertion) undo in one step.

Undo re-applies the inverse of each edit of the group in reverse order; redo
re-applies the group forwards. Both go through ``TextBuffer.apply``, which
verifies that the buffer still holds the expected text, so a desynchronised
history raises ``RangeError`` instead of corrupting the document.

Classes:
--------
- History: Undo/redo stacks, compound grouping and the save point.
"""

import logging
from typing import TYPE_CHECKING, Optional

from redcli.core.EditorErrors import RangeError
from redcli.core.TextBuffer import Edit


if TYPE_CHECKING:
    from redcli.core.Document import Document


## ==================== History Class (Undo/Redo) ====================
class History:
    """Class History
    ===================
    Manages the undo and redo stacks of one document.

    Attributes:
        document (Document): The document whose buffer is tracked.
        _action_history (list[list[Edit]]): Undo stack of edit groups.
        _undone_actions (list[list[Edit]]): Redo stack of edit groups.
        _compound_depth (int): Nesting level of compound actions.
        _savepoint (Optional[int]): Undo-stack depth matching the file on
            disk, or None when that state can no longer be reached.

    Methods:
        begin_compound_action() / end_compound_action() / abort_compound_action()
        add_action(edit)
        clear()
        undo() -> bool
        redo() -> bool
        mark_saved()
        is_at_savepoint() -> bool
    """

    def __init__(self, document: "Document") -> None:
        self.document = document
        self._action_history: list[list[Edit]] = []
        self._undone_actions: list[list[Edit]] = []
        self._compound_depth = 0
        self._pending: list[Edit] = []
        self._replaying = False
        self._savepoint: Optional[int] = 0

    @property
    def can_undo(self) -> bool:
        return bool(self._action_history)

    @property
    def can_redo(self) -> bool:
        return bool(self._undone_actions)

    def begin_compound_action(self) -> None:
        """Starts a sequence of edits that should be undone/redone together."""
        if self._compound_depth == 0:
            self._pending = []
        self._compound_depth += 1
        logging.debug(f"History: Beginning compound action (depth {self._compound_depth}).")

    def end_compound_action(self) -> None:
        """Ends a compound sequence; the outermost end commits the group."""
        if self._compound_depth == 0:
            logging.warning("History: end_compound_action() without a matching begin.")
            return
        self._compound_depth -= 1
        if self._compound_depth == 0 and self._pending:
            self._push(self._pending)
            self._pending = []
            logging.debug("History: Ended compound action, committed group.")

    def abort_compound_action(self) -> None:
        """Ends a compound sequence whose edits were already reverted.

        The outermost abort drops the collected edits instead of committing
        them, so a rolled-back command leaves no undo step behind.
        """
        if self._compound_depth == 0:
            logging.warning("History: abort_compound_action() without a matching begin.")
            return
        self._compound_depth -= 1
        if self._compound_depth == 0:
            logging.debug(f"History: Aborted compound action, dropped {len(self._pending)} edit(s).")
            self._pending = []

    def add_action(self, edit: Edit) -> None:
        """Buffer listener: records one applied edit."""
        if self._replaying:
            return
        if self._compound_depth:
            self._pending.append(edit)
        else:
            self._push([edit])

    def _push(self, group: list[Edit]) -> None:
        if self._savepoint is not None and self._savepoint > len(self._action_history):
            # The saved state lived on the redo stack that is now discarded.
            self._savepoint = None
        self._action_history.append(group)
        self._undone_actions.clear()
        logging.debug(f"History: Group of {len(group)} edit(s) added. History size: {len(self._action_history)}")

    def clear(self) -> None:
        """Clears both undo and redo stacks."""
        clean = self.is_at_savepoint()
        self._action_history.clear()
        self._undone_actions.clear()
        self._pending = []
        self._compound_depth = 0
        self._savepoint = 0 if clean else None
        logging.debug("History: Undo/Redo stacks cleared.")

    def mark_saved(self) -> None:
        self._savepoint = len(self._action_history)

    def is_at_savepoint(self) -> bool:
        return self._savepoint == len(self._action_history)

    def _replay(self, edits: list[Edit]) -> None:
        """Applies ``edits`` in order, all or nothing.

        If one of them does not match the buffer, the edits applied before
        it are reverted and the RangeError propagates.
        """
        buffer = self.document.buffer
        applied: list[Edit] = []
        self._replaying = True
        try:
            for edit in edits:
                buffer.apply(edit)
                applied.append(edit)
        except RangeError:
            for edit in reversed(applied):
                buffer.apply(edit.inverted())
            raise
        finally:
            self._replaying = False

    def undo(self) -> bool:
        """Reverts the last edit group.

        Returns:
            bool: True if the document or the status message changed.

        Raises:
            RangeError: The buffer no longer matches the recorded edits.
        """
        if not self._action_history:
            self.document._set_status_message("Nothing to undo")
            return True

        group = self._action_history.pop()
        try:
            self._replay([edit.inverted() for edit in reversed(group)])
        except RangeError:
            logging.error("History: undo failed, buffer out of sync with history", exc_info=True)
            self._action_history.append(group)
            raise
        self._undone_actions.append(group)
        self.document.clear_selection()
        self.document.set_cursor(group[0].start)
        self.document._set_status_message("Action undone")
        logging.debug(f"History: Undid group of {len(group)} edit(s).")
        return True

    def redo(self) -> bool:
        """Re-applies the last undone edit group.

        Returns:
            bool: True if the document or the status message changed.

        Raises:
            RangeError: The buffer no longer matches the recorded edits.
        """
        if not self._undone_actions:
            self.document._set_status_message("Nothing to redo")
            return True

        group = self._undone_actions.pop()
        try:
            self._replay(group)
        except RangeError:
            logging.error("History: redo failed, buffer out of sync with history", exc_info=True)
            self._undone_actions.append(group)
            raise
        self._action_history.append(group)
        self.document.clear_selection()
        self.document.set_cursor(group[-1].new_end)
        self.document._set_status_message("Action redone")
        logging.debug(f"History: Redid group of {len(group)} edit(s).")
        return True
