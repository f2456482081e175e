# redcli/ui/DrawScreen.py
"""DrawScreen.py
========================
DrawScreen: the class responsible for rendering the Redcli editor interface with curses.

It is responsible for:
- displaying text coloured by the document's highlight spans,
- drawing line numbers,
- highlighting search matches (the current match stands out) and the selection,
- the completion popup and the output panel of the last execution job,
- rendering the status bar,
- correct cursor positioning and scrolling.

Wide Unicode characters are measured with wcwidth and are never split in half
when a line is scrolled horizontally.
"""

import curses
import logging
from typing import TYPE_CHECKING, Any

from wcwidth import wcwidth

from redcli.core.Document import Document
from redcli.core.ExecutionRunner import JobStatus
from redcli.utils.utils import CALM_BG_IDX, WHITE_FG_IDX, get_file_icon


if TYPE_CHECKING:
    from redcli.core.Redcli import Redcli


Token = tuple[str, int]


## ================= class DrawScreen ==============================
class DrawScreen:
    """DrawScreen Class
    =========================
    Renders the active document of the editor session.

    Layout from the top: text area, optional output panel, a separator line,
    and the status bar on the last row.

    Attributes:
        MIN_WINDOW_WIDTH (int): Minimum allowed width of the editor window.
        MIN_WINDOW_HEIGHT (int): Minimum allowed height of the editor window.
        POPUP_MAX_ROWS (int): Maximum number of completion rows shown.
        editor (Redcli): The controller owning the session and scroll state.
        config (dict[str, Any]): Editor configuration dictionary.
        stdscr (curses.window): The main curses window object.
        colors (dict[str, int]): Colour/attribute per highlight kind and UI element.
        _text_start_x (int): X offset where the text area begins.

    Methods:
        draw(): Renders the whole screen.
        text_area_height(): Rows available for text under the current layout.
        truncate_string(s, max_width): Clips a string to a visual width.
        _draw_single_line(...): Draws one line of tokens with horizontal scroll.
        _draw_line_numbers(), _draw_search_highlights(), _draw_selection(),
        _draw_completion_popup(), _draw_output_panel(), _draw_status_bar()
        _position_cursor(): Places the terminal cursor, adjusting scroll.
    """

    MIN_WINDOW_WIDTH = 20
    MIN_WINDOW_HEIGHT = 5
    POPUP_MAX_ROWS = 8

    def __init__(self, editor: "Redcli", config: dict[str, Any]) -> None:
        self.editor = editor
        self.config = config
        self.stdscr = editor.stdscr
        self.colors = editor.colors
        self._text_start_x: int = 0

        if not hasattr(self.editor, "visible_lines"):
            h, _ = self.stdscr.getmaxyx()
            self.editor.visible_lines = h - 2

        self._init_status_colors()

    @property
    def document(self) -> Document:
        return self.editor.document

    # colors xterm-236/ TTY
    def _init_status_colors(self) -> None:
        """Creates status bar pairs based on terminal capabilities.
        - 256-color: white on xterm-236 (#303030).
        - 16-color: white on black.
        - 8-color / TTY: white on terminal background.
        """
        try:
            curses.use_default_colors()
        except curses.error:
            pass

        pair_norm, pair_err = 30, 31
        max_colors = curses.COLORS

        if max_colors >= 256:
            fg_idx, bg_idx = WHITE_FG_IDX, CALM_BG_IDX
        elif max_colors >= 16:
            fg_idx, bg_idx = curses.COLOR_WHITE, curses.COLOR_BLACK
        else:
            fg_idx, bg_idx = curses.COLOR_WHITE, -1

        try:
            curses.init_pair(pair_norm, fg_idx, bg_idx)
            curses.init_pair(pair_err, fg_idx, bg_idx)
        except curses.error as exc:
            logging.warning("init_pair failed (%s) – roll back to A_REVERSE", exc)
            self.colors["status"] = curses.A_REVERSE
            self.colors["status_error"] = curses.A_REVERSE | curses.A_BOLD
            return

        self.colors["status"] = curses.color_pair(pair_norm)
        self.colors["status_error"] = curses.color_pair(pair_err) | curses.A_BOLD

    def _needs_full_redraw(self) -> bool:
        resized = self.editor.last_window_size != self.stdscr.getmaxyx()
        force = getattr(self.editor, "_force_full_redraw", False)
        return resized or force

    # ---------------------  Layout  -------------------
    def output_panel_height(self) -> int:
        if not getattr(self.editor, "output_visible", False):
            return 0
        height, _ = self.stdscr.getmaxyx()
        wanted = int(self.config.get("execution", {}).get("output_panel_height", 8))
        # Keep at least a few text rows.
        return max(0, min(wanted, height - 2 - 3))

    def text_area_height(self) -> int:
        height, _ = self.stdscr.getmaxyx()
        return max(1, height - 2 - self.output_panel_height())

    # ---------------------  Safe Left Cut  -------------------
    def _safe_cut_left(self, s: str, cells_to_skip: int) -> str:
        """Cuts off exactly cells_to_skip screen cells (not characters!) from the left,
        ensuring that we do NOT cut a wide character in half.
        """
        skipped = 0
        res = []
        for ch in s:
            w = self.editor.get_char_width(ch)
            if skipped + w <= cells_to_skip:
                skipped += w
                continue
            if skipped < cells_to_skip < skipped + w:
                skipped += w
                continue
            res.append(ch)
        return "".join(res)

    def _should_draw_text(self) -> bool:
        height, width = self.stdscr.getmaxyx()
        if self.editor.visible_lines <= 0:
            logging.debug("DrawScreen _should_draw_text: No visible lines area.")
            return False
        if height < self.MIN_WINDOW_HEIGHT or width < self.MIN_WINDOW_WIDTH:
            logging.debug(f"DrawScreen _should_draw_text: Window too small ({width}x{height}).")
            return False
        return True

    def _tokens_for_line(self, index: int) -> list[Token]:
        """Turns the highlighter's spans for one line into (text, attr) tokens."""
        text = self.document.buffer.line(index)
        default_attr = self.colors.get("default", curses.A_NORMAL)
        return [
            (text[span.start : span.end], self.colors.get(span.kind, default_attr))
            for span in self.document.highlighter.spans(index)
        ]

    def _get_visible_content_and_highlight(self) -> list[tuple[int, list[Token]]]:
        """Returns (line_index, tokens) for each visible line."""
        start_line = self.editor.scroll_top
        end_line = min(start_line + self.editor.visible_lines, self.document.buffer.line_count())
        if start_line >= end_line:
            return []
        return [(index, self._tokens_for_line(index)) for index in range(start_line, end_line)]

    def _draw_text_with_syntax_highlighting(self) -> None:
        if not self._should_draw_text():
            return
        visible_content_data = self._get_visible_content_and_highlight()
        _h, window_width = self.stdscr.getmaxyx()
        for screen_row, line_data in enumerate(visible_content_data):
            self._draw_single_line(screen_row, line_data, window_width, self._text_start_x)

    def _draw_single_line(
        self,
        screen_row: int,
        line_data: tuple[int, list[Token]],
        window_width: int,
        text_area_start_x: int,
    ) -> None:
        """Draw a single buffer line on the given screen row, applying horizontal
        scroll and token attributes. Wide characters are never split in half.

        Args:
            screen_row: Absolute Y position in the curses window.
            line_data: (buffer_index, [(lexeme, attr), ...]).
            window_width: Current terminal width (in cells).
            text_area_start_x: The screen column where the text area begins.
        """
        _line_index, tokens_for_this_line = line_data

        try:
            self.stdscr.move(screen_row, text_area_start_x)
            self.stdscr.clrtoeol()
        except curses.error as e:
            logging.error("Curses error while clearing line %d: %s", screen_row, e)
            return

        logical_col_abs = 0

        for token_text, token_attr in tokens_for_this_line:
            if not token_text:
                continue
            # Tabs occupy one cell, matching get_char_width.
            token_text = token_text.replace("\t", " ")

            token_disp_width = self.editor.get_string_width(token_text)
            ideal_x = text_area_start_x + (logical_col_abs - self.editor.scroll_left)

            cells_cut_left = 0
            if ideal_x < text_area_start_x:
                cells_cut_left = text_area_start_x - ideal_x

            draw_x = max(text_area_start_x, ideal_x)
            avail_screen_w = window_width - draw_x
            if avail_screen_w <= 0:
                break

            visible_w = min(max(0, token_disp_width - cells_cut_left), avail_screen_w)
            if visible_w <= 0:
                logical_col_abs += token_disp_width
                continue

            visible_part = self._safe_cut_left(token_text, cells_cut_left)
            if not visible_part:
                logical_col_abs += token_disp_width
                continue

            text_to_draw = ""
            drawn_w = 0
            for ch in visible_part:
                char_w = self.editor.get_char_width(ch)
                if drawn_w + char_w > visible_w:
                    break
                text_to_draw += ch
                drawn_w += char_w

            if text_to_draw:
                try:
                    self.stdscr.addstr(screen_row, draw_x, text_to_draw, token_attr)
                except curses.error as e:
                    logging.debug("addstr failed at (%d,%d): %s", screen_row, draw_x, e)

            logical_col_abs += token_disp_width

            if draw_x + visible_w >= window_width:
                break

    # ---------------------  Frame  -------------------
    def draw(self) -> None:
        """The main screen drawing method."""
        try:
            height, width = self.stdscr.getmaxyx()

            if height < self.MIN_WINDOW_HEIGHT or width < self.MIN_WINDOW_WIDTH:
                self._show_small_window_error(height, width)
                return

            self.editor.visible_lines = self.text_area_height()

            if self._needs_full_redraw():
                self.stdscr.erase()
                self.editor._force_full_redraw = False
            else:
                self._clear_invalidated_lines()

            self._draw_line_numbers()
            self._draw_text_with_syntax_highlighting()
            self._draw_search_highlights()
            self._draw_selection()
            self._draw_output_panel()

            separator_y = height - 2
            try:
                char_with_attr = curses.ACS_HLINE | self.colors.get("comment", curses.A_DIM)
                self.stdscr.hline(separator_y, 0, char_with_attr, width)
            except curses.error:
                pass

            self._draw_status_bar()
            self._draw_completion_popup()

            self.stdscr.noutrefresh()

        except curses.error as e:
            logging.error(f"Curses error in DrawScreen.draw(): {e}", exc_info=True)
            self.editor._set_status_message(f"Draw error: {str(e)[:80]}...")
        except Exception as e:
            logging.exception("Unexpected error in DrawScreen.draw()")
            self.editor._set_status_message(f"Draw error: {str(e)[:80]}...")

    def _clear_invalidated_lines(self) -> None:
        """Clears the rows that will be redrawn in this frame."""
        height, _ = self.stdscr.getmaxyx()
        for row in list(range(height - 2)) + [height - 1]:
            try:
                self.stdscr.move(row, 0)
                self.stdscr.clrtoeol()
            except curses.error:
                pass

    def _show_small_window_error(self, height: int, width: int) -> None:
        msg = f"Window too small ({width}x{height}). Minimum is 20x5."
        try:
            self.stdscr.clear()
            start_col = max(0, (width - len(msg)) // 2)
            self.stdscr.addstr(height // 2, start_col, msg)
        except curses.error:
            pass

    def _draw_line_numbers(self) -> None:
        if not self.editor.show_line_numbers:
            self._text_start_x = 0
            return

        _height, width = self.stdscr.getmaxyx()
        line_count = self.document.buffer.line_count()
        max_line_num_digits = len(str(max(1, line_count)))
        line_num_width = max_line_num_digits + 1

        if line_num_width >= width:
            logging.warning(f"Window too narrow to draw line numbers ({width} vs {line_num_width})")
            self._text_start_x = 0
            return
        self._text_start_x = line_num_width
        line_num_color = self.colors.get("line_number", curses.color_pair(7))
        for screen_row in range(self.editor.visible_lines):
            line_idx = self.editor.scroll_top + screen_row
            if line_idx < line_count:
                label = f"{line_idx + 1:>{max_line_num_digits}} "
            else:
                label = " " * line_num_width
            try:
                self.stdscr.addstr(screen_row, 0, label, line_num_color)
            except curses.error as e:
                logging.error(f"Curses error drawing line number at ({screen_row}, 0): {e}")

    def _screen_x(self, line_text: str, col: int) -> int:
        return self._text_start_x + self.editor.get_string_width(line_text[:col]) - self.editor.scroll_left

    def _paint_range(self, line: int, start: int, end: int, attr: int) -> None:
        """Applies ``attr`` to the cells of ``line[start:end]`` that are on screen."""
        screen_y = line - self.editor.scroll_top
        if not 0 <= screen_y < self.editor.visible_lines:
            return
        _height, width = self.stdscr.getmaxyx()
        text = self.document.buffer.line(line)
        x_left = max(self._text_start_x, self._screen_x(text, start))
        x_right = min(width, self._screen_x(text, end))
        if x_right > x_left:
            try:
                self.stdscr.chgat(screen_y, x_left, x_right - x_left, attr)
            except curses.error as e:
                logging.warning(f"Curses error highlighting ({screen_y}, {x_left}): {e}")

    def _draw_search_highlights(self) -> None:
        """Highlights every visible search match; the current one gets its own colour."""
        search = self.document.search
        if not search.matches:
            return
        search_color = self.colors.get("search_highlight", curses.A_REVERSE)
        current_color = self.colors.get("current_match", search_color | curses.A_BOLD)
        top = self.editor.scroll_top
        bottom = top + self.editor.visible_lines
        current = search.current
        for match in search.matches:
            if top <= match.line < bottom:
                attr = current_color if match == current else search_color
                self._paint_range(match.line, match.start, match.end, attr)

    def _draw_selection(self) -> None:
        """Paints the selection; inner line ends are shown as one extra cell."""
        rng = self.document.selection()
        if rng is None:
            return
        start, end = rng
        first = max(start.line, self.editor.scroll_top)
        last = min(end.line, self.editor.scroll_top + self.editor.visible_lines - 1)
        for line in range(first, last + 1):
            text = self.document.buffer.line(line)
            col_from = start.col if line == start.line else 0
            col_to = end.col if line == end.line else len(text)
            if line != end.line:
                # The newline is part of the selection.
                _height, width = self.stdscr.getmaxyx()
                x = self._screen_x(text, col_to)
                if self._text_start_x <= x < width:
                    try:
                        self.stdscr.chgat(line - self.editor.scroll_top, x, 1, curses.A_REVERSE)
                    except curses.error:
                        pass
            self._paint_range(line, col_from, col_to, curses.A_REVERSE)

    def _draw_completion_popup(self) -> None:
        """Draws the suggestion list under the identifier being completed."""
        suggestions = self.editor.session.suggestions
        if not suggestions:
            return
        height, width = self.stdscr.getmaxyx()
        cursor = self.document.cursor
        line_text = self.document.buffer.line(cursor.line)
        prefix = self.document.completion_prefix()

        rows = suggestions[: self.POPUP_MAX_ROWS]
        label_w = max(self.editor.get_string_width(s.label.split("\n")[0]) for s in rows)
        source_w = max(len(s.source) for s in rows)
        popup_w = min(width - 1, label_w + source_w + 4)
        if popup_w <= 4:
            return

        anchor_x = max(self._text_start_x, self._screen_x(line_text, cursor.col - len(prefix)))
        x = min(anchor_x, width - popup_w - 1)
        below = cursor.line - self.editor.scroll_top + 1
        if below + len(rows) <= self.editor.visible_lines:
            y = below
        else:
            y = max(0, below - 1 - len(rows))

        normal = self.colors.get("status", curses.A_REVERSE)
        selected_index = self.editor.session.suggestion_index
        for offset, suggestion in enumerate(rows):
            label = self.truncate_string(suggestion.label.split("\n")[0], label_w)
            label += " " * (label_w - self.editor.get_string_width(label))
            cell = f" {label}  {suggestion.source:>{source_w}} "
            attr = curses.A_REVERSE | curses.A_BOLD if offset == selected_index else normal
            try:
                self.stdscr.addstr(y + offset, max(0, x), self.truncate_string(cell, popup_w), attr)
            except curses.error:
                pass

    def _draw_output_panel(self) -> None:
        """Shows the tail of the last job's output above the separator."""
        panel_h = self.output_panel_height()
        if panel_h <= 0:
            return
        _height, width = self.stdscr.getmaxyx()
        top = self.text_area_height()
        session = self.editor.session
        job = session.output_job
        title = f" Output: {job.state} " if job else " Output "
        title_attr = self.colors.get("status", curses.A_REVERSE)
        if job and job.state.status in (JobStatus.FAILED, JobStatus.CANCELLED):
            title_attr = self.colors.get("status_error", title_attr)
        try:
            self.stdscr.addstr(top, 0, self.truncate_string(title, width - 1).ljust(width - 1), title_attr)
        except curses.error:
            pass
        body_rows = panel_h - 1
        lines = session.output_lines[-body_rows:] if body_rows > 0 else []
        for offset in range(body_rows):
            row = top + 1 + offset
            text = lines[offset] if offset < len(lines) else ""
            try:
                self.stdscr.move(row, 0)
                self.stdscr.clrtoeol()
                self.stdscr.addstr(row, 0, self.truncate_string(text.replace("\t", "    "), width - 1))
            except curses.error:
                pass

    def truncate_string(self, s: str, max_width: int) -> str:
        """Return `s` clipped to visual width `max_width` (wide glyphs via wcwidth)."""
        result: list[str] = []
        consumed = 0

        for ch in s:
            w = wcwidth(ch)
            if w < 0:
                w = 1
            if consumed + w > max_width:
                break
            result.append(ch)
            consumed += w

        return "".join(result)

    def _draw_status_bar(self) -> None:
        """Single-line status bar (bottom of the screen).

        ╭─ Left ─────────────────────────────────────────────────────────────╮
        │  🐍 file.py* | python | UTF-8 | LF | Ln 42/123 | Col 8 | INS       │
        ├─ Middle ───────────────────────────────────────────────────────────┤
        │                               Ready                                │
        ╰─ Right ────────────────────────────────────────────────────────────╯
                                            Run: Running   Find: 2/7
        """
        try:
            height, width = self.stdscr.getmaxyx()
            if height <= 2:
                return

            y = height - 1
            c_norm = self.colors["status"]
            c_err = self.colors["status_error"]

            document = self.document
            icon = get_file_icon(document.path, self.config)
            cursor = document.cursor
            left = (
                f" {icon} {document.name}{'*' if document.modified else ''} | "
                f"{document.language} | {document.encoding.upper()} | {document.newline_name} | "
                f"Ln {cursor.line + 1}/{document.buffer.line_count()} | "
                f"Col {cursor.col + 1} | "
                f"{'INS' if self.editor.insert_mode else 'REP'} "
            )
            left_w = self.editor.get_string_width(left)

            right_parts = []
            search = document.search
            if search.pattern:
                right_parts.append(
                    f"Find: {search.current_index + 1}/{len(search.matches)} [{search.options.describe()}]"
                )
            job = self.editor.session.output_job
            if job is not None:
                right_parts.append(f"Run: {job.state}")
            right = (" " + " ".join(right_parts) + " ") if right_parts else ""
            right_w = self.editor.get_string_width(right)

            msg = self.editor.status_message or "Ready"
            spacing = width - left_w - right_w
            if spacing < self.editor.get_string_width(msg):
                msg = self.truncate_string(msg, max(0, spacing - 1))

            msg_w = self.editor.get_string_width(msg)
            pad_left = max(0, (spacing - msg_w) // 2)
            pad_right = max(0, spacing - msg_w - pad_left)
            middle = " " * pad_left + msg + " " * pad_right

            line = self.truncate_string(left + middle + right, width - 1)
            line += " " * max(0, width - 1 - self.editor.get_string_width(line))
            self.stdscr.addstr(y, 0, line, c_norm)

            if "error" in msg.lower() and msg_w:
                self.stdscr.chgat(y, left_w + pad_left, msg_w, c_err)

        except curses.error:
            pass
        except Exception:
            logging.exception("Unexpected error in _draw_status_bar")

    def _position_cursor(self) -> None:
        """Positions the cursor on the screen, adjusting scroll to keep it visible."""
        height, width = self.stdscr.getmaxyx()
        if height <= 2:
            return

        text_area_start_x = self._text_start_x
        text_area_height = self.text_area_height()
        cursor = self.document.cursor
        current_line = self.document.buffer.line(cursor.line)
        cursor_display_width = self.editor.get_string_width(current_line[: cursor.col])

        max_screen_row = text_area_height - 1
        if cursor.line < self.editor.scroll_top:
            self.editor.scroll_top = cursor.line
        elif cursor.line > self.editor.scroll_top + max_screen_row:
            self.editor.scroll_top = cursor.line - max_screen_row

        text_area_width = max(1, width - text_area_start_x)
        if cursor_display_width < self.editor.scroll_left:
            self.editor.scroll_left = cursor_display_width
        elif cursor_display_width >= self.editor.scroll_left + text_area_width:
            self.editor.scroll_left = cursor_display_width - text_area_width + 1

        final_screen_y = max(0, min(cursor.line - self.editor.scroll_top, max_screen_row))
        final_screen_x = text_area_start_x + cursor_display_width - self.editor.scroll_left
        final_screen_x = max(text_area_start_x, min(final_screen_x, width - 1))

        try:
            self.stdscr.move(final_screen_y, final_screen_x)
        except curses.error as e:
            logging.warning(
                f"Curses error positioning cursor at ({final_screen_y}, {final_screen_x}): {e}"
            )

    def _update_display(self) -> None:
        """Flushes pending drawing with a single doupdate()."""
        try:
            self.stdscr.noutrefresh()
            curses.doupdate()
        except curses.error as e:
            logging.error(f"Curses doupdate error: {e}")
