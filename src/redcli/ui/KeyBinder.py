# redcli/ui/KeyBinder.py
"""KeyBinder.py
==================
Description:
-----------------------
The KeyBinder class translates key presses into Redcli editor actions. Bindings
come from built-in defaults overridden by the ``[keybindings]`` table of the
configuration, and support Ctrl/Alt/Shift modifiers, function keys and the
escape sequences terminals send for modified arrows.

Key Features:
- Loads keybindings, resolving human-readable specs ("ctrl+s", "alt-r", "f9").
- Maps key codes and logical Alt keys to controller action methods.
- Routes keys to the completion popup while it is open.
- Inserts printable characters and logs every decoded key to the key trace.

Main Methods:
1. handle_input: Processes one key event and dispatches it.
2. get_key_input: Reads one key or escape sequence from the terminal.
3. lookup: Reverse lookup from a key spec to an action name.
"""

import curses
import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Optional

from wcwidth import wcswidth

from redcli.utils.logging_config import KEY_LOGGER


if TYPE_CHECKING:
    from redcli.core.Redcli import Redcli


CTRL_LEFT = 545
CTRL_RIGHT = 560

# Actions that keep the completion popup open.
POPUP_SAFE_ACTIONS = frozenset({"trigger_completion", "handle_backspace"})


# ==================== KeyBinder Class ====================
class KeyBinder:
    """Class KeyBinder
    ====================
    Keybindings, input decoding and action dispatch for the editor.

    Attributes:
        editor (Redcli): The controller whose action methods are bound.
        config: Editor configuration, including user-defined keybindings.
        stdscr: The curses window keys are read from.
        keybindings (dict): Action name -> list of key codes / logical keys.
        action_map (dict): Key code / logical key -> action callable.
    """

    # Polling interval of the main loop's key reads.
    INPUT_TIMEOUT_MS = 100

    # Keys do NOT include the leading ESC; get_key_input() reads after it.
    ESCAPE_SEQUENCE_MAP: dict[str, str] = {
        "[A": "up", "[B": "down", "[C": "right", "[D": "left",
        "OA": "up", "OB": "down", "OC": "right", "OD": "left",

        "[1;2A": "shift+up",    "[1;2B": "shift+down",
        "[1;2C": "shift+right", "[1;2D": "shift+left",
        "[1;5C": "ctrl+right",  "[1;5D": "ctrl+left",
        "[1;2H": "shift+home",  "[1;2F": "shift+end",

        "[H": "home", "[F": "end", "OH": "home", "OF": "end",
        "[1~": "home", "[4~": "end",
        "[2~": "insert", "[3~": "delete", "[5~": "pageup", "[6~": "pagedown",

        "OP": "f1", "OQ": "f2", "OR": "f3", "OS": "f4",
        "[11~": "f1", "[12~": "f2", "[13~": "f3", "[14~": "f4",
        "[15~": "f5", "[17~": "f6", "[18~": "f7", "[19~": "f8",
        "[20~": "f9", "[21~": "f10", "[23~": "f11", "[24~": "f12",
    }

    def __init__(self, editor: "Redcli"):
        logging.debug("KeyBinder initialized with editor: %s", editor)
        self.editor = editor
        self.config = editor.config
        self.stdscr = editor.stdscr

        self.keybindings = self._load_keybindings()
        self.action_map = self._setup_action_map()

    def _handle_printable_character(self, key: str | int) -> bool:
        """Inserts a printable character; False if ``key`` is not one."""
        char_to_insert = ""
        if isinstance(key, str) and len(key) == 1:
            if wcswidth(key) > 0:
                char_to_insert = key
        elif isinstance(key, int) and 32 <= key < 1114112:
            try:
                char_to_insert = chr(key)
                if wcswidth(char_to_insert) <= 0:
                    char_to_insert = ""
            except ValueError:
                logging.warning(f"Invalid ordinal for chr(): {key}. Cannot convert.")
                self.editor._set_status_message(f"Invalid key code: {key}")
                return True

        if char_to_insert:
            return self.editor.type_character(char_to_insert)
        return False

    def _handle_popup_key(self, key: str | int) -> Optional[bool]:
        """Keys for the open completion popup; None lets the key fall through."""
        session = self.editor.session
        if not session.suggestions:
            return None
        if key == curses.KEY_UP:
            session.suggestion_index = (session.suggestion_index - 1) % len(session.suggestions)
            return True
        if key == curses.KEY_DOWN:
            session.suggestion_index = (session.suggestion_index + 1) % len(session.suggestions)
            return True
        if key in (9, 10, 13, curses.KEY_ENTER):
            return self.editor.accept_completion()
        if key == 27:
            session.dismiss_completion()
            return True
        return None

    # ---------------------- Handle Input --------------------
    def handle_input(self, key: str | int) -> bool:
        """Processes a single key event and triggers the corresponding action.

        Args:
            key: An integer key code, an 'alt-...' string, or a character.

        Returns:
            bool: True if the input caused a visual change in the editor.

        Exceptions raised by an action are logged, reported on the status
        line and not propagated, so the main loop keeps running.
        """
        KEY_LOGGER.debug("key %r", key)
        original_status = self.editor.status_message
        action_caused_visual_change = False

        with self.editor._state_lock:
            try:
                popup_result = self._handle_popup_key(key)
                if popup_result is not None:
                    return popup_result

                if key in self.action_map:
                    action = self.action_map[key]
                    logging.debug(f"handle_input: Key '{key}' -> {action.__name__}")
                    if self.editor.session.suggestions and action.__name__ not in POPUP_SAFE_ACTIONS:
                        self.editor.session.dismiss_completion()
                        action_caused_visual_change = True
                    if action():
                        action_caused_visual_change = True

                elif self._handle_printable_character(key):
                    action_caused_visual_change = True

                else:
                    logging.debug("Unhandled input: %r (type: %s)", key, type(key).__name__)
                    self.editor._set_status_message(f"Ignored unhandled input: {repr(key)}")

                if self.editor.status_message != original_status:
                    action_caused_visual_change = True

                return action_caused_visual_change

            except Exception as e_handler:
                logging.exception("Input handler critical error. This should be investigated.")
                self.editor._set_status_message(f"Input handler error: {str(e_handler)[:50]}")
                return True

    def _load_keybindings(self) -> dict[str, list[int | str]]:
        """Default keybindings overridden by the ``[keybindings]`` config table.

        A config value may be a key string, a "|"-separated string, a list,
        or an empty value to disable the action.
        """
        default_keybindings: dict[str, list[int | str]] = {
            "delete": ["del", curses.KEY_DC],
            "paste": ["ctrl+v", 22],
            "copy": ["ctrl+c", 3],
            "cut": ["ctrl+x", 24],
            "undo": ["ctrl+z", 26],
            "redo": ["ctrl+y", 25],
            "new_file": ["f2"],
            "open_file": ["ctrl+o", "alt+o"],
            "save_file": ["ctrl+s", 19],
            "save_as": ["f5"],
            "close_file": ["alt+w"],
            "next_document": ["alt+."],
            "previous_document": ["alt+,"],
            "reload_file": ["f4"],
            "select_all": ["ctrl+a", "alt+a"],
            "quit": ["ctrl+q", "alt+q"],
            "goto_line": ["ctrl+g", 7],
            "help": ["f1", "alt+h"],
            "find": ["ctrl+f", 6],
            "find_next": ["f3", "alt+n"],
            "find_previous": ["alt+p"],
            "search_and_replace": ["ctrl+r", 18],
            "replace_current": ["alt+e"],
            "search_options": ["alt+s"],
            "run_file": ["alt+r", "f9"],
            "cancel_job": ["alt+k", "f10"],
            "toggle_output_panel": ["f8"],
            "trigger_completion": [0, "alt+/"],
            "tool_menu": ["alt+t"],
            "toggle_comment_block": ["ctrl+\\", 28],
            "toggle_line_numbers": ["alt+l"],
            "cancel_operation": ["esc", 27],
            "tab": ["tab", 9],
            "shift_tab": ["shift+tab"],
            "handle_home": ["home", 262],
            "handle_end": ["end", 360],
            "handle_page_up": ["pageup", 339],
            "handle_page_down": ["pagedown", 338],
            "word_left": ["ctrl+left"],
            "word_right": ["ctrl+right"],
            "toggle_insert_mode": ["insert", curses.KEY_IC],
            "select_to_home": ["shift+home"],
            "select_to_end": ["shift+end"],
            "handle_backspace": ["backspace", 8, 127],
            "extend_selection_up": ["shift+up"],
            "extend_selection_down": ["shift+down"],
            "extend_selection_left": ["shift+left"],
            "extend_selection_right": ["shift+right"],
        }

        user_keybindings_config: dict[str, object] = self.config.get("keybindings", {})
        parsed_keybindings: dict[str, list[int | str]] = {}

        for action, default_value_spec in default_keybindings.items():
            spec: object = user_keybindings_config.get(action, default_value_spec)

            if spec == [] or spec == "" or spec is None or spec is False:
                logging.debug("Keybinding for action %r is disabled or empty.", action)
                continue

            specs_to_process: list[int | str]
            if isinstance(spec, list):
                specs_to_process = spec
            elif isinstance(spec, str) and "|" in spec:
                specs_to_process = [s.strip() for s in spec.split("|")]
            else:
                specs_to_process = [spec]  # type: ignore[list-item]

            key_codes_for_action: list[int | str] = []
            for key_spec_item in specs_to_process:
                if key_spec_item == 0 or key_spec_item:
                    try:
                        key_code = self._decode_keystring(key_spec_item)
                    except ValueError as e:
                        logging.error(
                            "Error parsing keybinding item %r for action %r: %s. It will be ignored.",
                            key_spec_item, action, e,
                        )
                        continue
                    if key_code not in key_codes_for_action:
                        key_codes_for_action.append(key_code)

            if key_codes_for_action:
                parsed_keybindings[action] = key_codes_for_action
            else:
                logging.warning("No valid key codes found for action %r. It will not be bound.", action)

        logging.debug("Loaded and parsed keybindings: %s", parsed_keybindings)
        return parsed_keybindings

    def _decode_keystring(self, key_input: str | int) -> int | str:
        """Decodes a key spec into a key code, or a logical "alt-..." string.

        Raises:
            ValueError: If the key string is empty, has an unknown base key or
                unknown modifiers.
        """
        if isinstance(key_input, int):
            return key_input
        if not isinstance(key_input, str):
            raise ValueError(f"Invalid key_input type: {type(key_input)}. Expected str or int.")

        original_key_string = key_input
        s = key_input.strip().lower()
        if not s:
            raise ValueError("Key string cannot be empty.")

        # "alt+x" and "ctrl+alt+x" normalise to "alt-x" / "alt-ctrl+x".
        if s.startswith("alt-"):
            return s
        parts = s.split("+")
        if "alt" in parts[:-1]:
            other_mods = sorted(m for m in parts[:-1] if m != "alt")
            prefix = "+".join(other_mods) + "+" if other_mods else ""
            return f"alt-{prefix}{parts[-1]}"

        named_keys_map: dict[str, int] = {
            "left": curses.KEY_LEFT,
            "right": curses.KEY_RIGHT,
            "up": curses.KEY_UP,
            "down": curses.KEY_DOWN,
            "home": curses.KEY_HOME,
            "end": getattr(curses, "KEY_END", curses.KEY_LL),
            "pageup": curses.KEY_PPAGE,
            "pgup": curses.KEY_PPAGE,
            "pagedown": curses.KEY_NPAGE,
            "pgdn": curses.KEY_NPAGE,
            "delete": curses.KEY_DC,
            "del": curses.KEY_DC,
            "backspace": curses.KEY_BACKSPACE,
            "insert": curses.KEY_IC,
            "tab": 9,
            "enter": curses.KEY_ENTER,
            "return": curses.KEY_ENTER,
            "space": ord(" "),
            "esc": 27,
            "escape": 27,
            "shift+left": curses.KEY_SLEFT,
            "shift+right": curses.KEY_SRIGHT,
            "shift+up": getattr(curses, "KEY_SR", 337),
            "shift+down": getattr(curses, "KEY_SF", 336),
            "shift+home": curses.KEY_SHOME,
            "shift+end": curses.KEY_SEND,
            "shift+tab": getattr(curses, "KEY_BTAB", 353),
            "ctrl+left": CTRL_LEFT,
            "ctrl+right": CTRL_RIGHT,
        }
        named_keys_map.update(
            {f"f{i}": getattr(curses, f"KEY_F{i}", 264 + i) for i in range(1, 13)}
        )

        if s in named_keys_map:
            return named_keys_map[s]

        base_key_str = parts[-1].strip()
        modifiers = set(p.strip() for p in parts[:-1])

        if base_key_str in named_keys_map:
            base_code = named_keys_map[base_key_str]
        elif len(base_key_str) == 1:
            base_code = ord(base_key_str)
        else:
            raise ValueError(f"Unknown base key '{base_key_str}' in '{original_key_string}'")

        if "ctrl" in modifiers:
            modifiers.remove("ctrl")
            if "a" <= base_key_str <= "z" and len(base_key_str) == 1:
                base_code = ord(base_key_str) - ord("a") + 1
            elif base_key_str == "\\":
                base_code = 28
            elif base_key_str == "]":
                base_code = 29
            elif base_key_str == "/":
                base_code = 31
            elif base_key_str == "space":
                base_code = 0

        if "shift" in modifiers:
            modifiers.remove("shift")
            if len(base_key_str) == 1 and "a" <= base_key_str <= "z" and base_code == ord(base_key_str):
                base_code = ord(base_key_str.upper())

        if modifiers:
            raise ValueError(
                f"Unknown or unhandled modifiers {sorted(modifiers)} in '{original_key_string}'"
            )
        return base_code

    def _setup_action_map(self) -> dict[int | str, Callable[..., Any]]:
        """Builds key code -> controller method from the loaded keybindings."""
        editor = self.editor
        action_to_method_map: dict[str, Callable[..., Any]] = {
            # --- Files and documents ---
            "open_file": editor.open_file,
            "save_file": editor.save_file,
            "save_as": editor.save_file_as,
            "new_file": editor.new_file,
            "close_file": editor.close_file,
            "next_document": editor.next_document,
            "previous_document": editor.previous_document,
            "reload_file": editor.reload_file,
            "quit": editor.exit_editor,
            # --- Editing ---
            "copy": editor.copy,
            "cut": editor.cut,
            "paste": editor.paste,
            "undo": editor.undo,
            "redo": editor.redo,
            "select_all": editor.select_all,
            "delete": editor.handle_delete,
            "handle_backspace": editor.handle_backspace,
            "handle_enter": editor.handle_enter,
            "tab": editor.handle_smart_tab,
            "shift_tab": editor.handle_smart_unindent,
            "toggle_comment_block": editor.toggle_comment_block,
            "toggle_insert_mode": editor.toggle_insert_mode,
            "tool_menu": editor.show_tool_menu,
            "trigger_completion": editor.trigger_completion,
            # --- Navigation and selection ---
            "handle_up": editor.handle_up,
            "handle_down": editor.handle_down,
            "handle_left": editor.handle_left,
            "handle_right": editor.handle_right,
            "handle_home": editor.handle_home,
            "handle_end": editor.handle_end,
            "handle_page_up": editor.handle_page_up,
            "handle_page_down": editor.handle_page_down,
            "word_left": editor.word_left,
            "word_right": editor.word_right,
            "extend_selection_up": editor.extend_selection_up,
            "extend_selection_down": editor.extend_selection_down,
            "extend_selection_left": editor.extend_selection_left,
            "extend_selection_right": editor.extend_selection_right,
            "select_to_home": editor.select_to_home,
            "select_to_end": editor.select_to_end,
            "goto_line": editor.goto_line,
            # --- Search ---
            "find": editor.find_prompt,
            "find_next": editor.find_next,
            "find_previous": editor.find_previous,
            "search_and_replace": editor.search_and_replace,
            "replace_current": editor.replace_current,
            "search_options": editor.search_options,
            # --- Execution ---
            "run_file": editor.run_file,
            "cancel_job": editor.cancel_job,
            "toggle_output_panel": editor.toggle_output_panel,
            # --- UI ---
            "toggle_line_numbers": editor.toggle_line_numbers,
            "help": editor.show_help,
            "cancel_operation": editor.handle_escape,
        }

        final_key_action_map: dict[int | str, Callable[..., Any]] = {
            curses.KEY_UP: action_to_method_map["handle_up"],
            curses.KEY_DOWN: action_to_method_map["handle_down"],
            curses.KEY_LEFT: action_to_method_map["handle_left"],
            curses.KEY_RIGHT: action_to_method_map["handle_right"],
            curses.KEY_RESIZE: editor.handle_resize,
            curses.KEY_ENTER: action_to_method_map["handle_enter"],
            curses.KEY_BACKSPACE: action_to_method_map["handle_backspace"],
            10: action_to_method_map["handle_enter"],
            13: action_to_method_map["handle_enter"],
        }

        for action_name, key_code_list in self.keybindings.items():
            method_callable = action_to_method_map.get(action_name)
            if not method_callable:
                logging.warning(f"Action '{action_name}' in keybindings but no corresponding method. Ignored.")
                continue
            for key_code in key_code_list:
                existing = final_key_action_map.get(key_code)
                if existing is not None and existing.__name__ != method_callable.__name__:
                    logging.warning(
                        f"Keybinding for action '{action_name}' (key: {key_code}) is overwriting "
                        f"an existing mapping for method '{existing.__name__}'."
                    )
                final_key_action_map[key_code] = method_callable

        logging.debug(f"Final action map: { {k: v.__name__ for k, v in final_key_action_map.items()} }")
        return final_key_action_map

    def get_key_input(self, window: Optional["curses.window"] = None) -> int | str:
        """Reads a single key or key sequence from the terminal.

        The first key is read with ``get_wch`` so multi-byte UTF-8 input
        arrives as one character. ASCII characters are returned as their
        code so they match int bindings.

        Returns:
            int | str:
            - curses key code (int) for known keys and ASCII characters,
            - the character (str) for non-ASCII text input,
            - "alt-<char>" for Alt/Meta chords,
            - 27 for a lone ESC,
            - curses.ERR on timeout or curses errors, -1 for unexpected errors.
        """
        target = window or self.stdscr

        try:
            ch = target.get_wch()
            if isinstance(ch, str):
                if ch != "\x1b":
                    return ord(ch) if len(ch) == 1 and ord(ch) < 128 else ch
            elif ch != 27:
                return ch

            seq = ""
            target.nodelay(True)
            try:
                while True:
                    nx = target.getch()
                    if nx == curses.ERR:
                        break
                    if 0 <= nx <= 255:
                        seq += chr(nx)
                    else:
                        seq += f"<{nx}>"
            finally:
                # Back to the main loop's polling mode; blocking here would
                # stall background messages until the next key press.
                target.nodelay(True)
                target.timeout(self.INPUT_TIMEOUT_MS)

            if not seq:
                return 27
            if seq[0] == "\x1b":
                seq = seq[1:]

            if len(seq) == 1 and seq.isprintable():
                return f"alt-{seq.lower()}"

            mapped = self.ESCAPE_SEQUENCE_MAP.get(seq)
            if not mapped:
                cleaned = "".join(re.findall(r"[\[O0-9;~A-Za-z]", seq))
                mapped = self.ESCAPE_SEQUENCE_MAP.get(cleaned)
            if mapped:
                return self._decode_keystring(mapped)

            logging.warning("get_key_input: unknown escape sequence: ESC + %r", seq)
            return 27

        except curses.error:
            return curses.ERR
        except Exception:
            logging.exception("get_key_input: unexpected error")
            return -1

    def lookup(self, key_spec: str | int) -> Optional[str]:
        """Action name bound to ``key_spec`` (e.g. "ctrl+s"), or None."""
        try:
            decoded_key = self._decode_keystring(key_spec)
        except ValueError:
            return None
        for action_name, key_list in self.keybindings.items():
            if decoded_key in key_list:
                return action_name
        return None
