# redcli/utils/utils.py
"""
redcli.utils.utils
==================

Core helpers for the Redcli editor.

- Configuration: a built-in ``DEFAULT_CONFIG`` deep-merged with the user's
  ``~/.config/redcli/config.toml`` (created from the project template on
  first run), so the editor always starts even with a missing or broken
  user file.
- Language detection from file names through the ``supported_formats`` table.
- File icons for the status bar.
- Color conversion for 256-color terminals.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Optional

import toml

logger = logging.getLogger("redcli")

CALM_BG_IDX = 236
WHITE_FG_IDX = 255

CONFIG_DIR = Path.home() / ".config" / "redcli"

DEFAULT_CONFIG: dict[str, Any] = {
    "colors": {
        "error": "#f85149", "status": "#c9d1d9",
        "comment": "#7f848e", "keyword": "#c678dd", "string": "#98c379",
        "number": "#d19a66", "function": "#61afef", "class": "#e5c07b",
        "type": "#e5c07b", "builtin": "#56b6c2", "constant": "#d19a66",
        "decorator": "#e5c07b", "operator": "#abb2bf", "docstring": "#7f848e",
        "tag": "#e06c75", "attribute": "#d19a66", "line_number": "#5c6370",
        "search_highlight": "#000000", "search_highlight_bg": "#ffab70",
        "current_match": "#000000", "current_match_bg": "#ff8700",
    },
    "editor": {
        "use_system_clipboard": True,
        "default_new_filename": "untitled.txt",
        "tab_size": 4,
        "use_spaces": True,
        "show_line_numbers": True,
        "max_file_size_mb": 50,
        "external_check_interval": 1.0,
    },
    "completion": {
        "enabled": True, "auto_trigger": True, "debounce_ms": 120, "max_items": 12, "min_prefix": 1,
    },
    "execution": {"kill_timeout": 3.0, "output_panel_height": 8, "runners": {}},
    "logging": {
        "file_level": "DEBUG",
        "console_level": "WARNING",
        "log_to_console": False,
        "separate_error_log": False,
    },
    "keybindings": {},
    "file_icons": {
        "docs": "📘", "python": "🐍", "toml": "❄️", "javascript": "📜", "typescript": "📑",
        "php": "🐘", "ruby": "♦️", "css": "🎨", "html": "🌐", "json": "📊", "yaml": "⚙️",
        "xml": "📰", "markdown": "📗", "text": "📝", "shell": "💫", "go": "🐹",
        "c": "🇨", "cpp": "🇨➕", "java": "☕", "rust": "🦀", "csharp": "♯",
        "dockerfile": "🐳", "makefile": "🛠️", "ini": "🔩", "sql": "💾", "kotlin": "📱",
        "lua": "🌙", "perl": "🐪", "default": "❓",
    },
    "supported_formats": {
        "python": ["py", "pyw"], "toml": ["toml", "tml"],
        "javascript": ["js", "mjs", "cjs", "jsx"], "typescript": ["ts", "tsx", "mts", "cts"],
        "php": ["php", "phtml"], "ruby": ["rb", "rake", "gemspec"],
        "css": ["css"], "html": ["html", "htm", "xhtml"], "json": ["json", "jsonc"],
        "yaml": ["yaml", "yml"], "xml": ["xml", "xsd", "xsl", "svg", "csproj"],
        "markdown": ["md", "markdown"], "text": ["txt", "log", "rst"],
        "shell": ["sh", "bash", "zsh", "ksh"], "go": ["go"], "c": ["c", "h"],
        "cpp": ["cpp", "cxx", "cc", "hpp", "hxx", "hh"], "java": ["java"],
        "rust": ["rs"], "csharp": ["cs"], "kotlin": ["kt", "kts"], "lua": ["lua"],
        "perl": ["pl", "pm"], "sql": ["sql"], "ini": ["ini", "cfg", "conf"],
        "dockerfile": ["Dockerfile", "dockerfile"], "makefile": ["Makefile", "makefile", "mk"],
        "docs": ["readme", "changelog", "license", "todo"],
    },
    "comments": {
        "python": {"line_prefix": "# "}, "ruby": {"line_prefix": "# "},
        "perl": {"line_prefix": "# "}, "shell": {"line_prefix": "# "},
        "toml": {"line_prefix": "# "}, "yaml": {"line_prefix": "# "},
        "dockerfile": {"line_prefix": "# "}, "makefile": {"line_prefix": "# "},
        "lua": {"line_prefix": "-- ", "block_delims": ["--[[", "]]"]},
        "sql": {"line_prefix": "-- ", "block_delims": ["/*", "*/"]},
        "ini": {"line_prefix": "; "},
        "javascript": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "typescript": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "php": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "c": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "cpp": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "csharp": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "java": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "go": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "rust": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "kotlin": {"line_prefix": "// ", "block_delims": ["/*", "*/"]},
        "css": {"block_delims": ["/*", "*/"]},
        "html": {"block_delims": ["<!--", "-->"]}, "xml": {"block_delims": ["<!--", "-->"]},
        "markdown": {"block_delims": ["<!--", "-->"]},
    },
}


def get_project_root() -> Path:
    """Determines the project's root directory for finding template files."""
    return Path(__file__).resolve().parents[3]


def ensure_user_config_exists(config_dir: Path = CONFIG_DIR) -> None:
    """Creates ``config.toml`` in the user config dir from the template."""
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        user_config_path = config_dir / "config.toml"
        if not user_config_path.exists():
            source_config_path = get_project_root() / "config.toml"
            if source_config_path.exists():
                shutil.copy(source_config_path, user_config_path)
                logger.info(f"Created user config template at: {user_config_path}")
    except OSError as e:
        logger.critical(f"Could not create user configuration files: {e}", exc_info=True)


def load_config(config_dir: Path = CONFIG_DIR) -> dict[str, Any]:
    """Loads the defaults and merges the user's config.toml over them."""
    final_config = deep_merge({}, DEFAULT_CONFIG)
    logger.debug("Loaded embedded default configuration.")

    ensure_user_config_exists(config_dir)

    user_config_path = config_dir / "config.toml"
    if user_config_path.is_file():
        try:
            user_config = toml.load(user_config_path)
            final_config = deep_merge(final_config, user_config)
            logger.info(f"Successfully loaded and merged user config from {user_config_path}")
        except (toml.TomlDecodeError, OSError) as e:
            logger.error(f"Could not parse user config '{user_config_path}': {e}. Using defaults.")

    return final_config


def _format_key(filename: str, config: dict[str, Any]) -> Optional[str]:
    """``supported_formats`` key for a file: exact name first, then extension."""
    supported_formats = config.get("supported_formats", {})
    base_name = os.path.basename(filename)
    base_lower = base_name.lower()
    for key, names in supported_formats.items():
        if isinstance(names, list) and base_lower in (str(n).lower() for n in names):
            return key
    _, extension = os.path.splitext(base_name)
    if extension:
        ext = extension[1:]
        for key, extensions in supported_formats.items():
            if isinstance(extensions, list) and (ext in extensions or ext.lower() in extensions):
                return key
    return None


def detect_language(
    filename: Optional[str], config: dict[str, Any], declared: Optional[str] = None
) -> str:
    """Language tag for a file; a declared language always wins.

    Pure function of its arguments. Unknown files are ``"text"``.
    """
    if declared:
        return declared
    if not filename:
        return "text"
    key = _format_key(filename, config)
    if key is None or key == "docs":
        return "text"
    return key


def get_file_icon(filename: Optional[str], config: dict[str, Any]) -> str:
    """Returns an icon string for a filename based on the configuration."""
    if not isinstance(config, dict):
        return "❓"
    file_icons = config.get("file_icons", {})
    default_icon = file_icons.get("default", "❓")
    if not filename:
        return default_icon
    key = _format_key(filename, config)
    if key is None:
        return file_icons.get("text", "📝")
    return file_icons.get(key, default_icon)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merges the `override` dictionary into the `base` dictionary."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def hex_to_xterm(hex_color: str) -> int:
    """Converts a ``#rrggbb`` string to the nearest xterm-256 color index."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) != 6:
        return WHITE_FG_IDX
    try:
        r, g, b = (int(hex_color[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return WHITE_FG_IDX

    if r == g == b:
        if r < 8:
            return 16
        if r > 248:
            return 231
        return round(((r - 8) / 247) * 24) + 232

    return int(16 + (36 * round(r / 255 * 5)) + (6 * round(g / 255 * 5)) + round(b / 255 * 5))
