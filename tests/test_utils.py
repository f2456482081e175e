# tests/test_utils.py
"""Unit tests for utility functions in the `redcli.utils` module."""

from pathlib import Path

from redcli.utils import utils


def test_deep_merge() -> None:
    """Verify that `deep_merge` correctly merges nested dictionaries.

    This test ensures:
    - Existing values are preserved if not overridden.
    - Nested dictionaries are merged recursively.
    - Conflicting keys are overridden by values from the second dictionary.
    """
    base = {"a": 1, "b": {"x": 10, "y": 20}}
    override = {"b": {"y": 99, "z": 100}, "c": 3}
    result = utils.deep_merge(base, override)
    expected = {"a": 1, "b": {"x": 10, "y": 99, "z": 100}, "c": 3}
    assert result == expected
    assert base == {"a": 1, "b": {"x": 10, "y": 20}}


def test_hex_to_xterm_valid_color() -> None:
    """Ensure `hex_to_xterm` returns the correct xterm color code for valid hex values.

    Examples tested:
    - White (`#ffffff`) should map to 231.
    - Black (`000000`) should map to 16.
    - Pure red lands in the 6x6x6 cube.
    """
    assert utils.hex_to_xterm("#ffffff") == 231
    assert utils.hex_to_xterm("000000") == 16
    assert utils.hex_to_xterm("#ff0000") == 196


def test_hex_to_xterm_invalid_color() -> None:
    """Verify that `hex_to_xterm` falls back to 255 for invalid hex strings."""
    assert utils.hex_to_xterm("#zzz") == 255
    assert utils.hex_to_xterm("12") == 255
    assert utils.hex_to_xterm("#gggggg") == 255


def test_detect_language() -> None:
    config = utils.DEFAULT_CONFIG
    assert utils.detect_language("src/app.py", config) == "python"
    assert utils.detect_language("Makefile", config) == "makefile"
    assert utils.detect_language("notes.unknown", config) == "text"
    assert utils.detect_language("README", config) == "text"
    assert utils.detect_language(None, config) == "text"
    assert utils.detect_language("app.py", config, "rust") == "rust"


def test_load_config_merges_user_file(tmp_path: Path) -> None:
    (tmp_path / "config.toml").write_text("[editor]\ntab_size = 2\n\n[completion]\nenabled = false\n")
    config = utils.load_config(tmp_path)
    assert config["editor"]["tab_size"] == 2
    assert config["editor"]["use_spaces"] is True
    assert config["completion"]["enabled"] is False
    assert config["supported_formats"]["python"] == ["py", "pyw"]


def test_load_config_broken_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / "config.toml").write_text("[editor\ntab_size = ")
    config = utils.load_config(tmp_path)
    assert config["editor"]["tab_size"] == utils.DEFAULT_CONFIG["editor"]["tab_size"]
