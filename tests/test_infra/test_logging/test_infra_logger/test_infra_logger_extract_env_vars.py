"""
Purpose
-------
Validate `extract_env_vars`: normalization of LOG_LEVEL / LOG_FORMAT /
LOG_DEST and the fallback flags raised for invalid values.

Key behaviors
-------------
- Valid values are normalized (level upper-case, format lower-case).
- Missing variables yield the defaults without raising a fallback flag.
- Invalid level or format falls back to INFO / json and flags it.
- A file destination that cannot be opened falls back to "stderr".

Conventions
-----------
- The environment is isolated per test with `monkeypatch`.
- File destinations live under `tmp_path`.

Downstream usage
----------------
Run with `pytest -q tests/test_infra/test_logging`.
"""

import pathlib
from typing import List

import pytest
from pytest import MonkeyPatch

from infra.logging.infra_logger import extract_env_vars

ENV_TUPLES: List[tuple[str, str, str, str, dict[str, bool]]] = [
    ("debug", "TEXT", "DEBUG", "text", {"level": False, "log_format": False}),
    ("Warning", "json", "WARNING", "json", {"level": False, "log_format": False}),
    ("verbose", "json", "INFO", "json", {"level": True, "log_format": False}),
    ("ERROR", "yaml", "ERROR", "json", {"level": False, "log_format": True}),
    ("loud", "xml", "INFO", "json", {"level": True, "log_format": True}),
]


def new_fall_backs() -> dict[str, bool]:
    return {"level": False, "log_format": False, "log_dest": False}


@pytest.mark.parametrize(
    "env_level, env_format, expected_level, expected_format, expected_flags", ENV_TUPLES
)
def test_extract_env_vars_level_and_format(
    monkeypatch: MonkeyPatch,
    env_level: str,
    env_format: str,
    expected_level: str,
    expected_format: str,
    expected_flags: dict[str, bool],
) -> None:
    """
    Normalize valid values and fall back on invalid ones.

    Parameters
    ----------
    monkeypatch : MonkeyPatch
        Sets LOG_LEVEL and LOG_FORMAT, removes LOG_DEST.
    env_level, env_format : str
        Raw environment values.
    expected_level, expected_format : str
        Values expected back.
    expected_flags : dict[str, bool]
        Expected `level` and `log_format` flags.

    Returns
    -------
    None
    """

    monkeypatch.setenv("LOG_LEVEL", env_level)
    monkeypatch.setenv("LOG_FORMAT", env_format)
    monkeypatch.delenv("LOG_DEST", raising=False)
    fall_backs = new_fall_backs()
    log_level, log_format, log_dest = extract_env_vars(fall_backs)

    assert (log_level, log_format, log_dest) == (expected_level, expected_format, "stderr")
    assert fall_backs == {**expected_flags, "log_dest": False}


def test_extract_env_vars_defaults(monkeypatch: MonkeyPatch) -> None:
    """
    Return INFO / json / stderr without flags when nothing is set.

    Parameters
    ----------
    monkeypatch : MonkeyPatch
        Removes the three variables.

    Returns
    -------
    None
    """

    for name in ("LOG_LEVEL", "LOG_FORMAT", "LOG_DEST"):
        monkeypatch.delenv(name, raising=False)
    fall_backs = new_fall_backs()
    assert extract_env_vars(fall_backs) == ("INFO", "json", "stderr")
    assert not any(fall_backs.values())


def test_extract_env_vars_writable_file_dest(
    monkeypatch: MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    """
    Keep a writable file destination unchanged.

    Parameters
    ----------
    monkeypatch : MonkeyPatch
        Sets LOG_DEST to a file under `tmp_path`.
    tmp_path : pathlib.Path
        Temporary directory.

    Returns
    -------
    None
    """

    log_file_path: str = str(tmp_path / "pipeline.log")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    monkeypatch.setenv("LOG_DEST", log_file_path)
    fall_backs = new_fall_backs()
    assert extract_env_vars(fall_backs)[2] == log_file_path
    assert fall_backs["log_dest"] is False


def test_extract_env_vars_unwritable_file_dest(
    monkeypatch: MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    """
    Fall back to STDERR when the destination cannot be opened.

    Parameters
    ----------
    monkeypatch : MonkeyPatch
        Points LOG_DEST into a directory that does not exist.
    tmp_path : pathlib.Path
        Temporary directory.

    Returns
    -------
    None
    """

    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    monkeypatch.setenv("LOG_DEST", str(tmp_path / "missing_dir" / "pipeline.log"))
    fall_backs = new_fall_backs()
    assert extract_env_vars(fall_backs)[2] == "stderr"
    assert fall_backs["log_dest"] is True
