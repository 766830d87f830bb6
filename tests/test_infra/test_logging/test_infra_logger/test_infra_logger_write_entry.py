"""
Purpose
-------
Validate `InfraLogger.write_entry` for the STDERR and file destinations.

Key behaviors
-------------
- STDERR destination prints one line with a trailing newline.
- File destination appends UTF-8 lines and leaves STDERR untouched.

Conventions
-----------
- `capsys` captures STDERR; `tmp_path` provides the log file.

Downstream usage
----------------
Run with `pytest -q tests/test_infra/test_logging`.
"""

import pathlib

from pytest import CaptureFixture

from infra.logging.infra_logger import InfraLogger
from tests.test_infra.test_logging.test_infra_logger.infra_logger_testing_utils import (
    TEST_FORMATTED_TEXT,
    init_logger_for_test,
)


def test_infra_logger_write_entry_stderr(capsys: CaptureFixture) -> None:
    """
    Print a formatted entry to STDERR.

    Parameters
    ----------
    capsys : CaptureFixture
        Captures the process output.

    Returns
    -------
    None
    """

    logger: InfraLogger = init_logger_for_test()
    logger.write_entry(TEST_FORMATTED_TEXT)
    captured = capsys.readouterr()
    assert captured.err == f"{TEST_FORMATTED_TEXT}\n"
    assert captured.out == ""


def test_infra_logger_write_entry_file(capsys: CaptureFixture, tmp_path: pathlib.Path) -> None:
    """
    Append entries to a file destination.

    Parameters
    ----------
    capsys : CaptureFixture
        Confirms nothing reaches STDERR.
    tmp_path : pathlib.Path
        Directory of the log file.

    Returns
    -------
    None

    Notes
    -----
    - The file already holds a line from an earlier run; it must survive.
    """

    log_file_path: pathlib.Path = tmp_path / "stm_pipeline.log"
    log_file_path.write_text("earlier run\n", encoding="utf-8")
    logger: InfraLogger = init_logger_for_test(log_dest=str(log_file_path))
    logger.write_entry("first")
    logger.write_entry("ünïcode second")
    assert capsys.readouterr().err == ""
    assert log_file_path.read_text(encoding="utf-8").replace("\r\n", "\n") == (
        "earlier run\nfirst\nünïcode second\n"
    )
