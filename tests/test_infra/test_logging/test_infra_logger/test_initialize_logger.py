"""
Purpose
-------
Validate the `initialize_logger` factory: environment extraction, explicit
level override, run id generation, run metadata defaulting, and fallback
reporting.

Key behaviors
-------------
- A valid explicit `level` overrides LOG_LEVEL and clears its fallback flag.
- An unknown explicit `level` is ignored in favour of the environment level.
- A run id is generated from the component name only when none is given.
- `run_meta=None` becomes {}.

Conventions
-----------
- Collaborators are patched at `infra.logging.infra_logger.*`; no
  environment access or I/O.

Downstream usage
----------------
Run with `pytest -q tests/test_infra/test_logging`.
"""

from typing import List
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from infra.logging.infra_logger import InfraLogger, initialize_logger
from tests.test_infra.test_logging.test_infra_logger.infra_logger_testing_utils import (
    TEST_COMPONENT_NAME,
    TEST_DEST,
    TEST_FORMAT,
    TEST_RUN_ID,
    TEST_RUN_META,
)

TEST_RUN_ID_GENERATED: str = "generated_run_id"

MISSING_RUN_ID_META_TUPLES = [
    (None, TEST_RUN_ID_GENERATED, None, {}),
    (TEST_RUN_ID, TEST_RUN_ID, None, {}),
    (None, TEST_RUN_ID_GENERATED, TEST_RUN_META, TEST_RUN_META),
    (TEST_RUN_ID, TEST_RUN_ID, TEST_RUN_META, TEST_RUN_META),
]

LEVEL_OVERRIDE_TUPLES: List[tuple[str | None, str]] = [
    (None, "INFO"),
    ("DEBUG", "DEBUG"),
    ("warning", "WARNING"),
    ("verbose", "INFO"),
]


@pytest.mark.parametrize(
    "input_run_id, expected_run_id, input_run_meta, expected_run_meta",
    MISSING_RUN_ID_META_TUPLES,
)
def test_initialize_logger_run_id_and_meta(
    mocker: MockerFixture,
    input_run_id: str | None,
    expected_run_id: str,
    input_run_meta: dict[str, str] | None,
    expected_run_meta: dict[str, str],
) -> None:
    """
    Generate the run id only when missing and default the run metadata.

    Parameters
    ----------
    mocker : MockerFixture
        Patches the factory's collaborators.
    input_run_id : str or None
        Run id argument.
    expected_run_id : str
        Run id expected on the logger.
    input_run_meta : dict or None
        Run metadata argument.
    expected_run_meta : dict
        Run metadata expected on the logger.

    Returns
    -------
    None
    """

    mock_extract_env_vars, mock_generate_run_id, mock_handle_fallbacks = mock_infra_logger_helpers(
        mocker
    )
    logger: InfraLogger = initialize_logger(
        TEST_COMPONENT_NAME, run_id=input_run_id, run_meta=input_run_meta
    )

    mock_extract_env_vars.assert_called_once()
    if input_run_id is None:
        mock_generate_run_id.assert_called_once_with(TEST_COMPONENT_NAME)
    else:
        mock_generate_run_id.assert_not_called()
    mock_handle_fallbacks.assert_called_once()
    assert logger.component_name == TEST_COMPONENT_NAME
    assert logger.run_id == expected_run_id
    assert logger.run_meta == expected_run_meta
    assert (logger.format, logger.dest) == (TEST_FORMAT, TEST_DEST)


@pytest.mark.parametrize("input_level, expected_level", LEVEL_OVERRIDE_TUPLES)
def test_initialize_logger_level_override(
    mocker: MockerFixture, input_level: str | None, expected_level: str
) -> None:
    """
    Apply a valid explicit level over the environment level.

    Parameters
    ----------
    mocker : MockerFixture
        Patches the factory's collaborators; the environment level is INFO.
    input_level : str or None
        Explicit level argument.
    expected_level : str
        Level expected on the logger.

    Returns
    -------
    None
    """

    mock_infra_logger_helpers(mocker)
    logger: InfraLogger = initialize_logger(TEST_COMPONENT_NAME, level=input_level)
    assert logger.level == expected_level


def test_initialize_logger_override_clears_level_fallback(mocker: MockerFixture) -> None:
    """
    Do not report a LOG_LEVEL fallback when an explicit level replaced it.

    Parameters
    ----------
    mocker : MockerFixture
        Patches `extract_env_vars` to flag an invalid LOG_LEVEL.

    Returns
    -------
    None
    """

    def invalid_level_env(fall_backs: dict[str, bool]) -> tuple[str, str, str]:
        fall_backs["level"] = True
        return "INFO", TEST_FORMAT, TEST_DEST

    mocker.patch("infra.logging.infra_logger.extract_env_vars", side_effect=invalid_level_env)
    mock_handle_fallbacks: MagicMock = mocker.patch(
        "infra.logging.infra_logger.handle_fallbacks"
    )
    initialize_logger(TEST_COMPONENT_NAME, level="DEBUG", run_id=TEST_RUN_ID)

    fall_backs: dict[str, bool] = mock_handle_fallbacks.call_args[0][1]
    assert fall_backs == {"level": False, "log_format": False, "log_dest": False}


def mock_infra_logger_helpers(mocker: MockerFixture) -> tuple[MagicMock, MagicMock, MagicMock]:
    """
    Patch `extract_env_vars`, `generate_run_id`, and `handle_fallbacks`.

    Returns
    -------
    tuple[MagicMock, MagicMock, MagicMock]
        The three mocks in that order; the environment yields
        ("INFO", TEST_FORMAT, TEST_DEST).
    """

    mock_extract_env_vars: MagicMock = mocker.patch(
        "infra.logging.infra_logger.extract_env_vars",
        return_value=("INFO", TEST_FORMAT, TEST_DEST),
    )
    mock_generate_run_id: MagicMock = mocker.patch(
        "infra.logging.infra_logger.generate_run_id",
        return_value=TEST_RUN_ID_GENERATED,
    )
    mock_handle_fallbacks: MagicMock = mocker.patch("infra.logging.infra_logger.handle_fallbacks")
    return mock_extract_env_vars, mock_generate_run_id, mock_handle_fallbacks
