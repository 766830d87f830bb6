"""
Purpose
-------
Unit tests for `stm.stm_config`: parameter validation, the topic-count
grid, covariate formula parsing, and environment loading.

Key behaviors
-------------
- Invalid parameters raise `ConfigurationError` before any work starts.
- `topic_counts` is the closed range `min_topics..max_topics`.
- Only additive formulas over plain column names are accepted.
- `load_pipeline_config` reads `STM_*` variables and validates the result.

Conventions
-----------
- `load_dotenv` is patched so no `.env` file is read; the environment is
  isolated with `monkeypatch`.

Downstream usage
----------------
Run with `pytest -q tests/test_stm`.
"""

from typing import Any, Dict, List

import pytest
from pytest import MonkeyPatch
from pytest_mock import MockerFixture

from stm.stm_config import (
    DEFAULT_VOCABULARY_SIZE,
    PipelineConfig,
    load_pipeline_config,
    parse_covariate_formula,
)
from stm.stm_errors import ConfigurationError

STM_ENV_VARS: List[str] = [
    "LISTINGS_FILE_PATH",
    "STM_ROOM_TYPE_FILTER",
    "STM_VOCABULARY_SIZE",
    "STM_MIN_TOPICS",
    "STM_MAX_TOPICS",
    "STM_WORKER_COUNT",
    "STM_MAX_ITERATIONS",
    "STM_CHOSEN_TOPICS",
    "STM_COVARIATE_FORMULA",
    "STM_SEED",
    "STM_HELD_OUT_FRACTION",
]

INVALID_OVERRIDES: List[Dict[str, Any]] = [
    {"vocabulary_size": 0},
    {"min_topics": 1},
    {"min_topics": 10, "max_topics": 9},
    {"worker_count": 0},
    {"max_iterations": 0},
    {"chosen_topics": 1},
    {"held_out_fraction": 0.5},
    {"held_out_fraction": -0.1},
    {"room_type_filter": "  "},
    {"covariate_formula": "price"},
]

FORMULA_TUPLES: List[tuple[str, List[str]]] = [
    ("~ price", ["price"]),
    ("~price", ["price"]),
    (" ~ price + reviews ", ["price", "reviews"]),
    ("~ price + price", ["price"]),
]


def isolate_environment(mocker: MockerFixture, monkeypatch: MonkeyPatch) -> None:
    mocker.patch("stm.stm_config.load_dotenv")
    for name in STM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_pipeline_config_defaults() -> None:
    """
    Validate the default parameter set and its derived views.

    Returns
    -------
    None
    """

    config: PipelineConfig = PipelineConfig().validate()
    assert config.vocabulary_size == DEFAULT_VOCABULARY_SIZE
    assert config.topic_counts == list(range(4, 34))
    assert config.covariates == ["price"]
    assert config.room_type_filter == "Entire"
    assert config.worker_count >= 1


@pytest.mark.parametrize("overrides", INVALID_OVERRIDES)
def test_pipeline_config_validate_rejects(overrides: Dict[str, Any]) -> None:
    """
    Reject each invalid parameter with `ConfigurationError`.

    Parameters
    ----------
    overrides : dict[str, Any]
        Fields replacing the defaults.

    Returns
    -------
    None
    """

    with pytest.raises(ConfigurationError):
        PipelineConfig(**overrides).validate()


def test_pipeline_config_single_topic_count_grid() -> None:
    """
    Accept a one-point grid.

    Returns
    -------
    None
    """

    assert PipelineConfig(min_topics=8, max_topics=8).validate().topic_counts == [8]


@pytest.mark.parametrize("formula, expected_covariates", FORMULA_TUPLES)
def test_parse_covariate_formula(formula: str, expected_covariates: List[str]) -> None:
    """
    Extract covariates of additive formulas in order, without duplicates.

    Parameters
    ----------
    formula : str
        Formula text.
    expected_covariates : list[str]
        Expected column names.

    Returns
    -------
    None
    """

    assert parse_covariate_formula(formula) == expected_covariates


@pytest.mark.parametrize("formula", ["~", "~ price * reviews", "~ log(price)", "~ price +"])
def test_parse_covariate_formula_rejects(formula: str) -> None:
    """
    Reject empty formulas, interactions, transforms, and dangling terms.

    Parameters
    ----------
    formula : str
        Unsupported formula.

    Returns
    -------
    None
    """

    with pytest.raises(ConfigurationError):
        parse_covariate_formula(formula)


def test_load_pipeline_config_reads_environment(
    mocker: MockerFixture, monkeypatch: MonkeyPatch
) -> None:
    """
    Build the config from `STM_*` variables and call `load_dotenv` first.

    Parameters
    ----------
    mocker : MockerFixture
        Patches `load_dotenv`.
    monkeypatch : MonkeyPatch
        Sets the environment.

    Returns
    -------
    None
    """

    isolate_environment(mocker, monkeypatch)
    monkeypatch.setenv("LISTINGS_FILE_PATH", "/data/listings.csv")
    monkeypatch.setenv("STM_VOCABULARY_SIZE", "500")
    monkeypatch.setenv("STM_MIN_TOPICS", "5")
    monkeypatch.setenv("STM_MAX_TOPICS", "12")
    monkeypatch.setenv("STM_WORKER_COUNT", "3")
    monkeypatch.setenv("STM_CHOSEN_TOPICS", "6")
    monkeypatch.setenv("STM_SEED", "11")
    monkeypatch.setenv("STM_HELD_OUT_FRACTION", "0.2")
    monkeypatch.setenv("STM_COVARIATE_FORMULA", "~ price + reviews")
    monkeypatch.setenv("STM_MAX_ITERATIONS", "")

    config: PipelineConfig = load_pipeline_config()

    assert config.listings_file_path == "/data/listings.csv"
    assert config.vocabulary_size == 500
    assert config.topic_counts == list(range(5, 13))
    assert config.worker_count == 3
    assert config.chosen_topics == 6
    assert config.seed == 11
    assert config.held_out_fraction == pytest.approx(0.2)
    assert config.covariates == ["price", "reviews"]
    assert config.max_iterations == 20


@pytest.mark.parametrize(
    "name, value",
    [("STM_VOCABULARY_SIZE", "many"), ("STM_HELD_OUT_FRACTION", "tenth"), ("STM_MIN_TOPICS", "1")],
)
def test_load_pipeline_config_rejects_bad_values(
    mocker: MockerFixture, monkeypatch: MonkeyPatch, name: str, value: str
) -> None:
    """
    Raise `ConfigurationError` for unparseable or invalid variables.

    Parameters
    ----------
    mocker : MockerFixture
        Patches `load_dotenv`.
    monkeypatch : MonkeyPatch
        Sets the offending variable.
    name, value : str
        Variable and its raw value.

    Returns
    -------
    None
    """

    isolate_environment(mocker, monkeypatch)
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        load_pipeline_config()
