"""
Purpose
-------
Centralize the parameters of the listing topic-model pipeline: category
filter, vocabulary cap, topic-count search grid, worker count, iteration
cap, manually chosen topic count, covariate formula, and seed.

Key behaviors
-------------
- Expose module-level defaults so notebooks and jobs do not hard-code them.
- Bundle the parameters of one run into an immutable `PipelineConfig`
  whose `validate` rejects invalid combinations before any work starts.
- Load overrides from the environment (and a `.env` file via
  `python-dotenv`) with `load_pipeline_config`.
- Parse the additive covariate formula (e.g. "~ price") into the list of
  metadata columns it references.

Conventions
-----------
- `DEFAULT_WORKER_COUNT` leaves one core of the host free.
- The topic-count grid is the closed range `min_topics..max_topics`.
- Topic counts below 2 are rejected.
- Environment variables are prefixed with `STM_`, except
  `LISTINGS_FILE_PATH` which is shared with `listings.listings_config`.

Downstream usage
----------------
Build a config with `load_pipeline_config()` (or `PipelineConfig(...)` in
tests), then pass it to the functions of `stm.stm_orchestrator`.
"""

import os
import re
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

from listings.listings_config import LISTINGS_FILE_PATH, ROOM_TYPE_FILTER
from stm.stm_errors import ConfigurationError

CPU_COUNT: int = os.cpu_count() or 2

DEFAULT_WORKER_COUNT: int = max(1, CPU_COUNT - 1)

DEFAULT_VOCABULARY_SIZE: int = 1000

DEFAULT_MIN_TOPICS: int = 4

DEFAULT_MAX_TOPICS: int = 33

DEFAULT_MAX_ITERATIONS: int = 20

DEFAULT_CHOSEN_TOPICS: int = 8

DEFAULT_COVARIATE_FORMULA: str = "~ price"

DEFAULT_SEED: int = 42

DEFAULT_HELD_OUT_FRACTION: float = 0.1

MIN_TOPIC_COUNT: int = 2

TOP_WORD_NUM: int = 10

FORMULA_TERM_PATTERN: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Purpose
    -------
    Immutable parameter set for one pipeline run.

    Attributes
    ----------
    listings_file_path : str
        Delimited listings file.
    room_type_filter : str
        Substring of `room_type` selecting whole units.
    vocabulary_size : int
        Maximum number of vocabulary words.
    min_topics, max_topics : int
        Inclusive bounds of the topic-count search grid.
    worker_count : int
        Processes used by the search sweep.
    max_iterations : int
        Iteration cap handed to the fitting backend.
    chosen_topics : int
        Topic count picked by a person after inspecting the sweep.
    covariate_formula : str
        Prevalence formula; additive terms over metadata columns.
    seed : int
        Random seed handed to every fit.
    held_out_fraction : float
        Share of documents held out for the held-out likelihood during the sweep.
    """

    listings_file_path: str = LISTINGS_FILE_PATH
    room_type_filter: str = ROOM_TYPE_FILTER
    vocabulary_size: int = DEFAULT_VOCABULARY_SIZE
    min_topics: int = DEFAULT_MIN_TOPICS
    max_topics: int = DEFAULT_MAX_TOPICS
    worker_count: int = DEFAULT_WORKER_COUNT
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    chosen_topics: int = DEFAULT_CHOSEN_TOPICS
    covariate_formula: str = DEFAULT_COVARIATE_FORMULA
    seed: int = DEFAULT_SEED
    held_out_fraction: float = DEFAULT_HELD_OUT_FRACTION

    @property
    def topic_counts(self) -> List[int]:
        return list(range(self.min_topics, self.max_topics + 1))

    @property
    def covariates(self) -> List[str]:
        return parse_covariate_formula(self.covariate_formula)

    def validate(self) -> "PipelineConfig":
        """
        Reject invalid parameter combinations.

        Returns
        -------
        PipelineConfig
            `self`, to allow chaining.

        Raises
        ------
        ConfigurationError
            On the first invalid parameter found.
        """
        if not self.room_type_filter.strip():
            raise ConfigurationError("room_type_filter must be a non-blank substring")
        if self.vocabulary_size <= 0:
            raise ConfigurationError(
                f"vocabulary_size must be positive, got {self.vocabulary_size}"
            )
        if self.min_topics < MIN_TOPIC_COUNT:
            raise ConfigurationError(
                f"min_topics must be at least {MIN_TOPIC_COUNT}, got {self.min_topics}"
            )
        if self.min_topics > self.max_topics:
            raise ConfigurationError(
                f"Empty topic-count range {self.min_topics}..{self.max_topics}"
            )
        if self.worker_count < 1:
            raise ConfigurationError(f"worker_count must be at least 1, got {self.worker_count}")
        if self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be at least 1, got {self.max_iterations}"
            )
        if self.chosen_topics < MIN_TOPIC_COUNT:
            raise ConfigurationError(
                f"chosen_topics must be at least {MIN_TOPIC_COUNT}, got {self.chosen_topics}"
            )
        if not 0.0 <= self.held_out_fraction < 0.5:
            raise ConfigurationError(
                f"held_out_fraction must lie in [0, 0.5), got {self.held_out_fraction}"
            )
        parse_covariate_formula(self.covariate_formula)
        return self


def parse_covariate_formula(formula: str) -> List[str]:
    """
    Extract the covariate columns of an additive formula.

    Parameters
    ----------
    formula : str
        Formula of the form "~ a + b"; whitespace is ignored.

    Returns
    -------
    list[str]
        Covariate names in formula order, without duplicates.

    Raises
    ------
    ConfigurationError
        If the formula lacks the leading "~", has no terms, or uses anything
        other than plain column names joined by "+".
    """
    stripped_formula: str = formula.strip()
    if not stripped_formula.startswith("~"):
        raise ConfigurationError(f"Covariate formula must start with '~': {formula!r}")
    terms: List[str] = [term.strip() for term in stripped_formula[1:].split("+")]
    if not terms or any(not FORMULA_TERM_PATTERN.match(term) for term in terms):
        raise ConfigurationError(f"Unsupported covariate formula: {formula!r}")
    return list(dict.fromkeys(terms))


def load_pipeline_config() -> PipelineConfig:
    """
    Build and validate a `PipelineConfig` from the environment.

    Returns
    -------
    PipelineConfig
        Validated configuration; unset variables keep their defaults.

    Raises
    ------
    ConfigurationError
        If a numeric variable does not parse or the resulting combination is
        invalid.

    Notes
    -----
    - `.env` in the working directory is loaded first; variables already set
      in the process environment take precedence.
    """
    load_dotenv()
    return PipelineConfig(
        listings_file_path=os.environ.get("LISTINGS_FILE_PATH", LISTINGS_FILE_PATH),
        room_type_filter=os.environ.get("STM_ROOM_TYPE_FILTER", ROOM_TYPE_FILTER),
        vocabulary_size=read_env_int("STM_VOCABULARY_SIZE", DEFAULT_VOCABULARY_SIZE),
        min_topics=read_env_int("STM_MIN_TOPICS", DEFAULT_MIN_TOPICS),
        max_topics=read_env_int("STM_MAX_TOPICS", DEFAULT_MAX_TOPICS),
        worker_count=read_env_int("STM_WORKER_COUNT", DEFAULT_WORKER_COUNT),
        max_iterations=read_env_int("STM_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS),
        chosen_topics=read_env_int("STM_CHOSEN_TOPICS", DEFAULT_CHOSEN_TOPICS),
        covariate_formula=os.environ.get("STM_COVARIATE_FORMULA", DEFAULT_COVARIATE_FORMULA),
        seed=read_env_int("STM_SEED", DEFAULT_SEED),
        held_out_fraction=read_env_float("STM_HELD_OUT_FRACTION", DEFAULT_HELD_OUT_FRACTION),
    ).validate()


def read_env_int(name: str, default: int) -> int:
    raw_value: str | None = os.environ.get(name)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw_value!r}") from exc


def read_env_float(name: str, default: float) -> float:
    raw_value: str | None = os.environ.get(name)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        return float(raw_value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw_value!r}") from exc
