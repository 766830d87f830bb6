"""
Purpose
-------
Topic-count search: fit one model per K of the configured grid, collect
the per-K diagnostics, and expose a human-chosen K.

Key behaviors
-------------
- Fan out one independent fit per K over a `ProcessPoolExecutor`; with a
  single worker the grid is fitted sequentially in-process.
- Join completed units back by K after every unit has finished or failed.
  Completion order carries no meaning.
- Isolate failures: a K whose fit raises is logged, recorded in
  `SearchResult.failures`, and left out of the diagnostics; the sweep
  continues with the remaining K values.
- `select_topic_count` returns the diagnostics of an externally chosen K.
  No automatic "best K" rule is applied.

Conventions
-----------
- The worker pool never exceeds host cores minus one (floor 1) nor the
  number of grid points.
- Every fit receives the seed, iteration cap, covariate formula, and
  held-out fraction of the `PipelineConfig`; no ambient random state is used.
- Workers receive a child of the caller's logger, so their entries share
  the caller's run id.

Downstream usage
----------------
Call `search_topic_counts(corpus, config, logger, backend)` from
`stm.stm_orchestrator.run_topic_search`, render `SearchResult.as_frame()`
with the reporting helpers, then call `select_topic_count` with the K a
person picked.
"""

from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from typing import Dict, List

import pandas as pd

from infra.logging.infra_logger import InfraLogger
from stm.stm_config import CPU_COUNT, PipelineConfig
from stm.stm_corpus import Corpus
from stm.stm_errors import ConfigurationError
from stm.stm_model import FitDiagnostics, TopicModelBackend, TopicModelResult

DIAGNOSTIC_COLUMNS: List[str] = [
    "topic_count",
    "held_out_likelihood",
    "lower_bound",
    "semantic_coherence",
    "exclusivity",
    "iterations",
    "converged",
]


@dataclass
class SearchResult:
    """
    Purpose
    -------
    Outcome of a topic-count sweep.

    Attributes
    ----------
    diagnostics : dict[int, FitDiagnostics]
        Diagnostics of every K whose fit succeeded, in ascending K order.
    failures : dict[int, str]
        Failure description of every K whose fit raised.
    """

    diagnostics: Dict[int, FitDiagnostics] = field(default_factory=dict)
    failures: Dict[int, str] = field(default_factory=dict)

    @property
    def topic_counts(self) -> List[int]:
        return sorted(self.diagnostics)

    def as_frame(self) -> pd.DataFrame:
        """One row per successful K with the scalar diagnostics."""
        rows = [
            {column: asdict(self.diagnostics[k])[column] for column in DIAGNOSTIC_COLUMNS}
            for k in self.topic_counts
        ]
        return pd.DataFrame(rows, columns=DIAGNOSTIC_COLUMNS)


def resolve_worker_count(requested_workers: int, task_count: int) -> int:
    """
    Bound the pool size by host cores minus one and by the number of tasks.

    Parameters
    ----------
    requested_workers : int
        Configured worker count.
    task_count : int
        Number of grid points.

    Returns
    -------
    int
        Worker count, at least 1.
    """
    return max(1, min(requested_workers, CPU_COUNT - 1, task_count))


def fit_topic_count(
    backend: TopicModelBackend,
    corpus: Corpus,
    topic_count: int,
    config: PipelineConfig,
    logger: InfraLogger,
) -> FitDiagnostics:
    """
    Fit one grid point and return its diagnostics.

    Parameters
    ----------
    backend : TopicModelBackend
        Fitting routine.
    corpus : Corpus
        Read-only corpus shared by every grid point.
    topic_count : int
        K of this unit.
    config : PipelineConfig
        Source of the formula, iteration cap, seed, and held-out fraction.
    logger : InfraLogger
        Logger of the worker.

    Returns
    -------
    FitDiagnostics
        Diagnostics of the fit. The fitted model is dropped so that only
        small picklable values cross the process boundary.

    Raises
    ------
    Exception
        Whatever the backend raises; the sweep records it as a failure.
    """
    logger.debug(event="fit_topic_count", msg=f"Fitting K={topic_count}")
    result: TopicModelResult = backend.fit(
        corpus,
        topic_count,
        config.covariate_formula,
        config.max_iterations,
        config.seed,
        config.held_out_fraction,
    )
    logger.info(
        event="fit_topic_count",
        msg=f"Fitted K={topic_count}",
        context={
            "topic_count": topic_count,
            "held_out_likelihood": result.diagnostics.held_out_likelihood,
            "lower_bound": result.diagnostics.lower_bound,
            "semantic_coherence": result.diagnostics.semantic_coherence,
            "exclusivity": result.diagnostics.exclusivity,
        },
    )
    return result.diagnostics


def search_topic_counts(
    corpus: Corpus,
    config: PipelineConfig,
    logger: InfraLogger,
    backend: TopicModelBackend,
) -> SearchResult:
    """
    Fit every K of `config.topic_counts` and collect the diagnostics.

    Parameters
    ----------
    corpus : Corpus
        Assembled corpus.
    config : PipelineConfig
        Validated configuration.
    logger : InfraLogger
        Logger of the caller.
    backend : TopicModelBackend
        Fitting routine; must be picklable when more than one worker is used.

    Returns
    -------
    SearchResult
        Diagnostics of the successful K values and descriptions of the failed ones.

    Notes
    -----
    - Exceptions of individual fits are caught, logged at warning level, and
      never abort the sweep.
    - If every K fails the result has no diagnostics; an error event is
      logged and the empty result is returned.

    Raises
    ------
    ConfigurationError
        If the topic-count grid is empty.
    """
    topic_counts: List[int] = config.topic_counts
    if not topic_counts:
        raise ConfigurationError(
            f"Empty topic-count range {config.min_topics}..{config.max_topics}"
        )
    worker_count: int = resolve_worker_count(config.worker_count, len(topic_counts))
    worker_logger: InfraLogger = logger.child(f"{logger.component_name}_worker")
    logger.info(
        event="search_topic_counts",
        msg=f"Searching K={topic_counts[0]}..{topic_counts[-1]} with {worker_count} workers",
        context={"topic_counts": topic_counts, "worker_count": worker_count},
    )
    search_result = SearchResult()
    if worker_count == 1:
        for topic_count in topic_counts:
            try:
                search_result.diagnostics[topic_count] = fit_topic_count(
                    backend, corpus, topic_count, config, worker_logger
                )
            except Exception as e:  # pylint: disable=W0718
                record_failure(search_result, topic_count, e, logger)
    else:
        with ProcessPoolExecutor(max_workers=worker_count) as executor:
            futures = {
                executor.submit(
                    fit_topic_count, backend, corpus, topic_count, config, worker_logger
                ): topic_count
                for topic_count in topic_counts
            }
            for future in as_completed(futures):
                topic_count = futures[future]
                try:
                    search_result.diagnostics[topic_count] = future.result()
                except Exception as e:  # pylint: disable=W0718
                    record_failure(search_result, topic_count, e, logger)

    search_result.diagnostics = dict(sorted(search_result.diagnostics.items()))
    search_result.failures = dict(sorted(search_result.failures.items()))
    if not search_result.diagnostics:
        logger.error(
            event="search_topic_counts",
            msg="Every topic count failed to fit",
            context={"failures": search_result.failures},
        )
    logger.info(
        event="search_topic_counts",
        msg="Topic-count search finished",
        context={
            "succeeded": search_result.topic_counts,
            "failed": list(search_result.failures),
        },
    )
    return search_result


def record_failure(
    search_result: SearchResult, topic_count: int, error: Exception, logger: InfraLogger
) -> None:
    search_result.failures[topic_count] = f"{type(error).__name__}: {error}"
    logger.warning(
        event="fit_topic_count_failed",
        msg=f"Fit with K={topic_count} failed; excluded from diagnostics",
        context={"topic_count": topic_count, "error": search_result.failures[topic_count]},
    )


def select_topic_count(search_result: SearchResult, chosen_topics: int) -> FitDiagnostics:
    """
    Return the diagnostics of the topic count chosen by a person.

    Parameters
    ----------
    search_result : SearchResult
        Completed sweep.
    chosen_topics : int
        K picked after inspecting the sweep.

    Returns
    -------
    FitDiagnostics
        Diagnostics of `chosen_topics`.

    Raises
    ------
    ConfigurationError
        If `chosen_topics` failed in the sweep or was not part of its grid.
    """
    if chosen_topics in search_result.failures:
        raise ConfigurationError(
            f"Chosen K={chosen_topics} failed during the search: "
            f"{search_result.failures[chosen_topics]}"
        )
    if chosen_topics not in search_result.diagnostics:
        raise ConfigurationError(
            f"Chosen K={chosen_topics} was not searched; searched {search_result.topic_counts}"
        )
    return search_result.diagnostics[chosen_topics]
