"""
Purpose
-------
Wire the pipeline stages together: listings file to aligned corpus,
corpus to topic-count search, and chosen K to fitted model with price
effects and topic labels.

Key behaviors
-------------
- `prepare_corpus` runs Loader, Filter/Normalize, Tokenizer/Vocabulary,
  and Corpus Assembler in that order and returns the corpus together with
  the row accounting of the filter stage.
- `run_topic_search` sweeps the configured topic-count grid.
- `fit_chosen_model` refits the externally chosen K on every document
  (no held-out split), estimates the effect of the covariates on each
  topic, and labels the topics.

Conventions
-----------
- Every function takes a validated `PipelineConfig` and an `InfraLogger`;
  nothing reads ambient process state apart from `load_pipeline_config`.
- Stages hand over in-memory tables only; nothing is persisted.
- Every entry point validates its `PipelineConfig` before touching data,
  so an invalid configuration fails with `ConfigurationError` up front.
- Configuration and corpus assembly errors propagate to the caller.

Downstream usage
----------------
Notebooks call, in order:
`load_pipeline_config()`, `initialize_logger("stm_pipeline")`,
`prepare_corpus(config, logger)`, `run_topic_search(corpus, config, logger)`,
then `fit_chosen_model(corpus, config, logger)` once a K has been picked
(set `STM_CHOSEN_TOPICS` or pass a config with `chosen_topics`).
"""

from dataclasses import dataclass
from typing import Iterable, List

import pandas as pd

from infra.logging.infra_logger import InfraLogger
from listings.listings_filter import FilterReport, prepare_listings
from listings.listings_loading import load_listings
from stm.stm_config import PipelineConfig
from stm.stm_corpus import Corpus, assemble_corpus
from stm.stm_labels import label_topics
from stm.stm_model import (
    EffectEstimate,
    GensimTopicModelBackend,
    TopicModelBackend,
    TopicModelResult,
)
from stm.stm_search import SearchResult, search_topic_counts, select_topic_count
from stm.stm_vocabulary import (
    build_vocabulary,
    load_stop_words,
    remove_stop_words,
    restrict_to_vocabulary,
    tokenize_descriptions,
)


@dataclass
class ChosenModel:
    """
    Purpose
    -------
    Everything the report needs about the chosen K.

    Attributes
    ----------
    result : TopicModelResult
        Model fitted on every document.
    effects : list[EffectEstimate]
        Covariate effects, one per topic and covariate.
    labels : pandas.DataFrame
        Output of `stm.stm_labels.label_topics`.
    """

    result: TopicModelResult
    effects: List[EffectEstimate]
    labels: pd.DataFrame

    def effects_frame(self) -> pd.DataFrame:
        return pd.DataFrame([vars(effect) for effect in self.effects])


def prepare_corpus(
    config: PipelineConfig,
    logger: InfraLogger,
    stop_words: Iterable[str] | None = None,
    listings_df: pd.DataFrame | None = None,
) -> tuple[Corpus, FilterReport]:
    """
    Turn the listings file into an aligned corpus.

    Parameters
    ----------
    config : PipelineConfig
        Validated configuration.
    logger : InfraLogger
        Logger of the run.
    stop_words : Iterable[str], optional
        Stop-word list; NLTK's English list when omitted.
    listings_df : pandas.DataFrame, optional
        Already-loaded raw listings; the file at `config.listings_file_path`
        is read when omitted.

    Returns
    -------
    tuple[Corpus, FilterReport]
        Aligned corpus and the row accounting of the filter stage.

    Raises
    ------
    ConfigurationError
        If `config` is invalid; raised before the listings are read.
    ListingSchemaError
        If the listings lack a required column.
    CorpusAssemblyError
        If no document survives or metadata and matrix diverge.
    """
    config.validate()
    if listings_df is None:
        listings_df = load_listings(logger, config.listings_file_path)
    prepared_df, filter_report = prepare_listings(
        listings_df, logger, room_type_filter=config.room_type_filter
    )
    token_df: pd.DataFrame = tokenize_descriptions(prepared_df)
    token_df = remove_stop_words(
        token_df, load_stop_words() if stop_words is None else stop_words
    )
    logger.debug(event="tokenize_descriptions", context={"token_rows": len(token_df)})
    vocabulary: List[str] = build_vocabulary(token_df, logger, config.vocabulary_size)
    token_df = restrict_to_vocabulary(token_df, vocabulary)
    corpus: Corpus = assemble_corpus(prepared_df, token_df, vocabulary, logger)
    return corpus, filter_report


def run_topic_search(
    corpus: Corpus,
    config: PipelineConfig,
    logger: InfraLogger,
    backend: TopicModelBackend | None = None,
) -> SearchResult:
    """Sweep `config.topic_counts` with `backend` (Gensim by default)."""
    config.validate()
    return search_topic_counts(
        corpus, config, logger, backend if backend is not None else GensimTopicModelBackend()
    )


def fit_chosen_model(
    corpus: Corpus,
    config: PipelineConfig,
    logger: InfraLogger,
    backend: TopicModelBackend | None = None,
    search_result: SearchResult | None = None,
) -> ChosenModel:
    """
    Fit `config.chosen_topics` on every document and estimate price effects.

    Parameters
    ----------
    corpus : Corpus
        Aligned corpus.
    config : PipelineConfig
        Validated configuration carrying the chosen K.
    logger : InfraLogger
        Logger of the run.
    backend : TopicModelBackend, optional
        Fitting routine; Gensim by default.
    search_result : SearchResult, optional
        Sweep the K was chosen from; when given, the K must have succeeded there.

    Returns
    -------
    ChosenModel
        Fitted model, effect estimates for every topic, and topic labels.

    Raises
    ------
    ConfigurationError
        If the configuration is invalid, or the chosen K failed or was not
        part of `search_result`.
    FitConvergenceFailure
        If the final fit fails; there is no retry.
    """
    config.validate()
    if backend is None:
        backend = GensimTopicModelBackend()
    if search_result is not None:
        select_topic_count(search_result, config.chosen_topics)
    logger.info(
        event="fit_chosen_model",
        msg=f"Fitting chosen K={config.chosen_topics}",
        context={"topic_count": config.chosen_topics, "formula": config.covariate_formula},
    )
    result: TopicModelResult = backend.fit(
        corpus,
        config.chosen_topics,
        config.covariate_formula,
        config.max_iterations,
        config.seed,
        0.0,
    )
    effects: List[EffectEstimate] = backend.estimate_effect(
        list(range(result.topic_count)), config.covariate_formula, result, corpus.metadata
    )
    labels: pd.DataFrame = label_topics(result.log_beta, corpus.word_counts, corpus.vocabulary)
    logger.info(
        event="fit_chosen_model",
        msg="Estimated covariate effects",
        context={
            "topic_count": result.topic_count,
            "lower_bound": result.diagnostics.lower_bound,
            "significant_topics": [
                effect.topic_id for effect in effects if effect.p_value < 0.05
            ],
        },
    )
    return ChosenModel(result=result, effects=effects, labels=labels)
