"""
Purpose
-------
Narrow capability interface to the topic-model fitting routine, its result
types, and the Gensim-backed implementation used by the pipeline.

Key behaviors
-------------
- `TopicModelBackend` is the only surface the pipeline depends on:
  `fit(corpus, K, formula, max_iterations, seed, held_out_fraction)` and
  `estimate_effect(topics, formula, result, metadata)`. Tests substitute a
  fake implementation.
- `GensimTopicModelBackend.fit` trains a variational LDA model
  (`gensim.models.LdaModel`) with a fixed pass cap and seed, optionally on
  a seeded training split so that a held-out per-word likelihood bound can
  be reported, and collects per-K diagnostics (held-out likelihood,
  training bound, UMass semantic coherence, exclusivity).
- `estimate_effect` regresses each topic's document proportions on the
  formula covariates with an intercept (statsmodels OLS) and reports one
  `EffectEstimate` per topic and covariate.

Conventions
-----------
- `TopicModelResult.theta` rows follow `Corpus.document_ids`;
  `log_beta` columns follow `Corpus.vocabulary`.
- The covariate formula is validated against the corpus metadata before
  fitting; the Gensim model itself is covariate-free, so price enters the
  analysis through `estimate_effect`.
- A non-finite likelihood bound marks the fit as failed
  (`FitConvergenceFailure`); there is no retry.

Downstream usage
----------------
`stm.stm_search.fit_topic_count` calls `backend.fit` once per grid point;
`stm.stm_orchestrator.fit_chosen_model` calls `fit` and `estimate_effect`
for the chosen topic count.
"""

from dataclasses import dataclass, field
from typing import Any, List, Protocol, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from gensim.corpora import Dictionary
from gensim.models import CoherenceModel, LdaModel

from stm.stm_config import TOP_WORD_NUM, parse_covariate_formula
from stm.stm_corpus import BagOfWords, Corpus
from stm.stm_errors import AlignmentError, ConfigurationError, FitConvergenceFailure
from stm.stm_labels import topic_exclusivity


@dataclass(frozen=True)
class FitDiagnostics:
    """
    Purpose
    -------
    Per-K quality measures reported by a backend.

    Attributes
    ----------
    topic_count : int
        K of the fit.
    held_out_likelihood : float | None
        Per-word likelihood bound on held-out documents; None without a held-out split.
    lower_bound : float
        Per-word likelihood bound on the training documents.
    semantic_coherence : float
        Mean per-topic UMass coherence.
    exclusivity : float
        Mean per-topic exclusivity.
    topic_coherence : list[float]
        Per-topic coherence values.
    iterations : int
        Passes over the corpus used by the fit.
    converged : bool
        True when the fit finished with a finite bound.
    """

    topic_count: int
    held_out_likelihood: float | None
    lower_bound: float
    semantic_coherence: float
    exclusivity: float
    topic_coherence: List[float] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True


@dataclass
class TopicModelResult:
    """
    Purpose
    -------
    Fitted topic model for one K, kept in memory for reporting only.

    Attributes
    ----------
    topic_count : int
        K.
    covariate_formula : str
        Prevalence formula the fit was requested with.
    document_ids : list
        Row order of `theta`.
    theta : numpy.ndarray
        (documents x topics) topic proportions; rows sum to 1.
    log_beta : numpy.ndarray
        (topics x vocabulary) log word probabilities.
    diagnostics : FitDiagnostics
        Quality measures of the fit.
    model : Any
        Backend-specific model object.
    """

    topic_count: int
    covariate_formula: str
    document_ids: List[object]
    theta: np.ndarray
    log_beta: np.ndarray
    diagnostics: FitDiagnostics
    model: Any = None


@dataclass(frozen=True)
class EffectEstimate:
    """
    Purpose
    -------
    Linear effect of one covariate on one topic's prevalence.

    Attributes
    ----------
    topic_id : int
        Topic index.
    covariate : str
        Metadata column, e.g. "price" (log-price).
    intercept : float
        Fitted intercept of the topic regression.
    coefficient : float
        Change in expected topic proportion per unit of the covariate.
    std_error : float
        Standard error of `coefficient`.
    ci_lower, ci_upper : float
        95% confidence interval of `coefficient`.
    p_value : float
        Two-sided p-value of `coefficient`.
    """

    topic_id: int
    covariate: str
    intercept: float
    coefficient: float
    std_error: float
    ci_lower: float
    ci_upper: float
    p_value: float


class TopicModelBackend(Protocol):
    """Capability interface of a covariate-aware topic-model library."""

    def fit(
        self,
        corpus: Corpus,
        topic_count: int,
        covariate_formula: str,
        max_iterations: int,
        seed: int,
        held_out_fraction: float = 0.0,
    ) -> TopicModelResult: ...

    def estimate_effect(
        self,
        topics: Sequence[int],
        covariate_formula: str,
        result: TopicModelResult,
        metadata: pd.DataFrame,
    ) -> List[EffectEstimate]: ...


def check_covariates(covariate_formula: str, metadata: pd.DataFrame) -> List[str]:
    """
    Resolve the formula covariates and check they exist in `metadata`.

    Raises
    ------
    ConfigurationError
        If the formula is malformed or references a missing column.
    """
    covariates: List[str] = parse_covariate_formula(covariate_formula)
    missing_covariates: List[str] = [c for c in covariates if c not in metadata.columns]
    if missing_covariates:
        raise ConfigurationError(f"Covariates missing from metadata: {missing_covariates}")
    return covariates


def split_held_out(
    documents: Sequence[BagOfWords], held_out_fraction: float, seed: int
) -> tuple[List[BagOfWords], List[BagOfWords]]:
    """
    Split documents into a training part and a seeded held-out part.

    Parameters
    ----------
    documents : Sequence[list[tuple[int, int]]]
        Bag-of-words documents.
    held_out_fraction : float
        Share of documents to hold out.
    seed : int
        Seed of the permutation.

    Returns
    -------
    tuple[list, list]
        (training documents, held-out documents). The held-out part is empty
        when the fraction rounds to zero documents or would leave no training
        document.
    """
    held_out_count: int = int(round(len(documents) * held_out_fraction))
    if held_out_count == 0 or held_out_count >= len(documents):
        return list(documents), []
    held_out_positions: set[int] = set(
        np.random.default_rng(seed).permutation(len(documents))[:held_out_count].tolist()
    )
    training: List[BagOfWords] = []
    held_out: List[BagOfWords] = []
    for position, document in enumerate(documents):
        (held_out if position in held_out_positions else training).append(document)
    return training, held_out


def estimate_effect(
    topics: Sequence[int],
    covariate_formula: str,
    result: TopicModelResult,
    metadata: pd.DataFrame,
) -> List[EffectEstimate]:
    """
    Regress topic proportions on the formula covariates.

    Parameters
    ----------
    topics : Sequence[int]
        Topic indices to estimate.
    covariate_formula : str
        Additive formula such as "~ price".
    result : TopicModelResult
        Fitted model; `theta` rows must follow `metadata` rows.
    metadata : pandas.DataFrame
        Corpus metadata with `id` and the covariate columns.

    Returns
    -------
    list[EffectEstimate]
        One estimate per (topic, covariate), in `topics` order.

    Raises
    ------
    AlignmentError
        If metadata ids do not match the result's document order.
    ConfigurationError
        If a topic index is out of range or a covariate is missing.
    """
    covariates: List[str] = check_covariates(covariate_formula, metadata)
    if metadata["id"].tolist() != list(result.document_ids):
        raise AlignmentError(detail="metadata rows do not follow the fitted document order")
    design: pd.DataFrame = sm.add_constant(
        metadata[covariates].astype(np.float64).reset_index(drop=True), has_constant="add"
    )
    estimates: List[EffectEstimate] = []
    for topic_id in topics:
        if not 0 <= topic_id < result.topic_count:
            raise ConfigurationError(
                f"Topic {topic_id} outside 0..{result.topic_count - 1}"
            )
        ols_fit = sm.OLS(result.theta[:, topic_id], design).fit()
        confidence_interval: pd.DataFrame = ols_fit.conf_int(alpha=0.05)
        for covariate in covariates:
            estimates.append(
                EffectEstimate(
                    topic_id=int(topic_id),
                    covariate=covariate,
                    intercept=float(ols_fit.params["const"]),
                    coefficient=float(ols_fit.params[covariate]),
                    std_error=float(ols_fit.bse[covariate]),
                    ci_lower=float(confidence_interval.loc[covariate, 0]),
                    ci_upper=float(confidence_interval.loc[covariate, 1]),
                    p_value=float(ols_fit.pvalues[covariate]),
                )
            )
    return estimates


@dataclass(frozen=True)
class GensimTopicModelBackend:
    """
    Purpose
    -------
    `TopicModelBackend` implementation on top of Gensim's variational LDA.

    Parameters
    ----------
    inner_iterations : int, default 50
        Per-document variational iterations of each E-step.
    coherence_measure : str, default "u_mass"
        Gensim coherence measure; UMass needs only the bag-of-words corpus.
    top_n : int, default TOP_WORD_NUM
        Top words per topic used for coherence and exclusivity.

    Notes
    -----
    - `max_iterations` maps to Gensim `passes` (full EM sweeps over the corpus).
    - The backend is a frozen dataclass so it pickles into sweep workers.
    """

    inner_iterations: int = 50
    coherence_measure: str = "u_mass"
    top_n: int = TOP_WORD_NUM

    def fit(
        self,
        corpus: Corpus,
        topic_count: int,
        covariate_formula: str,
        max_iterations: int,
        seed: int,
        held_out_fraction: float = 0.0,
    ) -> TopicModelResult:
        """
        Fit an LDA model with `topic_count` topics.

        Returns
        -------
        TopicModelResult
            Proportions for every corpus document (held-out ones included),
            topic-word log probabilities, and diagnostics.

        Raises
        ------
        ConfigurationError
            If the formula references a column missing from the metadata.
        FitConvergenceFailure
            If Gensim raises a numerical error or the bound is not finite.
        """
        check_covariates(covariate_formula, corpus.metadata)
        dictionary: Dictionary = Dictionary.from_corpus(
            corpus.documents, id2word=dict(enumerate(corpus.vocabulary))
        )
        training, held_out = split_held_out(corpus.documents, held_out_fraction, seed)
        try:
            lda_model = LdaModel(
                corpus=training,
                id2word=dictionary,
                num_topics=topic_count,
                passes=max_iterations,
                iterations=self.inner_iterations,
                random_state=seed,
                eval_every=None,
            )
            lower_bound: float = float(lda_model.log_perplexity(training))
            held_out_likelihood: float | None = (
                float(lda_model.log_perplexity(held_out)) if held_out else None
            )
            gamma, _ = lda_model.inference(corpus.documents)
        except (ValueError, FloatingPointError, ZeroDivisionError) as exc:
            raise FitConvergenceFailure(topic_count, str(exc)) from exc
        if not np.isfinite(lower_bound):
            raise FitConvergenceFailure(topic_count, "non-finite likelihood bound")

        theta: np.ndarray = gamma / gamma.sum(axis=1, keepdims=True)
        with np.errstate(divide="ignore"):
            log_beta: np.ndarray = np.log(lda_model.get_topics())
        topic_coherence: List[float] = self.topic_coherence(lda_model, corpus, dictionary)
        diagnostics = FitDiagnostics(
            topic_count=topic_count,
            held_out_likelihood=held_out_likelihood,
            lower_bound=lower_bound,
            semantic_coherence=float(np.mean(topic_coherence)),
            exclusivity=float(np.mean(topic_exclusivity(log_beta, top_n=self.top_n))),
            topic_coherence=topic_coherence,
            iterations=max_iterations,
            converged=True,
        )
        return TopicModelResult(
            topic_count=topic_count,
            covariate_formula=covariate_formula,
            document_ids=list(corpus.document_ids),
            theta=theta,
            log_beta=log_beta,
            diagnostics=diagnostics,
            model=lda_model,
        )

    def topic_coherence(
        self, lda_model: LdaModel, corpus: Corpus, dictionary: Dictionary
    ) -> List[float]:
        coherence_model = CoherenceModel(
            model=lda_model,
            corpus=corpus.documents,
            dictionary=dictionary,
            coherence=self.coherence_measure,
            topn=min(self.top_n, len(corpus.vocabulary)),
        )
        return [float(score) for score in coherence_model.get_coherence_per_topic()]

    def estimate_effect(
        self,
        topics: Sequence[int],
        covariate_formula: str,
        result: TopicModelResult,
        metadata: pd.DataFrame,
    ) -> List[EffectEstimate]:
        return estimate_effect(topics, covariate_formula, result, metadata)
