"""
Purpose
-------
Characterize fitted topics by their distinctive words: highest
probability, FREX, lift, and score, plus the per-topic exclusivity used as
a search diagnostic.

Key behaviors
-------------
- FREX: weighted harmonic mean of a word's within-topic frequency rank and
  its exclusivity rank (share of the word's probability mass across topics).
- Lift: topic-word probability divided by the word's empirical corpus
  frequency.
- Score: topic-word probability times the log-ratio to the word's mean log
  probability across topics.
- Exclusivity: sum of FREX (weight 0.7) over each topic's top words.

Conventions
-----------
- `log_beta` is a (topics x vocabulary) matrix of natural-log topic-word
  probabilities; rows sum to 1 after exponentiation.
- Ranks are empirical CDF values in (0, 1], ties take the maximum rank.
- Sorting is stable, so words with equal metrics keep vocabulary order.

Downstream usage
----------------
`stm.stm_model.GensimTopicModelBackend` uses `topic_exclusivity` for
diagnostics; reporting code calls `label_topics` on a fitted result.
"""

from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from stm.stm_config import TOP_WORD_NUM

LABEL_METRICS: List[str] = ["prob", "frex", "lift", "score"]


def ecdf_ranks(matrix: np.ndarray) -> np.ndarray:
    """Row-wise empirical CDF of each entry."""
    return np.vstack([rankdata(row, method="max") / row.size for row in matrix])


def calculate_frex(log_beta: np.ndarray, frex_weight: float = 0.5) -> np.ndarray:
    """
    Compute FREX for every topic-word pair.

    Parameters
    ----------
    log_beta : numpy.ndarray
        (topics x vocabulary) log probabilities.
    frex_weight : float, default 0.5
        Weight on exclusivity; 1 - frex_weight goes to frequency.

    Returns
    -------
    numpy.ndarray
        FREX values in (0, 1], same shape as `log_beta`.
    """
    beta: np.ndarray = np.exp(log_beta)
    exclusivity: np.ndarray = beta / beta.sum(axis=0, keepdims=True)
    frequency_score: np.ndarray = ecdf_ranks(log_beta)
    exclusivity_score: np.ndarray = ecdf_ranks(exclusivity)
    return 1.0 / (frex_weight / exclusivity_score + (1.0 - frex_weight) / frequency_score)


def calculate_lift(log_beta: np.ndarray, word_counts: np.ndarray) -> np.ndarray:
    """
    Compute log-lift: log topic-word probability minus log empirical frequency.

    Words that never occur in the corpus get `-inf` so they sort last.
    """
    word_counts = np.asarray(word_counts, dtype=np.float64)
    empirical_frequency: np.ndarray = word_counts / word_counts.sum()
    with np.errstate(divide="ignore"):
        log_frequency: np.ndarray = np.log(empirical_frequency)
    return np.where(np.isfinite(log_frequency), log_beta - log_frequency, -np.inf)


def calculate_score(log_beta: np.ndarray) -> np.ndarray:
    """Compute the topic-word score `beta * (log_beta - mean_k log_beta)`."""
    return np.exp(log_beta) * (log_beta - log_beta.mean(axis=0, keepdims=True))


def top_indices(metric: np.ndarray, top_n: int) -> np.ndarray:
    return np.argsort(-metric, axis=1, kind="stable")[:, :top_n]


def topic_exclusivity(
    log_beta: np.ndarray, top_n: int = TOP_WORD_NUM, frex_weight: float = 0.7
) -> np.ndarray:
    """
    Compute one exclusivity value per topic.

    Parameters
    ----------
    log_beta : numpy.ndarray
        (topics x vocabulary) log probabilities.
    top_n : int, default TOP_WORD_NUM
        Number of highest-probability words summed per topic.
    frex_weight : float, default 0.7
        FREX weight on exclusivity.

    Returns
    -------
    numpy.ndarray
        Array of length `topics`.
    """
    frex: np.ndarray = calculate_frex(log_beta, frex_weight)
    return np.take_along_axis(frex, top_indices(log_beta, top_n), axis=1).sum(axis=1)


def label_topics(
    log_beta: np.ndarray,
    word_counts: np.ndarray,
    vocabulary: Sequence[str],
    top_n: int = TOP_WORD_NUM,
    frex_weight: float = 0.5,
) -> pd.DataFrame:
    """
    List each topic's top words under the four labelling metrics.

    Parameters
    ----------
    log_beta : numpy.ndarray
        (topics x vocabulary) log probabilities.
    word_counts : numpy.ndarray
        Corpus count of each vocabulary word.
    vocabulary : Sequence[str]
        Words matching the columns of `log_beta`.
    top_n : int, default TOP_WORD_NUM
        Words per topic and metric.
    frex_weight : float, default 0.5
        FREX weight on exclusivity.

    Returns
    -------
    pandas.DataFrame
        One row per topic with `topic_id` and the columns `prob`, `frex`,
        `lift`, `score`, each holding an ordered list of words.
    """
    vocabulary_array: np.ndarray = np.asarray(vocabulary, dtype=object)
    metrics: Dict[str, np.ndarray] = {
        "prob": log_beta,
        "frex": calculate_frex(log_beta, frex_weight),
        "lift": calculate_lift(log_beta, word_counts),
        "score": calculate_score(log_beta),
    }
    labels: Dict[str, List[List[str]]] = {
        name: [vocabulary_array[row].tolist() for row in top_indices(metric, top_n)]
        for name, metric in metrics.items()
    }
    return pd.DataFrame({"topic_id": list(range(log_beta.shape[0])), **labels})[
        ["topic_id"] + LABEL_METRICS
    ]
