"""
Purpose
-------
Unit tests for `stm.stm_labels`: FREX, lift, score, per-topic
exclusivity, and the label table.

Key behaviors
-------------
- A word concentrated in one topic ranks first by FREX for that topic.
- Lift sends words absent from the corpus to the bottom.
- Score is zero for a word with identical probability in every topic.

Conventions
-----------
- A hand-built two-topic, three-word model with known rankings.

Downstream usage
----------------
Run with `pytest -q tests/test_stm`.
"""

import numpy as np
import pandas as pd

from stm.stm_labels import (
    LABEL_METRICS,
    calculate_frex,
    calculate_lift,
    calculate_score,
    label_topics,
    topic_exclusivity,
)

VOCABULARY = ["loft", "view", "garden"]
LOG_BETA: np.ndarray = np.log(np.array([[0.7, 0.2, 0.1], [0.1, 0.2, 0.7]]))
WORD_COUNTS: np.ndarray = np.array([5, 5, 0])


def test_calculate_frex_prefers_exclusive_frequent_words() -> None:
    """
    Give the dominant, exclusive word of each topic the maximal FREX of 1.

    Returns
    -------
    None
    """

    frex: np.ndarray = calculate_frex(LOG_BETA, frex_weight=0.5)
    assert frex.shape == LOG_BETA.shape
    assert np.isclose(frex[0, 0], 1.0)
    assert np.isclose(frex[1, 2], 1.0)
    assert ((frex > 0) & (frex <= 1)).all()


def test_calculate_lift_absent_words_last() -> None:
    """
    Return `-inf` lift for words with zero corpus count.

    Returns
    -------
    None
    """

    lift: np.ndarray = calculate_lift(LOG_BETA, WORD_COUNTS)
    assert np.isneginf(lift[:, 2]).all()
    assert np.isclose(lift[0, 0], np.log(0.7 / 0.5))


def test_calculate_score_shared_word_is_zero() -> None:
    """
    Score a word with equal probability across topics as zero.

    Returns
    -------
    None
    """

    score: np.ndarray = calculate_score(LOG_BETA)
    assert np.allclose(score[:, 1], 0.0)
    assert score[0, 0] > 0 > score[1, 0]


def test_topic_exclusivity_top_word_only() -> None:
    """
    Sum FREX over the single top word of each topic.

    Returns
    -------
    None
    """

    exclusivity: np.ndarray = topic_exclusivity(LOG_BETA, top_n=1, frex_weight=0.7)
    assert np.allclose(exclusivity, [1.0, 1.0])


def test_label_topics_table() -> None:
    """
    List top words per topic under every metric.

    Returns
    -------
    None
    """

    labels_df: pd.DataFrame = label_topics(LOG_BETA, WORD_COUNTS, VOCABULARY, top_n=2)

    assert list(labels_df.columns) == ["topic_id"] + LABEL_METRICS
    assert labels_df["topic_id"].tolist() == [0, 1]
    assert labels_df.loc[0, "prob"] == ["loft", "view"]
    assert labels_df.loc[1, "prob"] == ["garden", "view"]
    assert labels_df.loc[0, "frex"][0] == "loft"
    assert "garden" not in labels_df.loc[1, "lift"]
