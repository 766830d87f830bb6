"""
Purpose
-------
Notebook plots and printed tables for the listing price topic model.

Key behaviors
-------------
- Show the raw and log price distributions of the prepared listings.
- Show the per-K search diagnostics side by side for choosing K.
- Show expected topic proportions and price effects of the chosen model.
- Print the topic label tables.

Conventions
-----------
- Every function draws with matplotlib, calls `plt.show()`, and returns None.
- Prepared prices are log prices; the raw panel exponentiates them.

Downstream usage
----------------
Call from the modeling notebook after `stm.stm_orchestrator` has produced
the corpus, the `SearchResult`, and the `ChosenModel`.
"""

from typing import List

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from stm.stm_model import EffectEstimate, TopicModelResult
from stm.stm_search import SearchResult


def plot_price_distribution(metadata_df: pd.DataFrame, bins: int = 50) -> None:
    log_price: np.ndarray = metadata_df["price"].to_numpy(dtype=np.float64)
    print(pd.Series(np.exp(log_price), name="price").describe())

    fig, axes = plt.subplots(1, 2, figsize=(12, 4))
    axes[0].hist(np.exp(log_price), bins=bins, color="tab:blue", alpha=0.7)
    axes[0].set_title("Price")
    axes[0].set_xlabel("Price per night")
    axes[0].set_ylabel("Listings")

    axes[1].hist(log_price, bins=bins, color="tab:orange", alpha=0.7)
    axes[1].set_title("Log price")
    axes[1].set_xlabel("log(price)")

    fig.tight_layout()
    plt.show()


def plot_search_diagnostics(search_result: SearchResult) -> None:
    """
    Plot held-out likelihood, lower bound, coherence, and exclusivity per K.

    Parameters
    ----------
    search_result : SearchResult
        Completed sweep; failed K values are absent from the panels.

    Returns
    -------
    None
        Prints the diagnostics table and the failed K values, then shows a
        2x2 grid of per-K panels and a coherence-vs-exclusivity scatter.

    Raises
    ------
    ValueError
        If no K succeeded.
    """
    diagnostics_df: pd.DataFrame = search_result.as_frame()
    if diagnostics_df.empty:
        raise ValueError("No successful fit to plot")
    print(diagnostics_df.to_string(index=False))
    if search_result.failures:
        print(f"Failed topic counts: {sorted(search_result.failures)}")

    panels = [
        ("held_out_likelihood", "Held-out likelihood"),
        ("lower_bound", "Lower bound"),
        ("semantic_coherence", "Semantic coherence"),
        ("exclusivity", "Exclusivity"),
    ]
    fig, axes = plt.subplots(2, 2, figsize=(12, 8))
    for ax, (column, title) in zip(axes.ravel(), panels):
        values = diagnostics_df[column].astype("float64")
        ax.plot(diagnostics_df["topic_count"], values, marker="o")
        ax.set_title(title)
        ax.set_xlabel("Number of topics (K)")
    fig.tight_layout()
    plt.show()

    _, ax = plt.subplots(figsize=(6, 5))
    ax.scatter(diagnostics_df["semantic_coherence"], diagnostics_df["exclusivity"])
    for _, row in diagnostics_df.iterrows():
        ax.annotate(str(int(row["topic_count"])), (row["semantic_coherence"], row["exclusivity"]))
    ax.set_xlabel("Semantic coherence")
    ax.set_ylabel("Exclusivity")
    ax.set_title("Coherence vs exclusivity")
    plt.tight_layout()
    plt.show()


def plot_topic_proportions(
    result: TopicModelResult, labels_df: pd.DataFrame, label_words: int = 3
) -> None:
    """
    Horizontal bar chart of expected topic proportions, labelled with top words.

    Parameters
    ----------
    result : TopicModelResult
        Chosen model.
    labels_df : pandas.DataFrame
        Output of `label_topics`; the `prob` column supplies the labels.
    label_words : int, default 3
        Words per bar label.
    """
    expected_proportions: np.ndarray = result.theta.mean(axis=0)
    order: np.ndarray = np.argsort(expected_proportions)
    bar_labels: List[str] = [
        f"Topic {topic_id}: {', '.join(labels_df.loc[topic_id, 'prob'][:label_words])}"
        for topic_id in order
    ]
    _, ax = plt.subplots(figsize=(8, max(3, 0.4 * result.topic_count)))
    ax.barh(bar_labels, expected_proportions[order], color="tab:blue", alpha=0.7)
    ax.set_xlabel("Expected topic proportion")
    ax.set_title("Top topics")
    plt.tight_layout()
    plt.show()


def plot_price_effects(effects: List[EffectEstimate], covariate: str = "price") -> None:
    effects_df = pd.DataFrame([vars(effect) for effect in effects])
    effects_df = effects_df.loc[effects_df["covariate"] == covariate].sort_values("topic_id")
    print(
        effects_df[["topic_id", "coefficient", "std_error", "p_value"]].to_string(index=False)
    )

    _, ax = plt.subplots(figsize=(7, max(3, 0.4 * len(effects_df))))
    ax.errorbar(
        effects_df["coefficient"],
        effects_df["topic_id"],
        xerr=[
            effects_df["coefficient"] - effects_df["ci_lower"],
            effects_df["ci_upper"] - effects_df["coefficient"],
        ],
        fmt="o",
        capsize=3,
    )
    ax.axvline(0.0, color="grey", linestyle="--", linewidth=1)
    ax.set_yticks(effects_df["topic_id"])
    ax.set_yticklabels([f"Topic {topic_id}" for topic_id in effects_df["topic_id"]])
    ax.set_xlabel(f"Effect of {covariate} on topic proportion (95% CI)")
    ax.set_title(f"Topic prevalence vs {covariate}")
    plt.tight_layout()
    plt.show()


def print_topic_labels(labels_df: pd.DataFrame) -> None:
    for _, row in labels_df.iterrows():
        print(f"Topic {row['topic_id']} Top Words:")
        for metric in ("prob", "frex", "lift", "score"):
            print(f"\t{metric.capitalize()}: {', '.join(row[metric])}")
