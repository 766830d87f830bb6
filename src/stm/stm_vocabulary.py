"""
Purpose
-------
Tokenize listing descriptions, remove stop-words, and truncate the corpus
vocabulary to the most frequent words.

Key behaviors
-------------
- Lowercase each description, split it on non-alphanumeric ASCII
  boundaries, and explode it into a long table with one token per row,
  keyed by (`id`, `position`).
- Anti-join tokens against a stop-word set.
- Count tokens globally and keep the `vocabulary_size` most frequent ones,
  breaking frequency ties lexicographically so that reruns are identical.
- Restrict the token table to the retained vocabulary.

Conventions
-----------
- Tokens are lowercase ASCII `[a-z0-9]+`; accents and other non-ASCII
  characters act as separators.
- The vocabulary is a list in rank order (frequency descending, then token
  ascending); that order defines the document-term matrix columns.
- Stop-words come from NLTK's English list unless a set is injected.

Downstream usage
----------------
`stm.stm_corpus.assemble_corpus` consumes the restricted token table and the
vocabulary list produced here.
"""

from typing import Iterable, List

import nltk
import pandas as pd

from infra.logging.infra_logger import InfraLogger
from stm.stm_config import DEFAULT_VOCABULARY_SIZE
from stm.stm_errors import ConfigurationError

TOKEN_SEPARATOR_PATTERN: str = r"[^a-z0-9]+"

TOKEN_COLUMNS: List[str] = ["id", "position", "token"]


def load_stop_words(language: str = "english") -> frozenset[str]:
    """
    Fetch NLTK's stop-word list for `language`.

    Parameters
    ----------
    language : str, default "english"
        Name of the NLTK stop-word corpus file.

    Returns
    -------
    frozenset[str]
        Lowercased stop-words.

    Notes
    -----
    - Downloads the NLTK `stopwords` corpus quietly when it is not cached.
    """
    nltk.download("stopwords", quiet=True)
    return frozenset(word.lower() for word in nltk.corpus.stopwords.words(language))


def tokenize_descriptions(prepared_df: pd.DataFrame) -> pd.DataFrame:
    """
    Split each listing's `comments` into lowercase word tokens.

    Parameters
    ----------
    prepared_df : pandas.DataFrame
        Prepared listings with `id` and `comments`.

    Returns
    -------
    pandas.DataFrame
        Long table with columns `id`, `position`, `token`; `position` counts
        tokens per listing id from 0, continuing across rows that share an
        id in input order. Rows whose text has no token contribute nothing.
    """
    token_df: pd.DataFrame = prepared_df[["id", "comments"]].copy()
    token_df["token"] = (
        token_df["comments"]
        .astype(str)
        .str.lower()
        .str.replace(TOKEN_SEPARATOR_PATTERN, " ", regex=True)
        .str.split()
    )
    token_df = token_df.explode("token").dropna(subset=["token"])
    token_df["position"] = token_df.groupby("id", sort=False).cumcount()
    return token_df[TOKEN_COLUMNS].reset_index(drop=True)


def remove_stop_words(token_df: pd.DataFrame, stop_words: Iterable[str]) -> pd.DataFrame:
    """
    Drop tokens that belong to `stop_words`.

    Parameters
    ----------
    token_df : pandas.DataFrame
        Token table from `tokenize_descriptions`.
    stop_words : Iterable[str]
        Stop-words; compared in lowercase.

    Returns
    -------
    pandas.DataFrame
        Tokens not in the stop-word set, positions unchanged.
    """
    stop_word_set: set[str] = {word.lower() for word in stop_words}
    return token_df.loc[~token_df["token"].isin(stop_word_set)].reset_index(drop=True)


def count_token_frequencies(token_df: pd.DataFrame) -> pd.DataFrame:
    """
    Count global token occurrences in rank order.

    Parameters
    ----------
    token_df : pandas.DataFrame
        Token table with a `token` column.

    Returns
    -------
    pandas.DataFrame
        Columns `token`, `term_count`, sorted by `term_count` descending and
        then `token` ascending.
    """
    frequency_df: pd.DataFrame = token_df.groupby("token").size().reset_index(name="term_count")
    return frequency_df.sort_values(
        by=["term_count", "token"], ascending=[False, True], kind="mergesort"
    ).reset_index(drop=True)


def build_vocabulary(
    token_df: pd.DataFrame,
    logger: InfraLogger,
    vocabulary_size: int = DEFAULT_VOCABULARY_SIZE,
) -> List[str]:
    """
    Keep the `vocabulary_size` most frequent tokens.

    Parameters
    ----------
    token_df : pandas.DataFrame
        Stop-word-free token table of the whole filtered corpus.
    logger : InfraLogger
        Structured logger for the vocabulary summary.
    vocabulary_size : int, default DEFAULT_VOCABULARY_SIZE
        Vocabulary cap N.

    Returns
    -------
    list[str]
        min(N, distinct tokens) words in rank order.

    Raises
    ------
    ConfigurationError
        If `vocabulary_size` is not positive.

    Notes
    -----
    - Ties at the cutoff frequency are resolved lexicographically, so the
      vocabulary is a deterministic function of the token table.
    """
    if vocabulary_size <= 0:
        raise ConfigurationError(f"vocabulary_size must be positive, got {vocabulary_size}")
    frequency_df: pd.DataFrame = count_token_frequencies(token_df)
    vocabulary: List[str] = frequency_df["token"].head(vocabulary_size).tolist()
    logger.info(
        event="build_vocabulary",
        msg="Truncated vocabulary to most frequent tokens",
        context={
            "distinct_tokens": len(frequency_df),
            "vocabulary_size": len(vocabulary),
            "vocabulary_cap": vocabulary_size,
            "top_tokens": vocabulary[:20],
        },
    )
    return vocabulary


def restrict_to_vocabulary(token_df: pd.DataFrame, vocabulary: Iterable[str]) -> pd.DataFrame:
    """
    Keep only tokens that are vocabulary words.

    Parameters
    ----------
    token_df : pandas.DataFrame
        Token table.
    vocabulary : Iterable[str]
        Retained vocabulary.

    Returns
    -------
    pandas.DataFrame
        Filtered token table; documents left without tokens disappear.
    """
    return token_df.loc[token_df["token"].isin(set(vocabulary))].reset_index(drop=True)
