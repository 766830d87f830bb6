"""
Purpose
-------
Assemble the corpus handed to the topic-model backend: a document-term
count matrix over the retained vocabulary and a per-document covariate
table aligned with it by listing id.

Key behaviors
-------------
- Count each vocabulary word per document (zero counts are never
  materialized).
- Build a sparse `documents x vocabulary` CSR matrix whose rows are the
  documents with at least one vocabulary token, sorted by id.
- Build the metadata table with exactly one price per document id
  (first-seen), restricted to the matrix documents and sorted by id.
  Ids carrying conflicting prices are flagged, not silently resolved.
- Verify that metadata ids and matrix ids are the same set in the same
  order; a mismatch is fatal and no corpus is returned.

Conventions
-----------
- Document order is ascending listing id for every structure of a `Corpus`.
- Matrix columns follow the vocabulary rank order of
  `stm.stm_vocabulary.build_vocabulary`.
- `Corpus.documents` is the same matrix in Gensim bag-of-words form:
  one list of `(word_index, count)` pairs per document.

Downstream usage
----------------
`stm.stm_search` and `stm.stm_model` read the corpus; they never mutate it.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from infra.logging.infra_logger import InfraLogger
from stm.stm_errors import AlignmentError, CorpusAssemblyError, EmptyCorpusError

BagOfWords = List[tuple[int, int]]


@dataclass(frozen=True)
class Corpus:
    """
    Purpose
    -------
    Aligned document-term matrix and covariate metadata for one run.

    Attributes
    ----------
    document_ids : list
        Listing ids in ascending order; row i of every structure is
        `document_ids[i]`.
    vocabulary : list[str]
        Vocabulary in rank order; column j is `vocabulary[j]`.
    document_term_matrix : scipy.sparse.csr_matrix
        Integer term counts, shape (documents, vocabulary).
    documents : list[list[tuple[int, int]]]
        Bag-of-words view of the matrix.
    metadata : pandas.DataFrame
        Columns `id`, `price`, one row per document in `document_ids` order.
    conflicting_price_ids : list
        Ids whose input rows disagreed on price; the first-seen price is used.
    """

    document_ids: List[object]
    vocabulary: List[str]
    document_term_matrix: sparse.csr_matrix
    documents: List[BagOfWords]
    metadata: pd.DataFrame
    conflicting_price_ids: List[object] = field(default_factory=list)

    @property
    def num_documents(self) -> int:
        return len(self.document_ids)

    @property
    def word_counts(self) -> np.ndarray:
        """Corpus-wide count of each vocabulary word."""
        return np.asarray(self.document_term_matrix.sum(axis=0)).ravel()


def count_document_terms(token_df: pd.DataFrame) -> pd.DataFrame:
    """
    Count vocabulary-word occurrences per document.

    Parameters
    ----------
    token_df : pandas.DataFrame
        Vocabulary-restricted token table with `id` and `token`.

    Returns
    -------
    pandas.DataFrame
        Columns `id`, `token`, `term_count` (always >= 1), sorted by id then token.
    """
    return (
        token_df.groupby(["id", "token"])
        .size()
        .reset_index(name="term_count")
        .sort_values(by=["id", "token"], kind="mergesort")
        .reset_index(drop=True)
    )


def build_document_term_matrix(
    document_terms_df: pd.DataFrame, vocabulary: Sequence[str]
) -> tuple[List[object], sparse.csr_matrix]:
    """
    Build the sparse count matrix from document-term rows.

    Parameters
    ----------
    document_terms_df : pandas.DataFrame
        Output of `count_document_terms`.
    vocabulary : Sequence[str]
        Column order of the matrix.

    Returns
    -------
    tuple[list, scipy.sparse.csr_matrix]
        Sorted document ids (the matrix rows) and the matrix.

    Raises
    ------
    CorpusAssemblyError
        If a counted token is not a vocabulary word.
    """
    unknown_mask: pd.Series = ~document_terms_df["token"].isin(set(vocabulary))
    if unknown_mask.any():
        unknown_tokens = sorted(set(document_terms_df.loc[unknown_mask, "token"]))
        raise CorpusAssemblyError(f"Tokens outside the vocabulary: {unknown_tokens[:10]}")
    document_ids: List[object] = sorted(document_terms_df["id"].unique().tolist())
    row_codes: np.ndarray = pd.Categorical(
        document_terms_df["id"], categories=document_ids
    ).codes.astype(np.int64)
    column_codes: np.ndarray = pd.Categorical(
        document_terms_df["token"], categories=list(vocabulary)
    ).codes.astype(np.int64)
    document_term_matrix = sparse.csr_matrix(
        (document_terms_df["term_count"].to_numpy(dtype=np.int64), (row_codes, column_codes)),
        shape=(len(document_ids), len(vocabulary)),
        dtype=np.int64,
    )
    document_term_matrix.sort_indices()
    return document_ids, document_term_matrix


def build_metadata(
    prepared_df: pd.DataFrame, document_ids: Sequence[object]
) -> tuple[pd.DataFrame, List[object]]:
    """
    Take one price per document id and align it with the matrix documents.

    Parameters
    ----------
    prepared_df : pandas.DataFrame
        Prepared listings with `id` and `price`.
    document_ids : Sequence[object]
        Sorted ids of the matrix rows.

    Returns
    -------
    tuple[pandas.DataFrame, list]
        Metadata (`id`, `price`) restricted to `document_ids` and sorted by id,
        and the ids whose input rows carried differing prices.

    Notes
    -----
    - The first-seen price of an id is kept.
    """
    price_counts: pd.Series = prepared_df.groupby("id")["price"].nunique()
    conflicting_price_ids: List[object] = sorted(price_counts[price_counts > 1].index.tolist())
    metadata_df: pd.DataFrame = prepared_df.drop_duplicates(subset=["id"], keep="first")[
        ["id", "price"]
    ]
    metadata_df = metadata_df.loc[metadata_df["id"].isin(set(document_ids))]
    metadata_df = metadata_df.sort_values(by="id", kind="mergesort").reset_index(drop=True)
    return metadata_df, conflicting_price_ids


def check_alignment(metadata_df: pd.DataFrame, document_ids: Sequence[object]) -> None:
    """
    Assert one-to-one, same-order correspondence of metadata and matrix rows.

    Parameters
    ----------
    metadata_df : pandas.DataFrame
        Metadata with `id` and `price`.
    document_ids : Sequence[object]
        Matrix row ids.

    Raises
    ------
    AlignmentError
        If the id sets differ, ids repeat, the order differs, or a price is missing.
    """
    metadata_ids: List[object] = metadata_df["id"].tolist()
    metadata_only = set(metadata_ids) - set(document_ids)
    matrix_only = set(document_ids) - set(metadata_ids)
    if metadata_only or matrix_only:
        raise AlignmentError(metadata_only, matrix_only)
    if metadata_ids != list(document_ids):
        raise AlignmentError(detail="metadata rows are duplicated or out of document order")
    if not np.isfinite(metadata_df["price"].to_numpy(dtype=np.float64)).all():
        raise AlignmentError(detail="metadata rows without a finite price")


def to_bag_of_words(document_term_matrix: sparse.csr_matrix) -> List[BagOfWords]:
    """Convert CSR rows to Gensim-style `(word_index, count)` lists."""
    documents: List[BagOfWords] = []
    for row in range(document_term_matrix.shape[0]):
        start, end = document_term_matrix.indptr[row], document_term_matrix.indptr[row + 1]
        documents.append(
            [
                (int(word_index), int(count))
                for word_index, count in zip(
                    document_term_matrix.indices[start:end], document_term_matrix.data[start:end]
                )
            ]
        )
    return documents


def assemble_corpus(
    prepared_df: pd.DataFrame,
    token_df: pd.DataFrame,
    vocabulary: Sequence[str],
    logger: InfraLogger,
) -> Corpus:
    """
    Build the aligned corpus from restricted tokens and prepared listings.

    Parameters
    ----------
    prepared_df : pandas.DataFrame
        Prepared listings (`id`, `price`, `comments`).
    token_df : pandas.DataFrame
        Token table restricted to `vocabulary`.
    vocabulary : Sequence[str]
        Vocabulary in rank order.
    logger : InfraLogger
        Structured logger for assembly events.

    Returns
    -------
    Corpus
        Aligned corpus.

    Raises
    ------
    EmptyCorpusError
        If no document keeps a vocabulary token.
    AlignmentError
        If metadata and matrix documents do not correspond one-to-one.
    """
    if token_df.empty:
        raise EmptyCorpusError("No document retained a vocabulary token")
    document_terms_df: pd.DataFrame = count_document_terms(token_df)
    logger.debug(event="counted_document_terms", context={"rows": len(document_terms_df)})
    document_ids, document_term_matrix = build_document_term_matrix(document_terms_df, vocabulary)
    logger.debug(event="built_document_term_matrix", context={"shape": document_term_matrix.shape})
    metadata_df, conflicting_price_ids = build_metadata(prepared_df, document_ids)
    if conflicting_price_ids:
        logger.warning(
            event="conflicting_listing_prices",
            msg="Listing ids with differing prices; first-seen price kept",
            context={
                "conflicting_count": len(conflicting_price_ids),
                "ids": conflicting_price_ids[:20],
            },
        )
    check_alignment(metadata_df, document_ids)
    dropped_documents: int = prepared_df["id"].nunique() - len(document_ids)
    logger.info(
        event="assemble_corpus",
        msg="Assembled aligned corpus",
        context={
            "documents": len(document_ids),
            "vocabulary_size": len(vocabulary),
            "dropped_empty_documents": dropped_documents,
            "total_tokens": int(document_term_matrix.sum()),
        },
    )
    return Corpus(
        document_ids=document_ids,
        vocabulary=list(vocabulary),
        document_term_matrix=document_term_matrix,
        documents=to_bag_of_words(document_term_matrix),
        metadata=metadata_df,
        conflicting_price_ids=conflicting_price_ids,
    )
