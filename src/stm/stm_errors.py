"""
Purpose
-------
Exception taxonomy for the listing topic-model pipeline.

Key behaviors
-------------
- Separate fatal failures (configuration, input schema, corpus assembly)
  from recoverable ones (row-level data quality, per-topic-count fit
  failures).
- Fatal errors propagate to the caller; recoverable errors are absorbed by
  the stage that raises them and reported as counts or omissions.

Conventions
-----------
- All pipeline errors derive from `PipelineError`.
- `ConfigurationError` and `ListingSchemaError` also derive from
  `ValueError` so that callers validating inputs can catch them generically.
- Errors carrying fields define `__reduce__` so they survive the trip back
  from a sweep worker process.

Downstream usage
----------------
Catch `CorpusAssemblyError` around `assemble_corpus` and
`ConfigurationError` around config loading; never catch
`DataQualityError` or `FitConvergenceFailure` outside their stage.
"""

from typing import Iterable


class PipelineError(RuntimeError):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(PipelineError, ValueError):
    """Invalid parameter or parameter combination, rejected before any work starts."""


class ListingSchemaError(PipelineError, ValueError):
    """
    The listings file lacks columns the pipeline requires.

    Parameters
    ----------
    missing_columns : Iterable[str]
        Required columns absent from the input.
    """

    def __init__(self, missing_columns: Iterable[str]) -> None:
        self.missing_columns = sorted(missing_columns)
        super().__init__(f"Listings input is missing columns: {', '.join(self.missing_columns)}")

    def __reduce__(self):
        return (type(self), (self.missing_columns,))


class DataQualityError(PipelineError):
    """
    A single listing row cannot be used (unparseable price, missing description).

    Parameters
    ----------
    listing_id : object
        Identifier of the offending row.
    reason : str
        Short snake_case reason, used as the drop-count key.
    """

    def __init__(self, listing_id: object, reason: str) -> None:
        self.listing_id = listing_id
        self.reason = reason
        super().__init__(f"Listing {listing_id} dropped: {reason}")

    def __reduce__(self):
        return (type(self), (self.listing_id, self.reason))


class CorpusAssemblyError(PipelineError):
    """Fatal error while assembling the document-term matrix and metadata."""


class AlignmentError(CorpusAssemblyError):
    """
    Metadata rows and document-term matrix rows do not correspond one-to-one.

    Parameters
    ----------
    metadata_only : Iterable[object]
        Ids present in the metadata but not in the matrix.
    matrix_only : Iterable[object]
        Ids present in the matrix but not in the metadata.
    detail : str, optional
        Description of a mismatch that is not a set difference (order, missing price).
    """

    def __init__(
        self,
        metadata_only: Iterable[object] = (),
        matrix_only: Iterable[object] = (),
        detail: str | None = None,
    ) -> None:
        self.metadata_only = sorted(metadata_only, key=str)
        self.matrix_only = sorted(matrix_only, key=str)
        self.detail = detail
        message = (
            "Document ids of metadata and document-term matrix diverge: "
            f"metadata_only={self.metadata_only[:10]} matrix_only={self.matrix_only[:10]}"
        )
        if detail is not None:
            message = f"Metadata and document-term matrix misaligned: {detail}"
        super().__init__(message)

    def __reduce__(self):
        return (type(self), (self.metadata_only, self.matrix_only, self.detail))


class EmptyCorpusError(CorpusAssemblyError):
    """No document retained any vocabulary token."""


class FitConvergenceFailure(PipelineError):
    """
    The topic-model backend failed for one topic count.

    Parameters
    ----------
    topic_count : int
        Number of topics of the failed fit.
    reason : str
        Description of the failure.
    """

    def __init__(self, topic_count: int, reason: str) -> None:
        self.topic_count = topic_count
        self.reason = reason
        super().__init__(f"Fit with K={topic_count} failed: {reason}")

    def __reduce__(self):
        return (type(self), (self.topic_count, self.reason))
