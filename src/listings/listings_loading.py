"""
Purpose
-------
Read the flat listings file into memory and check that it exposes the
columns the pipeline works on.

Key behaviors
-------------
- Read a delimited file with pandas, keeping `price` and `description` as
  raw strings so that price cleaning happens in one place downstream.
- Reject inputs missing any of `REQUIRED_COLUMNS` with a
  `ListingSchemaError` before any row is processed.
- Return only the required columns, in their canonical order.

Conventions
-----------
- The file is read once per pipeline run; no caching, no schema versioning.
- Extra columns of the source file (reviews, host data, ...) are discarded.

Downstream usage
----------------
`stm.stm_orchestrator.prepare_corpus` calls `load_listings` and hands the
result to `listings.listings_filter.prepare_listings`.
"""

import pandas as pd

from infra.logging.infra_logger import InfraLogger
from listings.listings_config import LISTINGS_FILE_PATH, REQUIRED_COLUMNS
from stm.stm_errors import ListingSchemaError


def load_listings(
    logger: InfraLogger, file_path: str = LISTINGS_FILE_PATH, sep: str = ","
) -> pd.DataFrame:
    """
    Load the listings file and restrict it to the required columns.

    Parameters
    ----------
    logger : InfraLogger
        Structured logger for load events.
    file_path : str, default LISTINGS_FILE_PATH
        Path of the delimited listings file.
    sep : str, default ","
        Field delimiter.

    Returns
    -------
    pandas.DataFrame
        Table with columns `id`, `room_type`, `price`, `description`.

    Raises
    ------
    ListingSchemaError
        If a required column is absent.
    OSError
        If the file cannot be opened.
    """
    logger.debug(event="load_listings_start", context={"file_path": file_path})
    listings_df: pd.DataFrame = pd.read_csv(
        file_path,
        sep=sep,
        dtype={"price": "string", "description": "string", "room_type": "string"},
        low_memory=False,
    )
    listings_df = validate_listing_columns(listings_df)
    logger.info(
        event="load_listings",
        msg="Loaded listings file",
        context={"file_path": file_path, "row_count": len(listings_df)},
    )
    return listings_df


def validate_listing_columns(listings_df: pd.DataFrame) -> pd.DataFrame:
    """
    Check for the required columns and project the table onto them.

    Parameters
    ----------
    listings_df : pandas.DataFrame
        Raw listings table.

    Returns
    -------
    pandas.DataFrame
        Copy of `listings_df` restricted to `REQUIRED_COLUMNS`.

    Raises
    ------
    ListingSchemaError
        If any required column is missing.
    """
    missing_columns = set(REQUIRED_COLUMNS) - set(listings_df.columns)
    if missing_columns:
        raise ListingSchemaError(missing_columns)
    return listings_df[REQUIRED_COLUMNS].copy()
