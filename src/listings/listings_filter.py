"""
Purpose
-------
Turn raw listing rows into prepared listings: whole-unit rows only, a
natural-log price covariate, and the description text renamed to
`comments`.

Key behaviors
-------------
- Select rows whose `room_type` contains the configured category marker.
  Rows excluded here never reach price parsing.
- Strip currency symbols and thousands separators from `price`, parse it as
  a float, and take the natural log.
- Drop rows with unparseable, non-finite, or non-positive prices and rows
  without a description. Each drop reason is counted in a `FilterReport`.
- Never mutate the input table.

Conventions
-----------
- Output columns are `PREPARED_COLUMNS` (`id`, `price`, `comments`), where
  `price` is log-price and every value of it is finite.
- Row order of the input is preserved.
- In strict mode the first unusable row raises `DataQualityError` instead of
  being dropped, which is meant for auditing a new data dump.

Downstream usage
----------------
`prepare_listings` feeds `stm.stm_vocabulary.tokenize_descriptions` (via the
`comments` column) and `stm.stm_corpus.build_metadata` (via `price`).
"""

from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
import pandas as pd

from infra.logging.infra_logger import InfraLogger
from listings.listings_config import PREPARED_COLUMNS, PRICE_FORMATTING_PATTERN, ROOM_TYPE_FILTER
from stm.stm_errors import DataQualityError

UNPARSEABLE_PRICE: str = "unparseable_price"
NON_POSITIVE_PRICE: str = "non_positive_price"
MISSING_DESCRIPTION: str = "missing_description"


@dataclass
class FilterReport:
    """
    Purpose
    -------
    Row accounting of one Filter/Normalize pass.

    Attributes
    ----------
    input_rows : int
        Rows handed to the stage.
    excluded_by_category : int
        Rows whose room type does not contain the category marker.
    dropped_ids : dict[str, list]
        Listing ids dropped after the category filter, keyed by reason
        (`unparseable_price`, `non_positive_price`, `missing_description`).
    retained_rows : int
        Rows in the prepared table.
    """

    input_rows: int
    excluded_by_category: int
    dropped_ids: Dict[str, List[object]] = field(default_factory=dict)
    retained_rows: int = 0

    def dropped_count(self, reason: str) -> int:
        return len(self.dropped_ids.get(reason, []))

    def as_context(self) -> Dict[str, int]:
        context: Dict[str, int] = {
            "input_rows": self.input_rows,
            "excluded_by_category": self.excluded_by_category,
            "retained_rows": self.retained_rows,
        }
        for reason in (UNPARSEABLE_PRICE, NON_POSITIVE_PRICE, MISSING_DESCRIPTION):
            context[reason] = self.dropped_count(reason)
        return context


def filter_by_room_type(
    listings_df: pd.DataFrame, room_type_filter: str = ROOM_TYPE_FILTER
) -> pd.DataFrame:
    """
    Keep rows whose `room_type` contains `room_type_filter`.

    Parameters
    ----------
    listings_df : pandas.DataFrame
        Raw listings with a `room_type` column.
    room_type_filter : str, default ROOM_TYPE_FILTER
        Plain (non-regex) substring marking whole units.

    Returns
    -------
    pandas.DataFrame
        Matching rows; missing room types never match.
    """
    room_type_mask: pd.Series = (
        listings_df["room_type"]
        .astype("string")
        .str.contains(room_type_filter, regex=False)
        .fillna(False)
        .astype(bool)
    )
    return listings_df.loc[room_type_mask]


def parse_price(price_series: pd.Series) -> pd.Series:
    """
    Convert currency-formatted price strings to floats.

    Parameters
    ----------
    price_series : pandas.Series
        Values such as "$1,200.00"; numeric values are accepted as well.

    Returns
    -------
    pandas.Series
        float64 series; values that do not parse after stripping formatting
        characters are NaN.

    Notes
    -----
    - Every character outside digits, "." and "-" is removed before parsing,
      so "$1,200.00" becomes "1200.00". Missing values end up as empty
      strings and therefore NaN.
    """
    cleaned_prices: pd.Series = (
        price_series.astype(str).str.replace(PRICE_FORMATTING_PATTERN, "", regex=True).str.strip()
    )
    return pd.to_numeric(cleaned_prices, errors="coerce").astype("float64")


def prepare_listings(
    listings_df: pd.DataFrame,
    logger: InfraLogger,
    room_type_filter: str = ROOM_TYPE_FILTER,
    strict: bool = False,
) -> tuple[pd.DataFrame, FilterReport]:
    """
    Filter by category, log-transform prices, and drop unusable rows.

    Parameters
    ----------
    listings_df : pandas.DataFrame
        Raw listings with `id`, `room_type`, `price`, `description`.
    logger : InfraLogger
        Structured logger for stage summaries.
    room_type_filter : str, default ROOM_TYPE_FILTER
        Category marker passed to `filter_by_room_type`.
    strict : bool, default False
        Raise on the first unusable row instead of dropping it.

    Returns
    -------
    tuple[pandas.DataFrame, FilterReport]
        Prepared table with columns `id`, `price` (natural log), `comments`,
        and the row accounting of the pass.

    Raises
    ------
    DataQualityError
        Only when `strict` is True and a category-matching row has an
        unusable price or description.
    """
    category_df: pd.DataFrame = filter_by_room_type(listings_df, room_type_filter)
    report = FilterReport(
        input_rows=len(listings_df),
        excluded_by_category=len(listings_df) - len(category_df),
    )
    numeric_price: pd.Series = parse_price(category_df["price"])
    with np.errstate(divide="ignore", invalid="ignore"):
        log_price: pd.Series = np.log(numeric_price.where(numeric_price > 0))

    unparseable_mask: pd.Series = ~np.isfinite(numeric_price)
    non_positive_mask: pd.Series = ~unparseable_mask & ~np.isfinite(log_price)
    description: pd.Series = category_df["description"].astype("string")
    missing_description_mask: pd.Series = (
        (description.isna() | (description.str.strip() == "")).fillna(True).astype(bool)
    )
    drop_masks: Dict[str, pd.Series] = {
        UNPARSEABLE_PRICE: unparseable_mask,
        NON_POSITIVE_PRICE: non_positive_mask,
        MISSING_DESCRIPTION: missing_description_mask & ~unparseable_mask & ~non_positive_mask,
    }
    for reason, mask in drop_masks.items():
        dropped_ids: List[object] = category_df.loc[mask, "id"].tolist()
        if strict and dropped_ids:
            raise DataQualityError(dropped_ids[0], reason)
        report.dropped_ids[reason] = dropped_ids

    keep_mask: pd.Series = ~(unparseable_mask | non_positive_mask | missing_description_mask)
    prepared_df = pd.DataFrame(
        {
            "id": category_df.loc[keep_mask, "id"],
            "price": log_price[keep_mask].astype("float64"),
            "comments": description[keep_mask].astype(str),
        }
    )[PREPARED_COLUMNS].reset_index(drop=True)
    report.retained_rows = len(prepared_df)
    logger.info(
        event="prepare_listings",
        msg="Filtered and normalized listings",
        context=report.as_context(),
    )
    return prepared_df, report
