"""
Purpose
-------
Single source of truth for the listings input: file location, required
columns, the whole-unit category marker, and the price-cleaning rule.

Key behaviors
-------------
- Resolve the listings file from `LISTINGS_FILE_PATH`, defaulting to
  `local_data/listings.csv`.
- Name the columns every loaded table must expose.
- Define the regular expression stripping currency symbols and thousands
  separators from price strings such as "$1,200.00".

Conventions
-----------
- Paths are project-relative; the pipeline is run from the repository root.
- `ROOM_TYPE_FILTER` is matched as a plain substring of `room_type`
  (case-sensitive), so "Entire" selects "Entire home/apt".
- `PREPARED_COLUMNS` is the column order of the prepared listing table.

Downstream usage
----------------
Import from `listings.listings_loading` and `listings.listings_filter`, and
from `stm.stm_config` for the pipeline-level defaults.
"""

import os
from typing import List

LISTINGS_FILE_PATH: str = os.environ.get(
    "LISTINGS_FILE_PATH", os.path.join("local_data", "listings.csv")
)

REQUIRED_COLUMNS: List[str] = ["id", "room_type", "price", "description"]

PREPARED_COLUMNS: List[str] = ["id", "price", "comments"]

ROOM_TYPE_FILTER: str = "Entire"

PRICE_FORMATTING_PATTERN: str = r"[^0-9.\-]"
