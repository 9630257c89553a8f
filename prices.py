"""
Historical price data loading

Turns the daily {date, close} price dataset into the date-indexed series the
calculator works on.
"""

import json
import logging
from pathlib import Path
from typing import IO, Any, Iterable, Mapping

import pandas as pd

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['date', 'close']


def _frame_to_series(df: pd.DataFrame) -> pd.Series:
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Price data is missing required columns: {missing}")

    # Order is kept as given; the dataset is expected to be sorted already
    index = pd.DatetimeIndex(pd.to_datetime(df['date']), name='date')
    return pd.Series(df['close'].astype(float).to_numpy(), index=index, name='close')


def price_series_from_records(records: Iterable[Mapping[str, Any]]) -> pd.Series:
    """
    Build a price series from {date, close} records

    Args:
        records: Mappings with an ISO-8601 'date' string and a positive 'close'

    Returns:
        Closing prices indexed by date
    """
    df = pd.DataFrame(list(records))
    if df.empty:
        return pd.Series([], index=pd.DatetimeIndex([], name='date'), name='close', dtype=float)
    return _frame_to_series(df)


def read_price_buffer(buffer: IO, filename: str) -> pd.Series:
    """
    Load a price dataset from an open file, using the filename to pick the format

    Args:
        buffer: Readable file object (text or binary)
        filename: Name used to detect the format (.json or .csv)

    Returns:
        Closing prices indexed by date
    """
    suffix = Path(filename).suffix.lower()

    if suffix == '.json':
        series = price_series_from_records(json.load(buffer))
    elif suffix == '.csv':
        series = _frame_to_series(pd.read_csv(buffer))
    else:
        raise ValueError(f"Unsupported price file type: {suffix or filename}")

    logger.info("Loaded %d prices from %s", len(series), filename)
    return series


def read_price_file(path) -> pd.Series:
    """Load a price dataset from a JSON list of records or a CSV with date/close columns"""
    path = Path(path)
    with path.open('rb') as f:
        return read_price_buffer(f, path.name)
