"""
DataFrame type preservation helpers.

Preprocessing functions accept both pandas and polars DataFrames, work in
pandas internally and hand back the type they were given.
"""

from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
import polars as pl


def to_pandas_preserve(df: Union[pd.DataFrame, pl.DataFrame]) -> Tuple[pd.DataFrame, bool]:
    """
    Convert input DataFrame to pandas and track original type.

    Returns: (pandas_df, was_polars_flag)
    """
    if isinstance(df, pl.DataFrame):
        return df.to_pandas(), True
    if isinstance(df, pd.DataFrame):
        return df.copy(), False
    raise ValueError("df must be either a pandas DataFrame or a polars DataFrame.")


def from_pandas_preserve(pdf: pd.DataFrame, was_polars: bool) -> Union[pd.DataFrame, pl.DataFrame]:
    """
    Convert pandas DataFrame back to original type if needed.
    """
    return pl.from_pandas(pdf) if was_polars else pdf


def require_columns(pdf: pd.DataFrame, columns: List[str]) -> None:
    """Raise ValueError naming the first column missing from ``pdf``."""
    for col in columns:
        if col not in pdf.columns:
            raise ValueError(f"Column '{col}' not found in DataFrame.")


def elapsed_seconds(pdf: pd.DataFrame, time_col: Optional[str], min_dt_s: float = 1e-3) -> np.ndarray:
    """
    Time differences between consecutive rows, in seconds.

    If no time column is available, uniform 1-second spacing is assumed so
    motion models still have a usable Δt. Non-positive or very small gaps are
    floored at ``min_dt_s``.

    Returns
    -------
    np.ndarray
        Array of length ``len(pdf) - 1`` (empty for fewer than two rows).
    """
    n = len(pdf)
    if n < 2:
        return np.zeros(0, dtype=float)

    if (time_col is None) or (time_col not in pdf.columns):
        return np.ones(n - 1, dtype=float)

    times = pd.to_datetime(pdf[time_col]).to_numpy(dtype="datetime64[ns]")
    t_ints = times.view("int64")
    return np.maximum(min_dt_s, np.diff(t_ints) / 1e9)
