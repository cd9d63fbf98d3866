"""Utility functions for data processing and parallel computation.

This module provides generic utilities used by the exploratory analyses, including
gene expression level categorization, dataframe filtering and a process pool with
progress tracking.
"""

from copy import deepcopy
from multiprocessing import get_context
from typing import Any, Callable, Dict, Iterable, List, TypeVar

import numpy as np
import pandas as pd
from tqdm.rich import tqdm


def gene_expression_levels(
    expr_df: pd.DataFrame,
    gene_expr_col: str,
    gene_expr_level: str,
    percentile: int = 10,
) -> pd.DataFrame:
    """Categorize gene expression values into low, mid, and high levels.

    Adds a new column to the dataframe that categorizes gene expression values
    into "low", "mid", or "high" based on specified percentile thresholds.

    Args:
        expr_df: DataFrame containing gene expression values
        gene_expr_col: Column name containing the gene expression values
        gene_expr_level: Name for the new column that will contain expression levels
        percentile: Percentile threshold for low/high classification (e.g., if 10,
            the bottom 10% will be "low" and top 10% will be "high")

    Returns:
        pd.DataFrame: Copy of input DataFrame with additional column for expression levels

    Note:
        Missing expression values are ignored when computing percentiles and are
        left without level.
    """
    # 0. Get user-provided percentiles
    expr_df = deepcopy(expr_df)
    p0, p1 = np.nanpercentile(expr_df[gene_expr_col], (percentile, 100 - percentile))

    # 1. Classify data into three groups
    expr_df[gene_expr_level] = pd.Series(np.nan, index=expr_df.index, dtype=object)
    expr_df.loc[expr_df[gene_expr_col] < p0, gene_expr_level] = "low"
    expr_df.loc[
        (expr_df[gene_expr_col] >= p0) & (expr_df[gene_expr_col] <= p1), gene_expr_level
    ] = "mid"
    expr_df.loc[expr_df[gene_expr_col] > p1, gene_expr_level] = "high"

    return expr_df


T = TypeVar("T")
R = TypeVar("R")


def parallelize_map(
    func: Callable[[T], R],
    inputs: Iterable[T],
    processes: int = 8,
    method: str = "spawn",
) -> List[R]:
    """Execute a function on multiple inputs in parallel using imap_unordered.

    Args:
        func: Function to execute in parallel (taking a single argument)
        inputs: Iterable of arguments to pass to the function
        processes: Number of parallel processes to use, defaults to 8
        method: Multiprocessing start method ('spawn', 'fork', or 'forkserver')

    Returns:
        List[R]: List of function results in potentially different order from inputs
    """
    inputs = list(inputs)
    with get_context(method).Pool(processes, maxtasksperchild=1) as pool:
        return list(
            tqdm(
                pool.imap_unordered(func, inputs),
                total=len(inputs),
            )
        )


def filter_df(
    df: pd.DataFrame, filter_values: Dict[str, Iterable[Any]]
) -> pd.DataFrame:
    """Filter DataFrame rows based on values in specified columns.

    Args:
        df: DataFrame to be filtered
        filter_values: Dictionary mapping column names to allowable values,
            where only rows with matching values are kept

    Returns:
        pd.DataFrame: Filtered DataFrame containing only rows that match all criteria

    Raises:
        AssertionError: If any key in filter_values is not a column in the DataFrame

    Example:
        >>> filter_df(annot_df, {"condition": ["treated"], "replicate": ["1", "2"]})
        # Returns the first two replicates of treated samples
    """
    # ensure that all fields are valid
    assert all([k in df.columns for k in filter_values.keys()]), (
        f"Unknown filter columns: {set(filter_values) - set(df.columns)}"
    )

    if not filter_values:
        return df

    # filter dataframe
    return df[
        np.logical_and.reduce(
            [
                df[column].isin(target_values)
                for column, target_values in filter_values.items()
            ]
        )
    ]
