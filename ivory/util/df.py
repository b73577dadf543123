"""Utilities to work with Pandas data frames"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from typing import Any, Optional

import pandas as pd


def _df_from_rows(data: Collection[Sequence[Any]], column_names: Sequence[str]) -> pd.DataFrame:
    df_container: dict[str, list[Any]] = {col: [] for col in column_names}
    for row in data:
        for col_idx, col in enumerate(column_names):
            df_container[col].append(row[col_idx])
    return pd.DataFrame(df_container, columns=list(column_names))


def _df_from_list(data: Collection[dict[Any, Any]]) -> pd.DataFrame:
    data_template = next(iter(data))
    df_container: dict[str, list[Any]] = {col: [] for col in data_template.keys()}
    for row in data:
        for key in df_container.keys():
            df_container[key].append(row[key])
    return pd.DataFrame(df_container)


def as_df(
    data: Collection[dict[Any, Any]] | Collection[Sequence[Any]],
    *,
    column_names: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Generates a new Pandas `DataFrame`.

    The contents of the dataframe can be supplied in one of two forms: a collection of dictionaries will be transformed
    into a dataframe such that each dictionary corresponds to one row of the dataframe. All dictionaries have to
    consist of exactly the same key-value pairs. Each key becomes a column in the dataframe. The precise columns are
    inferred from the first dictionary in the collection.

    The other form consists of a collection of row sequences. In this case, the `column_names` have to be given and each row
    has to provide exactly one value per column. Empty data with known column names produces an empty frame that still
    has all the columns.
    """
    if column_names is not None:
        return _df_from_rows(data, list(column_names))
    if not data:
        return pd.DataFrame()
    if isinstance(data, Collection):
        return _df_from_list(data)
    raise TypeError("Unexpected data type: " + str(data))
