# File: pipeline/reconciliation/record_merger.py
# Join and patch primitives that fold per-series results into the SampleRecord set.

import logging
from typing import Iterable, Optional

import pandas as pd

from pipeline.reconciliation.records import REPOSITORY_ACCESSION

logger = logging.getLogger(__name__)


def _require_unique_keys(frame: pd.DataFrame, key: str) -> None:
    if key not in frame.columns:
        raise ValueError(f"Frame is missing the merge key '{key}'.")
    duplicated = frame[key].duplicated(keep=False) & frame[key].notna()
    if duplicated.any():
        keys = sorted(frame.loc[duplicated, key].astype(str).unique())
        raise ValueError(f"Merge keys must be unique; duplicated {key}: {keys}")


def left_join_records(records: pd.DataFrame, update: pd.DataFrame, key: str = REPOSITORY_ACCESSION) -> pd.DataFrame:
    """
    Attaches update's columns to every record; unmatched records get nulls.

    Columns the records already hold are kept and only filled where they are null.

    Args:
        records (pd.DataFrame): SampleRecord rows, unique on key.
        update (pd.DataFrame): Per-series rows, unique on key.
        key (str): Join column.

    Returns:
        pd.DataFrame: Same rows and order as records, with update's columns added.

    Raises:
        ValueError: If either frame lacks the key or repeats a key value.
    """
    _require_unique_keys(records, key)
    _require_unique_keys(update, key)

    new_columns = [column for column in update.columns if column not in records.columns]
    shared_columns = [column for column in update.columns if column in records.columns and column != key]

    merged = records.merge(update[[key] + new_columns], on=key, how="left")
    if shared_columns:
        fill = update.set_index(key)[shared_columns]
        merged = merged.set_index(key)
        merged[shared_columns] = merged[shared_columns].combine_first(fill.reindex(merged.index))
        merged = merged.reset_index()[records.columns.tolist() + new_columns]
    return merged


def patch_records(records: pd.DataFrame, update: pd.DataFrame, key: str = REPOSITORY_ACCESSION) -> pd.DataFrame:
    """
    Overwrites record values with update's non-null values for keys already present.

    Keys absent from records are ignored and no row is ever added or duplicated.
    Null values in update never erase existing values.

    Args:
        records (pd.DataFrame): SampleRecord rows, unique on key.
        update (pd.DataFrame): Per-series rows, unique on key.
        key (str): Patch key.

    Returns:
        pd.DataFrame: Patched copy of records, same rows and order.

    Raises:
        ValueError: If either frame lacks the key or repeats a key value.
    """
    _require_unique_keys(records, key)
    _require_unique_keys(update, key)

    patched = records.copy()
    for column in update.columns:
        if column not in patched.columns:
            patched[column] = None

    patched = patched.set_index(key)
    matched = update.loc[update[key].isin(patched.index)].set_index(key)
    ignored = len(update) - len(matched)
    if ignored:
        logger.debug(f"Patch ignored {ignored} rows whose {key} is not in the record set.")

    for column in matched.columns:
        values = matched[column].dropna()
        if values.empty:
            continue
        # Object dtype keeps mixed null/text columns assignable
        patched[column] = patched[column].astype(object)
        patched.loc[values.index, column] = values.values
    return patched.reset_index()[list(dict.fromkeys(records.columns.tolist() + update.columns.tolist()))]


def merge_series_results(
    records: pd.DataFrame,
    series_frames: Iterable[pd.DataFrame],
    key: str = REPOSITORY_ACCESSION,
    columns: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """
    Folds per-series frames into the record set in order.

    The first frame is attached with a left join; every later frame is applied as a patch.

    Args:
        records (pd.DataFrame): SampleRecord rows from the join stage.
        series_frames (Iterable[pd.DataFrame]): Per-series results in processing order.
        key (str): Merge key.
        columns (Optional[Iterable[str]]): Columns guaranteed in the result even if no frame had them.

    Returns:
        pd.DataFrame: The enriched record set.
    """
    merged = records
    first = True
    for frame in series_frames:
        if first:
            merged = left_join_records(merged, frame, key)
            first = False
        else:
            merged = patch_records(merged, frame, key)

    if columns:
        merged = merged.copy()
        for column in columns:
            if column not in merged.columns:
                merged[column] = None
    return merged
