"""Input table checks run before any resampling work.

Everything downstream assumes these hold: numeric non-missing coordinates,
unique record keys, non-missing composition weights and a complete key
cross-reference between the two tables.
"""

from __future__ import annotations

import pandas as pd

from resampling.config import ResampleSettings
from resampling.errors import InputValidationError
from resampling.stages.similarity import Metric


def _require_columns(df: pd.DataFrame, cols, table: str):
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise InputValidationError(f"Column(s) {missing} not found in {table} table")


def validate_records(records: pd.DataFrame, settings: ResampleSettings) -> None:
    c = settings.columns
    _require_columns(records, [c.key, c.x, c.y], "records")

    for col in (c.x, c.y):
        if not pd.api.types.is_numeric_dtype(records[col]):
            raise InputValidationError(f"Coordinates must be numeric (column {col!r})")
    if records[[c.x, c.y]].isna().any().any():
        raise InputValidationError("Coordinates contain NA values")
    if settings.longlat:
        if not records[c.x].between(-180, 180).all() or not records[c.y].between(-90, 90).all():
            raise InputValidationError("Geographic coordinates out of range (x: longitude, y: latitude)")

    if records[c.key].isna().any():
        raise InputValidationError(f"Record key column {c.key!r} contains NA values")
    dupes = records[c.key].astype(str).duplicated()
    if dupes.any():
        sample = records.loc[dupes, c.key].astype(str).head(5).tolist()
        raise InputValidationError(f"Record keys are not unique: {sample}")

    if settings.strata is not None and settings.strata not in records.columns:
        raise InputValidationError(f"Invalid strata column name: {settings.strata!r}")

    if settings.policy.needs_ranking_attribute:
        attr = settings.ranking_attribute
        if attr not in records.columns:
            raise InputValidationError(f"Invalid or missing ranking attribute: {attr!r}")
        if not pd.api.types.is_numeric_dtype(records[attr]) and not records[attr].isna().all():
            raise InputValidationError(f"Ranking attribute {attr!r} must be numeric")


def validate_composition(composition: pd.DataFrame, settings: ResampleSettings) -> None:
    c = settings.columns
    _require_columns(composition, [c.key, c.category, c.weight], "composition")

    if composition[[c.key, c.category]].isna().any().any():
        raise InputValidationError("Composition keys or categories contain NA values")
    weights = composition[c.weight]
    if not pd.api.types.is_numeric_dtype(weights):
        raise InputValidationError(f"Composition weights must be numeric (column {c.weight!r})")
    if weights.isna().any():
        raise InputValidationError("NAs in composition weights")
    if (weights < 0).any():
        raise InputValidationError("Negative composition weights are not allowed")
    if settings.metric is Metric.BRAY and (weights == 0).any():
        raise InputValidationError("Zero weights are not allowed with bray similarity")


def validate_cross_reference(records: pd.DataFrame, composition: pd.DataFrame, settings: ResampleSettings) -> None:
    c = settings.columns
    record_keys = set(records[c.key].astype(str))
    comp_keys = set(composition[c.key].astype(str))
    orphans = comp_keys - record_keys
    if orphans:
        raise InputValidationError(
            f"Some {c.key} in composition not found in records: {sorted(orphans)[:5]}"
        )
    bare = record_keys - comp_keys
    if bare:
        raise InputValidationError(
            f"Some {c.key} in records not found in composition: {sorted(bare)[:5]}"
        )


def validate_inputs(records: pd.DataFrame, composition: pd.DataFrame, settings: ResampleSettings) -> None:
    validate_records(records, settings)
    validate_composition(composition, settings)
    validate_cross_reference(records, composition, settings)
