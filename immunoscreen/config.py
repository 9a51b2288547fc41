"""Column roles and transforms for the cohort tables.

Every transform is addressed by column name. A schema lists which columns are
log2-scaled, which are standardized, and which carry labels or self-reported
status so those are never treated as features.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pandas as pd

STATUS_COLUMN = "Infection_0_1pre_2post"


@dataclass(frozen=True)
class DatasetSchema:
    id_column: str = "ID"
    log2_columns: Tuple[str, ...] = ()
    # Empty means every numeric column that is not a label/status column.
    scale_columns: Tuple[str, ...] = ()
    label_column: Optional[str] = None
    status_column: Optional[str] = None

    @property
    def non_feature_columns(self) -> List[str]:
        return [c for c in (self.label_column, self.status_column) if c]

    def feature_columns(self, frame: pd.DataFrame) -> List[str]:
        """Resolve the feature columns of ``frame`` by name."""
        if self.scale_columns:
            missing = [c for c in self.scale_columns if c not in frame.columns]
            if missing:
                raise KeyError(f"Scale columns missing from table: {', '.join(missing)}")
            columns = list(self.scale_columns)
        else:
            numeric = frame.select_dtypes(include="number").columns
            columns = [c for c in numeric if c not in self.non_feature_columns]

        overlap = sorted(set(columns) & set(self.non_feature_columns))
        if overlap:
            raise ValueError(f"Label/status columns cannot be features: {', '.join(overlap)}")
        missing_log = [c for c in self.log2_columns if c not in columns]
        if missing_log:
            raise KeyError(
                "log2 columns must be feature columns present in the table: "
                + ", ".join(missing_log)
            )
        return columns

    def with_overrides(
        self,
        id_column: Optional[str] = None,
        log2_columns: Optional[Sequence[str]] = None,
        scale_columns: Optional[Sequence[str]] = None,
        label_column: Optional[str] = None,
        status_column: Optional[str] = None,
    ) -> "DatasetSchema":
        return DatasetSchema(
            id_column=id_column or self.id_column,
            log2_columns=tuple(log2_columns) if log2_columns is not None else self.log2_columns,
            scale_columns=tuple(scale_columns) if scale_columns is not None else self.scale_columns,
            label_column=label_column or self.label_column,
            status_column=status_column or self.status_column,
        )


def load_schema(path: Path) -> DatasetSchema:
    """Load a :class:`DatasetSchema` from a JSON object."""
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Schema must be a JSON object, got {type(payload).__name__}")

    known = {f.name for f in fields(DatasetSchema)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise KeyError(f"Unknown schema keys: {', '.join(unknown)}")

    for key in ("log2_columns", "scale_columns"):
        if key in payload:
            payload[key] = tuple(str(c) for c in payload[key])
    return DatasetSchema(**payload)
