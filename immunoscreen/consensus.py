"""Majority-vote consensus and outcome categories for the unlabelled cohort."""
from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, Optional

import pandas as pd

INFECTED = "I"
NOT_INFECTED = "NI"

CONFIRMED_NEGATIVE = "confirmed-negative"
UNAWARE_INFECTED = "unaware-infected"
CONFIRMED_POSITIVE = "confirmed-positive"
EXCLUDE = "exclude"
UNDEFINED = "undefined"

OUTCOMES = (CONFIRMED_NEGATIVE, UNAWARE_INFECTED, CONFIRMED_POSITIVE, EXCLUDE)

_OUTCOME_TABLE = {
    (NOT_INFECTED, NOT_INFECTED): CONFIRMED_NEGATIVE,
    (NOT_INFECTED, INFECTED): UNAWARE_INFECTED,
    (INFECTED, INFECTED): CONFIRMED_POSITIVE,
    (INFECTED, NOT_INFECTED): EXCLUDE,
}

INFECTED_CODES = (1, 2)


def _is_missing(value: Any) -> bool:
    return value is None or (not isinstance(value, str) and bool(pd.isna(value)))


def strip_label_prefix(values: pd.Series, prefix: str = "mc") -> pd.Series:
    """Drop a leading class-level prefix (``mcI`` -> ``I``); missing stays missing."""
    if not prefix:
        return values.copy()
    return values.map(
        lambda v: v if _is_missing(v) else (str(v)[len(prefix):] if str(v).startswith(prefix) else str(v))
    )


def majority_vote(votes: Iterable[Any]) -> Optional[str]:
    """Label holding at least two votes, else ``None``. Missing votes abstain."""
    counts = Counter(str(v) for v in votes if not _is_missing(v))
    if not counts:
        return None
    label, count = counts.most_common(1)[0]
    return label if count >= 2 else None


def collapse_self_report(code: Any) -> Optional[str]:
    """1 or 2 (infected before/after boost) -> ``I``; any other code -> ``NI``."""
    if _is_missing(code):
        return None
    try:
        numeric = int(float(code))
    except (TypeError, ValueError):
        raise ValueError(f"Self-report code must be numeric, got {code!r}") from None
    return INFECTED if numeric in INFECTED_CODES else NOT_INFECTED


def classify_outcome(self_report: Any, consensus: Any) -> Optional[str]:
    if _is_missing(self_report) or _is_missing(consensus):
        return None
    return _OUTCOME_TABLE.get((str(self_report), str(consensus)))


def tabulate_outcomes(outcomes: pd.Series) -> pd.Series:
    """Counts for every outcome category, with missing outcomes under ``undefined``."""
    counts = outcomes.dropna().value_counts()
    ordered = counts.reindex(list(OUTCOMES), fill_value=0)
    ordered[UNDEFINED] = int(outcomes.isna().sum())
    ordered.name = "count"
    ordered.index.name = "outcome"
    return ordered.astype(int)
