"""Risk-weighted random selection of units per learner."""

from __future__ import annotations

import math
import random
from typing import Any, Dict, FrozenSet, Sequence

from .learners import LearnerRow, learner_key, unit_keys

SelectionMap = Dict[str, FrozenSet[str]]


def parse_risk_percentage(value: Any) -> float:
    """Parse a risk percentage such as ``"50.00"`` or ``50``; anything unusable is 0."""

    if value is None or isinstance(value, bool):
        return 0.0
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return 0.0
    if math.isnan(parsed) or math.isinf(parsed):
        return 0.0
    return parsed


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def units_to_select(risk_percentage: float, total_units: int) -> int:
    """Number of units to draw for a learner.

    At least one unit is drawn whenever the learner has units, even at 0% risk.
    Never more than ``total_units``.
    """

    if total_units <= 0:
        return 0
    count = max(1, _round_half_up(risk_percentage / 100 * total_units))
    return min(count, total_units)


def sample_units(rows: Sequence[LearnerRow], rng: random.Random | None = None) -> SelectionMap:
    """Draw a random subset of each learner's units, sized by their risk percentage."""

    rng = rng or random.Random()
    selection: SelectionMap = {}
    for index, row in enumerate(rows):
        total_units = len(row.units)
        if total_units == 0:
            continue
        count = units_to_select(parse_risk_percentage(row.risk_percentage), total_units)
        keys = unit_keys(row.units)
        rng.shuffle(keys)
        selection[learner_key(row.learner_name, index)] = frozenset(keys[:count])
    return selection


__all__ = ["SelectionMap", "parse_risk_percentage", "sample_units", "units_to_select"]
