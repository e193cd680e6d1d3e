"""
Crowd consensus for a single event.

Consensus is the mean of all probability estimates, optionally weighted
by each forecaster's calibration score so that skilled forecasters count
more heavily. Results are whole percentages, rounded half up.
"""

import logging
import math
from typing import Dict, Optional, Sequence

logger = logging.getLogger(__name__)

# Histogram buckets: (label, inclusive upper bound)
PROBABILITY_BUCKETS = [
    ("0-20", 20),
    ("21-40", 40),
    ("41-60", 60),
    ("61-80", 80),
    ("81-100", 100),
]


class DivisionGuardError(Exception):
    """Raised when a weighted mean has zero total weight."""
    pass


# Digits kept before rounding; absorbs float error such as 1.4999999999999998
ROUNDING_GUARD_DIGITS = 9


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up."""
    return int(math.floor(round(value, ROUNDING_GUARD_DIGITS) + 0.5))


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    """
    Compute Σ(v·w) / Σw.

    Raises:
        DivisionGuardError: If the weights sum to zero
    """
    total_weight = sum(weights)
    if total_weight == 0:
        raise DivisionGuardError("Total weight is zero")
    return sum(v * w for v, w in zip(values, weights)) / total_weight


def consensus(
    forecasts: Sequence[int],
    weights: Optional[Sequence[float]] = None
) -> Optional[int]:
    """
    Aggregate a population's probabilities into one estimate.

    Falls back to the unweighted mean when weights are missing, do not
    line up with the forecasts, or sum to zero.

    Args:
        forecasts: Probabilities in percent
        weights: Optional per-forecast weights (e.g. calibration scores)

    Returns:
        Consensus percentage, or None if there are no forecasts
    """
    if not forecasts:
        return None

    if weights is not None and len(weights) == len(forecasts):
        try:
            return round_half_up(weighted_mean(forecasts, weights))
        except DivisionGuardError:
            logger.warning(
                f"Zero total weight across {len(forecasts)} forecast(s), "
                f"using unweighted consensus"
            )

    return round_half_up(sum(forecasts) / len(forecasts))


def compare_to_crowd(user_percent: int, forecasts: Sequence[int]) -> Dict[str, int]:
    """
    Compare one forecaster's estimate with the unweighted crowd mean.

    If the crowd is empty the user's own estimate stands in for it.

    Args:
        user_percent: The forecaster's probability
        forecasts: All probabilities for the event (including the user's)

    Returns:
        Dictionary with user, crowd_mean, diff, participants
    """
    crowd_mean = consensus(forecasts)
    if crowd_mean is None:
        crowd_mean = user_percent
    return {
        "user": user_percent,
        "crowd_mean": crowd_mean,
        "diff": user_percent - crowd_mean,
        "participants": len(forecasts),
    }


def probability_bucket(probability_percent: int) -> str:
    """Histogram bucket label for a probability."""
    for label, upper in PROBABILITY_BUCKETS:
        if probability_percent <= upper:
            return label
    return PROBABILITY_BUCKETS[-1][0]


def distribution(forecasts: Sequence[int]) -> Dict[str, int]:
    """Count forecasts per bucket, all buckets present, in order."""
    counts: Dict[str, int] = {label: 0 for label, _ in PROBABILITY_BUCKETS}
    for p in forecasts:
        counts[probability_bucket(p)] += 1
    return counts
