"""
Brier scoring primitives.

Brier = (p - o)²  with p = probability_percent / 100 and o ∈ {0, 1}.
Lower is better. Perfect = 0, worst = 1.

The naive baseline is the Brier score of a forecaster who always says
50%: (0.5 - o)² = 0.25 for either outcome.
"""

from typing import Sequence

import numpy as np


NAIVE_BRIER = 0.25

# Decimal places for stored deltas and calibration scores
SCORE_DECIMALS = 4


def brier_score(probability_percent: int, outcome: bool) -> float:
    """
    Compute the Brier score of a single binary forecast.

    The probability is assumed to be validated already; no bounds check
    is done here.

    Args:
        probability_percent: Forecast probability of YES, in percent
        outcome: Resolved outcome (True = YES)

    Returns:
        Squared error in [0, 1]
    """
    p = probability_percent / 100
    o = 1.0 if outcome else 0.0
    return (p - o) ** 2


def brier_delta_vs_naive(probability_percent: int, outcome: bool) -> float:
    """
    Compute the signed improvement over the naive 50% forecaster.

    Positive = beat the naive baseline, negative = worse than it.

    Args:
        probability_percent: Forecast probability of YES, in percent
        outcome: Resolved outcome

    Returns:
        NAIVE_BRIER - brier_score, rounded to 4 decimals
    """
    return round(NAIVE_BRIER - brier_score(probability_percent, outcome), SCORE_DECIMALS)


def brier_scores(probability_percents: Sequence[int], outcome: bool) -> np.ndarray:
    """
    Compute Brier scores for a population of forecasts on one event.

    Args:
        probability_percents: Forecast probabilities in percent
        outcome: Resolved outcome shared by all forecasts

    Returns:
        Shape (N,) array of Brier scores
    """
    p = np.asarray(probability_percents, dtype=np.float64) / 100
    o = 1.0 if outcome else 0.0
    return (p - o) ** 2
