"""
Physical activity estimates for a trip between two stations.

All figures are rounded to the nearest integer. A non-positive distance or
duration yields zero.
"""

from pedibus.src.enums import ActivityMode
from pedibus.src.constants import (
    BIKING_MET,
    BIKING_SPEED,
    CO2_PER_KM_GRAMS,
    DEFAULT_CHILD_WEIGHT_KG,
    POINTS_PER_KM,
    POINTS_PER_PARTICIPATION,
    WALKING_MET,
    WALKING_SPEED,
)


def calculateTimeUntilArrival(distanceMeters: float, mode: ActivityMode) -> int:
    """Minutes needed to cover `distanceMeters` at the speed of the activity mode."""
    if distanceMeters <= 0:
        return 0
    speed = WALKING_SPEED if mode == ActivityMode.WALK else BIKING_SPEED
    return round(distanceMeters / speed / 60)


def calculateCaloriesBurned(
    distanceMeters: float, durationSeconds: float, mode: ActivityMode
) -> int:
    """
    Estimate calories burned by a child during a trip.

    Uses the MET of the activity mode and a default child weight:
    `calories = MET * weight(kg) * duration(h)`.
    """
    if distanceMeters <= 0 or durationSeconds <= 0:
        return 0
    met = WALKING_MET if mode == ActivityMode.WALK else BIKING_MET
    return round(met * DEFAULT_CHILD_WEIGHT_KG * durationSeconds / 3600)


def calculateCO2Saved(distanceMeters: float) -> int:
    """Grams of CO2 a car would have emitted over the same distance."""
    if distanceMeters <= 0:
        return 0
    return round(distanceMeters / 1000 * CO2_PER_KM_GRAMS)


def calculatePoints(distanceMeters: float) -> int:
    """Points granted for a completed trip: a flat share plus a share per km."""
    if distanceMeters < 0:
        distanceMeters = 0
    return round(POINTS_PER_PARTICIPATION + POINTS_PER_KM * distanceMeters / 1000)
