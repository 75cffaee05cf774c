"""DORA rating bands and the overall performance score."""

from collections.abc import Iterable

from engmetrics.core.models import Rating

# Deployments per day.
DEPLOYMENT_FREQUENCY_BANDS = ((1.0, Rating.ELITE), (0.14, Rating.HIGH), (0.03, Rating.MEDIUM))
# Hours, strict upper bounds.
LEAD_TIME_BANDS = ((24.0, Rating.ELITE), (168.0, Rating.HIGH), (730.0, Rating.MEDIUM))
# Hours, inclusive upper bounds.
TIME_TO_RESTORE_BANDS = ((1.0, Rating.ELITE), (24.0, Rating.HIGH), (168.0, Rating.MEDIUM))
# Percent, inclusive upper bounds.
CHANGE_FAILURE_RATE_BANDS = ((15.0, Rating.ELITE), (30.0, Rating.HIGH), (45.0, Rating.MEDIUM))

RATING_SCORES: dict[Rating, int] = {
    Rating.ELITE: 4,
    Rating.HIGH: 3,
    Rating.MEDIUM: 2,
    Rating.LOW: 1,
    Rating.UNKNOWN: 0,
}


def rate_deployment_frequency(per_day: float) -> Rating:
    """Rate deployments per day, higher is better."""
    for floor, rating in DEPLOYMENT_FREQUENCY_BANDS:
        if per_day >= floor:
            return rating
    return Rating.LOW


def rate_lead_time(hours: float) -> Rating:
    for bound, rating in LEAD_TIME_BANDS:
        if hours < bound:
            return rating
    return Rating.LOW


def rate_time_to_restore(hours: float) -> Rating:
    for bound, rating in TIME_TO_RESTORE_BANDS:
        if hours <= bound:
            return rating
    return Rating.LOW


def rate_change_failure_rate(percent: float) -> Rating:
    for bound, rating in CHANGE_FAILURE_RATE_BANDS:
        if percent <= bound:
            return rating
    return Rating.LOW


def average_score(ratings: Iterable[Rating | str]) -> float:
    """Average ordinal score of known ratings, 0 when none are known."""
    scores = [RATING_SCORES[Rating(rating)] for rating in ratings]
    known = [score for score in scores if score > 0]
    if not known:
        return 0.0
    return sum(known) / len(known)


def rating_for_score(score: float) -> Rating:
    """Map an average score back to a label by rounding to the nearest band."""
    if score <= 0:
        return Rating.UNKNOWN
    # Half-up: 2.5 maps to high.
    rounded = min(int(score + 0.5), 4)
    for rating, value in RATING_SCORES.items():
        if value == rounded:
            return rating
    return Rating.UNKNOWN


def overall_rating(ratings: Iterable[Rating | str]) -> Rating:
    """Combine the four DORA ratings into one, ignoring unknown ones."""
    return rating_for_score(average_score(ratings))
