# chartledger/predictions/ratings.py
import logging
import os
from typing import Optional

from chartledger.core.encoding import AddressLike
from chartledger.core.errors import ErrorKind, NotFoundError, ValidationError
from chartledger.core.types import GlobalStats, UserStats
from chartledger.predictions.ledger import PredictionLedger, lookup_owner, require_day
from chartledger.registry.commitments import require_owner
from chartledger.storage import COUNTER_CHARTS, COUNTER_OWNERS, COUNTER_PREDICTIONS

logger = logging.getLogger(__name__)

MAX_RATING = 5


def legacy_ratings_from_env() -> bool:
    return os.environ.get("CHARTLEDGER_LEGACY_RATINGS", "").strip().lower() in ("1", "true", "yes")


class RatingAggregator:
    """
    Running per-owner rating sum/count over prediction entries.

    Whether a call is a first rating or an update is decided by an explicit
    rating row. With `legacy_zero_sentinel=True` a stored 0 counts as
    "never rated" instead, so 0 followed by 3 increments rating_count twice.
    """

    def __init__(self, predictions: PredictionLedger, legacy_zero_sentinel: Optional[bool] = None):
        self.predictions = predictions
        self.storage = predictions.storage
        if legacy_zero_sentinel is None:
            legacy_zero_sentinel = legacy_ratings_from_env()
        self.legacy_zero_sentinel = legacy_zero_sentinel

    def rate(self, caller: AddressLike, day: int, value: int) -> UserStats:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_RATING:
            raise ValidationError(ErrorKind.INVALID_RATING, f"rating must be 0..{MAX_RATING}, got {value!r}")
        caller = require_owner(caller)
        day = require_day(day)

        with self.storage.transaction():
            if not self.predictions.has_prediction(caller, day):
                raise NotFoundError(ErrorKind.NOT_FOUND, f"no prediction for {caller} on day {day}")

            stored = self.storage.get_rating(caller, day)
            previous = stored or 0
            if self.legacy_zero_sentinel:
                is_new = previous == 0
            else:
                is_new = stored is None

            stats = self.storage.get_user_stats(caller)
            if is_new:
                stats = UserStats(
                    prediction_count=stats.prediction_count,
                    rating_count=stats.rating_count + 1,
                    rating_sum=stats.rating_sum + value,
                )
            else:
                stats = UserStats(
                    prediction_count=stats.prediction_count,
                    rating_count=stats.rating_count,
                    rating_sum=stats.rating_sum - previous + value,
                )

            self.storage.set_rating(caller, day, value)
            self.storage.put_user_stats(caller, stats)

        logger.info(
            "%s rating %d for %s on day %d", "New" if is_new else "Updated", value, caller, day
        )
        return stats

    def get_rating(self, owner: AddressLike, day: int) -> int:
        entry = self.predictions.get_prediction(owner, day)
        if entry is None:
            return 0
        return self.storage.get_rating(entry.owner, entry.day) or 0

    def get_user_stats(self, owner: AddressLike) -> UserStats:
        owner = lookup_owner(owner)
        if owner is None:
            return UserStats()
        return self.storage.get_user_stats(owner)

    def get_global_stats(self) -> GlobalStats:
        return GlobalStats(
            total_charts=self.storage.get_counter(COUNTER_CHARTS),
            total_owners=self.storage.get_counter(COUNTER_OWNERS),
            total_predictions=self.storage.get_counter(COUNTER_PREDICTIONS),
        )
