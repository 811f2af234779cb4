# chartledger/verify/audit.py
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from chartledger.storage import (
    COUNTER_CHARTS,
    COUNTER_OWNERS,
    COUNTER_PREDICTIONS,
    StorageBackend,
)

CATEGORIES = ("owner_index", "counter", "rating", "event")


@dataclass(frozen=True)
class AuditFailure:
    """One place where a derived value disagrees with what storage records."""
    subject: str  # chart id, owner address or counter name
    message: str
    category: str


@dataclass
class AuditResult:
    failures: List[AuditFailure] = field(default_factory=list)
    charts_checked: int = 0
    owners_checked: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.failures

    @property
    def first_failure(self) -> Optional[AuditFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, subject: str, message: str, category: str) -> None:
        self.failures.append(AuditFailure(subject, message, category))

    def by_category(self) -> Dict[str, List[AuditFailure]]:
        grouped = defaultdict(list)
        for failure in self.failures:
            grouped[failure.category].append(failure)
        return {c: grouped[c] for c in CATEGORIES if grouped[c]}

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return f"Ledger is consistent ({self.charts_checked} charts, {self.owners_checked} owners checked)"
        grouped = self.by_category()
        lines = [f"Audit FAILED: {len(self.failures)} issues in {', '.join(grouped)}"]
        for category, failures in grouped.items():
            lines.append(f"  {category}:")
            lines.extend(f"    {f.subject}: {f.message}" for f in failures)
        return "\n".join(lines)


class LedgerAuditor:
    """
    Offline consistency check over a ledger's storage.

    Re-derives owner index, counters, rating aggregates and the event log
    from the authoritative tables and reports every disagreement.
    """

    def __init__(self, strict_rating_counts: bool = True):
        # legacy zero-sentinel ledgers may count more ratings than rated keys
        self.strict_rating_counts = strict_rating_counts

    def audit(self, storage: StorageBackend) -> AuditResult:
        result = AuditResult()

        self._check_owner_index(storage, result)
        self._check_counters(storage, result)
        self._check_ratings(storage, result)
        self._check_events(storage, result)

        return result

    def _check_owner_index(self, storage: StorageBackend, result: AuditResult) -> None:
        charts = {c.chart_id: c for c in storage.list_charts()}
        result.charts_checked = len(charts)
        seen = Counter()

        for owner in storage.list_indexed_owners():
            for chart_id in storage.list_owner_charts(owner):
                seen[chart_id] += 1
                chart = charts.get(chart_id)
                if chart is None:
                    result.fail(chart_id, f"indexed under {owner} but no chart record", "owner_index")
                elif chart.owner != owner:
                    result.fail(chart_id, f"indexed under {owner} but owned by {chart.owner}", "owner_index")

        for chart_id in charts:
            if seen[chart_id] != 1:
                result.fail(chart_id, f"appears {seen[chart_id]} times in owner index", "owner_index")

    def _check_counters(self, storage: StorageBackend, result: AuditResult) -> None:
        expected = {
            COUNTER_CHARTS: storage.count("charts"),
            COUNTER_OWNERS: storage.count("registrations"),
            COUNTER_PREDICTIONS: storage.count("predictions"),
        }
        for name, actual in expected.items():
            recorded = storage.get_counter(name)
            if recorded != actual:
                result.fail(name, f"counter is {recorded}, records say {actual}", "counter")

        per_owner = sum(storage.get_user_stats(o).prediction_count for o in storage.list_stat_owners())
        if per_owner != expected[COUNTER_PREDICTIONS]:
            result.fail(
                COUNTER_PREDICTIONS,
                f"per-owner prediction counts sum to {per_owner}, records say {expected[COUNTER_PREDICTIONS]}",
                "counter",
            )

    def _check_ratings(self, storage: StorageBackend, result: AuditResult) -> None:
        owners = storage.list_stat_owners()
        result.owners_checked = len(owners)
        for owner in owners:
            stats = storage.get_user_stats(owner)
            ratings = storage.list_ratings(owner)

            for day in ratings:
                if storage.get_prediction(owner, day) is None:
                    result.fail(owner, f"rating on day {day} without a prediction", "rating")

            current_sum = sum(ratings.values())
            if stats.rating_sum != current_sum:
                result.fail(owner, f"rating_sum is {stats.rating_sum}, current ratings sum to {current_sum}", "rating")

            if self.strict_rating_counts:
                if stats.rating_count != len(ratings):
                    result.fail(owner, f"rating_count is {stats.rating_count}, {len(ratings)} keys rated", "rating")
            elif stats.rating_count < len(ratings):
                result.fail(owner, f"rating_count {stats.rating_count} below {len(ratings)} rated keys", "rating")

    def _check_events(self, storage: StorageBackend, result: AuditResult) -> None:
        created = storage.load_events(kind="ChartCreated")
        created_ids = Counter(e.payload.get("chart_id") for e in created)
        for chart in storage.list_charts():
            if created_ids[chart.chart_id] != 1:
                result.fail(chart.chart_id, f"{created_ids[chart.chart_id]} ChartCreated events", "event")

        verified_ids = {e.payload.get("chart_id") for e in storage.load_events(kind="ChartVerified")}
        for chart in storage.list_charts():
            initially = any(
                e.payload.get("verified") for e in created if e.payload.get("chart_id") == chart.chart_id
            )
            announced = initially or chart.chart_id in verified_ids
            if chart.verified and not announced:
                result.fail(chart.chart_id, "verified without a ChartVerified event", "event")
            elif announced and not chart.verified:
                result.fail(chart.chart_id, "verified flag reverted to false", "event")
