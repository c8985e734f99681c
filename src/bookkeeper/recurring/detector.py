"""
Recurring series detection over a transaction snapshot.

Two passes over posted outflows inside the lookback window:

1. Amount-bucket pass: group by (normalized merchant, amount rounded to
   the bucket width), for outflows at or above `min_amount`.
2. Keyword pass: group utility/subscription merchants by normalized
   merchant alone, ignoring amount variance and `min_amount`.

Each group with enough occurrences is checked for a regular cadence
(mean day-gap inside a weekly, biweekly or monthly band, and low
relative spread). Irregular groups are dropped, never forced into a
cadence. Results are advisory and never applied to transactions.
"""
import re
import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from bookkeeper.categorization.normalizer import normalize_merchant
from bookkeeper.config.settings import ConfigLoader
from bookkeeper.domain.enums import Cadence
from bookkeeper.domain.errors import ValidationError
from bookkeeper.domain.models import RecurringSeries, Transaction
from bookkeeper.logging_setup import get_logger

logger = get_logger(__name__)

# (cadence, min mean gap, max mean gap) in days, inclusive
CADENCE_BANDS: Tuple[Tuple[Cadence, float, float], ...] = (
    (Cadence.WEEKLY, 5, 9),
    (Cadence.BIWEEKLY, 12, 16),
    (Cadence.MONTHLY, 25, 35),
)

CADENCE_DAYS = {
    Cadence.WEEKLY: 7,
    Cadence.BIWEEKLY: 14,
    Cadence.MONTHLY: 30,
}

BUCKET_PASS = "amount_bucket"
KEYWORD_PASS = "keyword"

DEFAULT_UTILITY_KEYWORDS = (
    "ELECTRIC", "GAS", "WATER", "UTILITY", "UTILITIES",
    "PGE", "EDISON", "POWER", "ENERGY",
    "COMCAST", "ATT", "VERIZON", "SPECTRUM", "COX",
    "WASTE", "GARBAGE", "SEWER", "MUNICIPAL",
    "NETFLIX", "SPOTIFY", "HULU", "DISNEY", "YOUTUBE",
)

# Confidence model
_BASE_CONFIDENCE = 0.5
_PER_OCCURRENCE = 0.1
_OCCURRENCE_CAP = 0.9
_VARIATION_WEIGHT = 0.5
_RENT_SCALE_BONUS = 0.05
_MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class DetectorSettings:
    """
    Detector tunables. Amounts are minor units.

    `amount_bucket` trades recall for false positives: wider buckets
    merge price changes into one series but also merge unrelated
    payments to the same merchant.
    """
    lookback_days: int = 180
    min_amount: int = 0
    amount_bucket: int = 5000
    min_occurrences: int = 2
    max_interval_variation: float = 0.35
    rent_scale_amount: int = 100000
    utility_keywords: Tuple[str, ...] = DEFAULT_UTILITY_KEYWORDS
    keyword_pass: bool = True

    def __post_init__(self):
        if self.lookback_days <= 0:
            raise ValidationError(f"lookback_days must be positive, got {self.lookback_days}")
        if self.min_amount < 0:
            raise ValidationError(f"min_amount must be non-negative, got {self.min_amount}")
        if self.amount_bucket <= 0:
            raise ValidationError(f"amount_bucket must be positive, got {self.amount_bucket}")
        if self.min_occurrences < 2:
            raise ValidationError(
                f"min_occurrences must be at least 2, got {self.min_occurrences}"
            )
        if self.max_interval_variation < 0:
            raise ValidationError("max_interval_variation must be non-negative")
        object.__setattr__(
            self, "utility_keywords", tuple(k.upper() for k in self.utility_keywords)
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DetectorSettings":
        """Build settings from the "recurring" section of engine.json"""
        known = {
            "lookback_days", "min_amount", "amount_bucket", "min_occurrences",
            "max_interval_variation", "rent_scale_amount", "keyword_pass",
        }
        kwargs: Dict[str, Any] = {k: v for k, v in config.items() if k in known}
        if "utility_keywords" in config:
            kwargs["utility_keywords"] = tuple(config["utility_keywords"])
        return cls(**kwargs)

    @classmethod
    def load(cls) -> "DetectorSettings":
        """Settings from configuration, or the built-in defaults."""
        try:
            return cls.from_config(ConfigLoader.load_engine_config().get("recurring", {}))
        except FileNotFoundError:
            return cls()


@dataclass
class DetectionResult:
    series: List[RecurringSeries] = field(default_factory=list)
    skipped: int = 0
    irregular_groups: int = 0

    def for_merchant(self, merchant_key: str) -> List[RecurringSeries]:
        return [s for s in self.series if s.merchant_key == merchant_key]


def amount_bucket(amount: int, width: int) -> int:
    """Round an amount to the nearest multiple of width (halves round up)."""
    return ((amount + width // 2) // width) * width


def classify_cadence(mean_gap: float) -> Optional[Cadence]:
    for cadence, low, high in CADENCE_BANDS:
        if low <= mean_gap <= high:
            return cadence
    return None


def series_confidence(
    occurrence_count: int,
    interval_variation: float,
    typical_amount: int,
    rent_scale_amount: int,
) -> float:
    """
    Confidence for a detected series.

    Non-decreasing in occurrence_count, non-increasing in
    interval_variation, with a small bonus for rent-scale amounts.
    """
    score = min(_BASE_CONFIDENCE + _PER_OCCURRENCE * occurrence_count, _OCCURRENCE_CAP)
    score -= _VARIATION_WEIGHT * min(interval_variation, 1.0)
    if typical_amount >= rent_scale_amount:
        score += _RENT_SCALE_BONUS
    return round(max(0.0, min(score, _MAX_CONFIDENCE)), 4)


class RecurringSeriesDetector:
    """
    Detects recurring transaction series.

    Usage:
        detector = RecurringSeriesDetector(DetectorSettings(min_amount=50000))
        result = detector.detect(transactions, as_of=date(2025, 6, 30))
        for series in result.series:
            print(series.merchant_key, series.cadence, series.confidence)
    """

    def __init__(self, settings: Optional[DetectorSettings] = None):
        self.settings = settings or DetectorSettings()
        # Whole words only, so "ATT" does not match "SEATTLE".
        self._utility_pattern = re.compile(
            r"\b(?:" + "|".join(re.escape(k) for k in self.settings.utility_keywords) + r")\b"
        )

    def _eligible(self, txn: Transaction, window_start: date, as_of: date) -> bool:
        if not txn.is_outflow or not txn.is_posted:
            return False
        # Transactions dated after the snapshot are excluded.
        return window_start <= txn.transaction_date <= as_of

    def _is_utility(self, merchant_key: str, description: str) -> bool:
        if not self.settings.utility_keywords:
            return False
        return bool(
            self._utility_pattern.search(merchant_key)
            or self._utility_pattern.search((description or "").upper())
        )

    def detect(self, transactions: Iterable[Transaction], as_of: date) -> DetectionResult:
        """
        Run both passes over a snapshot.

        Args:
            transactions: Transaction snapshot (any direction/status)
            as_of: End of the lookback window, inclusive

        Returns:
            DetectionResult with series sorted by confidence, highest first,
            and the number of malformed transactions skipped
        """
        settings = self.settings
        window_start = as_of - timedelta(days=settings.lookback_days)

        bucket_groups: Dict[Tuple[str, int], List[Transaction]] = defaultdict(list)
        keyword_groups: Dict[str, List[Transaction]] = defaultdict(list)
        result = DetectionResult()

        for txn in transactions:
            try:
                if not self._eligible(txn, window_start, as_of):
                    continue
                merchant_key = normalize_merchant(txn.merchant_name or txn.description)

                if txn.amount >= settings.min_amount:
                    bucket = amount_bucket(txn.amount, settings.amount_bucket)
                    bucket_groups[(merchant_key, bucket)].append(txn)

                if settings.keyword_pass and self._is_utility(merchant_key, txn.description):
                    keyword_groups[merchant_key].append(txn)
            except (AttributeError, TypeError, ValueError) as e:
                result.skipped += 1
                logger.warning("Skipping malformed transaction %r: %s", txn, e)

        detected_merchants: Set[str] = set()

        for (merchant_key, _), group in sorted(bucket_groups.items()):
            series = self._analyze(merchant_key, group, BUCKET_PASS)
            if series is None:
                if len(group) >= settings.min_occurrences:
                    result.irregular_groups += 1
                continue
            result.series.append(series)
            detected_merchants.add(merchant_key)

        for merchant_key, group in sorted(keyword_groups.items()):
            if merchant_key in detected_merchants:
                continue
            series = self._analyze(merchant_key, group, KEYWORD_PASS)
            if series is None:
                if len(group) >= settings.min_occurrences:
                    result.irregular_groups += 1
                continue
            result.series.append(series)

        result.series.sort(key=lambda s: (-s.confidence, s.merchant_key, s.typical_amount))

        logger.debug(
            "Detected %d recurring series (%d irregular groups, %d skipped)",
            len(result.series), result.irregular_groups, result.skipped,
        )
        return result

    def _analyze(
        self,
        merchant_key: str,
        group: Sequence[Transaction],
        detection_pass: str,
    ) -> Optional[RecurringSeries]:
        if len(group) < self.settings.min_occurrences:
            return None

        ordered = sorted(group, key=lambda t: (t.transaction_date, t.id or ""))
        dates = [t.transaction_date for t in ordered]
        gaps = [(later - earlier).days for earlier, later in zip(dates, dates[1:])]

        mean_gap = statistics.mean(gaps)
        if mean_gap <= 0:
            return None

        variation = statistics.pstdev(gaps) / mean_gap
        if variation > self.settings.max_interval_variation:
            return None

        cadence = classify_cadence(mean_gap)
        if cadence is None:
            return None

        amounts = [t.amount for t in ordered]
        typical_amount = statistics.median_low(amounts)

        return RecurringSeries(
            merchant_key=merchant_key,
            amount_min=min(amounts),
            amount_max=max(amounts),
            cadence=cadence,
            confidence=series_confidence(
                len(ordered), variation, typical_amount, self.settings.rent_scale_amount
            ),
            occurrence_count=len(ordered),
            last_seen_date=dates[-1],
            mean_interval_days=round(float(mean_gap), 1),
            typical_amount=typical_amount,
            next_expected_date=dates[-1] + timedelta(days=CADENCE_DAYS[cadence]),
            detection_pass=detection_pass,
            transaction_ids=tuple(t.id for t in ordered if t.id),
        )
