"""
Feature Extraction
==================
Turns one entity's raw rows into the numeric feature vectors consumed by the
scoring models and pattern detectors.

Three vectors are produced:
1. ValidationFeatures - per user, events in the validation-pattern window
2. ReportFeatures     - per counterfeit report, from reporter/product history
3. ChannelFeatures    - per distribution channel, from 90-day aggregates

Extractors return None when the entity has too little data to score; callers
treat that as "skip this entity", never as an error.
"""

import math
from dataclasses import dataclass, asdict
from datetime import tzinfo
from typing import Dict, Any, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from riskworker.config import AnomalyConfig, ChannelConfig, CounterfeitConfig
from riskworker.models import ChannelStats, CounterfeitReport, ValidationEvent

EARTH_RADIUS_KM = 6371.0
UNKNOWN_LOCATION = 'Unknown'


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


@dataclass(frozen=True)
class Movement:
    """Derived values for one pair of successive geotagged events."""
    previous: ValidationEvent
    current: ValidationEvent
    gap_minutes: float
    distance_km: float
    speed_kmh: Optional[float]


def pairwise_movements(events: Sequence[ValidationEvent]) -> List[Movement]:
    """
    Walk successive geotagged events (already sorted by timestamp ascending).

    Events without coordinates are dropped before pairing, so A -> (no
    location) -> C is measured as A -> C. Speed is skipped when the time gap
    is zero.
    """
    located = [e for e in events if e.has_location]
    movements = []
    for previous, current in zip(located, located[1:]):
        gap_minutes = (current.timestamp - previous.timestamp).total_seconds() / 60.0
        distance = haversine_km(previous.latitude, previous.longitude,
                                current.latitude, current.longitude)
        speed = distance / (gap_minutes / 60.0) if gap_minutes > 0 else None
        movements.append(Movement(previous, current, gap_minutes, distance, speed))
    return movements


# =============================================================================
# VALIDATION PATTERN FEATURES
# =============================================================================

@dataclass(frozen=True)
class ValidationFeatures:
    user_id: str
    event_count: int
    validations_per_hour: float
    authentic_rate: float
    non_authentic_rate: float
    unique_products: int
    unique_manufacturers: int
    average_speed: float
    max_speed: float
    night_validations: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _local_hour(event: ValidationEvent, tz: tzinfo) -> int:
    ts = event.timestamp
    if ts.tzinfo is None:
        return ts.hour
    return ts.astimezone(tz).hour


def extract_validation_features(
    user_id: str,
    events: Sequence[ValidationEvent],
    config: AnomalyConfig,
    window_hours: float = 24.0,
    timezone_name: str = 'UTC',
) -> Optional[ValidationFeatures]:
    """
    Build the validation-pattern vector for one user.

    Returns None ("insufficient data") when the user has fewer than
    config.min_events events in the window.
    """
    total = len(events)
    if total < config.min_events:
        return None

    ordered = sorted(events, key=lambda e: e.timestamp)
    authentic = sum(1 for e in ordered if e.is_authentic)

    speeds = [m.speed_kmh for m in pairwise_movements(ordered) if m.speed_kmh is not None]
    average_speed = sum(speeds) / len(speeds) if speeds else 0.0
    max_speed = max(speeds) if speeds else 0.0

    tz = ZoneInfo(timezone_name)
    night = sum(
        1 for e in ordered
        if config.night_start_hour <= _local_hour(e, tz) < config.night_end_hour
    )

    return ValidationFeatures(
        user_id=user_id,
        event_count=total,
        validations_per_hour=total / window_hours,
        authentic_rate=authentic / total,
        non_authentic_rate=(total - authentic) / total,
        unique_products=len({e.product_id for e in ordered if e.product_id is not None}),
        unique_manufacturers=len({e.manufacturer_id for e in ordered if e.manufacturer_id is not None}),
        average_speed=average_speed,
        max_speed=max_speed,
        night_validations=night / total,
    )


# =============================================================================
# COUNTERFEIT REPORT FEATURES
# =============================================================================

@dataclass(frozen=True)
class ReportFeatures:
    report_id: str
    product_name: Optional[str]
    location: str
    reporter_reliability: float
    product_counterfeit_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def extract_report_features(
    report: CounterfeitReport,
    reporter_history: Tuple[int, int],
    product_history: Tuple[int, int],
    config: CounterfeitConfig,
) -> ReportFeatures:
    """
    Args:
        report: The report being assessed
        reporter_history: (total_reports, confirmed_reports) for the reporter
        product_history: (total_validations, non_authentic_validations)
        config: Counterfeit model config (supplies the zero-history default)
    """
    total_reports, confirmed_reports = reporter_history
    total_validations, non_authentic = product_history

    if total_reports:
        reliability = confirmed_reports / total_reports
    else:
        reliability = config.default_reporter_reliability

    counterfeit_rate = non_authentic / total_validations if total_validations else 0.0

    location = (report.store_name or '').strip() or UNKNOWN_LOCATION

    return ReportFeatures(
        report_id=report.id,
        product_name=report.product_name,
        location=location,
        reporter_reliability=reliability,
        product_counterfeit_rate=counterfeit_rate,
    )


# =============================================================================
# CHANNEL FEATURES
# =============================================================================

@dataclass(frozen=True)
class ChannelFeatures:
    channel_id: str
    validation_rate: float
    counterfeit_rate: float
    reporting_consistency: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def extract_channel_features(stats: ChannelStats, config: ChannelConfig) -> Optional[ChannelFeatures]:
    """Returns None for a channel with no validations in the window."""
    if stats.total_validations <= 0:
        return None

    if stats.total_reports:
        consistency = stats.confirmed_reports / stats.total_reports
    else:
        consistency = config.default_reporting_consistency

    return ChannelFeatures(
        channel_id=stats.channel_id,
        validation_rate=stats.total_validations / config.validation_normalizer,
        counterfeit_rate=stats.non_authentic_count / stats.total_validations,
        reporting_consistency=consistency,
    )
