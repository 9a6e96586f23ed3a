"""
Pattern Detectors
=================
Pairwise scans over a user's event sequence that produce discrete
SuspiciousPattern alerts, independently of the scoring models.

Detectors:
1. GEOGRAPHIC_ANOMALY: consecutive geotagged validations less than an hour
   apart whose implied travel speed exceeds 800 km/h. One alert per flagged
   pair; overlapping pairs for the same user are not merged.
2. FREQUENCY_ANOMALY: more than 10 validations by one user inside the last
   hour at a rate above 2 per minute. One alert per user per run.

Both functions are pure: they take events and config and return records.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from riskworker.config import FrequencyConfig, GeographicConfig
from riskworker.features import pairwise_movements
from riskworker.models import (
    PATTERN_FREQUENCY,
    PATTERN_GEOGRAPHIC,
    SuspiciousPattern,
    ValidationEvent,
    affected_ids,
)


def group_by_user(events: Iterable[ValidationEvent]) -> Dict[str, List[ValidationEvent]]:
    """Group events per user, each list sorted by timestamp ascending."""
    grouped: Dict[str, List[ValidationEvent]] = defaultdict(list)
    for event in events:
        if event.user_id is None:
            continue
        grouped[event.user_id].append(event)
    for user_events in grouped.values():
        user_events.sort(key=lambda e: e.timestamp)
    return dict(grouped)


def geographic_risk_score(speed_kmh: float, config: GeographicConfig) -> float:
    return min(config.base_score + (speed_kmh - config.speed_kmh) / config.speed_divisor, config.max_score)


def frequency_risk_score(rate_per_minute: float, config: FrequencyConfig) -> float:
    return min(config.base_score + (rate_per_minute - config.rate_per_minute) / config.rate_divisor,
               config.max_score)


def detect_geographic_anomalies(
    user_id: str,
    events: Sequence[ValidationEvent],
    config: GeographicConfig,
) -> List[SuspiciousPattern]:
    """Flag every consecutive pair that implies impossible travel."""
    patterns = []
    for movement in pairwise_movements(events):
        if movement.speed_kmh is None:
            continue
        if movement.gap_minutes >= config.max_gap_minutes or movement.speed_kmh <= config.speed_kmh:
            continue

        score = round(geographic_risk_score(movement.speed_kmh, config), 4)
        if score <= 0:
            continue

        previous, current = movement.previous, movement.current
        patterns.append(SuspiciousPattern(
            pattern_type=PATTERN_GEOGRAPHIC,
            description=(
                f"User {user_id} validated {movement.distance_km:.0f} km apart within "
                f"{movement.gap_minutes:.1f} minutes ({movement.speed_kmh:.0f} km/h)"
            ),
            affected_entities={
                **affected_ids([previous, current]),
                'user_id': user_id,
                'distance_km': round(movement.distance_km, 2),
                'gap_minutes': round(movement.gap_minutes, 2),
                'speed_kmh': round(movement.speed_kmh, 2),
                'from': {'lat': previous.latitude, 'lon': previous.longitude,
                         'at': previous.timestamp.isoformat()},
                'to': {'lat': current.latitude, 'lon': current.longitude,
                       'at': current.timestamp.isoformat()},
            },
            risk_score=score,
        ))
    return patterns


def detect_frequency_anomaly(
    user_id: str,
    events: Sequence[ValidationEvent],
    config: FrequencyConfig,
) -> List[SuspiciousPattern]:
    """
    Flag a user validating faster than the configured rate.

    Elapsed time runs from the user's first to last event in the window and
    is floored to one minute.
    """
    count = len(events)
    if count <= config.min_events:
        return []

    first = min(e.timestamp for e in events)
    last = max(e.timestamp for e in events)
    elapsed_minutes = max((last - first).total_seconds() / 60.0, 1.0)
    rate = count / elapsed_minutes
    if rate <= config.rate_per_minute:
        return []

    score = round(frequency_risk_score(rate, config), 4)
    if score <= 0:
        return []

    return [SuspiciousPattern(
        pattern_type=PATTERN_FREQUENCY,
        description=(
            f"User {user_id} performed {count} validations in {elapsed_minutes:.1f} minutes "
            f"({rate:.1f}/min)"
        ),
        affected_entities={
            **affected_ids(list(events)),
            'user_id': user_id,
            'validation_count': count,
            'elapsed_minutes': round(elapsed_minutes, 2),
            'validations_per_minute': round(rate, 2),
        },
        risk_score=score,
    )]


def recent_events(events: Iterable[ValidationEvent], since: datetime) -> List[ValidationEvent]:
    return [e for e in events if e.timestamp > since]
