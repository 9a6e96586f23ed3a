"""
Pattern Detector Tests
======================
Geographic-speed and frequency detectors.
"""

from datetime import timedelta

import pytest

from riskworker.config import FrequencyConfig, GeographicConfig
from riskworker.detectors import (
    detect_frequency_anomaly,
    detect_geographic_anomalies,
    geographic_risk_score,
    group_by_user,
    recent_events,
)
from riskworker.models import PATTERN_FREQUENCY, PATTERN_GEOGRAPHIC


# =====================================================================
# GEOGRAPHIC
# =====================================================================

def test_thousand_km_in_thirty_minutes_is_flagged(make_event):
    # 9 degrees of longitude on the equator is ~1000 km
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=1800, lat=0.0, lon=9.0),
    ]
    patterns = detect_geographic_anomalies('user-1', events, GeographicConfig())

    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.pattern_type == PATTERN_GEOGRAPHIC
    assert pattern.risk_score == pytest.approx(0.99)
    assert pattern.affected_entities['user_id'] == 'user-1'
    assert pattern.affected_entities['validations'] == [events[0].id, events[1].id]
    assert pattern.affected_entities['speed_kmh'] == pytest.approx(2000, rel=0.01)


def test_geographic_score_below_cap():
    assert geographic_risk_score(900, GeographicConfig()) == pytest.approx(0.6)


def test_slow_travel_is_not_flagged(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=1800, lat=0.0, lon=1.0),
    ]
    assert detect_geographic_anomalies('user-1', events, GeographicConfig()) == []


def test_gap_of_an_hour_or_more_is_not_flagged(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=3600, lat=0.0, lon=20.0),
    ]
    assert detect_geographic_anomalies('user-1', events, GeographicConfig()) == []


def test_untagged_scan_between_located_scans_does_not_hide_travel(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=60),
        make_event(seconds=120, lat=0.0, lon=20.0),
    ]
    (pattern,) = detect_geographic_anomalies('user-1', events, GeographicConfig())
    assert pattern.risk_score == 0.99
    assert pattern.affected_entities['gap_minutes'] == 2
    assert pattern.affected_entities['validations'] == [events[0].id, events[2].id]


def test_each_flagged_pair_produces_its_own_record(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=600, lat=0.0, lon=10.0),
        make_event(seconds=1200, lat=0.0, lon=0.0),
    ]
    patterns = detect_geographic_anomalies('user-1', events, GeographicConfig())
    assert len(patterns) == 2


# =====================================================================
# FREQUENCY
# =====================================================================

def test_eleven_validations_in_under_a_minute(make_event):
    events = [make_event(seconds=i * 5) for i in range(11)]
    patterns = detect_frequency_anomaly('user-1', events, FrequencyConfig())

    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.pattern_type == PATTERN_FREQUENCY
    assert 0.5 < pattern.risk_score <= 0.99
    # elapsed time is floored to one minute: 11 per minute
    assert pattern.affected_entities['elapsed_minutes'] == 1
    assert pattern.affected_entities['validations_per_minute'] == 11
    assert pattern.affected_entities['validation_count'] == 11


def test_ten_validations_are_not_enough(make_event):
    events = [make_event(seconds=i) for i in range(10)]
    assert detect_frequency_anomaly('user-1', events, FrequencyConfig()) == []


def test_slow_rate_is_not_flagged(make_event):
    # 12 events over 11 minutes is ~1.1 per minute
    events = [make_event(seconds=i * 60) for i in range(12)]
    assert detect_frequency_anomaly('user-1', events, FrequencyConfig()) == []


def test_frequency_score_formula(make_event):
    # 15 events over 5 minutes: rate 3, score 0.5 + 1/10
    events = [make_event(seconds=int(i * 300 / 14)) for i in range(15)]
    (pattern,) = detect_frequency_anomaly('user-1', events, FrequencyConfig())
    assert pattern.risk_score == pytest.approx(0.6)


# =====================================================================
# HELPERS
# =====================================================================

def test_group_by_user_sorts_and_drops_anonymous(make_event):
    late = make_event(user_id='a', seconds=100)
    early = make_event(user_id='a', seconds=0)
    other = make_event(user_id='b', seconds=50)
    anonymous = make_event(user_id=None, seconds=10)

    grouped = group_by_user([late, other, early, anonymous])
    assert set(grouped) == {'a', 'b'}
    assert grouped['a'] == [early, late]


def test_recent_events_is_exclusive(make_event, base_time):
    old = make_event(seconds=0)
    new = make_event(seconds=1)
    assert recent_events([old, new], base_time) == [new]
    assert recent_events([old, new], base_time - timedelta(seconds=1)) == [old, new]
