"""
Feature Extractor Tests
=======================
Distance, pairwise movement and the three feature vectors.
"""

from datetime import datetime, timezone

import pytest

from riskworker.config import AnomalyConfig, ChannelConfig, CounterfeitConfig
from riskworker.features import (
    UNKNOWN_LOCATION,
    extract_channel_features,
    extract_report_features,
    extract_validation_features,
    haversine_km,
    pairwise_movements,
)
from riskworker.models import ChannelStats, CounterfeitReport


def _report(store_name='Corner Shop', product_name='Luxury Watch'):
    return CounterfeitReport(
        id='report-1',
        token_id='token-1',
        reporter_id='reporter-1',
        product_id='product-1',
        manufacturer_id='mfr-1',
        timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc),
        store_name=store_name,
        status='pending',
        product_name=product_name,
    )


# =====================================================================
# DISTANCE & MOVEMENT
# =====================================================================

def test_haversine_zero_distance():
    assert haversine_km(51.5, -0.12, 51.5, -0.12) == 0


def test_haversine_one_degree_of_longitude_on_equator():
    # 2 * pi * 6371 / 360
    assert haversine_km(0, 0, 0, 1) == pytest.approx(111.195, abs=0.01)


def test_haversine_london_paris():
    assert haversine_km(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343.5, abs=1.0)


def test_pairwise_movements_speed(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=1800, lat=0.0, lon=1.0),
    ]
    (movement,) = pairwise_movements(events)
    assert movement.gap_minutes == 30
    assert movement.distance_km == pytest.approx(111.195, abs=0.01)
    assert movement.speed_kmh == pytest.approx(222.39, abs=0.02)


def test_pairwise_movements_skip_events_without_location(make_event):
    assert pairwise_movements([make_event(seconds=0), make_event(seconds=60, lat=1.0, lon=1.0)]) == []

    untagged = make_event(seconds=60)
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        untagged,
        make_event(seconds=120, lat=0.0, lon=20.0),
    ]
    (movement,) = pairwise_movements(events)
    assert movement.previous is events[0]
    assert movement.current is events[2]
    assert movement.gap_minutes == 2
    assert movement.distance_km == pytest.approx(2223.9, abs=1.0)


def test_pairwise_movements_zero_gap_omits_speed(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=0, lat=0.0, lon=5.0),
    ]
    (movement,) = pairwise_movements(events)
    assert movement.distance_km > 0
    assert movement.speed_kmh is None


# =====================================================================
# VALIDATION FEATURES
# =====================================================================

def test_validation_features_insufficient_data(make_event):
    events = [make_event(seconds=0), make_event(seconds=60)]
    assert extract_validation_features('user-1', events, AnomalyConfig()) is None


def test_validation_features_rates_and_counts(make_event):
    events = [
        make_event(seconds=0, product_id='p1', manufacturer_id='m1'),
        make_event(seconds=60, product_id='p2', manufacturer_id='m1', is_authentic=False),
        make_event(seconds=120, product_id='p3', manufacturer_id='m2'),
        make_event(seconds=180, product_id='p3', manufacturer_id='m2'),
    ]
    features = extract_validation_features('user-1', events, AnomalyConfig())

    assert features.event_count == 4
    assert features.validations_per_hour == pytest.approx(4 / 24)
    assert features.authentic_rate == 0.75
    assert features.non_authentic_rate == 0.25
    assert features.unique_products == 3
    assert features.unique_manufacturers == 2
    assert features.average_speed == 0
    assert features.max_speed == 0


def test_validation_features_speed_uses_geotagged_pairs_only(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=1800, lat=0.0, lon=1.0),
        make_event(seconds=3600),
    ]
    features = extract_validation_features('user-1', events, AnomalyConfig())
    assert features.average_speed == pytest.approx(222.39, abs=0.02)
    assert features.max_speed == features.average_speed


def test_validation_features_untagged_scan_does_not_hide_travel(make_event):
    events = [
        make_event(seconds=0, lat=0.0, lon=0.0),
        make_event(seconds=60),
        make_event(seconds=120, lat=0.0, lon=20.0),
    ]
    features = extract_validation_features('user-1', events, AnomalyConfig())
    # ~2224 km in 2 minutes
    assert features.average_speed == pytest.approx(66717, rel=0.001)
    assert features.average_speed > AnomalyConfig().impossible_speed.limit


def test_validation_features_night_fraction_in_utc(make_event):
    events = [
        make_event(at=datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)),
        make_event(at=datetime(2026, 3, 2, 5, 59, tzinfo=timezone.utc)),
        make_event(at=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)),
        make_event(at=datetime(2026, 3, 2, 23, 0, tzinfo=timezone.utc)),
    ]
    features = extract_validation_features('user-1', events, AnomalyConfig())
    assert features.night_validations == 0.5


def test_validation_features_night_fraction_respects_timezone(make_event):
    # 19:00 UTC is 04:00 in Tokyo
    events = [
        make_event(at=datetime(2026, 3, 2, 19, 0, tzinfo=timezone.utc)),
        make_event(at=datetime(2026, 3, 2, 19, 30, tzinfo=timezone.utc)),
        make_event(at=datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)),
    ]
    utc = extract_validation_features('user-1', events, AnomalyConfig())
    tokyo = extract_validation_features('user-1', events, AnomalyConfig(), timezone_name='Asia/Tokyo')
    assert utc.night_validations == 0
    assert tokyo.night_validations == 1


# =====================================================================
# REPORT FEATURES
# =====================================================================

def test_report_features_from_history():
    features = extract_report_features(_report(), (10, 2), (50, 10), CounterfeitConfig())
    assert features.reporter_reliability == 0.2
    assert features.product_counterfeit_rate == 0.2
    assert features.location == 'Corner Shop'
    assert features.product_name == 'Luxury Watch'


def test_report_features_without_history_use_defaults():
    features = extract_report_features(_report(), (0, 0), (0, 0), CounterfeitConfig())
    assert features.reporter_reliability == 0.5
    assert features.product_counterfeit_rate == 0


@pytest.mark.parametrize('store_name', [None, '', '   '])
def test_report_features_unknown_location(store_name):
    features = extract_report_features(_report(store_name=store_name), (1, 1), (1, 0), CounterfeitConfig())
    assert features.location == UNKNOWN_LOCATION


# =====================================================================
# CHANNEL FEATURES
# =====================================================================

def _stats(total=500, non_authentic=50, reports=4, confirmed=1):
    return ChannelStats(
        channel_id='channel-1',
        total_validations=total,
        non_authentic_count=non_authentic,
        unique_users=20,
        unique_products=5,
        total_reports=reports,
        confirmed_reports=confirmed,
    )


def test_channel_features():
    features = extract_channel_features(_stats(), ChannelConfig())
    assert features.validation_rate == 0.5
    assert features.counterfeit_rate == 0.1
    assert features.reporting_consistency == 0.25


def test_channel_features_no_reports_is_fully_consistent():
    features = extract_channel_features(_stats(reports=0, confirmed=0), ChannelConfig())
    assert features.reporting_consistency == 1.0


def test_channel_features_skip_channel_without_validations():
    assert extract_channel_features(_stats(total=0, non_authentic=0), ChannelConfig()) is None
