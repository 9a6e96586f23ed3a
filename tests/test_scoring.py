"""
Scoring Model Tests
===================
Rule tables, clamping, thresholds and risk-level banding.
"""

import random

import pytest

from riskworker.config import AnomalyConfig, ChannelConfig, CounterfeitConfig, RuleThreshold
from riskworker.features import ChannelFeatures, ReportFeatures, ValidationFeatures
from riskworker.scoring import (
    ScoringRule,
    evaluate_rules,
    is_anomalous,
    report_status_for,
    risk_level,
    score_channel_risk,
    score_counterfeit_risk,
    score_validation_pattern,
)


def _validation(per_hour=1.0, speed=0.0, night=0.0, products=1):
    return ValidationFeatures(
        user_id='user-1',
        event_count=24,
        validations_per_hour=per_hour,
        authentic_rate=1.0,
        non_authentic_rate=0.0,
        unique_products=products,
        unique_manufacturers=1,
        average_speed=speed,
        max_speed=speed,
        night_validations=night,
    )


def _report(product='Luxury Watch', location='Online Marketplace', reliability=0.2, rate=0.2):
    return ReportFeatures(
        report_id='report-1',
        product_name=product,
        location=location,
        reporter_reliability=reliability,
        product_counterfeit_rate=rate,
    )


@pytest.fixture
def counterfeit_config():
    return CounterfeitConfig(
        high_risk_products=frozenset({'luxury watch', 'designer handbag'}),
        high_risk_locations=frozenset({'online marketplace'}),
    )


# =====================================================================
# RULE EVALUATION
# =====================================================================

def test_evaluate_rules_sums_matching_weights():
    rules = [
        ScoringRule('a', lambda f: True, 0.25),
        ScoringRule('b', lambda f: False, 0.5),
        ScoringRule('c', lambda f: True, 0.25),
    ]
    result = evaluate_rules(rules, object())
    assert result.score == 0.5
    assert result.triggered == ('a', 'c')


def test_evaluate_rules_clamps_to_one():
    rules = [ScoringRule(str(i), lambda f: True, 0.4) for i in range(4)]
    assert evaluate_rules(rules, object()).score == 1.0


def test_scores_always_within_unit_interval(counterfeit_config):
    rng = random.Random(7)
    for _ in range(300):
        v = _validation(
            per_hour=rng.uniform(0, 50),
            speed=rng.uniform(0, 3000),
            night=rng.random(),
            products=rng.randint(0, 30),
        )
        r = _report(
            product=rng.choice(['Luxury Watch', 'Socks', None]),
            location=rng.choice(['Online Marketplace', 'Unknown']),
            reliability=rng.random(),
            rate=rng.random(),
        )
        c = ChannelFeatures('channel-1', rng.uniform(0, 5), rng.random(), rng.random())

        for score in (
            score_validation_pattern(v, AnomalyConfig()).score,
            score_counterfeit_risk(r, counterfeit_config).score,
            score_channel_risk(c, ChannelConfig()).score,
        ):
            assert 0.0 <= score <= 1.0


# =====================================================================
# ANOMALY MODEL
# =====================================================================

def test_anomaly_score_no_signal():
    result = score_validation_pattern(_validation(), AnomalyConfig())
    assert result.score == 0
    assert result.triggered == ()


def test_anomaly_score_all_rules():
    result = score_validation_pattern(
        _validation(per_hour=11, speed=900, night=0.6, products=11), AnomalyConfig()
    )
    assert result.score == 1.0
    assert result.triggered == ('high_frequency', 'impossible_speed', 'night_activity', 'product_spread')


def test_anomaly_threshold_is_strict():
    config = AnomalyConfig()
    # frequency + speed = 0.3 + 0.4 = 0.7, not above the threshold
    at_threshold = score_validation_pattern(_validation(per_hour=11, speed=900), config)
    assert at_threshold.score == 0.7
    assert not is_anomalous(at_threshold, config)

    above = score_validation_pattern(_validation(per_hour=11, speed=900, products=11), config)
    assert above.score == 0.8
    assert is_anomalous(above, config)


def test_anomaly_limits_are_exclusive():
    result = score_validation_pattern(
        _validation(per_hour=10, speed=800, night=0.5, products=10), AnomalyConfig()
    )
    assert result.score == 0


def test_anomaly_weights_come_from_config():
    config = AnomalyConfig(high_frequency=RuleThreshold(limit=5, weight=0.9))
    result = score_validation_pattern(_validation(per_hour=6), config)
    assert result.score == 0.9
    assert is_anomalous(result, config)


# =====================================================================
# COUNTERFEIT MODEL
# =====================================================================

def test_counterfeit_all_rules_clamps_and_investigates(counterfeit_config):
    result = score_counterfeit_risk(_report(), counterfeit_config)
    assert result.score == 1.0
    assert report_status_for(result, counterfeit_config) == 'investigating'


def test_counterfeit_lists_match_case_insensitively(counterfeit_config):
    result = score_counterfeit_risk(
        _report(product='  LUXURY watch ', location='online MARKETPLACE', reliability=0.9, rate=0),
        counterfeit_config,
    )
    assert result.triggered == ('high_risk_product', 'high_risk_location')
    assert result.score == 0.5
    assert report_status_for(result, counterfeit_config) == 'pending'


def test_counterfeit_threshold_is_strict(counterfeit_config):
    # product + product rate = 0.6, not above 0.6
    result = score_counterfeit_risk(
        _report(location='Unknown', reliability=0.5, rate=0.2), counterfeit_config
    )
    assert result.score == 0.6
    assert report_status_for(result, counterfeit_config) == 'pending'


def test_counterfeit_missing_product_name(counterfeit_config):
    result = score_counterfeit_risk(
        _report(product=None, location='Unknown', reliability=0.5, rate=0), counterfeit_config
    )
    assert result.score == 0


# =====================================================================
# CHANNEL MODEL
# =====================================================================

def test_channel_score_all_rules():
    result = score_channel_risk(ChannelFeatures('channel-1', 0.05, 0.1, 0.2), ChannelConfig())
    assert result.score == 1.0


def test_channel_score_healthy_channel():
    result = score_channel_risk(ChannelFeatures('channel-1', 2.0, 0.01, 1.0), ChannelConfig())
    assert result.score == 0
    assert risk_level(result.score) == 'low'


def test_channel_score_counterfeit_rate_only():
    result = score_channel_risk(ChannelFeatures('channel-1', 0.5, 0.06, 0.9), ChannelConfig())
    assert result.score == 0.4
    assert result.triggered == ('counterfeit_rate',)


# =====================================================================
# RISK LEVELS
# =====================================================================

@pytest.mark.parametrize('score,level', [
    (1.0, 'critical'),
    (0.81, 'critical'),
    (0.8, 'high'),
    (0.61, 'high'),
    (0.6, 'medium'),
    (0.41, 'medium'),
    (0.4, 'low'),
    (0.0, 'low'),
])
def test_risk_level_bands(score, level):
    assert risk_level(score) == level
