"""
Heuristic Scoring Models
========================
Fixed-weight scorers over the feature vectors from riskworker.features.

Each model is a rule table: an ordered list of (name, predicate, weight).
Every rule whose predicate holds adds its weight, and the sum is clamped to
1.0. Weights are validated as non-negative when the config is loaded, so the
score is always in [0, 1].

Models:
1. Anomaly score         - validation pattern of one user
2. Counterfeit risk score - one counterfeit report
3. Channel risk score    - one distribution channel
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Sequence, Tuple

from riskworker.config import (
    AnomalyConfig,
    ChannelConfig,
    CounterfeitConfig,
    RiskLevelBands,
)
from riskworker.features import ChannelFeatures, ReportFeatures, ValidationFeatures
from riskworker.models import REPORT_INVESTIGATING, REPORT_PENDING


@dataclass(frozen=True)
class ScoringRule:
    name: str
    predicate: Callable[[Any], bool]
    weight: float


@dataclass(frozen=True)
class ScoreResult:
    score: float
    triggered: Tuple[str, ...]


def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, value))


def evaluate_rules(rules: Sequence[ScoringRule], features: Any) -> ScoreResult:
    """Apply a rule table to one feature vector."""
    total = 0.0
    triggered = []
    for rule in rules:
        if rule.predicate(features):
            total += rule.weight
            triggered.append(rule.name)
    return ScoreResult(score=round(clamp_score(total), 4), triggered=tuple(triggered))


# =============================================================================
# RULE TABLES
# =============================================================================

def anomaly_rules(config: AnomalyConfig) -> List[ScoringRule]:
    return [
        ScoringRule(
            'high_frequency',
            lambda f: f.validations_per_hour > config.high_frequency.limit,
            config.high_frequency.weight,
        ),
        ScoringRule(
            'impossible_speed',
            lambda f: f.average_speed > config.impossible_speed.limit,
            config.impossible_speed.weight,
        ),
        ScoringRule(
            'night_activity',
            lambda f: f.night_validations > config.night_activity.limit,
            config.night_activity.weight,
        ),
        ScoringRule(
            'product_spread',
            lambda f: f.unique_products > config.product_spread.limit,
            config.product_spread.weight,
        ),
    ]


def counterfeit_rules(config: CounterfeitConfig) -> List[ScoringRule]:
    return [
        ScoringRule(
            'high_risk_product',
            lambda f: bool(f.product_name) and f.product_name.strip().lower() in config.high_risk_products,
            config.high_risk_product_weight,
        ),
        ScoringRule(
            'high_risk_location',
            lambda f: f.location.strip().lower() in config.high_risk_locations,
            config.high_risk_location_weight,
        ),
        ScoringRule(
            'unreliable_reporter',
            lambda f: f.reporter_reliability < config.unreliable_reporter.limit,
            config.unreliable_reporter.weight,
        ),
        ScoringRule(
            'product_counterfeit_rate',
            lambda f: f.product_counterfeit_rate > config.product_counterfeit_rate.limit,
            config.product_counterfeit_rate.weight,
        ),
    ]


def channel_rules(config: ChannelConfig) -> List[ScoringRule]:
    return [
        ScoringRule(
            'low_validation_rate',
            lambda f: f.validation_rate < config.low_validation_rate.limit,
            config.low_validation_rate.weight,
        ),
        ScoringRule(
            'counterfeit_rate',
            lambda f: f.counterfeit_rate > config.counterfeit_rate.limit,
            config.counterfeit_rate.weight,
        ),
        ScoringRule(
            'low_reporting_consistency',
            lambda f: f.reporting_consistency < config.low_reporting_consistency.limit,
            config.low_reporting_consistency.weight,
        ),
    ]


# =============================================================================
# MODELS
# =============================================================================

def score_validation_pattern(features: ValidationFeatures, config: AnomalyConfig) -> ScoreResult:
    return evaluate_rules(anomaly_rules(config), features)


def score_counterfeit_risk(features: ReportFeatures, config: CounterfeitConfig) -> ScoreResult:
    return evaluate_rules(counterfeit_rules(config), features)


def score_channel_risk(features: ChannelFeatures, config: ChannelConfig) -> ScoreResult:
    return evaluate_rules(channel_rules(config), features)


def is_anomalous(result: ScoreResult, config: AnomalyConfig) -> bool:
    return result.score > config.threshold


def report_status_for(result: ScoreResult, config: CounterfeitConfig) -> str:
    """Reports above the threshold go to investigation, the rest stay pending."""
    if result.score > config.investigate_threshold:
        return REPORT_INVESTIGATING
    return REPORT_PENDING


def risk_level(score: float, bands: RiskLevelBands = RiskLevelBands()) -> str:
    """Convert a [0,1] score to a risk label (uses config bands)."""
    if score > bands.critical:
        return 'critical'
    elif score > bands.high:
        return 'high'
    elif score > bands.medium:
        return 'medium'
    else:
        return 'low'
