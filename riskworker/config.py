"""
Risk Configuration
==================
Loads every tunable of the risk worker from YAML into a frozen RiskConfig.

The config value is built once at startup and passed explicitly into each
builder, scorer and detector. Missing keys fall back to the defaults below,
so an empty or partial risk_config.yml reproduces the stock heuristics.

Usage:
    from riskworker.config import load_risk_config

    config = load_risk_config('config/risk_config.yml')
    config.anomaly.threshold          # 0.7
    config.intervals.channel_risk     # 3600 (seconds)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Optional

import yaml

from riskworker.models import ConfigError, PREDICTION_VALIDATION_TREND_7D

logger = logging.getLogger(__name__)

DEFAULT_RISK_CONFIG_PATH = 'config/risk_config.yml'


@dataclass(frozen=True)
class RuleThreshold:
    """A single (limit, weight) pair of a scoring rule."""
    limit: float
    weight: float


@dataclass(frozen=True)
class WindowConfig:
    validation_pattern_hours: float = 24.0
    frequency_window_minutes: float = 60.0
    channel_days: int = 90
    trend_days: int = 30


@dataclass(frozen=True)
class IntervalConfig:
    """Per-task cadence in seconds."""
    validation_patterns: float = 15 * 60
    report_risk: float = 30 * 60
    channel_risk: float = 60 * 60
    suspicious_patterns: float = 20 * 60
    trend_prediction: float = 6 * 60 * 60

    def as_dict(self) -> Dict[str, float]:
        return {
            'validation_patterns': self.validation_patterns,
            'report_risk': self.report_risk,
            'channel_risk': self.channel_risk,
            'suspicious_patterns': self.suspicious_patterns,
            'trend_prediction': self.trend_prediction,
        }


@dataclass(frozen=True)
class AnomalyConfig:
    min_events: int = 3
    threshold: float = 0.7
    night_start_hour: int = 0
    night_end_hour: int = 6
    high_frequency: RuleThreshold = RuleThreshold(10, 0.3)
    impossible_speed: RuleThreshold = RuleThreshold(800, 0.4)
    night_activity: RuleThreshold = RuleThreshold(0.5, 0.2)
    product_spread: RuleThreshold = RuleThreshold(10, 0.1)


@dataclass(frozen=True)
class CounterfeitConfig:
    investigate_threshold: float = 0.6
    default_reporter_reliability: float = 0.5
    high_risk_products: FrozenSet[str] = frozenset()
    high_risk_locations: FrozenSet[str] = frozenset()
    high_risk_product_weight: float = 0.3
    high_risk_location_weight: float = 0.2
    unreliable_reporter: RuleThreshold = RuleThreshold(0.5, 0.2)
    product_counterfeit_rate: RuleThreshold = RuleThreshold(0.1, 0.3)


@dataclass(frozen=True)
class ChannelConfig:
    validation_normalizer: float = 1000.0
    default_reporting_consistency: float = 1.0
    low_validation_rate: RuleThreshold = RuleThreshold(0.1, 0.3)
    counterfeit_rate: RuleThreshold = RuleThreshold(0.05, 0.4)
    low_reporting_consistency: RuleThreshold = RuleThreshold(0.3, 0.3)


@dataclass(frozen=True)
class RiskLevelBands:
    critical: float = 0.8
    high: float = 0.6
    medium: float = 0.4


@dataclass(frozen=True)
class GeographicConfig:
    max_gap_minutes: float = 60.0
    speed_kmh: float = 800.0
    base_score: float = 0.5
    speed_divisor: float = 1000.0
    max_score: float = 0.99


@dataclass(frozen=True)
class FrequencyConfig:
    min_events: int = 10
    rate_per_minute: float = 2.0
    base_score: float = 0.5
    rate_divisor: float = 10.0
    max_score: float = 0.99


@dataclass(frozen=True)
class TrendConfig:
    prediction_type: str = PREDICTION_VALIDATION_TREND_7D
    min_days: int = 7
    week_days: int = 7
    base_confidence: float = 0.7
    confidence_span: float = 0.3
    max_confidence: float = 0.95


@dataclass(frozen=True)
class WorkerConfig:
    pid_file: str = 'run/riskworker.pid'
    shutdown_grace_seconds: float = 30.0
    heartbeat_max_age_seconds: float = 2 * 60 * 60
    timezone: str = 'UTC'


@dataclass(frozen=True)
class RiskConfig:
    windows: WindowConfig = field(default_factory=WindowConfig)
    intervals: IntervalConfig = field(default_factory=IntervalConfig)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    counterfeit: CounterfeitConfig = field(default_factory=CounterfeitConfig)
    channel: ChannelConfig = field(default_factory=ChannelConfig)
    risk_levels: RiskLevelBands = field(default_factory=RiskLevelBands)
    geographic: GeographicConfig = field(default_factory=GeographicConfig)
    frequency: FrequencyConfig = field(default_factory=FrequencyConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> 'RiskConfig':
        """Build a RiskConfig from the parsed YAML document."""
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigError("risk config must be a mapping")

        windows = _section(raw, 'windows')
        intervals = _section(raw, 'intervals_minutes')
        anomaly = _section(raw, 'anomaly')
        counterfeit = _section(raw, 'counterfeit')
        channel = _section(raw, 'channel')
        bands = _section(raw, 'risk_level_bands')
        geographic = _section(raw, 'geographic')
        frequency = _section(raw, 'frequency')
        trend = _section(raw, 'trend')
        worker = _section(raw, 'worker')

        d_win, d_int, d_an = WindowConfig(), IntervalConfig(), AnomalyConfig()
        d_cf, d_ch, d_bands = CounterfeitConfig(), ChannelConfig(), RiskLevelBands()
        d_geo, d_freq, d_trend, d_worker = GeographicConfig(), FrequencyConfig(), TrendConfig(), WorkerConfig()

        anomaly_rules = _section(anomaly, 'rules')
        counterfeit_rules = _section(counterfeit, 'rules')
        channel_rules = _section(channel, 'rules')

        config = cls(
            windows=WindowConfig(
                validation_pattern_hours=_num(float, windows, 'validation_pattern_hours', d_win.validation_pattern_hours),
                frequency_window_minutes=_num(float, windows, 'frequency_window_minutes', d_win.frequency_window_minutes),
                channel_days=_num(int, windows, 'channel_days', d_win.channel_days),
                trend_days=_num(int, windows, 'trend_days', d_win.trend_days),
            ),
            intervals=IntervalConfig(
                **{name: _num(float, intervals, name, default / 60) * 60
                   for name, default in d_int.as_dict().items()}
            ),
            anomaly=AnomalyConfig(
                min_events=_num(int, anomaly, 'min_events', d_an.min_events),
                threshold=_num(float, anomaly, 'threshold', d_an.threshold),
                night_start_hour=_num(int, anomaly, 'night_start_hour', d_an.night_start_hour),
                night_end_hour=_num(int, anomaly, 'night_end_hour', d_an.night_end_hour),
                high_frequency=_rule(anomaly_rules, 'high_frequency', d_an.high_frequency),
                impossible_speed=_rule(anomaly_rules, 'impossible_speed', d_an.impossible_speed),
                night_activity=_rule(anomaly_rules, 'night_activity', d_an.night_activity),
                product_spread=_rule(anomaly_rules, 'product_spread', d_an.product_spread),
            ),
            counterfeit=CounterfeitConfig(
                investigate_threshold=_num(float, counterfeit, 'investigate_threshold', d_cf.investigate_threshold),
                default_reporter_reliability=_num(
                    float, counterfeit, 'default_reporter_reliability', d_cf.default_reporter_reliability
                ),
                high_risk_products=_name_set(counterfeit.get('high_risk_products')),
                high_risk_locations=_name_set(counterfeit.get('high_risk_locations')),
                high_risk_product_weight=_num(
                    float, counterfeit_rules, 'high_risk_product_weight', d_cf.high_risk_product_weight
                ),
                high_risk_location_weight=_num(
                    float, counterfeit_rules, 'high_risk_location_weight', d_cf.high_risk_location_weight
                ),
                unreliable_reporter=_rule(counterfeit_rules, 'unreliable_reporter', d_cf.unreliable_reporter),
                product_counterfeit_rate=_rule(
                    counterfeit_rules, 'product_counterfeit_rate', d_cf.product_counterfeit_rate
                ),
            ),
            channel=ChannelConfig(
                validation_normalizer=_num(float, channel, 'validation_normalizer', d_ch.validation_normalizer),
                default_reporting_consistency=_num(
                    float, channel, 'default_reporting_consistency', d_ch.default_reporting_consistency
                ),
                low_validation_rate=_rule(channel_rules, 'low_validation_rate', d_ch.low_validation_rate),
                counterfeit_rate=_rule(channel_rules, 'counterfeit_rate', d_ch.counterfeit_rate),
                low_reporting_consistency=_rule(
                    channel_rules, 'low_reporting_consistency', d_ch.low_reporting_consistency
                ),
            ),
            risk_levels=RiskLevelBands(
                critical=_num(float, bands, 'critical', d_bands.critical),
                high=_num(float, bands, 'high', d_bands.high),
                medium=_num(float, bands, 'medium', d_bands.medium),
            ),
            geographic=GeographicConfig(
                max_gap_minutes=_num(float, geographic, 'max_gap_minutes', d_geo.max_gap_minutes),
                speed_kmh=_num(float, geographic, 'speed_kmh', d_geo.speed_kmh),
                base_score=_num(float, geographic, 'base_score', d_geo.base_score),
                speed_divisor=_num(float, geographic, 'speed_divisor', d_geo.speed_divisor),
                max_score=_num(float, geographic, 'max_score', d_geo.max_score),
            ),
            frequency=FrequencyConfig(
                min_events=_num(int, frequency, 'min_events', d_freq.min_events),
                rate_per_minute=_num(float, frequency, 'rate_per_minute', d_freq.rate_per_minute),
                base_score=_num(float, frequency, 'base_score', d_freq.base_score),
                rate_divisor=_num(float, frequency, 'rate_divisor', d_freq.rate_divisor),
                max_score=_num(float, frequency, 'max_score', d_freq.max_score),
            ),
            trend=TrendConfig(
                prediction_type=str(trend.get('prediction_type', d_trend.prediction_type)),
                min_days=_num(int, trend, 'min_days', d_trend.min_days),
                week_days=_num(int, trend, 'week_days', d_trend.week_days),
                base_confidence=_num(float, trend, 'base_confidence', d_trend.base_confidence),
                confidence_span=_num(float, trend, 'confidence_span', d_trend.confidence_span),
                max_confidence=_num(float, trend, 'max_confidence', d_trend.max_confidence),
            ),
            worker=WorkerConfig(
                pid_file=str(worker.get('pid_file', d_worker.pid_file)),
                shutdown_grace_seconds=_num(float, worker, 'shutdown_grace_seconds', d_worker.shutdown_grace_seconds),
                heartbeat_max_age_seconds=_num(
                    float, worker, 'heartbeat_max_age_seconds', d_worker.heartbeat_max_age_seconds
                ),
                timezone=str(worker.get('timezone', d_worker.timezone)),
            ),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values that would break the scoring invariants."""
        weights = {
            'anomaly.high_frequency': self.anomaly.high_frequency.weight,
            'anomaly.impossible_speed': self.anomaly.impossible_speed.weight,
            'anomaly.night_activity': self.anomaly.night_activity.weight,
            'anomaly.product_spread': self.anomaly.product_spread.weight,
            'counterfeit.high_risk_product_weight': self.counterfeit.high_risk_product_weight,
            'counterfeit.high_risk_location_weight': self.counterfeit.high_risk_location_weight,
            'counterfeit.unreliable_reporter': self.counterfeit.unreliable_reporter.weight,
            'counterfeit.product_counterfeit_rate': self.counterfeit.product_counterfeit_rate.weight,
            'channel.low_validation_rate': self.channel.low_validation_rate.weight,
            'channel.counterfeit_rate': self.channel.counterfeit_rate.weight,
            'channel.low_reporting_consistency': self.channel.low_reporting_consistency.weight,
        }
        negative = [name for name, weight in weights.items() if weight < 0]
        if negative:
            raise ConfigError(f"Rule weights must be non-negative: {', '.join(negative)}")

        for name, seconds in self.intervals.as_dict().items():
            if seconds <= 0:
                raise ConfigError(f"Interval for {name} must be positive")

        if self.channel.validation_normalizer <= 0:
            raise ConfigError("channel.validation_normalizer must be positive")
        if self.trend.week_days <= 0 or self.trend.min_days < self.trend.week_days:
            raise ConfigError("trend.min_days must be >= trend.week_days > 0")
        if not 0 <= self.anomaly.night_start_hour <= self.anomaly.night_end_hour <= 24:
            raise ConfigError("anomaly night hours must satisfy 0 <= start <= end <= 24")


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def _num(cast: Callable[[Any], Any], section: Dict[str, Any], key: str, default: Any,
         context: Optional[str] = None) -> Any:
    """Read a numeric key, falling back to the default when it is absent."""
    value = section.get(key, default)
    try:
        return cast(value)
    except (TypeError, ValueError):
        label = f"{context}.{key}" if context else key
        raise ConfigError(f"'{label}' must be a number, got {value!r}") from None


def _rule(rules: Dict[str, Any], name: str, default: RuleThreshold) -> RuleThreshold:
    value = rules.get(name)
    if value is None:
        return default
    if not isinstance(value, dict):
        raise ConfigError(f"rule '{name}' must be a mapping with 'limit' and 'weight'")
    return RuleThreshold(
        limit=_num(float, value, 'limit', default.limit, name),
        weight=_num(float, value, 'weight', default.weight, name),
    )


def _name_set(values: Any) -> FrozenSet[str]:
    """High-risk lists are matched case-insensitively."""
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(str(v).strip().lower() for v in values if str(v).strip())


def load_risk_config(config_path: Optional[str] = None) -> RiskConfig:
    """
    Load risk configuration from YAML.

    Args:
        config_path: Path to the YAML file. Defaults to $RISK_CONFIG_PATH,
            then config/risk_config.yml.

    Returns:
        Frozen RiskConfig. A missing file yields the built-in defaults.
    """
    path = Path(config_path or os.environ.get('RISK_CONFIG_PATH', DEFAULT_RISK_CONFIG_PATH))
    if not path.exists():
        logger.warning(f"Risk config not found at {path}, using built-in defaults")
        return RiskConfig()

    with open(path, 'r') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    config = RiskConfig.from_dict(raw)
    logger.info(f"Risk config loaded from {path}")
    return config
