"""
Risk Worker Records
===================
Typed rows read from and written to the event store.

Validation events are produced by the verification API and never modified
here. Counterfeit reports and channels are only touched through a
MetadataPatch, which merges one top-level key into the row's JSON metadata
(last write wins; a single task type owns each key).
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# =============================================================================
# ERRORS
# =============================================================================

class RiskWorkerError(Exception):
    """Base class for risk worker errors."""


class ConfigError(RiskWorkerError):
    """Raised when the risk configuration file is invalid."""


class MalformedMetadataError(RiskWorkerError):
    """Raised when a row's JSON metadata column cannot be decoded."""

    def __init__(self, record_id: Any, reason: str):
        self.record_id = record_id
        super().__init__(f"Malformed metadata on record {record_id}: {reason}")


# =============================================================================
# CONSTANTS
# =============================================================================

REPORT_PENDING = 'pending'
REPORT_INVESTIGATING = 'investigating'
REPORT_CONFIRMED = 'confirmed'
REPORT_FALSE_POSITIVE = 'false_positive'
OPEN_REPORT_STATUSES = (REPORT_PENDING, REPORT_INVESTIGATING)

ANOMALY_VALIDATION_PATTERN = 'validation_pattern'
ANOMALY_STATUS_NEW = 'new'

PATTERN_GEOGRAPHIC = 'geographic_anomaly'
PATTERN_FREQUENCY = 'frequency_anomaly'
PATTERN_STATUS_OPEN = 'open'

PREDICTION_VALIDATION_TREND_7D = 'validation_trend_7d'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# INPUT ROWS
# =============================================================================

@dataclass(frozen=True)
class ValidationEvent:
    id: str
    token_id: Optional[str]
    user_id: Optional[str]
    product_id: Optional[str]
    manufacturer_id: Optional[str]
    timestamp: datetime
    latitude: Optional[float]
    longitude: Optional[float]
    is_authentic: bool

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class CounterfeitReport:
    id: str
    token_id: Optional[str]
    reporter_id: Optional[str]
    product_id: Optional[str]
    manufacturer_id: Optional[str]
    timestamp: datetime
    store_name: Optional[str]
    status: str
    metadata: Any = None
    product_name: Optional[str] = None


@dataclass
class Channel:
    id: str
    name: str
    manufacturer_id: Optional[str]
    metadata: Any = None


@dataclass(frozen=True)
class ChannelStats:
    """Rolling-window aggregates for one channel. Never persisted."""
    channel_id: str
    total_validations: int
    non_authentic_count: int
    unique_users: int
    unique_products: int
    total_reports: int
    confirmed_reports: int


@dataclass(frozen=True)
class DailyCount:
    day: Any
    validations: int
    counterfeits: int


# =============================================================================
# OUTPUT ROWS
# =============================================================================

@dataclass
class AnomalyRecord:
    description: str
    confidence_score: float
    payload: Dict[str, Any]
    type: str = ANOMALY_VALIDATION_PATTERN
    status: str = ANOMALY_STATUS_NEW
    detected_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=_new_id)


@dataclass
class SuspiciousPattern:
    pattern_type: str
    description: str
    affected_entities: Dict[str, Any]
    risk_score: float
    detected_at: datetime = field(default_factory=utcnow)
    status: str = PATTERN_STATUS_OPEN
    id: str = field(default_factory=_new_id)


@dataclass
class PredictionRecord:
    prediction_type: str
    predicted_value: float
    confidence: float
    supporting_data: Dict[str, Any]
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=_new_id)


# =============================================================================
# METADATA PATCH
# =============================================================================

def decode_metadata(record_id: Any, raw: Any) -> Dict[str, Any]:
    """
    Normalize a JSON metadata column into a dict.

    psycopg2 returns jsonb as dict but json/text columns as str; NULL is an
    empty document. Anything that does not decode to a JSON object raises
    MalformedMetadataError carrying the record id.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, (str, bytes, bytearray)):
        if not raw.strip():
            return {}
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedMetadataError(record_id, str(e)) from e
        if not isinstance(decoded, dict):
            raise MalformedMetadataError(record_id, f"expected JSON object, got {type(decoded).__name__}")
        return decoded
    raise MalformedMetadataError(record_id, f"unsupported metadata type {type(raw).__name__}")


@dataclass(frozen=True)
class MetadataPatch:
    """Replace one top-level key of a metadata document."""
    key: str
    value: Dict[str, Any]

    def apply(self, record_id: Any, current: Any) -> Dict[str, Any]:
        merged = decode_metadata(record_id, current)
        merged[self.key] = self.value
        return merged


def affected_ids(events: List[ValidationEvent]) -> Dict[str, List[str]]:
    """Collect the distinct entity ids touched by a group of events."""
    def _distinct(values):
        return sorted({v for v in values if v is not None})

    return {
        'users': _distinct(e.user_id for e in events),
        'validations': [e.id for e in events],
        'tokens': _distinct(e.token_id for e in events),
        'products': _distinct(e.product_id for e in events),
    }
