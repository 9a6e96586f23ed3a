"""
Event Store
===========
All SQL issued by the risk worker.

Reads are single statements (each query sees its own snapshot; no
transaction spans a whole task). Writes are individual statements committed
as they happen, so a task that fails half-way leaves earlier records intact.

Tables read:    validations, counterfeit_reports, products, distribution_channels
Tables written: anomalies, suspicious_patterns, predictions,
                counterfeit_reports (status, metadata),
                distribution_channels (risk_score, metadata)
"""

import json
import logging
import uuid as uuid_module
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from riskworker.db_utils import DatabaseManager
from riskworker.models import (
    AnomalyRecord,
    Channel,
    ChannelStats,
    CounterfeitReport,
    DailyCount,
    MetadataPatch,
    OPEN_REPORT_STATUSES,
    PredictionRecord,
    REPORT_CONFIRMED,
    SuspiciousPattern,
    ValidationEvent,
)

logger = logging.getLogger(__name__)


class RiskJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, UUID and datetime values."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, uuid_module.UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def to_json(value: Any) -> str:
    return json.dumps(value, cls=RiskJSONEncoder)


def _opt_str(value) -> Optional[str]:
    return str(value) if value is not None else None


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _row_to_event(row: Tuple) -> ValidationEvent:
    (event_id, token_id, user_id, product_id, manufacturer_id,
     timestamp, latitude, longitude, is_authentic) = row
    return ValidationEvent(
        id=str(event_id),
        token_id=_opt_str(token_id),
        user_id=_opt_str(user_id),
        product_id=_opt_str(product_id),
        manufacturer_id=_opt_str(manufacturer_id),
        timestamp=timestamp,
        latitude=_opt_float(latitude),
        longitude=_opt_float(longitude),
        is_authentic=bool(is_authentic),
    )


class EventStore:
    """Read/write access to the risk worker's tables."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    # =========================================================================
    # READS
    # =========================================================================

    def fetch_validations_since(self, since: datetime) -> List[ValidationEvent]:
        """Validation events with timestamp > since, per user in time order."""
        rows = self.db.execute_query("""
            SELECT id, token_id, user_id, product_id, manufacturer_id,
                   timestamp, latitude, longitude, is_authentic
            FROM validations
            WHERE timestamp > %s
            ORDER BY user_id, timestamp ASC
        """, (since,))
        return [_row_to_event(r) for r in (rows or [])]

    def fetch_open_reports(self) -> List[CounterfeitReport]:
        rows = self.db.execute_query("""
            SELECT r.id, r.token_id, r.reporter_id, r.product_id, r.manufacturer_id,
                   r.timestamp, r.store_name, r.status, r.metadata, p.name
            FROM counterfeit_reports r
            LEFT JOIN products p ON p.id = r.product_id
            WHERE r.status IN %s
            ORDER BY r.timestamp ASC
        """, (OPEN_REPORT_STATUSES,))
        reports = []
        for row in (rows or []):
            (report_id, token_id, reporter_id, product_id, manufacturer_id,
             timestamp, store_name, status, metadata, product_name) = row
            reports.append(CounterfeitReport(
                id=str(report_id),
                token_id=_opt_str(token_id),
                reporter_id=_opt_str(reporter_id),
                product_id=_opt_str(product_id),
                manufacturer_id=_opt_str(manufacturer_id),
                timestamp=timestamp,
                store_name=store_name,
                status=status,
                metadata=metadata,
                product_name=product_name,
            ))
        return reports

    def fetch_active_channels(self) -> List[Channel]:
        rows = self.db.execute_query("""
            SELECT id, channel_name, manufacturer_id, metadata
            FROM distribution_channels
            WHERE is_active = true
            ORDER BY id
        """)
        return [
            Channel(id=str(r[0]), name=r[1], manufacturer_id=_opt_str(r[2]), metadata=r[3])
            for r in (rows or [])
        ]

    def reporter_history(self, reporter_id: Optional[str]) -> Tuple[int, int]:
        """(total_reports, confirmed_reports) for a reporter, all time."""
        if reporter_id is None:
            return 0, 0
        rows = self.db.execute_query("""
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE status = %s)
            FROM counterfeit_reports
            WHERE reporter_id = %s
        """, (REPORT_CONFIRMED, reporter_id))
        if not rows:
            return 0, 0
        return int(rows[0][0] or 0), int(rows[0][1] or 0)

    def product_validation_history(self, product_id: Optional[str]) -> Tuple[int, int]:
        """(total_validations, non_authentic_validations) for a product, all time."""
        if product_id is None:
            return 0, 0
        rows = self.db.execute_query("""
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE is_authentic = false)
            FROM validations
            WHERE product_id = %s
        """, (product_id,))
        if not rows:
            return 0, 0
        return int(rows[0][0] or 0), int(rows[0][1] or 0)

    def channel_stats(self, channel: Channel, since: datetime) -> ChannelStats:
        """Aggregate the channel's validations and reports since a cutoff."""
        validation_rows = self.db.execute_query("""
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE is_authentic = false),
                   COUNT(DISTINCT user_id),
                   COUNT(DISTINCT product_id)
            FROM validations
            WHERE manufacturer_id = %s
              AND timestamp > %s
        """, (channel.manufacturer_id, since))
        report_rows = self.db.execute_query("""
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE status = %s)
            FROM counterfeit_reports
            WHERE manufacturer_id = %s
              AND timestamp > %s
        """, (REPORT_CONFIRMED, channel.manufacturer_id, since))

        v = validation_rows[0] if validation_rows else (0, 0, 0, 0)
        r = report_rows[0] if report_rows else (0, 0)
        return ChannelStats(
            channel_id=channel.id,
            total_validations=int(v[0] or 0),
            non_authentic_count=int(v[1] or 0),
            unique_users=int(v[2] or 0),
            unique_products=int(v[3] or 0),
            total_reports=int(r[0] or 0),
            confirmed_reports=int(r[1] or 0),
        )

    def daily_validation_counts(self, since: datetime) -> List[DailyCount]:
        rows = self.db.execute_query("""
            SELECT DATE_TRUNC('day', timestamp)::date AS day,
                   COUNT(*) AS validations,
                   COUNT(*) FILTER (WHERE is_authentic = false) AS counterfeits
            FROM validations
            WHERE timestamp > %s
            GROUP BY 1
            ORDER BY 1 ASC
        """, (since,))
        return [DailyCount(day=r[0], validations=int(r[1]), counterfeits=int(r[2])) for r in (rows or [])]

    def read_metadata(self, table: str, record_id: str) -> Any:
        rows = self.db.execute_query(
            f"SELECT metadata FROM {table} WHERE id = %s",
            (record_id,)
        )
        return rows[0][0] if rows else None

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert_anomaly(self, record: AnomalyRecord) -> None:
        self.db.execute_insert("""
            INSERT INTO anomalies (
                id, type, description, confidence_score, payload, status, detected_at
            ) VALUES (%s, %s, %s, %s, %s::jsonb, %s, %s)
        """, (
            record.id,
            record.type,
            record.description,
            round(record.confidence_score, 4),
            to_json(record.payload),
            record.status,
            record.detected_at,
        ))

    def insert_suspicious_pattern(self, record: SuspiciousPattern) -> None:
        self.db.execute_insert("""
            INSERT INTO suspicious_patterns (
                id, pattern_type, description, affected_entities, risk_score, detected_at, status
            ) VALUES (%s, %s, %s, %s::jsonb, %s, %s, %s)
        """, (
            record.id,
            record.pattern_type,
            record.description,
            to_json(record.affected_entities),
            round(record.risk_score, 4),
            record.detected_at,
            record.status,
        ))

    def upsert_prediction(self, record: PredictionRecord) -> bool:
        """
        Write the single live row for the prediction type.
        Returns True if inserted, False if an existing row was overwritten.
        """
        query = """
            INSERT INTO predictions (
                id, prediction_type, predicted_value, confidence, supporting_data, created_at
            ) VALUES (%s, %s, %s, %s, %s::jsonb, %s)
            ON CONFLICT (prediction_type)
            DO UPDATE SET
                predicted_value = EXCLUDED.predicted_value,
                confidence = EXCLUDED.confidence,
                supporting_data = EXCLUDED.supporting_data,
                created_at = EXCLUDED.created_at
            RETURNING (xmax = 0) AS is_insert
        """
        with self.db.get_cursor() as cur:
            cur.execute(query, (
                record.id,
                record.prediction_type,
                record.predicted_value,
                round(record.confidence, 4),
                to_json(record.supporting_data),
                record.created_at,
            ))
            result = cur.fetchone()
            return bool(result[0]) if result else True

    def update_report_risk(self, report_id: str, status: str, patch: MetadataPatch) -> None:
        """
        Set the report status and merge the assessment into its metadata.
        Raises MalformedMetadataError before writing if the stored metadata
        cannot be decoded.
        """
        merged = patch.apply(report_id, self.read_metadata('counterfeit_reports', report_id))
        self.db.execute_insert("""
            UPDATE counterfeit_reports
            SET status = %s,
                metadata = %s::jsonb,
                updated_at = NOW()
            WHERE id = %s
        """, (status, to_json(merged), report_id))

    def update_channel_risk(self, channel_id: str, risk_score: float, patch: MetadataPatch) -> None:
        merged = patch.apply(channel_id, self.read_metadata('distribution_channels', channel_id))
        self.db.execute_insert("""
            UPDATE distribution_channels
            SET risk_score = %s,
                metadata = %s::jsonb,
                updated_at = NOW()
            WHERE id = %s
        """, (round(risk_score, 4), to_json(merged), channel_id))


def summarize_counts(records: List[Any]) -> Dict[str, int]:
    """Count output records by their type column, for run metadata."""
    counts: Dict[str, int] = {}
    for record in records:
        key = getattr(record, 'pattern_type', None) or getattr(record, 'type', None) or 'unknown'
        counts[key] = counts.get(key, 0) + 1
    return counts
