"""
Shared fixtures for the risk worker tests.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from riskworker.config import RiskConfig
from riskworker.models import ValidationEvent

BASE_TIME = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def risk_config():
    return RiskConfig()


@pytest.fixture
def make_event():
    """Factory for ValidationEvent rows; `seconds` is the offset from BASE_TIME."""
    ids = count(1)

    def _make(
        user_id='user-1',
        seconds=0,
        lat=None,
        lon=None,
        product_id='product-1',
        manufacturer_id='mfr-1',
        is_authentic=True,
        at=None,
    ):
        n = next(ids)
        return ValidationEvent(
            id=f"val-{n}",
            token_id=f"token-{n}",
            user_id=user_id,
            product_id=product_id,
            manufacturer_id=manufacturer_id,
            timestamp=at or BASE_TIME + timedelta(seconds=seconds),
            latitude=lat,
            longitude=lon,
            is_authentic=is_authentic,
        )

    return _make
