"""
Helper utilities for the sales report tool
Common formatting and id functions
"""

import uuid
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float]


def generate_run_id() -> str:
    """Generate unique run ID for pipeline execution"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = str(uuid.uuid4())[:8]
    return f"run_{timestamp}_{unique_id}"


def format_timestamp(timestamp: Optional[datetime] = None) -> str:
    """Format timestamp for report headers"""
    if timestamp is None:
        timestamp = datetime.now()
    return timestamp.strftime("%Y-%m-%d %H:%M:%S")


def format_amount(amount: Optional[Number], unit: str = '') -> str:
    """Format an amount with thousands separators and no decimals"""
    if amount is None:
        amount = 0
    text = f"{amount:,.0f}"
    return f"{text} {unit}" if unit else text


def format_percent(part: Number, whole: Number) -> str:
    if not whole:
        return "0.0%"
    return f"{float(part) / float(whole) * 100:.1f}%"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human readable format"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"
