"""
Utility modules for the sales report tool
Shared helpers, logging and error types
"""

from .helpers import generate_run_id, format_timestamp, format_amount
from .logging_config import setup_logging

__all__ = ['generate_run_id', 'format_timestamp', 'format_amount', 'setup_logging']
