"""
Main configuration settings for the sales report tool
"""

import os
import tempfile
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, fields
from dotenv import load_dotenv

# Load local .env file if present so os.getenv reads local overrides during dev
load_dotenv()

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        # Left as-is so validate_config reports it instead of silently defaulting
        return raw


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        return raw


@dataclass
class FieldMap:
    """Column names of the input records"""
    date: str = os.getenv('REPORT_FIELD_DATE', 'date')
    product: str = os.getenv('REPORT_FIELD_PRODUCT', 'product')
    category: str = os.getenv('REPORT_FIELD_CATEGORY', 'category')
    amount: str = os.getenv('REPORT_FIELD_AMOUNT', 'amount')


@dataclass
class ReportConfig:
    """Settings for one report run"""
    allowed_output_dir: str = os.getenv('REPORT_ALLOWED_OUTPUT_DIR', '')
    log_dir: str = os.getenv('REPORT_LOG_DIR', '')

    # Table and chart caps
    max_data_rows: int = _env_int('REPORT_MAX_DATA_ROWS', 50)
    max_bar_categories: int = _env_int('REPORT_MAX_BAR_CATEGORIES', 20)
    max_pie_categories: int = _env_int('REPORT_MAX_PIE_CATEGORIES', 10)
    max_trend_points: int = _env_int('REPORT_MAX_TREND_POINTS', 50)

    # Retention
    log_retention_days: int = _env_int('REPORT_LOG_RETENTION_DAYS', 7)
    temp_file_ttl_seconds: int = _env_int('REPORT_TEMP_FILE_TTL_SECONDS', 86400)

    # Chart size in pixels
    chart_width: int = _env_int('REPORT_CHART_WIDTH', 600)
    chart_height: int = _env_int('REPORT_CHART_HEIGHT', 300)

    # Output lock
    lock_retries: int = _env_int('REPORT_LOCK_RETRIES', 10)
    lock_backoff_seconds: float = _env_float('REPORT_LOCK_BACKOFF_SECONDS', 1.0)

    temp_root: str = os.getenv('REPORT_TEMP_ROOT', '') or tempfile.gettempdir()
    font_path: str = os.getenv('REPORT_FONT_PATH', os.path.join('fonts', 'NotoSerifCJKjp-VF.ttf'))

    report_title: str = os.getenv('REPORT_TITLE', 'Sales Analysis Report')
    currency_unit: str = os.getenv('REPORT_CURRENCY_UNIT', 'JPY')

    def resolved_font_path(self) -> str:
        """Font path, relative paths taken from the project root"""
        if os.path.isabs(self.font_path):
            return self.font_path
        return os.path.join(PROJECT_ROOT, self.font_path)

    @classmethod
    def from_mapping(cls, options: Optional[Dict[str, Any]] = None, **overrides) -> 'ReportConfig':
        """Build a config from snake_case or camelCase option names.

        Unknown keys raise ConfigurationError so typos do not pass silently.
        """
        from utils.exceptions import ConfigurationError

        merged = dict(options or {})
        merged.update(overrides)
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in merged.items():
            name = CAMEL_CASE_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration option: {key}")
            kwargs[name] = value
        return cls(**kwargs)


CAMEL_CASE_ALIASES = {
    'allowedOutputDir': 'allowed_output_dir',
    'logDir': 'log_dir',
    'maxDataRows': 'max_data_rows',
    'maxBarCategories': 'max_bar_categories',
    'maxPieCategories': 'max_pie_categories',
    'maxTrendPoints': 'max_trend_points',
    'logRetentionDays': 'log_retention_days',
    'tempFileTtlSeconds': 'temp_file_ttl_seconds',
    'chartWidth': 'chart_width',
    'chartHeight': 'chart_height',
    'lockRetries': 'lock_retries',
    'lockBackoffSeconds': 'lock_backoff_seconds',
    'tempRoot': 'temp_root',
    'fontPath': 'font_path',
    'reportTitle': 'report_title',
    'currencyUnit': 'currency_unit',
}

# Global settings
SETTINGS = {
    'app_name': 'Sales Report Generator',
    'version': '1.0.0',

    # Reporting
    'chart_format': 'png',
    'chart_dpi': 100,
    'arena_prefix': 'report_arena_',
    'lock_suffix': '.lock',
    'retained_log_prefix': 'report_',
}


def validate_config(config: ReportConfig, require_output_dir: bool = False) -> List[str]:
    """Validate configuration and return any issues"""
    issues = []

    positive_ints = (
        'max_data_rows', 'max_bar_categories', 'max_pie_categories', 'max_trend_points',
        'chart_width', 'chart_height', 'temp_file_ttl_seconds',
    )
    for name in positive_ints:
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            issues.append(f"{name} must be a positive integer (got {value!r})")

    for name in ('log_retention_days', 'lock_retries'):
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            issues.append(f"{name} must be a non-negative integer (got {value!r})")

    backoff = config.lock_backoff_seconds
    if not isinstance(backoff, (int, float)) or isinstance(backoff, bool) or backoff < 0:
        issues.append(f"lock_backoff_seconds must be a non-negative number (got {backoff!r})")

    if require_output_dir and not config.allowed_output_dir:
        issues.append("allowed_output_dir is required when writing the report to a file")

    if not config.temp_root:
        issues.append("temp_root must not be empty")

    return issues
