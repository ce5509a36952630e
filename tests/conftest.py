import pytest

from config.settings import ReportConfig
from data.models import make_record


SAMPLE_ROWS = [
    {'date': '2024-01-01', 'product': 'A', 'category': 'Electronics', 'amount': '50000'},
    {'date': '2024-01-02', 'product': 'B', 'category': 'Food', 'amount': '3000'},
]


@pytest.fixture
def sample_records():
    return [make_record(row) for row in SAMPLE_ROWS]


@pytest.fixture
def report_config(tmp_path):
    allowed = tmp_path / 'output'
    allowed.mkdir()
    return ReportConfig(
        allowed_output_dir=str(allowed),
        log_dir=str(tmp_path / 'logs'),
        temp_root=str(tmp_path / 'tmp'),
        font_path=str(tmp_path / 'fonts' / 'missing.ttf'),
        lock_retries=0,
        lock_backoff_seconds=0,
    )
