import io
import os

import pytest
from filelock import FileLock

from config.settings import ReportConfig
from data.aggregator import aggregate
from data.models import RunState
from reporting.pipeline import ReportPipeline
from utils.exceptions import (
    ConfigurationError,
    IncompleteAggregateError,
    LockTimeoutError,
    PathOutsideAllowedDirError,
)
from data.models import AggregateView


def arena_dirs(config):
    root = config.temp_root
    if not os.path.isdir(root):
        return []
    return [name for name in os.listdir(root) if name.startswith('report_arena_')]


def test_run_writes_report_and_cleans_up(report_config, sample_records):
    pipeline = ReportPipeline(report_config)

    result = pipeline.run(sample_records, output_path='sales_report.pdf')

    target = os.path.join(report_config.allowed_output_dir, 'sales_report.pdf')
    with open(target, 'rb') as fh:
        assert fh.read(4) == b'%PDF'
    assert result.state == RunState.DONE
    assert result.bytes_written == os.path.getsize(target)
    assert result.charts_rendered + result.charts_skipped == 4
    assert os.listdir(report_config.allowed_output_dir) == ['sales_report.pdf']
    assert arena_dirs(report_config) == []

    assert result.states == [
        RunState.INITIALIZING, RunState.ASSEMBLING, RunState.VALIDATING, RunState.LOCKING,
        RunState.WRITING, RunState.UNLOCKING, RunState.CLEANING_UP, RunState.ROTATING_LOG,
        RunState.DONE,
    ]


def test_run_log_rotated_on_success(report_config, sample_records):
    result = ReportPipeline(report_config).run(sample_records, output_path='sales_report.pdf')

    logs = os.listdir(report_config.log_dir)
    assert [os.path.basename(str(result.log_path))] == logs
    assert logs[0].startswith('report_')
    with open(result.log_path, encoding='utf-8') as fh:
        text = fh.read()
    assert 'Opened temp arena' in text
    assert 'Acquired output lock' in text


def test_accepts_prebuilt_view(report_config, sample_records):
    result = ReportPipeline(report_config).run(aggregate(sample_records), output_path='view.pdf')
    assert result.output_path.name == 'view.pdf'


def test_sink_output_skips_guard(report_config, sample_records):
    sink = io.BytesIO()

    result = ReportPipeline(report_config).run(sample_records, sink=sink)

    assert sink.getvalue().startswith(b'%PDF')
    assert result.output_path is None
    assert RunState.VALIDATING not in result.states
    assert RunState.LOCKING not in result.states
    assert result.state == RunState.DONE


def test_lock_timeout_still_cleans_up(report_config, sample_records):
    holder = FileLock(os.path.join(report_config.allowed_output_dir, 'sales_report.pdf.lock'))
    holder.acquire()
    pipeline = ReportPipeline(report_config)
    try:
        with pytest.raises(LockTimeoutError):
            pipeline.run(sample_records, output_path='sales_report.pdf')
    finally:
        holder.release()

    result = pipeline.last_result
    assert result.state == RunState.FAILED
    assert isinstance(result.error, LockTimeoutError)
    assert RunState.UNLOCKING not in result.states
    assert RunState.CLEANING_UP in result.states
    assert RunState.ROTATING_LOG not in result.states
    assert arena_dirs(report_config) == []
    assert not os.path.exists(os.path.join(report_config.allowed_output_dir, 'sales_report.pdf'))


def test_failed_run_keeps_working_log(report_config, sample_records):
    pipeline = ReportPipeline(report_config)
    with pytest.raises(PathOutsideAllowedDirError):
        pipeline.run(sample_records, output_path='../escape.pdf')

    result = pipeline.last_result
    assert result.states[-3:] == [RunState.VALIDATING, RunState.CLEANING_UP, RunState.FAILED]
    working_logs = os.listdir(report_config.log_dir)
    assert working_logs == [f'{result.run_id}.log']
    assert working_logs[0].startswith('run_')
    assert not working_logs[0].startswith('run_run_')
    assert not os.path.exists(os.path.join(os.path.dirname(report_config.allowed_output_dir), 'escape.pdf'))
    assert arena_dirs(report_config) == []


def test_incomplete_view_fails_in_assembling(report_config):
    pipeline = ReportPipeline(report_config)
    with pytest.raises(IncompleteAggregateError):
        pipeline.run(AggregateView(label='partial'), output_path='x.pdf')
    assert RunState.ASSEMBLING in pipeline.last_result.states
    assert pipeline.last_result.state == RunState.FAILED


def test_missing_destination_is_configuration_error(report_config, sample_records):
    with pytest.raises(ConfigurationError):
        ReportPipeline(report_config).run(sample_records)


def test_invalid_config_rejected_before_run(tmp_path, sample_records):
    config = ReportConfig(allowed_output_dir=str(tmp_path), max_data_rows=0, temp_root=str(tmp_path / 'tmp'))
    pipeline = ReportPipeline(config)
    with pytest.raises(ConfigurationError):
        pipeline.run(sample_records, output_path='r.pdf')
    assert pipeline.last_result is None
    assert not (tmp_path / 'tmp').exists()


def test_missing_allowed_dir_is_configuration_error(tmp_path, sample_records):
    config = ReportConfig(allowed_output_dir='', temp_root=str(tmp_path / 'tmp'))
    with pytest.raises(ConfigurationError):
        ReportPipeline(config).run(sample_records, output_path='r.pdf')
