"""
Report output pipeline
Runs one report from aggregate data to a written, locked PDF with guaranteed cleanup
"""

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Sequence, Union

from config.settings import FieldMap, ReportConfig, validate_config
from data.aggregator import aggregate
from data.models import AggregateView, Record, RunResult, RunState
from reporting.charts import ChartRasterizer
from reporting.pdf_generator import ReportAssembler
from storage.output_guard import OutputGuard, write_atomic
from storage.temp_arena import TempArena
from utils.exceptions import ConfigurationError
from utils.helpers import generate_run_id
from utils.run_log import RunLog

logger = logging.getLogger(__name__)


class ReportPipeline:
    """Drives a single report run through its states.

    Initializing -> Assembling -> Validating -> Locking -> Writing -> Unlocking
    -> CleaningUp -> RotatingLog -> Done. Unlocking (when a lock is held) and
    CleaningUp always run, also when an earlier state fails; the first error
    is raised afterwards and the run ends in Failed.
    """

    def __init__(self, config: Optional[ReportConfig] = None, guard: Optional[OutputGuard] = None,
                 field_map: Optional[FieldMap] = None):
        self.config = config or ReportConfig()
        self.guard = guard or OutputGuard(retries=self.config.lock_retries,
                                          backoff_seconds=self.config.lock_backoff_seconds)
        self.field_map = field_map or FieldMap()
        self.last_result: Optional[RunResult] = None

    def _check_config(self, output_path, sink) -> None:
        if output_path is None and sink is None:
            raise ConfigurationError("Either an output path or an output sink is required")
        issues = validate_config(self.config, require_output_dir=output_path is not None)
        if issues:
            raise ConfigurationError("Invalid configuration: " + "; ".join(issues))

    def run(self, source: Union[AggregateView, Sequence[Record]],
            output_path: Optional[Union[str, Path]] = None,
            sink: Optional[BinaryIO] = None,
            run_log: Optional[RunLog] = None) -> RunResult:
        """
        Generate the report and deliver it.

        Args:
            source: an AggregateView, or records to aggregate first
            output_path: destination inside the allowed output directory
            sink: binary stream used when no output_path is given; bypasses
                path validation and locking
            run_log: log for this run; a new one is created when omitted

        Returns:
            RunResult with the final state and run metrics
        """
        self._check_config(output_path, sink)

        run_id = run_log.run_id if run_log is not None else generate_run_id()
        result = RunResult(run_id=run_id)
        self.last_result = result
        if run_log is None:
            run_log = RunLog(run_id, self.config.log_dir or None, self.config.log_retention_days)

        arena = TempArena(self.config.temp_root, self.config.temp_file_ttl_seconds)
        ticket = None

        result.enter(RunState.INITIALIZING)
        run_log.open()
        with run_log.capture():
            logger.info(f"Starting report run {run_id}")
            try:
                arena.open()

                result.enter(RunState.ASSEMBLING)
                if isinstance(source, AggregateView):
                    view = source
                else:
                    view = aggregate(source, self.field_map)
                rasterizer = ChartRasterizer(arena, font_path=self.config.resolved_font_path())
                assembler = ReportAssembler(rasterizer, self.config, run_id=run_id, field_map=self.field_map)
                pdf = assembler.generate(view)
                result.charts_rendered = assembler.charts_rendered
                result.charts_skipped = assembler.charts_skipped

                if output_path is not None:
                    result.enter(RunState.VALIDATING)
                    path = self.guard.validate(output_path, self.config.allowed_output_dir)

                    result.enter(RunState.LOCKING)
                    ticket = self.guard.acquire_lock(path)

                    result.enter(RunState.WRITING)
                    result.bytes_written = write_atomic(path, pdf)
                    result.output_path = path
                    logger.info(f"Wrote report to {path} ({result.bytes_written:,} bytes)")
                else:
                    result.enter(RunState.WRITING)
                    sink.write(pdf)
                    sink.flush()
                    result.bytes_written = len(pdf)
                    logger.info(f"Wrote report to output stream ({result.bytes_written:,} bytes)")
            except Exception as e:
                result.error = e
                logger.error(f"Report run {run_id} failed during {result.state.value}: {e}")
                raise
            finally:
                if ticket is not None:
                    result.enter(RunState.UNLOCKING)
                    self.guard.release_lock(ticket)
                result.enter(RunState.CLEANING_UP)
                arena.close_all()
                if result.error is not None:
                    result.enter(RunState.FAILED)
                    run_log.close()

            result.enter(RunState.ROTATING_LOG)
            try:
                result.log_path = run_log.rotate()
            except OSError as e:
                logger.warning(f"Could not rotate run log: {e}")
            finally:
                run_log.close()

        result.enter(RunState.DONE)
        logger.info(f"Report run {run_id} completed")
        return result
