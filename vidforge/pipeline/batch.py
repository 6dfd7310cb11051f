import concurrent.futures
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from vidforge.config.models import AppConfig, ProcessingOptions
from vidforge.domain.errors import Cancelled
from vidforge.domain.events import BatchProgress
from vidforge.domain.models import BatchError, BatchInput, BatchSummary, ProcessedResult, ProgressEvent
from vidforge.infrastructure.event_bus import EventBus
from vidforge.infrastructure.tools import ToolProbe
from vidforge.pipeline.runner import PipelineRunner

ItemProgressCallback = Callable[[int, int, str, ProgressEvent], None]

class _SummaryAccumulator:
    """Lock-guarded running totals shared by all batch workers."""

    def __init__(self, total: int):
        self.total = total
        self._lock = threading.Lock()
        self._results: Dict[int, ProcessedResult] = {}
        self._errors: Dict[int, BatchError] = {}

    def record_success(self, index: int, result: ProcessedResult) -> BatchProgress:
        with self._lock:
            self._results[index] = result
            return self._progress()

    def record_failure(self, index: int, input_id: str, error: BaseException) -> BatchProgress:
        entry = BatchError(
            index=index,
            input_id=input_id,
            kind=getattr(error, "kind", type(error).__name__),
            message=str(getattr(error, "message", error)),
            state=getattr(error, "state", None),
        )
        with self._lock:
            self._results.pop(index, None)
            self._errors[index] = entry
            return self._progress()

    def _progress(self) -> BatchProgress:
        return BatchProgress(
            total=self.total,
            finished=len(self._results) + len(self._errors),
            succeeded=len(self._results),
            failed=len(self._errors),
        )

    def snapshot(self) -> BatchSummary:
        with self._lock:
            return BatchSummary(
                total=self.total,
                succeeded=len(self._results),
                failed=len(self._errors),
                errors=[self._errors[i] for i in sorted(self._errors)],
                results=[self._results[i] for i in sorted(self._results)],
            )

class BatchRunner:
    """Applies the pipeline to many inputs with a bounded worker pool.

    One bad file never blocks the batch: each worker catches its item's failure
    and records it in the summary. Inputs are submitted on demand, at most
    ``general.threads`` at a time, so a cancelled batch leaves the rest unstarted.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: Optional[EventBus] = None,
        runner_factory: Optional[Callable[[], PipelineRunner]] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        if runner_factory is None:
            tool_probe = ToolProbe.from_config(config)
            runner_factory = lambda: PipelineRunner.from_config(config, event_bus=event_bus, tool_probe=tool_probe)
        self.runner_factory = runner_factory

    def run_all(
        self,
        inputs: Iterable[Union[BatchInput, Path, str]],
        options: Optional[ProcessingOptions] = None,
        on_item_progress: Optional[ItemProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchSummary:
        items = [i if isinstance(i, BatchInput) else BatchInput(path=Path(i)) for i in inputs]
        total = len(items)
        cancel_event = cancel_event or threading.Event()
        accumulator = _SummaryAccumulator(total)
        max_inflight = self.config.general.threads

        self.logger.info(f"BATCH_START: {total} inputs, threads={max_inflight}")
        pending = deque(enumerate(items))
        in_flight: Dict[concurrent.futures.Future, Tuple[int, BatchInput]] = {}

        with concurrent.futures.ThreadPoolExecutor(max_workers=max_inflight, thread_name_prefix="vidforge") as executor:
            def submit_batch():
                """Submit inputs up to the concurrency limit"""
                while len(in_flight) < max_inflight and pending and not cancel_event.is_set():
                    index, item = pending.popleft()
                    future = executor.submit(
                        self._process_item, index, item, total,
                        options, on_item_progress, cancel_event, accumulator,
                    )
                    in_flight[future] = (index, item)

            try:
                submit_batch()
                while in_flight:
                    done, _ = concurrent.futures.wait(
                        set(in_flight.keys()),
                        timeout=1.0,
                        return_when=concurrent.futures.FIRST_COMPLETED,
                    )
                    for future in done:
                        index, item = in_flight.pop(future)
                        try:
                            future.result()
                        except Exception as e:
                            self.logger.error(f"Future failed with exception: {e}")
                            self._emit(accumulator.record_failure(index, item.id, e))
                    submit_batch()
            except KeyboardInterrupt:
                self.logger.warning("BATCH_INTERRUPTED: cancelling in-flight runs")
                cancel_event.set()
                raise

        while pending:
            index, item = pending.popleft()
            self._emit(accumulator.record_failure(index, item.id, Cancelled()))

        summary = accumulator.snapshot()
        self.logger.info(f"BATCH_END: total={summary.total} succeeded={summary.succeeded} failed={summary.failed}")
        return summary

    def _process_item(
        self,
        index: int,
        item: BatchInput,
        total: int,
        options: Optional[ProcessingOptions],
        on_item_progress: Optional[ItemProgressCallback],
        cancel_event: threading.Event,
        accumulator: _SummaryAccumulator,
    ):
        """Runs one input; never lets its failure escape the worker."""
        if cancel_event.is_set():
            self._emit(accumulator.record_failure(index, item.id, Cancelled()))
            return

        def relay(event: ProgressEvent):
            on_item_progress(index, total, item.id, event)

        try:
            runner = self.runner_factory()
            result = runner.run(
                item.path,
                original_name=item.name,
                options=options,
                on_progress=relay if on_item_progress else None,
                cancel_event=cancel_event,
            )
        except Exception as e:
            self.logger.error(f"BATCH_ITEM_FAILED: [{index + 1}/{total}] {item.id}: {e}")
            progress = accumulator.record_failure(index, item.id, e)
        else:
            self.logger.info(f"BATCH_ITEM_DONE: [{index + 1}/{total}] {item.id} -> {result.run_id}")
            progress = accumulator.record_success(index, result)
        self._emit(progress)

    def _emit(self, progress: BatchProgress):
        self.logger.info(
            f"BATCH_PROGRESS: {progress.finished}/{progress.total} "
            f"ok={progress.succeeded} failed={progress.failed}"
        )
        if self.event_bus is not None:
            self.event_bus.publish(progress)
