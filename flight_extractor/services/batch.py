"""
Batch orchestration across full page navigations.

The batch is a durable job queue: the cursor is persisted before every
navigation and re-read at the top of every iteration, so a restarted
process picks up at the job it was on. Each job gets a full page load,
exactly as if the run had started cold.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from flight_extractor.scrapers.makemytrip import MakeMyTripScraper
from flight_extractor.scrapers.records import ExtractionJob, RunResult
from flight_extractor.services.batch_state import BatchState, BatchStateStore
from flight_extractor.services.export import ResultExporter
from flight_extractor.services.progress import ProgressObserver, ProgressUpdate
from flight_extractor.services.run_context import RunContext
from flight_extractor.utils.url_builder import ONE_WAY

logger = logging.getLogger(__name__)

RouteSpec = Union[Tuple[str, str], Dict[str, str]]


def _route_pair(route: RouteSpec) -> Tuple[str, str]:
    if isinstance(route, dict):
        return route["source"].upper(), route["dest"].upper()
    origin, destination = route
    return origin.upper(), destination.upper()


class BatchOrchestrator:
    """
    Sequences (route, date) jobs:
    1. Persist the cursor
    2. Navigate and extract the current job
    3. Export the result
    4. Persist the next cursor (or clear it when done)
    5. Report progress
    """

    def __init__(
        self,
        scraper: MakeMyTripScraper,
        store: BatchStateStore,
        observer: ProgressObserver,
        exporter: Optional[ResultExporter] = None,
    ):
        self.scraper = scraper
        self.store = store
        self.observer = observer
        self.exporter = exporter

    @staticmethod
    def plan(
        routes: Iterable[RouteSpec],
        date_offsets: Sequence[int],
        trip_kind: str = ONE_WAY,
        international: bool = False,
    ) -> List[ExtractionJob]:
        """Expand the route x date matrix, route-major."""
        return [
            ExtractionJob(
                origin=origin,
                destination=destination,
                date_offset_days=offset,
                trip_kind=trip_kind,
                international=international,
            )
            for origin, destination in (_route_pair(r) for r in routes)
            for offset in date_offsets
        ]

    def start(self, jobs: List[ExtractionJob]) -> BatchState:
        """Persist a fresh batch; it runs when ``resume`` is next entered."""
        if not jobs:
            raise ValueError("Batch needs at least one job")
        existing = self.store.load()
        if existing is not None and not existing.is_exhausted:
            logger.warning(
                f"Replacing unfinished batch {existing.batch_id} "
                f"at {existing.current_index}/{existing.total}"
            )
        state = BatchState(jobs=list(jobs))
        self.store.save(state)
        logger.info(f"Batch {state.batch_id} queued with {state.total} jobs")
        return state

    def pending(self) -> Optional[BatchState]:
        state = self.store.load()
        if state is None or state.is_exhausted:
            return None
        return state

    async def resume(self, ctx: RunContext, today: Optional[date] = None) -> List[RunResult]:
        """
        Run the persisted batch from its cursor to the end.

        Job failures are recorded on their RunResult and never stop the
        batch. Clearing the stored state from outside stops it after the
        current job.
        """
        log = ctx.log
        state = self.pending()
        if state is None:
            log.info("No persisted batch to resume")
            self.store.clear()
            return []

        batch_id = state.batch_id
        total = state.total
        completed_index = state.current_index
        results: List[RunResult] = []
        log.info(f"Resuming batch {batch_id} at job {state.current_index + 1}/{total}")

        async with self.scraper.browser_page() as page:
            while True:
                state = self.store.load()
                if state is None or state.batch_id != batch_id:
                    log.warning(f"Batch {batch_id} was cleared or replaced, stopping")
                    break
                if state.is_exhausted:
                    self.store.clear()
                    break

                job = state.current_job
                self.store.save(state)

                result = await self._run_job(page, job, state, today, log)
                results.append(result)
                ctx.results.append(result)
                self._export(result, log)

                current = self.store.load()
                if current is None or current.batch_id != batch_id:
                    log.warning(f"Batch {batch_id} was cleared during {job.label}, stopping")
                    break

                next_state = state.advance()
                completed_index = next_state.current_index
                if next_state.is_exhausted:
                    self.store.clear()
                else:
                    self.store.save(next_state)

                await self.observer.notify(ProgressUpdate(
                    completed=next_state.current_index,
                    total=total,
                    current_label=job.label,
                ))

                if next_state.is_exhausted:
                    break

        await self.observer.notify(ProgressUpdate(
            completed=completed_index,
            total=total,
            current_label="Completed" if completed_index >= total else "Stopped",
            finished=True,
        ))
        summary = summarize(results)
        log.info(
            f"Batch {batch_id} finished at {completed_index}/{total}: {summary['job_count']} jobs run, "
            f"{summary['record_count']} records, {len(summary['failed_jobs'])} failed"
        )
        for failed in summary["failed_jobs"]:
            log.warning(f"Failed job {failed['route']}: {failed['status']} ({failed['error']})")
        return results

    async def _run_job(self, page, job: ExtractionJob, state: BatchState, today, log) -> RunResult:
        log.info(f"Job {state.current_index + 1}/{state.total}: {job.label}")
        try:
            result = await self.scraper.extract_job(page, job, job_count=state.total, today=today, log=log)
        except Exception as e:
            log.error(f"Job {job.label} failed: {e}")
            result = RunResult(
                status="unknown",
                job=job,
                trip_kind=job.trip_kind,
                job_count=state.total,
                error_message=f"Unexpected error: {str(e)}",
            )

        if result.is_success:
            log.info(f"Job {job.label}: {result.record_count} records in {result.elapsed_ms}ms")
        else:
            log.warning(f"Job {job.label} ended with {result.status}: {result.error_message}")
        return result

    def _export(self, result: RunResult, log) -> None:
        if self.exporter is None:
            return
        try:
            self.exporter.save(result)
        except OSError as e:
            log.error(f"Could not write result file: {e}")


def summarize(results: List[RunResult]) -> Dict[str, Any]:
    """Aggregate view over a batch's results."""
    return {
        "job_count": len(results),
        "record_count": sum(r.record_count for r in results),
        "failed_jobs": [
            {"route": r.job.label if r.job else r.source_url, "status": r.status, "error": r.error_message}
            for r in results if r.status not in ("success", "no_results")
        ],
        "generated_at": datetime.utcnow().isoformat(),
    }
