"""
Extraction orchestration service.

Entry point behind the trigger API: runs a single listing synchronously,
or queues a route x date batch and hands it to the scheduler.
"""

import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeout

from flight_extractor.config import Settings, get_settings
from flight_extractor.scheduler import schedule_batch_run, scheduler_running
from flight_extractor.schemas import TriggerRequest
from flight_extractor.scrapers.makemytrip import MakeMyTripScraper
from flight_extractor.scrapers.records import RunResult
from flight_extractor.services.batch import BatchOrchestrator
from flight_extractor.services.batch_state import BatchState, BatchStateStore
from flight_extractor.services.export import ResultExporter
from flight_extractor.services.progress import (
    NtfyProgressNotifier,
    ProgressBroadcaster,
    ProgressTracker,
)
from flight_extractor.services.run_context import RunContext
from flight_extractor.utils.url_builder import ONE_WAY, ROUND_TRIP

logger = logging.getLogger(__name__)

ACTION_DOMESTIC = "extractFlights"
ACTION_INTERNATIONAL = "extractInternationalRoundTrip"
ACTIONS = (ACTION_DOMESTIC, ACTION_INTERNATIONAL)

# Single-run outcomes reported back as {"success": false, "error": ...}
FAILED_STATUSES = ("structure_not_found", "timeout", "unknown")


class ExtractionService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        scraper: Optional[MakeMyTripScraper] = None,
        store: Optional[BatchStateStore] = None,
        exporter: Optional[ResultExporter] = None,
        notifier: Optional[NtfyProgressNotifier] = None,
    ):
        self.settings = settings or get_settings()
        self.scraper = scraper or MakeMyTripScraper(self.settings)
        self.store = store or BatchStateStore()
        self.exporter = exporter or ResultExporter()
        self.tracker = ProgressTracker()
        self.notifier = notifier or NtfyProgressNotifier()
        self.orchestrator = BatchOrchestrator(
            scraper=self.scraper,
            store=self.store,
            observer=ProgressBroadcaster([self.tracker, self.notifier]),
            exporter=self.exporter,
        )
        self.current: Optional[RunContext] = None

    @property
    def busy(self) -> bool:
        return self.current is not None and self.current.in_progress

    async def handle_trigger(self, request: TriggerRequest) -> Dict[str, Any]:
        """
        Dispatch a trigger message.

        Routes present -> batch queued in the background.
        Url present    -> single listing at ``url``, returned inline.
        Neither        -> domestic action runs the default route x date matrix.
        """
        if request.action not in ACTIONS:
            return {"success": False, "error": f"Unknown action: {request.action}"}

        if self.busy:
            return {"success": False, "error": "An extraction is already running"}

        if request.action == ACTION_INTERNATIONAL:
            trip_kind, international = ROUND_TRIP, True
        else:
            trip_kind, international = request.trip_kind, False

        if request.routes:
            routes = [{"source": r.source, "dest": r.dest} for r in request.routes]
            offsets = request.date_offsets or self.settings.default_date_offsets
            return self.start_batch(routes, offsets, trip_kind, international)

        if request.url:
            return await self.run_single(request.url, trip_kind)

        if request.action == ACTION_DOMESTIC:
            offsets = request.date_offsets or self.settings.default_date_offsets
            return self.start_batch(self.settings.default_routes, offsets, trip_kind, international)

        return {"success": False, "error": "Either routes or a listing url is required"}

    async def run_single(self, url: str, trip_kind: str = ONE_WAY) -> Dict[str, Any]:
        ctx = RunContext(kind="single").begin()
        self.current = ctx
        try:
            async with self.scraper.browser_page() as page:
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms)
                except PlaywrightTimeout:
                    return {"success": False, "error": f"Page load timed out: {url}"}
                result = await self.scraper.extract_listing(page, trip_kind=trip_kind, log=ctx.log)

            ctx.results.append(result)
            if result.status in FAILED_STATUSES:
                return {"success": False, "error": result.error_message or result.status}

            self._export(result, ctx)
            return {"success": True, "data": result.to_payload()}
        except Exception as e:
            ctx.log.error(f"Single extraction failed: {e}")
            return {"success": False, "error": str(e)}
        finally:
            ctx.finish()

    def start_batch(
        self,
        routes: List[Dict[str, str]],
        date_offsets: List[int],
        trip_kind: str = ONE_WAY,
        international: bool = False,
    ) -> Dict[str, Any]:
        jobs = self.orchestrator.plan(routes, date_offsets, trip_kind, international)
        if not jobs:
            return {"success": False, "error": "No route-date combinations to process"}

        if not scheduler_running():
            logger.warning("Batch rejected: scheduler is not running")
            return {"success": False, "error": "Background scheduler is not running; enable SCHEDULER_ENABLED to run batches"}

        state = self.orchestrator.start(jobs)
        self.tracker.reset()
        ctx = RunContext(kind="batch").begin()
        self.current = ctx
        schedule_batch_run(self.run_batch, ctx)

        return {
            "success": True,
            "message": f"Processing {state.total} route-date combinations in the background",
            "total_combinations": state.total,
        }

    async def run_batch(self, ctx: Optional[RunContext] = None) -> List[RunResult]:
        """Scheduler entry point; also used to resume a persisted batch."""
        if ctx is None:
            ctx = RunContext(kind="batch").begin()
        self.current = ctx
        try:
            return await self.orchestrator.resume(ctx)
        except Exception as e:
            ctx.log.error(f"Batch run aborted: {e}")
            return ctx.results
        finally:
            ctx.finish()

    def resume_pending(self) -> bool:
        """Queue the persisted batch, if any. Returns True when one was found."""
        state = self.orchestrator.pending()
        if state is None:
            return False
        if not scheduler_running():
            logger.warning(f"Unfinished batch {state.batch_id} left queued: scheduler is not running")
            return False
        logger.info(
            f"Found unfinished batch {state.batch_id} at "
            f"{state.current_index}/{state.total}, resuming"
        )
        ctx = RunContext(kind="batch").begin()
        self.current = ctx
        schedule_batch_run(self.run_batch, ctx)
        return True

    def batch_state(self) -> Optional[BatchState]:
        return self.store.load()

    def cancel_batch(self) -> bool:
        return self.store.clear()

    def progress(self) -> Dict[str, Any]:
        return self.tracker.snapshot()

    def logs(self) -> str:
        if self.current is None:
            return ""
        return self.current.logs_text()

    def results(self) -> List[Dict[str, Any]]:
        if self.current is None:
            return []
        return [result.to_payload() for result in self.current.results]

    def _export(self, result: RunResult, ctx: RunContext) -> None:
        try:
            self.exporter.save(result)
        except OSError as e:
            ctx.log.error(f"Could not write result file: {e}")

    async def close(self):
        await self.notifier.close()


_global_service: Optional[ExtractionService] = None


def get_extraction_service() -> ExtractionService:
    global _global_service
    if _global_service is None:
        _global_service = ExtractionService()
    return _global_service


async def shutdown_service():
    global _global_service
    if _global_service is not None:
        await _global_service.close()
        _global_service = None
