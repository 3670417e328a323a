import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Union

from playwright.async_api import async_playwright, ElementHandle, Page, TimeoutError as PlaywrightTimeout

from flight_extractor.config import Settings, get_settings
from flight_extractor.scrapers.card_driver import CardInteractionDriver
from flight_extractor.scrapers.cards import CardEnumerator
from flight_extractor.scrapers.dedup import is_duplicate
from flight_extractor.scrapers.page_ready import (
    PageReadyDetector,
    all_of,
    any_selector_present,
    no_selector_present,
)
from flight_extractor.scrapers.records import ExtractionJob, FlightRecord, RunResult
from flight_extractor.utils.url_builder import ONE_WAY, ROUND_TRIP, build_search_url, resolve_dates

logger = logging.getLogger(__name__)

Log = Union[logging.Logger, logging.LoggerAdapter]


class MakeMyTripScraper:
    """
    MakeMyTrip listing scraper.

    Navigates to a search, waits for the card list to render, walks every
    card through the interaction driver and deduplicates the records.
    Failures are classified on the returned RunResult instead of raised:
    - timeout: the page never finished loading
    - no_results: the site says there are no flights
    - structure_not_found: no card container ever appeared
    - unknown: anything else at job level

    One browser is launched per run (single job or whole batch) and always
    closed, so a crashed page never leaks into the next run.
    """

    # Browser launch arguments for headless operation
    BROWSER_ARGS = [
        "--disable-blink-features=AutomationControlled",
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-extensions",
        "--disable-background-networking",
        "--disable-default-apps",
        "--disable-sync",
        "--disable-translate",
        "--mute-audio",
        "--hide-scrollbars",
    ]

    LOADER_SELECTORS = [
        ".loaderWrapper",
        "[class*='loader']",
        "[class*='skeleton']",
        "[class*='shimmer']",
    ]

    # Domestic round trips render onward and return lists side by side
    SPLIT_PANE_SELECTORS = [
        ".splitVw .paneView",
        "[class*='splitVw'] [class*='paneView']",
    ]

    EXPANDER_SELECTORS = [
        "[class*='viewMoreFlights']",
        "span:has-text('more flights')",
    ]

    NO_RESULTS_PATTERNS = [
        "no flights found",
        "flights not found",
        "no flights available",
        "we couldn't find",
    ]

    MAX_SCROLL_ROUNDS = 10
    SCROLL_WAIT_MS = 3000
    MAX_EXPANDERS = 20

    def __init__(
        self,
        settings: Optional[Settings] = None,
        screenshots_dir: Optional[Path] = None,
        html_dir: Optional[Path] = None,
    ):
        self.settings = settings or get_settings()
        self.screenshots_dir = screenshots_dir or Path(self.settings.screenshots_dir)
        self.html_dir = html_dir or Path(self.settings.html_snapshots_dir)

    @property
    def card_selectors(self) -> List[str]:
        return [s["selector"] for s in CardEnumerator.CARD_STRATEGIES]

    @asynccontextmanager
    async def browser_page(self) -> AsyncIterator[Page]:
        """Launch a fresh browser and yield a single page; always torn down."""
        playwright = await async_playwright().start()
        browser = None
        context = None
        try:
            browser = await playwright.chromium.launch(
                headless=self.settings.headless,
                args=self.BROWSER_ARGS,
            )
            context = await browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=(
                    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                    "AppleWebKit/537.36 (KHTML, like Gecko) "
                    "Chrome/120.0.0.0 Safari/537.36"
                ),
                locale="en-IN",
                timezone_id="Asia/Kolkata",
            )
            yield await context.new_page()
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.debug(f"Context close failed: {e}")
            if browser is not None:
                try:
                    await browser.close()
                except Exception as e:
                    logger.debug(f"Browser close failed: {e}")
            await playwright.stop()

    def build_job_url(self, job: ExtractionJob, today: Optional[date] = None) -> str:
        departure_date, return_date = resolve_dates(
            job.date_offset_days,
            job.trip_kind,
            today=today,
            return_trip_days=self.settings.return_trip_days,
        )
        return build_search_url(
            origin=job.origin,
            destination=job.destination,
            departure_date=departure_date,
            trip_kind=job.trip_kind,
            return_date=return_date,
            international=job.international,
            adults=self.settings.adults,
            cabin_class=self.settings.cabin_class,
            base_url=self.settings.search_base_url,
        )

    async def extract_job(
        self,
        page: Page,
        job: ExtractionJob,
        job_count: int = 1,
        today: Optional[date] = None,
        log: Optional[Log] = None,
    ) -> RunResult:
        """Navigate to the job's search and extract the listing."""
        log = log or logger
        started_at = datetime.utcnow()
        url = self.build_job_url(job, today=today)
        departure_date, return_date = resolve_dates(
            job.date_offset_days,
            job.trip_kind,
            today=today,
            return_trip_days=self.settings.return_trip_days,
        )

        log.info(f"Navigating to {job.label}: {url}")
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms)
        except PlaywrightTimeout:
            screenshot_path, html_path = await self._save_failure_artifacts(page, job.label, "timeout")
            return RunResult(
                status="timeout",
                job=job,
                source_url=url,
                trip_kind=job.trip_kind,
                started_at=started_at,
                job_count=job_count,
                error_message=f"Page load timed out after {self.settings.navigation_timeout_ms}ms",
                screenshot_path=screenshot_path,
                html_snapshot_path=html_path,
                elapsed_ms=self._elapsed_ms(started_at),
            )

        leg_dates = [departure_date.isoformat()]
        if return_date is not None:
            leg_dates.append(return_date.isoformat())

        result = await self.extract_listing(
            page,
            trip_kind=job.trip_kind,
            origin=job.origin,
            destination=job.destination,
            leg_dates=leg_dates,
            log=log,
            started_at=started_at,
        )
        result.job = job
        result.source_url = url
        result.job_count = job_count
        return result

    async def extract_listing(
        self,
        page: Page,
        trip_kind: str = ONE_WAY,
        origin: Optional[str] = None,
        destination: Optional[str] = None,
        leg_dates: Optional[List[str]] = None,
        log: Optional[Log] = None,
        started_at: Optional[datetime] = None,
    ) -> RunResult:
        """
        Extract every card on the page that is already loaded.

        This is the whole pipeline minus navigation, so it also serves the
        single-page trigger where the caller supplies the URL.
        """
        log = log or logger
        started_at = started_at or datetime.utcnow()
        source_url = page.url
        leg_dates = leg_dates or []

        try:
            detector = PageReadyDetector(page, log=log)
            ready = await detector.await_ready(
                all_of(
                    any_selector_present(self.card_selectors),
                    no_selector_present(self.LOADER_SELECTORS),
                ),
                self.settings.page_ready_timeout_ms,
                label="card list",
            )
            if not ready:
                log.warning("Card list not confirmed ready, continuing best-effort")
            else:
                await self._load_all_cards(page, detector, log)
                await self._expand_groups(page, detector, log)

            enumerator = CardEnumerator(limit=self.settings.card_limit, log=log)
            driver = CardInteractionDriver(
                page,
                detector,
                popup_timeout_ms=self.settings.popup_timeout_ms,
                details_timeout_ms=self.settings.details_timeout_ms,
                settle_delay_ms=self.settings.settle_delay_ms,
                log=log,
            )

            roots = await self._listing_roots(page, trip_kind)
            seen: Set[str] = set()
            records: List[FlightRecord] = []
            cards_seen = 0
            duplicates = 0

            for leg_index, (leg, root) in enumerate(roots):
                leg_origin, leg_destination = origin, destination
                if leg == "return":
                    leg_origin, leg_destination = destination, origin
                base_fields: Dict[str, Any] = {
                    "origin": leg_origin,
                    "destination": leg_destination,
                    "travel_date": leg_dates[leg_index] if leg_index < len(leg_dates) else (leg_dates[0] if leg_dates else None),
                    "leg": leg,
                }

                cards = await enumerator.list_candidates(root)
                for index, card in enumerate(cards, start=cards_seen):
                    record = await driver.process_card(card, base_fields, index=index)
                    if record is None:
                        continue
                    if is_duplicate(record, seen):
                        duplicates += 1
                        log.debug(f"Dropped duplicate card {index}: {record.identity_key}")
                        continue
                    records.append(record)
                cards_seen += len(cards)

            if cards_seen == 0:
                content = (await page.content()).lower()
                if any(pattern in content for pattern in self.NO_RESULTS_PATTERNS):
                    return RunResult(
                        status="no_results",
                        source_url=source_url,
                        trip_kind=trip_kind,
                        started_at=started_at,
                        error_message="No flights found for this route/date combination",
                        elapsed_ms=self._elapsed_ms(started_at),
                    )

                screenshot_path, html_path = await self._save_failure_artifacts(
                    page, f"{origin or 'page'}-{destination or ''}", "structure_not_found"
                )
                return RunResult(
                    status="structure_not_found",
                    source_url=source_url,
                    trip_kind=trip_kind,
                    started_at=started_at,
                    error_message="No flight card container found - the page layout may have changed",
                    screenshot_path=screenshot_path,
                    html_snapshot_path=html_path,
                    elapsed_ms=self._elapsed_ms(started_at),
                )

            log.info(
                f"Extracted {len(records)} records from {cards_seen} cards "
                f"({duplicates} duplicates dropped)"
            )
            return RunResult(
                status="success" if records else "no_results",
                records=records,
                source_url=source_url,
                trip_kind=trip_kind,
                started_at=started_at,
                cards_seen=cards_seen,
                duplicates_dropped=duplicates,
                error_message=None if records else "Cards found but no record could be extracted",
                elapsed_ms=self._elapsed_ms(started_at),
            )

        except Exception as e:
            log.error(f"Unexpected extraction error: {e}")
            screenshot_path, html_path = await self._save_failure_artifacts(page, "listing", "unknown")
            return RunResult(
                status="unknown",
                source_url=source_url,
                trip_kind=trip_kind,
                started_at=started_at,
                error_message=f"Unexpected error: {str(e)}",
                screenshot_path=screenshot_path,
                html_snapshot_path=html_path,
                elapsed_ms=self._elapsed_ms(started_at),
            )

    async def _listing_roots(self, page: Page, trip_kind: str) -> List[tuple]:
        """(leg, root) pairs: both panes of a split round-trip view, else the page."""
        if trip_kind == ROUND_TRIP:
            for selector in self.SPLIT_PANE_SELECTORS:
                panes = await page.query_selector_all(selector)
                if len(panes) >= 2:
                    return [("onward", panes[0]), ("return", panes[1])]
        return [(None, page)]

    async def _count_cards(self, page: Page) -> int:
        return await page.evaluate(
            "selectors => Math.max(...selectors.map(s => {"
            " try { return document.querySelectorAll(s).length; } catch (e) { return 0; } }))",
            self.card_selectors,
        )

    async def _load_all_cards(self, page: Page, detector: PageReadyDetector, log: Log) -> None:
        """Scroll until no new cards render or the card limit is reached."""
        count = await self._count_cards(page)
        for _ in range(self.MAX_SCROLL_ROUNDS):
            if count >= self.settings.card_limit:
                break
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            grew = await detector.await_ready(
                any_selector_present(self.card_selectors, min_count=count + 1),
                self.SCROLL_WAIT_MS,
                label="more cards after scroll",
            )
            new_count = await self._count_cards(page)
            if not grew or new_count <= count:
                break
            count = new_count
        log.debug(f"Lazy loading finished with {count} cards")
        await page.evaluate("() => window.scrollTo(0, 0)")

    async def _expand_groups(self, page: Page, detector: PageReadyDetector, log: Log) -> None:
        """Open grouped "N more flights" clusters so their cards render."""
        expanded = 0
        for selector in self.EXPANDER_SELECTORS:
            expanders: List[ElementHandle] = await page.query_selector_all(selector)
            for expander in expanders:
                if expanded >= self.MAX_EXPANDERS:
                    return
                try:
                    if not await expander.is_visible():
                        continue
                    count = await self._count_cards(page)
                    await expander.click()
                    await detector.await_ready(
                        any_selector_present(self.card_selectors, min_count=count + 1),
                        self.SCROLL_WAIT_MS,
                        label="expanded flight group",
                    )
                    expanded += 1
                except Exception as e:
                    log.debug(f"Group expander failed: {e}")
        if expanded:
            log.info(f"Expanded {expanded} grouped flight clusters")

    async def _save_failure_artifacts(
        self,
        page: Page,
        label: str,
        reason: str,
    ) -> tuple[Optional[str], Optional[str]]:
        """
        Save screenshot and HTML snapshot on failure for debugging.

        Returns: (screenshot_path, html_path)
        """
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        safe_label = "".join(c if c.isalnum() or c in "-_" else "_" for c in label)
        prefix = f"{safe_label}_{timestamp}_{reason}"

        screenshot_path: Optional[str] = None
        html_path: Optional[str] = None

        try:
            self.screenshots_dir.mkdir(parents=True, exist_ok=True)
            screenshot_file = self.screenshots_dir / f"{prefix}.png"
            await page.screenshot(path=str(screenshot_file), full_page=True)
            screenshot_path = str(screenshot_file)
        except Exception as e:
            logger.debug(f"Screenshot failed: {e}")

        try:
            self.html_dir.mkdir(parents=True, exist_ok=True)
            html_file = self.html_dir / f"{prefix}.html"
            html_file.write_text(await page.content(), encoding="utf-8")
            html_path = str(html_file)
        except Exception as e:
            logger.debug(f"HTML snapshot failed: {e}")

        return screenshot_path, html_path

    @staticmethod
    def _elapsed_ms(started_at: datetime) -> int:
        return int((datetime.utcnow() - started_at).total_seconds() * 1000)
