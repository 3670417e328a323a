"""
Per-card interaction state machine.

    Idle -> ExtractSummary
         -> (OpenFarePopup -> AwaitPopup -> ExtractFares -> ClosePopup)?
         -> (OpenDetails -> AwaitDetails -> ExtractTabs -> CloseDetails)?
         -> Done

Both optional branches are guarded: the trigger control must exist, be
visible and be enabled, otherwise the branch is skipped and a summary-only
record is still produced. A failure anywhere closes whatever overlay is
open and skips the card; it never aborts the run.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from playwright.async_api import ElementHandle, Page

from flight_extractor.scrapers.extractors import (
    classify_details,
    clean_text,
    extract_fares,
    extract_summary,
)
from flight_extractor.scrapers.page_ready import (
    PageReadyDetector,
    any_selector_present,
    no_selector_present,
)
from flight_extractor.scrapers.records import FlightRecord

logger = logging.getLogger(__name__)


class CardState(str, Enum):
    IDLE = "idle"
    EXTRACT_SUMMARY = "extract_summary"
    OPEN_FARE_POPUP = "open_fare_popup"
    AWAIT_POPUP = "await_popup"
    EXTRACT_FARES = "extract_fares"
    CLOSE_POPUP = "close_popup"
    OPEN_DETAILS = "open_details"
    AWAIT_DETAILS = "await_details"
    EXTRACT_TABS = "extract_tabs"
    CLOSE_DETAILS = "close_details"
    DONE = "done"
    SKIPPED = "skipped"


class CardInteractionDriver:
    """Drives one card at a time through its fare popup and details panel."""

    FARE_TRIGGER_SELECTORS = [
        "button.ViewFareBtn",
        "[class*='viewFare'] button",
        "button:has-text('View Prices')",
    ]
    FARE_POPUP_SELECTORS = [
        ".fareFamilyPopup",
        "[class*='fareFamilyPopup']",
        "[class*='viewFaresOuter']",
        "[role='dialog']",
    ]
    DETAILS_TRIGGER_SELECTORS = [
        "span.linkText",
        "[class*='flightDetailsLink']",
        "span:has-text('Flight Details')",
        "a:has-text('Flight Details')",
    ]
    DETAILS_PANEL_SELECTORS = [
        ".flightDetailsOuter",
        "[class*='flightDetailsOuter']",
        "[class*='flightDetailsInfo']",
    ]
    DETAIL_TAB_SELECTORS = [
        "[role='tab']",
        ".detailsTabs li",
        "ul[class*='Tab'] li",
    ]
    DETAIL_CONTENT_SELECTORS = [
        "[role='tabpanel']",
        ".flightDetailsInfo",
        "[class*='tabContent']",
    ]
    CLOSE_SELECTORS = [
        "span.close",
        "[class*='closeBtn']",
        "button[aria-label='Close']",
        "[class*='close']",
    ]

    def __init__(
        self,
        page: Page,
        detector: PageReadyDetector,
        popup_timeout_ms: int = 8000,
        details_timeout_ms: int = 8000,
        settle_delay_ms: int = 400,
        log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ):
        self.page = page
        self.detector = detector
        self.popup_timeout_ms = popup_timeout_ms
        self.details_timeout_ms = details_timeout_ms
        self.settle_delay_ms = settle_delay_ms
        self.log = log or logger
        self.state = CardState.IDLE
        self.transitions: List[CardState] = []

    def _enter(self, state: CardState) -> None:
        self.state = state
        self.transitions.append(state)

    async def _settle(self) -> None:
        if self.settle_delay_ms > 0:
            await asyncio.sleep(self.settle_delay_ms / 1000)

    async def process_card(
        self,
        card: ElementHandle,
        base_fields: Dict[str, Any],
        index: int = 0,
    ) -> Optional[FlightRecord]:
        """
        Run one card through the state machine.

        Returns the record, or None when the card had to be skipped.
        """
        self.transitions = []
        self._enter(CardState.IDLE)
        open_overlay: Optional[List[str]] = None

        try:
            self._enter(CardState.EXTRACT_SUMMARY)
            summary = await extract_summary(card)
            record = FlightRecord(**base_fields, **summary)

            trigger = await self._find_trigger(card, self.FARE_TRIGGER_SELECTORS)
            if trigger is not None:
                self._enter(CardState.OPEN_FARE_POPUP)
                await trigger.scroll_into_view_if_needed()
                open_overlay = self.FARE_POPUP_SELECTORS
                await trigger.click()

                self._enter(CardState.AWAIT_POPUP)
                await self.detector.await_ready(
                    any_selector_present(self.FARE_POPUP_SELECTORS),
                    self.popup_timeout_ms,
                    label=f"fare popup (card {index})",
                )
                await self._settle()

                self._enter(CardState.EXTRACT_FARES)
                popup = await self._first_match(self.page, self.FARE_POPUP_SELECTORS)
                if popup is not None:
                    record.fare_options = await extract_fares(popup)

                self._enter(CardState.CLOSE_POPUP)
                await self._close_overlay(self.FARE_POPUP_SELECTORS)
                open_overlay = None

            trigger = await self._find_trigger(card, self.DETAILS_TRIGGER_SELECTORS)
            if trigger is not None:
                self._enter(CardState.OPEN_DETAILS)
                await trigger.scroll_into_view_if_needed()
                open_overlay = self.DETAILS_PANEL_SELECTORS
                await trigger.click()

                self._enter(CardState.AWAIT_DETAILS)
                await self.detector.await_ready(
                    any_selector_present(self.DETAILS_PANEL_SELECTORS),
                    self.details_timeout_ms,
                    label=f"details panel (card {index})",
                )
                await self._settle()

                self._enter(CardState.EXTRACT_TABS)
                panel = await self._first_match(self.page, self.DETAILS_PANEL_SELECTORS)
                if panel is not None:
                    tabs = await self._extract_tabs(panel, index)
                    record.merge_details(classify_details(tabs))

                self._enter(CardState.CLOSE_DETAILS)
                await self._close_overlay(self.DETAILS_PANEL_SELECTORS)
                open_overlay = None

            self._enter(CardState.DONE)
            return record

        except Exception as e:
            self.log.warning(f"Card {index} skipped in state {self.state.value}: {e}")
            if open_overlay is not None:
                try:
                    await self._close_overlay(open_overlay)
                except Exception as close_error:
                    self.log.debug(f"Could not close overlay after card {index} failure: {close_error}")
            self._enter(CardState.SKIPPED)
            return None

    async def _find_trigger(self, root: ElementHandle, selectors: List[str]) -> Optional[ElementHandle]:
        """A trigger only counts when it exists, is visible and is enabled."""
        for selector in selectors:
            try:
                element = await root.query_selector(selector)
                if element is None:
                    continue
                if await element.is_visible() and await element.is_enabled():
                    return element
            except Exception as e:
                self.log.debug(f"Trigger lookup {selector} failed: {e}")
                continue
        return None

    async def _first_match(
        self,
        root: Union[Page, ElementHandle],
        selectors: List[str],
    ) -> Optional[ElementHandle]:
        for selector in selectors:
            try:
                element = await root.query_selector(selector)
            except Exception as e:
                self.log.debug(f"Selector {selector} failed: {e}")
                continue
            if element is not None:
                return element
        return None

    async def _extract_tabs(self, panel: ElementHandle, index: int) -> Dict[str, str]:
        """Click through every details tab and read its pane."""
        tabs: List[ElementHandle] = []
        for selector in self.DETAIL_TAB_SELECTORS:
            tabs = await panel.query_selector_all(selector)
            if tabs:
                break

        if not tabs:
            text = (await panel.inner_text()).strip()
            return {"Flight Details": text} if text else {}

        details: Dict[str, str] = {}
        for tab in tabs:
            name = clean_text(await tab.inner_text())
            if not name or name in details:
                continue
            if not await tab.is_visible():
                continue

            await tab.click()
            await self.detector.await_ready(
                any_selector_present(self.DETAIL_CONTENT_SELECTORS),
                self.details_timeout_ms,
                label=f"details tab '{name}' (card {index})",
            )
            await self._settle()

            content = await self._first_match(panel, self.DETAIL_CONTENT_SELECTORS)
            if content is None:
                continue
            text = (await content.inner_text()).strip()
            if text:
                details[name] = text

        return details

    async def _close_overlay(self, overlay_selectors: List[str]) -> None:
        """Close button inside the overlay first, Escape as fallback, then wait for it to go."""
        overlay = await self._first_match(self.page, overlay_selectors)
        closed = False
        if overlay is not None:
            close_button = await self._find_trigger(overlay, self.CLOSE_SELECTORS)
            if close_button is not None:
                await close_button.click()
                closed = True

        if not closed:
            await self.page.keyboard.press("Escape")

        await self.detector.await_ready(
            no_selector_present(overlay_selectors),
            self.popup_timeout_ms,
            label="overlay close",
        )
        await self._settle()
