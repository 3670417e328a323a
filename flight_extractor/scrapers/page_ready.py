"""
Readiness waits driven by DOM mutations.

Every extraction phase (card list, fare popup, details tabs) waits for a
structural precondition instead of sleeping for a fixed time. The wait is
Playwright's ``wait_for_function`` with ``polling="mutation"``, so the
predicate is re-checked whenever the DOM changes. A timeout is never fatal.
"""

import json
import logging
from typing import Iterable, Optional, Union

from playwright.async_api import Page, TimeoutError as PlaywrightTimeout

logger = logging.getLogger(__name__)


def any_selector_present(selectors: Iterable[str], min_count: int = 1) -> str:
    """JS predicate: at least ``min_count`` nodes match one of the selectors."""
    selector_list = json.dumps(list(selectors))
    return (
        f"() => {selector_list}.some(s => {{"
        f" try {{ return document.querySelectorAll(s).length >= {min_count}; }}"
        f" catch (e) {{ return false; }} }})"
    )


def no_selector_present(selectors: Iterable[str]) -> str:
    """JS predicate: none of the selectors match a visible node."""
    selector_list = json.dumps(list(selectors))
    return (
        f"() => !{selector_list}.some(s => {{"
        f" try {{ return Array.from(document.querySelectorAll(s))"
        f".some(el => el.offsetParent !== null); }}"
        f" catch (e) {{ return false; }} }})"
    )


def all_of(*predicates: str) -> str:
    """JS predicate: every given predicate holds."""
    calls = " && ".join(f"({p})()" for p in predicates)
    return f"() => {calls}"


class PageReadyDetector:
    """Waits until a DOM predicate holds, or gives up after a timeout."""

    def __init__(self, page: Page, log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None):
        self.page = page
        self.log = log or logger

    async def await_ready(self, predicate: str, timeout_ms: int, label: str = "") -> bool:
        """
        Resolve True as soon as ``predicate`` holds, False on timeout.

        Timeouts are logged as warnings and callers carry on with
        best-effort extraction.
        """
        try:
            await self.page.wait_for_function(predicate, polling="mutation", timeout=timeout_ms)
            return True
        except PlaywrightTimeout:
            self.log.warning(f"Readiness wait timed out after {timeout_ms}ms: {label or predicate[:80]}")
            return False
