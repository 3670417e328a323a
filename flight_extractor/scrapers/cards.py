import logging
from typing import List, Optional, Tuple, Union

from playwright.async_api import ElementHandle, Page

from flight_extractor.scrapers.extractors import has_content_signal

logger = logging.getLogger(__name__)


class CardEnumerator:
    """
    Lists the flight cards on a results page using multi-level fallback.

    Only visible cards that carry a clock time or a currency token are kept,
    which drops ad banners and skeleton placeholders. Order is document
    order, which is also the page's visual order.
    """

    # Card locator strategies in priority order
    CARD_STRATEGIES = [
        # Level 0: Specific MakeMyTrip selectors
        {"name": "clusterItem-listingCard", "selector": "[data-test='component-clusterItem'] div.listingCard", "level": 0},
        {"name": "listingCard", "selector": "div.listingCard", "level": 0},

        # Level 1: Class-substring patterns
        {"name": "listing-card-class", "selector": "[class*='listingCard']", "level": 1},
        {"name": "flight-card-class", "selector": "[class*='fli-list'] > div", "level": 1},

        # Level 2: ARIA-based
        {"name": "aria-listitem", "selector": "[role='listitem']", "level": 2},
    ]

    DEFAULT_LIMIT = 200

    def __init__(self, limit: int = DEFAULT_LIMIT, log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None):
        self.limit = limit
        self.log = log or logger

    async def list_candidates(self, root: Union[Page, ElementHandle]) -> List[ElementHandle]:
        cards, _, _ = await self.find_cards(root)
        return cards

    async def find_cards(self, root: Union[Page, ElementHandle]) -> Tuple[List[ElementHandle], str, int]:
        """
        Find flight cards under ``root``.

        Returns:
            Tuple of (cards, strategy_name, strategy_level)
        """
        for strategy in self.CARD_STRATEGIES:
            try:
                elements = await root.query_selector_all(strategy["selector"])
            except Exception as e:
                self.log.debug(f"CardEnumerator strategy {strategy['name']} failed: {e}")
                continue

            cards = []
            for element in elements:
                if len(cards) >= self.limit:
                    self.log.warning(f"CardEnumerator: capped at {self.limit} cards")
                    break
                if await self._is_candidate(element):
                    cards.append(element)

            if cards:
                self.log.info(
                    f"CardEnumerator: found {len(cards)} cards via "
                    f"{strategy['name']} (level {strategy['level']})"
                )
                return cards, strategy["name"], strategy["level"]

        self.log.warning("CardEnumerator: no flight cards found by any strategy")
        return [], "", -1

    async def _is_candidate(self, element: ElementHandle) -> bool:
        """Visible and carrying a time or currency token."""
        try:
            if not await element.is_visible():
                return False
            return has_content_signal(await element.inner_text())
        except Exception as e:
            self.log.debug(f"Card visibility check failed: {e}")
            return False
