"""
Exchange rate scraping from the Google Finance quote page.
"""

import logging
import re
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from portfolio_tracker.core.config import settings
from portfolio_tracker.core.exceptions import RateUnavailableError
from portfolio_tracker.services.valuation_engine import round_half_away

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
LAST_PRICE_PATTERN = re.compile(r'data-last-price="([^"]+)"')


class GoogleFinanceRateProvider:
    """Reads the `data-last-price` attribute off a currency pair quote page."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        url_template: str = settings.EXCHANGE_RATE_URL,
        default_pair: str = settings.EXCHANGE_RATE_PAIR,
        timeout: float = settings.EXCHANGE_RATE_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.url_template = url_template
        self.default_pair = default_pair
        self.timeout = timeout

    async def fetch_current_rate(self) -> Decimal:
        return await self.fetch_rate(self.default_pair)

    async def fetch_rate(self, pair: str) -> Decimal:
        """
        Fetch the latest rate for a pair such as "USD-TWD", rounded to 4 dp.

        Raises:
            RateUnavailableError: on transport errors, non-2xx responses or
                when the page carries no parseable rate
        """
        url = self.url_template.format(pair=pair)
        try:
            async with self._get_client() as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Exchange rate request for {pair} failed: {e}")
            raise RateUnavailableError(f"Request error while fetching exchange rate for {pair}")

        match = LAST_PRICE_PATTERN.search(response.text)
        if not match:
            logger.warning(f"Failed to extract exchange rate for {pair}")
            raise RateUnavailableError(f"Cannot find exchange rate information for {pair}")

        try:
            rate = Decimal(match.group(1).replace(",", ""))
        except InvalidOperation:
            raise RateUnavailableError(f"Unparseable exchange rate '{match.group(1)}' for {pair}")

        if not rate.is_finite() or rate <= 0:
            raise RateUnavailableError(f"Invalid exchange rate '{match.group(1)}' for {pair}")

        return round_half_away(rate, 4)

    @asynccontextmanager
    async def _get_client(self):
        if self.client is not None:
            yield self.client
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                yield client
