import asyncio
import logging
from decimal import Decimal
from typing import Optional

import aiohttp

from config import settings
from exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


async def fetch_sol_price(session: aiohttp.ClientSession, url: Optional[str] = None) -> Decimal:
    """Fetch the current SOL/USD price from CoinGecko"""
    try:
        async with session.get(url or settings.coingecko_url) as response:
            response.raise_for_status()
            data = await response.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"SOL price fetch failed: {str(e)}")
        raise UpstreamUnavailableError("SOL price unavailable") from e

    try:
        return Decimal(str(data['solana']['usd']))
    except (KeyError, TypeError) as e:
        raise UpstreamUnavailableError(f"Unexpected price response: {data}") from e
