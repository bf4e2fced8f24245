import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
import orjson

from .config import COIN_DATA_URL, HTTP_TIMEOUT_SECONDS
from .util import short_mint

log = logging.getLogger(__name__)


async def fetch_coin_data(session: aiohttp.ClientSession, mint: str) -> Optional[Dict[str, Any]]:
    """Token metadata (name, symbol, ...) or None when the lookup fails."""
    url = COIN_DATA_URL.format(mint=mint)
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)) as r:
            if r.status != 200:
                log.warning(f"coin data lookup for {mint} returned HTTP {r.status}")
                return None
            data = orjson.loads(await r.read())
    except (aiohttp.ClientError, asyncio.TimeoutError, orjson.JSONDecodeError) as e:
        log.warning(f"coin data lookup for {mint} failed: {type(e).__name__} {e!r}")
        return None
    return data if isinstance(data, dict) else None


async def format_token_display(session: aiohttp.ClientSession, mint: str) -> str:
    data = await fetch_coin_data(session, mint)
    if data and (data.get("name") or data.get("symbol")):
        name = data.get("name") or data.get("symbol")
        symbol = f"({data['symbol']})" if data.get("symbol") else ""
        return f"{name} {symbol}".strip()
    return short_mint(mint)
