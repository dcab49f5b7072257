"""Market movers: provider top gainers/losers snapshot with a short TTL."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from finora.cache.freshness import is_fresh
from finora.core.data_helpers import safe_float, safe_int, utc_now
from finora.core.logging import get_logger
from finora.repositories.market import MarketRepository
from finora.schemas.market import MarketMover, MarketMovers
from finora.services.data_providers.alpha_vantage import AlphaVantageClient

logger = get_logger("services.market_movers")


def parse_movers(entries: Any, limit: int = 10) -> list[MarketMover]:
    """Provider mover rows -> MarketMover list, capped at ``limit``."""
    if not isinstance(entries, list):
        return []
    movers = []
    for entry in entries[:limit]:
        if not isinstance(entry, dict) or not entry.get("ticker"):
            continue
        movers.append(
            MarketMover(
                symbol=str(entry["ticker"]).upper(),
                price=safe_float(entry.get("price")),
                change=safe_float(entry.get("change_amount")),
                # safe_float strips the trailing "%"
                change_percentage=safe_float(entry.get("change_percentage")),
                volume=safe_int(entry.get("volume")),
            )
        )
    return movers


class MarketMoversService:
    def __init__(
        self,
        market: MarketRepository,
        provider: AlphaVantageClient,
        ttl: timedelta,
        limit: int = 10,
    ):
        self.market = market
        self.provider = provider
        self.ttl = ttl
        self.limit = limit

    async def get_top_movers(self) -> tuple[MarketMovers, bool]:
        """Return (snapshot, cached)."""
        snapshot = await self.market.get_movers()
        if snapshot is not None and is_fresh(snapshot.fetched_at, self.ttl):
            return snapshot, True

        data = await self.provider.fetch_top_movers()
        snapshot = MarketMovers(
            top_gainers=parse_movers(data.get("top_gainers"), self.limit),
            top_losers=parse_movers(data.get("top_losers"), self.limit),
            most_active=parse_movers(data.get("most_actively_traded"), self.limit),
            fetched_at=utc_now(),
        )
        await self.market.save_movers(snapshot)
        logger.info(
            "Market movers refreshed",
            extra={"gainers": len(snapshot.top_gainers), "losers": len(snapshot.top_losers)},
        )
        return snapshot, False
