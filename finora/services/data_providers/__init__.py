"""External market data providers."""

from .alpha_vantage import AlphaVantageClient, ProviderBundle

__all__ = ["AlphaVantageClient", "ProviderBundle"]
