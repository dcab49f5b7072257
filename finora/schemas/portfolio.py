"""Paper-trading portfolio schemas (read-only chat context)."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class Holding(BaseModel):
    """A position held in a paper-trading portfolio."""

    symbol: str
    quantity: float
    average_buy_price: float | None = None
    current_price: float | None = None
    current_value: float | None = None
    profit_loss: float | None = None
    profit_loss_percentage: float | None = None

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.upper().strip()


class Portfolio(BaseModel):
    """A user's paper-trading account, keyed by user id."""

    user_id: str
    cash_balance: float = 0.0
    total_value: float = 0.0
    total_invested: float = 0.0
    profit_loss: float = 0.0
    risk_tolerance: str | None = None
    investment_goals: list[str] = Field(default_factory=list)
    holdings: list[Holding] = Field(default_factory=list)
