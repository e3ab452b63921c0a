"""
Order, round and trade models.

These dataclasses represent the objects passed between the pricing,
execution and reporting modules.  Order outcomes and run outcomes are
returned as values; only page failures are raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
import pandas as pd


class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"


class OrderStatus(Enum):
    """Outcome of a single order attempt."""
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    NO_STOCK = "no_stock"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class OrderResult:
    """Result of placing an order and waiting for it."""
    status: OrderStatus
    message: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status is OrderStatus.COMPLETED


@dataclass
class TradeRound:
    """One buy-then-sell pair.  Lives for the duration of the round."""
    number: int
    buy_price: Decimal
    sell_price: Decimal
    buy_result: Optional[OrderResult] = None
    sell_result: Optional[OrderResult] = None


class CycleState(Enum):
    IDLE = "idle"
    CHECKING_VOLUME_GATE = "checking_volume_gate"
    RUNNING = "running"
    STOPPING = "stopping"
    HALTED = "halted"


class HaltReason(Enum):
    """Why a run ended."""
    COMPLETED = "completed"      # all rounds done
    STOPPED = "stopped"          # stop requested
    VOLUME_GATE = "volume_gate"  # 24h volume too low or unreadable
    PRICE_ERROR = "price_error"  # dynamic price rejected, no fallback
    BUY_FAILED = "buy_failed"
    SELL_FAILED = "sell_failed"
    ERROR = "error"              # page broke (element missing)


@dataclass(frozen=True)
class RunReport:
    """Summary of a finished run."""
    reason: HaltReason
    completed_rounds: int
    target_rounds: int
    message: Optional[str] = None
    last_result: Optional[OrderResult] = None

    def describe(self) -> str:
        text = f"{self.reason.value}: {self.completed_rounds}/{self.target_rounds} rounds completed"
        if self.message:
            text += f" ({self.message})"
        return text


@dataclass(frozen=True)
class TradeRecord:
    """A filled order read back from the order history."""
    time: pd.Timestamp
    side: OrderSide
    filled_volume: Decimal
    price: Decimal
    total_value: Decimal  # quote currency (USDT)
    status: str
    raw_time: str = ""
