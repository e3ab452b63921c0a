"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with the dataclass defaults for any missing
fields.

The trading parameters in `TradingConfig` may be changed while a run
is in progress.  Changes go through `TradingConfig.update()` so that
every value is range-checked before the controller reads it at the
next round boundary.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Dict
import yaml


class ConfigError(ValueError):
    """Raised when a configuration value is missing or out of range."""


def _to_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so that 0.1 from YAML stays 0.1 and not its binary expansion
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "on", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "off", "0"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if result != value and not isinstance(value, str):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    return result


@dataclass
class TradingConfig:
    """Parameters of the buy/sell cycle.

    Attributes
    ----------
    buy_price, sell_price : Decimal
        Limit prices used in static mode.  With dynamic pricing enabled
        they only serve as reference values: a dynamic price deviating
        more than 10 % from its configured counterpart is rejected.
    enable_dynamic_pricing : bool
        Derive prices from the modal price of the recent trade tape.
    price_offset : Decimal
        Added to the modal buy price and subtracted from the modal sell
        price.  ``0`` trades exactly at the modal price.
    order_volume : Decimal
        Quantity bought per round.  Sells always use the full balance.
    max_rounds : int
        Number of buy+sell rounds to run.
    order_timeout_ms : int
        How long a single order may stay open before the run halts.
    abort_on_price_warning : bool
        Abort the order when the exchange shows its slippage warning.
    min_volume_threshold_m : Decimal
        Minimum 24h traded volume of the pair, in millions of USD.
    fallback_to_static_prices : bool
        When the dynamic price check fails, trade the round at the
        static prices instead of halting.
    stats_every_rounds : int
        Refresh today's statistics after every N completed rounds
        (and after the last one).  ``0`` disables the refresh.
    """

    buy_price: Decimal = Decimal("48.004839")
    sell_price: Decimal = Decimal("48.0048361")
    enable_dynamic_pricing: bool = True
    price_offset: Decimal = Decimal("0")
    order_volume: Decimal = Decimal("10")
    max_rounds: int = 13
    order_timeout_ms: int = 300_000
    abort_on_price_warning: bool = False
    min_volume_threshold_m: Decimal = Decimal("500")
    fallback_to_static_prices: bool = True
    stats_every_rounds: int = 3

    def __post_init__(self) -> None:
        for f in fields(self):
            setattr(self, f.name, _validate_trading_field(f.name, getattr(self, f.name)))

    def update(self, **changes: Any) -> None:
        """Validate and apply one or more parameter changes.

        Either every change is applied or, if any value is invalid,
        none of them is.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigError(f"Unknown trading parameter(s): {', '.join(unknown)}")
        validated = {name: _validate_trading_field(name, value) for name, value in changes.items()}
        for name, value in validated.items():
            setattr(self, name, value)


def _validate_trading_field(name: str, value: Any) -> Any:
    """Coerce a trading parameter to its type and check its range."""
    if name in ("buy_price", "sell_price", "order_volume"):
        result = _to_decimal(name, value)
        if result <= 0:
            raise ConfigError(f"{name} must be greater than zero, got {result}")
        return result
    if name in ("price_offset", "min_volume_threshold_m"):
        result = _to_decimal(name, value)
        if result < 0:
            raise ConfigError(f"{name} must not be negative, got {result}")
        return result
    if name in ("enable_dynamic_pricing", "abort_on_price_warning", "fallback_to_static_prices"):
        return _to_bool(name, value)
    if name in ("max_rounds", "order_timeout_ms"):
        result = _to_int(name, value)
        if result < 1:
            raise ConfigError(f"{name} must be at least 1, got {result}")
        return result
    if name == "stats_every_rounds":
        result = _to_int(name, value)
        if result < 0:
            raise ConfigError(f"{name} must not be negative, got {result}")
        return result
    raise ConfigError(f"Unknown trading parameter: {name}")


@dataclass
class TimingConfig:
    """Wait budgets and delays, all in milliseconds.

    ``wait_*`` applies to required page elements, ``dialog_*`` to the
    optional confirmation dialogs.  Poll and round delays are drawn
    uniformly between their ``min`` and ``max`` bounds.
    """

    wait_attempts: int = 10
    wait_interval_ms: int = 500
    wait_initial_delay_ms: int = 500
    dialog_attempts: int = 5
    dialog_interval_ms: int = 1000
    status_first_check_ms: int = 1000
    status_poll_min_ms: int = 500
    status_poll_max_ms: int = 1000
    round_delay_min_ms: int = 1000
    round_delay_max_ms: int = 2000

    def __post_init__(self) -> None:
        for f in fields(self):
            value = _to_int(f.name, getattr(self, f.name))
            if value < 0:
                raise ConfigError(f"{f.name} must not be negative, got {value}")
            setattr(self, f.name, value)
        if self.wait_attempts < 1 or self.dialog_attempts < 1:
            raise ConfigError("wait_attempts and dialog_attempts must be at least 1")
        if self.status_poll_min_ms > self.status_poll_max_ms:
            raise ConfigError("status_poll_min_ms must not exceed status_poll_max_ms")
        if self.round_delay_min_ms > self.round_delay_max_ms:
            raise ConfigError("round_delay_min_ms must not exceed round_delay_max_ms")


@dataclass
class HistoryConfig:
    """Order history scan settings.

    Attributes
    ----------
    max_pages : int
        Hard ceiling on the number of history pages read per scan.
    page_settle_ms : int
        Pause after turning a page before its rows are read.
    reset_settle_ms : int
        Pause after pressing the reset button.
    time_range_label : str
        Label of the time-range filter selected before the scan.
    """

    max_pages: int = 50
    page_settle_ms: int = 500
    reset_settle_ms: int = 2000
    time_range_label: str = "1周"

    def __post_init__(self) -> None:
        self.max_pages = _to_int("max_pages", self.max_pages)
        if self.max_pages < 1:
            raise ConfigError(f"max_pages must be at least 1, got {self.max_pages}")
        for name in ("page_settle_ms", "reset_settle_ms"):
            value = _to_int(name, getattr(self, name))
            if value < 0:
                raise ConfigError(f"{name} must not be negative, got {value}")
            setattr(self, name, value)


@dataclass
class SelectorsConfig:
    """CSS selectors and UI labels of the exchange page.

    These are the only vendor-specific values in the program.  Adapt
    them here when the exchange changes its markup.
    """

    side_tab: str = ".bn-tab.bn-tab__buySell"
    buy_tab_label: str = "买入"
    sell_tab_label: str = "卖出"
    limit_tab: str = "#bn-tab-LIMIT"
    sell_slider: str = 'input[role="slider"]'
    price_input: str = "#limitPrice"
    volume_input: str = "#limitTotal"
    buy_button: str = ".bn-button.bn-button__buy"
    sell_button: str = ".bn-button.bn-button__sell"
    confirm_modal: str = ".bn-modal-confirm"
    slippage_warning_text: str = "下单手滑提醒"
    fee_modal: str = ".bn-trans.data-show.bn-mask.bn-modal"
    fee_notice_text: str = "预估手续费"
    dialog: str = 'div[role="dialog"]'
    dialog_button: str = "button"
    continue_label: str = "继续"
    open_orders_tab: str = "#bn-tab-orderOrder"
    open_orders_limit_tab: str = "#bn-tab-limit"
    hint_text: str = "div.text-TertiaryText"
    no_open_orders_text: str = "无进行中的订单"
    volume_24h_label: str = "24h成交量"
    trade_tape: str = ".ReactVirtualized__Grid"
    tape_buy_prices: str = '.ReactVirtualized__Grid .flex-1[style*="color: var(--color-Buy)"]'
    tape_sell_prices: str = '.ReactVirtualized__Grid .flex-1[style*="color: var(--color-Sell)"]'
    order_history_tab: str = "#bn-tab-orderHistory"
    history_container: str = "div.bg-TradeBg div.order-6"
    history_limit_tab: str = "#bn-tab-0"
    history_time_range: str = "div"
    history_table: str = "table"
    history_rows: str = ".bn-web-table-tbody .bn-web-table-row"
    history_cells: str = ".bn-web-table-cell"
    filled_status_label: str = "已成交"
    reset_button: str = "button"
    reset_label: str = "重置"
    pagination_item: str = ".bn-pagination-item"
    pagination_active: str = ".bn-pagination-item.active"


@dataclass
class BrowserConfig:
    """Where and how the exchange page is opened.

    Attributes
    ----------
    url : str
        Trading page of the pair.
    headless : bool
        Run Chromium without a window.
    user_data_dir : str
        Persistent browser profile.  It must already hold a logged-in
        exchange session.
    """

    url: str = "https://www.binance.com/zh-CN/alpha/bsc/0x92aa03137385f18539301349dcfc9ebc923ffb10"
    headless: bool = False
    user_data_dir: str = ".browser_profile"


@dataclass
class ReportConfig:
    """Output location of the daily statistics report."""

    out_dir: str = "results"


@dataclass
class Config:
    """Root configuration for the volume bot."""

    trading: TradingConfig = field(default_factory=TradingConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    selectors: SelectorsConfig = field(default_factory=SelectorsConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _build(cls: type, section: str, values: Dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")
    return cls(**values)


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        the defaults defined in the dataclasses.

    Raises
    ------
    ConfigError
        If a section or key is unknown or a value is out of range.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")

    defaults = asdict(Config())
    unknown = sorted(set(raw) - set(defaults))
    if unknown:
        raise ConfigError(f"Unknown section(s) in {path}: {', '.join(unknown)}")
    for section, values in raw.items():
        # A heading whose keys are all commented out loads as None
        if values is None:
            raw[section] = {}
        elif not isinstance(values, dict):
            raise ConfigError(f"Section '{section}' in {path} must be a mapping, got {values!r}")
    merged = _merge_dict(defaults, raw)

    return Config(
        trading=_build(TradingConfig, 'trading', merged['trading']),
        timing=_build(TimingConfig, 'timing', merged['timing']),
        history=_build(HistoryConfig, 'history', merged['history']),
        selectors=_build(SelectorsConfig, 'selectors', merged['selectors']),
        browser=_build(BrowserConfig, 'browser', merged['browser']),
        report=_build(ReportConfig, 'report', merged['report']),
    )
