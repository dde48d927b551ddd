"""
Command line entry point: ocobot -p PAIR -a AMOUNT [prices...]

Places the entry, then manages the stop/target legs until the position
reaches an outcome. Exit code 0 for any outcome, 1 on any fatal error.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import click

from ocobot.config.config import Settings
from ocobot.core.errors import OcoBotError
from ocobot.core.models import PositionIntent
from ocobot.execution.quantity import QuantityAdjuster
from ocobot.infra.binance_exchange import BinanceExchange
from ocobot.infra.logging_cfg import build_logger, log_event
from ocobot.monitoring.metrics import PositionMetrics, start_metrics_server
from ocobot.orchestrator.position_orchestrator import PositionOrchestrator
from ocobot.state.position_state import Outcome

log = logging.getLogger("ocobot")

EXAMPLE = (
    "Example: ocobot -p BNBBTC -a 1 -b 0.002 -s 0.001 -t 0.003\n\n"
    "Place a buy order for 1 BNB @ 0.002 BTC. Once filled, place a stop-limit "
    "sell @ 0.001 BTC. If a price of 0.003 BTC is reached, cancel the stop-limit "
    "order and place a limit sell @ 0.003 BTC."
)


class DecimalParamType(click.ParamType):
    """Parse numeric options straight into Decimal."""
    name = "decimal"

    def convert(self, value, param, ctx):
        if isinstance(value, Decimal):
            return value
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            self.fail(f"{value!r} is not a valid number", param, ctx)
        if not number.is_finite():
            self.fail(f"{value!r} is not a finite number", param, ctx)
        return number


DECIMAL = DecimalParamType()


def _install_signal_loggers(loop: asyncio.AbstractEventLoop) -> List[signal.Signals]:
    """
    Log SIGINT/SIGTERM/SIGHUP once without acting on them. The handler
    removes itself, so a repeated signal gets the default disposition.
    """
    installed: List[signal.Signals] = []

    def _on_signal(sig: signal.Signals) -> None:
        log_event(log, "signal_received", level=logging.WARNING, signal=sig.name)
        loop.remove_signal_handler(sig)

    for name in ("SIGINT", "SIGTERM", "SIGHUP"):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
        except (NotImplementedError, RuntimeError):
            # Windows / non-main thread: no loop signal handlers
            continue
        installed.append(sig)
    return installed


async def run_position(
    intent: PositionIntent,
    settings: Settings,
    metrics: Optional[PositionMetrics] = None,
) -> Outcome:
    exchange = await BinanceExchange.create(settings)
    orchestrator = PositionOrchestrator(
        intent,
        exchange,
        adjuster=QuantityAdjuster(settings.fee_discount_asset, settings.non_discount_fee_rate),
        metrics=metrics,
    )
    loop = asyncio.get_running_loop()
    installed = _install_signal_loggers(loop)
    try:
        return await orchestrator.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await exchange.close()


@click.command(epilog=EXAMPLE, context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-p", "--pair", required=True, help="Trading pair, e.g. BNBBTC.")
@click.option("-a", "--amount", required=True, type=DECIMAL, help="Amount to buy/sell.")
@click.option("-b", "-e", "--buy", "--entry", "buy_price", type=DECIMAL, default=None,
              help="Buy price (0 for market buy).")
@click.option("-y", "--trigger", "trigger_price", type=DECIMAL, default=None, help="Trigger price.")
@click.option("-s", "--stop", "stop_price", type=DECIMAL, default=None,
              help="Stop-limit order stop price.")
@click.option("-l", "--limit", "limit_price", type=DECIMAL, default=None,
              help="Stop-limit order limit sell price (if different from stop price).")
@click.option("-t", "--target", "target_price", type=DECIMAL, default=None,
              help="Target limit order sell price.")
@click.option("-c", "--cancel", "cancel_price", type=DECIMAL, default=None,
              help="Price at which to cancel the buy order.")
@click.option("-S", "--scale-out-amount", "--scaleOutAmount", "scale_out_amount", type=DECIMAL, default=None,
              help="Amount to sell (scale out) at target price (if different from amount).")
@click.option("--log-level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Override OCO_LOG_LEVEL.")
def cli(
    pair: str,
    amount: Decimal,
    buy_price: Optional[Decimal],
    trigger_price: Optional[Decimal],
    stop_price: Optional[Decimal],
    limit_price: Optional[Decimal],
    target_price: Optional[Decimal],
    cancel_price: Optional[Decimal],
    scale_out_amount: Optional[Decimal],
    log_level: Optional[str],
) -> None:
    """Buy, then protect the position with a stop-loss and/or take-profit."""
    try:
        settings = Settings.load()
        settings.require_credentials()
    except ValueError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    level = (log_level or settings.log_level).upper()
    build_logger(
        "ocobot",
        level=getattr(logging, level, logging.INFO),
        file_path=settings.log_file,
        tick_log_cooldown_sec=settings.tick_log_cooldown_sec,
    )
    log_event(log, "startup", **settings.dump())

    intent = PositionIntent(
        symbol=pair.upper(),
        amount=amount,
        buy_price=buy_price,
        trigger_price=trigger_price,
        stop_price=stop_price,
        limit_price=limit_price,
        target_price=target_price,
        cancel_price=cancel_price,
        scale_out_amount=scale_out_amount,
    )

    exit_code = 0
    try:
        metrics = PositionMetrics()
        if start_metrics_server(metrics, settings.metrics_port):
            log_event(log, "metrics_server", port=settings.metrics_port)
        outcome = asyncio.run(run_position(intent, settings, metrics))
        log_event(log, "done", symbol=intent.symbol, outcome=outcome.value)
    except OcoBotError as exc:
        log.error("fatal_error %s: %s", type(exc).__name__, exc)
        exit_code = 1
    finally:
        log_event(log, "process_terminated", msg="process terminated")
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
