"""
CLI entry point: mbot run | open | close | status | history | health.

Every command loads config from --config (default config.yaml), prints
human-readable output, and writes the trade history to the journal.
"""

import logging
import sys

import click
from dotenv import load_dotenv

from config import load_config

load_dotenv()

logger = logging.getLogger("mbot")

_SIDES = click.Choice(["long", "short"], case_sensitive=False)


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


def _step_failed(exc: Exception) -> None:
    duration = getattr(exc, "duration_s", None)
    message = str(exc) if duration is None else f"{exc} (after {duration:.2f}s)"
    _fail(message)


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """mbot: leveraged long/short positions on a bonding-curve market."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- mbot run ----------


@cli.command()
@click.argument("plan_path", type=click.Path(dir_okay=False))
@click.pass_context
def run(ctx: click.Context, plan_path: str) -> None:
    """Execute every enabled step of a plan file, in order."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_run_report
    from config.plan_config import PlanConfigError, load_plan
    from runner import BotContext, PlanRunner

    try:
        plan = load_plan(plan_path)
    except PlanConfigError as exc:
        _fail(str(exc))

    click.echo(f"Running plan {plan.name}: {len(plan)} steps on {cfg.instrument} ...")
    with BotContext.from_config(cfg) as bot:
        report = PlanRunner(bot).run(plan)
    click.echo(format_run_report(report))
    if not report.ok:
        raise SystemExit(1)


# ---------- mbot open ----------


@cli.command(name="open")
@click.option("--side", type=_SIDES, required=True, help="Position side.")
@click.option("--budget", default=None, help="Budget in base units (default: 1 SOL).")
@click.option("--adverse-pct", "adverse_pct", default=None, type=float, help="Stop distance as a fraction, e.g. 0.15.")
@click.option("--description", default="", help="Free text recorded in the history.")
@click.pass_context
def open_cmd(ctx: click.Context, side: str, budget: str | None, adverse_pct: float | None, description: str) -> None:
    """Open one long or short position."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_open_result
    from orchestrator.contracts import OpenLong, OpenShort
    from gateway import BridgeError
    from orchestrator.errors import OrchestratorError
    from runner import BotContext

    step_cls = OpenLong if side.lower() == "long" else OpenShort
    kwargs = {"description": description}
    if adverse_pct is not None:
        kwargs["adverse_move_pct"] = adverse_pct
    try:
        if budget is not None:
            kwargs["budget"] = int(budget)
        step = step_cls(**kwargs)
    except (TypeError, ValueError) as exc:
        _fail(str(exc))

    with BotContext.from_config(cfg) as bot:
        try:
            result = bot.orchestrator.execute(step)
        except (OrchestratorError, BridgeError) as exc:
            _step_failed(exc)
    click.echo(format_open_result(result))


# ---------- mbot close ----------


@cli.command()
@click.option("--side", type=_SIDES, required=True, help="Position side.")
@click.option(
    "--order-by",
    "order_by",
    type=click.Choice(["start_time_asc", "start_time_desc"]),
    default="start_time_desc",
    show_default=True,
    help="Which open position to close first.",
)
@click.option("--fraction", default=100.0, type=float, show_default=True, help="Percent of the position to close.")
@click.option("--description", default="", help="Free text recorded in the history.")
@click.pass_context
def close(ctx: click.Context, side: str, order_by: str, fraction: float, description: str) -> None:
    """Close all or part of one open position."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_close_result
    from orchestrator.contracts import CloseLong, ClosePolicy, CloseShort
    from gateway import BridgeError
    from orchestrator.errors import OrchestratorError
    from runner import BotContext

    try:
        policy = ClosePolicy(ordering_key=order_by, close_fraction=fraction)
    except ValueError as exc:
        _fail(str(exc))
    step = (CloseLong if side.lower() == "long" else CloseShort)(policy=policy, description=description)

    with BotContext.from_config(cfg) as bot:
        try:
            result = bot.orchestrator.execute(step)
        except (OrchestratorError, BridgeError) as exc:
            _step_failed(exc)
    click.echo(format_close_result(result))


# ---------- mbot status ----------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show open positions from the local ledger."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_positions
    from ledger import LedgerStore, OrderingKey, PositionLedger, Side

    ledger = PositionLedger()
    ledger.restore(LedgerStore(cfg.ledger.state_path).load())
    positions = [
        p
        for side in Side
        for p in ledger.query_positions(side, OrderingKey.START_TIME_ASC)
    ]
    click.echo(format_positions(cfg.instrument, positions))


# ---------- mbot history ----------


@cli.command()
@click.option("--limit", default=20, show_default=True, help="Number of recent entries to show.")
@click.pass_context
def history(ctx: click.Context, limit: int) -> None:
    """Show recent trade history."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_history
    from ledger import LedgerStore, PositionLedger

    ledger = PositionLedger()
    ledger.restore(LedgerStore(cfg.ledger.state_path).load())
    click.echo(format_history(ledger.history(limit=limit)))


# ---------- mbot health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, plan schema, ledger store, bridge.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (instrument={cfg.instrument})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    from config.plan_config import DEFAULT_SCHEMA_PATH

    if DEFAULT_SCHEMA_PATH.exists():
        checks.append(("plan_schema", True, str(DEFAULT_SCHEMA_PATH)))
    else:
        checks.append(("plan_schema", False, f"missing: {DEFAULT_SCHEMA_PATH}"))

    try:
        from ledger import LedgerStore
        snapshot = LedgerStore(cfg.ledger.state_path).load()
        checks.append((
            "ledger",
            True,
            f"{len(snapshot['positions'])} open positions, {len(snapshot['history'])} history entries",
        ))
    except Exception as e:
        checks.append(("ledger", False, str(e)))

    from gateway import BridgeClient

    with BridgeClient(cfg.gateway.url, token=cfg.gateway.token, timeout=cfg.gateway.timeout_s) as bridge:
        alive = bridge.heartbeat()
    checks.append(("bridge", alive, cfg.gateway.url if alive else f"no heartbeat from {cfg.gateway.url}"))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
