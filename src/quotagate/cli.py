"""
quotagate CLI
Operator console for quota availability and one-off invocations.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quotagate.config import settings
from quotagate.errors import ConnectionFailureError, QuotaExceededError, UnknownTaskError
from quotagate.layer import InvocationLayer, build_layer
from quotagate.quota.ledger import AvailabilitySnapshot
from quotagate.tiers import TierPreference

console = Console()


def run_with_layer(func: Callable[[InvocationLayer], Awaitable[Any]]) -> Any:
    """Build a layer, run an async function against it, then close it."""

    async def runner() -> Any:
        layer = build_layer()
        try:
            return await func(layer)
        finally:
            await layer.close()

    return asyncio.run(runner())


def format_wait(seconds: int) -> str:
    """Render a countdown as h/m/s."""
    if seconds <= 0:
        return "-"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _status_row(snapshot: AvailabilitySnapshot) -> list[str]:
    if snapshot.is_hard_blocked:
        state = "[red]hard blocked[/red]"
    elif snapshot.is_daily_blocked:
        state = "[red]daily limit[/red]"
    elif snapshot.is_blocked:
        state = "[yellow]minute limit[/yellow]"
    else:
        state = "[green]available[/green]"

    return [
        snapshot.tier.value,
        f"{snapshot.rpm_left}/{snapshot.rpm_cap}",
        f"{snapshot.rpd_left}/{snapshot.rpd_cap}",
        state,
        format_wait(snapshot.next_available_in_seconds),
    ]


@click.group()
@click.option("--log-level", "-l", default=None, help="Logging level (defaults to LOG_LEVEL)")
@click.pass_context
def cli(ctx, log_level: Optional[str]):
    """quotagate - quota-aware access to generative AI tiers."""
    ctx.ensure_object(dict)
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool):
    """Show per-tier availability."""

    async def collect(layer: InvocationLayer) -> dict[str, Any]:
        return {
            "snapshots": await layer.ledger.snapshot_all(),
            "total_tokens": await layer.ledger.total_tokens_consumed(),
            "prefer_secondary": await layer.ledger.should_prefer_secondary(),
        }

    data = run_with_layer(collect)

    if as_json:
        payload = {
            "tiers": {tier.value: snap.to_dict() for tier, snap in data["snapshots"].items()},
            "total_tokens": data["total_tokens"],
            "prefer_secondary": data["prefer_secondary"],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Quota Availability")
    table.add_column("Tier", style="cyan")
    table.add_column("Minute", justify="right")
    table.add_column("Day", justify="right")
    table.add_column("State")
    table.add_column("Next slot", justify="right")

    for snapshot in data["snapshots"].values():
        table.add_row(*_status_row(snapshot))

    console.print(table)
    console.print(f"Tokens consumed: {data['total_tokens']:,}")
    if data["prefer_secondary"]:
        console.print("[yellow]Auto requests are falling back to the secondary tier[/yellow]")


@cli.command()
def tokens():
    """Show token counters."""

    async def collect(layer: InvocationLayer) -> tuple[int, int]:
        return (
            await layer.ledger.total_tokens_consumed(),
            await layer.ledger.total_tokens_saved(),
        )

    total, saved = run_with_layer(collect)
    console.print(f"Tokens consumed: {total:,}")
    console.print(f"Tokens saved by cache: {saved:,}")


@cli.command()
@click.argument("prompt")
@click.option("--task", "-t", default="ask_question", help="Task name")
@click.option("--tier", default="auto", help="auto, primary, secondary (or pro/flash)")
@click.option("--retries", "-r", type=click.IntRange(min=1), default=None, help="Attempt budget")
def ask(prompt: str, task: str, tier: str, retries: Optional[int]):
    """Run a prompt through the invocation layer."""
    try:
        preference = TierPreference.parse(tier)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--tier")

    async def call(layer: InvocationLayer):
        return await layer.invoker.invoke_with_details(
            task,
            preference=preference,
            payload=prompt,
            retry_budget=retries,
        )

    try:
        result = run_with_layer(call)
    except UnknownTaskError as e:
        console.print(f"❌ [red]{escape(str(e))}[/red]")
        sys.exit(1)
    except QuotaExceededError as e:
        console.print(f"⛔ [red]{escape(str(e))}[/red]")
        sys.exit(1)
    except ConnectionFailureError as e:
        console.print(f"❌ [red]{escape(str(e))}[/red]")
        sys.exit(1)

    source = "cache" if result.cached else f"{result.attempts} attempt(s)"
    output_tokens = result.usage.get("output_tokens")
    if output_tokens is not None:
        source = f"{source}, {output_tokens} output tokens"
    console.print(Panel(
        Text(result.text),
        title=f"{result.model_id} ({result.tier.value})",
        subtitle=source,
    ))


@cli.command()
def ping():
    """Check that the provider answers on the secondary tier."""

    async def check(layer: InvocationLayer):
        return await layer.invoker.test_connection()

    result = run_with_layer(check)
    if result.success:
        console.print(f"✅ [green]{escape(result.message)}[/green]")
    else:
        console.print(f"❌ [red]{escape(result.message)}[/red]")
        sys.exit(1)


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
