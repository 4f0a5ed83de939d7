"""
CLI ops commands — health, metrics, alerts.

Usage:
    python -m civicops.main health [--json]
    python -m civicops.main metrics [--format prometheus|json]
    python -m civicops.main alerts
"""

from __future__ import annotations

import json

import click

STATUS_STYLES = {
    "healthy": ("✅", "green"),
    "degraded": ("⚠️", "yellow"),
    "critical": ("❌", "red"),
}

CHECK_STYLES = {
    "pass": ("✓", "green"),
    "fail": ("✗", "red"),
    "N/A": ("-", "white"),
}


@click.command("health")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Check system health status."""
    plane = ctx.obj["plane"]
    result = plane.health.get_health()

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        icon, color = STATUS_STYLES.get(result["status"], ("❓", "white"))

        click.echo()
        click.secho(f"{icon} System Health: {result['status'].upper()}", fg=color, bold=True)
        click.echo(f"   Uptime: {result['uptime']}")
        click.echo()

        click.echo("Checks:")
        for name, outcome in result["checks"].items():
            c_icon, c_color = CHECK_STYLES.get(outcome, ("?", "white"))
            click.secho(f"  {c_icon} {name}", fg=c_color, nl=False)
            click.echo(f": {outcome}")

        alerts = plane.health.active_alerts
        if alerts:
            click.echo()
            click.echo("Alerts:")
            for alert in alerts:
                a_color = "red" if alert.level.value == "critical" else "yellow"
                click.secho(f"  [{alert.level.value}] {alert.message}", fg=a_color)

        click.echo()

    # Exit code based on health
    if not result["healthy"]:
        raise SystemExit(1)


@click.command("metrics")
@click.option("--format", "output_format", type=click.Choice(["prometheus", "json"]), default="json")
@click.pass_context
def metrics_cmd(ctx: click.Context, output_format: str) -> None:
    """Export metrics for monitoring."""
    plane = ctx.obj["plane"]

    if output_format == "prometheus":
        click.echo(plane.metrics.export_prometheus())
    else:
        click.echo(json.dumps(plane.metrics.get_metrics(), indent=2))


@click.command("alerts")
@click.option("--check/--no-check", default=True, help="Run a health evaluation first")
@click.pass_context
def alerts_cmd(ctx: click.Context, check: bool) -> None:
    """Show active alerts and thresholds."""
    plane = ctx.obj["plane"]
    if check:
        plane.health.check_health()
    click.echo(json.dumps(plane.health.get_alerts(), indent=2))
