"""
CLI versioning commands — versions, cache compatibility, migrations, rollback.

Usage:
    python -m civicops.main versions [--history] [--json]
    python -m civicops.main cache-check CACHED REQUIRED
    python -m civicops.main migration-plan FROM TO
    python -m civicops.main rollback TARGET
    python -m civicops.main manifest
"""

from __future__ import annotations

import json

import click


@click.command("versions")
@click.option("--history", "show_history", is_flag=True, help="Include release history")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def versions(ctx: click.Context, show_history: bool, as_json: bool) -> None:
    """Show tracked component versions."""
    manifest = ctx.obj["plane"].manifest
    data = manifest.get_versions()

    if as_json:
        if show_history:
            data["history"] = [e.model_dump() for e in manifest.get_version_history()]
        click.echo(json.dumps(data, indent=2))
        return

    click.echo()
    click.secho(f"📦 System version: {manifest.system}", bold=True)
    for category in ("ai", "cache", "pipeline"):
        click.echo()
        click.echo(f"  {category}:")
        for name, version in sorted(data.get(category, {}).items()):
            click.echo(f"    {name:20} {version}")

    if show_history:
        click.echo()
        click.echo("  history:")
        for entry in manifest.get_version_history():
            marker = "→" if entry.version == manifest.system else " "
            click.echo(f"  {marker} {entry.version:8} phase {entry.phase}  {entry.date}  {entry.description}")
    click.echo()


@click.command("cache-check")
@click.argument("cached")
@click.argument("required")
def cache_check(cached: str, required: str) -> None:
    """Check whether a cache entry written at CACHED satisfies REQUIRED."""
    from ..versioning.manifest import is_cache_compatible

    if is_cache_compatible(cached, required):
        click.secho(f"✓ {cached} is compatible with {required}", fg="green")
        return

    click.secho(f"✗ {cached} is not compatible with {required}", fg="red")
    raise SystemExit(1)


@click.command("migration-plan")
@click.argument("from_version")
@click.argument("to_version")
@click.pass_context
def migration_plan(ctx: click.Context, from_version: str, to_version: str) -> None:
    """Show the registered migration for FROM_VERSION -> TO_VERSION."""
    plan = ctx.obj["plane"].migrations.get_migration_plan(from_version, to_version)
    click.echo(json.dumps(plan, indent=2))
    if not plan["available"]:
        raise SystemExit(1)


@click.command("rollback")
@click.argument("target_version")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def rollback(ctx: click.Context, target_version: str, as_json: bool) -> None:
    """Plan a rollback to TARGET_VERSION. Nothing is executed."""
    from ..validation import RollbackError

    try:
        plan = ctx.obj["plane"].migrations.rollback(target_version)
    except RollbackError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(plan.to_dict(), indent=2))
        return

    data = plan.to_dict()
    click.echo()
    click.secho(f"⏪ Rollback plan: {data['from']} → {data['to']}", bold=True)
    click.echo(f"   Steps: {data['rollback_steps']}")
    for i, step in enumerate(data["steps"], 1):
        click.echo(f"   {i}. {step['from']} → {step['to']}  ({step['script']})")
    click.echo()
    click.secho(f"   {data['note']}", fg="yellow")
    click.echo()


@click.command("manifest")
@click.option("--output", type=click.Path(dir_okay=False), help="Write to file instead of stdout")
@click.pass_context
def manifest_cmd(ctx: click.Context, output: str | None) -> None:
    """Export the version manifest for audit."""
    data = json.dumps(ctx.obj["plane"].migrations.export_manifest(), indent=2)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(data + "\n")
        click.secho(f"✅ Manifest written to {output}", fg="green")
    else:
        click.echo(data)
