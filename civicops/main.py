"""
civicops — CLI Entry Point

Usage:
    python -m civicops.main health [--json]
    python -m civicops.main metrics [--format json|prometheus]
    python -m civicops.main versions [--history]
    python -m civicops.main rollback TARGET
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from typing import Optional

import click

from .cli.ops import alerts_cmd, health, metrics_cmd
from .cli.versions import cache_check, manifest_cmd, migration_plan, rollback, versions
from .logging_config import setup_logging
from .runtime import ControlPlane, get_control_plane, set_control_plane

# Initialize logging
setup_logging()


@click.group()
@click.option("--thresholds", "thresholds_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Alert thresholds YAML file")
@click.pass_context
def cli(ctx: click.Context, thresholds_path: Optional[Path]) -> None:
    """civicops — Observability and versioning control plane."""
    ctx.ensure_object(dict)

    if thresholds_path is not None:
        from .config.loader import load_thresholds

        set_control_plane(ControlPlane(thresholds=load_thresholds(thresholds_path)))

    ctx.obj["plane"] = get_control_plane()


cli.add_command(health)
cli.add_command(metrics_cmd)
cli.add_command(alerts_cmd)
cli.add_command(versions)
cli.add_command(cache_check)
cli.add_command(migration_plan)
cli.add_command(rollback)
cli.add_command(manifest_cmd)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
