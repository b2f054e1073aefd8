"""
wahaprov — CLI entrypoint.

Usage:
    wahaprov --help
    sudo wahaprov install --port 3001 --dir waha-1
    sudo wahaprov install --port 3000 --chatwoot 3009 --dir waha-chatwoot
    sudo wahaprov bootstrap
    wahaprov check --port 3000
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path, PurePosixPath
from typing import Any

import click

from wahaprov import __version__
from wahaprov.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="wahaprov")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="YAML file with provisioning overrides.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision a Debian/Ubuntu host for the WAHA container stack."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=resolve_level(verbose=verbose, quiet=quiet, debug=debug),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
        quiet_third_party=not debug,
    )


def _relative_dir(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return value
    path = PurePosixPath(value)
    if path.is_absolute() or ".." in path.parts or str(path) == ".":
        raise click.BadParameter("must be a relative path without '..' components")
    return value


def _fail(message: str) -> None:
    click.echo(f"ERROR: {message}", err=True)
    sys.exit(1)


def _build_spec(ctx: click.Context, profile: str, overrides: dict[str, Any]):
    from wahaprov.core.config.loader import build_spec
    from wahaprov.core.errors import ConfigError

    overrides.setdefault("docker_group_user", os.environ.get("SUDO_USER"))
    try:
        return build_spec(profile, overrides, ctx.obj.get("config_path"))
    except ConfigError as e:
        _fail(str(e))


def _run(spec) -> Any:
    from wahaprov.core.engine.orchestrator import Orchestrator

    return Orchestrator(spec).run()


# ── install ─────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--port",
    type=click.IntRange(1, 65535),
    default=None,
    help="Host port for WAHA.  [default: 3000]",
)
@click.option(
    "--dir",
    "dir_name",
    default=None,
    callback=_relative_dir,
    help="Stack directory, relative to the base directory.  [default: waha]",
)
@click.option(
    "--chatwoot",
    "chatwoot_port",
    type=click.IntRange(1, 65535),
    default=None,
    help="Also deploy Chatwoot on this host port.",
)
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Parent of the stack directory.  [default: /root]",
)
@click.option("--timezone", default=None, help="TZ for the WAHA container.")
@click.option("--ipv6/--no-ipv6", default=None, help="Let UFW manage IPv6 rules.")
@click.option("--dry-run", is_flag=True, help="Inspect and plan, but change nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    port: int | None,
    dir_name: str | None,
    chatwoot_port: int | None,
    base_dir: Path | None,
    timezone: str | None,
    ipv6: bool | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Install and start WAHA (optionally with Chatwoot)."""
    profile = "chatwoot" if chatwoot_port is not None else "standalone"
    spec = _build_spec(
        ctx,
        profile,
        {
            "port": port,
            "dir_name": dir_name,
            "chatwoot_port": chatwoot_port,
            "base_dir": base_dir,
            "timezone": timezone,
            "ipv6": ipv6,
            "dry_run": dry_run,
        },
    )
    result = _run(spec)
    _report(ctx, result, as_json)


# ── bootstrap ───────────────────────────────────────────────────


@cli.command()
@click.option(
    "--upgrade/--no-upgrade",
    default=None,
    help="Upgrade installed packages first.  [default: upgrade]",
)
@click.option("--dry-run", is_flag=True, help="Inspect and plan, but change nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def bootstrap(ctx: click.Context, upgrade: bool | None, dry_run: bool, as_json: bool) -> None:
    """Prepare a fresh server: base packages, Git and Docker."""
    spec = _build_spec(ctx, "bootstrap", {"upgrade": upgrade, "dry_run": dry_run})
    result = _run(spec)
    _report(ctx, result, as_json)


# ── check ───────────────────────────────────────────────────────


@cli.command()
@click.option("--port", type=click.IntRange(1, 65535), default=3000, show_default=True,
              help="WAHA host port to check.")
@click.option("--chatwoot", "chatwoot_port", type=click.IntRange(1, 65535), default=None,
              help="Chatwoot host port to check.")
def check(port: int, chatwoot_port: int | None) -> None:
    """Read-only preflight: privileges and free ports."""
    from wahaprov.core.errors import ProvisionError
    from wahaprov.core.services.ports import ensure_ports_free
    from wahaprov.core.services.privilege import ensure_privileged

    ports = [port] if chatwoot_port is None else [port, chatwoot_port]
    errors = []
    for label, check_fn in (
        ("privileges", ensure_privileged),
        ("ports", lambda: ensure_ports_free(ports)),
    ):
        try:
            check_fn()
        except ProvisionError as e:
            click.secho(f"   ✗ {label}", fg="red")
            errors.append(str(e))
        else:
            click.secho(f"   ✓ {label}", fg="green")

    for message in errors:
        click.echo(f"ERROR: {message}", err=True)
    if errors:
        sys.exit(1)
    click.secho("✅ Preflight checks passed", fg="green", bold=True)


# ── Report ──────────────────────────────────────────────────────


def _report(ctx: click.Context, result, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(reveal_secrets=True), indent=2))
        if not result.ok:
            _fail(f"{result.failed_step}: {result.error}")
        return

    quiet = ctx.obj.get("quiet", False)

    if not quiet:
        for step in result.steps:
            icon, color = {
                "ok": ("✓", "green"),
                "skipped": ("⊘", "yellow"),
                "failed": ("✗", "red"),
            }[step.status]
            click.secho(f"   {icon} {step.name}", fg=color, nl=False)
            click.echo(f"  {step.message}" if step.message else "")

    if result.warnings and not quiet:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warning in result.warnings:
            click.echo(f"   • {warning}")

    if not result.ok:
        if result.credentials is not None and not quiet:
            click.echo()
            click.echo("Credentials generated before the failure (not yet deployed):")
            _print_credentials(result.credentials)
        _fail(result.error or f"step '{result.failed_step}' failed")

    if result.dry_run:
        click.echo()
        click.secho("Dry run complete; no changes were made.", fg="cyan")
        return

    click.echo()
    if result.profile == "bootstrap":
        click.secho("Server bootstrap complete.", fg="green", bold=True)
        if result.reboot_required:
            click.echo("Reboot the server to finish: sudo reboot")
        return

    click.secho("WAHA Installation Summary", bold=True)
    click.echo(f"WAHA URL: {result.urls.get('waha', '')}")
    if "chatwoot" in result.urls:
        click.echo(f"Chatwoot URL: {result.urls['chatwoot']}")
    if result.credentials is not None:
        _print_credentials(result.credentials)
    click.echo()
    click.echo("Notes:")
    click.echo(f"  View logs:  cd {result.target_dir} && docker compose logs -f")
    click.echo(f"  Restart:    cd {result.target_dir} && docker compose restart")


def _print_credentials(credentials) -> None:
    revealed = credentials.to_dict(reveal_secrets=True)
    click.echo(f"API Key: {revealed['api_key']}")
    click.echo(f"Dashboard Username: {revealed['dashboard_username']}")
    click.echo(f"Dashboard Password: {revealed['dashboard_password']}")


if __name__ == "__main__":
    cli()
