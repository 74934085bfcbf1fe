"""
pvemirror — CLI entrypoint.

Usage:
    pvemirror --help
    pvemirror run
    pvemirror run --autoremove --no-install-ovs
    pvemirror detect
    pvemirror backups
    pvemirror config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from pvemirror import __version__
from pvemirror.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)


def _error(message: str) -> None:
    click.secho(f"[ERROR] {message}", fg="red", err=True)


class _LockWaitLine:
    """Status line redrawn in place on stderr while another apt holds the lock."""

    def __init__(self) -> None:
        self.open = False

    def __call__(self, state) -> None:
        if not state.locked:
            self.close()
            return
        click.echo(
            "Waiting for other package management processes to finish... "
            f"({state.elapsed_seconds:g}s)\r",
            nl=False,
            err=True,
        )
        self.open = True

    def close(self) -> None:
        if self.open:
            click.echo(err=True)
            self.open = False


@click.group()
@click.version_option(version=__version__, prog_name="pvemirror")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pvemirror.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """pvemirror — switch a Proxmox VE host to a regional package mirror."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )


def _settings_overrides(
    mirror: str | None = None,
    backup_dir: str | None = None,
    root: str | None = None,
    restart_delay: int | None = None,
) -> dict:
    return {
        "mirror_url": mirror,
        "backup_dir": backup_dir,
        "root": root,
        "restart_delay_seconds": restart_delay,
    }


@cli.command()
@click.option(
    "--autoremove/--no-autoremove",
    default=None,
    help="Run 'apt-get autoremove' without asking (default: ask).",
)
@click.option(
    "--install-ovs/--no-install-ovs",
    default=None,
    help="Install openvswitch-switch without asking (default: ask).",
)
@click.option("--mirror", default=None, help="Mirror base URL.")
@click.option("--backup-dir", default=None, help="Where to keep backups.")
@click.option("--root", default=None, help="Treat this directory as the host's /.")
@click.option(
    "--restart-delay",
    type=int,
    default=None,
    help="Defer the service restart by N seconds via systemd-run.",
)
@click.option("--dry-run", is_flag=True, help="Detect and plan, but change nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    autoremove: bool | None,
    install_ovs: bool | None,
    mirror: str | None,
    backup_dir: str | None,
    root: str | None,
    restart_delay: int | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Back up, switch repositories to the mirror, update, restart services.

    Examples:

        pvemirror run

        pvemirror run --autoremove --no-install-ovs

        pvemirror run --mirror https://mirrors.tuna.tsinghua.edu.cn --dry-run
    """
    from pvemirror.core.services.decisions import FlagDecisions, MixedDecisions
    from pvemirror.core.use_cases.run import run_mirror_setup

    if as_json:
        # No prompts in machine-readable mode; unset means no
        decisions = FlagDecisions(bool(autoremove), bool(install_ovs))
        on_wait = None
    else:
        decisions = MixedDecisions(autoremove, install_ovs)
        on_wait = _LockWaitLine()

    result = run_mirror_setup(
        config_path=ctx.obj.get("config_path"),
        overrides=_settings_overrides(mirror, backup_dir, root, restart_delay),
        decisions=decisions,
        on_wait=on_wait,
        dry_run=dry_run,
    )
    if on_wait is not None:
        on_wait.close()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        _error(result.error)
        sys.exit(1)

    report = result.report
    assert report is not None

    if not report.ok:
        _error(report.error or "Run failed")
        if report.backup_dir:
            click.echo(f"   Backups of the original files: {report.backup_dir}", err=True)
        sys.exit(1)

    if ctx.obj.get("quiet"):
        return

    click.echo()
    if dry_run:
        plan = report.plan
        assert plan is not None
        click.secho(f"🔍 [dry-run] {plan.codename} — {len(plan.targets)} edit(s) planned", fg="cyan", bold=True)
        for target in plan.targets:
            click.echo(f"   • {target.kind:<16} {target.path}")
        click.echo()
        return

    click.secho("✅ Proxmox mirror configuration complete", fg="green", bold=True)
    click.echo(f"   Mirror:  {result.settings.mirror_url if result.settings else ''}")
    click.echo(f"   Backups: {report.backup_dir or '(nothing to back up)'}")
    click.echo(f"   Changes: {len(report.applied)} applied, {len(report.skipped)} already in place")
    click.echo()


@cli.command()
@click.option("--mirror", default=None, help="Mirror base URL.")
@click.option("--root", default=None, help="Treat this directory as the host's /.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def detect(ctx: click.Context, mirror: str | None, root: str | None, as_json: bool) -> None:
    """Show host facts and the edits a run would make."""
    from pvemirror.core.use_cases.detect import run_detect

    result = run_detect(
        config_path=ctx.obj.get("config_path"),
        overrides=_settings_overrides(mirror=mirror, root=root),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.facts is None:
        _error(result.error or "Detection failed")
        sys.exit(1)

    facts = result.facts
    click.secho(f"\n🔍 {facts.pretty_name or facts.os_id}", fg="cyan", bold=True)
    click.echo(f"   Codename: {facts.codename}")
    if facts.ceph_release:
        click.echo(f"   Ceph:     {facts.ceph_release}")
    click.echo(f"   Tools:    {', '.join(sorted(facts.tools)) or '(none)'}")
    click.echo()

    if not result.supported:
        _error(result.error or "Unsupported host")
        sys.exit(1)

    plan = result.plan
    assert plan is not None
    click.secho(f"   Backups: {len(plan.backup_paths)}", fg="white", bold=True)
    for path in plan.backup_paths:
        marker = "✓" if path.is_file() else "·"
        click.echo(f"     {marker} {path}")
    click.secho(f"   Edits: {len(plan.targets)}", fg="white", bold=True)
    for target in plan.targets:
        click.echo(f"     • {target.kind:<16} {target.path}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def backups(ctx: click.Context, as_json: bool) -> None:
    """List backup runs, newest first."""
    from pvemirror.core.config.loader import ConfigError, load_settings
    from pvemirror.core.persistence.audit import AuditWriter
    from pvemirror.core.services.backup_manager import list_runs

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        _error(str(e))
        sys.exit(1)

    runs = list_runs(settings.backup_root)
    ledger = AuditWriter(backup_root=settings.backup_root).by_backup_dir()
    for entry in runs:
        audit = ledger.get(entry["path"])
        entry["status"] = audit.status if audit else None
        entry["stage"] = audit.stage if audit else None

    if as_json:
        click.echo(json.dumps({"backup_root": str(settings.backup_root), "runs": runs}, indent=2))
        return

    if not runs:
        click.echo(f"No backups under {settings.backup_root}")
        return

    click.secho(f"\n💾 {settings.backup_root}", fg="cyan", bold=True)
    for entry in runs:
        outcome = entry["status"] or "unknown"
        if entry["status"] == "failed":
            outcome = f"failed at {entry['stage']}"
        click.echo(f"   • {entry['name']}  ({entry['count']} file(s), {outcome})")
        if ctx.obj.get("verbose"):
            for name in entry["files"]:
                click.echo(f"       {name}")
    click.echo()


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate pvemirror.yml."""
    from pvemirror.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.settings is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Source:  {result.config_path or '(defaults)'}")
        click.echo(f"   Mirror:  {result.settings.mirror_url}")
        click.echo(f"   Backups: {result.settings.backup_dir}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
