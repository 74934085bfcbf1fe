"""
Package and service steps — the external commands a run issues.

Every command goes through the adapter registry as an Action; a failed
receipt is fatal and surfaces as CommandError.
"""

from __future__ import annotations

import logging
from typing import Callable

from pvemirror.adapters.registry import AdapterRegistry
from pvemirror.core.errors import CommandError
from pvemirror.core.models.action import Action, Receipt
from pvemirror.core.services.decisions import DecisionProvider

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
OPENVSWITCH_PACKAGE = "openvswitch-switch"
DAILY_UPDATE_SERVICE = "pve-daily-update.service"


def run_command(
    registry: AdapterRegistry,
    action_id: str,
    argv: list[str],
    env: dict[str, str] | None = None,
    stream: bool = False,
) -> Receipt:
    """Run one command; raise CommandError if it fails."""
    action = Action(
        id=action_id,
        name=" ".join(argv),
        adapter="shell",
        params={"argv": argv, "stream": stream},
    )
    logger.debug("Running %s", action.name)
    receipt = registry.execute_action(action, env=env)
    if receipt.failed:
        raise CommandError(f"'{action.name}' failed: {receipt.error}")
    return receipt


def update_packages(
    registry: AdapterRegistry,
    decisions: DecisionProvider,
    wait_for_lock: Callable[[], object],
    turnkey: bool = True,
) -> list[Receipt]:
    """Refresh templates, upgrade the system, and run the optional steps.

    ``wait_for_lock`` is called right before the first apt-get command.
    """
    receipts: list[Receipt] = []

    logger.info("Updating CT (LXC) templates...")
    receipts.append(run_command(registry, "pveam-update", ["pveam", "update"]))

    wait_for_lock()

    logger.info("Updating package lists and upgrading the system...")
    receipts.append(run_command(
        registry, "apt-update", ["apt-get", "update"], env=APT_ENV, stream=True,
    ))
    receipts.append(run_command(
        registry, "apt-full-upgrade", ["apt-get", "full-upgrade", "-y"],
        env=APT_ENV, stream=True,
    ))
    logger.info("System updated and upgraded successfully.")

    if decisions.autoremove():
        receipts.append(run_command(
            registry, "apt-autoremove", ["apt-get", "autoremove", "-y"],
            env=APT_ENV, stream=True,
        ))
        logger.info("Unused packages have been removed.")
    else:
        logger.info("Skipping 'apt-get autoremove'.")

    receipts.append(run_command(registry, "apt-clean", ["apt-get", "clean"], env=APT_ENV))
    logger.info("APT cache has been cleaned.")

    if decisions.install_openvswitch():
        logger.info("Installing %s...", OPENVSWITCH_PACKAGE)
        receipts.append(run_command(
            registry, "apt-install-ovs", ["apt-get", "install", "-y", OPENVSWITCH_PACKAGE],
            env=APT_ENV, stream=True,
        ))
        logger.info("'%s' has been installed.", OPENVSWITCH_PACKAGE)
    else:
        logger.info("Skipping installation of '%s'.", OPENVSWITCH_PACKAGE)

    if turnkey:
        logger.info("Reloading systemd and fetching TurnKey templates...")
        receipts.append(run_command(
            registry, "systemd-daemon-reload", ["systemctl", "daemon-reload"],
        ))
        receipts.append(run_command(
            registry, "start-daily-update", ["systemctl", "start", DAILY_UPDATE_SERVICE],
        ))

    return receipts


def refresh_services(
    registry: AdapterRegistry,
    services: list[str],
    delay_seconds: int = 0,
) -> Receipt:
    """Restart the PVE web/API services in one systemctl call.

    With ``delay_seconds`` > 0 the restart is handed to a transient
    systemd timer, so a run started from the web UI can finish first.
    """
    if not services:
        logger.info("No services configured; skipping restart.")
        return Receipt.skip(adapter="shell", action_id="restart-services", reason="no services")

    restart = ["systemctl", "restart", *services]
    if delay_seconds > 0:
        argv = ["systemd-run", f"--on-active={delay_seconds}s", *restart]
        logger.info("Scheduling restart of %s in %ds...", ", ".join(services), delay_seconds)
    else:
        argv = restart
        logger.info("Restarting %s to apply changes...", ", ".join(services))

    receipt = run_command(registry, "restart-services", argv)
    logger.info("Services restarted." if delay_seconds <= 0 else "Restart scheduled.")
    return receipt
