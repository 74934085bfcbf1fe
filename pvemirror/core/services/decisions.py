"""
Decision providers — answers to the two optional-step questions.

The pipeline asks a provider instead of reading stdin, so unattended
runs pass flags and interactive runs get a yes/no prompt (default no).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import click

AUTOREMOVE_PROMPT = "Do you want to run 'apt-get autoremove' to remove unused packages?"
OPENVSWITCH_PROMPT = "Do you want to install 'openvswitch-switch' for advanced networking?"


class DecisionProvider(ABC):
    @abstractmethod
    def autoremove(self) -> bool:
        """Remove packages that are no longer needed?"""

    @abstractmethod
    def install_openvswitch(self) -> bool:
        """Install openvswitch-switch?"""


class FlagDecisions(DecisionProvider):
    """Fixed answers, for non-interactive runs."""

    def __init__(self, autoremove: bool = False, install_openvswitch: bool = False):
        self._autoremove = autoremove
        self._install_openvswitch = install_openvswitch

    def autoremove(self) -> bool:
        return self._autoremove

    def install_openvswitch(self) -> bool:
        return self._install_openvswitch


class PromptDecisions(DecisionProvider):
    """Ask the operator on the terminal. Anything but yes means no."""

    def autoremove(self) -> bool:
        return click.confirm(AUTOREMOVE_PROMPT, default=False)

    def install_openvswitch(self) -> bool:
        return click.confirm(OPENVSWITCH_PROMPT, default=False)


class MixedDecisions(DecisionProvider):
    """Use a flag where one was given, otherwise ask."""

    def __init__(
        self,
        autoremove: bool | None = None,
        install_openvswitch: bool | None = None,
        fallback: DecisionProvider | None = None,
    ):
        self._autoremove = autoremove
        self._install_openvswitch = install_openvswitch
        self._fallback = fallback or PromptDecisions()

    def autoremove(self) -> bool:
        if self._autoremove is not None:
            return self._autoremove
        return self._fallback.autoremove()

    def install_openvswitch(self) -> bool:
        if self._install_openvswitch is not None:
            return self._install_openvswitch
        return self._fallback.install_openvswitch()
