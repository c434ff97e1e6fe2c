"""Execution target blueprint."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from converge.base.resource import Instance

existing_targets = Literal["aws", "terraform"]


class TargetBlueprint(ABC):
    """Abstract interface for a rendering backend.

    The set of targets is closed (see :data:`existing_targets`); each one
    realizes a validated transition in its own way:

    - ``aws``: performs live EC2 API calls.
    - ``terraform``: records declarative infrastructure code, no API calls.
    """

    kind: existing_targets

    @abstractmethod
    def render(
        self,
        actual: Instance | None,
        desired: Instance,
        changes: Instance | None,
    ) -> None:
        """Realize the transition from *actual* to *desired*.

        Args:
            actual: Discovered state, or ``None`` when the instance does not exist.
            desired: Desired state. Identity assigned during rendering is
                written back onto it.
            changes: Fields that differ between *actual* and *desired*.
        """
