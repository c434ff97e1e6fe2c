"""Descriptors, target blueprint and core utilities.

Everything here is provider-neutral; the AWS and Terraform targets build
on top of it.
"""

from .resource import (
    Instance,
    Subnet,
    SecurityGroup,
    SSHKey,
    IAMInstanceProfile,
    MAX_USER_DATA_SIZE,
)
from .target import TargetBlueprint, existing_targets
from .context import Context, DegradedResult


__all__ = [
    "Instance",
    "Subnet",
    "SecurityGroup",
    "SSHKey",
    "IAMInstanceProfile",
    "MAX_USER_DATA_SIZE",
    "TargetBlueprint",
    "existing_targets",
    "Context",
    "DegradedResult",
]
