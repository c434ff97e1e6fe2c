"""Converge — single-instance convergence for declarative EC2 provisioning.

Entry point for the library. Build a target with :func:`target_factory`
and drive an :class:`InstanceTask` through one pass::

    from converge import Context, Instance, InstanceTask, target_factory

    target = target_factory("aws", {"region_name": "us-east-1"})
    task = InstanceTask(Instance(name="node-1", image_id="ami-abc", instance_type="m5.large"))
    task.run(Context(target))
"""

from .base import (
    Context,
    DegradedResult,
    IAMInstanceProfile,
    Instance,
    MAX_USER_DATA_SIZE,
    SecurityGroup,
    SSHKey,
    Subnet,
    TargetBlueprint,
)
from .factory import target_factory
from .instance import InstanceTask

__all__ = [
    "Context",
    "DegradedResult",
    "IAMInstanceProfile",
    "Instance",
    "InstanceTask",
    "MAX_USER_DATA_SIZE",
    "SecurityGroup",
    "SSHKey",
    "Subnet",
    "TargetBlueprint",
    "target_factory",
]
