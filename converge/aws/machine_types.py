"""Instance type -> ephemeral (instance store) disk layout.

Instance store volumes are only attached when the launch request maps
them explicitly, so every create computes its mappings from this table.
"""

from __future__ import annotations

from typing import Any

from converge.base.exceptions import UnknownInstanceTypeError

# Number of instance store volumes per instance type. EBS-only families map to 0.
EPHEMERAL_DISKS: dict[str, int] = {
    # General purpose
    "t2.nano": 0, "t2.micro": 0, "t2.small": 0, "t2.medium": 0,
    "t2.large": 0, "t2.xlarge": 0, "t2.2xlarge": 0,
    "t3.nano": 0, "t3.micro": 0, "t3.small": 0, "t3.medium": 0,
    "t3.large": 0, "t3.xlarge": 0, "t3.2xlarge": 0,
    "m3.medium": 1, "m3.large": 1, "m3.xlarge": 2, "m3.2xlarge": 2,
    "m4.large": 0, "m4.xlarge": 0, "m4.2xlarge": 0, "m4.4xlarge": 0,
    "m4.10xlarge": 0, "m4.16xlarge": 0,
    "m5.large": 0, "m5.xlarge": 0, "m5.2xlarge": 0, "m5.4xlarge": 0,
    "m5.12xlarge": 0, "m5.24xlarge": 0,
    "m5d.large": 1, "m5d.xlarge": 1, "m5d.2xlarge": 1, "m5d.4xlarge": 2,
    "m5d.12xlarge": 2, "m5d.24xlarge": 4,
    # Compute optimized
    "c3.large": 2, "c3.xlarge": 2, "c3.2xlarge": 2, "c3.4xlarge": 2, "c3.8xlarge": 2,
    "c4.large": 0, "c4.xlarge": 0, "c4.2xlarge": 0, "c4.4xlarge": 0, "c4.8xlarge": 0,
    "c5.large": 0, "c5.xlarge": 0, "c5.2xlarge": 0, "c5.4xlarge": 0,
    "c5.9xlarge": 0, "c5.18xlarge": 0,
    # Memory optimized
    "r3.large": 1, "r3.xlarge": 1, "r3.2xlarge": 1, "r3.4xlarge": 1, "r3.8xlarge": 2,
    "r4.large": 0, "r4.xlarge": 0, "r4.2xlarge": 0, "r4.4xlarge": 0,
    "r4.8xlarge": 0, "r4.16xlarge": 0,
    "r5.large": 0, "r5.xlarge": 0, "r5.2xlarge": 0, "r5.4xlarge": 0,
    "r5.12xlarge": 0, "r5.24xlarge": 0,
    "x1.16xlarge": 1, "x1.32xlarge": 2,
    # Storage optimized
    "i2.xlarge": 1, "i2.2xlarge": 2, "i2.4xlarge": 4, "i2.8xlarge": 8,
    "d2.xlarge": 3, "d2.2xlarge": 6, "d2.4xlarge": 12, "d2.8xlarge": 24,
    # Accelerated
    "g2.2xlarge": 1, "g2.8xlarge": 2,
    "p2.xlarge": 0, "p2.8xlarge": 0, "p2.16xlarge": 0,
}


def ephemeral_device_name(index: int) -> str:
    """``0 -> /dev/sdc``, ``1 -> /dev/sdd``, ... ``23 -> /dev/sdz``."""
    return "/dev/sd" + chr(ord("c") + index)


def build_ephemeral_devices(instance_type: str) -> list[dict[str, Any]]:
    """Block device mappings for every instance store volume of *instance_type*.

    Returns:
        ``[{"DeviceName": "/dev/sdc", "VirtualName": "ephemeral0"}, ...]``
        sorted by device name; empty for EBS-only types.

    Raises:
        UnknownInstanceTypeError: If the instance type is not in the table.
    """
    disks = EPHEMERAL_DISKS.get(instance_type)
    if disks is None:
        raise UnknownInstanceTypeError(f"instance type not handled: {instance_type!r}")
    return [
        {"DeviceName": ephemeral_device_name(i), "VirtualName": f"ephemeral{i}"}
        for i in range(disks)
    ]
