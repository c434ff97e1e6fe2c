"""Pure helpers for EC2 tag lists and IAM ARNs."""

from __future__ import annotations

from typing import Any

NAME_TAG = "Name"
INSTANCE_PROFILE_PREFIX = "instance-profile/"


def map_ec2_tags_to_map(tags: list[dict[str, Any]] | None) -> dict[str, str]:
    """Convert ``[{"Key": k, "Value": v}, ...]`` into ``{k: v}``."""
    return {tag["Key"]: tag.get("Value", "") for tag in tags or []}


def map_to_ec2_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    """Convert ``{k: v}`` into the EC2 tag list shape, sorted by key."""
    return [{"Key": key, "Value": tags[key]} for key in sorted(tags)]


def find_name_tag(tags: list[dict[str, Any]] | None) -> str | None:
    """Return the value of the ``Name`` tag, or ``None``."""
    for tag in tags or []:
        if tag["Key"] == NAME_TAG:
            return tag.get("Value")
    return None


def name_from_iam_arn(arn: str) -> tuple[str, bool]:
    """Extract the instance profile name from its ARN.

    ``arn:aws:iam::123456789012:instance-profile/nodes`` -> ``("nodes", True)``.

    Returns:
        The trailing segment with the ``instance-profile/`` prefix removed,
        and whether the ARN had the expected shape. Callers decide how to
        report a malformed ARN.
    """
    last = arn.split(":")[-1]
    well_formed = last.startswith(INSTANCE_PROFILE_PREFIX)
    if well_formed:
        last = last[len(INSTANCE_PROFILE_PREFIX):]
    return last, well_formed
