"""EC2 capability used by discovery and the live target."""

from __future__ import annotations

from typing import Any, NoReturn

import boto3
from botocore.exceptions import ClientError

from converge.base.config import AWSConfig
from converge.base.exceptions import (
    ImageResolutionError,
    InstanceNotFoundError,
    MultipleImagesError,
    ProviderError,
)
from converge.base.logger import cv_logger
from converge.base.tags import NAME_TAG, map_ec2_tags_to_map, map_to_ec2_tags

_ERROR_MAP: dict[str, type[ProviderError]] = {
    "InvalidInstanceID.NotFound": InstanceNotFoundError,
    "InvalidInstanceID.Malformed": InstanceNotFoundError,
}

# Image owners that may be referenced by alias in "<owner>/<name>" image specs.
WELL_KNOWN_OWNERS: dict[str, str] = {
    "kope.io": "383156758163",
    "redhat.com": "309956199498",
    "coreos.com": "595879546273",
}

# Lifecycle states that count as "live"; terminated instances are ignored.
LIVE_INSTANCE_STATES = ["pending", "running", "stopping", "stopped"]


def _handle(e: ClientError, msg: str) -> NoReturn:
    exc = _ERROR_MAP.get(e.response["Error"]["Code"], ProviderError)
    raise exc(f"{msg}: {e}", operation=e.operation_name) from e


class AWSCloud:
    """Thin EC2 wrapper scoped to one region and (optionally) one cluster.

    Every method is a single blocking round-trip; retries are left to
    botocore's own retry policy.

    Attributes:
        client: boto3 EC2 client.
        region: AWS region name.
        cluster_name: Cluster used to scope filters and tags, or ``None``.
        cluster_tag_key: Tag key carrying the cluster name.
    """

    def __init__(self, config: AWSConfig) -> None:
        """Initialize the EC2 client.

        Args:
            config: AWS configuration object containing credentials, region
                and cluster scoping.
        """
        self.client = boto3.client(
            "ec2",
            aws_access_key_id=config.aws_access_key_id,
            aws_secret_access_key=config.aws_secret_access_key,
            region_name=config.region_name,
        )
        self.region = config.region_name
        self.cluster_name = config.cluster_name
        self.cluster_tag_key = config.cluster_tag_key

    # --- Tags / filters ---

    def build_filters(self, name: str | None) -> list[dict[str, Any]]:
        """EC2 filters matching the stable *name* within this cluster."""
        filters: list[dict[str, Any]] = []
        if name is not None:
            filters.append({"Name": f"tag:{NAME_TAG}", "Values": [name]})
        if self.cluster_name:
            filters.append({"Name": f"tag:{self.cluster_tag_key}", "Values": [self.cluster_name]})
        return filters

    def build_tags(self, name: str | None, tags: dict[str, str] | None) -> dict[str, str]:
        """Return *tags* plus the ``Name`` and cluster tags. Does not mutate *tags*."""
        merged = dict(tags or {})
        if name is not None:
            merged[NAME_TAG] = name
        if self.cluster_name:
            merged[self.cluster_tag_key] = self.cluster_name
        return merged

    def add_tags(self, resource_id: str, tags: dict[str, str]) -> dict[str, str]:
        """Make sure *resource_id* carries every tag in *tags*.

        Only missing or different tags are written; other tags on the
        resource are left untouched.

        Returns:
            The tags that were written (empty when nothing had drifted).

        Raises:
            ProviderError: On EC2 API failure.
        """
        try:
            resp = self.client.describe_tags(
                Filters=[{"Name": "resource-id", "Values": [resource_id]}]
            )
        except ClientError as e:
            _handle(e, f"error listing tags on {resource_id}")
        current = map_ec2_tags_to_map(resp.get("Tags", []))

        missing = {k: v for k, v in tags.items() if current.get(k) != v}
        if not missing:
            return {}

        cv_logger.info(
            f"adding tags to {resource_id}: {sorted(missing)}",
            operation="add_tags",
        )
        try:
            self.client.create_tags(Resources=[resource_id], Tags=map_to_ec2_tags(missing))
        except ClientError as e:
            _handle(e, f"error adding tags to {resource_id}")
        return missing

    # --- Instances ---

    def describe_instances(self, filters: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Return the raw EC2 instance dicts matching *filters*, flattened.

        Raises:
            ProviderError: On EC2 API failure.
        """
        try:
            resp = self.client.describe_instances(Filters=filters)
        except ClientError as e:
            _handle(e, "error listing instances")
        instances: list[dict[str, Any]] = []
        for reservation in (resp or {}).get("Reservations", []):
            instances.extend(reservation.get("Instances", []))
        return instances

    def describe_user_data(self, instance_id: str) -> str | None:
        """Return the base64 user data of *instance_id*, or ``None`` if unset.

        Raises:
            InstanceNotFoundError: If the instance does not exist.
            ProviderError: On any other EC2 API failure.
        """
        try:
            resp = self.client.describe_instance_attribute(
                InstanceId=instance_id, Attribute="userData"
            )
        except ClientError as e:
            _handle(e, f"error querying EC2 for user metadata for instance {instance_id!r}")
        return resp.get("UserData", {}).get("Value")

    def run_instance(self, params: dict[str, Any]) -> str:
        """Launch exactly one instance and return its id.

        Raises:
            ProviderError: On EC2 API failure.
        """
        try:
            resp = self.client.run_instances(MinCount=1, MaxCount=1, **params)
        except ClientError as e:
            _handle(e, "error creating Instance")
        return resp["Instances"][0]["InstanceId"]  # type: ignore[no-any-return]

    # --- Images ---

    def resolve_image(self, reference: str) -> dict[str, Any] | None:
        """Resolve an image reference to the EC2 image it designates.

        Accepted forms:
            - ``ami-0123456789abcdef0``: looked up by id.
            - ``<owner>/<name>``: looked up by name within the owner
              account; well-known owner aliases are mapped to account ids.
            - ``<name>``: looked up by name across visible images.

        Returns:
            The EC2 image dict, or ``None`` if nothing matches.

        Raises:
            ImageResolutionError: If the reference has more than one ``/``.
            MultipleImagesError: If the reference is ambiguous.
            ProviderError: On EC2 API failure.
        """
        params: dict[str, Any] = {}
        if reference.startswith("ami-"):
            params["ImageIds"] = [reference]
        else:
            tokens = reference.split("/")
            if len(tokens) > 2:
                raise ImageResolutionError(f"image name specification not recognized: {reference!r}")
            name = tokens[-1]
            if len(tokens) == 2:
                params["Owners"] = [WELL_KNOWN_OWNERS.get(tokens[0], tokens[0])]
            params["Filters"] = [{"Name": "name", "Values": [name]}]

        try:
            resp = self.client.describe_images(**params)
        except ClientError as e:
            if e.response["Error"]["Code"].startswith("InvalidAMIID."):
                return None
            _handle(e, f"error listing images matching {reference!r}")

        images = resp.get("Images", [])
        if not images:
            return None
        if len(images) > 1:
            raise MultipleImagesError(f"found multiple images matching {reference!r}")
        return images[0]  # type: ignore[no-any-return]
