"""Live AWS target: realizes instance transitions through the EC2 API."""

from __future__ import annotations

from typing import Any

from converge.aws.cloud import AWSCloud
from converge.aws.machine_types import build_ephemeral_devices
from converge.base.delta import changed_fields
from converge.base.exceptions import (
    ImageNotFoundError,
    RequiredFieldError,
    UnsupportedChangeError,
)
from converge.base.logger import cv_logger
from converge.base.resource import Instance, check_user_data_size
from converge.base.target import TargetBlueprint

# Fields that may differ on an existing instance without requiring replacement.
_RECONCILABLE_FIELDS = frozenset({"tags"})


class AWSAPITarget(TargetBlueprint):
    """Target that creates and tags instances with live EC2 calls.

    Attributes:
        cloud: EC2 capability.
    """

    kind = "aws"

    def __init__(self, cloud: AWSCloud) -> None:
        self.cloud = cloud

    def render(
        self,
        actual: Instance | None,
        desired: Instance,
        changes: Instance | None,
    ) -> None:
        """Create the instance if it does not exist, then reconcile its tags.

        Raises:
            RequiredFieldError: ``ImageID`` or ``InstanceType`` missing on create,
                or a subnet / security group reference without a resolved id.
            UserDataTooLargeError: User data above the EC2 ceiling.
            UnknownInstanceTypeError: No ephemeral layout for the instance type.
            ImageNotFoundError: The image reference resolves to nothing.
            UnsupportedChangeError: An existing instance needs more than a tag update.
            ProviderError: On EC2 API failure.
        """
        if actual is None:
            instance_id = self._create(desired)
            desired.assign_id(instance_id)
        else:
            pending = [f for f in changed_fields(changes) if f not in _RECONCILABLE_FIELDS]
            if pending:
                raise UnsupportedChangeError(actual.id, pending)
            if actual.id is not None:
                desired.assign_id(actual.id)

        self.cloud.add_tags(desired.id, self.cloud.build_tags(desired.name, desired.tags))

    def _create(self, e: Instance) -> str:
        if e.image_id is None:
            raise RequiredFieldError("ImageID")
        if e.instance_type is None:
            raise RequiredFieldError("InstanceType")
        if e.subnet is not None and e.subnet.id is None:
            raise RequiredFieldError("Subnet")
        if any(sg.id is None for sg in e.security_groups or []):
            raise RequiredFieldError("SecurityGroups")
        if e.user_data is not None:
            check_user_data_size(e.user_data)
        block_devices = build_ephemeral_devices(e.instance_type)

        image = self.cloud.resolve_image(e.image_id)
        if image is None:
            raise ImageNotFoundError(f"could not find image {e.image_id!r}")

        cv_logger.info(
            f"Creating Instance with Name:{e.name!r}",
            task="Instance",
            resource=e.name,
            target=self.kind,
            operation="run_instances",
        )
        params = build_run_request(e, image["ImageId"], block_devices)
        return self.cloud.run_instance(params)


def build_run_request(
    e: Instance,
    image_id: str,
    block_devices: list[dict[str, Any]],
) -> dict[str, Any]:
    """Assemble ``RunInstances`` parameters (minus the counts) for *e*.

    ``UserData`` is passed raw: botocore base64-encodes it for
    ``RunInstances``.
    """
    interface: dict[str, Any] = {
        "DeviceIndex": 0,
        "Groups": [sg.id for sg in e.security_groups or []],
    }
    if e.associate_public_ip is not None:
        interface["AssociatePublicIpAddress"] = e.associate_public_ip
    if e.subnet is not None:
        interface["SubnetId"] = e.subnet.id
    if e.private_ip_address is not None:
        interface["PrivateIpAddress"] = e.private_ip_address

    params: dict[str, Any] = {
        "ImageId": image_id,
        "InstanceType": e.instance_type,
        "NetworkInterfaces": [interface],
    }
    if block_devices:
        params["BlockDeviceMappings"] = block_devices
    if e.ssh_key is not None and e.ssh_key.name is not None:
        params["KeyName"] = e.ssh_key.name
    if e.user_data is not None:
        params["UserData"] = e.user_data
    if e.iam_instance_profile is not None and e.iam_instance_profile.name is not None:
        params["IamInstanceProfile"] = {"Name": e.iam_instance_profile.name}
    return params
