"""Convergence contract for a single EC2 instance.

:class:`InstanceTask` wraps the desired descriptor and exposes the three
steps a scheduler drives once per pass::

    actual = task.find(context)
    task.check_changes(actual, task.desired, changes)
    task.render(context.target, actual, task.desired, changes)

:meth:`InstanceTask.run` chains them with the default delta.
"""

from __future__ import annotations

from typing import Any

from converge.base.context import Context
from converge.base.delta import compute_changes
from converge.base.exceptions import (
    ConvergeError,
    DiscoveryError,
    MultipleInstancesError,
    RequiredFieldError,
)
from converge.base.resource import (
    IAMInstanceProfile,
    Instance,
    SecurityGroup,
    SSHKey,
    Subnet,
    decode_user_data,
)
from converge.base.tags import find_name_tag, map_ec2_tags_to_map, name_from_iam_arn
from converge.base.target import TargetBlueprint
from converge.aws.cloud import LIVE_INSTANCE_STATES
from converge.factory import TARGET_REGISTRY
from converge.terraform.target import INSTANCE_RESOURCE_TYPE, TerraformTarget

TASK_NAME = "Instance"


class InstanceTask:
    """Discover, validate and render one instance.

    Attributes:
        desired: Desired descriptor. Discovery and creation write the
            resolved ``id`` back onto it.
    """

    def __init__(self, desired: Instance) -> None:
        self.desired = desired

    def __repr__(self) -> str:
        return f"InstanceTask(name={self.desired.name!r}, id={self.desired.id!r})"

    # --- Discovery ---

    def find(self, context: Context) -> Instance | None:
        """Return the live instance carrying the desired stable name.

        Terminated instances are ignored so a replacement can reuse the name.

        Returns:
            The actual descriptor, or ``None`` when no live instance matches.

        Raises:
            RequiredFieldError: The desired descriptor has no name.
            MultipleInstancesError: More than one live instance matches.
            UserDataDecodeError: The provider returned malformed user data.
            ProviderError: On EC2 API failure.
        """
        e = self.desired
        if e.name is None:
            raise RequiredFieldError("Name")
        cloud = context.cloud
        if cloud is None:
            raise ConvergeError(f"target {context.target.kind!r} cannot discover instances")

        filters = cloud.build_filters(e.name)
        filters.append({"Name": "instance-state-name", "Values": list(LIVE_INSTANCE_STATES)})
        instances = cloud.describe_instances(filters)

        if not instances:
            return None
        if len(instances) != 1:
            raise MultipleInstancesError(e.name, [i.get("InstanceId", "?") for i in instances])

        i = instances[0]
        instance_id = i.get("InstanceId")
        if instance_id is None:
            raise DiscoveryError("found instance, but InstanceId was nil")
        self._log(context, "found existing instance", "find")

        fields: dict[str, Any] = {
            "id": instance_id,
            "name": find_name_tag(i.get("Tags")),
            "tags": map_ec2_tags_to_map(i.get("Tags")),
            "private_ip_address": i.get("PrivateIpAddress"),
            "instance_type": i.get("InstanceType"),
            "image_id": i.get("ImageId"),
        }

        encoded = cloud.describe_user_data(instance_id)
        if encoded is not None:
            fields["user_data"] = decode_user_data(encoded)

        if i.get("SubnetId") is not None:
            fields["subnet"] = Subnet(id=i["SubnetId"])
        if i.get("KeyName") is not None:
            fields["ssh_key"] = SSHKey(name=i["KeyName"])
        fields["security_groups"] = [
            SecurityGroup(id=sg["GroupId"]) for sg in i.get("SecurityGroups", [])
        ]
        # The provider may allocate differently than requested, so look at
        # what is attached rather than at the launch flag.
        fields["associate_public_ip"] = any(
            (ni.get("Association") or {}).get("PublicIp")
            for ni in i.get("NetworkInterfaces", [])
        )

        profile = i.get("IamInstanceProfile")
        if profile is not None and profile.get("Arn") is not None:
            name, well_formed = name_from_iam_arn(profile["Arn"])
            if not well_formed:
                context.warn(
                    "find",
                    f"Unexpected ARN for instance profile: {profile['Arn']!r}",
                    task=TASK_NAME,
                    resource=e.name,
                )
            fields["iam_instance_profile"] = IAMInstanceProfile(name=name)

        fields["image_id"] = self._match_image_alias(context, fields["image_id"])

        e.assign_id(instance_id)
        return Instance(**fields)

    def _match_image_alias(self, context: Context, actual_image_id: str | None) -> str | None:
        """Report the desired image reference when it resolves to *actual_image_id*.

        Avoids a spurious change when the desired reference is an alias
        (e.g. ``owner/name``) of the image the instance already runs.
        """
        wanted = self.desired.image_id
        if wanted is None or actual_image_id is None or wanted == actual_image_id:
            return actual_image_id

        try:
            image = context.cloud.resolve_image(wanted)  # type: ignore[union-attr]
        except ConvergeError as exc:
            context.warn(
                "resolve_image",
                f"unable to resolve image: {wanted!r}: {exc}",
                task=TASK_NAME,
                resource=self.desired.name,
            )
            return actual_image_id
        if image is None:
            context.warn(
                "resolve_image",
                f"unable to resolve image: {wanted!r}: not found",
                task=TASK_NAME,
                resource=self.desired.name,
            )
            return actual_image_id
        if image.get("ImageId") == actual_image_id:
            self._log(
                context,
                f"Returning matching ImageId as expected name: {actual_image_id!r} -> {wanted!r}",
                "resolve_image",
                debug=True,
            )
            return wanted
        return actual_image_id

    # --- Validation ---

    @staticmethod
    def check_changes(
        actual: Instance | None,
        desired: Instance,
        changes: Instance | None,
    ) -> None:
        """Reject structurally invalid transitions before rendering.

        Raises:
            RequiredFieldError: Updating an existing instance without a name.
        """
        if actual is not None and desired.name is None:
            raise RequiredFieldError("Name")

    # --- Rendering ---

    @staticmethod
    def render(
        target: TargetBlueprint,
        actual: Instance | None,
        desired: Instance,
        changes: Instance | None,
    ) -> None:
        """Dispatch the transition to *target*.

        Raises:
            TypeError: If *target* is not one of the registered target kinds.
        """
        expected = TARGET_REGISTRY.get(getattr(target, "kind", ""))
        if expected is None or not isinstance(target, expected):
            raise TypeError(f"Unsupported target: {type(target).__name__}")
        target.render(actual, desired, changes)

    def terraform_link(self, target: TerraformTarget | None = None) -> str:
        """Stable Terraform reference to this instance's id.

        Raises:
            RequiredFieldError: If the desired descriptor has no name.
        """
        if self.desired.name is None:
            raise RequiredFieldError("Name")
        return (target or TerraformTarget()).link(INSTANCE_RESOURCE_TYPE, self.desired.name)

    # --- Driver hook ---

    def run(self, context: Context, changes: Instance | None = None) -> Instance | None:
        """Run one discover -> validate -> render pass.

        The ``Name`` and cluster tags are merged into the desired tags
        first. Terraform passes skip discovery.

        Args:
            context: Pass context.
            changes: Precomputed delta; computed with
                :func:`converge.base.delta.compute_changes` when omitted.

        Returns:
            The discovered actual descriptor (``None`` if it did not exist).
        """
        target = context.target
        cloud = context.cloud
        if cloud is not None:
            self.desired.tags = cloud.build_tags(self.desired.name, self.desired.tags)

        actual = None if target.kind == "terraform" else self.find(context)
        if changes is None:
            changes = compute_changes(actual, self.desired)

        self.check_changes(actual, self.desired, changes)
        self.render(target, actual, self.desired, changes)
        self._log(context, f"converged instance (id={self.desired.id})", "run")
        return actual

    def _log(self, context: Context, message: str, operation: str, debug: bool = False) -> None:
        log = context.log.debug if debug else context.log.info
        log(message, task=TASK_NAME, resource=self.desired.name, operation=operation)
