"""Terraform target: records declarative code instead of calling AWS."""

from __future__ import annotations

import base64
import json
from typing import Any

from converge.base.config import DEFAULT_CLUSTER_TAG_KEY
from converge.base.exceptions import RequiredFieldError
from converge.base.logger import cv_logger
from converge.base.resource import Instance, check_user_data_size
from converge.base.tags import NAME_TAG
from converge.base.target import TargetBlueprint

INSTANCE_RESOURCE_TYPE = "aws_instance"


def sanitize_name(name: str) -> str:
    """Make *name* usable as a Terraform resource name."""
    return name.replace(".", "-").replace("/", "--")


class TerraformTarget(TargetBlueprint):
    """Target that accumulates a Terraform JSON document.

    No provider call is ever made. Rendering the same descriptors always
    produces the same document.

    Attributes:
        cluster_name: Cluster tag value added to every resource, or ``None``.
        cluster_tag_key: Tag key carrying the cluster name.
        resources: ``{resource_type: {sanitized_name: body}}``.
    """

    kind = "terraform"

    def __init__(self, cluster_name: str | None = None, cluster_tag_key: str = DEFAULT_CLUSTER_TAG_KEY) -> None:
        self.cluster_name = cluster_name
        self.cluster_tag_key = cluster_tag_key
        self.resources: dict[str, dict[str, dict[str, Any]]] = {}

    def link(self, resource_type: str, name: str) -> str:
        """Stable interpolation referencing the id of a generated resource."""
        return f"${{{resource_type}.{sanitize_name(name)}.id}}"

    def add_resource(self, resource_type: str, name: str, body: dict[str, Any]) -> str:
        """Record a resource block and return its :meth:`link`."""
        self.resources.setdefault(resource_type, {})[sanitize_name(name)] = body
        return self.link(resource_type, name)

    def render(
        self,
        actual: Instance | None,
        desired: Instance,
        changes: Instance | None,
    ) -> None:
        """Record an ``aws_instance`` block for *desired*.

        Raises:
            RequiredFieldError: If the stable name is missing, or a subnet or
                security group reference has neither an id nor a name.
            UserDataTooLargeError: User data above the EC2 ceiling.
        """
        if desired.name is None:
            raise RequiredFieldError("Name")
        if desired.user_data is not None:
            check_user_data_size(desired.user_data)

        link = self.add_resource(INSTANCE_RESOURCE_TYPE, desired.name, self._instance_body(desired))
        cv_logger.debug(
            f"rendered {link}",
            task="Instance",
            resource=desired.name,
            target=self.kind,
            operation="render",
        )

    def _instance_body(self, e: Instance) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if e.image_id is not None:
            body["ami"] = e.image_id
        if e.instance_type is not None:
            body["instance_type"] = e.instance_type
        if e.subnet is not None:
            body["subnet_id"] = self._reference("aws_subnet", e.subnet.id, e.subnet.name, "Subnet")
        if e.private_ip_address is not None:
            body["private_ip"] = e.private_ip_address
        if e.associate_public_ip is not None:
            body["associate_public_ip_address"] = e.associate_public_ip
        if e.security_groups:
            body["vpc_security_group_ids"] = [
                self._reference("aws_security_group", sg.id, sg.name, "SecurityGroups")
                for sg in e.security_groups
            ]
        if e.ssh_key is not None and e.ssh_key.name is not None:
            body["key_name"] = e.ssh_key.name
        if e.iam_instance_profile is not None and e.iam_instance_profile.name is not None:
            body["iam_instance_profile"] = e.iam_instance_profile.name
        if e.user_data is not None:
            body["user_data_base64"] = base64.b64encode(e.user_data).decode("ascii")

        tags = dict(e.tags or {})
        tags[NAME_TAG] = e.name or ""
        if self.cluster_name:
            tags[self.cluster_tag_key] = self.cluster_name
        body["tags"] = tags
        return body

    def _reference(self, resource_type: str, resource_id: str | None, name: str | None, field: str) -> str:
        # Literal id wins; otherwise link to the generated resource by name.
        if resource_id is not None:
            return resource_id
        if not name:
            raise RequiredFieldError(field)
        return self.link(resource_type, name)

    def to_json(self) -> str:
        """Serialize the recorded resources as a Terraform JSON document."""
        return json.dumps({"resource": self.resources}, indent=2, sort_keys=True)
