"""Resource descriptors for a single EC2 instance.

The same model describes both the *desired* configuration an operator
declares and the *actual* configuration discovered from the provider.
Every field is optional: ``None`` means "absent" (not yet created, not
declared, or not reported by the provider).
"""

from __future__ import annotations

import base64
import binascii

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_serializer, field_validator

from converge.base.exceptions import (
    IdentityConflictError,
    UserDataDecodeError,
    UserDataTooLargeError,
)

# Hard ceiling enforced by EC2 on the decoded user data payload.
MAX_USER_DATA_SIZE = 16384


class Subnet(BaseModel):
    """Reference to a VPC subnet."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    name: str | None = None

    def compare_with_id(self) -> str | None:
        return self.id


class SecurityGroup(BaseModel):
    """Reference to a security group."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    name: str | None = None

    def compare_with_id(self) -> str | None:
        return self.id


class SSHKey(BaseModel):
    """Reference to an EC2 key pair."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None

    def compare_with_id(self) -> str | None:
        return self.name


class IAMInstanceProfile(BaseModel):
    """Reference to an IAM instance profile."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None

    def compare_with_id(self) -> str | None:
        return self.name


class Instance(BaseModel):
    """Desired or actual configuration of one EC2 instance.

    Attributes:
        id: Provider-assigned instance id; set exactly once.
        name: Stable name, stored as the ``Name`` tag.
        tags: Tag key -> value.
        image_id: AMI id or an alias resolvable to one.
        instance_type: Instance class (e.g. ``m5.large``).
        user_data: Raw (decoded) startup payload.
        subnet: Subnet the single network interface is attached to.
        private_ip_address: Optional static private address.
        associate_public_ip: Whether a public address is attached.
        security_groups: Ordered security group references.
        ssh_key: Key pair for SSH access.
        iam_instance_profile: Instance profile for the instance role.
    """

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    name: str | None = None
    tags: dict[str, str] | None = None
    image_id: str | None = None
    instance_type: str | None = None
    user_data: bytes | None = None
    subnet: Subnet | None = None
    private_ip_address: str | None = None
    associate_public_ip: bool | None = None
    security_groups: list[SecurityGroup] | None = None
    ssh_key: SSHKey | None = None
    iam_instance_profile: IAMInstanceProfile | None = None

    @field_validator("user_data", mode="before")
    @classmethod
    def decode_json_user_data(cls, value: object, info: ValidationInfo) -> object:
        """JSON carries user data as standard base64; Python callers pass bytes or text."""
        if info.mode == "json" and isinstance(value, str):
            try:
                return decode_user_data(value)
            except UserDataDecodeError as e:
                raise ValueError(str(e)) from e
        return value

    @field_serializer("user_data", when_used="json")
    def encode_json_user_data(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    def compare_with_id(self) -> str | None:
        return self.id

    def assign_id(self, instance_id: str) -> None:
        """Record the provider identity of this instance.

        Raises:
            IdentityConflictError: If a different identity is already set.
        """
        if self.id is not None and self.id != instance_id:
            raise IdentityConflictError(
                f"Instance {self.name!r} already has id {self.id}, refusing {instance_id}"
            )
        self.id = instance_id


def check_user_data_size(data: bytes) -> None:
    """Reject user data larger than :data:`MAX_USER_DATA_SIZE`."""
    if len(data) > MAX_USER_DATA_SIZE:
        raise UserDataTooLargeError(len(data), MAX_USER_DATA_SIZE)


def decode_user_data(value: str) -> bytes:
    """Decode base64 user data as returned by ``DescribeInstanceAttribute``.

    Raises:
        UserDataDecodeError: If *value* is not valid base64.
    """
    try:
        return base64.b64decode(value.replace("\r", "").replace("\n", ""), validate=True)
    except (binascii.Error, ValueError) as e:
        raise UserDataDecodeError(f"error decoding EC2 UserData: {e}") from e
