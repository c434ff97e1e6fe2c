"""
Converge exception hierarchy.

Every failure raised while converging a resource inherits from
:class:`ConvergeError`. A discovery that finds nothing is *not* an
error: :meth:`converge.instance.InstanceTask.find` returns ``None``.
"""

from __future__ import annotations


# ── Base ──────────────────────────────────────────────────────────────
class ConvergeError(Exception):
    """Root exception for all Converge errors."""


# ── Provider transport ───────────────────────────────────────────────
class ProviderError(ConvergeError):
    """A provider API call failed.

    Attributes:
        operation: Name of the provider operation that failed.
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class InstanceNotFoundError(ProviderError):
    """Instance id is unknown to the provider."""


# ── Discovery / integrity ────────────────────────────────────────────
class DiscoveryError(ConvergeError):
    """Provider returned data that cannot be normalized."""


class MultipleInstancesError(DiscoveryError):
    """More than one live instance carries the same stable name."""

    def __init__(self, name: str, instance_ids: list[str]) -> None:
        super().__init__(
            f"found multiple Instances with name: {name} ({', '.join(instance_ids)})"
        )
        self.name = name
        self.instance_ids = instance_ids


class UserDataDecodeError(DiscoveryError):
    """Instance user data returned by the provider is not valid base64."""


class IdentityConflictError(ConvergeError):
    """An already identified descriptor was given a different identity."""


# ── Images ───────────────────────────────────────────────────────────
class ImageResolutionError(ConvergeError):
    """Base exception for image alias resolution."""


class ImageNotFoundError(ImageResolutionError):
    """No image matches the reference."""


class MultipleImagesError(ImageResolutionError):
    """More than one image matches the reference."""


# ── Validation ───────────────────────────────────────────────────────
class ChangeValidationError(ConvergeError):
    """Base exception for invalid transitions."""


class RequiredFieldError(ChangeValidationError):
    """A field required for the requested transition is missing."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Field is required: {field}")
        self.field = field


class UnsupportedChangeError(ChangeValidationError):
    """Change to an existing instance that cannot be applied in place."""

    def __init__(self, instance_id: str | None, fields: list[str]) -> None:
        super().__init__(
            f"Cannot change {', '.join(fields)} on existing instance {instance_id}; "
            "the instance must be replaced"
        )
        self.instance_id = instance_id
        self.fields = fields


class UnknownInstanceTypeError(ChangeValidationError):
    """Instance type has no known ephemeral storage layout."""


# ── Capacity ─────────────────────────────────────────────────────────
class UserDataTooLargeError(ConvergeError):
    """User data exceeds the provider ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Instance UserData was too large ({size} bytes, limit {limit})")
        self.size = size
        self.limit = limit
