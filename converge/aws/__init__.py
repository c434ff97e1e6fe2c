"""AWS target: EC2 capability wrapper and live provisioning backend."""

from .cloud import AWSCloud
from .target import AWSAPITarget

__all__ = ["AWSCloud", "AWSAPITarget"]
