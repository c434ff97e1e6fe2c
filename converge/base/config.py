"""
Pydantic configuration models for execution targets.

Validates target configs at initialization time instead of
silently passing bad values to SDK clients.
"""

from __future__ import annotations

import os
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_CLUSTER_TAG_KEY = "KubernetesCluster"


class AWSConfig(BaseModel):
    """Configuration for the live AWS target.

    Credentials are resolved in order:
    1. Explicit values passed in the config dict.
    2. Environment variables (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_DEFAULT_REGION).
    3. If neither is set, fields are left as None so boto3 can fall back to its
       own credential chain (instance metadata, ~/.aws/credentials, etc.).

    ``cluster_name`` scopes discovery and tagging to one cluster; it falls
    back to ``CONVERGE_CLUSTER_NAME``.
    """

    model_config = ConfigDict(extra="forbid")

    aws_access_key_id: str | None = Field(default=None, description="AWS access key ID")
    aws_secret_access_key: str | None = Field(default=None, description="AWS secret access key")
    region_name: str | None = Field(default=None, description="AWS region (e.g. 'us-east-1')")
    cluster_name: str | None = Field(default=None, description="Cluster the resources belong to")
    cluster_tag_key: str = Field(
        default=DEFAULT_CLUSTER_TAG_KEY, description="Tag key carrying the cluster name"
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Fall back to environment variables for missing credentials."""
        env_map = {
            "aws_access_key_id": "AWS_ACCESS_KEY_ID",
            "aws_secret_access_key": "AWS_SECRET_ACCESS_KEY",
            "region_name": "AWS_DEFAULT_REGION",
            "cluster_name": "CONVERGE_CLUSTER_NAME",
        }
        for field, env_var in env_map.items():
            if not values.get(field):
                values[field] = os.environ.get(env_var)
        return values


class TerraformConfig(BaseModel):
    """Configuration for the Terraform code generation target."""

    model_config = ConfigDict(extra="forbid")

    cluster_name: str | None = Field(default=None, description="Cluster the resources belong to")
    cluster_tag_key: str = Field(
        default=DEFAULT_CLUSTER_TAG_KEY, description="Tag key carrying the cluster name"
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Fall back to ``CONVERGE_CLUSTER_NAME`` for the cluster name."""
        if not values.get("cluster_name"):
            values["cluster_name"] = os.environ.get("CONVERGE_CLUSTER_NAME")
        return values


# Map target kinds to their config models for dynamic validation
CONFIG_REGISTRY: dict[str, type[BaseModel]] = {
    "aws": AWSConfig,
    "terraform": TerraformConfig,
}


def validate_config(target_kind: str, config: dict) -> BaseModel:
    """Validate and return a typed config model for the given target.

    Args:
        target_kind: The execution target kind (e.g. 'aws', 'terraform').
        config: Raw configuration dictionary.

    Returns:
        A validated Pydantic config model.

    Raises:
        ValueError: If the target kind is unknown.
        pydantic.ValidationError: If the config is invalid.
    """
    model = CONFIG_REGISTRY.get(target_kind)
    if model is None:
        raise ValueError(f"No config model registered for target: {target_kind}")
    return model(**config)


__all__ = [
    "AWSConfig",
    "TerraformConfig",
    "CONFIG_REGISTRY",
    "DEFAULT_CLUSTER_TAG_KEY",
    "validate_config",
]
