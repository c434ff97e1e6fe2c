"""Execution target factory.

Provides :func:`target_factory`, the single entry-point for creating a
rendering backend. The set of targets is closed: ``TARGET_REGISTRY``
lists every kind the convergence contract can render through.
"""

from typing import overload, Literal, Any

from converge.base import TargetBlueprint, existing_targets
from converge.base.client_cache import ClientCache
from converge.base.config import AWSConfig, TerraformConfig, validate_config
from converge.aws.cloud import AWSCloud
from converge.aws.target import AWSAPITarget
from converge.terraform.target import TerraformTarget


TARGET_REGISTRY: dict[str, type[TargetBlueprint]] = {
    "aws": AWSAPITarget,
    "terraform": TerraformTarget,
}


@overload
def target_factory(target_kind: Literal["aws"], config: dict) -> AWSAPITarget: ...


@overload
def target_factory(target_kind: Literal["terraform"], config: dict) -> TerraformTarget: ...


def target_factory(target_kind: existing_targets, config: dict) -> Any:
    """
    Factory function to create an execution target.
    Args:
        target_kind: The target kind ('aws' or 'terraform').
        config: Configuration dictionary validated against the kind's config model.
    Returns:
        A ready-to-use target. AWS targets built from identical configs share
        one :class:`~converge.aws.cloud.AWSCloud`.
    Raises:
        ValueError: If the target kind is not supported.
        pydantic.ValidationError: If the config is invalid.
    """
    if target_kind not in TARGET_REGISTRY:
        raise ValueError(f"Unsupported target: {target_kind}")

    configObj = validate_config(target_kind, config)
    if isinstance(configObj, AWSConfig):
        cloud = ClientCache().get_or_create(
            target_kind, configObj.model_dump(), lambda: AWSCloud(configObj)
        )
        return AWSAPITarget(cloud)
    if isinstance(configObj, TerraformConfig):
        return TerraformTarget(configObj.cluster_name, configObj.cluster_tag_key)
    raise ValueError(f"Unsupported target: {target_kind}")
