"""Terraform target: declarative code generation backend."""

from .target import TerraformTarget

__all__ = ["TerraformTarget"]
