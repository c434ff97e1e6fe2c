"""Per-pass context and the structured warning channel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from converge.base.logger import cv_logger, new_request_id

if TYPE_CHECKING:
    from converge.aws.cloud import AWSCloud
    from converge.base.target import TargetBlueprint


class DegradedResult(BaseModel):
    """A problem that was reported but did not fail the pass."""

    model_config = ConfigDict(frozen=True)

    operation: str
    message: str
    resource: str | None = None


class Context:
    """State owned by one convergence pass.

    Attributes:
        target: Execution target the pass renders through.
        cloud: EC2 capability used for discovery; ``None`` for targets
            that never talk to the provider.
        warnings: Degraded results recorded during the pass.
        request_id: Correlation id stamped on every log record of the pass.
        log: Logger bound to the pass request id and target kind.
    """

    def __init__(self, target: TargetBlueprint, cloud: AWSCloud | None = None) -> None:
        self.target = target
        self.cloud = cloud if cloud is not None else getattr(target, "cloud", None)
        self.warnings: list[DegradedResult] = []
        self.request_id = new_request_id()
        self.log = cv_logger.bind(request_id=self.request_id, target=target.kind)

    def warn(self, operation: str, message: str, **kwargs: Any) -> DegradedResult:
        """Record a degraded result and log it at WARNING level."""
        result = DegradedResult(operation=operation, message=message, resource=kwargs.get("resource"))
        self.warnings.append(result)
        self.log.warning(message, task=kwargs.get("task"), resource=result.resource, operation=operation)
        return result
