"""
Domain models — Pydantic types and plain dataclasses for the provisioner.

All models are re-exported here for convenient access:

    from siliconcraft.core.models import EnvironmentProfile, StageOutcome, Receipt
"""

from siliconcraft.core.models.action import Action, Receipt
from siliconcraft.core.models.environment import (
    EnvironmentProfile,
    ExecutionMode,
    PlatformKind,
)
from siliconcraft.core.models.pipeline import (
    Backoff,
    Degraded,
    FailurePolicy,
    PipelineReport,
    RetryPolicy,
    StageDescriptor,
    StageOutcome,
    StageStatus,
)
from siliconcraft.core.models.workspace import WorkspaceLayout

__all__ = [
    # action.py
    "Action",
    # pipeline.py
    "Backoff",
    "Degraded",
    # environment.py
    "EnvironmentProfile",
    "ExecutionMode",
    "FailurePolicy",
    "PipelineReport",
    "PlatformKind",
    "Receipt",
    "RetryPolicy",
    "StageDescriptor",
    "StageOutcome",
    "StageStatus",
    # workspace.py
    "WorkspaceLayout",
]
