"""
Domain models — Pydantic types for rollupctl.

All models are re-exported here for convenient access:

    from rollupctl.core.models import Action, Receipt, ConfigPatch, ServiceSpec
"""

from rollupctl.core.models.action import Action, Receipt
from rollupctl.core.models.deployment import (
    DeployConfig,
    OpStackSettings,
    OrbitSettings,
    ReadinessSettings,
)
from rollupctl.core.models.patch import ConfigPatch
from rollupctl.core.models.service import ServiceSpec
from rollupctl.core.models.state import ProjectState, RunRecord, StepRecord

__all__ = [
    # action.py
    "Action",
    # patch.py
    "ConfigPatch",
    # deployment.py
    "DeployConfig",
    "OpStackSettings",
    "OrbitSettings",
    # state.py
    "ProjectState",
    "ReadinessSettings",
    "Receipt",
    "RunRecord",
    # service.py
    "ServiceSpec",
    "StepRecord",
]
