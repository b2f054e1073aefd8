"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from wahaprov.core.models import ProvisioningSpec, ProvisioningResult, Action, Receipt
"""

from wahaprov.core.models.action import Action, Receipt
from wahaprov.core.models.result import Credentials, ProvisioningResult, StepRecord
from wahaprov.core.models.spec import (
    AptRepository,
    Artifact,
    FirewallRule,
    ProvisioningSpec,
)

__all__ = [
    "Action",
    "AptRepository",
    "Artifact",
    "Credentials",
    "FirewallRule",
    "ProvisioningResult",
    "ProvisioningSpec",
    "Receipt",
    "StepRecord",
]
