"""Engine — the provisioning run."""

from wahaprov.core.engine.orchestrator import Orchestrator

__all__ = ["Orchestrator"]
