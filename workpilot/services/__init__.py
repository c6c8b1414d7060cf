"""
Request-level services built on the compiler, run engine and stores.
"""

from workpilot.services.pilot_service import CreatedPilot, PilotService, PilotView
from workpilot.services.retention import RetentionResult, RetentionSweep
from workpilot.services.run_service import RunOutcome, RunService

__all__ = [
    "CreatedPilot",
    "PilotService",
    "PilotView",
    "RetentionResult",
    "RetentionSweep",
    "RunOutcome",
    "RunService",
]
