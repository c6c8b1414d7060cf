"""WorkPilot workflow builder package."""

from workpilot.main import WorkPilot

__all__ = ["WorkPilot"]
