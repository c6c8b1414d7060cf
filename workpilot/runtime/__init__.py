from workpilot.runtime.engine import RunEngine, RunResult, apply_variables

__all__ = ["RunEngine", "RunResult", "apply_variables"]
