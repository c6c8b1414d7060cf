from workpilot.compiler.workflow_compiler import (
    CompileResult,
    WorkflowCompiler,
    build_default_name,
)

__all__ = ["CompileResult", "WorkflowCompiler", "build_default_name"]
