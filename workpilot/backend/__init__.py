from workpilot.backend.generation import (
    CompileOutcome,
    CompileRequest,
    GenerateOutcome,
    GenerationBackend,
    LangChainGenerationBackend,
    UnconfiguredBackend,
    build_generation_backend,
)

__all__ = [
    "CompileOutcome",
    "CompileRequest",
    "GenerateOutcome",
    "GenerationBackend",
    "LangChainGenerationBackend",
    "UnconfiguredBackend",
    "build_generation_backend",
]
