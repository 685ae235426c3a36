from context_compiler.compilers.agents import AgentsCompiler
from context_compiler.compilers.base import (
    CompilationResult,
    CompilerContext,
    ITargetCompiler,
    OutputFile,
)
from context_compiler.compilers.claude import ClaudeCompiler
from context_compiler.compilers.cursor import CursorCompiler
from context_compiler.models import BuildTarget


def default_compilers() -> dict[BuildTarget, ITargetCompiler]:
    return {
        BuildTarget.CLAUDE: ClaudeCompiler(),
        BuildTarget.CURSOR: CursorCompiler(),
        BuildTarget.AGENTS: AgentsCompiler(),
    }


__all__ = [
    "AgentsCompiler",
    "ClaudeCompiler",
    "CompilationResult",
    "CompilerContext",
    "CursorCompiler",
    "ITargetCompiler",
    "OutputFile",
    "default_compilers",
]
