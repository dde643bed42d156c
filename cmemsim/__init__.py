"""
cmemsim: C Memory Simulator
===========================
An educational interpreter for a subset of C that runs every object
through a simulated byte-addressable memory, so the stack, heap, data
and BSS regions can be inspected between any two statements.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌───────────┐    ┌─────────────┐
    │ C Source │───>│  Lexer   │───>│  Parser  │───>│ Semantic  │───>│ Interpreter │
    │ (.c)     │    │ (tokens) │    │  (AST)   │    │ (checks)  │    │ (step/run)  │
    └──────────┘    └──────────┘    └──────────┘    └───────────┘    └──────┬──────┘
                                                                            │
                                              ┌───────────┐    ┌────────────┴───┐
                                              │  Snapshot │<───│ CallStack +    │
                                              │  (views)  │    │ Memory         │
                                              └───────────┘    └────────────────┘

    - lexer.py:        Regex tokenizer with a small #define/#include preprocessor
    - parser.py:       Recursive descent with full C declarator syntax
    - ast_nodes.py:    Frozen dataclass tree + tag-dispatched NodeVisitor
    - semantic.py:     Scopes, types, warnings; abandons only the faulty construct
    - memory.py:       Sparse cells in four regions, reference counts, hexdump
    - callstack.py:    Frames owning runtime scopes and memory records
    - interpreter.py:  Generator-based tree walker; one step = one statement
"""

__version__ = "0.4.0"

from .errors import (
    CError, CRuntimeError, InternalError, NotSupportedError, SemanticError,
)
from .lexer import Lexer, LexerError, Token, TokenType
from .parser import ParseError, Parser
from .memory import Memory, Region
from .callstack import CallStack, Frame, FrameKind, MemoryRecord
from .semantic import AnalysisResult, SemanticAnalyzer
from .diagnostics import Diagnostic, Diagnostics, WarningKind
from .interpreter import ExecutionState, Interpreter, Report, StopReason
from .snapshot import Snapshot, take_snapshot
from .config import DEFAULT_PROFILE, LAYOUT_PROFILES


def run_source(source: str, *, step_budget=None, profile: str = DEFAULT_PROFILE) -> Interpreter:
    """Parse and run a C program; returns the finished Interpreter.

    Lexer and parse errors propagate. Semantic and runtime errors are
    recorded on ``interp.diagnostics`` and end the run with
    ``StopReason.ERROR``.
    """
    interp = Interpreter(profile)
    interp.parse(source)
    interp.run(step_budget)
    return interp
