"""
Error taxonomy for the cmemsim interpreter.

Two families matter to callers:

  SemanticError:  static problems found by the analyzer (redeclaration,
                   undeclared identifiers, incompatible types). Only the
                   offending function/declaration is abandoned.
  CRuntimeError:  dynamic faults while the guest program runs (unmapped
                   memory, division by zero, bad dereference, bad reference
                   operation). The whole run stops; state is left as-is.

InternalError marks a broken interpreter invariant and is never the guest
program's fault. Lexer and parser errors live beside the lexer/parser.
"""

from __future__ import annotations


class CError(Exception):
    """Base class for every diagnostic error raised about a guest program."""

    label = "Error"
    kind = "ERROR"

    def __init__(self, message: str, line: int = 0, col: int = 0):
        self.message = message
        self.line = line
        self.col = col
        super().__init__(self._format())

    def _format(self) -> str:
        return f"{self.label} at L{self.line}:{self.col}: {self.message}"

    def locate(self, line: int, col: int = 0) -> "CError":
        """Attach a source location if the raiser had none."""
        if not self.line:
            self.line = line
            self.col = col
            self.args = (self._format(),)
        return self


# ──────────────────────────────────────────────
# Static (semantic) errors
# ──────────────────────────────────────────────

class SemanticError(CError):
    label = "Semantic error"
    kind = "SEMANTIC"


class RedeclarationError(SemanticError):
    kind = "REDECLARATION"


class UndeclaredError(SemanticError):
    kind = "UNDECLARED"


class TypeMismatchError(SemanticError):
    kind = "TYPE_MISMATCH"


class NotSupportedError(SemanticError):
    label = "Unsupported feature"
    kind = "NOT_SUPPORTED"


# ──────────────────────────────────────────────
# Dynamic (runtime) errors
# ──────────────────────────────────────────────

class CRuntimeError(CError):
    label = "Runtime error"
    kind = "RUNTIME"


class MemoryAccessError(CRuntimeError):
    kind = "MEMORY_ACCESS"


class OutOfMemoryError(MemoryAccessError):
    kind = "OUT_OF_MEMORY"


class StackOverflowError(OutOfMemoryError):
    kind = "STACK_OVERFLOW"


class DivisionByZeroError(CRuntimeError):
    kind = "DIVISION_BY_ZERO"


class InvalidDereferenceError(CRuntimeError):
    kind = "INVALID_DEREFERENCE"


class InvalidReferenceError(CRuntimeError):
    kind = "INVALID_REFERENCE"


class InternalError(Exception):
    """The interpreter broke one of its own invariants."""
