"""
Diagnostics stream: warnings and errors collected while analyzing and
running a guest program. Both lists are independently queryable and
drainable, and every record carries a source location.
"""

from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import List

from .errors import CError

log = logging.getLogger(__name__)


class Severity(enum.Enum):
    WARNING = "warning"
    ERROR = "error"


class WarningKind(enum.Enum):
    OVERFLOW = "OVERFLOW"
    UNINITIALIZED = "UNINITIALIZED"
    POINTER_MISMATCH = "POINTER_MISMATCH"
    RETURN_TYPE = "RETURN_TYPE"
    MEMORY_LEAK = "MEMORY_LEAK"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    kind: str
    message: str
    line: int = 0
    col: int = 0

    def __str__(self) -> str:
        where = f"L{self.line}:{self.col}" if self.line else "L?"
        return f"{self.severity.value} [{self.kind}] {where}: {self.message}"


class Diagnostics:
    """Ordered collection of warnings and errors."""

    def __init__(self):
        self._warnings: List[Diagnostic] = []
        self._errors: List[Diagnostic] = []

    def warn(self, kind: WarningKind, message: str, line: int = 0, col: int = 0) -> Diagnostic:
        diag = Diagnostic(Severity.WARNING, kind.value, message, line, col)
        self._warnings.append(diag)
        log.warning("%s", diag)
        return diag

    def error(self, exc: CError) -> Diagnostic:
        """Record a semantic or runtime error."""
        diag = Diagnostic(Severity.ERROR, exc.kind, exc.message, exc.line, exc.col)
        self._errors.append(diag)
        log.error("%s", diag)
        return diag

    @property
    def warnings(self) -> List[Diagnostic]:
        return list(self._warnings)

    @property
    def errors(self) -> List[Diagnostic]:
        return list(self._errors)

    def warnings_of(self, kind: WarningKind) -> List[Diagnostic]:
        return [w for w in self._warnings if w.kind == kind.value]

    def drain_warnings(self) -> List[Diagnostic]:
        drained, self._warnings = self._warnings, []
        return drained

    def drain_errors(self) -> List[Diagnostic]:
        drained, self._errors = self._errors, []
        return drained

    def __len__(self) -> int:
        return len(self._warnings) + len(self._errors)

    def format_report(self) -> str:
        lines = [str(w) for w in self._warnings]
        lines.extend(str(e) for e in self._errors)
        return "\n".join(lines)
