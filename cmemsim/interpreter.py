"""
cmemsim interpreter: parse -> analyze -> step/run.

A tree-walking interpreter whose every object lives in the Memory
simulator. Handlers are generators: each statement (and each loop
condition / for-update) yields the node about to run, so one call to
``step()`` is one resumption of the program generator. ``run()`` simply
loops over ``step()`` until the program stops or the budget is spent.

Usage:
    interp = Interpreter()
    interp.parse(source)
    out = interp.run(step_budget=10_000)
    print(out, interp.exit_code)
"""

from __future__ import annotations
import enum
import io
import logging
import math
import struct
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

from .ast_nodes import (
    ASTNode, Block, CaseStmt, Declaration, DeclaratorKind, Function, InitializerList,
    LabelStmt, LiteralKind, NodeKind, NodeVisitor, Program,
)
from .c_types import (
    INT, POINTER_SIZE, SIZE_T, VOID, VOID_PTR, CType, common_type, literal_type, promote,
    wrap,
)
from .callstack import CallStack, FrameKind, MemoryRecord
from .config import DEFAULT_PROFILE, DEFAULT_STEP_BUDGET
from .declarations import c_div, c_mod, type_fields
from .diagnostics import Diagnostic, Diagnostics, WarningKind
from .errors import (
    CError, CRuntimeError, DivisionByZeroError, InternalError, InvalidDereferenceError,
    InvalidReferenceError, NotSupportedError, OutOfMemoryError, StackOverflowError,
)
from .lexer import Lexer
from .memory import Memory, Region
from .natives import NativeFunction, format_printf, install_natives
from .parser import Parser
from .semantic import AnalysisResult, SemanticAnalyzer
from .snapshot import Snapshot, take_snapshot
from .symtable import Namespace, SymbolKind

log = logging.getLogger(__name__)

# Guest recursion nests several generator frames per C call.
RECURSION_LIMIT = 10_000


class ExecutionState(enum.Enum):
    UNSTARTED = "UNSTARTED"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    TERMINATED = "TERMINATED"


class StopReason(enum.Enum):
    RETURNED = "RETURNED"
    STEP_LIMIT = "STEP_LIMIT"
    ERROR = "ERROR"


Number = Union[int, float]


@dataclass(frozen=True)
class RValue:
    value: Number
    ctype: CType


@dataclass(frozen=True)
class LValue:
    address: int
    ctype: CType
    name: str = ""


# Control flow inside the guest program
class _ControlSignal(Exception):
    pass


class _BreakSignal(_ControlSignal):
    pass


class _ContinueSignal(_ControlSignal):
    pass


class _ReturnSignal(_ControlSignal):
    def __init__(self, value: Optional[RValue], node):
        super().__init__()
        self.value = value
        self.node = node


class _GotoSignal(_ControlSignal):
    def __init__(self, label: str):
        super().__init__()
        self.label = label


@dataclass
class Report:
    """Program output plus the warnings (with source lines) and any fatal error."""
    output: str
    warnings: List[Tuple[Diagnostic, str]] = field(default_factory=list)
    error: Optional[Diagnostic] = None

    def __str__(self) -> str:
        lines = [self.output.rstrip("\n")] if self.output else []
        for diag, source in self.warnings:
            lines.append(str(diag))
            if source:
                lines.append(f"    {source}")
        if self.error is not None:
            lines.append(f"fatal: {self.error}")
        return "\n".join(lines)


# Nodes that run without a pause point of their own
_SILENT_KINDS = frozenset({
    NodeKind.BLOCK, NodeKind.CASE, NodeKind.LABEL, NodeKind.TYPEDEF,
    NodeKind.STRUCT, NodeKind.ENUM, NodeKind.FUNCTION,
})

_COMPARISONS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


def _to_int(value: Number) -> int:
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    return value


def _c_bytes(text: str) -> bytes:
    """Bytes of a C string literal: escapes are raw bytes, other text is UTF-8."""
    out = bytearray()
    for ch in text:
        code = ord(ch)
        out.extend(bytes([code]) if code < 256 else ch.encode("utf-8"))
    return bytes(out)


def _label_index(items, label: str) -> Optional[int]:
    """Index of the block item carrying ``label``, looking through stacked labels."""
    for i, item in enumerate(items):
        while isinstance(item, (LabelStmt, CaseStmt)):
            if isinstance(item, LabelStmt) and item.label == label:
                return i
            item = item.body
    return None


@contextmanager
def _recursion_headroom():
    previous = sys.getrecursionlimit()
    if previous < RECURSION_LIMIT:
        sys.setrecursionlimit(RECURSION_LIMIT)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


class Interpreter(NodeVisitor):
    """Executes one C program against a simulated memory."""

    def __init__(self, profile: str = DEFAULT_PROFILE):
        super().__init__()
        self.profile = profile
        self.diagnostics = Diagnostics()
        self.memory = Memory(profile, self.diagnostics)
        self.call_stack = CallStack(self.memory)
        self.program: Optional[Program] = None
        self.source_lines: List[str] = []
        self.analysis: Optional[AnalysisResult] = None

        self.state = ExecutionState.UNSTARTED
        self.stop_reason: Optional[StopReason] = None
        self.exit_code: Optional[int] = None
        self.fatal: Optional[Diagnostic] = None
        self.current_node: Optional[ASTNode] = None

        self._out = io.StringIO()
        self._gen = None
        self._instruction = 0
        self._strings: Dict[str, int] = {}
        self._statics: Dict[ASTNode, int] = {}
        self._alloc_sites: Dict[int, Tuple[int, int]] = {}
        self._natives: Dict[str, Callable[[List[RValue], ASTNode], RValue]] = {
            "printf": self._native_printf,
            "puts": self._native_puts,
            "putchar": self._native_putchar,
            "malloc": self._native_malloc,
            "calloc": self._native_calloc,
            "free": self._native_free,
            "strlen": self._native_strlen,
        }

    # ══════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════

    def parse(self, source: str) -> Program:
        """Tokenize and parse ``source``. Raises LexerError / ParseError."""
        if self.state is not ExecutionState.UNSTARTED:
            raise InternalError("parse() called after execution started")
        tokens = Lexer(source).tokenize()
        self.program = Parser(tokens, source).parse()
        self.source_lines = source.splitlines()
        self.analysis = None
        log.debug("parsed %d top-level items", len(self.program.items))
        return self.program

    def analyze(self) -> AnalysisResult:
        if self.program is None:
            raise InternalError("no program loaded; call parse() first")
        if self.analysis is None:
            self.analysis = SemanticAnalyzer(self.diagnostics).analyze(self.program)
        return self.analysis

    @property
    def output(self) -> str:
        return self._out.getvalue()

    @property
    def current_line(self) -> int:
        return self.current_node.line if self.current_node is not None else 0

    def next_instruction_id(self) -> int:
        self._instruction += 1
        return self._instruction

    def step(self) -> Optional[StopReason]:
        """Run to the next pause point. Returns a StopReason once stopped, else None."""
        if self.state is ExecutionState.TERMINATED:
            return self.stop_reason
        if self._gen is None:
            analysis = self.analyze()
            if not analysis.has_main:
                errors = self.diagnostics.errors
                self.fatal = errors[-1] if errors else None
                return self._finish(StopReason.ERROR)
            self._gen = self._run_program()

        self.state = ExecutionState.RUNNING
        self.next_instruction_id()
        try:
            with _recursion_headroom():
                node = next(self._gen)
        except StopIteration as stop:
            self.exit_code = stop.value
            return self._finish(StopReason.RETURNED)
        except CError as exc:
            return self._fail(exc)
        except RecursionError:
            return self._fail(StackOverflowError("stack overflow: recursion too deep"))

        self.current_node = node
        self.state = ExecutionState.PAUSED
        return None

    def run(self, step_budget: Optional[int] = None) -> str:
        """Step until the program stops or ``step_budget`` steps have run."""
        budget = DEFAULT_STEP_BUDGET if step_budget is None else step_budget
        steps = 0
        while self.state is not ExecutionState.TERMINATED:
            if steps >= budget:
                self._finish(StopReason.STEP_LIMIT)
                break
            self.step()
            steps += 1
        return self.output

    def snapshot(self) -> Snapshot:
        return take_snapshot(self.call_stack, self.memory, self.current_line, self._instruction)

    def report(self) -> Report:
        warnings = []
        for diag in self.diagnostics.warnings:
            source = ""
            if 0 < diag.line <= len(self.source_lines):
                source = self.source_lines[diag.line - 1].strip()
            warnings.append((diag, source))
        return Report(self.output, warnings, self.fatal)

    def _finish(self, reason: StopReason) -> StopReason:
        self.state = ExecutionState.TERMINATED
        self.stop_reason = reason
        log.debug("terminated: %s (exit code %s)", reason.value, self.exit_code)
        return reason

    def _fail(self, exc: CError) -> StopReason:
        if self.current_node is not None:
            exc.locate(self.current_node.line, self.current_node.col)
        self.fatal = self.diagnostics.error(exc)
        return self._finish(StopReason.ERROR)

    # ══════════════════════════════════════════════
    # Program setup
    # ══════════════════════════════════════════════

    def _run_program(self):
        analysis = self.analysis
        global_frame = self.call_stack.global_frame
        install_natives(global_frame.scope)

        for item in self.program.items:
            if isinstance(item, Function):
                self._register_function(item.name, item)
            elif isinstance(item, Declaration) and self._is_prototype(item):
                self._register_function(item.name, None)

        for item in self.program.items:
            if (isinstance(item, Declaration) and item not in analysis.failed
                    and not self._is_prototype(item)):
                yield item
                yield from self._declare(item)

        main = global_frame.scope.lookup("main")
        if main.value in analysis.failed:
            raise CRuntimeError("'main' cannot run: it contains semantic errors")
        args = [RValue(0, ctype) for _name, ctype in analysis.params[main.value]]
        result = yield from self._call_function(main.value, args, main.value)
        self._check_leaks()
        return _to_int(result.value) if result.ctype.is_scalar else 0

    def _is_prototype(self, decl: Declaration) -> bool:
        last = decl.declarator.last_derivation() if decl.declarator else None
        return last is not None and last.decl_kind is DeclaratorKind.FUNCTION

    def _register_function(self, name: str, fn: Optional[Function]):
        scope = self.call_stack.global_frame.scope
        existing = scope.lookup_local(name)
        if existing is None:
            scope.insert(Namespace.ORDINARY, SymbolKind.FUNCTION, True, name,
                         is_function=True, value=fn)
        elif existing.is_function and not existing.is_native and existing.value is None:
            existing.value = fn

    def _check_leaks(self):
        for record in self.call_stack.heap.records:
            line, col = self._alloc_sites.get(record.address, (0, 0))
            self.diagnostics.warn(
                WarningKind.MEMORY_LEAK,
                f"{record.size} bytes allocated by {record.name} at address "
                f"{record.address} were never freed", line, col)

    # ══════════════════════════════════════════════
    # Declarations and storage
    # ══════════════════════════════════════════════

    def _declare(self, decl: Declaration, initialize: bool = True):
        """Allocate and bind ``decl``; ``initialize=False`` is a jump past its initializer."""
        ctype = self.analysis.decl_types[decl]
        frame = self.call_stack.top()
        static_local = "static" in decl.storage and frame is not self.call_stack.global_frame
        region = Region.DATA if decl.initializer is not None else Region.BSS

        bound = frame.scope.lookup_local(decl.name)
        if bound is not None and (bound.line, bound.col) == (decl.line, decl.col):
            # Reached again through a backward goto: the object already exists.
            if initialize and decl.initializer is not None and not static_local:
                yield from self._initialize(LValue(bound.value, ctype, decl.name),
                                            decl.initializer)
            return

        if static_local:
            address = self._statics.get(decl)
            first_time = address is None
            if first_time:
                address = self.memory.alloc(region, ctype.size)
                self.call_stack.data.add_record(
                    MemoryRecord(decl.name, address, ctype.size, region, ctype))
                self._statics[decl] = address
        else:
            if frame is not self.call_stack.global_frame:
                region = Region.STACK
            address = self.memory.alloc(region, ctype.size)
            frame.add_record(MemoryRecord(decl.name, address, ctype.size, region, ctype))
            first_time = True

        specifiers, indirection, dims = type_fields(ctype)
        frame.scope.insert(Namespace.ORDINARY, SymbolKind.OBJECT, True, decl.name,
                           specifiers, indirection, dims, value=address,
                           line=decl.line, col=decl.col)
        if decl.initializer is not None and first_time and (initialize or static_local):
            yield from self._initialize(LValue(address, ctype, decl.name), decl.initializer)

    def _initialize(self, target: LValue, init):
        ctype = target.ctype
        if isinstance(init, InitializerList):
            if ctype.is_array:
                element = ctype.element()
                for i, item in enumerate(init.items):
                    yield from self._initialize(
                        LValue(target.address + i * element.size, element, target.name), item)
            else:
                yield from self._initialize(target, init.items[0])
            return
        if ctype.is_array:
            data = _c_bytes(init.value) + b"\0"
            self.memory.load_bytes(target.address, data[:ctype.size])
            return
        value = yield from self._rvalue(init)
        self._store(target, value, init)

    def _intern(self, text: str) -> int:
        """Address of the (protected) DATA copy of a string literal."""
        address = self._strings.get(text)
        if address is None:
            data = _c_bytes(text) + b"\0"
            address = self.memory.data_alloc(len(data))
            self.memory.load_bytes(address, data)
            self.memory.protect(address, len(data))
            self.call_stack.data.add_record(MemoryRecord(
                f'"{text}"', address, len(data), Region.DATA,
                CType("char", array_dims=(len(data),))))
            self._strings[text] = address
        return address

    def _convert(self, rv: RValue, ctype: CType) -> RValue:
        """Value conversion as done by a cast: integers wrap silently."""
        if ctype.is_void:
            return RValue(0, VOID)
        ctype = ctype.unqualified()
        if ctype.is_floating:
            value = float(rv.value)
            if ctype.size == 4:
                try:
                    value = struct.unpack("<f", struct.pack("<f", value))[0]
                except OverflowError:
                    value = math.copysign(math.inf, value)
            return RValue(value, ctype)
        value = _to_int(rv.value)
        if ctype.is_pointer:
            return RValue(value & 0xFFFFFFFF, ctype)
        return RValue(wrap(value, ctype), ctype)

    def _check_range(self, value: int, ctype: CType, node) -> int:
        """Truncate ``value`` to ``ctype``, with one OVERFLOW warning if it did not fit."""
        low, high = ctype.limits
        if low <= value <= high:
            return value
        truncated = wrap(value, ctype)
        self.diagnostics.warn(
            WarningKind.OVERFLOW,
            f"value {value} does not fit in '{ctype}'; truncated to {truncated}",
            node.line, node.col)
        return truncated

    def _store(self, target: LValue, rv: RValue, node) -> RValue:
        """Write ``rv`` into ``target``; out-of-range integers warn and truncate."""
        ctype = target.ctype
        line, col = node.line, node.col
        try:
            if ctype.is_floating:
                value = self.memory.set_float(target.address, float(rv.value), ctype.size)
                return RValue(value, ctype.unqualified())
            if ctype.is_pointer:
                old = self.memory.get_scalar(target.address, POINTER_SIZE, signed=False)
                new = _to_int(rv.value) & 0xFFFFFFFF
                self.memory.set_scalar(target.address, new, POINTER_SIZE, signed=False,
                                       line=line, col=col)
                if old:
                    self.memory.remove_reference(old)
                if new and self.memory.is_mapped(new):
                    self.memory.add_reference(new)
                return RValue(new, ctype.unqualified())
            value = _to_int(rv.value)
            if ctype.base == "_Bool":
                value = 1 if rv.value else 0
            stored = self.memory.set_scalar(target.address, value, ctype.size,
                                            signed=ctype.is_signed, line=line, col=col)
            return RValue(stored, ctype.unqualified())
        except CRuntimeError as exc:
            raise exc.locate(line, col)

    def _load(self, value: Union[RValue, LValue], node) -> RValue:
        if isinstance(value, RValue):
            return value
        ctype = value.ctype
        if ctype.is_array:
            return RValue(value.address, ctype.decay())
        try:
            if ctype.is_floating:
                return RValue(self.memory.get_float(value.address, ctype.size),
                              ctype.unqualified())
            if ctype.is_pointer:
                return RValue(self.memory.get_scalar(value.address, POINTER_SIZE, signed=False),
                              ctype.unqualified())
            return RValue(self.memory.get_scalar(value.address, ctype.size,
                                                 signed=ctype.is_signed), ctype.unqualified())
        except CRuntimeError as exc:
            raise exc.locate(node.line, node.col)

    # ══════════════════════════════════════════════
    # Dispatch helpers
    # ══════════════════════════════════════════════

    def _exec(self, node):
        """Run one block item, pausing before it unless it is structural."""
        if node.kind not in _SILENT_KINDS:
            yield node
        yield from self.dispatch(node)

    def _rvalue(self, node):
        value = yield from self.dispatch(node)
        return self._load(value, node)

    def _lvalue(self, node):
        value = yield from self.dispatch(node)
        if not isinstance(value, LValue):
            raise InternalError(f"expected an lvalue at L{node.line}:{node.col}")
        return value

    def _static_type(self, node) -> CType:
        return self.analysis.expr_types[node]

    def _check_pointer(self, address: int, node):
        if address == 0:
            raise InvalidDereferenceError("dereference of NULL pointer", node.line, node.col)
        if not self.memory.is_mapped(address):
            if self.memory.was_released(address):
                raise InvalidDereferenceError(
                    f"dereference of address {address} after its memory was released",
                    node.line, node.col)
            raise InvalidDereferenceError(
                f"dereference of unallocated address {address}", node.line, node.col)

    # ══════════════════════════════════════════════
    # Function calls
    # ══════════════════════════════════════════════

    def _call_function(self, fn: Function, args: List[RValue], node):
        params = self.analysis.params[fn]
        return_type = self.analysis.decl_types[fn]
        stack = self.call_stack

        params_frame = stack.call(fn.name, FrameKind.PARAMS, parent=stack.global_frame,
                                  construct=fn)
        for (name, ctype), arg in zip(params, args):
            address = self.memory.stack_alloc(ctype.size)
            params_frame.add_record(MemoryRecord(name, address, ctype.size, Region.STACK, ctype))
            specifiers, indirection, dims = type_fields(ctype)
            params_frame.scope.insert(Namespace.ORDINARY, SymbolKind.OBJECT, True, name,
                                      specifiers, indirection, dims, value=address)
            self._store(LValue(address, ctype, name), arg, node)

        body_frame = stack.call(fn.name, FrameKind.FUNCTION, construct=fn.body)
        log.debug("call %s(%s)", fn.name, ", ".join(str(a.value) for a in args))
        try:
            yield from self._run_items(fn.body.items)
        except _ReturnSignal as signal:
            result, where = signal.value, signal.node
        else:
            result, where = None, fn
        stack.pop(body_frame)
        stack.pop(params_frame)

        if return_type.is_void:
            return RValue(0, VOID)
        if result is None:
            return RValue(0.0 if return_type.is_floating else 0, return_type.unqualified())
        if return_type.is_integer and return_type.base != "_Bool":
            ctype = return_type.unqualified()
            return RValue(self._check_range(_to_int(result.value), ctype, where), ctype)
        return self._convert(result, return_type)

    def visit_func_call(self, node):
        name = node.callee.name
        symbol = self.call_stack.top().scope.lookup(name)
        args = []
        for arg in node.args:
            args.append((yield from self._rvalue(arg)))
        if symbol is None or not symbol.is_function:
            raise CRuntimeError(f"'{name}' is not a callable function", node.line, node.col)
        if symbol.is_native:
            return self._call_native(symbol.value, args, node)
        fn = symbol.value
        if fn is None:
            raise CRuntimeError(f"undefined reference to '{name}'", node.line, node.col)
        if fn in self.analysis.failed:
            raise CRuntimeError(f"function '{name}' cannot run: it contains semantic errors",
                                node.line, node.col)
        return (yield from self._call_function(fn, args, node))

    def _call_native(self, native: NativeFunction, args: List[RValue], node) -> RValue:
        converted = [self._convert(arg, ctype) for arg, ctype in zip(args, native.param_types)]
        converted.extend(args[len(native.param_types):])
        log.debug("native %s(%s)", native.name, ", ".join(str(a.value) for a in converted))
        return self._natives[native.name](converted, node)

    # ── Natives ───────────────────────────────

    def _read_string(self, address: int, node) -> str:
        if address == 0:
            raise InvalidDereferenceError("NULL passed where a string was expected",
                                          node.line, node.col)
        try:
            return self.memory.read_c_string(address)
        except CRuntimeError as exc:
            raise exc.locate(node.line, node.col)

    def _native_printf(self, args: List[RValue], node) -> RValue:
        fmt = self._read_string(args[0].value, node)
        try:
            text = format_printf(fmt, [a.value for a in args[1:]],
                                 lambda address: self._read_string(address, node))
        except CRuntimeError as exc:
            raise exc.locate(node.line, node.col)
        self._out.write(text)
        return RValue(len(text), INT)

    def _native_puts(self, args: List[RValue], node) -> RValue:
        text = self._read_string(args[0].value, node) + "\n"
        self._out.write(text)
        return RValue(len(text), INT)

    def _native_putchar(self, args: List[RValue], node) -> RValue:
        code = args[0].value & 0xFF
        self._out.write(chr(code))
        return RValue(code, INT)

    def _native_strlen(self, args: List[RValue], node) -> RValue:
        if args[0].value == 0:
            raise InvalidDereferenceError("strlen() of NULL pointer", node.line, node.col)
        try:
            return RValue(len(self.memory.read_c_bytes(args[0].value)), SIZE_T)
        except CRuntimeError as exc:
            raise exc.locate(node.line, node.col)

    def _heap_block(self, size: int, what: str, node) -> RValue:
        if size == 0:
            return RValue(0, VOID_PTR)
        try:
            address = self.memory.heap_alloc(size)
        except OutOfMemoryError as exc:
            log.debug("%s(%d) failed: %s", what, size, exc.message)
            return RValue(0, VOID_PTR)
        self.call_stack.heap.add_record(MemoryRecord(
            what, address, size, Region.HEAP, CType("char", is_unsigned=True,
                                                    array_dims=(size,))))
        self._alloc_sites[address] = (node.line, node.col)
        return RValue(address, VOID_PTR)

    def _native_malloc(self, args: List[RValue], node) -> RValue:
        return self._heap_block(args[0].value, "malloc", node)

    def _native_calloc(self, args: List[RValue], node) -> RValue:
        return self._heap_block(args[0].value * args[1].value, "calloc", node)

    def _native_free(self, args: List[RValue], node) -> RValue:
        address = args[0].value
        if address == 0:
            return RValue(0, VOID)
        heap = self.call_stack.heap
        record = next((r for r in heap.records if r.address == address), None)
        if record is None:
            if self.memory.was_released(address):
                raise InvalidReferenceError(f"double free of address {address}",
                                            node.line, node.col)
            raise InvalidReferenceError(
                f"free() of address {address}, which is not the start of a heap block",
                node.line, node.col)
        self.memory.free(record.address, record.size)
        heap.records.remove(record)
        self._alloc_sites.pop(address, None)
        return RValue(0, VOID)

    # ══════════════════════════════════════════════
    # Declarations (as block items)
    # ══════════════════════════════════════════════

    def visit_declaration(self, node):
        if self._is_prototype(node):
            self._register_function(node.name, None)
            return
        yield from self._declare(node)

    def visit_function(self, node):
        yield from ()

    def visit_typedef(self, node):
        yield from ()

    def visit_struct(self, node):
        yield from ()

    def visit_enum(self, node):
        yield from ()

    # ══════════════════════════════════════════════
    # Statements
    # ══════════════════════════════════════════════

    def visit_block(self, node):
        frame = self.call_stack.call("block", FrameKind.BLOCK, construct=node)
        try:
            yield from self._run_items(node.items)
        except _ControlSignal:
            self.call_stack.pop(frame)
            raise
        self.call_stack.pop(frame)

    def _run_items(self, items, start: int = 0):
        """Run block items from ``start``, resuming at any label here a goto names."""
        position = start
        while position < len(items):
            try:
                yield from self._exec(items[position])
            except _GotoSignal as signal:
                target = _label_index(items, signal.label)
                if target is None:
                    raise
                # Objects declared between here and a later label still come into scope.
                for skipped in items[position + 1:target]:
                    if isinstance(skipped, Declaration) and not self._is_prototype(skipped):
                        yield from self._declare(skipped, initialize=False)
                log.debug("goto %s -> item %d", signal.label, target)
                position = target
                continue
            position += 1

    def visit_expr_statement(self, node):
        if node.expr is not None:
            yield from self.dispatch(node.expr)

    def visit_if(self, node):
        cond = yield from self._rvalue(node.condition)
        if cond.value:
            yield from self._exec(node.then_body)
        elif node.else_body is not None:
            yield from self._exec(node.else_body)

    def visit_while(self, node):
        while True:
            cond = yield from self._rvalue(node.condition)
            if not cond.value:
                break
            try:
                yield from self._exec(node.body)
            except _BreakSignal:
                break
            except _ContinueSignal:
                pass
            yield node.condition

    def visit_do_while(self, node):
        while True:
            try:
                yield from self._exec(node.body)
            except _BreakSignal:
                break
            except _ContinueSignal:
                pass
            yield node.condition
            cond = yield from self._rvalue(node.condition)
            if not cond.value:
                break

    def visit_for(self, node):
        frame = None
        if any(isinstance(item, Declaration) for item in node.init):
            frame = self.call_stack.call("for", FrameKind.BLOCK, construct=node)
        try:
            yield from self._for_loop(node)
        except _ControlSignal:
            if frame is not None:
                self.call_stack.pop(frame)
            raise
        if frame is not None:
            self.call_stack.pop(frame)

    def _for_loop(self, node):
        for item in node.init:
            yield from self.dispatch(item)
        while True:
            if node.condition is not None:
                cond = yield from self._rvalue(node.condition)
                if not cond.value:
                    break
            try:
                yield from self._exec(node.body)
            except _BreakSignal:
                break
            except _ContinueSignal:
                pass
            if node.update is not None:
                yield node.update
                yield from self.dispatch(node.update)
            else:
                yield node.condition if node.condition is not None else node

    def visit_switch(self, node):
        value = yield from self._rvalue(node.expr)
        body = node.body
        items = body.items if isinstance(body, Block) else (body,)
        target = self._switch_target(items, value.value)

        frame = None
        if isinstance(body, Block):
            frame = self.call_stack.call("switch", FrameKind.BLOCK, construct=body)
        try:
            # Declarations before the target come into scope, uninitialized.
            stop = target if target is not None else len(items)
            for item in items[:stop]:
                if isinstance(item, Declaration) and not self._is_prototype(item):
                    yield from self._declare(item, initialize=False)
            if target is not None:
                yield from self._run_items(items, target)
        except _BreakSignal:
            pass
        except _ControlSignal:
            if frame is not None:
                self.call_stack.pop(frame)
            raise
        if frame is not None:
            self.call_stack.pop(frame)

    def _switch_target(self, items, value: int) -> Optional[int]:
        default = None
        for i, item in enumerate(items):
            label = item
            while isinstance(label, CaseStmt):
                if label.value is None:
                    default = i if default is None else default
                elif self.analysis.constants[label] == value:
                    return i
                label = label.body
        return default

    def visit_case(self, node):
        yield from self._exec(node.body)

    def visit_label(self, node):
        yield from self._exec(node.body)

    def visit_return(self, node):
        value = None
        if node.value is not None:
            value = yield from self._rvalue(node.value)
        raise _ReturnSignal(value, node)

    def visit_break(self, node):
        yield from ()
        raise _BreakSignal()

    def visit_continue(self, node):
        yield from ()
        raise _ContinueSignal()

    def visit_goto(self, node):
        yield from ()
        raise _GotoSignal(node.label)

    # ══════════════════════════════════════════════
    # Expressions
    # ══════════════════════════════════════════════

    def visit_identifier(self, node):
        yield from ()
        constant = self.analysis.constants.get(node)
        if constant is not None:
            return RValue(constant, INT)
        symbol = self.call_stack.top().scope.lookup(node.name)
        if symbol is None or symbol.kind is not SymbolKind.OBJECT:
            raise CRuntimeError(f"'{node.name}' is not available at run time "
                                f"(its declaration failed)", node.line, node.col)
        return LValue(symbol.value, self._static_type(node), node.name)

    def visit_literal(self, node):
        yield from ()
        if node.literal_kind is LiteralKind.STRING:
            return LValue(self._intern(node.value), literal_type(node))
        return RValue(node.value, literal_type(node))

    def visit_binary_op(self, node):
        if node.op in ("&&", "||"):
            left = yield from self._rvalue(node.left)
            if node.op == "&&" and not left.value:
                return RValue(0, INT)
            if node.op == "||" and left.value:
                return RValue(1, INT)
            right = yield from self._rvalue(node.right)
            return RValue(1 if right.value else 0, INT)
        left = yield from self._rvalue(node.left)
        right = yield from self._rvalue(node.right)
        return self._arith(node.op, left, right, node)

    def _arith(self, op: str, left: RValue, right: RValue, node) -> RValue:
        lt, rt = left.ctype, right.ctype

        if op in ("+", "-") and (lt.is_pointer or rt.is_pointer):
            if lt.is_pointer and rt.is_pointer:
                size = lt.pointed_to().size or 1
                return RValue(c_div(left.value - right.value, size), INT)
            ptr, offset = (left, right) if lt.is_pointer else (right, left)
            delta = _to_int(offset.value) * ptr.ctype.pointed_to().size
            address = ptr.value + delta if op == "+" else ptr.value - delta
            return RValue(address & 0xFFFFFFFF, ptr.ctype)

        if op in _COMPARISONS:
            a, b = left.value, right.value
            if lt.is_arithmetic and rt.is_arithmetic:
                ctype = common_type(lt, rt)
                if ctype.is_integer and ctype.is_unsigned:
                    a, b = wrap(a, ctype), wrap(b, ctype)
            return RValue(1 if _COMPARISONS[op](a, b) else 0, INT)

        ctype = promote(lt) if op in ("<<", ">>") else common_type(lt, rt)
        if ctype.is_floating:
            a, b = float(left.value), float(right.value)
            if op == "/" and b == 0.0:
                raise DivisionByZeroError("division by zero", node.line, node.col)
            result = {"+": a + b, "-": a - b, "*": a * b}.get(op)
            if op == "/":
                result = a / b
            return self._convert(RValue(result, ctype), ctype)

        a, b = _to_int(left.value), _to_int(right.value)
        if ctype.is_unsigned:
            a, b = wrap(a, ctype), wrap(b, ctype)
        if op in ("/", "%"):
            if b == 0:
                raise DivisionByZeroError("division by zero", node.line, node.col)
            result = c_div(a, b) if op == "/" else c_mod(a, b)
        elif op in ("<<", ">>"):
            if b < 0:
                raise CRuntimeError(f"negative shift count {b}", node.line, node.col)
            result = a << b if op == "<<" else a >> b
        else:
            result = {
                "+": lambda: a + b,
                "-": lambda: a - b,
                "*": lambda: a * b,
                "&": lambda: a & b,
                "|": lambda: a | b,
                "^": lambda: a ^ b,
            }[op]()
        if ctype.is_unsigned:
            result = wrap(result, ctype)
        else:
            result = self._check_range(result, ctype, node)
        return RValue(result, ctype)

    def visit_unary_op(self, node):
        operand = yield from self._rvalue(node.operand)
        if node.op == "!":
            return RValue(0 if operand.value else 1, INT)
        ctype = promote(operand.ctype)
        if node.op == "+":
            return RValue(operand.value, ctype)
        if node.op == "-":
            result = -operand.value
        else:
            result = ~_to_int(operand.value)
        if ctype.is_integer and ctype.is_unsigned:
            result = wrap(result, ctype)
        elif ctype.is_integer:
            result = self._check_range(result, ctype, node)
        return RValue(result, ctype)

    def visit_assignment(self, node):
        target = yield from self._lvalue(node.target)
        value = yield from self._rvalue(node.value)
        return self._store(target, value, node)

    def visit_compound_assignment(self, node):
        target = yield from self._lvalue(node.target)
        current = self._load(target, node.target)
        value = yield from self._rvalue(node.value)
        return self._store(target, self._arith(node.op, current, value, node), node)

    def visit_cast(self, node):
        value = yield from self._rvalue(node.expr)
        return self._convert(value, self._static_type(node))

    def visit_deref(self, node):
        pointer = yield from self._rvalue(node.expr)
        self._check_pointer(pointer.value, node)
        return LValue(pointer.value, self._static_type(node))

    def visit_addr_of(self, node):
        target = yield from self._lvalue(node.expr)
        return RValue(target.address, self._static_type(node))

    def visit_array_subscript(self, node):
        base = yield from self.dispatch(node.array)
        if isinstance(base, LValue) and base.ctype.is_array:
            index = yield from self._rvalue(node.index)
            element = base.ctype.element()
            return LValue(base.address + _to_int(index.value) * element.size, element, base.name)
        pointer = self._load(base, node.array)
        index = yield from self._rvalue(node.index)
        if not pointer.ctype.is_pointer:
            pointer, index = index, pointer
        element = pointer.ctype.pointed_to()
        address = (pointer.value + _to_int(index.value) * element.size) & 0xFFFFFFFF
        self._check_pointer(address, node)
        return LValue(address, element)

    def visit_member_access(self, node):
        yield from ()
        raise NotSupportedError("struct and union member access is not supported",
                                node.line, node.col)

    def visit_sizeof(self, node):
        yield from ()
        return RValue(self.analysis.constants[node], SIZE_T)

    def visit_ternary(self, node):
        cond = yield from self._rvalue(node.condition)
        value = yield from self._rvalue(node.then_expr if cond.value else node.else_expr)
        return self._convert(value, self._static_type(node))

    def _inc_dec(self, node):
        target = yield from self._lvalue(node.operand)
        current = self._load(target, node.operand)
        one = RValue(1, INT)
        updated = self._arith("+" if node.op == "++" else "-", current, one, node)
        stored = self._store(target, updated, node)
        return current, stored

    def visit_pre_inc_dec(self, node):
        _current, stored = yield from self._inc_dec(node)
        return stored

    def visit_post_inc_dec(self, node):
        current, _stored = yield from self._inc_dec(node)
        return current

    def visit_comma(self, node):
        yield from self.dispatch(node.left)
        return (yield from self.dispatch(node.right))
