"""
Semantic analysis pass.

Walks the AST ahead of execution with its own static scopes, resolving
declarations and checking expressions. Errors are SemanticError
subclasses: each one abandons only the top-level function or declaration
it occurred in, which is recorded in ``AnalysisResult.failed`` and skipped
by the interpreter. Non-fatal findings go to Diagnostics as warnings.

The pass also fills side tables keyed by node identity (declared types,
expression types, folded constants, parameter lists) that the interpreter
reuses instead of re-deriving types at run time.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .ast_nodes import (
    ASTNode, Block, BreakStmt, CaseStmt, DoWhileStmt, ForStmt, Function, Identifier,
    IfStmt, InitializerList, LabelStmt, Literal, LiteralKind, NodeVisitor, Program,
    ReturnStmt, SwitchStmt, WhileStmt,
)
from .c_types import (
    INT, SIZE_T, VOID, CType, common_type, literal_type, promote,
)
from .declarations import (
    base_type, complete_array, derive, fold_constant, parameter_types,
    resolve_type_name, type_fields,
)
from .diagnostics import Diagnostics, WarningKind
from .errors import (
    NotSupportedError, SemanticError, TypeMismatchError, UndeclaredError,
)
from .natives import NATIVE_FUNCTIONS, install_natives
from .symtable import Namespace, Scope, ScopeKind, Symbol, SymbolKind

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExprInfo:
    """Static facts about one expression."""
    ctype: CType
    lvalue: bool = False
    symbol: Optional[Symbol] = None       # object or function named by an Identifier
    null_constant: bool = False           # integer constant 0, possibly cast


@dataclass(frozen=True)
class Signature:
    return_type: CType
    param_types: Tuple[CType, ...]
    variadic: bool = False


@dataclass
class AnalysisResult:
    global_scope: Scope
    failed: Set[ASTNode] = field(default_factory=set)
    decl_types: Dict[ASTNode, CType] = field(default_factory=dict)
    expr_types: Dict[ASTNode, CType] = field(default_factory=dict)
    constants: Dict[ASTNode, int] = field(default_factory=dict)
    params: Dict[ASTNode, List[Tuple[str, CType]]] = field(default_factory=dict)
    signatures: Dict[str, Signature] = field(default_factory=dict)
    has_main: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and self.has_main


def _same_pointee(a: CType, b: CType) -> bool:
    return (a.base, a.is_unsigned, a.pointer_depth) == (b.base, b.is_unsigned, b.pointer_depth)


def _is_void_pointer(ctype: CType) -> bool:
    return ctype.is_pointer and ctype.base == "void" and ctype.pointer_depth == 1


class SemanticAnalyzer(NodeVisitor):
    """Static checks over a whole Program."""

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        super().__init__()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.global_scope = Scope("global", ScopeKind.GLOBAL)
        self._scope = self.global_scope
        self.result = AnalysisResult(self.global_scope)
        self._return_type: Optional[CType] = None
        self._function_name = ""
        self._loops = 0
        self._switches: List[Tuple[Set[int], List[bool]]] = []
        self._unevaluated = 0
        self._warned: Set[int] = set()
        self._prototypes: Dict[str, ASTNode] = {}
        self._labels: Optional[Scope] = None
        self._blocks: List[ASTNode] = []      # enclosing blocks of the current statement

    # ── Entry point ───────────────────────────

    def analyze(self, program: Program) -> AnalysisResult:
        install_natives(self.global_scope)
        for name, native in NATIVE_FUNCTIONS.items():
            self.result.signatures[name] = Signature(native.return_type, native.param_types,
                                                     native.variadic)

        for item in program.items:
            try:
                self.dispatch(item)
            except SemanticError as exc:
                self._fail(item, exc)
            finally:
                self._scope = self.global_scope
                self._loops = 0
                self._switches = []
                self._return_type = None
                self._labels = None
                self._blocks = []

        main = self.global_scope.lookup_local("main")
        if main is None or not main.is_function or main.value is None:
            self.diagnostics.error(SemanticError("undefined reference to 'main'"))
        else:
            self.result.has_main = True

        for symbol in self.global_scope:
            if symbol.is_function and not symbol.is_native and symbol.value is None:
                node = self._prototypes.get(symbol.name)
                self._fail(node, SemanticError(
                    f"function '{symbol.name}' declared but never defined",
                    symbol.line, symbol.col))

        log.debug("analysis done: %d failed constructs", len(self.result.failed))
        return self.result

    def _fail(self, node: Optional[ASTNode], exc: SemanticError):
        if node is not None:
            exc.locate(node.line, node.col)
            self.result.failed.add(node)
        self.diagnostics.error(exc)

    # ── Helpers ───────────────────────────────

    def _lookup(self, name: str) -> Optional[Symbol]:
        return self._scope.lookup(name)

    def _type_of(self, expr) -> CType:
        self._unevaluated += 1
        try:
            return self._expr(expr).ctype
        finally:
            self._unevaluated -= 1

    def _push(self, name: str, kind: ScopeKind = ScopeKind.BLOCK) -> Scope:
        self._scope = Scope(name, kind, self._scope)
        return self._scope

    def _pop(self):
        self._scope = self._scope.parent

    def _expr(self, node) -> ExprInfo:
        info: ExprInfo = self.dispatch(node)
        self.result.expr_types[node] = info.ctype
        return info

    def _value(self, node) -> ExprInfo:
        """Evaluate for its value: arrays decay, functions are rejected."""
        info = self._expr(node)
        if info.symbol is not None and info.symbol.is_function:
            raise NotSupportedError("function pointers are not supported", node.line, node.col)
        ctype = info.ctype
        if ctype.is_array:
            if len(ctype.array_dims) > 1:
                raise NotSupportedError("pointers to arrays are not supported",
                                        node.line, node.col)
            return ExprInfo(ctype.decay())
        return ExprInfo(ctype.unqualified(), null_constant=info.null_constant)

    def _scalar(self, node, what: str) -> ExprInfo:
        info = self._value(node)
        if not info.ctype.is_scalar:
            raise TypeMismatchError(f"used '{info.ctype}' where a scalar is required ({what})",
                                    node.line, node.col)
        return info

    def _warn(self, kind: WarningKind, message: str, node):
        self.diagnostics.warn(kind, message, node.line, node.col)

    def _check_assign(self, dst: CType, src: ExprInfo, node, what: str):
        """Compatibility of storing ``src`` into an object of type ``dst``."""
        if src.ctype.is_void:
            raise TypeMismatchError("void value not ignored as it ought to be",
                                    node.line, node.col)
        if dst.is_pointer:
            if src.ctype.is_floating:
                raise TypeMismatchError(
                    f"incompatible types in {what} to '{dst}' from '{src.ctype}'",
                    node.line, node.col)
            if src.ctype.is_integer and not src.null_constant:
                self._warn(WarningKind.POINTER_MISMATCH,
                           f"{what} makes pointer from integer without a cast", node)
            elif (src.ctype.is_pointer and not _same_pointee(dst, src.ctype)
                  and not _is_void_pointer(dst) and not _is_void_pointer(src.ctype)):
                self._warn(WarningKind.POINTER_MISMATCH,
                           f"{what} from incompatible pointer type '{src.ctype}' to '{dst}'",
                           node)
        elif dst.is_arithmetic and src.ctype.is_pointer:
            if dst.is_floating:
                raise TypeMismatchError(
                    f"incompatible types in {what} to '{dst}' from '{src.ctype}'",
                    node.line, node.col)
            if dst.base != "_Bool":
                self._warn(WarningKind.POINTER_MISMATCH,
                           f"{what} makes integer from pointer without a cast", node)

    def _check_modifiable(self, info: ExprInfo, node, what: str):
        if info.symbol is not None and info.symbol.is_function:
            raise SemanticError(f"lvalue required as {what}", node.line, node.col)
        if info.ctype.is_array:
            raise SemanticError("assignment to expression with array type", node.line, node.col)
        if not info.lvalue:
            raise SemanticError(f"lvalue required as {what}", node.line, node.col)
        if info.ctype.is_const:
            name = f" '{info.symbol.name}'" if info.symbol is not None else ""
            raise SemanticError(f"assignment of read-only location{name}", node.line, node.col)

    # ── Declarations ──────────────────────────

    def visit_declaration(self, decl):
        ctype = base_type(decl.type_spec, self._lookup)
        declared = derive(ctype, decl.declarator, self._lookup, self._type_of)
        if declared.is_function:
            self._declare_function(decl, declared)
            return
        if "extern" in decl.storage:
            raise NotSupportedError("extern object declarations are not supported",
                                    decl.line, decl.col)

        ctype = complete_array(declared.ctype, decl.initializer, decl.line, decl.col)
        if ctype.is_void:
            raise SemanticError(f"variable '{declared.name}' declared void", decl.line, decl.col)
        if ctype.is_array and ctype.array_dims[0] < 0:
            raise SemanticError(f"array size missing in '{declared.name}'", decl.line, decl.col)

        is_static = "static" in decl.storage or self._scope is self.global_scope
        specifiers, indirection, dims = type_fields(ctype)
        symbol = self._scope.insert(
            Namespace.ORDINARY, SymbolKind.OBJECT, False, declared.name, specifiers,
            indirection, dims, line=decl.line, col=decl.col)
        self.result.decl_types[decl] = ctype
        if decl.initializer is not None:
            self._check_initializer(ctype, decl.initializer, decl)
        symbol.initialized = decl.initializer is not None or is_static or ctype.is_array

    def _check_initializer(self, ctype: CType, init, node):
        if isinstance(init, InitializerList):
            if ctype.is_array:
                if len(init.items) > ctype.array_dims[0]:
                    raise SemanticError("excess elements in array initializer",
                                        init.line, init.col)
                element = ctype.element()
                for item in init.items:
                    if element.is_array and not isinstance(item, (InitializerList, Literal)):
                        raise NotSupportedError("nested array initializers need braces",
                                                item.line, item.col)
                    self._check_initializer(element, item, item)
                return
            if len(init.items) != 1:
                raise SemanticError("excess elements in scalar initializer",
                                    init.line, init.col)
            self._check_initializer(ctype, init.items[0], node)
            return

        if ctype.is_array:
            if (isinstance(init, Literal) and init.literal_kind is LiteralKind.STRING
                    and len(ctype.array_dims) == 1 and ctype.pointer_depth == 0
                    and ctype.element_size == 1):
                self.result.expr_types[init] = literal_type(init)
                if len(init.value) > ctype.array_dims[0]:
                    raise SemanticError("initializer-string for array is too long",
                                        init.line, init.col)
                return
            raise SemanticError("invalid initializer", init.line, init.col)

        self._check_assign(ctype, self._value(init), init, "initialization")

    def _declare_function(self, decl, declared):
        """A prototype: ``int f(int);``."""
        if declared.ctype.is_array:
            raise SemanticError("function cannot return an array", decl.line, decl.col)
        params = parameter_types(declared.params, self._lookup, self._type_of)
        signature = Signature(declared.ctype, tuple(t for _n, t in params), declared.variadic)
        existing = self.global_scope.lookup_local(declared.name)
        if existing is not None and existing.is_function:
            if not existing.is_native:
                self._check_signature(declared.name, signature, decl)
            return
        specifiers, indirection, _dims = type_fields(declared.ctype)
        self.global_scope.insert(
            Namespace.ORDINARY, SymbolKind.FUNCTION, True, declared.name, specifiers,
            indirection, params=declared.params, is_function=True, line=decl.line, col=decl.col)
        self.result.signatures[declared.name] = signature
        self._prototypes[declared.name] = decl

    def _check_signature(self, name: str, signature: Signature, node):
        previous = self.result.signatures.get(name)
        if previous is not None and previous != signature:
            raise SemanticError(f"conflicting types for '{name}'", node.line, node.col)

    def visit_function(self, fn: Function):
        ret = base_type(fn.type_spec, self._lookup)
        declared = derive(ret, fn.declarator, self._lookup, self._type_of)
        params = parameter_types(declared.params, self._lookup, self._type_of)
        signature = Signature(declared.ctype, tuple(t for _n, t in params), declared.variadic)

        existing = self.global_scope.lookup_local(declared.name)
        if existing is not None and existing.is_function and not existing.is_native:
            self._check_signature(declared.name, signature, fn)
        specifiers, indirection, _dims = type_fields(declared.ctype)
        self.global_scope.insert(
            Namespace.ORDINARY, SymbolKind.FUNCTION, True, declared.name, specifiers,
            indirection, params=declared.params, is_function=True, value=fn,
            line=fn.line, col=fn.col)
        self.result.signatures[declared.name] = signature
        self.result.decl_types[fn] = declared.ctype
        self.result.params[fn] = params

        self._push(declared.name, ScopeKind.PARAMS)
        for (name, ctype), param in zip(params, declared.params):
            if not name:
                raise SemanticError("parameter name omitted", param.line, param.col)
            specifiers, indirection, dims = type_fields(ctype)
            self._scope.insert(Namespace.ORDINARY, SymbolKind.OBJECT, True, name,
                               specifiers, indirection, dims, line=param.line, col=param.col)
        self._push(declared.name, ScopeKind.FUNCTION)
        self._return_type = declared.ctype
        self._function_name = declared.name
        self._labels = self._collect_labels(fn)
        self._blocks = [fn.body]
        for item in fn.body.items:
            self.dispatch(item)

        if (not declared.ctype.is_void and declared.name != "main"
                and not self._always_returns(fn.body)):
            self._warn(WarningKind.RETURN_TYPE,
                       f"control reaches end of non-void function '{declared.name}'", fn)

    def visit_typedef(self, node):
        ctype = base_type(node.type_spec, self._lookup)
        declared = derive(ctype, node.declarator, self._lookup, self._type_of)
        if declared.is_function:
            raise NotSupportedError("function typedefs are not supported", node.line, node.col)
        specifiers, indirection, dims = type_fields(declared.ctype)
        self._scope.insert(Namespace.ORDINARY, SymbolKind.TYPEDEF, True, declared.name,
                           specifiers, indirection, dims, line=node.line, col=node.col)

    def visit_struct(self, node):
        if node.tag is None or node.members is None:
            return
        members = Scope(node.tag.name, ScopeKind.STRUCT, None)
        for member in node.members:
            declared = derive(base_type(member.type_spec, self._lookup), member.declarator,
                              self._lookup, self._type_of)
            specifiers, indirection, dims = type_fields(declared.ctype)
            members.insert(Namespace.MEMBER, SymbolKind.MEMBER, True, declared.name,
                           specifiers, indirection, dims, line=member.line, col=member.col)
        self._scope.insert(Namespace.TAG, SymbolKind.TAG, True, node.tag.name,
                           value=members, line=node.line, col=node.col)

    def visit_enum(self, node):
        if node.enumerators is None:
            return
        if node.tag is not None:
            self._scope.insert(Namespace.TAG, SymbolKind.TAG, True, node.tag.name,
                               line=node.line, col=node.col)
        value = -1
        for enumerator in node.enumerators:
            if enumerator.value is not None:
                folded = fold_constant(enumerator.value, self._lookup, self._type_of)
                if folded is None:
                    raise SemanticError(
                        f"enumerator value for '{enumerator.name}' is not an integer constant",
                        enumerator.line, enumerator.col)
                value = folded
            else:
                value += 1
            self._scope.insert(Namespace.ORDINARY, SymbolKind.ENUM_CONST, True,
                               enumerator.name, ("int",), value=value,
                               line=enumerator.line, col=enumerator.col)

    # ── Statements ────────────────────────────

    def visit_block(self, node):
        self._push("block")
        self._blocks.append(node)
        for item in node.items:
            self.dispatch(item)
        self._blocks.pop()
        self._pop()

    def visit_expr_statement(self, node):
        if node.expr is not None:
            self._expr(node.expr)

    def visit_if(self, node):
        self._scalar(node.condition, "if condition")
        self.dispatch(node.then_body)
        if node.else_body is not None:
            self.dispatch(node.else_body)

    def visit_switch(self, node):
        info = self._value(node.expr)
        if not info.ctype.is_integer:
            raise TypeMismatchError("switch quantity not an integer", node.line, node.col)
        self._switches.append((set(), []))
        try:
            self.dispatch(node.body)
        finally:
            self._switches.pop()

    def visit_case(self, node):
        if not self._switches:
            what = "case label" if node.value is not None else "'default' label"
            raise SemanticError(f"{what} not within a switch statement", node.line, node.col)
        values, defaults = self._switches[-1]
        if node.value is None:
            if defaults:
                raise SemanticError("multiple default labels in one switch",
                                    node.line, node.col)
            defaults.append(True)
        else:
            value = fold_constant(node.value, self._lookup, self._type_of)
            if value is None:
                raise SemanticError("case label does not reduce to an integer constant",
                                    node.line, node.col)
            if value in values:
                raise SemanticError(f"duplicate case value {value}", node.line, node.col)
            values.add(value)
            self.result.constants[node] = value
        self.dispatch(node.body)

    def visit_label(self, node):
        self.dispatch(node.body)

    def _loop_body(self, body):
        self._loops += 1
        try:
            self.dispatch(body)
        finally:
            self._loops -= 1

    def visit_while(self, node):
        self._scalar(node.condition, "while condition")
        self._loop_body(node.body)

    def visit_do_while(self, node):
        self._loop_body(node.body)
        self._scalar(node.condition, "do-while condition")

    def visit_for(self, node):
        self._push("for")
        for item in node.init:
            self.dispatch(item)
        if node.condition is not None:
            self._scalar(node.condition, "for condition")
        if node.update is not None:
            self._expr(node.update)
        self._loop_body(node.body)
        self._pop()

    def visit_return(self, node):
        ret = self._return_type if self._return_type is not None else INT
        if node.value is None:
            if not ret.is_void:
                self._warn(WarningKind.RETURN_TYPE,
                           f"'return' with no value, in function returning '{ret}'", node)
            return
        if ret.is_void:
            self._expr(node.value)
            self._warn(WarningKind.RETURN_TYPE,
                       "'return' with a value, in function returning void", node)
            return
        self._check_assign(ret, self._value(node.value), node.value, "return")

    def visit_break(self, node):
        if not self._loops and not self._switches:
            raise SemanticError("break statement not within loop or switch",
                                node.line, node.col)

    def visit_continue(self, node):
        if not self._loops:
            raise SemanticError("continue statement not within a loop", node.line, node.col)

    def _collect_labels(self, fn: Function) -> Scope:
        """Function-wide label table; each label's value is the block listing it as an item."""
        owners: Dict[ASTNode, ASTNode] = {}
        for node in fn.body.walk():
            if isinstance(node, Block):
                for item in node.items:
                    while isinstance(item, (LabelStmt, CaseStmt)):
                        if isinstance(item, LabelStmt):
                            owners[item] = node
                        item = item.body
        labels = Scope(f"{fn.name} labels", ScopeKind.FUNCTION)
        for node in fn.body.walk():
            if isinstance(node, LabelStmt):
                if labels.lookup_local(node.label, Namespace.LABEL) is not None:
                    raise SemanticError(f"duplicate label '{node.label}'", node.line, node.col)
                labels.insert(Namespace.LABEL, SymbolKind.LABEL, True, node.label,
                              value=owners.get(node), line=node.line, col=node.col)
        return labels

    def visit_goto(self, node):
        label = self._labels.lookup_local(node.label, Namespace.LABEL)
        if label is None:
            raise SemanticError(f"label '{node.label}' used but not defined",
                                node.line, node.col)
        if not any(block is label.value for block in self._blocks):
            raise NotSupportedError(
                f"goto '{node.label}' jumps into a nested block, which is not supported",
                node.line, node.col)

    # ── Reachability ──────────────────────────

    def _always_returns(self, stmt) -> bool:
        """True if control cannot fall off the end of ``stmt``."""
        if isinstance(stmt, ReturnStmt):
            return True
        if isinstance(stmt, Block):
            return any(self._always_returns(item) for item in stmt.items)
        if isinstance(stmt, IfStmt):
            return (stmt.else_body is not None and self._always_returns(stmt.then_body)
                    and self._always_returns(stmt.else_body))
        if isinstance(stmt, (LabelStmt, CaseStmt)):
            return self._always_returns(stmt.body)
        if isinstance(stmt, DoWhileStmt):
            return (self._always_returns(stmt.body) and not self._breaks(stmt.body)) or \
                (self._is_forever(stmt.condition) and not self._breaks(stmt.body))
        if isinstance(stmt, (WhileStmt, ForStmt)):
            return self._is_forever(stmt.condition) and not self._breaks(stmt.body)
        if isinstance(stmt, SwitchStmt):
            body = stmt.body
            has_default = any(isinstance(n, CaseStmt) and n.value is None for n in body.walk())
            return has_default and not self._breaks(body) and self._always_returns(body)
        return False

    def _is_forever(self, condition) -> bool:
        if condition is None:
            return True
        value = fold_constant(condition, self._lookup)
        return value is not None and value != 0

    def _breaks(self, stmt) -> bool:
        """Does a ``break`` in ``stmt`` leave the enclosing loop/switch?"""
        if isinstance(stmt, BreakStmt):
            return True
        if isinstance(stmt, (WhileStmt, DoWhileStmt, ForStmt, SwitchStmt)):
            return False
        return any(self._breaks(child) for child in stmt.children())

    # ── Expressions ───────────────────────────

    def visit_identifier(self, node):
        symbol = self._lookup(node.name)
        if symbol is None:
            raise UndeclaredError(f"'{node.name}' undeclared", node.line, node.col)
        if symbol.kind is SymbolKind.ENUM_CONST:
            self.result.constants[node] = symbol.value
            return ExprInfo(INT, null_constant=symbol.value == 0)
        if symbol.kind is SymbolKind.TYPEDEF:
            raise SemanticError(f"unexpected type name '{node.name}'", node.line, node.col)
        if symbol.is_function:
            return ExprInfo(symbol.ctype, symbol=symbol)
        if not symbol.initialized and not self._unevaluated and id(symbol) not in self._warned:
            self._warned.add(id(symbol))
            self._warn(WarningKind.UNINITIALIZED,
                       f"'{node.name}' is used uninitialized", node)
        return ExprInfo(symbol.ctype, lvalue=True, symbol=symbol)

    def visit_literal(self, node):
        ctype = literal_type(node)
        if node.literal_kind is LiteralKind.STRING:
            return ExprInfo(ctype, lvalue=True)
        return ExprInfo(ctype, null_constant=node.literal_kind is LiteralKind.INT and node.value == 0)

    def visit_binary_op(self, node):
        op = node.op
        left = self._value(node.left)
        right = self._value(node.right)
        return ExprInfo(self._binary_type(op, left, right, node))

    def _binary_type(self, op: str, left: ExprInfo, right: ExprInfo, node) -> CType:
        lt, rt = left.ctype, right.ctype
        if lt.is_void or rt.is_void:
            raise TypeMismatchError("void value not ignored as it ought to be",
                                    node.line, node.col)
        if op in ("&&", "||"):
            if not (lt.is_scalar and rt.is_scalar):
                raise TypeMismatchError(f"invalid operands to binary {op}", node.line, node.col)
            return INT
        if op in ("==", "!=", "<", ">", "<=", ">="):
            if lt.is_pointer and rt.is_pointer:
                if (not _same_pointee(lt, rt) and not _is_void_pointer(lt)
                        and not _is_void_pointer(rt)):
                    self._warn(WarningKind.POINTER_MISMATCH,
                               "comparison of distinct pointer types lacks a cast", node)
            elif lt.is_pointer or rt.is_pointer:
                other = right if lt.is_pointer else left
                if other.ctype.is_floating:
                    raise TypeMismatchError(f"invalid operands to binary {op}",
                                            node.line, node.col)
                if not other.null_constant:
                    self._warn(WarningKind.POINTER_MISMATCH,
                               "comparison between pointer and integer", node)
            return INT
        if op == "+":
            if lt.is_arithmetic and rt.is_arithmetic:
                return common_type(lt, rt)
            if lt.is_pointer and rt.is_integer:
                return lt
            if lt.is_integer and rt.is_pointer:
                return rt
        elif op == "-":
            if lt.is_arithmetic and rt.is_arithmetic:
                return common_type(lt, rt)
            if lt.is_pointer and rt.is_integer:
                return lt
            if lt.is_pointer and rt.is_pointer:
                if not _same_pointee(lt, rt):
                    raise TypeMismatchError("invalid operands to binary - (distinct pointer types)",
                                            node.line, node.col)
                return INT
        elif op in ("*", "/"):
            if lt.is_arithmetic and rt.is_arithmetic:
                return common_type(lt, rt)
        elif op in ("<<", ">>"):
            if lt.is_integer and rt.is_integer:
                return promote(lt)
        elif op in ("%", "&", "|", "^"):
            if lt.is_integer and rt.is_integer:
                return common_type(lt, rt)
        raise TypeMismatchError(f"invalid operands to binary {op} ('{lt}' and '{rt}')",
                                node.line, node.col)

    def visit_unary_op(self, node):
        info = self._value(node.operand)
        ctype = info.ctype
        if node.op == "!":
            if not ctype.is_scalar:
                raise TypeMismatchError("wrong type argument to unary '!'", node.line, node.col)
            return ExprInfo(INT)
        if node.op == "~":
            if not ctype.is_integer:
                raise TypeMismatchError("wrong type argument to bit-complement",
                                        node.line, node.col)
            return ExprInfo(promote(ctype))
        if not ctype.is_arithmetic:
            raise TypeMismatchError(f"wrong type argument to unary '{node.op}'",
                                    node.line, node.col)
        return ExprInfo(promote(ctype))

    def visit_assignment(self, node):
        target = node.target
        if isinstance(target, Identifier):
            self._unevaluated += 1
            try:
                info = self._expr(target)
            finally:
                self._unevaluated -= 1
        else:
            info = self._expr(target)
        self._check_modifiable(info, node, "left operand of assignment")
        self._check_assign(info.ctype, self._value(node.value), node, "assignment")
        if info.symbol is not None:
            info.symbol.initialized = True
        return ExprInfo(info.ctype.unqualified())

    def visit_compound_assignment(self, node):
        info = self._expr(node.target)
        self._check_modifiable(info, node, "left operand of assignment")
        value = self._value(node.value)
        result = self._binary_type(node.op, ExprInfo(info.ctype.unqualified()), value, node)
        self._check_assign(info.ctype, ExprInfo(result), node, "assignment")
        return ExprInfo(info.ctype.unqualified())

    def visit_func_call(self, node):
        callee = node.callee
        if not isinstance(callee, Identifier):
            raise NotSupportedError("calls through function pointers are not supported",
                                    node.line, node.col)
        symbol = self._lookup(callee.name)
        if symbol is None:
            raise UndeclaredError(f"implicit declaration of function '{callee.name}'",
                                  node.line, node.col)
        if not symbol.is_function:
            raise SemanticError(f"called object '{callee.name}' is not a function",
                                node.line, node.col)
        signature = self.result.signatures[callee.name]
        self.result.expr_types[callee] = signature.return_type
        n = len(signature.param_types)
        if len(node.args) < n:
            raise SemanticError(f"too few arguments to function '{callee.name}'",
                                node.line, node.col)
        if len(node.args) > n and not signature.variadic:
            raise SemanticError(f"too many arguments to function '{callee.name}'",
                                node.line, node.col)
        for i, arg in enumerate(node.args):
            info = self._value(arg)
            if i < n:
                self._check_assign(signature.param_types[i], info, arg,
                                   f"passing argument {i + 1} of '{callee.name}'")
            elif info.ctype.is_void:
                raise TypeMismatchError("void value not ignored as it ought to be",
                                        arg.line, arg.col)
        return ExprInfo(signature.return_type)

    def visit_cast(self, node):
        target = resolve_type_name(node.type_name, self._lookup, self._type_of)
        info = self._value(node.expr)
        src = info.ctype
        if target.is_void:
            return ExprInfo(VOID)
        if target.is_array:
            raise SemanticError("cast specifies array type", node.line, node.col)
        if src.is_void:
            raise TypeMismatchError("void value not ignored as it ought to be",
                                    node.line, node.col)
        if (target.is_pointer and src.is_floating) or (target.is_floating and src.is_pointer):
            raise TypeMismatchError(f"cannot convert '{src}' to '{target}'", node.line, node.col)
        return ExprInfo(target.unqualified(), null_constant=info.null_constant)

    def visit_deref(self, node):
        info = self._value(node.expr)
        if not info.ctype.is_pointer:
            raise TypeMismatchError(f"invalid type argument of unary '*' (have '{info.ctype}')",
                                    node.line, node.col)
        pointee = info.ctype.pointed_to()
        if pointee.is_void:
            raise SemanticError("dereferencing 'void *' pointer", node.line, node.col)
        return ExprInfo(pointee, lvalue=True)

    def visit_addr_of(self, node):
        if isinstance(node.expr, Identifier):
            self._unevaluated += 1
            try:
                info = self._expr(node.expr)
            finally:
                self._unevaluated -= 1
        else:
            info = self._expr(node.expr)
        if info.symbol is not None and info.symbol.is_function:
            raise NotSupportedError("function pointers are not supported", node.line, node.col)
        if not info.lvalue:
            raise SemanticError("lvalue required as unary '&' operand", node.line, node.col)
        if info.symbol is not None:
            info.symbol.initialized = True
        ctype = info.ctype
        if ctype.is_array:
            if len(ctype.array_dims) > 1:
                raise NotSupportedError("pointers to arrays are not supported",
                                        node.line, node.col)
            return ExprInfo(ctype.decay())
        return ExprInfo(ctype.unqualified().pointer_to())

    def visit_array_subscript(self, node):
        base = self._expr(node.array)
        index = self._value(node.index)
        if base.ctype.is_array:
            if not index.ctype.is_integer:
                raise TypeMismatchError("array subscript is not an integer",
                                        node.line, node.col)
            return ExprInfo(base.ctype.element(), lvalue=True)
        base = self._value(node.array)
        if base.ctype.is_integer and index.ctype.is_pointer:
            base, index = index, base
        if not base.ctype.is_pointer:
            raise TypeMismatchError("subscripted value is neither array nor pointer",
                                    node.line, node.col)
        if not index.ctype.is_integer:
            raise TypeMismatchError("array subscript is not an integer", node.line, node.col)
        pointee = base.ctype.pointed_to()
        if pointee.is_void:
            raise SemanticError("dereferencing 'void *' pointer", node.line, node.col)
        return ExprInfo(pointee, lvalue=True)

    def visit_member_access(self, node):
        raise NotSupportedError("struct and union member access is not supported",
                                node.line, node.col)

    def visit_sizeof(self, node):
        if node.type_name is not None:
            ctype = resolve_type_name(node.type_name, self._lookup, self._type_of)
        else:
            self._unevaluated += 1
            try:
                info = self._expr(node.expr)
            finally:
                self._unevaluated -= 1
            if info.symbol is not None and info.symbol.is_function:
                raise SemanticError("invalid application of 'sizeof' to a function type",
                                    node.line, node.col)
            ctype = info.ctype
        if ctype.is_array and ctype.array_dims[0] < 0:
            raise SemanticError("invalid application of 'sizeof' to incomplete type",
                                node.line, node.col)
        self.result.constants[node] = ctype.size
        return ExprInfo(SIZE_T)

    def visit_ternary(self, node):
        self._scalar(node.condition, "conditional expression")
        a = self._value(node.then_expr)
        b = self._value(node.else_expr)
        at, bt = a.ctype, b.ctype
        if at.is_arithmetic and bt.is_arithmetic:
            return ExprInfo(common_type(at, bt))
        if at.is_void and bt.is_void:
            return ExprInfo(VOID)
        if at.is_pointer and (bt.is_pointer or b.null_constant):
            return ExprInfo(at)
        if bt.is_pointer and a.null_constant:
            return ExprInfo(bt)
        raise TypeMismatchError("type mismatch in conditional expression", node.line, node.col)

    def _inc_dec(self, node):
        info = self._expr(node.operand)
        self._check_modifiable(info, node, f"{node.op} operand")
        if not info.ctype.is_scalar:
            raise TypeMismatchError(f"wrong type argument to {node.op}", node.line, node.col)
        return ExprInfo(info.ctype.unqualified())

    def visit_pre_inc_dec(self, node):
        return self._inc_dec(node)

    def visit_post_inc_dec(self, node):
        return self._inc_dec(node)

    def visit_comma(self, node):
        self._expr(node.left)
        return self._value(node.right)
