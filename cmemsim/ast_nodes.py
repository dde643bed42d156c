"""
AST Node definitions for the cmemsim C interpreter.

Defines the Abstract Syntax Tree produced by the parser and consumed by the
semantic analyzer and the interpreter. Nodes are immutable and carry only
syntax plus a source location; sizes, signedness and resolved types are
computed by the passes that need them.

Every node class declares a ``kind`` tag. Passes subclass ``NodeVisitor``
and provide one ``visit_<kind>`` handler per tag they accept; the handler
table is built, and checked for completeness, when the pass is constructed.
"""

from __future__ import annotations
import enum
from dataclasses import dataclass, fields
from typing import Any, Callable, ClassVar, Dict, FrozenSet, Iterator, Optional, Protocol, Tuple, Union

from .errors import InternalError


class NodeKind(enum.Enum):
    PROGRAM = "program"

    # Declarations
    DECLARATION = "declaration"
    FUNCTION = "function"
    TYPEDEF = "typedef"
    STRUCT = "struct"
    ENUM = "enum"
    ENUMERATOR = "enumerator"
    TAGNAME = "tagname"
    TYPE_SPEC = "type_spec"
    TYPE_NAME = "type_name"
    DECLARATOR = "declarator"
    POINTER = "pointer"
    PARAM = "param"
    INITIALIZER_LIST = "initializer_list"

    # Expressions
    IDENTIFIER = "identifier"
    LITERAL = "literal"
    BINARY_OP = "binary_op"
    UNARY_OP = "unary_op"
    ASSIGNMENT = "assignment"
    COMPOUND_ASSIGNMENT = "compound_assignment"
    FUNC_CALL = "func_call"
    CAST = "cast"
    DEREF = "deref"
    ADDR_OF = "addr_of"
    ARRAY_SUBSCRIPT = "array_subscript"
    MEMBER_ACCESS = "member_access"
    SIZEOF = "sizeof"
    TERNARY = "ternary"
    PRE_INC_DEC = "pre_inc_dec"
    POST_INC_DEC = "post_inc_dec"
    COMMA = "comma"

    # Statements
    BLOCK = "block"
    EXPR_STATEMENT = "expr_statement"
    IF = "if"
    SWITCH = "switch"
    CASE = "case"
    LABEL = "label"
    WHILE = "while"
    DO_WHILE = "do_while"
    FOR = "for"
    RETURN = "return"
    BREAK = "break"
    CONTINUE = "continue"
    GOTO = "goto"


EXTERNAL_KINDS: FrozenSet[NodeKind] = frozenset({
    NodeKind.DECLARATION, NodeKind.FUNCTION, NodeKind.TYPEDEF,
    NodeKind.STRUCT, NodeKind.ENUM,
})

EXPRESSION_KINDS: FrozenSet[NodeKind] = frozenset({
    NodeKind.IDENTIFIER, NodeKind.LITERAL, NodeKind.BINARY_OP, NodeKind.UNARY_OP,
    NodeKind.ASSIGNMENT, NodeKind.COMPOUND_ASSIGNMENT, NodeKind.FUNC_CALL,
    NodeKind.CAST, NodeKind.DEREF, NodeKind.ADDR_OF, NodeKind.ARRAY_SUBSCRIPT,
    NodeKind.MEMBER_ACCESS, NodeKind.SIZEOF, NodeKind.TERNARY,
    NodeKind.PRE_INC_DEC, NodeKind.POST_INC_DEC, NodeKind.COMMA,
})

STATEMENT_KINDS: FrozenSet[NodeKind] = frozenset({
    NodeKind.BLOCK, NodeKind.EXPR_STATEMENT, NodeKind.IF, NodeKind.SWITCH,
    NodeKind.CASE, NodeKind.LABEL, NodeKind.WHILE, NodeKind.DO_WHILE,
    NodeKind.FOR, NodeKind.RETURN, NodeKind.BREAK, NodeKind.CONTINUE,
    NodeKind.GOTO,
})

# Everything that can appear as a block item or at file scope.
EXECUTABLE_KINDS = EXTERNAL_KINDS | EXPRESSION_KINDS | STATEMENT_KINDS


class SyntaxNode(Protocol):
    """What every pass may rely on: a tag, a location, and accept()."""
    kind: NodeKind
    line: int
    col: int

    def accept(self, visitor: "NodeVisitor") -> Any: ...


# ──────────────────────────────────────────────
# Base AST node
# ──────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class ASTNode:
    """Base class for all AST nodes. Equality is identity."""
    kind: ClassVar[NodeKind]
    line: int = 0
    col: int = 0

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if not isinstance(cls.__dict__.get("kind"), NodeKind):
            raise TypeError(f"AST node class {cls.__name__} must declare a NodeKind tag")

    def accept(self, visitor: NodeVisitor) -> Any:
        return visitor.dispatch(self)

    def children(self) -> Iterator[ASTNode]:
        """Direct child nodes, in field order."""
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, ASTNode):
                yield value
            elif isinstance(value, tuple):
                for item in value:
                    if isinstance(item, ASTNode):
                        yield item

    def walk(self) -> Iterator[ASTNode]:
        """This node and all descendants, depth-first, pre-order."""
        yield self
        for child in self.children():
            yield from child.walk()


class NodeVisitor:
    """Tag-dispatch base for passes over the AST.

    Subclasses list the tags they accept in ``handles`` and implement
    ``visit_<tag value>`` for each one. A missing handler is a TypeError
    at construction time, not a surprise halfway through a program.
    """

    handles: ClassVar[FrozenSet[NodeKind]] = EXECUTABLE_KINDS

    def __init__(self):
        self._dispatch = self._build_dispatch()

    def _build_dispatch(self) -> Dict[NodeKind, Callable[[Any], Any]]:
        table = {}
        missing = []
        for kind in self.handles:
            handler = getattr(self, f"visit_{kind.value}", None)
            if handler is None:
                missing.append(kind.value)
            else:
                table[kind] = handler
        if missing:
            raise TypeError(f"{type(self).__name__} has no handler for: {', '.join(sorted(missing))}")
        return table

    def dispatch(self, node: SyntaxNode) -> Any:
        handler = self._dispatch.get(node.kind)
        if handler is None:
            raise InternalError(f"{type(self).__name__} cannot visit {node.kind.value} nodes")
        return handler(node)


# ──────────────────────────────────────────────
# Top-level: Program
# ──────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class Program(ASTNode):
    """Root node: top-level declarations and function definitions in order."""
    kind = NodeKind.PROGRAM
    items: Tuple[ASTNode, ...] = ()


# ──────────────────────────────────────────────
# Types and declarators
# ──────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class Tagname(ASTNode):
    kind = NodeKind.TAGNAME
    name: str = ""


@dataclass(frozen=True, eq=False)
class StructSpec(ASTNode):
    """struct/union specifier. ``members`` is None for a bare reference."""
    kind = NodeKind.STRUCT
    is_union: bool = False
    tag: Optional[Tagname] = None
    members: Optional[Tuple[Declaration, ...]] = None


@dataclass(frozen=True, eq=False)
class Enumerator(ASTNode):
    kind = NodeKind.ENUMERATOR
    name: str = ""
    value: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class EnumSpec(ASTNode):
    kind = NodeKind.ENUM
    tag: Optional[Tagname] = None
    enumerators: Optional[Tuple[Enumerator, ...]] = None


@dataclass(frozen=True, eq=False)
class TypeSpec(ASTNode):
    """Ordered type specifiers and qualifiers, storage classes removed.

    ``tag`` holds the struct/union/enum specifier when one is used; a
    typedef name appears as a plain word in ``specifiers``.
    """
    kind = NodeKind.TYPE_SPEC
    specifiers: Tuple[str, ...] = ()
    tag: Optional[Union[StructSpec, EnumSpec]] = None


@dataclass(frozen=True, eq=False)
class Pointer(ASTNode):
    """One ``*`` with its qualifiers; ``child`` is the next ``*`` to the right."""
    kind = NodeKind.POINTER
    qualifiers: Tuple[str, ...] = ()
    child: Optional[Pointer] = None

    @property
    def depth(self) -> int:
        return 1 + (self.child.depth if self.child else 0)


class DeclaratorKind(enum.Enum):
    ID = "id"
    NESTED = "nested"
    PTR = "ptr"
    ARRAY = "array"
    FUNCTION = "function"


@dataclass(frozen=True, eq=False)
class Declarator(ASTNode):
    """One link of a declarator chain.

    Read from the outermost link inward, the chain lists derivations in
    the order they apply to the base type: ``int *a[3]`` is
    PTR -> ARRAY(3) -> ID(a), i.e. "pointer to int", then "array of 3 of
    that". The innermost link carries the identifier (None when abstract).
    """
    kind = NodeKind.DECLARATOR
    decl_kind: DeclaratorKind = DeclaratorKind.ID
    child: Optional[Declarator] = None
    identifier: Optional[Identifier] = None
    pointer: Optional[Pointer] = None          # PTR links
    size: Optional[Expression] = None          # ARRAY links; None = []
    params: Tuple[ParamDecl, ...] = ()         # FUNCTION links
    variadic: bool = False

    @property
    def name(self) -> str:
        node: Optional[Declarator] = self
        while node is not None:
            if node.identifier is not None:
                return node.identifier.name
            node = node.child
        return ""

    def chain(self) -> Iterator[Declarator]:
        """Links from outermost to innermost."""
        node: Optional[Declarator] = self
        while node is not None:
            yield node
            node = node.child

    def last_derivation(self) -> Optional[Declarator]:
        """The derivation applied last (nearest the identifier)."""
        last = None
        for link in self.chain():
            if link.decl_kind in (DeclaratorKind.PTR, DeclaratorKind.ARRAY, DeclaratorKind.FUNCTION):
                last = link
        return last


@dataclass(frozen=True, eq=False)
class ParamDecl(ASTNode):
    kind = NodeKind.PARAM
    type_spec: Optional[TypeSpec] = None
    declarator: Optional[Declarator] = None


@dataclass(frozen=True, eq=False)
class TypeName(ASTNode):
    """A type in a cast or sizeof: specifiers plus an abstract declarator."""
    kind = NodeKind.TYPE_NAME
    type_spec: Optional[TypeSpec] = None
    declarator: Optional[Declarator] = None


@dataclass(frozen=True, eq=False)
class InitializerList(ASTNode):
    kind = NodeKind.INITIALIZER_LIST
    items: Tuple[Union[Expression, InitializerList], ...] = ()


# ──────────────────────────────────────────────
# Declarations
# ──────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class Declaration(ASTNode):
    """One declarator of a declaration; ``int a, b;`` yields two nodes."""
    kind = NodeKind.DECLARATION
    type_spec: Optional[TypeSpec] = None
    declarator: Optional[Declarator] = None
    initializer: Optional[Union[Expression, InitializerList]] = None
    storage: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.declarator.name if self.declarator else ""


@dataclass(frozen=True, eq=False)
class Typedef(ASTNode):
    kind = NodeKind.TYPEDEF
    type_spec: Optional[TypeSpec] = None
    declarator: Optional[Declarator] = None

    @property
    def name(self) -> str:
        return self.declarator.name if self.declarator else ""


@dataclass(frozen=True, eq=False)
class Function(ASTNode):
    """Function definition."""
    kind = NodeKind.FUNCTION
    type_spec: Optional[TypeSpec] = None
    declarator: Optional[Declarator] = None
    body: Optional[Block] = None
    storage: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.declarator.name if self.declarator else ""


# ──────────────────────────────────────────────
# Expressions
# ──────────────────────────────────────────────

class LiteralKind(enum.Enum):
    INT = "int"
    FLOAT = "float"
    CHAR = "char"
    STRING = "string"


@dataclass(frozen=True, eq=False)
class Identifier(ASTNode):
    kind = NodeKind.IDENTIFIER
    name: str = ""


@dataclass(frozen=True, eq=False)
class Literal(ASTNode):
    kind = NodeKind.LITERAL
    literal_kind: LiteralKind = LiteralKind.INT
    value: Union[int, float, str] = 0
    suffix: str = ""


@dataclass(frozen=True, eq=False)
class BinaryOp(ASTNode):
    kind = NodeKind.BINARY_OP
    op: str = ""
    left: Optional[Expression] = None
    right: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class UnaryOp(ASTNode):
    """Arithmetic/logical prefix operators: ``-``, ``+``, ``~``, ``!``."""
    kind = NodeKind.UNARY_OP
    op: str = ""
    operand: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class Assignment(ASTNode):
    kind = NodeKind.ASSIGNMENT
    target: Optional[Expression] = None
    value: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class CompoundAssignment(ASTNode):
    """``a op= b`` where op is the binary operator without ``=``."""
    kind = NodeKind.COMPOUND_ASSIGNMENT
    op: str = ""
    target: Optional[Expression] = None
    value: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class FuncCall(ASTNode):
    kind = NodeKind.FUNC_CALL
    callee: Optional[Expression] = None
    args: Tuple[Expression, ...] = ()


@dataclass(frozen=True, eq=False)
class Cast(ASTNode):
    kind = NodeKind.CAST
    type_name: Optional[TypeName] = None
    expr: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class Deref(ASTNode):
    kind = NodeKind.DEREF
    expr: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class AddrOf(ASTNode):
    kind = NodeKind.ADDR_OF
    expr: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class ArraySubscript(ASTNode):
    kind = NodeKind.ARRAY_SUBSCRIPT
    array: Optional[Expression] = None
    index: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class MemberAccess(ASTNode):
    kind = NodeKind.MEMBER_ACCESS
    obj: Optional[Expression] = None
    member: str = ""
    is_arrow: bool = False


@dataclass(frozen=True, eq=False)
class SizeofExpr(ASTNode):
    """``sizeof(type)`` sets type_name; ``sizeof expr`` sets expr."""
    kind = NodeKind.SIZEOF
    type_name: Optional[TypeName] = None
    expr: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class TernaryOp(ASTNode):
    kind = NodeKind.TERNARY
    condition: Optional[Expression] = None
    then_expr: Optional[Expression] = None
    else_expr: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class PreIncDec(ASTNode):
    kind = NodeKind.PRE_INC_DEC
    op: str = "++"
    operand: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class PostIncDec(ASTNode):
    kind = NodeKind.POST_INC_DEC
    op: str = "++"
    operand: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class CommaExpr(ASTNode):
    kind = NodeKind.COMMA
    left: Optional[Expression] = None
    right: Optional[Expression] = None


Expression = Union[
    Identifier, Literal, BinaryOp, UnaryOp, Assignment, CompoundAssignment,
    FuncCall, Cast, Deref, AddrOf, ArraySubscript, MemberAccess, SizeofExpr,
    TernaryOp, PreIncDec, PostIncDec, CommaExpr,
]


# ──────────────────────────────────────────────
# Statements
# ──────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class Block(ASTNode):
    """Compound statement { ... }."""
    kind = NodeKind.BLOCK
    items: Tuple[ASTNode, ...] = ()


@dataclass(frozen=True, eq=False)
class ExprStatement(ASTNode):
    """Expression statement; ``expr`` is None for the empty statement ``;``."""
    kind = NodeKind.EXPR_STATEMENT
    expr: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class IfStmt(ASTNode):
    kind = NodeKind.IF
    condition: Optional[Expression] = None
    then_body: Optional[ASTNode] = None
    else_body: Optional[ASTNode] = None


@dataclass(frozen=True, eq=False)
class SwitchStmt(ASTNode):
    kind = NodeKind.SWITCH
    expr: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass(frozen=True, eq=False)
class CaseStmt(ASTNode):
    """``case value: body``; value is None for ``default:``."""
    kind = NodeKind.CASE
    value: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass(frozen=True, eq=False)
class LabelStmt(ASTNode):
    kind = NodeKind.LABEL
    label: str = ""
    body: Optional[ASTNode] = None


@dataclass(frozen=True, eq=False)
class WhileStmt(ASTNode):
    kind = NodeKind.WHILE
    condition: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass(frozen=True, eq=False)
class DoWhileStmt(ASTNode):
    kind = NodeKind.DO_WHILE
    body: Optional[ASTNode] = None
    condition: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class ForStmt(ASTNode):
    """``init`` is a tuple of Declarations, or a single ExprStatement, or empty."""
    kind = NodeKind.FOR
    init: Tuple[ASTNode, ...] = ()
    condition: Optional[Expression] = None
    update: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass(frozen=True, eq=False)
class ReturnStmt(ASTNode):
    kind = NodeKind.RETURN
    value: Optional[Expression] = None


@dataclass(frozen=True, eq=False)
class BreakStmt(ASTNode):
    kind = NodeKind.BREAK


@dataclass(frozen=True, eq=False)
class ContinueStmt(ASTNode):
    kind = NodeKind.CONTINUE


@dataclass(frozen=True, eq=False)
class GotoStmt(ASTNode):
    kind = NodeKind.GOTO
    label: str = ""


SelectionStatement = Union[IfStmt, SwitchStmt, CaseStmt]
IterationStatement = Union[WhileStmt, DoWhileStmt, ForStmt]
JumpStatement = Union[ReturnStmt, BreakStmt, ContinueStmt, GotoStmt]
