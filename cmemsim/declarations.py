"""
Declaration helpers shared by the analyzer and the interpreter.

Turns declaration syntax (TypeSpec + Declarator chain) into a CType,
completes unsized arrays from their initializers, and folds integer
constant expressions (array sizes, case labels, enumerator values).
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from .ast_nodes import (
    BinaryOp, Cast, Declarator, DeclaratorKind, EnumSpec, Identifier, InitializerList,
    Literal, LiteralKind, ParamDecl, SizeofExpr, StructSpec, TernaryOp, TypeName,
    TypeSpec, UnaryOp,
)
from .c_types import INT, QUALIFIERS, CType, wrap
from .errors import NotSupportedError, SemanticError, UndeclaredError
from .symtable import Symbol, SymbolKind

Lookup = Callable[[str], Optional[Symbol]]
TypeOf = Callable[[object], CType]

_SPECIFIER_WORDS = frozenset({
    "void", "_Bool", "char", "short", "int", "long", "float", "double",
    "signed", "unsigned",
}) | frozenset(QUALIFIERS)


@dataclass(frozen=True)
class Declared:
    """Result of applying a declarator to a base type."""
    name: str
    ctype: CType                          # object type, or return type for functions
    params: Tuple[ParamDecl, ...] = ()
    variadic: bool = False
    is_function: bool = False


def base_type(type_spec: TypeSpec, lookup: Lookup) -> CType:
    """Resolve declaration specifiers (keywords, typedef names, tags)."""
    if isinstance(type_spec.tag, StructSpec):
        what = "union" if type_spec.tag.is_union else "struct"
        raise NotSupportedError(f"objects of {what} type are not supported",
                                type_spec.line, type_spec.col)
    words: List[str] = []
    aliased: Optional[CType] = None
    for word in type_spec.specifiers:
        if word in _SPECIFIER_WORDS:
            words.append(word)
            continue
        symbol = lookup(word)
        if symbol is None or symbol.kind is not SymbolKind.TYPEDEF:
            raise UndeclaredError(f"unknown type name '{word}'", type_spec.line, type_spec.col)
        aliased = symbol.ctype

    if isinstance(type_spec.tag, EnumSpec):
        aliased = INT
    if aliased is not None:
        extra = [w for w in words if w not in QUALIFIERS]
        if extra:
            raise SemanticError(f"'{extra[0]}' cannot be combined with a named type",
                                type_spec.line, type_spec.col)
        return replace(aliased, is_const=aliased.is_const or "const" in words)
    try:
        return CType.from_specifiers(words)
    except SemanticError as exc:
        raise exc.locate(type_spec.line, type_spec.col)


def derive(ctype: CType, declarator: Optional[Declarator], lookup: Lookup,
           type_of: Optional[TypeOf] = None) -> Declared:
    """Apply a declarator chain to ``ctype``, outermost link first."""
    if declarator is None:
        return Declared("", ctype)
    name = ""
    params: Tuple[ParamDecl, ...] = ()
    variadic = False
    is_function = False

    for link in declarator.chain():
        kind = link.decl_kind
        if kind is DeclaratorKind.ID:
            name = link.identifier.name if link.identifier else ""
        elif kind is DeclaratorKind.NESTED:
            continue
        elif is_function and kind in (DeclaratorKind.PTR, DeclaratorKind.ARRAY):
            if kind is DeclaratorKind.PTR:
                raise NotSupportedError("function pointers are not supported",
                                        link.line, link.col)
            raise SemanticError("declaration of an array of functions", link.line, link.col)
        elif kind is DeclaratorKind.PTR:
            if ctype.is_array:
                raise NotSupportedError("pointers to arrays are not supported",
                                        link.line, link.col)
            # Pointer qualifiers are accepted but not tracked.
            ctype = ctype.pointer_to(link.pointer.depth if link.pointer else 1)
        elif kind is DeclaratorKind.ARRAY:
            if ctype.is_void:
                raise SemanticError("declaration of an array of 'void'", link.line, link.col)
            if ctype.array_dims and ctype.array_dims[0] < 0:
                raise SemanticError("array type has incomplete element type",
                                    link.line, link.col)
            size = -1
            if link.size is not None:
                size = fold_constant(link.size, lookup, type_of)
                if size is None:
                    raise NotSupportedError("variable-length arrays are not supported",
                                            link.line, link.col)
                if size < 0:
                    raise SemanticError("size of array is negative", link.line, link.col)
            ctype = ctype.with_dims((size,) + ctype.array_dims)
        elif kind is DeclaratorKind.FUNCTION:
            if ctype.is_array:
                raise SemanticError("function cannot return an array", link.line, link.col)
            is_function = True
            params = link.params
            variadic = link.variadic

    return Declared(name, ctype, params, variadic, is_function)


def resolve_type_name(type_name: TypeName, lookup: Lookup,
                      type_of: Optional[TypeOf] = None) -> CType:
    """Type of a cast or sizeof operand."""
    declared = derive(base_type(type_name.type_spec, lookup), type_name.declarator,
                      lookup, type_of)
    if declared.is_function:
        raise NotSupportedError("function types in casts are not supported",
                                type_name.line, type_name.col)
    return declared.ctype


def parameter_types(params: Tuple[ParamDecl, ...], lookup: Lookup,
                    type_of: Optional[TypeOf] = None) -> List[Tuple[str, CType]]:
    """(name, adjusted type) per parameter; array parameters become pointers."""
    result = []
    for param in params:
        declared = derive(base_type(param.type_spec, lookup), param.declarator,
                          lookup, type_of)
        if declared.is_function:
            raise NotSupportedError("function pointers are not supported",
                                    param.line, param.col)
        ctype = declared.ctype
        if ctype.is_array:
            if len(ctype.array_dims) > 1:
                raise NotSupportedError("pointers to arrays are not supported",
                                        param.line, param.col)
            ctype = ctype.decay()
        if ctype.is_void:
            raise SemanticError(f"parameter '{declared.name}' has void type",
                                param.line, param.col)
        result.append((declared.name, ctype))
    return result


def complete_array(ctype: CType, initializer, line: int = 0, col: int = 0) -> CType:
    """Fill an unsized outer dimension from the initializer."""
    if not ctype.array_dims or ctype.array_dims[0] >= 0:
        return ctype
    if isinstance(initializer, InitializerList):
        count = len(initializer.items)
    elif (isinstance(initializer, Literal) and initializer.literal_kind is LiteralKind.STRING
          and len(ctype.array_dims) == 1 and ctype.element_size == 1):
        count = len(initializer.value) + 1
    else:
        raise SemanticError("array size missing", line, col)
    return ctype.with_dims((count,) + ctype.array_dims[1:])


def type_fields(ctype: CType) -> Tuple[Tuple[str, ...], int, Tuple[int, ...]]:
    """(specifiers, indirection, array_dims) as stored on a Symbol."""
    return ctype.specifiers, ctype.pointer_depth, ctype.array_dims


# ──────────────────────────────────────────────
# Integer constant expressions
# ──────────────────────────────────────────────

def c_div(a: int, b: int) -> int:
    """C integer division: truncates toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def c_mod(a: int, b: int) -> int:
    return a - c_div(a, b) * b


def fold_constant(expr, lookup: Lookup, type_of: Optional[TypeOf] = None) -> Optional[int]:
    """Value of an integer constant expression, or None if it is not one."""
    if isinstance(expr, Literal):
        if expr.literal_kind in (LiteralKind.INT, LiteralKind.CHAR):
            return expr.value
        return None

    if isinstance(expr, Identifier):
        symbol = lookup(expr.name)
        if symbol is not None and symbol.kind is SymbolKind.ENUM_CONST:
            return symbol.value
        return None

    if isinstance(expr, UnaryOp):
        value = fold_constant(expr.operand, lookup, type_of)
        if value is None:
            return None
        return {"-": -value, "+": value, "~": ~value, "!": int(not value)}[expr.op]

    if isinstance(expr, BinaryOp):
        left = fold_constant(expr.left, lookup, type_of)
        if left is None:
            return None
        if expr.op == "&&" and not left:
            return 0
        if expr.op == "||" and left:
            return 1
        right = fold_constant(expr.right, lookup, type_of)
        if right is None:
            return None
        return _fold_binary(expr.op, left, right)

    if isinstance(expr, TernaryOp):
        cond = fold_constant(expr.condition, lookup, type_of)
        if cond is None:
            return None
        return fold_constant(expr.then_expr if cond else expr.else_expr, lookup, type_of)

    if isinstance(expr, Cast):
        value = fold_constant(expr.expr, lookup, type_of)
        if value is None:
            return None
        ctype = resolve_type_name(expr.type_name, lookup, type_of)
        return wrap(value, ctype) if ctype.is_integer else None

    if isinstance(expr, SizeofExpr):
        if expr.type_name is not None:
            return resolve_type_name(expr.type_name, lookup, type_of).size
        if type_of is not None:
            return type_of(expr.expr).size
        return None

    return None


def _fold_binary(op: str, a: int, b: int) -> Optional[int]:
    if op in ("/", "%"):
        if b == 0:
            return None
        return c_div(a, b) if op == "/" else c_mod(a, b)
    if op in ("<<", ">>") and b < 0:
        return None
    table = {
        "+": lambda: a + b,
        "-": lambda: a - b,
        "*": lambda: a * b,
        "<<": lambda: a << b,
        ">>": lambda: a >> b,
        "&": lambda: a & b,
        "|": lambda: a | b,
        "^": lambda: a ^ b,
        "<": lambda: int(a < b),
        ">": lambda: int(a > b),
        "<=": lambda: int(a <= b),
        ">=": lambda: int(a >= b),
        "==": lambda: int(a == b),
        "!=": lambda: int(a != b),
        "&&": lambda: int(bool(a) and bool(b)),
        "||": lambda: int(bool(a) or bool(b)),
    }
    return table[op]()
