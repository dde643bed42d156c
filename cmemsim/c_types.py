"""
C type model used by the analyzer and the interpreter.

Types are derived from declaration syntax by consumers; AST nodes never
carry them. A ``CType`` is a flat value: a base type, a pointer depth
applied to that base, and optional array dimensions wrapped around the
result. ``int *a[3]`` is ``CType("int", pointer_depth=1, array_dims=(3,))``.

Sizes follow an ILP32 model: int/long/pointers are 4 bytes.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Iterable, Tuple

from .errors import SemanticError


# ──────────────────────────────────────────────
# Sizes
# ──────────────────────────────────────────────

BASE_SIZES = {
    "void": 1,          # GNU-style: void* arithmetic steps by one byte
    "_Bool": 1,
    "char": 1,
    "short": 2,
    "int": 4,
    "long": 4,
    "long long": 8,
    "float": 4,
    "double": 8,
    "long double": 8,
}

POINTER_SIZE = 4

INTEGER_BASES = ("_Bool", "char", "short", "int", "long", "long long")
FLOATING_BASES = ("float", "double", "long double")

# Integer conversion rank, used by the usual arithmetic conversions.
_RANK = {"_Bool": 0, "char": 1, "short": 2, "int": 3, "long": 4, "long long": 5}

_BASE_WORDS = ("void", "_Bool", "char", "short", "int", "float", "double")
QUALIFIERS = ("const", "volatile")


@dataclass(frozen=True)
class CType:
    """A resolved C type."""
    base: str = "int"
    is_unsigned: bool = False
    pointer_depth: int = 0
    array_dims: Tuple[int, ...] = ()      # outermost first; -1 = size not yet known
    is_const: bool = False

    # ── Construction ─────────────────────────

    @classmethod
    def from_specifiers(cls, specifiers: Iterable[str], pointer_depth: int = 0,
                        array_dims: Tuple[int, ...] = ()) -> CType:
        """Resolve an ordered list of specifier keywords (``unsigned long int``)."""
        words = list(specifiers)
        is_const = "const" in words
        signed = "signed" in words
        unsigned = "unsigned" in words
        longs = words.count("long")
        shorts = words.count("short")
        bases = [w for w in words if w in _BASE_WORDS and w != "short"]

        if signed and unsigned:
            raise SemanticError("both 'signed' and 'unsigned' in declaration specifiers")
        if len(bases) > 1:
            raise SemanticError("two or more data types in declaration specifiers")
        word = bases[0] if bases else None

        if shorts:
            if longs or word not in (None, "int"):
                raise SemanticError("invalid use of 'short' in declaration specifiers")
            base = "short"
        elif longs == 1:
            if word == "double":
                base = "long double"
            elif word in (None, "int"):
                base = "long"
            else:
                raise SemanticError(f"'long' cannot be combined with '{word}'")
        elif longs == 2:
            if word not in (None, "int"):
                raise SemanticError(f"'long long' cannot be combined with '{word}'")
            base = "long long"
        elif longs > 2:
            raise SemanticError("'long long long' is too long for C")
        elif word is None:
            if not (signed or unsigned):
                raise SemanticError("missing type specifier")
            base = "int"
        else:
            base = word

        if (signed or unsigned) and base not in INTEGER_BASES:
            raise SemanticError(f"'{'unsigned' if unsigned else 'signed'}' cannot be applied to '{base}'")
        return cls(base=base, is_unsigned=unsigned, pointer_depth=pointer_depth,
                   array_dims=tuple(array_dims), is_const=is_const)

    @property
    def specifiers(self) -> Tuple[str, ...]:
        """Canonical specifier words, the form stored in symbols."""
        words = []
        if self.is_const:
            words.append("const")
        if self.is_unsigned:
            words.append("unsigned")
        words.extend(self.base.split())
        return tuple(words)

    # ── Classification ───────────────────────

    @property
    def is_array(self) -> bool:
        return bool(self.array_dims)

    @property
    def is_pointer(self) -> bool:
        return self.pointer_depth > 0 and not self.array_dims

    @property
    def is_void(self) -> bool:
        return self.base == "void" and self.pointer_depth == 0 and not self.array_dims

    @property
    def is_integer(self) -> bool:
        return self.base in INTEGER_BASES and self.pointer_depth == 0 and not self.array_dims

    @property
    def is_floating(self) -> bool:
        return self.base in FLOATING_BASES and self.pointer_depth == 0 and not self.array_dims

    @property
    def is_arithmetic(self) -> bool:
        return self.is_integer or self.is_floating

    @property
    def is_scalar(self) -> bool:
        return self.is_arithmetic or self.is_pointer

    @property
    def is_signed(self) -> bool:
        return self.is_integer and not self.is_unsigned and self.base != "_Bool"

    # ── Sizes and ranges ─────────────────────

    @property
    def element_size(self) -> int:
        """Size of one array element (or of the object itself if not an array)."""
        if self.pointer_depth > 0:
            return POINTER_SIZE
        return BASE_SIZES[self.base]

    @property
    def size(self) -> int:
        total = self.element_size
        for dim in self.array_dims:
            total *= max(dim, 0)
        return total

    @property
    def limits(self) -> Tuple[int, int]:
        """(min, max) representable by this integer or pointer type."""
        bits = 8 * (POINTER_SIZE if self.is_pointer else BASE_SIZES[self.base])
        if self.base == "_Bool" and not self.is_pointer:
            return 0, 1
        if self.is_signed:
            return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        return 0, (1 << bits) - 1

    # ── Derivations ──────────────────────────

    def pointed_to(self) -> CType:
        """Return the type this pointer points to."""
        assert self.pointer_depth > 0 and not self.array_dims
        return replace(self, pointer_depth=self.pointer_depth - 1)

    def pointer_to(self, depth: int = 1) -> CType:
        return replace(self, pointer_depth=self.pointer_depth + depth, is_const=False)

    def element(self) -> CType:
        """Type of one element of this array."""
        assert self.array_dims
        return replace(self, array_dims=self.array_dims[1:])

    def decay(self) -> CType:
        """Array-to-pointer conversion for a one-dimensional array."""
        if not self.array_dims:
            return self
        return replace(self, array_dims=(), pointer_depth=self.pointer_depth + 1)

    def unqualified(self) -> CType:
        return replace(self, is_const=False) if self.is_const else self

    def with_dims(self, dims: Tuple[int, ...]) -> CType:
        return replace(self, array_dims=tuple(dims))

    def __str__(self) -> str:
        text = " ".join(self.specifiers)
        if self.pointer_depth:
            text += " " + "*" * self.pointer_depth
        for dim in self.array_dims:
            text += f"[{dim}]" if dim >= 0 else "[]"
        return text


# Frequently used types
INT = CType("int")
UNSIGNED_INT = CType("int", is_unsigned=True)
CHAR = CType("char")
DOUBLE = CType("double")
FLOAT = CType("float")
LONG_LONG = CType("long long")
SIZE_T = CType("long", is_unsigned=True)
VOID = CType("void")
VOID_PTR = CType("void", pointer_depth=1)
CHAR_PTR = CType("char", pointer_depth=1)


# ──────────────────────────────────────────────
# Conversions
# ──────────────────────────────────────────────

def promote(ctype: CType) -> CType:
    """Integer promotion: anything narrower than int becomes int."""
    if ctype.is_integer and _RANK[ctype.base] < _RANK["int"]:
        return INT
    return ctype.unqualified()


def common_type(a: CType, b: CType) -> CType:
    """The usual arithmetic conversions for two arithmetic operands."""
    if a.is_floating or b.is_floating:
        rank = {"float": 0, "double": 1, "long double": 2}
        fa = rank.get(a.base, -1) if a.is_floating else -1
        fb = rank.get(b.base, -1) if b.is_floating else -1
        return (a if fa >= fb else b).unqualified()
    a, b = promote(a), promote(b)
    if a == b:
        return a
    if BASE_SIZES[a.base] != BASE_SIZES[b.base]:
        return a if BASE_SIZES[a.base] > BASE_SIZES[b.base] else b
    # Same width: unsigned wins, then the higher rank.
    unsigned = a.is_unsigned or b.is_unsigned
    base = a.base if _RANK[a.base] >= _RANK[b.base] else b.base
    return CType(base, is_unsigned=unsigned)


def wrap(value: int, ctype: CType) -> int:
    """Silently reduce an integer to the range of ``ctype`` (two's complement)."""
    if ctype.base == "_Bool" and not ctype.is_pointer:
        return 1 if value else 0
    bits = 8 * ctype.element_size
    value &= (1 << bits) - 1
    if ctype.is_signed and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


INT_MAX = (1 << 31) - 1
UINT_MAX = (1 << 32) - 1


def literal_type(literal) -> CType:
    """Type of a Literal node: suffix and magnitude pick integer types."""
    kind = literal.literal_kind.value
    if kind == "char":
        return INT
    if kind == "float":
        return FLOAT if "f" in literal.suffix else DOUBLE
    if kind == "string":
        return CHAR.with_dims((len(literal.value) + 1,))
    unsigned = "u" in literal.suffix
    if "ll" in literal.suffix or literal.value > UINT_MAX:
        return CType("long long", is_unsigned=unsigned)
    if unsigned:
        return UNSIGNED_INT
    if literal.value > INT_MAX:
        return LONG_LONG
    return INT
