"""
Built-in (native) library functions.

Natives are registered in the global scope like ordinary functions, with a
NativeFunction marker as the symbol value. The interpreter owns the
handlers; this module holds their signatures and the printf formatter.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple, Union

from .c_types import CHAR_PTR, INT, SIZE_T, VOID, VOID_PTR, CType, wrap
from .declarations import type_fields
from .errors import CRuntimeError
from .symtable import Namespace, Scope, SymbolKind


@dataclass(frozen=True)
class NativeFunction:
    name: str
    return_type: CType
    param_types: Tuple[CType, ...] = ()
    variadic: bool = False


NATIVE_FUNCTIONS: Dict[str, NativeFunction] = {
    nf.name: nf for nf in (
        NativeFunction("printf", INT, (CHAR_PTR,), variadic=True),
        NativeFunction("puts", INT, (CHAR_PTR,)),
        NativeFunction("putchar", INT, (INT,)),
        NativeFunction("malloc", VOID_PTR, (SIZE_T,)),
        NativeFunction("calloc", VOID_PTR, (SIZE_T, SIZE_T)),
        NativeFunction("free", VOID, (VOID_PTR,)),
        NativeFunction("strlen", SIZE_T, (CHAR_PTR,)),
    )
}


def install_natives(scope: Scope):
    """Bind every native function in ``scope`` (the global scope)."""
    for native in NATIVE_FUNCTIONS.values():
        specifiers, indirection, _dims = type_fields(native.return_type)
        scope.insert(Namespace.ORDINARY, SymbolKind.FUNCTION, True, native.name,
                     specifiers, indirection, is_function=True, value=native,
                     is_native=True)


# ──────────────────────────────────────────────
# printf
# ──────────────────────────────────────────────

_CONVERSION = re.compile(
    r"%(?P<flags>[-+ #0]*)(?P<width>\*|\d+)?(?:\.(?P<prec>\*|\d*))?"
    r"(?P<length>hh|h|ll|l|z|j|t|L)?(?P<conv>[diouxXcspfFeEgG%])"
)

# Integer type each length modifier reads as
_LENGTH_TYPES = {
    None: INT,
    "hh": CType("char"),
    "h": CType("short"),
    "l": CType("long"),
    "ll": CType("long long"),
    "z": SIZE_T,
    "j": CType("long long"),
    "t": CType("long"),
}

Number = Union[int, float]


def format_printf(fmt: str, args: Sequence[Number],
                  read_string: Callable[[int], str]) -> str:
    """Render a C format string; ``args`` are already-evaluated values."""
    out: List[str] = []
    remaining = list(args)
    pos = 0

    def take() -> Number:
        if not remaining:
            raise CRuntimeError("printf: too few arguments for format string")
        return remaining.pop(0)

    for m in _CONVERSION.finditer(fmt):
        out.append(fmt[pos:m.start()])
        pos = m.end()
        conv = m.group("conv")
        if conv == "%":
            out.append("%")
            continue

        flags = m.group("flags")
        width = m.group("width")
        if width == "*":
            w = int(take())
            if w < 0:
                flags += "-"
            width = str(abs(w))
        prec = m.group("prec")
        if prec == "*":
            p = int(take())
            prec = str(p) if p >= 0 else None
        elif prec == "":
            prec = "0"
        spec = "%" + flags + (width or "") + (f".{prec}" if prec is not None else "")

        value = take()
        length = m.group("length")
        if conv in "di":
            ctype = _LENGTH_TYPES.get(length, INT)
            out.append((spec + "d") % wrap(int(value), ctype))
        elif conv in "ouxX":
            ctype = _LENGTH_TYPES.get(length, INT)
            unsigned = wrap(int(value), CType(ctype.base, is_unsigned=True))
            if conv == "u":
                out.append((spec + "d") % unsigned)
            elif conv == "o" and "#" in flags:
                # C's alternate octal form is a leading 0, not Python's 0o
                digits = "%o" % unsigned
                if not digits.startswith("0"):
                    digits = "0" + digits
                out.append((spec.replace("#", "").split(".")[0] + "s") % digits)
            else:
                out.append((spec + conv) % unsigned)
        elif conv == "c":
            out.append((spec.split(".")[0] + "s") % chr(int(value) & 0xFF))
        elif conv == "s":
            text = "(null)" if not value else read_string(int(value))
            out.append((spec + "s") % text)
        elif conv == "p":
            addr = int(value) & 0xFFFFFFFF
            out.append((spec.split(".")[0] + "s") % (f"0x{addr:x}" if addr else "(nil)"))
        else:
            out.append((spec + conv) % float(value))

    out.append(fmt[pos:])
    return "".join(out)
