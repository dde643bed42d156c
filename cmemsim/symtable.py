"""
Symbols and scopes.

A Scope owns one table per namespace (ordinary identifiers, tags, struct
members, labels) and links to its parent. Lookups walk outward through the
parent chain until a binding is found.
"""

from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .c_types import CType
from .errors import InternalError, RedeclarationError

log = logging.getLogger(__name__)


class Namespace(enum.Enum):
    ORDINARY = "ordinary"
    TAG = "tag"
    MEMBER = "member"
    LABEL = "label"


class SymbolKind(enum.Enum):
    OBJECT = "object"
    FUNCTION = "function"
    TYPEDEF = "typedef"
    ENUM_CONST = "enum_const"
    TAG = "tag"
    MEMBER = "member"
    LABEL = "label"


class ScopeKind(enum.Enum):
    GLOBAL = "global"
    PARAMS = "params"
    FUNCTION = "function"
    BLOCK = "block"
    STRUCT = "struct"


@dataclass
class Symbol:
    name: str
    namespace: Namespace
    kind: SymbolKind
    initialized: bool = False
    specifiers: Tuple[str, ...] = ()       # canonical, e.g. ("unsigned", "char")
    indirection: int = 0
    array_dims: Tuple[int, ...] = ()
    params: Optional[Tuple[Any, ...]] = None   # ParamDecl nodes for functions
    is_function: bool = False
    value: Any = None      # address, constant, Function node, NativeFunction, or member scope
    is_native: bool = False
    line: int = 0
    col: int = 0

    @property
    def ctype(self) -> CType:
        """Object type (the return type for functions)."""
        return CType.from_specifiers(self.specifiers, self.indirection, self.array_dims)

    def __repr__(self):
        return f"Symbol({self.kind.value} {self.name!r}: {' '.join(self.specifiers)}" \
               f"{'*' * self.indirection}{''.join(f'[{d}]' for d in self.array_dims)})"


class Scope:
    """One lexical scope with per-namespace symbol tables."""

    def __init__(self, name: str, kind: ScopeKind = ScopeKind.BLOCK,
                 parent: Optional[Scope] = None):
        self.name = name
        self.kind = kind
        self.parent = parent
        self._tables: Dict[Namespace, Dict[str, Symbol]] = {ns: {} for ns in Namespace}
        self._order: List[Symbol] = []

    @property
    def level(self) -> int:
        return 0 if self.parent is None else self.parent.level + 1

    def insert(self, namespace: Namespace, kind: SymbolKind, initialized: bool, name: str,
               specifiers: Tuple[str, ...] = (), indirection: int = 0,
               array_dims: Tuple[int, ...] = (), params: Optional[Tuple[Any, ...]] = None,
               is_function: bool = False, value: Any = None, is_native: bool = False,
               *, line: int = 0, col: int = 0) -> Symbol:
        """Bind ``name`` in this scope.

        Raises RedeclarationError if the name is already bound in this scope
        and namespace. A function declared without a body may be defined
        later: the definition upgrades the existing symbol in place.
        """
        table = self._tables[namespace]
        existing = table.get(name)
        if existing is not None:
            upgrading = (is_function and existing.is_function and not existing.is_native
                         and existing.value is None and value is not None)
            if not upgrading:
                where = f" (previous declaration at L{existing.line}:{existing.col})" \
                    if existing.line else ""
                raise RedeclarationError(f"redeclaration of '{name}'{where}", line, col)
            existing.specifiers = tuple(specifiers)
            existing.indirection = indirection
            existing.params = params
            existing.value = value
            existing.initialized = True
            existing.line, existing.col = line, col
            return existing

        symbol = Symbol(name=name, namespace=namespace, kind=kind, initialized=initialized,
                        specifiers=tuple(specifiers), indirection=indirection,
                        array_dims=tuple(array_dims), params=params,
                        is_function=is_function, value=value, is_native=is_native,
                        line=line, col=col)
        table[name] = symbol
        self._order.append(symbol)
        log.debug("scope %s: insert %r", self.name, symbol)
        return symbol

    def lookup(self, name: str, namespace: Namespace = Namespace.ORDINARY) -> Optional[Symbol]:
        scope: Optional[Scope] = self
        while scope is not None:
            symbol = scope._tables[namespace].get(name)
            if symbol is not None:
                return symbol
            scope = scope.parent
        return None

    def lookup_local(self, name: str,
                     namespace: Namespace = Namespace.ORDINARY) -> Optional[Symbol]:
        return self._tables[namespace].get(name)

    def set_value(self, name: str, value: Any, namespace: Namespace = Namespace.ORDINARY):
        symbol = self.lookup(name, namespace)
        if symbol is None:
            raise InternalError(f"set_value on unbound name {name!r}")
        symbol.value = value

    def get_value(self, name: str, namespace: Namespace = Namespace.ORDINARY) -> Any:
        symbol = self.lookup(name, namespace)
        if symbol is None:
            raise InternalError(f"get_value on unbound name {name!r}")
        return symbol.value

    def size(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(list(self._order))

    def __repr__(self):
        return f"Scope({self.name!r}, {self.kind.value}, {self.size()} symbols)"
