"""
Runtime frames and the call stack.

Every frame owns a runtime Scope (names -> addresses) and the ordered list
of MemoryRecords it allocated. Besides the per-call frames there are three
long-lived frames: the global frame, a heap pseudo-frame holding one record
per live malloc/calloc block, and a data pseudo-frame for string literals
and static locals.
"""

from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .c_types import POINTER_SIZE, CType
from .errors import InternalError
from .memory import Memory, Region
from .symtable import Scope, ScopeKind

log = logging.getLogger(__name__)


class FrameKind(enum.Enum):
    GLOBAL = "global"
    FUNCTION = "function"
    PARAMS = "params"
    BLOCK = "block"
    HEAP = "heap"
    DATA = "data"


_SCOPE_KINDS = {
    FrameKind.GLOBAL: ScopeKind.GLOBAL,
    FrameKind.FUNCTION: ScopeKind.FUNCTION,
    FrameKind.PARAMS: ScopeKind.PARAMS,
    FrameKind.BLOCK: ScopeKind.BLOCK,
    FrameKind.HEAP: ScopeKind.GLOBAL,
    FrameKind.DATA: ScopeKind.GLOBAL,
}


@dataclass
class MemoryRecord:
    """One allocated object: where it lives and how to decode it."""
    name: str
    address: int
    size: int
    region: Region
    ctype: CType

    def contains(self, address: int) -> bool:
        return self.address <= address < self.address + self.size


class Frame:
    """A runtime scope plus the memory it owns."""

    def __init__(self, name: str, kind: FrameKind, parent: Optional[Frame] = None,
                 construct=None):
        self.name = name
        self.kind = kind
        self.parent = parent
        self.construct = construct          # AST node that opened the frame
        self.scope = Scope(name, _SCOPE_KINDS[kind], parent.scope if parent else None)
        self.records: List[MemoryRecord] = []

    def add_record(self, record: MemoryRecord) -> MemoryRecord:
        self.records.append(record)
        return record

    def find_record(self, address: int) -> Optional[MemoryRecord]:
        for record in self.records:
            if record.contains(address):
                return record
        return None

    def __repr__(self):
        return f"Frame({self.kind.value} {self.name!r}, {len(self.records)} records)"


class CallStack:
    """LIFO of frames over one Memory instance."""

    def __init__(self, memory: Memory):
        self.memory = memory
        self.global_frame = Frame("global", FrameKind.GLOBAL)
        self.heap = Frame("heap", FrameKind.HEAP)
        self.data = Frame("data", FrameKind.DATA)
        self._frames: List[Frame] = [self.global_frame]

    def call(self, name: str, kind: FrameKind, parent: Optional[Frame] = None,
             construct=None) -> Frame:
        """Push a frame whose scope chains to ``parent`` (default: the top frame)."""
        frame = Frame(name, kind, parent if parent is not None else self.top(), construct)
        self._frames.append(frame)
        log.debug("push %r (depth %d)", frame, len(self._frames))
        return frame

    def pop(self, frame: Frame):
        """Pop ``frame``, which must be on top: drop its references, then its cells."""
        if not self._frames or self._frames[-1] is not frame or frame is self.global_frame:
            raise InternalError(f"pop of {frame!r} which is not the top frame")
        self._frames.pop()
        for record in frame.records:
            if record.ctype.pointer_depth == 0 or record.region is not Region.STACK:
                continue
            for addr in range(record.address, record.address + record.size, POINTER_SIZE):
                if self.memory.is_mapped(addr):
                    target = self.memory.get_scalar(addr, POINTER_SIZE, signed=False)
                    if target:
                        self.memory.remove_reference(target)
        for record in reversed(frame.records):
            if record.region is Region.STACK:
                self.memory.stack_release(record.address, record.size)
        log.debug("pop %r (depth %d)", frame, len(self._frames))

    def top(self) -> Frame:
        return self._frames[-1]

    def __iter__(self) -> Iterator[Frame]:
        return iter(list(self._frames))

    def __len__(self) -> int:
        return len(self._frames)

    def function_frames(self) -> List[Frame]:
        return [f for f in self._frames if f.kind in (FrameKind.FUNCTION, FrameKind.PARAMS)]

    def find_record(self, address: int) -> Optional[MemoryRecord]:
        """Record containing ``address`` in any live frame or pseudo-frame."""
        for frame in reversed(self._frames):
            record = frame.find_record(address)
            if record is not None:
                return record
        for frame in (self.heap, self.data):
            record = frame.find_record(address)
            if record is not None:
                return record
        return None
