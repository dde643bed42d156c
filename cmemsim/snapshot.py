"""
Read-only view of interpreter state for visualizers.

A Snapshot is built from the call stack and memory at one instant and
holds only plain values, so it stays valid after execution continues.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .c_types import POINTER_SIZE, CType
from .callstack import CallStack, Frame, MemoryRecord
from .errors import MemoryAccessError
from .memory import Memory


@dataclass(frozen=True)
class RecordView:
    name: str
    address: int
    size: int
    region: str
    ctype: str
    value: Any              # int/float, nested list for arrays, None if unmapped
    indirection: int
    dims: Tuple[int, ...]
    references: int


@dataclass(frozen=True)
class FrameView:
    name: str
    kind: str
    symbols: Tuple[str, ...]
    records: Tuple[RecordView, ...]


@dataclass(frozen=True)
class Snapshot:
    frames: Tuple[FrameView, ...]      # bottom to top
    heap: Tuple[RecordView, ...]
    data: Tuple[RecordView, ...]
    current_line: int
    instruction: int

    def frame(self, name: str) -> Optional[FrameView]:
        """Topmost frame with the given name."""
        for view in reversed(self.frames):
            if view.name == name:
                return view
        return None

    def find(self, name: str) -> Optional[RecordView]:
        """Innermost visible record with the given name."""
        for view in reversed(self.frames):
            for record in view.records:
                if record.name == name:
                    return record
        for record in self.data:
            if record.name == name:
                return record
        return None


def decode(memory: Memory, address: int, ctype: CType) -> Any:
    """Current value of an object, or None if any of its cells is gone."""
    try:
        if ctype.is_array:
            element = ctype.element()
            return [decode(memory, address + i * element.size, element)
                    for i in range(max(ctype.array_dims[0], 0))]
        if ctype.is_floating:
            return memory.get_float(address, ctype.size)
        if ctype.pointer_depth:
            return memory.get_scalar(address, POINTER_SIZE, signed=False)
        return memory.get_scalar(address, ctype.size, signed=ctype.is_signed)
    except MemoryAccessError:
        return None


def _record_view(record: MemoryRecord, memory: Memory) -> RecordView:
    return RecordView(
        name=record.name,
        address=record.address,
        size=record.size,
        region=record.region.value,
        ctype=str(record.ctype),
        value=decode(memory, record.address, record.ctype),
        indirection=record.ctype.pointer_depth,
        dims=record.ctype.array_dims,
        references=memory.reference_count(record.address),
    )


def _frame_view(frame: Frame, memory: Memory) -> FrameView:
    return FrameView(
        name=frame.name,
        kind=frame.kind.value,
        symbols=tuple(symbol.name for symbol in frame.scope if not symbol.is_native),
        records=tuple(_record_view(r, memory) for r in frame.records),
    )


def take_snapshot(call_stack: CallStack, memory: Memory, current_line: int = 0,
                  instruction: int = 0) -> Snapshot:
    return Snapshot(
        frames=tuple(_frame_view(f, memory) for f in call_stack),
        heap=tuple(_record_view(r, memory) for r in call_stack.heap.records),
        data=tuple(_record_view(r, memory) for r in call_stack.data.records),
        current_line=current_line,
        instruction=instruction,
    )


def frame_rows(snapshot: Snapshot) -> List[Tuple[str, ...]]:
    """Flat (frame, name, type, address, size, region, value, refs) rows."""
    rows = []
    groups = [(f"{view.kind}:{view.name}", view.records) for view in snapshot.frames]
    groups.append(("heap", snapshot.heap))
    groups.append(("data", snapshot.data))
    for label, records in groups:
        for r in records:
            rows.append((label, r.name, r.ctype, str(r.address), str(r.size), r.region,
                         "?" if r.value is None else str(r.value), str(r.references)))
    return rows
