"""
Tests for frames and the call stack.

Tests cover:
  - Frame scopes chained to their parent
  - LIFO push/pop, bottom-to-top iteration
  - Popping releases stack cells and drops held references
  - Pseudo-frames for heap and data
"""

import pytest

from cmemsim.c_types import INT, CType
from cmemsim.callstack import CallStack, FrameKind, MemoryRecord
from cmemsim.errors import InternalError
from cmemsim.memory import Memory, Region
from cmemsim.symtable import Namespace, SymbolKind


def _stack():
    mem = Memory()
    return mem, CallStack(mem)


def _local(stack: CallStack, mem: Memory, name: str, ctype: CType = INT) -> MemoryRecord:
    frame = stack.top()
    address = mem.stack_alloc(ctype.size)
    frame.scope.insert(Namespace.ORDINARY, SymbolKind.OBJECT, True, name, ctype.specifiers,
                       ctype.pointer_depth, ctype.array_dims, value=address)
    return frame.add_record(MemoryRecord(name, address, ctype.size, Region.STACK, ctype))


class TestFrames:
    def test_starts_with_global_frame(self):
        _mem, stack = _stack()
        assert len(stack) == 1
        assert stack.top() is stack.global_frame
        assert stack.function_frames() == []

    def test_scope_chain_follows_parent(self):
        mem, stack = _stack()
        stack.global_frame.scope.insert(Namespace.ORDINARY, SymbolKind.OBJECT, True, "g")
        params = stack.call("f", FrameKind.PARAMS, parent=stack.global_frame)
        body = stack.call("f", FrameKind.FUNCTION)
        assert body.scope.parent is params.scope
        assert body.scope.lookup("g") is not None

    def test_iteration_is_bottom_to_top(self):
        _mem, stack = _stack()
        a = stack.call("main", FrameKind.FUNCTION)
        b = stack.call("block", FrameKind.BLOCK)
        assert list(stack) == [stack.global_frame, a, b]


class TestPop:
    def test_pop_must_be_lifo(self):
        _mem, stack = _stack()
        a = stack.call("main", FrameKind.FUNCTION)
        stack.call("block", FrameKind.BLOCK)
        with pytest.raises(InternalError):
            stack.pop(a)

    def test_cannot_pop_global(self):
        _mem, stack = _stack()
        with pytest.raises(InternalError):
            stack.pop(stack.global_frame)

    def test_pop_releases_stack_cells(self):
        mem, stack = _stack()
        frame = stack.call("main", FrameKind.FUNCTION)
        record = _local(stack, mem, "x")
        stack.pop(frame)
        assert not mem.is_mapped(record.address)
        assert mem.stack_pointer == 10000

    def test_pop_drops_pointer_references(self):
        mem, stack = _stack()
        stack.call("main", FrameKind.FUNCTION)
        x = _local(stack, mem, "x")
        inner = stack.call("block", FrameKind.BLOCK)
        p = _local(stack, mem, "p", INT.pointer_to())
        mem.set_scalar(p.address, x.address, 4, signed=False)
        mem.add_reference(x.address)
        assert mem.reference_count(x.address) == 1
        stack.pop(inner)
        assert mem.reference_count(x.address) == 0
        assert mem.is_mapped(x.address)

    def test_find_record(self):
        mem, stack = _stack()
        stack.call("main", FrameKind.FUNCTION)
        arr = _local(stack, mem, "arr", INT.with_dims((3,)))
        assert stack.find_record(arr.address + 5) is arr
        assert stack.find_record(42) is None


class TestPseudoFrames:
    def test_heap_and_data_are_not_on_the_stack(self):
        mem, stack = _stack()
        address = mem.heap_alloc(8)
        stack.heap.add_record(MemoryRecord("malloc", address, 8, Region.HEAP,
                                           CType("char", is_unsigned=True, array_dims=(8,))))
        assert stack.heap not in list(stack)
        assert stack.find_record(address + 7).name == "malloc"
