"""
Tests for the memory simulator.

Tests cover:
  - Region layout and profile validation
  - Stack growth direction and release
  - Upward allocation (heap/data/bss) and exhaustion
  - Typed scalar/float I/O, little-endian layout, overflow truncation
  - Unallocated vs released vs zero
  - Reference counting
  - Read-only cells, free(), hexdump
"""

import pytest

from cmemsim.diagnostics import WarningKind
from cmemsim.errors import (
    InvalidReferenceError, MemoryAccessError, OutOfMemoryError, StackOverflowError,
)
from cmemsim.memory import Memory, Region


def _mem(profile: str = "default") -> Memory:
    return Memory(profile)


# ─── Layout ─────────────────────────────────

class TestLayout:
    def test_default_regions_do_not_overlap(self):
        mem = _mem()
        spans = sorted((r.start, r.end) for r in mem.regions.values())
        for (_s1, e1), (s2, _e2) in zip(spans, spans[1:]):
            assert e1 < s2

    def test_overlapping_profile_rejected(self):
        layout = {"data": (100, 100), "bss": (150, 100), "heap": (400, 100),
                  "stack_top": 1000, "stack_size": 100}
        with pytest.raises(ValueError, match="overlap"):
            Memory(layout)

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown layout profile"):
            Memory("huge")

    def test_region_of_unmapped_address_uses_bounds(self):
        mem = _mem()
        assert mem.region_of(3500) is Region.HEAP
        assert mem.region_of(5) is None


# ─── Stack ──────────────────────────────────

class TestStack:
    def test_consecutive_allocs_grow_down(self):
        mem = _mem()
        a = mem.stack_alloc(4)
        b = mem.stack_alloc(8)
        assert a == 10000 - 4
        assert a - b == 8
        assert b + 8 <= a

    def test_alloc_zero_fills(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        assert mem.get_scalar(addr, 4) == 0
        assert mem.region_of(addr) is Region.STACK

    def test_release_restores_stack_pointer(self):
        mem = _mem()
        a = mem.stack_alloc(4)
        b = mem.stack_alloc(4)
        mem.stack_release(b, 4)
        assert mem.stack_pointer == a
        mem.stack_release(a, 4)
        assert mem.stack_pointer == 10000

    def test_out_of_order_release(self):
        mem = _mem()
        a = mem.stack_alloc(4)
        b = mem.stack_alloc(4)
        mem.stack_release(a, 4)
        assert mem.stack_pointer == b
        mem.stack_release(b, 4)
        assert mem.stack_pointer == 10000

    def test_overflow(self):
        mem = _mem("small")
        with pytest.raises(StackOverflowError, match="stack overflow"):
            mem.stack_alloc(300)

    def test_read_after_release(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        mem.stack_release(addr, 4)
        with pytest.raises(MemoryAccessError, match="released"):
            mem.get_scalar(addr, 4)


# ─── Upward regions ─────────────────────────

class TestUpwardRegions:
    def test_heap_grows_up(self):
        mem = _mem()
        a = mem.heap_alloc(4)
        b = mem.heap_alloc(10)
        assert a == 3000
        assert b == 3004

    def test_regions_allocate_independently(self):
        mem = _mem()
        assert mem.data_alloc(2) == 1000
        assert mem.bss_alloc(2) == 2000
        assert mem.alloc(Region.DATA, 1) == 1002
        assert mem.used(Region.DATA) == 3

    def test_heap_exhaustion(self):
        mem = _mem("small")
        mem.heap_alloc(150)
        with pytest.raises(OutOfMemoryError, match="heap region exhausted"):
            mem.heap_alloc(100)


# ─── Typed I/O ──────────────────────────────

class TestScalars:
    @pytest.mark.parametrize("value", [0, 1, -1, 255, -129, 65536, 2147483647, -2147483648])
    def test_int32_round_trip(self, value):
        mem = _mem()
        addr = mem.stack_alloc(4)
        assert mem.set_scalar(addr, value, 4) == value
        assert mem.get_scalar(addr, 4) == value
        assert mem.diagnostics.warnings == []

    def test_little_endian(self):
        mem = _mem()
        addr = mem.heap_alloc(4)
        mem.set_scalar(addr, 0x12345678, 4)
        assert mem.read_bytes(addr, 4) == bytes([0x78, 0x56, 0x34, 0x12])

    def test_out_of_range_truncates_with_one_warning(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        stored = mem.set_scalar(addr, 2147483648, 4, line=7, col=3)
        assert stored == -2147483648
        assert mem.get_scalar(addr, 4) == -2147483648
        warnings = mem.diagnostics.warnings_of(WarningKind.OVERFLOW)
        assert len(warnings) == 1
        assert warnings[0].line == 7

    def test_large_value_masks_to_32_bits(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        value = (1 << 40) + 5
        assert mem.set_scalar(addr, value, 4) == 5

    def test_unsigned_byte_overflow(self):
        mem = _mem()
        addr = mem.stack_alloc(1)
        assert mem.set_scalar(addr, 256, 1, signed=False) == 0
        assert mem.get_scalar(addr, 1, signed=False) == 0
        assert len(mem.diagnostics.warnings) == 1

    def test_signed_reinterpretation(self):
        mem = _mem()
        addr = mem.stack_alloc(1)
        mem.set_scalar(addr, 200, 1, signed=False)
        assert mem.get_scalar(addr, 1, signed=True) == -56

    def test_unallocated_read_fails(self):
        mem = _mem()
        with pytest.raises(MemoryAccessError, match="unallocated"):
            mem.get_scalar(5000, 4)

    def test_partially_unallocated_read_fails(self):
        mem = _mem()
        addr = mem.heap_alloc(2)
        with pytest.raises(MemoryAccessError):
            mem.get_scalar(addr, 4)

    def test_floats(self):
        mem = _mem()
        addr = mem.heap_alloc(12)
        mem.set_float(addr, 1.5, 8)
        assert mem.get_float(addr, 8) == 1.5
        assert mem.set_float(addr + 8, 0.1, 4) != 0.1
        assert mem.get_float(addr + 8, 4) == pytest.approx(0.1)

    def test_float_overflow_becomes_infinity(self):
        mem = _mem()
        addr = mem.heap_alloc(4)
        assert mem.set_float(addr, 1e300, 4) == float("inf")


# ─── Strings and protection ─────────────────

class TestBytes:
    def test_c_string(self):
        mem = _mem()
        addr = mem.data_alloc(6)
        mem.load_bytes(addr, b"hello\0")
        assert mem.read_c_string(addr) == "hello"
        assert mem.read_c_bytes(addr) == b"hello"

    def test_unterminated_string_runs_off_allocation(self):
        mem = _mem()
        addr = mem.heap_alloc(2)
        mem.load_bytes(addr, b"ab")
        with pytest.raises(MemoryAccessError):
            mem.read_c_string(addr)

    def test_protected_cells_reject_writes(self):
        mem = _mem()
        addr = mem.data_alloc(3)
        mem.load_bytes(addr, b"hi\0")
        mem.protect(addr, 3)
        assert mem.is_protected(addr)
        with pytest.raises(MemoryAccessError, match="read-only"):
            mem.set_scalar(addr, 72, 1)
        assert mem.get_scalar(addr, 1) == ord("h")


# ─── References ─────────────────────────────

class TestReferences:
    def test_reference_to_unallocated_fails(self):
        mem = _mem()
        with pytest.raises(InvalidReferenceError):
            mem.add_reference(4242)

    def test_add_then_remove_restores_count(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        before = mem.reference_count(addr)
        mem.add_reference(addr)
        assert mem.reference_count(addr) == before + 1
        mem.remove_reference(addr)
        assert mem.reference_count(addr) == before

    def test_remove_floors_at_zero(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        mem.remove_reference(addr)
        mem.remove_reference(addr)
        assert mem.reference_count(addr) == 0

    def test_released_address_keeps_count_until_reused(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        mem.add_reference(addr)
        mem.stack_release(addr, 4)
        assert mem.reference_count(addr) == 1
        assert mem.stack_alloc(4) == addr
        assert mem.reference_count(addr) == 0

    def test_references_never_free(self):
        mem = _mem()
        addr = mem.heap_alloc(4)
        mem.add_reference(addr)
        mem.remove_reference(addr)
        assert mem.is_mapped(addr)


# ─── free() ─────────────────────────────────

class TestFree:
    def test_free_unmaps(self):
        mem = _mem()
        addr = mem.heap_alloc(4)
        mem.free(addr, 4)
        assert not mem.is_mapped(addr)
        assert mem.was_released(addr)

    def test_double_free(self):
        mem = _mem()
        addr = mem.heap_alloc(4)
        mem.free(addr, 4)
        with pytest.raises(InvalidReferenceError, match="double free"):
            mem.free(addr, 4)

    def test_free_of_stack_memory(self):
        mem = _mem()
        addr = mem.stack_alloc(4)
        with pytest.raises(InvalidReferenceError, match="non-heap"):
            mem.free(addr, 4)


# ─── Introspection ──────────────────────────

class TestDumps:
    def test_hexdump_marks_unallocated(self):
        mem = _mem()
        addr = mem.heap_alloc(2)
        mem.load_bytes(addr, b"AB")
        text = mem.hexdump(addr, 4)
        assert "41 42 .. .." in text
        assert "AB.." in text

    def test_dump_rows(self):
        mem = _mem()
        addr = mem.data_alloc(1)
        mem.set_scalar(addr, 5, 1)
        assert mem.dump(Region.DATA) == [("1000", "0x03E8", "00000101", "05", "DATA")]
