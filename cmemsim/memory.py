"""
cmemsim memory simulator: byte-addressable cells grouped into regions.

Memory map (default profile, see config.LAYOUT_PROFILES):
  1000-1999  DATA   initialized globals, statics, string literals
  2000-2999  BSS    uninitialized globals and statics
  3000-5999  HEAP   malloc/calloc blocks (bump allocator)
  6000-9999  STACK  locals and parameters, grows down from 10000

Storage is sparse: an address either maps to a Cell or is unallocated.
Reading an unallocated address is an error, never a silent zero. Scalars
are little-endian two's complement.
"""

from __future__ import annotations
import enum
import logging
import struct
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from .config import DEFAULT_PROFILE, get_profile
from .diagnostics import Diagnostics, WarningKind
from .errors import (
    InvalidReferenceError, MemoryAccessError, OutOfMemoryError, StackOverflowError,
)

log = logging.getLogger(__name__)


class Region(enum.Enum):
    STACK = "STACK"
    HEAP = "HEAP"
    DATA = "DATA"
    BSS = "BSS"


class MemoryRegion:
    """A named, fixed sub-range of the address space."""
    def __init__(self, region: Region, start: int, end: int, grows_down: bool = False):
        self.region = region
        self.start = start
        self.end = end  # inclusive
        self.grows_down = grows_down

    def contains(self, addr: int) -> bool:
        return self.start <= addr <= self.end

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def __repr__(self):
        return f"MemoryRegion({self.region.value}, {self.start}-{self.end})"


@dataclass
class Cell:
    value: int
    region: Region


DUMP_COLUMNS = ("Addr", "Hex Addr", "Binary", "Hex", "Region")


class Memory:
    """Sparse byte-addressable memory with four bounded regions.

    Each region allocates from its own cursor: DATA, BSS and HEAP upward
    from their base, STACK downward from the top. Allocation zero-fills.
    Cells given back (stack release or free) are forgotten, but their
    addresses are remembered so a later access can be reported as a use
    after release rather than an access to memory never allocated.
    Reference counts of a released address survive until the address is
    allocated again, so dangling pointers stay visible; a new object
    starts with no references.
    """

    def __init__(self, profile: Union[str, dict] = DEFAULT_PROFILE,
                 diagnostics: Optional[Diagnostics] = None):
        layout = get_profile(profile) if isinstance(profile, str) else profile
        self.profile = profile if isinstance(profile, str) else "custom"
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()

        data_base, data_size = layout["data"]
        bss_base, bss_size = layout["bss"]
        heap_base, heap_size = layout["heap"]
        stack_top = layout["stack_top"]
        self.regions: Dict[Region, MemoryRegion] = {
            Region.DATA: MemoryRegion(Region.DATA, data_base, data_base + data_size - 1),
            Region.BSS: MemoryRegion(Region.BSS, bss_base, bss_base + bss_size - 1),
            Region.HEAP: MemoryRegion(Region.HEAP, heap_base, heap_base + heap_size - 1),
            Region.STACK: MemoryRegion(Region.STACK, stack_top - layout["stack_size"],
                                       stack_top - 1, grows_down=True),
        }
        ordered = sorted(self.regions.values(), key=lambda r: r.start)
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.end >= upper.start:
                raise ValueError(f"Memory regions overlap: {lower} and {upper}")

        self._cells: Dict[int, Cell] = {}
        self._refs: Dict[int, int] = {}
        self._released: Dict[int, Region] = {}
        self._readonly: Set[int] = set()

        # Allocation cursors: next free address (upward) / current stack pointer
        self._next: Dict[Region, int] = {
            Region.DATA: data_base,
            Region.BSS: bss_base,
            Region.HEAP: heap_base,
        }
        self._sp = stack_top

    # --- Allocation ---

    def _map(self, base: int, size: int, region: Region):
        for addr in range(base, base + size):
            self._cells[addr] = Cell(0, region)
            self._released.pop(addr, None)
            self._readonly.discard(addr)
            self._refs.pop(addr, None)

    def stack_alloc(self, size: int) -> int:
        """Push ``size`` zeroed bytes; returns the new (lower) stack pointer."""
        stack = self.regions[Region.STACK]
        if self._sp - size < stack.start:
            raise StackOverflowError(
                f"stack overflow: cannot allocate {size} bytes "
                f"({self._sp - stack.start} of {stack.size} left)")
        self._sp -= size
        self._map(self._sp, size, Region.STACK)
        log.debug("stack_alloc %d -> %d", size, self._sp)
        return self._sp

    def _alloc_up(self, region: Region, size: int) -> int:
        bounds = self.regions[region]
        base = self._next[region]
        if base + size - 1 > bounds.end:
            raise OutOfMemoryError(
                f"{region.value.lower()} region exhausted: cannot allocate {size} bytes "
                f"({bounds.end + 1 - base} of {bounds.size} left)")
        self._next[region] = base + size
        self._map(base, size, region)
        log.debug("%s alloc %d -> %d", region.value, size, base)
        return base

    def heap_alloc(self, size: int) -> int:
        return self._alloc_up(Region.HEAP, size)

    def data_alloc(self, size: int) -> int:
        return self._alloc_up(Region.DATA, size)

    def bss_alloc(self, size: int) -> int:
        return self._alloc_up(Region.BSS, size)

    def alloc(self, region: Region, size: int) -> int:
        if region is Region.STACK:
            return self.stack_alloc(size)
        return self._alloc_up(region, size)

    # --- Release ---

    def stack_release(self, address: int, size: int):
        """Forget ``size`` stack cells at ``address`` and pull the stack pointer up."""
        stack = self.regions[Region.STACK]
        for addr in range(address, address + size):
            cell = self._cells.get(addr)
            if cell is not None and cell.region is Region.STACK:
                del self._cells[addr]
                self._released[addr] = Region.STACK
        # The pointer rises over every unmapped cell, so out-of-order
        # releases still reclaim the space once the lower blocks go.
        while self._sp <= stack.end and self._sp not in self._cells:
            self._sp += 1
        log.debug("stack_release %d+%d, sp=%d", address, size, self._sp)

    def free(self, address: int, size: int):
        """Release a heap block. Every cell must be a live heap cell."""
        for addr in range(address, address + size):
            cell = self._cells.get(addr)
            if cell is None or cell.region is not Region.HEAP:
                if self._released.get(addr) is Region.HEAP:
                    raise InvalidReferenceError(f"double free of heap address {address}")
                raise InvalidReferenceError(f"free of non-heap address {address}")
        for addr in range(address, address + size):
            del self._cells[addr]
            self._released[addr] = Region.HEAP
        log.debug("free %d+%d", address, size)

    # --- Typed I/O ---

    def _cell(self, addr: int, write: bool = False) -> Cell:
        cell = self._cells.get(addr)
        if cell is None:
            released = self._released.get(addr)
            if released is not None:
                raise MemoryAccessError(
                    f"access to address {addr} after its {released.value.lower()} "
                    f"memory was released")
            raise MemoryAccessError(f"access to unallocated address {addr}")
        if write and addr in self._readonly:
            raise MemoryAccessError(f"write to read-only address {addr}")
        return cell

    def set_scalar(self, address: int, value: int, width: int, signed: bool = True,
                   *, line: int = 0, col: int = 0) -> int:
        """Store an integer in ``width`` little-endian bytes; returns the stored value.

        Out-of-range values are truncated to the width and reinterpreted
        with the given signedness, and one OVERFLOW warning is recorded.
        """
        cells = [self._cell(address + i, write=True) for i in range(width)]
        bits = 8 * width
        mask = (1 << bits) - 1
        lo, hi = (-(1 << (bits - 1)), (1 << (bits - 1)) - 1) if signed else (0, mask)
        if not lo <= value <= hi:
            stored = value & mask
            if signed and stored > hi:
                stored -= 1 << bits
            self.diagnostics.warn(
                WarningKind.OVERFLOW,
                f"value {value} does not fit in {width}-byte "
                f"{'signed' if signed else 'unsigned'} storage; stored as {stored}",
                line, col)
            value = stored
        raw = value & mask
        for i, cell in enumerate(cells):
            cell.value = (raw >> (8 * i)) & 0xFF
        return value

    def get_scalar(self, address: int, width: int, signed: bool = True) -> int:
        raw = 0
        for i in range(width):
            raw |= self._cell(address + i).value << (8 * i)
        if signed and raw >= 1 << (8 * width - 1):
            raw -= 1 << (8 * width)
        return raw

    def set_float(self, address: int, value: float, width: int) -> float:
        fmt = "<f" if width == 4 else "<d"
        try:
            data = struct.pack(fmt, value)
        except OverflowError:
            data = struct.pack(fmt, float("inf") if value > 0 else float("-inf"))
        cells = [self._cell(address + i, write=True) for i in range(width)]
        for cell, byte in zip(cells, data):
            cell.value = byte
        return struct.unpack(fmt, data)[0]

    def get_float(self, address: int, width: int) -> float:
        data = bytes(self._cell(address + i).value for i in range(width))
        return struct.unpack("<f" if width == 4 else "<d", data)[0]

    def load_bytes(self, address: int, data: bytes):
        """Write raw bytes into already-allocated cells."""
        cells = [self._cell(address + i, write=True) for i in range(len(data))]
        for cell, byte in zip(cells, data):
            cell.value = byte

    def read_bytes(self, address: int, length: int) -> bytes:
        return bytes(self._cell(address + i).value for i in range(length))

    def read_c_bytes(self, address: int) -> bytes:
        """Bytes up to (not including) the terminating NUL."""
        data = bytearray()
        addr = address
        while True:
            byte = self._cell(addr).value
            if byte == 0:
                return bytes(data)
            data.append(byte)
            addr += 1

    def read_c_string(self, address: int) -> str:
        data = self.read_c_bytes(address)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data.decode("latin-1")

    def protect(self, address: int, size: int):
        """Mark cells read-only (string literals)."""
        for addr in range(address, address + size):
            self._cell(addr)
            self._readonly.add(addr)

    def is_protected(self, address: int) -> bool:
        return address in self._readonly

    # --- Reference tracking ---

    def add_reference(self, address: int):
        if address not in self._cells:
            raise InvalidReferenceError(f"cannot reference unallocated address {address}")
        self._refs[address] = self._refs.get(address, 0) + 1

    def remove_reference(self, address: int):
        count = self._refs.get(address, 0)
        if count <= 1:
            self._refs.pop(address, None)
        else:
            self._refs[address] = count - 1

    def reference_count(self, address: int) -> int:
        return self._refs.get(address, 0)

    # --- Introspection ---

    def is_mapped(self, address: int) -> bool:
        return address in self._cells

    def was_released(self, address: int) -> bool:
        return address in self._released

    def region_of(self, address: int) -> Optional[Region]:
        """Owning region of a mapped cell, else the region whose range contains it."""
        cell = self._cells.get(address)
        if cell is not None:
            return cell.region
        for bounds in self.regions.values():
            if bounds.contains(address):
                return bounds.region
        return None

    @property
    def stack_pointer(self) -> int:
        return self._sp

    def used(self, region: Region) -> int:
        """Number of live cells in a region."""
        return sum(1 for cell in self._cells.values() if cell.region is region)

    def cells(self, region: Optional[Region] = None) -> Iterator[Tuple[int, int, Region]]:
        """(address, byte, region) for live cells in address order."""
        for addr in sorted(self._cells):
            cell = self._cells[addr]
            if region is None or cell.region is region:
                yield addr, cell.value, cell.region

    def dump(self, region: Optional[Region] = None) -> List[Tuple[str, ...]]:
        """Rows for a memory table; see DUMP_COLUMNS."""
        return [
            (str(addr), f"0x{addr:04X}", f"{value:08b}", f"{value:02X}", reg.value)
            for addr, value, reg in self.cells(region)
        ]

    def hexdump(self, start: int, length: int = 256) -> str:
        """Produce a hex dump of memory for debugging ('..' = unallocated)."""
        lines = []
        for offset in range(0, length, 16):
            addr = start + offset
            row = [self._cells.get(addr + i) for i in range(min(16, length - offset))]
            hex_bytes = ' '.join(f'{c.value:02X}' if c else '..' for c in row)
            ascii_bytes = ''.join(
                chr(c.value) if c and 0x20 <= c.value < 0x7F else '.'
                for c in row
            )
            lines.append(f'{addr:5d}  {hex_bytes:<47}  {ascii_bytes}')
        return '\n'.join(lines)
