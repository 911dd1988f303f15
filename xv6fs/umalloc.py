"""First-fit free-list allocator over a growable heap.

Memory is handed out in units of a header; each block is preceded by a
header holding its size and, while free, the next free block. Freed
blocks are merged with free neighbours.
"""

from __future__ import annotations

from dataclasses import dataclass

HEADER_SIZE = 8
MIN_GROWTH = 4096  # smallest heap growth, in header units

__all__ = ["HEADER_SIZE", "MIN_GROWTH", "Allocator"]

_BASE = -1  # the empty list head sits below every heap address


@dataclass
class _Header:
    ptr: int | None
    size: int


class Allocator:
    """A heap that grows in steps of at least MIN_GROWTH units.

    Addresses are byte offsets into the heap. ``heap_limit`` caps the heap
    size in bytes; None leaves it unbounded.
    """

    def __init__(self, heap_limit: int | None = None) -> None:
        self.heap_limit = heap_limit
        self._hdr: dict[int, _Header] = {_BASE: _Header(_BASE, 0)}
        self._freep = _BASE
        self._brk = 0  # heap end, in units
        self._allocated: set[int] = set()

    @property
    def brk(self) -> int:
        """Current heap size in bytes."""
        return self._brk * HEADER_SIZE

    def _next(self, p: int) -> int:
        nxt = self._hdr[p].ptr
        assert nxt is not None
        return nxt

    def _morecore(self, nu: int) -> int | None:
        nu = max(nu, MIN_GROWTH)
        if self.heap_limit is not None and (self._brk + nu) * HEADER_SIZE > self.heap_limit:
            return None
        hp = self._brk
        self._brk += nu
        self._hdr[hp] = _Header(None, nu)
        self._allocated.add(hp)
        self.free((hp + 1) * HEADER_SIZE)
        return self._freep

    def malloc(self, nbytes: int) -> int:
        """Allocate nbytes; raises MemoryError when the heap cannot grow."""
        if nbytes < 0:
            raise ValueError("cannot allocate a negative size")
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        prevp = self._freep
        p = self._next(prevp)
        while True:
            block = self._hdr[p]
            if block.size >= nunits:
                if block.size == nunits:
                    self._hdr[prevp].ptr = block.ptr
                    block.ptr = None
                else:
                    block.size -= nunits
                    p += block.size
                    self._hdr[p] = _Header(None, nunits)
                self._freep = prevp
                self._allocated.add(p)
                return (p + 1) * HEADER_SIZE
            if p == self._freep:
                grown = self._morecore(nunits)
                if grown is None:
                    raise MemoryError(f"cannot allocate {nbytes} bytes")
                p = grown
            prevp, p = p, self._next(p)

    def free(self, ptr: int) -> None:
        """Return a block from malloc to the free list."""
        if ptr % HEADER_SIZE or ptr // HEADER_SIZE - 1 not in self._allocated:
            raise ValueError(f"{ptr} is not an allocated block")
        bp = ptr // HEADER_SIZE - 1
        self._allocated.discard(bp)
        p = self._freep
        while not (p < bp < self._next(p)):
            nxt = self._next(p)
            if p >= nxt and (bp > p or bp < nxt):
                break
            p = nxt
        block = self._hdr[bp]
        nxt = self._next(p)
        if bp + block.size == nxt:
            block.size += self._hdr[nxt].size
            block.ptr = self._hdr[nxt].ptr
            del self._hdr[nxt]
        else:
            block.ptr = nxt
        head = self._hdr[p]
        if p + head.size == bp:
            head.size += block.size
            head.ptr = block.ptr
            del self._hdr[bp]
        else:
            head.ptr = bp
        self._freep = p