from __future__ import annotations

MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    return (a * b) & MASK32


class Mulberry32:
    """Seeded 32-bit generator shared by every peer.

    All arithmetic is truncated to 32 bits so the sequence matches the
    browser implementation bit for bit.
    """

    def __init__(self, seed: int) -> None:
        self.state = seed & MASK32

    def random(self) -> float:
        self.state = (self.state + _INCREMENT) & MASK32
        t = self.state
        t = _imul(t ^ (t >> 15), t | 1)
        t = ((t + _imul(t ^ (t >> 7), t | 61)) & MASK32) ^ t
        return ((t ^ (t >> 14)) & MASK32) / 4294967296

    def randint(self, upper: int) -> int:
        """Return an integer in [0, upper)."""
        return int(self.random() * upper)
