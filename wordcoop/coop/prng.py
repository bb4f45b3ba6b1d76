"""
Seedable 32-bit xorshift generator shared by both players.

Both peers must produce identical sequences from the same seed, so every
step is reduced to a signed 32-bit value exactly as two's complement
hardware would wrap it.
"""
import secrets

INT32_MASK = 0xFFFFFFFF
INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1


def to_int32(value: int) -> int:
    """Wrap an arbitrary int to the signed 32-bit range."""
    value &= INT32_MASK
    if value & 0x80000000:
        return value - (1 << 32)
    return value


def is_int32(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and INT32_MIN <= value <= INT32_MAX


class SeedablePRNG:
    """xorshift32: ``x ^= x << 13; x ^= x >> 17; x ^= x << 5``."""

    def __init__(self, seed: int):
        seed = to_int32(seed)
        if seed == 0:
            raise ValueError("xorshift seed must be non-zero")
        self.seed = seed
        self.state = seed

    @classmethod
    def random(cls) -> "SeedablePRNG":
        """Create a generator from a cryptographically random non-zero seed."""
        seed = 0
        while seed == 0:
            seed = to_int32(secrets.randbits(32))
        return cls(seed)

    def next(self) -> int:
        x = self.state
        x = to_int32(x ^ (x << 13))
        # >> on a negative Python int is an arithmetic shift
        x = to_int32(x ^ (x >> 17))
        x = to_int32(x ^ (x << 5))
        self.state = x
        return x

    def next_index(self, count: int) -> int:
        """Draw an index in ``range(count)`` from the unsigned view of the next value."""
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")
        return (self.next() & INT32_MASK) % count

    def __repr__(self):
        return f"SeedablePRNG(seed={self.seed}, state={self.state})"
