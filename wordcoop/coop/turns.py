"""
Turn assignment from seed exchange.
"""
from typing import Any, Dict, Optional

from wordcoop.coop.prng import SeedablePRNG
from wordcoop.core.logging import LoggerMixin


class TurnCoordinator(LoggerMixin):
    """Tracks the shared generator and the move counter.

    Each peer draws a local seed and sends it. The peer with the larger seed
    keeps its generator and moves first; the other adopts the larger seed
    and starts one move behind, so the counter parity differs between the
    two sides.
    """

    def __init__(self, seed: Optional[int] = None):
        super().__init__()
        self.prng = SeedablePRNG(seed) if seed is not None else SeedablePRNG.random()
        self.local_seed = self.prng.seed
        self.remote_seed: Optional[int] = None
        self.move_count = 0

    @property
    def reconciled(self) -> bool:
        return self.remote_seed is not None

    @property
    def is_my_turn(self) -> bool:
        return self.reconciled and self.move_count % 2 == 0

    @property
    def shared_seed(self) -> int:
        return self.prng.seed

    def reconcile(self, remote_seed: int) -> bool:
        """Apply the peer's seed. Returns False if a seed was already applied."""
        if self.reconciled:
            self.log_warning("Ignoring repeated start seed", {
                "remote_seed": remote_seed,
                "first_remote_seed": self.remote_seed
            })
            return False

        self.remote_seed = remote_seed
        if self.local_seed < remote_seed:
            self.prng = SeedablePRNG(remote_seed)
            self.move_count += 1

        self.log_info("🎲 [Turns] Start seed reconciled", {
            "local_seed": self.local_seed,
            "remote_seed": remote_seed,
            "moves_first": self.is_my_turn
        })
        return True

    def advance(self):
        self.move_count += 1

    def next_word_index(self, count: int) -> int:
        return self.prng.next_index(count)

    def get_status(self) -> Dict[str, Any]:
        return {
            "local_seed": self.local_seed,
            "remote_seed": self.remote_seed,
            "shared_seed": self.shared_seed if self.reconciled else None,
            "move_count": self.move_count,
            "my_turn": self.is_my_turn
        }
