"""
Coop module for Word Coop.
Turn order, consent exchanges and the binding between a Game and a peer link.
"""

from .consent import AskKind, ConsentPolicy, ConsentTracker
from .game import Game
from .prng import SeedablePRNG
from .session import CoopSession, Notice
from .turns import TurnCoordinator

__all__ = [
    'AskKind',
    'ConsentPolicy',
    'ConsentTracker',
    'Game',
    'SeedablePRNG',
    'CoopSession',
    'Notice',
    'TurnCoordinator'
]
