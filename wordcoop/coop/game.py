"""
The word game as seen by the coordination layer.

Rules, board and rendering live elsewhere; the session only needs these
entry points. Every ``apply_*`` call returns whether the game accepted the
input.
"""
from typing import Protocol, runtime_checkable


@runtime_checkable
class Game(Protocol):

    def apply_character_input(self, char: str) -> bool:
        ...

    def apply_word_submit(self) -> bool:
        ...

    def apply_backspace(self) -> bool:
        ...

    def restart(self, word: str) -> None:
        ...

    def give_up(self) -> None:
        ...

    def is_won(self) -> bool:
        ...

    def is_lost(self) -> bool:
        ...


def is_finished(game: Game) -> bool:
    return game.is_won() or game.is_lost()
