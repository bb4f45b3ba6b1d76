"""
CoopSession: binds a Game to a peer link.

Local input is applied to the game and mirrored to the peer only on the
local player's turn. Target word changes and giving up go through an
ask/response exchange. When the link closes the session continues offline
with the local game only.
"""
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from wordcoop.coop.consent import AskKind, ConsentPolicy, ConsentTracker
from wordcoop.coop.game import Game, is_finished
from wordcoop.coop.prng import is_int32
from wordcoop.coop.turns import TurnCoordinator
from wordcoop.core.exceptions import ProtocolViolation
from wordcoop.core.logging import LoggerMixin, debug_log
from wordcoop.webrtc.data_channel import PeerLink
from wordcoop.webrtc.protocol import PeerMessageProtocol

PUSH_CHAR = "PushChar"
POP_CHAR = "PopChar"
PUSH_WORD = "PushWord"
WORD_ASK = "WordAsk"
WORD_RESPONSE = "WordResponse"
DETERMINE_START = "DetermineStart"
GIVE_UP_ASK = "GiveUpAsk"
GIVE_UP_RESPONSE = "GiveUpResponse"

MESSAGE_SAMPLES = {
    PUSH_CHAR: "",
    POP_CHAR: "",
    PUSH_WORD: "",
    WORD_ASK: "",
    WORD_RESPONSE: True,
    DETERMINE_START: 0,
    GIVE_UP_ASK: True,
    GIVE_UP_RESPONSE: True,
}


class Notice(str, Enum):
    WORD_ACCEPTED = "word_accepted"
    WORD_REJECTED = "word_rejected"
    WORD_CHANGED_BY_PEER = "word_changed_by_peer"
    GIVE_UP_ACCEPTED = "give_up_accepted"
    GIVE_UP_REJECTED = "give_up_rejected"
    PEER_GAVE_UP = "peer_gave_up"
    INVALID_WORD = "invalid_word"
    ASK_PENDING = "ask_pending"
    NEXT_PUZZLE = "next_puzzle"
    OFFLINE = "offline"


NoticeCallback = Callable[[Notice, str], Any]


class CoopSession(LoggerMixin):
    """Turn-synchronized play of one Game between two peers."""

    def __init__(self, link: PeerLink, game: Game,
                 words: Optional[Sequence[str]] = None,
                 is_valid_word: Optional[Callable[[str], bool]] = None,
                 policy: Optional[ConsentPolicy] = None,
                 on_notice: Optional[NoticeCallback] = None,
                 seed: Optional[int] = None):
        super().__init__()
        self.game = game
        self.words = list(words) if words else []
        self._word_set = frozenset(self.words)
        self._is_valid_word = is_valid_word
        self.policy = policy or ConsentPolicy()
        self.on_notice = on_notice

        self.turns = TurnCoordinator(seed)
        self.consent = ConsentTracker()
        self.offline = False
        self.started = False

        self.protocol = PeerMessageProtocol(link)
        self.protocol.add_close_listener(self._on_disconnected)

    @property
    def session_id(self) -> str:
        return self.protocol.session_id

    @property
    def is_my_turn(self) -> bool:
        return self.offline or self.turns.is_my_turn

    def start(self):
        """Declare the game messages, finish registration and send the start seed."""
        if self.started:
            raise RuntimeError("Session already started")
        self.started = True

        handlers = {
            PUSH_CHAR: self._on_push_char,
            POP_CHAR: self._on_pop_char,
            PUSH_WORD: self._on_push_word,
            WORD_ASK: self._on_word_ask,
            WORD_RESPONSE: self._on_word_response,
            DETERMINE_START: self._on_determine_start,
            GIVE_UP_ASK: self._on_give_up_ask,
            GIVE_UP_RESPONSE: self._on_give_up_response,
        }
        for name, sample in MESSAGE_SAMPLES.items():
            self.protocol.register_two_way(name, sample, handlers[name])
        self.protocol.finish_local()
        self.protocol.send(DETERMINE_START, self.turns.local_seed)

        self.log_info("🎮 [Coop] Session started", {
            "session_id": self.session_id,
            "local_seed": self.turns.local_seed
        })
        return self

    def close(self):
        self.protocol.close()

    def is_valid_word(self, word: str) -> bool:
        if self._is_valid_word is not None:
            return self._is_valid_word(word)
        if self._word_set:
            return word in self._word_set
        return bool(word) and word.isalpha()

    # Local moves

    def push_character(self, char: str) -> bool:
        if not self.is_my_turn:
            return False
        self._maybe_start_next_puzzle()
        if not self.game.apply_character_input(char):
            return False
        self._send(PUSH_CHAR, char)
        return True

    def pop_character(self) -> bool:
        if not self.is_my_turn:
            return False
        self._maybe_start_next_puzzle()
        if not self.game.apply_backspace():
            return False
        self._send(POP_CHAR, "")
        return True

    def push_word(self) -> bool:
        if not self.is_my_turn:
            return False
        self._maybe_start_next_puzzle()
        if not self.game.apply_word_submit():
            return False
        self._send(PUSH_WORD, "")
        self.turns.advance()
        return True

    # Asks

    def ask_word(self, word: str) -> bool:
        """Propose a new target word. Returns True if the ask was sent or applied offline."""
        if not self.is_valid_word(word):
            self._notify(Notice.INVALID_WORD, word)
            return False
        if self.offline:
            self.game.restart(word)
            return True
        if not self.consent.begin(AskKind.WORD, word):
            self._notify(Notice.ASK_PENDING, AskKind.WORD.value)
            return False
        self._send(WORD_ASK, word)
        return True

    def ask_give_up(self) -> bool:
        if is_finished(self.game):
            return False
        if self.offline:
            self.game.give_up()
            return True
        if not self.consent.begin(AskKind.GIVE_UP):
            self._notify(Notice.ASK_PENDING, AskKind.GIVE_UP.value)
            return False
        self._send(GIVE_UP_ASK, True)
        return True

    # Peer messages

    def _on_push_char(self, char: str):
        self._ensure_peer_turn(PUSH_CHAR)
        if len(char) != 1:
            raise ProtocolViolation("PushChar must carry exactly one character", {"payload": char[:20]})
        self._maybe_start_next_puzzle()
        self.game.apply_character_input(char)

    def _on_pop_char(self, _payload: str):
        self._ensure_peer_turn(POP_CHAR)
        self._maybe_start_next_puzzle()
        self.game.apply_backspace()

    def _on_push_word(self, _payload: str):
        self._ensure_peer_turn(PUSH_WORD)
        self._maybe_start_next_puzzle()
        if self.game.apply_word_submit():
            self.turns.advance()

    def _on_determine_start(self, seed):
        if not is_int32(seed) or seed == 0:
            raise ProtocolViolation("Start seed must be a non-zero 32-bit integer", {"seed": seed})
        self.turns.reconcile(seed)

    def _on_word_ask(self, word: str):
        if not self.is_valid_word(word) or is_finished(self.game):
            accepted = False
        else:
            accepted = bool(self.policy.confirm_word(word))
        if accepted:
            self.game.restart(word)
            self._notify(Notice.WORD_CHANGED_BY_PEER, word)
        self._send(WORD_RESPONSE, accepted)

    def _on_word_response(self, accepted: bool):
        pending = self.consent.resolve(AskKind.WORD)
        if pending is None:
            self.log_warning("Ignoring word response with no outstanding ask", {"accepted": accepted})
            return
        if accepted:
            self.game.restart(pending.payload)
            self._notify(Notice.WORD_ACCEPTED, pending.payload)
        else:
            self._notify(Notice.WORD_REJECTED, pending.payload)

    def _on_give_up_ask(self, _payload: bool):
        if is_finished(self.game):
            accepted = False
        else:
            accepted = bool(self.policy.confirm_give_up())
        if accepted:
            self.game.give_up()
            self._notify(Notice.PEER_GAVE_UP, "")
        self._send(GIVE_UP_RESPONSE, accepted)

    def _on_give_up_response(self, accepted: bool):
        pending = self.consent.resolve(AskKind.GIVE_UP)
        if pending is None:
            self.log_warning("Ignoring give-up response with no outstanding ask", {"accepted": accepted})
            return
        if accepted:
            self.game.give_up()
            self._notify(Notice.GIVE_UP_ACCEPTED, "")
        else:
            self._notify(Notice.GIVE_UP_REJECTED, "")

    # Internals

    def _ensure_peer_turn(self, name: str):
        if not self.turns.reconciled or self.turns.is_my_turn:
            raise ProtocolViolation("Peer moved out of turn", {
                "name": name,
                "move_count": self.turns.move_count
            })

    def _maybe_start_next_puzzle(self):
        # both sides call this at the same move, keeping the generators in step
        if not self.words or not is_finished(self.game):
            return
        word = self.words[self.turns.next_word_index(len(self.words))]
        self.game.restart(word)
        self._notify(Notice.NEXT_PUZZLE, word)

    def _send(self, name: str, payload: Any):
        if self.offline:
            return
        self.protocol.send(name, payload)

    def _notify(self, notice: Notice, detail: str):
        debug_log(f"📣 [Coop] {notice.value}", {"detail": detail}, "DEBUG", self.logger)
        if self.on_notice is not None:
            self.on_notice(notice, detail)

    def _on_disconnected(self):
        if self.offline:
            return
        self.offline = True
        self.consent.clear()
        self.log_info("📴 [Coop] Peer disconnected, continuing offline", {"session_id": self.session_id})
        self._notify(Notice.OFFLINE, self.session_id)

    def get_status(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "offline": self.offline,
            "turns": self.turns.get_status(),
            "protocol": self.protocol.get_status(),
            "pending_asks": [kind.value for kind in AskKind if self.consent.outstanding(kind)]
        }
