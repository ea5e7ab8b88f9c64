from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace

from cryptography import exceptions as crypto_exceptions
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from braid.channel.codec import Reader, Writer
from braid.channel.keys import public_key_from_address
from braid.common.constants import HASH_SIZE
from braid.common.errors import InvalidSignature, StaleUpdate

_ECDSA_PREHASHED = ec.ECDSA(Prehashed(hashes.SHA256()))


@dataclass(frozen=True)
class State:
    player_address: str
    move_hash: bytes = b""
    turn_number: int = 0

    def to_bytes(self) -> bytes:
        return (
            Writer()
            .text(self.player_address)
            .raw(self.move_hash)
            .u64(self.turn_number)
            .getvalue()
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> State:
        reader = Reader(data)
        state = cls(
            player_address=reader.text(),
            move_hash=reader.raw(),
            turn_number=reader.u64(),
        )
        reader.finish()
        return state

    def digest(self) -> bytes:
        return hashlib.sha256(self.to_bytes()).digest()


def sign(state: State, secret_key: ec.EllipticCurvePrivateKey) -> bytes:
    """DER-encoded ECDSA signature over the SHA-256 of the canonical state."""
    return secret_key.sign(state.digest(), _ECDSA_PREHASHED)


def verify(state: State, signature: bytes, public_key: ec.EllipticCurvePublicKey) -> bool:
    try:
        public_key.verify(signature, state.digest(), _ECDSA_PREHASHED)
    except crypto_exceptions.InvalidSignature:
        return False
    return True


@dataclass
class StateChannel:
    """Two-party channel between a player and the server.

    ``initial_state`` never changes and is the fallback for disputes.
    ``current_state`` only moves forward through :meth:`update_state`, which
    checks the turn number and both signatures before touching anything.
    """

    player_address: str
    server_address: str
    player_key: ec.EllipticCurvePublicKey | None = field(default=None, repr=False)
    server_key: ec.EllipticCurvePublicKey | None = field(default=None, repr=False)
    initial_state: State = field(init=False)
    current_state: State = field(init=False)
    player_signature: bytes | None = field(default=None, init=False)
    server_signature: bytes | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.initial_state = State(player_address=self.player_address)
        self.current_state = self.initial_state

    def sign_state(
        self, secret_key: ec.EllipticCurvePrivateKey, state: State | None = None
    ) -> bytes:
        return sign(state or self.current_state, secret_key)

    def verify_state(
        self, state: State, signature: bytes, public_key: ec.EllipticCurvePublicKey
    ) -> bool:
        return verify(state, signature, public_key)

    def proposed_state(self, move_hash: bytes, turn_number: int) -> State:
        return replace(self.current_state, move_hash=bytes(move_hash), turn_number=turn_number)

    def update_state(
        self,
        move_hash: bytes,
        turn_number: int,
        player_signature: bytes,
        server_signature: bytes,
    ) -> State:
        if len(move_hash) != HASH_SIZE:
            raise ValueError(f"Move hash must be {HASH_SIZE} bytes")
        if turn_number <= self.current_state.turn_number:
            raise StaleUpdate(
                f"Turn {turn_number} does not advance past {self.current_state.turn_number}"
            )
        new_state = self.proposed_state(move_hash, turn_number)
        if not verify(new_state, player_signature, self._player_public_key()):
            raise InvalidSignature("Player signature does not match the proposed state")
        if not verify(new_state, server_signature, self._server_public_key()):
            raise InvalidSignature("Server signature does not match the proposed state")
        self.current_state = new_state
        self.player_signature = player_signature
        self.server_signature = server_signature
        return new_state

    @property
    def is_finalized(self) -> bool:
        if self.player_signature is None or self.server_signature is None:
            return False
        return verify(
            self.current_state, self.player_signature, self._player_public_key()
        ) and verify(self.current_state, self.server_signature, self._server_public_key())

    def settlement_state(self) -> State:
        """Last mutually signed state, or the initial state if none exists."""
        return self.current_state if self.is_finalized else self.initial_state

    def serialize_state(self, state: State | None = None) -> bytes:
        return (state or self.current_state).to_bytes()

    @staticmethod
    def deserialize_state(data: bytes) -> State:
        return State.from_bytes(data)

    def _player_public_key(self) -> ec.EllipticCurvePublicKey:
        if self.player_key is None:
            self.player_key = public_key_from_address(self.player_address)
        return self.player_key

    def _server_public_key(self) -> ec.EllipticCurvePublicKey:
        if self.server_key is None:
            self.server_key = public_key_from_address(self.server_address)
        return self.server_key
