from __future__ import annotations

from dataclasses import dataclass

from braid.channel.codec import Reader, Writer, decode_path, encode_path
from braid.channel.state_channel import State
from braid.common.constants import AUDIT_CONTRACT, GAME_CONTRACT, HASH_SIZE, TREASURE_POOL
from braid.common.errors import DecodeError
from braid.common.types import Path, TransactionKind


@dataclass(frozen=True)
class LedgerTransaction:
    """Outbound record for the external ledger.

    Only the factory classmethods build these, so each kind has a fixed
    payload shape the ledger can rely on.
    """

    sender: str
    receiver: str
    amount: float
    data: bytes
    kind: TransactionKind

    @classmethod
    def commit_ante(cls, sender: str, amount: float) -> LedgerTransaction:
        return cls(sender, TREASURE_POOL, amount, b"", TransactionKind.COMMIT_ANTE)

    @classmethod
    def submit_path(cls, sender: str, path: Path) -> LedgerTransaction:
        return cls(sender, GAME_CONTRACT, 0.0, encode_path(path), TransactionKind.SUBMIT_PATH)

    @classmethod
    def claim_treasure(cls, sender: str, amount: float) -> LedgerTransaction:
        return cls(sender, TREASURE_POOL, amount, b"", TransactionKind.CLAIM_TREASURE)

    @classmethod
    def slash_claim(cls, sender: str, receiver: str, reason: str) -> LedgerTransaction:
        return cls(sender, receiver, 0.0, reason.encode("utf-8"), TransactionKind.SLASH_CLAIM)

    @classmethod
    def audit_transaction(cls, sender: str, data: bytes) -> LedgerTransaction:
        return cls(sender, AUDIT_CONTRACT, 0.0, bytes(data), TransactionKind.AUDIT_TRANSACTION)

    @classmethod
    def open_state_channel(
        cls, sender: str, receiver: str, initial_state: State
    ) -> LedgerTransaction:
        return cls(
            sender, receiver, 0.0, initial_state.to_bytes(), TransactionKind.OPEN_STATE_CHANNEL
        )

    @classmethod
    def close_state_channel(
        cls, sender: str, receiver: str, final_state: State
    ) -> LedgerTransaction:
        return cls(
            sender, receiver, 0.0, final_state.to_bytes(), TransactionKind.CLOSE_STATE_CHANNEL
        )

    @classmethod
    def commit_move_on_chain(
        cls, sender: str, move_hash: bytes, zk_proof: bytes
    ) -> LedgerTransaction:
        # Fixed-width move hash, so the proof boundary needs no delimiter.
        if len(move_hash) != HASH_SIZE:
            raise ValueError(f"move_hash must be {HASH_SIZE} bytes, got {len(move_hash)}")
        return cls(
            sender,
            GAME_CONTRACT,
            0.0,
            bytes(move_hash) + bytes(zk_proof),
            TransactionKind.COMMIT_MOVE_ON_CHAIN,
        )

    def decode_path(self) -> Path:
        return decode_path(self.data)

    def decode_state(self) -> State:
        return State.from_bytes(self.data)

    def decode_reason(self) -> str:
        try:
            return self.data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Slash reason is not UTF-8") from exc

    def serialize(self) -> bytes:
        return (
            Writer()
            .text(self.kind.value)
            .text(self.sender)
            .text(self.receiver)
            .f64(self.amount)
            .raw(self.data)
            .getvalue()
        )

    @classmethod
    def deserialize(cls, data: bytes) -> LedgerTransaction:
        reader = Reader(data)
        kind_value = reader.text()
        try:
            kind = TransactionKind(kind_value)
        except ValueError as exc:
            raise DecodeError(f"Unknown transaction kind {kind_value!r}") from exc
        tx = cls(
            kind=kind,
            sender=reader.text(),
            receiver=reader.text(),
            amount=reader.f64(),
            data=reader.raw(),
        )
        reader.finish()
        return tx

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "sender": self.sender,
            "receiver": self.receiver,
            "amount": self.amount,
            "data": self.data.hex(),
        }


def split_move_commitment(data: bytes) -> tuple[bytes, bytes]:
    """Split a ``commit_move_on_chain`` payload into (move_hash, proof)."""
    if len(data) < HASH_SIZE:
        raise DecodeError("Move commitment shorter than the move hash")
    return bytes(data[:HASH_SIZE]), bytes(data[HASH_SIZE:])
