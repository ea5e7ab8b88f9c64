import hashlib

import pytest

from braid.channel.state_channel import State
from braid.common.errors import DecodeError
from braid.common.types import TransactionKind
from braid.ledger.transactions import LedgerTransaction, split_move_commitment


def test_commit_ante():
    tx = LedgerTransaction.commit_ante("player1", 100.0)
    assert (tx.sender, tx.receiver, tx.amount, tx.data) == ("player1", "treasure_pool", 100.0, b"")
    assert tx.kind is TransactionKind.COMMIT_ANTE


def test_submit_path_recovers_path():
    path = [(0, 0), (0, 1), (1, 1)]
    tx = LedgerTransaction.submit_path("p1", path)
    assert (tx.sender, tx.receiver, tx.amount) == ("p1", "game_contract", 0.0)
    assert tx.decode_path() == path


def test_claim_treasure():
    tx = LedgerTransaction.claim_treasure("player1", 500.0)
    assert (tx.sender, tx.receiver, tx.amount, tx.data) == ("player1", "treasure_pool", 500.0, b"")


def test_slash_claim():
    tx = LedgerTransaction.slash_claim("player1", "player2", "cheating")
    assert (tx.sender, tx.receiver, tx.amount) == ("player1", "player2", 0.0)
    assert tx.decode_reason() == "cheating"


def test_audit_transaction():
    tx = LedgerTransaction.audit_transaction("auditor", b"\x01\x02\x03\x04")
    assert (tx.sender, tx.receiver, tx.amount) == ("auditor", "audit_contract", 0.0)
    assert tx.data == b"\x01\x02\x03\x04"


@pytest.mark.parametrize("factory", ["open_state_channel", "close_state_channel"])
def test_channel_transactions_carry_state(factory):
    state = State(player_address="player1", move_hash=b"\x00\x01\x02\x03", turn_number=10)
    tx = getattr(LedgerTransaction, factory)("player1", "server1", state)
    assert (tx.sender, tx.receiver, tx.amount) == ("player1", "server1", 0.0)
    assert tx.decode_state() == state


def test_commit_move_on_chain_uses_fixed_width_hash():
    move_hash = hashlib.sha256(b"move").digest()
    proof = b"\x04\x05\x06\x07"
    tx = LedgerTransaction.commit_move_on_chain("player1", move_hash, proof)
    assert (tx.sender, tx.receiver, tx.amount) == ("player1", "game_contract", 0.0)
    assert tx.data == move_hash + proof
    assert split_move_commitment(tx.data) == (move_hash, proof)


def test_commit_move_on_chain_rejects_short_hash():
    with pytest.raises(ValueError):
        LedgerTransaction.commit_move_on_chain("player1", b"\x00\x01", b"proof")


def test_split_move_commitment_rejects_truncated_payload():
    with pytest.raises(DecodeError):
        split_move_commitment(b"\x00" * 31)


def test_serialize_round_trip():
    tx = LedgerTransaction.slash_claim("a", "b", "double claim")
    assert LedgerTransaction.deserialize(tx.serialize()) == tx


def test_deserialize_rejects_unknown_kind():
    tx = LedgerTransaction.commit_ante("p", 1.0)
    data = tx.serialize().replace(b"commit_ante", b"commit_anty")
    with pytest.raises(DecodeError):
        LedgerTransaction.deserialize(data)


def test_decode_path_rejects_garbage():
    tx = LedgerTransaction.audit_transaction("auditor", (50).to_bytes(8, "little"))
    with pytest.raises(DecodeError):
        tx.decode_path()
