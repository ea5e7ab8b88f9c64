import hashlib
import threading

import pytest

from braid.channel.commitment import commit_exploration, commit_path
from braid.channel.keys import address_for, generate_private_key
from braid.channel.state_channel import sign, verify
from braid.common.errors import (
    DimensionMismatch,
    GameOver,
    InvalidSignature,
    ProtocolError,
    StaleUpdate,
    UnknownPlayer,
)
from braid.common.types import TransactionKind
from braid.engine.server import SessionServer
from braid.engine.view import empty_mask
from braid.persist.base import Persistence


class DummyPersist(Persistence):
    def __init__(self):
        self.transactions = []
        self.turns = []

    def record_transaction(self, tx) -> None:
        self.transactions.append(tx)

    def list_transactions(self, limit: int = 100):
        return [tx.to_dict() for tx in self.transactions[:limit]]

    def record_turn(self, turn: int, player_id: int, treasure: float, commitment: bytes) -> None:
        self.turns.append((turn, player_id, treasure, commitment))

    def get_turns(self, start_turn: int = 0, limit: int = 100):
        return []


def _server(**kwargs):
    kwargs.setdefault("width", 5)
    kwargs.setdefault("height", 5)
    kwargs.setdefault("seed", 11)
    return SessionServer(DummyPersist(), **kwargs)


def _join(server):
    key = generate_private_key()
    session = server.add_player(address_for(key))
    return session.player_id, key


def _request(server, player_id, cells):
    mask = empty_mask(server.maze.width, server.maze.height)
    for x, y in cells:
        mask[x][y] = True
    return server.process_request(player_id, mask, commit_exploration(mask))


def test_maze_is_generated_once_as_spanning_tree():
    server = _server(width=6, height=4)
    assert server.maze.is_spanning_tree()


def test_join_opens_channel_and_emits_open_transaction():
    server = _server()
    player_id, key = _join(server)
    assert server.get_channel(player_id).player_address == address_for(key)
    tx = server.persistence.transactions[-1]
    assert tx.kind is TransactionKind.OPEN_STATE_CHANNEL
    assert tx.receiver == server.server_address
    assert tx.decode_state().turn_number == 0


def test_join_rejects_duplicate_id_and_bad_address():
    server = _server()
    server.add_player(address_for(generate_private_key()), player_id=7)
    with pytest.raises(ValueError):
        server.add_player(address_for(generate_private_key()), player_id=7)
    with pytest.raises(InvalidSignature):
        server.add_player("not-a-key")


def test_request_returns_masked_view_and_advances_turn():
    server = _server(max_turns=100, initial_treasure=1000.0)
    player_id, _ = _join(server)
    view = _request(server, player_id, [(0, 0), (0, 1)])
    assert view.turn == 1
    assert view.treasure == 1000.0
    assert not view.game_over
    assert view.maze.grid[0][0] == server.maze.grid[0][0]
    assert view.maze.grid[4][4].walls == [True, True, True, True]
    assert not view.maze.grid[4][4].visited
    assert server.persistence.turns[-1][:2] == (1, player_id)


def test_reveal_is_monotonic():
    server = _server()
    player_id, _ = _join(server)
    _request(server, player_id, [(2, 2)])
    view = _request(server, player_id, [(3, 3)])
    assert view.maze.grid[2][2] == server.maze.grid[2][2]
    assert server.get_player(player_id).mask[2][2] is True
    assert server.get_player(player_id).turns_taken == 2


def test_commitment_must_match_mask():
    server = _server()
    player_id, _ = _join(server)
    mask = empty_mask(5, 5)
    mask[1][1] = True
    with pytest.raises(ProtocolError):
        server.process_request(player_id, mask, bytes(32))
    assert server.clock.current_turn == 0


def test_rejected_requests_do_not_consume_turns():
    server = _server()
    player_id, _ = _join(server)
    with pytest.raises(DimensionMismatch):
        server.process_request(player_id, empty_mask(4, 5), commit_exploration(empty_mask(4, 5)))
    with pytest.raises(UnknownPlayer):
        server.process_request(999, empty_mask(5, 5), commit_exploration(empty_mask(5, 5)))
    assert server.clock.current_turn == 0


def test_turn_limit_is_shared_across_players():
    server = _server(max_turns=3)
    a, _ = _join(server)
    b, _ = _join(server)
    assert not _request(server, a, [(0, 0)]).game_over
    assert not _request(server, b, [(1, 1)]).game_over
    assert _request(server, a, [(0, 1)]).game_over
    assert server.game_over
    with pytest.raises(GameOver):
        _request(server, b, [(1, 2)])


def test_concurrent_sessions_share_one_clock():
    server = _server(max_turns=200)
    players = [_join(server)[0] for _ in range(4)]
    served = []
    lock = threading.Lock()

    def worker(player_id):
        count = 0
        while True:
            try:
                _request(server, player_id, [(player_id % 5, 0)])
            except GameOver:
                break
            count += 1
        with lock:
            served.append(count)

    threads = [threading.Thread(target=worker, args=(p,)) for p in players]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(served) == 200
    assert server.clock.current_turn == 200
    assert sorted(turn for turn, *_ in server.persistence.turns) == list(range(1, 201))


def test_countersign_advances_channel():
    server = _server()
    player_id, key = _join(server)
    channel = server.get_channel(player_id)
    move_hash = hashlib.sha256(b"north").digest()
    proposed = channel.proposed_state(move_hash, 1)
    server_sig = server.countersign(player_id, move_hash, 1, sign(proposed, key))
    assert verify(proposed, server_sig, server.server_key.public_key())
    assert channel.current_state == proposed
    assert channel.is_finalized


def test_countersign_rejects_bad_signature_and_stale_turn():
    server = _server()
    player_id, key = _join(server)
    channel = server.get_channel(player_id)
    move_hash = hashlib.sha256(b"east").digest()
    wrong = sign(channel.proposed_state(move_hash, 2), key)
    with pytest.raises(InvalidSignature):
        server.countersign(player_id, move_hash, 1, wrong)
    with pytest.raises(StaleUpdate):
        server.countersign(player_id, move_hash, 0, wrong)
    assert channel.current_state == channel.initial_state


def test_settle_closes_channel_with_last_signed_state():
    server = _server()
    player_id, key = _join(server)
    channel = server.get_channel(player_id)
    move_hash = hashlib.sha256(b"south").digest()
    server.countersign(player_id, move_hash, 4, sign(channel.proposed_state(move_hash, 4), key))
    tx = server.settle(player_id)
    assert tx.kind is TransactionKind.CLOSE_STATE_CHANNEL
    assert tx.decode_state().turn_number == 4
    with pytest.raises(UnknownPlayer):
        server.get_player(player_id)
    with pytest.raises(UnknownPlayer):
        server.settle(player_id)


def test_dispute_requires_signed_move():
    server = _server()
    player_id, key = _join(server)
    with pytest.raises(ValueError):
        server.dispute(player_id, b"proof")
    channel = server.get_channel(player_id)
    move_hash = hashlib.sha256(b"west").digest()
    server.countersign(player_id, move_hash, 1, sign(channel.proposed_state(move_hash, 1), key))
    tx = server.dispute(player_id, b"proof")
    assert tx.kind is TransactionKind.COMMIT_MOVE_ON_CHAIN
    assert tx.data == move_hash + b"proof"


def test_economic_transactions():
    server = _server(max_turns=10, initial_treasure=50.0)
    player_id, key = _join(server)
    address = address_for(key)
    assert server.commit_ante(player_id, 5.0).sender == address
    with pytest.raises(ValueError):
        server.claim_treasure(player_id, 51.0)
    assert server.claim_treasure(player_id, 50.0).amount == 50.0
    assert server.submit_path(player_id, [(0, 0), (0, 1)]).decode_path() == [(0, 0), (0, 1)]
    with pytest.raises(ValueError):
        server.submit_path(player_id, [(9, 9)])
    _request(server, player_id, [(0, 0)])
    audit = server.audit(player_id, "auditor")
    assert audit.data == server.get_player(player_id).commitment
    assert server.slash("a", "b", "reason").decode_reason() == "reason"


def test_status_snapshot():
    server = _server(max_turns=10)
    player_id, _ = _join(server)
    _request(server, player_id, [(0, 0)])
    status = server.status()
    assert status.turn == 1
    assert status.player_ids == [player_id]
    assert (status.width, status.height) == (5, 5)


def test_countersign_rejects_move_hash_of_wrong_width():
    server = _server()
    player_id, key = _join(server)
    channel = server.get_channel(player_id)
    short = b"\x01\x02"
    with pytest.raises(ValueError):
        server.countersign(player_id, short, 1, sign(channel.proposed_state(short, 1), key))
    assert channel.current_state == channel.initial_state
    assert not channel.is_finalized
    # The channel still accepts a well-formed move and can be disputed.
    move_hash = hashlib.sha256(b"north").digest()
    server.countersign(player_id, move_hash, 1, sign(channel.proposed_state(move_hash, 1), key))
    assert server.dispute(player_id, b"proof").data == move_hash + b"proof"


def test_failed_dispute_leaves_channel_open():
    server = _server()
    player_id, _ = _join(server)
    with pytest.raises(ValueError):
        server.dispute(player_id, b"proof")
    assert server.get_channel(player_id).player_address == server.get_player(player_id).address
    with pytest.raises(UnknownPlayer):
        server.dispute(999, b"proof")


def test_dispute_carries_latest_countersigned_state():
    server = _server()
    player_id, key = _join(server)
    channel = server.get_channel(player_id)
    for turn, move in enumerate((b"a", b"b", b"c"), start=1):
        move_hash = hashlib.sha256(move).digest()
        server.countersign(
            player_id, move_hash, turn, sign(channel.proposed_state(move_hash, turn), key)
        )
    tx = server.dispute(player_id, b"")
    assert tx.data == hashlib.sha256(b"c").digest()
    with pytest.raises(UnknownPlayer):
        server.get_channel(player_id)
    with pytest.raises(UnknownPlayer):
        server.countersign(player_id, hashlib.sha256(b"d").digest(), 4, b"sig")


def test_audit_commitment_covers_merged_exploration():
    server = _server()
    player_id, _ = _join(server)
    _request(server, player_id, [(0, 0)])
    _request(server, player_id, [(4, 4)])
    merged = server.get_player(player_id).mask
    assert merged[0][0] and merged[4][4]
    assert server.audit(player_id, "auditor").data == commit_exploration(merged)
    # The turn log keeps the commitment each request actually carried.
    assert server.persistence.turns[-1][3] != commit_exploration(merged)


def test_submit_path_must_open_prior_commitment():
    server = _server()
    player_id, _ = _join(server)
    path = [(0, 0), (1, 0), (1, 1)]
    with pytest.raises(ValueError):
        server.commit_solution(player_id, b"short")
    server.commit_solution(player_id, commit_path(path))
    assert server.get_player(player_id).path_commitment == commit_path(path)
    with pytest.raises(ProtocolError):
        server.submit_path(player_id, [(0, 0), (0, 1)])
    assert server.submit_path(player_id, path).decode_path() == path
    with pytest.raises(UnknownPlayer):
        server.commit_solution(999, commit_path(path))


def test_attach_connection_allows_one_live_connection_per_player():
    server = _server()
    player_id, _ = _join(server)
    server.attach_connection(player_id)
    with pytest.raises(ProtocolError):
        server.attach_connection(player_id)
    server.detach_connection(player_id)
    server.attach_connection(player_id)
    with pytest.raises(UnknownPlayer):
        server.attach_connection(999)
