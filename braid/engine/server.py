from __future__ import annotations

import itertools
import logging
import random
import threading

from cryptography.hazmat.primitives.asymmetric import ec

from braid.channel.commitment import commit_exploration, commit_path
from braid.channel.keys import address_for, generate_private_key, public_key_from_address
from braid.channel.state_channel import StateChannel, sign, verify
from braid.common.constants import HASH_SIZE
from braid.common.errors import (
    InvalidSignature,
    ProtocolError,
    StaleUpdate,
    UnknownPlayer,
)
from braid.common.types import Path, VisibilityMask
from braid.engine.maze import Maze, generate
from braid.engine.state import PlayerSession, PlayerView, ServerStatus
from braid.engine.treasure import TreasureClock
from braid.engine.view import check_dimensions, empty_mask, mask, merge_masks
from braid.ledger.transactions import LedgerTransaction
from braid.persist.base import Persistence

logger = logging.getLogger(__name__)


class SessionServer:
    """Authoritative game state shared by every connection worker.

    The maze is generated here once and only read afterwards. The roster
    and the channel table each have their own lock; the clock carries the
    only lock that serializes all sessions.
    """

    def __init__(
        self,
        persistence: Persistence,
        width: int = 10,
        height: int = 10,
        max_turns: int = 100,
        initial_treasure: float = 1000.0,
        seed: int | None = None,
        server_key: ec.EllipticCurvePrivateKey | None = None,
    ) -> None:
        self.persistence = persistence
        self.rng = random.Random(seed)
        self.maze: Maze = generate(width, height, self.rng)
        self.clock = TreasureClock(initial_treasure=initial_treasure, max_turns=max_turns)
        self.server_key = server_key or generate_private_key()
        self.server_address = address_for(self.server_key)
        self.players: dict[int, PlayerSession] = {}
        self.channels: dict[int, StateChannel] = {}
        self._players_lock = threading.Lock()
        self._channels_lock = threading.Lock()
        self._connected: set[int] = set()
        self._ids = itertools.count(1)

    @property
    def game_over(self) -> bool:
        return self.clock.game_over

    def add_player(self, address: str, player_id: int | None = None) -> PlayerSession:
        """Register a player and open its state channel."""
        player_key = public_key_from_address(address)
        with self._players_lock:
            if player_id is None:
                player_id = next(self._ids)
                while player_id in self.players:
                    player_id = next(self._ids)
            elif player_id in self.players:
                raise ValueError(f"Player {player_id} already registered")
            session = PlayerSession(
                player_id=player_id,
                address=address,
                mask=empty_mask(self.maze.width, self.maze.height),
            )
            self.players[player_id] = session
        channel = StateChannel(
            player_address=address,
            server_address=self.server_address,
            player_key=player_key,
            server_key=self.server_key.public_key(),
        )
        with self._channels_lock:
            self.channels[player_id] = channel
        logger.info("Player %s joined", player_id)
        self._emit(
            LedgerTransaction.open_state_channel(address, self.server_address, channel.initial_state)
        )
        return session

    def get_player(self, player_id: int) -> PlayerSession:
        with self._players_lock:
            session = self.players.get(player_id)
        if session is None:
            raise UnknownPlayer(f"Unknown player {player_id}")
        return session

    def get_channel(self, player_id: int) -> StateChannel:
        with self._channels_lock:
            channel = self.channels.get(player_id)
        if channel is None:
            raise UnknownPlayer(f"No open channel for player {player_id}")
        return channel

    def process_request(
        self, player_id: int, exploration_mask: VisibilityMask, commitment: bytes
    ) -> PlayerView:
        """Apply one exploration request and return the player's masked view.

        Validation happens before the clock moves, so a rejected request
        never consumes a turn.
        """
        self.get_player(player_id)
        check_dimensions(exploration_mask, self.maze.width, self.maze.height)
        if commitment != commit_exploration(exploration_mask):
            raise ProtocolError("Commitment does not match the exploration mask")
        tick = self.clock.advance()
        with self._players_lock:
            session = self.players.get(player_id)
            if session is None:
                raise UnknownPlayer(f"Unknown player {player_id}")
            session.mask = merge_masks(session.mask, exploration_mask)
            session.commitment = commit_exploration(session.mask)
            session.turns_taken += 1
            visible = [list(column) for column in session.mask]
        view = mask(self.maze, visible)
        self.persistence.record_turn(tick.turn, player_id, tick.treasure, commitment)
        if tick.game_over:
            logger.info("Max turns reached at turn %s. Game over.", tick.turn)
        return PlayerView(
            player_id=player_id,
            maze=view,
            turn=tick.turn,
            treasure=tick.treasure,
            game_over=tick.game_over,
        )

    def player_view(self, player_id: int) -> PlayerView:
        with self._players_lock:
            session = self.players.get(player_id)
            if session is None:
                raise UnknownPlayer(f"Unknown player {player_id}")
            visible = [list(column) for column in session.mask]
        tick = self.clock.snapshot()
        return PlayerView(
            player_id=player_id,
            maze=mask(self.maze, visible),
            turn=tick.turn,
            treasure=tick.treasure,
            game_over=tick.game_over,
        )

    def countersign(
        self, player_id: int, move_hash: bytes, turn_number: int, player_signature: bytes
    ) -> bytes:
        """Verify a player's proposed state, countersign it and apply it."""
        with self._channels_lock:
            channel = self.channels.get(player_id)
            if channel is None:
                raise UnknownPlayer(f"No open channel for player {player_id}")
            if len(move_hash) != HASH_SIZE:
                raise ValueError(f"Move hash must be {HASH_SIZE} bytes")
            if turn_number <= channel.current_state.turn_number:
                raise StaleUpdate(
                    f"Turn {turn_number} does not advance past "
                    f"{channel.current_state.turn_number}"
                )
            proposed = channel.proposed_state(move_hash, turn_number)
            if not verify(proposed, player_signature, channel.player_key):
                raise InvalidSignature("Player signature does not match the proposed state")
            server_signature = sign(proposed, self.server_key)
            channel.update_state(move_hash, turn_number, player_signature, server_signature)
        logger.info("Channel for player %s advanced to turn %s", player_id, turn_number)
        return server_signature

    def settle(self, player_id: int) -> LedgerTransaction:
        """Close the player's channel with its last mutually signed state."""
        channel = self._pop_channel(player_id)
        tx = LedgerTransaction.close_state_channel(
            channel.player_address, channel.server_address, channel.settlement_state()
        )
        self._drop_player(player_id)
        self._emit(tx)
        return tx

    def dispute(self, player_id: int, zk_proof: bytes) -> LedgerTransaction:
        """Push the last co-signed move on chain with an attached proof."""
        with self._channels_lock:
            channel = self.channels.get(player_id)
            if channel is None:
                raise UnknownPlayer(f"No open channel for player {player_id}")
            state = channel.settlement_state()
            if len(state.move_hash) != HASH_SIZE:
                raise ValueError("No co-signed move to dispute")
            del self.channels[player_id]
        tx = LedgerTransaction.commit_move_on_chain(channel.player_address, state.move_hash, zk_proof)
        self._drop_player(player_id)
        self._emit(tx)
        return tx

    def commit_ante(self, player_id: int, amount: float) -> LedgerTransaction:
        if amount <= 0:
            raise ValueError("Ante must be positive")
        session = self.get_player(player_id)
        return self._emit(LedgerTransaction.commit_ante(session.address, amount))

    def claim_treasure(self, player_id: int, amount: float) -> LedgerTransaction:
        session = self.get_player(player_id)
        available = self.clock.snapshot().treasure
        if amount <= 0 or amount > available:
            raise ValueError(f"Claim must be in (0, {available}]")
        return self._emit(LedgerTransaction.claim_treasure(session.address, amount))

    def commit_solution(self, player_id: int, commitment: bytes) -> None:
        """Record a player's commitment to the path it will later submit."""
        if len(commitment) != HASH_SIZE:
            raise ValueError(f"Path commitment must be {HASH_SIZE} bytes")
        with self._players_lock:
            session = self.players.get(player_id)
            if session is None:
                raise UnknownPlayer(f"Unknown player {player_id}")
            session.path_commitment = bytes(commitment)
        logger.info("Player %s committed to a solution path", player_id)

    def submit_path(self, player_id: int, path: Path) -> LedgerTransaction:
        """Reveal a path; it must open the player's earlier commitment, if any."""
        session = self.get_player(player_id)
        for tile in path:
            if not self.maze.in_bounds(tile):
                raise ValueError(f"Path cell {tile} is outside the maze")
        if session.path_commitment and commit_path(path) != session.path_commitment:
            raise ProtocolError("Path does not match the committed solution")
        return self._emit(LedgerTransaction.submit_path(session.address, list(path)))

    def attach_connection(self, player_id: int) -> None:
        """Bind a player to a live connection; one connection per player."""
        with self._players_lock:
            if player_id not in self.players:
                raise UnknownPlayer(f"Unknown player {player_id}")
            if player_id in self._connected:
                raise ProtocolError(f"Player {player_id} already has a live connection")
            self._connected.add(player_id)

    def detach_connection(self, player_id: int) -> None:
        with self._players_lock:
            self._connected.discard(player_id)

    def audit(self, player_id: int, auditor: str) -> LedgerTransaction:
        """Send the player's latest exploration commitment to the audit contract."""
        session = self.get_player(player_id)
        return self._emit(LedgerTransaction.audit_transaction(auditor, session.commitment))

    def slash(self, accuser: str, accused: str, reason: str) -> LedgerTransaction:
        return self._emit(LedgerTransaction.slash_claim(accuser, accused, reason))

    def status(self) -> ServerStatus:
        tick = self.clock.snapshot()
        with self._players_lock:
            player_ids = sorted(self.players)
        return ServerStatus(
            turn=tick.turn,
            max_turns=self.clock.max_turns,
            treasure=tick.treasure,
            game_over=tick.game_over,
            width=self.maze.width,
            height=self.maze.height,
            server_address=self.server_address,
            player_ids=player_ids,
        )

    def _pop_channel(self, player_id: int) -> StateChannel:
        with self._channels_lock:
            channel = self.channels.pop(player_id, None)
        if channel is None:
            raise UnknownPlayer(f"No open channel for player {player_id}")
        return channel

    def _drop_player(self, player_id: int) -> None:
        with self._players_lock:
            self.players.pop(player_id, None)
        logger.info("Player %s left", player_id)

    def _emit(self, tx: LedgerTransaction) -> LedgerTransaction:
        logger.info("Ledger %s %s -> %s (%s)", tx.kind.value, tx.sender, tx.receiver, tx.amount)
        self.persistence.record_transaction(tx)
        return tx
