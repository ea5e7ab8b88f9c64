from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Dict, Iterator, List

from fastapi import FastAPI, Header, HTTPException, status

from braid.api.models import (
    AmountRequest,
    AuditRequest,
    CosignRequest,
    CosignResponse,
    DisputeRequest,
    GameStatusResponse,
    JoinRequest,
    JoinResponse,
    PathCommitRequest,
    PathRequest,
    SlashRequest,
    TransactionResponse,
    TurnEntry,
)
from braid.channel.keys import load_private_key
from braid.common.config import settings
from braid.common.errors import (
    BraidError,
    DecodeError,
    DimensionMismatch,
    GameOver,
    InvalidSignature,
    StaleUpdate,
    UnknownPlayer,
)
from braid.engine.server import SessionServer
from braid.ledger.transactions import LedgerTransaction
from braid.net.session import start_session_listener
from braid.persist.sqlite import SqlitePersistence

app = FastAPI(title="BRAID")

logger = logging.getLogger(__name__)

persistence: SqlitePersistence | None = None
server: SessionServer | None = None
listener: asyncio.AbstractServer | None = None

_STATUS_FOR_ERROR = {
    UnknownPlayer: status.HTTP_404_NOT_FOUND,
    InvalidSignature: status.HTTP_400_BAD_REQUEST,
    DimensionMismatch: status.HTTP_400_BAD_REQUEST,
    DecodeError: status.HTTP_400_BAD_REQUEST,
    StaleUpdate: status.HTTP_409_CONFLICT,
    GameOver: status.HTTP_410_GONE,
}


def _get_server() -> SessionServer:
    assert server is not None
    return server


def _get_persistence() -> SqlitePersistence:
    assert persistence is not None
    return persistence


def _check_api_key(provided: str | None) -> None:
    if settings.api_key and provided != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@contextmanager
def _engine_errors() -> Iterator[None]:
    try:
        yield
    except BraidError as exc:
        code = next(
            (code for err, code in _STATUS_FOR_ERROR.items() if isinstance(exc, err)),
            status.HTTP_400_BAD_REQUEST,
        )
        raise HTTPException(status_code=code, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _tx_response(tx: LedgerTransaction) -> TransactionResponse:
    return TransactionResponse(**tx.to_dict())


@app.on_event("startup")
async def _startup() -> None:
    global persistence, server, listener
    persistence = SqlitePersistence(settings.db_path)
    server_key = load_private_key(settings.server_key) if settings.server_key else None
    server = SessionServer(
        persistence,
        width=settings.maze_width,
        height=settings.maze_height,
        max_turns=settings.max_turns,
        initial_treasure=settings.initial_treasure,
        seed=settings.random_seed,
        server_key=server_key,
    )
    logger.info("Server address %s", server.server_address)
    if settings.enable_session_listener:
        listener = await start_session_listener(
            server,
            settings.host,
            settings.port,
            read_timeout=settings.read_timeout_seconds,
            max_frame_bytes=settings.max_frame_bytes,
        )
    else:
        logger.warning("Session listener disabled via BRAID_ENABLE_SESSION_LISTENER")


@app.on_event("shutdown")
async def _shutdown() -> None:
    if listener is not None:
        listener.close()
        await listener.wait_closed()
    if persistence is not None:
        persistence.close()


@app.post("/players/join", response_model=JoinResponse)
async def join(req: JoinRequest, x_api_key: str | None = Header(default=None)) -> JoinResponse:
    _check_api_key(x_api_key)
    game = _get_server()
    if game.game_over:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Game over")
    with _engine_errors():
        session = game.add_player(req.address, req.player_id)
    return JoinResponse(
        player_id=session.player_id,
        server_address=game.server_address,
        width=game.maze.width,
        height=game.maze.height,
        max_turns=game.clock.max_turns,
    )


@app.get("/game/status", response_model=GameStatusResponse)
async def game_status(x_api_key: str | None = Header(default=None)) -> GameStatusResponse:
    _check_api_key(x_api_key)
    snapshot = _get_server().status()
    return GameStatusResponse(**asdict(snapshot))


@app.get("/players/{player_id}/view")
async def player_view(player_id: int, x_api_key: str | None = Header(default=None)) -> Dict:
    _check_api_key(x_api_key)
    with _engine_errors():
        view = _get_server().player_view(player_id)
    return view.to_dict()


@app.post("/players/{player_id}/channel/cosign", response_model=CosignResponse)
async def cosign(
    player_id: int, req: CosignRequest, x_api_key: str | None = Header(default=None)
) -> CosignResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        signature = _get_server().countersign(
            player_id,
            bytes.fromhex(req.move_hash),
            req.turn_number,
            bytes.fromhex(req.player_signature),
        )
    return CosignResponse(turn_number=req.turn_number, server_signature=signature.hex())


@app.post("/players/{player_id}/channel/close", response_model=TransactionResponse)
async def close_channel(
    player_id: int, x_api_key: str | None = Header(default=None)
) -> TransactionResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        tx = _get_server().settle(player_id)
    return _tx_response(tx)


@app.post("/players/{player_id}/channel/dispute", response_model=TransactionResponse)
async def dispute_channel(
    player_id: int, req: DisputeRequest, x_api_key: str | None = Header(default=None)
) -> TransactionResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        tx = _get_server().dispute(player_id, bytes.fromhex(req.proof))
    return _tx_response(tx)


@app.post("/players/{player_id}/ante", response_model=TransactionResponse)
async def commit_ante(
    player_id: int, req: AmountRequest, x_api_key: str | None = Header(default=None)
) -> TransactionResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        tx = _get_server().commit_ante(player_id, req.amount)
    return _tx_response(tx)


@app.post("/players/{player_id}/claim", response_model=TransactionResponse)
async def claim_treasure(
    player_id: int, req: AmountRequest, x_api_key: str | None = Header(default=None)
) -> TransactionResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        tx = _get_server().claim_treasure(player_id, req.amount)
    return _tx_response(tx)


@app.post("/players/{player_id}/path/commit", status_code=status.HTTP_204_NO_CONTENT)
async def commit_solution_path(
    player_id: int, req: PathCommitRequest, x_api_key: str | None = Header(default=None)
) -> None:
    _check_api_key(x_api_key)
    with _engine_errors():
        _get_server().commit_solution(player_id, bytes.fromhex(req.commitment))


@app.post("/players/{player_id}/path", response_model=TransactionResponse)
async def submit_path(
    player_id: int, req: PathRequest, x_api_key: str | None = Header(default=None)
) -> TransactionResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        tx = _get_server().submit_path(player_id, [tuple(p) for p in req.path])
    return _tx_response(tx)


@app.post("/players/{player_id}/audit", response_model=TransactionResponse)
async def audit_player(
    player_id: int, req: AuditRequest, x_api_key: str | None = Header(default=None)
) -> TransactionResponse:
    _check_api_key(x_api_key)
    with _engine_errors():
        tx = _get_server().audit(player_id, req.auditor)
    return _tx_response(tx)


@app.post("/ledger/slash", response_model=TransactionResponse)
async def slash(req: SlashRequest, x_api_key: str | None = Header(default=None)) -> TransactionResponse:
    _check_api_key(x_api_key)
    tx = _get_server().slash(req.accuser, req.accused, req.reason)
    return _tx_response(tx)


@app.get("/ledger/transactions")
async def list_transactions(
    limit: int = 100, x_api_key: str | None = Header(default=None)
) -> Dict[str, List[Dict]]:
    _check_api_key(x_api_key)
    store = _get_persistence()
    return {"transactions": store.list_transactions(limit=min(max(limit, 1), 1000))}


@app.get("/game/turns", response_model=List[TurnEntry])
async def turns(
    start: int = 0, limit: int = 100, x_api_key: str | None = Header(default=None)
) -> List[TurnEntry]:
    _check_api_key(x_api_key)
    store = _get_persistence()
    return [TurnEntry(**row) for row in store.get_turns(start, min(max(limit, 1), 1000))]
