from __future__ import annotations

import asyncio
import datetime
import functools
import os
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.staticfiles import StaticFiles
import socketio

from . import events as ev
from .board import build_board_meta
from .broadcaster import Broadcaster
from .config import Settings, load_settings
from .engine import TurnEngine
from .events import (
    Event, IntentRejected, Intent, CreateRoom, RoomIntent, JoinRoom, SetReady, JailChoice, UpgradeTile, SendMessage,
    LEGACY_INTENT_ALIASES,
)
from .models import Room, PLAYING, now_ms
from .persistence import PersistenceBridge, SnapshotRepository, make_engine
from .store import RoomStore
from .timers import TurnClock


def intent_handler(model: Type[Intent]):
    """Validate the payload into `model` and turn rejections into `{ok: False}` acks."""

    def wrap(fn: Callable[..., Awaitable[Dict[str, Any]]]):
        @functools.wraps(fn)
        async def handler(self: "GameServer", sid: str, data: Any = None) -> Dict[str, Any]:
            try:
                intent = model.model_validate(data if data is not None else {})
            except ValidationError:
                return {"ok": False, "error": ev.BAD_REQUEST}
            try:
                return await fn(self, sid, intent)
            except IntentRejected as e:
                print(f"[REJECT] {fn.__name__} sid={sid[:6]} -> {e.code}", flush=True)
                return e.to_response()
        return handler
    return wrap


class GameServer:
    """
    Socket.IO boundary around the room store and turn engine.

    Each handler validates, lets the engine mutate the room to completion,
    then publishes the produced events followed by one snapshot. There is
    no await between the first mutation and the last, so intents never
    interleave within a room.
    """

    def __init__(self, sio: Any, store: RoomStore, settings: Optional[Settings] = None,
                 persistence: Optional[PersistenceBridge] = None):
        self.sio = sio
        self.store = store
        self.engine: TurnEngine = store.engine
        self.settings = settings or Settings()
        self.persistence = persistence
        self.broadcaster = Broadcaster(sio)
        self.clock = TurnClock(self.on_turn_expired, self.settings.turn_timeout, self.settings.disconnect_grace)
        self._sweeper: Optional[asyncio.Task] = None

    # ---------------------------
    # Registration
    # ---------------------------

    def handlers(self) -> Dict[str, Callable[..., Awaitable[Any]]]:
        return {
            "createRoom": self.create_room,
            "joinRoom": self.join_room,
            "setReady": self.set_ready,
            "startGame": self.start_game,
            "restartGame": self.restart_game,
            "sendMessage": self.send_message,
            "rollDice": self.roll_dice,
            "buyTile": self.buy_tile,
            "skipBuy": self.skip_buy,
            "jailChoice": self.jail_choice,
            "cardAck": self.card_ack,
            "upgradeTile": self.upgrade_tile,
        }

    def register(self) -> None:
        table = self.handlers()
        for name, handler in table.items():
            self.sio.on(name, handler)
        for legacy, canonical in LEGACY_INTENT_ALIASES.items():
            self.sio.on(legacy, table[canonical])
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)

    # ---------------------------
    # Plumbing
    # ---------------------------

    async def publish(self, room: Room, out: List[Event], snapshot: bool = True) -> None:
        await self.broadcaster.emit(room, out, snapshot=snapshot)

    def after_mutation(self, room: Room) -> None:
        if self.persistence is not None:
            self.persistence.schedule_save(room)
        if room.code in self.store:
            self.clock.schedule(room)

    async def _game_intent(self, sid: str, intent: RoomIntent, step: Callable[[Room], List[Event]]) -> Dict[str, Any]:
        room = self.store.require(intent.roomCode)
        out = step(room)
        self.after_mutation(room)
        await self.publish(room, out)
        return {"ok": True, "phase": room.phase}

    # ---------------------------
    # Connection lifecycle
    # ---------------------------

    async def on_connect(self, sid: str, environ: Any = None, auth: Any = None) -> None:
        return None

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        for res in self.store.disconnect(sid):
            room = res.room
            if res.destroyed:
                self.clock.cancel(room.code)
                continue
            self.after_mutation(room)
            await self.publish(room, res.events, snapshot=room.status == PLAYING)

    # ---------------------------
    # Lobby intents
    # ---------------------------

    @intent_handler(CreateRoom)
    async def create_room(self, sid: str, intent: CreateRoom) -> Dict[str, Any]:
        room, out = self.store.create_room(intent.nickname, sid)
        await self.sio.enter_room(sid, room.code)
        self.after_mutation(room)
        await self.publish(room, out, snapshot=False)
        return {"ok": True, "roomCode": room.code, "room": room.roster()}

    @intent_handler(JoinRoom)
    async def join_room(self, sid: str, intent: JoinRoom) -> Dict[str, Any]:
        res = self.store.join_room(intent.roomCode, intent.nickname, sid)
        room = res.room
        if res.old_id and res.old_id != sid:
            # The superseded connection may still be open; stop it receiving room traffic
            await self.sio.leave_room(res.old_id, room.code)
        await self.sio.enter_room(sid, room.code)
        if res.events:
            self.after_mutation(room)
            await self.publish(room, res.events)
        elif room.status == PLAYING:
            await self.broadcaster.send_state(room, sid)
        return {"ok": True, "roomCode": room.code, "room": room.roster(), "playerId": sid, "rejoined": res.rejoined}

    @intent_handler(SetReady)
    async def set_ready(self, sid: str, intent: SetReady) -> Dict[str, Any]:
        room, out = self.store.set_ready(intent.roomCode, sid, intent.ready)
        self.after_mutation(room)
        await self.publish(room, out, snapshot=False)
        return {"ok": True}

    @intent_handler(RoomIntent)
    async def start_game(self, sid: str, intent: RoomIntent) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.start_game(room, sid))

    @intent_handler(RoomIntent)
    async def restart_game(self, sid: str, intent: RoomIntent) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.restart_game(room, sid))

    @intent_handler(SendMessage)
    async def send_message(self, sid: str, intent: SendMessage) -> Dict[str, Any]:
        room = self.store.require(intent.roomCode)
        player = room.player(sid)
        if player is None:
            raise IntentRejected(ev.NOT_IN_ROOM)
        stamp = datetime.datetime.now(datetime.timezone.utc).isoformat()
        msg = ev.ChatMessage(nickname=player.nickname, message=intent.message, timestamp=stamp)
        await self.publish(room, [msg], snapshot=False)
        return {"ok": True}

    # ---------------------------
    # Turn intents
    # ---------------------------

    @intent_handler(RoomIntent)
    async def roll_dice(self, sid: str, intent: RoomIntent) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.roll(room, sid))

    @intent_handler(RoomIntent)
    async def buy_tile(self, sid: str, intent: RoomIntent) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.buy(room, sid))

    @intent_handler(RoomIntent)
    async def skip_buy(self, sid: str, intent: RoomIntent) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.skip_buy(room, sid))

    @intent_handler(JailChoice)
    async def jail_choice(self, sid: str, intent: JailChoice) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.jail_choice(room, sid, intent.pay))

    @intent_handler(RoomIntent)
    async def card_ack(self, sid: str, intent: RoomIntent) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.card_ack(room, sid))

    @intent_handler(UpgradeTile)
    async def upgrade_tile(self, sid: str, intent: UpgradeTile) -> Dict[str, Any]:
        return await self._game_intent(sid, intent, lambda room: self.engine.upgrade(room, sid, intent.tileId))

    # ---------------------------
    # Background work
    # ---------------------------

    async def on_turn_expired(self, code: str, serial: int) -> None:
        room = self.store.rooms.get(code)
        if room is None or room.serial != serial:
            return
        print(f"[TURN_TIMEOUT] {code} phase={room.phase}", flush=True)
        out = self.engine.expire_turn(room)
        self.after_mutation(room)
        await self.publish(room, out)

    async def sweep_idle_rooms(self) -> List[str]:
        ttl_ms = int(self.settings.idle_room_ttl * 1000)
        codes = self.store.idle_rooms(now_ms(), ttl_ms)
        for code in codes:
            self.clock.cancel(code)
            self.store.remove(code)
            print(f"[SWEEP] Evicted idle room {code}", flush=True)
        return codes

    def start_sweeper(self) -> None:
        if self._sweeper and not self._sweeper.done():
            return

        async def _loop():
            try:
                while True:
                    await asyncio.sleep(self.settings.sweep_interval)
                    await self.sweep_idle_rooms()
            except asyncio.CancelledError:
                pass
        self._sweeper = asyncio.create_task(_loop())

    async def shutdown(self) -> None:
        if self._sweeper and not self._sweeper.done():
            self._sweeper.cancel()
        self.clock.cancel_all()
        if self.persistence is not None:
            await self.persistence.flush()


def create_server(settings: Settings, sio: Optional[Any] = None) -> GameServer:
    if sio is None:
        sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=settings.allowed_origins if settings.allowed_origins != ["*"] else "*",
            ping_timeout=25,
            ping_interval=20,
            engineio_logger=False,
        )
    persistence = None
    if settings.persistence_enabled:
        repo = SnapshotRepository(make_engine(settings.database_url))
        persistence = PersistenceBridge(repo, debounce=settings.persist_debounce)
    store = RoomStore(TurnEngine(), persistence=persistence)
    server = GameServer(sio, store, settings=settings, persistence=persistence)
    server.register()
    return server


# ---------------------------
# Server setup
# ---------------------------

settings = load_settings()
server = create_server(settings)
sio = server.sio


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if server.persistence is not None:
        try:
            server.persistence.repo.create_tables()
        except SQLAlchemyError as e:
            print(f"[PERSIST_ERROR] could not create tables: {e}", flush=True)
    server.start_sweeper()
    print("[SERVER] Monopolista server is running", flush=True)
    yield
    await server.shutdown()


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
asgi = socketio.ASGIApp(sio, other_asgi_app=app)


@app.get("/healthz")
async def healthz():
    return JSONResponse({"ok": True})


@app.get("/board_meta")
async def board_meta():
    return JSONResponse({"tiles": build_board_meta()})


@app.get("/rooms/{room_code}")
async def room_state(room_code: str):
    room = server.store.rooms.get(room_code.upper())
    if room is None:
        return JSONResponse({"error": ev.ROOM_NOT_FOUND}, status_code=404)
    return JSONResponse(room.public_state())


# Optionally serve the built client if directory is present
if settings.static_dir and os.path.isdir(settings.static_dir):
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")


# To run:
#   uvicorn monopolista.main:asgi --host 0.0.0.0 --port 4000
