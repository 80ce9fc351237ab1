"""
Canvas Billiards Web Server — Layer 3 (FastAPI + WebSocket)

Serves the canvas frontend and runs the frame loop,
streaming ball state to browser clients over WebSocket.
"""

import asyncio
import json
import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from config import AppConfig, load_config
from controller import BilliardsController
from table_setup import CUE_COLOR, RACK_COLORS

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"

# ── Controller ──────────────────────────────────────────────────────────────

config: AppConfig = load_config()
ctrl = BilliardsController(config)


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

clients: list[WebSocket] = []

# ── Live-tunable params: (section, attr, label, min, max, step) ─────────────

PHYSICS_PARAMS = [
    ("table", "friction",       "Friction",      0.90, 1.0,  0.001),
    ("table", "stop_speed",     "Stop Speed",    0.0,  1.0,  0.01),
    ("table", "pocket_radius",  "Pocket Radius", 10.0, 60.0, 1.0),
    ("shot",  "max_power",      "Max Power",     1.0,  40.0, 0.5),
    ("shot",  "power_rate",     "Power Rate",    0.01, 1.0,  0.01),
]

PARAM_DEFAULTS = {(section, attr): getattr(getattr(config, section), attr)
                  for section, attr, *_ in PHYSICS_PARAMS}


# ── Async frame loop ────────────────────────────────────────────────────────

async def game_loop():
    """Main frame loop: one physics step per frame at config.server.fps."""
    frame_dt = 1.0 / config.server.fps
    while True:
        now = time.perf_counter()

        ctrl.step()

        if clients:
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception as exc:
                    logger.info("Send failed (%s), dropping client", exc)
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)
                    logger.info("Dropped client, %d remaining", len(clients))

        elapsed = time.perf_counter() - now
        sleep_time = frame_dt - elapsed
        await asyncio.sleep(sleep_time if sleep_time > 0 else 0)


def _build_frame_message() -> str:
    """Serialize current state into a compact JSON frame message."""
    balls_data = [
        [round(b.x, 2), round(b.y, 2), 1 if b.in_play else 0]
        for b in ctrl.balls
    ]
    line = ctrl.aim_line()
    sounds = [
        {"type": ev["type"], "speed": round(float(ev.get("speed", 0.0)), 3)}
        for ev in ctrl.physics_events
    ]
    frame = {
        "type": "frame",
        "frame": ctrl.frame,
        "balls": balls_data,
        "aim": [[round(v, 2) for v in line[0]], [round(v, 2) for v in line[1]]] if line else None,
        "power": round(ctrl.power, 3),
        "mode": ctrl.mode,
        "sounds": sounds,
    }
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    table = config.table
    return json.dumps({
        "type": "init",
        "table_width": table.table_width,
        "table_height": table.table_height,
        "ball_radius": table.ball_radius,
        "pocket_radius": table.pocket_radius,
        "pockets": [[p.x, p.y] for p in ctrl.engine.pockets],
        "colors": [b.color for b in ctrl.balls],
        "cue_color": CUE_COLOR,
        "rack_colors": RACK_COLORS,
        "fps": config.server.fps,
    })


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all tunable params with current values."""
    result = []
    for section, attr, label, mn, mx, step in PHYSICS_PARAMS:
        result.append({
            "section": section, "attr": attr, "label": label,
            "value": round(getattr(getattr(config, section), attr), 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def _adjust_param(index: int, direction: int, fine: bool) -> Optional[float]:
    if not 0 <= index < len(PHYSICS_PARAMS):
        return None
    section, attr, label, mn, mx, step = PHYSICS_PARAMS[index]
    s = step / 10.0 if fine else step
    cur = getattr(getattr(config, section), attr)
    new_val = max(mn, min(mx, cur + direction * s))
    ctrl.set_param(section, attr, new_val)
    logger.info("Param %s.%s -> %s", section, attr, new_val)
    return new_val


def _reset_params() -> None:
    for (section, attr), dflt in PARAM_DEFAULTS.items():
        ctrl.set_param(section, attr, dflt)


# ── WebSocket endpoint ──────────────────────────────────────────────────────

async def _handle_message(ws: WebSocket, msg: dict) -> None:
    cmd = msg.get("cmd", "")
    if cmd == "pointer_down":
        ctrl.begin_aim()
    elif cmd == "pointer_move":
        x, y = float(msg["x"]), float(msg["y"])
        if not (math.isfinite(x) and math.isfinite(y)):
            raise ValueError(f"non-finite pointer ({x}, {y})")
        ctrl.update_aim_target(x, y)
    elif cmd == "pointer_up":
        ctrl.release_shot()
    elif cmd == "reset":
        ctrl.reset()
    elif cmd == "get_state":
        await ws.send_text(json.dumps({"type": "state_json", "data": ctrl.snapshot()}))
    elif cmd == "get_params":
        await ws.send_text(json.dumps({"type": "params", "data": _get_params_data()}))
    elif cmd == "adjust_param":
        idx = int(msg.get("index", 0))
        new_val = _adjust_param(idx, int(msg.get("direction", 0)), bool(msg.get("fine", False)))
        if new_val is not None:
            await ws.send_text(json.dumps({
                "type": "param_update", "index": idx, "value": round(new_val, 6),
            }))
    elif cmd == "reset_params":
        _reset_params()
        await ws.send_text(json.dumps({"type": "params", "data": _get_params_data()}))
    else:
        logger.warning("Unknown command %r", cmd)


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    logger.info("Client connected, %d total", len(clients))

    await ws.send_text(_build_init_message())

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed message: %.80s", data)
                continue
            if not isinstance(msg, dict):
                logger.warning("Ignoring non-object message: %.80s", data)
                continue
            try:
                await _handle_message(ws, msg)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Bad %s command: %s", msg.get("cmd"), exc)
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        # A client that drops mid-aim must not leave the cue charging.
        ctrl.aiming = False
        logger.info("Client disconnected, %d remaining", len(clients))


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


@app.get("/config")
async def get_config():
    return asdict(config)


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("server:app", host=config.server.host, port=config.server.port, reload=False)
