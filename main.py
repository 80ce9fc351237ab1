"""
2D Canvas Billiards Viewer (3-Tier Architecture)
Layer 3: Ursina rendering / input handling.
Layer 2: controller.py (BilliardsController)
Layer 1: physics.py (PhysicsEngine)

Hold the left mouse button to charge power, aim with the mouse, release to shoot.
R to re-rack.
"""

import logging
import tempfile
import wave
from pathlib import Path
import numpy as np
from ursina import (
    Ursina, Entity, Text, camera, color, window,
    Vec3, mouse, Audio, Mesh, destroy,
)

from config import load_config
from controller import BilliardsController

logger = logging.getLogger(__name__)

# ── Layer 2: controller instance ──────────────────────────────────────────────
config = load_config()
ctrl = BilliardsController(config)

TABLE_W = config.table.table_width
TABLE_H = config.table.table_height

# Canvas color names used by the rack
CSS_COLORS = {
    "white":  "#ffffff",
    "red":    "#ff0000",
    "blue":   "#0000ff",
    "yellow": "#ffff00",
    "green":  "#008000",
    "orange": "#ffa500",
    "purple": "#800080",
    "pink":   "#ffc0cb",
    "brown":  "#a52a2a",
    "cyan":   "#00ffff",
    "lime":   "#00ff00",
}


# ──────────────────────────────────────────
# Synthesized Sound Effects (numpy + wave)
# ──────────────────────────────────────────

_sound_dir = tempfile.mkdtemp(prefix="canvas_billiards_snd_")

SAMPLE_RATE = 22050


def _write_wav(name, samples):
    """Mono 16-bit WAV in the temp sound dir."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    path = Path(_sound_dir) / name
    with wave.open(str(path), "wb") as wf:
        wf.setparams((1, 2, SAMPLE_RATE, len(pcm), "NONE", "not compressed"))
        wf.writeframes(pcm.tobytes())
    return path


def _decay_tone(name, freq, seconds, decay, gain, noise=0.0, wobble=0.0):
    """Exponentially decaying sine, optionally roughened with noise or a slow wobble."""
    t = np.arange(int(SAMPLE_RATE * seconds)) / SAMPLE_RATE
    body = np.sin(2 * np.pi * freq * t)
    if noise:
        body = (1 - noise) * body + noise * np.random.default_rng(7).uniform(-1, 1, t.size)
    if wobble:
        body *= 1 + 0.3 * np.sin(2 * np.pi * wobble * t)
    return _write_wav(name, gain * np.exp(-decay * t) * body)


# ball-ball: short bright clack
def _synth_click():
    return _decay_tone("clack.wav", 1800, 0.05, 90, 0.9, noise=0.35)


# cushion: dull rubber thump
def _synth_cushion():
    return _decay_tone("thump.wav", 180, 0.12, 35, 0.6, noise=0.1)


# pocket: low rattle as the ball drops
def _synth_pocket():
    return _decay_tone("drop.wav", 140, 0.25, 18, 0.7, wobble=30)


# ──────────────────────────────────────────
# Ursina App
# ──────────────────────────────────────────

app = Ursina(borderless=False, title="Canvas Billiards", size=(1280, 720))
window.color = color.hex("#222222")

# Table space (y down, origin top-left) -> camera.ui space (y up, origin center).
# UI height is 1 unit; width is window.aspect_ratio units.
SCALE = min(0.9 * window.aspect_ratio / TABLE_W, 0.85 / TABLE_H)


def to_ui(x, y, z=0.0):
    return Vec3((x - TABLE_W / 2) * SCALE, (TABLE_H / 2 - y) * SCALE, z)


def to_table(ui_x, ui_y):
    return ui_x / SCALE + TABLE_W / 2, TABLE_H / 2 - ui_y / SCALE


# ── Table ─────────────────────────────────
RAIL = 12.0
Entity(parent=camera.ui, model="quad", color=color.hex("#5b3a1a"),
       scale=((TABLE_W + 2 * RAIL) * SCALE, (TABLE_H + 2 * RAIL) * SCALE),
       position=to_ui(TABLE_W / 2, TABLE_H / 2, 0.3))
Entity(parent=camera.ui, model="quad", color=color.hex("#0a6c2f"),
       scale=(TABLE_W * SCALE, TABLE_H * SCALE),
       position=to_ui(TABLE_W / 2, TABLE_H / 2, 0.2))

pocket_entities: list[Entity] = []
ball_entities: list[Entity] = []
aim_line_entity = None

info_text = Text(
    text="Hold left mouse to charge, release to shoot.  [R] Re-rack",
    position=(-0.85, 0.48), scale=1.0, color=color.white,
)
status_text = Text(text="", position=(-0.85, -0.44), scale=1.0, color=color.light_gray)


def _build_pockets():
    for ent in pocket_entities:
        destroy(ent)
    pocket_entities.clear()
    for p in ctrl.engine.pockets:
        pocket_entities.append(Entity(
            parent=camera.ui, model="circle", color=color.black,
            scale=2 * p.radius * SCALE, position=to_ui(p.x, p.y, 0.1),
        ))


def _spawn_balls():
    """(Re)create one entity per ball, in collection order."""
    for ent in ball_entities:
        destroy(ent)
    ball_entities.clear()
    for b in ctrl.balls:
        ball_entities.append(Entity(
            parent=camera.ui, model="circle",
            color=color.hex(CSS_COLORS.get(b.color, "#808080")),
            scale=2 * b.radius * SCALE, position=to_ui(b.x, b.y),
        ))


def _sync_balls():
    for ent, b in zip(ball_entities, ctrl.balls):
        ent.enabled = b.in_play
        if b.in_play:
            ent.position = to_ui(b.x, b.y)


def _update_aim_line():
    global aim_line_entity
    if aim_line_entity is not None:
        destroy(aim_line_entity)
        aim_line_entity = None
    line = ctrl.aim_line()
    if line is None:
        return
    (x1, y1), (x2, y2) = line
    aim_line_entity = Entity(
        parent=camera.ui,
        model=Mesh(vertices=[to_ui(x1, y1, -0.1), to_ui(x2, y2, -0.1)],
                   mode="line", thickness=2),
        color=color.white,
    )


# ── Sound playback ────────────────────────────────────────────────────────────
snd_click = None
snd_cushion = None
snd_pocket = None
_sounds_loaded = False


def _load_sounds():
    global snd_click, snd_cushion, snd_pocket, _sounds_loaded
    if _sounds_loaded:
        return
    _sounds_loaded = True
    try:
        snd_click   = Audio(_synth_click(),   autoplay=False)
        snd_cushion = Audio(_synth_cushion(), autoplay=False)
        snd_pocket  = Audio(_synth_pocket(),  autoplay=False)
    except (OSError, RuntimeError) as exc:
        logger.warning("Sound disabled: %s", exc)


def _play_collision_sounds(events):
    for evt in events:
        if evt["type"] == "pocket":
            if snd_pocket:
                snd_pocket.play()
            continue
        vol = min(1.0, evt["speed"] / 10.0)
        if vol < 0.05:
            continue
        if evt["type"] == "ball_ball" and snd_click:
            snd_click.volume = vol
            snd_click.play()
        elif evt["type"] == "cushion" and snd_cushion:
            snd_cushion.volume = vol * 0.7
            snd_cushion.play()


# ──────────────────────────────────────────
# Input handler
# ──────────────────────────────────────────

def input(key):
    if key == "left mouse down":
        ctrl.begin_aim()
    elif key == "left mouse up":
        ctrl.release_shot()
    elif key == "r":
        ctrl.reset()
        _spawn_balls()


# ──────────────────────────────────────────
# Update loop
# ──────────────────────────────────────────

def update():
    _load_sounds()

    if ctrl.aiming and mouse.position is not None:
        ctrl.update_aim_target(*to_table(mouse.position[0], mouse.position[1]))

    # One physics frame per rendered frame.
    ctrl.step()

    _play_collision_sounds(ctrl.physics_events)
    _sync_balls()
    _update_aim_line()

    in_play = len(ctrl.engine.active_balls())
    status_text.text = (
        f"Mode: {ctrl.mode}   Power: {ctrl.power:4.1f}/{config.shot.max_power:.0f}"
        f"   Balls on table: {in_play}/{len(ctrl.balls)}"
    )


_build_pockets()
_spawn_balls()


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run()
