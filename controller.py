"""
BilliardsController — Layer 2 (Shot Input & Frame Loop)

Owns the simulation context, aim state and shot power.
Layer 3 (server.py WebSocket loop or main.py Ursina viewer) calls:
  ctrl.begin_aim()              — pointer down
  ctrl.update_aim_target(x, y)  — pointer move, table coordinates
  ctrl.release_shot()           — pointer up, launches the cue ball
  ctrl.step()                   — advance one frame
  ctrl.physics_events           — collision/pocket dicts for sounds
  ctrl.snapshot()               — read-only view for drawing
"""

import json
import logging
import math
from dataclasses import asdict, replace
from typing import Optional

import numpy as np

from config import AppConfig
from physics import PhysicsEngine, Ball
from table_setup import build_table

logger = logging.getLogger(__name__)


def _copy_ball(b: Ball) -> Ball:
    return Ball(b.color, position=b.position.copy(), velocity=b.velocity.copy(),
                radius=b.radius, state=b.state)


class BilliardsController:
    """Layer 2: aim/power state + physics orchestration."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or AppConfig()
        self.engine = self._make_engine()

        # Aiming
        self.aiming = False
        self.aim_angle = 0.0
        self.power = 0.0

        self.frame = 0
        self.physics_events: list[dict] = []
        self.reset()

    def _make_engine(self, balls=None) -> PhysicsEngine:
        return PhysicsEngine(balls=balls, **asdict(self.config.table))

    # ──────────────────────────────────────────────────────────────────────────
    # Ball management
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def balls(self) -> list[Ball]:
        return self.engine.balls

    @property
    def cue_ball(self) -> Optional[Ball]:
        return self.engine.cue_ball

    def reset(self) -> None:
        """Rack a fresh table and clear aim, power and events."""
        engine, rack = self.engine, self.config.rack
        engine.balls = build_table(
            engine.table_width, engine.table_height, engine.ball_radius,
            cue_x=rack.cue_x, rows=rack.rows, apex_offset=rack.apex_offset,
        )
        self.engine.events.clear()
        self.aiming = False
        self.aim_angle = 0.0
        self.power = 0.0
        self.frame = 0
        self.physics_events.clear()
        logger.info("Table reset with %d balls", len(self.engine.balls))

    def set_param(self, section: str, attr: str, value) -> None:
        """Live-edit a config value; table values also reach the running engine."""
        setattr(getattr(self.config, section), attr, value)
        if section == "table" and hasattr(self.engine, attr):
            setattr(self.engine, attr, value)
        if attr == "pocket_radius":
            self.engine.pockets = [replace(p, radius=value) for p in self.engine.pockets]

    @property
    def mode(self) -> str:
        if self.aiming:
            return "aiming"
        if not self.engine.is_settled():
            return "running"
        return "idle"

    # ──────────────────────────────────────────────────────────────────────────
    # Aiming / shooting
    # ──────────────────────────────────────────────────────────────────────────

    def begin_aim(self) -> None:
        self.aiming = True

    def update_aim_target(self, x: float, y: float) -> None:
        """Point the cue from the cue ball toward (x, y) while aiming."""
        cue = self.cue_ball
        if not self.aiming or cue is None:
            return
        self.aim_angle = math.atan2(y - cue.y, x - cue.x)

    def release_shot(self) -> float:
        """Launch the cue ball with the charged power. Returns the power used."""
        self.aiming = False
        power = self.power
        self.engine.launch(self.aim_angle, power)
        self.power = 0.0
        logger.debug("Shot released: angle=%.3f rad power=%.1f", self.aim_angle, power)
        return power

    def aim_line(self) -> Optional[tuple]:
        """Aim guide ((x1, y1), (x2, y2)) from the cue ball, or None."""
        cue = self.cue_ball
        if not self.aiming or cue is None or not cue.in_play:
            return None
        shot = self.config.shot
        length = shot.aim_line_base + self.power * shot.aim_line_scale
        end = (cue.x + math.cos(self.aim_angle) * length,
               cue.y + math.sin(self.aim_angle) * length)
        return (cue.x, cue.y), end

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self) -> None:
        """Advance physics one frame and charge power while aiming."""
        self.engine.update()
        self.physics_events = list(self.engine.events)
        for ev in self.physics_events:
            if ev["type"] == "pocket":
                logger.info("%s ball pocketed", ev["ball"])

        if self.aiming:
            shot = self.config.shot
            self.power = min(shot.max_power, self.power + shot.power_rate)
        self.frame += 1

    # ──────────────────────────────────────────────────────────────────────────
    # Read-only views
    # ──────────────────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        """Drawing state: balls (captured ones flagged), pockets and aim."""
        line = self.aim_line()
        return {
            "frame": self.frame,
            "mode": self.mode,
            "balls": [
                {"color": b.color,
                 "x": round(b.x, 3), "y": round(b.y, 3),
                 "in_play": b.in_play}
                for b in self.balls
            ],
            "pockets": [{"x": p.x, "y": p.y, "r": p.radius}
                        for p in self.engine.pockets],
            "aim": {
                "aiming": self.aiming,
                "angle": round(self.aim_angle, 4),
                "power": round(self.power, 3),
                "line": [list(line[0]), list(line[1])] if line else None,
            },
        }

    def get_state_json(self) -> str:
        return json.dumps(self.snapshot(), indent=2)

    # ──────────────────────────────────────────────────────────────────────────
    # Headless simulation
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_shot(self, angle: float, power: float,
                      max_frames: int = 5000) -> dict:
        """
        Simulate a shot from the current table without touching it.

        Args:
            angle: Shot direction in radians (table space, y down).
            power: Initial cue ball speed per frame.
            max_frames: Frame cap for the run.

        Returns:
            dict with:
                frames        int  frames simulated
                settled       bool all balls stopped before the cap
                pocketed      list of colors captured, in capture order
                scratch       bool cue ball captured
                cushion_hits  int  cue ball cushion reflections
                touched       list of colors the cue ball contacted, sorted
                balls         list of {"color", "pos", "vel", "in_play"}

        Raises:
            ValueError: power is negative.
        """
        if power < 0:
            raise ValueError(f"simulate_shot: power must be >= 0, got {power}")

        balls = [_copy_ball(b) for b in self.balls]
        eng = self._make_engine(balls)
        eng.launch(angle, power)

        cue = balls[0] if balls else None
        cue_color = cue.color if cue is not None else None
        pocketed: list[str] = []
        touched: set = set()
        cushion_hits = 0
        frames = 0

        while frames < max_frames:
            eng.update()
            frames += 1
            for ev in eng.events:
                if ev["type"] == "pocket":
                    pocketed.append(ev["ball"])
                elif ev["type"] == "cushion" and ev["ball"] == cue_color:
                    cushion_hits += 1
                elif ev["type"] == "ball_ball":
                    if ev["ball1"] == cue_color:
                        touched.add(ev["ball2"])
                    elif ev["ball2"] == cue_color:
                        touched.add(ev["ball1"])
            if eng.is_settled():
                break

        return {
            "frames": frames,
            "settled": eng.is_settled(),
            "pocketed": pocketed,
            "scratch": cue is not None and not cue.in_play,
            "cushion_hits": cushion_hits,
            "touched": sorted(touched),
            "balls": [
                {"color": b.color,
                 "pos": [round(b.x, 6), round(b.y, 6)],
                 "vel": [round(b.vx, 6), round(b.vy, 6)],
                 "in_play": b.in_play}
                for b in balls
            ],
        }

    def get_obs(self) -> np.ndarray:
        """Flat [x, y, vx, vy, in_play] per ball, cue ball first."""
        return np.array(
            [[b.x, b.y, b.vx, b.vy, 1.0 if b.in_play else 0.0] for b in self.balls],
            dtype=np.float32,
        ).reshape(-1)
