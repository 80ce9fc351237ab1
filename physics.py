"""
2D Canvas Billiards Physics Engine
Ball motion, cushion reflection, pocket capture, ball-ball collision.
"""

import enum
import logging
import math
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Constants (table units = canvas pixels, time = frames)
# ──────────────────────────────────────────────
BALL_RADIUS: float = 15.0
POCKET_RADIUS: float = 35.0
FRICTION: float = 0.98  # velocity multiplier per frame
STOP_SPEED: float = 0.1  # per-component snap-to-zero threshold

# Table dimensions (canvas size)
TABLE_WIDTH: float = 800.0
TABLE_HEIGHT: float = 400.0


class BallState(enum.Enum):
    ACTIVE = 0
    CAPTURED = 1


@dataclass
class Ball:
    """Billiard ball on a 2D table. y grows downward like a canvas."""
    color: str
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    radius: float = BALL_RADIUS
    state: BallState = BallState.ACTIVE

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)

    @property
    def x(self) -> float:
        return float(self.position[0])

    @property
    def y(self) -> float:
        return float(self.position[1])

    @property
    def vx(self) -> float:
        return float(self.velocity[0])

    @property
    def vy(self) -> float:
        return float(self.velocity[1])

    @property
    def in_play(self) -> bool:
        return self.state == BallState.ACTIVE

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def is_moving(self) -> bool:
        return self.in_play and bool(np.any(self.velocity != 0.0))

    def capture(self) -> None:
        """Take the ball off the table. Terminal."""
        self.state = BallState.CAPTURED
        self.velocity[:] = 0.0


@dataclass(frozen=True)
class Pocket:
    x: float
    y: float
    radius: float = POCKET_RADIUS

    def contains(self, ball: Ball) -> bool:
        return math.hypot(ball.x - self.x, ball.y - self.y) < self.radius


def default_pockets(width: float, height: float,
                    radius: float = POCKET_RADIUS) -> List[Pocket]:
    """Four corners plus the midpoints of the two long edges."""
    return [
        Pocket(0.0, 0.0, radius),
        Pocket(width / 2, 0.0, radius),
        Pocket(width, 0.0, radius),
        Pocket(0.0, height, radius),
        Pocket(width / 2, height, radius),
        Pocket(width, height, radius),
    ]


def _rotation(angle: float) -> np.ndarray:
    """Matrix rotating a vector by -angle (world -> contact frame)."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, s],
                     [-s, c]])


class PhysicsEngine:
    """Simulation context: table configuration, pockets and the ball collection."""

    def __init__(self, table_width: float = TABLE_WIDTH,
                 table_height: float = TABLE_HEIGHT,
                 ball_radius: float = BALL_RADIUS,
                 pocket_radius: float = POCKET_RADIUS,
                 friction: float = FRICTION,
                 stop_speed: float = STOP_SPEED,
                 balls: Optional[List[Ball]] = None,
                 pockets: Optional[List[Pocket]] = None):
        if table_width <= 0 or table_height <= 0:
            raise ValueError(f"table size must be positive, got {table_width}x{table_height}")
        if ball_radius <= 0 or pocket_radius <= 0:
            raise ValueError("ball and pocket radius must be positive")
        if not 0.0 < friction <= 1.0:
            raise ValueError(f"friction must be in (0, 1], got {friction}")

        self.table_width = table_width
        self.table_height = table_height
        self.ball_radius = ball_radius
        self.pocket_radius = pocket_radius
        self.friction = friction
        self.stop_speed = stop_speed
        self.balls: List[Ball] = list(balls) if balls is not None else []
        self.pockets: List[Pocket] = (list(pockets) if pockets is not None else
                                      default_pockets(table_width, table_height, pocket_radius))
        self.events: list = []

    @property
    def cue_ball(self) -> Optional[Ball]:
        return self.balls[0] if self.balls else None

    def active_balls(self) -> List[Ball]:
        return [b for b in self.balls if b.in_play]

    # ──────────────────────────────────────────
    # Shot
    # ──────────────────────────────────────────
    def launch(self, angle: float, power: float) -> None:
        """Set the cue ball velocity to power along angle (radians)."""
        cue = self.cue_ball
        if cue is None or not cue.in_play:
            return
        cue.velocity = np.array([math.cos(angle) * power, math.sin(angle) * power])

    # ──────────────────────────────────────────
    # Ball State & Motion
    # ──────────────────────────────────────────
    def advance(self, ball: Ball) -> None:
        """Advance one frame: move, drag, stop snap, cushions, pockets."""
        if not ball.in_play:
            return

        ball.position = ball.position + ball.velocity

        ball.velocity = ball.velocity * self.friction
        ball.velocity[np.abs(ball.velocity) < self.stop_speed] = 0.0

        self._check_cushions(ball)
        self._check_pockets(ball)

    def _check_cushions(self, ball: Ball) -> None:
        # Reflection at detection time; the ball is clamped, not rewound.
        r = ball.radius
        limits = (self.table_width, self.table_height)
        for axis, limit in enumerate(limits):
            p = ball.position[axis]
            if p - r < 0 or p + r > limit:
                impact_speed = abs(float(ball.velocity[axis]))
                ball.velocity[axis] = -ball.velocity[axis]
                ball.position[axis] = max(r, min(p, limit - r))
                self.events.append({
                    "type": "cushion", "ball": ball.color,
                    "axis": "xy"[axis], "speed": impact_speed,
                })

    def _check_pockets(self, ball: Ball) -> None:
        for index, pocket in enumerate(self.pockets):
            if pocket.contains(ball):
                ball.capture()
                logger.debug("%s ball captured by pocket %d at (%.1f, %.1f)",
                             ball.color, index, ball.x, ball.y)
                self.events.append({"type": "pocket", "ball": ball.color, "pocket": index})
                return

    # ──────────────────────────────────────────
    # Ball-Ball Collision
    # ──────────────────────────────────────────
    def resolve_pair(self, a: Ball, b: Ball) -> bool:
        """
        Resolve an equal-mass elastic collision between two overlapping balls.

        Velocities are rotated into the contact frame, their normal components
        exchanged, and rotated back. The pair is then pushed apart along the
        contact normal so the balls just touch. Returns True if they were in
        contact.
        """
        if not a.in_play or not b.in_play:
            return False

        dx, dy = a.position - b.position
        distance = math.hypot(dx, dy)
        contact = a.radius + b.radius
        if not distance < contact:
            return False

        # atan2(0, 0) == 0: coincident centers separate along +x.
        angle = math.atan2(dy, dx)
        rot = _rotation(angle)

        u1 = rot @ a.velocity
        u2 = rot @ b.velocity
        u1[0], u2[0] = u2[0], u1[0]

        rel_speed = float(np.linalg.norm(a.velocity - b.velocity))
        a.velocity = rot.T @ u1
        b.velocity = rot.T @ u2

        overlap = contact - distance
        normal = np.array([math.cos(angle), math.sin(angle)])
        a.position = a.position + normal * (overlap / 2)
        b.position = b.position - normal * (overlap / 2)

        self.events.append({
            "type": "ball_ball", "ball1": a.color, "ball2": b.color,
            "speed": rel_speed,
        })
        return True

    # ──────────────────────────────────────────
    # Main Update Loop
    # ──────────────────────────────────────────
    def advance_all(self) -> None:
        for ball in self.balls:
            self.advance(ball)

    def resolve_all_collisions(self) -> None:
        # Sequential, single pass: multi-ball contacts are order dependent.
        balls = self.balls
        for i in range(len(balls)):
            for j in range(i + 1, len(balls)):
                self.resolve_pair(balls[i], balls[j])

    def update(self) -> None:
        """Advance the simulation by one frame."""
        self.events.clear()
        self.advance_all()
        self.resolve_all_collisions()

    def is_settled(self) -> bool:
        return not any(b.is_moving() for b in self.balls)

    def simulate(self, max_frames: int = 5000) -> int:
        """
        Run frames until every ball stops or max_frames is reached.

        Returns:
            Number of frames run.
        """
        frames = 0
        while frames < max_frames:
            self.update()
            frames += 1
            if self.is_settled():
                break
        return frames
