"""
Table setup: cue ball placement and the triangular object-ball rack.
"""

import math
from typing import List

from physics import Ball, BALL_RADIUS, TABLE_WIDTH, TABLE_HEIGHT

RACK_COLORS = [
    "red",
    "blue",
    "yellow",
    "green",
    "orange",
    "purple",
    "pink",
    "brown",
    "cyan",
    "lime",
]

CUE_COLOR = "white"
CUE_X: float = 200.0
APEX_OFFSET: float = 150.0  # apex distance from the foot rail
RACK_ROWS: int = 5


def build_cue_ball(table_height: float = TABLE_HEIGHT, cue_x: float = CUE_X,
                   radius: float = BALL_RADIUS) -> Ball:
    return Ball(CUE_COLOR, position=[cue_x, table_height / 2], radius=radius)


def build_rack(table_width: float = TABLE_WIDTH, table_height: float = TABLE_HEIGHT,
               radius: float = BALL_RADIUS, rows: int = RACK_ROWS,
               apex_offset: float = APEX_OFFSET) -> List[Ball]:
    """Triangle opening toward the foot rail, apex facing the cue ball.

    Rows are spaced 2r·cos(30°) apart so neighbouring balls just touch.
    Colors cycle through RACK_COLORS.
    """
    apex_x = table_width - apex_offset
    apex_y = table_height / 2
    row_step = radius * 2 * math.cos(math.pi / 6)

    balls = []
    index = 0
    for row in range(rows):
        for col in range(row + 1):
            x = apex_x + row * row_step
            y = apex_y - row * radius + col * (radius * 2)
            balls.append(Ball(RACK_COLORS[index % len(RACK_COLORS)],
                              position=[x, y], radius=radius))
            index += 1
    return balls


def build_table(table_width: float = TABLE_WIDTH, table_height: float = TABLE_HEIGHT,
                radius: float = BALL_RADIUS, cue_x: float = CUE_X,
                rows: int = RACK_ROWS, apex_offset: float = APEX_OFFSET) -> List[Ball]:
    """Cue ball at index 0 followed by the rack."""
    return [build_cue_ball(table_height, cue_x, radius)] + build_rack(
        table_width, table_height, radius, rows, apex_offset)
