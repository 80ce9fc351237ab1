"""
Controller Tests — aiming, power charging, shot release, headless determinism.
"""

import sys
import os
import json
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import AppConfig
from controller import BilliardsController


@pytest.fixture
def ctrl():
    return BilliardsController()


class TestReset:

    def test_fresh_table(self, ctrl):
        assert len(ctrl.balls) == 16
        assert ctrl.cue_ball.color == "white"
        assert ctrl.mode == "idle"
        assert ctrl.power == 0.0

    def test_reset_restores_rack(self, ctrl):
        ctrl.balls[3].capture()
        ctrl.begin_aim()
        ctrl.step()
        ctrl.reset()

        assert all(b.in_play for b in ctrl.balls)
        assert not ctrl.aiming
        assert ctrl.power == 0.0
        assert ctrl.frame == 0

    def test_reset_racks_with_engine_ball_radius(self, ctrl):
        ctrl.engine.ball_radius = 12.0
        ctrl.reset()
        assert {b.radius for b in ctrl.balls} == {12.0}

    def test_ball_radius_param_reaches_next_rack(self, ctrl):
        ctrl.set_param("table", "ball_radius", 10.0)
        assert ctrl.engine.ball_radius == 10.0
        ctrl.reset()
        assert {b.radius for b in ctrl.balls} == {10.0}


class TestAiming:

    def test_power_charges_per_frame(self, ctrl):
        ctrl.begin_aim()
        for _ in range(10):
            ctrl.step()
        assert ctrl.mode == "aiming"
        assert ctrl.power == pytest.approx(2.0)

    def test_power_capped(self, ctrl):
        ctrl.begin_aim()
        for _ in range(200):
            ctrl.step()
        assert ctrl.power == 20.0

    def test_power_does_not_charge_when_idle(self, ctrl):
        for _ in range(5):
            ctrl.step()
        assert ctrl.power == 0.0

    def test_aim_angle_points_at_target(self, ctrl):
        cue = ctrl.cue_ball
        ctrl.begin_aim()
        ctrl.update_aim_target(cue.x, cue.y - 100.0)
        assert ctrl.aim_angle == pytest.approx(-math.pi / 2)

    def test_aim_ignored_when_not_aiming(self, ctrl):
        ctrl.update_aim_target(0.0, 0.0)
        assert ctrl.aim_angle == 0.0

    def test_aim_line_grows_with_power(self, ctrl):
        ctrl.begin_aim()
        (x1, y1), (x2, y2) = ctrl.aim_line()
        assert (x1, y1) == (200.0, 200.0)
        assert x2 == pytest.approx(250.0)
        assert y2 == pytest.approx(200.0)

        for _ in range(10):
            ctrl.step()
        _, (x2, _) = ctrl.aim_line()
        assert x2 == pytest.approx(200.0 + 50.0 + 2.0 * 5.0)

    def test_no_aim_line_when_not_aiming(self, ctrl):
        assert ctrl.aim_line() is None

    def test_custom_shot_config(self):
        config = AppConfig()
        config.shot.max_power = 5.0
        config.shot.power_rate = 1.0
        ctrl = BilliardsController(config)
        ctrl.begin_aim()
        for _ in range(10):
            ctrl.step()
        assert ctrl.power == 5.0


class TestShot:

    def test_release_launches_cue(self, ctrl):
        ctrl.begin_aim()
        ctrl.update_aim_target(500.0, 200.0)
        for _ in range(5):
            ctrl.step()
        used = ctrl.release_shot()

        assert used == pytest.approx(1.0)
        assert ctrl.power == 0.0
        assert not ctrl.aiming
        assert ctrl.cue_ball.vx == pytest.approx(1.0)
        assert ctrl.cue_ball.vy == pytest.approx(0.0, abs=1e-9)
        assert ctrl.mode == "running"

    def test_release_without_charge_does_not_move(self, ctrl):
        ctrl.begin_aim()
        ctrl.release_shot()
        assert ctrl.mode == "idle"

    def test_pocket_event_forwarded(self, ctrl):
        ctrl.balls[5].position = np.array([20.0, 20.0])
        ctrl.step()

        assert not ctrl.balls[5].in_play
        assert any(ev["type"] == "pocket" for ev in ctrl.physics_events)

    def test_live_param_reaches_engine(self, ctrl):
        ctrl.set_param("table", "friction", 0.95)
        ctrl.set_param("table", "pocket_radius", 20.0)

        assert ctrl.engine.friction == 0.95
        assert ctrl.config.table.friction == 0.95
        assert all(p.radius == 20.0 for p in ctrl.engine.pockets)


class TestSnapshot:

    def test_snapshot_contents(self, ctrl):
        snap = ctrl.snapshot()
        assert len(snap["balls"]) == 16
        assert snap["balls"][0] == {"color": "white", "x": 200.0, "y": 200.0, "in_play": True}
        assert len(snap["pockets"]) == 6
        assert snap["aim"]["line"] is None

    def test_state_json_is_valid(self, ctrl):
        ctrl.begin_aim()
        data = json.loads(ctrl.get_state_json())
        assert data["mode"] == "aiming"
        assert data["aim"]["line"][0] == [200.0, 200.0]

    def test_obs_layout(self, ctrl):
        obs = ctrl.get_obs()
        assert obs.shape == (16 * 5,)
        assert obs.dtype == np.float32
        assert obs[:5].tolist() == [200.0, 200.0, 0.0, 0.0, 1.0]


class TestHeadlessShot:
    """Headless simulation is deterministic and leaves the live table alone."""

    def test_break_hits_apex_ball(self, ctrl):
        result = ctrl.simulate_shot(0.0, 20.0)
        assert "red" in result["touched"]
        assert result["settled"]
        assert len(result["balls"]) == 16

    def test_live_table_untouched(self, ctrl):
        before = ctrl.get_obs().copy()
        ctrl.simulate_shot(0.3, 20.0)
        np.testing.assert_array_equal(ctrl.get_obs(), before)

    def test_determinism(self):
        res1 = BilliardsController().simulate_shot(0.1, 18.0)
        res2 = BilliardsController().simulate_shot(0.1, 18.0)
        assert res1 == res2

    def test_pocketed_balls_reported_off_table(self, ctrl):
        result = ctrl.simulate_shot(0.02, 20.0)
        off_table = [b["color"] for b in result["balls"] if not b["in_play"]]
        assert sorted(result["pocketed"]) == sorted(off_table)
        assert result["scratch"] == (not result["balls"][0]["in_play"])

    def test_negative_power_rejected(self, ctrl):
        with pytest.raises(ValueError):
            ctrl.simulate_shot(0.0, -1.0)
