"""
Server Tests — WebSocket command handling without the frame loop.

TestClient is used without its context manager so the lifespan frame loop
never starts; every frame is driven explicitly.
"""

import sys
import os
import json
import math
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

import server


@pytest.fixture
def client():
    server._reset_params()
    server.ctrl.reset()
    return TestClient(server.app)


def _state(ws) -> dict:
    ws.send_json({"cmd": "get_state"})
    msg = ws.receive_json()
    assert msg["type"] == "state_json"
    return msg["data"]


class TestInit:

    def test_init_message(self, client):
        with client.websocket_connect("/ws") as ws:
            init = ws.receive_json()
        assert init["type"] == "init"
        assert init["table_width"] == 800.0
        assert init["table_height"] == 400.0
        assert init["ball_radius"] == 15.0
        assert len(init["pockets"]) == 6
        assert init["colors"][0] == "white"
        assert len(init["colors"]) == 16

    def test_index_page(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "billiardCanvas" in resp.text

    def test_config_endpoint(self, client):
        data = client.get("/config").json()
        assert data["table"]["friction"] == pytest.approx(0.98)


class TestPointerCommands:

    def test_aim_and_release(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "pointer_down"})
            ws.send_json({"cmd": "pointer_move", "x": 500, "y": 200})
            state = _state(ws)
            assert state["mode"] == "aiming"
            assert state["aim"]["angle"] == pytest.approx(0.0)

            server.ctrl.power = 10.0
            ws.send_json({"cmd": "pointer_up"})
            state = _state(ws)
            assert state["mode"] == "running"
            assert server.ctrl.cue_ball.vx == pytest.approx(10.0)

    def test_reset_command(self, client):
        server.ctrl.balls[4].capture()
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "reset"})
            state = _state(ws)
        assert all(b["in_play"] for b in state["balls"])

    def test_malformed_messages_ignored(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            ws.send_text("[1, 2]")
            ws.send_json({"cmd": "pointer_move"})
            ws.send_json({"cmd": "no_such_command"})
            state = _state(ws)
        assert state["mode"] == "idle"

    @pytest.mark.parametrize("raw", [
        '{"cmd":"pointer_move","x":NaN,"y":200}',
        '{"cmd":"pointer_move","x":500,"y":Infinity}',
    ])
    def test_non_finite_pointer_ignored(self, client, raw):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "pointer_down"})
            ws.send_text(raw)
            state = _state(ws)
            assert state["aim"]["angle"] == 0.0

            server.ctrl.power = 10.0
            ws.send_json({"cmd": "pointer_up"})
            _state(ws)

        server.ctrl.step()
        assert math.isfinite(server.ctrl.cue_ball.vx)
        for b in server.ctrl.balls:
            assert all(math.isfinite(v) for v in b.position)
            assert all(math.isfinite(v) for v in b.velocity)
        assert "NaN" not in server._build_frame_message()

    def test_disconnect_stops_aiming(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "pointer_down"})
            _state(ws)
        # handler cleanup runs on disconnect
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert _state(ws)["aim"]["aiming"] is False


class TestParams:

    def test_get_params(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "get_params"})
            msg = ws.receive_json()
        assert msg["type"] == "params"
        assert [p["attr"] for p in msg["data"]] == [
            "friction", "stop_speed", "pocket_radius", "max_power", "power_rate",
        ]

    def test_adjust_and_reset_param(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "adjust_param", "index": 0, "direction": -1})
            msg = ws.receive_json()
            assert msg == {"type": "param_update", "index": 0, "value": pytest.approx(0.979)}
            assert server.ctrl.engine.friction == pytest.approx(0.979)

            ws.send_json({"cmd": "reset_params"})
            ws.receive_json()
            assert server.ctrl.engine.friction == pytest.approx(0.98)

    def test_adjust_clamped_to_range(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "adjust_param", "index": 0, "direction": 100})
            msg = ws.receive_json()
        assert msg["value"] == 1.0

    def test_adjust_pocket_radius_updates_pockets(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "adjust_param", "index": 2, "direction": 1})
            ws.receive_json()
        assert all(p.radius == pytest.approx(36.0) for p in server.ctrl.engine.pockets)


class TestFrameMessage:

    def test_frame_payload(self, client):
        server.ctrl.begin_aim()
        server.ctrl.step()
        frame = json.loads(server._build_frame_message())

        assert frame["type"] == "frame"
        assert len(frame["balls"]) == 16
        assert frame["balls"][0] == [200.0, 200.0, 1]
        assert frame["aim"][0] == [200.0, 200.0]
        assert frame["power"] == pytest.approx(0.2)
        assert frame["mode"] == "aiming"
