"""
Tests for the FastAPI server

Tests cover:
- REST state, action and pause endpoints
- Websocket SETUP, PAUSE, ACTION and RESET commands
- Tick loop lifecycle across START and RESET
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from server import SimulationManager, app, manager


@pytest.fixture
def client():
    manager.simulation = None
    manager.is_running = False
    manager.initialize({"grid_size": 4, "seed": 5})
    with TestClient(app) as test_client:
        yield test_client
    manager.simulation = None


class TestRestEndpoints:
    """Test suite for the REST surface"""

    def test_get_state(self, client):
        response = client.get("/state")

        assert response.status_code == 200
        data = response.json()
        assert data["day"] == 1
        assert data["season"] == "Spring"
        assert len(data["grid"]) == 4

    def test_rejected_action_is_not_an_http_error(self, client):
        response = client.post("/actions", json={"action": "harvest", "row": 0, "col": 0})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Nothing to harvest in this plot."

    def test_plant_action(self, client):
        response = client.post("/actions", json={"action": "plant", "row": 1, "col": 2, "crop_id": "lettuce"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get("/state").json()["grid"][1][2]["crop"] == "lettuce"

    def test_malformed_action_is_400(self, client):
        response = client.post("/actions", json={"action": "plant", "row": 0, "col": 0})
        assert response.status_code == 400

    def test_unknown_action_is_422(self, client):
        response = client.post("/actions", json={"action": "sell", "row": 0, "col": 0})
        assert response.status_code == 422

    def test_pause_toggles(self, client):
        assert client.post("/pause").json() == {"paused": True}
        assert client.post("/pause").json() == {"paused": False}


class TestWebsocket:
    """Test suite for the websocket command protocol"""

    def test_setup_pause_action_reset(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"command": "SETUP", "config": {"grid_size": 3, "seed": 1}})
            setup = websocket.receive_json()
            assert setup["type"] == "SETUP_COMPLETE"
            assert len(setup["state"]["grid"]) == 3

            websocket.send_json({"command": "PAUSE"})
            assert websocket.receive_json() == {"type": "PAUSED", "paused": True}

            websocket.send_json({"command": "RESUME"})
            assert websocket.receive_json() == {"type": "PAUSED", "paused": False}

            websocket.send_json({"command": "ACTION", "action": {"action": "plant", "row": 0, "col": 0,
                                                                 "crop_id": "rice"}})
            result = websocket.receive_json()
            assert result["type"] == "ACTION_RESULT"
            assert result["success"] is True

            websocket.send_json({"command": "SPEED", "speed": 99})
            assert "error" in websocket.receive_json()

            websocket.send_json({"command": "RESET"})
            assert websocket.receive_json() == {"type": "RESET"}

        assert manager.simulation is None


class RecordingSocket:
    """Stands in for a websocket; keeps every message sent."""

    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


class TestLoopLifecycle:
    """Test suite for starting and stopping the tick loop"""

    def test_restart_right_after_reset_runs_a_single_loop(self):
        """A START arriving while the old loop sleeps must not leave two loops ticking"""
        async def scenario():
            session = SimulationManager()
            session.active_websocket = RecordingSocket()
            session.initialize({"grid_size": 2, "seed": 1, "speed": 1})

            await session.start()
            first = session.loop_task
            await asyncio.sleep(0.3)

            # RESET, SETUP and START while the first loop is still sleeping
            await session.stop()
            session.simulation = None
            session.initialize({"grid_size": 2, "seed": 1, "speed": 1})
            await session.start()
            second = session.loop_task

            # A surviving first loop would tick again at t = 1.0s
            await asyncio.sleep(0.85)
            outcome = (first.done(), second.done(), first is second, session.simulation.state.day)
            await session.stop()
            return outcome

        first_done, second_done, same_task, day = asyncio.run(scenario())

        assert first_done is True
        assert second_done is False
        assert same_task is False
        # Only the new loop's immediate tick has run on the fresh farm
        assert day == 2

    def test_repeated_start_keeps_one_task(self):
        async def scenario():
            session = SimulationManager()
            session.active_websocket = RecordingSocket()
            session.initialize({"grid_size": 2, "seed": 1, "speed": 1})

            await session.start()
            first = session.loop_task
            await session.start()
            second = session.loop_task
            await session.stop()
            return first is second, first.done(), session.loop_task

        same_task, first_done, remaining = asyncio.run(scenario())

        assert same_task is True
        assert first_done is True
        assert remaining is None
