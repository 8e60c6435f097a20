import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Literal, Optional

# Add current directory to path so we can import backend modules
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, conint, confloat

from actions import ActionResult
from collaborators import create_default_simulation
from config import load_config
from notifications import LoggingSink, dispatch
from simulation import Simulation

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Climate Farm Simulation", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Request/Response Models ----------


class SetupConfig(BaseModel):
    seed: Optional[int] = None
    grid_size: Optional[conint(ge=1, le=50)] = None
    starting_balance: Optional[int] = None
    inflation_rate: Optional[confloat(ge=0, le=1)] = None
    speed: Optional[conint(ge=1, le=20)] = None


class ActionRequest(BaseModel):
    action: Literal["plant", "irrigate", "fertilize", "harvest", "research"]
    row: Optional[conint(ge=0)] = None
    col: Optional[conint(ge=0)] = None
    crop_id: Optional[str] = None
    tech_id: Optional[str] = None


class ActionResponse(BaseModel):
    success: bool
    message: str
    amount: int = 0
    notifications: List[Dict[str, Any]] = Field(default_factory=list)


class SimulationManager:
    def __init__(self):
        self.simulation: Optional[Simulation] = None
        self.is_running = False
        self.loop_task: Optional[asyncio.Task] = None
        self.active_websocket: Optional[WebSocket] = None
        self.sinks = [LoggingSink()]

    def initialize(self, config: Dict[str, Any] = None):
        if config is None:
            config = {}
        setup = SetupConfig(**config)

        sim_config = load_config()
        if setup.grid_size is not None:
            sim_config.farm.grid_size = setup.grid_size
        if setup.starting_balance is not None:
            sim_config.farm.starting_balance = setup.starting_balance
        if setup.inflation_rate is not None:
            sim_config.economy.annual_inflation_rate = setup.inflation_rate
        if setup.speed is not None:
            sim_config.time.default_speed = setup.speed

        sim_config.__post_init__()

        logger.info(f"Initializing {sim_config.farm.grid_size}x{sim_config.farm.grid_size} farm...")
        self.simulation = create_default_simulation(sim_config, seed=setup.seed)
        logger.info("Farm initialized")

    def require_simulation(self) -> Simulation:
        if self.simulation is None:
            self.initialize()
        return self.simulation

    def perform_action(self, request: ActionRequest) -> ActionResult:
        """Run one player action between ticks."""
        simulation = self.require_simulation()
        if request.action == "research":
            if not request.tech_id:
                raise ValueError("research requires tech_id")
            result = simulation.research(request.tech_id)
        else:
            if request.row is None or request.col is None:
                raise ValueError(f"{request.action} requires row and col")
            if request.action == "plant":
                if not request.crop_id:
                    raise ValueError("plant requires crop_id")
                result = simulation.plant(request.row, request.col, request.crop_id)
            elif request.action == "irrigate":
                result = simulation.irrigate(request.row, request.col)
            elif request.action == "fertilize":
                result = simulation.fertilize(request.row, request.col)
            else:
                result = simulation.harvest(request.row, request.col)

        dispatch(result.notifications, self.sinks)
        return result

    def update_config(self, config_data: Dict[str, Any]):
        if not self.simulation:
            return

        if "speed" in config_data:
            self.simulation.set_speed(int(config_data["speed"]))

        # Inflation rate takes effect at the next year boundary and on new action prices
        if "inflationRate" in config_data:
            self.simulation.state.annual_inflation_rate = float(config_data["inflationRate"])

    def state_message(self, notifications) -> Dict[str, Any]:
        state = self.simulation.state
        return {
            "type": "STATE",
            "day": state.day,
            "state": state.to_dict(),
            "notifications": [n.to_dict() for n in notifications],
        }

    async def start(self):
        """Start the tick loop unless one is already running."""
        if not self.simulation:
            # Auto-initialize if not done yet (fallback)
            self.initialize()

        self.is_running = True
        if self.loop_task is None or self.loop_task.done():
            self.loop_task = asyncio.create_task(self.run_loop())

    async def stop(self):
        """Cancel the tick loop and wait until it has exited."""
        self.is_running = False
        task, self.loop_task = self.loop_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_loop(self):
        if not self.simulation:
            logger.warning("Attempted to run loop without a farm. Waiting for SETUP.")
            return

        logger.info("Starting simulation loop")
        try:
            while self.is_running and self.active_websocket:
                interval = self.simulation.update_interval_ms / 1000.0
                start_time = asyncio.get_event_loop().time()

                # Paused sessions skip the tick entirely
                if not self.simulation.state.paused:
                    notifications = self.simulation.advance_day()
                    dispatch(notifications, self.sinks)
                    await self.active_websocket.send_json(self.state_message(notifications))

                # Throttle to the configured speed
                elapsed = asyncio.get_event_loop().time() - start_time
                await asyncio.sleep(max(0.0, interval - elapsed))

        except Exception as e:
            logger.error(f"Simulation loop error: {e}")
            self.is_running = False
            if self.active_websocket:
                await self.active_websocket.send_json({"error": str(e)})


manager = SimulationManager()


@app.get("/state")
async def get_state():
    simulation = manager.require_simulation()
    return simulation.state.to_dict()


@app.post("/actions", response_model=ActionResponse)
async def post_action(request: ActionRequest):
    """
    Apply one player action. Rejected actions are ordinary outcomes
    (success = false); malformed requests are HTTP 400.
    """
    try:
        result = manager.perform_action(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ActionResponse(**result.to_dict())


@app.post("/pause")
async def toggle_pause():
    simulation = manager.require_simulation()
    return {"paused": simulation.toggle_pause()}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    manager.active_websocket = websocket
    logger.info("WebSocket connected")

    try:
        while True:
            data = await websocket.receive_json()
            command = data.get("command")

            if command == "SETUP":
                config = data.get("config", {})
                manager.initialize(config)
                await websocket.send_json({"type": "SETUP_COMPLETE", "state": manager.simulation.state.to_dict()})
            elif command == "START":
                await manager.start()
            elif command in ("PAUSE", "RESUME"):
                simulation = manager.require_simulation()
                if simulation.state.paused != (command == "PAUSE"):
                    simulation.toggle_pause()
                await websocket.send_json({"type": "PAUSED", "paused": simulation.state.paused})
            elif command == "SPEED":
                manager.require_simulation()
                try:
                    manager.update_config({"speed": data.get("speed")})
                except (TypeError, ValueError) as e:
                    await websocket.send_json({"error": str(e)})
            elif command == "CONFIG":
                manager.update_config(data.get("config", {}))
            elif command == "ACTION":
                try:
                    result = manager.perform_action(ActionRequest(**data.get("action", {})))
                    await websocket.send_json({"type": "ACTION_RESULT", **result.to_dict()})
                except ValueError as e:
                    await websocket.send_json({"type": "ACTION_RESULT", "success": False, "message": str(e)})
            elif command == "RESET":
                await manager.stop()
                manager.simulation = None
                await websocket.send_json({"type": "RESET"})

    except WebSocketDisconnect:
        await manager.stop()
        manager.active_websocket = None
        logger.info("Client disconnected")
