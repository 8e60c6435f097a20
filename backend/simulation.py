"""
Farm Simulation Clock

Advances simulated time one day per tick and orchestrates the economy,
the grid, the event scheduler and sustainability scoring in a fixed order.

`SimulationClock.advance_day` is the single orchestration point. The
`Simulation` facade wires the components together around one
`SimulationState` and adds pause, speed and frame-timed ticking.
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from actions import ActionController, ActionResult
from config import CONFIG, SimulationConfig
from economy import EconomyEngine
from events import EventGenerator, EventScheduler
from farm import (
    HARVEST_READY, Cell, Climate, Crop, EventLog, Notification, Season, SimulationState, Technology
)
from sustainability import SustainabilityScore, SustainabilityScorer, calculate_farm_health

logger = logging.getLogger(__name__)


class SimulationClock:
    """Runs one simulated day against a state."""

    def __init__(
        self,
        economy: EconomyEngine,
        scheduler: EventScheduler,
        scorer: SustainabilityScorer,
        rng: np.random.Generator,
        config: Optional[SimulationConfig] = None
    ):
        self.economy = economy
        self.scheduler = scheduler
        self.scorer = scorer
        self.rng = rng
        self.config = config or CONFIG

    def advance_day(self, state: SimulationState) -> List[Notification]:
        """
        Execute one full simulation tick.

        Follows strict phase ordering:
        1. Advance day and season day
        2. Charge daily overhead (may create debt)
        3. Update every grid cell
        4. Season rollover
        5. Year rollover
        6. Resolve pending events due today
        7. Recompute farm health
        8. Roll for an ambient event

        Returns the notifications produced during the tick.
        """
        time_config = self.config.time

        # Phase 1: Calendar
        state.day += 1
        state.season_day += 1

        # Phase 2: Overhead is charged before the grid is touched
        self.economy.charge_overhead(state)

        # Phase 3: Grid
        self._update_farm(state)

        # Phase 4 & 5: Independent rollovers in the same tick
        if state.season_day > time_config.days_per_season:
            state.season_day = 1
            self.advance_season(state)

        if state.day > time_config.days_per_year:
            state.day = 1
            self.advance_year(state)

        # Phase 6: Events
        self.scheduler.resolve_day(state)

        # Phase 7: Health after event effects
        state.farm_health = calculate_farm_health(state.grid, state.water_reserve, self.config.sustainability)
        state.notify("hud")

        # Phase 8: Ambient event
        self.scheduler.inject_ambient(state)

        return state.drain_notifications()

    def _update_farm(self, state: SimulationState) -> None:
        harvest_ready = []
        for row, col, cell in state.cells():
            status = cell.update(state.water_reserve, state.researched_techs)
            if status == HARVEST_READY:
                harvest_ready.append((row, col))

        for row, col in harvest_ready:
            cell = state.grid[row][col]
            state.add_event(f"{cell.crop.name} at row {row + 1}, column {col + 1} is ready for harvest!")
        state.notify("grid")

    # ---------- Season ----------

    def advance_season(self, state: SimulationState) -> None:
        state.season = state.season.next()
        state.add_event(f"Season changed to {state.season.value}")

        self.economy.fluctuate_market_prices(state)
        self.scheduler.seed_season(state)
        self.recover_water(state)

        if state.has_technology("greenhouse") and state.season in (Season.WINTER, Season.SUMMER):
            state.add_event("Greenhouse technology is protecting crops from seasonal extremes.")

    def recover_water(self, state: SimulationState) -> int:
        """Season-entry water recovery. Returns the percentage points drawn (before clamping)."""
        events_config = self.config.events
        recovery_range = events_config.water_recovery_ranges.get(state.season.value)
        if recovery_range is None:
            return 0

        low, high = recovery_range
        recovery = int(np.floor(low + self.rng.random() * (high - low)))
        state.set_water_reserve(state.water_reserve + recovery)

        if state.season.value in events_config.always_announce_recovery:
            state.add_event(f"{state.season.value} rains replenished {recovery}% of water reserves.")
        elif recovery > events_config.recovery_announce_threshold:
            state.add_event(f"{state.season.value} weather replenished {recovery}% of water reserves.")
        return recovery

    # ---------- Year ----------

    def advance_year(self, state: SimulationState) -> SustainabilityScore:
        state.year += 1

        self.economy.apply_annual_inflation(state)
        self.economy.update_farm_value(state)

        score = self.scorer.score(state.grid, state.researched_techs)
        state.sustainability_score = score.to_dict()
        logger.info(f"Year {state.year} Sustainability Score: {score.total}")

        climate_config = self.config.climate
        state.climate.drought_probability += climate_config.annual_drought_drift
        state.climate.heatwave_probability += climate_config.annual_heatwave_drift

        state.add_event(f"Happy New Year! Completed Year {state.year - 1} of farming.")

        self.economy.distribute_subsidy(state, score.total)
        self.scheduler.seed_milestone(state)
        return score


class Simulation:
    """
    One game session: state plus the components that act on it.

    Ticks are driven by a frame-timing source through `tick(now_ms)`, or
    directly through `advance_day()`. Player actions go through the
    action methods and never overlap a tick.
    """

    def __init__(
        self,
        state: SimulationState,
        clock: SimulationClock,
        actions: ActionController,
        config: Optional[SimulationConfig] = None
    ):
        self.state = state
        self.clock = clock
        self.actions = actions
        self.config = config or CONFIG
        self.speed = self.config.time.default_speed
        self.last_update_ms = 0.0

    @property
    def update_interval_ms(self) -> float:
        return 1000.0 / self.speed

    def set_speed(self, speed: int) -> None:
        if not (1 <= speed <= self.config.time.max_speed):
            raise ValueError(f"speed must be in [1, {self.config.time.max_speed}], got {speed}")
        self.speed = speed

    def toggle_pause(self) -> bool:
        self.state.paused = not self.state.paused
        logger.info("Simulation paused" if self.state.paused else "Simulation resumed")
        return self.state.paused

    def advance_day(self) -> List[Notification]:
        return self.clock.advance_day(self.state)

    def tick(self, now_ms: float) -> List[Notification]:
        """Frame callback: advance only when unpaused and an interval has elapsed."""
        elapsed = now_ms - self.last_update_ms
        if self.state.paused or elapsed <= self.update_interval_ms:
            return []
        self.last_update_ms = now_ms
        return self.advance_day()

    def should_terminate(self, end_year: int) -> bool:
        """Auto-terminate condition used by scripted runs."""
        return self.state.year >= end_year or self.state.balance <= 0

    # ---------- Player actions ----------

    def plant(self, row: int, col: int, crop_id: str) -> ActionResult:
        return self.actions.plant(self.state, row, col, crop_id)

    def irrigate(self, row: int, col: int) -> ActionResult:
        return self.actions.irrigate(self.state, row, col)

    def fertilize(self, row: int, col: int) -> ActionResult:
        return self.actions.fertilize(self.state, row, col)

    def harvest(self, row: int, col: int) -> ActionResult:
        return self.actions.harvest(self.state, row, col)

    def research(self, tech_id: str) -> ActionResult:
        return self.actions.research(self.state, tech_id)


def create_simulation(
    crops: Sequence[Crop],
    technologies: Sequence[Technology],
    cell_factory: Callable[[], Cell],
    generator_factory: Callable[[np.random.Generator], EventGenerator],
    config: Optional[SimulationConfig] = None,
    seed: Optional[int] = None
) -> Simulation:
    """
    Build a fresh session from collaborators.

    Args:
        crops: Crop catalogue, including the empty crop type
        technologies: Technology tree (copied per session by the caller)
        cell_factory: Builds one empty plot
        generator_factory: Builds the event generator from the shared RNG
        config: Simulation configuration (defaults to CONFIG)
        seed: RNG seed, falls back to config.seed
    """
    config = config or CONFIG
    rng = np.random.default_rng(seed if seed is not None else config.seed)

    size = config.farm.grid_size
    climate_config = config.climate
    state = SimulationState(
        grid=[[cell_factory() for _ in range(size)] for _ in range(size)],
        technologies=list(technologies),
        balance=config.farm.starting_balance,
        water_reserve=config.farm.starting_water_reserve,
        farm_health=config.farm.starting_farm_health,
        farm_value=config.farm.starting_farm_value,
        overhead_cost_per_cell=config.economy.overhead_cost_per_cell,
        annual_inflation_rate=config.economy.annual_inflation_rate,
        climate=Climate(
            avg_temp=climate_config.avg_temp,
            rainfall=climate_config.rainfall,
            drought_probability=climate_config.drought_probability,
            flood_probability=climate_config.flood_probability,
            heatwave_probability=climate_config.heatwave_probability,
        ),
        event_log=EventLog(config.log.event_log_capacity),
    )
    state.researched_techs.extend(tech.id for tech in state.technologies if tech.researched)

    economy = EconomyEngine(rng, crops, config.economy, config.farm)
    economy.initialize_market_prices(state)
    scheduler = EventScheduler(generator_factory(rng), rng, crops, config.events, config.time)
    scorer = SustainabilityScorer(len(crops), config.sustainability)
    clock = SimulationClock(economy, scheduler, scorer, rng, config)
    actions = ActionController(economy, crops)

    logger.info(f"Created {size}x{size} farm with ${state.balance} starting balance")
    return Simulation(state, clock, actions, config)
