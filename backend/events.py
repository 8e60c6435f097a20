"""
Pending Event Scheduling

Pending events are typed records waiting for their trigger day. Each tick
the scheduler resolves every event due today through a single dispatch
table, then removes all of today's entries. Finite weather events
(drought, heatwave) continue by enqueuing a successor for the next day.

Event content (what a drought does to the grid, how a policy is worded)
comes from an `EventGenerator`; this module only schedules and applies the
returned effects to the shared state.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np

from config import CONFIG, EventConfig, TimeConfig
from farm import Cell, Crop, SimulationState

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    RAIN = "rain"
    DROUGHT = "drought"
    HEATWAVE = "heatwave"
    FROST = "frost"
    MARKET = "market"
    POLICY = "policy"
    TECHNOLOGY = "technology"


@dataclass(slots=True)
class PendingEvent:
    """
    A scheduled occurrence.

    `type` is kept as a plain string so generators may hand over types the
    scheduler does not know; those are dropped on their trigger day.
    """
    type: str
    trigger_day: int
    duration: Optional[int] = None
    severity: Optional[float] = None
    message: str = ""
    is_alert: bool = False
    payload: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.type, EventType):
            self.type = self.type.value

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type,
            "trigger_day": self.trigger_day,
            "duration": self.duration,
            "severity": self.severity,
            "message": self.message,
            "is_alert": self.is_alert,
        }


@dataclass(slots=True)
class EventEffect:
    """Outcome of applying one event, as reported by the generator."""
    message: str = ""
    water_reserve: Optional[float] = None
    skipped: bool = False
    continue_event: bool = False
    next_duration: Optional[int] = None
    severity: Optional[float] = None
    market_prices: Optional[Dict[str, float]] = None
    balance_change: int = 0
    researched: Tuple[str, ...] = ()


class EventGenerator(Protocol):
    """Content provider for random, seasonal and policy events."""

    def generate_random_event(self, snapshot: Mapping[str, object]) -> Optional[PendingEvent]: ...

    def schedule_drought(self, day: int, probability: float) -> PendingEvent: ...

    def schedule_heatwave(self, day: int) -> PendingEvent: ...

    def schedule_frost(self, day: int) -> PendingEvent: ...

    def schedule_rain(self, day: int) -> PendingEvent: ...

    def generate_policy_event(self, year: int, farm_health: int) -> PendingEvent: ...

    def apply_rain_event(self, event: PendingEvent, grid: Sequence[Sequence[Cell]],
                         water_reserve: float, researched_techs: Sequence[str]) -> EventEffect: ...

    def apply_drought_event(self, event: PendingEvent, grid: Sequence[Sequence[Cell]],
                            water_reserve: float, researched_techs: Sequence[str]) -> EventEffect: ...

    def apply_heatwave_event(self, event: PendingEvent, grid: Sequence[Sequence[Cell]],
                             water_reserve: float, researched_techs: Sequence[str]) -> EventEffect: ...

    def apply_frost_event(self, event: PendingEvent, grid: Sequence[Sequence[Cell]],
                          researched_techs: Sequence[str]) -> EventEffect: ...

    def apply_market_event(self, event: PendingEvent, market_prices: Mapping[str, float],
                           crops: Sequence[Crop]) -> EventEffect: ...

    def apply_policy_event(self, event: PendingEvent, balance: int) -> EventEffect: ...

    def apply_technology_event(self, event: PendingEvent, balance: int,
                               researched_techs: Sequence[str]) -> EventEffect: ...


class EventScheduler:
    """
    Owns the pending-event protocol: enqueue, seed, resolve.

    The queue itself lives on the state (`state.pending_events`).
    """

    def __init__(
        self,
        generator: EventGenerator,
        rng: np.random.Generator,
        crops: Sequence[Crop],
        config: Optional[EventConfig] = None,
        time_config: Optional[TimeConfig] = None
    ):
        self.generator = generator
        self.rng = rng
        self.crops = list(crops)
        self.config = config or CONFIG.events
        self.time_config = time_config or CONFIG.time

        self._handlers: Dict[str, Callable[[SimulationState, PendingEvent], None]] = {
            EventType.RAIN.value: self._resolve_rain,
            EventType.DROUGHT.value: self._resolve_drought,
            EventType.HEATWAVE.value: self._resolve_heatwave,
            EventType.FROST.value: self._resolve_frost,
            EventType.MARKET.value: self._resolve_market,
            EventType.POLICY.value: self._resolve_policy,
            EventType.TECHNOLOGY.value: self._resolve_technology,
        }
        self._seeders: Dict[str, Callable[[SimulationState], PendingEvent]] = {
            EventType.RAIN.value: lambda state: self.generator.schedule_rain(state.day),
            EventType.DROUGHT.value: lambda state: self.generator.schedule_drought(
                state.day, state.climate.drought_probability
            ),
            EventType.HEATWAVE.value: lambda state: self.generator.schedule_heatwave(state.day),
            EventType.FROST.value: lambda state: self.generator.schedule_frost(state.day),
        }

    # ---------- Queue ----------

    def enqueue(self, state: SimulationState, event: PendingEvent) -> None:
        state.pending_events.append(event)
        state.notify("events")

    def pending_for_day(self, state: SimulationState, day: int) -> List[PendingEvent]:
        return [event for event in state.pending_events if event.trigger_day == day]

    def next_day(self, day: int) -> int:
        """Calendar day after `day`, wrapping at year end."""
        return day % self.time_config.days_per_year + 1

    # ---------- Resolution ----------

    def resolve_day(self, state: SimulationState) -> List[PendingEvent]:
        """
        Resolve every event due today, then drop all of today's entries.

        Events whose type has no handler are removed without effect.
        Returns the events that were due.
        """
        today = state.day
        active = self.pending_for_day(state, today)

        for event in active:
            handler = self._handlers.get(event.type)
            if handler is None:
                logger.debug(f"Dropping pending event of unknown type '{event.type}' on day {today}")
                continue
            handler(state, event)

        state.pending_events = [event for event in state.pending_events if event.trigger_day != today]
        if active:
            state.notify("events")
            state.notify("hud")
        return active

    def _resolve_rain(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_rain_event(event, state.grid, state.water_reserve, state.researched_techs)
        if effect.water_reserve is not None:
            state.set_water_reserve(effect.water_reserve)
        state.add_event(effect.message)

    def _resolve_drought(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_drought_event(event, state.grid, state.water_reserve, state.researched_techs)
        self._resolve_continuing(state, event, effect, "The drought has ended.")

    def _resolve_heatwave(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_heatwave_event(event, state.grid, state.water_reserve, state.researched_techs)
        self._resolve_continuing(state, event, effect, "The heatwave has ended.")

    def _resolve_continuing(
        self,
        state: SimulationState,
        event: PendingEvent,
        effect: EventEffect,
        ended_message: str
    ) -> None:
        """Shared drought/heatwave handling: apply, then continue or end the chain."""
        if effect.skipped:
            logger.debug(f"{event.type} on day {state.day} was skipped")
            return

        if effect.water_reserve is not None:
            state.set_water_reserve(effect.water_reserve)
        state.add_event(effect.message, True)

        if effect.continue_event:
            self.enqueue(state, PendingEvent(
                type=event.type,
                trigger_day=self.next_day(state.day),
                duration=effect.next_duration,
                severity=effect.severity if effect.severity is not None else event.severity,
            ))
        else:
            state.add_event(ended_message)

    def _resolve_frost(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_frost_event(event, state.grid, state.researched_techs)
        state.add_event(effect.message, True)
        state.notify("grid")

    def _resolve_market(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_market_event(event, state.market_prices, self.crops)
        for crop_id, price in (effect.market_prices or {}).items():
            state.set_market_price(crop_id, price)
        state.add_event(effect.message)

    def _resolve_policy(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_policy_event(event, state.balance)
        state.balance += effect.balance_change
        state.add_event(effect.message, effect.balance_change < 0)

    def _resolve_technology(self, state: SimulationState, event: PendingEvent) -> None:
        effect = self.generator.apply_technology_event(event, state.balance, state.researched_techs)
        state.balance += effect.balance_change
        gained = [tech_id for tech_id in effect.researched if state.add_researched(tech_id)]
        if gained:
            state.notify("research")
        state.add_event(effect.message)

    # ---------- Seeding ----------

    def seed_season(self, state: SimulationState) -> List[PendingEvent]:
        """Roll the fixed per-season chances for weather events."""
        seeded = []
        chances = self.config.seasonal_event_chances.get(state.season.value, {})
        for event_type, chance in chances.items():
            seeder = self._seeders.get(event_type)
            if seeder is None:
                continue
            if self.rng.random() < chance:
                event = seeder(state)
                self.enqueue(state, event)
                seeded.append(event)
        return seeded

    def seed_milestone(self, state: SimulationState) -> Optional[PendingEvent]:
        """Decade milestone: announce it and maybe schedule a policy event."""
        if state.year % self.config.milestone_interval_years != 0:
            return None

        state.add_event(f"Major milestone: {state.year} years of operation!")
        if self.rng.random() < self.config.milestone_policy_chance:
            policy_event = self.generator.generate_policy_event(state.year, state.farm_health)
            self.enqueue(state, policy_event)
            state.add_event("New climate policy announced for the next decade.")
            return policy_event
        return None

    def inject_ambient(self, state: SimulationState) -> Optional[PendingEvent]:
        """
        Small daily chance of an unscheduled event.

        The event is announced now and also enqueued for its own trigger day.
        """
        if self.rng.random() >= self.config.ambient_event_chance:
            return None

        event = self.generator.generate_random_event(state.snapshot())
        if event is None:
            return None
        self.enqueue(state, event)
        state.add_event(event.message, event.is_alert)
        return event
