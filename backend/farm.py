"""
Farm State Model

Defines the shared simulation state and the domain types that every
component operates on. The state is a plain dataclass passed explicitly to
each operation; no component keeps hidden state of its own.

External collaborators (plot cells, event content) are described here as
protocols so the core only depends on their capabilities.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from config import CONFIG

logger = logging.getLogger(__name__)

HARVEST_READY = "harvest-ready"
EMPTY_CROP_ID = "empty"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (matches the game's money rounding)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class Season(str, Enum):
    SPRING = "Spring"
    SUMMER = "Summer"
    FALL = "Fall"
    WINTER = "Winter"

    def next(self) -> "Season":
        """Following season in the fixed Spring->Summer->Fall->Winter cycle."""
        order = list(Season)
        return order[(order.index(self) + 1) % len(order)]


@dataclass(slots=True)
class Climate:
    """Regional climate parameters. Event probabilities drift upward each year."""
    avg_temp: float = 70.0
    rainfall: float = 20.0
    drought_probability: float = 0.05
    flood_probability: float = 0.03
    heatwave_probability: float = 0.08

    def to_dict(self) -> Dict[str, float]:
        return {
            "avg_temp": self.avg_temp,
            "rainfall": self.rainfall,
            "drought_probability": self.drought_probability,
            "flood_probability": self.flood_probability,
            "heatwave_probability": self.heatwave_probability,
        }


@dataclass(frozen=True, slots=True)
class Crop:
    """Static crop definition."""
    id: str
    name: str
    base_price: int
    growth_days: int = 0
    water_use: float = 1.0

    @property
    def is_empty(self) -> bool:
        return self.id == EMPTY_CROP_ID


EMPTY_CROP = Crop(id=EMPTY_CROP_ID, name="Empty", base_price=0)


@dataclass(frozen=True, slots=True)
class HarvestResult:
    value: int
    crop_name: str
    yield_percentage: int


@runtime_checkable
class Cell(Protocol):
    """
    One plot of the farm grid.

    The growth model lives behind this protocol; the simulation core only
    orchestrates calls and reads the listed fields.
    """

    crop: Crop
    soil_health: float
    irrigated: bool
    fertilized: bool
    harvest_ready: bool
    consecutive_plantings: int
    expected_yield: float

    def update(self, water_reserve: float, researched_techs: Sequence[str]) -> str: ...

    def plant(self, crop: Crop) -> None: ...

    def irrigate(self, efficiency: float) -> None: ...

    def fertilize(self, efficiency: float) -> None: ...

    def harvest(self, water_reserve: float, market_price: float) -> HarvestResult: ...


@dataclass(slots=True)
class Technology:
    """
    A researchable technology.

    The researched flag is a one-way transition: once set it is never cleared.
    """
    id: str
    name: str
    cost: int
    prerequisites: Tuple[str, ...] = ()
    effects: Dict[str, float] = field(default_factory=dict)
    description: str = ""
    researched: bool = False

    def __post_init__(self):
        if self.cost < 0:
            raise ValueError(f"technology cost cannot be negative, got {self.cost}")
        self.prerequisites = tuple(self.prerequisites)

    def mark_researched(self) -> None:
        self.researched = True

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "cost": self.cost,
            "prerequisites": list(self.prerequisites),
            "effects": dict(self.effects),
            "researched": self.researched,
        }


def find_technology(technologies: Sequence[Technology], tech_id: str) -> Optional[Technology]:
    for tech in technologies:
        if tech.id == tech_id:
            return tech
    return None


def check_tech_prerequisites(tech: Technology, researched_techs: Sequence[str]) -> bool:
    """True when every prerequisite of `tech` has been researched."""
    return all(prereq in researched_techs for prereq in tech.prerequisites)


def get_tech_effect_value(
    effect_name: str,
    researched_techs: Sequence[str],
    technologies: Sequence[Technology],
    default_value: float = 1.0
) -> float:
    """
    Combined value of an effect across researched technologies.

    Effects stack multiplicatively; `default_value` is returned when no
    researched technology defines the effect.
    """
    value = None
    for tech in technologies:
        if tech.id in researched_techs and effect_name in tech.effects:
            value = tech.effects[effect_name] if value is None else value * tech.effects[effect_name]
    return default_value if value is None else value


@dataclass(frozen=True, slots=True)
class EventLogEntry:
    date_label: str
    message: str
    is_alert: bool = False


class EventLog:
    """Bounded log of the most recent notices; the oldest entry is evicted first."""

    def __init__(self, capacity: int = 20):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)

    def add(self, entry: EventLogEntry) -> None:
        self._entries.appendleft(entry)

    def entries(self) -> List[EventLogEntry]:
        """Entries ordered most recent first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[EventLogEntry]:
        return iter(self._entries)


@dataclass(slots=True)
class Notification:
    """
    Presentation-facing signal produced by the core.

    Channels: event, hud, grid, cell, research, events.
    """
    channel: str
    message: str = ""
    is_alert: bool = False
    data: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "channel": self.channel,
            "message": self.message,
            "is_alert": self.is_alert,
            "data": dict(self.data),
        }


@dataclass
class SimulationState:
    """
    All mutable state of one game session.

    Passed by reference to every component. `notifications` is an outbox
    drained by the clock and the action controller after each operation.
    """

    grid: List[List[Cell]]
    technologies: List[Technology]

    # Calendar
    day: int = 1
    season_day: int = 1
    season: Season = Season.SPRING
    year: int = 1

    # Ledger & farm condition
    balance: int = 20000
    water_reserve: float = 60.0
    farm_health: int = 85
    farm_value: int = 50000

    # Economy
    overhead_cost_per_cell: int = 10
    annual_inflation_rate: float = 0.03
    market_prices: Dict[str, float] = field(default_factory=dict)

    climate: Climate = field(default_factory=Climate)
    sustainability_score: Dict[str, int] = field(default_factory=dict)  # Last year-end breakdown
    researched_techs: List[str] = field(default_factory=list)
    pending_events: List[object] = field(default_factory=list)
    event_log: EventLog = field(default_factory=lambda: EventLog(CONFIG.log.event_log_capacity))
    notifications: List[Notification] = field(default_factory=list)
    paused: bool = False

    def __post_init__(self):
        """Validate invariants after initialization."""
        size = len(self.grid)
        if size == 0 or any(len(row) != size for row in self.grid):
            raise ValueError("grid must be a non-empty square matrix")
        if not (1 <= self.day <= CONFIG.time.days_per_year):
            raise ValueError(f"day must be in [1, {CONFIG.time.days_per_year}], got {self.day}")
        if not (1 <= self.season_day <= CONFIG.time.days_per_season):
            raise ValueError(f"season_day must be in [1, {CONFIG.time.days_per_season}], got {self.season_day}")
        if self.year < 1:
            raise ValueError(f"year must be >= 1, got {self.year}")
        self.season = Season(self.season)
        self.water_reserve = clamp(self.water_reserve, 0.0, 100.0)

    # ---------- Grid ----------

    @property
    def grid_size(self) -> int:
        return len(self.grid)

    @property
    def cell_count(self) -> int:
        return self.grid_size * self.grid_size

    def cells(self) -> Iterator[Tuple[int, int, Cell]]:
        for row, cells in enumerate(self.grid):
            for col, cell in enumerate(cells):
                yield row, col, cell

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.grid_size and 0 <= col < self.grid_size

    # ---------- Clamped mutators ----------

    def set_water_reserve(self, value: float) -> None:
        self.water_reserve = clamp(value, 0.0, 100.0)

    def set_market_price(self, crop_id: str, value: float) -> None:
        self.market_prices[crop_id] = clamp(
            value, CONFIG.economy.price_floor, CONFIG.economy.price_ceiling
        )

    # ---------- Technology ----------

    def has_technology(self, tech_id: str) -> bool:
        return tech_id in self.researched_techs

    def add_researched(self, tech_id: str) -> bool:
        """Append a technology id to the researched set. Returns False if already present."""
        if tech_id in self.researched_techs:
            return False
        self.researched_techs.append(tech_id)
        tech = find_technology(self.technologies, tech_id)
        if tech is not None:
            tech.mark_researched()
        return True

    def tech_effect(self, effect_name: str, default_value: float = 1.0) -> float:
        return get_tech_effect_value(effect_name, self.researched_techs, self.technologies, default_value)

    # ---------- Notices ----------

    @property
    def date_label(self) -> str:
        return f"{self.season.value}, Year {self.year}"

    def add_event(self, message: str, is_alert: bool = False) -> EventLogEntry:
        """Record a notice in the event log and queue it for presentation."""
        entry = EventLogEntry(date_label=self.date_label, message=message, is_alert=is_alert)
        self.event_log.add(entry)
        self.notifications.append(Notification(channel="event", message=message, is_alert=is_alert))
        if is_alert:
            logger.warning(message)
        else:
            logger.info(message)
        return entry

    def notify(self, channel: str, **data) -> None:
        self.notifications.append(Notification(channel=channel, data=data))

    def drain_notifications(self) -> List[Notification]:
        drained = self.notifications
        self.notifications = []
        return drained

    # ---------- Views ----------

    def snapshot(self) -> Dict[str, object]:
        """Read-only view handed to event generators."""
        return {
            "climate": self.climate.to_dict(),
            "sustainability_score": dict(self.sustainability_score),
            "day": self.day,
            "season": self.season.value,
            "year": self.year,
            "water_reserve": self.water_reserve,
            "farm_health": self.farm_health,
            "balance": self.balance,
            "researched_techs": list(self.researched_techs),
        }

    def to_dict(self) -> Dict[str, object]:
        """
        Serialize the presentation-relevant state to basic Python types.
        """
        return {
            "day": self.day,
            "season_day": self.season_day,
            "season": self.season.value,
            "year": self.year,
            "balance": self.balance,
            "water_reserve": self.water_reserve,
            "farm_health": self.farm_health,
            "farm_value": self.farm_value,
            "overhead_cost_per_cell": self.overhead_cost_per_cell,
            "annual_inflation_rate": self.annual_inflation_rate,
            "climate": self.climate.to_dict(),
            "market_prices": dict(self.market_prices),
            "researched_techs": list(self.researched_techs),
            "pending_events": len(self.pending_events),
            "paused": self.paused,
            "events": [
                {"date": e.date_label, "message": e.message, "is_alert": e.is_alert}
                for e in self.event_log
            ],
            "grid": [
                [
                    {
                        "crop": cell.crop.id,
                        "soil_health": cell.soil_health,
                        "irrigated": cell.irrigated,
                        "fertilized": cell.fertilized,
                        "harvest_ready": cell.harvest_ready,
                        "expected_yield": cell.expected_yield,
                    }
                    for cell in row
                ]
                for row in self.grid
            ],
        }
