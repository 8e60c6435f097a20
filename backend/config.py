"""
Simulation Configuration

Calendar, farm, economy, climate, event and scoring parameters for the
farm simulation, with optional overrides from a .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv


@dataclass
class TimeConfig:
    """Calendar and pacing constants."""
    days_per_season: int = 90
    days_per_year: int = 360  # Four 90-day seasons
    seasons: Tuple[str, ...] = ("Spring", "Summer", "Fall", "Winter")
    default_speed: int = 5  # Ticks per wall-clock second
    max_speed: int = 20


@dataclass
class FarmConfig:
    """Starting farm state."""
    grid_size: int = 10  # 10x10 plots
    starting_balance: int = 20000
    starting_farm_value: int = 50000
    starting_farm_health: int = 85
    starting_water_reserve: float = 60.0

    # Farm valuation
    land_value_per_cell: int = 500
    technology_value_retention: float = 0.5  # Share of research cost kept as asset value


@dataclass
class EconomyConfig:
    """Overhead, inflation, pricing and subsidy parameters."""

    # Overhead & Inflation
    overhead_cost_per_cell: int = 10  # $10/cell/day = $1000/day at 10x10
    annual_inflation_rate: float = 0.03

    # Action Pricing (before inflation)
    planting_cost_fraction: float = 0.4  # Planting = 40% of crop base price
    irrigation_base_cost: int = 200
    fertilize_base_cost: int = 300

    # Market Prices
    initial_price_min: float = 0.8
    initial_price_max: float = 1.2
    seasonal_drift_min: float = 0.9
    seasonal_drift_max: float = 1.1
    price_floor: float = 0.5
    price_ceiling: float = 2.0

    # Subsidies: (minimum sustainability total, base amount), highest tier first
    subsidy_tiers: Tuple[Tuple[int, int], ...] = ((70, 4000), (50, 2000), (30, 1000))
    subsidy_factor_min: float = 0.5
    subsidy_factor_max: float = 1.5


@dataclass
class ClimateConfig:
    """Initial climate and its yearly drift."""
    avg_temp: float = 70.0
    rainfall: float = 20.0
    drought_probability: float = 0.05
    flood_probability: float = 0.03
    heatwave_probability: float = 0.08
    annual_drought_drift: float = 0.005
    annual_heatwave_drift: float = 0.005


@dataclass
class EventConfig:
    """Event seeding probabilities and seasonal water recovery."""
    ambient_event_chance: float = 0.01  # 1% per tick

    seasonal_event_chances: Dict[str, Dict[str, float]] = field(default_factory=lambda: {
        "Spring": {"rain": 0.4},
        "Summer": {"drought": 0.3, "heatwave": 0.4},
        "Fall": {"rain": 0.3, "heatwave": 0.2},
        "Winter": {"frost": 0.3},
    })

    # Season -> (low, high) percentage points recovered on entry, None = no recovery
    water_recovery_ranges: Dict[str, Optional[Tuple[int, int]]] = field(default_factory=lambda: {
        "Spring": (10, 25),
        "Summer": None,
        "Fall": (5, 15),
        "Winter": (5, 15),
    })
    always_announce_recovery: Tuple[str, ...] = ("Spring",)
    recovery_announce_threshold: int = 5  # Other seasons only announce above this

    # Decade milestones
    milestone_interval_years: int = 10
    milestone_policy_chance: float = 0.7


@dataclass
class SustainabilityConfig:
    """Sustainability score weighting."""
    soil_weight: float = 0.4
    diversity_weight: float = 0.4
    tech_weight: float = 0.2

    distribution_penalty_scale: float = 50.0
    monocrop_penalty_per_planting: float = 2.0

    tech_points: Dict[str, int] = field(default_factory=lambda: {
        "no_till_farming": 20,
        "silvopasture": 20,
        "drip_irrigation": 15,
        "renewable_energy": 15,
        "precision_drones": 15,
        "drought_resistant": 10,
        "ai_irrigation": 10,
        "soil_sensors": 10,
        "greenhouse": 10,
    })

    # Farm health blend
    health_soil_weight: float = 0.7
    health_water_weight: float = 0.3


@dataclass
class LogConfig:
    """Event log settings."""
    event_log_capacity: int = 20


@dataclass
class SimulationConfig:
    """Master configuration for the entire simulation."""

    # Sub-configurations
    time: TimeConfig = field(default_factory=TimeConfig)
    farm: FarmConfig = field(default_factory=FarmConfig)
    economy: EconomyConfig = field(default_factory=EconomyConfig)
    climate: ClimateConfig = field(default_factory=ClimateConfig)
    events: EventConfig = field(default_factory=EventConfig)
    sustainability: SustainabilityConfig = field(default_factory=SustainabilityConfig)
    log: LogConfig = field(default_factory=LogConfig)

    seed: Optional[int] = None

    def __post_init__(self):
        """Validation and derived values."""
        # Validate time parameters
        if self.time.days_per_season <= 0:
            raise ValueError("days_per_season must be positive")
        if self.time.days_per_year != self.time.days_per_season * len(self.time.seasons):
            raise ValueError("days_per_year must equal days_per_season * number of seasons")
        if not (1 <= self.time.default_speed <= self.time.max_speed):
            raise ValueError("default_speed must be in [1, max_speed]")

        # Validate farm
        if self.farm.grid_size <= 0:
            raise ValueError("grid_size must be positive")
        if not (0.0 <= self.farm.starting_water_reserve <= 100.0):
            raise ValueError("starting_water_reserve must be in [0, 100]")

        # Validate economy
        if self.economy.annual_inflation_rate < 0:
            raise ValueError("annual_inflation_rate cannot be negative")
        if self.economy.overhead_cost_per_cell < 0:
            raise ValueError("overhead_cost_per_cell cannot be negative")
        if self.economy.price_floor > self.economy.price_ceiling:
            raise ValueError("price_floor must not exceed price_ceiling")
        if self.economy.subsidy_factor_min > self.economy.subsidy_factor_max:
            raise ValueError("subsidy_factor_min must not exceed subsidy_factor_max")

        # Validate probabilities
        if not (0.0 <= self.events.ambient_event_chance <= 1.0):
            raise ValueError("ambient_event_chance must be in [0, 1]")
        for season, chances in self.events.seasonal_event_chances.items():
            if season not in self.time.seasons:
                raise ValueError(f"unknown season in seasonal_event_chances: {season}")
            for event_type, chance in chances.items():
                if not (0.0 <= chance <= 1.0):
                    raise ValueError(f"{season} {event_type} chance must be in [0, 1]")

        if self.log.event_log_capacity <= 0:
            raise ValueError("event_log_capacity must be positive")


def load_config(env_file: Optional[str] = None) -> SimulationConfig:
    """
    Build a configuration, applying overrides from the environment.

    Reads a .env file (if present) before looking at FARM_* variables.
    """
    load_dotenv(env_file)

    config = SimulationConfig()
    seed = os.getenv("FARM_SEED")
    if seed:
        config.seed = int(seed)
    grid_size = os.getenv("FARM_GRID_SIZE")
    if grid_size:
        config.farm.grid_size = int(grid_size)
    starting_balance = os.getenv("FARM_STARTING_BALANCE")
    if starting_balance:
        config.farm.starting_balance = int(starting_balance)
    inflation = os.getenv("FARM_INFLATION_RATE")
    if inflation:
        config.economy.annual_inflation_rate = float(inflation)
    speed = os.getenv("FARM_SPEED")
    if speed:
        config.time.default_speed = int(speed)

    # Re-run validation against the overridden values
    config.__post_init__()
    return config


# Global configuration instance
CONFIG = SimulationConfig()
