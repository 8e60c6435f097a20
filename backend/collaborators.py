"""
Default Collaborators

Stand-in implementations of the capabilities the simulation core consumes:
the crop catalogue, the technology tree, a basic plot cell and a climate
event generator. They keep the server and the headless runner playable;
the core only talks to them through the protocols in `farm` and `events`.
"""

from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from config import CONFIG, SimulationConfig
from events import EventEffect, EventType, PendingEvent
from farm import EMPTY_CROP, HARVEST_READY, Cell, Crop, HarvestResult, Technology, round_half_up
from simulation import Simulation, create_simulation

CROPS: List[Crop] = [
    EMPTY_CROP,
    Crop(id="almonds", name="Almonds", base_price=5000, growth_days=180, water_use=1.4),
    Crop(id="grapes", name="Grapes", base_price=4000, growth_days=150, water_use=1.0),
    Crop(id="tomatoes", name="Tomatoes", base_price=2500, growth_days=90, water_use=1.1),
    Crop(id="lettuce", name="Lettuce", base_price=1500, growth_days=60, water_use=0.8),
    Crop(id="strawberries", name="Strawberries", base_price=3500, growth_days=120, water_use=1.0),
    Crop(id="oranges", name="Oranges", base_price=4500, growth_days=200, water_use=1.2),
    Crop(id="avocados", name="Avocados", base_price=5500, growth_days=220, water_use=1.3),
    Crop(id="rice", name="Rice", base_price=2000, growth_days=120, water_use=1.6),
]


def get_crop_by_id(crop_id: str) -> Optional[Crop]:
    for crop in CROPS:
        if crop.id == crop_id:
            return crop
    return None


def create_technology_tree() -> List[Technology]:
    """Fresh technology list; research flags are per session."""
    return [
        Technology("drip_irrigation", "Drip Irrigation", 15000,
                   effects={"waterEfficiency": 1.3},
                   description="Cuts water use on irrigated plots."),
        Technology("soil_sensors", "Soil Sensors", 10000,
                   effects={"fertilizerEfficiency": 1.2},
                   description="Targets fertilizer where it is needed."),
        Technology("drought_resistant", "Drought-Resistant Varieties", 20000,
                   effects={"droughtResistance": 1.4},
                   description="Crops that sometimes shrug off drought days."),
        Technology("no_till_farming", "No-Till Farming", 12000,
                   effects={"soilHealth": 1.2},
                   description="Immediately improves soil health on every plot."),
        Technology("precision_drones", "Precision Drones", 25000, ("soil_sensors",),
                   effects={"fertilizerEfficiency": 1.2, "waterEfficiency": 1.1}),
        Technology("renewable_energy", "Renewable Energy", 30000,
                   effects={"energyCost": 0.8}),
        Technology("greenhouse", "Greenhouse", 35000, ("drip_irrigation",),
                   effects={"frostProtection": 0.3},
                   description="Shields crops from frost and heat."),
        Technology("ai_irrigation", "AI Irrigation", 40000, ("drip_irrigation", "soil_sensors"),
                   effects={"waterEfficiency": 1.2},
                   description="Irrigation also lifts expected yield."),
        Technology("silvopasture", "Silvopasture", 22000, ("no_till_farming",),
                   effects={"soilHealth": 1.1}),
    ]


class PlotCell:
    """
    Basic plot: grows for the crop's growth days, then waits for harvest.

    Dry spells without irrigation shave expected yield; repeating the same
    crop wears the soil and counts as a consecutive planting.
    """

    def __init__(self, soil_health: float = 80.0):
        self.crop: Crop = EMPTY_CROP
        self.soil_health = soil_health
        self.irrigated = False
        self.fertilized = False
        self.harvest_ready = False
        self.consecutive_plantings = 0
        self.expected_yield = 100.0
        self.days_growing = 0
        self.last_crop_id: Optional[str] = None

    def update(self, water_reserve: float, researched_techs: Sequence[str]) -> str:
        if self.crop.is_empty:
            self.soil_health = min(100.0, self.soil_health + 0.02)  # fallow recovery
            return "empty"
        if self.harvest_ready:
            return "ready"

        self.days_growing += 1
        if water_reserve < 20 and not self.irrigated:
            self.expected_yield = max(10.0, self.expected_yield - 0.5 * self.crop.water_use)

        if self.days_growing >= self.crop.growth_days:
            self.harvest_ready = True
            return HARVEST_READY
        return "growing"

    def plant(self, crop: Crop) -> None:
        if crop.id == self.last_crop_id:
            self.consecutive_plantings += 1
            self.soil_health = max(0.0, self.soil_health - 5.0)
        else:
            self.consecutive_plantings = 0
        self.crop = crop
        self.irrigated = False
        self.fertilized = False
        self.harvest_ready = False
        self.days_growing = 0
        self.expected_yield = 100.0

    def irrigate(self, efficiency: float) -> None:
        self.irrigated = True
        self.expected_yield = min(150.0, self.expected_yield + 10.0 * efficiency)

    def fertilize(self, efficiency: float) -> None:
        self.fertilized = True
        self.soil_health = min(100.0, self.soil_health + 5.0 * efficiency)
        self.expected_yield = min(150.0, self.expected_yield + 5.0 * efficiency)

    def harvest(self, water_reserve: float, market_price: float) -> HarvestResult:
        water_factor = 1.0 if self.irrigated else 0.5 + 0.5 * min(1.0, water_reserve / 50.0)
        yield_percentage = round_half_up(self.expected_yield * water_factor)
        value = round_half_up(self.crop.base_price * yield_percentage / 100.0 * market_price)
        crop_name = self.crop.name

        self.soil_health = max(0.0, self.soil_health - 2.0 * self.crop.water_use)
        self.last_crop_id = self.crop.id
        self.crop = EMPTY_CROP
        self.irrigated = False
        self.fertilized = False
        self.harvest_ready = False
        self.days_growing = 0
        self.expected_yield = 100.0
        return HarvestResult(value=value, crop_name=crop_name, yield_percentage=yield_percentage)


def _stress_crops(grid: Sequence[Sequence[Cell]], amount: float, skip_irrigated: bool = False) -> int:
    stressed = 0
    for row in grid:
        for cell in row:
            if cell.crop.is_empty or (skip_irrigated and cell.irrigated):
                continue
            cell.expected_yield = max(0.0, cell.expected_yield - amount)
            stressed += 1
    return stressed


class ClimateEventGenerator:
    """Random weather, market, policy and technology events."""

    def __init__(
        self,
        rng: np.random.Generator,
        crops: Sequence[Crop] = CROPS,
        technology_ids: Sequence[str] = (),
        days_per_year: int = CONFIG.time.days_per_year
    ):
        self.rng = rng
        self.crops = [crop for crop in crops if not crop.is_empty]
        self.technology_ids = list(technology_ids)
        self.days_per_year = days_per_year

    def _day_after(self, day: int, low: int, high: int) -> int:
        offset = int(self.rng.integers(low, high + 1))
        return (day - 1 + offset) % self.days_per_year + 1

    # ---------- Generation ----------

    def generate_random_event(self, snapshot: Mapping[str, object]) -> Optional[PendingEvent]:
        climate: Dict[str, float] = snapshot["climate"]
        day = int(snapshot["day"])
        weights = {
            EventType.DROUGHT.value: climate["drought_probability"],
            EventType.HEATWAVE.value: climate["heatwave_probability"],
            EventType.RAIN.value: climate["flood_probability"],
            EventType.MARKET.value: 0.3,
            EventType.TECHNOLOGY.value: 0.1,
        }
        kinds = list(weights)
        probabilities = np.array([weights[k] for k in kinds], dtype=np.float64)
        kind = kinds[int(self.rng.choice(len(kinds), p=probabilities / probabilities.sum()))]

        if kind == EventType.DROUGHT.value:
            event = self.schedule_drought(day, climate["drought_probability"])
            event.message = "Forecasters warn of an approaching drought."
            return event
        if kind == EventType.HEATWAVE.value:
            event = self.schedule_heatwave(day)
            event.message = "A heatwave is expected in the coming days."
            return event
        if kind == EventType.RAIN.value:
            event = self.schedule_rain(day)
            event.message = "Heavy rain is in the forecast."
            return event
        if kind == EventType.MARKET.value and self.crops:
            crop = self.crops[int(self.rng.integers(len(self.crops)))]
            change = float(self.rng.uniform(0.7, 1.4))
            direction = "rise" if change >= 1.0 else "fall"
            return PendingEvent(
                type=EventType.MARKET.value,
                trigger_day=self._day_after(day, 3, 14),
                message=f"Market analysts expect {crop.name} prices to {direction}.",
                payload={"crop_id": crop.id, "change": change},
            )

        payload: Dict[str, object] = {"balance_change": int(self.rng.integers(1000, 5001))}
        message = "An agricultural innovation grant program is opening."
        researched = snapshot.get("researched_techs", [])
        candidates = [tech_id for tech_id in self.technology_ids if tech_id not in researched]
        if candidates and self.rng.random() < 0.2:
            payload["tech_id"] = candidates[int(self.rng.integers(len(candidates)))]
            message = "A university extension program is offering free technology trials."
        return PendingEvent(
            type=EventType.TECHNOLOGY.value,
            trigger_day=self._day_after(day, 3, 14),
            message=message,
            payload=payload,
        )

    def schedule_drought(self, day: int, probability: float) -> PendingEvent:
        severity = min(1.0, 0.3 + probability * 4 + float(self.rng.uniform(0.0, 0.3)))
        return PendingEvent(
            type=EventType.DROUGHT.value,
            trigger_day=self._day_after(day, 10, 60),
            duration=int(self.rng.integers(10, 31)),
            severity=severity,
            message="Drought conditions are forecast for this season.",
            is_alert=True,
        )

    def schedule_heatwave(self, day: int) -> PendingEvent:
        return PendingEvent(
            type=EventType.HEATWAVE.value,
            trigger_day=self._day_after(day, 10, 60),
            duration=int(self.rng.integers(3, 11)),
            severity=float(self.rng.uniform(0.4, 0.8)),
            message="A heatwave is forecast for this season.",
            is_alert=True,
        )

    def schedule_frost(self, day: int) -> PendingEvent:
        return PendingEvent(
            type=EventType.FROST.value,
            trigger_day=self._day_after(day, 5, 60),
            severity=float(self.rng.uniform(0.3, 0.7)),
        )

    def schedule_rain(self, day: int) -> PendingEvent:
        return PendingEvent(
            type=EventType.RAIN.value,
            trigger_day=self._day_after(day, 5, 60),
            payload={"amount": int(self.rng.integers(5, 21))},
        )

    def generate_policy_event(self, year: int, farm_health: int) -> PendingEvent:
        if farm_health >= 60:
            change = 2000 + farm_health * 50
            message = f"The state rewards healthy farms with a ${change} conservation incentive."
        else:
            change = -(1000 + (60 - farm_health) * 100)
            message = f"New water-use regulations cost your farm ${-change} in compliance."
        return PendingEvent(
            type=EventType.POLICY.value,
            trigger_day=int(self.rng.integers(2, self.days_per_year + 1)),
            message=message,
            is_alert=change < 0,
            payload={"balance_change": change, "year": year},
        )

    # ---------- Effects ----------

    def apply_rain_event(self, event, grid, water_reserve, researched_techs) -> EventEffect:
        amount = int(event.payload.get("amount", 10))
        return EventEffect(
            message=f"Rainfall replenished {amount}% of water reserves.",
            water_reserve=min(100.0, water_reserve + amount),
        )

    def apply_drought_event(self, event, grid, water_reserve, researched_techs) -> EventEffect:
        if "drought_resistant" in researched_techs and self.rng.random() < 0.25:
            return EventEffect(skipped=True)

        severity = event.severity if event.severity is not None else 0.5
        loss = severity * 3.0
        if "drip_irrigation" in researched_techs:
            loss *= 0.7
        _stress_crops(grid, severity * 0.5, skip_irrigated=True)

        remaining = (event.duration or 1) - 1
        return EventEffect(
            message=f"Drought continues: water reserves fell by {loss:.1f}%.",
            water_reserve=max(0.0, water_reserve - loss),
            continue_event=remaining > 0,
            next_duration=remaining,
            severity=severity,
        )

    def apply_heatwave_event(self, event, grid, water_reserve, researched_techs) -> EventEffect:
        severity = event.severity if event.severity is not None else 0.5
        stress = severity * (0.3 if "greenhouse" in researched_techs else 1.0)
        _stress_crops(grid, stress)

        remaining = (event.duration or 1) - 1
        loss = severity * 2.0
        return EventEffect(
            message=f"Heatwave: crops are stressed and {loss:.1f}% of water evaporated.",
            water_reserve=max(0.0, water_reserve - loss),
            continue_event=remaining > 0,
            next_duration=remaining,
            severity=severity,
        )

    def apply_frost_event(self, event, grid, researched_techs) -> EventEffect:
        severity = event.severity if event.severity is not None else 0.5
        protection = 0.3 if "greenhouse" in researched_techs else 1.0
        damaged = _stress_crops(grid, severity * 20.0 * protection)
        return EventEffect(message=f"Frost damaged {damaged} plots of crops.")

    def apply_market_event(self, event, market_prices, crops) -> EventEffect:
        crop_id = event.payload.get("crop_id")
        change = float(event.payload.get("change", 1.0))
        if crop_id is None:
            return EventEffect(message="Markets were calm.")
        name = next((crop.name for crop in crops if crop.id == crop_id), crop_id)
        new_price = market_prices.get(crop_id, 1.0) * change
        direction = "rose" if change >= 1.0 else "fell"
        return EventEffect(
            message=f"{name} prices {direction} by {abs(change - 1.0) * 100:.0f}%.",
            market_prices={crop_id: new_price},
        )

    def apply_policy_event(self, event, balance) -> EventEffect:
        change = int(event.payload.get("balance_change", 0))
        return EventEffect(message=event.message or "A new farm policy took effect.", balance_change=change)

    def apply_technology_event(self, event, balance, researched_techs) -> EventEffect:
        change = int(event.payload.get("balance_change", 0))
        tech_id = event.payload.get("tech_id")
        if tech_id and tech_id not in researched_techs:
            return EventEffect(
                message=f"A free trial left you with {tech_id.replace('_', ' ')} technology.",
                balance_change=change,
                researched=(tech_id,),
            )
        return EventEffect(message=f"Received a ${change} innovation grant.", balance_change=change)


def create_default_simulation(config: Optional[SimulationConfig] = None, seed: Optional[int] = None) -> Simulation:
    """Session wired with the default crops, technology tree, plots and events."""
    config = config or CONFIG
    technologies = create_technology_tree()
    technology_ids = [tech.id for tech in technologies]
    return create_simulation(
        crops=CROPS,
        technologies=technologies,
        cell_factory=PlotCell,
        generator_factory=lambda rng: ClimateEventGenerator(
            rng, CROPS, technology_ids, config.time.days_per_year
        ),
        config=config,
        seed=seed,
    )
