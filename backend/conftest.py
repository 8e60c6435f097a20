"""
Shared test doubles for the farm simulation tests.
"""

from typing import List, Optional

import numpy as np
import pytest

from events import EventEffect, EventType, PendingEvent
from farm import EMPTY_CROP, HARVEST_READY, Crop, HarvestResult, SimulationState


class FakeCell:
    """Plot that records calls and does nothing clever."""

    def __init__(self, soil_health: float = 80.0, crop: Crop = EMPTY_CROP):
        self.crop = crop
        self.soil_health = soil_health
        self.irrigated = False
        self.fertilized = False
        self.harvest_ready = False
        self.consecutive_plantings = 0
        self.expected_yield = 100.0
        self.becomes_ready = False
        self.update_calls = 0
        self.irrigate_efficiency: Optional[float] = None
        self.harvest_value = 1000

    def update(self, water_reserve, researched_techs):
        self.update_calls += 1
        if self.becomes_ready and not self.harvest_ready:
            self.harvest_ready = True
            return HARVEST_READY
        return "growing"

    def plant(self, crop):
        self.crop = crop

    def irrigate(self, efficiency):
        self.irrigated = True
        self.irrigate_efficiency = efficiency

    def fertilize(self, efficiency):
        self.fertilized = True

    def harvest(self, water_reserve, market_price):
        result = HarvestResult(
            value=int(self.harvest_value * market_price),
            crop_name=self.crop.name,
            yield_percentage=100,
        )
        self.crop = EMPTY_CROP
        self.harvest_ready = False
        return result


class StubGenerator:
    """Deterministic event generator: every effect is predictable."""

    def __init__(self):
        self.random_event: Optional[PendingEvent] = None
        self.skip_drought = False
        self.drought_loss = 5.0

    def generate_random_event(self, snapshot):
        return self.random_event

    def schedule_drought(self, day, probability):
        return PendingEvent(type=EventType.DROUGHT, trigger_day=day + 1, duration=3, severity=0.6)

    def schedule_heatwave(self, day):
        return PendingEvent(type=EventType.HEATWAVE, trigger_day=day + 1, duration=2, severity=0.5)

    def schedule_frost(self, day):
        return PendingEvent(type=EventType.FROST, trigger_day=day + 1, severity=0.5)

    def schedule_rain(self, day):
        return PendingEvent(type=EventType.RAIN, trigger_day=day + 1, payload={"amount": 10})

    def generate_policy_event(self, year, farm_health):
        return PendingEvent(type=EventType.POLICY, trigger_day=100, message="Water rules tightened.",
                            payload={"balance_change": -1500})

    def apply_rain_event(self, event, grid, water_reserve, researched_techs):
        return EventEffect(message="Rain fell.", water_reserve=water_reserve + event.payload.get("amount", 10))

    def _continuing(self, event, water_reserve, label):
        remaining = (event.duration or 1) - 1
        return EventEffect(
            message=f"{label} continues.",
            water_reserve=water_reserve - self.drought_loss,
            continue_event=remaining > 0,
            next_duration=remaining,
            severity=event.severity,
        )

    def apply_drought_event(self, event, grid, water_reserve, researched_techs):
        if self.skip_drought:
            return EventEffect(skipped=True)
        return self._continuing(event, water_reserve, "Drought")

    def apply_heatwave_event(self, event, grid, water_reserve, researched_techs):
        return self._continuing(event, water_reserve, "Heatwave")

    def apply_frost_event(self, event, grid, researched_techs):
        return EventEffect(message="Frost hit the fields.")

    def apply_market_event(self, event, market_prices, crops):
        crop_id = event.payload["crop_id"]
        return EventEffect(message="Prices moved.",
                           market_prices={crop_id: market_prices.get(crop_id, 1.0) * event.payload["change"]})

    def apply_policy_event(self, event, balance):
        return EventEffect(message=event.message, balance_change=int(event.payload["balance_change"]))

    def apply_technology_event(self, event, balance, researched_techs):
        return EventEffect(message="Free trial.", balance_change=500,
                           researched=tuple(event.payload.get("tech_ids", ())))


def make_grid(size: int, soil_health: float = 80.0) -> List[List[FakeCell]]:
    return [[FakeCell(soil_health) for _ in range(size)] for _ in range(size)]


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def state():
    from collaborators import create_technology_tree
    return SimulationState(grid=make_grid(10), technologies=create_technology_tree())


@pytest.fixture
def generator():
    return StubGenerator()
