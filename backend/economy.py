"""
Farm Economy Engine

Daily overhead, inflation, action pricing, market price drift and
sustainability subsidies.

Two inflation mechanisms coexist and are kept separate on purpose:
- overhead per cell compounds in place once per year (rounded each time)
- action costs are priced fresh from year 1 as (1 + rate) ** (year - 1)

All randomness comes from the injected generator.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np

from config import CONFIG, EconomyConfig, FarmConfig
from farm import Crop, SimulationState, Technology, round_half_up

logger = logging.getLogger(__name__)


class EconomyEngine:
    """
    Applies all money flows that are not player purchases.

    Holds configuration and the random source only; every operation reads
    and writes the `SimulationState` it is given.
    """

    def __init__(
        self,
        rng: np.random.Generator,
        crops: Sequence[Crop],
        config: Optional[EconomyConfig] = None,
        farm_config: Optional[FarmConfig] = None
    ):
        self.rng = rng
        self.crops = list(crops)
        self.config = config or CONFIG.economy
        self.farm_config = farm_config or CONFIG.farm

    @property
    def tradable_crops(self):
        return [crop for crop in self.crops if not crop.is_empty]

    # ---------- Overhead & Inflation ----------

    def daily_overhead(self, state: SimulationState) -> int:
        return state.cell_count * state.overhead_cost_per_cell

    def charge_overhead(self, state: SimulationState) -> int:
        """
        Deduct the daily overhead unconditionally.

        Insufficient funds never block this charge; the balance goes negative
        and an alert documents the debt.
        """
        overhead = self.daily_overhead(state)
        could_afford = state.balance >= overhead
        state.balance -= overhead
        if could_afford:
            logger.debug(f"Paid daily overhead: ${overhead}")
        else:
            state.add_event(f"You went into debt paying overhead: -${overhead}", True)
        return overhead

    def apply_annual_inflation(self, state: SimulationState) -> int:
        """Compound the per-cell overhead in place. Never decreases it."""
        inflated = round_half_up(state.overhead_cost_per_cell * (1 + state.annual_inflation_rate))
        state.overhead_cost_per_cell = max(state.overhead_cost_per_cell, inflated)
        logger.debug(f"Overhead per cell is now ${state.overhead_cost_per_cell}")
        return state.overhead_cost_per_cell

    def inflation_multiplier(self, state: SimulationState) -> float:
        """Year-indexed cost factor: (1 + rate) ** (year - 1)."""
        return (1 + state.annual_inflation_rate) ** (state.year - 1)

    # ---------- Action Pricing ----------

    def planting_cost(self, state: SimulationState, crop: Crop) -> int:
        return round_half_up(
            crop.base_price * self.config.planting_cost_fraction * self.inflation_multiplier(state)
        )

    def irrigation_cost(self, state: SimulationState) -> int:
        return round_half_up(self.config.irrigation_base_cost * self.inflation_multiplier(state))

    def fertilizing_cost(self, state: SimulationState) -> int:
        return round_half_up(self.config.fertilize_base_cost * self.inflation_multiplier(state))

    # ---------- Market Prices ----------

    def initialize_market_prices(self, state: SimulationState) -> Dict[str, float]:
        """Give every tradable crop a fresh multiplier in the initial range."""
        for crop in self.tradable_crops:
            state.set_market_price(
                crop.id,
                self.rng.uniform(self.config.initial_price_min, self.config.initial_price_max)
            )
        return state.market_prices

    def fluctuate_market_prices(self, state: SimulationState) -> Dict[str, float]:
        """Multiplicative random walk, clamped to the price bounds."""
        for crop in self.tradable_crops:
            change = self.rng.uniform(self.config.seasonal_drift_min, self.config.seasonal_drift_max)
            current = state.market_prices.get(crop.id, 1.0)
            state.set_market_price(crop.id, current * change)
        return state.market_prices

    # ---------- Subsidy ----------

    def subsidy_base(self, sustainability_total: int) -> int:
        for threshold, amount in self.config.subsidy_tiers:
            if sustainability_total >= threshold:
                return amount
        return 0

    def distribute_subsidy(self, state: SimulationState, sustainability_total: int) -> int:
        """
        Grant the year-end subsidy for a sustainability total.

        Returns the amount credited (0 when no tier is reached).
        """
        base = self.subsidy_base(sustainability_total)
        factor = self.rng.uniform(self.config.subsidy_factor_min, self.config.subsidy_factor_max)

        if base > 0:
            subsidy = round_half_up(base * factor)
            state.balance += subsidy
            state.add_event(f"Received a subsidy of ${subsidy} for your sustainability efforts.")
            state.notify("hud")
            return subsidy

        state.add_event("No subsidies granted this year due to low sustainability score.")
        return 0

    # ---------- Farm Value ----------

    def calculate_farm_value(self, state: SimulationState, technologies: Sequence[Technology]) -> int:
        """Land value plus standing crops plus retained research value."""
        land = state.cell_count * self.farm_config.land_value_per_cell
        crops = sum(
            cell.crop.base_price * cell.expected_yield / 100.0
            for _, _, cell in state.cells()
            if not cell.crop.is_empty
        )
        research = sum(tech.cost for tech in technologies if tech.id in state.researched_techs)
        return round_half_up(land + crops + research * self.farm_config.technology_value_retention)

    def update_farm_value(self, state: SimulationState) -> int:
        state.farm_value = self.calculate_farm_value(state, state.technologies)
        return state.farm_value
