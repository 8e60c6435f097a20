"""
Player Actions

Validated plant / irrigate / fertilize / harvest / research operations
against the shared ledger. Every operation follows the same shape:

1. validate the target; on failure record an alert and return failure
   without touching state
2. price the action with the current inflation multiplier
3. check the balance (purchases and research only)
4. deduct, delegate the domain mutation to the cell or technology
5. record a success notice and return success
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from economy import EconomyEngine
from farm import Cell, Crop, Notification, SimulationState, check_tech_prerequisites, find_technology

logger = logging.getLogger(__name__)

AI_IRRIGATION_YIELD_BONUS = 10
MAX_EXPECTED_YIELD = 150


@dataclass(slots=True)
class ActionResult:
    success: bool
    message: str
    amount: int = 0  # Cost paid, or value credited for a harvest
    notifications: List[Notification] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "message": self.message,
            "amount": self.amount,
            "notifications": [n.to_dict() for n in self.notifications],
        }


def _plot_label(row: int, col: int) -> str:
    return f"row {row + 1}, column {col + 1}"


class ActionController:
    """
    Mediates player input against balance, grid and technology state.

    Invoked outside the tick cadence; never overlaps an in-flight tick.
    """

    def __init__(self, economy: EconomyEngine, crops: Sequence[Crop]):
        self.economy = economy
        self.crops_by_id: Dict[str, Crop] = {crop.id: crop for crop in crops}

    # ---------- Helpers ----------

    def _reject(self, state: SimulationState, message: str) -> ActionResult:
        state.add_event(message, True)
        return ActionResult(success=False, message=message, notifications=state.drain_notifications())

    def _accept(self, state: SimulationState, message: str, amount: int, row: Optional[int] = None,
                col: Optional[int] = None) -> ActionResult:
        state.notify("hud")
        if row is not None:
            state.notify("cell", row=row, col=col)
            state.notify("grid")
        state.add_event(message)
        return ActionResult(success=True, message=message, amount=amount,
                            notifications=state.drain_notifications())

    def _cell(self, state: SimulationState, row: int, col: int) -> Optional[Cell]:
        if not state.in_bounds(row, col):
            return None
        return state.grid[row][col]

    # ---------- Actions ----------

    def plant(self, state: SimulationState, row: int, col: int, crop_id: str) -> ActionResult:
        cell = self._cell(state, row, col)
        if cell is None:
            return self._reject(state, f"There is no plot at {_plot_label(row, col)}.")
        crop = self.crops_by_id.get(crop_id)
        if crop is None or crop.is_empty:
            return self._reject(state, f"Unknown crop '{crop_id}'.")

        cost = self.economy.planting_cost(state, crop)
        if state.balance < cost:
            return self._reject(state, f"Cannot afford to plant {crop.name}. Cost: ${cost}")

        state.balance -= cost
        cell.plant(crop)
        return self._accept(state, f"Planted {crop.name} at {_plot_label(row, col)}. Cost: ${cost}", cost, row, col)

    def irrigate(self, state: SimulationState, row: int, col: int) -> ActionResult:
        cell = self._cell(state, row, col)
        if cell is None:
            return self._reject(state, f"There is no plot at {_plot_label(row, col)}.")
        if cell.crop.is_empty:
            return self._reject(state, "Cannot irrigate an empty plot.")
        if cell.irrigated:
            return self._reject(state, "This plot is already irrigated.")

        cost = self.economy.irrigation_cost(state)
        if state.balance < cost:
            return self._reject(state, f"Cannot afford irrigation. Cost: ${cost}")

        state.balance -= cost
        cell.irrigate(state.tech_effect("waterEfficiency"))
        if state.has_technology("ai_irrigation"):
            cell.expected_yield = min(MAX_EXPECTED_YIELD, cell.expected_yield + AI_IRRIGATION_YIELD_BONUS)

        return self._accept(state, f"Irrigated plot at {_plot_label(row, col)}. Cost: ${cost}", cost, row, col)

    def fertilize(self, state: SimulationState, row: int, col: int) -> ActionResult:
        cell = self._cell(state, row, col)
        if cell is None:
            return self._reject(state, f"There is no plot at {_plot_label(row, col)}.")
        if cell.crop.is_empty:
            return self._reject(state, "Cannot fertilize an empty plot.")
        if cell.fertilized:
            return self._reject(state, "This plot is already fertilized.")

        cost = self.economy.fertilizing_cost(state)
        if state.balance < cost:
            return self._reject(state, f"Cannot afford fertilizer. Cost: ${cost}")

        state.balance -= cost
        cell.fertilize(state.tech_effect("fertilizerEfficiency"))
        return self._accept(state, f"Fertilized plot at {_plot_label(row, col)}. Cost: ${cost}", cost, row, col)

    def harvest(self, state: SimulationState, row: int, col: int) -> ActionResult:
        cell = self._cell(state, row, col)
        if cell is None:
            return self._reject(state, f"There is no plot at {_plot_label(row, col)}.")
        if cell.crop.is_empty:
            return self._reject(state, "Nothing to harvest in this plot.")
        if not cell.harvest_ready:
            return self._reject(state, "Crop is not ready for harvest yet.")

        market_price = state.market_prices.get(cell.crop.id, 1.0)
        result = cell.harvest(state.water_reserve, market_price)
        state.balance += result.value

        return self._accept(
            state,
            f"Harvested {result.crop_name} for ${result.value}. Yield: {result.yield_percentage}%",
            result.value, row, col
        )

    def research(self, state: SimulationState, tech_id: str) -> ActionResult:
        tech = find_technology(state.technologies, tech_id)
        if tech is None:
            return self._reject(state, f"Unknown technology '{tech_id}'.")
        if tech.researched or state.has_technology(tech.id):
            return self._reject(state, f"{tech.name} has already been researched.")
        if not check_tech_prerequisites(tech, state.researched_techs):
            return self._reject(state, f"Cannot research {tech.name} - prerequisites not met.")
        if state.balance < tech.cost:
            return self._reject(state, f"Cannot afford to research {tech.name}. Cost: ${tech.cost}")

        state.balance -= tech.cost
        state.add_researched(tech.id)
        self.apply_technology_effects(state, tech.effects)

        state.notify("research")
        return self._accept(state, f"Researched {tech.name} for ${tech.cost}", tech.cost)

    def apply_technology_effects(self, state: SimulationState, effects: Dict[str, float]) -> None:
        """One-time effects applied at research time."""
        soil_multiplier = effects.get("soilHealth")
        if soil_multiplier:
            for _, _, cell in state.cells():
                cell.soil_health = min(100.0, cell.soil_health * soil_multiplier)
            state.notify("grid")
