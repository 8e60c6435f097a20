"""
Run a headless farm simulation.

Plays the farm with a simple scripted strategy for a number of years and
prints one progress line per simulated year. The run stops early when the
farm goes broke. A JSON summary can be written at the end.
"""

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np

from collaborators import CROPS, create_default_simulation
from config import load_config
from simulation import Simulation

logger = logging.getLogger(__name__)

ROTATION = ["tomatoes", "lettuce", "strawberries", "grapes"]
RESEARCH_ORDER = ["soil_sensors", "no_till_farming", "drip_irrigation", "silvopasture", "precision_drones"]
RESEARCH_RESERVE = 10000  # Balance kept aside before buying technology


def idle_strategy(simulation: Simulation) -> None:
    """Never touches the farm; overhead alone drains the balance."""


def monoculture_strategy(simulation: Simulation) -> None:
    """Harvest whatever is ready and replant tomatoes everywhere."""
    state = simulation.state
    for row, col, cell in list(state.cells()):
        if cell.harvest_ready:
            simulation.harvest(row, col)
        if cell.crop.is_empty:
            simulation.plant(row, col, "tomatoes")


def rotation_strategy(simulation: Simulation) -> None:
    """Rotate four crops per plot, irrigate in dry spells and buy soil technology."""
    state = simulation.state
    for row, col, cell in list(state.cells()):
        if cell.harvest_ready:
            simulation.harvest(row, col)
        if cell.crop.is_empty:
            last = getattr(cell, "last_crop_id", None)
            index = (ROTATION.index(last) + 1) if last in ROTATION else (row + col)
            simulation.plant(row, col, ROTATION[index % len(ROTATION)])
        elif state.water_reserve < 30 and not cell.irrigated:
            simulation.irrigate(row, col)

    for tech_id in RESEARCH_ORDER:
        if tech_id in state.researched_techs:
            continue
        tech = next(t for t in state.technologies if t.id == tech_id)
        if state.balance - tech.cost >= RESEARCH_RESERVE:
            simulation.research(tech_id)
        break


STRATEGIES: Dict[str, Callable[[Simulation], None]] = {
    "idle": idle_strategy,
    "monoculture": monoculture_strategy,
    "rotation": rotation_strategy,
}


def run_simulation(
    years: int = 5,
    seed: Optional[int] = None,
    strategy: str = "rotation",
    grid_size: Optional[int] = None,
    verbose: bool = True
) -> Dict[str, object]:
    """
    Play `years` simulated years and return a summary.

    Args:
        years: Number of years to simulate
        seed: RNG seed for a reproducible run
        strategy: One of STRATEGIES
        grid_size: Overrides the configured grid size
        verbose: Print a progress line per year
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown strategy '{strategy}', expected one of {sorted(STRATEGIES)}")
    if years < 1:
        raise ValueError(f"years must be >= 1, got {years}")

    config = load_config()
    if grid_size is not None:
        config.farm.grid_size = grid_size
        config.__post_init__()

    simulation = create_default_simulation(config, seed=seed)
    play = STRATEGIES[strategy]
    end_year = simulation.state.year + years

    balances: List[int] = []
    water: List[float] = []
    yearly: List[Dict[str, object]] = []
    alerts = 0
    days = 0

    if verbose:
        print("Year | Balance    | Water | Health | Score | Techs")
        print("-" * 56)

    start_time = time.time()
    while not simulation.should_terminate(end_year):
        play(simulation)
        year_before = simulation.state.year
        notifications = simulation.advance_day()
        days += 1
        alerts += sum(1 for n in notifications if n.channel == "event" and n.is_alert)

        state = simulation.state
        balances.append(state.balance)
        water.append(state.water_reserve)

        if state.year != year_before:
            score = state.sustainability_score
            row = {
                "year": year_before,
                "balance": state.balance,
                "farm_value": state.farm_value,
                "farm_health": state.farm_health,
                "sustainability": dict(score) if score else None,
                "researched": len(state.researched_techs),
            }
            yearly.append(row)
            if verbose:
                print(f"{year_before:4d} | ${state.balance:9,d} | {state.water_reserve:5.1f} | "
                      f"{state.farm_health:6d} | {score.get('total', 0):5d} | {len(state.researched_techs):5d}")

    # Auto-terminate: freeze the session once the run is over
    if not simulation.state.paused:
        simulation.toggle_pause()
    logger.info(f"Run finished after {days} days in year {simulation.state.year}")

    elapsed = time.time() - start_time
    balance_series = np.array(balances, dtype=np.float64)
    water_series = np.array(water, dtype=np.float64)
    state = simulation.state

    summary = {
        "simulation_info": {
            "strategy": strategy,
            "seed": seed,
            "grid_size": state.grid_size,
            "years_requested": years,
            "days_simulated": days,
            "went_broke": state.balance <= 0,
            "total_simulation_time_seconds": elapsed,
        },
        "final_state": {
            "year": state.year,
            "day": state.day,
            "season": state.season.value,
            "balance": state.balance,
            "farm_value": state.farm_value,
            "farm_health": state.farm_health,
            "water_reserve": state.water_reserve,
            "overhead_cost_per_cell": state.overhead_cost_per_cell,
            "researched_techs": list(state.researched_techs),
            "planted_cells": sum(1 for _, _, cell in state.cells() if not cell.crop.is_empty),
        },
        "aggregates": {
            "min_balance": float(balance_series.min()) if days else float(state.balance),
            "max_balance": float(balance_series.max()) if days else float(state.balance),
            "mean_water_reserve": float(water_series.mean()) if days else state.water_reserve,
            "alerts": alerts,
        },
        "yearly": yearly,
        "crop_catalogue": [crop.id for crop in CROPS if not crop.is_empty],
    }
    return summary


def main(argv: Optional[List[str]] = None) -> Dict[str, object]:
    parser = argparse.ArgumentParser(description="Run a headless farm simulation.")
    parser.add_argument("--years", type=int, default=5, help="Number of years to simulate")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed")
    parser.add_argument("--strategy", choices=sorted(STRATEGIES), default="rotation",
                        help="Scripted player strategy")
    parser.add_argument("--grid-size", type=int, default=None, help="Farm grid size (NxN)")
    parser.add_argument("--summary", type=str, default=None, help="Write a JSON summary to this path")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)

    print("=" * 56)
    print(f"FARM SIMULATION ({args.strategy}, {args.years} years)")
    print("=" * 56)

    summary = run_simulation(
        years=args.years,
        seed=args.seed,
        strategy=args.strategy,
        grid_size=args.grid_size,
    )

    info = summary["simulation_info"]
    final = summary["final_state"]
    print()
    if info["went_broke"]:
        print(f"Farm went broke in year {final['year']} after {info['days_simulated']} days.")
    else:
        print(f"Completed {args.years} years. Final balance: ${final['balance']:,}")

    if args.summary:
        summary_path = Path(args.summary)
        summary_path.parent.mkdir(parents=True, exist_ok=True)
        with open(summary_path, "w") as f:
            json.dump(summary, f, indent=2)
        print(f"Summary saved to: {summary_path}")

    return summary


if __name__ == "__main__":
    main()
