"""
Sustainability Scoring

Pure functions of the farm grid and researched technologies. Nothing here
mutates state.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from config import CONFIG, SustainabilityConfig
from farm import Cell, clamp, round_half_up


@dataclass(frozen=True, slots=True)
class SustainabilityScore:
    total: int
    soil_score: int
    diversity_score: int
    tech_score: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "soil_score": self.soil_score,
            "diversity_score": self.diversity_score,
            "tech_score": self.tech_score,
        }


class SustainabilityScorer:
    """
    Computes the weighted soil / crop diversity / technology score.

    Args:
        crop_type_count: Number of crop types in the catalogue, including
            the empty crop type.
    """

    def __init__(self, crop_type_count: int, config: Optional[SustainabilityConfig] = None):
        self.crop_type_count = crop_type_count
        self.config = config or CONFIG.sustainability

    def score(self, grid: Sequence[Sequence[Cell]], researched_techs: Sequence[str]) -> SustainabilityScore:
        cells = [cell for row in grid for cell in row]
        soil = self.soil_score(cells)
        diversity = self.diversity_score(cells)
        tech = self.tech_score(researched_techs)
        return SustainabilityScore(
            total=self.combine(soil, diversity, tech),
            soil_score=soil,
            diversity_score=diversity,
            tech_score=tech,
        )

    def combine(self, soil_score: int, diversity_score: int, tech_score: int) -> int:
        return round_half_up(
            soil_score * self.config.soil_weight
            + diversity_score * self.config.diversity_weight
            + tech_score * self.config.tech_weight
        )

    def soil_score(self, cells: List[Cell]) -> int:
        if not cells:
            return 0
        return round_half_up(float(np.mean([cell.soil_health for cell in cells])))

    def diversity_score(self, cells: List[Cell]) -> int:
        """
        Reward many distinct crops evenly spread, penalize a dominant crop
        and repeated same-crop plantings.
        """
        planted = [cell for cell in cells if not cell.crop.is_empty]
        total_crops = len(planted)
        if total_crops == 0:
            return 0

        crop_counts = Counter(cell.crop.id for cell in planted)
        monocrop_penalty = sum(
            cell.consecutive_plantings * self.config.monocrop_penalty_per_planting
            for cell in planted
            if cell.consecutive_plantings > 0
        )

        max_possible_crops = min(total_crops, self.crop_type_count - 1)
        if max_possible_crops <= 0:
            return 0
        raw_diversity = (len(crop_counts) / max_possible_crops) * 100
        dominant_share = max(crop_counts.values()) / total_crops
        distribution_penalty = dominant_share * self.config.distribution_penalty_scale

        return round_half_up(max(
            0.0,
            raw_diversity - distribution_penalty - (monocrop_penalty / total_crops)
        ))

    def tech_score(self, researched_techs: Sequence[str]) -> int:
        points = self.config.tech_points
        max_score = len(points) * 100
        raw = sum(value for tech_id, value in points.items() if tech_id in researched_techs)
        return round_half_up((raw / max_score) * 100)


def calculate_farm_health(
    grid: Sequence[Sequence[Cell]],
    water_reserve: float,
    config: Optional[SustainabilityConfig] = None
) -> int:
    """Blend of average soil health and water reserve, 0-100."""
    config = config or CONFIG.sustainability
    soil = [cell.soil_health for row in grid for cell in row]
    avg_soil = float(np.mean(soil)) if soil else 0.0
    health = avg_soil * config.health_soil_weight + water_reserve * config.health_water_weight
    return round_half_up(clamp(health, 0.0, 100.0))
