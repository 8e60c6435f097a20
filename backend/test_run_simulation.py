"""
Tests for the headless simulation runner
"""

import json

import pytest

from run_simulation import main, run_simulation


class TestRunSimulation:
    """Test suite for scripted runs"""

    def test_idle_farm_goes_broke(self):
        """$20000 against $1000/day overhead runs out in the first season"""
        summary = run_simulation(years=1, seed=3, strategy="idle", grid_size=10, verbose=False)

        assert summary["simulation_info"]["went_broke"] is True
        assert summary["final_state"]["balance"] <= 0
        assert summary["final_state"]["year"] == 1
        assert summary["yearly"] == []

    def test_rotation_run_is_serializable(self):
        summary = run_simulation(years=1, seed=3, strategy="rotation", grid_size=3, verbose=False)

        assert summary["simulation_info"]["days_simulated"] > 0
        assert summary["aggregates"]["min_balance"] <= summary["aggregates"]["max_balance"]
        json.dumps(summary)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            run_simulation(strategy="chaos", verbose=False)

    def test_cli_writes_summary(self, tmp_path, capsys):
        summary_path = tmp_path / "out" / "summary.json"

        main(["--years", "1", "--seed", "1", "--strategy", "idle", "--summary", str(summary_path)])

        data = json.loads(summary_path.read_text())
        assert data["simulation_info"]["strategy"] == "idle"
        assert "FARM SIMULATION" in capsys.readouterr().out
