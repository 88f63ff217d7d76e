"""
Tests for the headless runner in autopoiesis/main.py
"""

import json

import matplotlib
matplotlib.use("Agg")

from autopoiesis.config import ActivityType, EntityRole, create_small_test_config
from autopoiesis.kernel import AutopoiesisKernel
from autopoiesis.main import SpatialHost, run_simulation, visualize_simulation, WORLD_SIZE


class TestSpatialHost:
    """Tests for the minimal movement model"""

    def test_socializing_approaches(self, test_config):
        """A socializing entity closes the distance to its companion"""
        kernel = AutopoiesisKernel(test_config)
        host = SpatialHost(kernel, seed=1)
        circle = kernel.entities[EntityRole.CIRCLE]
        circle.activity = ActivityType.SOCIALIZING
        square = kernel.entities[EntityRole.SQUARE].position

        before = kernel.resonance_engine.distance(circle.position, square)
        positions = host.step(1000.0)
        after = kernel.resonance_engine.distance(positions[EntityRole.CIRCLE], square)
        assert after < before

    def test_resting_stays_put(self, test_config):
        kernel = AutopoiesisKernel(test_config)
        host = SpatialHost(kernel, seed=1)
        kernel.entities[EntityRole.SQUARE].activity = ActivityType.RESTING
        positions = host.step(1000.0)
        assert positions[EntityRole.SQUARE] == kernel.entities[EntityRole.SQUARE].position

    def test_stays_in_world(self, test_config):
        """Random walks never leave the world rectangle"""
        kernel = AutopoiesisKernel(test_config)
        host = SpatialHost(kernel, speed=5000.0, seed=3)
        for _ in range(50):
            positions = host.step(1000.0)
            kernel.set_positions(positions)
            for x, y in positions.values():
                assert 0.0 <= x <= WORLD_SIZE[0]
                assert 0.0 <= y <= WORLD_SIZE[1]


class TestRunSimulation:
    """Tests for run_simulation"""

    def test_short_run(self):
        results = run_simulation(create_small_test_config(), seconds=5.0, tick_ms=250.0,
                                 show_progress=False)
        assert len(results["time"]) == 20
        assert results["time"][-1] == 5.0
        assert len(results["happiness"]["circle"]) == 20
        assert results["metrics"]
        assert all(0.0 <= r <= 100.0 for r in results["resonance"])
        json.dumps(results)

    def test_plot_saved(self, tmp_path):
        results = run_simulation(create_small_test_config(), seconds=2.0, show_progress=False)
        output = tmp_path / "run.png"
        visualize_simulation(results, str(output))
        assert output.exists()
