"""
Autopoiesis Main Simulation Runner
==================================
Headless host for the autopoiesis kernel.

Provides:
- A minimal spatial host (entities approach each other while
  socializing, random-walk otherwise)
- CLI interface
- Result plots
"""

import argparse
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from .config import (
    SimulationConfig, EntityRole, ActivityType,
    create_default_config, create_small_test_config, create_fast_time_config,
)
from .kernel import AutopoiesisKernel
from .rng import SeededRandom

logger = logging.getLogger("Autopoiesis.Main")

SCENARIOS = {
    "default": create_default_config,
    "test": create_small_test_config,
    "fast_time": create_fast_time_config,
}

WORLD_SIZE = (800.0, 600.0)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Timestamped console logging, plus a log file when requested"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


class SpatialHost:
    """
    Moves the two entities around a rectangular world.

    Socializing entities walk toward their companion; everyone else
    drifts in a bounded random walk.
    """

    def __init__(self, kernel: AutopoiesisKernel, speed: float = 60.0,
                 seed: Optional[int] = None, world_size: Tuple[float, float] = WORLD_SIZE):
        self.kernel = kernel
        self.speed = speed  # Pixels per second
        self.world_size = world_size
        self.rng = SeededRandom(None if seed is None else seed + 1)
        self.headings: Dict[EntityRole, float] = {
            role: self.rng.uniform(0.0, 2 * math.pi) for role in EntityRole
        }

    def step(self, delta_ms: float) -> Dict[EntityRole, Tuple[float, float]]:
        seconds = delta_ms / 1000.0
        positions = {}
        for role, entity in self.kernel.entities.items():
            x, y = entity.position
            if entity.is_dead or entity.activity == ActivityType.RESTING:
                positions[role] = (x, y)
                continue

            if entity.activity == ActivityType.SOCIALIZING:
                cx, cy = self.kernel.companion_of(entity).position
                heading = math.atan2(cy - y, cx - x)
                step = min(self.speed * seconds, max(0.0, math.hypot(cx - x, cy - y) - 30.0))
            else:
                heading = self.headings[role] + self.rng.uniform(-0.5, 0.5)
                step = self.speed * 0.5 * seconds
            self.headings[role] = heading

            nx = float(np.clip(x + math.cos(heading) * step, 0.0, self.world_size[0]))
            ny = float(np.clip(y + math.sin(heading) * step, 0.0, self.world_size[1]))
            if nx in (0.0, self.world_size[0]) or ny in (0.0, self.world_size[1]):
                self.headings[role] = heading + math.pi
            positions[role] = (nx, ny)
        return positions


def run_simulation(
    config: Optional[SimulationConfig] = None,
    seconds: float = 600.0,
    tick_ms: Optional[float] = None,
    show_progress: bool = True,
) -> Dict[str, Any]:
    """
    Run a headless simulation.

    Args:
        config: Simulation configuration
        seconds: Simulated wall time to run
        tick_ms: Logic tick length (defaults to the configured tick)
        show_progress: Show a progress bar

    Returns:
        Simulation results dictionary
    """
    if config is None:
        config = create_default_config()
    if tick_ms is None:
        tick_ms = config.time_scales.logic_tick_ms

    kernel = AutopoiesisKernel(config)
    host = SpatialHost(kernel, seed=config.seed)

    results: Dict[str, Any] = {
        "time": [],
        "resonance": [],
        "closeness": [],
        "effects": [],
        "happiness": {role.value: [] for role in EntityRole},
        "energy": {role.value: [] for role in EntityRole},
        "activities": {role.value: [] for role in EntityRole},
        "metrics_time": [],
        "metrics": [],
        "switches": [],
        "pattern_events": [],
    }

    n_ticks = int(math.ceil(seconds * 1000.0 / tick_ms))
    known_patterns = set()
    iterator = tqdm(range(n_ticks), desc="Simulation") if show_progress else range(n_ticks)

    for _ in iterator:
        positions = host.step(tick_ms)
        logic, metrics = kernel.advance(tick_ms, positions)

        t = logic.time / 1000.0
        results["time"].append(t)
        results["resonance"].append(logic.resonance)
        results["closeness"].append(logic.closeness)
        results["effects"].append(logic.effect.value)
        for role in EntityRole:
            results["happiness"][role.value].append(logic.stats[role].happiness)
            results["energy"][role.value].append(logic.stats[role].energy)
            results["activities"][role.value].append(logic.activities[role].value)
        for role, old, new in logic.switches:
            results["switches"].append({"time": t, "entity": role.value,
                                        "from": old.value, "to": new.value})

        if metrics is not None:
            results["metrics_time"].append(t)
            results["metrics"].append(metrics.metrics.to_dict())
            names = {p.name for p in metrics.active_patterns}
            for name in names - known_patterns:
                results["pattern_events"].append({"time": t, "pattern": name, "event": "detected"})
            for name in known_patterns - names:
                results["pattern_events"].append({"time": t, "pattern": name, "event": "faded"})
            known_patterns = names

        if kernel.all_dead():
            logger.info(f"All entities dead at {t:.1f}s, stopping early")
            break

    results["final_state"] = kernel.get_state()
    results["statistics"] = kernel.get_statistics()
    return results


def visualize_simulation(results: Dict[str, Any], output_path: Optional[str] = None):
    """
    Create visualization of simulation results.

    Args:
        results: Results from run_simulation
        output_path: Path to save figure (optional)
    """
    import matplotlib.pyplot as plt

    fig, axes = plt.subplots(2, 2, figsize=(12, 10))
    time = results["time"]

    # Resonance
    axes[0, 0].plot(time, results["resonance"], label="resonance")
    axes[0, 0].plot(time, np.array(results["closeness"]) * 100, alpha=0.5, label="closeness x100")
    axes[0, 0].set_xlabel("Time (s)")
    axes[0, 0].set_ylabel("Resonance")
    axes[0, 0].set_title("Bonding")
    axes[0, 0].legend()

    # Happiness
    for role, values in results["happiness"].items():
        axes[0, 1].plot(time, values, label=role)
    axes[0, 1].set_xlabel("Time (s)")
    axes[0, 1].set_ylabel("Happiness")
    axes[0, 1].set_title("Wellbeing")
    axes[0, 1].legend()

    # System metrics
    if results["metrics"]:
        for name in results["metrics"][0]:
            axes[1, 0].plot(results["metrics_time"], [m[name] for m in results["metrics"]], label=name)
        axes[1, 0].legend(fontsize=8)
    axes[1, 0].set_xlabel("Time (s)")
    axes[1, 0].set_ylabel("Metric")
    axes[1, 0].set_title("System Metrics")

    # Activity timeline
    order = [a.value for a in ActivityType]
    for offset, (role, values) in enumerate(results["activities"].items()):
        axes[1, 1].scatter(time, [order.index(v) + offset * 0.2 for v in values], s=2, label=role)
    axes[1, 1].set_yticks(range(len(order)))
    axes[1, 1].set_yticklabels(order, fontsize=7)
    axes[1, 1].set_xlabel("Time (s)")
    axes[1, 1].set_title("Activities")
    axes[1, 1].legend()

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path)
        print(f"Saved visualization to {output_path}")
    else:
        plt.show()
    plt.close(fig)


def print_config_summary(config: SimulationConfig):
    """Print a summary of the configuration"""
    print("\n" + "="*60)
    print("Autopoiesis Configuration Summary")
    print("="*60)
    print(f"Scenario: {config.scenario_name}")
    print(f"Seed: {config.seed}")
    print()
    print("Decision:")
    print(f"  - Softmax tau: {config.decision.softmax_tau}")
    print(f"  - Personality influence: {config.decision.personality_influence}")
    print(f"  - Change threshold: {config.decision.decision_change_threshold}")
    print(f"  - Inertia bonus: {config.decision.activity_inertia_bonus}")
    print()
    print("Resonance:")
    print(f"  - Bond distance / scale: {config.resonance.bond_distance} / {config.resonance.distance_scale}")
    print(f"  - Bond / separation / stress: {config.resonance.bond_rate} / "
          f"{config.resonance.separation_rate} / {config.resonance.stress_rate}")
    print()
    print("Emergence:")
    print(f"  - Metrics interval: {config.emergence.metrics_update_interval_ms}ms")
    print(f"  - Pattern interval: {config.emergence.pattern_check_interval_ms}ms")
    print(f"  - Threshold / persistence: {config.emergence.pattern_threshold} / "
          f"{config.emergence.pattern_persistence_ms}ms")
    print(f"  - Strength normalization: {config.emergence.strength_normalization}")
    print("="*60 + "\n")


def print_results_summary(results: Dict[str, Any]):
    state = results["final_state"]
    print("\nSimulation complete!")
    print(f"Simulated time: {results['time'][-1] if results['time'] else 0:.1f}s "
          f"(clock {state['clock']}, {state['day_phase']}, {state['weather']})")
    print(f"Final resonance: {state['resonance']:.2f} ({state['effect']})")
    for name, entity in state["entities"].items():
        status = "dead" if entity["is_dead"] else f"{entity['activity']}, {entity['mood']}"
        print(f"  {name}: {status}")
    print(f"Activity switches: {len(results['switches'])}")
    print(f"Active patterns: {', '.join(state['patterns']) or 'none'}")
    print(f"Active loops: {', '.join(state['loops']) or 'none'}")
    print("Metrics:")
    for key, value in state["metrics"].items():
        print(f"  {key}: {value:.3f}")


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Autopoiesis two-entity simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ten simulated minutes with defaults
  python -m autopoiesis.main --seconds 600

  # Reproducible greedy run with a plot
  python -m autopoiesis.main --seed 7 --tau 0.05 --plot results.png

  # A fast simulated day, results as JSON
  python -m autopoiesis.main --scenario fast_time --seconds 300 --output run.json
        """
    )

    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="default",
                        help="Configuration preset")
    parser.add_argument("--config", type=str, help="JSON configuration file (overrides the preset)")
    parser.add_argument("--seconds", type=float, default=600.0, help="Simulated seconds")
    parser.add_argument("--tick-ms", type=float, help="Logic tick length in ms")
    parser.add_argument("--seed", type=int, help="Random seed")

    parser.add_argument("--tau", type=float, help="Softmax temperature")
    parser.add_argument("--personality-influence", type=float, help="Personality weight in [0, 1]")
    parser.add_argument("--strength-normalization", choices=["count", "weight"],
                        help="Pattern strength normalisation")

    parser.add_argument("--output", type=str, help="Output path for JSON results")
    parser.add_argument("--plot", type=str, help="Output path for the results figure")
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-file", type=str, help="Also log to this file")

    args = parser.parse_args()
    setup_logging(args.log_level, args.log_file)

    if args.config:
        with open(args.config) as f:
            config = SimulationConfig.from_dict(json.load(f))
    else:
        config = SCENARIOS[args.scenario]()

    # Apply overrides
    if args.seed is not None:
        config.seed = args.seed
    if args.tau is not None:
        config.decision.softmax_tau = args.tau
    if args.personality_influence is not None:
        config.decision.personality_influence = args.personality_influence
    if args.strength_normalization:
        config.emergence.strength_normalization = args.strength_normalization

    config.validate()
    print_config_summary(config)

    results = run_simulation(
        config=config,
        seconds=args.seconds,
        tick_ms=args.tick_ms,
        show_progress=not args.no_progress,
    )
    print_results_summary(results)

    if args.output:
        results["config"] = config.to_dict()
        with open(args.output, 'w') as f:
            json.dump(results, f, indent=2)
        print(f"Saved results to {args.output}")

    if args.plot:
        visualize_simulation(results, args.plot)


if __name__ == "__main__":
    main()
