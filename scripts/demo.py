from pathlib import Path
import sys
import logging
from typing import Optional

# Make src package discoverable
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import sim  # type: ignore
import objects as G  # type: ignore
from demand import DemandManager  # type: ignore
from production import ProductionFacility, ResourceStorage, SustainedProductionStrategy  # type: ignore
from transport import Transporter  # type: ignore

import matplotlib.pyplot as plt


def setup_world(config: G.SimConfig) -> sim.World:
    """Four-station chain: raw stock -> metal bars -> computer parts / wafers -> AI modules."""
    world = sim.default_world(config)
    r = world.get_resource
    recipe = world.get_recipe

    raw = ResourceStorage()
    for rid, amount in (("ore", 200), ("energy_cell", 120), ("plastic", 40), ("sand", 150)):
        raw.add(r(rid), amount)
    world.add_facility(ProductionFacility("Depot", raw, position=(0, 0)))

    world.add_facility(ProductionFacility(
        "StationA", workshops={recipe("recipe_metal_bar"): 2}, position=(12, 4),
        pull_strategy=SustainedProductionStrategy(ticks=60),
    ))
    world.add_facility(ProductionFacility(
        "StationB", workshops={recipe("recipe_computer_part"): 1}, position=(20, -6),
    ))
    world.add_facility(ProductionFacility(
        "StationC", workshops={recipe("recipe_silicon_wafer"): 2}, position=(-8, 10),
        pull_strategy=SustainedProductionStrategy(ticks=30),
    ))
    world.add_facility(ProductionFacility(
        "StationD", workshops={recipe("recipe_ai_module"): 1}, position=(6, 18),
    ))

    for i in range(4):
        world.add_transporter(Transporter(f"Hauler{i}", position=(0, 0), speed_per_tick=2.5, max_volume=12))
    return world


def run_simulation(ticks: int = 300, config_path: Optional[Path] = None) -> None:
    """Run the supply chain with a live chart of finished goods and open demand."""
    world = setup_world(G.load_config(config_path))
    ticker = world.create_ticker()
    demand = DemandManager()

    tracked = [world.get_resource(rid) for rid in ("metal_bar", "computer_part", "silicon_wafer", "ai_module")]

    plt.ion()
    fig, (ax_stock, ax_demand) = plt.subplots(2, 1, sharex=True)

    stock_history = {res.id: [] for res in tracked}
    stock_lines = {}
    for res in tracked:
        (line,) = ax_stock.plot([], [], label=res.id)
        stock_lines[res.id] = line
    ax_stock.set_ylabel("Units in storage")
    ax_stock.set_title("Finished goods")
    ax_stock.legend()

    demand_history = {res.id: [] for res in tracked}
    demand_lines = {}
    for res in tracked:
        (line,) = ax_demand.plot([], [], label=res.id)
        demand_lines[res.id] = line
    ax_demand.set_xlabel("Tick")
    ax_demand.set_ylabel("Open pull requests")
    ax_demand.legend()

    for t in range(1, ticks + 1):
        ticker.tick()
        demand.refresh(world.facilities)

        for res in tracked:
            stock_history[res.id].append(sum(f.stock_of(res) for f in world.facilities))
            stock_lines[res.id].set_data(range(1, t + 1), stock_history[res.id])
            demand_history[res.id].append(demand.get_global_demand(res))
            demand_lines[res.id].set_data(range(1, t + 1), demand_history[res.id])

        snapshot = ", ".join(f"{res.id}: {stock_history[res.id][-1]}" for res in tracked)
        busy = sum(1 for tr in world.transporters if tr.has_active_task())
        print(f"Tick {t:>3}: {snapshot} | haulers busy: {busy}")

        ax_stock.relim()
        ax_stock.autoscale_view()
        ax_demand.relim()
        ax_demand.autoscale_view()
        plt.pause(0.001)

    print(world.get_all_logs_formatted())

    plt.ioff()
    plt.show()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_simulation(config_path=Path(sys.argv[1]) if len(sys.argv) > 1 else None)
