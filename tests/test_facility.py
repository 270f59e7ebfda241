import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / 'src'))

import sim  # type: ignore
from logs import ProductionStartedLog, TransportFailedLog, WorkshopAddedLog  # type: ignore
from production import (  # type: ignore
    HighestBenefitProductionStrategy,
    ProductionFacility,
    ProductionModule,
    ResourceStorage,
)
from transport import Transporter  # type: ignore


def setup_metal_works(ore, energy, workshops=1):
    world = sim.default_world()
    storage = ResourceStorage()
    storage.add(world.get_resource("ore"), ore)
    storage.add(world.get_resource("energy_cell"), energy)
    recipe = world.get_recipe("recipe_metal_bar")
    facility = ProductionFacility("MetalWorks", storage, {recipe: workshops}, position=(5, 0))
    ticker = sim.Ticker()
    ticker.register(facility)
    return world, facility, ticker


def started(facility, recipe_id=None):
    return [l for l in facility.log_lines
            if isinstance(l, ProductionStartedLog) and (recipe_id is None or l.recipe_id == recipe_id)]


def test_single_job_completes_after_duration():
    world, facility, ticker = setup_metal_works(ore=2, energy=1)
    metal = world.get_resource("metal_bar")

    ticker.run_ticks(10)
    assert facility.stock_of(metal) == 0

    ticker.run_ticks(1)
    assert facility.stock_of(metal) == 1

    # inputs exhausted; no second bar ever appears
    ticker.run_ticks(19)
    assert facility.stock_of(metal) == 1
    assert len(started(facility)) == 1


def test_spare_workshops_idle_without_inputs():
    world, facility, ticker = setup_metal_works(ore=4, energy=1, workshops=5)

    ticker.run_ticks(11)

    assert facility.stock_of(world.get_resource("metal_bar")) == 1
    assert facility.stock_of(world.get_resource("ore")) == 2
    assert facility.stock_of(world.get_resource("energy_cell")) == 0
    assert len(started(facility)) == 1


def test_parallel_workshops_run_together():
    world, facility, ticker = setup_metal_works(ore=8, energy=4, workshops=2)
    metal = world.get_resource("metal_bar")

    ticker.run_ticks(1)
    recipe = world.get_recipe("recipe_metal_bar")
    assert len(facility.get_production_jobs()[recipe]) == 2

    ticker.run_ticks(10)
    assert facility.stock_of(metal) == 2
    # freed workshops restart in the same tick they complete
    assert len(facility.get_production_jobs()[recipe]) == 2

    ticker.run_ticks(10)
    assert facility.stock_of(metal) == 4


def test_running_jobs_never_exceed_workshops():
    world, facility, ticker = setup_metal_works(ore=100, energy=50, workshops=3)
    recipe = world.get_recipe("recipe_metal_bar")
    for _ in range(60):
        ticker.tick()
        assert len(facility.get_production_jobs()[recipe]) <= facility.get_workshops()[recipe]


def test_output_completed_this_tick_feeds_other_recipes_same_tick():
    world = sim.default_world()
    r = world.get_resource
    computer = world.get_recipe("recipe_computer_part")
    metal = world.get_recipe("recipe_metal_bar")
    storage = ResourceStorage()
    storage.add(r("ore"), 2)
    storage.add(r("energy_cell"), 1)
    storage.add(r("plastic"), 1)
    storage.add(r("metal_bar"), 1)
    # computer parts are listed first, so they only see the new bar if every
    # job advanced before any recipe tried to start
    facility = ProductionFacility("Assembly", storage, {computer: 1, metal: 1})
    ticker = sim.Ticker()
    ticker.register(facility)

    ticker.run_ticks(11)

    jobs = facility.get_production_jobs()
    assert len(jobs[computer]) == 1
    assert [l.tick for l in started(facility, "recipe_computer_part")] == [11]
    assert facility.stock_of(r("metal_bar")) == 0


def test_push_offers_exclude_inputs_and_empty_stock():
    world = sim.default_world()
    r = world.get_resource
    storage = ResourceStorage()
    storage.add(r("ore"), 5)
    storage.add(r("metal_bar"), 3)
    storage.add(r("bread"), 0)
    facility = ProductionFacility("MetalWorks", storage, {world.get_recipe("recipe_metal_bar"): 1})

    offers = list(facility.get_push_offers())
    assert offers == [(r("metal_bar"), 3)]


def test_add_workshops_is_additive_and_logged():
    world = sim.default_world()
    recipe = world.get_recipe("recipe_metal_bar")
    facility = ProductionFacility("MetalWorks", position=(2, 3))

    facility.add_workshops(recipe, 1, tick=4)
    facility.add_workshops(recipe, 2, tick=5)

    assert facility.get_workshops()[recipe] == 3
    added = [l for l in facility.log_lines if isinstance(l, WorkshopAddedLog)]
    assert [(l.tick, l.amount, l.resource_id) for l in added] == [(4, 1, "metal_bar"), (5, 2, "metal_bar")]
    assert added[0].position == (2.0, 3.0)

    with pytest.raises(ValueError):
        facility.add_workshops(recipe, 0)


def test_workshops_added_later_start_producing():
    world = sim.default_world()
    storage = ResourceStorage()
    storage.add(world.get_resource("ore"), 2)
    storage.add(world.get_resource("energy_cell"), 1)
    facility = ProductionFacility("MetalWorks", storage)
    ticker = sim.Ticker()
    ticker.register(facility)

    ticker.run_ticks(3)
    assert started(facility) == []

    facility.add_workshops(world.get_recipe("recipe_metal_bar"), 1, tick=3)
    ticker.run_ticks(1)
    assert [l.tick for l in started(facility)] == [4]


def test_negative_workshop_count_rejected():
    world = sim.default_world()
    with pytest.raises(ValueError):
        ProductionFacility("Broken", workshops={world.get_recipe("recipe_metal_bar"): -1})


def test_ticks_until_next_event():
    world, facility, ticker = setup_metal_works(ore=2, energy=1)
    # startable right now
    assert facility.get_ticks_until_next_event() == 0

    ticker.run_ticks(1)
    assert facility.get_ticks_until_next_event() == 10

    ticker.run_ticks(10)
    # nothing running and nothing startable
    assert facility.get_ticks_until_next_event() is None


def test_ticks_until_next_event_without_workshops():
    facility = ProductionFacility("Depot")
    assert facility.get_ticks_until_next_event() is None


def test_failed_export_leaves_storage_untouched():
    world, facility, _ = setup_metal_works(ore=2, energy=1)
    ore = world.get_resource("ore")
    truck = Transporter("Truck")

    assert facility.try_export(ore, 5, 3, truck) is False
    assert facility.stock_of(ore) == 2
    failed = [l for l in facility.log_lines if isinstance(l, TransportFailedLog)]
    assert len(failed) == 1
    assert (failed[0].tick, failed[0].amount, failed[0].facility_name) == (3, 5, "MetalWorks")


def setup_flexible_facility():
    world = sim.default_world()
    r = world.get_resource
    storage = ResourceStorage()
    storage.add(r("ore"), 2)
    storage.add(r("energy_cell"), 2)
    storage.add(r("sand"), 3)
    facility = ProductionFacility("Foundry", storage)
    module = ProductionModule(
        [world.get_recipe("recipe_metal_bar"), world.get_recipe("recipe_silicon_wafer")],
        HighestBenefitProductionStrategy(),
    )
    instance = facility.add_production_module(module)
    ticker = sim.Ticker()
    ticker.register(facility)
    return world, facility, instance, ticker


def test_flexible_workshop_switches_recipes():
    world, facility, instance, ticker = setup_flexible_facility()
    r = world.get_resource

    ticker.run_ticks(1)
    assert instance.active_job.recipe.id == "recipe_metal_bar"
    assert facility.get_ticks_until_next_event() == 10

    ticker.run_ticks(10)
    assert facility.stock_of(r("metal_bar")) == 1
    # the only recipe still startable takes over in the same tick
    assert instance.active_job.recipe.id == "recipe_silicon_wafer"

    ticker.run_ticks(6)
    assert facility.stock_of(r("silicon_wafer")) == 1
    assert instance.active_job is None

    ticker.run_ticks(2)
    assert instance.time_since_last_started == 3
    assert [l.recipe_id for l in started(facility)] == ["recipe_metal_bar", "recipe_silicon_wafer"]


def test_flexible_inputs_are_not_pushed():
    world, facility, _, _ = setup_flexible_facility()
    facility.get_storage().add(world.get_resource("bread"), 4)

    offered = {res.id for res, _ in facility.get_push_offers()}
    assert offered == {"bread"}


def test_running_flexible_job_finishes_after_fixed_workshops_added():
    world = sim.default_world()
    r = world.get_resource
    storage = ResourceStorage()
    storage.add(r("ore"), 2)
    storage.add(r("energy_cell"), 1)
    facility = ProductionFacility("Foundry", storage)
    instance = facility.add_production_module(ProductionModule([world.get_recipe("recipe_metal_bar")]))
    ticker = sim.Ticker()
    ticker.register(facility)

    ticker.run_ticks(1)
    assert instance.active_job is not None

    facility.add_workshops(world.get_recipe("recipe_computer_part"), 1, tick=1)
    assert facility.get_ticks_until_next_event() == 10

    ticker.run_ticks(10)
    assert facility.stock_of(r("metal_bar")) == 1
    assert instance.active_job is None

    # fixed workshops now own the facility; the idle instance stays idle
    storage.add(r("ore"), 2)
    storage.add(r("energy_cell"), 1)
    ticker.run_ticks(20)
    assert instance.active_job is None
    assert len(started(facility, "recipe_metal_bar")) == 1
    assert facility.stock_of(r("metal_bar")) == 1
    assert facility.get_ticks_until_next_event() is None
