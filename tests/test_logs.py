import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / 'src'))

import objects as G  # type: ignore
import sim  # type: ignore
from logs import (  # type: ignore
    LOG_LINE_ADAPTER,
    DeliveryLog,
    ProductionStartedLog,
    TransportAssignedLog,
    TransporterDamagedLog,
    TransporterDestroyedLog,
    format_line,
    load_logs,
    merge_logs,
)
from production import ProductionFacility  # type: ignore
from schema_env import write_schemas  # type: ignore
from transport import Transporter  # type: ignore


def test_format_production_started():
    line = ProductionStartedLog(tick=7, facility_id=1, resource_id="metal_bar", recipe_id="recipe_metal_bar",
                                duration=10, position=(5.0, 0.0))
    assert format_line(line) == "[Tick 0007] Started job for metal_bar (duration: 10) at <5, 0>"


def test_format_transport_assigned():
    line = TransportAssignedLog(tick=12, transporter_id=3, resource_id="ore", amount=4,
                                from_id=1, from_name="Mine", from_position=(0, 0),
                                to_id=2, to_name="Smelter", to_position=(2.5, -1))
    assert format_line(line) == (
        "[Tick 0012] Transporter 3 assigned to deliver 4 x ore from Mine(<0, 0>) to Smelter(<2.5, -1>)"
    )


def test_format_delivery_lists_cargo():
    wafer = G.Resource(id="silicon_wafer", display_name="Silicon Wafer", base_value=4, volume=0.5)
    line = DeliveryLog(tick=3, transporter_id=9, destination=(1, 2),
                       delivered=[G.ResourceAmount(resource=wafer, amount=2)])
    assert format_line(line) == "[Tick 0003] Transporter 9 delivered to <1, 2>: 2 x silicon_wafer"


def test_format_damage_without_attacker():
    line = TransporterDamagedLog(tick=1, transporter_id=4, damage=12.5, position=(0, 0))
    assert format_line(line) == "[Tick 0001] Transporter 4 damaged (12.5) at <0, 0> by Unknown"


def test_merge_is_stable_and_filterable():
    a = [TransporterDestroyedLog(tick=2, transporter_id=1, position=(0, 0)),
         TransporterDestroyedLog(tick=5, transporter_id=1, position=(0, 0))]
    b = [TransporterDestroyedLog(tick=2, transporter_id=2, position=(0, 0)),
         TransporterDestroyedLog(tick=3, transporter_id=2, position=(0, 0))]

    merged = merge_logs(a, b)
    assert [(l.tick, l.transporter_id) for l in merged] == [(2, 1), (2, 2), (3, 2), (5, 1)]

    recent = merge_logs(a, b, since_tick=3)
    assert [(l.tick, l.transporter_id) for l in recent] == [(3, 2), (5, 1)]


def test_union_parses_by_kind():
    line = LOG_LINE_ADAPTER.validate_python(
        {"kind": "transporter_destroyed", "tick": 3, "transporter_id": 1, "position": [4, 5]}
    )
    assert isinstance(line, TransporterDestroyedLog)
    assert line.position == (4.0, 5.0)


def run_small_world():
    world = sim.default_world()
    metal = world.get_resource("metal_bar")
    depot = world.add_facility(ProductionFacility("Depot", position=(0, 0)))
    depot.get_storage().add(metal, 4)
    world.add_facility(ProductionFacility("Plant", workshops={world.get_recipe("recipe_computer_part"): 1},
                                          position=(6, 0)))
    truck = world.add_transporter(Transporter("Truck", speed_per_tick=3.0))
    world.create_ticker().run_ticks(6)
    truck.take_damage(20, current_tick=6, attacker_name="Raider")
    return world


def test_world_logs_are_chronological():
    world = run_small_world()
    lines = world.get_all_logs()
    assert lines
    assert [l.tick for l in lines] == sorted(l.tick for l in lines)

    text = world.get_all_logs_formatted()
    assert text.splitlines()[0].startswith("[Tick 0001]")
    assert "by Raider" in text

    assert all(l.tick >= 4 for l in world.get_all_logs(since_tick=4))


def test_export_and_reload(tmp_path):
    world = run_small_world()
    path = tmp_path / "events.jsonl"
    world.export_logs(path)

    loaded = load_logs(path)
    assert loaded == world.get_all_logs()
    assert {l.kind for l in loaded} >= {"transport_assigned", "pickup", "delivery", "transporter_damaged"}


def test_write_schemas(tmp_path):
    written = write_schemas(tmp_path)

    union = json.loads((tmp_path / "LogLine" / "schema.json").read_text())
    assert "oneOf" in union or "anyOf" in union
    pickup = json.loads((tmp_path / "PickupLog" / "schema.json").read_text())
    assert "picked_up" in pickup["properties"]
    assert (tmp_path / "WorkshopAddedLog" / "schema.json") in written
    assert not (tmp_path / "_LogLine").exists()
