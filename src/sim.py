import logging
from pathlib import Path
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

import objects as G
from objects import Recipe, Resource, ResourceAmount, SimConfig, Tickable, distance
from logs import LogLine, dump_logs, format_line, merge_logs
from production import ProductionFacility
from transport import Transporter, TransportTask

logger = logging.getLogger(__name__)

# -----------------------------------
# Trades
# -----------------------------------

class Offer(NamedTuple):
    facility: ProductionFacility
    resource: Resource
    amount: int


class Trade(NamedTuple):
    source: ProductionFacility
    destination: ProductionFacility
    resource: Resource
    amount: int
    value: float

# -----------------------------------
# World
# -----------------------------------

class World(Tickable):
    """
    Catalog plus every facility and transporter in the simulation.

    Registered first with the ticker: its tick hands idle transporters their
    next trade before facilities produce and transporters move.
    """

    def __init__(
        self,
        resources: Optional[Dict[str, Resource]] = None,
        recipes: Optional[Dict[str, Recipe]] = None,
        config: Optional[SimConfig] = None,
    ):
        self.resources: Dict[str, Resource] = dict(resources or {})
        self.recipes: Dict[str, Recipe] = dict(recipes or {})
        self.config = config or SimConfig()
        self.facilities: List[ProductionFacility] = []
        self.transporters: List[Transporter] = []

    # ── Catalog ────────────────────────────────────────────────────────────
    def add_resource(self, res: Resource) -> None:
        self.resources[res.id] = res

    def add_recipe(self, rec: Recipe) -> None:
        self.recipes[rec.id] = rec

    def get_resource(self, resource_id: str) -> Resource:
        return self.resources[resource_id]

    def get_recipe(self, recipe_id: str) -> Recipe:
        return self.recipes[recipe_id]

    def add_facility(self, facility: ProductionFacility) -> ProductionFacility:
        self.facilities.append(facility)
        return facility

    def add_transporter(self, transporter: Transporter) -> Transporter:
        self.transporters.append(transporter)
        return transporter

    def create_ticker(self) -> "Ticker":
        # assignment, then production, then movement
        ticker = Ticker()
        ticker.register(self)
        for facility in self.facilities:
            ticker.register(facility)
        for transporter in self.transporters:
            ticker.register(transporter)
        return ticker

    # ── Offers ─────────────────────────────────────────────────────────────
    def get_push_offers(self) -> Iterator[Offer]:
        for facility in self.facilities:
            for resource, amount in facility.get_push_offers():
                yield Offer(facility, resource, amount)

    def get_pull_requests(self) -> Iterator[Offer]:
        for facility in self.facilities:
            for resource, amount in facility.get_pull_requests():
                yield Offer(facility, resource, amount)

    # ── Trade matching ─────────────────────────────────────────────────────
    def _score(self, push: Offer, pull: Offer) -> float:
        dist = distance(push.facility.position, pull.facility.position)
        return pull.resource.base_value / max(dist, self.config.distance_epsilon)

    def _best_match(
        self,
        pulls: List[Offer],
        pushes: List[Offer],
        transporter: Optional[Transporter],
    ) -> Optional[Tuple[Trade, int, int]]:
        faction = transporter.player_id if transporter is not None and self.config.match_factions else None
        best: Optional[Tuple[Trade, int, int]] = None
        for pull_idx, pull in enumerate(pulls):
            if pull.amount <= 0:
                continue
            if faction is not None and pull.facility.player_id != faction:
                continue
            for push_idx, push in enumerate(pushes):
                if push.amount <= 0 or push.resource != pull.resource:
                    continue
                # no self-delivery
                if push.facility is pull.facility:
                    continue
                if faction is not None and push.facility.player_id != faction:
                    continue
                value = self._score(push, pull)
                if best is None or value > best[0].value:
                    trade = Trade(push.facility, pull.facility, pull.resource, min(push.amount, pull.amount), value)
                    best = (trade, pull_idx, push_idx)
        return best

    def find_best_trade(self, transporter: Optional[Transporter] = None) -> Optional[Trade]:
        """Highest value-per-distance (push, pull) pair across every facility right now."""
        match = self._best_match(list(self.get_pull_requests()), list(self.get_push_offers()), transporter)
        return match[0] if match else None

    def assign_transporters_to_best_trades(self, current_tick: int) -> List[TransportTask]:
        """
        Give every idle, operational transporter the best trade available.

        Without ``reserve_within_tick`` offers are recomputed per transporter,
        so two transporters can commit to the same scarce push in one tick.
        With it, one snapshot is taken per tick and each assignment is
        deducted from it.
        """
        assigned: List[TransportTask] = []
        snapshot: Optional[Tuple[List[Offer], List[Offer]]] = None
        if self.config.reserve_within_tick:
            snapshot = (list(self.get_pull_requests()), list(self.get_push_offers()))

        for transporter in self.transporters:
            if transporter.has_active_task() or not transporter.is_operational:
                continue

            if snapshot is None:
                pulls, pushes = list(self.get_pull_requests()), list(self.get_push_offers())
            else:
                pulls, pushes = snapshot
            match = self._best_match(pulls, pushes, transporter)
            if match is None:
                continue
            trade, pull_idx, push_idx = match

            if trade.resource.volume > 0:
                max_amount = int(transporter.max_volume / trade.resource.volume)
            else:
                max_amount = trade.amount
            to_send = min(trade.amount, max_amount)
            if to_send <= 0:
                logger.debug("%s cannot carry %s; skipping", transporter.name, trade.resource.id)
                continue

            if snapshot is not None:
                pulls[pull_idx] = pulls[pull_idx]._replace(amount=pulls[pull_idx].amount - to_send)
                pushes[push_idx] = pushes[push_idx]._replace(amount=pushes[push_idx].amount - to_send)

            task = transporter.assign_task(
                trade.source, trade.destination,
                [ResourceAmount(resource=trade.resource, amount=to_send)], current_tick,
            )
            assigned.append(task)
            logger.debug("tick %d: %s -> %d x %s from %s to %s", current_tick, transporter.name,
                         to_send, trade.resource.id, trade.source.name, trade.destination.name)
        return assigned

    def tick(self, current_tick: int) -> None:
        self.assign_transporters_to_best_trades(current_tick)

    # ── Logs ───────────────────────────────────────────────────────────────
    def get_all_logs(self, since_tick: Optional[int] = None) -> List[LogLine]:
        sources = [f.log_lines for f in self.facilities] + [t.log_lines for t in self.transporters]
        return merge_logs(*sources, since_tick=since_tick)

    def get_all_logs_formatted(self) -> str:
        return "\n".join(format_line(line) for line in self.get_all_logs())

    def export_logs(self, path: Path) -> None:
        dump_logs(self.get_all_logs(), path)

# -----------------------------------
# Ticker
# -----------------------------------

class Ticker:
    """Advances the global tick and drives every tickable in registration order."""

    def __init__(self):
        self.tickables: List[Tickable] = []
        self.current_tick: int = 0

    def register(self, tickable: Tickable) -> None:
        self.tickables.append(tickable)

    def tick(self) -> None:
        self.current_tick += 1
        for tickable in self.tickables:
            tickable.tick(self.current_tick)

    def run_ticks(self, count: int) -> None:
        for _ in range(count):
            self.tick()

# -----------------------------------
# Stock catalog
# -----------------------------------

def default_world(config: Optional[SimConfig] = None) -> World:
    """
    World preloaded with the stock catalog:

        Station   Produces        Needs
        A         metal_bar       ore, energy_cell
        B         computer_part   metal_bar, plastic
        C         silicon_wafer   sand, energy_cell
        D         ai_module       computer_part, silicon_wafer
    """
    world = World(config=config)
    for res in (
        G.Resource(id="ore", display_name="Ore", base_value=1, volume=3.0),
        G.Resource(id="energy_cell", display_name="Energy Cell", base_value=2, volume=0.4),
        G.Resource(id="metal_bar", display_name="Metal Bar", base_value=5, volume=1.5),
        G.Resource(id="wheat", display_name="Wheat", base_value=1, volume=2.0),
        G.Resource(id="flour", display_name="Flour", base_value=1.5, volume=1.0),
        G.Resource(id="bread", display_name="Bread", base_value=3, volume=1.2),
        G.Resource(id="plastic", display_name="Plastic", base_value=2, volume=0.8),
        G.Resource(id="computer_part", display_name="Computer Part", base_value=20, volume=0.2),
        G.Resource(id="silicon_wafer", display_name="Silicon Wafer", base_value=4, volume=0.5),
        G.Resource(id="ai_module", display_name="AI Module", base_value=50, volume=1.0),
        G.Resource(id="sand", display_name="Sand", base_value=0.5, volume=1.0),
    ):
        world.add_resource(res)

    r = world.get_resource
    for rec in (
        G.Recipe(id="recipe_ai_module", output=r("ai_module"), output_amount=1, duration=12,
                 inputs={r("computer_part"): 1, r("silicon_wafer"): 2}, benefit=22),
        G.Recipe(id="recipe_silicon_wafer", output=r("silicon_wafer"), output_amount=1, duration=6,
                 inputs={r("sand"): 3, r("energy_cell"): 1}, benefit=2),
        G.Recipe(id="recipe_metal_bar", output=r("metal_bar"), output_amount=1, duration=10,
                 inputs={r("ore"): 2, r("energy_cell"): 1}, benefit=2),
        G.Recipe(id="recipe_bread", output=r("bread"), output_amount=1, duration=8,
                 inputs={r("wheat"): 2, r("flour"): 1}, benefit=1.5),
        G.Recipe(id="recipe_computer_part", output=r("computer_part"), output_amount=1, duration=10,
                 inputs={r("metal_bar"): 2, r("plastic"): 1}, benefit=8),
    ):
        world.add_recipe(rec)
    return world
