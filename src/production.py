from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, NonNegativeInt

from objects import Entity, Position, Recipe, Resource, ResourceAmount, ResourceRequest, Tickable
from logs import (
    ProductionCompletedLog,
    ProductionStartedLog,
    TransportFailedLog,
    TransportReceivedLog,
    TransportSentLog,
    WorkshopAddedLog,
)

if TYPE_CHECKING:
    from transport import Transporter

logger = logging.getLogger(__name__)


def _require_non_negative(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")

# ────────────────────────────────────────────────────────────────────────────
# Storage
# ────────────────────────────────────────────────────────────────────────────

class ResourceStorage(BaseModel):
    """
    On-hand inventory of one facility plus the amounts promised to it by
    transport tasks that have not arrived yet. Incoming stock is advisory and
    never consumable.
    """

    resources: Dict[Resource, NonNegativeInt] = Field(default_factory=dict)
    incoming: Dict[Resource, NonNegativeInt] = Field(default_factory=dict)

    def add(self, resource: Resource, amount: int) -> None:
        _require_non_negative(amount)
        self.resources[resource] = self.resources.get(resource, 0) + amount

        # physical arrival settles the matching reservation
        reserved = self.incoming.get(resource)
        if reserved is None:
            return
        remaining = reserved - min(amount, reserved)
        if remaining <= 0:
            del self.incoming[resource]
        else:
            self.incoming[resource] = remaining

    def consume(self, resource: Resource, amount: int) -> bool:
        _require_non_negative(amount)
        current = self.resources.get(resource, 0)
        if current < amount:
            return False
        self.resources[resource] = current - amount
        return True

    def mark_incoming(self, resource: Resource, amount: int) -> None:
        _require_non_negative(amount)
        self.incoming[resource] = self.incoming.get(resource, 0) + amount

    def get_amount(self, resource: Resource) -> int:
        return self.resources.get(resource, 0)

    def get_incoming_amount(self, resource: Resource) -> int:
        return self.incoming.get(resource, 0)

    def get_total_including_incoming(self, resource: Resource) -> int:
        return self.get_amount(resource) + self.get_incoming_amount(resource)

    def get_all(self) -> Dict[Resource, int]:
        return dict(self.resources)

    def get_all_incoming(self) -> Dict[Resource, int]:
        return dict(self.incoming)

    def clone(self) -> ResourceStorage:
        return ResourceStorage(resources=dict(self.resources), incoming=dict(self.incoming))


class ProductionJob(BaseModel):
    recipe: Recipe
    elapsed: int = 0

    @property
    def remaining(self) -> int:
        return self.recipe.duration - self.elapsed

# ────────────────────────────────────────────────────────────────────────────
# Pull request strategies
# ────────────────────────────────────────────────────────────────────────────

class PullRequestStrategy:
    """Decides how much of each input a facility currently wants delivered."""

    def get_requests(self, facility: ProductionFacility) -> Iterator[Tuple[Resource, int]]:
        raise NotImplementedError


class DefaultPullRequestStrategy(PullRequestStrategy):
    """Ask for just enough of each input to start one more job per recipe."""

    def get_requests(self, facility: ProductionFacility) -> Iterator[Tuple[Resource, int]]:
        storage = facility.get_storage()
        for recipe in facility.get_workshops():
            for resource, per_job in recipe.inputs.items():
                current = storage.get_total_including_incoming(resource)
                if current < per_job:
                    yield resource, per_job - current


class SustainedProductionStrategy(PullRequestStrategy):
    """
    Keep every workshop busy for a planning horizon of ``ticks``.

    Planning is against on-hand stock only; reservations in flight are not
    counted.
    """

    def __init__(self, ticks: int):
        if ticks < 0:
            raise ValueError("ticks must be non-negative")
        self.ticks = ticks

    def get_requests(self, facility: ProductionFacility) -> Iterator[Tuple[Resource, int]]:
        storage = facility.get_storage()
        for recipe, count in facility.get_workshops().items():
            jobs_needed = self.ticks * count // recipe.duration
            for resource, per_job in recipe.inputs.items():
                delta = jobs_needed * per_job - storage.get_amount(resource)
                if delta > 0:
                    yield resource, delta

# ────────────────────────────────────────────────────────────────────────────
# Flexible workshops
# ────────────────────────────────────────────────────────────────────────────

def _startable(storage: ResourceStorage, recipes: List[Recipe]) -> List[Recipe]:
    return [r for r in recipes if all(storage.get_amount(res) >= amt for res, amt in r.inputs.items())]


class ProductionStrategy:
    def select_recipe(self, storage: ResourceStorage, recipes: List[Recipe]) -> Optional[Recipe]:
        raise NotImplementedError


class HighestBenefitProductionStrategy(ProductionStrategy):
    """Best net value per tick among the recipes whose inputs are on hand."""

    def select_recipe(self, storage, recipes):
        candidates = _startable(storage, recipes)
        if not candidates:
            return None
        return max(candidates, key=lambda r: (r.output_value - r.input_cost) / r.duration)


class DesperateProductionStrategy(ProductionStrategy):
    """Fastest output value regardless of what the inputs are worth."""

    def select_recipe(self, storage, recipes):
        candidates = _startable(storage, recipes)
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda r: r.duration / r.output_value if r.output_value > 0 else float("inf"),
        )


class ProductionModule:
    """A workshop that can run any of several recipes, one job at a time."""

    def __init__(self, recipes: List[Recipe], strategy: Optional[ProductionStrategy] = None):
        self.recipes = list(recipes)
        self.strategy = strategy or HighestBenefitProductionStrategy()


class WorkshopInstance:
    def __init__(self, module: ProductionModule):
        self.module = module
        self.active_job: Optional[ProductionJob] = None
        self.time_since_last_started: int = 0

# ────────────────────────────────────────────────────────────────────────────
# Facility
# ────────────────────────────────────────────────────────────────────────────

class ProductionFacility(Entity, Tickable):
    """
    A fixed production site. Owns its storage and its running jobs; recipes
    are assigned a number of parallel workshops. When no recipe has fixed
    workshops the facility runs its flexible ``workshop_instances`` instead.
    """

    def __init__(
        self,
        name: str = "Facility",
        storage: Optional[ResourceStorage] = None,
        workshops: Optional[Dict[Recipe, int]] = None,
        position: Position = (0.0, 0.0),
        player_id: int = 0,
        pull_strategy: Optional[PullRequestStrategy] = None,
        facility_id: Optional[int] = None,
    ):
        super().__init__(name, position, player_id, facility_id)
        self._storage = storage if storage is not None else ResourceStorage()
        self._workshops: Dict[Recipe, int] = {}
        self._active_jobs: Dict[Recipe, List[ProductionJob]] = {}
        self.workshop_instances: List[WorkshopInstance] = []
        # settable at runtime
        self.pull_strategy: PullRequestStrategy = pull_strategy or DefaultPullRequestStrategy()
        self.last_requests: List[ResourceRequest] = []

        for recipe, count in (workshops or {}).items():
            if count < 0:
                raise ValueError("Workshop count must be non-negative")
            self._workshops[recipe] = count
            self._active_jobs[recipe] = []

    # ── Accessors ──────────────────────────────────────────────────────────
    def get_storage(self) -> ResourceStorage:
        return self._storage

    def get_workshops(self) -> Dict[Recipe, int]:
        return dict(self._workshops)

    def get_production_jobs(self) -> Dict[Recipe, List[ProductionJob]]:
        return {recipe: list(jobs) for recipe, jobs in self._active_jobs.items()}

    def stock_of(self, resource: Resource) -> int:
        return self._storage.get_amount(resource)

    # ── Setup ──────────────────────────────────────────────────────────────
    def add_workshops(self, recipe: Recipe, count: int, tick: int = 0) -> None:
        if count <= 0:
            raise ValueError("Workshop count must be positive")
        self._workshops[recipe] = self._workshops.get(recipe, 0) + count
        self._active_jobs.setdefault(recipe, [])
        self.log_lines.append(WorkshopAddedLog(
            tick=tick, facility_id=self.id, resource_id=recipe.output.id, amount=count, position=self.position,
        ))

    def add_production_module(self, module: ProductionModule) -> WorkshopInstance:
        instance = WorkshopInstance(module)
        self.workshop_instances.append(instance)
        return instance

    # ── Transport hooks (used by transporters only) ────────────────────────
    def try_export(self, resource: Resource, amount: int, tick: int, receiver: Transporter) -> bool:
        if self._storage.consume(resource, amount):
            self.log_lines.append(TransportSentLog(
                tick=tick, facility_id=self.id, resource_id=resource.id, amount=amount,
                position=self.position, transporter_id=receiver.id, transporter_name=receiver.name,
            ))
            return True
        self.log_lines.append(TransportFailedLog(
            tick=tick, facility_id=self.id, facility_name=self.name, resource_id=resource.id, amount=amount,
        ))
        return False

    def receive_import(self, resource: Resource, amount: int, tick: int, transporter: Transporter) -> None:
        self.log_lines.append(TransportReceivedLog(
            tick=tick, facility_id=self.id, resource_id=resource.id, amount=amount,
            position=self.position, transporter_id=transporter.id, transporter_name=transporter.name,
        ))
        self._storage.add(resource, amount)

    def mark_incoming(self, cargo: List[ResourceAmount]) -> None:
        for item in cargo:
            self._storage.mark_incoming(item.resource, item.amount)

    # ── Simulation step ────────────────────────────────────────────────────
    def tick(self, current_tick: int) -> None:
        # every job advances before anything starts new work
        self._progress_jobs(current_tick)
        if self._workshops:
            self._start_fixed(current_tick)
        else:
            self._start_flexible(current_tick)

    def _progress_jobs(self, current_tick: int) -> None:
        for recipe, jobs in self._active_jobs.items():
            running: List[ProductionJob] = []
            for job in jobs:
                job.elapsed += 1
                if job.elapsed < recipe.duration:
                    running.append(job)
                    continue
                self._complete(job, current_tick)
            jobs[:] = running

        # flexible jobs still finish after fixed workshops take over
        for instance in self.workshop_instances:
            job = instance.active_job
            if job is None:
                continue
            job.elapsed += 1
            if job.elapsed >= job.recipe.duration:
                self._complete(job, current_tick)
                instance.active_job = None

    def _start_fixed(self, current_tick: int) -> None:
        for recipe, jobs in self._active_jobs.items():
            available = self._workshops[recipe] - len(jobs)
            for _ in range(available):
                if not self._try_consume_inputs(recipe):
                    break
                jobs.append(ProductionJob(recipe=recipe))
                self._log_started(recipe, current_tick)

    def _start_flexible(self, current_tick: int) -> None:
        for instance in self.workshop_instances:
            if instance.active_job is None:
                chosen = instance.module.strategy.select_recipe(self._storage, instance.module.recipes)
                if chosen is not None and self._try_consume_inputs(chosen):
                    instance.active_job = ProductionJob(recipe=chosen)
                    instance.time_since_last_started = 0
                    self._log_started(chosen, current_tick)
            if instance.active_job is None:
                instance.time_since_last_started += 1

    def _can_consume_inputs(self, recipe: Recipe) -> bool:
        return all(self._storage.get_amount(res) >= amt for res, amt in recipe.inputs.items())

    def _try_consume_inputs(self, recipe: Recipe) -> bool:
        # all-or-nothing across the recipe's whole input set
        if not self._can_consume_inputs(recipe):
            return False
        for resource, amount in recipe.inputs.items():
            self._storage.consume(resource, amount)
        return True

    def _complete(self, job: ProductionJob, current_tick: int) -> None:
        recipe = job.recipe
        self._storage.add(recipe.output, recipe.output_amount)
        self.log_lines.append(ProductionCompletedLog(
            tick=current_tick, facility_id=self.id, resource_id=recipe.output.id,
            amount=recipe.output_amount, position=self.position,
        ))
        logger.debug("%s completed %s at tick %d", self.name, recipe.id, current_tick)

    def _log_started(self, recipe: Recipe, current_tick: int) -> None:
        self.log_lines.append(ProductionStartedLog(
            tick=current_tick, facility_id=self.id, resource_id=recipe.output.id,
            recipe_id=recipe.id, duration=recipe.duration, position=self.position,
        ))

    # ── Offers ─────────────────────────────────────────────────────────────
    def _input_resources(self) -> set:
        recipes = list(self._workshops)
        for instance in self.workshop_instances:
            recipes.extend(instance.module.recipes)
        return {res for recipe in recipes for res in recipe.inputs}

    def get_push_offers(self) -> Iterator[Tuple[Resource, int]]:
        # never offer something this facility still consumes
        inputs = self._input_resources()
        for resource, amount in self._storage.get_all().items():
            if resource not in inputs and amount > 0:
                yield resource, amount

    def get_pull_requests(self) -> List[Tuple[Resource, int]]:
        result = list(self.pull_strategy.get_requests(self))
        self.last_requests = [ResourceRequest(resource=res, amount=amt) for res, amt in result]
        return result

    def get_ticks_until_next_event(self) -> Optional[int]:
        soonest: Optional[int] = None
        for recipe, jobs in self._active_jobs.items():
            if self._workshops[recipe] - len(jobs) > 0 and self._can_consume_inputs(recipe):
                return 0
            for job in jobs:
                if soonest is None or job.remaining < soonest:
                    soonest = job.remaining

        for instance in self.workshop_instances:
            job = instance.active_job
            if job is None:
                # idle instances only start work while no fixed workshops exist
                if not self._workshops and instance.module.strategy.select_recipe(
                        self._storage, instance.module.recipes) is not None:
                    return 0
                continue
            if soonest is None or job.remaining < soonest:
                soonest = job.remaining
        return soonest
