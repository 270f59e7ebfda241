from __future__ import annotations
import logging
import math
from collections import deque
from enum import Enum
from typing import Deque, List, Optional, Tuple

from objects import Entity, Position, Resource, ResourceAmount, Tickable
from logs import (
    DeliveryFailedLog,
    DeliveryLog,
    DeliveryPartialLog,
    PickupLog,
    TransportAssignedLog,
    TransporterDamagedLog,
    TransporterDestroyedLog,
    TransporterLostCargoLog,
)
from production import ProductionFacility

logger = logging.getLogger(__name__)


class TransportTask:
    """Move ``cargo`` from ``source`` to ``destination``. Facilities are referenced, not owned."""

    def __init__(self, source: ProductionFacility, destination: ProductionFacility, cargo: List[ResourceAmount]):
        self.source = source
        self.destination = destination
        self.cargo = cargo
        self.has_picked_up = False


class TransporterState(str, Enum):
    IDLE = "idle"
    MOVING_TO_SOURCE = "moving_to_source"
    PICKING_UP = "picking_up"
    MOVING_TO_DESTINATION = "moving_to_destination"
    DELIVERING = "delivering"
    DESTROYED = "destroyed"


class Transporter(Entity, Tickable):
    """
    Mobile agent working through a FIFO queue of transport tasks.

    Each task runs move -> pick up -> move -> deliver. Pickup and delivery are
    both allowed to fall short: whatever could not be loaded or unloaded is
    reported through the event log and the task still completes.
    """

    def __init__(
        self,
        name: str = "Transporter",
        position: Position = (0.0, 0.0),
        player_id: int = 0,
        speed_per_tick: float = 1.0,
        max_volume: float = 10.0,
        total_hull: float = 100.0,
        transporter_id: Optional[int] = None,
    ):
        super().__init__(name, position, player_id, transporter_id)
        if speed_per_tick <= 0:
            raise ValueError("speed_per_tick must be positive")
        if max_volume < 0:
            raise ValueError("max_volume must be non-negative")
        self.speed_per_tick = speed_per_tick
        self.max_volume = max_volume
        self.total_hull = total_hull
        self.carrying: List[ResourceAmount] = []
        self.current_task: Optional[TransportTask] = None
        self.status = TransporterState.IDLE
        self.distance_traveled: float = 0.0
        self._task_queue: Deque[TransportTask] = deque()
        self._target: Optional[Position] = None

    # ── Queries ────────────────────────────────────────────────────────────
    @property
    def is_operational(self) -> bool:
        return self.total_hull > 0

    @property
    def current_destination(self) -> Optional[str]:
        return self.current_task.destination.name if self.current_task else None

    @property
    def target(self) -> Optional[Position]:
        return self._target

    @property
    def queued_tasks(self) -> Tuple[TransportTask, ...]:
        return tuple(self._task_queue)

    def has_active_task(self) -> bool:
        return self.current_task is not None or len(self._task_queue) > 0

    def carried_volume(self) -> float:
        return sum(c.resource.volume * c.amount for c in self.carrying)

    def carried_amount(self, resource: Resource) -> int:
        return sum(c.amount for c in self.carrying if c.resource == resource)

    # ── Commands ───────────────────────────────────────────────────────────
    def assign_task(
        self,
        source: ProductionFacility,
        destination: ProductionFacility,
        cargo: List[ResourceAmount],
        current_tick: Optional[int] = None,
    ) -> TransportTask:
        if not cargo:
            raise ValueError("A transport task needs at least one cargo line")
        if not self.is_operational:
            raise ValueError(f"{self.name} is destroyed and cannot take tasks")

        task = TransportTask(source, destination, cargo)
        destination.mark_incoming(cargo)
        self._task_queue.append(task)
        self.log_lines.append(self._assigned_log(current_tick or 0, cargo[0].resource.id,
                                                 sum(c.amount for c in cargo), task))
        return task

    def take_damage(self, amount: float, current_tick: int, attacker_name: Optional[str] = None) -> bool:
        """Apply hull damage; returns True once the transporter is destroyed."""
        if amount < 0:
            raise ValueError("Damage must be non-negative")
        was_operational = self.is_operational
        self.total_hull -= amount
        self.log_lines.append(TransporterDamagedLog(
            tick=current_tick, transporter_id=self.id, damage=amount,
            position=self.position, attacker_name=attacker_name,
        ))
        if self.is_operational:
            return False

        if was_operational:
            self.log_lines.append(TransporterDestroyedLog(tick=current_tick, transporter_id=self.id, position=self.position))
            logger.info("%s destroyed at tick %d by %s", self.name, current_tick, attacker_name or "unknown")
        self.current_task = None
        self._task_queue.clear()
        self._target = None
        for item in self.carrying:
            self.log_lines.append(TransporterLostCargoLog(
                tick=current_tick, transporter_id=self.id, resource_id=item.resource.id, amount=item.amount,
            ))
        self.carrying.clear()
        self.status = TransporterState.DESTROYED
        return True

    # ── Simulation step ────────────────────────────────────────────────────
    def tick(self, current_tick: int) -> None:
        if not self.is_operational:
            return
        if self.current_task is None:
            if not self._task_queue:
                return
            self.current_task = self._task_queue.popleft()
            self._target = self.current_task.source.position
            self.status = TransporterState.MOVING_TO_SOURCE

        if self._target is None:
            return

        task = self.current_task
        if not self._move_towards(self._target):
            return

        self.position = self._target
        self._target = None

        if not task.has_picked_up:
            self._pick_up(current_tick, task)
        else:
            self._deliver(current_tick, task)

    def _move_towards(self, target: Position) -> bool:
        dx = target[0] - self.position[0]
        dy = target[1] - self.position[1]
        dist = math.hypot(dx, dy)
        if dist == 0:
            return True
        step = min(self.speed_per_tick, dist)
        self.position = (self.position[0] + dx / dist * step, self.position[1] + dy / dist * step)
        self.distance_traveled += step
        return dist <= self.speed_per_tick

    def _pick_up(self, tick: int, task: TransportTask) -> None:
        self.status = TransporterState.PICKING_UP
        remaining_volume = self.max_volume - self.carried_volume()

        for item in task.cargo:
            resource = item.resource
            if resource.volume > 0:
                max_units = max(0, int(remaining_volume / resource.volume))
            else:
                max_units = item.amount
            # export never succeeds partially, so clamp to what the source holds
            amount = min(item.amount, max_units, task.source.stock_of(resource))

            if amount > 0 and task.source.try_export(resource, amount, tick, self):
                self._load(resource, amount)
                remaining_volume -= amount * resource.volume
                self.log_lines.append(PickupLog(
                    tick=tick, transporter_id=self.id,
                    picked_up=[ResourceAmount(resource=resource, amount=amount)],
                    facility_id=task.source.id, facility_name=task.source.name,
                ))
            else:
                self.log_lines.append(self._assigned_log(tick, resource.id, item.amount, task))

        task.has_picked_up = True
        self._target = task.destination.position
        self.status = TransporterState.MOVING_TO_DESTINATION

    def _load(self, resource: Resource, amount: int) -> None:
        for carried in self.carrying:
            if carried.resource == resource:
                carried.amount += amount
                return
        self.carrying.append(ResourceAmount(resource=resource, amount=amount))

    def _deliver(self, tick: int, task: TransportTask) -> None:
        self.status = TransporterState.DELIVERING
        delivered: List[ResourceAmount] = []
        shortfalls: List[ResourceAmount] = []

        for item in task.cargo:
            carried = next((c for c in self.carrying if c.resource == item.resource), None)
            available = carried.amount if carried else 0
            to_deliver = min(available, item.amount)
            if to_deliver > 0:
                task.destination.receive_import(item.resource, to_deliver, tick, self)
                carried.amount -= to_deliver
                delivered.append(ResourceAmount(resource=item.resource, amount=to_deliver))
                self.log_lines.append(DeliveryLog(
                    tick=tick, transporter_id=self.id, destination=task.destination.position,
                    delivered=[ResourceAmount(resource=item.resource, amount=to_deliver)],
                ))
            if to_deliver < item.amount:
                shortfalls.append(ResourceAmount(resource=item.resource, amount=item.amount - to_deliver))

        if shortfalls and not delivered:
            self.log_lines.append(DeliveryFailedLog(
                tick=tick, transporter_id=self.id, failed=shortfalls,
                facility_id=task.destination.id, facility_name=task.destination.name,
            ))
        elif shortfalls:
            self.log_lines.append(DeliveryPartialLog(
                tick=tick, transporter_id=self.id, partial=shortfalls,
                facility_id=task.destination.id, facility_name=task.destination.name,
            ))

        self.carrying = [c for c in self.carrying if c.amount > 0]
        self.current_task = None
        self._target = None
        self.status = TransporterState.IDLE

    def _assigned_log(self, tick: int, resource_id: str, amount: int, task: TransportTask) -> TransportAssignedLog:
        return TransportAssignedLog(
            tick=tick, transporter_id=self.id, resource_id=resource_id, amount=amount,
            from_id=task.source.id, from_name=task.source.name, from_position=task.source.position,
            to_id=task.destination.id, to_name=task.destination.name, to_position=task.destination.position,
        )
