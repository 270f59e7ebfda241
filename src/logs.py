"""
Structured, tick-stamped events appended by facilities and transporters.

Every event is a frozen pydantic model tagged by ``kind``; ``LogLine`` is the
closed union of them. Field names and the ``tick`` numbering are what external
tooling reads, so they stay stable. ``format_line`` renders the human
readable form used when merging logs across entities.
"""
from __future__ import annotations
from pathlib import Path
from typing import Annotated, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from objects import Position, ResourceAmount


class _LogLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    tick: int

# ────────────────────────────────────────────────────────────────────────────
# Transporter events
# ────────────────────────────────────────────────────────────────────────────

class TransportAssignedLog(_LogLine):
    kind: Literal["transport_assigned"] = "transport_assigned"
    transporter_id: int
    resource_id: str
    amount: int
    from_id: int
    from_name: str
    from_position: Position
    to_id: int
    to_name: str
    to_position: Position

class PickupLog(_LogLine):
    kind: Literal["pickup"] = "pickup"
    transporter_id: int
    picked_up: List[ResourceAmount]
    facility_id: Optional[int] = None
    facility_name: Optional[str] = None

class DeliveryLog(_LogLine):
    kind: Literal["delivery"] = "delivery"
    transporter_id: int
    destination: Position
    delivered: List[ResourceAmount]

class DeliveryPartialLog(_LogLine):
    kind: Literal["delivery_partial"] = "delivery_partial"
    transporter_id: int
    # shortfall per cargo line
    partial: List[ResourceAmount]
    facility_id: int
    facility_name: str

class DeliveryFailedLog(_LogLine):
    kind: Literal["delivery_failed"] = "delivery_failed"
    transporter_id: int
    failed: List[ResourceAmount]
    facility_id: int
    facility_name: str

class TransporterDamagedLog(_LogLine):
    kind: Literal["transporter_damaged"] = "transporter_damaged"
    transporter_id: int
    damage: float
    position: Position
    attacker_name: Optional[str] = None

class TransporterDestroyedLog(_LogLine):
    kind: Literal["transporter_destroyed"] = "transporter_destroyed"
    transporter_id: int
    position: Position

class TransporterLostCargoLog(_LogLine):
    kind: Literal["transporter_lost_cargo"] = "transporter_lost_cargo"
    transporter_id: int
    resource_id: str
    amount: int

# ────────────────────────────────────────────────────────────────────────────
# Facility events
# ────────────────────────────────────────────────────────────────────────────

class TransportSentLog(_LogLine):
    kind: Literal["transport_sent"] = "transport_sent"
    facility_id: int
    resource_id: str
    amount: int
    position: Position
    transporter_id: int
    transporter_name: str

class TransportFailedLog(_LogLine):
    kind: Literal["transport_failed"] = "transport_failed"
    facility_id: int
    facility_name: str
    resource_id: str
    amount: int

class TransportReceivedLog(_LogLine):
    kind: Literal["transport_received"] = "transport_received"
    facility_id: int
    resource_id: str
    amount: int
    position: Position
    transporter_id: int
    transporter_name: str

class ProductionStartedLog(_LogLine):
    kind: Literal["production_started"] = "production_started"
    facility_id: int
    resource_id: str
    recipe_id: str
    duration: int
    position: Position

class ProductionCompletedLog(_LogLine):
    kind: Literal["production_completed"] = "production_completed"
    facility_id: int
    resource_id: str
    amount: int
    position: Position

class WorkshopAddedLog(_LogLine):
    kind: Literal["workshop_added"] = "workshop_added"
    facility_id: int
    resource_id: str
    amount: int
    position: Position


LogLine = Annotated[
    Union[
        TransportAssignedLog,
        PickupLog,
        DeliveryLog,
        DeliveryPartialLog,
        DeliveryFailedLog,
        TransporterDamagedLog,
        TransporterDestroyedLog,
        TransporterLostCargoLog,
        TransportSentLog,
        TransportFailedLog,
        TransportReceivedLog,
        ProductionStartedLog,
        ProductionCompletedLog,
        WorkshopAddedLog,
    ],
    Field(discriminator="kind"),
]

LOG_LINE_ADAPTER: TypeAdapter = TypeAdapter(LogLine)

# ────────────────────────────────────────────────────────────────────────────
# Formatting
# ────────────────────────────────────────────────────────────────────────────

def _pos(p: Position) -> str:
    return f"<{p[0]:g}, {p[1]:g}>"

def _amounts(items: List[ResourceAmount]) -> str:
    return ", ".join(str(i) for i in items)

def _describe(line: LogLine) -> str:
    match line:
        case TransportAssignedLog():
            return (f"Transporter {line.transporter_id} assigned to deliver {line.amount} x {line.resource_id} "
                    f"from {line.from_name}({_pos(line.from_position)}) to {line.to_name}({_pos(line.to_position)})")
        case PickupLog():
            return f"Transporter {line.transporter_id} picked up: {_amounts(line.picked_up)} from {line.facility_name or 'Unknown'}"
        case DeliveryLog():
            return f"Transporter {line.transporter_id} delivered to {_pos(line.destination)}: {_amounts(line.delivered)}"
        case DeliveryPartialLog():
            return f"Transporter {line.transporter_id} partially delivered: {_amounts(line.partial)} to {line.facility_name}"
        case DeliveryFailedLog():
            return f"Transporter {line.transporter_id} failed to deliver: {_amounts(line.failed)} to {line.facility_name}"
        case TransporterDamagedLog():
            return (f"Transporter {line.transporter_id} damaged ({line.damage:g}) at {_pos(line.position)} "
                    f"by {line.attacker_name or 'Unknown'}")
        case TransporterDestroyedLog():
            return f"Transporter {line.transporter_id} destroyed at {_pos(line.position)}"
        case TransporterLostCargoLog():
            return f"Transporter {line.transporter_id} lost cargo: {line.amount} of {line.resource_id}"
        case TransportSentLog():
            return f"Sent {line.amount} of {line.resource_id} to {line.transporter_name} from {_pos(line.position)}"
        case TransportFailedLog():
            return f"Failed to send {line.amount} of {line.resource_id} from {line.facility_name}"
        case TransportReceivedLog():
            return f"Received {line.amount} of {line.resource_id} from {line.transporter_name} at {_pos(line.position)}"
        case ProductionStartedLog():
            return f"Started job for {line.resource_id} (duration: {line.duration}) at {_pos(line.position)}"
        case ProductionCompletedLog():
            return f"Completed job for {line.resource_id}, output added to storage at {_pos(line.position)}"
        case WorkshopAddedLog():
            return f"Added {line.amount} workshop(s) for {line.resource_id} at {_pos(line.position)}"
        case _:
            raise TypeError(f"Unknown log line: {type(line).__name__}")

def format_line(line: LogLine) -> str:
    return f"[Tick {line.tick:04d}] {_describe(line)}"

# ────────────────────────────────────────────────────────────────────────────
# Merging & persistence
# ────────────────────────────────────────────────────────────────────────────

def merge_logs(*sources: Iterable[LogLine], since_tick: Optional[int] = None) -> List[LogLine]:
    """
    Chronological merge of several entity logs. The sort is stable, so events
    sharing a tick keep source order, then append order within a source.
    """
    merged = [line for source in sources for line in source
              if since_tick is None or line.tick >= since_tick]
    return sorted(merged, key=lambda line: line.tick)

def dump_logs(lines: Iterable[LogLine], path: Path) -> None:
    path.write_text("".join(line.model_dump_json() + "\n" for line in lines), encoding="utf-8")

def load_logs(path: Path) -> List[LogLine]:
    raw = path.read_text(encoding="utf-8")
    return [LOG_LINE_ADAPTER.validate_json(row) for row in raw.splitlines() if row.strip()]
