from __future__ import annotations
import itertools
import math
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt

if TYPE_CHECKING:
    from logs import LogLine

_id_counter = itertools.count()

def get_instance_id():
    return next(_id_counter)

# World coordinates; only used for distances and straight-line movement
Position = Tuple[float, float]

def distance(a: Position, b: Position) -> float:
    return math.dist(a, b)

# ────────────────────────────────────────────────────────────────────────────
# Catalog
# ────────────────────────────────────────────────────────────────────────────

class Resource(BaseModel):
    """Immutable catalog entry shared by reference across every site."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    base_value: float = Field(1.0, description="Scalar used only to rank trades")
    volume: float = Field(1.0, ge=0, description="Cargo volume taken by one unit")

    # identity is the catalog id, so resources can key storage maps
    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if not isinstance(other, Resource):
            return NotImplemented
        return self.id == other.id

    def __str__(self):
        return self.display_name or self.id


class Recipe(BaseModel):
    """Conversion rule run by one workshop at a time."""

    model_config = ConfigDict(frozen=True)

    id: str
    output: Resource
    output_amount: PositiveInt = 1
    # Input resource -> amount consumed per job
    inputs: Dict[Resource, PositiveInt] = Field(default_factory=dict)
    duration: PositiveInt = Field(..., description="Ticks a job takes to finish")
    # heuristic only, never enforced
    benefit: float = 0.0

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if not isinstance(other, Recipe):
            return NotImplemented
        return self.id == other.id

    # derived ---------------------------------------------------------------
    @property
    def input_cost(self) -> float:
        return sum(res.base_value * amt for res, amt in self.inputs.items())

    @property
    def output_value(self) -> float:
        return self.output.base_value * self.output_amount

# ────────────────────────────────────────────────────────────────────────────
# Cargo & requests
# ────────────────────────────────────────────────────────────────────────────

class ResourceAmount(BaseModel):
    # amount is decremented in place while cargo is picked up and delivered
    resource: Resource
    amount: int = Field(..., ge=0)

    def __str__(self):
        return f"{self.amount} x {self.resource.id}"


class ResourceRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource: Resource
    amount: int

# ────────────────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────────────────

class SimConfig(BaseModel):
    """Switches for the trade-matching pass."""

    reserve_within_tick: bool = Field(
        False,
        description="Deduct amounts already committed this tick before matching the next transporter",
    )
    match_factions: bool = Field(
        False, description="Only match facilities owned by the transporter's player"
    )
    distance_epsilon: PositiveFloat = Field(
        1e-6, description="Lower bound on trade distance when scoring"
    )


def load_config(path: Optional[Path] = None) -> SimConfig:
    if path is not None and path.exists():
        return SimConfig.model_validate_json(path.read_text(encoding="utf-8"))
    return SimConfig()

# ────────────────────────────────────────────────────────────────────────────
# Runtime actors
# ────────────────────────────────────────────────────────────────────────────

class Tickable:
    def tick(self, current_tick: int) -> None:
        raise NotImplementedError


class Entity:
    """Anything placed in the world that keeps its own event log."""

    def __init__(
        self,
        name: str,
        position: Position = (0.0, 0.0),
        player_id: int = 0,
        entity_id: Optional[int] = None,
    ):
        self.id: int = get_instance_id() if entity_id is None else entity_id
        self.name = name
        self.position: Position = (float(position[0]), float(position[1]))
        self.player_id = player_id
        self.log_lines: List[LogLine] = []

    def __repr__(self):
        return f"{type(self).__name__}(id={self.id}, name={self.name!r})"
