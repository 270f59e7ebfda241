from __future__ import annotations
from typing import Dict, Iterable

from objects import Resource
from production import ProductionFacility


def _bump(bucket: Dict[Resource, int], resource: Resource, amount: int) -> None:
    bucket[resource] = bucket.get(resource, 0) + amount


class DemandManager:
    """
    Snapshot of outstanding pull requests and in-flight deliveries, summed
    globally, per player and per facility.

    Nothing here is live: call ``refresh`` whenever facilities may have
    changed, then query.
    """

    def __init__(self):
        self._global_pull: Dict[Resource, int] = {}
        self._global_incoming: Dict[Resource, int] = {}
        self._player_pull: Dict[int, Dict[Resource, int]] = {}
        self._player_incoming: Dict[int, Dict[Resource, int]] = {}
        # keyed by facility identity, so duplicate ids stay separate
        self._facility_pull: Dict[ProductionFacility, Dict[Resource, int]] = {}
        self._facility_incoming: Dict[ProductionFacility, Dict[Resource, int]] = {}

    def refresh(self, facilities: Iterable[ProductionFacility]) -> None:
        self._global_pull.clear()
        self._global_incoming.clear()
        self._player_pull.clear()
        self._player_incoming.clear()
        self._facility_pull.clear()
        self._facility_incoming.clear()

        for facility in facilities:
            player_pull = self._player_pull.setdefault(facility.player_id, {})
            facility_pull = self._facility_pull.setdefault(facility, {})
            for resource, amount in facility.get_pull_requests():
                _bump(self._global_pull, resource, amount)
                _bump(player_pull, resource, amount)
                _bump(facility_pull, resource, amount)

            player_incoming = self._player_incoming.setdefault(facility.player_id, {})
            facility_incoming = self._facility_incoming.setdefault(facility, {})
            for resource, amount in facility.get_storage().get_all_incoming().items():
                if amount <= 0:
                    continue
                _bump(self._global_incoming, resource, amount)
                _bump(player_incoming, resource, amount)
                _bump(facility_incoming, resource, amount)

    def get_global_demand(self, resource: Resource) -> int:
        return self._global_pull.get(resource, 0)

    def get_global_incoming(self, resource: Resource) -> int:
        return self._global_incoming.get(resource, 0)

    def get_player_demand(self, player_id: int, resource: Resource) -> int:
        return self._player_pull.get(player_id, {}).get(resource, 0)

    def get_player_incoming(self, player_id: int, resource: Resource) -> int:
        return self._player_incoming.get(player_id, {}).get(resource, 0)

    def get_facility_demand(self, facility: ProductionFacility, resource: Resource) -> int:
        return self._facility_pull.get(facility, {}).get(resource, 0)

    def get_facility_incoming(self, facility: ProductionFacility, resource: Resource) -> int:
        return self._facility_incoming.get(facility, {}).get(resource, 0)
