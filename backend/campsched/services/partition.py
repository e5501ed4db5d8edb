from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, Mapping

from campsched.core.exceptions import NoPartitionAssignedError
from campsched.services.camp_config import Division

logger = logging.getLogger(__name__)

FULL_ACCESS_ROLE_NAMES = frozenset({"owner", "admin"})


@dataclass(frozen=True)
class Partition:
    divisions: frozenset[str]
    bunks: frozenset[str]

    def owns(self, bunk: str) -> bool:
        return bunk in self.bunks

    def owns_division(self, division: str | None) -> bool:
        return division is not None and division in self.divisions


class DivisionPartitioner:
    def __init__(self, divisions: Mapping[str, Division]) -> None:
        self.divisions = dict(divisions)
        self._division_by_bunk = {
            bunk: division.name for division in self.divisions.values() for bunk in division.bunks
        }

    def bunks_for_divisions(self, division_names: Iterable[str]) -> frozenset[str]:
        bunks: set[str] = set()
        for name in division_names:
            division = self.divisions.get(name)
            if division is not None:
                bunks.update(division.bunks)
        return frozenset(bunks)

    def division_of(self, bunk: str) -> str | None:
        return self._division_by_bunk.get(bunk)

    def all_bunks(self) -> frozenset[str]:
        return frozenset(self._division_by_bunk)

    def resolve_partition(self, caller_role: str, granted_divisions: Iterable[str] = ()) -> Partition:
        role = getattr(caller_role, "value", caller_role)
        if role in FULL_ACCESS_ROLE_NAMES:
            names = frozenset(self.divisions)
        else:
            names = frozenset(name for name in granted_divisions if name in self.divisions)
            unknown = sorted(set(granted_divisions) - set(self.divisions))
            if unknown:
                logger.warning("Ignoring grants for unknown divisions: %s", ", ".join(unknown))
        if not names:
            raise NoPartitionAssignedError(str(role))
        return Partition(divisions=names, bunks=self.bunks_for_divisions(names))

    def foreign_bunks(self, partition: Partition) -> frozenset[str]:
        return self.all_bunks() - partition.bunks

    def foreign_divisions(self, partition: Partition) -> frozenset[str]:
        return frozenset(self.divisions) - partition.divisions
