"""In-memory registry of gas tanks keyed by chain id."""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from ..core.utils import same_address
from ..models import GasTank


class TankRegistry:
    """Append-only store of gas tanks.

    Writes go through ``add`` under a lock; reads return snapshot tuples and
    never block. Within one chain no two tanks share the same token and tank
    address, compared case-insensitively. The first tank added for a chain is
    its canonical tank.
    """

    def __init__(self) -> None:
        self._tanks: Dict[int, Tuple[GasTank, ...]] = {}
        self._lock = asyncio.Lock()

    async def add(self, tank: GasTank) -> bool:
        """Append a tank; returns False if an identical entry already exists."""
        async with self._lock:
            existing = self._tanks.get(tank.chain_id, ())
            if any(_is_same_tank(entry, tank) for entry in existing):
                return False
            self._tanks[tank.chain_id] = existing + (tank,)
            return True

    def tanks(self, chain_id: int) -> Tuple[GasTank, ...]:
        return self._tanks.get(chain_id, ())

    def lookup(
        self, chain_id: int, predicate: Callable[[GasTank], bool]
    ) -> Optional[GasTank]:
        """Return the first tank on ``chain_id`` matching ``predicate``."""
        for tank in self.tanks(chain_id):
            if predicate(tank):
                return tank
        return None

    def find(
        self,
        chain_id: int,
        gas_tank_address: str,
        token_address: Optional[str] = None,
    ) -> Optional[GasTank]:
        """Find a tank by address (and optionally token), ignoring case."""
        return self.lookup(
            chain_id,
            lambda tank: same_address(tank.gas_tank_address, gas_tank_address)
            and (token_address is None or same_address(tank.token_address, token_address)),
        )

    def first(self, chain_id: int) -> Optional[GasTank]:
        tanks = self.tanks(chain_id)
        return tanks[0] if tanks else None

    def chain_ids(self) -> List[int]:
        return list(self._tanks)

    def items(self) -> List[Tuple[int, Tuple[GasTank, ...]]]:
        return list(self._tanks.items())

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._tanks

    def __len__(self) -> int:
        return sum(len(tanks) for tanks in self._tanks.values())


def _is_same_tank(left: GasTank, right: GasTank) -> bool:
    return same_address(left.token_address, right.token_address) and same_address(
        left.gas_tank_address, right.gas_tank_address
    )
