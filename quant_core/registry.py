"""
In-memory arena of pool and TWAP records addressed by pair key.

The arena hands out references to the records it owns; engines mutate the
records passed to them and never look anything up on their own. Callers
serialize writes to any one pair.
"""

from typing import Dict, Iterator, List, Optional, Tuple

from .exceptions import ValidationError
from .types import Pool, TWAPState, make_pair_key
from .utils import get_logger

logger = get_logger(__name__)


class StateArena:
    def __init__(self):
        self._pools: Dict[str, Pool] = {}
        self._twap_states: Dict[str, TWAPState] = {}

    def __len__(self) -> int:
        return len(self._pools)

    def __contains__(self, pair_key: str) -> bool:
        return pair_key in self._pools

    def add_pool(self, pool: Pool) -> str:
        """Register a pool and return its pair key."""
        key = pool.pair_key
        if key in self._pools:
            raise ValidationError(f"Pool {key} already registered")
        self._pools[key] = pool
        logger.debug(f"Registered pool {key}")
        return key

    def get_pool(self, token_a: str, token_b: str) -> Pool:
        return self.pool(make_pair_key(token_a, token_b))

    def pool(self, pair_key: str) -> Pool:
        try:
            return self._pools[pair_key]
        except KeyError:
            raise ValidationError(f"Unknown pair {pair_key}")

    def remove_pool(self, pair_key: str) -> Pool:
        """Drop a pool together with its TWAP state."""
        pool = self.pool(pair_key)
        del self._pools[pair_key]
        self._twap_states.pop(pair_key, None)
        return pool

    def pools(self) -> Iterator[Pool]:
        return iter(self._pools.values())

    def pools_with(self, token: str) -> List[Pool]:
        return [pool for pool in self._pools.values() if pool.has_token(token)]

    def twap_state(self, pair_key: str) -> TWAPState:
        """TWAP state for a pair, created uninitialized on first access."""
        state = self._twap_states.get(pair_key)
        if state is None:
            state = TWAPState(pair_key=pair_key)
            self._twap_states[pair_key] = state
        return state

    @property
    def twap_states(self) -> Dict[str, TWAPState]:
        """Snapshot of the pair key -> state mapping, for risk references."""
        return dict(self._twap_states)

    def triangular_paths(self, start_token: str) -> List[Tuple[Pool, Pool, Pool]]:
        """
        Every registered A -> B -> C -> A cycle starting at start_token.

        Each cycle is listed in both directions since prices differ by route.
        """
        paths = []
        for first in self.pools_with(start_token):
            token_b = first.other_token(start_token)
            for second in self.pools_with(token_b):
                if second is first:
                    continue
                token_c = second.other_token(token_b)
                if token_c == start_token:
                    continue
                closing: Optional[Pool] = self._pools.get(
                    make_pair_key(token_c, start_token)
                )
                if closing is not None and closing is not first and closing is not second:
                    paths.append((first, second, closing))
        return paths
