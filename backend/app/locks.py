"""
Verrous asyncio par clé (une étiquette, une session de scan...).

Deux opérations sur la même clé s'exécutent l'une après l'autre ;
des clés différentes ne se bloquent jamais entre elles.
Les verrous inutilisés sont retirés du dictionnaire dès leur libération.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, List

logger = logging.getLogger(__name__)


class KeyedLock:
    def __init__(self) -> None:
        # clé → [verrou, nombre de coroutines qui le détiennent ou l'attendent]
        self._locks: Dict[Hashable, List] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._locks.get(key)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            self._locks[key] = entry
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def is_locked(self, key: Hashable) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        return len(self._locks)
