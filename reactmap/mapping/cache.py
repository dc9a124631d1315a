# Copyright 2019-2025, Relay Therapeutics
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import threading
from dataclasses import dataclass
from typing import Optional

from reactmap.mapping.solution import MatchingSolution


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int


class ResultCache:
    def __init__(self):
        """
        Mapping from cache key to MatchingSolution, shared by every task of a run.

        get and put_if_absent are safe to call from multiple threads. There is no guarantee that
        a key is computed only once: two tasks missing on the same key will both compute it and
        the first one to store wins. This only wastes work, as equal keys yield equivalent solutions.

        When pickled (e.g. sent to a process pool) the copy is independent of the original.
        """
        self._lock = threading.Lock()
        self._entries: dict[str, MatchingSolution] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[MatchingSolution]:
        with self._lock:
            solution = self._entries.get(key)
            if solution is None:
                self._misses += 1
            else:
                self._hits += 1
            return solution

    def put_if_absent(self, key: str, solution: MatchingSolution) -> bool:
        """Store solution unless key is present. Returns True if solution was stored."""
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = solution
            return True

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __getstate__(self):
        # Locks can't be pickled, only store the entries
        with self._lock:
            return (dict(self._entries),)

    def __setstate__(self, state):
        self.__init__()
        self._entries = state[0]
