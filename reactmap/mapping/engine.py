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

from contextlib import contextmanager
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray
from rdkit import Chem

from reactmap.mapping.scoring import ChemFilters, MappingScores, rank_cores


class ChemistryEngineError(Exception):
    pass


@dataclass(frozen=True)
class MatcherFlags:
    """Flags handed to one substructure or MCS engine call"""

    bond_matcher: bool
    ring_matcher: bool
    perfect_rings: bool


def empty_core() -> NDArray:
    return np.zeros((0, 2), dtype=np.intp)


@dataclass(frozen=True, eq=False)
class EngineResult:
    """Cores found by one engine call, best first according to the chem filters.

    Column 0 of each core indexes atoms of query, column 1 atoms of target.
    """

    query: Chem.Mol
    target: Chem.Mol
    cores: list[NDArray] = field(default_factory=list)
    scores: list[MappingScores] = field(default_factory=list)

    @property
    def is_subgraph(self) -> bool:
        return len(self.cores) > 0

    @property
    def first_core(self) -> NDArray:
        return self.cores[0] if self.cores else empty_core()

    @property
    def first_scores(self) -> MappingScores:
        return self.scores[0] if self.scores else MappingScores()

    @property
    def count(self) -> int:
        return len(self.first_core)


def build_result(query: Chem.Mol, target: Chem.Mol, cores: list[NDArray], filters: ChemFilters) -> EngineResult:
    ranked, scores = rank_cores(query, target, cores, filters)
    return EngineResult(query=query, target=target, cores=ranked, scores=scores)


@contextmanager
def engine_errors(what: str):
    """Re-raise errors coming out of RDKit as ChemistryEngineError"""
    try:
        yield
    except (RuntimeError, ValueError) as e:
        raise ChemistryEngineError(f"{what} failed: {e}") from e
