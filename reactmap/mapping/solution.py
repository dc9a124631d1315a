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

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from rdkit import Chem

from reactmap.mapping.engine import EngineResult
from reactmap.mapping.graph import get_atom_id


@dataclass(frozen=True, eq=False)
class MatchingSolution:
    """
    Best atom correspondence found for one (query, target) pair.

    Parameters
    ----------
    query_position, target_position: int
        Positions of the two graphs in the reaction, as given by the caller

    query, target: Chem.Mol
        Graphs the core refers to

    core: NDArray
        (K, 2) array, column 0 holds atom indices of query, column 1 atom indices of target

    energy, fragment_size, stereo_score:
        Scores of core, see :py:func:`reactmap.mapping.scoring.score_core`
    """

    query_position: int
    target_position: int
    query: Chem.Mol
    target: Chem.Mol
    core: NDArray
    energy: float = 0.0
    fragment_size: int = 0
    stereo_score: float = 0.0

    def __post_init__(self):
        core = np.array(self.core, dtype=np.intp).reshape(-1, 2)
        assert len(set(core[:, 0].tolist())) == len(core), "query atom mapped more than once"
        assert len(set(core[:, 1].tolist())) == len(core), "target atom mapped more than once"
        core.setflags(write=False)
        object.__setattr__(self, "core", core)

    @property
    def count(self) -> int:
        return len(self.core)

    def mapping_by_index(self) -> dict[int, int]:
        return {int(q): int(t) for q, t in self.core}

    def mapping_by_atom_id(self) -> dict[Optional[str], Optional[str]]:
        return {
            get_atom_id(self.query.GetAtomWithIdx(int(q))): get_atom_id(self.target.GetAtomWithIdx(int(t)))
            for q, t in self.core
        }

    def swapped(self) -> "MatchingSolution":
        """Same correspondence with the roles of query and target exchanged"""
        return replace(
            self,
            query_position=self.target_position,
            target_position=self.query_position,
            query=self.target,
            target=self.query,
            core=self.core[:, ::-1],
        )

    def rebind(
        self, query_position: int, target_position: int, query: Chem.Mol, target: Chem.Mol
    ) -> "MatchingSolution":
        """Copy of this solution over other graphs with the same atom order. Core and scores are kept as is."""
        assert query.GetNumAtoms() == self.query.GetNumAtoms()
        assert target.GetNumAtoms() == self.target.GetNumAtoms()
        return replace(
            self, query_position=query_position, target_position=target_position, query=query, target=target
        )

    @classmethod
    def from_engine_result(
        cls, query_position: int, target_position: int, result: EngineResult, swap: bool = False
    ) -> "MatchingSolution":
        """Solution from the best core of result.

        If swap is True, result was computed with the roles of the two graphs exchanged and
        is turned back so that query is the graph at query_position.
        """
        scores = result.first_scores
        solution = cls(
            query_position=target_position if swap else query_position,
            target_position=query_position if swap else target_position,
            query=result.query,
            target=result.target,
            core=result.first_core,
            energy=scores.energy,
            fragment_size=scores.fragment_size,
            stereo_score=scores.stereo_score,
        )
        return solution.swapped() if swap else solution
