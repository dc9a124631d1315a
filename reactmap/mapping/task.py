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

import logging
import warnings
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from rdkit import Chem

from reactmap.constants import Theory
from reactmap.mapping import mcs, substructure
from reactmap.mapping.cache import ResultCache
from reactmap.mapping.engine import ChemistryEngineError
from reactmap.mapping.graph import (
    NormalizationError,
    NormalizationWarning,
    duplicate_with_identifiers,
    get_mol_name,
    normalize,
)
from reactmap.mapping.prefilter import are_connected, is_possible_subgraph_match
from reactmap.mapping.scoring import ChemFilters
from reactmap.mapping.solution import MatchingSolution
from reactmap.parallel.client import AbstractClient, BaseFuture

log = logging.getLogger(__name__)


class MatchingFailureWarning(UserWarning):
    pass


@dataclass(frozen=True)
class MatchingConfig:
    """Everything besides the two graphs that determines the outcome of a matching task.

    ring_matcher is informational only. It records the construction flag and does not change the
    search. Ring matching is chosen per attempt from theory and the ring hints.
    """

    theory: Theory = Theory.DEFAULT
    bond_matcher: bool = False
    ring_matcher: bool = True
    atom_matcher: bool = True
    filters: ChemFilters = field(default_factory=ChemFilters)
    educt_ring_count: int = 0
    product_ring_count: int = 0
    has_perfect_rings: bool = False

    @property
    def has_cycles(self) -> bool:
        return self.educt_ring_count > 0 and self.product_ring_count > 0


def _total_match(
    query: Chem.Mol, target: Chem.Mol, query_position: int, target_position: int, config: MatchingConfig
) -> Optional[MatchingSolution]:
    if is_possible_subgraph_match(query, target):
        result = substructure.match_total(
            query, target, config.theory, config.has_cycles, config.has_perfect_rings, config.filters
        )
        if result is not None:
            log.debug("total match of query in target, %d atoms", result.count)
            return MatchingSolution.from_engine_result(query_position, target_position, result)

    if is_possible_subgraph_match(target, query):
        result = substructure.match_total(
            target, query, config.theory, config.has_cycles, config.has_perfect_rings, config.filters
        )
        if result is not None:
            log.debug("total match of target in query, %d atoms", result.count)
            return MatchingSolution.from_engine_result(query_position, target_position, result, swap=True)

    return None


def compute_matching_solution(
    query: Chem.Mol,
    target: Chem.Mol,
    query_position: int,
    target_position: int,
    config: MatchingConfig,
    cache: Optional[ResultCache] = None,
) -> MatchingSolution:
    """
    Best atom correspondence between query and target.

    An exact embedding of one graph in the other is looked for first, in both directions. It is
    skipped if either graph has an isolated atom. Without a total embedding the maximum common
    substructure is computed, going through cache.

    Parameters
    ----------
    query, target: Chem.Mol
        Normalized graphs, not modified

    query_position, target_position: int
        Copied onto the solution

    config: MatchingConfig

    cache: ResultCache or None
        Shared store of MCS solutions

    Returns
    -------
    MatchingSolution
        query and target of the solution are the graphs at query_position and target_position

    Raises
    ------
    ChemistryEngineError
        If RDKit fails during the search
    """
    connected = are_connected(query, target)
    log.debug(
        "matching %s (%d) >> %s (%d), connected: %s",
        get_mol_name(query),
        query_position,
        get_mol_name(target),
        target_position,
        connected,
    )

    if connected:
        solution = _total_match(query, target, query_position, target_position, config)
        if solution is not None:
            return solution

    return mcs.solve_mcs(
        query,
        target,
        query_position,
        target_position,
        theory=config.theory,
        has_perfect_rings=config.has_perfect_rings,
        educt_ring_count=config.educt_ring_count,
        product_ring_count=config.product_ring_count,
        bond_matcher=config.bond_matcher,
        atom_matcher=config.atom_matcher,
        filters=config.filters,
        cache=cache,
    )


class MatchingTask:
    def __init__(
        self,
        theory: Theory,
        query_position: int,
        target_position: int,
        educt: Chem.Mol,
        product: Chem.Mol,
        bond_matcher: bool = False,
        ring_matcher: bool = True,
        atom_matcher: bool = True,
        cache: Optional[ResultCache] = None,
        strict_normalization: bool = False,
    ):
        """
        Matching of one educt against one product of a reaction.

        Both graphs are duplicated (missing identifiers are filled in) and the duplicates are
        normalized, the caller's graphs are left untouched. Chem filters, ring-count hints and
        the has-perfect-rings hint may be changed until :py:meth:`run` is called.

        Parameters
        ----------
        theory: Theory

        query_position, target_position: int
            Positions of educt and product in the reaction

        educt, product: Chem.Mol

        bond_matcher: bool
            Compare bond orders during the MCS search

        ring_matcher: bool
            Recorded on the task configuration. Ring matching itself is decided per attempt by
            theory and the ring hints.

        atom_matcher: bool
            Compare elements during the MCS search

        cache: ResultCache or None
            Shared by every task of a reaction

        strict_normalization: bool
            Raise NormalizationError if normalization fails, instead of warning and continuing

        Raises
        ------
        GraphDuplicationError
            If either graph cannot be duplicated
        """
        self.query_position = query_position
        self.target_position = target_position
        self.query = duplicate_with_identifiers(educt)
        self.target = duplicate_with_identifiers(product)
        self.cache = cache

        for mol in (self.query, self.target):
            outcome = normalize(mol)
            if not outcome.ok:
                msg = f"Normalization of {get_mol_name(mol)} failed at {outcome.failed_step}: {outcome.message}"
                if strict_normalization:
                    raise NormalizationError(msg)
                warnings.warn(msg, NormalizationWarning)

        self._theory = theory
        self._bond_matcher = bond_matcher
        self._ring_matcher = ring_matcher
        self._atom_matcher = atom_matcher
        self._filters = ChemFilters()
        self._educt_ring_count = 0
        self._product_ring_count = 0
        self._has_perfect_rings = False
        self._started = False

    def _assert_not_started(self):
        assert not self._started, "task options can't be changed once the task has run"

    def set_chem_filters(self, stereo: bool = True, fragment: bool = True, energy: bool = True):
        self._assert_not_started()
        self._filters = ChemFilters(stereo=stereo, fragment=fragment, energy=energy)

    def set_educt_ring_count(self, num_cycles: int):
        self._assert_not_started()
        assert num_cycles >= 0
        self._educt_ring_count = num_cycles

    def set_product_ring_count(self, num_cycles: int):
        self._assert_not_started()
        assert num_cycles >= 0
        self._product_ring_count = num_cycles

    def set_has_perfect_rings(self, flag: bool):
        self._assert_not_started()
        self._has_perfect_rings = flag

    @property
    def config(self) -> MatchingConfig:
        return MatchingConfig(
            theory=self._theory,
            bond_matcher=self._bond_matcher,
            ring_matcher=self._ring_matcher,
            atom_matcher=self._atom_matcher,
            filters=self._filters,
            educt_ring_count=self._educt_ring_count,
            product_ring_count=self._product_ring_count,
            has_perfect_rings=self._has_perfect_rings,
        )

    def run(self) -> MatchingSolution:
        """See :py:func:`compute_matching_solution`"""
        self._started = True
        return compute_matching_solution(
            self.query, self.target, self.query_position, self.target_position, self.config, self.cache
        )


def run_matching_task(task: MatchingTask) -> MatchingSolution:
    return task.run()


def submit_matching_tasks(client: AbstractClient, tasks: Sequence[MatchingTask]) -> list[BaseFuture]:
    return [client.submit(run_matching_task, task) for task in tasks]


def collect_solutions(futures: Sequence[BaseFuture]) -> list[Optional[MatchingSolution]]:
    """Results of futures, in order. A pair on which the chemistry engine failed gets None."""
    solutions = []
    for fut in futures:
        try:
            solutions.append(fut.result())
        except ChemistryEngineError as e:
            warnings.warn(f"No mapping for job {fut.name}: {e}", MatchingFailureWarning)
            solutions.append(None)
    return solutions
