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
from dataclasses import dataclass
from itertools import islice, product
from typing import Optional

import numpy as np
from rdkit import Chem
from rdkit.Chem import rdFMCS

from reactmap.constants import (
    APPROXIMATE_MCS_TIMEOUT,
    DEFAULT_MCS_TIMEOUT,
    EXPECTED_MATCH_THRESHOLD,
    MAX_CANDIDATE_MATCHES,
    MIN_BOND_COUNT,
    Algorithm,
    Theory,
)
from reactmap.mapping.cache import ResultCache
from reactmap.mapping.engine import (
    ChemistryEngineError,
    EngineResult,
    MatcherFlags,
    build_result,
    empty_core,
    engine_errors,
)
from reactmap.mapping.fingerprint import generate_cache_key
from reactmap.mapping.graph import duplicate
from reactmap.mapping.prefilter import are_connected, expected_max_graph_match
from reactmap.mapping.scoring import ChemFilters
from reactmap.mapping.solution import MatchingSolution

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MCSBranch:
    algorithm: Algorithm
    # ring matching follows the has-perfect-rings hint if True, is off otherwise
    use_ring_hint: bool


# theory -> {is the pair connected with enough shared atoms and bonds: branch}
MCS_BRANCHES = {
    Theory.RINGS: {
        True: MCSBranch(Algorithm.DEFAULT, use_ring_hint=True),
        False: MCSBranch(Algorithm.VF_LIB_MCS, use_ring_hint=True),
    },
    Theory.MIN: {
        True: MCSBranch(Algorithm.DEFAULT, use_ring_hint=False),
        False: MCSBranch(Algorithm.VF_LIB_MCS, use_ring_hint=False),
    },
    Theory.DEFAULT: {
        True: MCSBranch(Algorithm.DEFAULT, use_ring_hint=True),
        False: MCSBranch(Algorithm.VF_LIB_MCS, use_ring_hint=True),
    },
}


def is_exhaustive_branch(connected: bool, expected_matches: int, num_bonds_a: int, num_bonds_b: int) -> bool:
    return (
        connected
        and expected_matches > EXPECTED_MATCH_THRESHOLD
        and num_bonds_a > MIN_BOND_COUNT
        and num_bonds_b > MIN_BOND_COUNT
    )


def select_mcs_config(
    theory: Theory, exhaustive: bool, has_perfect_rings: bool, bond_matcher: bool = False
) -> tuple[Algorithm, MatcherFlags]:
    branch = MCS_BRANCHES[theory][exhaustive]
    ring_matcher = has_perfect_rings if branch.use_ring_hint else False
    return branch.algorithm, MatcherFlags(bond_matcher=bond_matcher, ring_matcher=ring_matcher, perfect_rings=False)


def _element_blind(mol: Chem.Mol) -> Chem.Mol:
    """Copy of mol with every atom turned into a carbon, keeping atom order, bonds and ring membership"""
    blind = Chem.RWMol(mol)
    for atom in blind.GetAtoms():
        atom.SetAtomicNum(6)
    blind = blind.GetMol()
    blind.UpdatePropertyCache(strict=False)
    Chem.GetSymmSSSR(blind)
    return blind


def _mcs_parameters(algorithm: Algorithm, flags: MatcherFlags):
    params = rdFMCS.MCSParameters()
    params.AtomTyper = rdFMCS.AtomCompare.CompareElements
    params.BondTyper = rdFMCS.BondCompare.CompareOrder if flags.bond_matcher else rdFMCS.BondCompare.CompareAny
    params.AtomCompareParameters.RingMatchesRingOnly = flags.ring_matcher
    params.AtomCompareParameters.CompleteRingsOnly = flags.perfect_rings
    params.BondCompareParameters.RingMatchesRingOnly = flags.ring_matcher
    params.BondCompareParameters.CompleteRingsOnly = flags.perfect_rings
    if algorithm is Algorithm.DEFAULT:
        params.MaximizeBonds = True
        params.Timeout = DEFAULT_MCS_TIMEOUT
    else:
        params.MaximizeBonds = False
        params.Timeout = APPROXIMATE_MCS_TIMEOUT
    return params


def find_mcs(
    query: Chem.Mol,
    target: Chem.Mol,
    algorithm: Algorithm,
    flags: MatcherFlags,
    atom_matcher: bool = True,
    filters: ChemFilters = ChemFilters(),
    max_matches: int = MAX_CANDIDATE_MATCHES,
) -> EngineResult:
    """
    Common substructure of query and target.

    Algorithm.DEFAULT maximizes the number of common bonds with a generous timeout,
    Algorithm.VF_LIB_MCS maximizes common atoms and returns the best solution found within a
    short timeout. The resulting pattern is placed on both graphs and the placements are ranked
    by the chem filters.

    Returns
    -------
    EngineResult
        With a single empty core if the graphs share nothing

    Raises
    ------
    ChemistryEngineError
        If RDKit fails, or the MCS pattern cannot be placed on both graphs
    """
    if query.GetNumAtoms() == 0 or target.GetNumAtoms() == 0:
        return build_result(query, target, [empty_core()], filters)

    with engine_errors("MCS search"):
        search_query, search_target = query, target
        if not atom_matcher:
            # the pattern then only carries the shared placeholder element and fits on both graphs
            search_query, search_target = _element_blind(query), _element_blind(target)
        mcs_result = rdFMCS.FindMCS([search_query, search_target], _mcs_parameters(algorithm, flags))
        if mcs_result.canceled:
            log.debug("MCS search (%s) timed out, keeping the best solution found", algorithm.value)

        if mcs_result.numAtoms == 0:
            return build_result(query, target, [empty_core()], filters)

        pattern = Chem.MolFromSmarts(mcs_result.smartsString)
        if pattern is None:
            raise ChemistryEngineError(f"Unable to parse MCS pattern {mcs_result.smartsString}")

        matches_q = search_query.GetSubstructMatches(pattern, uniquify=False, maxMatches=max_matches)
        matches_t = search_target.GetSubstructMatches(pattern, uniquify=False, maxMatches=max_matches)
        if len(matches_q) == 0 or len(matches_t) == 0:
            raise ChemistryEngineError(f"MCS pattern {mcs_result.smartsString} could not be placed on both graphs")

        cores = [
            np.array(list(zip(match_q, match_t)), dtype=np.intp).reshape(-1, 2)
            for match_q, match_t in islice(product(matches_q, matches_t), max_matches)
        ]
        return build_result(query, target, cores, filters)


def solve_mcs(
    query: Chem.Mol,
    target: Chem.Mol,
    query_position: int,
    target_position: int,
    theory: Theory,
    has_perfect_rings: bool,
    educt_ring_count: int,
    product_ring_count: int,
    bond_matcher: bool = False,
    atom_matcher: bool = True,
    filters: ChemFilters = ChemFilters(),
    cache: Optional[ResultCache] = None,
) -> MatchingSolution:
    """MCS of query and target, going through cache when one is provided.

    On a cache hit the stored core is re-bound to query and target, which is valid because
    equal keys imply equal ids, atom counts, bond counts and circular fingerprints, and
    duplication keeps atom order.
    """
    exhaustive = is_exhaustive_branch(
        are_connected(query, target),
        expected_max_graph_match(query, target),
        query.GetNumBonds(),
        target.GetNumBonds(),
    )
    algorithm, flags = select_mcs_config(theory, exhaustive, has_perfect_rings, bond_matcher)

    key = None
    if cache is not None:
        key = generate_cache_key(query, target, flags, atom_matcher, educt_ring_count, product_ring_count)
        cached = cache.get(key)
        if cached is not None:
            log.debug("MCS cache hit for positions (%d, %d)", query_position, target_position)
            return cached.rebind(query_position, target_position, query, target)

    log.debug("MCS with %s, %s", algorithm.value, flags)
    result = find_mcs(duplicate(query), duplicate(target), algorithm, flags, atom_matcher, filters)
    solution = MatchingSolution.from_engine_result(query_position, target_position, result).rebind(
        query_position, target_position, query, target
    )

    if cache is not None:
        cache.put_if_absent(key, solution)
    return solution
