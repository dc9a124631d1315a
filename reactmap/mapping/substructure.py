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
from itertools import islice
from typing import Optional

import numpy as np
from networkx.algorithms.isomorphism import GraphMatcher, categorical_edge_match, categorical_node_match
from numpy.typing import NDArray
from rdkit import Chem

from reactmap.constants import MAX_CANDIDATE_MATCHES, MAX_EMBEDDING_VISITS, Theory
from reactmap.graph_utils import convert_to_nx
from reactmap.mapping.engine import EngineResult, MatcherFlags, build_result, engine_errors
from reactmap.mapping.scoring import ChemFilters

log = logging.getLogger(__name__)

# flags of one embedding attempt
AttemptConfig = MatcherFlags


def attempt_configs(theory: Theory, has_cycles: bool, has_perfect_rings: bool) -> list[AttemptConfig]:
    """Embedding attempts, from strictest to most relaxed.

    Parameters
    ----------
    theory: Theory
        RINGS never drops ring matching, so it skips the last attempt

    has_cycles: bool
        Both graphs have at least one independent cycle

    has_perfect_rings: bool
        Hint supplied by the caller
    """
    attempts = [
        MatcherFlags(bond_matcher=False, ring_matcher=has_cycles, perfect_rings=has_perfect_rings),
        MatcherFlags(bond_matcher=False, ring_matcher=has_perfect_rings, perfect_rings=not has_perfect_rings),
    ]
    if theory is not Theory.RINGS:
        attempts.append(MatcherFlags(bond_matcher=False, ring_matcher=False, perfect_rings=False))
    return attempts


def _annotated_graph(mol: Chem.Mol, flags: MatcherFlags):
    g = convert_to_nx(mol)
    if flags.ring_matcher:
        for atom in mol.GetAtoms():
            g.nodes[atom.GetIdx()]["in_ring"] = atom.IsInRing()
        for bond in mol.GetBonds():
            g.edges[bond.GetBeginAtomIdx(), bond.GetEndAtomIdx()]["in_ring"] = bond.IsInRing()
    return g


def _node_match(flags: MatcherFlags):
    if flags.ring_matcher:
        return categorical_node_match(["symbol", "in_ring"], [None, False])
    return categorical_node_match("symbol", None)


def _edge_match(flags: MatcherFlags):
    attrs = []
    if flags.bond_matcher:
        attrs.append("bond_type")
    if flags.ring_matcher:
        attrs.append("in_ring")
    if not attrs:
        return None
    return categorical_edge_match(attrs, [None] * len(attrs))


def covers_complete_rings(query: Chem.Mol, target: Chem.Mol, core: NDArray) -> bool:
    """True if every ring of query lands on a ring of target and every ring bond of target that is
    used by the mapping belongs to a target ring covered in full."""
    q_to_t = {int(q): int(t) for q, t in core}

    target_atom_rings = {frozenset(ring) for ring in target.GetRingInfo().AtomRings()}
    for ring in query.GetRingInfo().AtomRings():
        if not all(idx in q_to_t for idx in ring):
            return False
        if frozenset(q_to_t[idx] for idx in ring) not in target_atom_rings:
            return False

    mapped_bonds = set()
    for bond in query.GetBonds():
        src, dst = bond.GetBeginAtomIdx(), bond.GetEndAtomIdx()
        if src in q_to_t and dst in q_to_t:
            target_bond = target.GetBondBetweenAtoms(q_to_t[src], q_to_t[dst])
            if target_bond is not None:
                mapped_bonds.add(target_bond.GetIdx())

    covered = set()
    for ring in target.GetRingInfo().BondRings():
        if set(ring) <= mapped_bonds:
            covered.update(ring)

    mapped_ring_bonds = {idx for idx in mapped_bonds if target.GetBondWithIdx(idx).IsInRing()}
    return mapped_ring_bonds <= covered


def find_embeddings(
    query: Chem.Mol,
    target: Chem.Mol,
    flags: MatcherFlags,
    filters: ChemFilters = ChemFilters(),
    max_matches: int = MAX_CANDIDATE_MATCHES,
    max_visits: int = MAX_EMBEDDING_VISITS,
) -> EngineResult:
    """
    Enumerate embeddings of query in target (subgraph monomorphisms, elements always compared).

    Parameters
    ----------
    flags: MatcherFlags
        bond_matcher: bond types must agree
        ring_matcher: ring membership of atoms and bonds must agree
        perfect_rings: drop embeddings that do not map rings onto complete rings, see :py:func:`covers_complete_rings`

    max_matches: int
        Number of embeddings kept for ranking

    max_visits: int
        Number of raw embeddings inspected before giving up

    Raises
    ------
    ChemistryEngineError
        If RDKit fails on either graph
    """
    cores = []
    with engine_errors("substructure search"):
        g_q = _annotated_graph(query, flags)
        g_t = _annotated_graph(target, flags)
        matcher = GraphMatcher(g_t, g_q, node_match=_node_match(flags), edge_match=_edge_match(flags))
        for t_to_q in islice(matcher.subgraph_monomorphisms_iter(), max_visits):
            core = np.array(sorted((q, t) for t, q in t_to_q.items()), dtype=np.intp).reshape(-1, 2)
            if flags.perfect_rings and not covers_complete_rings(query, target, core):
                continue
            cores.append(core)
            if len(cores) >= max_matches:
                break
        return build_result(query, target, cores, filters)


def match_total(
    query: Chem.Mol,
    target: Chem.Mol,
    theory: Theory,
    has_cycles: bool,
    has_perfect_rings: bool,
    filters: ChemFilters = ChemFilters(),
) -> Optional[EngineResult]:
    """Run the embedding attempts of :py:func:`attempt_configs` until one finds an embedding.

    Returns
    -------
    EngineResult or None
        The result, if its best core maps every atom of query, None otherwise
    """
    result = None
    for attempt, flags in enumerate(attempt_configs(theory, has_cycles, has_perfect_rings), start=1):
        result = find_embeddings(query, target, flags, filters)
        log.debug("substructure attempt %d %s: %d embeddings", attempt, flags, len(result.cores))
        if result.is_subgraph:
            break

    if result is not None and result.is_subgraph and result.count == query.GetNumAtoms():
        return result
    return None
