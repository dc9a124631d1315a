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

from collections import Counter

from rdkit import Chem

from reactmap.graph_utils import convert_to_nx, fragment_sizes


def is_connected(mol: Chem.Mol) -> bool:
    """A graph counts as connected unless one of its fragments is a single isolated atom.

    Multi-fragment graphs (e.g. salts written as one molecule) are still connected in this
    sense as long as every fragment has at least one bond.
    """
    return all(size > 1 for size in fragment_sizes(convert_to_nx(mol)))


def are_connected(mol_a: Chem.Mol, mol_b: Chem.Mol) -> bool:
    return is_connected(mol_a) and is_connected(mol_b)


def symbol_counts(mol: Chem.Mol) -> Counter:
    return Counter(atom.GetSymbol() for atom in mol.GetAtoms())


def is_possible_subgraph_match(query: Chem.Mol, target: Chem.Mol) -> bool:
    """
    Necessary condition for query to embed in target: every element of query occurs in target at
    least as often.

    Note that this is not symmetric, is_possible_subgraph_match(b, a) answers a different question.
    """
    counts_q = symbol_counts(query)
    counts_t = symbol_counts(target)

    if len(counts_q) > len(counts_t):
        return False

    if not counts_q.keys() <= counts_t.keys():
        return False

    return all(count <= counts_t[symbol] for symbol, count in counts_q.items())


def atom_tag(atom: Chem.Atom) -> str:
    """Atom-type name qualified by hybridization (e.g. "C.SP3"), or the bare symbol if unset"""
    hybridization = atom.GetHybridization()
    if hybridization == Chem.HybridizationType.UNSPECIFIED:
        return atom.GetSymbol()
    return f"{atom.GetSymbol()}.{hybridization}"


def expected_max_graph_match(query: Chem.Mol, target: Chem.Mol) -> int:
    """Size of the multiset intersection of the atom tags of query and target.

    e.g. tags {C, C, C, O, N} and {C, C, C, P} give 3.
    """
    if query.GetNumAtoms() == 0:
        return 0
    tags_q = Counter(atom_tag(atom) for atom in query.GetAtoms())
    tags_t = Counter(atom_tag(atom) for atom in target.GetAtoms())
    return sum((tags_q & tags_t).values())
