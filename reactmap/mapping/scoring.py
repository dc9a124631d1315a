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

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from rdkit import Chem

from reactmap.graph_utils import convert_to_nx, count_induced_components

# Average bond dissociation energies in kJ/mol, keyed by the sorted element pair
BOND_ENERGIES = {
    ("C", "C"): 346.0,
    ("C", "H"): 411.0,
    ("C", "N"): 305.0,
    ("C", "O"): 358.0,
    ("C", "S"): 272.0,
    ("C", "F"): 485.0,
    ("C", "Cl"): 327.0,
    ("Br", "C"): 285.0,
    ("C", "I"): 213.0,
    ("C", "P"): 264.0,
    ("H", "H"): 432.0,
    ("H", "N"): 386.0,
    ("H", "O"): 459.0,
    ("H", "S"): 363.0,
    ("N", "N"): 167.0,
    ("N", "O"): 201.0,
    ("O", "O"): 142.0,
    ("O", "P"): 335.0,
    ("O", "S"): 265.0,
    ("S", "S"): 226.0,
}
DEFAULT_BOND_ENERGY = 300.0


@dataclass(frozen=True)
class ChemFilters:
    """Which scores are used to rank alternative mappings of equal size"""

    stereo: bool = True
    fragment: bool = True
    energy: bool = True


@dataclass(frozen=True)
class MappingScores:
    energy: float = 0.0
    fragment_size: int = 0
    stereo_score: float = 0.0


def bond_energy(bond: Chem.Bond) -> float:
    key = tuple(sorted((bond.GetBeginAtom().GetSymbol(), bond.GetEndAtom().GetSymbol())))
    return BOND_ENERGIES.get(key, DEFAULT_BOND_ENERGY)


def _one_sided_bond_change_energy(mol_a, mol_b, a_to_b) -> float:
    energy = 0.0
    for bond in mol_a.GetBonds():
        src, dst = bond.GetBeginAtomIdx(), bond.GetEndAtomIdx()
        if src in a_to_b and dst in a_to_b:
            other = mol_b.GetBondBetweenAtoms(int(a_to_b[src]), int(a_to_b[dst]))
            if other is None:
                energy += bond_energy(bond)
            elif other.GetBondType() != bond.GetBondType():
                # counted once from each side
                energy += 0.5 * bond_energy(bond)
        elif src in a_to_b or dst in a_to_b:
            # bond leaving the mapped region has to be cut
            energy += bond_energy(bond)
    return energy


def bond_change_energy(mol_a: Chem.Mol, mol_b: Chem.Mol, core: NDArray) -> float:
    """Energy of the bonds that are broken, formed or changed when mol_a is turned into mol_b under core"""
    a_to_b = {int(a): int(b) for a, b in core}
    b_to_a = {b: a for a, b in a_to_b.items()}
    return _one_sided_bond_change_energy(mol_a, mol_b, a_to_b) + _one_sided_bond_change_energy(mol_b, mol_a, b_to_a)


def fragment_count(mol: Chem.Mol, atom_idxs) -> int:
    """Number of connected pieces the mapped atoms form in mol"""
    return count_induced_components(convert_to_nx(mol), [int(idx) for idx in atom_idxs])


def stereo_score(mol_a: Chem.Mol, mol_b: Chem.Mol, core: NDArray) -> float:
    """Agreement of aromaticity, hybridization, chirality and bond types between mapped atoms. Higher is better."""
    score = 0.0
    a_to_b = {}
    for a, b in core:
        a, b = int(a), int(b)
        a_to_b[a] = b
        atom_a = mol_a.GetAtomWithIdx(a)
        atom_b = mol_b.GetAtomWithIdx(b)
        if atom_a.GetIsAromatic() == atom_b.GetIsAromatic():
            score += 1.0
        if atom_a.GetHybridization() == atom_b.GetHybridization():
            score += 1.0
        tag_a, tag_b = atom_a.GetChiralTag(), atom_b.GetChiralTag()
        if tag_a != Chem.ChiralType.CHI_UNSPECIFIED and tag_b != Chem.ChiralType.CHI_UNSPECIFIED:
            score += 2.0 if tag_a == tag_b else -2.0

    for bond_a in mol_a.GetBonds():
        src, dst = bond_a.GetBeginAtomIdx(), bond_a.GetEndAtomIdx()
        if src not in a_to_b or dst not in a_to_b:
            continue
        bond_b = mol_b.GetBondBetweenAtoms(a_to_b[src], a_to_b[dst])
        if bond_b is None:
            continue
        score += 1.0 if bond_a.GetBondType() == bond_b.GetBondType() else -1.0
        stereo_a, stereo_b = bond_a.GetStereo(), bond_b.GetStereo()
        if stereo_a != Chem.BondStereo.STEREONONE and stereo_b != Chem.BondStereo.STEREONONE:
            score += 2.0 if stereo_a == stereo_b else -2.0

    return score


def score_core(mol_a: Chem.Mol, mol_b: Chem.Mol, core: NDArray) -> MappingScores:
    return MappingScores(
        energy=bond_change_energy(mol_a, mol_b, core),
        fragment_size=fragment_count(mol_a, core[:, 0]),
        stereo_score=stereo_score(mol_a, mol_b, core),
    )


def rank_cores(
    mol_a: Chem.Mol, mol_b: Chem.Mol, cores: list[NDArray], filters: ChemFilters
) -> tuple[list[NDArray], list[MappingScores]]:
    """
    Sort alternative cores best first and score them.

    Enabled filters are applied in the order stereo (descending), fragment count (ascending),
    energy (ascending). With every filter disabled the input order is kept.

    Returns
    -------
    Sorted cores and the matching scores
    """
    scores = [score_core(mol_a, mol_b, core) for core in cores]

    fields = []
    if filters.stereo:
        fields.append(("stereo", "f8", [-s.stereo_score for s in scores]))
    if filters.fragment:
        fields.append(("fragment", "i8", [s.fragment_size for s in scores]))
    if filters.energy:
        fields.append(("energy", "f8", [s.energy for s in scores]))

    if not fields or len(cores) < 2:
        return list(cores), scores

    sort_vals = np.array(
        list(zip(*[values for _, _, values in fields])), dtype=[(name, dtype) for name, dtype, _ in fields]
    )
    sort_order = np.argsort(sort_vals, order=[name for name, _, _ in fields], kind="stable")
    return [cores[p] for p in sort_order], [scores[p] for p in sort_order]
