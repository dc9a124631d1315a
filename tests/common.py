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

from typing import Optional

from rdkit import Chem

from reactmap.mapping.graph import set_mol_name


def mol_from_smiles(smiles: str, name: Optional[str] = None) -> Chem.Mol:
    mol = Chem.MolFromSmiles(smiles)
    assert mol is not None, f"Unable to parse {smiles}"
    if name is not None:
        set_mol_name(mol, name)
    return mol


def mol_from_symbols(symbols) -> Chem.Mol:
    """Molecule made of unbonded atoms"""
    mol = Chem.RWMol()
    for symbol in symbols:
        mol.AddAtom(Chem.Atom(symbol))
    return mol.GetMol()
