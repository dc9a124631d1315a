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

import hypothesis.strategies as st
import pytest
from common import mol_from_smiles, mol_from_symbols
from hypothesis import given, seed
from rdkit import Chem

from reactmap.mapping.prefilter import (
    are_connected,
    atom_tag,
    expected_max_graph_match,
    is_connected,
    is_possible_subgraph_match,
)

symbol_lists = st.lists(st.sampled_from(["C", "N", "O", "S", "Cl"]), max_size=8)


@pytest.mark.parametrize(
    "smiles, expected",
    [
        ("CCO", True),
        ("CC.OO", True),
        ("CCO.[Na]", False),
        ("[Cl-].CC", False),
        ("O", False),
    ],
)
def test_is_connected(smiles, expected):
    assert is_connected(mol_from_smiles(smiles)) == expected


def test_empty_graph_is_connected():
    assert is_connected(Chem.Mol())


def test_are_connected():
    assert are_connected(mol_from_smiles("CCO"), mol_from_smiles("c1ccccc1"))
    assert not are_connected(mol_from_smiles("CCO"), mol_from_smiles("CCO.[Na]"))
    assert not are_connected(mol_from_smiles("CCO.[Na]"), mol_from_smiles("CCO"))


def test_is_possible_subgraph_match():
    small = mol_from_smiles("CCO")
    large = mol_from_smiles("CC(C)O")
    assert is_possible_subgraph_match(small, large)
    assert not is_possible_subgraph_match(large, small)

    # same size, different elements
    assert not is_possible_subgraph_match(mol_from_smiles("CCN"), mol_from_smiles("CCO"))
    assert not is_possible_subgraph_match(mol_from_smiles("CCO"), mol_from_smiles("CCN"))

    # more distinct elements than the target
    assert not is_possible_subgraph_match(mol_from_smiles("CNO"), mol_from_smiles("CCCCNN"))

    # an element occurring too often
    assert not is_possible_subgraph_match(mol_from_smiles("OCCO"), mol_from_smiles("CCCO"))


@given(symbol_lists, symbol_lists)
@seed(2025)
def test_is_possible_subgraph_match_requires_symbol_subset(query_symbols, target_symbols):
    query = mol_from_symbols(query_symbols)
    target = mol_from_symbols(target_symbols)
    if not set(query_symbols) <= set(target_symbols):
        assert not is_possible_subgraph_match(query, target)
    if is_possible_subgraph_match(query, target) and is_possible_subgraph_match(target, query):
        assert Counter(query_symbols) == Counter(target_symbols)


@given(symbol_lists)
@seed(2025)
def test_graph_is_possible_subgraph_of_itself(symbols):
    mol = mol_from_symbols(symbols)
    assert is_possible_subgraph_match(mol, mol)


def test_atom_tag():
    mol = mol_from_smiles("CC=O")
    assert atom_tag(mol.GetAtomWithIdx(0)) == "C.SP3"
    assert atom_tag(mol.GetAtomWithIdx(1)) == "C.SP2"
    assert atom_tag(Chem.Atom("Cl")) == "Cl"


def test_expected_max_graph_match():
    assert expected_max_graph_match(mol_from_smiles("CCCON"), mol_from_smiles("CCCP")) == 3
    unperceived_a = mol_from_symbols(["C", "C", "C", "O", "N"])
    unperceived_b = mol_from_symbols(["C", "C", "C", "P"])
    assert expected_max_graph_match(unperceived_a, unperceived_b) == 3
    assert expected_max_graph_match(Chem.Mol(), mol_from_smiles("CCO")) == 0
    assert expected_max_graph_match(mol_from_smiles("CCO"), Chem.Mol()) == 0

    # hybridization is part of the tag
    assert expected_max_graph_match(mol_from_smiles("CC"), mol_from_smiles("C=C")) == 0


@given(symbol_lists, symbol_lists)
@seed(2024)
def test_expected_max_graph_match_is_symmetric_and_bounded(symbols_a, symbols_b):
    mol_a = mol_from_symbols(symbols_a)
    mol_b = mol_from_symbols(symbols_b)
    expected = expected_max_graph_match(mol_a, mol_b)
    assert 0 <= expected <= min(len(symbols_a), len(symbols_b))
    if symbols_a:
        assert expected == expected_max_graph_match(mol_b, mol_a)
