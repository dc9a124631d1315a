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

import pickle
import warnings

import pytest
from common import mol_from_smiles
from rdkit import Chem

from reactmap.constants import DEFAULT_MATCHING_KWARGS, Theory
from reactmap.mapping import mcs, substructure
from reactmap.mapping.engine import ChemistryEngineError
from reactmap.mapping.graph import (
    ATOM_ID_PROP,
    GraphDuplicationError,
    NormalizationError,
    NormalizationWarning,
    get_atom_ids,
    get_mol_name,
)
from reactmap.mapping.task import (
    MatchingConfig,
    MatchingFailureWarning,
    MatchingTask,
    collect_solutions,
    compute_matching_solution,
    run_matching_task,
    submit_matching_tasks,
)
from reactmap.parallel.client import SerialClient, ThreadPoolClient


def make_task(educt, product, cache=None, **kwargs):
    matching_kwargs = DEFAULT_MATCHING_KWARGS.copy()
    matching_kwargs.update(kwargs)
    return MatchingTask(
        query_position=0, target_position=1, educt=educt, product=product, cache=cache, **matching_kwargs
    )


def forbid(monkeypatch, module, name):
    def fail(*args, **kwargs):
        raise AssertionError(f"{name} should not be called")

    monkeypatch.setattr(module, name, fail)


def assert_symbols_agree(solution):
    for q, t in solution.mapping_by_index().items():
        assert solution.query.GetAtomWithIdx(q).GetSymbol() == solution.target.GetAtomWithIdx(t).GetSymbol()


def test_chain_embeds_without_mcs(monkeypatch):
    forbid(monkeypatch, mcs, "solve_mcs")

    task = make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CC(C)O", "product"))
    solution = task.run()
    assert solution.count == 3
    assert solution.query is task.query
    assert solution.target is task.target
    assert (solution.query_position, solution.target_position) == (0, 1)
    assert sorted(solution.mapping_by_index()) == [0, 1, 2]
    assert_symbols_agree(solution)


def test_product_embeds_in_educt(monkeypatch):
    forbid(monkeypatch, mcs, "solve_mcs")

    task = make_task(mol_from_smiles("CC(C)O", "educt"), mol_from_smiles("CCO", "product"))
    solution = task.run()
    # roles are kept: query is the educt, even though the product was embedded in it
    assert solution.query is task.query
    assert solution.query.GetNumAtoms() == 4
    assert solution.count == 3
    assert sorted(solution.mapping_by_index().values()) == [0, 1, 2]
    assert_symbols_agree(solution)


def test_isolated_atom_skips_substructure(monkeypatch):
    forbid(monkeypatch, substructure, "match_total")

    task = make_task(mol_from_smiles("CCO.[Na]", "educt"), mol_from_smiles("CCO", "product"))
    solution = task.run()
    assert solution.count == 3
    assert_symbols_agree(solution)


def test_isolated_atom_in_product_skips_substructure(monkeypatch):
    forbid(monkeypatch, substructure, "match_total")

    task = make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CCO.[Cl-]", "product"))
    assert task.run().count == 3


def test_no_shared_elements(monkeypatch):
    forbid(monkeypatch, substructure, "match_total")

    task = make_task(mol_from_smiles("NN", "educt"), mol_from_smiles("CCO", "product"))
    solution = task.run()
    assert solution.count == 0
    assert solution.core.shape == (0, 2)


def test_falls_back_to_mcs():
    task = make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CCN", "product"))
    solution = task.run()
    assert solution.count == 2
    assert_symbols_agree(solution)


def test_compute_matching_solution_is_pure():
    query = mol_from_smiles("c1ccccc1CCO", "query")
    target = mol_from_smiles("c1ccccc1CCN", "target")
    smiles_before = Chem.MolToSmiles(query)
    config = MatchingConfig(educt_ring_count=1, product_ring_count=1)
    assert config.has_cycles

    first = compute_matching_solution(query, target, 2, 3, config)
    second = compute_matching_solution(query, target, 2, 3, config)
    assert first.count == second.count == 8
    assert (first.energy, first.fragment_size, first.stereo_score) == (
        second.energy,
        second.fragment_size,
        second.stereo_score,
    )
    assert Chem.MolToSmiles(query) == smiles_before


def test_tasks_with_equal_keys_share_scores(cache):
    def run_new_task():
        task = make_task(mol_from_smiles("c1ccccc1CCO", "educt"), mol_from_smiles("c1ccccc1CCN", "product"), cache)
        task.set_educt_ring_count(1)
        task.set_product_ring_count(1)
        return task, task.run()

    task_a, solution_a = run_new_task()
    task_b, solution_b = run_new_task()
    assert task_a.query is not task_b.query
    assert cache.stats().hits == 1
    assert solution_b.query is task_b.query
    assert solution_b.target is task_b.target
    assert (solution_a.energy, solution_a.fragment_size, solution_a.stereo_score) == (
        solution_b.energy,
        solution_b.fragment_size,
        solution_b.stereo_score,
    )


def test_task_leaves_input_graphs_untouched():
    educt = mol_from_smiles("CCO")
    product = mol_from_smiles("CC(C)O", "product")
    task = make_task(educt, product)

    assert get_mol_name(educt) is None
    assert get_atom_ids(educt) == [None, None, None]
    assert not product.GetAtomWithIdx(0).HasProp(ATOM_ID_PROP)

    assert get_mol_name(task.query) is not None
    assert get_mol_name(task.target) == "product"
    assert get_atom_ids(task.query) == ["0", "1", "2"]
    assert task.run().mapping_by_atom_id().keys() == {"0", "1", "2"}


def test_setters():
    task = make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CCN", "product"))
    task.set_chem_filters(stereo=False, fragment=True, energy=False)
    task.set_educt_ring_count(2)
    task.set_product_ring_count(1)
    task.set_has_perfect_rings(True)

    config = task.config
    assert (config.filters.stereo, config.filters.fragment, config.filters.energy) == (False, True, False)
    assert (config.educt_ring_count, config.product_ring_count) == (2, 1)
    assert config.has_perfect_rings
    assert config.has_cycles
    assert config.theory is Theory.DEFAULT

    task.run()
    with pytest.raises(AssertionError):
        task.set_chem_filters()
    with pytest.raises(AssertionError):
        task.set_educt_ring_count(0)
    with pytest.raises(AssertionError):
        task.set_product_ring_count(0)
    with pytest.raises(AssertionError):
        task.set_has_perfect_rings(False)


@pytest.mark.parametrize("educt_smiles, product_smiles", [("CCCCCC", "C1CCCCC1"), ("c1ccccc1CCO", "c1ccccc1CCN")])
def test_ring_matcher_flag_does_not_change_the_outcome(educt_smiles, product_smiles):
    solutions = []
    for ring_matcher in [True, False]:
        task = make_task(
            mol_from_smiles(educt_smiles, "educt"), mol_from_smiles(product_smiles, "product"), ring_matcher=ring_matcher
        )
        assert task.config.ring_matcher == ring_matcher
        solutions.append(task.run())

    with_rings, without_rings = solutions
    assert with_rings.mapping_by_index() == without_rings.mapping_by_index()
    assert (with_rings.energy, with_rings.fragment_size, with_rings.stereo_score) == (
        without_rings.energy,
        without_rings.fragment_size,
        without_rings.stereo_score,
    )


def test_normalization_failure_warns():
    broken = Chem.MolFromSmiles("c1cccc1", sanitize=False)
    with pytest.warns(NormalizationWarning, match="atom_types"):
        task = make_task(broken, mol_from_smiles("CCC", "product"))
    assert task.query.GetNumAtoms() == 5


def test_normalization_failure_strict():
    broken = Chem.MolFromSmiles("c1cccc1", sanitize=False)
    with pytest.raises(NormalizationError):
        make_task(broken, mol_from_smiles("CCC", "product"), strict_normalization=True)


def test_normalization_success_is_silent():
    with warnings.catch_warnings():
        warnings.simplefilter("error", NormalizationWarning)
        make_task(mol_from_smiles("CCO"), mol_from_smiles("CCN"), strict_normalization=True)


def test_duplication_failure():
    with pytest.raises(GraphDuplicationError):
        make_task(42, mol_from_smiles("CCO"))
    with pytest.raises(GraphDuplicationError):
        make_task(mol_from_smiles("CCO"), 42)


def test_engine_failure_propagates(monkeypatch, cache):
    def failing_find_mcs(*args, **kwargs):
        raise ChemistryEngineError("engine blew up")

    monkeypatch.setattr(mcs, "find_mcs", failing_find_mcs)
    task = make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CCN", "product"), cache)
    with pytest.raises(ChemistryEngineError):
        task.run()
    assert len(cache) == 0


def test_collect_solutions(monkeypatch, cache):
    def failing_find_mcs(*args, **kwargs):
        raise ChemistryEngineError("engine blew up")

    monkeypatch.setattr(mcs, "find_mcs", failing_find_mcs)
    tasks = [
        make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CC(C)O", "product"), cache),
        make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CCN", "product"), cache),
    ]
    futures = submit_matching_tasks(SerialClient(), tasks)
    with pytest.warns(MatchingFailureWarning, match="engine blew up"):
        solutions = collect_solutions(futures)
    assert solutions[0].count == 3
    assert solutions[1] is None


def test_tasks_on_thread_pool(cache):
    educts = [mol_from_smiles(s, f"educt_{i}") for i, s in enumerate(["CCO", "c1ccccc1CCO"])]
    products = [mol_from_smiles(s, f"product_{i}") for i, s in enumerate(["CC(C)O", "c1ccccc1CCN", "NN"])]
    tasks = [make_task(educt, product, cache) for educt in educts for product in products]
    serial_solutions = [run_matching_task(task) for task in tasks]

    tasks = [make_task(educt, product, cache) for educt in educts for product in products]
    client = ThreadPoolClient(4)
    try:
        solutions = collect_solutions(submit_matching_tasks(client, tasks))
    finally:
        client.shutdown()

    assert [s.count for s in solutions] == [s.count for s in serial_solutions]
    assert [s.energy for s in solutions] == [s.energy for s in serial_solutions]
    # every MCS of the threaded run came out of the cache filled by the serial run
    assert cache.stats().hits == cache.stats().misses


def test_task_pickle_round_trip(cache):
    task = make_task(mol_from_smiles("CCO", "educt"), mol_from_smiles("CCN", "product"), cache)
    restored = pickle.loads(pickle.dumps(task))
    assert get_mol_name(restored.query) == "educt"
    assert restored.run().count == task.run().count == 2
