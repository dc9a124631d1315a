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

import json
import logging
from argparse import ArgumentParser
from pathlib import Path

from rdkit import Chem

from reactmap.constants import DEFAULT_MATCHING_KWARGS, Theory
from reactmap.mapping.cache import ResultCache
from reactmap.mapping.graph import count_cycles, set_mol_name
from reactmap.mapping.task import MatchingTask, collect_solutions, submit_matching_tasks
from reactmap.parallel.client import SerialClient, ThreadPoolClient


def read_reaction_smiles(reaction: str) -> tuple[list[Chem.Mol], list[Chem.Mol]]:
    """Educts and products of a reaction SMILES "A.B>>C.D", named educt_i and product_j"""
    assert reaction.count(">>") == 1, f"Expected a reaction SMILES of the form A.B>>C.D, got {reaction}"
    sides = []
    for prefix, smiles_list in zip(["educt", "product"], reaction.split(">>")):
        mols = []
        for i, smiles in enumerate(smiles_list.split(".")):
            mol = Chem.MolFromSmiles(smiles)
            if mol is None:
                raise ValueError(f"Unable to parse {smiles}")
            set_mol_name(mol, f"{prefix}_{i}")
            mols.append(mol)
        sides.append(mols)
    return sides[0], sides[1]


def main():
    parser = ArgumentParser(description="Map every educt of a reaction against every product")
    parser.add_argument("reaction", help="Reaction SMILES, e.g. CCO.CC(=O)O>>CCOC(C)=O.O")
    parser.add_argument("output_path", help="Json file to write out containing one entry per pair")
    parser.add_argument("--theory", default=Theory.DEFAULT.value, choices=[t.value for t in Theory])
    parser.add_argument("--has_perfect_rings", action="store_true", help="Rings are expected to be conserved")
    parser.add_argument("--no_stereo", action="store_true", help="Don't rank alternative mappings by stereo score")
    parser.add_argument(
        "--n_workers", default=None, type=int, help="Number of threads to use, defaults to all available cores"
    )
    parser.add_argument("--serial", action="store_true", help="Run the tasks in the calling thread")
    parser.add_argument("--verbose", action="store_true", help="Log the matching stages")
    for arg, val in DEFAULT_MATCHING_KWARGS.items():
        if isinstance(val, bool):
            parser.add_argument(f"--{arg}", type=int, choices=[0, 1], default=1 if val else 0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    assert args.output_path.endswith(".json")

    educts, products = read_reaction_smiles(args.reaction)

    matching_kwargs = DEFAULT_MATCHING_KWARGS.copy()
    matching_kwargs["theory"] = Theory(args.theory)
    for key in ["bond_matcher", "ring_matcher", "atom_matcher"]:
        matching_kwargs[key] = bool(getattr(args, key))

    cache = ResultCache()
    tasks = []
    for i, educt in enumerate(educts):
        for j, product in enumerate(products):
            task = MatchingTask(
                query_position=i, target_position=j, educt=educt, product=product, cache=cache, **matching_kwargs
            )
            task.set_educt_ring_count(count_cycles(educt))
            task.set_product_ring_count(count_cycles(product))
            task.set_has_perfect_rings(args.has_perfect_rings)
            task.set_chem_filters(stereo=not args.no_stereo)
            tasks.append(task)

    client = SerialClient() if args.serial else ThreadPoolClient(args.n_workers)
    client.verify()
    try:
        solutions = collect_solutions(submit_matching_tasks(client, tasks))
    finally:
        client.shutdown()

    json_output = []
    for task, solution in zip(tasks, solutions):
        entry = {"educt": task.query_position, "product": task.target_position}
        if solution is not None:
            entry["core"] = solution.core.tolist()
            entry["energy"] = solution.energy
            entry["fragment_size"] = solution.fragment_size
            entry["stereo_score"] = solution.stereo_score
        json_output.append(entry)

    output_path = Path(args.output_path).expanduser()
    print(f"Mapped {len(tasks)} pairs, writing to {output_path!s}")
    with open(output_path, "w") as ofs:
        json.dump(json_output, ofs, indent=1)

    stats = cache.stats()
    print("Cache Summary")
    print("-" * 20)
    print("Entries", stats.size)
    print("Hits", stats.hits)
    print("Misses", stats.misses)


if __name__ == "__main__":
    main()
