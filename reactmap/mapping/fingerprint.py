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

from rdkit import Chem
from rdkit.Chem import rdFingerprintGenerator

from reactmap.constants import CACHE_FP_RADIUS, CACHE_FP_SIZE
from reactmap.mapping.engine import MatcherFlags, engine_errors
from reactmap.mapping.graph import get_mol_name

log = logging.getLogger(__name__)


def circular_fingerprint(mol: Chem.Mol, radius: int = CACHE_FP_RADIUS, fp_size: int = CACHE_FP_SIZE) -> tuple[int, ...]:
    """Set bits of a chirality-aware Morgan fingerprint of mol"""
    generator = rdFingerprintGenerator.GetMorganGenerator(radius=radius, fpSize=fp_size, includeChirality=True)
    return tuple(generator.GetFingerprint(mol).GetOnBits())


def generate_cache_key(
    mol_a: Chem.Mol,
    mol_b: Chem.Mol,
    flags: MatcherFlags,
    atom_matcher: bool,
    num_cycles_a: int,
    num_cycles_b: int,
) -> str:
    """
    Key under which the MCS of (mol_a, mol_b) computed with flags is stored.

    Two pairs with equal keys have equal graph ids, atom and bond counts, ring-count hints and
    circular fingerprints, so a core computed for one can be reused, by atom index, for the other.

    Raises
    ------
    ChemistryEngineError
        If a fingerprint cannot be computed
    """
    with engine_errors("circular fingerprint"):
        fp_a = circular_fingerprint(mol_a)
        fp_b = circular_fingerprint(mol_b)

    if log.isEnabledFor(logging.DEBUG):
        log.debug("cache key for %s >> %s", Chem.MolToSmiles(mol_a), Chem.MolToSmiles(mol_b))

    fields = [
        get_mol_name(mol_a),
        get_mol_name(mol_b),
        mol_a.GetNumAtoms(),
        mol_b.GetNumAtoms(),
        mol_a.GetNumBonds(),
        mol_b.GetNumBonds(),
        int(flags.bond_matcher),
        int(flags.ring_matcher),
        int(flags.perfect_rings),
        int(atom_matcher),
        num_cycles_a,
        num_cycles_b,
        ",".join(str(bit) for bit in fp_a),
        ",".join(str(bit) for bit in fp_b),
    ]
    return "|".join(str(f) for f in fields)
