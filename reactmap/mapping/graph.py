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

import time
from dataclasses import dataclass
from typing import Optional

from rdkit import Chem

from reactmap.graph_utils import convert_to_nx, count_independent_cycles

# This is needed for pickled mols to preserve their properties
Chem.SetDefaultPickleProperties(Chem.PropertyPickleOptions.AllProps)

ATOM_ID_PROP = "id"


class GraphDuplicationError(Exception):
    pass


class NormalizationError(Exception):
    pass


class NormalizationWarning(UserWarning):
    pass


def get_mol_name(mol: Chem.Mol) -> Optional[str]:
    return mol.GetProp("_Name") if mol.HasProp("_Name") else None


def set_mol_name(mol: Chem.Mol, name: str):
    mol.SetProp("_Name", name)


def get_atom_id(atom: Chem.Atom) -> Optional[str]:
    return atom.GetProp(ATOM_ID_PROP) if atom.HasProp(ATOM_ID_PROP) else None


def get_atom_ids(mol: Chem.Mol) -> list[Optional[str]]:
    return [get_atom_id(atom) for atom in mol.GetAtoms()]


def _copy_mol(mol) -> Chem.Mol:
    try:
        return Chem.Mol(mol)
    except (TypeError, RuntimeError) as e:
        raise GraphDuplicationError(f"Unable to duplicate graph of type {type(mol).__name__}: {e}") from e


def duplicate(mol: Chem.Mol) -> Chem.Mol:
    """Structural copy of mol that keeps the graph identifier, the atom order and every atom identifier.

    Raises
    ------
    GraphDuplicationError
        If mol cannot be copied
    """
    dup = _copy_mol(mol)
    name = get_mol_name(mol)
    if name is not None:
        set_mol_name(dup, name)
    for atom, dup_atom in zip(mol.GetAtoms(), dup.GetAtoms()):
        atom_id = get_atom_id(atom)
        if atom_id is not None:
            dup_atom.SetProp(ATOM_ID_PROP, atom_id)
    return dup


def duplicate_with_identifiers(mol: Chem.Mol) -> Chem.Mol:
    """Same as :py:func:`duplicate`, but fills in missing identifiers.

    Atoms without an identifier get their index (as a string), a graph without a name gets a
    fresh one from the nanosecond clock. The input mol is left untouched.
    """
    dup = _copy_mol(mol)
    for idx, (atom, dup_atom) in enumerate(zip(mol.GetAtoms(), dup.GetAtoms())):
        atom_id = get_atom_id(atom)
        dup_atom.SetProp(ATOM_ID_PROP, str(idx) if atom_id is None else atom_id)

    name = get_mol_name(mol)
    set_mol_name(dup, str(time.monotonic_ns()) if name is None else name)
    return dup


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of :py:func:`normalize`. failed_step is None if every step succeeded."""

    failed_step: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failed_step is None


def _update_property_cache(mol):
    mol.UpdatePropertyCache(strict=False)


def _perceive_rings(mol):
    Chem.GetSymmSSSR(mol)


def _perceive_atom_types(mol):
    ops = Chem.SanitizeFlags.SANITIZE_ALL ^ Chem.SanitizeFlags.SANITIZE_CLEANUP
    failed_op = Chem.SanitizeMol(mol, sanitizeOps=ops, catchErrors=True)
    if failed_op != Chem.SanitizeFlags.SANITIZE_NONE:
        raise ValueError(f"sanitization failed at {failed_op}")


def _perceive_aromaticity(mol):
    Chem.SetAromaticity(mol, Chem.AromaticityModel.AROMATICITY_DEFAULT)


_NORMALIZATION_STEPS = [
    ("property_cache", _update_property_cache),
    ("rings", _perceive_rings),
    ("atom_types", _perceive_atom_types),
    ("aromaticity", _perceive_aromaticity),
]


def normalize(mol: Chem.Mol) -> NormalizationResult:
    """Best-effort, in-place chemical normalization: ring perception, atom-type (hybridization)
    perception and aromaticity detection.

    Steps run in order and stop at the first failure, leaving mol in whatever state was reached.
    The caller decides whether a partially normalized graph is usable.

    Parameters
    ----------
    mol: Chem.Mol
        Molecule to normalize, modified in place

    Returns
    -------
    NormalizationResult
    """
    for step_name, step in _NORMALIZATION_STEPS:
        try:
            step(mol)
        except (RuntimeError, ValueError) as e:
            return NormalizationResult(failed_step=step_name, message=str(e))
    return NormalizationResult()


def count_cycles(mol: Chem.Mol) -> int:
    """Number of independent cycles of mol, usable as a ring-count hint for a matching task"""
    return count_independent_cycles(convert_to_nx(mol))
