"""
A linear machine-learning interatomic potential, fitted to reference DFT data.

The energy of a structure is a sum of one-body reference energies and a linear
function of SOAP descriptors (from `dscribe`) summed over atoms:

    E = sum_i Eref[Z_i] + c . sum_i p_i

so forces are linear in the same coefficients and both can be fitted together by
(regularised) linear least squares.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from functools import cached_property
import logging

import numpy as np
from ase import Atoms
from ase.calculators.calculator import (
    Calculator,
    PropertyNotImplementedError,
    all_changes,
)
from dscribe.descriptors import SOAP
from pandas import DataFrame
from pyiron_workflow import as_function_node
from scipy.sparse.linalg import lsqr

from atomistic_nodes.calculators import DelayedCalculator, _species_to_set

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {"default": {"E": 30.0, "F": 1.0, "V": 1.0}}


@dataclass
class LinearDescriptorModel:
    elements: list[str]
    rcut: float = 5.5
    n_max: int = 4
    l_max: int = 3
    Eref: dict[str, float] = field(default_factory=dict)
    periodic: bool = True
    coefficients: np.ndarray | None = None

    def __post_init__(self):
        self.elements = list(self.elements)
        unknown = set(self.Eref).difference(self.elements)
        if len(unknown) > 0:
            raise ValueError(
                f"Reference energies were given for {unknown}, which are not among "
                f"the model elements {self.elements}"
            )

    @cached_property
    def descriptor(self) -> SOAP:
        return SOAP(
            species=self.elements,
            r_cut=self.rcut,
            n_max=self.n_max,
            l_max=self.l_max,
            periodic=self.periodic,
        )

    @property
    def n_features(self) -> int:
        return self.descriptor.get_number_of_features()

    @property
    def is_fitted(self) -> bool:
        return self.coefficients is not None

    def check_species(self, atoms: Atoms):
        unknown = _species_to_set(atoms).difference(self.elements)
        if len(unknown) > 0:
            raise ValueError(
                f"{self.__class__.__name__} knows {self.elements}, but the structure "
                f"contains {unknown}"
            )

    def one_body(self, atoms: Atoms) -> float:
        return float(sum(self.Eref.get(s, 0.0) for s in atoms.get_chemical_symbols()))

    def features(self, atoms: Atoms) -> np.ndarray:
        self.check_species(atoms)
        return self.descriptor.create(atoms).sum(axis=0)

    def features_and_derivatives(self, atoms: Atoms) -> tuple[np.ndarray, np.ndarray]:
        """
        Summed descriptor, shape (n_features,), and its derivative with respect to
        each atomic position, shape (n_atoms, 3, n_features).
        """
        self.check_species(atoms)
        derivatives, descriptors = self.descriptor.derivatives(
            atoms, return_descriptor=True
        )
        return descriptors.sum(axis=0), derivatives.sum(axis=0)

    def _require_fit(self):
        if not self.is_fitted:
            raise RuntimeError(
                f"This {self.__class__.__name__} has not been fitted yet"
            )

    def energy(self, atoms: Atoms) -> float:
        self._require_fit()
        return self.one_body(atoms) + float(self.features(atoms) @ self.coefficients)

    def energy_and_forces(self, atoms: Atoms) -> tuple[float, np.ndarray]:
        self._require_fit()
        features, derivatives = self.features_and_derivatives(atoms)
        energy = self.one_body(atoms) + float(features @ self.coefficients)
        forces = -derivatives @ self.coefficients
        return energy, forces

    def calculator(self) -> LinearModelCalculator:
        self._require_fit()
        return LinearModelCalculator(model=self)


class LinearModelCalculator(Calculator):
    implemented_properties = ["energy", "free_energy", "forces"]
    nolabel = True

    def __init__(self, model: LinearDescriptorModel, **kwargs):
        super().__init__(**kwargs)
        self.model = model

    def calculate(
        self,
        atoms=None,
        properties=("energy",),
        system_changes=all_changes,
    ):
        super().calculate(atoms, properties, system_changes)
        if "forces" in properties:
            energy, forces = self.model.energy_and_forces(self.atoms)
            self.results["forces"] = forces
        else:
            energy = self.model.energy(self.atoms)
        self.results["energy"] = self.results["free_energy"] = energy


class DelayedModelCalculator(DelayedCalculator):

    def _parse_atoms(self, atoms: Atoms) -> tuple[tuple, dict]:
        self.cls_kwargs["model"].check_species(atoms)
        return (), {}


def reference_energy(atoms: Atoms, energy_key: str = "energy") -> float:
    if energy_key in atoms.info:
        return float(atoms.info[energy_key])
    if atoms.calc is not None:
        return float(atoms.get_potential_energy())
    raise ValueError(
        f"No reference energy found for {atoms}: expected `info['{energy_key}']` or "
        f"an attached calculator"
    )


def reference_forces(atoms: Atoms, force_key: str = "forces") -> np.ndarray | None:
    if force_key in atoms.arrays:
        return np.asarray(atoms.arrays[force_key])
    if atoms.calc is not None:
        try:
            return atoms.get_forces()
        except PropertyNotImplementedError:
            return None
    return None


def _config_type(atoms: Atoms) -> str:
    return str(atoms.info.get("config_type", "default"))


def _weights_for(weights: dict, config_type: str) -> dict[str, float]:
    merged = dict(DEFAULT_WEIGHTS["default"])
    merged.update(weights.get("default", {}))
    merged.update(weights.get(config_type, {}))
    return merged


def fit(
    model: LinearDescriptorModel,
    structures: list[Atoms],
    weights: dict | None = None,
    damp: float = 1e-2,
    atol: float = 1e-6,
    energy_key: str = "energy",
    force_key: str = "forces",
) -> LinearDescriptorModel:
    """
    Fit the model coefficients to reference energies and forces.

    Args:
        model (LinearDescriptorModel): Supplies the descriptor and reference
            energies; it is not modified.
        structures (list[Atoms]): The training set.
        weights (dict | None): Config type -> {"E": w_E, "F": w_F, "V": w_V}; a
            "default" entry applies to every config type not listed. Energies enter
            per atom.
        damp (float): Tikhonov regularisation passed to LSQR.
        atol (float): LSQR stopping tolerance.
        energy_key (str): Where to look for energies in `atoms.info`.
        force_key (str): Where to look for forces in `atoms.arrays`.

    Returns:
        LinearDescriptorModel: A fitted copy of the model.
    """
    weights = DEFAULT_WEIGHTS if weights is None else weights
    if len(structures) == 0:
        raise ValueError("Cannot fit a model to an empty training set")
    if any(w.get("V", 0.0) > 0 for w in weights.values()):
        logger.info("Virial weights are accepted but virials are not fitted")

    rows, targets = [], []
    for atoms in structures:
        w = _weights_for(weights, _config_type(atoms))
        n_atoms = len(atoms)
        energy = reference_energy(atoms, energy_key) - model.one_body(atoms)
        forces = reference_forces(atoms, force_key) if w["F"] > 0 else None

        if forces is None:
            features = model.features(atoms)
        else:
            features, derivatives = model.features_and_derivatives(atoms)
            rows.append(-w["F"] * derivatives.reshape(-1, model.n_features))
            targets.append(w["F"] * forces.reshape(-1))
        rows.append(w["E"] * features[np.newaxis, :] / n_atoms)
        targets.append(np.array([w["E"] * energy / n_atoms]))

    design = np.vstack(rows)
    target = np.concatenate(targets)
    coefficients, istop, itn, residual = lsqr(
        design, target, damp=damp, atol=atol, btol=atol
    )[:4]
    logger.info(
        "Fitted %d coefficients to %d observations from %d structures "
        "(LSQR stop %d after %d iterations, residual %.4g)",
        model.n_features, len(target), len(structures), istop, itn, residual
    )
    return replace(model, coefficients=coefficients)


def linear_errors(
    structures: list[Atoms],
    model: LinearDescriptorModel,
    energy_key: str = "energy",
    force_key: str = "forces",
) -> DataFrame:
    """
    Root-mean-square and mean absolute errors of the model, per config type and
    over the whole set. Energies in meV/atom, forces in eV/Å.
    """
    energy_errors: dict[str, list[float]] = {}
    force_errors: dict[str, list[np.ndarray]] = {}
    for atoms in structures:
        config_type = _config_type(atoms)
        reference = reference_forces(atoms, force_key)
        if reference is None:
            energy = model.energy(atoms)
        else:
            energy, forces = model.energy_and_forces(atoms)
            force_errors.setdefault(config_type, []).append(
                (forces - reference).ravel()
            )
        energy_errors.setdefault(config_type, []).append(
            1000 * (energy - reference_energy(atoms, energy_key)) / len(atoms)
        )

    def _row(de: list[float], df: list[np.ndarray]) -> dict:
        de = np.asarray(de)
        df = np.concatenate(df) if len(df) > 0 else np.array([np.nan])
        return {
            "E_rmse": float(np.sqrt(np.mean(de ** 2))),
            "E_mae": float(np.mean(np.abs(de))),
            "F_rmse": float(np.sqrt(np.mean(df ** 2))),
            "F_mae": float(np.mean(np.abs(df))),
            "n_structures": len(de),
        }

    table = {
        config_type: _row(energy_errors[config_type], force_errors.get(config_type, []))
        for config_type in sorted(energy_errors)
    }
    table["set"] = _row(
        [e for errors in energy_errors.values() for e in errors],
        [f for errors in force_errors.values() for f in errors],
    )
    df = DataFrame.from_dict(table, orient="index")
    df.index.name = "config_type"
    return df


@as_function_node("model")
def LinearModel(
    elements: list[str],
    rcut: float = 5.5,
    n_max: int = 4,
    l_max: int = 3,
    Eref: dict[str, float] | None = None,
) -> LinearDescriptorModel:
    """
    An (unfitted) linear SOAP potential.

    Args:
        elements (list[str]): The chemical species the model can describe.
        rcut (float): Cutoff radius (Å); around 5.5 is typical for metals.
        n_max (int): Number of radial basis functions.
        l_max (int): Maximum angular momentum; together with `n_max` this sets the
            size (and cost) of the basis.
        Eref (dict[str, float] | None): One-body reference energies (eV) per species.
    """
    model = LinearDescriptorModel(
        elements=elements,
        rcut=rcut,
        n_max=n_max,
        l_max=l_max,
        Eref={} if Eref is None else Eref,
    )
    return model


@as_function_node("model")
def Fit(
    model: LinearDescriptorModel,
    structures: list[Atoms],
    weights: dict | None = None,
    damp: float = 1e-2,
    atol: float = 1e-6,
    energy_key: str = "energy",
    force_key: str = "forces",
) -> LinearDescriptorModel:
    model = fit(
        model,
        structures,
        weights=weights,
        damp=damp,
        atol=atol,
        energy_key=energy_key,
        force_key=force_key,
    )
    return model
Fit.__doc__ = fit.__doc__


@as_function_node("errors")
def LinearErrors(
    structures: list[Atoms],
    model: LinearDescriptorModel,
    energy_key: str = "energy",
    force_key: str = "forces",
) -> DataFrame:
    errors = linear_errors(structures, model, energy_key=energy_key, force_key=force_key)
    return errors
LinearErrors.__doc__ = linear_errors.__doc__


@as_function_node("calculator")
def ModelCalculator(model: LinearDescriptorModel) -> DelayedCalculator:
    """Use a fitted model like any other calculator."""
    model._require_fit()
    calculator = DelayedModelCalculator(LinearModelCalculator, cls_kwargs={"model": model})
    return calculator
