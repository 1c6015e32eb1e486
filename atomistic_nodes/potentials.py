"""
Analytic pair potentials as ASE calculators.

For quickly trying out a new functional form there is no need for a fitted model or
an external code: a radial function, its derivative and a cutoff are enough to get
energies, forces and stresses out of an ASE neighbour list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from ase.calculators.calculator import Calculator, all_changes
from ase.neighborlist import neighbor_list
from ase.stress import full_3x3_to_voigt_6_stress


RadialFunction = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class SplineCutoff:
    """
    Cubic switching function, 1 below `r_in`, 0 above `r_out`, continuously
    differentiable in between.
    """
    r_in: float
    r_out: float

    def __post_init__(self):
        if not 0 <= self.r_in < self.r_out:
            raise ValueError(
                f"{self.__class__.__name__} needs 0 <= r_in < r_out, but got "
                f"r_in={self.r_in} and r_out={self.r_out}"
            )

    def _s(self, r: np.ndarray) -> np.ndarray:
        return np.clip((r - self.r_in) / (self.r_out - self.r_in), 0.0, 1.0)

    def __call__(self, r) -> np.ndarray:
        s = self._s(np.asarray(r, dtype=float))
        return 1.0 - s * s * (3.0 - 2.0 * s)

    def derivative(self, r) -> np.ndarray:
        s = self._s(np.asarray(r, dtype=float))
        return -6.0 * s * (1.0 - s) / (self.r_out - self.r_in)


def exp6(A: float, r0: float) -> tuple[RadialFunction, RadialFunction]:
    """
    `phi(r) = 6 exp(-A (r/r0 - 1)) - A (r0/r)^6` and its derivative.
    """
    def phi(r):
        return 6.0 * np.exp(-A * (r / r0 - 1.0)) - A * (r0 / r) ** 6

    def dphi(r):
        return -6.0 * A / r0 * np.exp(-A * (r / r0 - 1.0)) + 6.0 * A * r0 ** 6 / r ** 7

    return phi, dphi


class PairPotential(Calculator):
    """
    A pair potential `E = 1/2 sum_ij phi(r_ij) fc(r_ij)` for an arbitrary radial
    function `phi` and cutoff `fc`.

    Args:
        phi: The radial function.
        dphi: Its derivative with respect to `r`.
        cutoff (SplineCutoff): Smoothly switches off the interaction; its `r_out` is
            also the neighbour list cutoff.
    """

    implemented_properties = ["energy", "free_energy", "energies", "forces", "stress"]
    nolabel = True

    def __init__(
        self,
        phi: RadialFunction,
        dphi: RadialFunction,
        cutoff: SplineCutoff,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.phi = phi
        self.dphi = dphi
        self.cutoff = cutoff

    def pair_terms(self, r: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        fc = self.cutoff(r)
        energy = self.phi(r) * fc
        derivative = self.dphi(r) * fc + self.phi(r) * self.cutoff.derivative(r)
        return energy, derivative

    def calculate(
        self,
        atoms=None,
        properties=("energy",),
        system_changes=all_changes,
    ):
        super().calculate(atoms, properties, system_changes)
        n_atoms = len(self.atoms)

        i, j, d, D = neighbor_list("ijdD", self.atoms, self.cutoff.r_out)
        pair_energy, pair_derivative = self.pair_terms(d)

        # Each pair appears twice in the neighbour list
        energies = 0.5 * np.bincount(i, weights=pair_energy, minlength=n_atoms)
        # dE/dD for each (directed) pair, D = r_j - r_i
        dE_dD = (0.5 * pair_derivative / d)[:, np.newaxis] * D

        forces = np.zeros((n_atoms, 3))
        for axis in range(3):
            forces[:, axis] += np.bincount(i, weights=dE_dD[:, axis], minlength=n_atoms)
            forces[:, axis] -= np.bincount(j, weights=dE_dD[:, axis], minlength=n_atoms)

        self.results["energies"] = energies
        self.results["energy"] = self.results["free_energy"] = energies.sum()
        self.results["forces"] = forces

        if self.atoms.cell.rank == 3 and self.atoms.pbc.all():
            virial = D.T @ dE_dD
            self.results["stress"] = full_3x3_to_voigt_6_stress(
                virial / self.atoms.get_volume()
            )
