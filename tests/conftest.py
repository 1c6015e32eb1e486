"""
Shared pytest fixtures.

Everything here is pure Python: no `pw.x`, `wannier90.x`, `marimo` executable or
network access is needed. Tests that would run external codes monkeypatch
`subprocess.run` instead.
"""

from __future__ import annotations

import numpy as np
import pytest
from ase.build import bulk
from ase.calculators.emt import EMT


@pytest.fixture
def silicon():
    return bulk("Si", cubic=True)


@pytest.fixture
def rattled_silicon():
    atoms = bulk("Si", cubic=True).repeat((2, 1, 1))
    atoms.rattle(stdev=0.05, seed=42)
    return atoms


@pytest.fixture
def emt_dataset():
    """
    Twelve small copper cells with EMT reference energies and forces stored the way
    an extended XYZ training set carries them.
    """
    rng = np.random.default_rng(0)
    structures = []
    for n in range(12):
        atoms = bulk("Cu", "fcc", a=3.6 + 0.05 * rng.standard_normal(), cubic=True)
        atoms.rattle(stdev=0.05, seed=n)
        atoms.calc = EMT()
        atoms.info["energy"] = atoms.get_potential_energy()
        atoms.info["config_type"] = "bulk" if n % 2 == 0 else "rattled"
        atoms.set_array("forces", atoms.get_forces())
        atoms.calc = None
        structures.append(atoms)
    return structures


@pytest.fixture
def pseudo_dir(tmp_path):
    directory = tmp_path / "pseudo"
    directory.mkdir()
    for species in ("C", "Si"):
        (directory / f"{species}.upf").write_text("<UPF version=\"2.0.1\"></UPF>\n")
    (directory / "README.txt").write_text("not a pseudopotential\n")
    return directory
