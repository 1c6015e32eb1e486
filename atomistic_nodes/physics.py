from __future__ import annotations

from dataclasses import dataclass
import logging

from ase import Atoms
from ase.calculators.calculator import all_changes
from ase.dft.kpoints import BandPath
from ase.io import read
from ase.spectrum.band_structure import BandStructure as ASEBandStructure
from ase.spectrum.band_structure import get_band_structure
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from pyiron_workflow import as_function_node

from atomistic_nodes.calculators import DelayedCalculator, DelayedEspresso

logger = logging.getLogger(__name__)


@dataclass
class AtomicOutput:
    potential_energy: float
    forces: float


@dataclass
class SCFResult:
    """
    What we need to hand a converged ground state to post-processing.

    The charge density and wavefunctions live in the calculator's working
    directory (`outdir`/`prefix`), so the calculator travels along.
    """
    energy: float
    fermi_level: float
    atoms: Atoms
    calculator: DelayedEspresso

    @property
    def directory(self):
        return self.calculator.directory


@as_function_node("data", "atoms")
def Static(
    atoms: Atoms,
    calculator: DelayedCalculator,
) -> tuple[AtomicOutput, Atoms]:
    atoms = atoms.copy()  # Copy for idempotency
    atoms.calc = calculator.instantiate(atoms)
    data = AtomicOutput(
        potential_energy=atoms.get_potential_energy(),
        forces=atoms.get_forces()
    )
    return data, atoms.copy()


@as_function_node("energy")
def PotentialEnergy(atoms: Atoms, calculator: DelayedCalculator) -> float:
    atoms = atoms.copy()
    atoms.calc = calculator.instantiate(atoms)
    energy = float(atoms.get_potential_energy())
    return energy


def _read_espresso_output(calculator: DelayedEspresso) -> Atoms:
    return read(calculator.directory / "espresso.pwo", format="espresso-out")


@as_function_node("scf")
def SCF(atoms: Atoms, calculator: DelayedEspresso) -> SCFResult:
    """
    Run a self-consistent field calculation.

    Args:
        atoms (Atoms): The structure.
        calculator (DelayedEspresso): The DFT settings.

    Returns:
        SCFResult: The total energy, Fermi level, and everything needed to
            restart from the converged density.
    """
    atoms = atoms.copy()
    calculator = calculator.updated(input_data={"calculation": "scf"})
    atoms.calc = calculator.instantiate(atoms)
    energy = atoms.get_potential_energy()
    fermi_level = _read_espresso_output(calculator).calc.get_fermi_level()
    logger.info(
        "SCF converged in %s: E = %.6f eV, E_F = %.4f eV",
        calculator.directory, energy, fermi_level
    )
    scf = SCFResult(
        energy=float(energy),
        fermi_level=float(fermi_level),
        atoms=atoms.copy(),
        calculator=calculator,
    )
    return scf


@as_function_node("band_structure")
def BandStructure(
    scf: SCFResult,
    npoints: int = 100,
    path: str | None = None,
) -> ASEBandStructure:
    """
    Non-self-consistent eigenvalues along a path through the Brillouin zone.

    Args:
        scf (SCFResult): A converged ground state.
        npoints (int): How many k-points to put on the path.
        path (str | None): Special point labels, e.g. `"GMKG"`. Defaults to the
            standard path for the cell's Bravais lattice.

    Returns:
        BandStructure: The bands, with energies relative to the Fermi level.
    """
    bandpath: BandPath = scf.atoms.cell.bandpath(path, npoints=npoints)
    calculator = scf.calculator.updated(
        input_data={"calculation": "bands"}, kpts=bandpath
    )

    atoms = scf.atoms.copy()
    atoms.calc = calculator.instantiate(atoms)
    atoms.calc.calculate(atoms, ["energy"], all_changes)

    band_structure = get_band_structure(
        atoms=_read_espresso_output(calculator),
        path=bandpath,
        reference=scf.fermi_level,
    )
    return band_structure


@as_function_node("figure")
def PlotBandStructure(
    band_structure: ASEBandStructure,
    emin: float = -10.0,
    emax: float = 5.0,
    title: str | None = None,
) -> Figure:
    figure, ax = plt.subplots(figsize=(6, 4))
    band_structure.plot(ax=ax, emin=emin, emax=emax, show=False)
    if title is not None:
        ax.set_title(title)
    return figure
