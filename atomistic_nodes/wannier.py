"""
Maximally-localised Wannier functions from a converged Quantum ESPRESSO ground
state, using Wannier90.

The initial guess comes from the selected columns of the density matrix (SCDM)
method. Since graphene-like systems have entangled bands, SCDM needs a weight for
each Bloch state; we use the complementary error function
`0.5 erfc((e - mu) / sigma)`, which `pw2wannier90.x` supports natively.

The chain of codes is

    pw.x (nscf, full grid) -> wannier90.x -pp -> pw2wannier90.x -> wannier90.x

all run in the SCF working directory so that they share `outdir` and `prefix`.
"""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass, field
import logging
from pathlib import Path
import shlex
import subprocess

import numpy as np
from ase import Atoms
from ase.io.espresso import write_espresso_in
from ase.io.wannier90 import read_wout_all
from ase.units import Ha
from pyiron_workflow import as_function_node
from scipy.special import erfc

from atomistic_nodes.calculators import _maybe_mpi
from atomistic_nodes.physics import SCFResult

logger = logging.getLogger(__name__)


def scdm_weight(eigenvalues, mu: float, sigma: float) -> np.ndarray:
    """
    The erfc occupation-like weight SCDM assigns to each Bloch state.

    Args:
        eigenvalues: Band energies (same units as `mu` and `sigma`).
        mu (float): Where the weight drops to one half.
        sigma (float): How quickly it drops; must be positive.
    """
    if sigma <= 0:
        raise ValueError(f"The SCDM smearing sigma must be positive, got {sigma}")
    return 0.5 * erfc((np.asarray(eigenvalues, dtype=float) - mu) / sigma)


def full_kgrid(mp_grid: tuple[int, int, int]) -> np.ndarray:
    """
    Every k-point of an unshifted Monkhorst-Pack grid in fractional coordinates,
    first index slowest, the order `kmesh.pl` uses for Wannier90 input.
    """
    n1, n2, n3 = mp_grid
    return np.array(
        [
            [i / n1, j / n2, k / n3]
            for i in range(n1)
            for j in range(n2)
            for k in range(n3)
        ]
    )


@dataclass
class Wannier90Input:
    num_wann: int
    num_bands: int
    mp_grid: tuple[int, int, int]
    exclude_bands: list[int] = field(default_factory=list)
    dis_froz_max: float | None = None
    num_iter: int = 200
    dis_num_iter: int = 200
    auto_projections: bool = True
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.num_wann > self.num_bands:
            raise ValueError(
                f"Cannot construct {self.num_wann} Wannier functions from "
                f"{self.num_bands} bands"
            )
        if self.num_wann < 1:
            raise ValueError(f"Need at least one Wannier function, got {self.num_wann}")

    @staticmethod
    def _format(value) -> str:
        if isinstance(value, bool):
            return ".true." if value else ".false."
        return str(value)

    @staticmethod
    def _ranges(indices: list[int]) -> str:
        """E.g. [16, 17, 18, 20] -> '16-18, 20'"""
        indices = sorted(set(indices))
        groups = []
        for index in indices:
            if groups and index == groups[-1][1] + 1:
                groups[-1][1] = index
            else:
                groups.append([index, index])
        return ", ".join(
            str(start) if start == stop else f"{start}-{stop}"
            for start, stop in groups
        )

    def render(self, atoms: Atoms) -> str:
        lines = [
            f"num_wann = {self.num_wann}",
            f"num_bands = {self.num_bands}",
            f"num_iter = {self.num_iter}",
            f"dis_num_iter = {self.dis_num_iter}",
        ]
        if len(self.exclude_bands) > 0:
            lines.append(f"exclude_bands = {self._ranges(self.exclude_bands)}")
        if self.dis_froz_max is not None:
            lines.append(f"dis_froz_max = {self.dis_froz_max}")
        if self.auto_projections:
            lines.append("auto_projections = .true.")
        lines.extend(f"{key} = {self._format(value)}" for key, value in self.extra.items())

        lines += ["", "begin unit_cell_cart", "ang"]
        lines += ["  " + " ".join(f"{x:14.8f}" for x in vector) for vector in atoms.cell]
        lines += ["end unit_cell_cart", "", "begin atoms_frac"]
        lines += [
            f"  {symbol:2s} " + " ".join(f"{x:14.8f}" for x in position)
            for symbol, position in zip(
                atoms.get_chemical_symbols(), atoms.get_scaled_positions()
            )
        ]
        lines += ["end atoms_frac", ""]
        lines.append("mp_grid = " + " ".join(str(n) for n in self.mp_grid))
        lines += ["", "begin kpoints"]
        lines += [
            "  " + " ".join(f"{x:14.10f}" for x in k) for k in full_kgrid(self.mp_grid)
        ]
        lines += ["end kpoints", ""]
        return "\n".join(lines)


@dataclass
class Pw2WannierInput:
    """
    `pw2wannier90.x` input using SCDM projections with erfc entanglement.

    `mu` and `sigma` are taken in Hartree and written in eV.
    """
    seedname: str
    prefix: str
    outdir: str
    mu: float
    sigma: float
    write_unk: bool = False

    def __post_init__(self):
        if self.sigma <= 0:
            raise ValueError(f"The SCDM smearing sigma must be positive, got {self.sigma}")

    def render(self) -> str:
        entries = {
            "outdir": f"'{self.outdir}'",
            "prefix": f"'{self.prefix}'",
            "seedname": f"'{self.seedname}'",
            "write_mmn": ".true.",
            "write_amn": ".true.",
            "write_unk": ".true." if self.write_unk else ".false.",
            "scdm_proj": ".true.",
            "scdm_entanglement": "'erfc'",
            "scdm_mu": f"{self.mu * Ha:.8f}",
            "scdm_sigma": f"{self.sigma * Ha:.8f}",
        }
        body = "\n".join(f"  {key} = {value}" for key, value in entries.items())
        return f"&inputpp\n{body}\n/\n"


@dataclass
class WannierResult:
    centers: np.ndarray
    spreads: np.ndarray
    directory: Path
    seedname: str

    @property
    def total_spread(self) -> float:
        return float(np.sum(self.spreads))


def _run(command: str, directory: Path, args: list[str], stdin: Path | None = None,
         stdout: Path | None = None):
    full_command = shlex.split(command) + args
    logger.info("Running `%s` in %s", " ".join(full_command), directory)
    with ExitStack() as stack:
        stdin_handle = None if stdin is None else stack.enter_context(
            open(directory / stdin)
        )
        stdout_handle = None if stdout is None else stack.enter_context(
            open(directory / stdout, "w")
        )
        try:
            subprocess.run(
                full_command,
                cwd=directory,
                stdin=stdin_handle,
                stdout=stdout_handle,
                check=True,
            )
        except subprocess.CalledProcessError:
            logger.error("`%s` failed in %s", " ".join(full_command), directory)
            raise


def nscf_kpoints(mp_grid: tuple[int, int, int]) -> np.ndarray:
    """
    The full grid as explicit, equally weighted k-points in crystal coordinates.

    `pw.x` would fold an automatic grid back into the first Brillouin zone, while
    `pw2wannier90.x` requires exactly the list in the `.win` file.
    """
    kpoints = full_kgrid(mp_grid)
    weights = np.full((len(kpoints), 1), 1.0 / len(kpoints))
    return np.hstack([kpoints, weights])


def write_nscf_input(scf: SCFResult, filename: Path) -> Path:
    """
    A non-self-consistent `pw.x` input on the full, unreduced k-grid of the SCF.
    """
    input_data = dict(scf.calculator.input_data)
    input_data.update(
        {
            "calculation": "nscf",
            "nosym": True,
            "noinv": True,
            "pseudo_dir": str(scf.calculator.profile.pseudo_dir),
        }
    )
    with open(filename, "w") as fd:
        write_espresso_in(
            fd,
            scf.atoms,
            input_data=input_data,
            pseudopotentials=scf.calculator.cls_kwargs["pseudopotentials"],
            kpts=nscf_kpoints(tuple(scf.calculator.cls_kwargs["kpts"])),
        )
    return filename


def wannierise(
    scf: SCFResult,
    nwann: int,
    mu: float = 0.0,
    sigma: float = 0.01,
    dis_froz_max: float | None = 0.1,
    seedname: str = "wannier",
    mpi_command: str | None = None,
    n_cores: int = 1,
    pw_executable: str = "pw.x",
    pw2wannier90_executable: str = "pw2wannier90.x",
    wannier90_executable: str = "wannier90.x",
) -> WannierResult:
    calculator = scf.calculator
    directory = calculator.directory
    num_bands = int(calculator.input_data.get("nbnd", 0))
    if num_bands == 0:
        raise ValueError(
            "Wannierisation needs an explicit band count; build the calculator with "
            "`nbands` set"
        )
    converged = (
        num_bands if calculator.n_bands_converge is None
        else calculator.n_bands_converge
    )
    if nwann > converged:
        raise ValueError(
            f"Cannot construct {nwann} Wannier functions from {converged} converged "
            f"bands"
        )

    win = Wannier90Input(
        num_wann=nwann,
        num_bands=converged,
        mp_grid=tuple(calculator.cls_kwargs["kpts"]),
        exclude_bands=list(range(converged + 1, num_bands + 1)),
        dis_froz_max=dis_froz_max,
    )
    (directory / f"{seedname}.win").write_text(win.render(scf.atoms))
    pw2wan = Pw2WannierInput(
        seedname=seedname,
        prefix=calculator.input_data["prefix"],
        outdir=calculator.input_data["outdir"],
        mu=mu,
        sigma=sigma,
    )
    (directory / f"{seedname}.pw2wan").write_text(pw2wan.render())
    write_nscf_input(scf, directory / "nscf.pwi")

    _run(
        _maybe_mpi(mpi_command, n_cores, pw_executable),
        directory, ["-in", "nscf.pwi"], stdout=Path("nscf.pwo")
    )
    _run(wannier90_executable, directory, ["-pp", seedname])
    _run(
        _maybe_mpi(mpi_command, n_cores, pw2wannier90_executable),
        directory, [], stdin=Path(f"{seedname}.pw2wan"),
        stdout=Path(f"{seedname}.pw2wan.out"),
    )
    _run(wannier90_executable, directory, [seedname])

    with open(directory / f"{seedname}.wout") as fd:
        wout = read_wout_all(fd)
    result = WannierResult(
        centers=np.asarray(wout["centers"]),
        spreads=np.asarray(wout["spreads"]),
        directory=directory,
        seedname=seedname,
    )
    logger.info(
        "Constructed %d Wannier functions with total spread %.4f Å^2",
        nwann, result.total_spread
    )
    return result


@as_function_node("wannier")
def Wannierise(
    scf: SCFResult,
    nwann: int = 5,
    mu: float = 0.0,
    sigma: float = 0.01,
    dis_froz_max: float | None = 0.1,
    seedname: str = "wannier",
    mpi_command: str | None = None,
    n_cores: int = 1,
    pw_executable: str = "pw.x",
    pw2wannier90_executable: str = "pw2wannier90.x",
    wannier90_executable: str = "wannier90.x",
) -> WannierResult:
    """
    Maximally-localised Wannier functions for a converged ground state.

    Args:
        scf (SCFResult): The ground state, computed with an explicit `nbands`.
        nwann (int): How many Wannier functions to construct.
        mu (float): Centre of the SCDM erfc weight (Hartree).
        sigma (float): Width of the SCDM erfc weight (Hartree).
        dis_froz_max (float | None): Top of the frozen disentanglement window (eV).
        seedname (str): Prefix of the Wannier90 files.
        mpi_command (str | None): MPI launcher for the `pw.x` steps.
        n_cores (int): How many cores to run on.
        pw_executable (str): The `pw.x` executable.
        pw2wannier90_executable (str): The `pw2wannier90.x` executable.
        wannier90_executable (str): The `wannier90.x` executable.

    Returns:
        WannierResult: Centres (Å) and spreads (Å^2) of the Wannier functions.
    """
    wannier = wannierise(
        scf,
        nwann,
        mu=mu,
        sigma=sigma,
        dis_froz_max=dis_froz_max,
        seedname=seedname,
        mpi_command=mpi_command,
        n_cores=n_cores,
        pw_executable=pw_executable,
        pw2wannier90_executable=pw2wannier90_executable,
        wannier90_executable=wannier90_executable,
    )
    return wannier
