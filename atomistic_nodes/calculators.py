from __future__ import annotations

from abc import ABC, abstractmethod
from functools import partialmethod
import logging
import os
from pathlib import Path

from ase import Atoms
from ase.calculators.calculator import BaseCalculator
from ase.calculators.emt import EMT as ASEEMT
from ase.calculators.espresso import Espresso as ASEEspresso, EspressoProfile
from ase.calculators.lj import LennardJones as ASELennardJones
from ase.calculators.morse import MorsePotential as ASEMorsePotential
from ase.units import Ha, Ry
from pyiron_workflow import as_function_node

from atomistic_nodes.atoms import nearest_neighbor_distance
from atomistic_nodes.potentials import PairPotential, SplineCutoff, exp6
from atomistic_nodes.shared import DelayedInstantiator

logger = logging.getLogger(__name__)


class DelayedCalculator(DelayedInstantiator, ABC):
    def instantiate(self, atoms: Atoms, **kwargs) -> BaseCalculator:
        args, new_kwargs = self._parse_atoms(atoms)
        new_kwargs.update(kwargs)
        return super().instantiate(*args, **new_kwargs)

    @abstractmethod
    def _parse_atoms(self, atoms: Atoms) -> tuple[tuple, dict]:
        """
        Ensure that the atoms are consistent with the calculator representation.

        Return new args and additional kwargs to supply at instantiation as needed.
        """


DelayedCalculator.__init__.__annotations__.update({"cls": type[BaseCalculator]})


def _species_to_set(
    species: str | list[str] | tuple[str, ...] | set[str] | Atoms
) -> set[str]:
    if isinstance(species, str):
        species = {species}
    elif isinstance(species, (list, tuple)):
        species = set(species)
    elif isinstance(species, set):
        pass
    elif isinstance(species, Atoms):
        species = set(species.get_chemical_symbols())
    else:
        raise TypeError(
            f"Expected to be able to convert `species` into a set of strings, but got "
            f"{species}"
        )
    return species


def _maybe_mpi(
    mpi_command: str | None,
    n_cores: int,
    executable: str,
    oversubscribe: bool = False,
    use_hwthread_cpus: bool = False,
) -> str:
    return (
        executable if mpi_command is None
        else f"{mpi_command} "
             f"-n {n_cores} "
             f"{'--oversubscribe ' if oversubscribe else ''}"
             f"{'--use-hwthread-cpus ' if use_hwthread_cpus else ''}"
             f"{executable}"
    )


class DelayedEMT(DelayedCalculator):

    allowed_species = {"Al", "Cu", "Ag", "Au", "Ni", "Pd", "Pt", "H", "C", "N", "O"}

    __init__ = partialmethod(DelayedCalculator.__init__, ASEEMT)

    def _parse_atoms(self, atoms: Atoms) -> tuple[tuple, dict]:
        species = _species_to_set(atoms)
        disallowed = species.difference(self.allowed_species)
        if len(disallowed) > 0:
            raise ValueError(
                f"{ASEEMT.__name__} only supports {self.allowed_species}, but "
                f"{disallowed} was supplied."
            )
        return (), {}


@as_function_node("calculator")
def EMT(
    asap_cutoff: bool = False
) -> DelayedCalculator:
    calculator = DelayedEMT(cls_kwargs={"asap_cutoff": asap_cutoff})
    return calculator
EMT.__doc__ = ASEEMT.__doc__
EMT.allowed_species = DelayedEMT.allowed_species  # Convenience access to this info


class DelayedPairPotential(DelayedCalculator):
    """Pair potentials are element-agnostic; any structure goes."""

    def _parse_atoms(self, atoms: Atoms) -> tuple[tuple, dict]:
        return (), {}


@as_function_node("calculator")
def LennardJones(
    sigma: float = 1.0,
    epsilon: float = 1.0,
    rc: float | None = None,
    smooth: bool = False,
) -> DelayedCalculator:
    calculator = DelayedPairPotential(
        ASELennardJones,
        cls_kwargs={"sigma": sigma, "epsilon": epsilon, "rc": rc, "smooth": smooth}
    )
    return calculator
LennardJones.__doc__ = ASELennardJones.__doc__


@as_function_node("calculator")
def Morse(
    epsilon: float = 1.0,
    r0: float = 1.0,
    rho0: float = 6.0,
) -> DelayedCalculator:
    calculator = DelayedPairPotential(
        ASEMorsePotential,
        cls_kwargs={"epsilon": epsilon, "r0": r0, "rho0": rho0}
    )
    return calculator
Morse.__doc__ = ASEMorsePotential.__doc__


@as_function_node("calculator")
def AnalyticPair(
    A: float = 4.0,
    r0: float | None = None,
    r_in_factor: float = 2.1,
    r_out_factor: float = 3.5,
) -> DelayedCalculator:
    """
    A hand-rolled analytic potential,
    `phi(r) = 6 exp(-A (r/r0 - 1)) - A (r0/r)^6`, smoothly cut off between
    `r_in_factor * r0` and `r_out_factor * r0`.

    Args:
        A (float): Stiffness of the repulsion and strength of the attraction.
        r0 (float | None): The length scale (Å). Defaults to the silicon
            nearest-neighbour distance.
        r_in_factor (float): Where the cutoff starts, in units of `r0`.
        r_out_factor (float): Where the potential is zero, in units of `r0`.

    Returns:
        DelayedCalculator: Builds a
            :class:`atomistic_nodes.potentials.PairPotential`.
    """
    r0 = nearest_neighbor_distance("Si") if r0 is None else r0
    phi, dphi = exp6(A, r0)
    calculator = DelayedPairPotential(
        PairPotential,
        cls_kwargs={
            "phi": phi,
            "dphi": dphi,
            "cutoff": SplineCutoff(r_in_factor * r0, r_out_factor * r0),
        }
    )
    return calculator


def _get_pseudo_dojo_dir() -> str:
    """
    Get the path to the pseudo-dojo pseudopotentials directory.

    Honours ASE's `ESPRESSO_PSEUDO` environment variable, otherwise looks for the
    pseudopotentials accompanying this code.
    """
    if "ESPRESSO_PSEUDO" in os.environ:
        return str(Path(os.environ["ESPRESSO_PSEUDO"]).resolve())
    repo_dir = Path(__file__).parent.parent
    pseudo_dir = repo_dir.joinpath("resources", "nc-sr-05_pbe_standard_upf")
    return str(pseudo_dir.resolve())


def _get_pseudo_dojo_dict(pseudopotentials_directory: str | Path) -> dict[str, str]:
    """Species to filename, for every `X.upf` file (as from pseudo-dojo.org)."""
    directory = Path(pseudopotentials_directory)
    if not directory.is_dir():
        logger.warning("Pseudopotential directory %s does not exist", directory)
        return {}
    return {
        upf.name.split(".")[0]: upf.name
        for upf in sorted(directory.iterdir())
        if upf.is_file() and upf.suffix.lower() == ".upf"
    }


class DelayedEspresso(DelayedCalculator):
    """
    Carries the `pw.x` settings, plus the number of bands which are expected to be
    converged (`n_bands_converge`); any further bands in `nbnd` are only there to
    help convergence and get excluded from post-processing.
    """

    __init__ = partialmethod(DelayedCalculator.__init__, ASEEspresso)

    n_bands_converge: int | None = None

    @property
    def input_data(self) -> dict:
        return self.cls_kwargs["input_data"]

    @property
    def directory(self) -> Path:
        return Path(self.cls_kwargs["directory"])

    @property
    def profile(self) -> EspressoProfile:
        return self.cls_kwargs["profile"]

    def _parse_atoms(self, atoms: Atoms) -> tuple[tuple, dict]:
        species = _species_to_set(atoms)
        missing = species.difference(self.cls_kwargs["pseudopotentials"].keys())
        if len(missing) > 0:
            raise ValueError(
                f"{ASEEspresso.__name__} requires pseudopotentials to be specified "
                f"for each species, but no potential(s) for {missing} was supplied."
            )
        return (), {}


@as_function_node("calculator", validate_output_labels=False)
def Espresso(
    ecut: float = 10.0,
    kpoints: tuple[int, int, int] = (1, 1, 1),
    nbands: int | None = None,
    extra_bands: int = 3,
    conv_thr: float = 1e-8,
    pseudopotentials_directory: str | None = None,
    pseudopotentials: dict[str, str] | None = None,
    input_data: dict | None = None,
    mpi_command: str | None = "mpiexec",
    n_cores: int = 1,
    oversubscribe: bool = False,
    use_hwthread_cpus: bool = False,
    executable: str = "pw.x",
    working_directory: str = ".",
    prefix: str = "pwscf",
) -> DelayedEspresso:
    """
    A Quantum ESPRESSO plane-wave DFT calculator (PBE, norm-conserving
    pseudopotentials).

    Args:
        ecut (float): Kinetic energy cutoff of the wavefunctions, in Hartree.
        kpoints (tuple[int, int, int]): The Monkhorst-Pack grid.
        nbands (int | None): How many bands must be converged. Defaults to `None`,
            let `pw.x` decide (and compute no extra bands).
        extra_bands (int): How many bands to compute on top of :param:`nbands`.
        conv_thr (float): SCF energy convergence threshold, in Rydberg.
        pseudopotentials_directory (str | None): Where to find the
            pseudopotentials. Defaults to the pseudo-dojo set accompanying this
            code, or `$ESPRESSO_PSEUDO` when set.
        pseudopotentials (dict[str, str] | None): Species to filename map.
            Defaults to using every `X.upf` in the pseudopotential directory.
        input_data (dict | None): Additional (flat) `pw.x` input that takes
            precedence over everything above.
        mpi_command (str | None): The MPI executable to use. If `None`, the
            executable is used directly.
        n_cores (int): How many cores to run on.
        oversubscribe (bool): Whether to add `--oversubscribe` to the mpi call.
        use_hwthread_cpus (bool): Whether to add `--use-hwthread-cpus` to the mpi
            call.
        executable (str): The `pw.x` executable.
        working_directory (str): Where input, output and `outdir` live.
        prefix (str): The `pw.x` prefix; post-processing codes must use the same.

    Returns:
        DelayedEspresso: A middle-man class whose :meth:`instantiate` method will
            create a :class:`ase.calculators.espresso.Espresso` instance.
    """
    pseudopotentials_directory = (
        _get_pseudo_dojo_dir() if pseudopotentials_directory is None
        else pseudopotentials_directory
    )
    profile = EspressoProfile(
        command=_maybe_mpi(
            mpi_command, n_cores, executable, oversubscribe, use_hwthread_cpus
        ),
        pseudo_dir=pseudopotentials_directory
    )

    if pseudopotentials is None:
        pseudopotentials = _get_pseudo_dojo_dict(pseudopotentials_directory)

    if ecut <= 0:
        raise ValueError(f"The energy cutoff must be positive, got {ecut} Hartree")

    default_input_data = {
        "calculation": "scf",
        "prefix": prefix,
        "outdir": "./out",
        "tprnfor": True,
        "tstress": True,
        "ecutwfc": ecut * Ha / Ry,
        "input_dft": "PBE",
        "occupations": "smearing",
        "smearing": "gaussian",
        "degauss": 0.01,
        "conv_thr": conv_thr,
    }
    if nbands is not None:
        default_input_data["nbnd"] = nbands + extra_bands
    default_input_data.update({} if input_data is None else input_data)

    calculator = DelayedEspresso(
        cls_kwargs={
            "profile": profile,
            "pseudopotentials": pseudopotentials,
            "kpts": tuple(kpoints),
            "input_data": default_input_data,
            "directory": working_directory,
        }
    )
    calculator.n_bands_converge = nbands
    return calculator
