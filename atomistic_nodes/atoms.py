from __future__ import annotations

from pathlib import Path

from ase import Atoms
from ase.build import bulk
from ase.io import read
from pyiron_workflow import as_function_node
import spglib


# ASE has all sorts of parameters like `a: float = None`, which causes the node's type
# checking to break
@as_function_node("atoms")
def Bulk(
    name: str,
    crystalstructure: str | None = None,
    a: float | None = None,
    b: float | None = None,
    c: float | None = None,
    *,
    alpha: float | None = None,
    covera: float | None = None,
    u: float | None = None,
    orthorhombic: bool = False,
    cubic: bool = False,
    basis=None,
) -> Atoms:
    atoms = bulk(
        name=name,
        crystalstructure=crystalstructure,
        a=a,
        b=b,
        c=c,
        alpha=alpha,
        covera=covera,
        u=u,
        orthorhombic=orthorhombic,
        cubic=cubic,
        basis=basis,
    )
    return atoms
Bulk.__doc__ = bulk.__doc__


@as_function_node("atoms")
def Graphene(a: float = 2.641, vacuum_distance: float = 10.0) -> Atoms:
    """
    A graphene sheet: two carbons in a hexagonal cell.

    Args:
        a (float): The in-plane lattice constant (Å).
        vacuum_distance (float): The distance between periodic images of the sheet
            (Å).
    """
    atoms = Atoms(
        "C2",
        cell=[
            [a, 0.0, 0.0],
            [-a / 2, 3 ** 0.5 * a / 2, 0.0],
            [0.0, 0.0, vacuum_distance],
        ],
        scaled_positions=[[0.0, 0.0, 0.0], [1 / 3, 2 / 3, 0.0]],
        pbc=True,
    )
    return atoms


@as_function_node("atoms")
def Repeat(
    atoms: Atoms,
    repeats: int | tuple[int, int, int],
    idempotent: bool = True
) -> Atoms:
    """It's a bird, it's a plane, it's SuperCell!"""
    if idempotent:
        atoms = atoms.copy()
    atoms = atoms.repeat(rep=repeats)
    return atoms


@as_function_node("atoms")
def CreateVacancy(
    atoms: Atoms,
    indices: int | list[int] = 0,
    idempotent: bool = True
) -> Atoms:
    """Remove one or more atoms."""
    if idempotent:
        atoms = atoms.copy()

    indices = [indices] if isinstance(indices, int) else list(indices)
    out_of_range = [i for i in indices if not -len(atoms) <= i < len(atoms)]
    if len(out_of_range) > 0:
        raise IndexError(
            f"Cannot remove atom(s) {out_of_range} from a structure with "
            f"{len(atoms)} atoms"
        )

    # Reverse to avoid messing up our index
    for i in sorted({i % len(atoms) for i in indices}, reverse=True):
        atoms.pop(i)
    return atoms


def nearest_neighbor_distance(species: str) -> float:
    reference = bulk(species).repeat(3)
    distances = reference.get_all_distances(mic=True)
    return float(distances[distances > 1e-8].min())


@as_function_node("distance")
def NearestNeighborDistance(species: str) -> float:
    """The nearest-neighbour distance in ASE's reference crystal for the species."""
    distance = nearest_neighbor_distance(species)
    return distance


@as_function_node("symbol", "number")
def SpaceGroup(atoms: Atoms, symprec: float = 1e-5) -> tuple[str, int]:
    """The international space group symbol and number, as detected by spglib."""
    cell = (atoms.cell[:], atoms.get_scaled_positions(), atoms.numbers)
    spacegroup = spglib.get_spacegroup(cell, symprec=symprec)
    if spacegroup is None:
        raise ValueError(
            f"spglib could not determine a space group for {atoms} with "
            f"symprec={symprec}"
        )
    symbol, number = spacegroup.split()
    return symbol, int(number.strip("()"))


@as_function_node("structures")
def ReadStructures(filename: str | Path, index: str = ":") -> list[Atoms]:
    """
    Read a list of structures, e.g. an extended XYZ training set.

    Energies, forces and `config_type` annotations are carried along in each
    structure's `info`, `arrays` and (single point) calculator.
    """
    path = Path(filename)
    if not path.is_file():
        raise FileNotFoundError(f"No structure file found at {path.resolve()}")
    structures = read(path, index=index)
    if isinstance(structures, Atoms):
        structures = [structures]
    return list(structures)


@as_function_node("structures")
def Subsample(structures: list[Atoms], start: int = 0, step: int = 1) -> list[Atoms]:
    """Every `step`-th structure, beginning at `start`."""
    if step < 1:
        raise ValueError(f"Subsample step must be a positive integer, got {step}")
    structures = list(structures[start::step])
    return structures
