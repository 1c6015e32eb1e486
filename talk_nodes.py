from __future__ import annotations

from pathlib import Path

from ase import Atoms
from pandas import DataFrame
from pyiron_workflow import as_function_node, as_macro_node
import atomistic_nodes as an


@as_function_node("kpoints")
def SheetKGrid(nkpoints: int) -> tuple[int, int, int]:
    """A Monkhorst-Pack grid for a 2D sheet: no sampling along the vacuum."""
    kpoints = (nkpoints, nkpoints, 1)
    return kpoints


@as_function_node("repeats")
def SupercellShape(nx: int = 2, ny: int = 2, nz: int = 1) -> tuple[int, int, int]:
    repeats = (nx, ny, nz)
    return repeats


@as_macro_node("scf", "band_structure")
def GrapheneBands(
    self,
    ecut: float = 10.0,
    nkpoints: int = 5,
    nbands: int = 15,
    npoints: int = 100,
    working_directory: str = "graphene",
) -> tuple[an.physics.SCFResult, an.physics.ASEBandStructure]:
    self.sheet = an.atoms.Graphene()
    self.kgrid = SheetKGrid(nkpoints)
    self.dft = an.calculators.Espresso(
        ecut=ecut,
        kpoints=self.kgrid,
        nbands=nbands,
        working_directory=working_directory,
    )
    self.ground_state = an.physics.SCF(self.sheet, self.dft)
    self.bands = an.physics.BandStructure(self.ground_state, npoints=npoints)
    return self.ground_state, self.bands


@as_macro_node("scf", "wannier")
def GrapheneWannier(
    self,
    ecut: float = 10.0,
    nkpoints: int = 5,
    nbands: int = 15,
    nwann: int = 5,
    mu: float = 0.0,
    sigma: float = 0.01,
    dis_froz_max: float | None = 0.1,
    working_directory: str = "graphene",
) -> tuple[an.physics.SCFResult, an.wannier.WannierResult]:
    self.sheet = an.atoms.Graphene()
    self.kgrid = SheetKGrid(nkpoints)
    self.dft = an.calculators.Espresso(
        ecut=ecut,
        kpoints=self.kgrid,
        nbands=nbands,
        working_directory=working_directory,
    )
    self.ground_state = an.physics.SCF(self.sheet, self.dft)
    self.wannierisation = an.wannier.Wannierise(
        self.ground_state,
        nwann=nwann,
        mu=mu,
        sigma=sigma,
        dis_froz_max=dis_froz_max,
        seedname="graphene",
    )
    return self.ground_state, self.wannierisation


@as_macro_node("energy", "atoms")
def SiliconVacancyEnergy(
    self,
    nx: int = 2,
    ny: int = 2,
    nz: int = 1,
    A: float = 4.0,
) -> tuple[float, Atoms]:
    """
    A silicon vacancy in an `nx` x `ny` x `nz` supercell of the cubic cell,
    evaluated with the analytic exp-6 pair potential.
    """
    self.unit = an.atoms.Bulk("Si", cubic=True)
    self.shape = SupercellShape(nx, ny, nz)
    self.supercell = an.atoms.Repeat(self.unit, self.shape)
    self.vacancy = an.atoms.CreateVacancy(self.supercell, 0)
    self.potential = an.calculators.AnalyticPair(A=A)
    self.evaluation = an.physics.PotentialEnergy(self.vacancy, self.potential)
    return self.evaluation, self.vacancy


@as_macro_node("model", "errors")
def FitAndTest(
    self,
    filename: str | Path,
    elements: list[str],
    Eref: dict[str, float] | None = None,
    weights: dict | None = None,
    rcut: float = 5.5,
    n_max: int = 4,
    l_max: int = 3,
    fit_step: int = 5,
    test_start: int = 1,
    test_step: int = 10,
    force_key: str = "forces",
) -> tuple[an.fitting.LinearDescriptorModel, DataFrame]:
    """
    Fit a linear potential to a sparse subset of a dataset and report its errors on
    a different (unseen) subset.
    """
    self.dataset = an.atoms.ReadStructures(filename)
    self.training = an.atoms.Subsample(self.dataset, step=fit_step)
    self.testing = an.atoms.Subsample(self.dataset, start=test_start, step=test_step)
    self.basis = an.fitting.LinearModel(
        elements, rcut=rcut, n_max=n_max, l_max=l_max, Eref=Eref
    )
    self.fitted = an.fitting.Fit(
        self.basis, self.training, weights=weights, force_key=force_key
    )
    self.linear_errors = an.fitting.LinearErrors(
        self.testing, self.fitted, force_key=force_key
    )
    return self.fitted, self.linear_errors
