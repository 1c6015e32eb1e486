import marimo

__generated_with = "0.9.14"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    return (mo,)


@app.cell
def _():
    from pathlib import Path

    import atomistic_nodes as an
    from atomistic_nodes.widgets import SUPERCELL, SUPERCELL_DEFAULTS
    from talk_nodes import FitAndTest, SiliconVacancyEnergy
    return FitAndTest, Path, SUPERCELL, SUPERCELL_DEFAULTS, SiliconVacancyEnergy, an


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        r"""
        # Atomistic modelling ecosystem (3/4)

        ## Structures and analytic potentials

        [**ASE**](https://gitlab.com/ase/ase) is a library for assembling atomistic
        structures and quickly testing novel interatomic potentials.

        For example we can construct a silicon vacancy.
        """
    )
    return


@app.cell(hide_code=True)
def _(SUPERCELL, SUPERCELL_DEFAULTS, mo):
    nx, ny, nz = (SUPERCELL.element(value=v) for v in SUPERCELL_DEFAULTS)
    mo.md(f"We consider a {nx} x {ny} x {nz} supercell.")
    return nx, ny, nz


@app.cell
def _(an, nx, ny, nz):
    supercell = an.atoms.Repeat.node_function(
        an.atoms.Bulk.node_function("Si", cubic=True),
        (int(nx.value), int(ny.value), int(nz.value)),
    )
    vacancy = an.atoms.CreateVacancy.node_function(supercell, 0)
    vacancy
    return supercell, vacancy


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        r"""
        While we could now easily employ Quantum ESPRESSO to evaluate the energy of
        such a structure, e.g.

        ```python
        calculator = an.calculators.Espresso.node_function(ecut=20, kpoints=(1, 1, 1))
        an.physics.SCF.node_function(vacancy, calculator).energy
        ```

        this is a bit too expensive for such a notebook.

        Instead we build our own **custom analytic potential**,
        $\phi(r) = 6 e^{-A (r/r_0 - 1)} - A (r_0/r)^6$ with a smooth cutoff between
        $2.1 r_0$ and $3.5 r_0$, and use that:
        """
    )
    return


@app.cell
def _(SiliconVacancyEnergy, nx, ny, nz):
    vacancy_energy = SiliconVacancyEnergy(
        nx=int(nx.value), ny=int(ny.value), nz=int(nz.value), A=4.0
    )
    vacancy_energy.run()
    vacancy_energy.outputs.energy.value
    return (vacancy_energy,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        r"""
        Some standard potentials (Lennard-Jones, Morse, EMT) are also supported out
        of the box, see `an.calculators`.

        ## Machine-learning interatomic potentials

        Here we fit a **linear machine-learning potential** on SOAP descriptors
        ([DScribe](https://github.com/SINGROUP/dscribe)) against pre-computed DFT
        data, following the well-known TiAl tutorial of the
        [ACEsuit](https://acesuit.github.io/).

        We take

        - `rcut = 5.5`, typical cutoff radius for metals
        - a very small basis (`n_max = 4`, `l_max = 3`) for testing
        - one-body reference potentials for Ti and Al
        """
    )
    return


@app.cell
def _(Path, an, mo):
    datafile = Path("data", "TiAl_tutorial.xyz")
    try:
        an.datasets.fetch_dataset(an.datasets.TIAL_TUTORIAL_URL, datafile)
    except OSError as e:
        download_error = str(e)
    else:
        download_error = None
    mo.stop(
        not datafile.is_file(),
        mo.callout(
            mo.md(
                f"""
                /// warning | Missing data

                This part needs the TiAl tutorial dataset (as distributed with the
                ACE1pack tutorials) at `{datafile}`, and downloading it failed:
                {download_error}
                ///
                """
            ),
            kind="warn",
        ),
    )
    return (datafile,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        """
        We will not consider all data, but only a sparse subset for the fit, and
        a different subset to test on. Next we fit the model, taking specific
        weights between the errors in the energies and forces (virials are not
        fitted), and damping the least-squares solution towards small coefficients
        (regularisation):
        """
    )
    return


@app.cell
def _(FitAndTest, datafile):
    fit = FitAndTest(
        filename=datafile,
        elements=["Ti", "Al"],
        Eref={"Ti": -1586.0195, "Al": -105.5954},
        weights={
            "FLD_TiAl": {"E": 60.0, "F": 1.0, "V": 1.0},
            "TiAl_T5000": {"E": 5.0, "F": 1.0, "V": 1.0},
        },
        force_key="force",
    )
    fit.run()
    model = fit.outputs.model.value
    data = fit.dataset.outputs.structures.value
    return data, fit, model


@app.cell
def _(data, fit, mo):
    mo.md(
        f"{len(data)} structures in total, "
        f"{len(fit.training.outputs.structures.value)} used for fitting and "
        f"{len(fit.testing.outputs.structures.value)} for testing."
    )
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md("Errors on unseen data:")
    return


@app.cell
def _(fit):
    fit.outputs.errors.value
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        "Once the model is trained it can be used like any other ASE calculator to "
        "compute e.g. the energy of an unseen structure:"
    )
    return


@app.cell
def _(an, data, model):
    an.physics.PotentialEnergy.node_function(
        data[2], an.fitting.ModelCalculator.node_function(model)
    )
    return


if __name__ == "__main__":
    app.run()
