import marimo

__generated_with = "0.9.14"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    return (mo,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        r"""
        # Atomistic modelling ecosystem (1/4)

        We start with plane-wave **density-functional theory**. The heavy lifting is
        done by [Quantum ESPRESSO](https://www.quantum-espresso.org), driven through
        [ASE](https://gitlab.com/ase/ase); structures come from ASE and their
        symmetry from [spglib](https://github.com/spglib/spglib).
        """
    )
    return


@app.cell
def _():
    import atomistic_nodes as an
    from atomistic_nodes.widgets import ECUT, NKPOINTS
    return ECUT, NKPOINTS, an


@app.cell
def _(an):
    silicon = an.atoms.Bulk.node_function("Si")
    symbol, number = an.atoms.SpaceGroup.node_function(silicon)
    silicon, symbol, number
    return number, silicon, symbol


@app.cell(hide_code=True)
def _(ECUT, NKPOINTS, mo, number, symbol):
    ecut = ECUT.element()
    nkpoints = NKPOINTS.element()
    mo.md(
        f"""
        Silicon crystallises in the diamond structure, space group
        **{symbol}** (No. {number}).

        Choose the discretisation according to your CPU:

        - Ecut (Hartree): {ecut}
        - nkpoints: {nkpoints}
        """
    )
    return ecut, nkpoints


@app.cell
def _(an, ecut, nkpoints, silicon):
    calculator = an.calculators.Espresso.node_function(
        ecut=ecut.value,
        kpoints=(nkpoints.value,) * 3,
        nbands=8,
        working_directory="silicon",
    )
    scf = an.physics.SCF.node_function(silicon, calculator)
    scf.energy, scf.fermi_level
    return calculator, scf


@app.cell
def _(an, scf):
    bands = an.physics.BandStructure.node_function(scf, npoints=80)
    an.physics.PlotBandStructure.node_function(bands, emin=-13, emax=6, title="Si")
    return (bands,)


if __name__ == "__main__":
    app.run()
