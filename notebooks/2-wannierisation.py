import marimo

__generated_with = "0.9.14"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    return (mo,)


@app.cell
def _():
    import atomistic_nodes as an
    from atomistic_nodes.widgets import ECUT, MU, NBANDS, NKPOINTS, SIGMA, nwann_slider
    from talk_nodes import GrapheneBands
    return ECUT, GrapheneBands, MU, NBANDS, NKPOINTS, SIGMA, an, nwann_slider


@app.cell(hide_code=True)
def _(ECUT, NBANDS, NKPOINTS, mo):
    ecut = ECUT.element()
    nkpoints = NKPOINTS.element()
    nbands = NBANDS.element()
    mo.md(
        f"""
        # Atomistic modelling ecosystem (2/4)

        As an addendum to the previous DFT notebook, we show here how Quantum
        ESPRESSO plays together with [Wannier90](https://wannier.org) for
        wannierisation.

        /// warning | Unstable interfaces

        The SCDM options of `pw2wannier90.x` and the `.wout` parser in ASE have
        both changed over time; this notebook shows a current working version.
        ///

        We will go with a graphene system. Choose discretisation according to your
        CPU:

        - Ecut (Hartree): {ecut}
        - nkpoints: {nkpoints}
        - nbands: {nbands}
        """
    )
    return ecut, nbands, nkpoints


@app.cell
def _(GrapheneBands, ecut, nbands, nkpoints):
    graphene = GrapheneBands(
        ecut=ecut.value,
        nkpoints=nkpoints.value,
        nbands=nbands.value,
    )
    graphene.run()
    scf = graphene.outputs.scf.value
    return graphene, scf


@app.cell
def _(an, graphene):
    an.physics.PlotBandStructure.node_function(
        graphene.outputs.band_structure.value, emin=-20, emax=10, title="Graphene"
    )
    return


@app.cell(hide_code=True)
def _(MU, SIGMA, mo, nbands, nwann_slider):
    sigma = SIGMA.element()
    mu = MU.element()
    nwann = nwann_slider(nbands.value).element()
    mo.md(
        f"""
        Now we construct maximally-localised Wannier functions. We first use SCDM
        to generate a good initial guess.

        Since this is an entangled case, we need a weight factor, for which we use
        an `erfc` with parameters

        - `σ` = {sigma} Hartree
        - `μ` = {mu} Hartree

        and construct `nwann = ` {nwann} Wannier functions:
        """
    )
    return mu, nwann, sigma


@app.cell(hide_code=True)
def _(MU, SIGMA, mo, mu, sigma):
    mo.md(
        f"SCDM weight: `0.5 erfc((ε - {MU.display(mu.value)}) / "
        f"{SIGMA.display(sigma.value)})`, in Hartree"
    )
    return


@app.cell
def _(an, mu, nwann, scf, sigma):
    wannier = an.wannier.Wannierise.node_function(
        scf,
        nwann=nwann.value,
        mu=mu.value,
        sigma=sigma.value,
        dis_froz_max=0.1,
        seedname="graphene",
    )
    wannier.centers, wannier.spreads
    return (wannier,)


if __name__ == "__main__":
    app.run()
