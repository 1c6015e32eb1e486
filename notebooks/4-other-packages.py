import marimo

__generated_with = "0.9.14"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    from atomistic_nodes import ecosystem
    return ecosystem, mo


@app.cell(hide_code=True)
def _(mo):
    mo.md(
        r"""
        # Atomistic modelling ecosystem (4/4)

        The previous notebooks have given *a few examples* for what is currently
        possible with Python-based tools for atomistic modelling in materials
        science. Much more is out there, for which this provides some pointers.

        ## Disclaimer

        New projects appear on a continuous basis and not every one of them is
        intended to be long-running. The bias here is towards projects with
        considerable recent activity or which are embedded into a long-term
        research activity.

        If you think something important is missing, please open a PR.
        """
    )
    return


@app.cell(hide_code=True)
def _(ecosystem, mo):
    mo.md("\n".join(ecosystem.as_markdown(c) for c in ecosystem.CATEGORIES))
    return


@app.cell
def _(ecosystem):
    ecosystem.catalogue()
    return


if __name__ == "__main__":
    app.run()
