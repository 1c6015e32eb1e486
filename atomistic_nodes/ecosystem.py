"""
Pointers to the wider Python ecosystem for atomistic modelling.

This is biased towards projects with considerable recent activity or which are
embedded into a long-term research effort; new projects appear all the time, so if
something important is missing, please open a PR.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from pandas import DataFrame
from pyiron_workflow import as_function_node


@dataclass(frozen=True)
class Package:
    name: str
    url: str
    category: str
    description: str


CATEGORIES = (
    "Interfacing and community building",
    "Simulation tools",
    "Machine learning",
    "Workflow managers & parsers",
    "Support libraries",
)

PACKAGES = (
    Package(
        "ASE", "https://gitlab.com/ase/ase", CATEGORIES[0],
        "The lingua franca for atomistic structures and calculators; nearly every "
        "package below reads or writes `ase.Atoms`",
    ),
    Package(
        "pymatgen", "https://github.com/materialsproject/pymatgen", CATEGORIES[0],
        "Structure analysis, phase diagrams and IO for the Materials Project",
    ),
    Package(
        "OPTIMADE", "https://github.com/Materials-Consortia/optimade-python-tools",
        CATEGORIES[0],
        "Common API for querying structure databases across providers",
    ),
    Package(
        "Quantum ESPRESSO", "https://www.quantum-espresso.org", CATEGORIES[1],
        "Plane-wave density-functional theory, driven here through ASE",
    ),
    Package(
        "GPAW", "https://gitlab.com/gpaw/gpaw", CATEGORIES[1],
        "Density-functional theory with a Python front end (plane waves, real "
        "space grids, LCAO)",
    ),
    Package(
        "PySCF", "https://github.com/pyscf/pyscf", CATEGORIES[1],
        "Quantum chemistry, including periodic systems and coupled cluster",
    ),
    Package(
        "i-PI", "https://github.com/i-pi/i-pi", CATEGORIES[1],
        "Path-integral and advanced molecular dynamics, talking to force providers "
        "over sockets",
    ),
    Package(
        "MACE", "https://github.com/ACEsuit/mace", CATEGORIES[2],
        "Higher-order equivariant message-passing interatomic potentials, including "
        "foundation models",
    ),
    Package(
        "DScribe", "https://github.com/SINGROUP/dscribe", CATEGORIES[2],
        "Descriptors (SOAP, ACSF, MBTR) for machine learning on structures",
    ),
    Package(
        "scikit-matter", "https://github.com/scikit-learn-contrib/scikit-matter",
        CATEGORIES[2],
        "scikit-learn compatible feature selection and regression for materials",
    ),
    Package(
        "KLIFF", "https://github.com/openkim/kliff", CATEGORIES[2],
        "Fitting physics-based and machine-learning potentials for OpenKIM",
    ),
    Package(
        "pyiron_workflow", "https://github.com/pyiron/pyiron_workflow", CATEGORIES[3],
        "Graph-based workflows out of plain Python functions",
    ),
    Package(
        "AiiDA", "https://github.com/aiidateam/aiida-core", CATEGORIES[3],
        "Provenance-tracking workflow engine for high-throughput simulations",
    ),
    Package(
        "atomate2", "https://github.com/materialsproject/atomate2", CATEGORIES[3],
        "Ready-made computational materials science workflows",
    ),
    Package(
        "spglib", "https://github.com/spglib/spglib", CATEGORIES[4],
        "Crystal symmetry determination",
    ),
    Package(
        "SeeK-path", "https://github.com/giovannipizzi/seekpath", CATEGORIES[4],
        "Standardised k-space paths for band structures",
    ),
    Package(
        "phonopy", "https://github.com/phonopy/phonopy", CATEGORIES[4],
        "Phonons via finite displacements, for any force provider",
    ),
    Package(
        "PseudoDojo", "https://www.pseudo-dojo.org", CATEGORIES[4],
        "Tested norm-conserving pseudopotential tables",
    ),
    Package(
        "WannierBerri", "https://github.com/wannier-berri/wannier-berri",
        CATEGORIES[4],
        "Berry-phase properties by Wannier interpolation",
    ),
)


def catalogue(category: str | None = None) -> DataFrame:
    if category is not None and category not in CATEGORIES:
        raise KeyError(f"Unknown category {category!r}, choose from {CATEGORIES}")
    df = DataFrame([asdict(p) for p in PACKAGES])
    if category is not None:
        df = df[df["category"] == category].reset_index(drop=True)
    return df


def as_markdown(category: str) -> str:
    """A bulleted list of links, one per package in the category."""
    df = catalogue(category)
    lines = [f"## {category}", ""]
    lines += [
        f"- [{row.name}]({row.url}): {row.description}"
        for row in df.itertuples(index=False)
    ]
    return "\n".join(lines) + "\n"


@as_function_node("packages")
def Catalogue(category: str | None = None) -> DataFrame:
    packages = catalogue(category)
    return packages
