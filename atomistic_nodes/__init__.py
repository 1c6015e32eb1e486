"""
Nodes wrapping the atomistic modelling tools shown in the accompanying talk.

This node package is built-to-purpose for the talk notebooks; it does not give
access to all the functionality of the wrapped codes (ASE, Quantum ESPRESSO,
Wannier90, spglib, DScribe), nor even all their input parameters. Rather, it
exposes the handful of knobs the notebooks put on sliders, and shows how other
(even complex and powerful) tools can be packaged and used in a workflow
formulation.

As with any ASE-based node package, the main trick is to delay the instantiation of
calculators until the last possible moment prior to a calculation.
"""

# All public nodes and functions in the following submodules represent the API
import atomistic_nodes.atoms
import atomistic_nodes.calculators
import atomistic_nodes.datasets
import atomistic_nodes.ecosystem
import atomistic_nodes.fitting
import atomistic_nodes.physics
import atomistic_nodes.potentials
import atomistic_nodes.wannier
import atomistic_nodes.widgets
