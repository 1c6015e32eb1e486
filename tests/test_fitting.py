from __future__ import annotations

import numpy as np
import pytest
from ase.build import bulk
from ase.calculators.emt import EMT
from ase.calculators.singlepoint import SinglePointCalculator

import atomistic_nodes as an
from atomistic_nodes.fitting import (
    LinearDescriptorModel,
    fit,
    linear_errors,
    reference_energy,
    reference_forces,
)

SMALL = {"rcut": 4.0, "n_max": 2, "l_max": 2}


@pytest.fixture
def model():
    return an.fitting.LinearModel.node_function(
        ["Cu", "Al"], Eref={"Cu": 0.01}, **SMALL
    )


@pytest.fixture
def fitted(model, emt_dataset):
    return fit(model, emt_dataset[::2])


class TestModel:

    def test_reference_energies_must_be_model_elements(self):
        with pytest.raises(ValueError):
            LinearDescriptorModel(["Cu"], Eref={"Ti": -1.0})

    def test_one_body(self, model):
        assert model.one_body(bulk("Cu", cubic=True)) == pytest.approx(0.04)

    def test_features(self, model, emt_dataset):
        features = model.features(emt_dataset[0])
        assert features.shape == (model.n_features,)

    def test_derivatives(self, model, emt_dataset):
        atoms = emt_dataset[0]
        features, derivatives = model.features_and_derivatives(atoms)
        assert features == pytest.approx(model.features(atoms))
        assert derivatives.shape == (len(atoms), 3, model.n_features)

    def test_unknown_species(self, model):
        with pytest.raises(ValueError):
            model.features(bulk("Au"))

    def test_unfitted(self, model, emt_dataset):
        assert not model.is_fitted
        with pytest.raises(RuntimeError):
            model.energy(emt_dataset[0])
        with pytest.raises(RuntimeError):
            model.calculator()


class TestReferenceData:

    def test_from_info_and_arrays(self, emt_dataset):
        atoms = emt_dataset[0]
        assert reference_energy(atoms) == atoms.info["energy"]
        assert reference_forces(atoms) is atoms.arrays["forces"]

    def test_from_calculator(self):
        atoms = bulk("Cu", cubic=True)
        atoms.calc = SinglePointCalculator(atoms, energy=-1.5, forces=np.ones((4, 3)))
        assert reference_energy(atoms) == pytest.approx(-1.5)
        assert reference_forces(atoms) == pytest.approx(np.ones((4, 3)))

    def test_missing(self):
        atoms = bulk("Cu", cubic=True)
        with pytest.raises(ValueError):
            reference_energy(atoms)
        assert reference_forces(atoms) is None


class TestFit:

    def test_returns_fitted_copy(self, model, fitted):
        assert fitted.is_fitted
        assert not model.is_fitted
        assert fitted.coefficients.shape == (model.n_features,)
        assert fitted.Eref == model.Eref

    def test_energies_only(self, model, emt_dataset):
        fitted = fit(model, emt_dataset, weights={"default": {"E": 1.0, "F": 0.0}})
        assert fitted.is_fitted

    def test_empty_training_set(self, model):
        with pytest.raises(ValueError):
            fit(model, [])

    def test_node(self, model, emt_dataset):
        fitted = an.fitting.Fit.node_function(
            model,
            emt_dataset,
            weights={
                "bulk": {"E": 60.0, "F": 1.0, "V": 1.0},
                "rattled": {"E": 5.0, "F": 1.0, "V": 1.0},
            },
        )
        assert fitted.is_fitted

    def test_calculator(self, fitted, emt_dataset):
        atoms = emt_dataset[1].copy()
        atoms.calc = fitted.calculator()
        assert atoms.get_potential_energy() == pytest.approx(fitted.energy(atoms))
        assert atoms.get_forces().shape == (len(atoms), 3)

    def test_model_calculator_node(self, fitted, emt_dataset):
        calculator = an.fitting.ModelCalculator.node_function(fitted)
        energy = an.physics.PotentialEnergy.node_function(emt_dataset[1], calculator)
        assert energy == pytest.approx(fitted.energy(emt_dataset[1]))

    def test_model_calculator_needs_fit(self, model):
        with pytest.raises(RuntimeError):
            an.fitting.ModelCalculator.node_function(model)

    def test_improves_on_zero_model(self, model, emt_dataset):
        training = emt_dataset[::2]
        fitted = fit(model, training, weights={"default": {"E": 0.0, "F": 1.0}})
        zero = LinearDescriptorModel(
            model.elements, Eref=model.Eref, coefficients=np.zeros(model.n_features),
            **SMALL
        )
        assert (
            linear_errors(training, fitted).loc["set", "F_rmse"]
            < linear_errors(training, zero).loc["set", "F_rmse"]
        )


class TestLinearErrors:

    def test_table(self, fitted, emt_dataset):
        errors = an.fitting.LinearErrors.node_function(emt_dataset, fitted)
        assert list(errors.index) == ["bulk", "rattled", "set"]
        assert {"E_rmse", "E_mae", "F_rmse", "F_mae"}.issubset(errors.columns)
        assert errors.loc["set", "n_structures"] == len(emt_dataset)
        assert np.isfinite(errors.to_numpy(dtype=float)).all()
        assert (errors["E_mae"] <= errors["E_rmse"] + 1e-12).all()

    def test_energies_only(self, fitted):
        atoms = bulk("Cu", cubic=True)
        atoms.calc = EMT()
        atoms.info["energy"] = atoms.get_potential_energy()
        atoms.calc = None
        errors = linear_errors([atoms], fitted)
        assert np.isnan(errors.loc["set", "F_rmse"])
        assert errors.loc["default", "n_structures"] == 1
