from __future__ import annotations

from ase.io import write
import numpy as np
import pytest

import talk_nodes


def test_sheet_grid():
    assert talk_nodes.SheetKGrid.node_function(5) == (5, 5, 1)


def test_supercell_shape():
    assert talk_nodes.SupercellShape.node_function() == (2, 2, 1)


class TestSiliconVacancy:

    def test_vacancy_in_supercell(self):
        macro = talk_nodes.SiliconVacancyEnergy(nx=2, ny=1, nz=1)
        macro.run()
        atoms = macro.outputs.atoms.value
        assert len(atoms) == 15
        assert np.isfinite(macro.outputs.energy.value)

    def test_softer_potential(self):
        stiff = talk_nodes.SiliconVacancyEnergy(nx=1, ny=1, nz=1, A=4.0)
        stiff.run()
        soft = talk_nodes.SiliconVacancyEnergy(nx=1, ny=1, nz=1, A=3.0)
        soft.run()
        assert soft.outputs.energy.value != pytest.approx(stiff.outputs.energy.value)


class TestFitAndTest:

    @pytest.fixture
    def dataset(self, tmp_path, emt_dataset):
        filename = tmp_path / "cu.xyz"
        write(filename, emt_dataset, format="extxyz")
        return filename

    def test_errors_on_unseen_data(self, dataset):
        macro = talk_nodes.FitAndTest(
            filename=str(dataset),
            elements=["Cu"],
            rcut=4.0,
            n_max=2,
            l_max=2,
        )
        macro.run()
        assert macro.outputs.model.value.is_fitted
        errors = macro.outputs.errors.value
        # Test subsample is structures 1 and 11, both "rattled"
        assert list(errors.index) == ["rattled", "set"]
        assert errors.loc["set", "n_structures"] == 2

    def test_subsets_exposed(self, dataset):
        macro = talk_nodes.FitAndTest(
            filename=str(dataset), elements=["Cu"], rcut=4.0, n_max=2, l_max=2
        )
        macro.run()
        assert len(macro.dataset.outputs.structures.value) == 12
        assert len(macro.training.outputs.structures.value) == 3
        assert len(macro.testing.outputs.structures.value) == 2
