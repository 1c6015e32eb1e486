from __future__ import annotations

from pathlib import Path
import subprocess

import numpy as np
import pytest
from ase.units import Ha

import atomistic_nodes as an
from atomistic_nodes import wannier
from atomistic_nodes.physics import SCFResult
from atomistic_nodes.wannier import (
    Pw2WannierInput,
    Wannier90Input,
    full_kgrid,
    scdm_weight,
)


class TestSCDMWeight:

    def test_shape(self):
        weights = scdm_weight([-1.0, 0.0, 1.0], mu=0.0, sigma=0.01)
        assert weights == pytest.approx([1.0, 0.5, 0.0])

    def test_monotonic(self):
        weights = scdm_weight(np.linspace(-0.05, 0.05, 11), mu=0.0, sigma=0.02)
        assert np.all(np.diff(weights) < 0)

    def test_sigma_must_be_positive(self):
        with pytest.raises(ValueError):
            scdm_weight([0.0], mu=0.0, sigma=0.0)


class TestKGrid:

    def test_order(self):
        grid = full_kgrid((2, 2, 1))
        assert grid == pytest.approx(
            np.array([[0, 0, 0], [0, 0.5, 0], [0.5, 0, 0], [0.5, 0.5, 0]])
        )

    def test_size(self):
        assert full_kgrid((5, 5, 1)).shape == (25, 3)


class TestWannier90Input:

    def test_too_many_wannier_functions(self):
        with pytest.raises(ValueError):
            Wannier90Input(num_wann=16, num_bands=15, mp_grid=(5, 5, 1))

    def test_band_ranges(self):
        assert Wannier90Input._ranges([16, 17, 18, 20]) == "16-18, 20"
        assert Wannier90Input._ranges([3]) == "3"

    def test_render(self):
        atoms = an.atoms.Graphene.node_function()
        win = Wannier90Input(
            num_wann=5,
            num_bands=15,
            mp_grid=(5, 5, 1),
            exclude_bands=[16, 17, 18],
            dis_froz_max=0.1,
            extra={"write_hr": True},
        ).render(atoms)
        lines = win.splitlines()
        assert "num_wann = 5" in lines
        assert "num_bands = 15" in lines
        assert "exclude_bands = 16-18" in lines
        assert "dis_froz_max = 0.1" in lines
        assert "auto_projections = .true." in lines
        assert "write_hr = .true." in lines
        assert "mp_grid = 5 5 1" in lines

        start = lines.index("begin kpoints")
        assert lines.index("end kpoints") - start - 1 == 25
        start = lines.index("begin atoms_frac")
        assert lines[start + 1].split()[0] == "C"
        assert lines.index("end atoms_frac") - start - 1 == 2


class TestPw2WannierInput:

    def test_render_in_ev(self):
        text = Pw2WannierInput(
            seedname="graphene", prefix="pwscf", outdir="./out", mu=0.01, sigma=0.01
        ).render()
        assert text.startswith("&inputpp")
        assert text.rstrip().endswith("/")
        assert "scdm_proj = .true." in text
        assert "scdm_entanglement = 'erfc'" in text
        assert f"scdm_mu = {0.01 * Ha:.8f}" in text
        assert "seedname = 'graphene'" in text

    def test_sigma_must_be_positive(self):
        with pytest.raises(ValueError):
            Pw2WannierInput("s", "p", "./out", mu=0.0, sigma=-0.1)


@pytest.fixture
def graphene_scf(tmp_path, pseudo_dir):
    calculator = an.calculators.Espresso.node_function(
        ecut=10.0,
        kpoints=(3, 3, 1),
        nbands=15,
        pseudopotentials_directory=str(pseudo_dir),
        mpi_command=None,
        working_directory=str(tmp_path),
    )
    return SCFResult(
        energy=-300.0,
        fermi_level=-2.0,
        atoms=an.atoms.Graphene.node_function(),
        calculator=calculator,
    )


class TestWannierise:

    @pytest.fixture
    def fake_codes(self, monkeypatch):
        calls = []

        def run(command, cwd, stdin=None, stdout=None, check=False):
            calls.append(command)
            if command == ["wannier90.x", "graphene"]:
                (Path(cwd) / "graphene.wout").write_text("fake\n")
            return subprocess.CompletedProcess(command, 0)

        def read_wout_all(fd):
            return {
                "centers": np.zeros((5, 3)),
                "spreads": np.full(5, 0.7),
                "atoms": None,
            }

        monkeypatch.setattr(wannier.subprocess, "run", run)
        monkeypatch.setattr(wannier, "read_wout_all", read_wout_all)
        return calls

    def test_chain_of_codes(self, graphene_scf, fake_codes):
        result = an.wannier.Wannierise.node_function(
            graphene_scf, nwann=5, mu=0.0, sigma=0.01, seedname="graphene"
        )
        assert fake_codes == [
            ["pw.x", "-in", "nscf.pwi"],
            ["wannier90.x", "-pp", "graphene"],
            ["pw2wannier90.x"],
            ["wannier90.x", "graphene"],
        ]
        assert result.total_spread == pytest.approx(3.5)
        assert result.centers.shape == (5, 3)

    def test_inputs_written(self, graphene_scf, fake_codes):
        an.wannier.Wannierise.node_function(graphene_scf, nwann=5, seedname="graphene")
        directory = graphene_scf.directory

        win = (directory / "graphene.win").read_text().splitlines()
        assert "num_bands = 15" in win
        assert "exclude_bands = 16-18" in win
        assert "mp_grid = 3 3 1" in win

        nscf = (directory / "nscf.pwi").read_text().lower()
        assert "nscf" in nscf
        assert "nosym" in nscf
        assert "k_points crystal" in nscf
        assert "k_points automatic" not in nscf

        assert "scdm_proj" in (directory / "graphene.pw2wan").read_text()

    def test_too_many_wannier_functions(self, graphene_scf, fake_codes):
        with pytest.raises(ValueError):
            an.wannier.Wannierise.node_function(graphene_scf, nwann=16)
        assert fake_codes == []

    def test_needs_explicit_band_count(self, graphene_scf, fake_codes):
        graphene_scf.calculator = graphene_scf.calculator.updated(
            input_data={"nbnd": 0}
        )
        with pytest.raises(ValueError):
            an.wannier.Wannierise.node_function(graphene_scf, nwann=5)

    def test_failing_code_propagates(self, graphene_scf, monkeypatch):
        def run(command, cwd, stdin=None, stdout=None, check=False):
            raise subprocess.CalledProcessError(1, command)

        monkeypatch.setattr(wannier.subprocess, "run", run)
        with pytest.raises(subprocess.CalledProcessError):
            an.wannier.Wannierise.node_function(graphene_scf, nwann=5)

    def test_nscf_kpoints_match_win(self, graphene_scf, fake_codes):
        an.wannier.Wannierise.node_function(graphene_scf, nwann=5, seedname="graphene")
        directory = graphene_scf.directory

        win = (directory / "graphene.win").read_text().splitlines()
        start = win.index("begin kpoints")
        win_kpoints = np.array(
            [line.split() for line in win[start + 1:win.index("end kpoints")]],
            dtype=float,
        )

        pwi = (directory / "nscf.pwi").read_text().splitlines()
        start = next(i for i, line in enumerate(pwi) if line.startswith("K_POINTS"))
        assert pwi[start].split()[1] == "crystal"
        n = int(pwi[start + 1])
        pw_kpoints = np.array(
            [line.split() for line in pwi[start + 2:start + 2 + n]], dtype=float
        )

        assert n == len(win_kpoints) == 9
        assert pw_kpoints[:, :3] == pytest.approx(win_kpoints)
        assert pw_kpoints[:, 3] == pytest.approx(np.full(9, 1 / 9))


class TestNSCFKPoints:

    def test_no_folding(self):
        kpoints = wannier.nscf_kpoints((5, 5, 1))
        assert kpoints.shape == (25, 4)
        assert kpoints[:, :3].min() >= 0
        assert kpoints[:, :3].max() == pytest.approx(0.8)
        assert kpoints[:, 3].sum() == pytest.approx(1.0)


class TestRun:

    @pytest.fixture
    def tracked_open(self, monkeypatch):
        handles = []

        def tracking_open(*args, **kwargs):
            handle = open(*args, **kwargs)
            handles.append(handle)
            return handle

        monkeypatch.setattr(wannier, "open", tracking_open, raising=False)
        return handles

    def test_handles_closed_when_output_cannot_be_opened(self, tmp_path, tracked_open):
        (tmp_path / "in.txt").write_text("&inputpp\n/\n")
        with pytest.raises(FileNotFoundError):
            wannier._run(
                "pw2wannier90.x", tmp_path, [],
                stdin=Path("in.txt"), stdout=Path("missing/out.txt"),
            )
        assert len(tracked_open) == 1
        assert tracked_open[0].closed

    def test_handles_closed_after_run(self, tmp_path, tracked_open, monkeypatch):
        monkeypatch.setattr(
            wannier.subprocess, "run",
            lambda command, **kwargs: subprocess.CompletedProcess(command, 0),
        )
        (tmp_path / "in.txt").write_text("&inputpp\n/\n")
        wannier._run(
            "pw2wannier90.x", tmp_path, [],
            stdin=Path("in.txt"), stdout=Path("out.txt"),
        )
        assert len(tracked_open) == 2
        assert all(handle.closed for handle in tracked_open)
