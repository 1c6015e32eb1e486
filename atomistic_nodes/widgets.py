"""
Ranges and defaults for the interactive inputs of the talk notebooks.

Keeping these as plain value objects (rather than constructing UI elements inline in
the notebooks) means the presets can be checked without a running notebook, and the
same range can be reused by several notebooks.
"""

from __future__ import annotations

from dataclasses import dataclass

import marimo as mo
import numpy as np


@dataclass(frozen=True)
class _Range:
    start: float
    stop: float
    step: float
    default: float

    def __post_init__(self):
        if self.step <= 0:
            raise ValueError(f"{self.__class__.__name__} step must be positive")
        if self.stop < self.start:
            raise ValueError(
                f"{self.__class__.__name__} needs start <= stop, got {self.start} > "
                f"{self.stop}"
            )
        if not self.start <= self.default <= self.stop:
            raise ValueError(
                f"{self.__class__.__name__} default {self.default} lies outside "
                f"[{self.start}, {self.stop}]"
            )

    def values(self) -> np.ndarray:
        """Every value reachable from `start` in `step`s without passing `stop`."""
        n = int(np.floor((self.stop - self.start) / self.step + 1e-9)) + 1
        return self.start + self.step * np.arange(n)

    def clamp(self, value: float) -> float:
        return min(max(value, self.start), self.stop)


@dataclass(frozen=True)
class Slider(_Range):
    show_value: bool = True

    def element(self, label: str = "", value: float | None = None) -> mo.ui.slider:
        return mo.ui.slider(
            start=self.start,
            stop=self.stop,
            step=self.step,
            value=self.default if value is None else self.clamp(value),
            show_value=self.show_value,
            label=label,
        )


@dataclass(frozen=True)
class Scrubbable(_Range):
    format: str | None = None

    def element(self, label: str = "", value: float | None = None) -> mo.ui.number:
        return mo.ui.number(
            start=self.start,
            stop=self.stop,
            step=self.step,
            value=self.default if value is None else self.clamp(value),
            label=label,
        )

    def display(self, value: float) -> str:
        return str(value) if self.format is None else f"{value:{self.format}}"


# Plane-wave DFT discretisation; choose according to your CPU
ECUT = Slider(10.0, 40.0, 1.0, 10.0)  # Hartree
NKPOINTS = Slider(2, 12, 1, 5)
NBANDS = Slider(10, 25, 1, 15)

# SCDM erfc weight, Hartree
SIGMA = Scrubbable(1e-3, 2e-2, 2e-3, 0.01, format=".3f")
MU = Scrubbable(0.0, 1e-2, 1e-3, 0.0, format=".3f")

SUPERCELL = Scrubbable(1, 3, 1, 2)
SUPERCELL_DEFAULTS = (2, 2, 1)


def nwann_slider(nbands: int, default: int = 5) -> Slider:
    """
    Wannier functions come from the converged bands, keeping a margin of four for
    the disentanglement.
    """
    stop = nbands - 4
    if stop < 3:
        raise ValueError(
            f"Need at least 7 bands to construct Wannier functions, got {nbands}"
        )
    return Slider(3, stop, 1, min(max(default, 3), stop))
