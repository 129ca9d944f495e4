"""Homogeneous and isotropic cosmologies consumed by the distance engine."""
from __future__ import annotations

import enum
from typing import ClassVar

import numpy as np

from .constants import NEUTRINO_RATIO, OMEGA_G0H2_FIDUCIAL, T_GAMMA0_FIDUCIAL
from .mset import Model, register_model
from .params import ParameterSpec

__all__ = ["HICosmoImpl", "HICosmo", "LCDM"]


class HICosmoImpl(enum.Flag):
    """Capabilities a cosmology may implement."""

    NONE = 0
    E2 = enum.auto()
    H0 = enum.auto()
    Omega_m0 = enum.auto()
    Omega_b0 = enum.auto()
    Omega_k0 = enum.auto()
    Omega_m0h2 = enum.auto()
    Omega_b0h2 = enum.auto()
    Dc = enum.auto()
    z_lss = enum.auto()
    as_drag = enum.auto()
    bgp_cs2 = enum.auto()


class HICosmo(Model):
    """Base cosmology: E(z)^2 and density parameters.

    Subclasses list what they provide in ``IMPL``; optional closed forms
    (``Dc``, ``z_lss``, ``as_drag``) are only called when flagged.
    """

    MID: ClassVar[str] = "HICosmo"
    IMPL: ClassVar[HICosmoImpl] = HICosmoImpl.NONE

    def implements(self, flags: HICosmoImpl) -> bool:
        return (self.IMPL & flags) == flags

    def _missing(self, what: str):
        return NotImplementedError(f"{type(self).__name__} does not implement {what}.")

    def E2(self, z: float) -> float:
        raise self._missing("E2")

    def E(self, z: float) -> float:
        return float(np.sqrt(self.E2(z)))

    def H0(self) -> float:
        raise self._missing("H0")

    def h(self) -> float:
        return self.H0() / 100.0

    def Omega_m0(self) -> float:
        raise self._missing("Omega_m0")

    def Omega_b0(self) -> float:
        raise self._missing("Omega_b0")

    def Omega_k0(self) -> float:
        """Curvature density, signed as ``Ω_total - 1``: negative for an open universe."""
        raise self._missing("Omega_k0")

    def Omega_m0h2(self) -> float:
        return self.Omega_m0() * self.h() ** 2

    def Omega_b0h2(self) -> float:
        return self.Omega_b0() * self.h() ** 2

    def bgp_cs2(self, z: float) -> float:
        raise self._missing("bgp_cs2")

    def Dc(self, z: float) -> float:
        raise self._missing("Dc")

    def z_lss(self) -> float:
        raise self._missing("z_lss")

    def as_drag(self) -> float:
        raise self._missing("as_drag")


@register_model
class LCDM(HICosmo):
    """ΛCDM with photons and massless neutrinos.

    ``E²(z) = Ω_r x⁴ + Ω_m x³ + Ω_k x² + Ω_Λ`` with ``x = 1 + z`` and
    ``Ω_k = 1 - Ω_m - Ω_r - Ω_Λ``. Setting ``T_gamma0 = 0`` removes
    radiation.
    """

    PARAMS: ClassVar = (
        ParameterSpec("H0", symbol="H_0", default=70.0, bounds=(10.0, 500.0)),
        ParameterSpec("Omega_c", symbol="\\Omega_{c0}", default=0.25, bounds=(0.0, 1.5)),
        ParameterSpec("Omega_x", symbol="\\Omega_{\\Lambda0}", default=0.7, bounds=(-2.0, 2.0)),
        ParameterSpec("T_gamma0", symbol="T_{\\gamma0}", default=T_GAMMA0_FIDUCIAL, fixed=True),
        ParameterSpec("Omega_b", symbol="\\Omega_{b0}", default=0.05, bounds=(0.0, 0.2)),
        ParameterSpec("ENnu", symbol="N_\\nu", default=3.046, fixed=True),
    )
    IMPL: ClassVar = (
        HICosmoImpl.E2
        | HICosmoImpl.H0
        | HICosmoImpl.Omega_m0
        | HICosmoImpl.Omega_b0
        | HICosmoImpl.Omega_k0
        | HICosmoImpl.Omega_m0h2
        | HICosmoImpl.Omega_b0h2
        | HICosmoImpl.bgp_cs2
    )

    def H0(self) -> float:
        return self["H0"]

    def Omega_c0(self) -> float:
        return self["Omega_c"]

    def Omega_b0(self) -> float:
        return self["Omega_b"]

    def Omega_m0(self) -> float:
        return self["Omega_c"] + self["Omega_b"]

    def Omega_x0(self) -> float:
        return self["Omega_x"]

    def Omega_g0(self) -> float:
        T = self["T_gamma0"]
        return OMEGA_G0H2_FIDUCIAL * (T / T_GAMMA0_FIDUCIAL) ** 4 / self.h() ** 2

    def Omega_r0(self) -> float:
        return self.Omega_g0() * (1.0 + NEUTRINO_RATIO * self["ENnu"])

    def Omega_k0(self) -> float:
        return self.Omega_m0() + self.Omega_r0() + self.Omega_x0() - 1.0

    def E2(self, z: float) -> float:
        x = 1.0 + z
        x2 = x * x
        return (
            self.Omega_r0() * x2 * x2
            + self.Omega_m0() * x2 * x
            - self.Omega_k0() * x2
            + self.Omega_x0()
        )

    def bgp_cs2(self, z: float) -> float:
        """Baryon-photon plasma sound speed squared (c = 1)."""
        omega_g = self.Omega_g0()
        if omega_g <= 0.0:
            return 0.0
        R = 3.0 * self.Omega_b0() / (4.0 * omega_g) / (1.0 + z)
        return 1.0 / (3.0 * (1.0 + R))
