"""Cosmological distances, scales and times.

All quantities are dimensionless (in units of the Hubble distance
``c / H0``, or the Hubble time for times) unless stated otherwise.

The comoving distance is tabulated once per cosmology generation by
integrating ``dD_c/dz = 1/E(z)`` over ``[0, z_f]`` and interpolating with
a not-a-knot cubic spline. Past ``z_f``, and for every other integral,
adaptive quadrature is memoised in a :class:`FunctionCache`.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional

import numpy as np
from scipy import integrate
from scipy.interpolate import CubicSpline

from .constants import C_LIGHT, MAX_EXP_ARG, ZERO_LIMIT
from .function_cache import FunctionCache, integrate_a_b, integrate_a_inf
from .hicosmo import HICosmo, HICosmoImpl
from .mset import MSet, MSetFunc

__all__ = [
    "Distance",
    "DistanceFunc",
    "DistanceFuncZ",
    "FUNC_TABLE",
    "FUNC_Z_TABLE",
    "get_func",
    "get_func_z",
]

# Minimum number of uniformly spaced knots added to the ODE steps.
SPLINE_MIN_KNOTS = 200


def _E(cosmo: HICosmo, z: float) -> float:
    """Normalised Hubble rate, nan where E^2 < 0."""
    E2 = cosmo.E2(z)
    if E2 < 0.0:
        return math.nan
    return math.sqrt(E2)


def _comoving_integrand(cosmo: HICosmo, z: float) -> float:
    E2 = cosmo.E2(z)
    if E2 <= 0.0:
        return math.inf
    return 1.0 / math.sqrt(E2)


def _time_integrand(cosmo: HICosmo, z: float) -> float:
    xE = (1.0 + z) * _E(cosmo, z)
    if xE == 0.0:
        return math.inf
    return 1.0 / xE


def _conformal_time_integrand(cosmo: HICosmo, logx: float) -> float:
    if logx > MAX_EXP_ARG:
        return 0.0
    z = math.expm1(logx)
    x = 1.0 + z
    E = _E(cosmo, z)
    if not math.isfinite(E) or E == 0.0:
        return 0.0
    return x / E


def _distance_modulus(Dl: float) -> float:
    if not math.isfinite(Dl):
        return Dl
    if Dl <= 0.0:
        return -math.inf if Dl == 0.0 else math.nan
    return 5.0 * math.log10(Dl) + 25.0


def _sound_horizon_integrand(cosmo: HICosmo, z: float) -> float:
    E2 = cosmo.E2(z)
    if E2 <= 0.0:
        return math.nan
    return math.sqrt(cosmo.bgp_cs2(z) / E2)


class Distance:
    """Distance engine for :class:`~cosmocat.hicosmo.HICosmo` models.

    Parameters
    ----------
    z_f : float
        Upper redshift of the spline-tabulated comoving distance.
    use_cache : bool
        Memoise quadratures. Turning it off only costs time.

    Every public evaluator first checks whether the cosmology changed since
    the last :meth:`prepare` (object identity and its ``pkey``) and
    re-prepares if so.
    """

    def __init__(self, z_f: float = 10.0, *, use_cache: bool = True):
        if not z_f > 0.0:
            raise ValueError(f"z_f must be positive, got {z_f}.")
        self._z_f = float(z_f)
        self.use_cache = bool(use_cache)
        self.comoving_distance_cache = FunctionCache()
        self.time_cache = FunctionCache()
        self.lookback_time_cache = FunctionCache()
        self.conformal_time_cache = FunctionCache()
        self.sound_horizon_cache = FunctionCache()
        self._spline: Optional[CubicSpline] = None
        self._cosmo: Optional[HICosmo] = None
        self._pkey = -1
        self._force_update = False

    def __repr__(self) -> str:
        return f"Distance(z_f={self._z_f:g}, use_cache={self.use_cache})"

    @property
    def z_f(self) -> float:
        return self._z_f

    @z_f.setter
    def z_f(self, value: float) -> None:
        if not value > 0.0:
            raise ValueError(f"z_f must be positive, got {value}.")
        self._z_f = float(value)
        self._force_update = True

    # ---- preparation ----
    def _caches(self):
        return (
            self.comoving_distance_cache,
            self.time_cache,
            self.lookback_time_cache,
            self.conformal_time_cache,
            self.sound_horizon_cache,
        )

    def _build_comoving_spline(self, cosmo: HICosmo) -> Optional[CubicSpline]:
        def rhs(z, y):
            return [_comoving_integrand(cosmo, z)]

        sol = integrate.solve_ivp(
            rhs,
            (0.0, self._z_f),
            [0.0],
            method="DOP853",
            rtol=1e-11,
            atol=1e-14,
            dense_output=True,
        )
        if not sol.success:
            return None
        knots = np.union1d(sol.t, np.linspace(0.0, self._z_f, SPLINE_MIN_KNOTS))
        values = sol.sol(knots)[0]
        if not np.all(np.isfinite(values)):
            return None
        return CubicSpline(knots, values, bc_type="not-a-knot")

    def prepare(self, cosmo: HICosmo) -> None:
        """Drop memoised integrals and re-tabulate the comoving distance."""
        for cache in self._caches():
            cache.clear()
        self._spline = None
        if not cosmo.implements(HICosmoImpl.Dc):
            self._spline = self._build_comoving_spline(cosmo)
            if self._spline is not None:
                self.comoving_distance_cache.insert(self._z_f, float(self._spline(self._z_f)))
        self._cosmo = cosmo
        self._pkey = cosmo.pkey
        self._force_update = False

    def prepare_if_needed(self, cosmo: HICosmo) -> None:
        if self._force_update or self._cosmo is not cosmo or self._pkey != cosmo.pkey:
            self.prepare(cosmo)

    def hubble(self, cosmo: HICosmo) -> float:
        """Hubble distance ``c / H0`` in Mpc."""
        return C_LIGHT / (cosmo.H0() * 1.0e3)

    # ---- distances ----
    def comoving(self, cosmo: HICosmo, z: float) -> float:
        """Comoving distance ``D_c(z) = ∫_0^z dz'/E(z')``."""
        self.prepare_if_needed(cosmo)
        if cosmo.implements(HICosmoImpl.Dc):
            return cosmo.Dc(z)
        if self._spline is not None and z <= self._z_f:
            return float(self._spline(z))

        def f(zp: float) -> float:
            return _comoving_integrand(cosmo, zp)

        if self.use_cache:
            return self.comoving_distance_cache.integrate_0_x(f, z)
        return integrate_a_b(f, 0.0, z)

    def transverse(self, cosmo: HICosmo, z: float) -> float:
        """Transverse comoving distance ``D_t(z)``.

        Identity for ``|Ω_k0| < ZERO_LIMIT``, ``sinh`` mapping for an open
        universe (``Ω_k0 < 0``) and ``|sin|`` mapping for a closed one
        (``Ω_k0 > 0``).
        """
        Omega_k0 = cosmo.Omega_k0()
        sqrt_Omega_k0 = math.sqrt(abs(Omega_k0))
        Dc = self.comoving(cosmo, z)
        if math.isinf(Dc):
            return Dc
        if abs(Omega_k0) < ZERO_LIMIT:
            return Dc
        if Omega_k0 < 0.0:
            try:
                return math.sinh(sqrt_Omega_k0 * Dc) / sqrt_Omega_k0
            except OverflowError:
                return math.inf
        return abs(math.sin(sqrt_Omega_k0 * Dc) / sqrt_Omega_k0)

    def dtransverse_dz(self, cosmo: HICosmo, z: float) -> float:
        Omega_k0 = cosmo.Omega_k0()
        sqrt_Omega_k0 = math.sqrt(abs(Omega_k0))
        E = _E(cosmo, z)
        if abs(Omega_k0) < ZERO_LIMIT:
            return 1.0 / E
        Dc = self.comoving(cosmo, z)
        if Omega_k0 < 0.0:
            try:
                return math.cosh(sqrt_Omega_k0 * Dc) / E
            except OverflowError:
                return math.inf
        arg = sqrt_Omega_k0 * Dc
        return math.copysign(1.0, math.sin(arg)) * math.cos(arg) / E

    def luminosity(self, cosmo: HICosmo, z: float) -> float:
        return (1.0 + z) * self.transverse(cosmo, z)

    def angular_diameter(self, cosmo: HICosmo, z: float) -> float:
        return self.transverse(cosmo, z) / (1.0 + z)

    def dmodulus(self, cosmo: HICosmo, z: float) -> float:
        """``5 log10(D_l) + 25``; a non-finite ``D_l`` is returned as is."""
        return _distance_modulus(self.luminosity(cosmo, z))

    def luminosity_hef(self, cosmo: HICosmo, z_he: float, z_cmb: float) -> float:
        """Luminosity distance with the heliocentric-frame redshift ``z_he``."""
        return (1.0 + z_he) * self.transverse(cosmo, z_cmb)

    def dmodulus_hef(self, cosmo: HICosmo, z_he: float, z_cmb: float) -> float:
        return _distance_modulus(self.luminosity_hef(cosmo, z_he, z_cmb))

    # ---- last scattering ----
    def decoupling_redshift(self, cosmo: HICosmo) -> float:
        """Decoupling redshift, Hu & Sugiyama (1996) fit unless provided."""
        self.prepare_if_needed(cosmo)
        if cosmo.implements(HICosmoImpl.z_lss):
            return cosmo.z_lss()
        omega_b_h2 = cosmo.Omega_b0h2()
        omega_m_h2 = cosmo.Omega_m0h2()
        with np.errstate(divide="ignore", invalid="ignore"):
            g1 = 0.0783 * np.power(omega_b_h2, -0.238) / (1.0 + 39.5 * np.power(omega_b_h2, 0.763))
            g2 = 0.560 / (1.0 + 21.1 * np.power(omega_b_h2, 1.81))
            z = 1048.0 * (1.0 + 1.24e-3 * np.power(omega_b_h2, -0.738)) * (
                1.0 + g1 * np.power(omega_m_h2, g2)
            )
        return float(z)

    def angular_diameter_curvature_scale(self, cosmo: HICosmo) -> float:
        z_star = self.decoupling_redshift(cosmo)
        if not math.isfinite(z_star):
            return math.nan
        return _E(cosmo, z_star) * self.transverse(cosmo, z_star) / (1.0 + z_star)

    def shift_parameter(self, cosmo: HICosmo, z: float) -> float:
        return math.sqrt(abs(cosmo.Omega_m0())) * self.transverse(cosmo, z)

    def shift_parameter_lss(self, cosmo: HICosmo) -> float:
        z_star = self.decoupling_redshift(cosmo)
        if not math.isfinite(z_star):
            return math.nan
        return self.shift_parameter(cosmo, z_star)

    def comoving_lss(self, cosmo: HICosmo) -> float:
        z_star = self.decoupling_redshift(cosmo)
        if not math.isfinite(z_star):
            return math.nan
        return self.comoving(cosmo, z_star)

    def sound_horizon(self, cosmo: HICosmo, z: float) -> float:
        """Sound horizon ``r_s(z) = ∫_z^∞ c_s(z')/E(z') dz'``."""
        self.prepare_if_needed(cosmo)
        if not cosmo.implements(HICosmoImpl.bgp_cs2):
            raise NotImplementedError(
                f"{type(cosmo).__name__} does not provide the baryon-photon sound speed."
            )

        def f(zp: float) -> float:
            return _sound_horizon_integrand(cosmo, zp)

        if self.use_cache:
            return self.sound_horizon_cache.integrate_x_inf(f, z)
        return integrate_a_inf(f, z)

    def dsound_horizon_dz(self, cosmo: HICosmo, z: float) -> float:
        return -_sound_horizon_integrand(cosmo, z)

    def acoustic_scale(self, cosmo: HICosmo) -> float:
        """``l_A = π D_t(z*) / r_s(z*)``."""
        z = self.decoupling_redshift(cosmo)
        if not math.isfinite(z):
            return math.nan
        return math.pi * self.transverse(cosmo, z) / self.sound_horizon(cosmo, z)

    def theta100CMB(self, cosmo: HICosmo) -> float:
        z = self.decoupling_redshift(cosmo)
        if not math.isfinite(z):
            return math.nan
        return 100.0 * self.sound_horizon(cosmo, z) / self.transverse(cosmo, z)

    # ---- BAO ----
    def drag_redshift(self, cosmo: HICosmo) -> float:
        """Drag epoch redshift, Eisenstein & Hu (1998) fit."""
        omega_m_h2 = cosmo.Omega_m0h2()
        omega_b_h2 = cosmo.Omega_b0h2()
        with np.errstate(divide="ignore", invalid="ignore"):
            b1 = 0.313 * np.power(omega_m_h2, -0.419) * (1.0 + 0.607 * np.power(omega_m_h2, 0.674))
            b2 = 0.238 * np.power(omega_m_h2, 0.223)
            zd = (
                1291.0
                * np.power(omega_m_h2, 0.251)
                / (1.0 + 0.659 * np.power(omega_m_h2, 0.828))
                * (1.0 + b1 * np.power(omega_b_h2, b2))
            )
        return float(zd)

    def dilation_scale(self, cosmo: HICosmo, z: float) -> float:
        """``D_V(z) = [D_t(z)^2 z / E(z)]^(1/3)``."""
        Dt = self.transverse(cosmo, z)
        E = _E(cosmo, z)
        return float(np.cbrt(Dt * Dt * z / E))

    def bao_A_scale(self, cosmo: HICosmo, z: float) -> float:
        Dv = self.dilation_scale(cosmo, z)
        return math.sqrt(cosmo.Omega_m0()) * Dv / z

    def r_zd(self, cosmo: HICosmo) -> float:
        """Sound horizon at the drag epoch."""
        self.prepare_if_needed(cosmo)
        if cosmo.implements(HICosmoImpl.as_drag):
            return cosmo.as_drag()
        zd = self.drag_redshift(cosmo)
        if not math.isfinite(zd):
            return math.nan
        return self.sound_horizon(cosmo, zd)

    def bao_r_Dv(self, cosmo: HICosmo, z: float) -> float:
        return self.r_zd(cosmo) / self.dilation_scale(cosmo, z)

    def DH_r(self, cosmo: HICosmo, z: float) -> float:
        return 1.0 / (_E(cosmo, z) * self.r_zd(cosmo))

    def DA_r(self, cosmo: HICosmo, z: float) -> float:
        return self.angular_diameter(cosmo, z) / self.r_zd(cosmo)

    # ---- times ----
    def cosmic_time(self, cosmo: HICosmo, z: float) -> float:
        """Age of the universe at ``z``: ``∫_z^∞ dz'/((1+z')E)``."""
        self.prepare_if_needed(cosmo)

        def f(zp: float) -> float:
            return _time_integrand(cosmo, zp)

        if self.use_cache:
            return self.time_cache.integrate_x_inf(f, z)
        return integrate_a_inf(f, z)

    def lookback_time(self, cosmo: HICosmo, z: float) -> float:
        self.prepare_if_needed(cosmo)

        def f(zp: float) -> float:
            return _time_integrand(cosmo, zp)

        if self.use_cache:
            return self.lookback_time_cache.integrate_0_x(f, z)
        return integrate_a_b(f, 0.0, z)

    def conformal_lookback_time(self, cosmo: HICosmo, z: float) -> float:
        return self.comoving(cosmo, z)

    def conformal_time(self, cosmo: HICosmo, z: float) -> float:
        """Conformal time ``∫_z^∞ dz'/E``, integrated in ``log(1+z)``."""
        self.prepare_if_needed(cosmo)

        def f(logx: float) -> float:
            return _conformal_time_integrand(cosmo, logx)

        if self.use_cache:
            return self.conformal_time_cache.integrate_x_inf(f, math.log1p(z))
        return integrate_a_inf(f, math.log1p(z))

    # ---- parameter-set functions ----
    def func(self, name: str) -> MSetFunc:
        """Wrap a no-argument registry entry as an :class:`MSetFunc`."""
        entry = get_func(name)
        return self.func0_new(entry.method, name=entry.name)

    def func_z(self, name: str) -> MSetFunc:
        """Wrap a redshift registry entry as a one-argument :class:`MSetFunc`."""
        entry = get_func_z(name)
        return self.func1_new(entry.method, name=entry.name)

    def func0_new(self, method: str, *, name: str = "") -> MSetFunc:
        f0 = getattr(self, method)

        def _f(mset: MSet, x: np.ndarray) -> float:
            return f0(_peek_cosmo(mset))

        return MSetFunc(_f, dim=1, nvar=0, name=name or method)

    def func1_new(self, method: str, *, name: str = "") -> MSetFunc:
        f1 = getattr(self, method)

        def _f(mset: MSet, x: np.ndarray) -> float:
            return f1(_peek_cosmo(mset), float(x[0]))

        return MSetFunc(_f, dim=1, nvar=1, name=name or method)

    def arrayfunc1_new(self, name: str, size: int) -> MSetFunc:
        """Evaluate a redshift function at ``size`` redshifts in one call."""
        if size < 1:
            raise ValueError("arrayfunc1_new requires size >= 1.")
        f1 = getattr(self, get_func_z(name).method)

        def _f(mset: MSet, x: np.ndarray) -> np.ndarray:
            cosmo = _peek_cosmo(mset)
            return np.array([f1(cosmo, float(z)) for z in x])

        return MSetFunc(_f, dim=size, nvar=size, name=name)


def _peek_cosmo(mset: MSet) -> HICosmo:
    cosmo = mset.peek(HICosmo.MID)
    if not isinstance(cosmo, HICosmo):
        raise TypeError(f"Model {HICosmo.MID!r} in the MSet is not a HICosmo.")
    return cosmo


@dataclass(frozen=True)
class DistanceFunc:
    """Registry entry for a function of the cosmology only."""

    name: str
    desc: str
    method: str
    impl: HICosmoImpl


@dataclass(frozen=True)
class DistanceFuncZ:
    """Registry entry for a function of the cosmology and redshift."""

    name: str
    desc: str
    method: str
    impl: HICosmoImpl


_I = HICosmoImpl

FUNC_TABLE: Mapping[str, DistanceFunc] = MappingProxyType(
    {
        f.name: f
        for f in (
            DistanceFunc("decoupling_redshift", "Decoupling redshift.", "decoupling_redshift", _I.Omega_m0h2 | _I.Omega_b0h2),
            DistanceFunc("drag_redshift", "Drag redshift.", "drag_redshift", _I.Omega_m0h2),
            DistanceFunc("shift_parameter_lss", "Shift parameter at lss.", "shift_parameter_lss", _I.Omega_m0h2 | _I.E2),
            DistanceFunc("comoving_lss", "Comoving scale of lss.", "comoving_lss", _I.Omega_m0h2 | _I.E2),
            DistanceFunc("acoustic_scale", "Acoustic scale at lss.", "acoustic_scale", _I.Omega_m0h2 | _I.E2),
            DistanceFunc("theta100CMB", "CMB angular scale times 100.", "theta100CMB", _I.Omega_m0h2 | _I.E2),
            DistanceFunc(
                "angular_diameter_curvature_scale",
                "Angular diameter curvature scale.",
                "angular_diameter_curvature_scale",
                _I.Omega_m0h2 | _I.E2,
            ),
            DistanceFunc("r_zd", "Sound horizon at drag redshift.", "r_zd", _I.Omega_m0h2 | _I.E2),
        )
    }
)

FUNC_Z_TABLE: Mapping[str, DistanceFuncZ] = MappingProxyType(
    {
        f.name: f
        for f in (
            DistanceFuncZ("d_c", "Comoving distance.", "comoving", _I.E2),
            DistanceFuncZ("d_t", "Transverse distance.", "transverse", _I.E2),
            DistanceFuncZ("d_l", "Luminosity distance.", "luminosity", _I.E2),
            DistanceFuncZ("d_A", "Angular diameter distance.", "angular_diameter", _I.E2),
            DistanceFuncZ("dmu", "delta-Distance modulus.", "dmodulus", _I.E2),
            DistanceFuncZ("D_A", "Dilation scale.", "dilation_scale", _I.E2),
            DistanceFuncZ("BAO_A", "BAO A scale.", "bao_A_scale", _I.E2 | _I.Omega_m0),
            DistanceFuncZ("r_Dv", "BAO r_Dv.", "bao_r_Dv", _I.E2),
            DistanceFuncZ("H_r", "BAO H/(c r_zd).", "DH_r", _I.E2),
            DistanceFuncZ("dA_r", "BAO dA/r.", "DA_r", _I.E2),
            DistanceFuncZ("sound_h", "Sound horizon.", "sound_horizon", _I.E2 | _I.Omega_b0 | _I.bgp_cs2),
        )
    }
)


def get_func(name: str) -> DistanceFunc:
    """Return a no-argument distance function entry by name."""
    try:
        return FUNC_TABLE[name]
    except KeyError as e:
        raise ValueError(
            f"Unknown distance function {name!r}. Available: {tuple(FUNC_TABLE.keys())}"
        ) from e


def get_func_z(name: str) -> DistanceFuncZ:
    """Return a redshift distance function entry by name."""
    try:
        return FUNC_Z_TABLE[name]
    except KeyError as e:
        raise ValueError(
            f"Unknown distance function {name!r}. Available: {tuple(FUNC_Z_TABLE.keys())}"
        ) from e
