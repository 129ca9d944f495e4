"""Physical and numerical constants."""
from __future__ import annotations

import math
import sys

# Speed of light in m/s.
C_LIGHT = 299792458.0

# |x| below this is treated as zero (curvature switch, etc).
ZERO_LIMIT = 1e-13

# Quadrature tolerances used by the cached integrators.
INTEGRAL_ABS_ERROR = 1e-13
INTEGRAL_ERROR = 1e-10

# Largest argument for which exp() stays finite.
MAX_EXP_ARG = math.log(sys.float_info.max)

# Photon density today for T_gamma0 = 2.7255 K, in units of Omega h^2.
OMEGA_G0H2_FIDUCIAL = 2.47282e-5
T_GAMMA0_FIDUCIAL = 2.7255

# rho_nu / rho_gamma per effective neutrino species: 7/8 (4/11)^(4/3).
NEUTRINO_RATIO = 7.0 / 8.0 * (4.0 / 11.0) ** (4.0 / 3.0)
