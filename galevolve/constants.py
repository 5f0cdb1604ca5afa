"""Physical and numerical constants used by the galaxy evolution engine.

Code units are Msun for masses, Mpc for lengths, km/s for velocities and Gyr
for times.  Specific angular momenta are therefore expressed in Mpc km/s.
CGS values follow IAU 2015 / CODATA 2018 where applicable.
"""
from __future__ import annotations

# Solar mass (g)
MSOLAR_g: float = 1.9891e33

# Unit helpers
KM2CM: float = 1.0e5
MPC2CM: float = 3.0856775814913673e24
MPC2KM: float = MPC2CM / KM2CM
GYR2S: float = 3.15576e16

# Boltzmann constant (erg K^-1)
K_BOLTZMANN: float = 1.380649e-16

# Gravitational constant in Mpc (km/s)^2 Msun^-1
G: float = 4.3009172706e-9

# Mpc / (km/s) expressed in Gyr
MPC_KMS_IN_GYR: float = MPC2KM / GYR2S

# Pressure in Msun (km/s)^2 Mpc^-3 converted to K cm^-3
PRESSURE_CODE_TO_K_CM3: float = MSOLAR_g * KM2CM**2 / MPC2CM**3 / K_BOLTZMANN

# Converts specific angular momentum / circular velocity into a disk
# half-mass radius for an exponential disk.
EAGLEJconv: float = 0.67714

# Ratio between half-mass radius and exponential scale length of a disk.
RDISK_HALF_SCALE: float = 1.678

# Masses, metals and radii below this value are treated as zero.
tolerance: float = 1e-10

# Offset keeping the reheating loading strictly above the ejection loading.
EPS3: float = 1e-3

# Hubble time for h=1, 1/(100 km/s/Mpc), in Gyr
HUBBLE_TIME_GYR: float = MPC_KMS_IN_GYR / 100.0

# Number of ODE equations of the basic physical model
NUM_BASIC_EQUATIONS: int = 17

