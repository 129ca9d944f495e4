import numpy as np
from cosmocat import Distance, LCDM, MSet

cosmo = LCDM(H0=67.4, Omega_c=0.264, Omega_b=0.0493, Omega_x=0.686)
dist = Distance(z_f=10.0)

print(f"Omega_k0 = {cosmo.Omega_k0():.3e}")
print(f"Hubble distance = {dist.hubble(cosmo):.2f} Mpc")
print(f"{'z':>6s} {'D_c':>10s} {'D_L [Mpc]':>12s} {'mu':>9s} {'t_lb':>8s}")
for z in (0.1, 0.5, 1.0, 2.0, 5.0, 20.0):
    dc = dist.comoving(cosmo, z)
    dl = dist.luminosity(cosmo, z) * dist.hubble(cosmo)
    print(f"{z:6.2f} {dc:10.5f} {dl:12.2f} {dist.dmodulus(cosmo, z):9.4f} {dist.lookback_time(cosmo, z):8.5f}")

print(f"z_* = {dist.decoupling_redshift(cosmo):.2f}")
print(f"z_d = {dist.drag_redshift(cosmo):.2f}")
print(f"r_d = {dist.r_zd(cosmo) * dist.hubble(cosmo):.2f} Mpc")
print(f"l_A = {dist.acoustic_scale(cosmo):.3f}")
print(f"100 theta_* = {dist.theta100CMB(cosmo):.5f}")

# Distance functions over a parameter set, as used by likelihood code.
mset = MSet(cosmo)
dmu = dist.arrayfunc1_new("dmu", 4)
print("mu(z) =", np.round(dmu.eval(mset, [0.1, 0.3, 0.6, 1.0]), 4))
print(dist.comoving_distance_cache)
