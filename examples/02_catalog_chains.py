import numpy as np
from cosmocat import MSet, MSetCatalog, MSetFunc, Model, ParameterSpec
from cosmocat.util import levels_to_p_val

# Metropolis sampling of a correlated Gaussian with four interleaved chains.
mean = np.array([0.3, -1.0])
cov = np.array([[0.04, 0.018], [0.018, 0.09]])
icov = np.linalg.inv(cov)


def m2lnL(theta):
    d = theta - mean
    return float(d @ icov @ d)


mset = MSet(Model([ParameterSpec("x", symbol="x"), ParameterSpec("y", symbol="y")], mid="gauss"))
nchains = 4
cat = MSetCatalog(mset, nchains=nchains, add_val_names=["m2lnL"], run_type="metropolis", seed=1)
rng = cat.rng

state = rng.normal(size=(nchains, 2)) * 2.0
lnl = np.array([m2lnL(s) for s in state])
step = 0.25
for it in range(3000):
    for c in range(nchains):
        prop = state[c] + step * rng.normal(size=2)
        lp = m2lnL(prop)
        if np.log(rng.uniform()) < -0.5 * (lp - lnl[c]):
            state[c], lnl[c] = prop, lp
        cat.add(lnl[c], params=state[c])
    if it in (50, 500, 2999):
        print(f"iteration {it}: shrink factor = {cat.get_shrink_factor():.4f}")

cat.estimate_autocorrelation_tau()
print(cat.summary(digits=4))
print("largest error of the mean:", f"{cat.largest_error():.3e}")

x_plus_y = MSetFunc(lambda ms, x: ms["gauss"]["x"] + ms["gauss"]["y"], name="x+y")
ci = cat.calc_ci_direct(
    x_plus_y,
    p_val=levels_to_p_val([1, 2]),
    burnin=400,
)
print("x + y: mean, 1 sigma, 2 sigma =", np.round(ci[0], 4))

pv = cat.params_view()
print("x - y =", pv["gauss:x"].u - pv["gauss:y"].u)
