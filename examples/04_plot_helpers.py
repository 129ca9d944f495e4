import numpy as np
import matplotlib.pyplot as plt
from cosmocat import MSet, MSetCatalog, Model, ParameterSpec
from cosmocat.plotting import plot_param_distrib, plot_trace

rng = np.random.default_rng(3)
mset = MSet(Model([ParameterSpec("a", symbol="a"), ParameterSpec("b", symbol="b")], mid="toy"))
cat = MSetCatalog(mset, nchains=3, add_val_names=["m2lnL"])

# AR(1) chains drifting from different starting points.
state = np.array([[-3.0, 0.0], [0.0, 3.0], [3.0, -3.0]])
for _ in range(1500):
    for c in range(3):
        state[c] = 0.9 * state[c] + np.sqrt(1.0 - 0.81) * rng.normal(size=2)
        cat.add(float(state[c] @ state[c]), params=state[c])

fig, axes = plot_trace(cat)
axes[0].legend(loc="upper right", fontsize=8)

fig2, axs = plt.subplots(1, 2, figsize=(9, 3.5), constrained_layout=True)
for i, ax in enumerate(axs):
    plot_param_distrib(cat, i, burnin=150, ax=ax)
plt.show()
