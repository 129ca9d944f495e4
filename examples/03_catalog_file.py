import os
import tempfile

import numpy as np
from cosmocat import CatalogFile, MSet, MSetCatalog, Model, ParameterSpec

mset = MSet(Model([ParameterSpec("mu"), ParameterSpec("sigma")], mid="normal"))
tmpdir = tempfile.mkdtemp()
fn = os.path.join(tmpdir, "run.h5")

# First session: 2 chains, rows land in the file as they are added.
with MSetCatalog(mset, nchains=2, filename=fn, run_type="demo", seed=7) as cat:
    for _ in range(200):
        cat.add(0.0, params=cat.rng.normal([1.0, 2.0], [0.1, 0.2]))
    print("session 1:", cat)

with CatalogFile(fn, readonly=True) as f:
    print("file columns:", f.columns)
    print("file rows:", f.nrows, "FIRST_ID:", f.get_meta("FIRST_ID"), "RNG:", f.get_meta("RNG_ALGO"))

# Second session: everything (parameter set, chains, generator state) comes from the file.
cat = MSetCatalog.from_file(fn, flush_mode="timed", flush_interval=5.0)
print("session 2 resumes at id", cat.get_cur_id() + 1)
for _ in range(100):
    cat.add(0.0, params=cat.rng.normal([1.0, 2.0], [0.1, 2.0]))
print("mean:", np.round(cat.get_mean(), 3))
print("shrink factor:", round(cat.get_shrink_factor(), 4))
cat.close()

# A catalog that already holds later rows is merged with the file on attach.
late = MSetCatalog(mset, nchains=2, run_type="demo", seed=7)
late.set_first_id(300)
for _ in range(10):
    late.add(0.0, params=[1.0, 2.0])
late.set_file(fn)
print("merged ids:", late.get_first_id(), "..", late.get_cur_id(), "rows:", len(late))
late.close()
