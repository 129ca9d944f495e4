"""cosmocat public API."""
from .catalog import MSetCatalog, SyncTransition
from .catalog_file import CatalogFile
from .distance import Distance
from .function_cache import FunctionCache
from .hicosmo import HICosmo, HICosmoImpl, LCDM
from .mset import MSet, MSetFunc, Model, PIndex
from .params import ParameterSpec, ParamsView
from .stats_dist1d import EmpiricalDist1d
from .stats_vec import StatsVec

__all__ = [
    "MSetCatalog",
    "SyncTransition",
    "CatalogFile",
    "Distance",
    "FunctionCache",
    "HICosmo",
    "HICosmoImpl",
    "LCDM",
    "MSet",
    "MSetFunc",
    "Model",
    "PIndex",
    "ParameterSpec",
    "ParamsView",
    "EmpiricalDist1d",
    "StatsVec",
]
