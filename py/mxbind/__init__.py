"""mxbind — Python frontend for the MXNet engine C API."""

from . import _ffi
from .base import (EngineError, ConsistencyError, UnknownOperatorError,
                   FatalEngineError, check_call, get_last_error)
from .context import Context, DeviceType
from .ndarray import NDArray, NDArrayBuilder
from .symbol import Symbol, SymbolBuilder, Variable, Group
from ._ffi import load_lib


def random_seed(seed):
    """Seed the engine's global random number generators."""
    check_call(_ffi.get_lib().MXRandomSeed(int(seed)))


def notify_shutdown():
    """Tell the engine the process is shutting down. Advisory, never required."""
    check_call(_ffi.get_lib().MXNotifyShutdown())


__all__ = ['NDArray', 'NDArrayBuilder', 'Symbol', 'SymbolBuilder', 'Variable',
           'Group', 'Context', 'DeviceType', 'EngineError', 'ConsistencyError',
           'UnknownOperatorError', 'FatalEngineError', 'get_last_error',
           'load_lib', 'random_seed', 'notify_shutdown']
__version__ = '0.0.1'
