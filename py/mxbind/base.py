"""Error channel and ctypes marshalling helpers shared by every wrapper.

Every engine entry point returns a status code. Non-zero means failure and
the engine's last-error text describes it; that text is process-global, so it
is read here, immediately after the failing call, before anything else
touches the engine.
"""

import ctypes
import logging

from . import _ffi

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Recoverable failure reported by the engine."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ConsistencyError(EngineError):
    """Failure detected by this layer rather than by the engine."""


class UnknownOperatorError(EngineError):
    """Operator name not reported by the loaded engine."""


class FatalEngineError(BaseException):
    """Unrecoverable failure while building registries or releasing handles.

    Not an ``Exception`` subclass: ordinary recovery code must not swallow it.
    """

    def __init__(self, message):
        super().__init__(message)
        self.message = message


def get_last_error():
    """Fetch the engine's last error message."""
    msg = _ffi.get_lib().MXGetLastError()
    return msg.decode('utf-8', 'replace') if msg else ''


def check_call(ret):
    """Raise EngineError if an engine call returned non-zero."""
    if ret != 0:
        raise EngineError(get_last_error())


def must_call(ret):
    """Abort with FatalEngineError if an engine call returned non-zero."""
    if ret != 0:
        msg = get_last_error()
        logger.critical('fatal engine failure: %s', msg)
        raise FatalEngineError(msg)


# --- Marshalling ---

def c_str(s):
    return s.encode('utf-8')


def c_str_array(strings):
    """Convert a sequence of str to a ctypes char* array."""
    return (ctypes.c_char_p * len(strings))(*[c_str(s) for s in strings])


def c_handle_array(handles):
    return (ctypes.c_void_p * len(handles))(*handles)


def c_uint_array(vals):
    n = len(vals)
    return (ctypes.c_uint * n)(*vals), n


def c_int_array(vals):
    n = len(vals)
    return (ctypes.c_int * n)(*vals), n


def read_str_list(size, arr):
    """Read `size` C strings from an out-param char** array."""
    return [arr[i].decode('utf-8', 'replace') for i in range(size.value)]


def read_shape(ndim, pdata):
    """Read shape tuple from C out params."""
    return tuple(int(pdata[i]) for i in range(ndim.value))
