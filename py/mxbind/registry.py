"""Process-wide name -> native handle tables.

``FUNCTIONS`` resolves imperative NDArray functions one name at a time and
caches each handle for the life of the process. ``OPERATORS`` enumerates every
atomic symbol creator once, on first access, and is read-only afterwards.
"""

import ctypes
import logging
import threading
import types

from . import _ffi
from .base import (FatalEngineError, UnknownOperatorError, c_str, check_call,
                   must_call)

logger = logging.getLogger(__name__)

UNINITIALIZED = 'uninitialized'
INITIALIZING = 'initializing'
READY = 'ready'


class FunctionRegistry:
    """Lazily resolved function handles, one per operator name."""

    def __init__(self):
        self._handles = {}
        self._lock = threading.Lock()

    def resolve(self, name):
        """Return the handle for `name`, resolving it on first use.

        A function missing from the engine is fatal.
        """
        handle = self._handles.get(name)
        if handle is not None:
            return handle
        with self._lock:
            handle = self._handles.get(name)
            if handle is None:
                out = ctypes.c_void_p()
                must_call(_ffi.get_lib().MXGetFunction(c_str(name), ctypes.byref(out)))
                if not out.value:
                    msg = f'engine has no function named {name!r}'
                    logger.critical(msg)
                    raise FatalEngineError(msg)
                handle = out.value
                self._handles[name] = handle
                logger.debug('resolved function %s', name)
        return handle

    def describe(self, name):
        """Return (num_use_vars, num_scalars, num_mutate_vars) for a function."""
        use_vars = ctypes.c_uint()
        scalars = ctypes.c_uint()
        mutate_vars = ctypes.c_uint()
        type_mask = ctypes.c_int()
        check_call(_ffi.get_lib().MXFuncDescribe(
            self.resolve(name), ctypes.byref(use_vars), ctypes.byref(scalars),
            ctypes.byref(mutate_vars), ctypes.byref(type_mask)))
        return use_vars.value, scalars.value, mutate_vars.value

    def __contains__(self, name):
        return name in self._handles


class OperatorRegistry:
    """Atomic symbol creators keyed by operator name, built once."""

    def __init__(self):
        self._table = None
        self._state = UNINITIALIZED
        self._lock = threading.Lock()

    @property
    def state(self):
        return self._state

    def _table_or_build(self):
        table = self._table
        if table is not None:
            return table
        with self._lock:
            if self._table is None:
                self._state = INITIALIZING
                try:
                    self._table = self._build()
                finally:
                    self._state = READY if self._table is not None else UNINITIALIZED
            return self._table

    def _build(self):
        lib = _ffi.get_lib()
        size = ctypes.c_uint()
        creators = ctypes.POINTER(ctypes.c_void_p)()
        must_call(lib.MXSymbolListAtomicSymbolCreators(
            ctypes.byref(size), ctypes.byref(creators)))
        table = {}
        for i in range(size.value):
            creator = creators[i]
            name = ctypes.c_char_p()
            desc = ctypes.c_char_p()
            num_args = ctypes.c_uint()
            arg_names = ctypes.POINTER(ctypes.c_char_p)()
            arg_types = ctypes.POINTER(ctypes.c_char_p)()
            arg_descs = ctypes.POINTER(ctypes.c_char_p)()
            key_var_num_args = ctypes.c_char_p()
            ret_type = ctypes.c_char_p()
            must_call(lib.MXSymbolGetAtomicSymbolInfo(
                creator, ctypes.byref(name), ctypes.byref(desc),
                ctypes.byref(num_args), ctypes.byref(arg_names),
                ctypes.byref(arg_types), ctypes.byref(arg_descs),
                ctypes.byref(key_var_num_args), ctypes.byref(ret_type)))
            table[name.value.decode('utf-8', 'replace')] = creator
        logger.debug('operator registry built with %d creators', len(table))
        return types.MappingProxyType(table)

    def resolve(self, name):
        """Return the creator for `name`; an absent name is fatal."""
        creator = self._table_or_build().get(name)
        if creator is None:
            msg = f'engine has no operator named {name!r}'
            logger.critical(msg)
            raise FatalEngineError(msg)
        return creator

    def lookup(self, name):
        """Return the creator for `name` or raise UnknownOperatorError."""
        creator = self._table_or_build().get(name)
        if creator is None:
            raise UnknownOperatorError(f'unknown operator {name!r}')
        return creator

    def names(self):
        return sorted(self._table_or_build())

    def __contains__(self, name):
        return name in self._table_or_build()

    def __len__(self):
        return len(self._table_or_build())


FUNCTIONS = FunctionRegistry()
OPERATORS = OperatorRegistry()
