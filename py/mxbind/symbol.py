"""
Symbol — owned wrapper around one engine symbolic-graph handle.

Composite symbols come out of SymbolBuilder, which runs the engine's two-step
protocol (create the atomic symbol, then compose it with its inputs) and only
hands back a Symbol once both steps succeeded.
"""

import ctypes
import logging
import operator
import os

from . import _ffi, registry
from .base import (c_handle_array, c_str, c_str_array, check_call, must_call,
                   read_str_list)

logger = logging.getLogger(__name__)

# Output indices travel as C unsigned ints.
_INDEX_MAX = 0xFFFFFFFF


def _lib():
    return _ffi.get_lib()


def _free_handle(handle):
    must_call(_lib().MXSymbolFree(handle))


class SymbolBuilder:
    """Collects an operator's inputs and parameters, then builds the symbol.

    Inputs are either all keyed (add_input) or all positional (set_inputs),
    matching the engine's compose contract.

    Usage:
        fc = (SymbolBuilder('FullyConnected')
              .add_input('data', x)
              .add_param('num_hidden', 128)
              .create('fc1'))
    """

    def __init__(self, operator_name):
        self._operator_name = operator_name
        self._input_keys = []
        self._inputs = []
        self._positional = False
        self._param_keys = []
        self._param_values = []

    @property
    def operator_name(self):
        return self._operator_name

    def add_input(self, key, symbol):
        if self._positional:
            raise ValueError('cannot add a keyed input after positional inputs were set')
        self._input_keys.append(key)
        self._inputs.append(symbol)
        return self

    def set_inputs(self, symbols):
        """Replace all inputs with positional ones."""
        self._input_keys = []
        self._inputs = list(symbols)
        self._positional = True
        return self

    def add_param(self, key, value):
        self._param_keys.append(key)
        self._param_values.append(str(value))
        return self

    def _create_atomic(self):
        creator = registry.OPERATORS.lookup(self._operator_name)
        out = ctypes.c_void_p()
        check_call(_lib().MXSymbolCreateAtomicSymbol(
            creator, len(self._param_keys), c_str_array(self._param_keys),
            c_str_array(self._param_values), ctypes.byref(out)))
        return out.value

    def _compose(self, handle, name, input_handles):
        keys = None if self._positional else c_str_array(self._input_keys)
        check_call(_lib().MXSymbolCompose(
            handle, c_str(name), len(input_handles), keys,
            c_handle_array(input_handles)))

    def create(self, name):
        """Create and compose the symbol, naming the instance `name`."""
        input_handles = [s.handle for s in self._inputs]
        handle = self._create_atomic()
        try:
            self._compose(handle, name, input_handles)
        except BaseException:
            _free_handle(handle)
            raise
        logger.debug('composed %s as %r with %d inputs',
                     self._operator_name, name, len(input_handles))
        return Symbol(handle)


class Symbol:
    """Single owner of an engine SymbolHandle. Immutable once created."""

    def __init__(self, handle):
        if not handle:
            raise ValueError('Symbol requires a non-NULL handle')
        self._handle = handle

    # --- Ownership ---

    @property
    def handle(self):
        if self._handle is None:
            raise ValueError('Symbol used after its handle was released')
        return self._handle

    @property
    def released(self):
        return self._handle is None

    def free(self):
        if self._handle:
            handle, self._handle = self._handle, None
            _free_handle(handle)

    def __del__(self):
        if getattr(self, '_handle', None):
            self.free()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.free()

    # --- Serialization ---

    @staticmethod
    def load(path):
        out = ctypes.c_void_p()
        check_call(_lib().MXSymbolCreateFromFile(c_str(os.fspath(path)), ctypes.byref(out)))
        return Symbol(out.value)

    @staticmethod
    def load_json(json_str):
        out = ctypes.c_void_p()
        check_call(_lib().MXSymbolCreateFromJSON(c_str(json_str), ctypes.byref(out)))
        return Symbol(out.value)

    def save(self, path):
        check_call(_lib().MXSymbolSaveToFile(self.handle, c_str(os.fspath(path))))

    def to_json(self):
        out = ctypes.c_char_p()
        check_call(_lib().MXSymbolSaveToJSON(self.handle, ctypes.byref(out)))
        return out.value.decode('utf-8')

    # --- Structure ---

    @property
    def name(self):
        """Instance name, or None for groups and other unnamed symbols."""
        out = ctypes.c_char_p()
        success = ctypes.c_int()
        check_call(_lib().MXSymbolGetName(self.handle, ctypes.byref(out), ctypes.byref(success)))
        if not success.value or out.value is None:
            return None
        return out.value.decode('utf-8')

    def copy(self):
        out = ctypes.c_void_p()
        check_call(_lib().MXSymbolCopy(self.handle, ctypes.byref(out)))
        return Symbol(out.value)

    def output(self, index):
        """Return the `index`-th output as a new Symbol; the engine checks range."""
        index = operator.index(index)
        if not 0 <= index <= _INDEX_MAX:
            raise IndexError(f'output index out of range: {index}')
        out = ctypes.c_void_p()
        check_call(_lib().MXSymbolGetOutput(self.handle, index, ctypes.byref(out)))
        return Symbol(out.value)

    def __getitem__(self, index):
        return self.output(index)

    def _list(self, fn_name):
        size = ctypes.c_uint()
        arr = ctypes.POINTER(ctypes.c_char_p)()
        check_call(getattr(_lib(), fn_name)(self.handle, ctypes.byref(size), ctypes.byref(arr)))
        return read_str_list(size, arr)

    def list_arguments(self):
        return self._list('MXSymbolListArguments')

    def list_outputs(self):
        return self._list('MXSymbolListOutputs')

    def list_auxiliary_states(self):
        return self._list('MXSymbolListAuxiliaryStates')

    def __len__(self):
        return len(self.list_outputs())

    def __iter__(self):
        return (self.output(i) for i in range(len(self)))

    def __repr__(self):
        if self._handle is None:
            return '<Symbol released>'
        name = self.name
        if name is None:
            return f'<Symbol group [{", ".join(self.list_outputs())}]>'
        return f'<Symbol {name}>'


def Variable(name):
    """Create a named leaf symbol with no inputs."""
    out = ctypes.c_void_p()
    check_call(_lib().MXSymbolCreateVariable(c_str(name), ctypes.byref(out)))
    return Symbol(out.value)


def Group(symbols):
    """Bundle symbols into one multi-output symbol.

    The inputs stay owned by the caller.
    """
    handles = [s.handle for s in symbols]
    out = ctypes.c_void_p()
    check_call(_lib().MXSymbolCreateGroup(
        len(handles), c_handle_array(handles), ctypes.byref(out)))
    return Symbol(out.value)
