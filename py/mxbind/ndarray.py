"""
NDArray — owned wrapper around one engine tensor handle.

Each NDArray owns exactly one handle and releases it exactly once: through
free(), at the end of a ``with`` block, or when the wrapper is collected.
Arithmetic goes through engine functions resolved once per name in
``registry.FUNCTIONS``.
"""

import collections
import ctypes
import logging
import math
import numbers
import os

import numpy as np

from . import _ffi, registry
from .base import (ConsistencyError, EngineError, c_handle_array, c_int_array,
                   c_str, c_str_array, c_uint_array, check_call, must_call,
                   read_shape, read_str_list)
from .context import Context

logger = logging.getLogger(__name__)

# One engine function family per Python operator: tensor-tensor form,
# tensor-scalar form, and scalar-tensor form for the reflected operator.
_OpFamily = collections.namedtuple('_OpFamily', ['name', 'scalar', 'rscalar'])

_PLUS = _OpFamily('_plus', '_plus_scalar', '_plus_scalar')
_MINUS = _OpFamily('_minus', '_minus_scalar', '_rminus_scalar')
_MUL = _OpFamily('_mul', '_mul_scalar', '_mul_scalar')
_DIV = _OpFamily('_div', '_div_scalar', '_rdiv_scalar')

# Dimensions travel as C unsigned ints.
_DIM_MAX = 0xFFFFFFFF


def _lib():
    return _ffi.get_lib()


def _new_empty_handle():
    out = ctypes.c_void_p()
    check_call(_lib().MXNDArrayCreateNone(ctypes.byref(out)))
    return out.value


def _as_float32(data):
    """Flatten any array-like into a contiguous float32 buffer."""
    return np.ascontiguousarray(np.asarray(data, dtype=np.float32).reshape(-1))


def _check_shape(shape):
    shape = tuple(int(d) for d in shape)
    if any(d < 0 or d > _DIM_MAX for d in shape):
        raise ValueError(f'shape dimensions must be in [0, {_DIM_MAX}], got {shape}')
    return shape


def _normalize_shape(shape):
    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
        shape = shape[0]
    return tuple(int(d) for d in shape)


def _is_operand(other):
    return isinstance(other, (NDArray, numbers.Real))


class NDArrayBuilder:
    """Staged construction of an NDArray.

    Usage:
        a = NDArrayBuilder((2, 3)).context(Context.gpu(0)).create()
        b = NDArrayBuilder.from_data([1.0, 2.0, 3.0]).create()
    """

    def __init__(self, shape):
        self._shape = _check_shape(shape)
        self._data = None
        self._context = Context.default()
        self._delay_alloc = True

    @staticmethod
    def from_data(data):
        """Start from flat float data; the shape defaults to (len(data),)."""
        arr = _as_float32(data)
        builder = NDArrayBuilder((arr.size,))
        builder._data = arr
        return builder

    def shape(self, shape):
        shape = _check_shape(shape)
        if self._data is not None and math.prod(shape) != self._data.size:
            raise ValueError(f'shape {shape} does not hold {self._data.size} elements')
        self._shape = shape
        return self

    def context(self, context):
        self._context = context
        return self

    def delay_alloc(self, delay=True):
        """Defer storage allocation until first use (ignored when data is set)."""
        self._delay_alloc = bool(delay)
        return self

    def create(self):
        dims, ndim = c_uint_array(self._shape)
        delay = self._data is None and self._delay_alloc
        out = ctypes.c_void_p()
        check_call(_lib().MXNDArrayCreate(
            dims, ndim, self._context.device_type, self._context.device_id,
            int(delay), ctypes.byref(out)))
        arr = NDArray(out.value)
        if self._data is not None:
            try:
                arr.sync_copy_from(self._data)
            except EngineError:
                arr.free()
                raise
        return arr


class NDArray:
    """Single owner of an engine NDArrayHandle."""

    def __init__(self, handle):
        if not handle:
            raise ValueError('NDArray requires a non-NULL handle')
        self._handle = handle

    @staticmethod
    def none():
        """Create an NDArray with no shape and no storage."""
        return NDArray(_new_empty_handle())

    @staticmethod
    def from_data(data, context=None):
        builder = NDArrayBuilder.from_data(data)
        if context is not None:
            builder.context(context)
        return builder.create()

    # --- Ownership ---

    @property
    def handle(self):
        if self._handle is None:
            raise ValueError('NDArray used after its handle was released')
        return self._handle

    @property
    def released(self):
        return self._handle is None

    def free(self):
        if self._handle:
            handle, self._handle = self._handle, None
            must_call(_lib().MXNDArrayFree(handle))

    def __del__(self):
        if getattr(self, '_handle', None):
            self.free()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.free()

    # --- Introspection ---

    @property
    def shape(self):
        """Dimension sizes, read from the engine on every access."""
        ndim = ctypes.c_uint()
        pdata = ctypes.POINTER(ctypes.c_uint)()
        check_call(_lib().MXNDArrayGetShape(
            self.handle, ctypes.byref(ndim), ctypes.byref(pdata)))
        return read_shape(ndim, pdata)

    @property
    def ndim(self):
        return len(self.shape)

    def size(self):
        n = 1
        for s in self.shape:
            n *= s
        return n

    @property
    def context(self):
        dev_type = ctypes.c_int()
        dev_id = ctypes.c_int()
        check_call(_lib().MXNDArrayGetContext(
            self.handle, ctypes.byref(dev_type), ctypes.byref(dev_id)))
        return Context(dev_type.value, dev_id.value)

    def reshape(self, *shape):
        """View the same storage under a new shape; the engine validates it."""
        dims, ndim = c_int_array(_normalize_shape(shape))
        out = ctypes.c_void_p()
        check_call(_lib().MXNDArrayReshape(self.handle, ndim, dims, ctypes.byref(out)))
        return NDArray(out.value)

    # --- Host copies ---

    def sync_copy_from(self, data):
        """Copy host data into this array, blocking until done."""
        arr = _as_float32(data)
        size = self.size()
        if arr.size != size:
            raise ValueError(f'cannot copy {arr.size} elements into NDArray of size {size}')
        check_call(_lib().MXNDArraySyncCopyFromCPU(
            self.handle, arr.ctypes.data_as(ctypes.c_void_p), arr.size))

    def asnumpy(self):
        """Copy contents to a new float32 numpy array of the same shape."""
        out = np.empty(self.shape, dtype=np.float32)
        check_call(_lib().MXNDArraySyncCopyToCPU(
            self.handle, out.ctypes.data_as(ctypes.c_void_p), out.size))
        return out

    def wait_to_read(self):
        check_call(_lib().MXNDArrayWaitToRead(self.handle))

    # --- Arithmetic ---

    def _invoke(self, family, other, out_handle, reflected=False):
        if isinstance(other, NDArray):
            fn = registry.FUNCTIONS.resolve(family.name)
            use_vars = c_handle_array([self.handle, other.handle])
            scalars = None
        else:
            fn = registry.FUNCTIONS.resolve(family.rscalar if reflected else family.scalar)
            use_vars = c_handle_array([self.handle])
            scalars = (ctypes.c_float * 1)(float(other))
        check_call(_lib().MXFuncInvoke(fn, use_vars, scalars,
                                       c_handle_array([out_handle])))

    def _binop(self, other, family, reflected=False):
        if not _is_operand(other):
            return NotImplemented
        out = NDArray.none()
        try:
            self._invoke(family, other, out.handle, reflected)
        except EngineError:
            out.free()
            raise
        return out

    def _ibinop(self, other, family):
        if not _is_operand(other):
            return NotImplemented
        self._invoke(family, other, self.handle)
        return self

    def __add__(self, other):
        return self._binop(other, _PLUS)

    def __radd__(self, other):
        return self._binop(other, _PLUS, reflected=True)

    def __iadd__(self, other):
        return self._ibinop(other, _PLUS)

    def __sub__(self, other):
        return self._binop(other, _MINUS)

    def __rsub__(self, other):
        return self._binop(other, _MINUS, reflected=True)

    def __isub__(self, other):
        return self._ibinop(other, _MINUS)

    def __mul__(self, other):
        return self._binop(other, _MUL)

    def __rmul__(self, other):
        return self._binop(other, _MUL, reflected=True)

    def __imul__(self, other):
        return self._ibinop(other, _MUL)

    def __truediv__(self, other):
        return self._binop(other, _DIV)

    def __rtruediv__(self, other):
        return self._binop(other, _DIV, reflected=True)

    def __itruediv__(self, other):
        return self._ibinop(other, _DIV)

    def __neg__(self):
        return self._binop(-1.0, _MUL)

    # --- Bulk load/save ---

    @staticmethod
    def load(path):
        """Load arrays from `path`.

        Returns (arrays, names) where names is None when the file was saved
        without names.
        """
        size = ctypes.c_uint()
        handles = ctypes.POINTER(ctypes.c_void_p)()
        name_size = ctypes.c_uint()
        names = ctypes.POINTER(ctypes.c_char_p)()
        check_call(_lib().MXNDArrayLoad(
            c_str(os.fspath(path)), ctypes.byref(size), ctypes.byref(handles),
            ctypes.byref(name_size), ctypes.byref(names)))
        arrays = [NDArray(handles[i]) for i in range(size.value)]
        logger.debug('loaded %d arrays (%d names) from %s',
                     size.value, name_size.value, path)
        if name_size.value == 0:
            return arrays, None
        if name_size.value != size.value:
            for arr in arrays:
                arr.free()
            raise ConsistencyError('NDArray load with names size mismatch')
        return arrays, read_str_list(name_size, names)

    @staticmethod
    def load_list(path):
        return NDArray.load(path)[0]

    @staticmethod
    def load_map(path):
        arrays, names = NDArray.load(path)
        if names is None:
            for arr in arrays:
                arr.free()
            raise ConsistencyError('NDArray load missing names')
        return dict(zip(names, arrays))

    @staticmethod
    def save_list(path, arrays):
        arrays = list(arrays)
        check_call(_lib().MXNDArraySave(
            c_str(os.fspath(path)), len(arrays),
            c_handle_array([a.handle for a in arrays]), None))

    @staticmethod
    def save_map(path, arrays):
        names = list(arrays)
        check_call(_lib().MXNDArraySave(
            c_str(os.fspath(path)), len(names),
            c_handle_array([arrays[k].handle for k in names]), c_str_array(names)))

    def __repr__(self):
        if self._handle is None:
            return '<NDArray released>'
        return f'<NDArray shape={self.shape} ctx={self.context}>'
