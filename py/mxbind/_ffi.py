"""
ctypes bindings to libmxnet — declares only the c_api.h surface this package
wraps. The library is located and loaded on first use, not at import time.
"""

import ctypes
import ctypes.util
import logging
import os
import threading

logger = logging.getLogger(__name__)

_lib = None
_lib_lock = threading.Lock()

# --- Opaque handle types ---
_ptr = ctypes.c_void_p
_ptrp = ctypes.POINTER(_ptr)
_uint = ctypes.c_uint
_uintp = ctypes.POINTER(_uint)
_int = ctypes.c_int
_intp = ctypes.POINTER(_int)
_str = ctypes.c_char_p
_strp = ctypes.POINTER(_str)
_floatp = ctypes.POINTER(ctypes.c_float)

NDArrayHandle = _ptr
FunctionHandle = _ptr
AtomicSymbolCreator = _ptr
SymbolHandle = _ptr


def find_lib_path():
    """Resolve the engine library path from the environment or the loader."""
    for var in ('MXBIND_LIB', 'MXNET_LIBRARY_PATH'):
        path = os.environ.get(var)
        if path:
            return path
    return ctypes.util.find_library('mxnet') or 'libmxnet.so'


def _declare(lib):
    # --- Error ---
    lib.MXGetLastError.restype = _str
    lib.MXGetLastError.argtypes = []

    # --- Process-wide ---
    lib.MXRandomSeed.restype = _int
    lib.MXRandomSeed.argtypes = [_int]

    lib.MXNotifyShutdown.restype = _int
    lib.MXNotifyShutdown.argtypes = []

    # --- Functions (imperative NDArray ops) ---
    lib.MXGetFunction.restype = _int
    lib.MXGetFunction.argtypes = [_str, _ptrp]

    lib.MXFuncDescribe.restype = _int
    lib.MXFuncDescribe.argtypes = [_ptr, _uintp, _uintp, _uintp, _intp]

    lib.MXFuncInvoke.restype = _int
    lib.MXFuncInvoke.argtypes = [_ptr, _ptrp, _floatp, _ptrp]

    # --- NDArray ---
    lib.MXNDArrayCreateNone.restype = _int
    lib.MXNDArrayCreateNone.argtypes = [_ptrp]

    lib.MXNDArrayCreate.restype = _int
    lib.MXNDArrayCreate.argtypes = [_uintp, _uint, _int, _int, _int, _ptrp]

    lib.MXNDArraySyncCopyFromCPU.restype = _int
    lib.MXNDArraySyncCopyFromCPU.argtypes = [_ptr, _ptr, ctypes.c_size_t]

    lib.MXNDArraySyncCopyToCPU.restype = _int
    lib.MXNDArraySyncCopyToCPU.argtypes = [_ptr, _ptr, ctypes.c_size_t]

    lib.MXNDArrayWaitToRead.restype = _int
    lib.MXNDArrayWaitToRead.argtypes = [_ptr]

    lib.MXNDArrayGetShape.restype = _int
    lib.MXNDArrayGetShape.argtypes = [_ptr, _uintp, ctypes.POINTER(_uintp)]

    lib.MXNDArrayGetContext.restype = _int
    lib.MXNDArrayGetContext.argtypes = [_ptr, _intp, _intp]

    lib.MXNDArrayReshape.restype = _int
    lib.MXNDArrayReshape.argtypes = [_ptr, _int, _intp, _ptrp]

    lib.MXNDArrayFree.restype = _int
    lib.MXNDArrayFree.argtypes = [_ptr]

    lib.MXNDArrayLoad.restype = _int
    lib.MXNDArrayLoad.argtypes = [_str, _uintp, ctypes.POINTER(_ptrp),
                                  _uintp, ctypes.POINTER(_strp)]

    lib.MXNDArraySave.restype = _int
    lib.MXNDArraySave.argtypes = [_str, _uint, _ptrp, _strp]

    # --- Symbol creators ---
    lib.MXSymbolListAtomicSymbolCreators.restype = _int
    lib.MXSymbolListAtomicSymbolCreators.argtypes = [_uintp, ctypes.POINTER(_ptrp)]

    lib.MXSymbolGetAtomicSymbolInfo.restype = _int
    lib.MXSymbolGetAtomicSymbolInfo.argtypes = [
        _ptr,                                  # creator
        _strp,                                 # name
        _strp,                                 # description
        _uintp,                                # num_args
        ctypes.POINTER(_strp),                 # arg_names
        ctypes.POINTER(_strp),                 # arg_type_infos
        ctypes.POINTER(_strp),                 # arg_descriptions
        _strp,                                 # key_var_num_args
        _strp,                                 # return_type
    ]

    lib.MXSymbolCreateAtomicSymbol.restype = _int
    lib.MXSymbolCreateAtomicSymbol.argtypes = [_ptr, _uint, _strp, _strp, _ptrp]

    lib.MXSymbolCompose.restype = _int
    lib.MXSymbolCompose.argtypes = [_ptr, _str, _uint, _strp, _ptrp]

    # --- Symbol ---
    lib.MXSymbolCreateVariable.restype = _int
    lib.MXSymbolCreateVariable.argtypes = [_str, _ptrp]

    lib.MXSymbolCreateGroup.restype = _int
    lib.MXSymbolCreateGroup.argtypes = [_uint, _ptrp, _ptrp]

    lib.MXSymbolCreateFromFile.restype = _int
    lib.MXSymbolCreateFromFile.argtypes = [_str, _ptrp]

    lib.MXSymbolCreateFromJSON.restype = _int
    lib.MXSymbolCreateFromJSON.argtypes = [_str, _ptrp]

    lib.MXSymbolSaveToFile.restype = _int
    lib.MXSymbolSaveToFile.argtypes = [_ptr, _str]

    lib.MXSymbolSaveToJSON.restype = _int
    lib.MXSymbolSaveToJSON.argtypes = [_ptr, _strp]

    lib.MXSymbolCopy.restype = _int
    lib.MXSymbolCopy.argtypes = [_ptr, _ptrp]

    lib.MXSymbolGetName.restype = _int
    lib.MXSymbolGetName.argtypes = [_ptr, _strp, _intp]

    lib.MXSymbolGetOutput.restype = _int
    lib.MXSymbolGetOutput.argtypes = [_ptr, _uint, _ptrp]

    for name in ['MXSymbolListArguments', 'MXSymbolListOutputs',
                 'MXSymbolListAuxiliaryStates']:
        fn = getattr(lib, name)
        fn.restype = _int
        fn.argtypes = [_ptr, _uintp, ctypes.POINTER(_strp)]

    lib.MXSymbolFree.restype = _int
    lib.MXSymbolFree.argtypes = [_ptr]


def _load(path):
    global _lib
    path = path or find_lib_path()
    try:
        lib = ctypes.CDLL(path, ctypes.RTLD_LOCAL)
    except OSError as e:
        raise OSError(f'cannot load engine library {path!r}: {e}') from e
    _declare(lib)
    _lib = lib
    logger.info('loaded engine library %s', path)
    return lib


def load_lib(path=None):
    """Load (or reload) the engine library and declare its signatures."""
    with _lib_lock:
        return _load(path)


def get_lib():
    """Return the loaded engine library, loading it on first use."""
    lib = _lib
    if lib is None:
        with _lib_lock:
            lib = _lib if _lib is not None else _load(None)
    return lib
