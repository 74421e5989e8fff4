from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

import numpy as np
import numpy.typing as npt

from bfzarr.core.dtype import DataType

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from typing import Self

    from bfzarr.core.common import BytesLike

__all__ = ["Buffer", "NDBuffer", "as_numpy_array_wrapper"]


class Buffer:
    """A flat contiguous memory block

    We use Buffer throughout bfzarr to represent the encoded bytes of a chunk or shard, and the
    values held by a store.

    Notes
    -----
    This buffer is untyped, so all indexing and sizes are in bytes.

    Parameters
    ----------
    array_like
        array-like object that must be 1-dim, contiguous, and byte dtype.
    """

    _data: npt.NDArray[Any]

    def __init__(self, array_like: npt.NDArray[Any]) -> None:
        if array_like.ndim != 1:
            raise ValueError("array_like: only 1-dim allowed")
        if array_like.dtype != np.dtype("B"):
            raise ValueError("array_like: only byte dtype allowed")
        self._data = array_like

    @classmethod
    def create_zero_length(cls) -> Self:
        return cls(np.array([], dtype="B"))

    @classmethod
    def from_array_like(cls, array_like: npt.NDArray[Any]) -> Self:
        return cls(array_like)

    @classmethod
    def from_bytes(cls, bytes_like: BytesLike) -> Self:
        """Create a new buffer of a bytes-like object

        Parameters
        ----------
        bytes_like
           bytes-like object

        Returns
        -------
            New buffer representing `bytes_like`
        """
        return cls.from_array_like(np.frombuffer(bytes_like, dtype="B"))

    def as_numpy_array(self) -> npt.NDArray[Any]:
        """Returns the buffer as a NumPy array of unsigned bytes."""
        return np.asanyarray(self._data)

    def as_buffer_like(self) -> memoryview:
        return memoryview(np.ascontiguousarray(self._data))

    def to_bytes(self) -> bytes:
        """Returns the buffer as `bytes`.

        Notes
        -----
        Will always copy data, only use this method for small buffers such as metadata
        buffers.
        """
        return bytes(self.as_numpy_array())

    def __getitem__(self, key: slice) -> Self:
        check_item_key_is_1d_contiguous(key)
        return self.__class__(self._data.__getitem__(key))

    def __setitem__(self, key: slice, value: Any) -> None:
        check_item_key_is_1d_contiguous(key)
        self._data.__setitem__(key, value)

    def __len__(self) -> int:
        return self._data.size

    def __add__(self, other: Buffer) -> Self:
        """Concatenate two buffers"""
        return self.__class__(np.concatenate((self._data, other.as_numpy_array())))

    def __eq__(self, other: object) -> bool:
        # Buffers are equal when their bytes are equal, regardless of the backing array
        return isinstance(other, Buffer) and np.array_equal(self._data, other._data)

    def combine(self, others: Iterable[Buffer]) -> Self:
        """Concatenate many buffers"""
        return self.__class__(
            np.concatenate([self._data, *(o.as_numpy_array() for o in others)])
        )

    def __repr__(self) -> str:
        return f"<Buffer nbytes={len(self)}>"


class NDBuffer:
    """An n-dimensional memory block with a fixed element type

    We use NDBuffer throughout bfzarr to represent decoded chunks, shards and the result of
    region reads. The element type is always one of the ``DataType`` members.

    Parameters
    ----------
    array
        numpy array holding the data.
    """

    _data: npt.NDArray[Any]

    def __init__(self, array: npt.NDArray[Any]) -> None:
        self._data = array

    @classmethod
    def create(
        cls,
        *,
        shape: Iterable[int],
        dtype: npt.DTypeLike,
        order: Literal["C", "F"] = "C",
        fill_value: Any | None = None,
    ) -> Self:
        if fill_value is None:
            return cls(np.zeros(shape=tuple(shape), dtype=dtype, order=order))
        else:
            return cls(np.full(shape=tuple(shape), fill_value=fill_value, dtype=dtype, order=order))

    @classmethod
    def empty(
        cls, shape: tuple[int, ...], dtype: npt.DTypeLike, order: Literal["C", "F"] = "C"
    ) -> Self:
        return cls(np.empty(shape=shape, dtype=dtype, order=order))

    @classmethod
    def from_numpy_array(cls, array_like: npt.ArrayLike) -> Self:
        return cls(np.asanyarray(array_like))

    def as_numpy_array(self) -> npt.NDArray[Any]:
        """Returns the buffer as a NumPy array."""
        return np.asanyarray(self._data)

    @property
    def dtype(self) -> np.dtype[Any]:
        return self._data.dtype

    @property
    def data_type(self) -> DataType:
        return DataType.from_dtype(self._data.dtype)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._data.shape)

    @property
    def byteorder(self) -> Literal["little", "big"]:
        from sys import byteorder

        if self.dtype.byteorder == "<":
            return "little"
        elif self.dtype.byteorder == ">":
            return "big"
        else:
            return byteorder  # type: ignore[return-value]

    def reshape(self, newshape: tuple[int, ...]) -> Self:
        return self.__class__(self._data.reshape(newshape))

    def astype(self, dtype: npt.DTypeLike, order: Literal["K", "A", "C", "F"] = "K") -> Self:
        return self.__class__(self._data.astype(dtype=dtype, order=order))

    def __getitem__(self, key: Any) -> Self:
        return self.__class__(np.asanyarray(self._data.__getitem__(key)))

    def __setitem__(self, key: Any, value: Any) -> None:
        if isinstance(value, NDBuffer):
            value = value._data
        self._data.__setitem__(key, value)

    def __len__(self) -> int:
        return self._data.__len__()

    def __repr__(self) -> str:
        return f"<NDBuffer shape={self.shape} dtype={self.dtype} {self._data!r}>"

    def all_equal(self, other: Any, equal_nan: bool = True) -> bool:
        """Compare to `other` using np.array_equal."""
        if other is None:
            return False
        # use array_equal to obtain equal_nan=True functionality
        _data, other = np.broadcast_arrays(self._data, other)
        return np.array_equal(
            self._data,
            other,
            equal_nan=equal_nan
            if self._data.dtype.kind not in ("U", "S", "T", "O", "V", "b", "i", "u")
            else False,
        )

    def fill(self, value: Any) -> None:
        self._data.fill(value)

    def copy(self) -> Self:
        return self.__class__(self._data.copy())


def check_item_key_is_1d_contiguous(key: Any) -> None:
    """Raises error if `key` isn't a 1d contiguous slice"""
    if not isinstance(key, slice):
        raise TypeError(
            f"Item key has incorrect type (expected slice, got {key.__class__.__name__})"
        )
    if not (key.step is None or key.step == 1):
        raise ValueError("slice must be contiguous")


def as_numpy_array_wrapper(func: Callable[[npt.NDArray[Any]], bytes], buf: Buffer) -> Buffer:
    """Converts the input of `func` to a numpy array and the output back to `Buffer`.

    This function is useful when calling a `func` that only support host memory such
    as `GZip.decode` and `Blosc.decode`.

    Parameters
    ----------
    func
        The callable that will be called with the converted `buf` as input.
        `func` must return bytes, which will be converted into a `Buffer`
        before returned.
    buf
        The buffer that will be converted to a Numpy array before given as
        input to `func`.

    Returns
    -------
        The result of `func` converted to a `Buffer`
    """
    return Buffer.from_bytes(func(buf.as_numpy_array()))
