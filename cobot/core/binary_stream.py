# cobot/core/binary_stream.py
from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .errors import CorruptError

_INT32 = struct.Struct("<i")
_INT64 = struct.Struct("<q")
_FLOAT64 = struct.Struct("<d")


class BinaryStream:
    """Little-endian scalar and length-prefixed string codec over a binary file.

    Every ``read_*`` call either returns a complete value or raises
    :class:`CorruptError`; a short read never yields a partial value.

    Parameters
    ----------
    fp : BinaryIO
        Any object with ``read``/``write`` on bytes (open file, ``io.BytesIO``).
    name : Optional[str]
        Label used in error messages, usually the file path.
    """

    def __init__(self, fp: BinaryIO, name: Optional[str] = None) -> None:
        self.fp = fp
        self.name = name or getattr(fp, "name", None)

    @classmethod
    def open(cls, path: Union[str, Path], mode: str = "rb") -> "BinaryStream":
        return cls(open(path, mode), name=str(path))

    @classmethod
    def in_memory(cls, data: bytes = b"") -> "BinaryStream":
        return cls(io.BytesIO(data), name="<memory>")

    # -------- writers --------

    def write_int32(self, value: int) -> None:
        self._write(_INT32.pack(value))

    def write_int64(self, value: int) -> None:
        self._write(_INT64.pack(value))

    def write_float64(self, value: float) -> None:
        self._write(_FLOAT64.pack(value))

    def write_bytes(self, data: bytes) -> None:
        """Write ``data`` prefixed by its int32 length."""
        self.write_int32(len(data))
        self._write(data)

    def write_string(self, text: str) -> None:
        self.write_bytes(text.encode("utf-8"))

    def write_raw(self, data: bytes) -> None:
        self._write(data)

    # -------- readers --------

    def read_int32(self) -> int:
        return _INT32.unpack(self._read_exact(_INT32.size))[0]

    def read_int64(self) -> int:
        return _INT64.unpack(self._read_exact(_INT64.size))[0]

    def read_float64(self) -> float:
        return _FLOAT64.unpack(self._read_exact(_FLOAT64.size))[0]

    def read_length(self) -> int:
        """Read an int32 count/length field, rejecting negative values."""
        offset = self.tell()
        n = self.read_int32()
        if n < 0:
            raise CorruptError(f"negative length field ({n})", path=self.name, offset=offset)
        return n

    def read_bytes(self) -> bytes:
        return self._read_exact(self.read_length())

    def read_string(self) -> str:
        offset = self.tell()
        raw = self.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptError(f"invalid UTF-8 string: {e}", path=self.name, offset=offset) from e

    def read_raw(self, n: int) -> bytes:
        return self._read_exact(n)

    # -------- utilities --------

    def tell(self) -> Optional[int]:
        try:
            return self.fp.tell()
        except (OSError, AttributeError):
            return None

    def getvalue(self) -> bytes:
        """Return the buffer contents of an in-memory stream."""
        return self.fp.getvalue()  # type: ignore[attr-defined]

    def close(self) -> None:
        self.fp.close()

    def __enter__(self) -> "BinaryStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _write(self, data: bytes) -> None:
        self.fp.write(data)

    def _read_exact(self, n: int) -> bytes:
        offset = self.tell()
        data = self.fp.read(n)
        if len(data) != n:
            raise CorruptError(
                f"truncated stream: wanted {n} bytes, got {len(data)}",
                path=self.name,
                offset=offset,
            )
        return data


# ----------------------------
# One-shot helpers
# ----------------------------

def encode_int32(value: int) -> bytes:
    return _INT32.pack(value)


def decode_int32(data: bytes) -> int:
    return BinaryStream.in_memory(data).read_int32()


def encode_int64(value: int) -> bytes:
    return _INT64.pack(value)


def decode_int64(data: bytes) -> int:
    return BinaryStream.in_memory(data).read_int64()


def encode_float64(value: float) -> bytes:
    return _FLOAT64.pack(value)


def decode_float64(data: bytes) -> float:
    return BinaryStream.in_memory(data).read_float64()


def encode_string(text: str) -> bytes:
    stream = BinaryStream.in_memory()
    stream.write_string(text)
    return stream.getvalue()


def decode_string(data: bytes) -> str:
    return BinaryStream.in_memory(data).read_string()
