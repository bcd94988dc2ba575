"""Pieces of outgoing data: memory, files, and pulled or pushed streams."""

from __future__ import annotations

import abc
import os
import weakref
from typing import BinaryIO, Callable, Optional, Union

MAX_SEND_FILE_BUFFER_SIZE = 16 * 1024

BytesLike = Union[bytes, bytearray, memoryview]

StreamCallback = Callable[[Optional[int]], Optional[bytes]]
"""Called with a maximum size, returns the next chunk (empty at the end).

Called once with None when the stream is finished, to release resources.
"""


class AsyncStream(abc.ABC):
    """A data stream that is sent in order, chunk by chunk."""

    @abc.abstractmethod
    def send(self, data: Union[BytesLike, str]) -> bool:
        """Queue data; return False if the connection is closed."""

    @abc.abstractmethod
    def close(self) -> None:
        """Terminate the stream."""


class BufferNode(abc.ABC):
    """A unit in a connection's write queue."""

    def __init__(self) -> None:
        self.is_done = False

    def is_file(self) -> bool:
        return False

    def is_stream(self) -> bool:
        return False

    def is_async(self) -> bool:
        return False

    def fd(self) -> int:
        return -1

    @abc.abstractmethod
    def get_data(self) -> bytes:
        """Return the bytes that are ready to be written now."""

    @abc.abstractmethod
    def retrieve(self, length: int) -> None:
        """Drop ``length`` bytes that have been written."""

    @abc.abstractmethod
    def remaining_bytes(self) -> int:
        """Return how much is left to send (non-zero while more may follow)."""

    def append(self, data: BytesLike) -> None:
        raise TypeError(f"{type(self).__name__} does not accept appended data")

    def available(self) -> bool:
        return not self.is_done

    def done(self) -> None:
        """Mark the node as finished."""
        self.is_done = True


class MemBufferNode(BufferNode):
    """Bytes held in memory."""

    def __init__(self) -> None:
        super().__init__()
        self._buffer = bytearray()

    def get_data(self) -> bytes:
        return bytes(self._buffer)

    def retrieve(self, length: int) -> None:
        del self._buffer[:length]

    def remaining_bytes(self) -> int:
        if self.is_done:
            return 0
        return len(self._buffer)

    def append(self, data: BytesLike) -> None:
        self._buffer += data


class StreamBufferNode(BufferNode):
    """Data pulled on demand from a callback."""

    def __init__(self, callback: StreamCallback) -> None:
        super().__init__()
        self._callback = callback
        self._buffer = bytearray()
        self._cleanup = weakref.finalize(self, callback, None)

    def is_stream(self) -> bool:
        return True

    def get_data(self) -> bytes:
        if not self._buffer and not self.is_done:
            chunk = self._callback(MAX_SEND_FILE_BUFFER_SIZE)
            if chunk:
                self._buffer += chunk
            else:
                self.is_done = True
        return bytes(self._buffer)

    def retrieve(self, length: int) -> None:
        del self._buffer[:length]

    def remaining_bytes(self) -> int:
        return 0 if self.is_done else 1

    def close(self) -> None:
        """Tell the callback the stream is over; runs at most once."""
        self._cleanup()


class AsyncBufferNode(BufferNode):
    """Data pushed in by the application while the node is queued."""

    def __init__(self) -> None:
        super().__init__()
        self._buffer = bytearray()

    def is_async(self) -> bool:
        return True

    def is_stream(self) -> bool:
        return True

    def get_data(self) -> bytes:
        return bytes(self._buffer)

    def retrieve(self, length: int) -> None:
        del self._buffer[:length]

    def remaining_bytes(self) -> int:
        return len(self._buffer)

    def append(self, data: BytesLike) -> None:
        self._buffer += data


class FileBufferNode(BufferNode):
    """A region of a file, read in chunks of at most 16 KiB.

    A ``length`` of 0 means everything from ``offset`` to the end of file.
    """

    def __init__(self, file_name: Union[str, os.PathLike],
                 offset: int = 0, length: int = 0) -> None:
        super().__init__()
        if offset < 0:
            raise ValueError("offset must be greater than or equal to 0")
        self._buffer = bytearray()
        self._file: Optional[BinaryIO] = open(file_name, "rb")
        try:
            size = os.fstat(self._file.fileno()).st_size
            if length == 0:
                if offset >= size:
                    raise ValueError(
                        f"The file size is {size} bytes, but the offset is "
                        f"{offset} bytes and the length is {length} bytes")
                self._to_send = size - offset
            else:
                if length < 0 or length > size - offset:
                    raise ValueError(
                        f"The file size is {size} bytes, but the offset is "
                        f"{offset} bytes and the length is {length} bytes")
                self._to_send = length
            self._file.seek(offset)
        except BaseException:
            self._file.close()
            self._file = None
            raise

    def is_file(self) -> bool:
        return True

    def fd(self) -> int:
        return self._file.fileno() if self._file is not None else -1

    def get_data(self) -> bytes:
        if not self._buffer and self._to_send > 0 and self._file is not None:
            chunk = self._file.read(min(MAX_SEND_FILE_BUFFER_SIZE, self._to_send))
            if chunk:
                self._buffer += chunk
        return bytes(self._buffer)

    def retrieve(self, length: int) -> None:
        del self._buffer[:length]
        self._to_send = max(0, self._to_send - length)

    def remaining_bytes(self) -> int:
        if self.is_done:
            return 0
        return self._to_send

    def available(self) -> bool:
        return self._file is not None

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "FileBufferNode":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()