"""Decompress zstd-framed thread blobs under explicit memory bounds."""

import logging
import os
from collections.abc import Callable

import zstandard

from .config import (
    DEFAULT_MAX_OUTPUT_BYTES,
    INITIAL_BUFFER_MULTIPLIER,
    LOW_WATER_MARK,
    MAX_DECOMPRESS_ITERATIONS,
    MAX_OUTPUT_ENV,
    MIN_INITIAL_BUFFER,
)
from .errors import (
    BufferLimitExceededError,
    CodecError,
    CorruptStreamError,
    TooManyIterationsError,
)
from .models import ArchiveRecord

logger = logging.getLogger(__name__)

UNKNOWN_CONTENT_SIZE = -1

# zstd frame layout
FRAME_HEADER_MAX = 18
BLOCK_HEADER_SIZE = 3
RLE_BLOCK = 1


def get_max_output_bytes() -> int:
    """
    Get the largest decompressed size a single record may have.

    Honors ZED_THREAD_RECALL_MAX_OUTPUT_MB, otherwise 512 MB.
    """
    override = os.environ.get(MAX_OUTPUT_ENV)
    if override:
        try:
            return int(override) * 1024 * 1024
        except ValueError:
            logger.warning(f"Invalid {MAX_OUTPUT_ENV} value: {override}, using default")
    return DEFAULT_MAX_OUTPUT_BYTES


class ZstdStreamCodec:
    """
    One-frame streaming zstd primitive.

    Input is fed one zstd block at a time, and only after the previous
    block's output has been handed out. A block never decodes to more than
    ``zstandard.BLOCKSIZE_MAX`` bytes, so at most one block of output is held
    outside the destination buffer however compressible the frame is.
    """

    def __init__(self):
        self._decompressor = zstandard.ZstdDecompressor().decompressobj()
        self._pending = bytearray()
        self._header_fed = False
        self._last_block_fed = False

    @property
    def has_pending_output(self) -> bool:
        return bool(self._pending)

    @property
    def finished(self) -> bool:
        """True once the frame epilogue was seen and all output handed out."""
        return self._decompressor.eof and not self._pending

    def _next_piece_size(self, src: memoryview) -> int:
        """Size of the next frame section: the header, one block, or the epilogue."""
        if not self._header_fed:
            self._header_fed = True
            try:
                return zstandard.frame_header_size(bytes(src[:FRAME_HEADER_MAX]))
            except zstandard.ZstdError as e:
                raise CodecError(f"Unreadable zstd frame header: {e}") from e
        if self._last_block_fed or len(src) < BLOCK_HEADER_SIZE:
            # Checksum and anything past the frame end
            return len(src)

        block_header = int.from_bytes(src[:BLOCK_HEADER_SIZE], "little")
        self._last_block_fed = bool(block_header & 1)
        block_type = (block_header >> 1) & 0b11
        block_size = block_header >> 3
        return BLOCK_HEADER_SIZE + (1 if block_type == RLE_BLOCK else block_size)

    def step(self, src: memoryview, dst: bytearray, dst_offset: int) -> tuple[int, int]:
        consumed = 0
        if not self._pending and len(src) and not self._decompressor.eof:
            piece = bytes(src[: self._next_piece_size(src)])
            try:
                self._pending += self._decompressor.decompress(piece)
            except zstandard.ZstdError as e:
                raise CodecError(f"zstd decompression failed: {e}") from e
            consumed = len(piece)
            if self._decompressor.eof:
                # Bytes past the frame end stay with the caller
                consumed -= len(self._decompressor.unused_data)

        produced = min(len(dst) - dst_offset, len(self._pending))
        if produced:
            dst[dst_offset : dst_offset + produced] = self._pending[:produced]
            del self._pending[:produced]
        return consumed, produced


def decompress_streaming(
    compressed: bytes,
    codec_factory: Callable[[], ZstdStreamCodec] = ZstdStreamCodec,
    max_output_bytes: int | None = None,
    max_iterations: int = MAX_DECOMPRESS_ITERATIONS,
) -> bytes:
    """Decompress a frame whose content size is unknown or untrusted.

    Args:
        compressed: One zstd frame
        codec_factory: Builds the streaming primitive (injectable for tests)
        max_output_bytes: Hard cap on the destination buffer
        max_iterations: Bound on codec calls, guaranteeing termination

    Returns:
        The decompressed bytes

    Raises:
        BufferLimitExceededError: Output would outgrow ``max_output_bytes``
        CorruptStreamError: Impossible progress, a stalled codec, or a truncated frame
        TooManyIterationsError: The iteration bound was reached
        CodecError: The codec rejected the data
    """
    if not compressed:
        return b""

    limit = get_max_output_bytes() if max_output_bytes is None else max_output_bytes
    codec = codec_factory()
    src = memoryview(compressed)
    src_len = len(src)

    capacity = max(INITIAL_BUFFER_MULTIPLIER * src_len, MIN_INITIAL_BUFFER)
    if capacity > limit:
        capacity = limit
    buffer = bytearray(capacity)
    total_written = 0
    src_pos = 0
    iterations = 0

    while src_pos < src_len or codec.has_pending_output:
        iterations += 1
        if iterations > max_iterations:
            raise TooManyIterationsError(max_iterations)

        if capacity - total_written < LOW_WATER_MARK and capacity < limit:
            grown = min(capacity * 2, limit)
            buffer.extend(bytes(grown - capacity))
            capacity = grown
        if total_written == capacity and codec.has_pending_output:
            raise BufferLimitExceededError(capacity + 1, limit)

        src_available = src_len - src_pos
        dst_available = capacity - total_written
        consumed, produced = codec.step(src[src_pos:], buffer, total_written)

        if consumed < 0 or consumed > src_available:
            raise CorruptStreamError(
                f"Codec consumed {consumed} bytes of {src_available} offered",
                {"consumed": consumed, "available": src_available},
            )
        if produced < 0 or produced > dst_available:
            raise CorruptStreamError(
                f"Codec produced {produced} bytes into {dst_available} available",
                {"produced": produced, "available": dst_available},
            )
        if consumed == 0 and produced == 0:
            raise CorruptStreamError(
                "Decompression stalled with input remaining",
                {"position": src_pos, "written": total_written},
            )

        src_pos += consumed
        total_written += produced

    if not codec.finished:
        raise CorruptStreamError(
            "Compressed frame ended before its epilogue",
            {"position": src_pos, "written": total_written},
        )

    del buffer[total_written:]
    return bytes(buffer)


def decompress(compressed: bytes, max_output_bytes: int | None = None) -> bytes:
    """
    Decompress a zstd frame.

    Uses the content size declared in the frame header to decompress into one
    exact-size buffer; falls back to the streaming loop when the header
    carries no size.
    """
    if not compressed:
        return b""

    limit = get_max_output_bytes() if max_output_bytes is None else max_output_bytes
    try:
        content_size = zstandard.frame_content_size(compressed)
    except zstandard.ZstdError as e:
        raise CodecError(f"Unreadable zstd frame header: {e}") from e

    if content_size == UNKNOWN_CONTENT_SIZE:
        logger.debug("Frame has no content size, decompressing in streaming mode")
        return decompress_streaming(compressed, max_output_bytes=limit)

    if content_size > limit:
        raise BufferLimitExceededError(content_size, limit)

    try:
        return zstandard.ZstdDecompressor().decompress(compressed, max_output_size=content_size)
    except zstandard.ZstdError as e:
        raise CodecError(f"zstd decompression failed: {e}") from e


def decode_record_data(record: ArchiveRecord) -> bytes:
    """Get the raw document bytes of a record, decompressing unless stored as plain JSON."""
    if record.data_type == "json":
        return record.data
    return decompress(record.data)
