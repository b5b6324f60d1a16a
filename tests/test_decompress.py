"""Tests for bounded zstd decompression."""

import os
import tracemalloc
from unittest.mock import patch

import pytest
import zstandard

from zed_thread_recall.decompress import (
    ZstdStreamCodec,
    decode_record_data,
    decompress,
    decompress_streaming,
    get_max_output_bytes,
)
from zed_thread_recall.errors import (
    BufferLimitExceededError,
    CodecError,
    CorruptStreamError,
    DecompressionError,
    TooManyIterationsError,
)
from zed_thread_recall.models import ArchiveRecord

PAYLOAD = b'{"messages": [], "updated_at": "2024-01-01T00:00:00.000Z"}' * 4000


def sized_frame(data: bytes) -> bytes:
    return zstandard.ZstdCompressor().compress(data)


def unsized_frame(data: bytes) -> bytes:
    return zstandard.ZstdCompressor(write_content_size=False).compress(data)


class ScriptedCodec:
    """Streaming codec stand-in that replays fixed (consumed, produced) steps."""

    def __init__(self, steps, finished=True, repeat_last=False):
        self.steps = list(steps)
        self._finished = finished
        self.repeat_last = repeat_last
        self.calls = 0

    @property
    def has_pending_output(self):
        return False

    @property
    def finished(self):
        return self._finished

    def step(self, src, dst, dst_offset):
        self.calls += 1
        if self.repeat_last and len(self.steps) == 1:
            consumed, produced = self.steps[0]
        else:
            consumed, produced = self.steps.pop(0)
        if 0 < produced <= len(dst) - dst_offset:
            dst[dst_offset : dst_offset + produced] = b"x" * produced
        return consumed, produced


class TestDecompress:
    """Tests for decompress with a declared content size."""

    def test_round_trip(self):
        """Frame with a content size decompresses to the original bytes."""
        assert decompress(sized_frame(PAYLOAD)) == PAYLOAD

    def test_empty_input(self):
        """Empty input decompresses to empty output."""
        assert decompress(b"") == b""

    def test_empty_frame(self):
        """A frame of empty content decompresses to empty output."""
        assert decompress(sized_frame(b"")) == b""

    def test_garbage_is_codec_error(self):
        """Bytes that are not a zstd frame raise CodecError."""
        with pytest.raises(CodecError):
            decompress(b"not a zstd frame")

    def test_declared_size_over_limit(self):
        """A declared size above the limit is refused before allocating."""
        with pytest.raises(BufferLimitExceededError) as exc_info:
            decompress(sized_frame(PAYLOAD), max_output_bytes=1024)
        assert exc_info.value.requested == len(PAYLOAD)
        assert exc_info.value.limit == 1024

    def test_unknown_size_uses_streaming(self):
        """A frame without content size still decompresses."""
        assert decompress(unsized_frame(PAYLOAD)) == PAYLOAD

    def test_limit_from_environment(self):
        """ZED_THREAD_RECALL_MAX_OUTPUT_MB caps the output size."""
        with patch.dict(os.environ, {"ZED_THREAD_RECALL_MAX_OUTPUT_MB": "1"}):
            assert get_max_output_bytes() == 1024 * 1024

    def test_invalid_limit_falls_back(self):
        """An unparsable limit uses the default."""
        with patch.dict(os.environ, {"ZED_THREAD_RECALL_MAX_OUTPUT_MB": "lots"}):
            assert get_max_output_bytes() == 512 * 1024 * 1024


class TestDecompressStreaming:
    """Tests for the bounded streaming loop."""

    def test_streaming_round_trip(self):
        """Output larger than the initial buffer grows the buffer and completes."""
        frame = unsized_frame(PAYLOAD)
        assert len(PAYLOAD) > max(3 * len(frame), 4096)
        assert decompress_streaming(frame) == PAYLOAD

    def test_streaming_empty_input(self):
        """Empty input produces empty output without invoking the codec."""
        assert decompress_streaming(b"", codec_factory=lambda: pytest.fail("codec built")) == b""

    def test_buffer_limit(self):
        """Needing more than the limit raises BufferLimitExceededError."""
        with pytest.raises(BufferLimitExceededError):
            decompress_streaming(unsized_frame(PAYLOAD), max_output_bytes=16 * 1024)

    def test_output_just_under_limit(self):
        """Output that fits the limit succeeds on both paths."""
        data = PAYLOAD[:8960]
        assert decompress(sized_frame(data), max_output_bytes=10_000) == data
        assert decompress_streaming(unsized_frame(data), max_output_bytes=10_000) == data

    def test_output_exactly_at_limit(self):
        """The buffer grows to the limit itself, not just to a power of two below it."""
        data = PAYLOAD[:8960]
        assert decompress_streaming(unsized_frame(data), max_output_bytes=len(data)) == data

    def test_limit_reported(self):
        """The error names the configured limit."""
        with pytest.raises(BufferLimitExceededError) as exc_info:
            decompress_streaming(unsized_frame(PAYLOAD), max_output_bytes=10_000)
        assert exc_info.value.limit == 10_000
        assert exc_info.value.requested > 10_000

    def test_peak_memory_stays_near_limit(self):
        """A tiny frame of 64 MiB of zeros is refused without inflating past the limit."""
        frame = unsized_frame(bytes(64 * 1024 * 1024))
        limit = 1024 * 1024
        tracemalloc.start()
        try:
            with pytest.raises(BufferLimitExceededError):
                decompress_streaming(frame, max_output_bytes=limit)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()
        assert peak < 4 * limit

    def test_truncated_frame(self):
        """Input that ends before the frame epilogue is corrupt."""
        frame = unsized_frame(PAYLOAD)
        with pytest.raises(CorruptStreamError):
            decompress_streaming(frame[: len(frame) // 2])

    def test_scripted_success(self):
        """Progress reported by the codec is accumulated into the output."""
        codec = ScriptedCodec([(2, 3), (2, 2)])
        assert decompress_streaming(b"abcd", codec_factory=lambda: codec) == b"xxxxx"
        assert codec.calls == 2

    def test_stalled_codec(self):
        """A step that neither consumes nor produces is corrupt."""
        codec = ScriptedCodec([(0, 0)])
        with pytest.raises(CorruptStreamError):
            decompress_streaming(b"abc", codec_factory=lambda: codec)

    def test_over_consumed(self):
        """Consuming more input than offered is corrupt."""
        codec = ScriptedCodec([(10, 0)])
        with pytest.raises(CorruptStreamError):
            decompress_streaming(b"abc", codec_factory=lambda: codec)

    def test_over_produced(self):
        """Producing more than the available destination is corrupt."""
        codec = ScriptedCodec([(1, 100_000)])
        with pytest.raises(CorruptStreamError):
            decompress_streaming(b"abc", codec_factory=lambda: codec)

    def test_negative_progress(self):
        """Negative counts are corrupt."""
        codec = ScriptedCodec([(-1, 5)])
        with pytest.raises(CorruptStreamError):
            decompress_streaming(b"abc", codec_factory=lambda: codec)

    def test_iteration_bound(self):
        """A codec that never consumes input hits the iteration bound."""
        codec = ScriptedCodec([(0, 1)], repeat_last=True)
        with pytest.raises(TooManyIterationsError) as exc_info:
            decompress_streaming(b"abc", codec_factory=lambda: codec, max_iterations=5)
        assert exc_info.value.iterations == 5
        assert codec.calls == 5

    def test_unfinished_frame(self):
        """All input consumed without the end of frame is corrupt."""
        codec = ScriptedCodec([(3, 1)], finished=False)
        with pytest.raises(CorruptStreamError):
            decompress_streaming(b"abc", codec_factory=lambda: codec)

    def test_errors_share_base(self):
        """Every decompression failure is a DecompressionError."""
        errors = (CorruptStreamError, CodecError, BufferLimitExceededError, TooManyIterationsError)
        for error in errors:
            assert issubclass(error, DecompressionError)


class TestDecodeRecordData:
    """Tests for decode_record_data."""

    def test_zstd_record(self):
        """zstd records are decompressed."""
        record = ArchiveRecord(
            id="t1", summary="s", updated_at="2024-01-01T00:00:00.000Z", data=sized_frame(b"{}")
        )
        assert decode_record_data(record) == b"{}"

    def test_json_record(self):
        """json records are passed through unchanged."""
        record = ArchiveRecord(
            id="t1",
            summary="s",
            updated_at="2024-01-01T00:00:00.000Z",
            data_type="json",
            data=b"{}",
        )
        assert decode_record_data(record) == b"{}"


class TestZstdStreamCodec:
    """Tests for the one-block-at-a-time zstd step."""

    def test_feeds_nothing_while_output_is_pending(self):
        """Input is not consumed until held-back output has been drained."""
        codec = ZstdStreamCodec()
        src = memoryview(unsized_frame(bytes(4 * 1024 * 1024)))
        full = bytearray()

        header, _ = codec.step(src, full, 0)
        block, _ = codec.step(src[header:], full, 0)

        assert 0 < header < block + header < len(src)
        assert codec.has_pending_output
        assert codec.step(src[header + block :], full, 0) == (0, 0)

    def test_held_back_output_is_one_block(self):
        """Draining after one block yields at most one block of output."""
        codec = ZstdStreamCodec()
        src = memoryview(unsized_frame(bytes(4 * 1024 * 1024)))
        header, _ = codec.step(src, bytearray(), 0)
        block, _ = codec.step(src[header:], bytearray(), 0)

        dst = bytearray(1024 * 1024)
        consumed, produced = codec.step(src[header + block :], dst, 0)

        assert consumed == 0
        assert 0 < produced <= zstandard.BLOCKSIZE_MAX
        assert not codec.has_pending_output

    def test_not_a_frame(self):
        """A source without a zstd magic number raises CodecError."""
        with pytest.raises(CodecError):
            ZstdStreamCodec().step(memoryview(b"not a zstd frame"), bytearray(64), 0)
