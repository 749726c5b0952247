"""Tests for sheval.processor -- open/close state machine."""

from __future__ import annotations

import io

import pytest

import sheval.capture
import sheval.delimiters
import sheval.errors
import sheval.processor


class _Recorder:
    """Executor that records blocks and writes ``<text>`` to the output."""

    def __init__(self, output: io.BytesIO) -> None:
        self.output = output
        self.blocks: list[sheval.processor.CapturedBlock] = []

    def __call__(self, block: sheval.processor.CapturedBlock) -> None:
        self.blocks.append(block)
        self.output.write(b"<" + block.text + b">")


def _run(
    data: bytes,
    *,
    buffer_size: int = 4096,
    delimiters: sheval.delimiters.DelimiterPair = sheval.delimiters.DEFAULT_DELIMITERS,
) -> tuple[bytes, _Recorder, sheval.processor.ProcessResult]:
    out = io.BytesIO()
    recorder = _Recorder(out)
    processor = sheval.processor.BlockProcessor(delimiters, buffer_size=buffer_size)
    result = processor.process(io.BytesIO(data), out, recorder)
    return out.getvalue(), recorder, result


# ---------------------------------------------------------------------------
# TestProcess
# ---------------------------------------------------------------------------


class TestProcess:
    def test_text_without_blocks_is_unchanged(self) -> None:
        data = b"hello, world\nno blocks } % { here\n"
        out, recorder, result = _run(data)
        assert out == data
        assert recorder.blocks == []
        assert result.blocks == 0
        assert result.bytes_read == len(data)

    def test_block_is_replaced_by_executor_output(self) -> None:
        out, recorder, result = _run(b"a%{x}%b")
        assert out == b"a<x>b"
        assert result.blocks == 1
        assert result.bytes_read == 7

    def test_blocks_and_literals_stay_in_order(self) -> None:
        out, recorder, _ = _run(b"1%{one}%2%{two}%3")
        assert out == b"1<one>2<two>3"
        assert [b.text for b in recorder.blocks] == [b"one", b"two"]

    def test_block_metadata(self) -> None:
        _, recorder, _ = _run(b"ab%{ first }%cd%{second}%")
        first, second = recorder.blocks
        assert (first.index, first.offset) == (1, 2)
        assert (second.index, second.offset) == (2, 15)
        assert first.path is None
        assert first.first_line() == "first"

    def test_empty_block(self) -> None:
        out, recorder, _ = _run(b"x%{}%y")
        assert out == b"x<>y"
        assert recorder.blocks[0].text == b""

    def test_open_marker_inside_block_does_not_nest(self) -> None:
        out, recorder, _ = _run(b"a%{ x %{ y }% b }%")
        assert recorder.blocks[0].text == b" x %{ y "
        assert out == b"a< x %{ y > b }%"

    def test_custom_multibyte_markers(self) -> None:
        pair = sheval.delimiters.DelimiterPair(b"<?sh", b"?>")
        out, _, _ = _run(b"<p><?sh date ?></p>", delimiters=pair, buffer_size=4)
        assert out == b"<p>< date ></p>"

    def test_identical_open_and_close_markers_alternate(self) -> None:
        pair = sheval.delimiters.DelimiterPair(b"$$", b"$$")
        out, _, _ = _run(b"a$$x$$b$$y$$", delimiters=pair)
        assert out == b"a<x>b<y>"

    @pytest.mark.parametrize("buffer_size", [2, 3, 4, 5, 7, 16])
    def test_small_buffers_give_same_result(self, buffer_size: int) -> None:
        data = b"head %{ printf '%s' a }% mid %%{ %{b}% tail }% %"
        expected, _, _ = _run(data)
        out, _, _ = _run(data, buffer_size=buffer_size)
        assert out == expected

    def test_byte_at_a_time_source(self, chunked) -> None:
        out = io.BytesIO()
        processor = sheval.processor.BlockProcessor(buffer_size=2)
        processor.process(chunked(b"a%{bc}%d", chunk=1), out, _Recorder(out))
        assert out.getvalue() == b"a<bc>d"

    def test_mode_returns_to_awaiting_open(self) -> None:
        processor = sheval.processor.BlockProcessor()
        out = io.BytesIO()
        processor.process(io.BytesIO(b"%{x}%"), out, _Recorder(out))
        assert processor.mode is sheval.processor.Mode.AWAITING_OPEN


# ---------------------------------------------------------------------------
# TestErrors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_unclosed_delimiter(self) -> None:
        out = io.BytesIO()
        recorder = _Recorder(out)
        processor = sheval.processor.BlockProcessor()
        with pytest.raises(sheval.errors.UnclosedDelimiterError) as excinfo:
            processor.process(io.BytesIO(b"hello, %{ cat"), out, recorder)
        assert excinfo.value.offset == 7
        assert excinfo.value.exit_code == 3
        # nothing of the open block reaches the output
        assert out.getvalue() == b"hello, "
        assert recorder.blocks == []
        assert processor.mode is sheval.processor.Mode.AWAITING_CLOSE

    def test_unclosed_after_complete_block(self) -> None:
        out = io.BytesIO()
        processor = sheval.processor.BlockProcessor()
        with pytest.raises(sheval.errors.UnclosedDelimiterError):
            processor.process(io.BytesIO(b"%{a}%b%{c"), out, _Recorder(out))
        assert out.getvalue() == b"<a>b"

    def test_executor_failure_is_wrapped(self) -> None:
        out = io.BytesIO()
        calls: list[bytes] = []

        def executor(block: sheval.processor.CapturedBlock) -> None:
            calls.append(block.text)
            if block.index == 2:
                raise RuntimeError("exit status 1")
            out.write(b"ok")

        processor = sheval.processor.BlockProcessor()
        with pytest.raises(sheval.errors.BlockExecutionError) as excinfo:
            processor.process(io.BytesIO(b"1%{a}%2%{b}%3%{c}%"), out, executor)

        assert excinfo.value.index == 2
        assert excinfo.value.offset == 7
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert "block #2" in str(excinfo.value)
        # partial output is kept; the run stops at the failing block
        assert out.getvalue() == b"1ok2"
        assert calls == [b"a", b"b"]

    def test_marker_longer_than_buffer_rejected_at_construction(self) -> None:
        pair = sheval.delimiters.DelimiterPair(b"<<<", b">>>")
        with pytest.raises(sheval.errors.DelimiterTooLargeError):
            sheval.processor.BlockProcessor(pair, buffer_size=2)

    def test_empty_marker_rejected(self) -> None:
        with pytest.raises(sheval.errors.ConfigError):
            sheval.processor.BlockProcessor(sheval.delimiters.DelimiterPair(b"", b"}%"))

    def test_read_error_propagates(self, chunked) -> None:
        out = io.BytesIO()
        source = chunked(b"abc%{de", chunk=3, error=OSError("read failed"))
        processor = sheval.processor.BlockProcessor()
        with pytest.raises(OSError, match="read failed"):
            processor.process(source, out, _Recorder(out))
        assert out.getvalue() == b"abc"


# ---------------------------------------------------------------------------
# TestCapture
# ---------------------------------------------------------------------------


@pytest.fixture
def closed_captures(monkeypatch: pytest.MonkeyPatch) -> list[sheval.capture.MemoryCapture]:
    """Record every MemoryCapture that gets closed."""
    closed: list[sheval.capture.MemoryCapture] = []
    real_close = sheval.capture.MemoryCapture.close

    def _close(capture: sheval.capture.MemoryCapture) -> None:
        closed.append(capture)
        real_close(capture)

    monkeypatch.setattr(sheval.capture.MemoryCapture, "close", _close)
    return closed


class TestCapture:
    def test_capture_is_reset_between_blocks(self) -> None:
        capture = sheval.capture.MemoryCapture()
        out = io.BytesIO()
        recorder = _Recorder(out)
        processor = sheval.processor.BlockProcessor(capture=capture)
        processor.process(io.BytesIO(b"%{long block}%%{x}%"), out, recorder)
        assert [b.text for b in recorder.blocks] == [b"long block", b"x"]
        assert capture.getvalue() == b""

    def test_file_capture_exposes_complete_script(self) -> None:
        seen: list[bytes] = []
        out = io.BytesIO()

        def executor(block: sheval.processor.CapturedBlock) -> None:
            assert block.path is not None
            seen.append(block.path.read_bytes())

        with sheval.capture.open_capture("file") as capture:
            processor = sheval.processor.BlockProcessor(capture=capture)
            processor.process(io.BytesIO(b"%{echo one}% %{echo two}%"), out, executor)
            path = capture.path

        assert seen == [b"echo one", b"echo two"]
        assert out.getvalue() == b" "
        assert path is not None
        assert not path.exists()

    def test_own_capture_is_closed_after_run(self, closed_captures) -> None:
        out = io.BytesIO()
        processor = sheval.processor.BlockProcessor()
        processor.process(io.BytesIO(b"a%{x}%b"), out, _Recorder(out))
        assert out.getvalue() == b"a<x>b"
        assert len(closed_captures) == 1
        assert processor.capture is None

    def test_own_capture_is_closed_on_error(self, closed_captures) -> None:
        out = io.BytesIO()
        processor = sheval.processor.BlockProcessor()
        with pytest.raises(sheval.errors.UnclosedDelimiterError):
            processor.process(io.BytesIO(b"a%{x"), out, _Recorder(out))
        assert len(closed_captures) == 1

    def test_caller_capture_is_left_open(self) -> None:
        capture = sheval.capture.MemoryCapture()
        out = io.BytesIO()
        sheval.processor.BlockProcessor(capture=capture).process(
            io.BytesIO(b"%{x}%"), out, _Recorder(out)
        )
        capture.write(b"still usable")
        assert capture.getvalue() == b"still usable"
