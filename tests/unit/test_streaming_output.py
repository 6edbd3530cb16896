"""Unit tests for the bounded output sink."""

from pathlib import Path

import pytest

from agentshell.core.streaming_output import OutputSink, sanitize_text


@pytest.fixture
def spill_file(tmp_path):
    """Allocator writing the spill file into tmp_path."""
    path = tmp_path / "spill.log"
    return path, lambda: str(path)


class TestSanitizeText:
    def test_plain_text_unchanged(self):
        assert sanitize_text("hello\tworld\n") == "hello\tworld\n"

    def test_strips_ansi_colors(self):
        assert sanitize_text("\x1b[31mred\x1b[0m") == "red"

    def test_drops_carriage_returns(self):
        assert sanitize_text("a\r\nb\rc") == "a\nbc"

    def test_drops_control_characters(self):
        assert sanitize_text("a\x00b\x07c\x7f") == "abc"


class TestOutputSinkInMemory:
    @pytest.mark.asyncio
    async def test_under_threshold_returns_everything(self):
        sink = OutputSink(spill_threshold=100)
        for chunk in ["first ", "second ", "third"]:
            await sink.push(chunk)

        result = await sink.dump()

        assert result.output == "first second third"
        assert result.truncated is False
        assert result.spill_path is None

    @pytest.mark.asyncio
    async def test_exactly_at_threshold_does_not_spill(self):
        sink = OutputSink(spill_threshold=5)
        await sink.push("12345")

        result = await sink.dump()

        assert result.output == "12345"
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_chunked_push_matches_single_push(self):
        chunked = OutputSink(spill_threshold=100)
        for chunk in ["a", "b", "c"]:
            await chunked.push(chunk)
        single = OutputSink(spill_threshold=100)
        await single.push("abc")

        assert (await chunked.dump()).output == (await single.dump()).output == "abc"

    @pytest.mark.asyncio
    async def test_notice_is_prepended(self):
        sink = OutputSink()
        await sink.push("partial")

        result = await sink.dump("Command cancelled")

        assert result.output == "[Command cancelled]\npartial"

    @pytest.mark.asyncio
    async def test_counters(self):
        sink = OutputSink()
        await sink.push("line1\nline2\n")
        await sink.push("tail")

        result = await sink.dump()

        assert result.total_lines == 3
        assert result.total_bytes == len("line1\nline2\ntail")
        assert result.output_lines == 3

    @pytest.mark.asyncio
    async def test_push_after_dump_fails(self):
        sink = OutputSink()
        await sink.dump()

        with pytest.raises(RuntimeError, match="finalized"):
            await sink.push("late")

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            OutputSink(spill_threshold=0)


class TestOutputSinkSpill:
    @pytest.mark.asyncio
    async def test_spill_keeps_full_output_on_disk(self, spill_file):
        path, allocate = spill_file
        sink = OutputSink(spill_threshold=10, allocate_file_path=allocate)
        chunks = ["0123456789", "abcdefghij", "KLMNO"]
        for chunk in chunks:
            await sink.push(chunk)

        result = await sink.dump()

        assert result.truncated is True
        assert result.spill_path == str(path)
        assert Path(result.spill_path).read_text() == "".join(chunks)

    @pytest.mark.asyncio
    async def test_memory_holds_only_the_tail(self, spill_file):
        _, allocate = spill_file
        sink = OutputSink(spill_threshold=10, allocate_file_path=allocate)
        await sink.push("x" * 25 + "0123456789")

        assert len(sink.buffer) == 10
        result = await sink.dump()
        assert result.output == "...0123456789"

    @pytest.mark.asyncio
    async def test_file_opened_once_and_keeps_receiving(self, spill_file):
        path, _ = spill_file
        calls = []

        def allocate():
            calls.append(1)
            return str(path)

        sink = OutputSink(spill_threshold=4, allocate_file_path=allocate)
        await sink.push("abc")
        await sink.push("defg")
        await sink.push("h")

        result = await sink.dump("Command timed out after 1 seconds")

        assert len(calls) == 1
        assert path.read_text() == "abcdefgh"
        assert result.output == "[Command timed out after 1 seconds]\n...efgh"

    @pytest.mark.asyncio
    async def test_spilled_file_is_closed_after_dump(self, spill_file):
        _, allocate = spill_file
        sink = OutputSink(spill_threshold=1, allocate_file_path=allocate)
        await sink.push("abc")
        await sink.dump()

        assert sink._file is not None
        assert sink._file.closed

    @pytest.mark.asyncio
    async def test_close_without_dump_releases_file(self, spill_file):
        path, allocate = spill_file
        sink = OutputSink(spill_threshold=2, allocate_file_path=allocate)
        await sink.push("abcdef")

        sink.close()
        sink.close()

        assert sink._file.closed
        assert path.read_text() == "abcdef"


class TestOutputSinkObserver:
    @pytest.mark.asyncio
    async def test_observer_sees_raw_chunks(self):
        seen = []
        sink = OutputSink(on_chunk=seen.append)
        await sink.push("\x1b[1mbold\x1b[0m")

        assert seen == ["\x1b[1mbold\x1b[0m"]
        assert (await sink.dump()).output == "bold"

    @pytest.mark.asyncio
    async def test_observer_errors_are_ignored(self):
        def broken(chunk):
            raise RuntimeError("ui went away")

        sink = OutputSink(on_chunk=broken)
        await sink.push("still recorded")

        assert (await sink.dump()).output == "still recorded"


class TestOutputSinkBytes:
    @pytest.mark.asyncio
    async def test_split_multibyte_character(self):
        sink = OutputSink()
        encoded = "héllo €".encode()
        await sink.write(encoded[:2])
        await sink.write(encoded[2:9])
        await sink.write(encoded[9:])
        await sink.end()

        assert (await sink.dump()).output == "héllo €"

    @pytest.mark.asyncio
    async def test_text_passthrough(self):
        sink = OutputSink()
        await sink.write("text")
        await sink.end()

        assert (await sink.dump()).output == "text"
