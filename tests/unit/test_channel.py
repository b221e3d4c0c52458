"""Tests for OutputChannel, OutputBuffer and ChannelLogHandler."""

from __future__ import annotations

import logging
import select
import threading

from foyer.channel import ChannelLogHandler, LineKind, OutputBuffer, OutputChannel


def _readable(channel: OutputChannel, timeout: float = 0.0) -> bool:
    ready, _, _ = select.select([channel.fileno()], [], [], timeout)
    return bool(ready)


class TestOutputChannel:
    def test_drain_returns_fifo_order(self) -> None:
        channel = OutputChannel()
        try:
            for i in range(5):
                channel.publish(f"line {i}")
            assert channel.drain() == [f"line {i}" for i in range(5)]
            assert channel.drain() == []
        finally:
            channel.close()

    def test_publish_wakes_select(self) -> None:
        channel = OutputChannel()
        try:
            assert not _readable(channel)
            channel.publish("hello")
            assert _readable(channel, 1.0)
        finally:
            channel.close()

    def test_drain_clears_wake_signal(self) -> None:
        channel = OutputChannel()
        try:
            channel.publish("a")
            channel.publish("b")
            channel.drain()
            assert not _readable(channel)
        finally:
            channel.close()

    def test_pending_counts_lines(self) -> None:
        channel = OutputChannel()
        try:
            channel.publish("a")
            channel.publish("b")
            assert channel.pending() == 2
            channel.drain()
            assert channel.pending() == 0
        finally:
            channel.close()

    def test_publish_coerces_to_str(self) -> None:
        channel = OutputChannel()
        try:
            channel.publish(42)  # type: ignore[arg-type]
            assert channel.drain() == ["42"]
        finally:
            channel.close()

    def test_publish_after_close_is_dropped(self) -> None:
        channel = OutputChannel()
        channel.close()
        channel.publish("late")
        assert channel.closed
        assert channel.drain() == []

    def test_close_is_idempotent(self) -> None:
        channel = OutputChannel()
        channel.close()
        channel.close()
        assert channel.closed

    def test_many_publishes_do_not_block_on_full_pipe(self) -> None:
        channel = OutputChannel()
        try:
            for _ in range(100_000):
                channel.publish("x")
            assert channel.pending() == 100_000
        finally:
            channel.close()

    def test_concurrent_publishers_keep_per_thread_order(self) -> None:
        channel = OutputChannel()
        threads_n, per_thread = 8, 250

        def producer(tid: int) -> None:
            for i in range(per_thread):
                channel.publish(f"{tid}:{i}")

        try:
            threads = [threading.Thread(target=producer, args=(t,)) for t in range(threads_n)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
            lines = channel.drain()
            assert len(lines) == threads_n * per_thread
            for tid in range(threads_n):
                seq = [int(line.split(":")[1]) for line in lines if line.startswith(f"{tid}:")]
                assert seq == list(range(per_thread))
        finally:
            channel.close()


class TestOutputBuffer:
    def test_single_line(self) -> None:
        buf = OutputBuffer()
        buf.add("hello")
        assert [line.text for line in buf.lines] == ["hello"]
        assert buf.lines[0].kind is LineKind.NORMAL

    def test_multiline_trims_and_collapses_blanks(self) -> None:
        buf = OutputBuffer()
        buf.add("\n\nfirst\n\n\n\nsecond\n   \nthird\n\n")
        assert [line.text for line in buf.lines] == ["first", "", "second", "", "third"]

    def test_all_blank_multiline_adds_nothing(self) -> None:
        buf = OutputBuffer()
        buf.add("\n  \n\n")
        assert len(buf) == 0
        assert not buf

    def test_single_empty_string_is_kept(self) -> None:
        buf = OutputBuffer()
        buf.add("")
        assert len(buf) == 1

    def test_kinds(self) -> None:
        buf = OutputBuffer()
        buf.add("plain")
        buf.debug("trace")
        buf.error("boom")
        assert [line.kind for line in buf.lines] == [LineKind.NORMAL, LineKind.DEBUG, LineKind.ERROR]

    def test_multiline_error_lines_share_kind(self) -> None:
        buf = OutputBuffer()
        buf.error("a\nb")
        assert all(line.kind is LineKind.ERROR for line in buf.lines)
        assert len(buf) == 2

    def test_clear(self) -> None:
        buf = OutputBuffer()
        buf.add("x")
        buf.clear()
        assert len(buf) == 0


class TestChannelLogHandler:
    def test_records_are_published(self) -> None:
        channel = OutputChannel()
        log = logging.getLogger("foyer.tests.handler")
        handler = ChannelLogHandler(channel)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        log.addHandler(handler)
        log.propagate = False
        try:
            log.warning("disk %s", "full")
            log.error("line one\nline two")
            assert channel.drain() == ["WARNING disk full", "ERROR line one", "line two"]
        finally:
            log.removeHandler(handler)
            channel.close()

    def test_emit_after_close_is_silent(self) -> None:
        channel = OutputChannel()
        channel.close()
        handler = ChannelLogHandler(channel)
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "late", None, None)
        handler.emit(record)
        assert channel.drain() == []
