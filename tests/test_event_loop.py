import datetime
import socket
import threading
import time

import pytest

from trantor.channel import Channel
from trantor.event_loop import (
    INVALID_TIMER_ID,
    EventLoop,
    EventLoopError,
    get_event_loop_of_current_thread,
)


@pytest.fixture
def loop():
    lp = EventLoop()
    yield lp
    lp.close()


def _run(lp, timeout=5.0):
    lp.run_after(timeout, lp.quit)
    lp.loop()


def test_current_thread_loop_is_registered(loop):
    assert get_event_loop_of_current_thread() is loop
    assert loop.is_in_loop_thread()


def test_second_loop_in_same_thread_rejected(loop):
    with pytest.raises(EventLoopError):
        EventLoop()


def test_run_in_loop_runs_immediately_in_loop_thread(loop):
    calls = []
    loop.run_in_loop(lambda: calls.append("now"))
    assert calls == ["now"]


def test_queued_functions_run_in_order(loop):
    calls = []
    loop.queue_in_loop(lambda: calls.append(1))
    loop.queue_in_loop(lambda: calls.append(2))
    loop.queue_in_loop(loop.quit)
    _run(loop)
    assert calls == [1, 2]


def test_running_and_calling_flags(loop):
    seen = {}

    def probe():
        seen["running"] = loop.is_running()
        seen["calling"] = loop.is_calling_functions()
        loop.quit()

    loop.queue_in_loop(probe)
    assert not loop.is_running()
    _run(loop)
    assert seen == {"running": True, "calling": True}
    assert not loop.is_running()
    assert not loop.is_calling_functions()


def test_timers_fire_in_time_order(loop):
    calls = []
    loop.run_after(0.05, lambda: calls.append("late"))
    loop.run_after(datetime.timedelta(seconds=0.01), lambda: calls.append("early"))
    loop.run_after(0.1, loop.quit)
    _run(loop)
    assert calls == ["early", "late"]


def test_timer_ids_are_valid_and_distinct(loop):
    ids = {loop.run_after(10, lambda: None) for _ in range(5)}
    assert len(ids) == 5
    assert INVALID_TIMER_ID not in ids


def test_run_at_wall_clock(loop):
    calls = []
    when = datetime.datetime.now() + datetime.timedelta(seconds=0.02)
    loop.run_at(when, lambda: (calls.append(time.time()), loop.quit()))
    _run(loop)
    assert len(calls) == 1
    assert calls[0] >= when.timestamp() - 0.01


def test_run_every_repeats(loop):
    count = [0]

    def tick():
        count[0] += 1
        if count[0] == 3:
            loop.invalidate_timer(timer_id)
            loop.run_after(0.05, loop.quit)

    timer_id = loop.run_every(0.01, tick)
    assert timer_id != INVALID_TIMER_ID
    _run(loop)
    assert count[0] == 3
    assert loop.is_running() is False


def test_invalidate_timer_while_running(loop):
    fired = []
    timer_id = loop.run_after(0.05, lambda: fired.append(True))
    loop.queue_in_loop(lambda: loop.invalidate_timer(timer_id))
    loop.run_after(0.1, loop.quit)
    _run(loop)
    assert fired == []


def test_run_on_quit_and_thread_released(loop):
    calls = []
    loop.run_on_quit(lambda: calls.append("quit"))
    loop.queue_in_loop(loop.quit)
    _run(loop)
    assert calls == ["quit"]
    assert get_event_loop_of_current_thread() is None


def test_exception_propagates_after_quit_functions(loop):
    calls = []

    def boom():
        raise ValueError("boom")

    loop.run_on_quit(lambda: calls.append("quit"))
    loop.queue_in_loop(boom)
    with pytest.raises(ValueError, match="boom"):
        _run(loop)
    assert calls == ["quit"]
    assert not loop.is_running()


def test_queue_from_other_thread_runs_in_loop_thread(loop):
    seen = []
    main_ident = threading.get_ident()

    def record():
        seen.append((threading.get_ident(), loop.is_in_loop_thread()))
        loop.quit()

    worker = threading.Thread(target=lambda: loop.queue_in_loop(record))
    loop.queue_in_loop(worker.start)
    _run(loop)
    worker.join()
    assert seen == [(main_ident, True)]
    assert get_event_loop_of_current_thread() is None


def test_quit_from_other_thread_wakes_loop(loop):
    def stopper():
        time.sleep(0.05)
        loop.quit()

    worker = threading.Thread(target=stopper)
    worker.start()
    start = time.monotonic()
    _run(loop)
    worker.join()
    assert time.monotonic() - start < 4.0
    assert loop.is_running() is False


def test_assert_in_loop_thread_from_other_thread(loop):
    errors = []

    def check():
        try:
            loop.assert_in_loop_thread()
        except EventLoopError as exc:
            errors.append(exc)

    worker = threading.Thread(target=check)
    worker.start()
    worker.join()
    assert len(errors) == 1


def test_channel_read_event(loop):
    a, b = socket.socketpair()
    a.setblocking(False)
    received = []
    channel = Channel(loop, a.fileno())

    def on_read():
        received.append(a.recv(100))
        loop.quit()

    channel.read_callback = on_read
    channel.enable_reading()
    assert channel.is_reading() is True
    b.send(b"hi")
    _run(loop)
    channel.disable_all()
    assert channel.is_none_event() is True
    channel.remove()
    a.close()
    b.close()
    assert received == [b"hi"]


def test_update_channel_of_other_loop_rejected(loop):
    class Other:
        def update_channel(self, channel):
            pass

        def remove_channel(self, channel):
            pass

    channel = Channel(Other(), 0)
    with pytest.raises(ValueError):
        loop.update_channel(channel)


def test_move_to_current_thread(loop):
    seen = {}

    def adopt():
        loop.move_to_current_thread()
        seen["in_thread"] = loop.is_in_loop_thread()
        seen["current"] = get_event_loop_of_current_thread() is loop

    worker = threading.Thread(target=adopt)
    worker.start()
    worker.join()
    assert seen == {"in_thread": True, "current": True}
    assert not loop.is_in_loop_thread()
    assert get_event_loop_of_current_thread() is None


def test_move_to_same_thread_is_noop(loop):
    loop.move_to_current_thread()
    assert loop.is_in_loop_thread()
    assert get_event_loop_of_current_thread() is loop


def test_close_releases_thread():
    lp = EventLoop()
    lp.close()
    assert get_event_loop_of_current_thread() is None
    other = EventLoop()
    try:
        assert get_event_loop_of_current_thread() is other
    finally:
        other.close()