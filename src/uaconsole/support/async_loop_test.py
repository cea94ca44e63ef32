import threading
from unittest import TestCase
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, is_, none

from uaconsole.support.async_loop import AsyncLoop


class AsyncLoopTest(TestCase):

    @timeout_decorator.timeout(5)
    def test_runs_until_stopped(self):
        called = threading.Event()
        sut = AsyncLoop(called.set, name="test-loop")
        sut.start()
        called.wait()
        sut.stop()
        assert_that(sut.running(), is_(False))
        assert_that(sut.background_thread, is_(none()))

    @timeout_decorator.timeout(5)
    def test_exception_ends_the_loop(self):
        fn = Mock(side_effect=ValueError("bad"))
        log = Mock()
        sut = AsyncLoop(fn, log=log)
        sut.start()
        sut.background_thread.join()
        fn.assert_called_once_with()
        log.exception.assert_called_once_with(fn.side_effect)

    @timeout_decorator.timeout(5)
    def test_template_methods(self):
        calls = []

        class Loop(AsyncLoop):
            def startup(self):
                calls.append('startup')

            def loop(self):
                calls.append('loop')
                self.stop_event.set()

            def shutdown(self):
                calls.append('shutdown')
        sut = Loop()
        sut.start()
        sut.background_thread.join()
        assert_that(calls, is_(['startup', 'loop', 'shutdown']))

    def test_start_twice_has_one_thread(self):
        sut = AsyncLoop(lambda: sut.stop_event.wait())
        sut.start()
        thread = sut.background_thread
        sut.start()
        assert_that(sut.background_thread, is_(thread))
        sut.stop()

    def test_stop_before_start(self):
        sut = AsyncLoop(Mock())
        sut.stop()
        assert_that(sut.running(), is_(False))
