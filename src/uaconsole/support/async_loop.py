"""
A background thread that repeats one step until told to stop.
"""
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class AsyncLoop:
    """
    Runs fn(*args) over and over on a daemon thread. Subclasses may instead override the
    startup(), loop() and shutdown() steps.

    An exception raised by a step is passed to exception_handler() and ends the loop,
    though shutdown() still runs.
    """

    def __init__(self, fn: Callable=None, args=(), log=logger, name=None):
        self.fn = fn
        self.args = args
        self.name = name
        self.logger = log
        self.stop_event = threading.Event()
        self.background_thread = None
        self._thread_lock = threading.Lock()

    def start(self):
        """ starts the thread. Has no effect once started. """
        with self._thread_lock:
            if self.background_thread is not None:
                return
            self.background_thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self.background_thread.start()

    def _run(self):
        if self._guarded(self.startup):
            while self.running() and self._guarded(self.loop):
                pass
        self._guarded(self.shutdown)
        self.logger.debug("thread %s finished" % self.name)

    def _guarded(self, step):
        """ :return: True when the step completed without raising """
        try:
            step()
        except Exception as e:
            self.exception_handler(e)
            return False
        return True

    def exception_handler(self, e):
        self.logger.exception(e)

    def startup(self):
        pass

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        pass

    def running(self):
        return not self.stop_event.is_set()

    def stop(self, wait=True):
        """
        Asks the loop to finish after the current step.
        :param wait: block until the thread has exited. Ignored when called on the thread itself.
        """
        self.stop_event.set()
        with self._thread_lock:
            thread, self.background_thread = self.background_thread, None
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()
