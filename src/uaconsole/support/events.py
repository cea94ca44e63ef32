"""
Event sources and delivery contexts.

An EventSource fans a call out to its handlers. A Dispatcher decides which thread the call
happens on: listeners of a connection or a discovery scan always receive their callbacks
through one dispatcher, so they never see interleaved or reordered notifications.
"""
import logging
import threading
from queue import Queue, Empty

logger = logging.getLogger(__name__)


class EventSource(object):

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        self._fire(*args, **kwargs)

    def fire_all(self, events):
        for e in events:
            self._fire(e)

    def _fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)


class Dispatcher:
    """ Runs callbacks on a delivery context. """

    def dispatch(self, fn, *args):
        raise NotImplementedError

    def close(self):
        pass


class ImmediateDispatcher(Dispatcher):
    """ invokes the callback on the calling thread. """

    def dispatch(self, fn, *args):
        fn(*args)


class QueuedDispatcher(Dispatcher):
    """
    the dispatch() method posts callbacks to the queue. These are run when a thread
    calls publish(), typically the owner's UI or main loop.
    """
    def __init__(self):
        self.event_queue = Queue()

    def dispatch(self, fn, *args):
        self.event_queue.put((fn, args))

    def publish(self):
        """ runs any queued callbacks on the calling thread.
        :return: the number of callbacks run
        """
        count = 0
        while True:
            try:
                fn, args = self.event_queue.get_nowait()
            except Empty:
                return count
            fn(*args)
            count += 1


class SerialDispatcher(QueuedDispatcher):
    """
    Delivers callbacks in order on a single daemon thread owned by this dispatcher.
    The thread is started on the first dispatch.
    """
    _stop = object()

    def __init__(self, name="uaconsole-dispatch"):
        super().__init__()
        self.name = name
        self._thread = None
        self._lock = threading.Lock()

    def dispatch(self, fn, *args):
        with self._lock:
            if self._thread is None:
                t = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread = t
                t.start()
        super().dispatch(fn, *args)

    def _run(self):
        queue = self.event_queue
        while True:
            fn, args = queue.get()
            if fn is self._stop:
                break
            try:
                fn(*args)
            except Exception as e:
                logger.exception("listener raised %s" % e)

    def close(self):
        """ stops the delivery thread after the callbacks already queued have run. """
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None:
            self.event_queue.put((self._stop, ()))
            if thread is not threading.current_thread():
                thread.join()
