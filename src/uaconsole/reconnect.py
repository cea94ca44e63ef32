import logging
import threading

from uaconsole import settings
from uaconsole.support.retry_strategy import ExponentialBackoffRetryStrategy, RetryStrategy

logger = logging.getLogger(__name__)


class ReconnectPolicy:
    """
    Schedules reconnect attempts with a backoff between them.

    At most one attempt is pending at a time. While suppressed, for example after the user
    disconnected on purpose, no attempts are scheduled.

    :param retry_strategy: computes the delay before each attempt. Defaults to exponential backoff
        capped at settings.max_reconnect_delay.
    :param timer_factory: creates a one-shot timer, with the signature of threading.Timer(interval, function)
    """
    def __init__(self, retry_strategy: RetryStrategy=None, timer_factory=threading.Timer, log=logger):
        self.retry_strategy = retry_strategy if retry_strategy is not None else \
            ExponentialBackoffRetryStrategy(max_delay=settings.max_reconnect_delay)
        self.timer_factory = timer_factory
        self.suppressed = False
        self.logger = log
        self._timer = None
        self._lock = threading.Lock()

    def schedule_retry(self, callback):
        """
        Schedules callback to run after the next backoff delay, replacing any attempt already pending.
        :return: (attempt, delay) for the scheduled attempt, or None when suppressed.
        """
        if self.suppressed:
            return None
        self.cancel()

        delay = self.retry_strategy()
        attempt = getattr(self.retry_strategy, 'attempt', 0)
        timer = self.timer_factory(delay, lambda: self._fire(timer, callback))
        timer.daemon = True
        with self._lock:
            if self.suppressed:
                return None
            self._timer = timer
        timer.start()
        self.logger.info("reconnect attempt %d in %ss" % (attempt, delay))
        return attempt, delay

    def _fire(self, timer, callback):
        with self._lock:
            if self._timer is not timer:
                return      # cancelled or replaced
            self._timer = None
        callback()

    def reset_counter(self):
        """ the next attempt starts from the shortest delay. """
        self.retry_strategy.reset()

    def cancel(self):
        """ cancels the pending attempt, if any. """
        with self._lock:
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()

    @property
    def pending(self):
        return self._timer is not None
