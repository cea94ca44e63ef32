import threading


class RetryStrategy:
    def __call__(self):
        return 0

    def reset(self):
        pass


class ExponentialBackoffRetryStrategy(RetryStrategy):
    """
    Doubles the delay for each consecutive attempt, up to max_delay.

    >>> retry = ExponentialBackoffRetryStrategy(max_delay=10)
    >>> [retry() for _ in range(5)]
    [1, 2, 4, 8, 10]
    """

    def __init__(self, base=1, max_delay=10):
        """
        :param base: The delay in seconds before the first retry.
        :param max_delay: The cap on the delay in seconds.
        """
        self.base = base
        self.max_delay = max_delay
        self.attempt = 0
        self._lock = threading.Lock()

    def __call__(self, dryRun=False):
        """return the delay until the next attempt, counting the attempt
            :param dryRun: when True, the attempt counter is not advanced
        """
        with self._lock:
            attempt = self.attempt + 1
            if not dryRun:
                self.attempt = attempt
        return self.delay_for(attempt)

    def peek(self):
        return self(dryRun=True)

    def delay_for(self, attempt):
        """
        >>> ExponentialBackoffRetryStrategy(max_delay=10).delay_for(6)
        10
        """
        return min(self.base * 2 ** (attempt - 1), self.max_delay)

    def reset(self):
        """ the next attempt starts again from the base delay. """
        with self._lock:
            self.attempt = 0
