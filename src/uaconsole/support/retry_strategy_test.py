from unittest import TestCase

from hamcrest import assert_that, is_

from uaconsole.support.retry_strategy import ExponentialBackoffRetryStrategy, RetryStrategy


class RetryStrategyTest(TestCase):
    def test_is_zero(self):
        assert_that(RetryStrategy()(), is_(0))


class ExponentialBackoffRetryStrategyTest(TestCase):

    def setUp(self):
        self.sut = ExponentialBackoffRetryStrategy(max_delay=10)

    def test_doubles_up_to_the_cap(self):
        assert_that([self.sut() for _ in range(7)], is_([1, 2, 4, 8, 10, 10, 10]))
        assert_that(self.sut.attempt, is_(7))

    def test_dry_run_does_not_advance(self):
        assert_that(self.sut(dryRun=True), is_(1))
        assert_that(self.sut.peek(), is_(1))
        assert_that(self.sut(), is_(1))
        assert_that(self.sut.peek(), is_(2))

    def test_reset_restarts_from_base(self):
        self.sut()
        self.sut()
        self.sut.reset()
        assert_that(self.sut.attempt, is_(0))
        assert_that(self.sut(), is_(1))

    def test_base(self):
        sut = ExponentialBackoffRetryStrategy(base=0.5, max_delay=3)
        assert_that([sut() for _ in range(5)], is_([0.5, 1, 2, 3, 3]))
