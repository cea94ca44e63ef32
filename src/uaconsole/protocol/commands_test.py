from unittest import TestCase

from hamcrest import assert_that, is_

from uaconsole.protocol.commands import encode, format_value, get_command, set_command, subscribe_command


class CommandsTest(TestCase):

    def test_get(self):
        assert_that(get_command("/devices/0/outputs"), is_("get /devices/0/outputs"))

    def test_subscribe(self):
        assert_that(subscribe_command("/devices/0/outputs/4/Mute"), is_("subscribe /devices/0/outputs/4/Mute"))

    def test_set_number(self):
        assert_that(set_command("/d/0/outputs/4/CRMonitorLevel", -30.0),
                    is_("set /d/0/outputs/4/CRMonitorLevel/value/ -30.0"))

    def test_set_bool(self):
        assert_that(set_command("/d/0/outputs/4/MixToMono", False), is_("set /d/0/outputs/4/MixToMono/value/ false"))

    def test_format_value(self):
        assert_that(format_value(True), is_("true"))
        assert_that(format_value(-96.0), is_("-96.0"))
        assert_that(format_value(1), is_("1"))

    def test_encode_is_utf8_and_terminated(self):
        assert_that(encode("get /dé"), is_(b"get /d\xc3\xa9\0"))
