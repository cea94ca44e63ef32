import logging
import socket
import threading
import time
from unittest import TestCase
from unittest.mock import Mock, call

import timeout_decorator
from hamcrest import assert_that, empty, has_length, instance_of, is_

from uaconsole.connector.socketconn import TCPServerEndpoint
from uaconsole.discovery.server_discovery import DiscoveredHost, HostDiscoveredEvent, ScanStateEvent, \
    ServerDiscovery, ServiceResolver, _ScanListener, is_loopback
from uaconsole.reconnect_test import FakeTimer
from uaconsole.support.events import ImmediateDispatcher

service_type = "_uamixer._tcp.local."


def host(address, name="Studio"):
    return DiscoveredHost(TCPServerEndpoint(address, 4710), name)


class ServerDiscoveryTest(TestCase):

    def setUp(self):
        self.zeroconf = Mock()
        self.browser = Mock()
        self.browser_factory = Mock(return_value=self.browser)
        self.timers = []
        self.resolver = Mock()
        self.sut = ServerDiscovery("uamixer", scan_timeout=10, dispatcher=ImmediateDispatcher(), resolver=self.resolver,
                                   zeroconf_factory=Mock(return_value=self.zeroconf),
                                   browser_factory=self.browser_factory, timer_factory=self.timer)
        self.events = Mock()
        self.sut.listeners += self.events

    def timer(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def test_qualify_service_type(self):
        assert_that(ServerDiscovery.qualify_service_type("uamixer"), is_(service_type))
        assert_that(self.sut.service_type, is_(service_type))

    def test_start_scan(self):
        self.sut.start_scan()
        assert_that(self.sut.scanning, is_(True))
        zeroconf, svc_type, listener = self.browser_factory.call_args[0]
        assert_that(zeroconf, is_(self.zeroconf))
        assert_that(svc_type, is_(service_type))
        assert_that(listener, instance_of(_ScanListener))
        assert_that(self.timers[0].interval, is_(10))
        assert_that(self.timers[0].started, is_(True))
        self.events.assert_called_once_with(ScanStateEvent(self.sut, True))

    def test_scan_stops_after_timeout(self):
        self.sut.start_scan()
        self.timers[0].fire()
        assert_that(self.sut.scanning, is_(False))
        self.browser.cancel.assert_called_once_with()
        self.zeroconf.close.assert_called_once_with()
        assert_that(self.events.mock_calls[-1], is_(call(ScanStateEvent(self.sut, False))))

    def test_stop_scan_is_idempotent(self):
        self.sut.stop_scan()
        self.sut.start_scan()
        self.sut.stop_scan()
        self.sut.stop_scan()
        assert_that(self.events.mock_calls, is_([
            call(ScanStateEvent(self.sut, True)),
            call(ScanStateEvent(self.sut, False))]))
        assert_that(self.timers[0].cancelled, is_(True))
        self.zeroconf.close.assert_called_once_with()

    def test_failed_start_leaves_nothing_running(self):
        self.browser_factory.side_effect = OSError("no interface")
        assert_that(self.sut.start_scan(), is_(False))
        assert_that(self.sut.scanning, is_(False))
        assert_that(self.timers, is_(empty()))
        self.zeroconf.close.assert_called_once_with()
        self.events.assert_not_called()

        self.browser_factory.side_effect = None
        assert_that(self.sut.start_scan(), is_(True))
        assert_that(self.sut.scanning, is_(True))

    def test_timer_failure_releases_browser(self):
        self.sut.timer_factory = Mock(side_effect=RuntimeError("can't start new thread"))
        assert_that(self.sut.start_scan(), is_(False))
        assert_that(self.sut.scanning, is_(False))
        self.browser.cancel.assert_called_once_with()
        self.zeroconf.close.assert_called_once_with()
        self.sut.stop_scan()
        self.events.assert_not_called()

    def test_expired_timer_of_an_earlier_scan_is_ignored(self):
        self.sut.start_scan()
        self.sut.start_scan()
        self.timers[0].function()
        assert_that(self.sut.scanning, is_(True))

    def test_host_resolved(self):
        self.sut.start_scan()
        session = self.sut._session
        assert_that(self.sut.host_resolved(session, host('192.168.1.5')), is_(True))
        assert_that(self.sut.discovered_hosts, is_((host('192.168.1.5'),)))
        self.events.assert_called_with(HostDiscoveredEvent(self.sut, host('192.168.1.5')))

    def test_hosts_are_unique_by_address(self):
        self.sut.start_scan()
        session = self.sut._session
        self.sut.host_resolved(session, host('192.168.1.5', "Studio"))
        assert_that(self.sut.host_resolved(session, host('192.168.1.5', "Studio (2)")), is_(False))
        assert_that(self.sut.discovered_hosts, is_((host('192.168.1.5', "Studio"),)))

    def test_loopback_hosts_are_skipped(self):
        self.sut.start_scan()
        session = self.sut._session
        assert_that(self.sut.host_resolved(session, host('127.0.0.1')), is_(False))
        assert_that(self.sut.host_resolved(session, host('::1')), is_(False))
        assert_that(self.sut.discovered_hosts, is_(empty()))

    def test_results_of_a_stopped_scan_are_discarded(self):
        self.sut.start_scan()
        session = self.sut._session
        self.sut.stop_scan()
        assert_that(self.sut.host_resolved(session, host('192.168.1.5')), is_(False))
        assert_that(self.sut.discovered_hosts, is_(empty()))

    def test_stop_keeps_hosts_and_start_clears_them(self):
        self.sut.start_scan()
        self.sut.host_resolved(self.sut._session, host('192.168.1.5'))
        self.sut.stop_scan()
        assert_that(self.sut.discovered_hosts, has_length(1))
        self.sut.start_scan()
        assert_that(self.sut.discovered_hosts, is_(empty()))

    def test_resolve_uses_first_reachable_address(self):
        unreachable, sock = Mock(), Mock()
        info = Mock(port=4710)
        info.parsed_addresses.return_value = ['10.0.0.9', '192.168.1.5']
        self.resolver.service_info.return_value = info
        self.resolver.socket_for.side_effect = [(unreachable, ('10.0.0.9', 4710)), (sock, ('192.168.1.5', 4710))]
        self.resolver.connect.side_effect = [OSError("unreachable"), None]
        self.resolver.remote_address.return_value = '192.168.1.5'
        self.sut.start_scan()
        self.sut._resolve(self.sut._session, self.zeroconf, service_type, "Studio." + service_type)
        assert_that(self.sut.discovered_hosts, is_((host('192.168.1.5', "Studio"),)))
        self.resolver.connect.assert_called_with(sock, ('192.168.1.5', 4710))
        unreachable.close.assert_called_once_with()
        sock.close.assert_called_once_with()
        assert_that(self.sut._resolving, is_(empty()))

    def test_stop_scan_closes_socket_while_connecting(self):
        sock = Mock()
        info = Mock(port=4710)
        info.parsed_addresses.return_value = ['192.168.1.5']
        self.resolver.service_info.return_value = info
        self.resolver.socket_for.return_value = (sock, ('192.168.1.5', 4710))

        def connecting(connecting_sock, sockaddr):
            assert_that(self.sut._resolving, is_([connecting_sock]))
            self.sut.stop_scan()
            connecting_sock.close.assert_called_once_with()
            raise OSError("Bad file descriptor")
        self.resolver.connect.side_effect = connecting

        self.sut.start_scan()
        self.sut._resolve(self.sut._session, self.zeroconf, service_type, "Studio." + service_type)
        assert_that(self.sut.scanning, is_(False))
        assert_that(self.sut._resolving, is_(empty()))
        assert_that(self.sut.discovered_hosts, is_(empty()))
        self.resolver.remote_address.assert_not_called()

    def test_resolve_without_info(self):
        self.resolver.service_info.return_value = None
        self.sut.start_scan()
        self.sut._resolve(self.sut._session, self.zeroconf, service_type, "Studio." + service_type)
        self.resolver.socket_for.assert_not_called()

    def test_resolve_after_stop_does_nothing(self):
        info = Mock(port=4710)
        info.parsed_addresses.return_value = ['192.168.1.5']
        self.resolver.service_info.return_value = info
        self.sut.start_scan()
        session = self.sut._session
        self.sut.stop_scan()
        self.sut._resolve(session, self.zeroconf, service_type, "Studio." + service_type)
        self.resolver.socket_for.assert_not_called()

    @timeout_decorator.timeout(5)
    def test_advertised_service_is_discovered(self):
        found = threading.Event()
        self.sut.listeners += lambda e: found.set() if isinstance(e, HostDiscoveredEvent) else None
        info = Mock(port=4710)
        info.parsed_addresses.return_value = ['192.168.1.5']
        self.resolver.service_info.return_value = info
        self.resolver.socket_for.return_value = (Mock(), ('192.168.1.5', 4710))
        self.resolver.remote_address.return_value = '192.168.1.5'
        self.sut.start_scan()
        listener = self.browser_factory.call_args[0][2]
        listener.add_service(self.zeroconf, service_type, "Studio." + service_type)
        found.wait()
        assert_that(self.sut.discovered_hosts, is_((host('192.168.1.5', "Studio"),)))

    def test_display_name(self):
        assert_that(ServerDiscovery.display_name("Studio._uamixer._tcp.local.", service_type), is_("Studio"))
        assert_that(ServerDiscovery.display_name("Other", service_type), is_("Other"))


class ScanListenerTest(TestCase):
    def test_forwards_added_and_updated(self):
        discovery = Mock()
        sut = _ScanListener(discovery, 3)
        sut.add_service("zc", "type", "a")
        sut.update_service("zc", "type", "b")
        sut.remove_service("zc", "type", "c")
        assert_that(discovery.service_added.mock_calls, is_([call(3, "zc", "type", "a"), call(3, "zc", "type", "b")]))


class ServiceResolverTest(TestCase):
    def test_service_info_timeout_in_milliseconds(self):
        zeroconf = Mock()
        ServiceResolver(timeout=1.5).service_info(zeroconf, "t", "n")
        zeroconf.get_service_info.assert_called_once_with("t", "n", timeout=1500)

    @timeout_decorator.timeout(5)
    def test_connect_to_listening_service(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.addCleanup(server.close)
        server.bind(('127.0.0.1', 0))
        server.listen(1)
        sut = ServiceResolver(timeout=2)
        sock, sockaddr = sut.socket_for('127.0.0.1', server.getsockname()[1])
        self.addCleanup(sock.close)
        assert_that(sock.gettimeout(), is_(2))
        sut.connect(sock, sockaddr)
        assert_that(sut.remote_address(sock), is_('127.0.0.1'))

    def test_remote_address(self):
        sock = Mock()
        sock.getpeername.return_value = ('192.168.1.5', 4710)
        assert_that(ServiceResolver.remote_address(sock), is_('192.168.1.5'))

    def test_is_loopback(self):
        assert_that(is_loopback('127.0.0.2'), is_(True))
        assert_that(is_loopback('fe80::1%en0'), is_(False))
        assert_that(is_loopback('localhost'), is_(True))
        assert_that(is_loopback('studio.local'), is_(False))


def monitor():
    """ A helper function to monitor the network for consoles. Useful as a manual check. """
    from uaconsole.support.events import SerialDispatcher
    logging.basicConfig(level=logging.INFO)
    discovery = ServerDiscovery(dispatcher=SerialDispatcher())
    discovery.listeners += lambda event: print(event)
    discovery.start_scan()
    while discovery.scanning:
        time.sleep(0.5)
    discovery.dispatcher.close()


if __name__ == '__main__':
    monitor()
