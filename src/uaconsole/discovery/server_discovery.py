import ipaddress
import logging
import socket
import threading

from zeroconf import ServiceBrowser, Zeroconf

from uaconsole import settings
from uaconsole.connector.socketconn import TCPServerEndpoint
from uaconsole.support.events import Dispatcher, EventSource, SerialDispatcher
from uaconsole.support.mixins import ValueObjectMixin

logger = logging.getLogger(__name__)


class DiscoveredHost(ValueObjectMixin):
    """ A console found on the network, with the name it advertises. """
    def __init__(self, endpoint: TCPServerEndpoint, display_name):
        self.endpoint = endpoint
        self.display_name = display_name

    @property
    def address(self):
        return self.endpoint.address

    @property
    def port(self):
        return self.endpoint.port


class DiscoveryEvent(ValueObjectMixin):
    def __init__(self, source):
        self.source = source


class HostDiscoveredEvent(DiscoveryEvent):
    """ A new host was added to the discovered hosts. """
    def __init__(self, source, host: DiscoveredHost):
        super().__init__(source)
        self.host = host


class ScanStateEvent(DiscoveryEvent):
    """ A scan started or stopped. """
    def __init__(self, source, scanning):
        super().__init__(source)
        self.scanning = scanning


def is_loopback(address):
    """
    >>> is_loopback('127.0.0.1'), is_loopback('::1'), is_loopback('192.168.1.2')
    (True, True, False)
    """
    try:
        return ipaddress.ip_address(address.split('%')[0]).is_loopback
    except ValueError:
        return address == 'localhost'


class ServiceResolver:
    """
    Resolves an advertised service to the address a connection to it actually uses.
    The advertisement only names candidate addresses, so each is tried with a short-lived connection.
    """
    def __init__(self, timeout=None):
        self.timeout = settings.resolve_timeout if timeout is None else timeout

    def service_info(self, zeroconf, svc_type, svc_name):
        """ fetches the advertised addresses and port, or None if the service did not answer. """
        return zeroconf.get_service_info(svc_type, svc_name, timeout=int(self.timeout * 1000))

    def socket_for(self, address, port):
        """
        creates an unconnected socket for the candidate, so it can be closed while connecting.
        :return: the socket and the address to connect it to. The caller closes the socket.
        """
        family, type_, proto, _, sockaddr = socket.getaddrinfo(address, port, 0, socket.SOCK_STREAM)[0]
        sock = socket.socket(family, type_, proto)
        sock.settimeout(self.timeout)
        return sock, sockaddr

    @staticmethod
    def connect(sock, sockaddr):
        sock.connect(sockaddr)

    @staticmethod
    def remote_address(sock):
        return sock.getpeername()[0]


class _ScanListener:
    """ Forwards the browser's notifications for one scan session. """
    def __init__(self, discovery, session):
        self.discovery = discovery
        self.session = session

    def add_service(self, zeroconf, svc_type, name):
        self.discovery.service_added(self.session, zeroconf, svc_type, name)

    def update_service(self, zeroconf, svc_type, name):
        self.discovery.service_added(self.session, zeroconf, svc_type, name)

    def remove_service(self, zeroconf, svc_type, name):
        logger.debug("service removed: %s" % name)


class ServerDiscovery:
    """
    Uses zeroconf to discover mixer engines on the local network.

    A scan browses for the service type, resolves each advertised service to the address it is
    reached on, and collects the hosts, one per address. Loopback hosts are skipped since the local
    engine is reached directly. A scan stops by itself after scan_timeout seconds.

    Resolution happens on short-lived background threads. Every scan has a session number, and
    results for a session other than the current one are discarded, so nothing from a stopped
    scan changes the discovered hosts.

    listeners receive HostDiscoveredEvent and ScanStateEvent instances through the dispatcher.
    """
    def __init__(self, service_type=None, scan_timeout=None, dispatcher: Dispatcher=None,
                 resolver: ServiceResolver=None, zeroconf_factory=Zeroconf, browser_factory=ServiceBrowser,
                 timer_factory=threading.Timer, log=logger):
        """
        :param service_type: the service subtype, qualified with the TCP and local supertypes
        :param scan_timeout: seconds before a scan stops itself
        """
        self.service_type = self.qualify_service_type(service_type or settings.service_type)
        self.scan_timeout = settings.scan_timeout if scan_timeout is None else scan_timeout
        self.dispatcher = SerialDispatcher("uaconsole-discovery") if dispatcher is None else dispatcher
        self.resolver = ServiceResolver() if resolver is None else resolver
        self.zeroconf_factory = zeroconf_factory
        self.browser_factory = browser_factory
        self.timer_factory = timer_factory
        self.logger = log
        self.listeners = EventSource()
        self._lock = threading.RLock()
        self._session = 0
        self._epoch = 0
        self._scanning = False
        self._hosts = []
        self._zeroconf = None
        self._browser = None
        self._timer = None
        self._resolving = []

    @staticmethod
    def qualify_service_type(service_subtype):
        """
        >>> ServerDiscovery.qualify_service_type("uamixer")
        '_uamixer._tcp.local.'
        """
        return "_" + service_subtype + "._tcp.local."

    @property
    def discovered_hosts(self):
        with self._lock:
            return tuple(self._hosts)

    @property
    def scanning(self):
        return self._scanning

    def start_scan(self):
        """
        Starts a new scan, stopping any scan in progress and forgetting the hosts it found.
        When the scan cannot be started, the failure is logged and nothing is left running.
        :return: True if the scan started
        """
        self.stop_scan()
        zeroconf = browser = None
        failure = None
        with self._lock:
            self._session += 1
            self._epoch += 1
            session = self._session
            epoch = self._epoch
            self._hosts = []
            try:
                zeroconf = self.zeroconf_factory()
                browser = self.browser_factory(zeroconf, self.service_type, _ScanListener(self, session))
                timer = self.timer_factory(self.scan_timeout, lambda: self._scan_expired(session))
                timer.daemon = True
                timer.start()
            except Exception as e:
                failure = e
                self._session += 1
            else:
                self._zeroconf = zeroconf
                self._browser = browser
                self._timer = timer
                self._scanning = True
        if failure is not None:
            self.logger.warning("unable to scan for services of type %s: %s" % (self.service_type, failure))
            self._release(None, browser, zeroconf)
            return False
        self.logger.info("scanning for services of type %s" % self.service_type)
        self._notify(epoch, ScanStateEvent(self, True))
        return True

    def stop_scan(self):
        """
        Stops the scan in progress, closing the browser and any resolve connections.
        Does nothing if no scan is in progress. The hosts found so far are kept.
        """
        with self._lock:
            was_scanning = self._scanning
            self._session += 1
            epoch = self._epoch
            self._scanning = False
            timer, self._timer = self._timer, None
            browser, self._browser = self._browser, None
            zeroconf, self._zeroconf = self._zeroconf, None
            resolving, self._resolving = self._resolving, []

        self._release(timer, browser, zeroconf)
        for sock in resolving:
            self._close_socket(sock)
        if was_scanning:
            self.logger.info("scan stopped, %d host(s) found" % len(self.discovered_hosts))
            self._notify(epoch, ScanStateEvent(self, False))

    @staticmethod
    def _release(timer, browser, zeroconf):
        if timer is not None:
            timer.cancel()
        if browser is not None:
            browser.cancel()
        if zeroconf is not None:
            zeroconf.close()

    def _scan_expired(self, session):
        with self._lock:
            if session != self._session:
                return
        self.logger.debug("scan timed out after %ss" % self.scan_timeout)
        self.stop_scan()

    def _is_current(self, session):
        return session == self._session and self._scanning

    # resolution

    def service_added(self, session, zeroconf, svc_type, name):
        """ notification from the service browser that a service was advertised. """
        with self._lock:
            if not self._is_current(session):
                return
        self.logger.info("service available: %s" % name)
        thread = threading.Thread(target=self._resolve, args=(session, zeroconf, svc_type, name),
                                  name="uaconsole-resolve", daemon=True)
        thread.start()

    def _resolve(self, session, zeroconf, svc_type, name):
        try:
            info = self.resolver.service_info(zeroconf, svc_type, name)
        except Exception as e:
            self.logger.debug("unable to fetch info for %s: %s" % (name, e))
            return
        if not info:
            self.logger.warning("no info for service %s type %s" % (name, svc_type))
            return
        display_name = self.display_name(name, svc_type)
        for address in info.parsed_addresses():
            if not self._is_current(session):
                return
            remote = self._resolve_address(session, address, info.port)
            if remote is not None:
                self.host_resolved(session, DiscoveredHost(TCPServerEndpoint(remote, info.port), display_name))
                return

    def _resolve_address(self, session, address, port):
        """
        connects to one candidate address, and returns the remote address of the connection.
        The socket is registered before connecting, so stopping the scan closes it mid-connect.
        """
        try:
            sock, sockaddr = self.resolver.socket_for(address, port)
        except OSError as e:
            self.logger.debug("unable to resolve %s:%s: %s" % (address, port, e))
            return None
        with self._lock:
            current = self._is_current(session)
            if current:
                self._resolving.append(sock)
        try:
            if not current:
                return None
            self.resolver.connect(sock, sockaddr)
            return self.resolver.remote_address(sock)
        except OSError as e:
            self.logger.debug("unable to reach %s:%s: %s" % (address, port, e))
            return None
        finally:
            with self._lock:
                if sock in self._resolving:
                    self._resolving.remove(sock)
            self._close_socket(sock)

    @staticmethod
    def display_name(name, svc_type):
        """
        >>> ServerDiscovery.display_name("Studio._uamixer._tcp.local.", "_uamixer._tcp.local.")
        'Studio'
        """
        suffix = "." + svc_type
        return name[:-len(suffix)] if name.endswith(suffix) else name

    def host_resolved(self, session, host: DiscoveredHost):
        """
        Adds a resolved host, unless it is loopback, already known by address, or from a stale session.
        :return: True if the host was added
        """
        if is_loopback(host.address):
            self.logger.debug("skipping loopback host %s" % host.display_name)
            return False
        with self._lock:
            if not self._is_current(session):
                return False
            if any(h.address == host.address for h in self._hosts):
                return False
            self._hosts.append(host)
            epoch = self._epoch
        self.logger.info("discovered %s at %s" % (host.display_name, host.endpoint))
        self._notify(epoch, HostDiscoveredEvent(self, host))
        return True

    @staticmethod
    def _close_socket(sock):
        try:
            sock.close()
        except OSError:
            pass

    def _notify(self, epoch, event):
        self.dispatcher.dispatch(self._deliver, epoch, event)

    def _deliver(self, epoch, event):
        if epoch == self._epoch:
            self.listeners.fire(event)
