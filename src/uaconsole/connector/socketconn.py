import logging
import queue
import socket
import threading

from uaconsole import settings
from uaconsole.connector.base import ConnectionNotConnectedError
from uaconsole.support.async_loop import AsyncLoop
from uaconsole.support.mixins import ValueObjectMixin

logger = logging.getLogger(__name__)

local_addresses = ('127.0.0.1', '::1', 'localhost')


class TCPServerEndpoint(ValueObjectMixin):
    """
    Describes a TCP server endpoint. Two endpoints are the same when both address and port match.
    """
    def __init__(self, address, port=None):
        self.address = address
        self.port = int(settings.port if port is None else port)

    @property
    def is_local(self):
        """
        >>> TCPServerEndpoint('127.0.0.1').is_local
        True
        >>> TCPServerEndpoint('192.168.1.20').is_local
        False
        """
        return self.address in local_addresses

    def key(self):
        """
        >>> TCPServerEndpoint('ipaddr', 55).key()
        'ipaddr:55'
        """
        return str(self.address) + ':' + str(self.port)

    def __str__(self):
        return self.key()


class ConnectionHandler:
    """ Receives the lifecycle of a SocketConnection on its background thread. """

    def connection_ready(self, connection):
        pass

    def data_received(self, connection, data: bytes):
        pass

    def connection_failed(self, connection, message: str):
        pass


class SocketWriter(AsyncLoop):
    """
    Writes the data queued for a connection to its socket, on a second background thread.
    A failed write is reported as a failure of the connection.
    """
    def __init__(self, connection, log=logger):
        super().__init__(log=log, name=connection.name + "-writer")
        self.connection = connection
        self.outbox = queue.Queue()

    def put(self, data: bytes):
        self.outbox.put(data)

    def loop(self):
        data = self.outbox.get()
        sock = self.connection.sock
        if data is None or sock is None:
            self.stop_event.set()
            return
        sock.sendall(data)

    def exception_handler(self, e):
        if not isinstance(e, OSError):
            super().exception_handler(e)
        self.connection._fail("Send failed: %s" % e)

    def close(self):
        """ stops the writer, waking it when it waits for data. Data still queued is dropped. """
        self.stop(wait=False)
        self.outbox.put(None)


class SocketConnection(AsyncLoop):
    """
    A connection to a console endpoint, run on its own background thread.

    The thread opens the socket, then reads from it until it fails or is closed. Writes are queued
    to a SocketWriter, so send() never blocks the caller. Each connection carries the generation it
    was created for, which lets the owner discard callbacks from connections it has since replaced.

    :param endpoint: the TCPServerEndpoint to connect to
    :param generation: the owner's tag for this connection
    :param handler: a ConnectionHandler notified from the background thread
    """
    def __init__(self, endpoint: TCPServerEndpoint, generation, handler: ConnectionHandler,
                 connect_timeout=None, read_size=None, log=logger):
        super().__init__(log=log, name="uaconsole-socket-%s-%d" % (endpoint.key(), generation))
        self.endpoint = endpoint
        self.generation = generation
        self.handler = handler
        self.connect_timeout = settings.connect_timeout if connect_timeout is None else connect_timeout
        self.read_size = settings.read_size if read_size is None else read_size
        self.sock = None
        self._lock = threading.Lock()
        self.writer = SocketWriter(self, log=log)

    def startup(self):
        endpoint = self.endpoint
        try:
            family, type_, proto, _, address = socket.getaddrinfo(
                endpoint.address, endpoint.port, type=socket.SOCK_STREAM)[0]
        except OSError as e:
            self._fail("Unable to resolve %s: %s" % (endpoint.address, e))
            return

        sock = socket.socket(family, type_, proto)
        with self._lock:
            if not self.running():
                sock.close()
                return
            self.sock = sock

        try:
            sock.settimeout(self.connect_timeout)
            sock.connect(address)
            sock.settimeout(None)
        except socket.timeout:
            self._fail("Console not reachable on %s" % endpoint)
            return
        except OSError as e:
            self.logger.warning("error opening socket to %s: %s" % (endpoint, e))
            self._fail("Connection to %s failed. Is the mixer engine running?" % endpoint)
            return

        if self.running():
            self.logger.info("opened socket to %s" % endpoint)
            self.writer.start()
            self.handler.connection_ready(self)

    def loop(self):
        sock = self.sock
        if sock is None:    # closed
            self.stop_event.set()
            return
        try:
            data = sock.recv(self.read_size)
        except OSError as e:
            self._fail("Connection lost: %s" % e)
            return
        if not data:
            self._fail("Connection closed by %s" % self.endpoint)
            return
        self.handler.data_received(self, data)

    def shutdown(self):
        self.close()

    def exception_handler(self, e):
        super().exception_handler(e)
        self._fail("Connection error: %s" % e)

    def _fail(self, message):
        """ stops the loop and reports the failure, unless the connection was closed already. """
        if not self.running():
            return
        self.stop_event.set()
        self.handler.connection_failed(self, message)

    def send(self, data: bytes):
        """
        Queues data for the writer and returns without waiting for it to be written.
        A write that fails later is reported through connection_failed.
        raises ConnectionNotConnectedError when the connection is not open
        """
        writer = self.writer
        if not self.running() or writer.background_thread is None or not writer.running():
            raise ConnectionNotConnectedError("not connected to %s" % self.endpoint)
        writer.put(data)

    def close(self):
        """
        Stops the connection and releases the socket. Returns without waiting
        for the background thread. Calling close() again has no effect.
        """
        self.stop_event.set()
        self.writer.close()
        with self._lock:
            sock = self.sock
            self.sock = None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass    # the peer may have closed the socket
            finally:
                sock.close()
