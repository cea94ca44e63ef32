import logging
import threading

from uaconsole import settings
from uaconsole.connector.base import CONNECTED, CONNECTING, DISCONNECTED, ConnectionListener, ConnectorError, \
    retrying
from uaconsole.connector.socketconn import ConnectionHandler, SocketConnection, TCPServerEndpoint
from uaconsole.protocol.commands import encode, get_command, set_command, subscribe_command
from uaconsole.protocol.decoder import decode
from uaconsole.protocol.framing import Framer
from uaconsole.reconnect import ReconnectPolicy
from uaconsole.support.async_loop import AsyncLoop
from uaconsole.support.events import Dispatcher, SerialDispatcher

logger = logging.getLogger(__name__)


class KeepAliveLoop(AsyncLoop):
    """
    Calls fn every interval seconds on a background thread until stopped.
    """
    def __init__(self, interval, fn, name=None):
        super().__init__(fn, name=name)
        self.interval = interval

    def loop(self):
        if not self.stop_event.wait(self.interval):
            self.fn(*self.args)


class ConnectionManager(ConnectionHandler):
    """
    Maintains the connection to one console endpoint.

    connect() opens a new connection, replacing any current one. Responses are decoded and delivered to
    the listener as protocol events. When the connection fails, the listener is told, and a reconnect
    is scheduled with a backoff, unless disconnect() was called.

    Each connection is tagged with a generation number. Callbacks from a connection whose generation is
    no longer current are ignored, and listener notifications are checked again at delivery time,
    so nothing from a replaced connection reaches the listener after connect() or disconnect().

    All notifications are delivered through the dispatcher, which defaults to a single dedicated
    thread.

    :param listener: the ConnectionListener notified of events and state changes
    :param dispatcher: the delivery context for listener notifications
    :param reconnect_policy: schedules reconnect attempts
    :param connection_factory: creates a connection given (endpoint, generation, handler)
    """
    def __init__(self, listener: ConnectionListener, endpoint: TCPServerEndpoint=None,
                 dispatcher: Dispatcher=None, reconnect_policy: ReconnectPolicy=None,
                 connection_factory=SocketConnection, keep_alive_interval=None, keep_alive_path=None,
                 log=logger):
        self.listener = listener
        self._owns_dispatcher = dispatcher is None
        self.dispatcher = SerialDispatcher() if dispatcher is None else dispatcher
        self.reconnect_policy = ReconnectPolicy() if reconnect_policy is None else reconnect_policy
        self.connection_factory = connection_factory
        self.keep_alive_interval = settings.keep_alive_interval if keep_alive_interval is None \
            else keep_alive_interval
        self.keep_alive_path = settings.keep_alive_path if keep_alive_path is None else keep_alive_path
        self.logger = log
        self._lock = threading.RLock()
        self._endpoint = endpoint
        self._generation = 0
        self._connection = None
        self._keep_alive = None
        self._framer = Framer()
        self._state = DISCONNECTED

    @property
    def endpoint(self):
        return self._endpoint

    @property
    def generation(self):
        return self._generation

    @property
    def state(self):
        return self._state

    @property
    def connected(self):
        return self._state == CONNECTED

    @property
    def intentional_disconnect(self):
        return self.reconnect_policy.suppressed

    # connection lifecycle

    def connect(self, endpoint: TCPServerEndpoint=None):
        """
        Opens a connection to the endpoint, or to the last endpoint when not given.
        Returns immediately; the outcome is reported to the listener.
        """
        self._connect(endpoint)

    def _connect(self, endpoint=None, expected_generation=None):
        self.reconnect_policy.cancel()
        with self._lock:
            if expected_generation is not None and expected_generation != self._generation:
                return      # superseded while the reconnect was pending
            if endpoint is not None:
                self._endpoint = endpoint
            endpoint = self._endpoint
            if endpoint is None:
                raise ConnectorError("no endpoint to connect to")
            self._generation += 1
            generation = self._generation
            previous = self._detach()
            self.reconnect_policy.suppressed = False
            self._state = CONNECTING
            connection = self._connection = self.connection_factory(endpoint, generation, self)

        self._release(*previous)
        self.logger.info("connecting to %s" % endpoint)
        self._notify(generation, self.listener.status_changed, False, "Connecting to %s..." % endpoint)
        self._notify(generation, self.listener.state_changed, CONNECTING)
        connection.start()

    def disconnect(self):
        """
        Closes the connection and stops reconnecting. No further notifications are delivered
        for the closed connection.
        """
        self.reconnect_policy.suppressed = True
        self.reconnect_policy.cancel()
        with self._lock:
            self._generation += 1
            generation = self._generation
            previous = self._detach()
            was_disconnected = self._state == DISCONNECTED
            self._state = DISCONNECTED

        connection = previous[0]
        self._release(*previous)
        if connection is not None:
            self.logger.info("disconnected from %s" % connection.endpoint)
        if not was_disconnected:
            self._notify(generation, self.listener.status_changed, False, "Disconnected")
            self._notify(generation, self.listener.state_changed, DISCONNECTED)

    def reconnect(self):
        """ a manual retry, which starts the backoff over. """
        self.reconnect_policy.reset_counter()
        self.connect()

    def close(self):
        """ disconnects, and stops the dispatcher if this manager created it. """
        self.disconnect()
        if self._owns_dispatcher:
            self.dispatcher.close()

    def _detach(self):
        """ detaches the current connection and keep-alive. Called with the lock held. """
        connection, self._connection = self._connection, None
        keep_alive, self._keep_alive = self._keep_alive, None
        self._framer.reset()
        return connection, keep_alive

    @staticmethod
    def _release(connection, keep_alive):
        if keep_alive is not None:
            keep_alive.stop(wait=False)
        if connection is not None:
            connection.close()

    def _is_current(self, connection):
        return connection is self._connection and connection.generation == self._generation

    # commands

    def send(self, command: str):
        """
        Queues a command for the connection's writer and returns without waiting for the write.
        A write that fails later goes through connection_failed.
        :return: True if the command was queued. Commands are dropped while not connected.
        """
        with self._lock:
            connection = self._connection
            connected = self._state == CONNECTED
        if connection is None or not connected:
            self.logger.debug("not connected, dropping '%s'" % command)
            return False
        try:
            connection.send(encode(command))
        except ConnectorError as e:
            self.connection_failed(connection, "Send failed: %s" % e)
            return False
        self.logger.debug("queued '%s'" % command)
        return True

    def get(self, path):
        return self.send(get_command(path))

    def set(self, path, value):
        return self.send(set_command(path, value))

    def subscribe(self, path):
        return self.send(subscribe_command(path))

    # ConnectionHandler callbacks, called on the connection's thread

    def connection_ready(self, connection):
        with self._lock:
            if not self._is_current(connection):
                return
            generation = connection.generation
            self._state = CONNECTED
            self.reconnect_policy.reset_counter()
            keep_alive = None
            if self.keep_alive_interval and self.keep_alive_interval > 0:
                keep_alive = self._keep_alive = KeepAliveLoop(
                    self.keep_alive_interval, lambda: self._keep_alive_tick(generation),
                    name="uaconsole-keepalive-%d" % generation)

        self.logger.info("connected to %s" % connection.endpoint)
        self._notify(generation, self.listener.status_changed, True,
                     "Connected to %s" % connection.endpoint.address)
        self._notify(generation, self.listener.state_changed, CONNECTED)
        if keep_alive is not None:
            keep_alive.start()

    def _keep_alive_tick(self, generation):
        with self._lock:
            if generation != self._generation or self._state != CONNECTED:
                return
        self.get(self.keep_alive_path)

    def data_received(self, connection, data: bytes):
        with self._lock:
            if not self._is_current(connection):
                return
            messages = self._framer.feed(data)

        generation = connection.generation
        for message in messages:
            if not message:
                continue
            self.logger.debug("received %r" % message[:128])
            for event in decode(message):
                self._notify(generation, self.listener.protocol_event, event)

    def connection_failed(self, connection, message: str):
        """
        The failure path for connect, read and write errors, and the peer closing the connection.
        Runs at most once for each connection.
        """
        with self._lock:
            if not self._is_current(connection):
                return
            generation = connection.generation
            was_connected = self._state == CONNECTED
            previous = self._detach()
            self._state = DISCONNECTED

        self._release(*previous)
        if was_connected:
            self.logger.info("connection to %s lost: %s" % (connection.endpoint, message))
            self._notify(generation, self.listener.disconnected)
        else:
            self.logger.debug("connection to %s failed: %s" % (connection.endpoint, message))
        self._notify(generation, self.listener.status_changed, False, message)
        self._notify(generation, self.listener.state_changed, DISCONNECTED)
        self._schedule_reconnect(generation)

    def _schedule_reconnect(self, generation):
        with self._lock:
            if generation != self._generation:
                return
            scheduled = self.reconnect_policy.schedule_retry(lambda: self._connect(expected_generation=generation))
            if scheduled is None:
                return
            attempt, delay = scheduled
            state = self._state = retrying(attempt)

        self._notify(generation, self.listener.state_changed, state)
        self._notify(generation, self.listener.status_changed, False,
                     "Retrying in %ds... (attempt %d)" % (delay, attempt))

    # delivery

    def _notify(self, generation, fn, *args):
        self.dispatcher.dispatch(self._deliver, generation, fn, args)

    def _deliver(self, generation, fn, args):
        with self._lock:
            current = generation == self._generation
        if current:
            fn(*args)
