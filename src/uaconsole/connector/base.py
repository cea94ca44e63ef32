from uaconsole.support.mixins import ValueObjectMixin


class ConnectorError(Exception):
    """ Indicates an error condition with a connection. """


class ConnectionNotConnectedError(ConnectorError):
    """ Indicates a connection is in the disconnected state when a connection is required. """


class ConnectionState(ValueObjectMixin):
    """
    The lifecycle state of a connection to a console.
    attempt is the reconnect attempt, and is only meaningful when retrying.
    """
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    RETRYING = 'retrying'
    CONNECTED = 'connected'
    ENUMERATING = 'enumerating'

    def __init__(self, name, attempt=0):
        self.name = name
        self.attempt = attempt

    @property
    def is_connected(self):
        """ enumeration happens on an open connection. """
        return self.name in (ConnectionState.CONNECTED, ConnectionState.ENUMERATING)

    def __str__(self):
        return self.name if self.name != ConnectionState.RETRYING else "%s(%d)" % (self.name, self.attempt)


DISCONNECTED = ConnectionState(ConnectionState.DISCONNECTED)
CONNECTING = ConnectionState(ConnectionState.CONNECTING)
CONNECTED = ConnectionState(ConnectionState.CONNECTED)
ENUMERATING = ConnectionState(ConnectionState.ENUMERATING)


def retrying(attempt):
    return ConnectionState(ConnectionState.RETRYING, attempt)


class ConnectionListener:
    """
    Receives the notifications of a connection. All methods are called on the
    connection's delivery context. The defaults do nothing.
    """

    def protocol_event(self, event):
        """ a response decoded from the console. """

    def status_changed(self, connected: bool, message: str):
        """ a human-readable description of the connection status. """

    def state_changed(self, state: ConnectionState):
        """ the connection moved to a new state. """

    def disconnected(self):
        """ an established connection was lost. Sent before the corresponding status_changed. """


class StateSink:
    """ Receives snapshots of application state. """

    def publish(self, state):
        raise NotImplementedError
