"""
Monitor control for a console output: level, mute, dim and mono.

MonitorController listens to a ConnectionManager. Once connected it enumerates the devices on
the console and the outputs of the selected device, then subscribes to the monitor properties of
the selected output. Every change is published as a MonitorState snapshot to a StateSink.
"""
import logging
import threading

from uaconsole import settings
from uaconsole.connection_manager import ConnectionManager
from uaconsole.connector.base import CONNECTED, DISCONNECTED, ENUMERATING, ConnectionListener, ConnectionState, \
    StateSink
from uaconsole.connector.socketconn import TCPServerEndpoint
from uaconsole.protocol.decoder import property_name
from uaconsole.protocol.responses import BoolValue, ChildList, NumericValue, PropertyValue, StringValue
from uaconsole.support.mixins import ValueObjectMixin

logger = logging.getLogger(__name__)

LEVEL = 'CRMonitorLevel'
MUTE = 'Mute'
DIM = 'DimOn'
MONO = 'MixToMono'
monitor_properties = (LEVEL, MUTE, DIM, MONO)

DEVICE_NAME = 'DeviceName'
DEVICE_ONLINE = 'DeviceOnline'
OUTPUT_NAME = 'Name'

devices_path = '/devices'

min_db = -96.0
max_db = 0.0


def volume_to_db(volume):
    """
    Converts a volume from 0 to 100 to dB. The range maps linearly onto -60..0 dB, except 0, which
    is fully attenuated.
    >>> volume_to_db(100), volume_to_db(50), volume_to_db(0)
    (0.0, -30.0, -96.0)
    """
    if volume <= 0:
        return min_db
    return (min(volume, 100) / 100.0) * 60.0 - 60.0


def db_to_volume(db):
    """
    >>> db_to_volume(0), db_to_volume(-30), db_to_volume(-90)
    (100.0, 50.0, 0.0)
    """
    if db <= -90:
        return 0.0
    return max(0.0, min(100.0, ((db + 60.0) / 60.0) * 100.0))


def format_db(db):
    """
    >>> format_db(-24), format_db(-60)
    ('-24.0', '-inf')
    """
    return "-inf" if db <= -59 else "%.1f" % db


def parent_path(path):
    return path.rsplit('/', 1)[0]


def locate_property(event: PropertyValue):
    """
    The path of the object owning a property, and the property name. Values arrive either as a named
    property of the owner, or at the property's own path, optionally followed by /value.

    >>> locate_property(BoolValue("/devices/0/outputs/4", "Mute", True))
    ('/devices/0/outputs/4', 'Mute')
    >>> locate_property(NumericValue("/devices/0/outputs/4/CRMonitorLevel/value", "value", -20))
    ('/devices/0/outputs/4', 'CRMonitorLevel')
    """
    path = event.path.rstrip('/')
    name = event.property
    if name == 'value':
        if property_name(path) == 'value':
            path = parent_path(path)
        name = property_name(path)
    if property_name(path) == name:
        path = parent_path(path)
    return path, name


def device_path(device_id):
    return "%s/%s" % (devices_path, device_id)


def outputs_path(device_id):
    return device_path(device_id) + "/outputs"


def output_path(device_id, output_id):
    return "%s/%s" % (outputs_path(device_id), output_id)


class Device(ValueObjectMixin):
    """ A device on the console, with its name and online flag once they arrive. """
    def __init__(self, id, name=None, online=False):
        self.id = id
        self.name = name or "Unknown Device"
        self.online = online


class Output(ValueObjectMixin):
    def __init__(self, id, name=None):
        """
        >>> Output('4').name, Output('4', "Monitor").name
        ('Output 4', 'Monitor')
        """
        self.id = id
        self.name = name or "Output %s" % id


def merge_items(known, ids, factory):
    """ the items for ids, in order, keeping the known items and creating the others. """
    by_id = {item.id: item for item in known}
    return tuple(by_id[i] if i in by_id else factory(i) for i in ids)


def replace_item(items, item_id, **changes):
    """ replaces the item with the given id by a copy including the changes. """
    return tuple(type(item)(**dict(vars(item), **changes)) if item.id == item_id else item for item in items)


def find_item(items, item_id):
    return next((item for item in items if item.id == item_id), None)


class MonitorState(ValueObjectMixin):
    """
    A snapshot of the monitor controls and the connection.
    devices and outputs hold Device and Output instances, in console order.
    """
    def __init__(self, level_db=-30.0, muted=False, dimmed=False, mono=False, connected=False,
                 status_message="", connection_state=DISCONNECTED, host=None,
                 devices=(), device_id=None, outputs=(), output_id=None):
        self.level_db = level_db
        self.muted = muted
        self.dimmed = dimmed
        self.mono = mono
        self.connected = connected
        self.status_message = status_message
        self.connection_state = connection_state
        self.host = host
        self.devices = tuple(devices)
        self.device_id = device_id
        self.outputs = tuple(outputs)
        self.output_id = output_id

    @property
    def device(self):
        return find_item(self.devices, self.device_id)

    @property
    def output(self):
        return find_item(self.outputs, self.output_id)

    @property
    def volume(self):
        return db_to_volume(self.level_db)

    @property
    def volume_display(self):
        return format_db(self.level_db)

    def as_dict(self):
        """ the snapshot as flat key-value pairs. """
        return {
            'level_db': self.level_db,
            'volume': round(self.volume, 1),
            'volume_display': self.volume_display,
            'muted': self.muted,
            'dimmed': self.dimmed,
            'mono': self.mono,
            'connected': self.connected,
            'status_message': self.status_message,
            'connection_state': str(self.connection_state),
            'host': self.host or '',
            'devices': [device.id for device in self.devices],
            'device_names': [device.name for device in self.devices],
            'device_id': self.device_id or '',
            'outputs': [output.id for output in self.outputs],
            'output_names': [output.name for output in self.outputs],
            'output_id': self.output_id or '',
            'output_name': self.output.name if self.output else '',
        }


class MonitorController(ConnectionListener):
    """
    Tracks and controls the monitor output of one console.

    :param connection: the ConnectionManager to the console. When not given, one is created with this
        controller as its listener and manager_args as further arguments.
    :param state_sink: receives a MonitorState snapshot after every change
    :param engine_launcher: called once, without arguments, when a local endpoint fails before ever
        connecting, unless it was disconnected deliberately. Starting the engine is left to the caller.
    """
    def __init__(self, connection: ConnectionManager=None, state_sink: StateSink=None, engine_launcher=None,
                 volume_step=None, log=logger, **manager_args):
        self.connection = connection if connection is not None else ConnectionManager(self, **manager_args)
        self.state_sink = state_sink
        self.engine_launcher = engine_launcher
        self.volume_step = settings.volume_step if volume_step is None else volume_step
        self.logger = log
        self._lock = threading.RLock()
        self._state = MonitorState()
        self._ever_connected = False
        self._launched = False

    @property
    def state(self) -> MonitorState:
        return self._state

    def _update(self, **changes):
        """ replaces the snapshot with one including the changes, and publishes it. """
        with self._lock:
            values = dict(self._state.__dict__)
            values.update(changes)
            state = self._state = MonitorState(**values)
        if self.state_sink is not None:
            self.state_sink.publish(state)
        return state

    # connection

    def connect(self, endpoint: TCPServerEndpoint=None):
        if endpoint is not None:
            self._update(host=endpoint.key())
        self.connection.connect(endpoint)

    def disconnect(self):
        self.connection.disconnect()

    def reconnect(self):
        self.connection.reconnect()

    # ConnectionListener

    def status_changed(self, connected, message):
        self._update(connected=connected, status_message=message)

    def state_changed(self, state: ConnectionState):
        if state == CONNECTED:
            self._ever_connected = True
            self._update(connection_state=ENUMERATING)
            self.connection.get(devices_path)
            return
        self._update(connection_state=state)
        if state == DISCONNECTED and not self.connection.intentional_disconnect:
            self._maybe_launch_engine()

    def disconnected(self):
        self.logger.info("lost connection to %s" % self._state.host)

    def protocol_event(self, event):
        if isinstance(event, ChildList):
            self._children(event)
        elif isinstance(event, PropertyValue):
            self._property(event)

    def _maybe_launch_engine(self):
        endpoint = self.connection.endpoint
        if self.engine_launcher is None or self._launched or self._ever_connected:
            return
        if endpoint is not None and endpoint.is_local:
            self._launched = True
            self.logger.info("local engine not reachable, launching it")
            self.engine_launcher()

    # enumeration

    def _children(self, event: ChildList):
        path = event.path.rstrip('/')
        state = self._state
        if path == devices_path:
            device_id = state.device_id if state.device_id in event.ids else next(iter(event.ids), None)
            changed = device_id != state.device_id
            self._update(devices=merge_items(state.devices, event.ids, Device), device_id=device_id)
            self._describe_devices([i for i in event.ids if find_item(state.devices, i) is None])
            if device_id is not None and (changed or state.connection_state == ENUMERATING):
                self._enumerate_outputs(device_id)
        elif state.device_id is not None and path == outputs_path(state.device_id):
            output_id = state.output_id if state.output_id in event.ids else next(iter(event.ids), None)
            self._update(outputs=merge_items(state.outputs, event.ids, Output), output_id=output_id)
            for i in event.ids:
                if find_item(state.outputs, i) is None:
                    self.connection.get("%s/%s" % (output_path(state.device_id, i), OUTPUT_NAME))
            if output_id is not None:
                self._watch_output()

    def _describe_devices(self, device_ids):
        for device_id in device_ids:
            path = device_path(device_id)
            self.connection.get("%s/%s" % (path, DEVICE_NAME))
            self.connection.subscribe("%s/%s" % (path, DEVICE_ONLINE))
            self.connection.get("%s/%s" % (path, DEVICE_ONLINE))

    def _enumerate_outputs(self, device_id):
        self._update(connection_state=ENUMERATING)
        self.connection.get(outputs_path(device_id))

    def _watch_output(self):
        for name in monitor_properties:
            path = self._property_path(name)
            self.connection.subscribe(path)
            self.connection.get(path)
        if self._state.connection_state == ENUMERATING:
            self._update(connection_state=CONNECTED)

    def select_device(self, device_id):
        self._update(device_id=device_id, outputs=(), output_id=None)
        if self.connection.connected:
            self._enumerate_outputs(device_id)

    def select_output(self, output_id):
        self._update(output_id=output_id)
        if self.connection.connected:
            self._watch_output()

    def _property_path(self, name):
        state = self._state
        if state.device_id is None or state.output_id is None:
            return None
        return "%s/%s" % (output_path(state.device_id, state.output_id), name)

    # values

    def _property(self, event: PropertyValue):
        path, name = locate_property(event)
        state = self._state
        if name in (DEVICE_NAME, DEVICE_ONLINE, OUTPUT_NAME):
            self._description(path, name, event)
            return
        if state.device_id is None or state.output_id is None or \
                path != output_path(state.device_id, state.output_id):
            return
        if name == LEVEL and isinstance(event, NumericValue):
            self._update(level_db=event.value)
        elif name in (MUTE, DIM, MONO) and isinstance(event, (BoolValue, NumericValue)):
            flag = bool(event.value)
            field = {MUTE: 'muted', DIM: 'dimmed', MONO: 'mono'}[name]
            self._update(**{field: flag})

    def _description(self, path, name, event: PropertyValue):
        """ names and online flags of the devices, and names of the selected device's outputs. """
        state = self._state
        item_id = property_name(path)
        of_device = path == device_path(item_id)
        if name == DEVICE_NAME and of_device and isinstance(event, StringValue):
            self._update(devices=replace_item(state.devices, item_id, name=event.value))
        elif name == DEVICE_ONLINE and of_device and isinstance(event, (BoolValue, NumericValue)):
            self._update(devices=replace_item(state.devices, item_id, online=bool(event.value)))
        elif name == OUTPUT_NAME and isinstance(event, StringValue) and state.device_id is not None and \
                path == output_path(state.device_id, item_id):
            self._update(outputs=replace_item(state.outputs, item_id, name=event.value))

    # commands

    def _set(self, name, value):
        path = self._property_path(name)
        if path is None:
            self.logger.debug("no output selected, not setting %s" % name)
            return False
        return self.connection.set(path, value)

    def set_level(self, db):
        db = max(min_db, min(max_db, float(db)))
        self._update(level_db=db)
        return self._set(LEVEL, db)

    def set_volume(self, volume):
        """ sets the level from a volume between 0 and 100. """
        return self.set_level(volume_to_db(max(0.0, min(100.0, volume))))

    def adjust_volume(self, step):
        """ changes the level by step dB. Raising a fully attenuated level starts from -60 dB. """
        level = self._state.level_db
        if step > 0 and level < -60:
            level = -60.0
        return self.set_level(level + step)

    def increase_volume(self, step=None):
        return self.adjust_volume(self.volume_step if step is None else step)

    def decrease_volume(self, step=None):
        return self.adjust_volume(-(self.volume_step if step is None else step))

    def toggle_mute(self):
        muted = not self._state.muted
        self._update(muted=muted)
        return self._set(MUTE, muted)

    def toggle_dim(self):
        dimmed = not self._state.dimmed
        self._update(dimmed=dimmed)
        return self._set(DIM, dimmed)

    def toggle_mono(self):
        mono = not self._state.mono
        self._update(mono=mono)
        return self._set(MONO, mono)
