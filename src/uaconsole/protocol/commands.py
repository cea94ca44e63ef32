"""
Outbound console commands. A command is a line of text naming an operation and a path,
sent as UTF-8 and terminated by the message delimiter.
"""
from uaconsole.protocol.framing import frame


def get_command(path):
    """
    requests the current value or children of a path.
    >>> get_command("/devices")
    'get /devices'
    """
    return "get %s" % path


def set_command(path, value):
    """
    writes the value of a property.
    >>> set_command("/devices/0/outputs/4/CRMonitorLevel", -24.0)
    'set /devices/0/outputs/4/CRMonitorLevel/value/ -24.0'
    >>> set_command("/devices/0/outputs/4/Mute", True)
    'set /devices/0/outputs/4/Mute/value/ true'
    """
    return "set %s/value/ %s" % (path, format_value(value))


def subscribe_command(path):
    """
    requests updates to be pushed whenever the value at path changes.
    >>> subscribe_command("/devices/0/outputs/4/DimOn")
    'subscribe /devices/0/outputs/4/DimOn'
    """
    return "subscribe %s" % path


def format_value(value):
    """
    The literal form of a number or boolean.
    >>> format_value(False)
    'false'
    >>> format_value(3)
    '3'
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode(command: str) -> bytes:
    """
    >>> encode("get /devices")
    b'get /devices\\x00'
    """
    return frame(command.encode("utf-8"))
