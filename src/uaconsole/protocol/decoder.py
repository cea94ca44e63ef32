"""
Decodes a single console message into protocol events.

Messages are UTF-8 JSON objects of the form {"path": "...", "data": ...}. Malformed
messages are dropped rather than reported: the console emits noise now and then, and a
bad frame must never disturb the connection.
"""
import json
import logging

from uaconsole.protocol.responses import BoolValue, ChildList, NumericValue, StringValue

logger = logging.getLogger(__name__)


def decode(raw: bytes) -> list:
    """
    Decodes a raw message.

    >>> decode(b'{"path": "/devices", "data": {"children": {"1": {}, "0": {}}}}')[0].ids
    ('0', '1')
    >>> decode(b'')
    []

    :param raw: the bytes between two delimiters
    :return: the events in the message, in the order they appear. Empty when the message
        is malformed or carries nothing recognized.
    """
    payload = _parse(raw)
    if payload is None:
        return []
    path = payload["path"]
    data = payload.get("data")
    if isinstance(data, dict):
        return _structured_events(path, data, payload)
    # direct scalar value, as pushed for subscriptions: {"path": "...", "data": true}
    return _events_from_raw(path, payload)


def _parse(raw: bytes):
    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError:
        logger.debug("dropping message that is not UTF-8: %r" % raw[:64])
        return None
    if not text:
        return None
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        logger.debug("dropping message that is not JSON: %s" % text[:64])
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("path"), str):
        logger.debug("dropping message without a path: %s" % text[:64])
        return None
    return payload


def _structured_events(path, data: dict, payload: dict) -> list:
    events = []
    children = data.get("children")
    if isinstance(children, dict):
        events.append(ChildList(path, sorted(children.keys())))

    properties = data.get("properties")
    if isinstance(properties, dict):
        for name, prop in properties.items():
            if isinstance(prop, dict) and "value" in prop:
                event = scalar_event(path, name, prop["value"])
                if event is not None:
                    events.append(event)

    # structured, but neither properties nor children
    if "properties" not in data and "children" not in data:
        events.extend(_events_from_raw(path, payload))
    return events


def _events_from_raw(path, payload: dict) -> list:
    name = property_name(path)
    if name is None:
        return []
    event = scalar_event(path, name, payload.get("data"))
    return [event] if event is not None else []


def property_name(path: str):
    """
    The last segment of a path.

    >>> property_name("/devices/0/outputs/4/Mute")
    'Mute'
    >>> property_name("/") is None
    True
    """
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else None


def scalar_event(path, name, value):
    """
    Builds the event corresponding to the JSON type of value.
    Booleans are tested first, since bool is a subclass of int.
    :return: the event, or None for values of any other type.
    """
    if isinstance(value, bool):
        return BoolValue(path, name, value)
    if isinstance(value, (int, float)):
        try:
            return NumericValue(path, name, value)
        except OverflowError:
            return None
    if isinstance(value, str):
        return StringValue(path, name, value)
    return None
