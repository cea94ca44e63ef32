"""
Events decoded from console responses. A response either lists the children of a path
or carries the value of a property.
"""
from uaconsole.support.mixins import ValueObjectMixin


class ProtocolEvent(ValueObjectMixin):
    """ base class for decoded responses. """
    def __init__(self, path):
        self.path = path


class PropertyValue(ProtocolEvent):
    """ The value of a named property at a path. """
    def __init__(self, path, property, value):
        super().__init__(path)
        self.property = property
        self.value = value


class NumericValue(PropertyValue):
    def __init__(self, path, property, value):
        super().__init__(path, property, float(value))


class BoolValue(PropertyValue):
    def __init__(self, path, property, value):
        super().__init__(path, property, bool(value))


class StringValue(PropertyValue):
    def __init__(self, path, property, value):
        super().__init__(path, property, str(value))


class ChildList(ProtocolEvent):
    """ The ids of the children of a path, in lexical order. """
    def __init__(self, path, ids):
        super().__init__(path)
        self.ids = tuple(ids)
