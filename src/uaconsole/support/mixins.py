"""
Value semantics for plain attribute classes: a readable repr, equality by attributes,
and a hash to match.
"""
import threading

_comparing = threading.local()


def quote(val):
    return "None" if val is None else "'%s'" % val


class StringerMixin:

    def __repr__(self):
        """
        The class name followed by the attributes, sorted by name.
        >>> class Point(StringerMixin):
        ...     def __init__(self): self.y, self.x = 2, 1
        >>> repr(Point())
        "Point{'x': '1', 'y': '2'}"
        """
        attributes = ", ".join("'%s': %s" % (key, quote(value)) for key, value in sorted(vars(self).items()))
        return "%s{%s}" % (type(self).__name__, attributes)


class CommonEqualityMixin:
    """
    Instances of the same class are equal when their attributes are equal. Comparing objects
    that refer back to themselves raises ValueError.
    """

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return False
        pairs = getattr(_comparing, 'pairs', None)
        if pairs is None:
            pairs = _comparing.pairs = set()
        pair = (id(self), id(other))
        if pair in pairs:
            raise ValueError("recursive comparison of %s" % type(self).__name__)
        pairs.add(pair)
        try:
            return vars(self) == vars(other)
        finally:
            pairs.discard(pair)

    def __ne__(self, other):
        return not self == other


class ValueObjectMixin(CommonEqualityMixin, StringerMixin):
    """
    For immutable value objects. Attribute values must be hashable.
    """

    def __hash__(self):
        return hash((type(self), tuple(sorted(vars(self).items()))))
