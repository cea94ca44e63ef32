"""
Splits the inbound byte stream into messages. Each message is terminated by a single
delimiter byte, NUL by default.
"""

DELIMITER = b"\0"


class Framer:
    """
    Buffers bytes across reads and yields each complete message.
    The buffer grows until a delimiter arrives; no length limit is applied.
    """

    def __init__(self, delimiter=DELIMITER):
        if len(delimiter) != 1:
            raise ValueError("delimiter must be a single byte")
        self.delimiter = delimiter
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list:
        """
        Appends data to the buffer and extracts the complete messages.

        >>> f = Framer()
        >>> f.feed(b"A\\0B\\0C")
        [b'A', b'B']
        >>> f.pending
        b'C'
        >>> f.feed(b"\\0")
        [b'C']

        :return: the messages completed by this data, possibly empty. Back-to-back
            delimiters produce empty messages.
        """
        buffer = self._buffer
        buffer.extend(data)
        messages = []
        start = 0
        while True:
            index = buffer.find(self.delimiter, start)
            if index < 0:
                break
            messages.append(bytes(buffer[start:index]))
            start = index + 1
        if start:
            del buffer[:start]
        return messages

    @property
    def pending(self) -> bytes:
        """ the bytes received after the last delimiter. """
        return bytes(self._buffer)

    def reset(self):
        self._buffer = bytearray()


def frame(message: bytes, delimiter=DELIMITER) -> bytes:
    """
    >>> frame(b"get /devices")
    b'get /devices\\x00'
    """
    return message + delimiter
