"""
State sinks receive MonitorState snapshots. A widget or a status bar item reads the
snapshot the ConfigObjStateSink writes, so it never needs a connection of its own.
"""
import logging
import os
import threading

from configobj import ConfigObj

from uaconsole.connector.base import StateSink

logger = logging.getLogger(__name__)


class MemoryStateSink(StateSink):
    """ keeps the last snapshot published, and counts the snapshots. """
    def __init__(self):
        self.state = None
        self.count = 0

    def publish(self, state):
        self.state = state
        self.count += 1


class ConfigObjStateSink(StateSink):
    """
    Writes each snapshot to a config file as flat key-value pairs in a single section.
    The file is replaced whole, so readers see either the previous or the new snapshot.
    """
    def __init__(self, filename, section='monitor', log=logger):
        self.filename = filename
        self.section = section
        self.logger = log
        self._lock = threading.Lock()

    def publish(self, state):
        config = ConfigObj(encoding='utf-8')
        config[self.section] = state.as_dict()
        temp = self.filename + '.tmp'
        with self._lock:
            config.filename = temp
            config.write()
            os.replace(temp, self.filename)
        self.logger.debug("wrote state to %s" % self.filename)

    def load(self):
        """
        :return: the values of the last snapshot written, as strings, or an empty dict if there is none.
        """
        if not os.path.exists(self.filename):
            return {}
        config = ConfigObj(self.filename, encoding='utf-8')
        return dict(config.get(self.section, {}))
