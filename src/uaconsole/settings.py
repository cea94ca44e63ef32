"""
Defaults used throughout the package. Call load() to apply the uaconsole configuration
files over these values; the schema lists every setting.
"""
import logging
import sys

from uaconsole.config.config import configure_module

logger = logging.getLogger(__name__)

config_name = 'uaconsole'

# the console's TCP port
port = 4710
# seconds to wait for a socket to connect
connect_timeout = 5.0
# maximum bytes read from the socket at a time
read_size = 65536
# seconds between keep-alive requests while connected
keep_alive_interval = 30.0
# the path requested as a keep-alive
keep_alive_path = "/devices"
# cap on the reconnect backoff, in seconds
max_reconnect_delay = 10.0
# zeroconf service subtype advertised by the mixer engine
service_type = "uamixer"
# seconds before a discovery scan stops itself
scan_timeout = 10.0
# seconds allowed to resolve one advertised service
resolve_timeout = 3.0
# dB change for one volume step
volume_step = 3.0


def load(user_file=None):
    """
    Applies the configuration files to this module.
    :param user_file: the user override file, ~/uaconsole.cfg when not given.
    :return: the validated configuration
    """
    module = sys.modules[__name__]
    conf = configure_module(module, config_name, user_file)
    logger.debug("settings loaded: port=%s service_type=%s" % (port, service_type))
    return conf
