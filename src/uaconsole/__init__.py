"""
A client for the mixer engine's TCP control protocol.

- protocol: framing, decoding and encoding of console messages
- connector: the socket connection to a console endpoint
- connection_manager: keeps a connection open, reconnecting with a backoff
- discovery: finds consoles on the local network with zeroconf
- monitor: controls the monitor output of a console
"""
