"""
Connectors open a TCP connection to a console endpoint and report its lifecycle.
"""
