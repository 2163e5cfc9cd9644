"""
Poller Services

- device - Connection, reading, polling and snapshot saving
"""
