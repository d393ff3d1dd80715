from __future__ import annotations

# Leading byte of every command connection.
COMMAND_LOG = 0
COMMAND_STATUS = 1
COMMAND_SERVICE_RELOAD = 2
COMMAND_CLOSE_CONNECTIONS = 3
COMMAND_GROUP = 4

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8964
