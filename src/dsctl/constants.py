"""Global constants for dsctl."""

# Stop workflow

STOP_MAX_ATTEMPTS = 3
WINDOWS_STOP_POLL_ATTEMPTS = 10
WINDOWS_STOP_POLL_INTERVAL_MS = 5000

# Start workflow / connectivity probe

CONNECT_MAX_ROUNDS = 50
CONNECT_RETRY_INTERVAL_MS = 3000
DEFAULT_LDAP_CONNECT_TIMEOUT_MS = 30000
DEFAULT_HOST = "localhost"
WILDCARD_HOST = "0.0.0.0"

# Exit codes returned by the control scripts

EXIT_SUCCESS = 0
# LDAP result code for "client side connect error": the script could not reach the server.
CLIENT_SIDE_CONNECT_ERROR = 91
STOP_FAILED_SENTINEL = -1

# Child process environment

JAVA_HOME_ENV = "OPENDJ_JAVA_HOME"
JAVA_ARGS_ENV = "OPENDJ_JAVA_ARGS"
CLASSPATH_ENV = "CLASSPATH"
INHERITED_JAVA_HOME_ENV = "JAVA_HOME"

# Control script arguments

NO_PROP_FILE_OPTION = "--no-prop-file"
START_TIMEOUT_ARGS = ("--timeout", "0")

# Message id logged by the server once it has started ("msgID=139").
STARTED_MESSAGE_ID = "139"

# Installation layout

BIN_DIR_NAME = "bin"
CONFIG_DIR_NAME = "config"
LOGS_DIR_NAME = "logs"
CONFIG_FILE_NAME = "config.ldif"
PID_FILE_NAME = "server.pid"
START_SCRIPT_NAME = "start-ds"
STOP_SCRIPT_NAME = "stop-ds"
ADMIN_CONNECTOR_DN = "cn=administration connector,cn=config"
LISTEN_PORT_ATTRIBUTE = "ds-cfg-listen-port"
DEFAULT_ADMIN_PORT = 4444

# Relay threads are joined for at most this long after the process exits.
RELAY_JOIN_TIMEOUT_S = 5.0

# Environment variables read by ControllerSettings.from_env()

ENV_PREFIX = "DSCTL_"
