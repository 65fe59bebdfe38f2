"""
Centralized constants for Remote File Browser.

Protocol-aware defaults used when a saved connection leaves an advanced
field empty. Import from here instead of hardcoding values.
"""

# ===========================================================================
# Ports
# ===========================================================================
SFTP_DEFAULT_PORT = 22
FTP_DEFAULT_PORT = 21
FTPS_IMPLICIT_DEFAULT_PORT = 990

# ===========================================================================
# Timeouts (seconds)
# ===========================================================================
SFTP_CONNECT_TIMEOUT_S = 20
FTP_CONNECT_TIMEOUT_S = 30
OPERATION_TIMEOUT_S = 60
SFTP_READY_TIMEOUT_S = 10       # Wait for the transport "ready" signal
LIVENESS_PROBE_TIMEOUT_S = 10   # Upper bound for a single liveness probe
IDLE_TIMEOUT_S = 30 * 60        # Servers commonly drop idle sessions after this

# ===========================================================================
# Retry / keep-alive
# ===========================================================================
MAX_RETRIES = 3
RETRY_BASE_DELAY_S = 1.0
RETRY_MAX_DELAY_S = 10.0
KEEP_ALIVE_INTERVAL_S = 30

# ===========================================================================
# Anonymous FTP
# ===========================================================================
ANONYMOUS_USERNAME = "anonymous"
ANONYMOUS_PASSWORD = "anonymous@example.com"

# ===========================================================================
# Local cache / storage
# ===========================================================================
CACHE_DIR_NAME = "remote-file-browser"
SANITIZED_NAME_MAX_LENGTH = 50
KEYRING_SERVICE_NAME = "remote-file-browser"
OPERATION_WORKERS = 8           # Threads running protocol calls under a timeout
