# Process-wide infrastructure shared by the API and the services

from botpe_core.core.logging import LogFormat, LogLevel, setup_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "setup_logging",
]
