"""
Session Factory - Create the ProtocolSession for a connection's protocol
"""

from typing import Dict, List, Type
from .base import ProtocolSession
from ..core.errors import UnsupportedOperationError

import logging
logger = logging.getLogger(__name__)


class SessionFactory:
    """
    Factory for protocol sessions, consulted once per connect.

    Usage:
        session = SessionFactory.create("sftp")
        session.connect(config, credentials)
    """

    # Registry of supported protocols
    _sessions: Dict[str, Type[ProtocolSession]] = {}

    @classmethod
    def create(cls, protocol: str) -> ProtocolSession:
        """
        Create a session for the specified protocol.

        Args:
            protocol: Protocol name ("sftp" or "ftp")

        Returns:
            A new, unconnected ProtocolSession

        Raises:
            UnsupportedOperationError: If no session is registered for the protocol
        """
        key = getattr(protocol, "value", protocol).lower()
        session_class = cls._sessions.get(key)
        if session_class is None:
            raise UnsupportedOperationError(f"Unsupported protocol: {protocol}")
        return session_class()

    @classmethod
    def is_supported(cls, protocol: str) -> bool:
        return getattr(protocol, "value", protocol).lower() in cls._sessions

    @classmethod
    def supported_protocols(cls) -> List[str]:
        return list(cls._sessions.keys())

    @classmethod
    def register(cls, protocol: str, session_class: Type[ProtocolSession]):
        """
        Register a session class for a protocol.

        Args:
            protocol: Protocol identifier
            session_class: ProtocolSession subclass
        """
        cls._sessions[protocol.lower()] = session_class
        logger.debug(f"Registered session for: {protocol}")


def _register_default_sessions():
    """Register built-in sessions. Called on module import."""
    from .sftp_session import SFTPSession
    from .ftp_session import FTPSession

    SessionFactory.register("sftp", SFTPSession)
    SessionFactory.register("ftp", FTPSession)


# Register on module import
_register_default_sessions()
