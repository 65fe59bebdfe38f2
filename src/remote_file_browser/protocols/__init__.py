"""
Protocol sessions - SFTP (paramiko) and FTP/FTPS (ftplib) behind one interface.
"""

from .base import ProtocolSession, RemoteEntry, SessionCredentials, normalize_remote_path
from .factory import SessionFactory
from .ftp_session import FTPSession
from .sftp_session import SFTPSession

__all__ = [
    'FTPSession',
    'ProtocolSession',
    'RemoteEntry',
    'SessionCredentials',
    'SessionFactory',
    'SFTPSession',
    'normalize_remote_path',
]
