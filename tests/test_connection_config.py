"""
Unit tests for ConnectionConfig and connection identity views.
"""
import pytest

from remote_file_browser.core.errors import ConfigurationError
from remote_file_browser.database.models import (
    AnonymousAuth,
    ConnectionConfig,
    KeyAuth,
    PasswordAuth,
    Protocol,
    TlsMode,
)


class TestDefaults:
    """Test protocol-aware defaults."""

    def test_sftp_defaults(self):
        config = ConnectionConfig(protocol="sftp", host="example.com", username="alice")

        assert config.protocol == Protocol.SFTP
        assert config.port == 22
        assert config.connect_timeout == 20
        assert config.operation_timeout == 60
        assert config.keep_alive_interval == 30
        assert config.max_retries == 3
        assert config.retry_base_delay == 1.0
        assert config.idle_timeout == 1800
        assert config.enable_keep_alive

    def test_ftp_defaults(self):
        config = ConnectionConfig(protocol=Protocol.FTP, host="example.com", username="bob")
        assert config.port == 21
        assert config.connect_timeout == 30
        assert config.passive_mode

    @pytest.mark.parametrize("tls_mode, port", [
        (TlsMode.OFF, 21),
        (TlsMode.EXPLICIT, 21),
        (TlsMode.IMPLICIT, 990),
    ])
    def test_ftps_ports(self, tls_mode, port):
        config = ConnectionConfig(protocol="ftp", host="h", username="u", tls_mode=tls_mode)
        assert config.port == port

    def test_explicit_values_kept(self):
        config = ConnectionConfig(protocol="sftp", host="h", username="u", port=2222,
                                  operation_timeout=5, max_retries=0)
        assert config.port == 2222
        assert config.operation_timeout == 5
        assert config.max_retries == 0

    def test_host_cleaned(self):
        config = ConnectionConfig(protocol="sftp", host="  https://example.com/ ", username="u")
        assert config.host == "example.com"

    def test_remote_path_made_absolute(self):
        config = ConnectionConfig(protocol="sftp", host="h", username="u", remote_path="var/www")
        assert config.remote_path == "/var/www"


class TestValidation:
    """Test invalid combinations."""

    @pytest.mark.parametrize("kwargs", [
        dict(protocol="sftp", host="", username="u"),
        dict(protocol="scp", host="h", username="u"),
        dict(protocol="sftp", host="h", username=""),
        dict(protocol="sftp", host="h", username="u", port=0),
        dict(protocol="sftp", host="h", username="u", port=70000),
        dict(protocol="sftp", host="h", username="u", auth=AnonymousAuth()),
        dict(protocol="ftp", host="h", username="u", auth=KeyAuth(key_path="/k")),
        dict(protocol="sftp", host="h", username="u", auth=KeyAuth()),
        dict(protocol="sftp", host="h", username="u", tls_mode="explicit"),
        dict(protocol="ftp", host="h", username="u", tls_mode="sometimes"),
        dict(protocol="sftp", host="h", username="u", operation_timeout=0),
        dict(protocol="sftp", host="h", username="u", max_retries=-1),
        dict(protocol="sftp", host="h", username="u", auth="password"),
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            ConnectionConfig(**kwargs)

    def test_anonymous_ftp_gets_username(self):
        config = ConnectionConfig(protocol="ftp", host="ftp.example.com", auth=AnonymousAuth())
        assert config.username == "anonymous"
        assert config.is_anonymous
        assert config.auth.password == "anonymous@example.com"

    def test_frozen(self):
        config = ConnectionConfig(protocol="sftp", host="h", username="u")
        with pytest.raises(AttributeError):
            config.host = "other"


class TestIdentity:
    """Test the three views over the connection identity."""

    def test_keys(self):
        identity = ConnectionConfig(protocol="sftp", host="example.com", username="alice").identity

        assert identity.key == "alice@example.com:22"
        assert identity.credential_key == "sftp-alice-example.com-22"
        assert identity.cache_dir_name == "alice-example.com-22"

    def test_protocols_never_share_credentials(self):
        sftp = ConnectionConfig(protocol="sftp", host="h", username="u", port=21).identity
        ftp = ConnectionConfig(protocol="ftp", host="h", username="u", port=21).identity

        assert sftp.key == ftp.key
        assert sftp.credential_key != ftp.credential_key

    def test_display_name(self):
        assert ConnectionConfig(protocol="ftp", host="h", username="u",
                                tls_mode="implicit").display_name == "[FTPS] u@h:990"
        assert ConnectionConfig(protocol="sftp", host="h", username="u",
                                name="Prod").display_name == "[SFTP] Prod"


class TestSerialization:
    """Test dict serialization."""

    def test_secrets_never_serialized(self):
        config = ConnectionConfig(protocol="sftp", host="h", username="u",
                                  auth=PasswordAuth(password="hunter2"))
        assert "hunter2" not in repr(config.to_dict())
        assert "hunter2" not in repr(config)

    def test_key_auth_round_trip(self):
        config = ConnectionConfig(protocol="sftp", host="h", username="u",
                                  auth=KeyAuth(key_path="~/.ssh/id_rsa", passphrase="pp"),
                                  idle_timeout=600, name="Box")

        restored = ConnectionConfig.from_dict(config.to_dict())

        assert restored.auth == KeyAuth(key_path="~/.ssh/id_rsa")
        assert restored.idle_timeout == 600
        assert restored.name == "Box"

    def test_missing_advanced_fields_use_defaults(self):
        config = ConnectionConfig.from_dict({
            "protocol": "ftp", "host": "h", "username": "u", "tls_mode": "implicit",
        })
        assert config.port == 990
        assert config.connect_timeout == 30
        assert config.auth == PasswordAuth()

    def test_unknown_auth_type(self):
        with pytest.raises(ConfigurationError):
            ConnectionConfig.from_dict({"protocol": "sftp", "host": "h", "username": "u",
                                        "auth_type": "kerberos"})

    def test_with_auth(self):
        config = ConnectionConfig(protocol="sftp", host="h", username="u")
        updated = config.with_auth(PasswordAuth(password="x"))
        assert updated.auth.password == "x"
        assert config.auth.password is None
