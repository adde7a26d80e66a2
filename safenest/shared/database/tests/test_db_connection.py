"""Tests for database connection manager."""
import pytest
from unittest.mock import MagicMock, patch

from safenest.shared.database.connection import (
    ConnectionManager,
    DatabaseConfig,
    get_connection_manager,
)


class TestDatabaseConfig:
    """Tests for DatabaseConfig dataclass."""

    def test_default_values(self):
        config = DatabaseConfig(host="localhost")

        assert config.host == "localhost"
        assert config.port == 5432
        assert config.database == "safenest"
        assert config.max_connections == 10
        assert config.ssl_mode == "require"

    def test_from_env(self):
        with patch.dict("os.environ", {
            "DB_HOST": "env-host",
            "DB_PORT": "5434",
            "DB_NAME": "env_db",
            "DB_USER": "env_user",
            "DB_PASSWORD": "env_pass",
            "DB_MAX_CONN": "4",
        }):
            config = DatabaseConfig.from_env()

        assert config.host == "env-host"
        assert config.port == 5434
        assert config.database == "env_db"
        assert config.username == "env_user"
        assert config.max_connections == 4

    def test_config_is_immutable(self):
        config = DatabaseConfig(host="localhost")

        with pytest.raises(Exception):  # FrozenInstanceError
            config.host = "other"

    @patch("boto3.client")
    def test_from_secrets_manager(self, mock_boto_client):
        mock_client = MagicMock()
        mock_client.get_secret_value.return_value = {
            "SecretString": '{"host": "db.internal", "port": 5433, '
                            '"username": "svc", "password": "pw"}'
        }
        mock_boto_client.return_value = mock_client

        config = DatabaseConfig.from_secrets_manager("arn:aws:secret:db")

        assert config.host == "db.internal"
        assert config.port == 5433
        assert config.username == "svc"


class TestConnectionManager:
    """Tests for ConnectionManager."""

    def test_not_initialized_until_used(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))

        assert manager.initialized is False
        assert manager.health_check()["healthy"] is False

    @patch("safenest.shared.database.connection.pool.ThreadedConnectionPool")
    def test_initialize_creates_pool_once(self, mock_pool_cls):
        manager = ConnectionManager(DatabaseConfig(host="db", max_connections=3))

        manager.initialize()
        manager.initialize()

        mock_pool_cls.assert_called_once()
        assert mock_pool_cls.call_args.kwargs["maxconn"] == 3
        assert manager.initialized is True

    @patch("safenest.shared.database.connection.pool.ThreadedConnectionPool")
    def test_get_connection_returns_connection_to_pool(self, mock_pool_cls):
        mock_pool = mock_pool_cls.return_value
        conn = MagicMock()
        mock_pool.getconn.return_value = conn
        manager = ConnectionManager(DatabaseConfig(host="db"))

        with manager.get_connection() as borrowed:
            assert borrowed is conn

        mock_pool.putconn.assert_called_once_with(conn)

    @patch("safenest.shared.database.connection.pool.ThreadedConnectionPool")
    def test_get_connection_rolls_back_on_error(self, mock_pool_cls):
        mock_pool = mock_pool_cls.return_value
        conn = MagicMock()
        mock_pool.getconn.return_value = conn
        manager = ConnectionManager(DatabaseConfig(host="db"))

        with pytest.raises(RuntimeError):
            with manager.get_connection():
                raise RuntimeError("boom")

        conn.rollback.assert_called_once()
        mock_pool.putconn.assert_called_once_with(conn)

    @patch("safenest.shared.database.connection.pool.ThreadedConnectionPool")
    def test_health_check_connected(self, mock_pool_cls):
        manager = ConnectionManager(DatabaseConfig(host="db"))
        manager.initialize()

        health = manager.health_check()

        assert health["healthy"] is True
        assert health["status"] == "connected"

    @patch("safenest.shared.database.connection.pool.ThreadedConnectionPool")
    def test_close_releases_pool(self, mock_pool_cls):
        manager = ConnectionManager(DatabaseConfig(host="db"))
        manager.initialize()

        manager.close()

        mock_pool_cls.return_value.closeall.assert_called_once()
        assert manager.initialized is False


def test_get_connection_manager_is_singleton():
    assert get_connection_manager() is get_connection_manager()
