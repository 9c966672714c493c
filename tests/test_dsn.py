from vidhub.db.dsn import (
    DEFAULT_CONNECTION_LIMIT,
    ConnectionParams,
    parse_dsn,
    sanitize_connection_string,
)


class TestParseDsn:
    """Positional DSN splitting for the SQL backend."""

    def test_full_dsn(self):
        params = parse_dsn("root:secret@db.example.com:3306/vidhub")

        assert params.user == "root"
        assert params.password == "secret"
        assert params.host == "db.example.com"
        assert params.port == 3306
        assert params.database == "vidhub"

    def test_pool_defaults(self):
        params = parse_dsn("u:p@h:1/d")

        assert params.connection_limit == DEFAULT_CONNECTION_LIMIT == 10
        assert params.max_idle == 10
        assert params.queue_limit == 0
        assert params.wait_for_connections is True

    def test_go_style_tcp_wrapper(self):
        params = parse_dsn("user:pw@tcp(127.0.0.1:3307)/videos")

        assert params.host == "127.0.0.1"
        assert params.port == 3307
        assert params.database == "videos"

    def test_password_keeps_later_colons(self):
        """Only the first ':' of the credentials splits user from password."""
        params = parse_dsn("user:pa:ss@host:3306/db")

        assert params.user == "user"
        assert params.password == "pa:ss"

    def test_database_keeps_later_slashes(self):
        params = parse_dsn("u:p@host:3306/db/extra")

        assert params.database == "db/extra"

    def test_missing_port(self):
        params = parse_dsn("u:p@localhost/db")

        assert params.host == "localhost"
        assert params.port is None
        assert "port" not in params.driver_kwargs()

    def test_non_numeric_port_is_not_an_error(self):
        params = parse_dsn("u:p@host:abc/db")

        assert params.host == "host"
        assert params.port is None

    def test_garbage_does_not_raise(self):
        params = parse_dsn("not a dsn")

        assert isinstance(params, ConnectionParams)
        assert params.user == "not a dsn"
        assert params.host == ""

    def test_driver_kwargs(self):
        kwargs = parse_dsn("root:secret@h:3306/d").driver_kwargs()

        assert kwargs == {
            "host": "h",
            "user": "root",
            "password": "secret",
            "database": "d",
            "port": 3306,
        }


class TestSanitizeConnectionString:
    def test_masks_dsn_password(self):
        assert sanitize_connection_string("root:secret@h:3306/d") == "root:***@h:3306/d"

    def test_masks_url_password(self):
        masked = sanitize_connection_string("postgresql://user:hunter2@db:5432/app")

        assert "hunter2" not in masked
        assert masked == "postgresql://user:***@db:5432/app"

    def test_leaves_passwordless_url_alone(self):
        assert sanitize_connection_string("redis://localhost:6379/0") == "redis://localhost:6379/0"

    def test_masks_whole_password_containing_colons(self):
        masked = sanitize_connection_string("root:pa:ss@db:3306/vidhub")

        assert masked == "root:***@db:3306/vidhub"
        assert "pa" not in masked and "ss@" not in masked

    def test_masks_password_only_url(self):
        assert sanitize_connection_string("redis://:s3cr:et@cache:6379/0") == "redis://:***@cache:6379/0"

    def test_user_without_password_is_unchanged(self):
        assert sanitize_connection_string("postgresql://app@db/app") == "postgresql://app@db/app"
