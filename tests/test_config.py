from gateway.core import db
from gateway.core.config import Settings, settings


class TestSettings:
    def test_sql_echo_is_independent_of_debug(self):
        configured = Settings(JWT_SECRET="x" * 32, DEBUG=True)
        assert configured.DEBUG is True
        assert configured.DB_ECHO is False

    def test_engine_uses_sql_echo_setting(self):
        assert db.engine.echo == settings.DB_ECHO
