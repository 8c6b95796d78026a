"""
Unit tests for named connection configuration.
"""
import pytest
from activemodel.config import Config, ConnectionManager
from activemodel.exceptions import ConfigurationError
from activemodel.options import DatabaseOptions

SQLITE = {'drivername': 'sqlite', 'database': ':memory:'}


class TestConfig:

    def test_singleton_and_reset(self):
        config = Config.get_instance()
        assert Config.get_instance() is config
        Config.reset()
        assert Config.get_instance() is not config

    def test_default_name(self):
        assert Config.get_instance().default_connection == 'development'

    def test_set_connections_parses_options(self):
        config = Config.get_instance()
        config.set_connections({'test': SQLITE}, default='test')
        options = config.get_connection('test')
        assert isinstance(options, DatabaseOptions)
        assert options.drivername == 'sqlite'
        assert config.default_connection == 'test'
        assert config.get_default_connection_options() is options

    def test_initialize(self):
        config = Config.initialize(lambda cfg: cfg.set_connections({'development': SQLITE}))
        assert config is Config.get_instance()
        assert list(config.get_connections()) == ['development']

    def test_invalid_entry(self):
        with pytest.raises(ConfigurationError, match="'broken'"):
            Config.get_instance().set_connections({'broken': {'drivername': 'sqlite'}})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            Config.get_instance().set_connections([SQLITE])

    def test_unknown_name(self):
        assert Config.get_instance().get_connection('nope') is None


class TestConnectionManager:

    def test_unconfigured_name(self):
        with pytest.raises(ConfigurationError, match='No connection configured'):
            ConnectionManager.get_instance().get_connection('missing')

    def test_connection_reused_per_name(self, mocker):
        connect = mocker.patch('activemodel.config.connect')
        connect.return_value.closed = False
        Config.get_instance().set_connections({'test': SQLITE}, default='test')
        manager = ConnectionManager.get_instance()
        assert manager.get_connection() is manager.get_connection('test')
        connect.assert_called_once()

    def test_drop_connection_reconnects(self, mocker):
        first, second = mocker.Mock(closed=False), mocker.Mock(closed=False)
        connect = mocker.patch('activemodel.config.connect', side_effect=[first, second])
        Config.get_instance().set_connections({'test': SQLITE}, default='test')
        manager = ConnectionManager.get_instance()
        assert manager.get_connection() is first
        manager.drop_connection('test')
        first.close.assert_called_once()
        assert manager.get_connection() is second
        assert connect.call_count == 2

    def test_closed_connection_replaced(self, mocker):
        stale, fresh = mocker.Mock(closed=False), mocker.Mock(closed=False)
        mocker.patch('activemodel.config.connect', side_effect=[stale, fresh])
        Config.get_instance().set_connections({'test': SQLITE}, default='test')
        manager = ConnectionManager.get_instance()
        manager.get_connection()
        stale.closed = True
        assert manager.get_connection() is fresh
