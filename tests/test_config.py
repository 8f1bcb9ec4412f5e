from context import classes, config
from os import environ
from tempfile import TemporaryDirectory
import os
import packify
import unittest


class TestConfig(unittest.TestCase):
    def setUp(self) -> None:
        self.saved = environ.pop(config.ENV_VAR, None)
        self.tmpdir = TemporaryDirectory()
        self.env_file = os.path.join(self.tmpdir.name, '.env')
        return super().setUp()

    def tearDown(self) -> None:
        environ.pop(config.ENV_VAR, None)
        if self.saved is not None:
            environ[config.ENV_VAR] = self.saved
        self.tmpdir.cleanup()
        return super().tearDown()

    def test_get_connection_string_returns_default_when_unset(self):
        assert config.get_connection_string(env_file=self.env_file) == ''
        assert config.get_connection_string('x.db', env_file=self.env_file) == 'x.db'

    def test_get_connection_string_reads_environment(self):
        environ[config.ENV_VAR] = 'env.db'
        with open(self.env_file, 'w') as f:
            f.write('CONNECTION_STRING=file.db\n')
        assert config.get_connection_string(env_file=self.env_file) == 'env.db'

    def test_get_connection_string_reads_env_file(self):
        with open(self.env_file, 'w') as f:
            f.write('OTHER=1\nCONNECTION_STRING="file.db"\n')
        assert config.get_connection_string(env_file=self.env_file) == 'file.db'

    def test_SqliteConnection_falls_back_to_environment(self):
        environ[config.ENV_VAR] = ':memory:'
        assert classes.SqliteConnection().connection_info == ':memory:'

    def test_SqliteConnection_without_configuration_raises_UsageError(self):
        cwd = os.getcwd()
        os.chdir(self.tmpdir.name)
        try:
            with self.assertRaises(packify.UsageError) as e:
                classes.SqliteConnection()
            assert str(e.exception) == 'cannot use with empty connection_info'
        finally:
            os.chdir(cwd)


if __name__ == '__main__':
    unittest.main()
