"""Test configuration loading."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from crf_tuner.config import DEFAULTS, get_config, load_env_file

CONFIG_ENV_KEYS = [key.upper() for key in DEFAULTS]


def _clean_environ():
    return {k: v for k, v in os.environ.items() if k not in CONFIG_ENV_KEYS}


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.env_path = Path(self.temp_dir.name) / ".env"

    def tearDown(self):
        self.temp_dir.cleanup()

    def _write_env(self, *lines):
        self.env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def test_load_env_file(self):
        """Test loading environment variables from .env file."""
        self._write_env('VMAF_TARGET=93.5', '# This is a comment', 'codec="libx265"')

        env_vars = load_env_file(self.env_path)

        self.assertEqual(env_vars['VMAF_TARGET'], '93.5')
        self.assertEqual(env_vars['codec'], 'libx265')
        self.assertNotIn('# This is a comment', env_vars)

    def test_defaults(self):
        self._write_env('# empty')

        with patch.dict(os.environ, _clean_environ(), clear=True):
            config = get_config(self.env_path)

        self.assertEqual(config['vmaf_target'], 95.0)
        self.assertEqual(config['search_tolerance'], 0.5)
        self.assertEqual((config['crf_initial'], config['crf_min'], config['crf_max']), (20, 30, 15))
        self.assertEqual(config['vmaf_speed'], 5)
        self.assertEqual(config['codec'], 'libx264')
        self.assertFalse(config['debug'])

    def test_env_file_overrides_defaults(self):
        self._write_env('VMAF_TARGET=93.5', 'crf_min=35', 'DEBUG=yes')

        with patch.dict(os.environ, _clean_environ(), clear=True):
            config = get_config(self.env_path)

        self.assertEqual(config['vmaf_target'], 93.5)
        self.assertEqual(config['crf_min'], 35)
        self.assertTrue(config['debug'])

    def test_environment_overrides_env_file(self):
        self._write_env('VMAF_TARGET=93.5')
        environ = _clean_environ()
        environ['VMAF_TARGET'] = '97'

        with patch.dict(os.environ, environ, clear=True):
            config = get_config(self.env_path)

        self.assertEqual(config['vmaf_target'], 97.0)

    def test_invalid_number(self):
        self._write_env('CRF_INITIAL=twenty')

        with patch.dict(os.environ, _clean_environ(), clear=True):
            with self.assertRaises(ValueError):
                get_config(self.env_path)


class TestPackageImport(unittest.TestCase):

    def test_package_imports(self):
        """Test that package imports work."""
        import crf_tuner

        self.assertTrue(hasattr(crf_tuner, 'get_config'))
        self.assertTrue(hasattr(crf_tuner, 'run_search'))
        self.assertTrue(hasattr(crf_tuner, 'run_optimized_encode'))
        self.assertEqual(crf_tuner.__version__, "1.0.0")


if __name__ == '__main__':
    unittest.main()
