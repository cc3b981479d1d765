import os
import tempfile
import unittest
from decimal import Decimal

import helpers  # noqa: F401

from utils.config import Settings, load_settings


class SettingsTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def write_yaml(self, text: str) -> str:
        path = os.path.join(self.temp_dir.name, "till.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_defaults(self):
        settings = load_settings(environ={})
        self.assertEqual(settings, Settings())
        self.assertEqual(settings.tax_rate, Decimal("0.13"))
        self.assertEqual(settings.currency_symbol, "₡")
        self.assertEqual(settings.currency_exponent, 2)
        self.assertEqual(settings.log_level, "INFO")

    def test_yaml_file(self):
        path = self.write_yaml(
            "tax_rate: 0.105\nbusiness_name: Pulperia La Esquina\nsession_days: 3\n"
        )
        settings = load_settings(path, environ={})
        self.assertEqual(settings.tax_rate, Decimal("0.105"))
        self.assertEqual(settings.business_name, "Pulperia La Esquina")
        self.assertEqual(settings.session_days, 3)
        # untouched keys keep their defaults
        self.assertEqual(settings.currency_exponent, 2)

    def test_empty_yaml_file(self):
        self.assertEqual(load_settings(self.write_yaml(""), environ={}), Settings())

    def test_config_path_from_environment(self):
        path = self.write_yaml("currency_symbol: $\n")
        settings = load_settings(environ={"POS_CONFIG": path})
        self.assertEqual(settings.currency_symbol, "$")

    def test_environment_overrides_file(self):
        path = self.write_yaml("tax_rate: 0.105\nstore_timeout: 2\n")
        settings = load_settings(path, environ={"POS_TAX_RATE": "0", "POS_DB_PATH": "/tmp/x.db"})
        self.assertEqual(settings.tax_rate, Decimal(0))
        self.assertEqual(settings.db_path, "/tmp/x.db")
        self.assertEqual(settings.store_timeout, 2.0)

    def test_debug_raises_log_level(self):
        self.assertEqual(load_settings(environ={"DEBUG": "1"}).log_level, "DEBUG")

    def test_unknown_key_rejected(self):
        with self.assertRaises(ValueError):
            load_settings(self.write_yaml("tax: 0.13\n"), environ={})

    def test_non_mapping_file_rejected(self):
        with self.assertRaises(ValueError):
            load_settings(self.write_yaml("- 1\n- 2\n"), environ={})

    def test_invalid_values_rejected(self):
        for environ in (
            {"POS_TAX_RATE": "1.5"},
            {"POS_TAX_RATE": "-0.1"},
            {"POS_TAX_RATE": "abc"},
            {"POS_SESSION_DAYS": "0"},
            {"POS_CURRENCY_EXPONENT": "-1"},
            {"POS_LOG_LEVEL": "LOUD"},
        ):
            with self.subTest(environ=environ):
                with self.assertRaises(ValueError):
                    load_settings(environ=environ)


if __name__ == "__main__":
    unittest.main()
