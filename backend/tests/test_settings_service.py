import os
import tempfile
import threading
import time
import unittest

from sqlalchemy import text

from saripos import create_app
from saripos.config import TestConfig
from saripos.errors import NotFoundError, SettingsLockTimeoutError, StorageError, ValidationError
from saripos.extensions import db
from saripos.models import Setting
from saripos.services import settings_service
from saripos.services.concurrency import run_in_transaction
from saripos.services.settings_service import (
    DEFAULT_SETTINGS,
    decode_setting_value,
    encode_setting_value,
    get_settings_write_lock,
    infer_value_type,
)


class SettingsAppTestCase(unittest.TestCase):
    """Fresh app over a temporary SQLite file, with default settings inserted."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "settings.db")
        self.app = create_app(
            {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}", "LOG_LEVEL": "ERROR"},
            config_class=TestConfig,
        )
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        settings_service.ensure_default_settings()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
        self.ctx.pop()
        self.tmpdir.cleanup()


class SettingsServiceTests(SettingsAppTestCase):
    def test_defaults_are_seeded_once(self):
        self.assertEqual(db.session.query(Setting).count(), len(DEFAULT_SETTINGS))
        settings_service.set_setting("shop_name", "Aling Nena Store")

        self.assertEqual(settings_service.ensure_default_settings(), 0)
        self.assertEqual(settings_service.get_setting("shop_name"), "Aling Nena Store")
        self.assertEqual(settings_service.get_setting("page_size_options"), [5, 10, 20, 50, 100])
        self.assertEqual(settings_service.get_setting("tax_rate"), 0.12)
        self.assertIs(settings_service.get_setting("backup_auto"), True)

    def test_round_trip_for_every_kind(self):
        cases = {
            "note_text": "Open 6am-9pm",
            "max_discount": 12.5,
            "loyalty_enabled": False,
            "favorite_barcodes": {"drinks": ["1234567890123"], "count": 1},
        }
        for key, value in cases.items():
            settings_service.set_setting(key, value)

        for key, value in cases.items():
            self.assertEqual(settings_service.get_setting(key), value)

        stored = settings_service.get_all_settings()
        self.assertEqual(stored["note_text"]["value_type"], "string")
        self.assertEqual(stored["max_discount"]["value_type"], "number")
        self.assertEqual(stored["loyalty_enabled"]["value_type"], "boolean")
        self.assertEqual(stored["favorite_barcodes"]["value_type"], "json")

    def test_encoding_helpers(self):
        self.assertEqual(infer_value_type(True), "boolean")
        self.assertEqual(infer_value_type(3), "number")
        self.assertEqual(infer_value_type([1]), "json")
        self.assertEqual(encode_setting_value(False, "boolean"), "false")
        self.assertEqual(decode_setting_value("20", "number"), 20)
        self.assertIsInstance(decode_setting_value("20", "number"), int)
        self.assertEqual(decode_setting_value("0.5", "number"), 0.5)
        # malformed values fall back to the raw text
        self.assertEqual(decode_setting_value("{oops", "json"), "{oops")
        with self.assertRaises(ValidationError):
            encode_setting_value("yes", "boolean")

    def test_get_setting_missing(self):
        with self.assertRaises(NotFoundError):
            settings_service.get_setting("no_such_key")
        self.assertEqual(settings_service.get_setting("no_such_key", "fallback"), "fallback")

    def test_set_multiple_is_atomic(self):
        with self.assertRaises(ValidationError):
            settings_service.set_multiple_settings([
                {"key": "shop_name", "value": "Changed"},
                {"key": "bad", "value": 1, "value_type": "decimal"},
            ])
        self.assertEqual(settings_service.get_setting("shop_name"), "My Retail Store")

        settings_service.set_multiple_settings([
            {"key": "shop_name", "value": "Changed"},
            {"key": "theme", "value": "dark"},
        ])
        self.assertEqual(settings_service.get_setting("shop_name"), "Changed")
        self.assertEqual(settings_service.get_setting("theme"), "dark")

    def test_write_lock_timeout(self):
        lock = get_settings_write_lock()
        with lock.hold():
            with self.assertRaises(SettingsLockTimeoutError):
                settings_service.set_setting("theme", "dark")
        self.assertFalse(lock.locked)
        self.assertEqual(settings_service.get_setting("theme"), "light")

    def test_writer_that_read_first_waits_for_lock_holder(self):
        lock = get_settings_write_lock()
        lock.timeout = 5.0
        db.session.remove()

        holding = threading.Event()
        writer_has_read = threading.Event()
        results = {}

        def hold_then_write():
            with self.app.app_context():
                try:
                    with lock.hold():
                        holding.set()
                        writer_has_read.wait(2)
                        time.sleep(0.2)
                        run_in_transaction(lambda: db.session.execute(
                            text("UPDATE settings SET value = :value WHERE key = 'shop_name'"),
                            {"value": "Night Shift"},
                        ))
                    results["holder"] = "ok"
                except Exception as exc:
                    results["holder"] = repr(exc)
                finally:
                    db.session.remove()

        def read_then_write():
            with self.app.app_context():
                try:
                    holding.wait(2)
                    settings_service.get_setting("theme")
                    writer_has_read.set()
                    settings_service.set_setting("theme", "dark")
                    results["writer"] = "ok"
                except Exception as exc:
                    results["writer"] = repr(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=hold_then_write), threading.Thread(target=read_then_write)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(15)

        self.assertEqual(results, {"holder": "ok", "writer": "ok"})
        self.assertEqual(settings_service.get_setting("shop_name"), "Night Shift")
        self.assertEqual(settings_service.get_setting("theme"), "dark")

    def test_reads_hand_the_connection_back(self):
        settings_service.get_setting("theme")
        self.assertFalse(db.session().in_transaction())
        self.assertEqual(db.engine.pool.checkedout(), 0)

    def test_default_covers_read_failures(self):
        def failing_read(func):
            raise StorageError("Database error while reading")

        original = settings_service.run_read
        settings_service.run_read = failing_read
        self.addCleanup(setattr, settings_service, "run_read", original)

        self.assertEqual(settings_service.get_setting("theme", "light"), "light")
        with self.assertRaises(StorageError):
            settings_service.get_setting("theme")

    def test_reset_setting(self):
        settings_service.set_setting("theme", "dark")
        self.assertEqual(settings_service.reset_setting("theme"), "light")
        self.assertEqual(settings_service.get_setting("theme"), "light")
        with self.assertRaises(NotFoundError):
            settings_service.reset_setting("no_default_here")


class PageSizeTests(SettingsAppTestCase):
    def test_page_size_resolution(self):
        self.assertEqual(settings_service.get_page_size("inventory"), 5)

        key = settings_service.set_page_size(20, "inventory")
        self.assertEqual(key, "page_size_inventory")
        self.assertEqual(settings_service.get_page_size("inventory"), 20)
        self.assertEqual(settings_service.get_page_size("sales"), 5)

        settings_service.set_setting("remember_page_size", False)
        self.assertEqual(settings_service.get_page_size("inventory"), 5)
        self.assertEqual(settings_service.set_page_size(50, "inventory"), "default_page_size")
        self.assertEqual(settings_service.get_page_size("sales"), 50)

    def test_page_size_falls_back_to_hardcoded(self):
        db.session.query(Setting).filter(Setting.key == "default_page_size").delete()
        db.session.commit()
        self.assertEqual(settings_service.get_page_size(), 20)

    def test_set_page_size_validates_options(self):
        with self.assertRaises(ValidationError):
            settings_service.set_page_size(7)

    def test_pagination_config(self):
        self.assertEqual(
            settings_service.get_pagination_config(),
            {
                "enabled": True,
                "default_size": 5,
                "options": [5, 10, 20, 50, 100],
                "remember_per_view": True,
            },
        )


if __name__ == "__main__":
    unittest.main()
