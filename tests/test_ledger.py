"""
Unit tests for the downloaded episodes ledger and its migration.
"""
import importlib
import unittest

from sqlalchemy import inspect

from models import build_engine, build_session_factory, create_tables, show_key
from services.ledger import EpisodeLedger


class TestEpisodeLedger(unittest.TestCase):
    """Test cases for EpisodeLedger."""

    def setUp(self):
        self.engine = build_engine('sqlite://')
        create_tables(self.engine)
        self.ledger = EpisodeLedger(build_session_factory(self.engine))

    def tearDown(self):
        self.engine.dispose()

    def test_create_and_exists(self):
        entry = self.ledger.create(1, "Chicago Fire", 13, 15)
        self.assertEqual(entry['showId'], 1)
        self.assertEqual(entry['showName'], "Chicago Fire")
        self.assertIsNotNone(entry['createdAt'])

        test_cases = [
            ((1, "Something Else", 13, 15), True),
            ((2, "chicago fire", 13, 15), True),
            ((2, "Chicago Fire", 13, 16), False),
            ((2, "Chicago Med", 13, 15), False),
        ]

        for arguments, expected in test_cases:
            with self.subTest(arguments=arguments):
                self.assertEqual(self.ledger.exists(*arguments), expected)

    def test_create_is_unique_per_show_episode(self):
        self.assertIsNotNone(self.ledger.create(1, "Chicago Fire", 13, 15))
        self.assertIsNone(self.ledger.create(1, "Chicago Fire", 13, 15))
        self.assertEqual(len(self.ledger.list_all()), 1)

    def test_create_is_unique_per_show_name(self):
        self.assertIsNotNone(self.ledger.create(1, "Chicago Fire", 13, 15))
        for show_name in ("CHICAGO FIRE", "chicago  fire", " Chicago Fire "):
            with self.subTest(show_name=show_name):
                self.assertIsNone(self.ledger.create(2, show_name, 13, 15))
        self.assertEqual(len(self.ledger.list_all()), 1)

    def test_non_ascii_show_names(self):
        self.ledger.create(1, "\xd1and\xfa", 1, 1)
        self.assertTrue(self.ledger.exists(2, "\xf1and\xfa", 1, 1))
        self.assertIsNone(self.ledger.create(2, "\xf1AND\xda", 1, 1))
        self.assertEqual(self.ledger.delete("\xf1and\xfa", 1, 1), 1)

    def test_show_key(self):
        test_cases = [
            ("Chicago Fire", "chicago fire"),
            ("  CHICAGO   Fire ", "chicago fire"),
            ("Stra\xdfe", "strasse"),
        ]

        for show_name, expected in test_cases:
            with self.subTest(show_name=show_name):
                self.assertEqual(show_key(show_name), expected)

    def test_delete_by_name(self):
        self.ledger.create(1, "Chicago Fire", 13, 15)
        self.ledger.create(1, "Chicago Fire", 13, 16)
        self.assertEqual(self.ledger.delete("CHICAGO FIRE", 13, 15), 1)
        self.assertEqual(self.ledger.delete("Chicago Fire", 13, 15), 0)
        self.assertEqual([entry['episode'] for entry in self.ledger.list_all()], [16])

    def test_delete_for_show_id(self):
        self.ledger.create(1, "Chicago Fire", 13, 15)
        self.assertEqual(self.ledger.delete_for_show_id(1, 13, 15), 1)
        self.assertFalse(self.ledger.exists(1, "Chicago Fire", 13, 15))


class TestInitialSchemaMigration(unittest.TestCase):
    """Test cases for the initial schema migration."""

    def test_upgrade_and_downgrade(self):
        migration = importlib.import_module('migrations.001_initial_schema')
        engine = build_engine('sqlite://')

        migration.upgrade(engine)
        self.assertIn('downloaded_episodes', inspect(engine).get_table_names())

        migration.downgrade(engine)
        self.assertNotIn('downloaded_episodes', inspect(engine).get_table_names())
        engine.dispose()


if __name__ == '__main__':
    unittest.main()
