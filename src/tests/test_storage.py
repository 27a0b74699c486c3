import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from hn_reader import config
from hn_reader.config import FAVORITES_KEY, READ_STORIES_KEY
from hn_reader.datamodels import Story
from hn_reader.favorites import FavoritesStore
from hn_reader.read_state import ReadStateStore
from hn_reader.storage import JsonFileStore, MemoryStore


class TestJsonFileStore(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="hn_reader_state_")
        self.store = JsonFileStore(os.path.join(self.test_dir, "state"))

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_missing_key_is_none(self):
        self.assertIsNone(self.store.get("absent"))

    def test_set_then_get(self):
        self.store.set(READ_STORIES_KEY, "[1, 2]")
        self.assertEqual(self.store.get(READ_STORIES_KEY), "[1, 2]")
        leftovers = [f for f in os.listdir(self.store.state_dir) if f.endswith(".tmp")]
        self.assertEqual(leftovers, [])

    def test_unsafe_key_stays_inside_state_dir(self):
        self.store.set("../escape/key", "x")
        self.assertEqual(self.store.get("../escape/key"), "x")
        self.assertEqual(len(os.listdir(self.store.state_dir)), 1)

    def test_clear_one_and_all(self):
        self.store.set("a", "1")
        self.store.set("b", "2")
        self.store.clear("a")
        self.assertIsNone(self.store.get("a"))
        self.assertEqual(self.store.get("b"), "2")
        self.store.clear()
        self.assertEqual(os.listdir(self.store.state_dir), [])

    def test_read_state_survives_restart(self):
        first = ReadStateStore(self.store, capacity=3)
        for story_id in (1, 2, 3, 4):
            first.add(story_id)
        second = ReadStateStore(JsonFileStore(self.store.state_dir), capacity=3)
        self.assertEqual(second.ids(), [2, 3, 4])


class TestFavoritesStore(unittest.TestCase):
    def setUp(self):
        self.store = MemoryStore()
        self.favorites = FavoritesStore(self.store)

    def test_toggle_adds_newest_first_without_session_flags(self):
        self.assertTrue(self.favorites.toggle(Story(id=1, title="one", is_read=True)))
        self.assertTrue(self.favorites.toggle(Story(id=2, title="two", is_new=True)))

        saved = json.loads(self.store.get(FAVORITES_KEY))
        self.assertEqual([item["story"]["id"] for item in saved], [2, 1])
        self.assertNotIn("is_read", saved[1]["story"])
        self.assertIsInstance(saved[0]["savedAt"], int)
        self.assertEqual([s.title for s in self.favorites.stories()], ["two", "one"])

    def test_toggle_twice_removes(self):
        story = Story(id=5, title="five")
        self.favorites.toggle(story)
        self.assertFalse(self.favorites.toggle(story))
        self.assertFalse(self.favorites.is_favorited(5))

    def test_adding_twice_keeps_one_entry(self):
        story = Story(id=5, title="five")
        self.favorites.add(story)
        self.favorites.add(story)
        self.assertEqual(len(self.favorites.load()), 1)

    def test_corrupt_favorites_load_empty(self):
        self.store.set(FAVORITES_KEY, "{not json")
        self.assertEqual(self.favorites.load(), [])
        self.store.set(FAVORITES_KEY, json.dumps([{"story": "bad"}, 3]))
        self.assertEqual(self.favorites.stories(), [])


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="hn_reader_config_")
        self.config_path = os.path.join(self.test_dir, "hn-reader", "config.json")
        self.path_patcher = patch.object(config, "CONFIG_PATH", self.config_path)
        self.path_patcher.start()

    def tearDown(self):
        self.path_patcher.stop()
        shutil.rmtree(self.test_dir)

    def test_load_config_creates_defaults(self):
        loaded = config.load_config()
        self.assertTrue(os.path.exists(self.config_path))
        self.assertEqual(loaded["api_base_url"], config.DEFAULT_API_BASE_URL)
        self.assertEqual(loaded["reconnect_delay"], 5.0)

    def test_load_config_merges_user_values(self):
        config.save_config({"api_base_url": "http://news.example/api"})
        loaded = config.load_config()
        self.assertEqual(loaded["api_base_url"], "http://news.example/api")
        self.assertEqual(loaded["initial_items"], config.INITIAL_ITEMS)

    def test_corrupt_config_falls_back_to_defaults(self):
        os.makedirs(os.path.dirname(self.config_path))
        with open(self.config_path, "w") as f:
            f.write("{broken")
        self.assertEqual(config.load_config(), config.DEFAULT_CONFIG)

    @patch.dict(os.environ, {config.API_BASE_URL_ENV: "http://env.example/api/"})
    def test_environment_overrides_config(self):
        url = config.resolve_api_base_url({"api_base_url": "http://file.example/api"})
        self.assertEqual(url, "http://env.example/api")

    @patch.dict(os.environ, {}, clear=True)
    def test_resolve_falls_back_to_default(self):
        self.assertEqual(config.resolve_api_base_url({"api_base_url": "  "}), config.DEFAULT_API_BASE_URL)
        self.assertEqual(config.resolve_api_base_url({"api_base_url": "http://x/api/"}), "http://x/api")


if __name__ == "__main__":
    unittest.main()
