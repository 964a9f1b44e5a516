import os
import sys
import tempfile
import tomllib
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from agentmux.config import UNSET, ConfigDocument, Layer, LayerStore, default_document
from agentmux.config.store import document_from_dict, document_to_dict
from agentmux.errors import ConfigIOError, ConfigMalformedError


class LayerStoreTests(unittest.TestCase):
    def test_missing_global_returns_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            os.environ["AGENTMUX_HOME"] = temp_dir
            try:
                store = LayerStore()
                document = store.load_global()
                self.assertTrue(document.is_complete())
                self.assertEqual(document, default_document())
            finally:
                os.environ.pop("AGENTMUX_HOME", None)

    def test_partial_global_is_filled_with_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            (data_dir / "config.toml").write_text(
                "\n".join(
                    [
                        "[sandbox]",
                        'default_image = "custom:1"',
                        "",
                        "[hooks]",
                        'on_create = ["echo g"]',
                    ]
                ),
                encoding="utf-8",
            )
            document = LayerStore(data_dir).load_global()
            self.assertEqual(document.sandbox.default_image, "custom:1")
            self.assertEqual(document.hooks.on_create, ["echo g"])
            self.assertEqual(document.hooks.on_launch, [])
            self.assertTrue(document.worktree.auto_cleanup)

    def test_missing_profile_is_empty_document(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            document = LayerStore(Path(temp_dir)).load_profile("work")
            self.assertTrue(document.is_empty())
            self.assertIs(document.hooks.on_create, UNSET)

    def test_whitespace_profile_is_empty_document(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = LayerStore(Path(temp_dir))
            path = store.profile_path("work")
            path.parent.mkdir(parents=True)
            path.write_text("  \n\n", encoding="utf-8")
            self.assertTrue(store.load_profile("work").is_empty())

    def test_rejects_invalid_profile_name(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = LayerStore(Path(temp_dir))
            with self.assertRaises(ValueError):
                store.load_profile("../escape")
            with self.assertRaises(ValueError):
                store.load_profile("a b")

    def test_absent_repo_differs_from_empty_repo(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = Path(temp_dir) / "repo"
            repo.mkdir()
            store = LayerStore(Path(temp_dir) / "data")
            self.assertIsNone(store.load_repo(repo))

            config_path = repo / ".agentmux" / "config.toml"
            config_path.parent.mkdir()
            config_path.write_text("", encoding="utf-8")
            document = store.load_repo(repo)
            self.assertIsNotNone(document)
            self.assertTrue(document.is_empty())

    def test_malformed_toml_raises_with_path(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            path = data_dir / "config.toml"
            path.write_text("[sandbox\nbroken = ", encoding="utf-8")
            with self.assertRaises(ConfigMalformedError) as ctx:
                LayerStore(data_dir).load_global()
            self.assertEqual(ctx.exception.path, path)
            self.assertIn(str(path), str(ctx.exception))

    def test_invalid_utf8_is_malformed(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            path = data_dir / "config.toml"
            path.write_bytes(b'default_profile = "\xff"\n')
            with self.assertRaises(ConfigMalformedError) as ctx:
                LayerStore(data_dir).load_global()
            self.assertEqual(ctx.exception.path, path)
            self.assertIn("UTF-8", ctx.exception.reason)

    def test_ill_typed_value_is_malformed(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            (data_dir / "config.toml").write_text('[hooks]\non_create = "echo"\n', encoding="utf-8")
            with self.assertRaises(ConfigMalformedError):
                LayerStore(data_dir).load_global()

    def test_invalid_volume_and_memory_are_malformed(self) -> None:
        with self.assertRaises(ValueError):
            document_from_dict({"sandbox": {"extra_volumes": ["only-one-part"]}})
        with self.assertRaises(ValueError):
            document_from_dict({"sandbox": {"memory_limit": "lots"}})
        with self.assertRaises(ValueError):
            document_from_dict({"updates": {"check_interval_hours": 0}})
        with self.assertRaises(ValueError):
            document_from_dict({"tmux": {"mouse": "sometimes"}})

    def test_unknown_keys_are_ignored(self) -> None:
        with self.assertLogs("agentmux.config.store", level="WARNING"):
            document = document_from_dict({"sandbox": {"nope": 1}, "mystery": {}})
        self.assertTrue(document.is_empty())

    def test_read_error_is_io_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            (data_dir / "config.toml").write_text("", encoding="utf-8")
            with patch.object(Path, "read_text", side_effect=PermissionError("denied")):
                with self.assertRaises(ConfigIOError):
                    LayerStore(data_dir).load_global()

    def test_save_writes_only_set_fields(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = Path(temp_dir) / "repo"
            repo.mkdir()
            store = LayerStore(Path(temp_dir) / "data")
            document = ConfigDocument()
            document.hooks.on_launch = []
            document.sandbox.environment_values = {"KEY": "$HOSTVAR"}

            path = store.save(Layer.REPO, document, repo_path=repo)

            self.assertEqual(path, repo / ".agentmux" / "config.toml")
            data = tomllib.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(data, {"sandbox": {"environment_values": {"KEY": "$HOSTVAR"}}, "hooks": {"on_launch": []}})
            loaded = store.load_repo(repo)
            self.assertEqual(loaded.hooks.on_launch, [])
            self.assertIs(loaded.hooks.on_create, UNSET)
            self.assertEqual(list(path.parent.iterdir()), [path])

    def test_save_profile_and_list(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = LayerStore(Path(temp_dir))
            document = ConfigDocument()
            document.theme.name = "dark"
            store.save(Layer.PROFILE, document, profile="work")
            self.assertEqual(store.list_profiles(), ["work"])
            self.assertEqual(store.load_profile("work").theme.name, "dark")
            with self.assertRaises(ValueError):
                store.save(Layer.PROFILE, document)

    def test_failed_save_keeps_previous_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir)
            store = LayerStore(data_dir)
            document = store.load_global()
            store.save(Layer.GLOBAL, document)
            before = store.global_path().read_text(encoding="utf-8")

            document.theme.name = "changed"
            with patch("agentmux.fs.atomic.os.replace", side_effect=OSError("disk full")):
                with self.assertRaises(ConfigIOError):
                    store.save(Layer.GLOBAL, document)

            self.assertEqual(store.global_path().read_text(encoding="utf-8"), before)
            self.assertEqual(sorted(p.name for p in data_dir.iterdir()), ["config.toml"])

    def test_none_values_are_omitted(self) -> None:
        document = default_document()
        data = document_to_dict(document)
        self.assertNotIn("default_tool", data["session"])
        self.assertNotIn("memory_limit", data["sandbox"])


if __name__ == "__main__":
    unittest.main()
