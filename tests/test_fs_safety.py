import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from agentmux.fs.atomic import append_jsonl, atomic_write_text
from agentmux.fs.safety import validate_profile_name, validate_session_id
from agentmux.paths import profile_config_path, session_log_path


class FsSafetyTests(unittest.TestCase):
    def test_atomic_write_replaces_content(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "nested" / "config.toml"
            atomic_write_text(target, "a = 1\n")
            atomic_write_text(target, "a = 2\n")
            self.assertEqual(target.read_text(encoding="utf-8"), "a = 2\n")
            self.assertEqual([path.name for path in target.parent.iterdir()], ["config.toml"])

    def test_atomic_write_cleans_temp_file_on_failure(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "config.toml"
            target.write_text("old", encoding="utf-8")
            with patch("agentmux.fs.atomic.os.replace", side_effect=OSError("boom")):
                with self.assertRaises(OSError):
                    atomic_write_text(target, "new")
            self.assertEqual(target.read_text(encoding="utf-8"), "old")
            self.assertEqual([path.name for path in Path(temp_dir).iterdir()], ["config.toml"])

    def test_append_jsonl_repairs_missing_newline(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "events.jsonl"
            path.write_text('{"a": 1}', encoding="utf-8")
            append_jsonl(path, {"b": 2})
            self.assertEqual(path.read_text(encoding="utf-8"), '{"a": 1}\n{"b": 2}\n')

    def test_profile_name_validation(self) -> None:
        validate_profile_name("work.v2_alt-1")
        for name in ("", "..", "a/b", "a b", "名稱", "../x"):
            with self.assertRaises(ValueError):
                validate_profile_name(name)

    def test_paths_reject_traversal(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            os.environ["AGENTMUX_HOME"] = temp_dir
            try:
                self.assertEqual(
                    profile_config_path("work"),
                    Path(temp_dir) / "profiles" / "work" / "config.toml",
                )
                with self.assertRaises(ValueError):
                    session_log_path("../escape")
                with self.assertRaises(ValueError):
                    validate_session_id("a/b")
            finally:
                os.environ.pop("AGENTMUX_HOME", None)


if __name__ == "__main__":
    unittest.main()
