import json
import tempfile
import unittest
from pathlib import Path

from session_insights.parsers.sessions import (
    SessionParseError,
    iter_session_files,
    load_session_record,
    session_id_for,
)


class SessionReaderTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

    def _write(self, relative_path: str, content: str) -> Path:
        path = self.root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def test_walks_nested_directories_in_name_order(self) -> None:
        self._write("b-project/chats/session-2.json", "{}")
        self._write("a-project/chats/session-9.json", "{}")
        self._write("a-project/chats/session-1.json", "{}")
        self._write("session-0.json", "{}")

        names = [path.relative_to(self.root).as_posix() for path in iter_session_files(self.root)]

        self.assertEqual(
            names,
            [
                "a-project/chats/session-1.json",
                "a-project/chats/session-9.json",
                "b-project/chats/session-2.json",
                "session-0.json",
            ],
        )

    def test_ignores_unrelated_files(self) -> None:
        self._write("chats/session-1.json", "{}")
        self._write("chats/session-1.json.bak", "{}")
        self._write("chats/logs.json", "{}")
        self._write("chats/session-notes.txt", "notes")
        (self.root / "session-dir.json").mkdir()

        names = [path.name for path in iter_session_files(self.root)]
        self.assertEqual(names, ["session-1.json"])

    def test_missing_root_yields_nothing(self) -> None:
        self.assertEqual(list(iter_session_files(self.root / "absent")), [])
        self.assertEqual(list(iter_session_files(None)), [])

    def test_walk_is_restartable(self) -> None:
        self._write("session-1.json", "{}")
        self._write("session-2.json", "{}")
        first = list(iter_session_files(self.root))
        second = list(iter_session_files(self.root))
        self.assertEqual(first, second)

    def test_load_record_rejects_invalid_json_and_non_objects(self) -> None:
        broken = self._write("session-broken.json", '{"startTime": ')
        array = self._write("session-array.json", "[1, 2, 3]")

        with self.assertRaises(SessionParseError):
            load_session_record(broken)
        with self.assertRaises(SessionParseError):
            load_session_record(array)
        with self.assertRaises(SessionParseError):
            load_session_record(self.root / "session-missing.json")

    def test_session_id_falls_back_to_filename(self) -> None:
        path = self._write("session-abc.json", json.dumps({"messages": []}))
        self.assertEqual(session_id_for({"sessionId": "real-id"}, path), "real-id")
        self.assertEqual(session_id_for({"sessionId": "  "}, path), "session-abc")
        self.assertEqual(session_id_for({}, path), "session-abc")


if __name__ == "__main__":
    unittest.main()
