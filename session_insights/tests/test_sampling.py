import json
import tempfile
import unittest
from pathlib import Path

from session_insights.models import AggregateReport, SessionSummary
from session_insights.services.sampling import (
    MAX_CONTENT_CHARS,
    build_sampling_payload,
    build_session_excerpt,
    message_text,
    sample_messages,
    select_top_sessions,
)


def _summary(session_id: str, user_messages: int, tools: int = 0, errors: int = 0, path: str = "") -> SessionSummary:
    return SessionSummary.build(
        id=session_id,
        path=path or f"/nowhere/session-{session_id}.json",
        startTime=0,
        date="2024-01-10",
        durationMinutes=12,
        userMessages=user_messages,
        toolCount=tools,
        errorCount=errors,
    )


def _timestamp(index: int) -> str:
    return f"2024-01-10T10:{index:02d}:00Z"


class SelectTopSessionsTests(unittest.TestCase):
    def test_ranks_by_score_and_drops_single_turn_sessions(self) -> None:
        summaries = [
            _summary("quick", 1, tools=50),
            _summary("low", 2),
            _summary("errors", 2, tools=1, errors=2),
            _summary("busy", 3, tools=4),
        ]
        selected = select_top_sessions(summaries, 2)
        self.assertEqual([s.id for s in selected], ["errors", "busy"])

    def test_ties_keep_input_order(self) -> None:
        summaries = [_summary("first", 2), _summary("second", 2), _summary("third", 2)]
        self.assertEqual([s.id for s in select_top_sessions(summaries, 2)], ["first", "second"])
        self.assertEqual(select_top_sessions(summaries, 0), [])

    def test_selection_is_deterministic(self) -> None:
        summaries = [_summary(f"s{i}", 2 + i % 3, tools=i % 2) for i in range(10)]
        self.assertEqual(select_top_sessions(summaries, 4), select_top_sessions(summaries, 4))

        distinct = [_summary(f"d{i}", 2, tools=i) for i in range(6)]
        self.assertEqual(
            [s.id for s in select_top_sessions(distinct, 3)],
            [s.id for s in select_top_sessions(list(reversed(distinct)), 3)],
        )


class MessageSamplingTests(unittest.TestCase):
    def test_head_errors_and_tail(self) -> None:
        messages = [{"type": "user", "content": f"m{i}", "timestamp": _timestamp(i)} for i in range(30)]
        messages[15]["toolCalls"] = [{"name": "replace", "status": "error"}]

        sampled = sample_messages(messages)

        self.assertEqual(
            [m["content"] for m in sampled],
            [f"m{i}" for i in range(8)] + ["m15"] + [f"m{i}" for i in range(24, 30)],
        )

    def test_short_sessions_are_not_duplicated(self) -> None:
        messages = [{"type": "user", "content": f"m{i}", "timestamp": _timestamp(i)} for i in range(5)]
        messages[2]["toolCalls"] = [{"name": "x", "status": "error"}]
        self.assertEqual([m["content"] for m in sample_messages(messages)], ["m0", "m1", "m2", "m3", "m4"])

    def test_untimestamped_messages_sort_first(self) -> None:
        messages = [
            {"type": "user", "content": "late", "timestamp": _timestamp(5)},
            {"type": "info", "content": "no time"},
        ]
        self.assertEqual([m["content"] for m in sample_messages(messages)], ["no time", "late"])

    def test_message_text_flattens_parts(self) -> None:
        self.assertEqual(message_text({"content": "x" * (MAX_CONTENT_CHARS + 10)}), "x" * MAX_CONTENT_CHARS)
        self.assertEqual(
            message_text({"content": ["hi", {"text": "there"}, {"type": "image"}, 42]}),
            "hi\nthere\n[image]\n[PART]",
        )
        self.assertEqual(
            message_text(
                {
                    "content": "",
                    "parts": [{"functionCall": {"name": "read_file"}}, {"functionResponse": {"name": "read_file"}}],
                }
            ),
            "[CALL: read_file]\n[RESPONSE: read_file]",
        )
        self.assertEqual(message_text({}), "")


class SessionExcerptTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)

    def _write_session(self, session_id: str, messages: list) -> Path:
        path = self.root / f"session-{session_id}.json"
        path.write_text(
            json.dumps(
                {
                    "sessionId": session_id,
                    "startTime": _timestamp(0),
                    "lastUpdated": _timestamp(12),
                    "messages": messages,
                }
            ),
            encoding="utf-8",
        )
        return path

    def test_excerpt_includes_header_turns_and_tool_errors(self) -> None:
        path = self._write_session(
            "abc",
            [
                {"type": "user", "content": "fix the parser", "timestamp": _timestamp(0)},
                {
                    "type": "gemini",
                    "content": "Trying an edit",
                    "timestamp": _timestamp(1),
                    "toolCalls": [{"name": "replace", "status": "error", "resultDisplay": "E" * 5000}],
                },
            ],
        )
        excerpt = build_session_excerpt(_summary("abc", 2, tools=1, errors=1, path=str(path)))

        lines = excerpt.splitlines()
        self.assertEqual(lines[0], "===SESSION_BOUNDARY::abc===")
        self.assertEqual(lines[1], "[METADATA] ID: abc, Date: 2024-01-10, Duration: 12m, Tools: 1, Errors: 1")
        self.assertIn("[USER] fix the parser", lines)
        self.assertIn("[ASSISTANT] Trying an edit", lines)
        self.assertIn("[TOOL_ERROR] replace: " + "E" * MAX_CONTENT_CHARS, lines)

    def test_tool_error_without_result_renders_empty_text(self) -> None:
        path = self._write_session(
            "nulls",
            [
                {
                    "type": "gemini",
                    "content": "",
                    "timestamp": _timestamp(1),
                    "toolCalls": [
                        {"name": "read_file", "status": "error", "resultDisplay": None},
                        {"name": "web_fetch", "status": "error", "resultDisplay": {"code": 404}},
                    ],
                },
            ],
        )
        lines = build_session_excerpt(_summary("nulls", 2, tools=2, errors=2, path=str(path))).splitlines()

        self.assertIn("[TOOL_ERROR] read_file: ", lines)
        self.assertIn('[TOOL_ERROR] web_fetch: {"code": 404}', lines)
        self.assertFalse(any("None" in line for line in lines))

    def test_unreadable_transcript_keeps_header(self) -> None:
        excerpt = build_session_excerpt(_summary("gone", 2, path=str(self.root / "session-gone.json")))
        self.assertTrue(excerpt.startswith("===SESSION_BOUNDARY::gone===\n[METADATA] ID: gone"))
        self.assertIn("[UNAVAILABLE]", excerpt)

    def test_payload_for_selected_ids(self) -> None:
        first = self._write_session("one", [{"type": "user", "content": "hello one", "timestamp": _timestamp(0)}])
        second = self._write_session("two", [{"type": "user", "content": "hello two", "timestamp": _timestamp(0)}])
        report = AggregateReport(
            sessionList=[_summary("one", 3, path=str(first)), _summary("two", 2, path=str(second))]
        )

        only_two = build_sampling_payload(report, selected_ids=["two"])
        self.assertIn("===SESSION_BOUNDARY::two===", only_two)
        self.assertNotIn("===SESSION_BOUNDARY::one===", only_two)

        default = build_sampling_payload(report, sample_size=1)
        self.assertIn("hello one", default)
        self.assertNotIn("hello two", default)


if __name__ == "__main__":
    unittest.main()
