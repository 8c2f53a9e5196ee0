import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from session_insights.models import PipelineStage
from session_insights.repositories import FacetCache, read_json
from session_insights.services.orchestrator import InsightsPipeline, PipelineSettings
from session_insights.services.report import RenderError

START_SECONDS = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc).timestamp()


class _Clock:
    def __init__(self, seconds: float):
        self.seconds = seconds

    def __call__(self) -> float:
        return self.seconds


def _session(session_id: str, day: int, user_turns: int, tool_error: bool = False) -> dict:
    messages = []
    for turn in range(user_turns):
        messages.append(
            {"type": "user", "content": f"request {turn}", "timestamp": f"2024-01-{day:02d}T10:{turn * 2:02d}:00Z"}
        )
        reply = {"type": "gemini", "content": f"reply {turn}", "timestamp": f"2024-01-{day:02d}T10:{turn * 2 + 1:02d}:00Z"}
        if tool_error and turn == 0:
            reply["toolCalls"] = [{"name": "read_file", "status": "error", "resultDisplay": "File not found"}]
        messages.append(reply)
    return {
        "sessionId": session_id,
        "startTime": f"2024-01-{day:02d}T10:00:00Z",
        "lastUpdated": f"2024-01-{day:02d}T10:30:00Z",
        "messages": messages,
    }


class InsightsPipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        base = Path(tmpdir.name)
        self.session_dir = base / "sessions"
        self.session_dir.mkdir()
        self.settings = PipelineSettings(
            session_dir=self.session_dir,
            cache_dir=base / "cache",
            work_dir=base / "work",
            report_path=base / "out" / "report.json",
            sample_size=5,
            retention_days=30,
        )
        self.clock = _Clock(START_SECONDS)
        self.facets = FacetCache(self.settings.facets_dir)

    def _write_session(self, payload: dict) -> None:
        path = self.session_dir / "chats" / f"session-{payload['sessionId']}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")

    def _pipeline(self, **kwargs) -> InsightsPipeline:
        return InsightsPipeline(self.settings, clock=self.clock, **kwargs)

    def _seed_sessions(self) -> None:
        self._write_session(_session("alpha", 10, user_turns=3))
        self._write_session(_session("beta", 11, user_turns=2, tool_error=True))
        self._write_session(_session("gamma", 12, user_turns=1))

    def test_full_resumable_run(self) -> None:
        self._seed_sessions()
        pipeline = self._pipeline()
        artifacts = pipeline.artifacts

        first = pipeline.run()
        self.assertEqual(first.stage, PipelineStage.SAMPLING)
        self.assertIn("TODO:", first.message)
        todo = read_json(artifacts.todo_path)
        self.assertEqual(todo["task"], "EXTRACT_FACETS")
        self.assertEqual([s["id"] for s in todo["sessions"]], ["beta", "alpha"])
        self.assertTrue(todo["sessions"][0]["transcript"].startswith("===SESSION_BOUNDARY::beta==="))
        self.assertIn("properties", todo["facetSchema"])
        self.assertEqual(artifacts.load_state().startTime, int(START_SECONDS * 1000))

        self.facets.write("beta", {"outcome": "fully_achieved", "friction_counts": {"tool_failures": 1}})
        self.clock.seconds += 2
        second = self._pipeline().run()
        self.assertEqual(second.stage, PipelineStage.SAMPLING)
        todo = read_json(artifacts.todo_path)
        self.assertEqual([s["id"] for s in todo["sessions"]], ["alpha"])

        self.facets.write("alpha", {"outcome": "partially_achieved"})
        self.clock.seconds += 2
        third = self._pipeline().run()
        self.assertEqual(third.stage, PipelineStage.SYNTHESIZING)
        todo = read_json(artifacts.todo_path)
        self.assertEqual(todo["task"], "GLOBAL_SYNTHESIS")
        self.assertEqual(todo["synthesisPath"], str(artifacts.synthesis_path))
        stats = read_json(artifacts.stats_path)
        self.assertEqual(stats["qualitative"]["outcomes"], {"fully_achieved": 1, "partially_achieved": 1})
        all_facets = read_json(artifacts.facets_path)
        self.assertEqual([facet["session_id"] for facet in all_facets], ["beta", "alpha"])

        artifacts.synthesis_path.write_text(
            json.dumps({"at_a_glance": {"whats_working": "steady edits"}, "project_areas": []}),
            encoding="utf-8",
        )
        self.clock.seconds += 1
        done = self._pipeline().run()

        self.assertEqual(done.stage, PipelineStage.DONE)
        self.assertTrue(done.message.startswith("FINISH: Report generated successfully at"))
        self.assertTrue(self.settings.report_path.exists())
        self.assertFalse(artifacts.todo_path.exists())
        self.assertFalse(artifacts.state_path.exists())
        self.assertTrue(artifacts.synthesis_path.exists())

        stats = read_json(artifacts.stats_path)
        self.assertEqual(stats["meta"]["generationTimeMs"], 5000)
        self.assertEqual(stats["meta"]["qualitativeSessionsAnalyzed"], 2)
        self.assertEqual(stats["meta"]["totalSessionsScanned"], 3)
        report = json.loads(self.settings.report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["y"]["ag"], {"whats_working": "steady edits"})
        self.assertEqual(report["s"]["sa"], 3)
        self.assertEqual(report["s"]["me"]["gt"], 5000)

    def test_resume_reports_pending_request(self) -> None:
        self._seed_sessions()
        self.assertEqual(self._pipeline().run().stage, PipelineStage.SAMPLING)

        with self.assertLogs("insights.orchestrator", level="INFO") as captured:
            outcome = self._pipeline().run()

        self.assertEqual(outcome.stage, PipelineStage.SAMPLING)
        self.assertTrue(any("pending EXTRACT_FACETS request" in line for line in captured.output))

    def test_existing_facets_skip_sampling(self) -> None:
        self._seed_sessions()
        self.facets.write("alpha", {"outcome": "fully_achieved"})
        self.facets.write("beta", {"outcome": "not_achieved"})

        outcome = self._pipeline().run()

        self.assertEqual(outcome.stage, PipelineStage.SYNTHESIZING)

    def test_corrupt_facet_is_requested_again(self) -> None:
        self._seed_sessions()
        self.facets.write("alpha", {"outcome": "fully_achieved"})
        self.facets.path_for("beta").write_text("{broken", encoding="utf-8")

        pipeline = self._pipeline()
        outcome = pipeline.run()

        self.assertEqual(outcome.stage, PipelineStage.SAMPLING)
        todo = read_json(pipeline.artifacts.todo_path)
        self.assertEqual([s["id"] for s in todo["sessions"]], ["beta"])

    def test_empty_history_goes_straight_to_synthesis(self) -> None:
        pipeline = self._pipeline()
        outcome = pipeline.run()
        self.assertEqual(outcome.stage, PipelineStage.SYNTHESIZING)
        self.assertEqual(read_json(pipeline.artifacts.facets_path), [])

    def test_unresolved_session_dir_fails(self) -> None:
        self.settings.session_dir = None
        outcome = self._pipeline().run()
        self.assertEqual(outcome.stage, PipelineStage.FAILED)
        self.assertIn("session directory", outcome.message)

    def test_render_failure_keeps_resume_state(self) -> None:
        self._seed_sessions()
        self.facets.write("alpha", {"outcome": "fully_achieved"})
        self.facets.write("beta", {"outcome": "not_achieved"})
        renderer = mock.Mock()
        renderer.render.side_effect = RenderError("template missing")
        pipeline = self._pipeline(renderer=renderer)
        pipeline.artifacts.synthesis_path.parent.mkdir(parents=True, exist_ok=True)
        pipeline.artifacts.synthesis_path.write_text("{}", encoding="utf-8")

        outcome = pipeline.run()

        self.assertEqual(outcome.stage, PipelineStage.FAILED)
        self.assertIn("template missing", outcome.message)
        renderer.render.assert_called_once()
        self.assertTrue(pipeline.artifacts.state_path.exists())
        self.assertTrue(pipeline.artifacts.stats_path.exists())

    def test_corrupt_state_starts_a_new_run(self) -> None:
        pipeline = self._pipeline()
        pipeline.artifacts.state_path.parent.mkdir(parents=True, exist_ok=True)
        pipeline.artifacts.state_path.write_text("not json", encoding="utf-8")

        pipeline.run()

        self.assertEqual(pipeline.artifacts.load_state().startTime, int(START_SECONDS * 1000))

    def test_from_env_prefers_overrides(self) -> None:
        settings = PipelineSettings.from_env(
            session_dir=self.session_dir,
            cache_dir=self.settings.cache_dir,
            work_dir=self.settings.work_dir,
            report_path=self.settings.report_path,
            template_path=None,
        )
        self.assertEqual(settings.session_dir, self.session_dir)
        self.assertEqual(settings.facets_dir, self.settings.cache_dir / "facets")
        self.assertIsNone(settings.template_path)


if __name__ == "__main__":
    unittest.main()
