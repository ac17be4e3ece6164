import json
import os
import tempfile
import unittest
from unittest import mock

from typer.testing import CliRunner

from trace_lab import analyzer
from trace_lab.cli import app

from tests.fakes import FakeOpener, process, samples_for, timeline_ms


def _fake_opener():
    return FakeOpener(
        [process(4, "System"), process(8, "svchost.exe"), process(12, "svchost.exe")],
        samples=samples_for({4: 10, 8: 5}),
        timeline=timeline_ms(1000)
    )


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.trace_path = os.path.join(self._tmp.name, "trace.etl")
        with open(self.trace_path, "wb") as f:
            f.write(b"trace")
        self.out_path = os.path.join(self._tmp.name, "report.json")

        patcher = mock.patch.object(
            analyzer, "perfetto_opener", side_effect=lambda config=None: _fake_opener()
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_greet(self):
        result = self.runner.invoke(app, ["greet", "Ada"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Hello, Ada!", result.output)

    def test_greet_keeps_bracketed_name_verbatim(self):
        for name in ["[b]Ada[/b]", "[/x]"]:
            result = self.runner.invoke(app, ["greet", name])
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn(f"Hello, {name}!", result.output)

    def test_error_message_keeps_bracketed_path(self):
        result = self.runner.invoke(app, ["summarize", "--trace", "[run]nope.etl"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("[run]nope.etl", result.output)

    def test_greet_blank_fails(self):
        result = self.runner.invoke(app, ["greet", " "])
        self.assertEqual(result.exit_code, 1)

    def test_summarize_writes_report(self):
        result = self.runner.invoke(
            app, ["summarize", "--trace", self.trace_path, "--out", self.out_path]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        with open(self.out_path) as f:
            report = json.load(f)
        self.assertEqual(report["processes"]["total_count"], 3)
        self.assertEqual(report["processes"]["top_processes"][0]["process_name"], "svchost.exe")
        self.assertEqual(report["timeline"]["duration_formatted"], "1.00 seconds")

    def test_cpu_writes_report(self):
        result = self.runner.invoke(
            app,
            ["cpu", "--trace", self.trace_path, "--pid", "4", "--pid", "99", "--out", self.out_path]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        with open(self.out_path) as f:
            report = json.load(f)
        self.assertEqual(report["query"]["missing_process_ids"], [99])
        self.assertEqual(report["process_details"][0]["cpu_sampling"]["cpu_usage_percent"], 1.0)

    def test_missing_trace_exits_with_error(self):
        missing = os.path.join(self._tmp.name, "nope.etl")
        result = self.runner.invoke(app, ["summarize", "--trace", missing])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("not found", result.output)

    def test_bad_environment_exits(self):
        with mock.patch.dict(os.environ, {"TRACE_LAB_TP_LOAD_TIMEOUT": "never"}):
            result = self.runner.invoke(app, ["sysinfo"])
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
