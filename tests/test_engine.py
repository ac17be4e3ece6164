import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest import mock

from trace_lab.config import LabConfig
from trace_lab.engine import PerfettoTraceHandle, TraceHandle, ns_to_datetime, perfetto_opener
from trace_lab.models import CpuSample, ProcessRecord

from tests.fakes import FakeTraceHandle, process, timeline_ms


class FakeQueryResult(list):
    def __init__(self, column_names, rows):
        super().__init__(SimpleNamespace(**dict(zip(column_names, row))) for row in rows)
        self.column_names = column_names


class FakeTraceProcessor:
    """Answers the adapter's queries from canned tables."""

    def __init__(self, trace=None, config=None, clock_offset_ns=None):
        self.trace = trace
        self.config = config
        self.closed = False
        self.clock_offset_ns = clock_offset_ns

    def query(self, sql):
        if "perf_sample" in sql:
            return FakeQueryResult(["pid"], [(4,), (8,), (4,)])
        if "clock_snapshot" in sql:
            if self.clock_offset_ns is None:
                return FakeQueryResult(["offset_ns"], [])
            return FakeQueryResult(["offset_ns"], [(self.clock_offset_ns,)])
        if "trace_bounds" in sql:
            return FakeQueryResult(["start_ts", "end_ts"], [(1_000_000_000, 3_500_000_000)])
        if "FROM process" in sql:
            return FakeQueryResult(
                ["pid", "name", "cmdline"],
                [(0, None, None), (4, "System", None), (8, "svchost.exe", "svchost.exe -k")]
            )
        raise AssertionError(f"unexpected query: {sql}")

    def close(self):
        self.closed = True


class TestTraceHandle(unittest.TestCase):
    def test_base_handle_requires_source_loader(self):
        with self.assertRaises(TypeError):
            TraceHandle("t.etl")

    def test_results_available_after_process(self):
        with FakeTraceHandle("t.etl", [process(4, "System")]) as trace:
            processes = trace.use_processes()
            with self.assertRaises(RuntimeError):
                processes.result
            trace.process()
            self.assertEqual(processes.result, [process(4, "System")])
        self.assertTrue(trace.closed)
        self.assertTrue(trace.released)

    def test_register_after_process_is_error(self):
        trace = FakeTraceHandle("t.etl", [])
        trace.use_processes()
        trace.process()
        with self.assertRaises(RuntimeError):
            trace.use_cpu_samples()
        with self.assertRaises(RuntimeError):
            trace.process()
        trace.close()

    def test_same_source_registered_once(self):
        trace = FakeTraceHandle("t.etl", [], timeline=timeline_ms(5))
        self.assertIs(trace.use_metadata(), trace.use_metadata())

    def test_released_when_open_fails(self):
        trace = FakeTraceHandle("t.etl", [], error=OSError("boom"))
        with self.assertRaises(OSError):
            with trace:
                trace.use_processes()
                trace.process()
        self.assertTrue(trace.released)


class TestPerfettoTraceHandle(unittest.TestCase):
    def _patch(self, clock_offset_ns=None):
        created = []

        def factory(trace=None, config=None):
            tp = FakeTraceProcessor(trace, config, clock_offset_ns)
            created.append(tp)
            return tp

        patcher = mock.patch("trace_lab.engine.TraceProcessor", side_effect=factory)
        patcher.start()
        self.addCleanup(patcher.stop)
        return created

    def test_decodes_processes_samples_and_timeline(self):
        created = self._patch()
        config = LabConfig(trace_processor_bin="/opt/tp", load_timeout=3)

        with PerfettoTraceHandle("trace.pftrace", config) as trace:
            processes = trace.use_processes()
            samples = trace.use_cpu_samples()
            metadata = trace.use_metadata()
            trace.process()

            self.assertEqual(
                processes.result,
                [
                    ProcessRecord(0, "", None),
                    ProcessRecord(4, "System", None),
                    ProcessRecord(8, "svchost.exe", "svchost.exe -k")
                ]
            )
            self.assertEqual(
                list(samples.result),
                [CpuSample(4), CpuSample(8), CpuSample(4)]
            )
            timeline = metadata.result
            self.assertEqual(timeline.start_time, datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc))
            self.assertEqual(timeline.duration.total_seconds(), 2.5)

        tp = created[0]
        self.assertEqual(tp.trace, "trace.pftrace")
        self.assertEqual(tp.config.bin_path, "/opt/tp")
        self.assertTrue(tp.closed)

    def test_realtime_clock_offset_applied(self):
        offset = 1_700_000_000_000_000_000 - 1_000_000_000
        self._patch(clock_offset_ns=offset)

        with PerfettoTraceHandle("trace.pftrace") as trace:
            metadata = trace.use_metadata()
            trace.process()

        self.assertEqual(
            metadata.result.start_time,
            datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        )

    def test_samples_unreadable_after_close(self):
        self._patch()
        trace = PerfettoTraceHandle("trace.pftrace")
        samples = trace.use_cpu_samples()
        trace.process()
        trace.close()
        with self.assertRaises(RuntimeError):
            list(samples.result)

    def test_opener_builds_perfetto_handles(self):
        open_trace = perfetto_opener(LabConfig(verbose=True))
        handle = open_trace("x.pftrace")
        self.assertIsInstance(handle, PerfettoTraceHandle)
        self.assertTrue(handle.config.verbose)


class TestTimestamps(unittest.TestCase):
    def test_ns_to_datetime(self):
        self.assertEqual(
            ns_to_datetime(1_700_000_000_000_000_000),
            datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        )


if __name__ == "__main__":
    unittest.main()
