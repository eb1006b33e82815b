"""Verification Test: Chaos Monkey - Random process termination resilience.

Randomly terminate dummy processes while the monitor is running and make
sure collection keeps producing snapshots instead of error events. A
process vanishing mid-poll must never surface as a crash or a HostError.
"""

import multiprocessing
import random
import time
from queue import Empty, Queue

import pytest

from sysdash.history import FetchStatus, TelemetryBuffer
from sysdash.models import HostError, Snapshot
from sysdash.monitor import HostEvent, SystemMonitor


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_monitor_survives_process_termination(self):
        """
        Test that the monitor doesn't report errors when processes die mid-poll.
        """
        processes = []
        for _ in range(30):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        queue: Queue[HostEvent] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.3)
        buffer = TelemetryBuffer(process_stale_after=2)

        try:
            monitor.start()

            # Get initial snapshot to confirm monitor is working
            first = queue.get(timeout=5.0)
            assert isinstance(first, Snapshot)
            buffer.ingest(first)

            for p in random.sample(processes, 15):
                if p.is_alive():
                    p.terminate()
                time.sleep(0.05)

            snapshots_after_chaos = 0
            start_time = time.time()
            while time.time() - start_time < 4.0:
                try:
                    event = queue.get(timeout=1.0)
                except Empty:
                    continue
                if isinstance(event, HostError):
                    pytest.fail(f"Monitor reported an error: {event.message}")
                buffer.ingest(event)
                snapshots_after_chaos += 1

            assert snapshots_after_chaos >= 3, (
                f"Expected at least 3 snapshots after chaos, got {snapshots_after_chaos}"
            )
            assert monitor.is_running, "Monitor should still be running after chaos"
            assert buffer.status is FetchStatus.SUCCEEDED

        finally:
            monitor.stop()
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=1.0)

    def test_rapid_process_creation_and_termination(self):
        """
        Test monitor stability during rapid process churn.
        """
        queue: Queue[HostEvent] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.2)
        processes = []

        try:
            monitor.start()

            start_time = time.time()
            while time.time() - start_time < 3.0:
                for _ in range(5):
                    p = multiprocessing.Process(target=dummy_worker, args=(10.0,))
                    p.start()
                    processes.append(p)

                alive = [p for p in processes if p.is_alive()]
                if len(alive) > 10:
                    for p in random.sample(alive, 3):
                        p.terminate()

                time.sleep(0.1)

            assert monitor.is_running, "Monitor crashed during rapid churn"

            events = []
            while True:
                try:
                    events.append(queue.get_nowait())
                except Empty:
                    break
            assert events, "Monitor stopped providing snapshots"
            assert not [e for e in events if isinstance(e, HostError)]

        finally:
            monitor.stop()
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=0.5)

    def test_collect_processes_handles_terminated_process(self):
        """
        Test that _collect_processes skips a process that has already exited.
        """
        p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
        p.start()
        time.sleep(0.1)
        dead_pid = p.pid

        p.terminate()
        p.join(timeout=1.0)

        queue: Queue[HostEvent] = Queue()
        monitor = SystemMonitor(queue, top_process_count=10_000)

        processes = monitor._collect_processes()

        assert all(proc.pid != dead_pid for proc in processes)
