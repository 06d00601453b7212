"""Tests for the fan-out executor."""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetrun.errors import HostConnectionError
from fleetrun.executor import Executor
from fleetrun.fleet import parse_host_line
from fleetrun.session import ExecutionRequest, ResultFrame, SessionRunner
from fleetrun.sink import OutputSink, render_frame


class FakeRunner(SessionRunner):
    """Runner that sleeps per host instead of connecting."""

    def __init__(self, delays: dict[str, float] | None = None):
        super().__init__()
        self.delays = delays or {}
        self.requests: list[ExecutionRequest] = []
        self.active = 0
        self.peak = 0

    async def run(self, request: ExecutionRequest) -> ResultFrame:
        self.requests.append(request)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(request.descriptor.address, 0.01))
        finally:
            self.active -= 1
        return ResultFrame(
            host_label=request.descriptor.address,
            output=f"ran on {request.descriptor.host}\n".encode(),
        )


def make_fleet(count: int) -> list:
    return [parse_host_line(f"user@host{i}") for i in range(count)]


@pytest.fixture
def log() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def sink(log: io.StringIO) -> OutputSink:
    return OutputSink(log, console=None)


@pytest.mark.asyncio
async def test_every_host_gets_one_frame(sink: OutputSink) -> None:
    """N hosts produce N frames, all recorded before execute returns."""
    runner = FakeRunner()
    fleet = make_fleet(5)

    frames = await Executor(sink, runner=runner).execute(fleet, "uptime", "pw")

    assert len(frames) == 5
    assert sink.frames_recorded == 5
    assert sorted(f.host_label for f in frames) == sorted(h.address for h in fleet)
    assert len(runner.requests) == 5


@pytest.mark.asyncio
async def test_requests_share_payload_and_credential(sink: OutputSink) -> None:
    """Every runner receives the same payload and credential."""
    runner = FakeRunner()

    await Executor(sink, runner=runner).execute(make_fleet(3), "df -h", "secret")

    assert {r.payload for r in runner.requests} == {"df -h"}
    assert {r.credential for r in runner.requests} == {"secret"}


@pytest.mark.asyncio
async def test_frames_in_completion_order(sink: OutputSink, log: io.StringIO) -> None:
    """Frames are recorded as they finish, not in fleet order."""
    fleet = make_fleet(3)
    runner = FakeRunner(
        {"user@host0": 0.15, "user@host1": 0.05, "user@host2": 0.1}
    )

    frames = await Executor(sink, runner=runner).execute(fleet, "uptime", "pw")

    assert [f.host_label for f in frames] == ["user@host1", "user@host2", "user@host0"]
    assert log.getvalue() == "".join(render_frame(f) for f in frames)


@pytest.mark.asyncio
async def test_hosts_run_concurrently(sink: OutputSink) -> None:
    """With no limit all hosts are in flight at once."""
    runner = FakeRunner({f"user@host{i}": 0.1 for i in range(6)})

    start = asyncio.get_event_loop().time()
    await Executor(sink, runner=runner).execute(make_fleet(6), "uptime", "pw")
    elapsed = asyncio.get_event_loop().time() - start

    assert runner.peak == 6
    assert elapsed < 0.5


@pytest.mark.asyncio
async def test_max_parallel_bounds_concurrency(sink: OutputSink) -> None:
    """max_parallel caps the number of hosts in flight."""
    runner = FakeRunner()

    frames = await Executor(sink, runner=runner, max_parallel=2).execute(
        make_fleet(7), "uptime", "pw"
    )

    assert runner.peak == 2
    assert len(frames) == 7


@pytest.mark.asyncio
async def test_empty_fleet(sink: OutputSink) -> None:
    """An empty fleet finishes immediately with no frames."""
    frames = await Executor(sink, runner=FakeRunner()).execute([], "uptime", "pw")

    assert frames == []
    assert sink.frames_recorded == 0


@pytest.mark.asyncio
async def test_failed_host_does_not_block_others(sink: OutputSink) -> None:
    """An unreachable host still lets the reachable one report."""
    conn = MagicMock()
    conn.run = AsyncMock(
        return_value=MagicMock(stdout=b"fine\n", exit_status=0, exit_signal=None)
    )

    async def connect(host, **kwargs):
        if host == "10.0.0.1":
            raise OSError("No route to host")
        return conn

    fleet = [parse_host_line("alice@10.0.0.1"), parse_host_line("bob@10.0.0.2:2200")]
    with patch("fleetrun.session.asyncssh.connect", new=connect):
        frames = await Executor(sink).execute(fleet, "uptime", "pw")

    by_host = {f.host_label: f for f in frames}
    assert isinstance(by_host["alice@10.0.0.1"].connection_error, HostConnectionError)
    assert by_host["alice@10.0.0.1"].output == b""
    assert by_host["bob@10.0.0.2"].ok
    assert by_host["bob@10.0.0.2"].output == b"fine\n"


def test_run_blocks_until_done(sink: OutputSink) -> None:
    """The synchronous wrapper returns every frame."""
    frames = Executor(sink, runner=FakeRunner()).run(make_fleet(2), "uptime", "pw")

    assert len(frames) == 2


@pytest.mark.asyncio
async def test_unexpected_error_on_one_host_keeps_others(sink: OutputSink) -> None:
    """A host whose connect raises something odd does not lose the other frames."""
    conn = MagicMock()
    conn.run = AsyncMock(
        return_value=MagicMock(stdout=b"fine\n", exit_status=0, exit_signal=None)
    )

    async def connect(host, **kwargs):
        if host == "a":
            raise ValueError("boom")
        await asyncio.sleep(0.05)
        return conn

    fleet = [parse_host_line("u@a"), parse_host_line("u@b")]
    with patch("fleetrun.session.asyncssh.connect", new=connect):
        frames = await Executor(sink).execute(fleet, "uptime", "pw")

    by_host = {f.host_label: f for f in frames}
    assert set(by_host) == {"u@a", "u@b"}
    assert by_host["u@a"].connection_error is not None
    assert by_host["u@b"].output == b"fine\n"
    assert sink.frames_recorded == 2


class ExplodingRunner(FakeRunner):
    """Runner that raises for one host instead of returning a frame."""

    async def run(self, request: ExecutionRequest) -> ResultFrame:
        if request.descriptor.host == "host0":
            raise RuntimeError("runner bug")
        return await super().run(request)


@pytest.mark.asyncio
async def test_runner_exception_still_yields_frame(sink: OutputSink) -> None:
    """Every host gets a frame even when its runner raises."""
    frames = await Executor(sink, runner=ExplodingRunner({"user@host1": 0.05})).execute(
        make_fleet(2), "uptime", "pw"
    )

    by_host = {f.host_label: f for f in frames}
    assert "runner bug" in str(by_host["user@host0"].execution_error)
    assert by_host["user@host1"].ok
    assert sink.frames_recorded == 2


@pytest.mark.parametrize("max_parallel", [0, -1])
def test_rejects_non_positive_max_parallel(sink: OutputSink, max_parallel: int) -> None:
    """A concurrency limit below 1 is refused up front."""
    with pytest.raises(ValueError, match="max_parallel"):
        Executor(sink, max_parallel=max_parallel)
