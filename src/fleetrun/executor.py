"""Fan-out of one session runner per host."""

from __future__ import annotations

import asyncio
import logging

from .errors import HostExecutionError
from .fleet import HostDescriptor
from .session import ExecutionRequest, ResultFrame, SessionRunner
from .sink import OutputSink

logger = logging.getLogger(__name__)


class Executor:
    """Runs the payload on every host of a fleet concurrently.

    Each host gets exactly one attempt. Frames are recorded on the sink as
    they complete; the only synchronization point is the final join.
    """

    def __init__(
        self,
        sink: OutputSink,
        runner: SessionRunner | None = None,
        max_parallel: int | None = None,
    ):
        if max_parallel is not None and max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")
        self.sink = sink
        self.runner = runner or SessionRunner()
        self.max_parallel = max_parallel

    async def execute(
        self, fleet: list[HostDescriptor], payload: str, credential: str
    ) -> list[ResultFrame]:
        """Run on all hosts and return the frames in completion order."""
        frames: list[ResultFrame] = []
        # None means unbounded: every host starts immediately
        semaphore = (
            asyncio.Semaphore(self.max_parallel) if self.max_parallel is not None else None
        )

        async def run_host(host: HostDescriptor) -> None:
            request = ExecutionRequest(descriptor=host, payload=payload, credential=credential)
            if semaphore is not None:
                async with semaphore:
                    frame = await self._run_one(request)
            else:
                frame = await self._run_one(request)
            self.sink.record(frame)
            frames.append(frame)

        logger.info("Running on %d hosts", len(fleet))
        tasks = [asyncio.create_task(run_host(host)) for host in fleet]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for host, result in zip(fleet, results):
            if isinstance(result, Exception):
                logger.error("[%s] Frame was not recorded: %s", host.address, result)

        failed = sum(1 for frame in frames if not frame.ok)
        logger.info("Finished %d hosts, %d failed", len(frames), failed)
        return frames

    async def _run_one(self, request: ExecutionRequest) -> ResultFrame:
        """Run one host, turning anything the runner raises into a frame."""
        try:
            return await self.runner.run(request)
        except Exception as e:
            label = request.descriptor.address
            logger.exception("[%s] Runner failed", label)
            return ResultFrame(
                host_label=label,
                execution_error=HostExecutionError(label, str(e) or type(e).__name__),
            )

    def run(
        self, fleet: list[HostDescriptor], payload: str, credential: str
    ) -> list[ResultFrame]:
        """Blocking wrapper around execute()."""
        return asyncio.run(self.execute(fleet, payload, credential))
