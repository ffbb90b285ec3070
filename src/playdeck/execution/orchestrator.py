"""Execution orchestrator — drive an instance to a terminal state.

Architecture:

    .. code-block:: text

        execute(id)
          │
          ├─ load spec + status, require a sandbox image
          ├─ status → running (fresh startedAt, empty output)
          ├─ systemd-run … ansible-navigator run …   (detached unit)
          │     │
          │     ├─ every chunk → buffer → on_output / stream()
          │     └─ every output_flush_interval → status.output (partial)
          │
          ├─ exit → read <instance>/result.json (engine side channel)
          │          exit 0  → completed, message defaults to a generic note
          │          exit N  → failed,    error defaults to "exit code N"
          │
          └─ persist final status, raise ExecutionError on failure

        spawn fails ─► failed (launch error) ─► ExecutionError

Two observation channels exist: the attached output (``on_output`` or
``stream()``) and the persisted status (``watch()`` or any poller reading
``status.json``).  No timeout or cancellation is applied to a launched run.

Example:
    >>> orchestrator = ExecutionOrchestrator(host, store, config)
    >>> async for chunk in orchestrator.stream("web-ab12"):
    ...     print(chunk, end="")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from playdeck.catalog.models import CatalogConfig
from playdeck.core.errors import ConfigurationError, ExecutionError, PlaydeckError
from playdeck.core.logging import LogContext, get_logger
from playdeck.core.protocols import HostCapabilities, run_command
from playdeck.core.retry import Sleep
from playdeck.core.settings import PlaydeckSettings, get_settings
from playdeck.execution.command import build_run_command, entrypoint_for
from playdeck.execution.models import InstanceState, InstanceStatus, utcnow_iso
from playdeck.execution.store import InstanceStore

logger = get_logger(__name__)

SUCCESS_MESSAGE = "Run completed successfully"

OutputCallback = Callable[[str], None]


class ExecutionOrchestrator:
    """Launches runs and reconciles their status into the instance store."""

    def __init__(
        self,
        host: HostCapabilities,
        store: InstanceStore,
        config: CatalogConfig,
        settings: PlaydeckSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._host = host
        self._store = store
        self._config = config
        self._settings = settings or get_settings()
        self._clock = clock
        self._sleep = sleep

    async def execute(
        self, instance_id: str, on_output: OutputCallback | None = None
    ) -> InstanceStatus:
        """Run the instance to completion and return its final status.

        Raises:
            InstanceNotFoundError / InstanceReadError: The instance cannot be loaded.
            ConfigurationError: No execution sandbox image is configured.
            InvalidTransitionError: The instance is already running.
            ExecutionError: The run could not start, exited non-zero, or its
                final status could not be persisted.
        """
        async with LogContext(instance_id=instance_id):
            instance = self._store.get(instance_id)
            image = self._config.execution_sandbox_image
            if not image:
                raise ConfigurationError(
                    "An execution sandbox image is required to run instances"
                ).with_context(instance_id=instance_id)

            await self._store.transition(
                instance_id,
                InstanceState.RUNNING,
                started_at=utcnow_iso(),
                completed_at=None,
                output="",
            )
            result_path = self._store.result_path(instance_id)

            try:
                await self._clear_result(result_path)
                entrypoint = entrypoint_for(instance.spec, self._host, self._settings)
                argv = build_run_command(
                    instance.spec, image=image, entrypoint=entrypoint, result_path=result_path
                )
                handle = await self._host.spawn(argv)
            except OSError as exc:
                error = f"Failed to launch run: {exc}"
                logger.error("run_launch_failed", error=str(exc))
                await self._persist_final(
                    instance_id,
                    state=InstanceState.FAILED,
                    error=error,
                    completed_at=utcnow_iso(),
                )
                raise ExecutionError(error, cause=exc).with_context(
                    instance_id=instance_id
                ) from exc

            logger.info("run_started", demo_id=instance.spec.demo_id, image=image)
            buffer: list[str] = []
            try:
                await self._pump(instance_id, handle.output(), buffer, on_output)
                exit_code = await handle.wait()
            except Exception as exc:
                logger.error("run_output_failed", error=str(exc))
                await self._persist_final(
                    instance_id,
                    state=InstanceState.FAILED,
                    output="".join(buffer),
                    error=f"Run output failed: {exc}",
                    completed_at=utcnow_iso(),
                )
                raise ExecutionError(f"Run output failed: {exc}", cause=exc).with_context(
                    instance_id=instance_id
                ) from exc
            output = "".join(buffer)

            final = self._final_fields(instance_id, exit_code)
            status = await self._persist_final(instance_id, output=output, **final)

            if status.state is InstanceState.FAILED:
                logger.warning("run_failed", exit_code=exit_code, error=status.error)
                raise ExecutionError(
                    status.error or f"exit code {exit_code}", exit_code=exit_code
                ).with_context(instance_id=instance_id)

            logger.info("run_completed", exit_code=exit_code)
            return status

    async def stream(self, instance_id: str) -> AsyncIterator[str]:
        """Execute and yield output chunks as they arrive.

        The run's error, if any, is raised after the last chunk.  Closing the
        iterator early does not stop the run; it still finishes and persists
        its status.
        """
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        task = asyncio.create_task(self.execute(instance_id, on_output=queue.put_nowait))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        drained = False
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                yield chunk
            drained = True
        finally:
            if not task.done():
                await asyncio.wait({task})
            if not drained and not task.cancelled() and task.exception() is not None:
                # Nobody is left to receive the error; the status record holds it.
                logger.warning(
                    "stream_closed_before_failure",
                    instance_id=instance_id,
                    error=str(task.exception()),
                )
        task.result()

    async def reapply(self, instance_id: str) -> InstanceStatus:
        """Reset the instance to ``pending`` with a fresh ``startedAt``.

        Previously recorded output, error and message are kept.
        """
        self._store.get(instance_id)
        status = await self._store.update_status(
            instance_id, state=InstanceState.PENDING, started_at=utcnow_iso()
        )
        logger.info("instance_reapplied", instance_id=instance_id)
        return status

    async def watch(
        self, instance_id: str, interval: float | None = None
    ) -> AsyncIterator[InstanceStatus]:
        """Poll the persisted status until it reaches a terminal state."""
        delay = self._settings.poll_interval if interval is None else interval
        while True:
            status = self._store.get(instance_id).status
            yield status
            if status.state.is_terminal:
                return
            await self._sleep(delay)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _pump(
        self,
        instance_id: str,
        chunks: AsyncIterator[str],
        buffer: list[str],
        on_output: OutputCallback | None,
    ) -> None:
        interval = self._settings.output_flush_interval
        last_flush = self._clock()
        async for chunk in chunks:
            buffer.append(chunk)
            if on_output is not None:
                on_output(chunk)
            if self._clock() - last_flush >= interval:
                await self._flush(instance_id, "".join(buffer))
                last_flush = self._clock()

    async def _flush(self, instance_id: str, output: str) -> None:
        try:
            await self._store.update_status(instance_id, output=output)
        except PlaydeckError as exc:
            # The final write persists everything; a lost partial is tolerated.
            logger.warning("partial_output_not_persisted", error=exc.message)

    def _final_fields(self, instance_id: str, exit_code: int) -> dict[str, Any]:
        record = self._store.read_result(instance_id) or {}
        message = _text(record.get("message"))
        error = _text(record.get("error"))
        summary = record.get("summary") if isinstance(record.get("summary"), dict) else None
        completed_at = _text(record.get("completedAt")) or utcnow_iso()

        if exit_code == 0:
            return {
                "state": InstanceState.COMPLETED,
                "message": message or SUCCESS_MESSAGE,
                "error": None,
                "summary": summary,
                "completed_at": completed_at,
            }
        return {
            "state": InstanceState.FAILED,
            "message": message,
            "error": error or f"exit code {exit_code}",
            "summary": summary,
            "completed_at": completed_at,
        }

    async def _persist_final(self, instance_id: str, **fields: Any) -> InstanceStatus:
        try:
            return await self._store.update_status(instance_id, **fields)
        except PlaydeckError as exc:
            raise ExecutionError(
                f"Failed to persist final status: {exc.message}", cause=exc
            ).with_context(instance_id=instance_id) from exc

    async def _clear_result(self, result_path: str) -> None:
        await run_command(self._host, ["rm", "-f", result_path])


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["ExecutionOrchestrator", "SUCCESS_MESSAGE", "OutputCallback"]
