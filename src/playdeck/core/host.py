"""Local host adapter — real filesystem and asyncio subprocesses.

Implements :class:`~playdeck.core.protocols.HostCapabilities` for the
machine playdeck runs on.

Architecture:

    .. code-block:: text

        Capability      │ Local implementation
        ────────────────┼──────────────────────────────────────────
        read_file       │ Path.read_text (utf-8)
        write_file      │ temp file in the same directory + os.replace
        list_dir        │ sorted os.listdir
        spawn           │ asyncio.create_subprocess_exec,
                        │ stderr merged into stdout

Output is decoded incrementally so a multi-byte character split across two
reads is never mangled.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import tempfile
from collections.abc import AsyncIterator, Mapping, Sequence
from pathlib import Path

from playdeck.core.logging import get_logger
from playdeck.core.protocols import PathLike

logger = get_logger(__name__)

_READ_SIZE = 4096


class LocalProcess:
    """Wraps an ``asyncio.subprocess.Process`` as a ``ProcessHandle``."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._exhausted = False

    @property
    def pid(self) -> int:
        return self._process.pid

    async def output(self) -> AsyncIterator[str]:
        stream = self._process.stdout
        if stream is None or self._exhausted:
            return
        while True:
            data = await stream.read(_READ_SIZE)
            if not data:
                break
            text = self._decoder.decode(data)
            if text:
                yield text
        self._exhausted = True
        tail = self._decoder.decode(b"", final=True)
        if tail:
            yield tail

    async def wait(self) -> int:
        if not self._exhausted and self._process.stdout is not None:
            # Drain unread output so the child cannot block on a full pipe.
            async for _ in self.output():
                pass
        return await self._process.wait()


class LocalHost:
    """Host capabilities backed by the local machine."""

    def __init__(self, *, inherit_env: bool = True) -> None:
        self._inherit_env = inherit_env

    def read_file(self, path: PathLike) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_file(self, path: PathLike, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def list_dir(self, path: PathLike) -> list[str]:
        return sorted(os.listdir(path))

    async def spawn(
        self,
        argv: Sequence[str],
        *,
        cwd: PathLike | None = None,
        env: Mapping[str, str] | None = None,
    ) -> LocalProcess:
        if not argv:
            raise OSError("Cannot spawn an empty command")
        process_env = dict(os.environ) if self._inherit_env else {}
        if env:
            process_env.update(env)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(cwd) if cwd else None,
            env=process_env,
        )
        logger.debug("process_spawned", argv=list(argv), pid=process.pid)
        return LocalProcess(process)


__all__ = ["LocalHost", "LocalProcess"]
