"""
Host capability protocols for playdeck.

The catalog and execution layers never touch the filesystem or start
processes directly.  They consume a narrow, explicitly injected interface:

Architecture:
    ::

        HostCapabilities
        ┌────────────────────────────────────────────────────────────┐
        │ read_file(path)            → str                           │
        │ write_file(path, content)  → None (creates parents)        │
        │ list_dir(path)             → list[str]                     │
        │ spawn(argv, cwd, env)      → ProcessHandle   (async)       │
        └────────────────────────────────────────────────────────────┘

        ProcessHandle
        ┌────────────────────────────────────────────────────────────┐
        │ output()  → AsyncIterator[str]  merged stdout/stderr chunks│
        │ wait()    → int                 exit code                  │
        └────────────────────────────────────────────────────────────┘

    Implementations:
        LocalHost   → pathlib + asyncio subprocesses (playdeck.core.host)
        FakeHost    → in-memory filesystem + scripted commands (tests)

Directory creation and removal are not part of the interface; callers spawn
``mkdir -p`` / ``rm -rf`` like any other command.

Guardrails:
    ❌ DON'T: Call ``open()``/``subprocess`` from catalog or execution code
    ✅ DO: Take a ``HostCapabilities`` in the constructor
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

PathLike = str | Path


@runtime_checkable
class ProcessHandle(Protocol):
    """A spawned process whose output can be consumed incrementally."""

    def output(self) -> AsyncIterator[str]:
        """Yield decoded output chunks until the process closes its streams."""
        ...

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        ...


@runtime_checkable
class HostCapabilities(Protocol):
    """File and process primitives provided by the host."""

    def read_file(self, path: PathLike) -> str:
        """Return the file's text. Raises ``FileNotFoundError``/``OSError``."""
        ...

    def write_file(self, path: PathLike, content: str) -> None:
        """Replace the file's content, creating parent directories."""
        ...

    def list_dir(self, path: PathLike) -> list[str]:
        """Return entry names. Raises ``FileNotFoundError`` if missing."""
        ...

    async def spawn(
        self,
        argv: Sequence[str],
        *,
        cwd: PathLike | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        """Start a process. Raises ``OSError`` if it cannot be started."""
        ...


@dataclass
class CommandResult:
    """Collected outcome of a command run to completion."""

    argv: list[str]
    exit_code: int
    output: str = ""
    chunks: list[str] = field(default_factory=list, repr=False)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


async def run_command(
    host: HostCapabilities,
    argv: Sequence[str],
    *,
    cwd: PathLike | None = None,
    env: Mapping[str, str] | None = None,
    on_output: Callable[[str], None] | None = None,
) -> CommandResult:
    """Spawn *argv*, collect its output and wait for it to exit.

    ``OSError`` from the spawn propagates unchanged; a non-zero exit is
    reported through ``CommandResult.exit_code``, not raised.
    """
    handle = await host.spawn(list(argv), cwd=cwd, env=env)
    chunks: list[str] = []
    async for chunk in handle.output():
        chunks.append(chunk)
        if on_output is not None:
            on_output(chunk)
    exit_code = await handle.wait()
    return CommandResult(argv=list(argv), exit_code=exit_code, output="".join(chunks), chunks=chunks)


__all__ = [
    "PathLike",
    "ProcessHandle",
    "HostCapabilities",
    "CommandResult",
    "run_command",
]
