"""
Shared pytest fixtures and configuration for playdeck tests.

This module provides:
- FakeHost: an in-memory HostCapabilities with scripted commands
- Settings rooted at a fake ``/data`` directory
- Sample catalog, config and definition factories

Usage:
    Fixtures are auto-discovered by pytest::

        async def test_pull(host, settings):
            host.on("git", lambda argv: (0, "Already up to date.\\n"))
            ...
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from pathlib import Path, PurePosixPath
from typing import Any

import pytest

from playdeck.catalog.models import CatalogConfig, DemoDefinition, DemoKind, Parameter
from playdeck.core.protocols import ProcessHandle
from playdeck.core.settings import PlaydeckSettings, get_settings

# =============================================================================
# Fake host
# =============================================================================


class FakeProcess:
    """A finished-on-demand process with canned output."""

    def __init__(self, chunks: Sequence[str], exit_code: int = 0) -> None:
        self.chunks = list(chunks)
        self.exit_code = exit_code
        self.waited = False

    async def output(self) -> AsyncIterator[str]:
        for chunk in self.chunks:
            yield chunk

    async def wait(self) -> int:
        self.waited = True
        return self.exit_code


CommandResponse = ProcessHandle | tuple[int, str | Sequence[str]]
CommandHandler = Callable[[list[str]], CommandResponse]


class FakeHost:
    """In-memory filesystem plus scripted commands.

    ``mkdir`` and ``rm`` act on the fake filesystem.  Other programs must be
    registered with :meth:`on`; unknown programs fail to spawn like a
    missing binary.
    """

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.dirs: set[str] = {"/"}
        self.commands: list[list[str]] = []
        self.envs: list[Mapping[str, str] | None] = []
        self.read_errors: dict[str, OSError] = {}
        self.write_errors: dict[str, OSError] = {}
        self._handlers: dict[str, CommandHandler] = {
            "mkdir": self._mkdir,
            "rm": self._rm,
        }

    # -- filesystem -----------------------------------------------------

    def read_file(self, path: Any) -> str:
        key = _norm(path)
        if key in self.read_errors:
            raise self.read_errors[key]
        if key not in self.files:
            raise FileNotFoundError(key)
        return self.files[key]

    def write_file(self, path: Any, content: str) -> None:
        key = _norm(path)
        if key in self.write_errors:
            raise self.write_errors[key]
        self.mkdir(str(PurePosixPath(key).parent))
        self.files[key] = content

    def list_dir(self, path: Any) -> list[str]:
        key = _norm(path)
        if key not in self.dirs:
            raise FileNotFoundError(key)
        prefix = key.rstrip("/") + "/"
        names = {
            entry[len(prefix):].split("/", 1)[0]
            for entry in (*self.files, *self.dirs)
            if entry.startswith(prefix) and entry != key
        }
        return sorted(names)

    def mkdir(self, path: Any) -> None:
        current = PurePosixPath(_norm(path))
        while True:
            self.dirs.add(str(current))
            if current == current.parent:
                break
            current = current.parent

    def remove(self, path: Any) -> None:
        key = _norm(path)
        prefix = key.rstrip("/") + "/"
        self.files = {p: c for p, c in self.files.items() if p != key and not p.startswith(prefix)}
        self.dirs = {d for d in self.dirs if d != key and not d.startswith(prefix)}

    def exists(self, path: Any) -> bool:
        key = _norm(path)
        return key in self.files or key in self.dirs

    # -- processes ------------------------------------------------------

    def on(self, program: str, handler: CommandHandler) -> None:
        """Script the response for every spawn of *program*."""
        self._handlers[program] = handler

    def fail_spawn(self, program: str, message: str = "No such file or directory") -> None:
        def _raise(argv: list[str]) -> CommandResponse:
            raise FileNotFoundError(2, message, argv[0])

        self._handlers[program] = _raise

    async def spawn(
        self,
        argv: Sequence[str],
        *,
        cwd: Any = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        argv = list(argv)
        self.commands.append(argv)
        self.envs.append(env)
        handler = self._handlers.get(argv[0])
        if handler is None:
            raise FileNotFoundError(2, "No such file or directory", argv[0])
        response = handler(argv)
        if isinstance(response, ProcessHandle):
            return response
        exit_code, output = response
        chunks = [output] if isinstance(output, str) else list(output)
        return FakeProcess(chunks, exit_code)

    def commands_for(self, program: str) -> list[list[str]]:
        return [argv for argv in self.commands if argv[0] == program]

    def _mkdir(self, argv: list[str]) -> CommandResponse:
        for path in argv[1:]:
            if not path.startswith("-"):
                self.mkdir(path)
        return 0, ""

    def _rm(self, argv: list[str]) -> CommandResponse:
        for path in argv[1:]:
            if not path.startswith("-"):
                self.remove(path)
        return 0, ""


def _norm(path: Any) -> str:
    return str(PurePosixPath(str(path)))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def settings() -> PlaydeckSettings:
    """Settings rooted at ``/data`` with instant retries and flushes."""
    return PlaydeckSettings(
        data_dir=Path("/data"),
        local_collection_roots=[
            Path("/data/catalog/ansible_collections"),
            Path("/usr/share/ansible/collections/ansible_collections"),
        ],
        manifest_retries=3,
        manifest_retry_delay=0.5,
        output_flush_interval=0.0,
        poll_interval=0.01,
    )


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Keep ``get_settings()`` from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def config() -> CatalogConfig:
    return CatalogConfig(
        source="https://git.example.com/acme/demos.git",
        namespace="acme",
        collection_name="demos",
        execution_sandbox_image="quay.io/acme/ee:latest",
    )


@pytest.fixture
def collection_dir() -> str:
    return "/data/catalog/ansible_collections/acme/demos"


@pytest.fixture
def recorded_sleep():
    """An async sleep that records delays instead of waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def make_definition():
    """
    Factory fixture for creating DemoDefinition instances.

    Usage:
        def test_something(make_definition):
            demo = make_definition("web", kind="role", parameters=[...])
    """

    def _make_definition(
        demo_id: str = "web",
        *,
        name: str | None = None,
        kind: str = "playbook",
        path: str | None = None,
        parameters: list[Parameter] | None = None,
    ) -> DemoDefinition:
        demo_kind = DemoKind(kind)
        return DemoDefinition(
            id=demo_id,
            name=name or demo_id.title(),
            kind=demo_kind,
            path=path or (f"{demo_id}.yml" if demo_kind is DemoKind.PLAYBOOK else demo_id),
            parameters=parameters or [],
        )

    return _make_definition


SAMPLE_CATALOG = """\
demos:
  - id: web
    name: Web server
    description: Deploys nginx
    type: playbook
    path: web.yml
    parameters:
      - name: port
        label: Port
        type: number
        required: true
        default: 8080
      - name: flavor
        type: select
        options: [small, large]
  - id: cluster
    name: Cluster
    type: role
    path: cluster
    parameters:
      - name: count
        type: number
        required: true
"""


@pytest.fixture
def sample_catalog() -> str:
    return SAMPLE_CATALOG
