"""Pytest configuration and fixtures."""

import shutil
import subprocess
import tempfile
import threading
import time
from collections.abc import Callable, Generator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from devsign.app.ports import AgentInfo
from devsign.config import Settings
from devsign.utils.commands import CommandError, CommandNotFoundError, CommandRunner

DEFAULT_BINARIES = (
    "gpg",
    "gpg-agent",
    "gpg-connect-agent",
    "pinentry-curses",
    "rpm",
    "rpmsign",
)


@dataclass
class RecordedCall:
    argv: list[str]
    env: dict[str, str] | None
    cwd: Path | None
    input_text: str | None


@dataclass
class _Rule:
    tokens: tuple[str, ...]
    stdout: str
    returncode: int
    stderr: str
    effect: Callable[[RecordedCall], str | None] | None


class FakeRunner(CommandRunner):
    """Scripted command runner; unmatched commands succeed with empty output."""

    def __init__(self, available: Sequence[str] = DEFAULT_BINARIES) -> None:
        self.available = set(available)
        self.calls: list[RecordedCall] = []
        self._rules: list[_Rule] = []
        self._lock = threading.Lock()

    def on(
        self,
        *tokens: str,
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
        effect: Callable[[RecordedCall], str | None] | None = None,
    ) -> None:
        """Respond to commands named ``tokens[0]`` whose argv/stdin contain ``tokens[1:]``.

        Later rules take precedence. ``effect`` may return replacement stdout.
        """
        self._rules.append(_Rule(tokens, stdout, returncode, stderr, effect))

    def calls_to(self, *tokens: str) -> list[RecordedCall]:
        return [call for call in self.calls if self._matches(tokens, call)]

    def which(self, name: str, required: bool = False) -> str | None:
        if name in self.available:
            return f"/usr/bin/{name}"
        if required:
            raise CommandNotFoundError(name)
        return None

    def run(self, argv, *, env=None, cwd=None, check=True, input_text=None):
        call = RecordedCall(list(argv), dict(env) if env else None, cwd, input_text)
        with self._lock:
            self.calls.append(call)

        stdout, returncode, stderr = "", 0, ""
        for rule in reversed(self._rules):
            if self._matches(rule.tokens, call):
                stdout, returncode, stderr = rule.stdout, rule.returncode, rule.stderr
                if rule.effect is not None:
                    produced = rule.effect(call)
                    if produced is not None:
                        stdout = produced
                break

        if check and returncode != 0:
            raise CommandError(argv, returncode, stderr)
        return subprocess.CompletedProcess(list(argv), returncode, stdout, stderr)

    @staticmethod
    def _matches(tokens: tuple[str, ...], call: RecordedCall) -> bool:
        if not call.argv or call.argv[0] != tokens[0]:
            return False
        haystack = list(call.argv)
        if call.input_text:
            haystack.append(call.input_text.strip())
        return all(token in haystack for token in tokens[1:])


class FakeAgent:
    """AgentPort double recording start/stop calls."""

    def __init__(self, agent: AgentInfo | None = None) -> None:
        self.agent = agent or AgentInfo(socket="/tmp/S.gpg-agent", pid=4242, info="/tmp/S.gpg-agent:4242:1")
        self.started = 0
        self.stopped: list[AgentInfo | None] = []
        self.running = False

    def start(self) -> AgentInfo | None:
        self.started += 1
        self.running = True
        return self.agent

    def info(self) -> AgentInfo | None:
        return self.agent if self.running else None

    def stop(self, agent: AgentInfo | None) -> None:
        self.stopped.append(agent)
        self.running = False


class ConcurrencyTracker:
    """Counts simultaneously open channels."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.opened = 0
        self._lock = threading.Lock()

    def enter(self) -> None:
        with self._lock:
            self.active += 1
            self.opened += 1
            self.peak = max(self.peak, self.active)

    def exit(self) -> None:
        with self._lock:
            self.active -= 1


@dataclass
class FakeChannel:
    """ChannelPort double replaying scripted output chunks."""

    argv: list[str]
    chunks: list[bytes] = field(default_factory=list)
    status: int = 0
    delay: float = 0.0
    tracker: ConcurrencyTracker | None = None
    written: list[bytes] = field(default_factory=list)
    closed: bool = False
    waited: bool = False

    def __post_init__(self) -> None:
        self._pending = list(self.chunks)
        if self.tracker is not None:
            self.tracker.enter()

    def read(self, size: int = 1024) -> bytes:
        if self.delay:
            time.sleep(self.delay)
        if not self._pending:
            return b""
        return self._pending.pop(0)

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def wait(self) -> int:
        self.waited = True
        return self.status

    def close(self) -> None:
        if not self.closed and self.tracker is not None:
            self.tracker.exit()
        self.closed = True


def make_colon_listing(
    expiry: date | None,
    *,
    key_id: str = "0123456789ABCDEF",
    size: int = 4096,
    email: str = "gatekeeper@devsign.development.key",
) -> str:
    """Build ``gpg --with-colons --list-keys`` output for a single key."""
    expiry_field = ""
    if expiry is not None:
        expiry_field = str(int(datetime.combine(expiry, datetime.min.time(), tzinfo=UTC).timestamp()) + 43200)
    return (
        "tru::1:1760000000:0:3:1:5\n"
        f"pub:u:{size}:1:{key_id}:1760000000:{expiry_field}::u:::scESC::::::23::0:\n"
        f"fpr:::::::::AAAABBBBCCCCDDDDEEEEFFFF{key_id}:\n"
        f"uid:u::::1760000000::HASH::Development Signing Key (Development key 1) <{email}>::::::::::0:\n"
    )


def utc_today() -> date:
    return datetime.now(UTC).date()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Runner reporting gpg 2.2.27 and rpm 4.16.1.3 with every binary installed."""
    runner = FakeRunner()
    runner.on("gpg", "--version", stdout="gpg (GnuPG) 2.2.27\nlibgcrypt 1.9.4\n")
    runner.on("rpm", "--version", stdout="RPM version 4.16.1.3\n")
    return runner


@pytest.fixture
def colon_listing() -> Callable[..., str]:
    return make_colon_listing


@pytest.fixture
def days_from_today() -> Callable[[int], date]:
    return lambda days: utc_today() + timedelta(days=days)


@pytest.fixture
def fake_agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def key_dir(temp_dir: Path) -> Path:
    """Key directory holding a parameter file, as left behind by key generation."""
    directory = temp_dir / "keys" / "dev"
    directory.mkdir(parents=True)
    (directory / "gengpgkey").write_text(
        "Key-Type: RSA\n"
        "Name-Email: gatekeeper@devsign.development.key\n"
        "Passphrase: s3cr3t-passphrase\n"
        "%commit\n"
    )
    return directory


@pytest.fixture
def override_settings(temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide isolated devsign settings scoped to tests."""

    import devsign.config as config_module

    original_settings = getattr(config_module, "_settings", None)

    data_dir = temp_dir / "appdata"
    data_dir.mkdir(parents=True, exist_ok=True)

    settings = config_module.Settings(
        data_dir=data_dir,
        keys_dir=temp_dir / "keys",
        audit_enabled=True,
    )

    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings
