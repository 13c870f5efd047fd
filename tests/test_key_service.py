"""Tests for the signing key lifecycle."""

from pathlib import Path

import pytest

from conftest import FakeAgent, FakeRunner
from devsign.app.key_service import (
    DEFAULT_KEY_EMAIL,
    KeyConfig,
    KeyGenerationError,
    KeyLifecycleService,
    KeyState,
)
from devsign.audit.ledger import AuditLedger
from devsign.gpg.genkey import GENKEY_PARAMS_FILENAME
from devsign.gpg.parsing import parse_genkey_parameters
from devsign.gpg.toolchain import ToolchainProbe
from devsign.utils.commands import CommandError

ARMORED_KEY = "-----BEGIN PGP PUBLIC KEY BLOCK-----\n\nmQINBGd...\n-----END PGP PUBLIC KEY BLOCK-----\n"


def _service(
    directory: Path,
    runner: FakeRunner,
    agent: FakeAgent,
    **kwargs,
) -> KeyLifecycleService:
    config = KeyConfig.for_directory(directory)
    return KeyLifecycleService(
        config,
        probe=ToolchainProbe(runner),
        runner=runner,
        agent_factory=lambda _directory: agent,
        **kwargs,
    )


def _generating_runner(runner: FakeRunner, listing: str) -> FakeRunner:
    """Script gpg so that the key only appears once --gen-key has run."""
    generated: list[bool] = []

    def gen_key(call):
        generated.append(True)
        return None

    runner.on("gpg", "--list-keys", effect=lambda call: listing if generated else "")
    runner.on("gpg", "--gen-key", effect=gen_key)
    runner.on("gpg", "--export", stdout=ARMORED_KEY)
    return runner


class TestKeyConfig:
    def test_defaults_from_directory(self, temp_dir: Path):
        config = KeyConfig.for_directory(temp_dir / "Staging")

        assert config.directory == (temp_dir / "Staging").resolve()
        assert config.label == "staging"
        assert config.email == DEFAULT_KEY_EMAIL
        assert config.key_filename == "RPM-GPG-KEY-DEVSIGN-Staging"
        assert config.key_path == config.directory / "RPM-GPG-KEY-DEVSIGN-Staging"

    def test_explicit_key_file(self, temp_dir: Path):
        config = KeyConfig.for_directory(temp_dir / "dev", key_file="RPM-GPG-KEY-custom")
        assert config.key_path.name == "RPM-GPG-KEY-custom"


class TestEnsureKey:
    def test_valid_key_is_left_alone(self, temp_dir, fake_runner, fake_agent, colon_listing, days_from_today):
        directory = temp_dir / "dev"
        directory.mkdir()
        (directory / "pubring.kbx").write_bytes(b"keyring")
        fake_runner.on("gpg", "--list-keys", stdout=colon_listing(days_from_today(9)))

        service = _service(directory, fake_runner, fake_agent)
        status = service.ensure_key()

        assert status.state is KeyState.VALID
        assert status.generated is False
        assert status.days_left == 9
        assert fake_agent.started == 0
        assert fake_runner.calls_to("gpg", "--gen-key") == []
        assert (directory / "pubring.kbx").read_bytes() == b"keyring"

    def test_generates_when_missing(self, temp_dir, fake_runner, fake_agent, colon_listing, days_from_today):
        directory = temp_dir / "dev"
        _generating_runner(fake_runner, colon_listing(days_from_today(14)))

        service = _service(directory, fake_runner, fake_agent)
        status = service.ensure_key()

        assert status.state is KeyState.VALID
        assert service.state is KeyState.VALID
        assert status.generated is True
        assert status.days_left == 14
        assert status.key_path.read_text() == ARMORED_KEY

        email, passphrase = parse_genkey_parameters((directory / GENKEY_PARAMS_FILENAME).read_text())
        assert email == DEFAULT_KEY_EMAIL
        assert passphrase

        (gen_call,) = fake_runner.calls_to("gpg", "--gen-key")
        assert gen_call.argv == [
            "gpg",
            f"--homedir={service.config.directory}",
            "--batch",
            "--gen-key",
            GENKEY_PARAMS_FILENAME,
        ]
        assert gen_call.cwd == service.config.directory
        assert gen_call.env == {"GPG_AGENT_INFO": fake_agent.agent.info}

        (export_call,) = fake_runner.calls_to("gpg", "--export")
        assert export_call.argv[-3:] == ["--armor", "--export", DEFAULT_KEY_EMAIL]

        assert fake_agent.started == 1
        assert fake_agent.stopped == [fake_agent.agent]
        assert not hasattr(status, "agent")

    def test_expired_key_directory_is_purged(self, temp_dir, fake_runner, fake_agent, colon_listing, days_from_today):
        directory = temp_dir / "dev"
        directory.mkdir()
        (directory / "pubring.gpg").write_text("old keyring")
        (directory / "private-keys-v1.d").mkdir()
        (directory / "private-keys-v1.d" / "OLD.key").write_text("old secret")

        listing = colon_listing(days_from_today(14))
        expired = colon_listing(days_from_today(-3))
        generated: list[bool] = []
        fake_runner.on("gpg", "--list-keys", effect=lambda call: listing if generated else expired)
        fake_runner.on("gpg", "--gen-key", effect=lambda call: generated.append(True))
        fake_runner.on("gpg", "--export", stdout=ARMORED_KEY)

        status = _service(directory, fake_runner, fake_agent).ensure_key()

        assert status.generated is True
        assert not (directory / "pubring.gpg").exists()
        assert not (directory / "private-keys-v1.d").exists()

    def test_legacy_gpg_pins_keyrings(self, temp_dir, fake_agent, colon_listing, days_from_today):
        runner = FakeRunner()
        runner.on("gpg", "--version", stdout="gpg (GnuPG) 2.0.22\n")
        _generating_runner(runner, colon_listing(days_from_today(14)))
        directory = temp_dir / "dev"

        _service(directory, runner, fake_agent).ensure_key()

        params = (directory / GENKEY_PARAMS_FILENAME).read_text()
        assert "%pubring pubring.gpg" in params
        assert "%secring secring.gpg" in params

    def test_second_run_is_noop(self, temp_dir, fake_runner, fake_agent, colon_listing, days_from_today):
        directory = temp_dir / "dev"
        _generating_runner(fake_runner, colon_listing(days_from_today(14)))

        first = _service(directory, fake_runner, fake_agent).ensure_key()
        params_before = (directory / GENKEY_PARAMS_FILENAME).read_text()
        second = _service(directory, fake_runner, fake_agent).ensure_key()

        assert first.generated is True
        assert second.generated is False
        assert second.days_left == 14
        assert len(fake_runner.calls_to("gpg", "--gen-key")) == 1
        assert (directory / GENKEY_PARAMS_FILENAME).read_text() == params_before

    def test_empty_export_fails_but_stops_agent(self, temp_dir, fake_runner, fake_agent):
        fake_runner.on("gpg", "--export", stdout="")

        service = _service(temp_dir / "dev", fake_runner, fake_agent)
        with pytest.raises(KeyGenerationError, match="Something went wrong generating"):
            service.ensure_key()

        assert fake_agent.started == 1
        assert len(fake_agent.stopped) == 1
        assert service.state is KeyState.GENERATING

    def test_gen_key_failure_stops_agent(self, temp_dir, fake_runner, fake_agent):
        fake_runner.on("gpg", "--gen-key", returncode=2, stderr="gpg: key generation failed")

        with pytest.raises(CommandError, match="key generation failed"):
            _service(temp_dir / "dev", fake_runner, fake_agent).ensure_key()

        assert len(fake_agent.stopped) == 1

    def test_agent_without_info_still_generates(self, temp_dir, fake_runner, colon_listing, days_from_today):
        class NoInfoAgent(FakeAgent):
            def start(self):
                self.started += 1
                return None

        agent = NoInfoAgent()
        _generating_runner(fake_runner, colon_listing(days_from_today(14)))

        status = _service(temp_dir / "dev", fake_runner, agent).ensure_key()

        assert status.generated is True
        (gen_call,) = fake_runner.calls_to("gpg", "--gen-key")
        assert gen_call.env == {"GPG_AGENT_INFO": ""}
        assert agent.stopped == [None]

    def test_running_agent_stops_on_error(self, temp_dir, fake_runner, fake_agent):
        service = _service(temp_dir / "dev", fake_runner, fake_agent)

        with pytest.raises(RuntimeError, match="boom"):
            with service.running_agent() as agent:
                assert agent == fake_agent.agent
                assert service.agent_info() == fake_agent.agent
                raise RuntimeError("boom")

        assert fake_agent.stopped == [fake_agent.agent]
        assert service.agent_info() is None

    def test_records_audit_entries(self, temp_dir, fake_runner, fake_agent, colon_listing, days_from_today):
        ledger = AuditLedger(temp_dir / "audit.jsonl")
        directory = temp_dir / "dev"
        _generating_runner(fake_runner, colon_listing(days_from_today(14)))

        _service(directory, fake_runner, fake_agent, ledger_port=ledger).ensure_key()
        _service(directory, fake_runner, fake_agent, ledger_port=ledger).ensure_key()

        operations = [entry.operation for entry in ledger.read_all()]
        assert operations == ["key_generated", "key_valid"]
        assert ledger.verify() == (True, None)

    def test_running_agent_stops_when_start_fails(self, temp_dir, fake_runner):
        class FailingStartAgent(FakeAgent):
            def start(self):
                self.started += 1
                raise OSError("cannot link agent socket")

        agent = FailingStartAgent()
        service = _service(temp_dir / "dev", fake_runner, agent)

        with pytest.raises(OSError, match="cannot link agent socket"):
            with service.running_agent():
                pass

        assert agent.stopped == [None]
