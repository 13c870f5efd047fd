"""Tests for the isolated key directory."""

import stat
from datetime import date
from pathlib import Path

from devsign.gpg.keystore import IsolatedKeyStore


def test_ensure_directory_is_private(temp_dir: Path, fake_runner):
    store = IsolatedKeyStore(temp_dir / "keys" / "dev", runner=fake_runner)

    path = store.ensure_directory()

    assert path.is_dir()
    assert stat.S_IMODE(path.stat().st_mode) == 0o700


def test_purge_removes_contents_but_keeps_directory(temp_dir: Path, fake_runner):
    directory = temp_dir / "dev"
    directory.mkdir()
    (directory / "gengpgkey").write_text("stale")
    (directory / "pubring.kbx").write_bytes(b"\x00")
    (directory / "private-keys-v1.d").mkdir()
    (directory / "private-keys-v1.d" / "ABC.key").write_text("secret")
    (directory / "S.gpg-agent").symlink_to(temp_dir / "missing-socket")

    store = IsolatedKeyStore(directory, runner=fake_runner)
    store.purge()

    assert directory.is_dir()
    assert list(directory.iterdir()) == []


def test_purge_missing_directory_is_noop(temp_dir: Path, fake_runner):
    IsolatedKeyStore(temp_dir / "absent", runner=fake_runner).purge()
    assert not (temp_dir / "absent").exists()


def test_list_keys_is_isolated_from_user_agent(temp_dir: Path, fake_runner):
    store = IsolatedKeyStore(temp_dir / "dev", runner=fake_runner)
    store.list_keys("dev@example.com")

    (call,) = fake_runner.calls_to("gpg", "--list-keys")
    assert call.argv == [
        "gpg",
        f"--homedir={store.directory}",
        "--with-colons",
        "--list-keys",
        "dev@example.com",
    ]
    assert call.env == {"GPG_AGENT_INFO": ""}


def test_days_until_expiry(temp_dir: Path, fake_runner, colon_listing):
    fake_runner.on("gpg", "--list-keys", stdout=colon_listing(date(2025, 1, 15)))
    store = IsolatedKeyStore(temp_dir / "dev", runner=fake_runner)

    assert store.days_until_expiry("dev@example.com", today=date(2025, 1, 1)) == 14
    assert store.days_until_expiry("dev@example.com", today=date(2025, 1, 20)) == -5


def test_days_until_expiry_defaults_to_utc_today(temp_dir: Path, fake_runner, colon_listing, days_from_today):
    fake_runner.on("gpg", "--list-keys", stdout=colon_listing(days_from_today(10)))
    store = IsolatedKeyStore(temp_dir / "dev", runner=fake_runner)

    assert store.days_until_expiry("dev@example.com") == 10


def test_missing_key_counts_as_expired(temp_dir: Path, fake_runner):
    fake_runner.on(
        "gpg",
        "--list-keys",
        stderr="gpg: error reading key: No public key",
        returncode=2,
    )
    store = IsolatedKeyStore(temp_dir / "dev", runner=fake_runner)

    assert store.days_until_expiry("dev@example.com") == 0
    assert store.directory.is_dir()


def test_key_without_expiry_counts_as_expired(temp_dir: Path, fake_runner, colon_listing):
    fake_runner.on("gpg", "--list-keys", stdout=colon_listing(None))
    store = IsolatedKeyStore(temp_dir / "dev", runner=fake_runner)

    assert store.days_until_expiry("dev@example.com") == 0
