"""Narrow parsers for the text emitted by gpg, gpg-agent and rpm.

Tool output drifts between versions, so each parser accepts a single blob of
text and returns ``None`` when it does not recognise it. None of these
functions raise on malformed input; callers decide what a missing value means.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

from devsign.gpg.agent_info import AgentInfo

_VERSION_TOKEN = re.compile(r"(\d+(?:\.\d+)*)")
_HUMAN_EXPIRY = re.compile(r"\[(?:expires|expired):\s*(\d{4}-\d{2}-\d{2})\]")
_AGENT_INFO_FIELDS = re.compile(r"^(?P<socket>[^:]+):(?P<pid>\d+)")
_NAME_EMAIL = re.compile(r"^\s*Name-Email:(.*)$", re.MULTILINE)
_PASSPHRASE = re.compile(r"^\s*Passphrase:(.*)$", re.MULTILINE)
_KEY_ID = re.compile(r"Key ID\s+([0-9a-fA-F]+)")

Version = tuple[int, ...]


def parse_tool_version(output: str) -> Version | None:
    """Parse ``<tool> --version`` output into a comparable version tuple.

    The version is the last whitespace-separated token of the first line, e.g.
    ``gpg (GnuPG) 2.2.27`` or ``RPM version 4.16.1.3``.
    """
    lines = output.strip().splitlines()
    if not lines:
        return None

    tokens = lines[0].split()
    if not tokens:
        return None

    match = _VERSION_TOKEN.match(tokens[-1])
    if match is None:
        return None
    return tuple(int(part) for part in match.group(1).split("."))


def format_version(version: Version) -> str:
    return ".".join(str(part) for part in version)


def parse_key_expiry(listing: str) -> date | None:
    """Return the expiry date of the first primary key in a ``--list-keys`` listing.

    Accepts machine-readable (``--with-colons``) output, where field 7 of the
    ``pub`` record holds seconds since the epoch (or a compact ISO timestamp),
    and falls back to the human-readable ``[expires: YYYY-MM-DD]`` suffix.
    Keys without an expiry date yield ``None``.
    """
    for line in listing.splitlines():
        fields = line.split(":")
        if fields[0] == "pub" and len(fields) > 6:
            return _parse_colon_date(fields[6].strip())

        if line.startswith("pub"):
            match = _HUMAN_EXPIRY.search(line)
            if match is None:
                return None
            try:
                return date.fromisoformat(match.group(1))
            except ValueError:
                return None

    return None


def _parse_colon_date(value: str) -> date | None:
    if not value:
        return None
    if value.isdigit():
        return datetime.fromtimestamp(int(value), UTC).date()
    try:
        return datetime.strptime(value[:8], "%Y%m%d").date()
    except ValueError:
        return None


def days_until(expiry: date, today: date) -> int:
    return (expiry - today).days


def parse_public_key_record(listing: str) -> tuple[int, str] | None:
    """Return ``(key_size, key_id)`` from the first ``pub`` colon record.

    See ``doc/DETAILS`` in GnuPG: index 0 is the record type, 2 the key
    length and 4 the key id.
    """
    for line in listing.splitlines():
        fields = line.split(":")
        if fields[0] != "pub":
            continue
        if len(fields) < 5:
            return None

        size, key_id = fields[2].strip(), fields[4].strip()
        if not size.isdigit() or not key_id:
            return None
        return int(size), key_id

    return None


def parse_agent_info_env(text: str) -> AgentInfo | None:
    """Parse a gpg-agent ``--write-env-file`` file (or ``--sh`` output).

    Expected shape: ``GPG_AGENT_INFO=/tmp/gpg-XXXX/S.gpg-agent:1234:1; export GPG_AGENT_INFO;``
    """
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        info = line.split(";", 1)[0].strip()
        if info.startswith("GPG_AGENT_INFO="):
            info = info[len("GPG_AGENT_INFO=") :]
        elif "=" in info:
            # Other variables (SSH_AUTH_SOCK, ...) share the file.
            continue

        match = _AGENT_INFO_FIELDS.match(info)
        if match is not None:
            return AgentInfo(
                socket=match.group("socket"),
                pid=int(match.group("pid")),
                info=info,
            )

    return None


def parse_agent_response(output: str) -> str | None:
    """Return the payload of a ``gpg-connect-agent`` data line.

    The first response line carries a one-character status prefix
    (``D /run/user/1000/gnupg/S.gpg-agent``); ``ERR`` responses yield ``None``.
    """
    lines = output.splitlines()
    if not lines or not lines[0].startswith("D"):
        return None
    payload = lines[0][1:].strip()
    return payload or None


def parse_genkey_parameters(text: str) -> tuple[str | None, str | None]:
    """Recover ``(email, passphrase)`` from a ``gpg --gen-key --batch`` parameter file."""
    return _last_value(_NAME_EMAIL, text), _last_value(_PASSPHRASE, text)


def _last_value(pattern: re.Pattern[str], text: str) -> str | None:
    values = [value.strip() for value in pattern.findall(text)]
    values = [value for value in values if value]
    return values[-1] if values else None


def parse_rpm_signature(output: str) -> str | None:
    """Return the signature summary printed by ``rpm -qp --qf``, or None if unsigned."""
    summary = output.strip()
    if not summary or summary == "(none)":
        return None
    return summary


def parse_signature_key_id(signature: str) -> str | None:
    """Extract the trailing ``Key ID <hex>`` from an rpm signature summary."""
    match = _KEY_ID.search(signature)
    if match is None:
        return None
    return match.group(1).lower()
