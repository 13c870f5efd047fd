"""Write the ``gpg --gen-key --batch`` control parameter file.

The parameter file is also the hand-off to later signing runs: it is left in
the key directory under a fixed name so the email and passphrase can be
recovered without prompting.

See "Unattended key generation" in GnuPG's ``doc/DETAILS`` for the format.
"""

from __future__ import annotations

import time
from datetime import date, timedelta
from pathlib import Path

from devsign.utils.crypto import generate_passphrase, write_secure_file

GENKEY_PARAMS_FILENAME = "gengpgkey"
PASSWORD_FILENAME = "password"
KEY_EXPIRY_DAYS = 14


def build_genkey_parameters(
    email: str,
    *,
    legacy: bool,
    passphrase: str | None = None,
    now: int | None = None,
    today: date | None = None,
) -> list[str]:
    """Return the lines of a key generation parameter document.

    Args:
        email: Identity the key is bound to
        legacy: Pin explicit keyring filenames (gpg < 2.1)
        passphrase: Passphrase to embed (freshly generated when omitted)
        now: Epoch seconds used in the key comment
        today: Date the expiry banner is computed from
    """
    now = int(time.time()) if now is None else now
    expire_date = (today or date.today()) + timedelta(days=KEY_EXPIRY_DAYS)
    passphrase = passphrase or generate_passphrase()

    parameters = [
        "%echo Generating Development GPG Key",
        "%echo",
        f"%echo This key will expire on {expire_date.isoformat()}",
        "%echo",
        "Key-Type: RSA",
        "Key-Length: 4096",
        "Key-Usage: sign",
        "Name-Real: Development Signing Key",
        f"Name-Comment: Development key {now}",
        f"Name-Email: {email}",
        "Expire-Date: 2w",
        f"Passphrase: {passphrase}",
    ]

    if legacy:
        parameters.append("%pubring pubring.gpg")
        parameters.append("%secring secring.gpg")

    parameters.append('# The following creates the key, so we can print "Done!" afterwards')
    parameters.append("%commit")
    parameters.append("%echo New GPG Development Key Created")
    return parameters


def write_genkey_parameter_file(directory: Path, email: str, *, legacy: bool) -> Path:
    """Write a fresh parameter file into ``directory`` (owner-readable only)."""
    path = directory / GENKEY_PARAMS_FILENAME
    content = "\n".join(build_genkey_parameters(email, legacy=legacy)) + "\n"
    write_secure_file(path, content.encode("utf-8"))
    return path
