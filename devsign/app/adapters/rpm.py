"""rpm adapters: signature inspection and the ``rpm --resign`` invocation."""

from __future__ import annotations

from pathlib import Path

from devsign.app.ports.artifact import ArtifactInspectorPort, ResignCommandPort
from devsign.gpg.parsing import parse_rpm_signature, parse_signature_key_id
from devsign.gpg.toolchain import ToolchainProbe
from devsign.utils.commands import CommandRunner, get_command_runner

SIGNATURE_QUERY_FORMAT = (
    "%|DSAHEADER?{%{DSAHEADER:pgpsig}}:"
    "{%|RSAHEADER?{%{RSAHEADER:pgpsig}}:"
    "{%|SIGGPG?{%{SIGGPG:pgpsig}}:"
    "{%|SIGPGP?{%{SIGPGP:pgpsig}}:{(none)}|}|}|}|"
)

# Only understood by rpm >= 4.13.0, which also needs loopback pinentry so the
# passphrase prompt reaches our pty instead of a pinentry dialog.
DIGEST_ALGO_OVERRIDE = "%_gpg_digest_algo sha256"
SIGN_CMD_EXTRA_ARGS_OVERRIDE = "%_gpg_sign_cmd_extra_args --pinentry-mode loopback --verbose"


class RpmInspector(ArtifactInspectorPort):
    """Read signature headers with ``rpm -qp``."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or get_command_runner()

    def signature(self, artifact: Path) -> str | None:
        """Return the signature summary of ``artifact`` or None if unsigned.

        Raises:
            CommandError: If rpm cannot read the package
        """
        result = self._runner.run(
            ["rpm", "-qp", "--qf", SIGNATURE_QUERY_FORMAT, str(artifact)],
            env={"LC_ALL": "C"},
        )
        return parse_rpm_signature(result.stdout)

    def is_signed(self, artifact: Path) -> bool:
        return self.signature(artifact) is not None

    def signature_key_id(self, artifact: Path) -> str | None:
        signature = self.signature(artifact)
        if signature is None:
            return None
        return parse_signature_key_id(signature)


class RpmResignCommand(ResignCommandPort):
    """Build ``rpm --resign`` command lines for a key directory."""

    def __init__(self, probe: ToolchainProbe, runner: CommandRunner | None = None) -> None:
        self._probe = probe
        self._runner = runner or get_command_runner()

    def build(self, artifact: Path, *, identity: str, key_dir: Path) -> list[str]:
        # 'rpm --resign' is equivalent to 'rpmsign --addsign'; the presence of
        # rpmsign proves the rpm-sign capability is installed.
        self._runner.which("rpmsign", required=True)

        argv = [
            "rpm",
            "--define",
            "%_signature gpg",
            "--define",
            "%__gpg %{_bindir}/gpg",
            "--define",
            f"%_gpg_name {identity}",
            "--define",
            f"%_gpg_path {key_dir}",
        ]
        if self._probe.rpm_starts_agent():
            argv.extend(["--define", DIGEST_ALGO_OVERRIDE])
            argv.extend(["--define", SIGN_CMD_EXTRA_ARGS_OVERRIDE])
        argv.extend(["--resign", str(artifact)])
        return argv

    def starts_agent(self) -> bool:
        return self._probe.rpm_starts_agent()
