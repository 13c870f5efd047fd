"""gpg toolchain helpers: version probing, key directory and output parsing."""

from devsign.gpg.agent_info import AgentInfo
from devsign.gpg.genkey import GENKEY_PARAMS_FILENAME, PASSWORD_FILENAME
from devsign.gpg.keystore import IsolatedKeyStore
from devsign.gpg.toolchain import ToolchainProbe

__all__ = [
    "GENKEY_PARAMS_FILENAME",
    "PASSWORD_FILENAME",
    "AgentInfo",
    "IsolatedKeyStore",
    "ToolchainProbe",
]
