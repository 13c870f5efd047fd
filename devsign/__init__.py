"""devsign - ephemeral development signing keys and batch package signing.

Keeps a short-lived GPG key in an isolated directory and uses it to sign
packages without touching the user's own keyring or agent.
"""

__version__ = "0.1.0"
__author__ = "devsign Contributors"

from devsign.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
