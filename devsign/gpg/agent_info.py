"""Connection details of a running gpg-agent."""

from pydantic import BaseModel, Field


class AgentInfo(BaseModel):
    """Connection details of a running gpg-agent."""

    socket: str = Field(..., description="Filesystem path of the agent's control socket")
    pid: int = Field(..., description="Process id of the agent daemon")
    info: str = Field(..., description="GPG_AGENT_INFO connection string (socket:pid:1)")
