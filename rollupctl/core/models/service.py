"""
ServiceSpec — what the service provisioner needs to supervise a process.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ServiceSpec(BaseModel):
    """A long-running node process handed to the init system.

    ``args`` are passed verbatim; ``${NAME}`` references inside them are
    expanded by the init system from ``environment_file`` so secrets
    stay out of the unit file.
    """

    name: str
    description: str = ""
    working_directory: str
    executable: str
    args: list[str] = Field(default_factory=list)
    environment_file: str | None = None
    restart_policy: str = "on-failure"
    restart_sec: int = 10
    user: str = "root"
    log_path: str | None = None
    after: list[str] = Field(default_factory=lambda: ["network.target"])

    @property
    def unit_name(self) -> str:
        return f"{self.name}.service"

    @property
    def effective_log_path(self) -> str:
        return self.log_path or f"/var/log/{self.name}.log"
