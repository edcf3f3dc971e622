from __future__ import annotations


class DevMemError(Exception):
    """Base class for devmem failures surfaced to callers."""


class ProjectNotFoundError(DevMemError):
    def __init__(self, project_path: str) -> None:
        super().__init__(f"Project path does not exist: {project_path}")
        self.project_path = project_path


class RecordError(DevMemError, ValueError):
    """A record payload does not have the expected shape."""
