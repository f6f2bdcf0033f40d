from typing import List, Protocol


class RemoteLister(Protocol):
    """Lists what an organization exposes. Implementations fail soft with an empty list."""

    async def list_projects(self, base_url: str, secret: str) -> List[str]:
        ...

    async def list_repositories(self, base_url: str, project: str, secret: str) -> List[str]:
        ...


class RepositorySyncer(Protocol):
    """Clones or updates one local working copy. Returns False on failure instead of raising."""

    def clone_or_pull(self, remote_url: str, local_path: str, secret: str) -> bool:
        ...
