import base64
import logging
from pathlib import Path
from typing import Dict

from git import GitError, Repo
from git.exc import InvalidGitRepositoryError, NoSuchPathError

logger = logging.getLogger(__name__)


def auth_environment(secret: str) -> Dict[str, str]:
    """
    Git environment that sends the token as a Basic auth header.
    Passed per command, so the token never lands in .git/config.
    """
    if not secret:
        return {}
    token = base64.b64encode(f":{secret}".encode("utf-8")).decode("ascii")
    return {
        "GIT_CONFIG_COUNT": "1",
        "GIT_CONFIG_KEY_0": "http.extraHeader",
        "GIT_CONFIG_VALUE_0": f"Authorization: Basic {token}",
        "GIT_TERMINAL_PROMPT": "0",
    }


class GitRepositorySync:
    """Clones missing repositories and updates existing working copies with GitPython."""

    def clone_or_pull(self, remote_url: str, local_path: str, secret: str) -> bool:
        path = Path(local_path)
        env = auth_environment(secret)

        try:
            if not path.exists():
                return self._clone(remote_url, path, env)

            try:
                repo = Repo(path)
            except (InvalidGitRepositoryError, NoSuchPathError):
                logger.warning(f"{path} exists but is not a git working copy. Trying to clone into it.")
                return self._clone(remote_url, path, env)

            with repo:
                return self._pull(repo, path, env)
        except (GitError, OSError) as e:
            logger.error(f"Failed to sync {remote_url} into {path}: {e}")
            return False

    def _clone(self, remote_url: str, path: Path, env: Dict[str, str]) -> bool:
        logger.info(f"Cloning {remote_url} into {path}...")
        path.parent.mkdir(parents=True, exist_ok=True)
        with Repo.clone_from(remote_url, str(path), env=env) as repo:
            self._track_remote_branches(repo)
        logger.info(f"Cloned {remote_url} to {path}")
        return True

    def _pull(self, repo: Repo, path: Path, env: Dict[str, str]) -> bool:
        logger.info(f"Pulling latest changes for {path}...")
        with repo.git.custom_environment(**env):
            origin = repo.remotes.origin
            origin.fetch(prune=True)
            self._track_remote_branches(repo)
            if repo.head.is_detached:
                logger.warning(f"{path} has a detached HEAD; fetched only.")
            elif repo.active_branch.tracking_branch() is None:
                logger.warning(f"Branch '{repo.active_branch.name}' in {path} has no upstream; fetched only.")
            else:
                origin.pull()
        logger.info(f"Pulled latest changes for {path}")
        return True

    @staticmethod
    def _track_remote_branches(repo: Repo) -> None:
        """Creates a local tracking branch for every origin branch that has none."""
        if not repo.remotes:
            return
        local_names = {head.name for head in repo.heads}
        for ref in repo.remotes.origin.refs:
            name = ref.remote_head
            if name == "HEAD" or name in local_names:
                continue
            head = repo.create_head(name, ref)
            head.set_tracking_branch(ref)
            logger.debug(f"Created local branch '{name}' tracking {ref.name}.")
