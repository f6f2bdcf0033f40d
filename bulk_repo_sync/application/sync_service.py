import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from bulk_repo_sync.domain.models import Configuration
from bulk_repo_sync.domain.ports import RepositorySyncer
from bulk_repo_sync.infrastructure.acl import DevOpsTranslator

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    synced: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class RepositorySyncService:
    """
    Clones or pulls every selected repository beneath the configured root,
    laid out as <root>/<organization>/<project>/<repository>.
    A failed repository is reported and the run moves on to the next one.
    """

    def __init__(self, syncer: RepositorySyncer):
        self.syncer = syncer

    async def sync(self, configuration: Configuration) -> SyncReport:
        report = SyncReport()
        root = Path(configuration.repo_root_location).expanduser()

        for organization in configuration.organizations:
            for project in organization.projects:
                for repository in project.repositories:
                    remote_url = DevOpsTranslator.clone_url(organization.base_url, project.name, repository)
                    local_path = root / organization.display_name / project.name / repository
                    logger.info(f"Processing repository: {project.name}/{repository}")

                    # GitPython blocks; keep it off the event loop
                    ok = await asyncio.to_thread(
                        self.syncer.clone_or_pull, remote_url, str(local_path), organization.secret
                    )
                    if ok:
                        report.synced += 1
                    else:
                        report.failed.append(f"{organization.display_name}/{project.name}/{repository}")

        logger.info(f"Sync completed. {report.synced} repositories up to date, {len(report.failed)} failed.")
        for name in report.failed:
            logger.error(f"Failed: {name}")
        return report
