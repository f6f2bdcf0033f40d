import logging
from typing import List

from bulk_repo_sync.application.prompts import TimedPrompt
from bulk_repo_sync.domain.models import Configuration, Organization, Project
from bulk_repo_sync.domain.ports import RemoteLister

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TIMEOUT = 10.0


class Reconciler:
    """
    Compares each organization's stored project selection with what the
    remote currently lists and lets the operator update it.

    Declining, or not answering in time, keeps the stored selection.
    """

    def __init__(self, lister: RemoteLister, prompt: TimedPrompt, timeout: float = DEFAULT_PROMPT_TIMEOUT):
        self.lister = lister
        self.prompt = prompt
        self.timeout = timeout

    async def reconcile(self, configuration: Configuration) -> bool:
        """
        Returns:
            bool: True if any organization's project list changed and should be saved.
        """
        mutated = False
        for organization in configuration.organizations:
            if await self._reconcile_organization(organization):
                mutated = True
        return mutated

    async def _reconcile_organization(self, organization: Organization) -> bool:
        discovered = await self.lister.list_projects(organization.base_url, organization.secret)
        if not discovered:
            logger.warning(f"No projects listed for {organization.base_url}; keeping the stored selection.")
            return False

        stored = organization.project_names()
        stored_keys = {name.casefold() for name in stored}
        discovered_keys = {name.casefold() for name in discovered}
        if stored_keys == discovered_keys:
            logger.debug(f"Projects for {organization.base_url} are up to date.")
            return False

        added = [name for name in discovered if name.casefold() not in stored_keys]
        removed = [name for name in stored if name.casefold() not in discovered_keys]
        logger.info(
            f"Project list for {organization.base_url} changed "
            f"(new: {', '.join(added) or 'none'}; gone: {', '.join(removed) or 'none'})."
        )

        accepted = await self.prompt.ask(
            f"Projects available in {organization.display_name} differ from your selection. Update the selection?",
            self.timeout,
        )
        if not accepted:
            logger.info(f"Keeping the stored selection for {organization.base_url}.")
            return False

        kept = [name for name in stored if name.casefold() in discovered_keys]
        selected = await self.prompt.ask_selection(
            discovered,
            "Select projects by number (e.g. 1,3-5); * marks the current selection, blank keeps it",
            self.timeout,
            default_on_timeout=stored,
            preselected=kept,
        )

        projects = await self._build_projects(organization, selected)
        if [p.name for p in projects] == stored:
            return False

        organization.projects = projects
        logger.info(f"Selection for {organization.base_url} updated to {len(projects)} project(s).")
        return True

    async def _build_projects(self, organization: Organization, names: List[str]) -> List[Project]:
        projects: List[Project] = []
        seen = set()
        for name in names:
            if name.casefold() in seen:
                continue
            seen.add(name.casefold())

            existing = organization.find_project(name)
            if existing is not None:
                projects.append(existing)
                continue

            repositories = await self.lister.list_repositories(organization.base_url, name, organization.secret)
            projects.append(Project(name=name, repositories=repositories))
        return projects
