import logging
from typing import List

from pydantic import ValidationError

from bulk_repo_sync.application.prompts import TimedPrompt
from bulk_repo_sync.domain.exceptions import InvalidInputException, MissingInputException
from bulk_repo_sync.domain.models import Configuration, Organization, Project
from bulk_repo_sync.domain.ports import RemoteLister
from bulk_repo_sync.infrastructure.config_store import ConfigStore

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TIMEOUT = 10.0


class Initializer:
    """
    First-run flow: asks for the local root and one or more organizations,
    discovers their projects and repositories, and saves the result.

    Unlike reconciliation, not answering the "select specific projects?"
    question in time includes every discovered project.
    """

    def __init__(
            self,
            lister: RemoteLister,
            prompt: TimedPrompt,
            store: ConfigStore,
            timeout: float = DEFAULT_PROMPT_TIMEOUT
    ):
        self.lister = lister
        self.prompt = prompt
        self.store = store
        self.timeout = timeout

    async def initialize(self) -> Configuration:
        """
        Raises:
            MissingInputException: If a required answer is left blank.
            InvalidInputException: If the organization URL is not an absolute URL.
            PersistenceException: If the new configuration cannot be saved.
        """
        root = await self._required("Enter the directory where repositories should be cloned", "repoRootLocation")
        configuration = Configuration(repo_root_location=root)

        while True:
            configuration.organizations.append(await self._collect_organization())
            another = await self.prompt.ask("Add another organization?", None)
            if not another:
                break

        self.store.save(configuration)
        return configuration

    async def _required(self, text: str, field: str) -> str:
        value = await self.prompt.ask_text(text)
        if not value:
            raise MissingInputException(field)
        return value

    async def _collect_organization(self) -> Organization:
        base_url = await self._required(
            "Enter the organization URL (e.g. https://dev.azure.com/your_organization)", "baseUrl"
        )
        try:
            organization = Organization(base_url=base_url)
        except ValidationError:
            raise InvalidInputException("baseUrl", f"'{base_url}' is not an absolute http(s) URL.") from None
        secret = await self._required("Enter your Personal Access Token (PAT)", "secret")
        organization.secret = secret

        discovered = await self.lister.list_projects(organization.base_url, secret)
        if not discovered:
            logger.warning(f"No projects found for {organization.base_url}. It will be checked again on the next run.")
            return organization

        logger.info(f"Found {len(discovered)} project(s) in {organization.display_name}.")
        selected: List[str] = discovered
        restrict = await self.prompt.ask("Do you want to select specific projects?", self.timeout)
        if restrict:
            selected = await self.prompt.ask_selection(
                discovered,
                "Select projects by number (e.g. 1,3-5), blank for all",
                self.timeout,
                default_on_timeout=discovered,
            )

        for name in selected:
            repositories = await self.lister.list_repositories(organization.base_url, name, secret)
            logger.info(f"{name}: {len(repositories)} repositories.")
            organization.projects.append(Project(name=name, repositories=repositories))

        return organization
