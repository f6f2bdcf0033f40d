from typing import List, Optional
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Project(BaseModel):
    """A named group of repositories inside an organization."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, description="Project name, unique per organization (case-insensitive)")
    repositories: List[str] = Field(default_factory=list, description="Repository names in remote order")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("project name must not be blank")
        return value


class Organization(BaseModel):
    """
    A remote account reached through a base URL and a secret credential.
    The secret is plaintext in memory; only the config store encodes it.
    """
    model_config = ConfigDict(populate_by_name=True)

    base_url: str = Field(..., alias="baseUrl", description="Absolute organization URL without trailing slash")
    secret: Optional[str] = Field(default=None, description="Personal access token")
    projects: List[Project] = Field(default_factory=list)

    @field_validator("base_url")
    @classmethod
    def _absolute_url_without_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"'{value}' is not an absolute http(s) URL")
        return value

    @model_validator(mode="after")
    def _unique_project_names(self) -> "Organization":
        seen = set()
        for project in self.projects:
            key = project.name.casefold()
            if key in seen:
                raise ValueError(f"project '{project.name}' is listed more than once")
            seen.add(key)
        return self

    @property
    def display_name(self) -> str:
        path = urlparse(self.base_url).path.strip("/")
        if path:
            return path.split("/")[-1]
        return urlparse(self.base_url).netloc or self.base_url

    def project_names(self) -> List[str]:
        return [project.name for project in self.projects]

    def find_project(self, name: str) -> Optional[Project]:
        wanted = name.casefold()
        for project in self.projects:
            if project.name.casefold() == wanted:
                return project
        return None


class Configuration(BaseModel):
    """Root document: where repositories live locally and which organizations to sync."""
    model_config = ConfigDict(populate_by_name=True)

    repo_root_location: Optional[str] = Field(default=None, alias="repoRootLocation")
    organizations: List[Organization] = Field(default_factory=list)

    def is_complete(self) -> bool:
        """True once there is a root location and at least one organization to process."""
        has_root = bool(self.repo_root_location and self.repo_root_location.strip())
        return has_root and len(self.organizations) > 0
