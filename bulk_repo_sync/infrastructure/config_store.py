import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

import platformdirs
from pydantic import ValidationError

from bulk_repo_sync.domain.exceptions import PersistenceException
from bulk_repo_sync.domain.models import Configuration
from bulk_repo_sync.infrastructure.secret_codec import SecretCodec

logger = logging.getLogger(__name__)

APP_NAME = "bulk-repo-sync"
CONFIG_FILE_NAME = "config.json"
CONFIG_PATH_ENV = "BULK_REPO_SYNC_CONFIG"

# Keys written by older releases, mapped to the current names.
_LEGACY_KEYS = {
    "RepoRootLocation": "repoRootLocation",
    "BaseUrl": "baseUrl",
    "PAT": "secret",
    "pat": "secret",
    "Projects": "projects",
    "Orgs": "organizations",
    "orgs": "organizations",
    "Name": "name",
    "Repositories": "repositories",
}


def default_config_path() -> Path:
    override = os.getenv(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def _rename_keys(node: Any) -> Any:
    if isinstance(node, dict):
        return {_LEGACY_KEYS.get(key, key): _rename_keys(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_rename_keys(item) for item in node]
    return node


def _drop_empty(node: Any) -> Any:
    """Removes empty strings and empty lists so the written document stays minimal."""
    if isinstance(node, dict):
        return {key: _drop_empty(value) for key, value in node.items() if value not in ("", [], None)}
    if isinstance(node, list):
        return [_drop_empty(item) for item in node]
    return node


def migrate_document(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Brings an older document into the current multi-organization shape.

    Older documents carried a single organization at the top level
    (baseUrl/secret/projects). Those fields are folded into the organization
    list once and are never written back.
    """
    document = _rename_keys(raw)
    organizations = list(document.get("organizations") or [])

    legacy_url = document.pop("baseUrl", None)
    legacy_secret = document.pop("secret", None)
    legacy_projects = document.pop("projects", None) or []

    if legacy_url and not any(
        (org.get("baseUrl") or "").rstrip("/") == legacy_url.rstrip("/") for org in organizations
    ):
        logger.info(f"Migrating single-organization config for {legacy_url}.")
        organizations.insert(0, {"baseUrl": legacy_url, "secret": legacy_secret, "projects": legacy_projects})

    document["organizations"] = organizations
    return document


class ConfigStore:
    """Loads and saves the configuration document, encoding secrets at the file boundary."""

    def __init__(self, path: Optional[Union[str, Path]] = None, codec: Optional[SecretCodec] = None):
        self.path = Path(path) if path else default_config_path()
        self.codec = codec or SecretCodec()

    def load(self) -> Configuration:
        """
        Reads the configuration. Never fails: a missing, unreadable or invalid
        document yields an empty Configuration, which forces initialization.
        """
        if not self.path.exists():
            logger.info(f"No configuration found at {self.path}.")
            return Configuration()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("top-level JSON value is not an object")
            configuration = Configuration.model_validate(migrate_document(raw))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable configuration {self.path}: {e}")
            return Configuration()

        for organization in configuration.organizations:
            organization.secret = self.codec.decode(organization.secret)

        return configuration

    def save(self, configuration: Configuration) -> None:
        """
        Writes the whole document, replacing the previous file.

        Secrets are encoded on a copy; the caller's objects keep plaintext.

        Raises:
            PersistenceException: If the file cannot be written.
        """
        stored = configuration.model_copy(deep=True)
        for organization in stored.organizations:
            organization.secret = self.codec.encode(organization.secret)

        document = _drop_empty(stored.model_dump(mode="json", by_alias=True, exclude_none=True))
        text = json.dumps(document, indent=2, ensure_ascii=False) + "\n"

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(text)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceException(f"Could not write configuration to {self.path}: {e}") from e

        logger.info(f"Configuration saved to {self.path}.")
