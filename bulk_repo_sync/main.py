import argparse
import asyncio
import os
import sys
import logging
from typing import List, Optional

from dotenv import load_dotenv

from bulk_repo_sync.application.initializer import Initializer
from bulk_repo_sync.application.prompts import TimedPrompt
from bulk_repo_sync.application.reconciler import DEFAULT_PROMPT_TIMEOUT, Reconciler
from bulk_repo_sync.application.sync_service import RepositorySyncService
from bulk_repo_sync.domain.exceptions import BulkRepoSyncException, MissingInputException
from bulk_repo_sync.domain.models import Configuration
from bulk_repo_sync.infrastructure.config_store import ConfigStore
from bulk_repo_sync.infrastructure.devops_client import DevOpsRestClient
from bulk_repo_sync.infrastructure.git_sync import GitRepositorySync
from bulk_repo_sync.infrastructure.secret_codec import SecretCodec

logger = logging.getLogger(__name__)

TIMEOUT_ENV = "BULK_REPO_SYNC_TIMEOUT"


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bulk-repo-sync",
        description="Clone or update every repository of the selected DevOps projects.",
    )
    parser.add_argument("--config", help="Path of the configuration file (default: per-user config directory)")
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; fail if the configuration is incomplete",
    )
    parser.add_argument("--no-sync", action="store_true", help="Update the configuration only, do not clone or pull")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"Seconds to wait for an answer to timed questions (default: {DEFAULT_PROMPT_TIMEOUT:g})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _prompt_timeout(args: argparse.Namespace) -> float:
    if args.timeout is not None:
        return args.timeout
    raw = os.getenv(TIMEOUT_ENV)
    if raw:
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {TIMEOUT_ENV}={raw!r}.")
    return DEFAULT_PROMPT_TIMEOUT


async def refresh_unusable_secrets(configuration: Configuration, prompt: TimedPrompt, codec: SecretCodec) -> bool:
    """
    Asks again for secrets that could not be decrypted on this machine.

    Returns:
        bool: True if any secret was replaced.
    """
    changed = False
    for organization in configuration.organizations:
        if organization.secret and not codec.is_encoded(organization.secret):
            continue
        logger.warning(f"The stored token for {organization.base_url} is missing or unusable on this machine.")
        secret = await prompt.ask_text(f"Enter your Personal Access Token (PAT) for {organization.base_url}")
        if not secret:
            raise MissingInputException("secret")
        organization.secret = secret
        changed = True
    return changed


def unusable_secrets(configuration: Configuration, codec: SecretCodec) -> List[str]:
    return [
        organization.base_url
        for organization in configuration.organizations
        if not organization.secret or codec.is_encoded(organization.secret)
    ]


async def run(args: argparse.Namespace) -> int:
    codec = SecretCodec()
    store = ConfigStore(args.config, codec)
    timeout = _prompt_timeout(args)
    prompt = TimedPrompt()

    configuration = store.load()

    async with DevOpsRestClient() as lister:
        if not configuration.is_complete():
            if args.non_interactive:
                logger.error(
                    f"Configuration {store.path} is missing the repository root or organizations. "
                    "Run once without --non-interactive to create it."
                )
                return 1
            logger.info("No complete configuration found. Starting first-time setup.")
            configuration = await Initializer(lister, prompt, store, timeout).initialize()
        else:
            mutated = False
            if args.non_interactive:
                broken = unusable_secrets(configuration, codec)
                if broken:
                    logger.error(f"Stored tokens cannot be used for: {', '.join(broken)}. Run interactively to re-enter them.")
                    return 1
            else:
                mutated = await refresh_unusable_secrets(configuration, prompt, codec)
                if await Reconciler(lister, prompt, timeout).reconcile(configuration):
                    mutated = True

            if mutated:
                store.save(configuration)

    if args.no_sync:
        return 0

    report = await RepositorySyncService(GitRepositorySync()).sync(configuration)
    return 0 if report.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env file
    load_dotenv()
    args = parse_arguments(argv)
    configure_logging(args.verbose)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting.")
        return 130
    except BulkRepoSyncException as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
