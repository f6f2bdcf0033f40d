import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from bulk_repo_sync.domain.exceptions import ConsoleInputException, MissingInputException
from bulk_repo_sync.domain.models import Configuration, Organization, Project
from bulk_repo_sync.infrastructure.config_store import ConfigStore
from bulk_repo_sync.infrastructure.secret_codec import SecretCodec
from bulk_repo_sync.main import main, parse_arguments, refresh_unusable_secrets, run, unusable_secrets
from tests.fakes import ScriptedPrompt


class _NullClient:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class TestArguments(unittest.TestCase):
    def test_defaults(self) -> None:
        args = parse_arguments([])

        self.assertIsNone(args.config)
        self.assertFalse(args.non_interactive)
        self.assertFalse(args.no_sync)
        self.assertIsNone(args.timeout)

    def test_flags(self) -> None:
        args = parse_arguments(["--config", "c.json", "--non-interactive", "--no-sync", "--timeout", "2.5", "-v"])

        self.assertEqual(args.config, "c.json")
        self.assertTrue(args.non_interactive)
        self.assertTrue(args.no_sync)
        self.assertEqual(args.timeout, 2.5)
        self.assertTrue(args.verbose)


class TestSecrets(unittest.IsolatedAsyncioTestCase):
    async def test_unusable_secret_is_asked_again(self) -> None:
        codec = SecretCodec(scope="me@here")
        foreign = SecretCodec(scope="you@there").encode("old")
        configuration = Configuration(
            repo_root_location="/r",
            organizations=[
                Organization(base_url="https://dev.azure.com/a", secret="fine"),
                Organization(base_url="https://dev.azure.com/b", secret=foreign),
            ],
        )
        prompt = ScriptedPrompt(texts=["new-pat"])

        self.assertEqual(unusable_secrets(configuration, codec), ["https://dev.azure.com/b"])
        changed = await refresh_unusable_secrets(configuration, prompt, codec)

        self.assertTrue(changed)
        self.assertEqual(configuration.organizations[0].secret, "fine")
        self.assertEqual(configuration.organizations[1].secret, "new-pat")
        self.assertEqual(len(prompt.text_calls), 1)

    async def test_blank_replacement_secret_fails(self) -> None:
        configuration = Configuration(
            repo_root_location="/r",
            organizations=[Organization(base_url="https://dev.azure.com/a")],
        )

        with self.assertRaises(MissingInputException):
            await refresh_unusable_secrets(configuration, ScriptedPrompt(texts=[""]), SecretCodec(scope="me@here"))


class TestRun(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "config.json"
        patcher = patch("bulk_repo_sync.main.DevOpsRestClient", return_value=_NullClient())
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_non_interactive_with_incomplete_configuration_fails_fast(self) -> None:
        args = parse_arguments(["--config", str(self.path), "--non-interactive"])

        with patch("bulk_repo_sync.main.Initializer") as initializer:
            with self.assertLogs("bulk_repo_sync.main", level="ERROR"):
                code = await run(args)

        self.assertEqual(code, 1)
        initializer.assert_not_called()
        self.assertFalse(self.path.exists())

    async def test_non_interactive_skips_prompts_and_does_not_rewrite(self) -> None:
        ConfigStore(self.path).save(Configuration(
            repo_root_location=self._tmp.name,
            organizations=[Organization(base_url="https://dev.azure.com/a", secret="pat", projects=[Project(name="P")])],
        ))
        before = self.path.read_text(encoding="utf-8")
        args = parse_arguments(["--config", str(self.path), "--non-interactive", "--no-sync"])

        with patch("bulk_repo_sync.main.Reconciler") as reconciler:
            code = await run(args)

        self.assertEqual(code, 0)
        reconciler.assert_not_called()
        self.assertEqual(self.path.read_text(encoding="utf-8"), before)

    async def test_interactive_run_saves_only_after_reconcile_changes(self) -> None:
        ConfigStore(self.path).save(Configuration(
            repo_root_location=self._tmp.name,
            organizations=[Organization(base_url="https://dev.azure.com/a", secret="pat")],
        ))
        args = parse_arguments(["--config", str(self.path), "--no-sync"])

        for changed in (False, True):
            with self.subTest(changed=changed):
                with patch("bulk_repo_sync.main.Reconciler") as reconciler, \
                        patch("bulk_repo_sync.main.ConfigStore.save") as save:
                    reconciler.return_value.reconcile = AsyncMock(return_value=changed)
                    code = await run(args)

                self.assertEqual(code, 0)
                self.assertEqual(save.called, changed)


class TestMain(unittest.TestCase):
    def test_closed_console_is_reported_not_raised(self) -> None:
        async def failing_run(args):
            raise ConsoleInputException("Could not read from the console: closed")

        with patch("bulk_repo_sync.main.configure_logging"), \
                patch("bulk_repo_sync.main.load_dotenv"), \
                patch("bulk_repo_sync.main.run", new=failing_run):
            with self.assertLogs("bulk_repo_sync.main", level="ERROR") as logs:
                code = main([])

        self.assertEqual(code, 1)
        self.assertIn("Could not read from the console", logs.output[0])
