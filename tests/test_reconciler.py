import unittest

from bulk_repo_sync.application.reconciler import Reconciler
from bulk_repo_sync.domain.models import Configuration, Organization, Project
from tests.fakes import FakeLister, ScriptedPrompt

ORG_URL = "https://dev.azure.com/contoso"


def _configuration() -> Configuration:
    return Configuration(
        repo_root_location="/repos",
        organizations=[
            Organization(
                base_url=ORG_URL,
                secret="pat",
                projects=[Project(name="A", repositories=["a1"]), Project(name="B", repositories=["b1"])],
            )
        ],
    )


class TestReconciler(unittest.IsolatedAsyncioTestCase):
    async def test_same_projects_is_not_a_change(self) -> None:
        lister = FakeLister(projects={ORG_URL: ["b", "A"]})
        prompt = ScriptedPrompt()

        mutated = await Reconciler(lister, prompt).reconcile(_configuration())

        self.assertFalse(mutated)
        self.assertEqual(prompt.asked, [])
        self.assertEqual(lister.project_calls, [(ORG_URL, "pat")])

    async def test_accepted_drift_keeps_known_projects_and_fetches_new(self) -> None:
        configuration = _configuration()
        project_a = configuration.organizations[0].projects[0]
        lister = FakeLister(projects={ORG_URL: ["A", "C"]}, repositories={"C": ["c1", "c2"]})
        prompt = ScriptedPrompt(answers=[True], selections=[["A", "C"]])

        mutated = await Reconciler(lister, prompt).reconcile(configuration)

        projects = configuration.organizations[0].projects
        self.assertTrue(mutated)
        self.assertEqual([p.name for p in projects], ["A", "C"])
        self.assertIs(projects[0], project_a)
        self.assertEqual(projects[1].repositories, ["c1", "c2"])
        self.assertEqual(lister.repository_calls, [(ORG_URL, "C", "pat")])

    async def test_drift_prompts_use_ten_second_deadline_and_keep_current_default(self) -> None:
        lister = FakeLister(projects={ORG_URL: ["A", "C"]})
        prompt = ScriptedPrompt(answers=[True])

        await Reconciler(lister, prompt).reconcile(_configuration())

        self.assertEqual(prompt.asked[0][1], 10.0)
        call = prompt.selection_calls[0]
        self.assertEqual(call["timeout"], 10.0)
        self.assertEqual(call["items"], ["A", "C"])
        self.assertEqual(call["default_on_timeout"], ["A", "B"])
        self.assertEqual(call["preselected"], ["A"])

    async def test_declined_or_unanswered_drift_keeps_selection(self) -> None:
        for answer in (False, None):
            with self.subTest(answer=answer):
                configuration = _configuration()
                lister = FakeLister(projects={ORG_URL: ["A", "C"]})
                prompt = ScriptedPrompt(answers=[answer])

                mutated = await Reconciler(lister, prompt).reconcile(configuration)

                self.assertFalse(mutated)
                self.assertEqual(configuration.organizations[0].project_names(), ["A", "B"])
                self.assertEqual(prompt.selection_calls, [])
                self.assertEqual(lister.repository_calls, [])

    async def test_selection_timeout_keeps_previous_projects(self) -> None:
        configuration = _configuration()
        original = list(configuration.organizations[0].projects)
        lister = FakeLister(projects={ORG_URL: ["A", "C"]})
        prompt = ScriptedPrompt(answers=[True], selections=[None])

        mutated = await Reconciler(lister, prompt).reconcile(configuration)

        self.assertFalse(mutated)
        self.assertEqual(configuration.organizations[0].projects, original)
        self.assertIs(configuration.organizations[0].projects[1], original[1])
        self.assertEqual(lister.repository_calls, [])

    async def test_failed_listing_is_treated_as_no_drift(self) -> None:
        lister = FakeLister(projects={})
        prompt = ScriptedPrompt()

        with self.assertLogs("bulk_repo_sync.application.reconciler", level="WARNING"):
            mutated = await Reconciler(lister, prompt).reconcile(_configuration())

        self.assertFalse(mutated)
        self.assertEqual(prompt.asked, [])

    async def test_only_drifted_organization_is_changed(self) -> None:
        configuration = _configuration()
        other_url = "https://dev.azure.com/fabrikam"
        configuration.organizations.append(
            Organization(base_url=other_url, secret="pat2", projects=[Project(name="X")])
        )
        lister = FakeLister(projects={ORG_URL: ["A", "B"], other_url: ["X", "Y"]}, repositories={"Y": ["y1"]})
        prompt = ScriptedPrompt(answers=[True], selections=[["X", "Y"]])

        mutated = await Reconciler(lister, prompt, timeout=3).reconcile(configuration)

        self.assertTrue(mutated)
        self.assertEqual(configuration.organizations[0].project_names(), ["A", "B"])
        self.assertEqual(configuration.organizations[1].project_names(), ["X", "Y"])
        self.assertEqual(lister.repository_calls, [(other_url, "Y", "pat2")])
        self.assertEqual(prompt.asked[0][1], 3)
