"""Unit tests for installer operations, with the Automation API mocked out."""

from unittest.mock import MagicMock

import pytest
from pulumi import automation as auto

from selfhosted.installer import runner
from selfhosted.installer.projects import Project


def make_project(name):
    return Project(name=name, project_name=f"selfhosted-gke-{name}", stack_name="dev", program=lambda: None)


@pytest.fixture
def projects():
    return [make_project("infrastructure"), make_project("kubernetes"), make_project("application")]


class TestRun:
    """Tests for operation dispatch."""

    @pytest.mark.parametrize("operation,target", [
        (runner.INIT, "init"),
        (runner.SET_CONFIG, "set_config"),
        (runner.UPDATE, "update"),
    ])
    def test_forward_order(self, monkeypatch, projects, operation, target):
        seen = []
        monkeypatch.setattr(runner, target, lambda ps, *args: seen.extend(p.name for p in ps))

        runner.run(operation, projects)

        assert seen == ["infrastructure", "kubernetes", "application"]

    @pytest.mark.parametrize("operation,target", [
        (runner.DESTROY, "destroy"),
        (runner.UNPROTECT_ALL, "unprotect_all"),
    ])
    def test_reverse_order(self, monkeypatch, projects, operation, target):
        """Test teardown style operations walk the projects backwards."""
        seen = []
        monkeypatch.setattr(runner, target, lambda ps, *args: seen.extend(p.name for p in ps))

        runner.run(operation, projects)

        assert seen == ["application", "kubernetes", "infrastructure"]
        assert [p.name for p in projects] == ["infrastructure", "kubernetes", "application"]

    def test_message_forwarded(self, monkeypatch, projects):
        calls = []
        monkeypatch.setattr(runner, "update", lambda ps, message: calls.append(message))

        runner.run(runner.UPDATE, projects, "deploy v2")

        assert calls == ["deploy v2"]

    def test_unknown_operation(self, projects):
        with pytest.raises(ValueError, match="Unknown operation"):
            runner.run("refresh", projects)


class TestInit:
    """Tests for stack creation."""

    def test_existing_stack_tolerated(self, monkeypatch, projects):
        def create_stack(**kwargs):
            raise auto.StackAlreadyExistsError("exists")

        monkeypatch.setattr(runner.auto, "create_stack", create_stack)

        runner.init(projects)

    def test_other_errors_propagate(self, monkeypatch, projects):
        def create_stack(**kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(runner.auto, "create_stack", create_stack)

        with pytest.raises(RuntimeError):
            runner.init(projects)


class TestUpdate:
    """Tests for update and destroy."""

    def test_update_sets_config_then_runs_up(self, monkeypatch, projects):
        stack = MagicMock()
        monkeypatch.setattr(runner, "select_stack", lambda project: stack)

        runner.update(projects[:1], "msg")

        stack.set_all_config.assert_called_once_with(projects[0].config)
        stack.up.assert_called_once_with(message="msg", on_output=runner.engine_output)

    def test_destroy(self, monkeypatch, projects):
        stack = MagicMock()
        monkeypatch.setattr(runner, "select_stack", lambda project: stack)

        runner.destroy(projects, None)

        assert stack.destroy.call_count == 3


class TestUnprotect:
    """Tests for clearing the protect flag."""

    def test_clear_protect(self):
        deployment = {"resources": [
            {"urn": "a", "protect": True},
            {"urn": "b"},
            {"urn": "c", "protect": False},
        ]}

        assert runner.clear_protect(deployment) == 1
        assert all("protect" not in resource for resource in deployment["resources"])

    def test_clear_protect_empty_state(self):
        assert runner.clear_protect({}) == 0

    def test_unprotect_all_round_trips_state(self, monkeypatch, projects):
        state = MagicMock()
        state.deployment = {"resources": [{"urn": "a", "protect": True}]}
        stack = MagicMock()
        stack.export_stack.return_value = state
        monkeypatch.setattr(runner, "select_stack", lambda project: stack)

        runner.unprotect_all(projects[:1])

        stack.import_stack.assert_called_once_with(state)
        assert state.deployment["resources"] == [{"urn": "a"}]
