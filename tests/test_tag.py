"""Tests for release tagging: planning, recycling and cutting tags."""
import json
import logging

import pytest

from conftest import current_target, git, read_manifest

from gitmods.core.errors import GitmodsError
from gitmods.modules.context import Context
from gitmods.modules.graph import DependencyGraph
from gitmods.release.planner import ReleasePlanner, TagOptions, tag_operation
from gitmods.release.recycler import TagRecycler, find_tag_at_head
from gitmods.sync.update import update


def remote_tags(repos, name):
    out = git(repos.root, "ls-remote", "--tags", repos.url(name))
    return sorted(line.split("refs/tags/")[1] for line in out.splitlines() if not line.endswith("^{}"))


def manifest_at(directory, ref):
    return json.loads(git(directory, "show", f"{ref}:gitmods.json"))


def installed_project(repos):
    dep1 = repos.add_project("dep1")
    repos.add_project("main", {"dep1": dep1})
    project = repos.checkout("main")
    update(Context(project))
    return project


class TestCreate:
    """Cutting new tags for modules whose state was never tagged."""

    def test_tags_are_created_and_pushed(self, repos):
        """Test: a first release tags every module and pins dependencies.

        Given: main -> dep1@master, both at 0.1.0-snapshot.0
        When: tag_operation runs with the minor increment
        Then:
          - both remotes have tag 0.1.0 and branch release/0.1.0
          - main's tagged manifest pins dep1 at 0.1.0 and records provenance
          - the working versions move on to 0.2.0-snapshot.0
        """
        project = installed_project(repos)
        dep1 = project / "gitmods_modules" / "dep1"

        plan = tag_operation(Context(project), TagOptions(increment="minor"))

        assert [(name, e.tag, e.create) for name, e in plan.items()] == [
            ("main", "0.1.0", True),
            ("dep1", "0.1.0", True),
        ]
        assert remote_tags(repos, "main") == ["0.1.0"]
        assert remote_tags(repos, "dep1") == ["0.1.0"]
        assert git(project, "ls-remote", "--heads", "origin", "release/0.1.0")

        tagged = manifest_at(project, "0.1.0")
        assert tagged["version"] == "0.1.0"
        assert tagged["dependencies"]["dep1"] == f"{repos.url('dep1')}#0.1.0"
        assert tagged["tag"]["branch"] == "master"
        assert tagged["tag"]["target"] == {"branch": "master"}

        assert read_manifest(project)["version"] == "0.2.0-snapshot.0"
        assert read_manifest(project)["dependencies"]["dep1"] == f"{repos.url('dep1')}#master"
        assert read_manifest(dep1)["version"] == "0.2.0-snapshot.0"
        assert current_target(project) == "master"
        assert current_target(dep1) == "master"

    def test_metadata_files_follow_version(self, repos):
        repos.add_project(
            "main",
            files={"package.json": json.dumps({"name": "main", "version": "0.0.0"})},
        )
        project = repos.checkout("main")

        tag_operation(Context(project), TagOptions(increment="patch"))

        assert json.loads(git(project, "show", "0.1.0:package.json"))["version"] == "0.1.0"
        assert json.loads((project / "package.json").read_text())["version"] == "0.1.1-snapshot.0"

    def test_module_without_manifest_is_excluded(self, repos, caplog):
        dep1 = repos.add_project("dep1", manifest=False)
        repos.add_project("main", {"dep1": dep1})
        project = repos.checkout("main")
        update(Context(project))

        with caplog.at_level(logging.WARNING):
            plan = tag_operation(Context(project))

        assert list(plan) == ["main"]
        assert "dep1 has no valid gitmods.json" in caplog.text
        assert remote_tags(repos, "dep1") == []

    def test_existing_tag_uses_alternative(self, repos):
        dep1 = repos.add_project("dep1")
        repos.add_project("main", {"dep1": dep1}, tag="0.1.0")
        repos.add_project("main", {"dep1": dep1})
        project = repos.checkout("main")
        update(Context(project))

        plan = tag_operation(Context(project), TagOptions(increment="minor"))

        assert plan["main"].tag == "0.2.0"
        assert plan["dep1"].tag == "0.1.0"

    def test_existing_tag_interactive_choice(self, repos):
        repos.add_project("main", tag="0.1.0")
        repos.add_project("main")
        project = repos.checkout("main")
        offered = []

        def choose(name, tag, alternatives, default):
            offered.append((name, tag, alternatives, default))
            return alternatives[2]

        context = Context(project)
        planner = ReleasePlanner(context, DependencyGraph(context), interactive=True, choose=choose)
        plan = planner.plan()

        assert offered == [("main", "0.1.0", ["1.0.0", "0.2.0", "0.1.1"], "0.2.0")]
        assert plan["main"].tag == "0.1.1"

    def test_declined_confirmation_changes_nothing(self, repos):
        project = installed_project(repos)
        head = git(project, "rev-parse", "HEAD")

        tag_operation(
            Context(project),
            TagOptions(interactive=True),
            confirm=lambda message: False,
        )

        assert remote_tags(repos, "main") == []
        assert git(project, "rev-parse", "HEAD") == head

    def test_tag_created_after_planning_stops_execution(self, repos):
        repos.add_project("main")
        project = repos.checkout("main")
        context = Context(project)
        planner = ReleasePlanner(context, DependencyGraph(context))
        plan = planner.plan()
        git(project, "tag", "0.1.0")

        with pytest.raises(GitmodsError, match="created since planning"):
            planner.execute(plan)

        assert git(project, "branch", "--list", "release/0.1.0") == ""
        assert remote_tags(repos, "main") == []


class TestRecycle:
    """Reusing tags whose provenance matches the current state."""

    def test_unchanged_tree_reuses_tags(self, repos, caplog):
        project = installed_project(repos)
        tag_operation(Context(project))

        with caplog.at_level(logging.INFO):
            plan = tag_operation(Context(project))

        assert all(entry.recycled and not entry.create for entry in plan.values())
        assert [e.tag for e in plan.values()] == ["0.1.0", "0.1.0"]
        assert "No valid repositories found to tag" in caplog.text

    def test_change_in_dependency_invalidates_ancestors(self, repos):
        """Test: a recycled tag is valid only if its whole subtree is.

        Given: a tagged tree main -> dep1
        When: dep1 gets a new upstream commit that is pulled
        Then: both dep1 and main get new tags, although main itself is unchanged
        """
        project = installed_project(repos)
        tag_operation(Context(project))
        repos.push_file("dep1", "upstream.txt", "new")
        update(Context(project))

        plan = tag_operation(Context(project))

        assert plan["dep1"].create and plan["dep1"].tag == "0.2.0"
        assert plan["main"].create and plan["main"].tag == "0.2.0"
        assert manifest_at(project, "0.2.0")["dependencies"]["dep1"] == f"{repos.url('dep1')}#0.2.0"

    def test_module_checked_out_at_tag_is_reused(self, repos):
        dep1 = repos.add_project("dep1", version="1.0.0", tag="1.0.0")
        repos.add_project("main", {"dep1": dep1})
        project = repos.checkout("main")
        update(Context(project))

        plan = tag_operation(Context(project))

        assert plan["dep1"].recycled and plan["dep1"].tag == "1.0.0"
        assert plan["main"].create
        assert manifest_at(project, plan["main"].tag)["dependencies"]["dep1"] == dep1

    def test_find_tag_at_head(self, repos):
        project = installed_project(repos)
        context = Context(project)
        assert find_tag_at_head(context.root_snapshot()) is None

        tag_operation(Context(project))
        context.reload()
        assert find_tag_at_head(context.root_snapshot()) == "0.1.0"

    def test_tag_with_different_dependencies_is_not_recycled(self, repos):
        project = installed_project(repos)
        tag_operation(Context(project))
        repos.add_project("dep2")
        manifest = read_manifest(project)
        manifest["dependencies"]["dep2"] = f"{repos.url('dep2')}#master"
        (project / "gitmods.json").write_text(json.dumps(manifest, indent=2))
        update(Context(project))

        context = Context(project)
        graph = DependencyGraph(context)
        recycler = TagRecycler(graph)

        assert recycler.candidate(graph.root) == "0.1.0"
        assert recycler.recycled_tag(graph.root) is None
        assert recycler.recycled_tag(graph.nodes["dep1"]) == "0.1.0"
