"""Tests for MergeChainExecutor on top of FakeGit and FakeGitHubIssues."""

from mergebot.cli.config import BranchConfig, MergeBotConfig
from mergebot.core.context import MergeBotContext
from mergebot.core.executor import ExecutionStatus, HopStatus, MergeChainExecutor
from mergebot.core.git.fake import FakeGit
from mergebot.core.github.issues.fake import FakeGitHubIssues
from tests.test_utils.builders import DEFAULT_AUTHOR, FakeRepoBuilder, chain_repo, make_change
from tests.test_utils.paths import sentinel_path

QUARANTINE_MAIN = "mergeconflict/1/101/release-5.8/to/main"


def _ctx(git: FakeGit, issues: FakeGitHubIssues | None = None) -> MergeBotContext:
    return MergeBotContext.for_test(
        git=git,
        issues=issues if issues is not None else FakeGitHubIssues(),
        repo_root=sentinel_path(),
        run_url="https://github.com/test-owner/test-repo/actions/runs/1",
    )


def _fix_on_release_57(repo: FakeRepoBuilder) -> str:
    """Merge a fix into release-5.7 and leave its source branch on the remote."""
    sha = repo.commit("fix", parents=["r57"], files={"app.py": "version = 2\n"})
    repo.branch("release-5.7", "fix")
    repo.branch("alice/fix-widget", "fix")
    return sha


def _conflicting_repo() -> tuple[FakeRepoBuilder, str]:
    """Chain where the fix merges cleanly into release-5.8 but conflicts with main."""
    repo = FakeRepoBuilder()
    repo.commit("base", files={"app.py": "version = 1\n"})
    repo.commit("r57", parents=["base"], files={"notes-5.7.txt": "5.7\n"})
    repo.commit("r58", parents=["base"], files={"notes-5.8.txt": "5.8\n"})
    repo.commit("main", parents=["base"], files={"app.py": "version = 3\n"})
    repo.branch("release-5.7", "r57")
    repo.branch("release-5.8", "r58")
    repo.branch("main", "main")
    return repo, _fix_on_release_57(repo)


def test_clean_change_reaches_every_downstream_branch() -> None:
    """Test that a clean change is merged into every branch after its base."""
    repo = chain_repo()
    fix = _fix_on_release_57(repo)
    git = repo.build()
    issues = FakeGitHubIssues()

    result = MergeChainExecutor(_ctx(git, issues)).run(make_change(head_commit=fix))

    assert result.status is ExecutionStatus.COMPLETED
    assert result.change_id == "101"
    assert [hop.target for hop in result.hops] == ["release-5.8", "main"]
    assert all(hop.status is HopStatus.MERGED for hop in result.hops)
    assert result.updated_branches == ("release-5.8", "main")

    remote = git.remote_branches
    assert remote["release-5.8"] == remote["mergefwd/101/release-5.8"]
    assert remote["main"] == remote["mergefwd/101/main"]
    assert git.files_at("origin/release-5.8")["app.py"] == "version = 2\n"
    assert git.files_at("origin/main")["app.py"] == "version = 2\n"
    assert git.files_at("origin/main")["notes-main.txt"] == "main\n"
    assert issues.created_issues == []


def test_merge_commits_carry_original_author_and_description() -> None:
    repo = chain_repo()
    fix = _fix_on_release_57(repo)
    git = repo.build()

    MergeChainExecutor(_ctx(git)).run(make_change(head_commit=fix))

    first, second = git.created_commits
    assert first.author == DEFAULT_AUTHOR
    assert first.message == (
        f"auto-merge of {fix[:12]} into `release-5.8` from `release-5.7` for change #101 "
        "(triggered by #101 on `release-5.7`)"
    )
    assert second.parents[1] == first.sha
    assert "into `main` from `release-5.8`" in second.message
    assert git.identity == ("Merge Bot", "merge-bot@users.noreply.github.com")


def test_source_branch_is_deleted_on_completion() -> None:
    repo = chain_repo()
    fix = _fix_on_release_57(repo)
    git = repo.build()

    MergeChainExecutor(_ctx(git)).run(make_change(head_commit=fix))

    assert git.deleted_remote_branches == ["alice/fix-widget"]


def test_merge_forward_refs_start_at_known_good_pointer() -> None:
    """Test that commits past the pointer of a target stay out of the merge-forward ref."""
    repo = chain_repo()
    repo.commit("r58-unsafe", parents=["r58"], files={"unsafe.txt": "x\n"})
    repo.branch("release-5.8", "r58-unsafe")
    repo.branch("known-good/release-5.8", "r58")
    fix = _fix_on_release_57(repo)
    git = repo.build()

    result = MergeChainExecutor(_ctx(git)).run(make_change(head_commit=fix))

    assert result.hops[0].status is HopStatus.MERGED
    merged = git.get_commit(result.hops[0].commit)
    assert merged.parents == (repo.sha("r58"), fix)
    assert "unsafe.txt" not in merged.files
    # Folding merges the ref into the moved target instead of fast-forwarding
    assert "unsafe.txt" in git.files_at("origin/release-5.8")
    assert "app.py" in git.files_at("origin/release-5.8")


def test_conflict_blocks_chain_and_opens_issue() -> None:
    """Test that a conflicting hop is quarantined and no target branch moves."""
    repo, fix = _conflicting_repo()
    git = repo.build()
    issues = FakeGitHubIssues()
    before = git.remote_branches

    result = MergeChainExecutor(_ctx(git, issues)).run(
        make_change(head_commit=fix, body="Fixes #45")
    )

    assert result.status is ExecutionStatus.BLOCKED
    assert [hop.status for hop in result.hops] == [HopStatus.MERGED, HopStatus.CONFLICTED]
    conflict = result.conflict
    assert conflict is not None
    assert conflict.target == "main"
    assert conflict.source == "release-5.8"
    assert conflict.issue_number == 1
    assert conflict.quarantine_ref == QUARANTINE_MAIN
    assert conflict.merge_forward_ref == "mergefwd/101/main"
    assert conflict.conflicted_files == ("app.py",)

    remote = git.remote_branches
    assert remote[QUARANTINE_MAIN] == repo.sha("main")
    assert remote["mergefwd/101/main"] == repo.sha("main")
    for branch in ("release-5.7", "release-5.8", "main", "alice/fix-widget"):
        assert remote[branch] == before[branch]

    title, _, labels, milestone = issues.created_issues[0]
    assert title == f"Merge #45 ({fix[:9]}) into main"
    assert labels == ["highest priority", "merge conflict"]
    assert milestone is None
    issue = issues.get_issue(sentinel_path(), 1)
    assert "git merge origin/mergefwd/101/release-5.8" in issue.body
    assert f"git checkout {QUARANTINE_MAIN}" in issue.body
    assert issues.added_assignees == [(1, "alice")]


def test_conflict_on_first_hop_asks_for_change_commit() -> None:
    """Test that the first hop's resolution merges the change's own commit."""
    repo = chain_repo()
    repo.commit("r58-edit", parents=["r58"], files={"app.py": "version = 8\n"})
    repo.branch("release-5.8", "r58-edit")
    fix = _fix_on_release_57(repo)
    git = repo.build()
    issues = FakeGitHubIssues()

    result = MergeChainExecutor(_ctx(git, issues)).run(make_change(head_commit=fix))

    assert result.status is ExecutionStatus.BLOCKED
    assert result.conflict is not None
    assert result.conflict.quarantine_ref == "mergeconflict/1/101/release-5.7/to/release-5.8"
    assert f"git merge {fix}" in issues.get_issue(sentinel_path(), 1).body


def test_conflict_issue_uses_target_milestone() -> None:
    repo, fix = _conflicting_repo()
    git = repo.build()
    issues = FakeGitHubIssues()
    config = MergeBotConfig(
        branches=[
            BranchConfig(name="release-5.7"),
            BranchConfig(name="release-5.8"),
            BranchConfig(name="main", milestone="6.0"),
        ]
    )
    ctx = MergeBotContext.for_test(git=git, issues=issues, config=config)

    MergeChainExecutor(ctx).run(make_change(head_commit=fix))

    assert issues.created_issues[0][3] == "6.0"


def test_resolution_resumes_and_completes_chain() -> None:
    """Test that merging a resolution into the blocked merge-forward ref finishes the change."""
    repo, fix = _conflicting_repo()
    git = repo.build()
    issues = FakeGitHubIssues()
    ctx = _ctx(git, issues)
    MergeChainExecutor(ctx).run(make_change(head_commit=fix))

    resolved_files = git.files_at("origin/mergefwd/101/release-5.8")
    resolved_files["app.py"] = "version = 3\n"
    resolution = git.create_commit(
        parents=[f"origin/{QUARANTINE_MAIN}", "origin/mergefwd/101/release-5.8"],
        files=resolved_files,
        message="Merge origin/mergefwd/101/release-5.8 Fixes #1",
    )
    git.set_remote_branch(QUARANTINE_MAIN, resolution)
    git.set_remote_branch("mergefwd/101/main", resolution)

    result = MergeChainExecutor(ctx).run(
        make_change(
            id="102",
            author="bob",
            head_commit=resolution,
            source_branch=QUARANTINE_MAIN,
            base_branch="mergefwd/101/main",
            body="Fixes #1",
        )
    )

    assert result.status is ExecutionStatus.COMPLETED
    assert result.change_id == "101"
    assert result.hops == ()
    assert result.updated_branches == ("release-5.8", "main")
    assert git.remote_branches["main"] == resolution
    assert git.files_at("origin/main")["notes-5.7.txt"] == "5.7\n"
    # Quarantine refs are cleaned up by the maintainer, not deleted as source branches
    assert QUARANTINE_MAIN not in git.deleted_remote_branches


def test_resume_from_merge_forward_ref_with_remaining_hops() -> None:
    """Test that a resolution on a middle hop continues with the rest of the chain."""
    repo = chain_repo()
    repo.commit("r58-edit", parents=["r58"], files={"app.py": "version = 8\n"})
    repo.branch("release-5.8", "r58-edit")
    fix = _fix_on_release_57(repo)
    git = repo.build()
    ctx = _ctx(git)
    MergeChainExecutor(ctx).run(make_change(head_commit=fix))

    quarantine = "mergeconflict/1/101/release-5.7/to/release-5.8"
    resolved_files = git.files_at("origin/release-5.8")
    resolved_files.update({"app.py": "version = 9\n", "notes-5.7.txt": "5.7\n"})
    resolution = git.create_commit(
        parents=[f"origin/{quarantine}", fix], files=resolved_files, message="resolve"
    )
    git.set_remote_branch("mergefwd/101/release-5.8", resolution)

    result = MergeChainExecutor(ctx).run(
        make_change(
            id="102",
            head_commit=resolution,
            source_branch=quarantine,
            base_branch="mergefwd/101/release-5.8",
        )
    )

    assert result.status is ExecutionStatus.COMPLETED
    assert [hop.target for hop in result.hops] == ["main"]
    main_merge = git.get_commit(result.hops[0].commit)
    assert main_merge.parents[1] == resolution
    assert git.files_at("origin/main")["app.py"] == "version = 9\n"
    assert git.files_at("origin/release-5.8")["app.py"] == "version = 9\n"


def test_change_built_on_blocked_change_is_blocked_too() -> None:
    """Test that a change containing a blocked change hits the same conflict separately."""
    repo, fix = _conflicting_repo()
    other = repo.commit("other", parents=["fix"], files={"b.txt": "b\n"})
    repo.branch("release-5.7", "other")
    repo.branch("bob/other", "other")
    git = repo.build()
    issues = FakeGitHubIssues()
    ctx = _ctx(git, issues)

    blocked = MergeChainExecutor(ctx).run(make_change(head_commit=fix))
    second = MergeChainExecutor(ctx).run(
        make_change(id="201", head_commit=other, source_branch="bob/other")
    )

    assert blocked.status is ExecutionStatus.BLOCKED
    assert second.status is ExecutionStatus.BLOCKED
    assert second.conflict is not None
    assert second.conflict.quarantine_ref == "mergeconflict/2/201/release-5.8/to/main"
    assert git.remote_branches["main"] == repo.sha("main")
    assert git.remote_branches[QUARANTINE_MAIN] == repo.sha("main")


def test_two_conflicting_changes_get_separate_quarantines() -> None:
    """Test that two changes conflicting at the same hop never share refs or issues."""
    repo, fix = _conflicting_repo()
    other = repo.commit("other", parents=["r57"], files={"app.py": "version = 5\n"})
    repo.branch("bob/other", "other")
    git = repo.build()
    issues = FakeGitHubIssues()
    ctx = _ctx(git, issues)

    first = MergeChainExecutor(ctx).run(make_change(head_commit=fix))
    second = MergeChainExecutor(ctx).run(
        make_change(id="201", author="bob", head_commit=other, source_branch="bob/other")
    )

    assert first.conflict is not None
    assert second.conflict is not None
    assert first.conflict.quarantine_ref == QUARANTINE_MAIN
    assert second.conflict.quarantine_ref == "mergeconflict/2/201/release-5.8/to/main"
    assert git.files_at("origin/mergefwd/101/release-5.8")["app.py"] == "version = 2\n"
    assert git.files_at("origin/mergefwd/201/release-5.8")["app.py"] == "version = 5\n"

    first_body = issues.get_issue(sentinel_path(), 1).body
    second_body = issues.get_issue(sentinel_path(), 2).body
    assert "mergefwd/201" not in first_body
    assert "mergefwd/101" not in second_body
    assert "@bob" in second_body
    assert issues.added_assignees == [(1, "alice"), (2, "bob")]


def test_independent_change_completes_while_another_is_blocked() -> None:
    repo, fix = _conflicting_repo()
    repo.commit("independent", parents=["r57"], files={"b.txt": "b\n"})
    repo.branch("bob/independent", "independent")
    git = repo.build()
    ctx = _ctx(git)

    MergeChainExecutor(ctx).run(make_change(head_commit=fix))
    result = MergeChainExecutor(ctx).run(
        make_change(id="201", head_commit=repo.sha("independent"), source_branch="bob/independent")
    )

    assert result.status is ExecutionStatus.COMPLETED
    main_files = git.files_at("origin/main")
    assert main_files["b.txt"] == "b\n"
    assert main_files["app.py"] == "version = 3\n"
    release_58 = git.files_at("origin/release-5.8")
    assert release_58["app.py"] == "version = 1\n"
    assert "mergefwd/101/release-5.8" in git.remote_branches
    assert QUARANTINE_MAIN in git.remote_branches


def test_replaying_completed_run_is_a_no_op() -> None:
    """Test that handling the same event twice creates no new commits."""
    repo = chain_repo()
    fix = _fix_on_release_57(repo)
    git = repo.build()
    ctx = _ctx(git)
    change = make_change(head_commit=fix)
    MergeChainExecutor(ctx).run(change)
    commits_after_first_run = len(git.created_commits)
    remote_after_first_run = git.remote_branches

    result = MergeChainExecutor(ctx).run(change)

    assert result.status is ExecutionStatus.COMPLETED
    assert all(hop.status is HopStatus.ALREADY_MERGED for hop in result.hops)
    assert result.updated_branches == ()
    assert len(git.created_commits) == commits_after_first_run
    assert git.remote_branches == remote_after_first_run


def test_replaying_after_cleanup_is_a_no_op() -> None:
    """Test that a replay after merge-forward refs were deleted finds the change merged."""
    repo = chain_repo()
    fix = _fix_on_release_57(repo)
    git = repo.build()
    ctx = _ctx(git)
    change = make_change(head_commit=fix)
    MergeChainExecutor(ctx).run(change)
    for name in ("mergefwd/101/release-5.8", "mergefwd/101/main"):
        git.delete_remote_branch(sentinel_path(), "origin", name)
    commits_after_first_run = len(git.created_commits)

    result = MergeChainExecutor(ctx).run(change)

    assert result.status is ExecutionStatus.COMPLETED
    assert all(hop.status is HopStatus.ALREADY_MERGED for hop in result.hops)
    assert len(git.created_commits) == commits_after_first_run


def test_replaying_blocked_run_reuses_quarantine() -> None:
    """Test that a replayed conflict does not open a second issue."""
    repo, fix = _conflicting_repo()
    git = repo.build()
    issues = FakeGitHubIssues()
    ctx = _ctx(git, issues)
    change = make_change(head_commit=fix)
    MergeChainExecutor(ctx).run(change)

    result = MergeChainExecutor(ctx).run(change)

    assert result.status is ExecutionStatus.BLOCKED
    assert result.conflict is not None
    assert result.conflict.issue_number == 1
    assert len(issues.created_issues) == 1


def test_unmerged_change_is_skipped() -> None:
    git = chain_repo().build()

    result = MergeChainExecutor(_ctx(git)).run(make_change(head_commit="0" * 40, merged=False))

    assert result.status is ExecutionStatus.SKIPPED
    assert git.fetch_count == 0


def test_change_outside_chain_is_skipped() -> None:
    git = chain_repo().build()

    result = MergeChainExecutor(_ctx(git)).run(
        make_change(head_commit="0" * 40, base_branch="feature/x")
    )

    assert result.status is ExecutionStatus.SKIPPED
    assert "not part of the chain" in result.message


def test_change_into_terminal_branch_is_skipped() -> None:
    git = chain_repo().build()

    change = make_change(head_commit="0" * 40, base_branch="main")

    result = MergeChainExecutor(_ctx(git)).run(change)

    assert result.status is ExecutionStatus.SKIPPED
    assert git.pushed_branches == []


def test_merge_forward_ref_outside_chain_is_skipped() -> None:
    git = chain_repo().build()

    result = MergeChainExecutor(_ctx(git)).run(
        make_change(head_commit="0" * 40, base_branch="mergefwd/101/develop")
    )

    assert result.status is ExecutionStatus.SKIPPED
    assert result.change_id == "101"
