from mergebot.core.conflict_issue import (
    ConflictMetadata,
    find_change_id,
    format_conflict_issue_title,
    parse_conflict_metadata,
    render_conflict_issue_body,
)


def _metadata() -> ConflictMetadata:
    return ConflictMetadata(
        change_id="123",
        quarantine_ref="mergeconflict/7/123/release-5.7/to/release-5.8",
        source_branch="release-5.7",
        target_branch="release-5.8",
        merge_ref="a" * 40,
        merge_forward_ref="mergefwd/123/release-5.8",
        conflicted_files=("app.py", "docs/index.md"),
    )


def test_format_conflict_issue_title() -> None:
    assert format_conflict_issue_title(45, "0123456789abcdef", "main") == (
        "Merge #45 (012345678) into main"
    )
    assert format_conflict_issue_title(None, "0123456789abcdef", "main") == (
        "Merge (012345678) into main"
    )


def test_render_conflict_issue_body_instructions() -> None:
    """Test that the body tells the resolver exactly what to merge where."""
    body = render_conflict_issue_body(
        metadata=_metadata(),
        author="alice",
        issue_number=7,
        referenced_issue=45,
        run_url="https://github.com/o/r/actions/runs/1",
    )

    assert "## Automatic Merge Failed" in body
    assert "@alice changes from pull request #123 for issue #45" in body
    assert "[merged forward automatically](https://github.com/o/r/actions/runs/1)" in body
    assert "against the `mergefwd/123/release-5.8` branch" in body
    assert "1. `git checkout mergeconflict/7/123/release-5.7/to/release-5.8`" in body
    assert f'1. `git merge {"a" * 40} -m "Merge {"a" * 40} Fixes #7"`' in body
    assert "- app.py\n- docs/index.md" in body


def test_render_conflict_issue_body_without_run_url() -> None:
    body = render_conflict_issue_body(
        metadata=_metadata(), author="alice", issue_number=7, referenced_issue=None, run_url=None
    )

    assert "couldn't be merged forward automatically into `release-5.8`" in body
    assert "for issue #" not in body


def test_parse_conflict_metadata_round_trip() -> None:
    """Test that the embedded block yields the same metadata back."""
    body = render_conflict_issue_body(
        metadata=_metadata(), author="alice", issue_number=7, referenced_issue=None, run_url=None
    )

    assert parse_conflict_metadata(body) == _metadata()


def test_parse_conflict_metadata_missing_or_invalid() -> None:
    assert parse_conflict_metadata("Just prose") is None

    invalid = (
        "<details>\n<summary><code>mergebot-conflict</code></summary>\n```yaml\n"
        "change_id: '123'\n```\n</details>"
    )
    assert parse_conflict_metadata(invalid) is None


def test_find_change_id_prefers_metadata() -> None:
    body = render_conflict_issue_body(
        metadata=_metadata(), author="alice", issue_number=7, referenced_issue=None, run_url=None
    )

    assert find_change_id(body) == "123"


def test_find_change_id_from_prose() -> None:
    """Test the fallback for issues written before metadata blocks existed."""
    body = "@bob changes from pull request #88 couldn't be merged forward automatically"

    assert find_change_id(body) == "88"
    assert find_change_id("nothing here") is None
