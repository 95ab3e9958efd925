import tomllib
from pathlib import Path

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mergebot.core.branch_names import is_bot_ref, is_quarantine_encodable, is_valid_branch_name
from mergebot.core.chain import BranchChain
from mergebot.core.errors import ConfigError

DEFAULT_CONFIG_PATH = Path(".github") / "mergebot.toml"
DEFAULT_ISSUE_LABELS = ["highest priority", "merge conflict"]


class BranchConfig(BaseModel):
    """One `[[branches]]` entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    milestone: str | None = None


class IdentityConfig(BaseModel):
    """Committer identity used for merge commits."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = "Merge Bot"
    email: str = "merge-bot@users.noreply.github.com"


class MergeBotConfig(BaseModel):
    """In-memory representation of `.github/mergebot.toml`."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    remote: str = "origin"
    issue_labels: list[str] = Field(default_factory=lambda: list(DEFAULT_ISSUE_LABELS))
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    branches: list[BranchConfig] = Field(min_length=1)
    merge_operations: dict[str, str] | None = None

    @field_validator("branches")
    @classmethod
    def _check_branch_names(cls, branches: list[BranchConfig]) -> list[BranchConfig]:
        for branch in branches:
            if not is_valid_branch_name(branch.name):
                raise ValueError(f"'{branch.name}' is not a valid branch name")
            if is_bot_ref(branch.name):
                raise ValueError(f"'{branch.name}' is inside a namespace owned by the bot")
            if not is_quarantine_encodable(branch.name):
                raise ValueError(f"'{branch.name}' cannot contain a path component named 'to'")
        return branches

    @model_validator(mode="after")
    def _check_chain(self) -> "MergeBotConfig":
        self.chain()
        return self

    def chain(self) -> BranchChain:
        """Build the branch chain this configuration describes."""
        return BranchChain.build(
            [branch.name for branch in self.branches],
            self.merge_operations,
            {branch.name: branch.milestone for branch in self.branches if branch.milestone},
        )


def load_config(config_path: Path) -> MergeBotConfig:
    """Load and validate the bot configuration.

    Example config:
      [identity]
      name = "Merge Bot"
      email = "merge-bot@example.com"

      [[branches]]
      name = "release-5.7"
      milestone = "5.7.x"

      [[branches]]
      name = "main"

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or fails validation
    """
    if not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise ConfigError(msg)

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Config file {config_path} is not valid TOML: {e}"
        raise ConfigError(msg) from e

    try:
        return MergeBotConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid config in {config_path}:\n{e}"
        raise ConfigError(msg) from e


def save_config(config_path: Path, config: MergeBotConfig) -> None:
    """Write a configuration as TOML.

    Creates the parent directory if it doesn't exist. Only non-default settings
    besides the branch list are written.
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    doc = tomlkit.document()
    if config.remote != "origin":
        doc["remote"] = config.remote
    if config.issue_labels != DEFAULT_ISSUE_LABELS:
        doc["issue_labels"] = config.issue_labels
    if config.identity != IdentityConfig():
        identity = tomlkit.table()
        identity["name"] = config.identity.name
        identity["email"] = config.identity.email
        doc["identity"] = identity

    branches = tomlkit.aot()
    for branch in config.branches:
        entry = tomlkit.table()
        entry["name"] = branch.name
        if branch.milestone is not None:
            entry["milestone"] = branch.milestone
        branches.append(entry)
    doc["branches"] = branches

    if config.merge_operations is not None:
        operations = tomlkit.table()
        for source, target in config.merge_operations.items():
            operations[source] = target
        doc["merge_operations"] = operations

    config_path.write_text(tomlkit.dumps(doc), encoding="utf-8")
