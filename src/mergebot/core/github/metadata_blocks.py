"""Structured YAML metadata embedded in issue markdown.

The bot writes one of these blocks into every conflict tracking issue so that a
later run can recover which change and refs the issue belongs to without
parsing human-facing prose.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_BLOCK_PATTERN = re.compile(
    r"<details>\s*<summary><code>([^<]+)</code></summary>\s*```yaml\s*(.*?)\s*```\s*</details>",
    re.DOTALL,
)


@dataclass(frozen=True)
class MetadataBlock:
    """A metadata block with a key and structured YAML data."""

    key: str
    data: dict[str, Any]


class MetadataBlockSchema(ABC):
    """Base class for metadata block schemas."""

    @abstractmethod
    def validate(self, data: dict[str, Any]) -> None:
        """Validate data against schema. Raises ValueError if invalid."""
        ...

    @abstractmethod
    def get_key(self) -> str:
        """Return the metadata block key this schema validates."""
        ...


@dataclass(frozen=True)
class ConflictIssueSchema(MetadataBlockSchema):
    """Schema for mergebot-conflict blocks (one blocked hop of one change)."""

    def validate(self, data: dict[str, Any]) -> None:
        required_fields = {
            "change_id",
            "quarantine_ref",
            "source_branch",
            "target_branch",
            "merge_ref",
        }
        optional_fields = {"merge_forward_ref", "conflicted_files"}

        missing = required_fields - set(data.keys())
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(sorted(missing))}")

        for field in required_fields:
            if not isinstance(data[field], str) or not data[field]:
                raise ValueError(f"{field} must be a non-empty string")

        if "merge_forward_ref" in data and not isinstance(data["merge_forward_ref"], str):
            raise ValueError("merge_forward_ref must be a string")

        if "conflicted_files" in data:
            files = data["conflicted_files"]
            if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
                raise ValueError("conflicted_files must be a list of strings")

        unknown_fields = set(data.keys()) - (required_fields | optional_fields)
        if unknown_fields:
            raise ValueError(f"Unknown fields: {', '.join(sorted(unknown_fields))}")

    def get_key(self) -> str:
        return "mergebot-conflict"


def create_metadata_block(
    key: str,
    data: dict[str, Any],
    *,
    schema: MetadataBlockSchema | None = None,
) -> MetadataBlock:
    """Create a metadata block with optional schema validation.

    Raises:
        ValueError: If schema validation fails
    """
    if schema is not None:
        schema.validate(data)

    return MetadataBlock(key=key, data=data)


def render_metadata_block(block: MetadataBlock) -> str:
    """Render a metadata block as a collapsed markdown section.

    Returns markdown like:
    <details>
    <summary><code>{key}</code></summary>
    ```yaml
    {yaml_content}
    ```
    </details>
    """
    yaml_content = yaml.safe_dump(
        block.data,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    ).rstrip("\n")

    return f"""<details>
<summary><code>{block.key}</code></summary>
```yaml
{yaml_content}
```
</details>"""


def parse_metadata_blocks(text: str) -> list[MetadataBlock]:
    """Extract all metadata blocks from markdown text.

    Parsing is lenient: blocks whose YAML is broken or not a mapping are logged
    and skipped.
    """
    blocks: list[MetadataBlock] = []

    for match in _BLOCK_PATTERN.finditer(text):
        key = match.group(1).strip()
        try:
            data = yaml.safe_load(match.group(2))
        except yaml.YAMLError as e:
            logger.warning("Failed to parse YAML for metadata block '%s': %s", key, e)
            continue
        if not isinstance(data, dict):
            logger.warning("Metadata block '%s' YAML did not parse to dict, skipping", key)
            continue
        blocks.append(MetadataBlock(key=key, data=data))

    return blocks


def find_metadata_block(text: str, key: str) -> MetadataBlock | None:
    """Find the first metadata block with the given key."""
    for block in parse_metadata_blocks(text):
        if block.key == key:
            return block
    return None


def extract_metadata_value(text: str, key: str, field: str) -> Any | None:
    """Extract a single field from a metadata block.

    Example:
        >>> extract_metadata_value(issue.body, "mergebot-conflict", "change_id")
        "12345"
    """
    block = find_metadata_block(text, key)
    if block is None:
        return None

    return block.data.get(field)
