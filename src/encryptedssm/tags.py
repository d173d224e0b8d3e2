"""Key/value tag sets and SSM tag reconciliation.

A :class:`TagSet` maps tag keys to :class:`TagData`. All derived operations
return new sets; nothing here mutates in place. Keys under the ``aws:``
prefix belong to AWS and are never read back to the caller nor written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError

from encryptedssm.errors import TagUpdateError

if TYPE_CHECKING:
    from mypy_boto3_ssm import SSMClient

logger = logging.getLogger(__name__)

AWS_TAG_KEY_PREFIX = "aws:"
PARAMETER_RESOURCE_TYPE = "Parameter"


@dataclass(frozen=True)
class TagData:
    """Data attached to one tag key.

    For SSM this is only ever a value, but some services attach extra
    per-tag fields (autoscaling's ``PropagateAtLaunch`` for instance), so
    those are carried and compared too.
    """

    value: str | None = None
    additional_bool_fields: dict[str, bool | None] = field(default_factory=dict)
    additional_string_fields: dict[str, str | None] = field(default_factory=dict)


class TagSet(Mapping[str, "TagData | None"]):
    """Immutable mapping of tag key to :class:`TagData` (``None`` for key-only entries)."""

    __slots__ = ("_tags",)

    def __init__(self, tags: Mapping[str, TagData | None] | None = None) -> None:
        self._tags: dict[str, TagData | None] = dict(tags or {})

    # -- constructors, one per accepted input shape --------------------

    @classmethod
    def from_map(cls, tags: Mapping[str, str]) -> TagSet:
        return cls({k: TagData(value=v) for k, v in tags.items()})

    @classmethod
    def from_optional_map(cls, tags: Mapping[str, str | None]) -> TagSet:
        return cls({k: None if v is None else TagData(value=v) for k, v in tags.items()})

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> TagSet:
        return cls({k: None for k in keys})

    @classmethod
    def from_ssm(cls, tag_list: Iterable[Mapping[str, str]]) -> TagSet:
        """Build a set from an SSM ``TagList`` (``[{"Key": ..., "Value": ...}]``)."""
        return cls({t["Key"]: TagData(value=t.get("Value")) for t in tag_list})

    # -- Mapping protocol ----------------------------------------------

    def __getitem__(self, key: str) -> TagData | None:
        return self._tags[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __repr__(self) -> str:
        return f"TagSet({self.to_map()!r})"

    # -- filters -------------------------------------------------------

    def ignore_aws(self) -> TagSet:
        """Return the tags whose keys are not AWS-reserved."""
        return TagSet({k: v for k, v in self._tags.items() if not k.startswith(AWS_TAG_KEY_PREFIX)})

    def ignore_prefixes(self, prefixes: Iterable[str]) -> TagSet:
        prefixes = tuple(prefixes)
        return TagSet(
            {k: v for k, v in self._tags.items() if not any(k.startswith(p) for p in prefixes)}
        )

    def ignore(self, keys: Iterable[str]) -> TagSet:
        skip = set(keys)
        return TagSet({k: v for k, v in self._tags.items() if k not in skip})

    def ignore_config(self, config: IgnoreConfig | None) -> TagSet:
        """Return the tags not removed by *config* (prefixes first, then exact keys)."""
        if config is None:
            return self
        return self.ignore_prefixes(config.key_prefixes).ignore(config.keys)

    # -- differences ---------------------------------------------------

    def removed(self, new: TagSet) -> TagSet:
        """Tags present here but absent from *new*."""
        return TagSet({k: v for k, v in self._tags.items() if k not in new})

    def updated(self, new: TagSet) -> TagSet:
        """Tags in *new* that are absent here or whose data differs."""
        return TagSet(
            {k: v for k, v in new.items() if k not in self._tags or self._tags[k] != v}
        )

    # -- export --------------------------------------------------------

    def to_map(self) -> dict[str, str]:
        return {k: "" if v is None or v.value is None else v.value for k, v in self._tags.items()}

    def to_ssm_tags(self) -> list[dict[str, str]]:
        return [{"Key": k, "Value": v} for k, v in sorted(self.to_map().items())]


@dataclass(frozen=True)
class IgnoreConfig:
    """Tags to hide when presenting observed state: exact keys and key prefixes."""

    keys: TagSet = field(default_factory=TagSet)
    key_prefixes: TagSet = field(default_factory=TagSet)


def list_tags(ssm_client: SSMClient, identifier: str, resource_type: str) -> TagSet:
    """List the tags on an SSM resource.

    Raises:
        botocore.exceptions.ClientError: passed through for the caller to wrap.
    """
    response = ssm_client.list_tags_for_resource(
        ResourceType=resource_type, ResourceId=identifier
    )
    return TagSet.from_ssm(response.get("TagList", []))


def update_tags(
    ssm_client: SSMClient,
    identifier: str,
    resource_type: str,
    old_tags: TagSet,
    new_tags: TagSet,
) -> None:
    """Apply the minimal tag mutations that turn *old_tags* into *new_tags*.

    At most one RemoveTagsFromResource and one AddTagsToResource call are
    made. AWS-reserved keys are stripped from both.

    Raises:
        TagUpdateError: If either call fails.
    """
    removed = old_tags.removed(new_tags).ignore_aws()
    if removed:
        logger.debug("Removing tags %s from %s", sorted(removed), identifier)
        try:
            ssm_client.remove_tags_from_resource(
                ResourceType=resource_type,
                ResourceId=identifier,
                TagKeys=sorted(removed),
            )
        except (ClientError, BotoCoreError) as exc:
            raise TagUpdateError(identifier, "RemoveTagsFromResource", exc) from exc

    updated = old_tags.updated(new_tags).ignore_aws()
    if updated:
        logger.debug("Adding tags %s to %s", sorted(updated), identifier)
        try:
            ssm_client.add_tags_to_resource(
                ResourceType=resource_type,
                ResourceId=identifier,
                Tags=updated.to_ssm_tags(),
            )
        except (ClientError, BotoCoreError) as exc:
            raise TagUpdateError(identifier, "AddTagsToResource", exc) from exc
