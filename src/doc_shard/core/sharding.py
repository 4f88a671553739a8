import logging
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field

from doc_shard.core.errors import ShardPolicyViolation
from doc_shard.models import (
    CountPolicy,
    DocumentTree,
    LevelPolicy,
    Shard,
    ShardBoundary,
    ShardPolicy,
    SubtreePolicy,
)

logger = logging.getLogger(__name__)

SPINE_SHARD_ID = "S-spine"


@dataclass
class ShardSet:
    """Ordered shards of one partitioning pass, with lookups that never re-walk the tree."""

    source: str
    policy: ShardPolicy
    shards: list[Shard]
    levels: dict[int, list[str]] = field(default_factory=dict, repr=False)
    _by_id: dict[str, Shard] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {shard.shard_id: shard for shard in self.shards}

    def __iter__(self) -> Iterator[Shard]:
        return iter(self.shards)

    def __len__(self) -> int:
        return len(self.shards)

    def get_shard_by_id(self, shard_id: str) -> Shard | None:
        return self._by_id.get(shard_id)

    def get_nodes_at_level(self, level: int) -> list[str]:
        return list(self.levels.get(level, []))


def _level_shards(tree: DocumentTree, policy: LevelPolicy) -> list[Shard]:
    bands: dict[int, list[str]] = {}
    for node in tree.iter_preorder():
        bands.setdefault(node.level // policy.levels_per_shard, []).append(node.id)
    shards = []
    for band in sorted(bands):
        low = band * policy.levels_per_shard
        high = low + policy.levels_per_shard - 1
        shards.append(
            Shard(
                shard_id=f"L{low}-{high}",
                node_ids=bands[band],
                boundary=ShardBoundary(kind="level", level_start=low, level_end=high),
            )
        )
    return shards


def _count_shards(tree: DocumentTree, policy: CountPolicy) -> list[Shard]:
    ordered = [node.id for node in tree.iter_preorder()]
    shards = []
    for block, start in enumerate(range(0, len(ordered), policy.max_nodes)):
        shards.append(
            Shard(
                shard_id=f"B{block:04d}",
                node_ids=ordered[start : start + policy.max_nodes],
                boundary=ShardBoundary(kind="count", block=block),
            )
        )
    return shards


def _subtree_shards(tree: DocumentTree, policy: SubtreePolicy) -> list[Shard]:
    spine: list[str] = []
    subtrees: list[Shard] = []
    stack = [tree.root_id]
    while stack:
        node = tree.nodes[stack.pop()]
        if node.level < policy.depth:
            spine.append(node.id)
            stack.extend(reversed(node.child_ids))
            continue
        members = []
        inner = [node.id]
        while inner:
            member = tree.nodes[inner.pop()]
            members.append(member.id)
            inner.extend(reversed(member.child_ids))
        subtrees.append(
            Shard(
                shard_id=f"S-{node.id}",
                node_ids=members,
                boundary=ShardBoundary(kind="subtree", level_start=node.level, root_id=node.id),
            )
        )
    if not spine:
        return subtrees
    spine_shard = Shard(
        shard_id=SPINE_SHARD_ID,
        node_ids=spine,
        boundary=ShardBoundary(kind="subtree", level_start=0, level_end=policy.depth - 1),
    )
    return [spine_shard, *subtrees]


def verify_partition(tree: DocumentTree, shards: list[Shard]) -> None:
    """Raise :class:`ShardPolicyViolation` unless ``shards`` exactly partition the tree."""
    counts = Counter(node_id for shard in shards for node_id in shard.node_ids)
    duplicated = sorted(node_id for node_id, count in counts.items() if count > 1)
    if duplicated:
        raise ShardPolicyViolation(f"{len(duplicated)} node(s) in more than one shard, e.g. {duplicated[0]}", tree.source)
    missing = [node_id for node_id in tree.nodes if node_id not in counts]
    if missing:
        raise ShardPolicyViolation(f"{len(missing)} node(s) in no shard, e.g. {missing[0]}", tree.source)
    foreign = sorted(node_id for node_id in counts if node_id not in tree.nodes)
    if foreign:
        raise ShardPolicyViolation(f"{len(foreign)} unknown node(s) in shards, e.g. {foreign[0]}", tree.source)


def shard_hierarchy(tree: DocumentTree, policy: ShardPolicy) -> ShardSet:
    if isinstance(policy, LevelPolicy):
        shards = _level_shards(tree, policy)
    elif isinstance(policy, CountPolicy):
        shards = _count_shards(tree, policy)
    elif isinstance(policy, SubtreePolicy):
        shards = _subtree_shards(tree, policy)
    else:
        raise ShardPolicyViolation(f"Unsupported shard policy {policy!r}", tree.source)
    verify_partition(tree, shards)
    levels: dict[int, list[str]] = {}
    for node in tree.iter_preorder():
        levels.setdefault(node.level, []).append(node.id)
    shard_set = ShardSet(source=tree.source, policy=policy, shards=shards, levels=levels)
    logger.debug("Sharded %s into %d shard(s) with %s", tree.source, len(shards), policy)
    return shard_set
