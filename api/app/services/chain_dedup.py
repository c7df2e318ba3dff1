"""Resolve chains that share task records down to one chain per logical agent."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence

from app.services.chain_builder import BuiltChain

logger = logging.getLogger(__name__)


def _loser(chains: Sequence[BuiltChain], a: int, b: int) -> int:
    """Index of the chain to discard when chains ``a`` and ``b`` overlap."""
    a_ids, b_ids = chains[a].record_ids, chains[b].record_ids
    if b_ids < a_ids:
        return b
    if a_ids < b_ids:
        return a
    a_len, b_len = len(chains[a].records), len(chains[b].records)
    if a_len != b_len:
        return b if a_len > b_len else a
    # Same length: the most recently active chain wins; ``a`` keeps exact ties.
    if chains[a].latest_scheduled_at >= chains[b].latest_scheduled_at:
        return b
    return a


def deduplicate_chains(chains: Sequence[BuiltChain]) -> list[BuiltChain]:
    """Drop chains until no two surviving chains share a record id.

    Subsets lose to their supersets, then shorter chains to longer ones. A
    chain discarded in one comparison takes no part in later ones.
    """
    if len(chains) <= 1:
        return list(chains)

    chains_by_record: dict[str, list[int]] = defaultdict(list)
    for index, item in enumerate(chains):
        for record in item.records:
            chains_by_record[record.id].append(index)

    removed: set[int] = set()
    for index, item in enumerate(chains):
        if index in removed:
            continue
        overlapping: set[int] = set()
        for record in item.records:
            overlapping.update(i for i in chains_by_record[record.id] if i != index)
        for other in sorted(overlapping):
            if other in removed:
                continue
            loser = _loser(chains, index, other)
            removed.add(loser)
            if loser == index:
                break

    if removed:
        logger.info("chains_deduplicated removed=%s kept=%s", len(removed), len(chains) - len(removed))
    return [item for i, item in enumerate(chains) if i not in removed]
