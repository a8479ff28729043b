"""Rebuild the display tree from the flat node set.

The tree is recomputed in full on every change. Edges are collected into a
separate adjacency map and materialized as fresh node copies, so no
snapshot shares a children list with the registry or an earlier snapshot.

Phase A links nodes by the log's own parent pointers. Phase B regroups the
same nodes into turns: each user/system node is a root, followed by the
turn's last assistant text as a sibling root that owns the turn's thinking,
tool invocations (each owning its results) and earlier assistant texts.
"""
from __future__ import annotations

import math
from bisect import bisect_left, bisect_right
from collections import defaultdict
from typing import Iterable, Sequence

from workflow_viewer.date_utils import timestamp_ms, timestamp_sort_key
from workflow_viewer.models import INVOCATION_KINDS, TURN_STARTER_KINDS, ConversationNode

Adjacency = dict[str, list[ConversationNode]]


def _sort_by_timestamp(nodes: Iterable[ConversationNode]) -> list[ConversationNode]:
    # sorted() is stable: equal timestamps keep insertion order.
    return sorted(nodes, key=lambda node: timestamp_sort_key(node.timestamp))


def _materialize(roots: Sequence[ConversationNode], adjacency: Adjacency) -> list[ConversationNode]:
    copies: dict[str, ConversationNode] = {}
    stack: list[tuple[ConversationNode, bool]] = [(root, False) for root in reversed(roots)]
    while stack:
        node, expanded = stack.pop()
        children = adjacency.get(node.id, [])
        if expanded:
            copies[node.id] = node.model_copy(
                update={"children": [copies[child.id] for child in children]}
            )
            continue
        stack.append((node, True))
        for child in reversed(children):
            stack.append((child, False))
    return [copies[root.id] for root in roots]


def link_raw(nodes: Sequence[ConversationNode]) -> list[ConversationNode]:
    """Phase A: attach every node to its declared parent when that parent is known."""
    by_id = {node.id: node for node in nodes}
    ordered = _sort_by_timestamp(by_id.values())

    adjacency: Adjacency = defaultdict(list)
    roots: list[ConversationNode] = []
    for node in ordered:
        if node.parentId and node.parentId != node.id and node.parentId in by_id:
            adjacency[node.parentId].append(node)
        else:
            roots.append(node)

    reached: set[str] = set()

    def walk(start: ConversationNode) -> None:
        pending = [start]
        while pending:
            current = pending.pop()
            reached.add(current.id)
            pending.extend(child for child in adjacency.get(current.id, []) if child.id not in reached)

    for root in roots:
        walk(root)

    # Parent cycles leave nodes unreachable from any root; cut them loose.
    for node in ordered:
        if node.id in reached:
            continue
        parent_id = node.parentId or ""
        if parent_id in adjacency:
            adjacency[parent_id] = [child for child in adjacency[parent_id] if child.id != node.id]
        roots.append(node)
        walk(node)

    return _materialize(_sort_by_timestamp(roots), adjacency)


def reorganize_turns(nodes: Sequence[ConversationNode]) -> list[ConversationNode] | None:
    """Phase B: regroup nodes into turns. Returns None when there is no turn starter."""
    ordered = _sort_by_timestamp({node.id: node for node in nodes}.values())
    starters = [node for node in ordered if node.type in TURN_STARTER_KINDS]
    if not starters:
        return None

    # Unparsable timestamps sort last and never fall inside a turn window.
    times = [timestamp_ms(node.timestamp) for node in ordered]
    valid_count = next((index for index, value in enumerate(times) if math.isnan(value)), len(times))
    valid_times = times[:valid_count]

    consumed: set[str] = set()
    adjacency: Adjacency = {}
    roots: list[ConversationNode] = []

    def take(node: ConversationNode) -> None:
        consumed.add(node.id)

    def attach_results(invocation: ConversationNode, results: list[ConversationNode]) -> None:
        matched = [r for r in results if r.parentId == invocation.id and r.id not in consumed]
        for result in matched:
            take(result)
        if matched:
            adjacency[invocation.id] = matched

    for index, starter in enumerate(starters):
        take(starter)
        roots.append(starter)

        start_ms = timestamp_ms(starter.timestamp)
        if math.isnan(start_ms):
            continue
        end_ms = math.inf
        if index + 1 < len(starters):
            next_ms = timestamp_ms(starters[index + 1].timestamp)
            if not math.isnan(next_ms):
                end_ms = next_ms

        low = bisect_right(valid_times, start_ms)
        high = bisect_left(valid_times, end_ms)
        working = [node for node in ordered[low:high] if node.id not in consumed]
        if not working:
            continue

        responses = [node for node in working if node.type == "assistant"]
        results = [node for node in working if node.type == "tool_result"]

        if responses:
            primary = responses[-1]
            take(primary)
            owned: list[ConversationNode] = []
            for node in working:
                if node.type == "thinking" and node.id not in consumed:
                    take(node)
                    owned.append(node)
            for node in working:
                if node.type in INVOCATION_KINDS and node.id not in consumed:
                    take(node)
                    attach_results(node, results)
                    owned.append(node)
            for node in responses[:-1]:
                if node.id not in consumed:
                    take(node)
                    owned.append(node)
            adjacency[primary.id] = _sort_by_timestamp(owned)
            roots.append(primary)
            continue

        for node in working:
            if node.type == "tool_result" or node.id in consumed:
                continue
            take(node)
            attach_results(node, results)
            roots.append(node)

    return _materialize(roots, adjacency)


def build_display_tree(nodes: Sequence[ConversationNode]) -> list[ConversationNode]:
    """Full rebuild: turn-grouped tree, or the raw parent-linked tree when no turn exists."""
    if not nodes:
        return []
    reorganized = reorganize_turns(nodes)
    if reorganized is None:
        return link_raw(nodes)
    return reorganized
