"""Detect infrastructure scaffolding embedded in user-turn text.

The producer interleaves slash-command wrappers, local command output and
system caveats with genuine user messages. Each is matched by one entry of
``BOILERPLATE_RULES``, evaluated in order; the first match decides whether
the text becomes a ``system`` node, is dropped, or stays a ``user`` node.
New producer markers belong in the rule table.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Callable, Literal

from workflow_viewer.parsers.text import CAVEAT_MARKER, truncate

_COMMAND_NAME_PATTERN = re.compile(r"<command-name>\s*([^<]+?)\s*</command-name>")
_COMMAND_ARGS_PATTERN = re.compile(r"<command-args>\s*([^<]*?)\s*</command-args>")
_HEADING_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)

_LOCAL_STDOUT_MARKER = "<local-command-stdout>"


@dataclass(frozen=True)
class Verdict:
    action: Literal["user", "system", "skip"]
    summary: str = ""


USER = Verdict("user")
SKIP = Verdict("skip")


def _command_name(text: str) -> str:
    match = _COMMAND_NAME_PATTERN.search(text)
    return match.group(1) if match else "command"


def _command_args(text: str) -> str:
    match = _COMMAND_ARGS_PATTERN.search(text)
    return match.group(1) if match else ""


def _embedded_text(text: str) -> str | None:
    """Text of the first segment when ``text`` is a JSON array of text segments."""
    stripped = text.strip()
    if not stripped.startswith("["):
        return None
    try:
        parsed = json.loads(stripped)
    except (json.JSONDecodeError, RecursionError):
        return None
    if not isinstance(parsed, list) or not parsed:
        return None
    first = parsed[0]
    if not isinstance(first, dict) or first.get("type") != "text":
        return None
    embedded = first.get("text")
    return embedded if isinstance(embedded, str) else ""


def _embedded_text_verdict(text: str) -> Verdict:
    embedded = _embedded_text(text) or ""
    if CAVEAT_MARKER in embedded:
        return SKIP
    first_line = next(
        (line.strip() for line in embedded.split("\n") if line.strip() and not line.startswith("#")),
        "Skill prompt",
    )
    heading = _HEADING_PATTERN.search(embedded)
    title = heading.group(1) if heading else first_line
    return Verdict("system", f"Skill: {truncate(title, 60)}")


def _running_verdict(text: str) -> Verdict:
    args = _command_args(text)
    summary = f"Running: {_command_name(text)}"
    if args:
        summary = f"{summary} {args}"
    return Verdict("system", summary)


BoilerplateRule = tuple[str, Callable[[str], bool], Callable[[str], Verdict]]

BOILERPLATE_RULES: list[BoilerplateRule] = [
    (
        "command_invocation",
        lambda text: "<command-name>" in text and "<command-message>" in text,
        lambda text: Verdict("system", f"Command: {_command_name(text)}"),
    ),
    (
        "local_command_stdout",
        lambda text: _LOCAL_STDOUT_MARKER in text,
        lambda text: SKIP,
    ),
    (
        "command_running",
        lambda text: "<command-message>" in text and "is running" in text,
        _running_verdict,
    ),
    (
        "embedded_text_segments",
        lambda text: _embedded_text(text) is not None,
        _embedded_text_verdict,
    ),
    (
        "caveat",
        lambda text: CAVEAT_MARKER in text,
        lambda text: SKIP,
    ),
]


def classify_user_text(text: str) -> Verdict:
    """Return the verdict of the first matching rule, or a plain user verdict."""
    for _name, predicate, outcome in BOILERPLATE_RULES:
        if predicate(text):
            return outcome(text)
    return USER


def is_boilerplate(text: str) -> bool:
    return classify_user_text(text).action != "user"
