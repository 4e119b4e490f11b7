"""Outcomes of handling one inbound message."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Reply:
    """Send ``text`` back to the sender."""

    text: str


@dataclass(frozen=True)
class AskQuestion:
    """The utterance is a question about stored data."""

    question: str


@dataclass(frozen=True)
class NoAction:
    """Nothing to send."""


Outcome = Union[Reply, AskQuestion, NoAction]
