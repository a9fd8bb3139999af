"""Declarative YAML plans compiled into conversations."""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wiretalk.config import Settings
from wiretalk.connection import ConnectionConfig
from wiretalk.conversation import Conversation
from wiretalk.errors import ConfigurationError, PlanError
from wiretalk.operations import Expectation

STEP_KINDS = ("send", "expect", "wait", "drop", "disconnect")
DROP_ALL = "all"


class EndpointSpec(BaseModel):
    """Where one connection connects to."""

    model_config = ConfigDict(extra="forbid")

    host: str | None = None
    port: int = Field(gt=0, lt=65536)


class PlanDocument(BaseModel):
    """Top-level shape of a plan file."""

    model_config = ConfigDict(extra="forbid")

    host: str | None = None
    port: int | None = Field(default=None, gt=0, lt=65536)
    encoding: str | None = "utf-8"
    connections: dict[str, int | EndpointSpec | None] = Field(default_factory=dict)
    steps: list[dict[str, Any]] = Field(default_factory=list)


def parse_plan(text: str) -> PlanDocument:
    """Parse YAML text into a validated plan document."""

    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise PlanError(f"plan is not valid YAML: {exc}") from exc
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise PlanError("plan must be a mapping at the top level")
    try:
        document = PlanDocument.model_validate(payload)
    except ValidationError as exc:
        raise PlanError(f"plan is invalid: {exc}") from exc
    for index, step in enumerate(document.steps):
        _step_kind(index, step)
    return document


def load_plan(path: Path) -> PlanDocument:
    """Read and validate a plan file."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PlanError(f"cannot read plan {path}: {exc}") from exc
    return parse_plan(text)


def build_conversation(
    document: PlanDocument,
    *,
    settings: Settings | None = None,
    host: str | None = None,
    port: int | None = None,
) -> Conversation:
    """Compile a plan document into a ready-to-run conversation.

    ``host`` and ``port`` override the document's conversation-wide defaults.
    """

    conversation = Conversation(
        port if port is not None else document.port,
        host=host or document.host,
        encoding=document.encoding,
        settings=settings,
    )
    for name, endpoint in document.connections.items():
        conversation.client(name, _endpoint_config(endpoint))
    try:
        for index, step in enumerate(document.steps):
            _apply_step(conversation, index, step)
    except ConfigurationError as exc:
        if isinstance(exc, PlanError):
            raise
        raise PlanError(str(exc)) from exc
    return conversation


def _endpoint_config(endpoint: int | EndpointSpec | None) -> ConnectionConfig | None:
    if endpoint is None:
        return None
    if isinstance(endpoint, int):
        return ConnectionConfig(port=endpoint)
    return ConnectionConfig(port=endpoint.port, host=endpoint.host)


def _step_kind(index: int, step: dict[str, Any]) -> str:
    if len(step) != 1:
        raise PlanError(f"step {index} must have exactly one of {', '.join(STEP_KINDS)}")
    (kind,) = step
    if kind not in STEP_KINDS:
        raise PlanError(f"step {index} has unknown kind {kind!r}")
    return kind


def _apply_step(conversation: Conversation, index: int, step: dict[str, Any]) -> None:
    kind = _step_kind(index, step)
    value = step[kind]

    if kind == "wait":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PlanError(f"step {index}: wait takes a number of milliseconds")
        conversation.wait(value)
        return

    if kind == "disconnect":
        names = value if isinstance(value, list) else [value]
        for name in names:
            if name is not None and not isinstance(name, str):
                raise PlanError(f"step {index}: disconnect takes a connection name")
            conversation.disconnect(name)
        return

    if kind == "drop":
        if value is None or isinstance(value, str):
            conversation.drop(value)
            return
        if isinstance(value, int) and not isinstance(value, bool):
            conversation.drop(None, value)
            return
        if isinstance(value, Mapping):
            for name, count in value.items():
                conversation.drop(name, None if count in (None, DROP_ALL) else count)
            return
        raise PlanError(f"step {index}: drop takes a name, a count or a name->count mapping")

    if isinstance(value, Mapping):
        targets = list(value.items())
    else:
        targets = [(None, value)]
    for name, item in targets:
        if kind == "send":
            if not isinstance(item, str):
                raise PlanError(f"step {index}: send payloads must be strings")
            conversation.send(name, item)
        else:
            conversation.expect(name, _expectation(index, item))


def _expectation(index: int, value: Any) -> Expectation:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping) and len(value) == 1:
        ((mode, operand),) = value.items()
        if isinstance(operand, str):
            if mode == "equals":
                return operand
            if mode == "pattern":
                try:
                    return re.compile(operand)
                except re.error as exc:
                    raise PlanError(f"step {index}: invalid pattern {operand!r}: {exc}") from exc
            if mode == "contains":
                return _contains(operand)
    raise PlanError(f"step {index}: expectations are a string or one of equals/pattern/contains")


def _contains(fragment: str) -> Any:
    def contains(chunk: str | bytes) -> bool:
        if isinstance(chunk, bytes):
            return fragment.encode("utf-8") in chunk
        return fragment in chunk

    contains.__name__ = f"contains({fragment!r})"
    return contains
