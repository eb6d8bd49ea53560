"""Typed output events emitted by the update tool.

The tool writes a scenario document whose ``output`` list holds
``{type, expect: {data}}`` records. Each record is decoded exactly once,
here, into a pydantic model selected by its ``type``; the reconciler only
ever sees typed payloads.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .exceptions import EventDecodeError


class EventPayload(BaseModel):
    """Base model for event payloads.

    Fields use the tool's hyphenated keys as aliases; unknown keys are
    ignored so newer tool versions keep decoding.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class DependencyGroup(EventPayload):
    name: str


class Dependency(EventPayload):
    """A dependency touched by an update."""

    name: str
    version: str | None = None
    previous_version: str | None = Field(default=None, alias="previous-version")
    directory: str | None = None
    removed: bool = False
    requirements: list[dict[str, Any]] = Field(default_factory=list)
    previous_requirements: list[dict[str, Any]] | None = Field(
        default=None, alias="previous-requirements"
    )


class DependencyFile(EventPayload):
    """A file rewritten (or deleted) by an update."""

    name: str
    directory: str = "/"
    content: str | None = None
    content_encoding: str | None = None
    deleted: bool = False
    operation: str | None = None
    type: str = "file"
    support_file: bool = False


class UpdateDependencyListEvent(EventPayload):
    type: Literal["update_dependency_list"] = "update_dependency_list"
    dependencies: list[dict[str, Any]] = Field(default_factory=list)
    dependency_files: list[str] = Field(default_factory=list)


class CreatePullRequestEvent(EventPayload):
    type: Literal["create_pull_request"] = "create_pull_request"
    base_commit_sha: str | None = Field(default=None, alias="base-commit-sha")
    dependencies: list[Dependency] = Field(default_factory=list)
    updated_dependency_files: list[DependencyFile] = Field(
        default_factory=list, alias="updated-dependency-files"
    )
    pr_title: str = Field(default="", alias="pr-title")
    pr_body: str = Field(default="", alias="pr-body")
    commit_message: str = Field(default="", alias="commit-message")
    dependency_group: DependencyGroup | None = Field(
        default=None, alias="dependency-group"
    )


class UpdatePullRequestEvent(EventPayload):
    type: Literal["update_pull_request"] = "update_pull_request"
    base_commit_sha: str | None = Field(default=None, alias="base-commit-sha")
    dependency_names: list[str] = Field(alias="dependency-names")
    updated_dependency_files: list[DependencyFile] = Field(
        default_factory=list, alias="updated-dependency-files"
    )
    pr_title: str = Field(default="", alias="pr-title")
    pr_body: str = Field(default="", alias="pr-body")
    commit_message: str = Field(default="", alias="commit-message")
    dependency_group: DependencyGroup | None = Field(
        default=None, alias="dependency-group"
    )


class ClosePullRequestEvent(EventPayload):
    type: Literal["close_pull_request"] = "close_pull_request"
    dependency_names: list[str] = Field(alias="dependency-names")
    reason: str | None = None


class MarkAsProcessedEvent(EventPayload):
    type: Literal["mark_as_processed"] = "mark_as_processed"
    base_commit_sha: str | None = Field(default=None, alias="base-commit-sha")


class RecordEcosystemVersionsEvent(EventPayload):
    type: Literal["record_ecosystem_versions"] = "record_ecosystem_versions"
    ecosystem_versions: dict[str, Any] = Field(default_factory=dict)


class IncrementMetricEvent(EventPayload):
    type: Literal["increment_metric"] = "increment_metric"
    metric: str | None = None
    tags: dict[str, Any] = Field(default_factory=dict)


class RecordUpdateJobErrorEvent(EventPayload):
    type: Literal["record_update_job_error"] = "record_update_job_error"
    error_type: str | None = Field(default=None, alias="error-type")
    error_details: Any = Field(default=None, alias="error-details")


class RecordUpdateJobUnknownErrorEvent(EventPayload):
    type: Literal["record_update_job_unknown_error"] = (
        "record_update_job_unknown_error"
    )
    error_type: str | None = Field(default=None, alias="error-type")
    error_details: Any = Field(default=None, alias="error-details")


class UnknownEvent(EventPayload):
    """An event type this version does not know; kept for forward compatibility."""

    type: str
    data: Any = None


KnownEventPayload = Annotated[
    Union[
        UpdateDependencyListEvent,
        CreatePullRequestEvent,
        UpdatePullRequestEvent,
        ClosePullRequestEvent,
        MarkAsProcessedEvent,
        RecordEcosystemVersionsEvent,
        IncrementMetricEvent,
        RecordUpdateJobErrorEvent,
        RecordUpdateJobUnknownErrorEvent,
    ],
    Field(discriminator="type"),
]

OutputEventPayload = Union[KnownEventPayload, UnknownEvent]

_known_event_adapter: TypeAdapter[Any] = TypeAdapter(KnownEventPayload)

KNOWN_EVENT_TYPES = frozenset(
    {
        "update_dependency_list",
        "create_pull_request",
        "update_pull_request",
        "close_pull_request",
        "mark_as_processed",
        "record_ecosystem_versions",
        "increment_metric",
        "record_update_job_error",
        "record_update_job_unknown_error",
    }
)


@dataclass(frozen=True)
class OutputEvent:
    """One decoded output record, tagged with its emission index."""

    sequence: int
    type: str
    data: Any
    payload: OutputEventPayload

    def to_output(self) -> dict[str, Any]:
        """The raw ``{type, data}`` pair, as echoed in results."""
        return {"type": self.type, "data": self.data}


def parse_output_event(sequence: int, event_type: str, data: Any) -> OutputEvent:
    """Decode one raw output record.

    Args:
        sequence: Zero-based position of the record in the tool's output
        event_type: The record's ``type``
        data: The record's ``expect.data`` mapping

    Returns:
        The decoded event; unknown types decode to ``UnknownEvent``

    Raises:
        EventDecodeError: If a known type's data does not match its schema
    """
    if event_type not in KNOWN_EVENT_TYPES:
        return OutputEvent(
            sequence=sequence,
            type=event_type,
            data=data,
            payload=UnknownEvent(type=str(event_type), data=data),
        )

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise EventDecodeError(
            f"Output '{event_type}' data is not a mapping", event_type=event_type
        )

    try:
        payload = _known_event_adapter.validate_python({**data, "type": event_type})
    except ValidationError as e:
        raise EventDecodeError(
            f"Output '{event_type}' could not be decoded: {e}",
            event_type=event_type,
            details={"errors": e.errors(include_url=False)},
        ) from e

    return OutputEvent(sequence=sequence, type=event_type, data=data, payload=payload)


def parse_scenario_outputs(outputs: list[Any]) -> list[OutputEvent | EventDecodeError]:
    """Decode every record of a scenario's ``output`` list, in order.

    Records that fail to decode are returned as their ``EventDecodeError`` so
    that the caller can record them as failed results without losing their
    position.
    """
    events: list[OutputEvent | EventDecodeError] = []
    for sequence, record in enumerate(outputs or []):
        record = record if isinstance(record, dict) else {}
        record_type = record.get("type")
        expect = record.get("expect")
        data = expect.get("data") if isinstance(expect, dict) else None
        try:
            events.append(parse_output_event(sequence, record_type, data))
        except EventDecodeError as e:
            e.details.setdefault("sequence", sequence)
            e.details.setdefault("data", data)
            events.append(e)
    return events
