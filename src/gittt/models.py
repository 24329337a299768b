"""Domain models persisted by the record store.

All models serialize to the camelCase JSON documents kept in the store
repository, so files written by older clients stay readable.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Union


def epoch_ms() -> int:
    """Returns the current time in epoch milliseconds."""
    return int(time.time() * 1000)


class RecordType(str, enum.Enum):
    """The kind of a record. Only tracked time exists today."""

    TIME = "Time"


@dataclass
class Record:
    """One completed unit of tracked time.

    Attributes:
        amount (float): Duration in hours.
        end (int): Epoch milliseconds at which the tracked interval ended.
        message (str | None): Optional free text.
        type (RecordType): The record kind.
        guid (str | None): Unique identifier, assigned once on first save.
        created (int | None): Epoch milliseconds of the first save.
        updated (int | None): Epoch milliseconds of the last edit.
    """

    amount: float
    end: int
    message: str | None = None
    type: RecordType = RecordType.TIME
    guid: str | None = None
    created: int | None = None
    updated: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "amount": self.amount,
            "end": self.end,
            "type": self.type.value,
        }
        if self.message is not None:
            data["message"] = self.message
        if self.guid is not None:
            data["guid"] = self.guid
        if self.created is not None:
            data["created"] = self.created
        if self.updated is not None:
            data["updated"] = self.updated
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        return cls(
            amount=data["amount"],
            end=data["end"],
            message=data.get("message"),
            type=RecordType(data.get("type", RecordType.TIME.value)),
            guid=data.get("guid"),
            created=data.get("created"),
            updated=data.get("updated"),
        )


def domain_to_dirname(domain: str) -> str:
    """Converts a `host:port` domain into a path-safe directory name.

    Example: `github.com:443` becomes `github_com_443`.

    The mapping is not injective: `a_b.com:1` and `a.b.com:1` share the
    directory `a_b_com_1`, so (domain, name) is only unique on disk as long
    as no two tracked hosts differ solely by `.` versus `_`.
    """
    host, _, port = domain.rpartition(":")
    if not host:
        host, port = port, ""
    safe = host.replace(".", "_")
    return f"{safe}_{port}" if port else safe


@dataclass
class ProjectMeta:
    """Where a project's remote lives.

    Attributes:
        host (str): Remote host name.
        port (int): Remote port.
        raw (str): The URL the identity was parsed from.
    """

    host: str
    port: int
    raw: str = ""

    @property
    def domain(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port, "raw": self.raw}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectMeta:
        return cls(host=data["host"], port=int(data["port"]), raw=data.get("raw", ""))


@dataclass
class Project:
    """A tracked unit of work, identified by (domain, name).

    Attributes:
        meta (ProjectMeta): Remote location the project was derived from.
        name (str): Flattened remote path.
        records (list[Record]): Records in insertion order.
    """

    meta: ProjectMeta
    name: str
    records: list[Record] = field(default_factory=list)

    @property
    def domain(self) -> str:
        return self.meta.domain

    @property
    def filename(self) -> str:
        return f"{self.name}.json"

    @property
    def relative_path(self) -> str:
        """The project file path relative to the projects directory."""
        return f"{domain_to_dirname(self.domain)}/{self.filename}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "meta": self.meta.to_dict(),
            "name": self.name,
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        return cls(
            meta=ProjectMeta.from_dict(data["meta"]),
            name=data["name"],
            records=[Record.from_dict(r) for r in data.get("records", [])],
        )


# --- Integration links ---
#
# Links form a tagged union keyed by `linkType`. The store only indexes on
# `project_name` and `link_type`, which every variant carries.


@dataclass
class BaseLink:
    """A link of a type this client has no dedicated model for."""

    project_name: str
    link_type: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "projectName": self.project_name,
            "linkType": self.link_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaseLink:
        extra = {
            k: v for k, v in data.items() if k not in ("projectName", "linkType")
        }
        return cls(
            project_name=data["projectName"], link_type=data["linkType"], extra=extra
        )


@dataclass
class JiraLink:
    """Publishing target for a JIRA worklog integration."""

    project_name: str
    host: str
    endpoint: str
    key: str
    username: str = ""
    hash: str = ""
    issue: str = ""
    link_type: Literal["Jira"] = "Jira"

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectName": self.project_name,
            "linkType": self.link_type,
            "host": self.host,
            "endpoint": self.endpoint,
            "key": self.key,
            "username": self.username,
            "hash": self.hash,
            "issue": self.issue,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JiraLink:
        return cls(
            project_name=data["projectName"],
            host=data.get("host", ""),
            endpoint=data.get("endpoint", ""),
            key=data.get("key", ""),
            username=data.get("username", ""),
            hash=data.get("hash", ""),
            issue=data.get("issue", ""),
        )


@dataclass
class MultipieLink:
    """Publishing target for a Multipie integration."""

    project_name: str
    host: str
    endpoint: str
    username: str = ""
    client_secret: str = ""
    link_type: Literal["Multipie"] = "Multipie"

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectName": self.project_name,
            "linkType": self.link_type,
            "host": self.host,
            "endpoint": self.endpoint,
            "username": self.username,
            "clientSecret": self.client_secret,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MultipieLink:
        return cls(
            project_name=data["projectName"],
            host=data.get("host", ""),
            endpoint=data.get("endpoint", ""),
            username=data.get("username", ""),
            client_secret=data.get("clientSecret", ""),
        )


IntegrationLink = Union[JiraLink, MultipieLink, BaseLink]

_LINK_VARIANTS: dict[str, Any] = {
    "Jira": JiraLink,
    "Multipie": MultipieLink,
}


def link_from_dict(data: dict[str, Any]) -> IntegrationLink:
    """Builds the link variant selected by the `linkType` tag."""
    variant = _LINK_VARIANTS.get(data.get("linkType", ""), BaseLink)
    return variant.from_dict(data)


@dataclass
class ConfigFile:
    """The store-wide configuration document (`config.json`).

    Attributes:
        created (int): Epoch milliseconds of store initialization.
        git_repo (str): Remote URL the store is bound to.
        links (list[IntegrationLink]): Per-project integration links.
    """

    created: int
    git_repo: str
    links: list[IntegrationLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "gitRepo": self.git_repo,
            "links": [link.to_dict() for link in self.links],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigFile:
        return cls(
            created=int(data["created"]),
            git_repo=data["gitRepo"],
            links=[link_from_dict(li) for li in data.get("links", [])],
        )


@dataclass
class TimerFile:
    """The single persisted timer slot. Zero means unset."""

    start: int = 0
    stop: int = 0

    def is_running(self, now: int) -> bool:
        return self.start > 0 and self.start < now and self.stop == 0

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "stop": self.stop}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimerFile:
        return cls(start=int(data.get("start", 0)), stop=int(data.get("stop", 0)))
