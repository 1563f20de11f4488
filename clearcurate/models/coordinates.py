"""
Entity coordinates.

Coordinates identify a component (``type/provider/namespace/name/revision``) or,
without a revision, a component family.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, model_validator

# Providers whose namespace/name are case-insensitive upstream.
_LOWER_NAMESPACE = {"github", "gitlab"}
_LOWER_NAME = {"github", "gitlab", "pypi"}


class EntityCoordinates(BaseModel):
    """Coordinates of a component or component family."""

    model_config = ConfigDict(frozen=True)

    type: str
    provider: str
    namespace: Optional[str] = None
    name: str
    revision: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        provider = (data.get("provider") or "").lower()
        if data.get("type"):
            data["type"] = data["type"].lower()
        data["provider"] = provider
        namespace = data.get("namespace")
        if not namespace or namespace == "-":
            data["namespace"] = None
        elif provider in _LOWER_NAMESPACE:
            data["namespace"] = namespace.lower()
        if data.get("name") and provider in _LOWER_NAME:
            data["name"] = data["name"].lower()
        if not data.get("revision"):
            data["revision"] = None
        return data

    @classmethod
    def from_string(cls, path: Optional[str]) -> Optional["EntityCoordinates"]:
        """Parse ``type/provider/namespace/name[/revision]``."""
        if not path or not isinstance(path, str):
            return None
        parts = path.lstrip("/").split("/")
        if len(parts) < 4:
            return None
        type_, provider, namespace, name = parts[:4]
        revision = "/".join(parts[4:]) or None
        return cls(type=type_, provider=provider, namespace=namespace, name=name, revision=revision)

    @classmethod
    def from_urn(cls, urn: Optional[str]) -> Optional["EntityCoordinates"]:
        """Parse ``scheme:type:provider:namespace:name:rev:revision``."""
        if not urn:
            return None
        parts = urn.split(":")
        if len(parts) < 5:
            return None
        revision = parts[6] if len(parts) > 6 else None
        return cls(type=parts[1], provider=parts[2], namespace=parts[3], name=parts[4], revision=revision)

    @classmethod
    def from_object(cls, value: Any) -> Optional["EntityCoordinates"]:
        """Coerce a dict, string or coordinates instance."""
        if value is None:
            return None
        if isinstance(value, EntityCoordinates):
            return value
        if isinstance(value, str):
            return cls.from_string(value)
        return cls.model_validate(value)

    def as_revisionless(self) -> "EntityCoordinates":
        return self.model_copy(update={"revision": None})

    def with_revision(self, revision: str) -> "EntityCoordinates":
        return self.model_copy(update={"revision": revision})

    def to_string(self) -> str:
        parts = [self.type, self.provider, self.namespace or "-", self.name, self.revision]
        return "/".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, str]:
        """Plain dict without empty members, as stored inside documents."""
        return self.model_dump(exclude_none=True)

    def cache_key(self, prefix: str) -> str:
        return f"{prefix}_{self.to_string().lower()}"

    def __str__(self) -> str:
        return self.to_string()
