from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceStatus(str, Enum):
    """Change status carried by cached resources between sync cycles."""

    EMPTY = "empty"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class IngressPath(BaseModel):
    """One routed path and the service backend it points at."""

    model_config = ConfigDict(extra="forbid")

    path: str = ""
    path_type: str = "Prefix"
    service_name: str
    service_port: int | str
    status: ResourceStatus = ResourceStatus.EMPTY


class IngressRule(BaseModel):
    host: str = ""
    paths: List[IngressPath] = Field(default_factory=list)
    status: ResourceStatus = ResourceStatus.EMPTY


class IngressTLS(BaseModel):
    hosts: List[str] = Field(default_factory=list)
    secret_name: str
    status: ResourceStatus = ResourceStatus.EMPTY


class Ingress(BaseModel):
    """Translated view of one ingress resource."""

    namespace: str
    name: str
    annotations: Dict[str, str] = Field(default_factory=dict)
    rules: List[IngressRule] = Field(default_factory=list)
    default_backend: Optional[IngressPath] = None
    tls: List[IngressTLS] = Field(default_factory=list)
    status: ResourceStatus = ResourceStatus.EMPTY

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def reset_status(self) -> None:
        self.status = ResourceStatus.EMPTY
        for rule in self.rules:
            rule.status = ResourceStatus.EMPTY
            for path in rule.paths:
                path.status = ResourceStatus.EMPTY
        if self.default_backend is not None:
            self.default_backend.status = ResourceStatus.EMPTY
        for tls in self.tls:
            tls.status = ResourceStatus.EMPTY


class Namespace(BaseModel):
    name: str
    ingresses: Dict[str, Ingress] = Field(default_factory=dict)
    status: ResourceStatus = ResourceStatus.EMPTY


class EventKind(str, Enum):
    """Kinds of change events produced by the orchestration-platform watcher."""

    NAMESPACE = "namespace"
    INGRESS = "ingress"
    SERVICE = "service"
    ENDPOINTS = "endpoints"
    SECRET = "secret"
    CONFIGMAP = "configmap"
    COMMAND = "command"


class SyncEvent(BaseModel):
    """One change notification pushed onto the controller's event channel."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: EventKind
    namespace: str = ""
    name: str = ""
    status: ResourceStatus = ResourceStatus.MODIFIED
    data: Any = None


class DesiredState(BaseModel):
    """
    Namespace-scoped, translated view of orchestration resources.

    Read by the reconciler during a cycle; `clean()` runs only after a
    successful commit and drops everything marked deleted.
    """

    namespaces: Dict[str, Namespace] = Field(default_factory=dict)
    publish_service: Optional[str] = None

    def namespace(self, name: str) -> Namespace:
        """Return the cached namespace, creating it as added when unseen."""
        existing = self.namespaces.get(name)
        if existing is None:
            existing = Namespace(name=name, status=ResourceStatus.ADDED)
            self.namespaces[name] = existing
        return existing

    def upsert_ingress(self, ingress: Ingress) -> None:
        namespace = self.namespace(ingress.namespace)
        if ingress.status == ResourceStatus.EMPTY:
            ingress.status = (
                ResourceStatus.MODIFIED if ingress.name in namespace.ingresses else ResourceStatus.ADDED
            )
        namespace.ingresses[ingress.name] = ingress

    def mark_ingress_deleted(self, namespace: str, name: str) -> bool:
        cached_namespace = self.namespaces.get(namespace)
        if cached_namespace is None or name not in cached_namespace.ingresses:
            return False
        cached_namespace.ingresses[name].status = ResourceStatus.DELETED
        return True

    def apply_event(self, event: SyncEvent) -> bool:
        """Fold one watcher event into the cache; returns True when the cache changed."""
        if event.kind == EventKind.NAMESPACE:
            if event.status == ResourceStatus.DELETED:
                cached = self.namespaces.get(event.name)
                if cached is None:
                    return False
                cached.status = ResourceStatus.DELETED
                for ingress in cached.ingresses.values():
                    ingress.status = ResourceStatus.DELETED
                return True
            self.namespace(event.name)
            return True

        if event.kind == EventKind.INGRESS:
            if event.status == ResourceStatus.DELETED:
                return self.mark_ingress_deleted(event.namespace, event.name)
            if not isinstance(event.data, Ingress):
                return False
            self.upsert_ingress(event.data)
            return True

        # Services, endpoints, secrets and configmaps are consumed by the
        # translation passes directly; they only need to trigger a cycle.
        return False

    def clean(self) -> None:
        """Drop deleted resources and reset remaining statuses after a commit."""
        for namespace_name in list(self.namespaces):
            namespace = self.namespaces[namespace_name]
            if namespace.status == ResourceStatus.DELETED:
                del self.namespaces[namespace_name]
                continue

            namespace.status = ResourceStatus.EMPTY
            for ingress_name in list(namespace.ingresses):
                ingress = namespace.ingresses[ingress_name]
                if ingress.status == ResourceStatus.DELETED:
                    del namespace.ingresses[ingress_name]
                    continue
                ingress.reset_status()
