from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Set

from portico.core.state import Ingress, IngressPath, IngressRule, IngressTLS, Namespace
from portico.runtime.transaction import TransactionView


@dataclass(frozen=True)
class PassOutcome:
    """Result of one translation pass.

    `changed` requests a reload, `restart` a process replacement. `error` is
    reported but never stops the cycle.
    """

    changed: bool = False
    restart: bool = False
    error: Optional[BaseException] = None

    @classmethod
    def failed(cls, error: BaseException, changed: bool = False) -> "PassOutcome":
        return cls(changed=changed, error=error)


UNCHANGED = PassOutcome()


class StatusPublisher(Protocol):
    """Publishes the controller's address into ingress resource status."""

    def update_ingress_status(self, ingress: Ingress, publish_service: str) -> None:
        ...


class TranslationPasses:
    """
    Translation passes run by the reconciler, in the order the reconciler
    calls them. Every pass here is a no-op; integrations override the ones
    they implement and edit the configuration through `view`.
    """

    # Global passes

    def global_annotations(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def default_service(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    # Per-ingress passes

    def path(
        self,
        view: TransactionView,
        namespace: Namespace,
        ingress: Ingress,
        rule: IngressRule,
        path: IngressPath,
    ) -> PassOutcome:
        return UNCHANGED

    def tls_secret(self, view: TransactionView, ingress: Ingress, tls: IngressTLS, used_certs: Set[str]) -> PassOutcome:
        return UNCHANGED

    def rate_limiting(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    def request_capture(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    def request_set_header(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    def response_set_header(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    def blacklisting(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    def whitelisting(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    def http_redirect(self, view: TransactionView, ingress: Ingress) -> PassOutcome:
        return UNCHANGED

    # Passes over the state accumulated from every ingress

    def proxy_protocol(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def default_certificate(self, view: TransactionView, used_certs: Set[str]) -> PassOutcome:
        return UNCHANGED

    def https(self, view: TransactionView, used_certs: Set[str]) -> PassOutcome:
        return UNCHANGED

    def frontend_http_request_rules(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def frontend_http_response_rules(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def frontend_tcp_request_rules(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def backend_http_request_rules(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def map_files(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def tcp_services(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED

    def backend_switching(self, view: TransactionView) -> PassOutcome:
        return UNCHANGED


INGRESS_FEATURE_PASSES = (
    "rate_limiting",
    "request_capture",
    "request_set_header",
    "response_set_header",
    "blacklisting",
    "whitelisting",
    "http_redirect",
)

FRONTEND_RULE_PASSES = (
    "frontend_http_request_rules",
    "frontend_http_response_rules",
    "frontend_tcp_request_rules",
    "backend_http_request_rules",
)
