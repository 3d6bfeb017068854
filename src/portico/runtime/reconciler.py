from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Set

from portico.core.models import ControllerSettings
from portico.core.state import DesiredState, Ingress, IngressRule, Namespace, ResourceStatus
from portico.runtime.passes import (
    FRONTEND_RULE_PASSES,
    INGRESS_FEATURE_PASSES,
    PassOutcome,
    StatusPublisher,
    TranslationPasses,
)
from portico.runtime.reload_contracts import CycleDecision, LifecycleAction, LifecycleOutcome
from portico.runtime.supervisor import ProcessSupervisor
from portico.runtime.transaction import TransactionManager, TransactionView
from portico.utils.diagnostics import PassDiagnostic, SupervisorError, TransactionError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one committed sync cycle."""

    decision: CycleDecision
    action: Optional[LifecycleAction]
    outcome: Optional[LifecycleOutcome]
    diagnostics: List[PassDiagnostic]


@dataclass
class _Cycle:
    """Per-cycle accumulator; every pass goes through `run`."""

    passes: TranslationPasses
    view: TransactionView
    decision: CycleDecision = field(default_factory=CycleDecision)
    diagnostics: List[PassDiagnostic] = field(default_factory=list)
    used_certs: Set[str] = field(default_factory=set)

    def run(self, pass_name: str, *args, ingress: Optional[Ingress] = None) -> PassOutcome:
        try:
            outcome = getattr(self.passes, pass_name)(self.view, *args)
        except Exception as exc:
            outcome = PassOutcome.failed(exc)

        self.decision.fold(outcome.changed, outcome.restart)
        if outcome.error is not None:
            self.record(pass_name, outcome.error, ingress)
        return outcome

    def record(self, pass_name: str, error: BaseException, ingress: Optional[Ingress] = None) -> None:
        diagnostic = PassDiagnostic(
            pass_name=pass_name,
            message=str(error),
            error_class=type(error).__name__,
            namespace=ingress.namespace if ingress else None,
            resource=ingress.name if ingress else None,
        )
        log.error("%s", diagnostic)
        self.diagnostics.append(diagnostic)


class Reconciler:
    """
    Runs one sync cycle: translate the desired state into the proxy
    configuration inside a single transaction, commit, then reload or restart
    the proxy when any pass asked for it.

    Pass failures are logged and skipped. Only transaction open/commit
    failures abort a cycle, and they do so before any lifecycle action.
    """

    def __init__(
        self,
        settings: ControllerSettings,
        transactions: TransactionManager,
        passes: TranslationPasses,
        state: DesiredState,
        supervisor: ProcessSupervisor,
        status_publisher: Optional[StatusPublisher] = None,
    ) -> None:
        self.settings = settings
        self.transactions = transactions
        self.passes = passes
        self.state = state
        self.supervisor = supervisor
        self.status_publisher = status_publisher

    def sync(self) -> CycleResult:
        """Run one full cycle; raises TransactionError when nothing was applied."""
        try:
            self.transactions.start_transaction()
        except TransactionError as exc:
            log.error("Sync aborted, unable to open transaction: %s", exc)
            raise

        try:
            cycle = _Cycle(passes=self.passes, view=self.transactions.active_view())
            cycle.run("global_annotations")
            cycle.run("default_service")

            for namespace in self._relevant_namespaces():
                for ingress in list(namespace.ingresses.values()):
                    self._sync_ingress(cycle, namespace, ingress)

            cycle.run("proxy_protocol")
            cycle.run("default_certificate", cycle.used_certs)
            cycle.run("https", cycle.used_certs)
            for pass_name in FRONTEND_RULE_PASSES:
                cycle.run(pass_name)
            cycle.run("map_files")
            cycle.run("tcp_services")
            cycle.run("backend_switching")

            try:
                self.transactions.commit()
            except TransactionError as exc:
                log.error("Sync aborted, unable to commit transaction: %s", exc)
                raise
        finally:
            self.transactions.dispose()

        self.state.clean()

        action = cycle.decision.action
        outcome = self._dispatch(action)
        return CycleResult(
            decision=cycle.decision,
            action=action,
            outcome=outcome,
            diagnostics=cycle.diagnostics,
        )

    def _relevant_namespaces(self) -> Iterator[Namespace]:
        for name, namespace in list(self.state.namespaces.items()):
            if self.settings.is_namespace_relevant(name):
                yield namespace

    def _sync_ingress(self, cycle: _Cycle, namespace: Namespace, ingress: Ingress) -> None:
        publish_service = self.settings.publish_service or self.state.publish_service
        if publish_service and self.status_publisher is not None and ingress.status != ResourceStatus.DELETED:
            try:
                self.status_publisher.update_ingress_status(ingress, publish_service)
            except Exception as exc:
                cycle.record("ingress_status", exc, ingress)

        if ingress.default_backend is not None:
            cycle.run("path", namespace, ingress, IngressRule(), ingress.default_backend, ingress=ingress)

        for rule in ingress.rules:
            for path in rule.paths:
                cycle.run("path", namespace, ingress, rule, path, ingress=ingress)

        # One certificate pass per secret within this ingress only
        ingress_secrets: Set[str] = set()
        for tls in ingress.tls:
            if tls.secret_name in ingress_secrets:
                continue
            ingress_secrets.add(tls.secret_name)
            cycle.run("tls_secret", ingress, tls, cycle.used_certs, ingress=ingress)

        for pass_name in INGRESS_FEATURE_PASSES:
            cycle.run(pass_name, ingress, ingress=ingress)

    def _dispatch(self, action: Optional[LifecycleAction]) -> Optional[LifecycleOutcome]:
        if action is None:
            log.debug("Sync complete, no reload required")
            return None

        try:
            outcome = self.supervisor.service(action)
        except SupervisorError as exc:
            log.error("Unable to %s HAProxy: %s", action.value, exc)
            return None

        if outcome == LifecycleOutcome.SUCCESS:
            log.info("HAProxy %s", action.past_tense)
        return outcome
