from portico.core.state import (
    DesiredState,
    EventKind,
    Ingress,
    IngressPath,
    IngressRule,
    ResourceStatus,
    SyncEvent,
)


def _ingress(name, namespace="default"):
    return Ingress(
        namespace=namespace,
        name=name,
        rules=[IngressRule(host="a.example.com", paths=[IngressPath(path="/", service_name="web", service_port=80)])],
    )


def test_upsert_marks_added_then_modified():
    state = DesiredState()

    state.upsert_ingress(_ingress("web"))
    assert state.namespaces["default"].ingresses["web"].status == ResourceStatus.ADDED

    state.upsert_ingress(_ingress("web"))
    assert state.namespaces["default"].ingresses["web"].status == ResourceStatus.MODIFIED


def test_clean_drops_deleted_and_resets_statuses():
    state = DesiredState()
    state.upsert_ingress(_ingress("keep"))
    state.upsert_ingress(_ingress("drop"))
    state.mark_ingress_deleted("default", "drop")

    state.clean()

    namespace = state.namespaces["default"]
    assert list(namespace.ingresses) == ["keep"]
    assert namespace.status == ResourceStatus.EMPTY
    kept = namespace.ingresses["keep"]
    assert kept.status == ResourceStatus.EMPTY
    assert kept.rules[0].paths[0].status == ResourceStatus.EMPTY


def test_namespace_delete_event_removes_everything_on_clean():
    state = DesiredState()
    state.upsert_ingress(_ingress("web", namespace="team-a"))

    changed = state.apply_event(SyncEvent(kind=EventKind.NAMESPACE, name="team-a", status=ResourceStatus.DELETED))
    assert changed is True
    assert state.namespaces["team-a"].ingresses["web"].status == ResourceStatus.DELETED

    state.clean()
    assert "team-a" not in state.namespaces


def test_ingress_events_upsert_and_delete():
    state = DesiredState()

    assert state.apply_event(
        SyncEvent(kind=EventKind.INGRESS, namespace="default", name="web", status=ResourceStatus.ADDED, data=_ingress("web"))
    )
    assert state.apply_event(
        SyncEvent(kind=EventKind.INGRESS, namespace="default", name="web", status=ResourceStatus.DELETED)
    )
    assert state.namespaces["default"].ingresses["web"].status == ResourceStatus.DELETED


def test_unknown_deletes_and_other_kinds_leave_cache_untouched():
    state = DesiredState()

    assert state.apply_event(
        SyncEvent(kind=EventKind.INGRESS, namespace="default", name="missing", status=ResourceStatus.DELETED)
    ) is False
    assert state.apply_event(SyncEvent(kind=EventKind.SECRET, namespace="default", name="tls")) is False
    assert state.apply_event(SyncEvent(kind=EventKind.INGRESS, namespace="default", name="web", data="not-an-ingress")) is False
    assert state.namespaces == {}
