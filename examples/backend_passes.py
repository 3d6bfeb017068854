"""
Minimal translation passes: one HAProxy backend per referenced service port,
plus a global thread count that needs a process restart to change.
"""
from portico.runtime.passes import PassOutcome, TranslationPasses


class BackendPasses(TranslationPasses):
    def __init__(self, nbthread: int | None = None) -> None:
        self.nbthread = nbthread

    def global_annotations(self, view) -> PassOutcome:
        if self.nbthread is None:
            return PassOutcome()

        wanted = f"  nbthread {self.nbthread}"
        lines = view.read_text().splitlines()
        if wanted in lines:
            return PassOutcome()

        lines = [line for line in lines if not line.strip().startswith("nbthread ")]
        if "global" not in lines:
            lines.insert(0, "global")
        lines.insert(lines.index("global") + 1, wanted)
        view.write_text("\n".join(lines) + "\n")
        # thread count is read only at process start
        return PassOutcome(changed=True, restart=True)

    def path(self, view, namespace, ingress, rule, path) -> PassOutcome:
        name = f"{namespace.name}_{path.service_name}_{path.service_port}"
        content = view.read_text()
        if f"backend {name}\n" in content:
            return PassOutcome()

        view.write_text(f"{content.rstrip()}\n\nbackend {name}\n  mode http\n")
        return PassOutcome(changed=True)
