"""Concurrent deployment scaling with per-workload convergence checks."""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Sequence

from entandoupgrader.errors import MutationError, RunAborted
from entandoupgrader.models import Workload


class ScaleService:
    """Drives a set of deployments to a replica count and waits for the result."""

    def __init__(self, cluster, poller, logger, console):
        self.cluster = cluster
        self.poller = poller
        self.logger = logger
        self.console = console

    @staticmethod
    def is_converged(status: Dict, replicas: int) -> bool:
        ready = (status.get("status") or {}).get("readyReplicas")
        if replicas == 0:
            # The controller drops the field once every pod has terminated.
            return ready is None
        return ready == replicas

    def scale_to(self, workloads: Sequence[Workload], namespace: str, replicas: int) -> List[str]:
        if not workloads:
            return []

        direction = "down" if replicas == 0 else "up"
        failures: Dict[str, BaseException] = {}
        converged = []

        with ThreadPoolExecutor(max_workers=len(workloads), thread_name_prefix="scale") as executor:
            futures = {
                workload.name: executor.submit(self._scale_one, workload.name, namespace, replicas)
                for workload in workloads
            }
            for name, future in futures.items():
                try:
                    future.result()
                except KeyboardInterrupt:
                    self.poller.cancel()
                    raise
                except Exception as exc:
                    self.logger.error("Scaling %s deployment '%s' failed: %s", direction, name, exc)
                    failures[name] = exc
                else:
                    converged.append(name)

        aborted = [exc for exc in failures.values() if isinstance(exc, RunAborted)]
        if aborted:
            raise aborted[0]
        if failures:
            details = "; ".join(f"{name}: {exc}" for name, exc in failures.items())
            raise MutationError(
                f"Could not scale {direction} {len(failures)} deployment(s): {details}",
                identity=", ".join(failures),
            )

        self.console.print(f"[green]Scaled {direction} all your deployments![/green]")
        return converged

    def _scale_one(self, name: str, namespace: str, replicas: int):
        direction = "down" if replicas == 0 else "up"
        self.console.print(f"Scaling {direction} deployment '{name}'")

        deployment = self.cluster.read_deployment(name, namespace)
        deployment.setdefault("spec", {})["replicas"] = replicas
        try:
            self.cluster.replace_deployment(name, namespace, deployment)
        except Exception as exc:
            raise MutationError(f"Error while scaling deployment '{name}': {exc}", identity=name) from exc

        self.poller.wait_until(
            lambda: self.is_converged(self.cluster.read_deployment_status(name, namespace), replicas),
            description=f"deployment '{name}' to reach {replicas} ready replica(s)",
        )
        self.logger.info("Deployment %s scaled %s", name, direction)
