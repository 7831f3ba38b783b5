"""Pod log export for failed CI runs.

Logs are written as ``<directory>/<namespace>/<pod>-<container>.log``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def export_pod_logs(core_api: Any, namespace: str, directory: Path) -> list[Path]:
    """Write the logs of every container of every pod in namespace.

    A container whose log cannot be read is logged and skipped; the other
    containers are still exported.

    Args:
        core_api: Kubernetes CoreV1Api.
        namespace: Namespace whose pods are exported.
        directory: Destination root; a per-namespace subdirectory is created.

    Returns:
        Paths of the files written.

    Raises:
        ApiException: If the pods cannot be listed.
        OSError: If the destination directory cannot be created.
    """
    target = directory / namespace
    target.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    pods = core_api.list_namespaced_pod(namespace=namespace)
    for pod in pods.items:
        pod_name = pod.metadata.name
        containers = [c.name for c in (pod.spec.containers or [])]
        containers += [c.name for c in (pod.spec.init_containers or [])]
        for container in containers:
            try:
                content = core_api.read_namespaced_pod_log(
                    name=pod_name,
                    namespace=namespace,
                    container=container,
                )
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "pod_log_read_failed",
                    namespace=namespace,
                    pod=pod_name,
                    container=container,
                    error=str(e),
                )
                continue
            path = target / f"{pod_name}-{container}.log"
            path.write_text(content or "", encoding="utf-8")
            written.append(path)

    logger.info("pod_logs_exported", namespace=namespace, directory=str(target), files=len(written))
    return written


__all__ = ["export_pod_logs"]
