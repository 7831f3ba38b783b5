"""Setup pipeline: allocate a namespace and prepare it for a test.

Unless namespaces are reused, a freshly created namespace gets:

1. its ``default`` service account (waited for, created by the controller manager)
2. the test image-pull secret, copied from the ``default`` namespace if present
3. two permission sets, ``<namespace>`` and ``<namespace>-eventwatcher``

In reuse mode all three are assumed to have been done by whoever created the
namespace, and nothing is checked.

Example:
    >>> with session_scope(reporter, clients=clients, allocator=allocator,
    ...                    config=config, interrupts=interrupts) as session:
    ...     session.create_object(manifest)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from eventing_e2e.clients import ClusterClients
from eventing_e2e.config import HarnessConfig
from eventing_e2e.errors import NamespaceUnavailableError, SetupError
from eventing_e2e.interrupt import InterruptCleanup
from eventing_e2e.namespaces import (
    NamespaceAllocator,
    create_namespace_with_retry,
    is_already_exists,
    is_not_found,
)
from eventing_e2e.polling import PollingConfig, PollingTimeoutError, wait_for_condition
from eventing_e2e.rbac import create_permission_set, event_watcher, pods_get_events_all
from eventing_e2e.reporting import Reporter
from eventing_e2e.session import SetupClientOption, TestSession
from eventing_e2e.teardown import tear_down
from eventing_e2e.telemetry import get_tracer, harness_span

logger = structlog.get_logger(__name__)

DEFAULT_SERVICE_ACCOUNT = "default"


# =============================================================================
# Namespace allocation
# =============================================================================


def create_namespaced_session(
    reporter: Reporter,
    clients: ClusterClients,
    allocator: NamespaceAllocator,
    config: HarnessConfig,
) -> TestSession:
    """Allocate a namespace and return a session bound to it.

    Tries up to config.max_namespace_skip candidates. In reuse mode the first
    candidate is accepted as is. Otherwise each candidate is created with
    retry. A candidate whose last attempt still reports AlreadyExists (left
    over from an earlier run) is skipped, and any other final error aborts
    allocation.

    Raises:
        NamespaceUnavailableError: If every candidate already exists.
        ApiException: If namespace creation fails for another reason.
    """
    for _ in range(config.max_namespace_skip):
        namespace = allocator.next_namespace()
        session = TestSession(
            clients,
            namespace,
            reporter,
            delete_timeout=config.tracker_delete_timeout,
        )
        if config.reuse_namespace:
            logger.info("namespace_reused", namespace=namespace, test=reporter.name)
            return session
        try:
            create_namespace_with_retry(
                clients.core,
                namespace,
                max_retries=config.max_retries,
                sleep_seconds=config.retry_sleep_seconds,
            )
        except Exception as e:
            if is_already_exists(e):
                logger.info("namespace_exists_skipping", namespace=namespace)
                continue
            raise
        return session
    raise NamespaceUnavailableError(attempts=config.max_namespace_skip)


# =============================================================================
# Provisioning steps
# =============================================================================


def wait_for_service_account(
    session: TestSession,
    name: str = DEFAULT_SERVICE_ACCOUNT,
    poll: PollingConfig | None = None,
) -> None:
    """Wait until a service account exists in the session namespace.

    Any API error counts as "not there yet"; only the timeout is reported.

    Raises:
        PollingTimeoutError: If the account does not appear in time.
    """

    def exists() -> bool:
        session.core.read_namespaced_service_account(name=name, namespace=session.namespace)
        return True

    wait_for_condition(
        exists,
        config=poll,
        description=f"service account {name} in {session.namespace}",
    )


def copy_secret(
    core_api: Any,
    source_namespace: str,
    secret_name: str,
    target_namespace: str,
    service_account: str,
) -> Any:
    """Copy a secret into another namespace and add it as an image pull secret.

    Returns:
        The created secret.

    Raises:
        ApiException: 404 if the source secret does not exist, or any error
            from creating the copy or patching the service account.
    """
    source = core_api.read_namespaced_secret(name=secret_name, namespace=source_namespace)
    body = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": secret_name, "namespace": target_namespace},
        "type": source.type,
        "data": source.data,
    }
    created = core_api.create_namespaced_secret(namespace=target_namespace, body=body)
    core_api.patch_namespaced_service_account(
        name=service_account,
        namespace=target_namespace,
        body={"imagePullSecrets": [{"name": secret_name}]},
    )
    return created


def setup_service_account(session: TestSession, config: HarnessConfig) -> None:
    """Wait for the default service account; pods cannot be created before it exists.

    Raises:
        SetupError: If the service account never appears.
    """
    try:
        wait_for_service_account(session, poll=config.service_account_poll)
    except PollingTimeoutError as e:
        raise SetupError(
            session.namespace,
            step="service-account",
            reason=f"the {DEFAULT_SERVICE_ACCOUNT} ServiceAccount was not created: {e}",
        ) from e


def setup_pull_secret(session: TestSession, config: HarnessConfig) -> None:
    """Propagate the test pull secret into the session namespace, if it exists.

    Raises:
        SetupError: If copying fails for a reason other than a missing secret.
    """
    try:
        copy_secret(
            session.core,
            config.pull_secret_source_namespace,
            config.pull_secret_name,
            session.namespace,
            DEFAULT_SERVICE_ACCOUNT,
        )
    except Exception as e:
        if is_not_found(e):
            logger.debug(
                "pull_secret_absent",
                secret=config.pull_secret_name,
                source_namespace=config.pull_secret_source_namespace,
            )
            return
        raise SetupError(
            session.namespace,
            step="pull-secret",
            reason=f"error copying secret {config.pull_secret_name!r}: {e}",
        ) from e


def setup_permissions(session: TestSession) -> None:
    """Bind the pod/event permission sets into the session namespace.

    Raises:
        SetupError: If any object cannot be created.
    """
    permission_sets = (pods_get_events_all(session.namespace), event_watcher(session.namespace))
    for permission_set in permission_sets:
        try:
            create_permission_set(session, permission_set)
        except Exception as e:
            raise SetupError(
                session.namespace,
                step="rbac",
                reason=f"creating permission set {permission_set.name!r}: {e}",
            ) from e


def provision_namespace(session: TestSession, config: HarnessConfig) -> None:
    """Run the provisioning steps, in order, against a new namespace."""
    tracer = get_tracer()
    with harness_span(tracer, "setup.service_account", namespace=session.namespace):
        setup_service_account(session, config)
    with harness_span(tracer, "setup.pull_secret", namespace=session.namespace):
        setup_pull_secret(session, config)
    with harness_span(tracer, "setup.rbac", namespace=session.namespace):
        setup_permissions(session)


# =============================================================================
# Setup entry points
# =============================================================================


def setup(
    reporter: Reporter,
    run_in_parallel: bool,
    *options: SetupClientOption,
    clients: ClusterClients,
    allocator: NamespaceAllocator,
    config: HarnessConfig,
    interrupts: InterruptCleanup,
) -> TestSession:
    """Create a session for a test and prepare its namespace.

    Once the namespace exists, any failure in the remaining setup tears the
    session down before the error propagates. On success the session is
    registered with interrupts so it is torn down if the run is interrupted;
    the caller must call release() when the test ends.

    Args:
        reporter: Handle of the running test.
        run_in_parallel: Mark the test parallel-eligible.
        *options: Further setup applied to the session, in order.
        clients: Cluster API clients.
        allocator: Namespace allocator shared by the run.
        config: Harness configuration.
        interrupts: Interrupt cleanup registry.

    Raises:
        NamespaceUnavailableError: If no namespace could be allocated.
        SetupError: If provisioning the namespace fails.
        ApiException: If creating the namespace fails.
    """
    session = create_namespaced_session(reporter, clients, allocator, config)

    try:
        if not config.reuse_namespace:
            provision_namespace(session, config)

        if run_in_parallel:
            reporter.parallel()

        session.interrupt_handle = interrupts.register(lambda: tear_down(session, config))

        for option in options:
            option(session)
    except BaseException:
        logger.warning("setup_failed_tearing_down", namespace=session.namespace)
        release(session, config, interrupts)
        raise

    logger.info("session_ready", namespace=session.namespace, test=reporter.name)
    return session


def release(session: TestSession, config: HarnessConfig, interrupts: InterruptCleanup) -> None:
    """Tear a session down and drop its interrupt registration."""
    try:
        tear_down(session, config)
    finally:
        if session.interrupt_handle is not None:
            interrupts.unregister(session.interrupt_handle)
            session.interrupt_handle = None


@contextmanager
def session_scope(
    reporter: Reporter,
    *options: SetupClientOption,
    clients: ClusterClients,
    allocator: NamespaceAllocator,
    config: HarnessConfig,
    interrupts: InterruptCleanup,
    run_in_parallel: bool = False,
) -> Iterator[TestSession]:
    """Set up a session and tear it down exactly once on every exit path."""
    session = setup(
        reporter,
        run_in_parallel,
        *options,
        clients=clients,
        allocator=allocator,
        config=config,
        interrupts=interrupts,
    )
    try:
        yield session
    finally:
        release(session, config, interrupts)


__all__ = [
    "DEFAULT_SERVICE_ACCOUNT",
    "copy_secret",
    "create_namespaced_session",
    "provision_namespace",
    "release",
    "session_scope",
    "setup",
    "setup_permissions",
    "setup_pull_secret",
    "setup_service_account",
    "wait_for_service_account",
]
