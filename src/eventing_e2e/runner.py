"""Component test runner.

Runs one test function against every component under test (channel, broker
or source implementations) that supports a given feature. Which component
supports what is declared in a capability matrix. A component missing from
the matrix is assumed to support every feature, so an ad-hoc component passed
on the command line gets the whole suite.

Example:
    >>> IMC = Component("InMemoryChannel", "messaging.knative.dev/v1")
    >>> KAFKA = Component("KafkaChannel", "messaging.knative.dev/v1beta1")
    >>> runner = ComponentsTestRunner(
    ...     component_feature_map={IMC: [Feature.BASIC]},
    ...     components_to_test=[IMC, KAFKA],
    ... )
    >>> runner.lookup(IMC, Feature.PERSISTENCE)
    <MatrixMatch.UNMATCHED: 'unmatched'>
    >>> runner.lookup(KAFKA, Feature.PERSISTENCE)
    <MatrixMatch.UNREGISTERED: 'unregistered'>
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import pytest
import structlog

from eventing_e2e.reporting import Reporter
from eventing_e2e.session import SetupClientOption

logger = structlog.get_logger(__name__)


class Feature(str, Enum):
    """Testable capabilities a component may support."""

    BASIC = "basic"
    """Deliver events."""

    REDELIVERY = "redelivery"
    """Redeliver events that failed to be delivered."""

    PERSISTENCE = "persistence"
    """Keep events across a restart of the dispatcher."""

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Component:
    """A component implementation identified by kind and API version."""

    kind: str
    api_version: str

    @property
    def sub_test_name(self) -> str:
        """Name of the sub-test run for this component."""
        return f"{self.kind}-{self.api_version}"

    def __str__(self) -> str:
        return self.sub_test_name


class MatrixMatch(Enum):
    """Result of looking a component/feature pair up in the capability matrix."""

    MATCHED = "matched"
    """The component is registered and lists the feature."""

    UNMATCHED = "unmatched"
    """The component is registered and does not list the feature."""

    UNREGISTERED = "unregistered"
    """The component is not in the matrix."""


def should_run(match: MatrixMatch, strict: bool) -> bool:
    """Decide whether a component's sub-test runs its test function.

    Strict mode runs only matched components. Non-strict mode runs every
    component, so behaviour is opt-out through the matrix only in strict mode.
    """
    if strict:
        return match is MatrixMatch.MATCHED
    return True


def is_selected(match: MatrixMatch) -> bool:
    """Whether run_tests() creates a sub-test for a component at all."""
    return match is not MatrixMatch.UNMATCHED


ComponentTest = Callable[[Reporter, Component], None]
ComponentTestWithOptions = Callable[..., None]


class ComponentsTestRunner:
    """Runs tests against the components that support a feature.

    Attributes:
        component_feature_map: Capability matrix.
        components_to_test: Components tests are run against, in order.
        component_name: Name of the component's control-plane deployment.
        component_namespace: Namespace the component is installed in.
    """

    def __init__(
        self,
        component_feature_map: Mapping[Component, Iterable[Feature | str]] | None = None,
        components_to_test: Sequence[Component] | None = None,
        *,
        component_name: str = "",
        component_namespace: str = "",
    ) -> None:
        self.component_feature_map: dict[Component, list[Feature | str]] = {
            component: list(features)
            for component, features in (component_feature_map or {}).items()
        }
        self.components_to_test: list[Component] = list(components_to_test or [])
        self.component_name = component_name
        self.component_namespace = component_namespace
        self._component_options: dict[Component, list[SetupClientOption]] = {}

    def lookup(self, component: Component, feature: Feature | str) -> MatrixMatch:
        """Three-way capability lookup for component and feature."""
        features = self.component_feature_map.get(component)
        if features is None:
            return MatrixMatch.UNREGISTERED
        wanted = str(feature)
        if any(str(f) == wanted for f in features):
            return MatrixMatch.MATCHED
        return MatrixMatch.UNMATCHED

    def run_tests(
        self,
        t: Reporter,
        feature: Feature | str,
        test_func: ComponentTest,
    ) -> None:
        """Run test_func as a sub-test for every component supporting feature.

        Components registered without the feature get no sub-test at all.
        """
        t.parallel()
        for component in self.components_to_test:
            match = self.lookup(component, feature)
            if not is_selected(match):
                logger.debug(
                    "component_not_selected",
                    component=str(component),
                    feature=str(feature),
                )
                continue
            t.run(
                component.sub_test_name,
                lambda st, c=component: test_func(st, c),
            )

    def run_tests_with_component_options(
        self,
        t: Reporter,
        feature: Feature | str,
        strict: bool,
        test_func: ComponentTestWithOptions,
    ) -> None:
        """Run test_func for every component, passing its setup options.

        Use this instead of run_tests() when expensive per-component setup was
        registered with add_component_setup_client_option(); it only runs for
        components that are actually selected. Every component gets a named
        sub-test; in strict mode components that do not list the feature are
        skipped inside it.
        """
        t.parallel()
        for component in self.components_to_test:
            match = self.lookup(component, feature)
            t.run(
                component.sub_test_name,
                lambda st, c=component, m=match: self._run_component(
                    st, c, m, feature, strict, test_func
                ),
            )

    def _run_component(
        self,
        st: Reporter,
        component: Component,
        match: MatrixMatch,
        feature: Feature | str,
        strict: bool,
        test_func: ComponentTestWithOptions,
    ) -> None:
        if should_run(match, strict):
            test_func(st, component, *self._component_options.get(component, []))
            return
        st.skip(
            f"Skipping component {component.sub_test_name} since it did not "
            f"match the feature {feature} and we are in strict mode"
        )

    def add_component_setup_client_option(
        self,
        component: Component,
        *options: SetupClientOption,
    ) -> None:
        """Register setup that only runs when component is selected.

        Meant for expensive, conditional initialization such as creating a
        channel instance, as opposed to cheap setup that is safe everywhere.
        Options accumulate across calls in registration order.
        """
        self._component_options.setdefault(component, []).extend(options)

    def component_options(self, component: Component) -> list[SetupClientOption]:
        """Options registered for component, in registration order."""
        return list(self._component_options.get(component, []))

    def parametrize(
        self,
        argname: str,
        feature: Feature | str,
        *,
        strict: bool | None = None,
    ) -> Any:
        """Collection-time equivalent of run_tests() as a parametrize marker.

        With strict=None the parameters are the components run_tests() would
        select. With a boolean every component is a parameter, and those
        run_tests_with_component_options() would skip carry a skip mark.

        Example:
            >>> @runner.parametrize("component", Feature.BASIC)
            ... def test_channel(component): ...
        """
        params = []
        for component in self.components_to_test:
            match = self.lookup(component, feature)
            if strict is None:
                if is_selected(match):
                    params.append(pytest.param(component, id=component.sub_test_name))
                continue
            marks = ()
            if not should_run(match, strict):
                marks = (
                    pytest.mark.skip(
                        reason=(
                            f"component {component.sub_test_name} does not "
                            f"match the feature {feature} in strict mode"
                        )
                    ),
                )
            params.append(pytest.param(component, id=component.sub_test_name, marks=marks))
        return pytest.mark.parametrize(argname, params)


__all__ = [
    "Component",
    "ComponentsTestRunner",
    "Feature",
    "MatrixMatch",
    "is_selected",
    "should_run",
]
