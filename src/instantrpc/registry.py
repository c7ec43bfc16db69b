"""Hosted targets keyed by ``(type identity, instance id)``."""

from collections.abc import Callable
from typing import NamedTuple

from instantrpc.errors import DuplicateRegistrationError

MutateWrapper = Callable[[Callable[[], None]], None]
EvaluateWrapper = Callable[[Callable[[], object]], object]


def run_inline(action: Callable[[], object]) -> object:
    """Default wrapper: run on the calling thread.

    :param action: Zero-argument callable.
    :returns: Its result.
    """
    return action()


class TargetKey(NamedTuple):
    """Identity of one hosted target."""

    type_identity: str
    instance_id: str


class HostedTarget:
    """One exposed object graph root and the wrappers that touch it."""

    instance: object
    mutate: MutateWrapper
    evaluate: EvaluateWrapper

    def __init__(
        self,
        instance: object,
        mutate: MutateWrapper | None = None,
        evaluate: EvaluateWrapper | None = None,
    ) -> None:
        """Initialize a hosted target.

        :param instance: Root of the exposed object graph.
        :param mutate: Runs a mutating action in the owner's execution context.
        :param evaluate: Runs a read or call in the owner's execution context.
        :raises ValueError: If ``instance`` is ``None``.
        """
        if instance is None:
            raise ValueError("instance must not be None")
        self.instance = instance
        self.mutate = run_inline if mutate is None else mutate  # type: ignore[assignment]
        self.evaluate = run_inline if evaluate is None else evaluate


class TargetRegistry:
    """Table of hosted targets.

    Written only while exposing targets, before traffic starts.
    """

    _targets: dict[TargetKey, HostedTarget]

    def __init__(self) -> None:
        self._targets = {}

    def add(self, key: TargetKey, target: HostedTarget) -> None:
        """Store a target under a new key.

        :param key: Target key.
        :param target: Hosted target.
        :raises DuplicateRegistrationError: If ``key`` is already present.
        """
        if key in self._targets:
            raise DuplicateRegistrationError(
                f"Duplicated instanceId {key.instance_id!r} for type [{key.type_identity}]."
            )
        self._targets[key] = target

    def remove(self, key: TargetKey) -> HostedTarget | None:
        """Drop a target.

        :param key: Target key.
        :returns: The removed target, or ``None`` when ``key`` was absent.
        """
        return self._targets.pop(key, None)

    def get(self, key: TargetKey) -> HostedTarget | None:
        return self._targets.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def keys(self) -> list[TargetKey]:
        return list(self._targets)
