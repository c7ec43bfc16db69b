"""Walk member paths across a hosted object graph."""

from instantrpc.codec import type_identity
from instantrpc.errors import MemberResolutionError
from instantrpc.registry import HostedTarget

_MISSING: object = object()


def read_member(target: HostedTarget, container: object, name: str) -> object:
    """Read one member through the target's evaluate wrapper.

    :param target: Hosted target owning ``container``.
    :param container: Object holding the member.
    :param name: Member name.
    :returns: Member value.
    :raises MemberResolutionError: If ``container`` has no such member.
    """

    def _read() -> object:
        return getattr(container, name, _MISSING)

    value: object = target.evaluate(_read)
    if value is _MISSING:
        raise MemberResolutionError(name, type_identity(type(container)))
    return value


def extract_path(target: HostedTarget, path: str) -> tuple[object, str]:
    """Resolve every segment of ``path`` but the last.

    :param target: Hosted target whose instance is the root.
    :param path: Dot-joined member path.
    :returns: ``(container, leaf_name)``.
    :raises MemberResolutionError: If an intermediate member is missing.
    """
    segments: list[str] = path.split(".")
    current: object = target.instance
    for segment in segments[:-1]:
        current = read_member(target, current, segment)
    return current, segments[-1]
