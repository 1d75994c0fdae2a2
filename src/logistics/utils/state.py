"""Checks for state-machine transition tables.

Tables are validated once, when the module defining them is imported, so a
missing state or a dangling target fails at startup instead of mid-workflow.
"""

from collections.abc import Iterable, Mapping
from enum import Enum


def validate_transitions(
    states: type[Enum],
    transitions: Mapping[Enum, Iterable[Enum]],
    terminal: Iterable[Enum] = (),
    required: Iterable[tuple[Enum, Enum]] = (),
) -> dict[Enum, frozenset]:
    """Return ``transitions`` frozen, after checking it covers ``states`` exactly.

    Every state needs an entry, every target must be a member of ``states``,
    and the ``terminal`` states must have no outgoing edges. Each
    ``(source, target)`` pair in ``required`` must be present.
    """
    missing = set(states) - set(transitions)
    if missing:
        raise ValueError(f"{states.__name__}: no transition entry for {sorted(s.name for s in missing)}")

    unknown = set(transitions) - set(states)
    if unknown:
        raise ValueError(f"{states.__name__}: transition entries for foreign states {unknown}")

    frozen = {}
    for source, targets in transitions.items():
        targets = frozenset(targets)
        foreign = {t for t in targets if not isinstance(t, states)}
        if foreign:
            raise ValueError(f"{states.__name__}.{source.name} leads to foreign states {foreign}")
        if source in targets:
            raise ValueError(f"{states.__name__}.{source.name} transitions to itself")
        frozen[source] = targets

    for state in terminal:
        if frozen[state]:
            raise ValueError(f"{states.__name__}.{state.name} is terminal but has outgoing transitions")

    for source, target in required:
        if target not in frozen[source]:
            raise ValueError(f"{states.__name__}.{source.name} must be able to reach {target.name}")

    return frozen
