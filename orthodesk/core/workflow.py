"""
Status graphs for linear record lifecycles.

Pure functions and a small value object; no model access. Each domain
declares one StatusGraph per workflow and routes every status change
through ``graph.check(from, to)``.
"""

from dataclasses import dataclass, field

from .exceptions import InvalidTransition


def validate_status_graph(
    states: list[str],
    transitions: dict[str, list[str]],
    initial: str,
    terminal: list[str],
) -> list[str]:
    """
    Validate a lifecycle graph is sane and usable.

    Returns list of error messages (empty = valid).

    Checks:
    - initial and terminal states exist
    - all transition sources and targets exist
    - terminal states have no outgoing transitions
    - non-terminal states have at least one outgoing transition
    - all states reachable from initial
    """
    errors = []
    states_set = set(states)

    if initial not in states_set:
        errors.append(f"initial state '{initial}' not in states")

    for ts in terminal:
        if ts not in states_set:
            errors.append(f"terminal state '{ts}' not in states")

    for from_state, to_states in transitions.items():
        if from_state not in states_set:
            errors.append(f"transition from unknown state '{from_state}'")
        for to_state in to_states:
            if to_state not in states_set:
                errors.append(f"transition to unknown state '{to_state}'")

    for ts in terminal:
        if transitions.get(ts):
            errors.append(f"terminal state '{ts}' has outgoing transitions")

    for state in states:
        if state not in terminal and not transitions.get(state):
            errors.append(f"non-terminal state '{state}' has no outgoing transitions")

    if initial in states_set:
        reachable = _find_reachable_states(initial, transitions)
        for state in states:
            if state not in reachable:
                errors.append(f"state '{state}' unreachable from initial state")

    return errors


def _find_reachable_states(start: str, transitions: dict[str, list[str]]) -> set[str]:
    """BFS to find all states reachable from start (including start)."""
    visited = {start}
    queue = [start]

    while queue:
        current = queue.pop(0)
        for next_state in transitions.get(current, []):
            if next_state not in visited:
                visited.add(next_state)
                queue.append(next_state)

    return visited


@dataclass(frozen=True)
class StatusGraph:
    """An immutable, validated lifecycle graph."""

    name: str
    states: tuple
    transitions: dict = field(hash=False)
    initial: str = ""
    terminal: tuple = ()

    def __post_init__(self):
        errors = validate_status_graph(
            list(self.states), self.transitions, self.initial, list(self.terminal)
        )
        if errors:
            raise ValueError(f"Invalid status graph '{self.name}': {'; '.join(errors)}")

    def allowed(self, from_status: str) -> list[str]:
        """Statuses reachable in one step from from_status."""
        return list(self.transitions.get(from_status, []))

    def can(self, from_status: str, to_status: str) -> bool:
        return to_status in self.transitions.get(from_status, [])

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal

    def check(self, from_status: str, to_status: str) -> None:
        """Raise InvalidTransition unless from_status -> to_status is an edge."""
        if from_status == to_status:
            raise InvalidTransition(from_status, to_status, "already in this status")
        if self.is_terminal(from_status):
            raise InvalidTransition(from_status, to_status, f"{from_status} is final")
        if not self.can(from_status, to_status):
            allowed = ", ".join(self.allowed(from_status)) or "none"
            raise InvalidTransition(from_status, to_status, f"allowed: {allowed}")
