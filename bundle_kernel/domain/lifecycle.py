"""
Bundle Lifecycle -- statuses, actions and the rules between them.

Responsibility:
    Defines the bundle state machine and turns a raw action request into a
    validated ``ActionCommand``.  Validation of the *batch* against the
    bundles' current statuses happens in ``validate_batch`` so the service
    layer can load rows first and then check the whole batch before any
    mutation.

        available --assign--> assigned --use--> used (terminal)
            |  ^                  |
            +--+ move, assign     +-- move, assign (re-assign)

    ``move`` never changes status.  ``split`` keeps the status of the
    original on both halves and is only reachable through the split
    operation, never through a batch action.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    TERMINAL_USED   -- ``used`` is reachable only from ``assigned``.
    BATCH_ATOMICITY -- a batch is rejected as a whole if any member fails
                       its precondition.

Failure modes:
    - EmptyBundleSelectionError, UnsupportedActionError,
      MissingDestinationError, InvalidLocationCodeError,
      MissingWorkOrderError from ``build_action_command``.
    - BundlesNotAssignedError / InvalidBundleTransitionError from
      ``validate_batch``.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from bundle_kernel.exceptions import (
    BundleNotFoundError,
    BundlesNotAssignedError,
    EmptyBundleSelectionError,
    InvalidBundleTransitionError,
    InvalidLocationCodeError,
    MissingDestinationError,
    MissingWorkOrderError,
    UnsupportedActionError,
)


class BundleStatus(str, Enum):
    """Bundle lifecycle status."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    USED = "used"


class BundleAction(str, Enum):
    """Actions recorded in the history ledger."""

    MOVE = "move"
    ASSIGN = "assign"
    USE = "use"
    SPLIT = "split"


TERMINAL_STATUSES = frozenset({BundleStatus.USED})
OPEN_STATUSES = frozenset({BundleStatus.AVAILABLE, BundleStatus.ASSIGNED})

# Actions accepted by apply_bundle_action.  SPLIT has its own entry point.
BATCH_ACTIONS = frozenset({BundleAction.MOVE, BundleAction.ASSIGN, BundleAction.USE})

# Status a bundle ends up in after the action; absent means "unchanged".
STATUS_BY_ACTION: Mapping[BundleAction, BundleStatus] = {
    BundleAction.ASSIGN: BundleStatus.ASSIGNED,
    BundleAction.USE: BundleStatus.USED,
}

# Statuses from which the action is legal.
ALLOWED_SOURCE_STATUSES: Mapping[BundleAction, frozenset[BundleStatus]] = {
    BundleAction.MOVE: frozenset(BundleStatus),
    BundleAction.ASSIGN: OPEN_STATUSES,
    BundleAction.USE: frozenset({BundleStatus.ASSIGNED}),
    BundleAction.SPLIT: frozenset(BundleStatus),
}


@dataclass(frozen=True)
class ActionCommand:
    """A validated batch action, ready to be checked against bundle state."""

    action: BundleAction
    bundle_ids: tuple[UUID, ...]
    destination_code: str | None = None
    work_order_number: str | None = None

    @property
    def target_status(self) -> BundleStatus | None:
        return STATUS_BY_ACTION.get(self.action)


def parse_action(action: "BundleAction | str") -> BundleAction:
    if isinstance(action, BundleAction):
        return action
    try:
        return BundleAction(str(action).strip().lower())
    except ValueError:
        raise UnsupportedActionError(str(action), "unknown action") from None


def normalize_location_code(code: str | None) -> str | None:
    """Trim and upper-case a location code.  Blank codes become None."""
    if code is None:
        return None
    normalized = str(code).strip().upper()
    return normalized or None


def check_location_code(code: str, allowed_codes: Iterable[str] = ()) -> str:
    """Return the normalised code or raise if it is outside the allow-list."""
    allowed = tuple(allowed_codes)
    normalized = normalize_location_code(code)
    if normalized is None or (allowed and normalized not in allowed):
        raise InvalidLocationCodeError(str(code), allowed)
    return normalized


def coerce_bundle_ids(bundle_ids: Iterable[UUID | str]) -> tuple[UUID, ...]:
    """Parse ids, dropping duplicates while keeping the caller's order."""
    seen: dict[UUID, None] = {}
    for raw in bundle_ids:
        if isinstance(raw, UUID):
            seen.setdefault(raw, None)
            continue
        try:
            seen.setdefault(UUID(str(raw)), None)
        except ValueError:
            raise BundleNotFoundError([raw]) from None
    return tuple(seen)


def build_action_command(
    bundle_ids: Iterable[UUID | str],
    action: BundleAction | str,
    destination_code: str | None = None,
    order_number: str | None = None,
    allowed_location_codes: Iterable[str] = (),
) -> ActionCommand:
    """
    Validate the request shape of a batch action.

    Preconditions checked here do not need the database: non-empty
    selection, known batch action, destination for move, work order for
    assign.  Arguments irrelevant to the action are dropped.
    """
    parsed = parse_action(action)
    if parsed not in BATCH_ACTIONS:
        raise UnsupportedActionError(
            parsed.value, "split must go through split_bundle"
        )

    ids = coerce_bundle_ids(bundle_ids)
    if not ids:
        raise EmptyBundleSelectionError(parsed.value)

    if parsed is BundleAction.MOVE:
        if normalize_location_code(destination_code) is None:
            raise MissingDestinationError(parsed.value)
        return ActionCommand(
            parsed,
            ids,
            destination_code=check_location_code(destination_code, allowed_location_codes),
        )

    if parsed is BundleAction.ASSIGN:
        work_order = (order_number or "").strip()
        if not work_order:
            raise MissingWorkOrderError(ids)
        return ActionCommand(parsed, ids, work_order_number=work_order)

    return ActionCommand(parsed, ids)


def validate_batch(
    command: ActionCommand,
    current_statuses: Mapping[UUID, BundleStatus],
) -> None:
    """
    Check every bundle of the batch against the action's source statuses.

    Raises on the first illegal batch; nothing has been mutated yet.
    """
    allowed = ALLOWED_SOURCE_STATUSES[command.action]
    offending = [
        bundle_id
        for bundle_id in command.bundle_ids
        if current_statuses[bundle_id] not in allowed
    ]
    if not offending:
        return

    statuses = [current_statuses[bundle_id].value for bundle_id in offending]
    if command.action is BundleAction.USE:
        raise BundlesNotAssignedError(offending, statuses)
    raise InvalidBundleTransitionError(
        command.action.value,
        offending,
        statuses,
        reason="bundle is in a terminal status",
    )


def resulting_status(action: BundleAction, current: BundleStatus) -> BundleStatus:
    return STATUS_BY_ACTION.get(action, current)
