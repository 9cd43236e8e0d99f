"""Forward-order table and stage predicates for the pipeline state machine.

Adding a stage means inserting it into ``FORWARD_ORDER``, giving it a
progress span and registering an executor for it. The transition logic in
the state machine reads only from this table.
"""

from app.pipeline.models import Stage

FORWARD_ORDER: tuple[Stage, ...] = (
    Stage.SUMMARIZING,
    Stage.IDENTIFYING_RULES,
    Stage.ASSESSING_COMPLIANCE,
    Stage.REVIEWING_REPORT,
    Stage.GENERATING_CHARTS,
    Stage.COMPLETED,
)

ACTIVE_STAGES: frozenset[Stage] = frozenset(FORWARD_ORDER[:-1])

SINK_STAGES: frozenset[Stage] = frozenset(
    {Stage.COMPLETED, Stage.ERROR, Stage.CANCELLED, Stage.DELETED}
)

# Stages from which an explicit external retry may re-enter the first stage.
RETRYABLE_STAGES: frozenset[Stage] = frozenset({Stage.ERROR, Stage.CANCELLED})


def is_active(stage: Stage) -> bool:
    return stage in ACTIVE_STAGES


def is_sink(stage: Stage) -> bool:
    return stage in SINK_STAGES


def first_stage() -> Stage:
    return FORWARD_ORDER[0]


def next_stage(stage: Stage) -> Stage:
    """Return the stage that follows ``stage`` in the forward order.

    Raises:
        ValueError: if ``stage`` is not an active processing stage.
    """
    if stage not in ACTIVE_STAGES:
        raise ValueError(f"Stage '{stage.value}' has no forward transition")
    return FORWARD_ORDER[FORWARD_ORDER.index(stage) + 1]


def entry_predecessors(stage: Stage) -> frozenset[Stage]:
    """Stages whose transition into ``stage`` starts that stage's work."""
    if stage not in ACTIVE_STAGES:
        return frozenset()
    index = FORWARD_ORDER.index(stage)
    if index == 0:
        return frozenset({Stage.UPLOADING}) | RETRYABLE_STAGES
    return frozenset({FORWARD_ORDER[index - 1]})


def machine_transitions(stage: Stage) -> frozenset[Stage]:
    """Stage values the state machine itself may write for a record in ``stage``.

    Sinks have none. Re-entry from Error or Cancelled and deletion requests
    are external writes and are not part of this table.
    """
    if stage in ACTIVE_STAGES:
        return frozenset({next_stage(stage), Stage.ERROR, Stage.CANCELLED})
    if stage is Stage.CANCELLING:
        return frozenset({Stage.CANCELLED})
    if stage is Stage.PENDING_DELETION:
        return frozenset({Stage.DELETED, Stage.ERROR})
    return frozenset()
