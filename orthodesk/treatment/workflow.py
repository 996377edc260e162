"""Treatment plan lifecycle.

    DRAFT -> PRESENTED -> ACCEPTED -> ACTIVE -> COMPLETED
                                        |  ^
                                        v  |
                                      ON_HOLD

DISCONTINUED and TRANSFERRED are side exits; COMPLETED, DISCONTINUED
and TRANSFERRED are final.
"""

from orthodesk.core.workflow import StatusGraph

from .models import PlanStatus as S

PLAN_LIFECYCLE = StatusGraph(
    name="treatment_plan",
    states=tuple(S.values),
    transitions={
        S.DRAFT: [S.PRESENTED, S.DISCONTINUED],
        S.PRESENTED: [S.ACCEPTED, S.DRAFT, S.DISCONTINUED],
        S.ACCEPTED: [S.ACTIVE, S.DISCONTINUED, S.TRANSFERRED],
        S.ACTIVE: [S.COMPLETED, S.ON_HOLD, S.DISCONTINUED, S.TRANSFERRED],
        S.ON_HOLD: [S.ACTIVE, S.DISCONTINUED, S.TRANSFERRED],
    },
    initial=S.DRAFT,
    terminal=(S.COMPLETED, S.DISCONTINUED, S.TRANSFERRED),
)
