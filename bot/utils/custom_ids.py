from __future__ import annotations

import re
from enum import Enum

from core.errors import ValidationError


class TicketAction(str, Enum):
    CLAIM = "claim"
    UNCLAIM = "unclaim"
    CLOSE = "close"
    TRANSCRIPT = "transcript"


ACTION_CUSTOM_ID_TEMPLATE = (
    r"ticket:(?P<action>" + "|".join(action.value for action in TicketAction) + r"):(?P<ticket_id>[0-9]+)"
)
_ACTION_CUSTOM_ID = re.compile(rf"^{ACTION_CUSTOM_ID_TEMPLATE}$")


def build_action_custom_id(action: TicketAction, ticket_id: int) -> str:
    return f"ticket:{action.value}:{ticket_id}"


def parse_action_custom_id(custom_id: str) -> tuple[TicketAction, int]:
    match = _ACTION_CUSTOM_ID.match(custom_id)
    if match is None:
        raise ValidationError("error.invalid_action")
    return TicketAction(match.group("action")), int(match.group("ticket_id"))
