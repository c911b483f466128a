from __future__ import annotations

TICKET_STATUS_OPEN = "open"
TICKET_STATUS_CLOSED = "closed"

TICKET_STATUSES = (TICKET_STATUS_OPEN, TICKET_STATUS_CLOSED)

JOB_STATUS_PENDING = "pending"
JOB_STATUS_RUNNING = "running"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

CATEGORY_SELECT_ID = "ticket_category_select"
TOPIC_MODAL_ID = "ticket_topic_modal"
TOPIC_INPUT_ID = "topic_input"

TRANSCRIPT_PAGE_SIZE = 100
CHANNEL_NAME_MAX_LENGTH = 100
SELECT_OPTION_LIMIT = 25

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Unban Aanvraag Anti Cheat",
    "Unban Aanvraag Discord",
    "Unban Aanvraag Ingame",
    "Klachten Over Spelers",
    "Klachten Over Staff",
    "Ingame Refunds",
    "Pc Checks",
    "Overige Vragen",
    "Content Creator Coördinator",
    "Hulpdiensten Coördinator",
    "Onderwereld Coördinator",
    "Development",
    "Car Development",
    "Headstaff",
    "Bestuur",
    "Staff Sollicitatie's",
    "Donaties",
)

DEFAULT_FALLBACK_CATEGORY = "Overige Vragen"
