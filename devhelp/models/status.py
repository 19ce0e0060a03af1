# devhelp/models/status.py
# Status strings are compared verbatim against persisted data; do not rename.

# --- help_requests.status ---
REQUEST_OPEN = "open"  # legacy rows only; new requests start as pending
REQUEST_PENDING = "pending"
REQUEST_MATCHING = "matching"
REQUEST_APPROVED = "approved"
REQUEST_SCHEDULED = "scheduled"
REQUEST_IN_PROGRESS = "in-progress"
REQUEST_COMPLETED = "completed"
REQUEST_CANCELLED = "cancelled"
REQUEST_CANCELLED_BY_CLIENT = "cancelled_by_client"

REQUEST_STATUSES = frozenset({
    REQUEST_OPEN,
    REQUEST_PENDING,
    REQUEST_MATCHING,
    REQUEST_APPROVED,
    REQUEST_SCHEDULED,
    REQUEST_IN_PROGRESS,
    REQUEST_COMPLETED,
    REQUEST_CANCELLED,
    REQUEST_CANCELLED_BY_CLIENT,
})

OPEN_FOR_APPLICATIONS = frozenset({REQUEST_OPEN, REQUEST_PENDING, REQUEST_MATCHING})
TERMINAL_REQUEST_STATUSES = frozenset({
    REQUEST_COMPLETED,
    REQUEST_CANCELLED,
    REQUEST_CANCELLED_BY_CLIENT,
})

# Transitions reachable through set_status. "approved" is entered only by
# approving an application; cancellation goes through cancel().
REQUEST_TRANSITIONS = {
    REQUEST_OPEN: {REQUEST_MATCHING},
    REQUEST_PENDING: {REQUEST_MATCHING},
    REQUEST_MATCHING: {REQUEST_PENDING},
    REQUEST_APPROVED: {REQUEST_SCHEDULED, REQUEST_IN_PROGRESS},
    REQUEST_SCHEDULED: {REQUEST_IN_PROGRESS},
    REQUEST_IN_PROGRESS: {REQUEST_COMPLETED},
}

# --- help_request_matches.status ---
APP_PENDING = "pending"
APP_APPROVED = "approved_by_client"
APP_REJECTED = "rejected_by_client"
APP_COMPLETED = "completed"
APP_CANCELLED = "cancelled"

APPLICATION_STATUSES = frozenset({
    APP_PENDING,
    APP_APPROVED,
    APP_REJECTED,
    APP_COMPLETED,
    APP_CANCELLED,
})

# --- notifications ---
ENTITY_APPLICATION = "application"
ENTITY_APPLICATION_STATUS = "application_status"
ENTITY_MESSAGE = "message"

NOTIFY_NEW_APPLICATION = "new_application"
NOTIFY_APPLICATION_APPROVED = "application_approved"
NOTIFY_APPLICATION_REJECTED = "application_rejected"
NOTIFY_NEW_MESSAGE = "new_message"

# --- request form vocabularies ---
URGENCY_LEVELS = ("low", "medium", "high", "critical")

BUDGET_RANGES = (
    "Under $50",
    "$50 - $100",
    "$100 - $200",
    "$200 - $500",
    "$500+",
)

TECHNICAL_AREAS = (
    "Frontend",
    "Backend",
    "Full Stack",
    "Mobile Development",
    "DevOps",
    "Database",
    "API Integration",
    "Security",
    "Performance Optimization",
    "Debugging",
    "Testing",
    "UI/UX",
    "AI/ML Integration",
    "Cloud Services",
    "Code Review",
)

COMMUNICATION_CHANNELS = ("Chat", "Voice Call", "Video Call", "Screen Sharing")
