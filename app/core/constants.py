from enum import Enum


SYSTEM_ACTOR = "system"

class RoleEnum(str, Enum):
    SUPER_DEV = "super_dev"
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    PROCTOR = "proctor"
    CANDIDATE = "candidate"

class QuestionTypeEnum(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"

OBJECTIVE_QUESTION_TYPES = frozenset({
    QuestionTypeEnum.SINGLE_CHOICE,
    QuestionTypeEnum.MULTIPLE_CHOICE,
    QuestionTypeEnum.TRUE_FALSE,
})

class AttemptStatusEnum(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    SUBMITTED = "submitted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    FORCE_SUBMITTED = "force_submitted"

LIVE_ATTEMPT_STATUSES = (
    AttemptStatusEnum.NOT_STARTED,
    AttemptStatusEnum.IN_PROGRESS,
    AttemptStatusEnum.PAUSED,
)

# The clock only runs while the candidate can answer.
RUNNING_ATTEMPT_STATUSES = (
    AttemptStatusEnum.NOT_STARTED,
    AttemptStatusEnum.IN_PROGRESS,
)

GRADABLE_ATTEMPT_STATUSES = (
    AttemptStatusEnum.SUBMITTED,
    AttemptStatusEnum.FORCE_SUBMITTED,
    AttemptStatusEnum.EXPIRED,
)

class ExpiryReasonEnum(str, Enum):
    TIMER_EXPIRED_WHILE_ACTIVE = "timer_expired_while_active"
    TIMER_EXPIRED_WHILE_DISCONNECTED = "timer_expired_while_disconnected"
    EXAM_WINDOW_CLOSED = "exam_window_closed"
    INACTIVITY = "inactivity"

class AttemptEventTypeEnum(str, Enum):
    STARTED = "started"
    ANSWER_SAVED = "answer_saved"
    NAVIGATED = "navigated"
    TAB_SWITCHED = "tab_switched"
    FULLSCREEN_EXITED = "fullscreen_exited"
    WINDOW_BLUR = "window_blur"
    WINDOW_FOCUS = "window_focus"
    COPY_ATTEMPT = "copy_attempt"
    PASTE_ATTEMPT = "paste_attempt"
    HEARTBEAT = "heartbeat"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"
    PAUSED = "paused"
    RESUMED = "resumed"
    ADMIN_RESUMED = "admin_resumed"
    TIME_ADDED = "time_added"
    FORCE_ENDED = "force_ended"
    CANCELLED = "cancelled"

class GradingStatusEnum(str, Enum):
    PENDING = "pending"
    AUTO_GRADED = "auto_graded"
    MANUAL_PENDING = "manual_pending"
    COMPLETED = "completed"

class AuditActionEnum(str, Enum):
    ATTEMPT_FORCE_SUBMITTED = "attempt.force_submitted"
    ATTEMPT_PAUSED = "attempt.paused"
    ATTEMPT_RESUMED = "attempt.resumed"
    ATTEMPT_TIME_ADDED = "attempt.time_added"
    ATTEMPT_CANCELLED = "attempt.cancelled"
    ATTEMPT_EXPIRED = "attempt.expired"
    ATTEMPT_NEW_ALLOWED = "attempt.new_allowed"
    ASSIGNMENT_CREATED = "assignment.created"
    ASSIGNMENT_REMOVED = "assignment.removed"
    GRADING_STARTED = "grading.started"
    GRADING_MANUAL_GRADE = "grading.manual_grade"
    GRADING_COMPLETED = "grading.completed"
    GRADING_REGRADED = "grading.regraded"
