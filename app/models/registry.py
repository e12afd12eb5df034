# Import every model so relationship strings resolve and Base.metadata is complete.
from app.models.user import User  # noqa: F401
from app.models.exam import Exam  # noqa: F401
from app.models.question import Question  # noqa: F401
from app.models.exam_assignment import ExamAssignment  # noqa: F401
from app.models.attempt_override import AttemptOverride  # noqa: F401
from app.models.attempt import Attempt  # noqa: F401
from app.models.attempt_answer import AttemptAnswer  # noqa: F401
from app.models.attempt_event import AttemptEvent  # noqa: F401
from app.models.grading_session import GradingSession  # noqa: F401
from app.models.graded_answer import GradedAnswer  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
