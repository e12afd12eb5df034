from app.core.constants import RoleEnum
from app.core.exceptions import UnauthorizedException
from app.models.attempt import Attempt
from app.schemas.user import UserContext


class PermissionHelper:
    OPERATOR_ROLES = frozenset({RoleEnum.SUPER_DEV, RoleEnum.ADMIN})
    GRADER_ROLES = OPERATOR_ROLES | {RoleEnum.INSTRUCTOR}
    MONITOR_ROLES = OPERATOR_ROLES | {RoleEnum.PROCTOR}

    @staticmethod
    def is_operator(context: UserContext) -> bool:
        return context.role in PermissionHelper.OPERATOR_ROLES

    @staticmethod
    def is_grader(context: UserContext) -> bool:
        return context.role in PermissionHelper.GRADER_ROLES

    @staticmethod
    def is_monitor(context: UserContext) -> bool:
        return context.role in PermissionHelper.MONITOR_ROLES

    @staticmethod
    def is_candidate(context: UserContext) -> bool:
        return context.role == RoleEnum.CANDIDATE

    @staticmethod
    def owns_attempt(context: UserContext, attempt: Attempt) -> bool:
        return attempt.candidate_id == context.user.id

    @staticmethod
    def require_operator(context: UserContext):
        if not PermissionHelper.is_operator(context):
            raise UnauthorizedException("Only administrators can control attempts.")

    @staticmethod
    def require_grader(context: UserContext):
        if not PermissionHelper.is_grader(context):
            raise UnauthorizedException("You do not have permission to grade exams.")

    @staticmethod
    def require_attempt_owner(context: UserContext, attempt: Attempt):
        if not PermissionHelper.owns_attempt(context, attempt):
            raise UnauthorizedException("You can only act on your own attempts.")

    @staticmethod
    def require_attempt_view(context: UserContext, attempt: Attempt):
        if PermissionHelper.owns_attempt(context, attempt):
            return
        if PermissionHelper.is_monitor(context) or PermissionHelper.is_grader(context):
            return
        raise UnauthorizedException("You do not have permission to view this attempt.")
