"""create exam attempt, grading and audit tables

Revision ID: 5c1e0a7d9b42
Revises:
Create Date: 2026-10-19 09:12:44.518210

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5c1e0a7d9b42'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

LIVE_STATUS_SQL = "status IN ('NOT_STARTED', 'IN_PROGRESS', 'PAUSED')"

role_enum = sa.Enum('SUPER_DEV', 'ADMIN', 'INSTRUCTOR', 'PROCTOR', 'CANDIDATE', name='roleenum')
question_type_enum = sa.Enum(
    'SINGLE_CHOICE', 'MULTIPLE_CHOICE', 'TRUE_FALSE', 'SHORT_ANSWER', 'ESSAY', name='questiontypeenum'
)
attempt_status_enum = sa.Enum(
    'NOT_STARTED', 'IN_PROGRESS', 'PAUSED', 'SUBMITTED', 'EXPIRED', 'CANCELLED', 'FORCE_SUBMITTED',
    name='attemptstatusenum',
)
expiry_reason_enum = sa.Enum(
    'TIMER_EXPIRED_WHILE_ACTIVE', 'TIMER_EXPIRED_WHILE_DISCONNECTED', 'EXAM_WINDOW_CLOSED', 'INACTIVITY',
    name='expiryreasonenum',
)
event_type_enum = sa.Enum(
    'STARTED', 'ANSWER_SAVED', 'NAVIGATED', 'TAB_SWITCHED', 'FULLSCREEN_EXITED', 'WINDOW_BLUR', 'WINDOW_FOCUS',
    'COPY_ATTEMPT', 'PASTE_ATTEMPT', 'HEARTBEAT', 'SUBMITTED', 'TIMED_OUT', 'PAUSED', 'RESUMED', 'ADMIN_RESUMED',
    'TIME_ADDED', 'FORCE_ENDED', 'CANCELLED',
    name='attempteventtypeenum',
)
grading_status_enum = sa.Enum('PENDING', 'AUTO_GRADED', 'MANUAL_PENDING', 'COMPLETED', name='gradingstatusenum')
audit_action_enum = sa.Enum(
    'ATTEMPT_FORCE_SUBMITTED', 'ATTEMPT_PAUSED', 'ATTEMPT_RESUMED', 'ATTEMPT_TIME_ADDED', 'ATTEMPT_CANCELLED',
    'ATTEMPT_EXPIRED', 'ATTEMPT_NEW_ALLOWED', 'ASSIGNMENT_CREATED', 'ASSIGNMENT_REMOVED', 'GRADING_STARTED',
    'GRADING_MANUAL_GRADE', 'GRADING_COMPLETED', 'GRADING_REGRADED',
    name='auditactionenum',
)


def _audit_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.String(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('roll_no', sa.String(), nullable=True),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_blocked', sa.Boolean(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_full_name'), 'users', ['full_name'], unique=False)
    op.create_index(op.f('ix_users_roll_no'), 'users', ['roll_no'], unique=False)

    op.create_table(
        'exams',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('pass_score', sa.Numeric(10, 2), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('access_code', sa.String(), nullable=True),
        sa.Column('start_at', sa.DateTime(), nullable=True),
        sa.Column('end_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_exams_id'), 'exams', ['id'], unique=False)
    op.create_index(op.f('ix_exams_title'), 'exams', ['title'], unique=False)

    op.create_table(
        'questions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('exam_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('question_text', sa.String(), nullable=False),
        sa.Column('question_type', question_type_enum, nullable=False),
        sa.Column('points', sa.Numeric(10, 2), nullable=False),
        sa.Column('options', JSONType, nullable=True),
        sa.Column('correct_option_ids', JSONType, nullable=True),
        sa.Column('model_answer', sa.String(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_questions_id'), 'questions', ['id'], unique=False)
    op.create_index(op.f('ix_questions_exam_id'), 'questions', ['exam_id'], unique=False)

    op.create_table(
        'exam_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('exam_id', sa.Integer(), nullable=False),
        sa.Column('candidate_id', sa.Integer(), nullable=False),
        sa.Column('schedule_from', sa.DateTime(), nullable=True),
        sa.Column('schedule_to', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('assigned_by', sa.String(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['candidate_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_exam_assignments_id'), 'exam_assignments', ['id'], unique=False)
    op.create_index(op.f('ix_exam_assignments_exam_id'), 'exam_assignments', ['exam_id'], unique=False)
    op.create_index(op.f('ix_exam_assignments_candidate_id'), 'exam_assignments', ['candidate_id'], unique=False)
    op.create_index(
        'uq_exam_assignments_active_pair', 'exam_assignments', ['exam_id', 'candidate_id'],
        unique=True, postgresql_where=sa.text('is_active'), sqlite_where=sa.text('is_active = 1'),
    )

    op.create_table(
        'attempt_overrides',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('candidate_id', sa.Integer(), nullable=False),
        sa.Column('exam_id', sa.Integer(), nullable=False),
        sa.Column('granted_by', sa.String(), nullable=False),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('granted_at', sa.DateTime(), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=False),
        sa.Column('used_attempt_id', sa.Integer(), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['candidate_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_attempt_overrides_id'), 'attempt_overrides', ['id'], unique=False)
    op.create_index(op.f('ix_attempt_overrides_candidate_id'), 'attempt_overrides', ['candidate_id'], unique=False)
    op.create_index(op.f('ix_attempt_overrides_exam_id'), 'attempt_overrides', ['exam_id'], unique=False)

    op.create_table(
        'attempts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('candidate_id', sa.Integer(), nullable=False),
        sa.Column('exam_id', sa.Integer(), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('status', attempt_status_enum, nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('base_duration_seconds', sa.Integer(), nullable=False),
        sa.Column('extra_time_seconds', sa.Integer(), nullable=False),
        sa.Column('consumed_seconds', sa.Integer(), nullable=False),
        sa.Column('running_since', sa.DateTime(), nullable=True),
        sa.Column('resume_count', sa.Integer(), nullable=False),
        sa.Column('paused_by', sa.String(), nullable=True),
        sa.Column('paused_at', sa.DateTime(), nullable=True),
        sa.Column('expiry_reason', expiry_reason_enum, nullable=True),
        sa.Column('force_submitted_by', sa.String(), nullable=True),
        sa.Column('force_submitted_at', sa.DateTime(), nullable=True),
        sa.Column('override_id', sa.Integer(), nullable=True),
        sa.Column('total_score', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_passed', sa.Boolean(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('device_info', sa.String(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['candidate_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ),
        sa.ForeignKeyConstraint(['override_id'], ['attempt_overrides.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_attempts_id'), 'attempts', ['id'], unique=False)
    op.create_index(op.f('ix_attempts_candidate_id'), 'attempts', ['candidate_id'], unique=False)
    op.create_index(op.f('ix_attempts_exam_id'), 'attempts', ['exam_id'], unique=False)
    op.create_index(op.f('ix_attempts_status'), 'attempts', ['status'], unique=False)
    op.create_index(
        'uq_attempts_live_candidate_exam', 'attempts', ['candidate_id', 'exam_id'],
        unique=True, postgresql_where=sa.text(LIVE_STATUS_SQL), sqlite_where=sa.text(LIVE_STATUS_SQL),
    )

    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attempt_id', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('selected_option_ids', JSONType, nullable=True),
        sa.Column('text_answer', sa.String(), nullable=True),
        sa.Column('answered_at', sa.DateTime(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id'], ),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_answers_attempt_question')
    )
    op.create_index(op.f('ix_attempt_answers_id'), 'attempt_answers', ['id'], unique=False)
    op.create_index(op.f('ix_attempt_answers_attempt_id'), 'attempt_answers', ['attempt_id'], unique=False)
    op.create_index(op.f('ix_attempt_answers_question_id'), 'attempt_answers', ['question_id'], unique=False)

    op.create_table(
        'attempt_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attempt_id', sa.Integer(), nullable=False),
        sa.Column('event_type', event_type_enum, nullable=False),
        sa.Column('metadata', JSONType, nullable=True),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_attempt_events_id'), 'attempt_events', ['id'], unique=False)
    op.create_index(op.f('ix_attempt_events_attempt_id'), 'attempt_events', ['attempt_id'], unique=False)
    op.create_index(op.f('ix_attempt_events_event_type'), 'attempt_events', ['event_type'], unique=False)

    op.create_table(
        'grading_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attempt_id', sa.Integer(), nullable=False),
        sa.Column('status', grading_status_enum, nullable=False),
        sa.Column('total_score', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_passed', sa.Boolean(), nullable=True),
        sa.Column('graded_by', sa.String(), nullable=True),
        sa.Column('graded_at', sa.DateTime(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_grading_sessions_id'), 'grading_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_grading_sessions_attempt_id'), 'grading_sessions', ['attempt_id'], unique=True)
    op.create_index(op.f('ix_grading_sessions_status'), 'grading_sessions', ['status'], unique=False)

    op.create_table(
        'graded_answers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('grading_session_id', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('score', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_points', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('is_manually_graded', sa.Boolean(), nullable=False),
        sa.Column('grader_comment', sa.String(), nullable=True),
        sa.Column('graded_by', sa.String(), nullable=True),
        sa.Column('graded_at', sa.DateTime(), nullable=True),
        sa.Column('selected_option_ids', JSONType, nullable=True),
        sa.Column('text_answer', sa.String(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['grading_session_id'], ['grading_sessions.id'], ),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('grading_session_id', 'question_id', name='uq_graded_answers_session_question')
    )
    op.create_index(op.f('ix_graded_answers_id'), 'graded_answers', ['id'], unique=False)
    op.create_index(op.f('ix_graded_answers_grading_session_id'), 'graded_answers', ['grading_session_id'], unique=False)
    op.create_index(op.f('ix_graded_answers_question_id'), 'graded_answers', ['question_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', audit_action_enum, nullable=False),
        sa.Column('actor_id', sa.String(), nullable=False),
        sa.Column('candidate_id', sa.Integer(), nullable=True),
        sa.Column('exam_id', sa.Integer(), nullable=True),
        sa.Column('attempt_id', sa.Integer(), nullable=True),
        sa.Column('previous_attempt_id', sa.Integer(), nullable=True),
        sa.Column('entity_name', sa.String(), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('details', JSONType, nullable=True),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_actor_id'), 'audit_logs', ['actor_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_candidate_id'), 'audit_logs', ['candidate_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_exam_id'), 'audit_logs', ['exam_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_attempt_id'), 'audit_logs', ['attempt_id'], unique=False)


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('graded_answers')
    op.drop_table('grading_sessions')
    op.drop_table('attempt_events')
    op.drop_table('attempt_answers')
    op.drop_index('uq_attempts_live_candidate_exam', table_name='attempts')
    op.drop_table('attempts')
    op.drop_table('attempt_overrides')
    op.drop_index('uq_exam_assignments_active_pair', table_name='exam_assignments')
    op.drop_table('exam_assignments')
    op.drop_table('questions')
    op.drop_table('exams')
    op.drop_table('users')
    bind = op.get_bind()
    for enum in (
        audit_action_enum, grading_status_enum, event_type_enum, expiry_reason_enum,
        attempt_status_enum, question_type_enum, role_enum,
    ):
        enum.drop(bind, checkfirst=True)
