"""Initial migration - create exam delivery tables

Revision ID: 0_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Create enums ──────────────────────────────────────────────────
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE role_enum AS ENUM ('STUDENT', 'INSTRUCTOR', 'ADMIN');
        EXCEPTION WHEN duplicate_object THEN null;
        END $$;
    """)
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE question_type_enum AS ENUM ('MULTIPLE_CHOICE', 'TRUE_FALSE', 'ESSAY', 'SHORT_ANSWER');
        EXCEPTION WHEN duplicate_object THEN null;
        END $$;
    """)
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE attempt_status_enum AS ENUM ('IN_PROGRESS', 'SUBMITTED', 'GRADED');
        EXCEPTION WHEN duplicate_object THEN null;
        END $$;
    """)

    role_enum = postgresql.ENUM(name='role_enum', create_type=False)
    question_type_enum = postgresql.ENUM(name='question_type_enum', create_type=False)
    attempt_status_enum = postgresql.ENUM(name='attempt_status_enum', create_type=False)

    # ── users table ───────────────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', role_enum, nullable=False, server_default='STUDENT'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ── courses table ─────────────────────────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('owner_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # ── exams table ───────────────────────────────────────────────────
    op.create_table(
        'exams',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('course_id', sa.UUID(), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('exam_type', sa.String(50), nullable=False, server_default='quiz'),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_score', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('passing_score', sa.Integer(), nullable=True),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('show_result', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_exams_is_published', 'exams', ['is_published'])

    # ── questions table ───────────────────────────────────────────────
    op.create_table(
        'questions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('exam_id', sa.UUID(), sa.ForeignKey('exams.id'), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('question_type', question_type_enum, nullable=False, server_default='MULTIPLE_CHOICE'),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_questions_exam_id', 'questions', ['exam_id'])

    # ── exam_attempts table ───────────────────────────────────────────
    op.create_table(
        'exam_attempts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('exam_id', sa.UUID(), sa.ForeignKey('exams.id'), nullable=False),
        sa.Column('student_id', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', attempt_status_enum, nullable=False, server_default='IN_PROGRESS'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_exam_attempts_exam_id', 'exam_attempts', ['exam_id'])
    op.create_index('ix_exam_attempts_student_id', 'exam_attempts', ['student_id'])

    # ── student_answers table ─────────────────────────────────────────
    op.create_table(
        'student_answers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('attempt_id', sa.UUID(), sa.ForeignKey('exam_attempts.id'), nullable=False),
        sa.Column('question_id', sa.UUID(), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('answer', sa.Text(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('points_earned', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_question'),
    )


def downgrade() -> None:
    # Drop all tables in reverse order
    op.drop_table('student_answers')
    op.drop_table('exam_attempts')
    op.drop_table('questions')
    op.drop_table('exams')
    op.drop_table('courses')
    op.drop_table('users')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS attempt_status_enum CASCADE")
    op.execute("DROP TYPE IF EXISTS question_type_enum CASCADE")
    op.execute("DROP TYPE IF EXISTS role_enum CASCADE")
