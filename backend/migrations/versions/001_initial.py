"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Test Series Platform:
- tags: Reference-counted question tags
- questions: Multiple-choice questions with keyed options
- question_tags: Question/tag association
- tests: Timed tests with scoring configuration
- test_questions: Ordered test membership
- attempts: Timed attempts with answers, score snapshot and version

Also creates the partial unique index allowing one active attempt per
user and test.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Tags Table ────────────────────────────────────────────
    op.create_table(
        'tags',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tag_name', sa.Text(), nullable=False),
        sa.Column('name_key', sa.String(255), nullable=False, unique=True),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('count >= 0', name='ck_tags_count_non_negative'),
    )

    # ── Questions Table ───────────────────────────────────────
    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('options', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('correct_answer', sa.Integer(), nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=True),
    )

    op.create_table(
        'question_tags',
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('questions.id'), primary_key=True),
        sa.Column('tag_id', sa.String(36),
                  sa.ForeignKey('tags.id'), primary_key=True),
    )

    # ── Tests Table ───────────────────────────────────────────
    op.create_table(
        'tests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_name', sa.Text(), nullable=False),
        sa.Column('timing', sa.Integer(), nullable=False),
        sa.Column('positive_scoring', sa.Float(), nullable=False),
        sa.Column('negative_scoring', sa.Float(), nullable=False, server_default='0'),
        sa.Column('cut_off', sa.Float(), nullable=False, server_default='35'),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('has_history', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('cut_off >= 0 AND cut_off <= 100', name='ck_tests_cut_off_range'),
        sa.CheckConstraint('timing > 0', name='ck_tests_timing_positive'),
    )

    op.create_table(
        'test_questions',
        sa.Column('test_id', sa.String(36),
                  sa.ForeignKey('tests.id'), primary_key=True),
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('questions.id'), primary_key=True),
        sa.Column('position', sa.Integer(), nullable=False),
    )

    # ── Attempts Table ────────────────────────────────────────
    op.create_table(
        'attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36),
                  sa.ForeignKey('tests.id'), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('answers', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('submission_time', sa.DateTime(), nullable=True),
        sa.Column('total_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('max_score', sa.Float(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
    )

    # Indexes for common query patterns on attempts
    op.create_index('ix_attempts_user_test', 'attempts', ['user_id', 'test_id'])
    op.create_index('ix_attempts_start_time', 'attempts', ['start_time'])
    op.create_index(
        'uq_attempts_one_active', 'attempts', ['user_id', 'test_id'],
        unique=True,
        postgresql_where=sa.text('submission_time IS NULL'),
        sqlite_where=sa.text('submission_time IS NULL'),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('uq_attempts_one_active', table_name='attempts')
    op.drop_index('ix_attempts_start_time', table_name='attempts')
    op.drop_index('ix_attempts_user_test', table_name='attempts')
    op.drop_table('attempts')
    op.drop_table('test_questions')
    op.drop_table('tests')
    op.drop_table('question_tags')
    op.drop_table('questions')
    op.drop_table('tags')
