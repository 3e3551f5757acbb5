"""Initial schema: accounts, profiles, sessions, goals, exercises

Revision ID: a1c4e2d9f7b3
Revises:
Create Date: 2025-12-01 10:12:31.004182
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e2d9f7b3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PROFILE_TABLES = {
    'therapist': [
        sa.Column('clinic_name', sa.String(), nullable=True),
        sa.Column('years_of_experience', sa.Integer(), nullable=True),
        sa.Column('qualification', sa.String(), nullable=True),
        sa.Column('therapist_profile', sa.Text(), nullable=True),
    ],
    'patient': [
        sa.Column('therapy_start_date', sa.Date(), nullable=True),
        sa.Column('preferred_contact_method', sa.String(), nullable=True),
        sa.Column('patient_profile', sa.Text(), nullable=True),
    ],
    'parent_carer': [
        sa.Column('relationship_to_patient', sa.String(), nullable=True),
    ],
}


def _timestamps(updated=True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True))
    return cols


def upgrade() -> None:
    # 1. local identity accounts
    op.create_table(
        'account',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_account_email', 'account', ['email'], unique=True)

    # 2. profile tables
    for table, extra in PROFILE_TABLES.items():
        op.create_table(
            table,
            sa.Column('user_id', sa.String(length=36), primary_key=True),
            sa.Column('account_id', sa.String(length=36), nullable=True, unique=True),
            sa.Column('username', sa.String(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('first_name', sa.String(), nullable=False),
            sa.Column('last_name', sa.String(), nullable=False),
            sa.Column('phone_number', sa.String(), nullable=True),
            sa.Column('date_of_birth', sa.Date(), nullable=True),
            sa.Column('user_role', sa.String(), nullable=False),
            *extra,
            *_timestamps(),
        )
        op.create_index(f'ix_{table}_username', table, ['username'], unique=True)
        op.create_index(f'ix_{table}_email', table, ['email'])

    # 3. sessions
    op.create_table(
        'session',
        sa.Column('session_id', sa.String(length=36), primary_key=True),
        sa.Column('patient_id', sa.String(length=36), sa.ForeignKey('patient.user_id', ondelete='SET NULL'), nullable=True),
        sa.Column('therapist_id', sa.String(length=36), sa.ForeignKey('therapist.user_id', ondelete='SET NULL'), nullable=True),
        sa.Column('session_date', sa.Date(), nullable=True),
        sa.Column('session_time', sa.Time(), nullable=True),
        sa.Column('session_type', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_session_therapist_date', 'session', ['therapist_id', 'session_date'])
    op.create_index('idx_session_patient_date', 'session', ['patient_id', 'session_date'])

    # 4. goals and exercises
    op.create_table(
        'goal',
        sa.Column('goal_id', sa.String(length=36), primary_key=True),
        sa.Column('session_id', sa.String(length=36), sa.ForeignKey('session.session_id', ondelete='CASCADE'), nullable=False),
        sa.Column('goal_description', sa.Text(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('target_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('priority', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_goal_session_id', 'goal', ['session_id'])

    op.create_table(
        'exercise',
        sa.Column('exercise_id', sa.String(length=36), primary_key=True),
        sa.Column('created_by', sa.String(length=36), sa.ForeignKey('therapist.user_id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('difficulty_level', sa.String(), nullable=True),
        sa.Column('recommended_frequency', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_exercise_created_by', 'exercise', ['created_by'])

    # 5. link tables
    op.create_table(
        'session_exercise',
        sa.Column('session_id', sa.String(length=36), sa.ForeignKey('session.session_id', ondelete='CASCADE'), primary_key=True),
        sa.Column('exercise_id', sa.String(length=36), sa.ForeignKey('exercise.exercise_id', ondelete='CASCADE'), primary_key=True),
        sa.Column('completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_table(
        'goal_exercise_set',
        sa.Column('goal_id', sa.String(length=36), sa.ForeignKey('goal.goal_id', ondelete='CASCADE'), primary_key=True),
        sa.Column('exercise_id', sa.String(length=36), sa.ForeignKey('exercise.exercise_id', ondelete='CASCADE'), primary_key=True),
        *_timestamps(updated=False),
    )

    # 6. one lookup over all roles; same shape as the hosted view
    op.execute(
        "CREATE VIEW user_directory AS "
        "SELECT user_id, account_id, username, email, 'therapist' AS user_role FROM therapist "
        "UNION ALL SELECT user_id, account_id, username, email, 'patient' AS user_role FROM patient "
        "UNION ALL SELECT user_id, account_id, username, email, 'parent_carer' AS user_role FROM parent_carer"
    )


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS user_directory")
    op.drop_table('goal_exercise_set')
    op.drop_table('session_exercise')
    op.drop_index('ix_exercise_created_by', table_name='exercise')
    op.drop_table('exercise')
    op.drop_index('ix_goal_session_id', table_name='goal')
    op.drop_table('goal')
    op.drop_index('idx_session_patient_date', table_name='session')
    op.drop_index('idx_session_therapist_date', table_name='session')
    op.drop_table('session')
    for table in reversed(list(PROFILE_TABLES)):
        op.drop_index(f'ix_{table}_email', table_name=table)
        op.drop_index(f'ix_{table}_username', table_name=table)
        op.drop_table(table)
    op.drop_index('ix_account_email', table_name='account')
    op.drop_table('account')
