"""Baseline migration - teams, interventions, time slots, notifications, jobs

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates the tables backing intervention scheduling, time-slot negotiation
and notification fan-out.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create coordination tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Teams, users, memberships
    # ==========================================================================
    op.execute('''
        CREATE TABLE teams (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            token_version INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE memberships (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            team_id UUID NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
            role VARCHAR(50) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_memberships_team_role ON memberships(team_id, role)')

    op.execute('''
        CREATE TABLE lots (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            team_id UUID NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
            reference VARCHAR(100) NOT NULL,
            building_name VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_lot_reference UNIQUE (team_id, reference)
        )
    ''')

    # ==========================================================================
    # Interventions
    # ==========================================================================
    op.execute('''
        CREATE TABLE interventions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            reference VARCHAR(50),
            title VARCHAR(255) NOT NULL,
            description TEXT,
            status VARCHAR(30) NOT NULL DEFAULT 'requested',
            urgency VARCHAR(20) NOT NULL DEFAULT 'normal',
            team_id UUID REFERENCES teams(id) ON DELETE SET NULL,
            lot_id UUID REFERENCES lots(id) ON DELETE SET NULL,
            scheduled_date TIMESTAMPTZ,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_interventions_team_status ON interventions(team_id, status)')
    op.execute('CREATE INDEX idx_interventions_lot ON interventions(lot_id)')

    op.execute('''
        CREATE TABLE intervention_assignments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            intervention_id UUID NOT NULL REFERENCES interventions(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role VARCHAR(20) NOT NULL,
            is_primary BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_intervention_assignment UNIQUE (intervention_id, user_id, role)
        )
    ''')
    op.execute('CREATE INDEX idx_assignments_user ON intervention_assignments(user_id)')

    op.execute('''
        CREATE TABLE intervention_time_slots (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            intervention_id UUID NOT NULL REFERENCES interventions(id) ON DELETE CASCADE,
            slot_date DATE NOT NULL,
            start_time TIME NOT NULL,
            end_time TIME NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            proposed_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            notes TEXT,
            selected_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE INDEX idx_time_slots_intervention
        ON intervention_time_slots(intervention_id, status)
    ''')
    # At most one confirmed slot per intervention
    op.execute('''
        CREATE UNIQUE INDEX uq_time_slot_selected
        ON intervention_time_slots(intervention_id)
        WHERE status = 'selected'
    ''')

    op.execute('''
        CREATE TABLE intervention_comments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            intervention_id UUID NOT NULL REFERENCES interventions(id) ON DELETE CASCADE,
            author_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            body TEXT NOT NULL,
            is_internal BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE INDEX idx_comments_intervention
        ON intervention_comments(intervention_id, created_at)
    ''')

    # ==========================================================================
    # Notifications
    # ==========================================================================
    op.execute('''
        CREATE TABLE notifications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            team_id UUID REFERENCES teams(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            type VARCHAR(50) NOT NULL,
            title VARCHAR(255) NOT NULL,
            message TEXT,
            is_personal BOOLEAN NOT NULL DEFAULT false,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            entity_type VARCHAR(50),
            entity_id UUID,
            dedupe_key VARCHAR(255),
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_notif_user_unread ON notifications(user_id, read_at, created_at)')
    op.execute('CREATE INDEX idx_notif_team_user ON notifications(team_id, user_id, created_at)')
    op.execute('CREATE INDEX idx_notif_dedupe ON notifications(dedupe_key, created_at)')

    # ==========================================================================
    # Jobs
    # ==========================================================================
    op.execute('''
        CREATE TABLE jobs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            team_id UUID REFERENCES teams(id) ON DELETE CASCADE,
            job_type VARCHAR(50) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            run_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            status VARCHAR(30) NOT NULL DEFAULT 'pending',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            result JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at TIMESTAMPTZ,
            idempotency_key VARCHAR(255)
        )
    ''')
    op.execute('''
        CREATE INDEX idx_jobs_pending ON jobs(status, run_at)
        WHERE status = 'pending'
    ''')
    op.execute('CREATE INDEX idx_jobs_team ON jobs(team_id, created_at)')
    op.execute('''
        CREATE UNIQUE INDEX uq_job_idempotency ON jobs(idempotency_key)
        WHERE idempotency_key IS NOT NULL
    ''')


def downgrade() -> None:
    """Drop coordination tables."""
    for table in (
        'jobs',
        'notifications',
        'intervention_comments',
        'intervention_time_slots',
        'intervention_assignments',
        'interventions',
        'lots',
        'memberships',
        'users',
        'teams',
    ):
        op.execute(f'DROP TABLE IF EXISTS {table} CASCADE')
