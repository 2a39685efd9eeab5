"""create profiles, matches, swipes and match_preferences tables

Revision ID: 4e2b7c91d0a3
Revises:
Create Date: 2026-10-18 09:12:44.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4e2b7c91d0a3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UTC_NOW = sa.text("(CURRENT_TIMESTAMP AT TIME ZONE 'UTC')")


def upgrade() -> None:
    # Read model of marketplace profiles; kind-specific fields live in data
    op.create_table(
        'profiles',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email_verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('verification_level', sa.String(50), nullable=False, server_default='None'),
        sa.Column('subscription_tier', sa.String(20), nullable=False, server_default='Basic'),
        # Lower-cased industries (entrepreneur) or areas of interest (funder)
        sa.Column('industry_keys', postgresql.ARRAY(sa.Text), nullable=False, server_default='{}'),
        sa.Column('data', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=UTC_NOW),
        sa.Column('last_active_at', sa.TIMESTAMP, nullable=True),
        sa.CheckConstraint("kind IN ('entrepreneur', 'funder')", name='profiles_kind_check'),
    )
    op.create_index('profiles_kind_verified_idx', 'profiles', ['kind', 'email_verified'])
    op.execute("CREATE INDEX profiles_industry_keys_idx ON profiles USING gin (industry_keys)")

    op.create_table(
        'matches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_a_id', sa.String(255), nullable=False),
        sa.Column('user_b_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=UTC_NOW),
        sa.Column('last_activity_at', sa.TIMESTAMP, nullable=False, server_default=UTC_NOW),
        sa.Column('resolved_at', sa.TIMESTAMP, nullable=True),
        sa.Column('conversation_id', sa.String(255), nullable=True),
        # Engagement, maintained by the conversation service
        sa.Column('message_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_message_at', sa.TIMESTAMP, nullable=True),
        # Pair is stored sorted so it is the uniqueness key
        sa.CheckConstraint('user_a_id < user_b_id', name='matches_pair_sorted_check'),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'expired')",
            name='matches_status_check'
        ),
        sa.UniqueConstraint('user_a_id', 'user_b_id', name='matches_pair_unique'),
    )
    op.create_index('matches_user_b_idx', 'matches', ['user_b_id'])
    op.create_index('matches_status_activity_idx', 'matches', ['status', 'last_activity_at'])

    op.create_table(
        'swipes',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('actor_id', sa.String(255), nullable=False),
        sa.Column('target_id', sa.String(255), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=UTC_NOW),
        sa.CheckConstraint("direction IN ('left', 'right')", name='swipes_direction_check'),
        sa.UniqueConstraint('actor_id', 'target_id', name='swipes_actor_target_unique'),
    )

    op.create_table(
        'match_preferences',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('preferences', postgresql.JSONB, nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=UTC_NOW),
    )


def downgrade() -> None:
    op.drop_table('match_preferences')
    op.drop_table('swipes')
    op.drop_index('matches_status_activity_idx')
    op.drop_index('matches_user_b_idx')
    op.drop_table('matches')
    op.execute("DROP INDEX IF EXISTS profiles_industry_keys_idx")
    op.drop_index('profiles_kind_verified_idx')
    op.drop_table('profiles')
