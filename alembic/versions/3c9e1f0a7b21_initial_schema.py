"""initial schema

Revision ID: 3c9e1f0a7b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c9e1f0a7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create developers, repositories, commits, pull_requests and metrics."""
    op.create_table('developers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('github_username', sa.String(length=100), nullable=True),
        sa.Column('username_provisional', sa.Boolean(), nullable=False),
        sa.Column('display_name', sa.String(length=200), nullable=True),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_developers_github_username', 'developers', ['github_username'])

    op.create_table('repositories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(length=100), nullable=False),
        sa.Column('platform', sa.Enum('GITHUB', 'GITLAB', 'AZURE', name='platformtype'), nullable=False),
        sa.Column('external_id', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(length=500), nullable=True),
        sa.Column('default_branch', sa.String(length=200), nullable=True),
        sa.Column('is_private', sa.Boolean(), nullable=False),
        sa.Column('is_fork', sa.Boolean(), nullable=False),
        sa.Column('stargazers_count', sa.Integer(), nullable=False),
        sa.Column('forks_count', sa.Integer(), nullable=False),
        sa.Column('open_issues_count', sa.Integer(), nullable=False),
        sa.Column('language', sa.String(length=100), nullable=True),
        sa.Column('pushed_at', sa.DateTime(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', 'platform', name='uq_repo_external_platform')
    )
    op.create_index('ix_repositories_account_id', 'repositories', ['account_id'])

    op.create_table('repository_contributors',
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('developer_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['developer_id'], ['developers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('repository_id', 'developer_id')
    )

    op.create_table('commits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('developer_id', sa.Integer(), nullable=False),
        sa.Column('sha', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('lines_added', sa.Integer(), nullable=False),
        sa.Column('lines_removed', sa.Integer(), nullable=False),
        sa.Column('files_changed', sa.Integer(), nullable=False),
        sa.Column('committed_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['developer_id'], ['developers.id']),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sha', 'repository_id', name='uq_commit_sha_repo')
    )
    op.create_index('ix_commits_developer_id', 'commits', ['developer_id'])
    op.create_index('ix_commits_committed_at', 'commits', ['committed_at'])

    op.create_table('pull_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('OPEN', 'CLOSED', 'MERGED', 'DRAFT', name='pullrequeststatus'), nullable=False),
        sa.Column('opened_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('merged_at', sa.DateTime(), nullable=True),
        sa.Column('changed_files', sa.Integer(), nullable=False),
        sa.Column('lines_added', sa.Integer(), nullable=False),
        sa.Column('lines_removed', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['author_id'], ['developers.id']),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number', 'repository_id', name='uq_pr_number_repo')
    )
    op.create_index('ix_pull_requests_author_id', 'pull_requests', ['author_id'])
    op.create_index('ix_pull_requests_opened_at', 'pull_requests', ['opened_at'])

    op.create_table('metrics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('developer_id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=True),
        sa.Column('metric_type', sa.Enum('COMMITS', 'PULL_REQUESTS', 'CODE_REVIEWS', 'ISSUES_CLOSED', 'LINES_ADDED', 'LINES_REMOVED', 'ACTIVE_DAYS', 'AVERAGE_RESPONSE_TIME', name='metrictype'), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('metadata_json', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['developer_id'], ['developers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('developer_id', 'metric_type', name='uq_metric_developer_type')
    )


def downgrade() -> None:
    """Drop every table created by upgrade."""
    op.drop_table('metrics')
    op.drop_index('ix_pull_requests_opened_at', table_name='pull_requests')
    op.drop_index('ix_pull_requests_author_id', table_name='pull_requests')
    op.drop_table('pull_requests')
    op.drop_index('ix_commits_committed_at', table_name='commits')
    op.drop_index('ix_commits_developer_id', table_name='commits')
    op.drop_table('commits')
    op.drop_table('repository_contributors')
    op.drop_index('ix_repositories_account_id', table_name='repositories')
    op.drop_table('repositories')
    op.drop_index('ix_developers_github_username', table_name='developers')
    op.drop_table('developers')
    # Drop the enum types
    sa.Enum(name='metrictype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='pullrequeststatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='platformtype').drop(op.get_bind(), checkfirst=True)
