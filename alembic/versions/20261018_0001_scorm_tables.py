"""scorm packages, content objects and attempts

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261018_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'scorm_packages',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('course_id', sa.String(length=64), nullable=True),
        sa.Column('uploaded_by', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('identifier', sa.String(length=255), nullable=True),
        sa.Column('schema_version', sa.String(length=64), nullable=False),
        sa.Column(
            'storage_root', sa.String(length=512), nullable=False,
            unique=True
        ),
        sa.Column(
            'status', sa.String(length=16), nullable=False,
            server_default='active'
        ),
        sa.Column('original_filename', sa.String(length=255), nullable=True),
        sa.Column(
            'archive_size', sa.BigInteger(), nullable=False,
            server_default='0'
        ),
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'ix_scorm_packages_tenant_id', 'scorm_packages', ['tenant_id']
    )
    op.create_index(
        'ix_scorm_packages_course_id', 'scorm_packages', ['course_id']
    )

    op.create_table(
        'scorm_content_objects',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'package_id', sa.Integer,
            sa.ForeignKey('scorm_packages.id', ondelete='CASCADE'),
            nullable=False
        ),
        sa.Column('identifier', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('ordinal', sa.Integer, nullable=False),
        sa.Column('entry_path', sa.String(length=1024), nullable=False),
        sa.Column('launch_parameters', sa.String(length=1024), nullable=True),
        sa.Column(
            'resource_identifier', sa.String(length=255), nullable=True
        ),
        sa.Column(
            'scorm_type', sa.String(length=16), nullable=False,
            server_default='sco'
        ),
        sa.Column('mastery_score', sa.Float(), nullable=True),
        sa.Column('prerequisites', sa.Text(), nullable=True),
        sa.UniqueConstraint(
            'package_id', 'ordinal', name='uq_scorm_content_objects_ordinal'
        ),
    )
    op.create_index(
        'ix_scorm_content_objects_package_id', 'scorm_content_objects',
        ['package_id']
    )

    op.create_table(
        'scorm_attempts',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('learner_id', sa.String(length=64), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column(
            'content_object_id', sa.Integer,
            sa.ForeignKey('scorm_content_objects.id'), nullable=False
        ),
        sa.Column('attempt_number', sa.Integer, nullable=False),
        sa.Column(
            'status', sa.String(length=16), nullable=False,
            server_default='not_attempted'
        ),
        sa.Column('score_raw', sa.Float(), nullable=True),
        sa.Column('score_min', sa.Float(), nullable=True),
        sa.Column('score_max', sa.Float(), nullable=True),
        sa.Column(
            'total_time_seconds', sa.Float(), nullable=False,
            server_default='0'
        ),
        sa.Column('session_time_seconds', sa.Float(), nullable=True),
        sa.Column('suspend_data', sa.Text(), nullable=True),
        sa.Column('lesson_location', sa.String(length=1000), nullable=True),
        sa.Column('terminal_history', sa.JSON(), nullable=False),
        sa.Column('recent_commit_digests', sa.JSON(), nullable=False),
        sa.Column('first_commit_at', sa.DateTime(), nullable=True),
        sa.Column('last_commit_at', sa.DateTime(), nullable=True),
        sa.Column('terminal_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            'learner_id', 'tenant_id', 'content_object_id', 'attempt_number',
            name='uq_scorm_attempts_key'
        ),
    )
    op.create_index(
        'ix_scorm_attempts_learner_id', 'scorm_attempts', ['learner_id']
    )
    op.create_index(
        'ix_scorm_attempts_tenant_id', 'scorm_attempts', ['tenant_id']
    )
    op.create_index(
        'ix_scorm_attempts_content_object_id', 'scorm_attempts',
        ['content_object_id']
    )


def downgrade() -> None:
    op.drop_index(
        'ix_scorm_attempts_content_object_id', table_name='scorm_attempts'
    )
    op.drop_index('ix_scorm_attempts_tenant_id', table_name='scorm_attempts')
    op.drop_index('ix_scorm_attempts_learner_id', table_name='scorm_attempts')
    op.drop_table('scorm_attempts')
    op.drop_index(
        'ix_scorm_content_objects_package_id',
        table_name='scorm_content_objects'
    )
    op.drop_table('scorm_content_objects')
    op.drop_index('ix_scorm_packages_course_id', table_name='scorm_packages')
    op.drop_index('ix_scorm_packages_tenant_id', table_name='scorm_packages')
    op.drop_table('scorm_packages')
