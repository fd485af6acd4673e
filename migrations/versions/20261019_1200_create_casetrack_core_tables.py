"""create_casetrack_core_tables

Revision ID: 3c1e5a7b9d20
Revises:
Create Date: 2026-10-19 12:00:00.000000

Esquema base de la capa de datos:
- Roles, permisos y tabla puente
- Usuarios (actores)
- Tablas de referencia: aplicaciones, orígenes, prioridades
- Casos, tareas y registros de tiempo
- Registro de auditoría append-only
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c1e5a7b9d20'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Roles y permisos
    op.create_table(
        'roles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='roles_name_key'),
    )
    op.create_table(
        'permissions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('module', sa.String(length=50), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='permissions_name_key'),
    )
    op.create_index('ix_permissions_module', 'permissions', ['module'])
    op.create_table(
        'role_permissions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('role_id', sa.String(length=36), nullable=False),
        sa.Column('permission_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], name='role_permissions_role_id_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['permission_id'], ['permissions.id'], name='role_permissions_permission_id_fkey', ondelete='CASCADE'
        ),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])

    # Usuarios
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role_id', sa.String(length=36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], name='users_role_id_fkey'),
        sa.UniqueConstraint('email', name='users_email_key'),
    )
    op.create_index('ix_users_role_id', 'users', ['role_id'])

    # Referencia
    for table in ('applications', 'origins'):
        op.create_table(
            table,
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
    op.create_table(
        'priorities',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('color', sa.String(length=20), nullable=False, server_default='#1976d2'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    # Casos
    op.create_table(
        'cases',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('case_number', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('application_id', sa.String(length=36), nullable=True),
        sa.Column('origin_id', sa.String(length=36), nullable=True),
        sa.Column('priority_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDIENTE'),
        sa.Column('complexity', sa.String(length=10), nullable=False, server_default='BAJO'),
        sa.Column('classification_score', sa.Integer(), nullable=True),
        sa.Column('classification', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='cases_user_id_fkey'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], name='cases_application_id_fkey'),
        sa.ForeignKeyConstraint(['origin_id'], ['origins.id'], name='cases_origin_id_fkey'),
        sa.ForeignKeyConstraint(['priority_id'], ['priorities.id'], name='cases_priority_id_fkey'),
        sa.UniqueConstraint('case_number', name='cases_case_number_key'),
    )
    op.create_index('ix_cases_user_id', 'cases', ['user_id'])

    # Tareas
    op.create_table(
        'todos',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority_id', sa.String(length=36), nullable=False),
        sa.Column('assigned_to', sa.String(length=36), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=False),
        sa.Column('case_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['priority_id'], ['priorities.id'], name='todos_priority_id_fkey'),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], name='todos_assigned_to_fkey'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='todos_created_by_fkey'),
        sa.ForeignKeyConstraint(['case_id'], ['cases.id'], name='todos_case_id_fkey'),
    )
    op.create_index('ix_todos_assigned_to', 'todos', ['assigned_to'])
    op.create_index('ix_todos_created_by', 'todos', ['created_by'])
    op.create_index('ix_todos_case_id', 'todos', ['case_id'])

    # Registros de tiempo
    op.create_table(
        'time_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('case_id', sa.String(length=36), nullable=True),
        sa.Column('todo_id', sa.String(length=36), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='time_entries_user_id_fkey'),
        sa.ForeignKeyConstraint(['case_id'], ['cases.id'], name='time_entries_case_id_fkey'),
        sa.ForeignKeyConstraint(['todo_id'], ['todos.id'], name='time_entries_todo_id_fkey'),
        sa.CheckConstraint(
            '(case_id IS NOT NULL AND todo_id IS NULL) OR (case_id IS NULL AND todo_id IS NOT NULL)',
            name='ck_time_entries_single_parent',
        ),
    )
    op.create_index('ix_time_entries_user_id', 'time_entries', ['user_id'])
    op.create_index('ix_time_entries_case_id', 'time_entries', ['case_id'])
    op.create_index('ix_time_entries_todo_id', 'time_entries', ['todo_id'])

    # Auditoría (user_id sin FK: la entrada sobrevive al actor)
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('table_name', sa.String(length=100), nullable=False),
        sa.Column('operation', sa.String(length=10), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('integrity_hash', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_table_name', 'audit_logs', ['table_name'])
    op.create_index('ix_audit_logs_operation', 'audit_logs', ['operation'])
    op.create_index('ix_audit_logs_record_id', 'audit_logs', ['record_id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('time_entries')
    op.drop_table('todos')
    op.drop_table('cases')
    op.drop_table('priorities')
    op.drop_table('origins')
    op.drop_table('applications')
    op.drop_table('users')
    op.drop_table('role_permissions')
    op.drop_table('permissions')
    op.drop_table('roles')
