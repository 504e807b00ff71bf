"""
Centros, usuarios, asignaciones y preferencias

Revision ID: b3f1c9a2d4e7
Revises:
Create Date: 2026-10-19 10:12:03.418220

Descripción:
Estructura inicial: usuarios con rol en texto, centros con slug único,
la asociación usuario-centro y las preferencias clave-valor por usuario
(donde se guarda el centro seleccionado).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'b3f1c9a2d4e7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'usuarios',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('nombre_usuario', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('nombre_completo', sa.String(length=200), nullable=True),
        sa.Column('contrasena', sa.String(), nullable=False),
        sa.Column('rol', sa.String(length=30), nullable=False),
        sa.Column('activo', sa.Boolean(), nullable=False),
        sa.Column('ultimo_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_usuarios')),
    )
    op.create_index(op.f('ix_usuarios_nombre_usuario'), 'usuarios', ['nombre_usuario'], unique=True)
    op.create_index(op.f('ix_usuarios_email'), 'usuarios', ['email'], unique=True)

    op.create_table(
        'centros',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('nombre', sa.String(length=150), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('es_default', sa.Boolean(), nullable=False),
        sa.Column('activo', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_centros')),
    )
    op.create_index(op.f('ix_centros_slug'), 'centros', ['slug'], unique=True)

    op.create_table(
        'usuarios_centros',
        sa.Column('usuario_id', sa.Uuid(), nullable=False),
        sa.Column('centro_id', sa.Integer(), nullable=False),
        sa.Column('asignado_en', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['usuario_id'], ['usuarios.id'], name=op.f('fk_usuarios_centros_usuario_id_usuarios'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['centro_id'], ['centros.id'], name=op.f('fk_usuarios_centros_centro_id_centros'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('usuario_id', 'centro_id', name='pk_usuarios_centros'),
    )

    op.create_table(
        'preferencias_usuario',
        sa.Column('usuario_id', sa.Uuid(), nullable=False),
        sa.Column('clave', sa.String(length=100), nullable=False),
        sa.Column('valor', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['usuario_id'], ['usuarios.id'], name=op.f('fk_preferencias_usuario_usuario_id_usuarios'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('usuario_id', 'clave', name='pk_preferencias_usuario'),
    )


def downgrade() -> None:
    op.drop_table('preferencias_usuario')
    op.drop_table('usuarios_centros')
    op.drop_index(op.f('ix_centros_slug'), table_name='centros')
    op.drop_table('centros')
    op.drop_index(op.f('ix_usuarios_email'), table_name='usuarios')
    op.drop_index(op.f('ix_usuarios_nombre_usuario'), table_name='usuarios')
    op.drop_table('usuarios')
