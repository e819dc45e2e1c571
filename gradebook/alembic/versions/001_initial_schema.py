"""Initial gradebook schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create assessments table
    op.create_table(
        'assessments',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('course_id', sa.String(255), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('assessment_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('passing_score', sa.Float(), nullable=True),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('time_limit_minutes', sa.Integer(), nullable=True),
        sa.Column('available_from', sa.DateTime(), nullable=True),
        sa.Column('available_until', sa.DateTime(), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_points', sa.Float(), nullable=False, server_default='0'),
        sa.Column('weight', sa.Float(), nullable=False, server_default='1'),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_assessments')
    )
    op.create_index('ix_assessments_course_id', 'assessments', ['course_id'])

    # Create assessment_questions table
    op.create_table(
        'assessment_questions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('assessment_id', sa.String(36), nullable=False),
        sa.Column('question_type', sa.String(50), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_data', sa.JSON(), nullable=False),
        sa.Column('points', sa.Float(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('difficulty', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_assessment_questions'),
        sa.ForeignKeyConstraint(
            ['assessment_id'], ['assessments.id'],
            name='fk_assessment_questions_assessment_id_assessments', ondelete='CASCADE'
        ),
        sa.UniqueConstraint('assessment_id', 'order_index', name='uq_assessment_questions_order')
    )
    op.create_index('ix_assessment_questions_assessment_id', 'assessment_questions', ['assessment_id'])

    # Create assessment_attempts table
    op.create_table(
        'assessment_attempts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('assessment_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('graded_at', sa.DateTime(), nullable=True),
        sa.Column('time_limit_minutes', sa.Integer(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('total_possible', sa.Float(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('graded_by', sa.String(255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_assessment_attempts'),
        sa.ForeignKeyConstraint(
            ['assessment_id'], ['assessments.id'],
            name='fk_assessment_attempts_assessment_id_assessments', ondelete='CASCADE'
        ),
        sa.UniqueConstraint(
            'assessment_id', 'user_id', 'attempt_number', name='uq_assessment_attempts_number'
        )
    )
    op.create_index('ix_assessment_attempts_user_id', 'assessment_attempts', ['user_id'])
    op.create_index('ix_assessment_attempts_status', 'assessment_attempts', ['status'])
    op.create_index('idx_attempts_assessment_status', 'assessment_attempts', ['assessment_id', 'status'])

    # Create assessment_responses table
    op.create_table(
        'assessment_responses',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('attempt_id', sa.String(36), nullable=False),
        sa.Column('question_id', sa.String(36), nullable=False),
        sa.Column('question_type', sa.String(50), nullable=False),
        sa.Column('answer_data', sa.JSON(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('points_earned', sa.Float(), nullable=True),
        sa.Column('auto_graded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('graded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_assessment_responses'),
        sa.ForeignKeyConstraint(
            ['attempt_id'], ['assessment_attempts.id'],
            name='fk_assessment_responses_attempt_id_assessment_attempts', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['question_id'], ['assessment_questions.id'],
            name='fk_assessment_responses_question_id_assessment_questions', ondelete='CASCADE'
        ),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_assessment_responses_question')
    )
    op.create_index('ix_assessment_responses_question_id', 'assessment_responses', ['question_id'])

    # Create rubrics table
    op.create_table(
        'rubrics',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('assessment_id', sa.String(36), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('criteria', sa.JSON(), nullable=False),
        sa.Column('total_points', sa.Float(), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_rubrics'),
        sa.ForeignKeyConstraint(
            ['assessment_id'], ['assessments.id'],
            name='fk_rubrics_assessment_id_assessments', ondelete='SET NULL'
        )
    )
    op.create_index('ix_rubrics_assessment_id', 'rubrics', ['assessment_id'])

    # Create rubric_assessments table
    op.create_table(
        'rubric_assessments',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('attempt_id', sa.String(36), nullable=False),
        sa.Column('rubric_id', sa.String(36), nullable=False),
        sa.Column('question_id', sa.String(36), nullable=True),
        sa.Column('evaluator_id', sa.String(255), nullable=True),
        sa.Column('scores', sa.JSON(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('max_score', sa.Float(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False),
        sa.Column('overall_feedback', sa.Text(), nullable=True),
        sa.Column('evaluated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_rubric_assessments'),
        sa.ForeignKeyConstraint(
            ['attempt_id'], ['assessment_attempts.id'],
            name='fk_rubric_assessments_attempt_id_assessment_attempts', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['rubric_id'], ['rubrics.id'],
            name='fk_rubric_assessments_rubric_id_rubrics', ondelete='CASCADE'
        )
    )
    op.create_index('ix_rubric_assessments_attempt_id', 'rubric_assessments', ['attempt_id'])


def downgrade():
    op.drop_table('rubric_assessments')
    op.drop_table('rubrics')
    op.drop_table('assessment_responses')
    op.drop_table('assessment_attempts')
    op.drop_table('assessment_questions')
    op.drop_table('assessments')
