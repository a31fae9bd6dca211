"""Process-wide repository instances.

Same switch as the rest of the data layer: PostgreSQL when DATABASE_URL is
configured, in-memory otherwise.  Routes, services, the worker and the
scripts all import the instances from here so every caller shares one
store.
"""

from __future__ import annotations

import logging

from app.core.config import SETTINGS
from app.db.engine import async_session_factory
from app.models.course import Course
from app.repos.course_repo import CourseRepo, InMemoryCourseRepo, load_courses_file
from app.repos.document_repo import DocumentRepo, InMemoryDocumentRepo
from app.repos.kc_attempt_repo import InMemoryKcAttemptRepo, KcAttemptRepo
from app.repos.module_rule_repo import InMemoryModuleRuleRepo, ModuleRuleRepo
from app.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from app.repos.statement_repo import InMemoryStatementRepo, StatementRepo
from app.repos.verb_config_repo import InMemoryVerbConfigRepo, VerbConfigRepo

logger = logging.getLogger(__name__)

SAMPLE_COURSE = Course(
    course_id="sample-course",
    activity_id="https://example.com/courses/sample-course",
    title="Sample Course",
)

statement_repo: StatementRepo
progress_repo: ProgressRepo
verb_config_repo: VerbConfigRepo
course_repo: CourseRepo
kc_attempt_repo: KcAttemptRepo
module_rule_repo: ModuleRuleRepo
document_repo: DocumentRepo

if async_session_factory is not None:
    from app.repos.pg_course_repo import PgCourseRepo
    from app.repos.pg_document_repo import PgDocumentRepo
    from app.repos.pg_kc_attempt_repo import PgKcAttemptRepo
    from app.repos.pg_module_rule_repo import PgModuleRuleRepo
    from app.repos.pg_progress_repo import PgProgressRepo
    from app.repos.pg_statement_repo import PgStatementRepo
    from app.repos.pg_verb_config_repo import PgVerbConfigRepo

    statement_repo = PgStatementRepo(async_session_factory)
    progress_repo = PgProgressRepo(async_session_factory)
    verb_config_repo = PgVerbConfigRepo(async_session_factory)
    course_repo = PgCourseRepo(async_session_factory)
    kc_attempt_repo = PgKcAttemptRepo(async_session_factory)
    module_rule_repo = PgModuleRuleRepo(async_session_factory)
    document_repo = PgDocumentRepo(async_session_factory)
else:
    statement_repo = InMemoryStatementRepo()
    progress_repo = InMemoryProgressRepo()
    verb_config_repo = InMemoryVerbConfigRepo()
    kc_attempt_repo = InMemoryKcAttemptRepo()
    module_rule_repo = InMemoryModuleRuleRepo()
    document_repo = InMemoryDocumentRepo()
    if SETTINGS.course_directory_file:
        course_repo = InMemoryCourseRepo(load_courses_file(SETTINGS.course_directory_file))
    elif SETTINGS.is_dev:
        course_repo = InMemoryCourseRepo([SAMPLE_COURSE])
    else:
        course_repo = InMemoryCourseRepo()
