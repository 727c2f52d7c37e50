import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from cadence import create_app, db
from cadence.errors import BatchPersistenceError, UnknownEntityType
from cadence.models import Chapter, Course, Formation, Module
from cadence.services import (
    BulkSynchronizer,
    ConsistencyAnalyzer,
    DurationCalculator,
    build_synchronizer,
    statistics_cache,
)
from config import TestConfig


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

    def tearDown(self) -> None:
        db.session.remove()
        db.drop_all()
        self.app_context.pop()


class FailingCalculator(DurationCalculator):
    def __init__(self, entity_type: str, failing_ids: set[int]) -> None:
        self.entity_type = entity_type
        self.failing_ids = failing_ids

    def compute_duration(self, node) -> int:
        if node.entity_type == self.entity_type and node.id in self.failing_ids:
            raise ValueError(f"durée illisible pour {node.id}")
        return super().compute_duration(node)


class BulkSynchronizerTestCase(DatabaseTestCase):
    def _create_chapters(self, count: int, *, course_minutes: int = 30, stored: int = 0) -> list[Chapter]:
        chapters = []
        for index in range(count):
            chapter = Chapter(title=f"Chapitre {index}", duration_minutes=stored, position=index)
            chapter.courses.append(Course(title=f"Cours {index}", duration_minutes=course_minutes))
            chapters.append(chapter)
        db.session.add_all(chapters)
        db.session.commit()
        return chapters

    def _create_stale_tree(self) -> Formation:
        formation = Formation(title="Développeur Web", duration_minutes=0)
        module = Module(title="Front-end", duration_minutes=0)
        html = Chapter(title="HTML", duration_minutes=0)
        html.courses.extend(
            [
                Course(title="Balises", duration_minutes=60),
                Course(title="Formulaires", duration_minutes=90),
                Course(title="Archivé", duration_minutes=1000, is_active=False),
            ]
        )
        js = Chapter(title="JavaScript", duration_minutes=0)
        js.courses.append(Course(title="Syntaxe", duration_minutes=120))
        module.chapters.extend([html, js])
        formation.modules.append(module)
        db.session.add(formation)
        db.session.commit()
        return formation

    def test_update_is_idempotent(self) -> None:
        (chapter,) = self._create_chapters(1, course_minutes=45, stored=100)
        synchronizer = BulkSynchronizer()

        first = synchronizer.update(chapter)
        db.session.commit()
        self.assertFalse(first.needs_update)
        self.assertEqual(chapter.duration_minutes, 45)

        second = synchronizer.update(chapter)
        self.assertFalse(db.session.dirty)
        db.session.commit()
        self.assertFalse(second.needs_update)
        self.assertEqual(chapter.duration_minutes, 45)

    def test_sync_all_processes_levels_bottom_up(self) -> None:
        formation = self._create_stale_tree()

        report = BulkSynchronizer().sync_all("all", 50)

        self.assertEqual(report.levels, {"course": 3, "chapter": 2, "module": 1, "formation": 1})
        self.assertEqual(report.synced_count, 7)
        self.assertEqual(report.errors, [])
        db.session.expire_all()
        self.assertEqual(formation.duration_minutes, 270)
        self.assertEqual(formation.modules[0].duration_minutes, 270)
        self.assertEqual(
            [chapter.duration_minutes for chapter in formation.modules[0].chapters],
            [150, 120],
        )

    def test_top_down_runs_leave_stale_aggregates_until_a_full_sync(self) -> None:
        formation = self._create_stale_tree()
        synchronizer = BulkSynchronizer()

        for level in ("formation", "module", "chapter"):
            synchronizer.sync_all(level, 50)
        db.session.expire_all()
        self.assertEqual(formation.duration_minutes, 0)
        self.assertEqual(formation.modules[0].duration_minutes, 0)
        self.assertEqual(formation.modules[0].chapters[0].duration_minutes, 150)

        synchronizer.sync_all("all", 50)
        db.session.expire_all()
        self.assertEqual(formation.modules[0].duration_minutes, 270)
        self.assertEqual(formation.duration_minutes, 270)
        self.assertFalse(ConsistencyAnalyzer().analyze(formation).needs_update)

    def test_batch_size_is_clamped_to_default(self) -> None:
        synchronizer = BulkSynchronizer()

        self.assertEqual(synchronizer.normalise_batch_size(10), 10)
        self.assertEqual(synchronizer.normalise_batch_size("1000"), 1000)
        self.assertEqual(synchronizer.normalise_batch_size(None), 50)
        for invalid in (0, -3, 1001, 5000, "abc"):
            with self.subTest(batch_size=invalid):
                self.assertEqual(synchronizer.normalise_batch_size(invalid), 50)

    def test_oversized_batch_behaves_like_default(self) -> None:
        self._create_chapters(60, course_minutes=20)

        oversized = BulkSynchronizer().sync_all("chapter", 5000)
        default = BulkSynchronizer().sync_all("chapter")

        self.assertEqual(oversized.synced_count, 60)
        self.assertEqual(default.synced_count, 60)
        self.assertEqual(oversized.batch_count, 2)
        self.assertEqual(default.batch_count, 2)
        small = BulkSynchronizer().sync_all("chapter", 7)
        self.assertEqual(small.synced_count, 60)
        self.assertEqual(small.batch_count, 9)

    def test_node_failure_does_not_abort_its_batch(self) -> None:
        chapters = self._create_chapters(10, course_minutes=25, stored=0)
        broken = chapters[4]
        synchronizer = BulkSynchronizer(FailingCalculator("chapter", {broken.id}))

        report = synchronizer.sync_all("chapter", 10)

        self.assertEqual(report.synced_count, 9)
        self.assertEqual(report.batch_count, 1)
        self.assertEqual(len(report.errors), 1)
        self.assertEqual(report.errors[0].entity_id, broken.id)
        self.assertIn(f"#{broken.id}", report.error_messages[0])
        db.session.expire_all()
        for chapter in chapters:
            expected = 0 if chapter.id == broken.id else 25
            self.assertEqual(chapter.duration_minutes, expected)

    def test_persistence_failure_rolls_back_batch_and_aborts_sync(self) -> None:
        module = Module(title="Module", duration_minutes=5)
        for index in range(4):
            module.chapters.append(Chapter(title=f"Chapitre {index}", duration_minutes=999))
        db.session.add(module)
        db.session.commit()
        chapter_ids = [chapter.id for chapter in module.chapters]

        session = db.session()
        real_commit = session.commit
        calls = {"count": 0}

        def flaky_commit() -> None:
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
            real_commit()

        with patch.object(session, "commit", side_effect=flaky_commit):
            with self.assertRaises(BatchPersistenceError) as ctx:
                BulkSynchronizer().sync_all("all", 2)

        error = ctx.exception
        self.assertEqual(error.entity_type, "chapter")
        self.assertEqual(error.batch_index, 2)
        self.assertEqual(error.report.synced_count, 2)
        db.session.expire_all()
        durations = [db.session.get(Chapter, chapter_id).duration_minutes for chapter_id in chapter_ids]
        self.assertEqual(durations, [0, 0, 999, 999])
        self.assertEqual(db.session.get(Module, module.id).duration_minutes, 5)

    def test_flush_failure_is_reported_for_the_batch_not_a_node(self) -> None:
        chapters = self._create_chapters(3, course_minutes=25, stored=0)
        chapter_ids = [chapter.id for chapter in chapters]

        session = db.session()
        real_flush = session.flush

        def failing_flush(*args, **kwargs) -> None:
            if session.dirty:
                raise OperationalError("UPDATE", {}, Exception("disk full"))
            real_flush(*args, **kwargs)

        with patch.object(session, "flush", side_effect=failing_flush):
            with self.assertRaises(BatchPersistenceError) as ctx:
                BulkSynchronizer().sync_all("chapter", 10)

        error = ctx.exception
        self.assertEqual(error.batch_index, 1)
        self.assertEqual(error.report.errors, [])
        self.assertEqual(error.report.synced_count, 0)
        db.session.expire_all()
        durations = [db.session.get(Chapter, chapter_id).duration_minutes for chapter_id in chapter_ids]
        self.assertEqual(durations, [0, 0, 0])

    def test_only_inconsistent_skips_nodes_already_in_sync(self) -> None:
        consistent, stale = self._create_chapters(2, course_minutes=40, stored=0)
        consistent.duration_minutes = 40
        db.session.commit()

        report = BulkSynchronizer().sync_all("chapter", only_inconsistent=True)

        self.assertEqual(report.synced_count, 1)
        self.assertEqual(report.skipped_count, 1)
        self.assertEqual([change.entity_id for change in report.changes], [stale.id])

    def test_dry_run_reports_without_writing(self) -> None:
        (chapter,) = self._create_chapters(1, course_minutes=40, stored=3)

        report = BulkSynchronizer().sync_all("chapter", dry_run=True, only_inconsistent=True)

        self.assertTrue(report.dry_run)
        self.assertEqual(report.synced_count, 1)
        self.assertEqual(report.changes[0].computed, 40)
        db.session.expire_all()
        self.assertEqual(chapter.duration_minutes, 3)

    def test_entity_id_restricts_the_level(self) -> None:
        first, second = self._create_chapters(2, course_minutes=15, stored=0)

        report = BulkSynchronizer().sync_all("chapter", entity_id=second.id)

        self.assertEqual(report.synced_count, 1)
        db.session.expire_all()
        self.assertEqual((first.duration_minutes, second.duration_minutes), (0, 15))

    def test_unknown_level_is_rejected(self) -> None:
        with self.assertRaises(UnknownEntityType):
            BulkSynchronizer().sync_all("lesson", 10)

    def test_propagate_updates_every_ancestor(self) -> None:
        formation = self._create_stale_tree()
        chapter = formation.modules[0].chapters[0]

        reports = BulkSynchronizer().propagate(chapter)
        db.session.commit()

        self.assertEqual(
            [report.entity_type for report in reports], ["chapter", "module", "formation"]
        )
        self.assertEqual(chapter.duration_minutes, 150)
        self.assertEqual(formation.modules[0].duration_minutes, 150)
        self.assertEqual(formation.duration_minutes, 150)

    def test_sync_clears_statistics_cache(self) -> None:
        self._create_chapters(1)
        cache = statistics_cache()
        cache.get("stats:chapter", lambda: "stale")
        self.assertIn("stats:chapter", cache)

        build_synchronizer().sync_all("chapter")

        self.assertEqual(len(cache), 0)

    def test_batch_limits_follow_configuration(self) -> None:
        self.app.config.update(DURATION_DEFAULT_BATCH_SIZE=20, DURATION_MAX_BATCH_SIZE=100)

        synchronizer = build_synchronizer()

        self.assertEqual(synchronizer.normalise_batch_size(150), 20)
        self.assertEqual(synchronizer.normalise_batch_size(100), 100)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
