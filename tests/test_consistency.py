import unittest

from cadence import create_app, db
from cadence.models import Chapter, Course
from cadence.services import (
    BulkSynchronizer,
    ConsistencyAnalyzer,
    DurationCalculator,
    DurationReport,
    has_inconsistency,
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


class ExplodingCalculator(DurationCalculator):
    def __init__(self, failing_ids: set[int]) -> None:
        self.failing_ids = failing_ids

    def compute_duration(self, node) -> int:
        if node.id in self.failing_ids:
            raise RuntimeError("données corrompues")
        return super().compute_duration(node)


class ConsistencyAnalyzerTestCase(DatabaseTestCase):
    def _create_chapter(self, title: str, durations: list[int], stored: int, **kwargs) -> Chapter:
        chapter = Chapter(title=title, duration_minutes=stored, **kwargs)
        for index, minutes in enumerate(durations):
            chapter.courses.append(Course(title=f"{title} {index}", duration_minutes=minutes))
        db.session.add(chapter)
        db.session.commit()
        return chapter

    def test_reference_chapter_scenario(self) -> None:
        chapter = self._create_chapter("Bases", [30, 45, 0], stored=100)
        chapter.courses.append(
            Course(title="Ancienne version", duration_minutes=1000, is_active=False)
        )
        db.session.commit()
        analyzer = ConsistencyAnalyzer()

        report = analyzer.analyze(chapter)
        self.assertEqual(report.stored, 100)
        self.assertEqual(report.computed, 75)
        self.assertTrue(report.needs_update)
        self.assertEqual(report.delta, -25)
        self.assertEqual(report.child_count, 3)

        BulkSynchronizer().update(chapter)
        db.session.commit()

        self.assertEqual(chapter.duration_minutes, 75)
        second = analyzer.analyze(chapter)
        self.assertFalse(second.needs_update)
        self.assertEqual(second.delta, 0)

    def test_course_is_always_consistent(self) -> None:
        course = Course(title="Seul", duration_minutes=55)
        db.session.add(course)
        db.session.commit()

        report = ConsistencyAnalyzer().analyze(course)

        self.assertEqual((report.stored, report.computed), (55, 55))
        self.assertFalse(report.needs_update)

    def test_failed_analysis_is_reported_as_inconsistent(self) -> None:
        chapter = self._create_chapter("Cassé", [10], stored=10)
        analyzer = ConsistencyAnalyzer(ExplodingCalculator({chapter.id}))

        with self.assertRaises(RuntimeError):
            analyzer.analyze(chapter)

        with self.assertLogs(self.app.logger, level="WARNING") as captured:
            report = analyzer.safe_analyze(chapter)
        self.assertTrue(report.needs_update)
        self.assertEqual(report.error, "données corrompues")
        self.assertIn(f"entity_id={chapter.id}", captured.output[0])

    def test_level_analysis_skips_inactive_nodes_and_computes_percentage(self) -> None:
        self._create_chapter("A", [30], stored=30)
        self._create_chapter("B", [30, 30], stored=60)
        drifting = self._create_chapter("C", [15], stored=0)
        self._create_chapter("Archivé", [15], stored=0, is_active=False)

        analysis = ConsistencyAnalyzer().analyze_level(Chapter)

        self.assertEqual(analysis.total, 3)
        self.assertEqual(analysis.inconsistencies, 1)
        self.assertEqual(analysis.percentage, 33.33)
        flagged = [report.entity_id for report in analysis.reports if report.needs_update]
        self.assertEqual(flagged, [drifting.id])

    def test_empty_level_has_zero_percentage(self) -> None:
        analysis = ConsistencyAnalyzer().analyze_level(Chapter)

        self.assertEqual(analysis.total, 0)
        self.assertEqual(analysis.percentage, 0)


class InconsistencyThresholdTestCase(unittest.TestCase):
    def _report(self, delta: int, error: str | None = None) -> DurationReport:
        return DurationReport(
            entity_type="chapter",
            entity_id=1,
            title="Chapitre",
            stored=100,
            computed=100 + delta,
            needs_update=delta != 0,
            delta=delta,
            error=error,
        )

    def test_threshold_applies_to_absolute_difference(self) -> None:
        self.assertTrue(has_inconsistency(self._report(-25), threshold=25))
        self.assertFalse(has_inconsistency(self._report(-25), threshold=30))
        self.assertFalse(has_inconsistency(self._report(0)))

    def test_failed_analysis_is_always_inconsistent(self) -> None:
        self.assertTrue(has_inconsistency(self._report(0, error="boom"), threshold=50))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
