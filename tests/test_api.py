import unittest

from cadence import create_app, db
from cadence.models import Chapter, Course, Module
from config import TestConfig


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        db.session.remove()
        db.drop_all()
        self.app_context.pop()


class DurationApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        module = Module(title="Back-end", duration_minutes=300)
        chapter = Chapter(title="Bases de données", duration_minutes=300)
        chapter.courses.extend(
            [
                Course(title="Modélisation", duration_minutes=120),
                Course(title="Requêtes SQL", duration_minutes=240),
            ]
        )
        module.chapters.append(chapter)
        db.session.add(module)
        db.session.commit()
        self.chapter_id = chapter.id

    def test_health_reports_database_status(self) -> None:
        response = self.client.get("/api/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"status": "ok", "database": "ok"})

    def test_statistics_endpoint(self) -> None:
        response = self.client.get("/api/durations/statistics")

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(set(payload), {"formations", "modules", "chapters", "courses"})
        self.assertEqual(payload["chapters"]["total"], 1)
        self.assertEqual(payload["chapters"]["inconsistencies"], 1)
        self.assertEqual(payload["chapters"]["percentage"], 100.0)
        self.assertEqual(payload["modules"]["inconsistencies"], 0)
        self.assertEqual(payload["formations"]["total"], 0)

    def test_level_report_lists_every_active_node(self) -> None:
        response = self.client.get("/api/durations/chapter")

        self.assertEqual(response.status_code, 200)
        (report,) = response.get_json()
        self.assertEqual(report["entity_id"], self.chapter_id)
        self.assertEqual(report["stored"], 300)
        self.assertEqual(report["computed"], 360)
        self.assertEqual(report["delta"], 60)
        self.assertTrue(report["needs_update"])
        self.assertEqual(report["unit"], "minutes")

    def test_unknown_level_is_not_found(self) -> None:
        response = self.client.get("/api/durations/lesson")

        self.assertEqual(response.status_code, 404)
        self.assertIn("lesson", response.get_json()["message"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
