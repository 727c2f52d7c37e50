from __future__ import annotations

from . import db
from .models import Chapter, Course, Formation, Module


CATALOGUE = [
    {
        "title": "Développeur Web et Web Mobile",
        "modules": [
            {
                "title": "Front-end",
                "chapters": [
                    {
                        "title": "HTML et CSS",
                        "courses": [("Structure d'une page", 90), ("Mise en page flexbox", 120)],
                    },
                    {
                        "title": "JavaScript",
                        "courses": [("Syntaxe de base", 180), ("Manipulation du DOM", 150)],
                    },
                ],
            },
            {
                "title": "Back-end",
                "chapters": [
                    {
                        "title": "Bases de données",
                        "courses": [("Modélisation", 120), ("Requêtes SQL", 240)],
                    },
                ],
            },
        ],
    },
    {
        "title": "Gestion de projet agile",
        "modules": [
            {
                "title": "Scrum",
                "chapters": [
                    {
                        "title": "Cérémonies",
                        "courses": [("Sprint planning", 60), ("Rétrospective", 45)],
                    },
                ],
            },
        ],
    },
]


def seed_data() -> int:
    """Create a sample catalogue whose containers start with stale durations."""

    if Formation.query.first():
        return 0

    created = 0
    for f_index, formation_data in enumerate(CATALOGUE):
        formation = Formation(title=formation_data["title"], position=f_index)
        created += 1
        for m_index, module_data in enumerate(formation_data["modules"]):
            module = Module(title=module_data["title"], position=m_index)
            formation.modules.append(module)
            created += 1
            for c_index, chapter_data in enumerate(module_data["chapters"]):
                chapter = Chapter(title=chapter_data["title"], position=c_index)
                module.chapters.append(chapter)
                created += 1
                for position, (title, minutes) in enumerate(chapter_data["courses"]):
                    chapter.courses.append(
                        Course(title=title, duration_minutes=minutes, position=position)
                    )
                    created += 1
        db.session.add(formation)

    # An archived course that must never count towards its chapter.
    archived = Course(title="Ancienne version", duration_minutes=1000, is_active=False)
    db.session.flush()
    first_chapter = Chapter.query.order_by(Chapter.id).first()
    if first_chapter is not None:
        first_chapter.courses.append(archived)
        created += 1

    db.session.commit()
    return created
