from __future__ import annotations

from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField, SubmitField
from wtforms.validators import DataRequired, Optional

from .models import ALL_LEVELS


LEVEL_CHOICES = [
    (ALL_LEVELS, "Tous les niveaux"),
    ("course", "Cours"),
    ("chapter", "Chapitres"),
    ("module", "Modules"),
    ("formation", "Formations"),
]


class DurationSyncForm(FlaskForm):
    entity_type = SelectField(
        "Niveau",
        choices=LEVEL_CHOICES,
        default=ALL_LEVELS,
        validators=[DataRequired()],
    )
    # Out of range sizes are replaced by the default when the sync runs.
    batch_size = IntegerField("Taille des lots", default=50, validators=[Optional()])
    submit = SubmitField("Synchroniser")
