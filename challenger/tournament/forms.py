"""Forms for the tournament blueprint."""

from flask_wtf import FlaskForm
from wtforms import (
    DateField,
    IntegerField,
    SelectMultipleField,
    StringField,
    TextAreaField,
)
from wtforms.validators import DataRequired, Length, NumberRange, Optional

BRACKET_CHOICES = [
    ("SINGLE_ELIM", "Single Elimination"),
    ("DOUBLE_ELIM", "Double Elimination"),
    ("ROUND_ROBIN", "Round Robin"),
]


class TournamentForm(FlaskForm):
    """Form for creating a tournament."""

    name = StringField("Tournament Name", validators=[DataRequired(), Length(max=100)])

    description = TextAreaField("Description", validators=[DataRequired()])

    start_date = DateField("Start Date", validators=[DataRequired()])

    game = StringField("Game", validators=[DataRequired()])

    max_participants = IntegerField(
        "Max Participants", validators=[DataRequired(), NumberRange(min=2)]
    )

    phases = SelectMultipleField(
        "Phases", choices=BRACKET_CHOICES, validators=[DataRequired()]
    )


class TournamentUpdateForm(FlaskForm):
    """Form for editing tournament details; every field is optional."""

    name = StringField("Tournament Name", validators=[Optional(), Length(max=100)])
    description = TextAreaField("Description", validators=[Optional()])
    start_date = DateField("Start Date", validators=[Optional()])
    game = StringField("Game", validators=[Optional()])
    max_participants = IntegerField(
        "Max Participants", validators=[Optional(), NumberRange(min=2)]
    )


def form_errors(form):
    """Flatten WTForms errors into one message."""
    return "; ".join(
        f"{field}: {', '.join(messages)}" for field, messages in form.errors.items()
    )
