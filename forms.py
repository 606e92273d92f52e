from flask_wtf import FlaskForm
from wtforms import (
    BooleanField,
    DateTimeLocalField,
    PasswordField,
    RadioField,
    SelectField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import (
    DataRequired,
    Email,
    EqualTo,
    Optional,
    Length,
    Regexp,
    ValidationError,
)

THEME_CHOICES = [('light', 'Light'), ('dark', 'Dark'), ('system', 'System')]
STATUS_CHOICES = [
    ('todo', 'To Do'),
    ('in-progress', 'In Progress'),
    ('completed', 'Completed'),
    ('archived', 'Archived'),
]
PRIORITY_CHOICES = [
    ('low', 'Low'),
    ('medium', 'Medium'),
    ('high', 'High'),
    ('urgent', 'Urgent'),
]
ROLE_CHOICES = [('admin', 'Admin'), ('member', 'Member'), ('viewer', 'Viewer')]


class SignupForm(FlaskForm):
    username = StringField(
        "Username",
        [
            DataRequired(),
            Length(max=80),
            Regexp(
                r"^[A-Za-z0-9_.-]+$",
                message="Username may only include letters, numbers, dots, hyphens, and underscores.",
            ),
        ],
    )
    name = StringField("Name", [DataRequired(), Length(max=80)])
    email = StringField("Email", [DataRequired(), Email()])
    password = PasswordField("Password", [DataRequired(), Length(min=8)])
    submit = SubmitField("Register")

    def validate_username(self, field):
        from models.user import User

        if User.query.filter_by(username=field.data).first():
            raise ValidationError("This username is already in use.")

    def validate_email(self, field):
        from models.user import User

        if User.query.filter_by(email=field.data).first():
            raise ValidationError("This email is already in use.")


class LoginForm(FlaskForm):
    username = StringField("Username", [DataRequired()])
    password = PasswordField("Password", [DataRequired()])
    submit = SubmitField("Login")


class UserSettingsForm(FlaskForm):
    def __init__(self, *args, user=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.current_user = user

    name = StringField("Name", [DataRequired(), Length(max=80)])
    email = StringField("Email", [DataRequired(), Email()])
    avatar = StringField("Avatar", [Optional(), Length(max=255)])
    timezone = StringField("Timezone", [DataRequired(), Length(max=64)], default="UTC")
    theme = RadioField(
        "Theme",
        choices=THEME_CHOICES,
        validators=[DataRequired(message="Selecting a theme is required.")],
        default="light",
    )
    submit = SubmitField("Save Changes")

    def validate_email(self, field):
        from models.user import User

        existing = User.query.filter_by(email=field.data).first()
        if existing and (not self.current_user or existing.id != self.current_user.id):
            raise ValidationError("This email is already in use.")


class ProjectForm(FlaskForm):
    name = StringField("Name", [DataRequired(), Length(max=120)])
    description = TextAreaField("Description")
    color = StringField(
        "Color",
        validators=[
            Optional(),
            Regexp(r"^#[0-9a-fA-F]{6}$", message="Use a hex color such as #3b82f6."),
        ],
    )
    emoji = StringField("Emoji", [Optional(), Length(max=16)])
    is_public = BooleanField("Public project")
    submit = SubmitField("Save Project")


class TaskForm(FlaskForm):
    title = StringField("Title", [DataRequired()])
    description = TextAreaField("Description")
    status = SelectField("Status", choices=STATUS_CHOICES, default="todo")
    priority = RadioField("Priority", choices=PRIORITY_CHOICES, default="medium")
    due_date = DateTimeLocalField("Due Date", format="%Y-%m-%dT%H:%M", validators=[Optional()])
    tags = StringField("Tags")
    submit = SubmitField("Save Task")


class TaskStatusForm(FlaskForm):
    status = SelectField("Status", choices=STATUS_CHOICES, validators=[DataRequired()])


class CommentForm(FlaskForm):
    content = TextAreaField("Comment", [DataRequired()])
    submit = SubmitField("Post")


class MemberForm(FlaskForm):
    username = StringField("Username", [DataRequired()])
    role = SelectField("Role", choices=ROLE_CHOICES, default="member")
    submit = SubmitField("Add Member")


class PasswordChangeForm(FlaskForm):
    current_password = PasswordField("Current Password", [DataRequired()])
    new_password = PasswordField("New Password", [DataRequired(), Length(min=8)])
    confirm_password = PasswordField(
        "Confirm New Password",
        [DataRequired(), EqualTo("new_password", message="Passwords must match.")],
    )
    submit = SubmitField("Update Password")
