import os
import logging

from dotenv import load_dotenv
from flask import (
    Flask,
    flash,
    jsonify,
    session,
    request,
    render_template,
    redirect,
    url_for,
    g,
)
from flask_wtf.csrf import generate_csrf

from flask_migrate import Migrate

from sqlalchemy.exc import SQLAlchemyError
from database import db
from models.project import DEFAULT_PROJECT_COLOR, DEFAULT_PROJECT_EMOJI

load_dotenv()

# Initialize Flask app
app = Flask(__name__)
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///taskflow.db")
app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO").upper()
app.config["DEFAULT_PROJECT_COLOR"] = os.environ.get("DEFAULT_PROJECT_COLOR", DEFAULT_PROJECT_COLOR)
app.config["DEFAULT_PROJECT_EMOJI"] = os.environ.get("DEFAULT_PROJECT_EMOJI", DEFAULT_PROJECT_EMOJI)


def configure_logging(flask_app):
    """Apply LOG_LEVEL to the root logger, adding a console handler if none exists."""
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(flask_app.config["LOG_LEVEL"])


configure_logging(app)
db.init_app(app)

# Models import should be after initializing db
from models.comment import Comment  # noqa: F401
from models.project import Project  # noqa: F401
from models.project_member import ProjectMember  # noqa: F401
from models.task import Task  # noqa: F401
from models.user import User

from forms import (
    SignupForm,
    LoginForm,
    UserSettingsForm,
    PasswordChangeForm,
    THEME_CHOICES,
)
from services.project_service import get_user_projects, summarize_projects
from services.user_service import change_password, create_user, update_last_active, update_user
from routes.api import api_bp
from routes.projects import projects_bp
from routes import safe_redirect
from utils.formatting import register_filters

# Create flask command lines to update the db based on the model
# Useage:
# Create a migration script in ./migrations/versions
# > flask db migrate -m "Update comments"
# Run the update
# > flask db upgrade
migrate = Migrate(app, db)
app.register_blueprint(api_bp)
app.register_blueprint(projects_bp)
register_filters(app)

# User Authentication
# ------------------------------
login_exempt_routes = ["login", "logout", "signup", "static", "change_theme"]


@app.before_request
def require_login():
    """All routes require a User logged in, except the ones listed in login_exempt_routes

    This method excecutes before every request and checks if there is a user_id
    stored in session. If so, it sets the g.user that contains the object User which
    can be used in the subsecuent method.

    Returns:
        Redirects to the login page if no user is found in session, or a 401
        JSON payload for API requests.
    """
    user_id = session.get("user_id")
    g.user = db.session.get(User, user_id) if user_id else None
    if g.user is not None and not g.user.is_active:
        session.pop("user_id", None)
        g.user = None
    if g.user is None and request.endpoint and request.endpoint not in login_exempt_routes:
        if request.blueprint == "api":
            return jsonify({"success": False, "error": "Authentication required."}), 401
        flash("Please login", "info")
        return redirect(url_for("login", next=request.url))


@app.context_processor
def inject_forms():
    """Injects forms to the template for every method

    Returns:
        Dictionary listing the forms available in templates
    """
    return {
        "login_form": LoginForm(),
        "csrf_token_value": generate_csrf(),
        "theme_choices": THEME_CHOICES,
    }


def authenticate_user(username, password):
    user = User.query.filter_by(username=username).first()
    if user and user.is_active and user.check_password(password):
        session["user_id"] = user.id
        session["user"] = user.name
        session["theme"] = user.theme
        try:
            update_last_active(user.id)
        except SQLAlchemyError:
            logging.warning("Could not record last activity for user %s", user.id, exc_info=True)
        return True
    return False


@app.route("/login", methods=["GET", "POST"])
def login():
    """
    Handle the login functionality.

    Receives requests to the '/login' endpoint for both GET and POST methods.
    A successful login redirects to the dashboard.

    Returns:
        The rendered login page template with the login form.
    """
    login_form = LoginForm()
    if login_form.validate_on_submit():
        if authenticate_user(login_form.username.data, login_form.password.data):
            return redirect(url_for("home"))  # Redirect to the main page after login
        else:
            flash("Invalid username or password", "danger")
    return render_template("login.html", login_form=login_form)


@app.route("/logout")
def logout():
    session.pop("user", None)
    session.pop("user_id", None)
    g.user = None
    return redirect(url_for("login"))


@app.route("/signup", methods=["GET", "POST"])
def signup():
    signup_form = SignupForm()
    if signup_form.validate_on_submit():
        try:
            create_user(
                username=signup_form.username.data,
                name=signup_form.name.data,
                email=signup_form.email.data,
                password=signup_form.password.data,
            )
            flash("Registration successful! You can now log in.", "success")
            return redirect(url_for("login"))
        except ValueError as e:
            flash(str(e), "danger")
        except SQLAlchemyError as e:
            logging.error("Database error during signup", exc_info=True)
            flash(f"An error occurred: {str(e)}", "error")
    return render_template("signup.html", signup_form=signup_form)


@app.route("/user", methods=["GET", "POST"])
def user():
    """User profile page"""
    user_form = UserSettingsForm(obj=g.user, user=g.user, prefix="profile")
    password_form = PasswordChangeForm(prefix="password")

    if user_form.submit.data and user_form.validate_on_submit():
        try:
            update_user(
                g.user.id,
                {
                    "name": user_form.name.data,
                    "email": user_form.email.data,
                    "avatar": user_form.avatar.data or "",
                    "timezone": user_form.timezone.data,
                    "theme": user_form.theme.data,
                },
            )
            session["user"] = g.user.name
            session["theme"] = g.user.theme
            flash("Information Updated", "success")
            return redirect(url_for("home"))
        except ValueError as e:
            flash(str(e), "danger")
        except SQLAlchemyError as e:
            logging.error("Database error during profile update", exc_info=True)
            flash(f"An error occurred: {str(e)}", "error")

    if password_form.submit.data and password_form.validate_on_submit():
        try:
            change_password(
                g.user.id,
                password_form.current_password.data,
                password_form.new_password.data,
            )
            flash("Password updated", "success")
            return redirect(url_for("user"))
        except ValueError as e:
            password_form.current_password.errors.append(str(e))
        except SQLAlchemyError as e:
            logging.error("Database error during password change", exc_info=True)
            flash(f"An error occurred: {str(e)}", "error")

    return render_template("user.html", user_form=user_form, password_form=password_form)


# Home
# ------------------------------
@app.route("/")
def home():
    projects = get_user_projects(g.user.id)
    return render_template(
        "home.html",
        projects=projects[:6],
        summary=summarize_projects(projects),
    )


# Themes
# ------------------------------
def set_theme(selected_theme: str) -> bool:
    """
    Sets the theme for the application.

    Parameters:
        selected_theme (str): The theme to be set.

    Returns:
        bool: True if the theme is successfully set, False otherwise.
    """
    theme_names = [theme[0] for theme in THEME_CHOICES]

    if selected_theme in theme_names:
        if g.user:
            try:
                update_user(g.user.id, {"theme": selected_theme})
            except SQLAlchemyError as e:
                flash(f"An error occurred: {str(e)}", "error")
                return False
        session["theme"] = selected_theme
        return True
    return False


@app.route("/change_theme/<string:theme>")
def change_theme(theme):
    """
    Change the theme of the application.

    Parameters:
        theme (str): The name of the theme to change to.

    Returns:
        redirect: Redirects to the previous page or the home page.
    """
    if not set_theme(theme):
        flash("Invalid theme", "error")
    return safe_redirect(request.referrer, "home")


# Application Execution
# ------------------------------
if __name__ == "__main__":
    app.run(debug=True)
