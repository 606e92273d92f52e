import unittest

from app import app, db
from models.user import User
from tests.utils.app_case import AppTestCase


class UserProfileTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.primary_id = self._create_user("primary", name="Primary User")
        self.secondary_id = self._create_user("existing", name="Existing User")

    def _visit_profile(self):
        response = self.client.get("/user")
        self.assertEqual(response.status_code, 200)

    def test_profile_requires_login(self):
        response = self.client.get("/user")
        self.assertEqual(response.status_code, 302)
        self.assertIn("/login", response.headers["Location"])

    def test_profile_update_rejects_duplicate_email(self):
        self._login(self.primary_id)
        self._visit_profile()

        response = self.client.post(
            "/user",
            data={
                "profile-name": "Primary User",
                "profile-email": "existing@example.com",
                "profile-timezone": "UTC",
                "profile-theme": "light",
                "profile-submit": "Save Changes",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"This email is already in use.", response.data)

    def test_profile_update_persists_changes_and_updates_session_theme(self):
        self._login(self.primary_id)
        self._visit_profile()

        response = self.client.post(
            "/user",
            data={
                "profile-name": "Updated Name",
                "profile-email": "updated@example.com",
                "profile-avatar": "https://example.com/me.png",
                "profile-timezone": "America/New_York",
                "profile-theme": "system",
                "profile-submit": "Save Changes",
            },
            follow_redirects=False,
        )
        self.assertEqual(response.status_code, 302)

        with app.app_context():
            refreshed = db.session.get(User, self.primary_id)
            self.assertEqual(refreshed.username, "primary")
            self.assertEqual(refreshed.name, "Updated Name")
            self.assertEqual(refreshed.email, "updated@example.com")
            self.assertEqual(refreshed.avatar, "https://example.com/me.png")
            self.assertEqual(refreshed.timezone, "America/New_York")
            self.assertEqual(refreshed.theme, "system")

        with self.client.session_transaction() as session_data:
            self.assertEqual(session_data.get("theme"), "system")

    def test_password_change_requires_correct_current_password(self):
        self._login(self.primary_id)
        self._visit_profile()

        response = self.client.post(
            "/user",
            data={
                "password-current_password": "WrongPassword!",
                "password-new_password": "Newpass123",
                "password-confirm_password": "Newpass123",
                "password-submit": "Update Password",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Current password is incorrect.", response.data)

    def test_password_change_successfully_updates_hash(self):
        self._login(self.primary_id)
        self._visit_profile()

        response = self.client.post(
            "/user",
            data={
                "password-current_password": "Password123",
                "password-new_password": "BrandNew123",
                "password-confirm_password": "BrandNew123",
                "password-submit": "Update Password",
            },
            follow_redirects=False,
        )
        self.assertEqual(response.status_code, 302)

        with app.app_context():
            refreshed = db.session.get(User, self.primary_id)
            self.assertTrue(refreshed.check_password("BrandNew123"))
            self.assertFalse(refreshed.check_password("Password123"))

    def test_change_theme_route_updates_user_and_session(self):
        self._login(self.primary_id)
        response = self.client.get("/change_theme/dark")
        self.assertEqual(response.status_code, 302)

        with app.app_context():
            self.assertEqual(db.session.get(User, self.primary_id).theme, "dark")
        with self.client.session_transaction() as session_data:
            self.assertEqual(session_data.get("theme"), "dark")

        self.client.get("/change_theme/neon")
        with self.client.session_transaction() as session_data:
            self.assertEqual(session_data.get("theme"), "dark")


class AuthenticationTestCase(AppTestCase):
    def test_signup_then_login_records_activity(self):
        response = self.client.post(
            "/signup",
            data={
                "username": "newbie",
                "name": "New User",
                "email": "newbie@example.com",
                "password": "Password123",
            },
        )
        self.assertEqual(response.status_code, 302)

        response = self.client.post(
            "/login", data={"username": "newbie", "password": "Password123"}
        )
        self.assertEqual(response.status_code, 302)

        with app.app_context():
            user = User.query.filter_by(username="newbie").one()
            self.assertIsNotNone(user.last_active_at)
            user_id = user.id
        with self.client.session_transaction() as session_data:
            self.assertEqual(session_data.get("user_id"), user_id)

    def test_login_rejects_wrong_password(self):
        self._create_user("someone")
        response = self.client.post(
            "/login", data={"username": "someone", "password": "nope"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Invalid username or password", response.data)

    def test_signup_rejects_duplicate_username(self):
        self._create_user("taken")
        response = self.client.post(
            "/signup",
            data={
                "username": "taken",
                "name": "Copy",
                "email": "copy@example.com",
                "password": "Password123",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"This username is already in use.", response.data)

    def test_home_dashboard_shows_totals(self):
        user_id = self._create_user("dash")
        self._login(user_id)
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Welcome back", response.data)


if __name__ == "__main__":
    unittest.main()
