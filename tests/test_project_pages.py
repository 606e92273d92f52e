from app import app, db
from models.project import Project
from models.task import Task
from services.comment_service import get_task_comments
from services.member_service import add_member
from services.project_service import create_project
from services.task_service import create_task
from tests.utils.app_case import AppTestCase


class ProjectPagesTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.owner_id = self._create_user("owner")
        self.viewer_id = self._create_user("viewer")
        with app.app_context():
            self.project_id = create_project(self.owner_id, name="Website", emoji="🚀").id
            self.task_id = create_task(
                self.project_id, title="Landing page", creator_id=self.owner_id
            ).id
            create_task(
                self.project_id, title="Pricing page", creator_id=self.owner_id, status="completed"
            )
            add_member(self.project_id, self.viewer_id, "viewer")
        self._login(self.owner_id)

    def _project(self):
        return db.session.get(Project, self.project_id, populate_existing=True)

    def test_project_list_shows_progress(self):
        response = self.client.get("/projects/")
        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn("Website", body)
        self.assertIn("1 remaining", body)
        self.assertIn("50%", body)

    def test_create_project_from_form(self):
        response = self.client.post(
            "/projects/new",
            data={"name": "Mobile app", "description": "iOS first", "color": "#10b981", "emoji": ""},
        )
        self.assertEqual(response.status_code, 302)
        with app.app_context():
            project = Project.query.filter_by(name="Mobile app").one()
            self.assertEqual(project.color, "#10b981")
            self.assertEqual(project.emoji, "📋")
            self.assertEqual(project.owner_id, self.owner_id)

    def test_create_project_rejects_bad_color(self):
        response = self.client.post("/projects/new", data={"name": "Broken", "color": "red"})
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Use a hex color", response.data)

    def test_detail_page_filters_by_status(self):
        response = self.client.get(f"/projects/{self.project_id}?status=completed")
        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn("Pricing page", body)
        self.assertNotIn("Landing page", body)

        response = self.client.get(f"/projects/{self.project_id}?status=bogus")
        body = response.get_data(as_text=True)
        self.assertIn("Pricing page", body)
        self.assertIn("Landing page", body)

    def test_add_task_from_form_updates_counter(self):
        response = self.client.post(
            f"/projects/{self.project_id}/tasks",
            data={
                "title": "Blog",
                "description": "Weekly posts",
                "status": "todo",
                "priority": "urgent",
                "tags": "content, seo, content",
            },
        )
        self.assertEqual(response.status_code, 302)
        with app.app_context():
            self.assertEqual(self._project().task_count, 3)
            task = Task.query.filter_by(title="Blog").one()
            self.assertEqual(task.priority, "urgent")
            self.assertEqual(task.tags, ["content", "seo"])

    def test_add_task_without_title_rerenders_form(self):
        response = self.client.post(
            f"/projects/{self.project_id}/tasks", data={"title": "", "priority": "low"}
        )
        self.assertEqual(response.status_code, 400)
        with app.app_context():
            self.assertEqual(self._project().task_count, 2)

    def test_edit_task_form(self):
        response = self.client.get(f"/projects/{self.project_id}/tasks/{self.task_id}/edit")
        self.assertEqual(response.status_code, 200)

        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/edit",
            data={
                "title": "Landing page v2",
                "status": "completed",
                "priority": "high",
                "tags": "",
            },
        )
        self.assertEqual(response.status_code, 302)
        with app.app_context():
            task = db.session.get(Task, self.task_id)
            self.assertEqual(task.title, "Landing page v2")
            self.assertIsNotNone(task.completed_at)
            self.assertEqual(self._project().completed_task_count, 2)

    def test_status_change_returns_json_payload(self):
        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/status",
            json={"status": "completed"},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["task"]["status"], "completed")
        self.assertEqual(payload["project"]["completed_task_count"], 2)

        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/status",
            json={"status": "nonsense"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.get_json()["success"])

    def test_status_change_from_form_redirects(self):
        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/status",
            data={"status": "in-progress"},
        )
        self.assertEqual(response.status_code, 302)
        with app.app_context():
            self.assertEqual(db.session.get(Task, self.task_id).status, "in-progress")
            self.assertEqual(self._project().completed_task_count, 1)

    def test_delete_task_decrements_counter(self):
        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/delete",
            headers={"X-Requested-With": "XMLHttpRequest"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["project"]["task_count"], 1)

    def test_viewer_cannot_change_tasks(self):
        self._login(self.viewer_id)
        response = self.client.get(f"/projects/{self.project_id}")
        self.assertEqual(response.status_code, 200)

        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/status",
            json={"status": "completed"},
        )
        self.assertEqual(response.status_code, 403)
        response = self.client.post(
            f"/projects/{self.project_id}/tasks", data={"title": "Sneaky", "priority": "low"}
        )
        self.assertEqual(response.status_code, 403)
        response = self.client.get(f"/projects/{self.project_id}/edit")
        self.assertEqual(response.status_code, 403)

    def test_task_detail_and_comment(self):
        response = self.client.post(
            f"/projects/{self.project_id}/tasks/{self.task_id}/comments",
            data={"content": "Hero copy is ready"},
        )
        self.assertEqual(response.status_code, 302)

        response = self.client.get(f"/projects/{self.project_id}/tasks/{self.task_id}")
        self.assertEqual(response.status_code, 200)
        self.assertIn(b"Hero copy is ready", response.data)
        with app.app_context():
            self.assertEqual(len(get_task_comments(self.project_id, self.task_id)), 1)
            self.assertEqual(db.session.get(Task, self.task_id).comment_count, 1)

    def test_member_management_pages(self):
        third_id = self._create_user("third")
        response = self.client.post(
            f"/projects/{self.project_id}/members", data={"username": "third", "role": "member"}
        )
        self.assertEqual(response.status_code, 302)

        response = self.client.post(f"/projects/{self.project_id}/members/{third_id}/remove")
        self.assertEqual(response.status_code, 302)

    def test_delete_project_requires_owner(self):
        self._login(self.viewer_id)
        response = self.client.post(f"/projects/{self.project_id}/delete")
        self.assertEqual(response.status_code, 302)
        with app.app_context():
            self.assertIsNotNone(self._project())

        self._login(self.owner_id)
        response = self.client.post(f"/projects/{self.project_id}/delete")
        self.assertEqual(response.status_code, 302)
        with app.app_context():
            self.assertIsNone(db.session.get(Project, self.project_id))
            self.assertEqual(Task.query.count(), 0)

    def test_unknown_project_is_404(self):
        response = self.client.get("/projects/9999")
        self.assertEqual(response.status_code, 404)
