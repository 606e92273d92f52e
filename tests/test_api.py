from app import app, db
from models.comment import Comment
from models.project import Project
from models.project_member import ProjectMember
from models.task import Task
from services.member_service import add_member
from services.project_service import create_project
from services.task_service import create_task
from tests.utils.app_case import AppTestCase


class ProjectApiTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.owner_id = self._create_user("owner")
        self.viewer_id = self._create_user("viewer")
        self.outsider_id = self._create_user("outsider")
        self._login(self.owner_id)

    def _create_project(self, name="Roadmap", **extra):
        response = self.client.post("/api/projects", json={"name": name, **extra})
        self.assertEqual(response.status_code, 201)
        return response.get_json()["project"]

    def _create_task(self, project_id, title, **extra):
        response = self.client.post(
            f"/api/projects/{project_id}/tasks", json={"title": title, **extra}
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def test_requests_without_session_get_401(self):
        with self.client.session_transaction() as client_session:
            client_session.clear()
        response = self.client.get("/api/projects")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()["success"])

    def test_create_project_uses_defaults(self):
        project = self._create_project(description="Q4 plan")
        self.assertEqual(project["color"], "#3b82f6")
        self.assertEqual(project["emoji"], "📋")
        self.assertEqual(project["task_count"], 0)
        self.assertEqual(project["completed_task_count"], 0)
        self.assertEqual(project["owner_id"], self.owner_id)

        listing = self.client.get("/api/projects").get_json()
        self.assertEqual([item["id"] for item in listing["projects"]], [project["id"]])

    def test_create_project_requires_name(self):
        response = self.client.post("/api/projects", json={"name": "  "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Name is required")

        response = self.client.post("/api/projects", json={"name": "Bad", "color": "blue"})
        self.assertEqual(response.status_code, 400)

    def test_task_lifecycle_keeps_counters_in_step(self):
        project = self._create_project()
        payload = self._create_task(
            project["id"],
            "Design mockups",
            priority="high",
            tags=["design", "design", "ui"],
            due_date="2026-11-01T09:00:00Z",
        )
        task = payload["task"]
        self.assertEqual(task["tags"], ["design", "ui"])
        self.assertEqual(task["due_date"], "2026-11-01T09:00:00")
        self.assertEqual(payload["project"]["task_count"], 1)

        response = self.client.put(
            f"/api/tasks/{task['id']}",
            json={"project_id": project["id"], "status": "completed"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["task"]["status"], "completed")
        self.assertIsNotNone(body["task"]["completed_at"])
        self.assertEqual(body["project"]["completed_task_count"], 1)
        self.assertEqual(body["project"]["completion_percentage"], 100)

        detail = self.client.get(f"/api/projects/{project['id']}").get_json()["project"]
        self.assertEqual(detail["status_counts"]["completed"], 1)

        response = self.client.delete(f"/api/tasks/{task['id']}?project_id={project['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["project"]["task_count"], 0)
        self.assertEqual(response.get_json()["project"]["completed_task_count"], 0)

    def test_task_endpoints_require_project_id(self):
        project = self._create_project()
        task = self._create_task(project["id"], "Needs project")["task"]

        response = self.client.get(f"/api/tasks/{task['id']}")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Project ID is required")

        response = self.client.get(f"/api/tasks/{task['id']}?project_id={project['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["task"]["title"], "Needs project")

    def test_task_under_another_project_is_not_found(self):
        first = self._create_project("First")
        second = self._create_project("Second")
        task = self._create_task(first["id"], "Belongs to first")["task"]

        response = self.client.put(
            f"/api/tasks/{task['id']}",
            json={"project_id": second["id"], "status": "completed"},
        )
        self.assertEqual(response.status_code, 404)
        with app.app_context():
            self.assertEqual(db.session.get(Project, first["id"]).completed_task_count, 0)

    def test_invalid_update_is_rejected(self):
        project = self._create_project()
        task = self._create_task(project["id"], "Strict")["task"]

        response = self.client.put(
            f"/api/tasks/{task['id']}",
            json={"project_id": project["id"], "status": "blocked"},
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.put(
            f"/api/tasks/{task['id']}",
            json={"project_id": project["id"], "unknown": 1},
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_assignee_is_a_bad_request(self):
        project = self._create_project()
        response = self.client.post(
            f"/api/projects/{project['id']}/tasks", json={"title": "Ghost", "assignee_id": 9999}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("Assignee", response.get_json()["error"])

    def test_status_filter(self):
        project = self._create_project()
        self._create_task(project["id"], "Open")
        self._create_task(project["id"], "Closed", status="completed")

        response = self.client.get(f"/api/projects/{project['id']}/tasks?status=completed")
        titles = [task["title"] for task in response.get_json()["tasks"]]
        self.assertEqual(titles, ["Closed"])

        response = self.client.get(f"/api/projects/{project['id']}/tasks?status=all")
        self.assertEqual(len(response.get_json()["tasks"]), 2)

    def test_private_project_is_hidden_from_outsiders(self):
        project = self._create_project()
        self._login(self.outsider_id)

        response = self.client.get(f"/api/projects/{project['id']}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/projects").get_json()["projects"], [])

    def test_viewer_can_read_but_not_write(self):
        project = self._create_project()
        task = self._create_task(project["id"], "Read only")["task"]
        with app.app_context():
            add_member(project["id"], self.viewer_id, "viewer")
        self._login(self.viewer_id)

        response = self.client.get(f"/api/projects/{project['id']}/tasks")
        self.assertEqual(response.status_code, 200)
        response = self.client.post(f"/api/projects/{project['id']}/tasks", json={"title": "Nope"})
        self.assertEqual(response.status_code, 403)
        response = self.client.put(
            f"/api/tasks/{task['id']}",
            json={"project_id": project["id"], "status": "completed"},
        )
        self.assertEqual(response.status_code, 403)
        response = self.client.delete(f"/api/projects/{project['id']}")
        self.assertEqual(response.status_code, 403)

    def test_update_project_ignores_counters(self):
        project = self._create_project()
        response = self.client.put(
            f"/api/projects/{project['id']}",
            json={"name": "Renamed", "task_count": 99, "color": "#FF0000"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()["project"]
        self.assertEqual(body["name"], "Renamed")
        self.assertEqual(body["color"], "#ff0000")
        self.assertEqual(body["task_count"], 0)

    def test_delete_project_cascades(self):
        with app.app_context():
            project = create_project(self.owner_id, name="Temporary")
            project_id = project.id
            task = create_task(project_id, title="Gone soon", creator_id=self.owner_id)
            db.session.add(
                Comment(project_id=project_id, task_id=task.id, author_id=self.owner_id, content="hi")
            )
            db.session.commit()
            add_member(project_id, self.viewer_id, "member")

        response = self.client.delete(f"/api/projects/{project_id}")
        self.assertEqual(response.status_code, 200)
        with app.app_context():
            self.assertIsNone(db.session.get(Project, project_id))
            self.assertEqual(Task.query.count(), 0)
            self.assertEqual(Comment.query.count(), 0)
            self.assertEqual(ProjectMember.query.count(), 0)

    def test_recount_endpoint(self):
        project = self._create_project()
        self._create_task(project["id"], "Counted", status="completed")
        with app.app_context():
            stored = db.session.get(Project, project["id"])
            stored.task_count = 5
            db.session.commit()

        response = self.client.post(f"/api/projects/{project['id']}/recount")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()["project"]
        self.assertEqual((body["task_count"], body["completed_task_count"]), (1, 1))

    def test_reorder_endpoint(self):
        project = self._create_project()
        first = self._create_task(project["id"], "First")["task"]
        second = self._create_task(project["id"], "Second")["task"]

        response = self.client.post(
            f"/api/projects/{project['id']}/tasks/reorder",
            json={"items": [{"id": first["id"], "order": 2}, {"id": second["id"], "order": 1}]},
        )
        self.assertEqual(response.status_code, 200)
        listing = self.client.get(f"/api/projects/{project['id']}/tasks").get_json()["tasks"]
        self.assertEqual([task["id"] for task in listing], [second["id"], first["id"]])

    def test_csrf_is_enforced_on_json_writes_when_enabled(self):
        app.config["WTF_CSRF_ENABLED"] = True
        response = self.client.post("/api/projects", json={"name": "Protected"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("CSRF", response.get_json()["error"])

    def test_current_user_endpoints(self):
        response = self.client.get("/api/users/me")
        self.assertEqual(response.get_json()["user"]["username"], "owner")

        response = self.client.put("/api/users/me", json={"theme": "dark", "timezone": "Europe/Paris"})
        self.assertEqual(response.status_code, 200)
        user = response.get_json()["user"]
        self.assertEqual(user["theme"], "dark")
        self.assertEqual(user["timezone"], "Europe/Paris")
        with self.client.session_transaction() as client_session:
            self.assertEqual(client_session["theme"], "dark")

        response = self.client.put("/api/users/me", json={"theme": "neon"})
        self.assertEqual(response.status_code, 400)
