from conftest import auth_header, make_comment, make_user
from models import Role


def test_manager_adds_comment(client, manager, report):
    body = {"comment_type": "problem", "content": "値引きは10%まで可"}
    response = client.post(f"/api/reports/{report.id}/comments", json=body, headers=auth_header(manager))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["comment_type"] == "problem"
    assert data["user"] == {"id": manager.id, "name": "上長一郎", "role": "manager"}

    detail = client.get(f"/api/reports/{report.id}", headers=auth_header(manager)).json()["data"]
    assert [c["id"] for c in detail["comments"]] == [data["id"]]


def test_sales_cannot_comment(client, sales, report):
    body = {"comment_type": "general", "content": "自分でコメント"}
    response = client.post(f"/api/reports/{report.id}/comments", json=body, headers=auth_header(sales))

    assert response.status_code == 403
    assert response.json()["error"]["message"] == "コメントは上長のみ追加できます"


def test_comment_on_missing_report(client, manager):
    body = {"comment_type": "general", "content": "x"}
    response = client.post("/api/reports/9999/comments", json=body, headers=auth_header(manager))
    assert response.status_code == 404


def test_invalid_comment(client, manager, report):
    body = {"comment_type": "other", "content": ""}
    response = client.post(f"/api/reports/{report.id}/comments", json=body, headers=auth_header(manager))

    assert response.status_code == 422
    assert {d["field"] for d in response.json()["error"]["details"]} == {"comment_type", "content"}


def test_author_updates_comment(client, db, manager, report):
    comment = make_comment(db, report, manager)
    response = client.put(f"/api/comments/{comment.id}", json={"content": "修正しました"}, headers=auth_header(manager))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == comment.id
    assert data["content"] == "修正しました"


def test_other_manager_cannot_update_or_delete(client, db, manager, report):
    comment = make_comment(db, report, manager)
    another = make_user(db, "上長二郎", "manager2@example.com", Role.manager)

    response = client.put(f"/api/comments/{comment.id}", json={"content": "横取り"}, headers=auth_header(another))
    assert response.status_code == 403
    response = client.delete(f"/api/comments/{comment.id}", headers=auth_header(another))
    assert response.status_code == 403


def test_author_deletes_comment(client, db, manager, report):
    comment = make_comment(db, report, manager)
    comment_id = comment.id

    response = client.delete(f"/api/comments/{comment_id}", headers=auth_header(manager))
    assert response.status_code == 204

    detail = client.get(f"/api/reports/{report.id}", headers=auth_header(manager)).json()["data"]
    assert detail["comments"] == []
    assert client.delete(f"/api/comments/{comment_id}", headers=auth_header(manager)).status_code == 404


def test_malformed_comment_id(client, manager):
    response = client.put("/api/comments/xyz", json={"content": "x"}, headers=auth_header(manager))
    assert response.status_code == 422
