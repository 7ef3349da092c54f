from __future__ import annotations

import hashlib

import pytest

from extensions import db
from helpers import ADMIN_CODE, seed_item, submit
from models import DailyAssignment, Item, ItemHint


def admin(client, action: str, **payload):
    return client.post("/api/admin/items", json={"action": action, "adminCode": ADMIN_CODE, **payload})


class TestVerify:
    def test_valid_code(self, client):
        assert client.post("/api/admin/verify", json={"code": ADMIN_CODE}).get_json() == {"valid": True}

    def test_invalid_code(self, client):
        assert client.post("/api/admin/verify", json={"code": "nope"}).get_json() == {"valid": False}
        assert client.post("/api/admin/verify", json={}).get_json() == {"valid": False}

    def test_missing_configuration(self, app_factory):
        client = app_factory(ADMIN_CODE=None, ADMIN_CODE_HASH=None).test_client()
        resp = client.post("/api/admin/verify", json={"code": "anything"})
        assert resp.status_code == 500
        assert resp.get_json()["valid"] is False

    def test_hashed_code(self, app_factory):
        digest = hashlib.sha256(b"etoile").hexdigest()
        client = app_factory(ADMIN_CODE=None, ADMIN_CODE_HASH=digest).test_client()
        assert client.post("/api/admin/verify", json={"code": "etoile"}).get_json() == {"valid": True}
        assert client.post("/api/admin/verify", json={"code": "sapin"}).get_json() == {"valid": False}


class TestAuthorization:
    @pytest.mark.parametrize("path", ["/api/admin/items", "/api/admin/stats"])
    def test_bad_code_is_401(self, client, path):
        resp = client.post(path, json={"action": "list", "adminCode": "wrong"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Code administrateur invalide"

    def test_every_action_rechecks_the_code(self, app, client):
        seed_item(app, "c1", "Marie Dupont")
        resp = client.post("/api/admin/items", json={"action": "delete", "itemId": "c1"})
        assert resp.status_code == 401
        with app.app_context():
            assert db.session.get(Item, "c1") is not None


class TestItems:
    def test_add_then_list(self, client):
        resp = admin(client, "add", item={"prompt": "Qui fait du ski ?", "answer": "Marie Dupont", "day": 1, "ordinal": 1})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["item"]["answer"] == "Marie Dupont"
        assert [item["prompt"] for item in body["items"]] == ["Qui fait du ski ?"]

        listed = admin(client, "list").get_json()
        assert listed["items"][0]["id"] == body["item"]["id"]
        assert listed["assignments"] == []

    def test_add_strips_markup_from_prompt(self, client):
        body = admin(client, "add", item={"prompt": "<b>Qui</b> chante ?", "answer": "Léa"}).get_json()
        assert body["item"]["prompt"] == "Qui chante ?"

    def test_add_accepts_legacy_field_names(self, client):
        body = admin(client, "add", secret={"title": "Secret", "person_name": "Paul Martin"}).get_json()
        assert body["item"]["prompt"] == "Secret"
        assert body["item"]["answer"] == "Paul Martin"

    def test_add_requires_prompt_and_answer(self, client):
        resp = admin(client, "add", item={"prompt": "", "answer": ""})
        assert resp.status_code == 400

    def test_ordinal_must_be_one_or_two(self, client):
        resp = admin(client, "add", item={"prompt": "Q", "answer": "A", "ordinal": 3})
        assert resp.status_code == 400
        assert "1 ou 2" in resp.get_json()["error"]

    def test_item_cap(self, app_factory):
        client = app_factory(MAX_ITEMS=2).test_client()
        for answer in ("A1", "A2"):
            assert admin(client, "add", item={"prompt": "Q", "answer": answer}).status_code == 200
        resp = admin(client, "add", item={"prompt": "Q", "answer": "A3"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Maximum 2 indices atteint"

    def test_update(self, app, client):
        seed_item(app, "c1", "Marie Dupont")
        body = admin(client, "update", itemId="c1", item={"answer": "Paul Martin", "is_active": False}).get_json()
        assert body["item"]["answer"] == "Paul Martin"
        assert body["item"]["is_active"] is False
        assert body["item"]["prompt"] == "Indice c1"

    def test_update_unknown_item(self, client):
        assert admin(client, "update", itemId="ghost", item={"answer": "x"}).status_code == 404

    def test_delete_clears_assignments(self, app, client):
        seed_item(app, "c1", "Marie Dupont")
        seed_item(app, "c2", "Paul Martin")
        admin(client, "setDailyItems", day=3, itemIds=["c1", "c2"])
        body = admin(client, "delete", itemId="c1").get_json()
        assert [item["id"] for item in body["items"]] == ["c2"]
        assert body["assignments"] == [{"day": 3, "item_ids": ["c2"]}]

    def test_delete_keeps_submissions(self, app, client):
        seed_item(app, "c1", "Marie Dupont")
        submit(client, "Alice", "c1", "Marie Dupont")
        admin(client, "delete", itemId="c1")
        rows = client.get("/api/leaderboard").get_json()["leaderboard"]
        assert rows[0]["score"] == 10

    def test_unknown_action(self, client):
        resp = admin(client, "explode")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Action inconnue"


class TestHints:
    def test_hint_lifecycle(self, app, client):
        seed_item(app, "s1", "Marie Dupont", day=None)
        body = admin(client, "addHint", itemId="s1", hintText="Elle aime le ski").get_json()
        hint_id = body["hint"]["id"]
        assert body["items"][0]["hints"] == [{"id": hint_id, "item_id": "s1", "text": "Elle aime le ski"}]

        body = admin(client, "updateHint", hintId=hint_id, clueText="Elle aime la montagne").get_json()
        assert body["items"][0]["hints"][0]["text"] == "Elle aime la montagne"

        body = admin(client, "deleteHint", hintId=hint_id).get_json()
        assert body["items"][0]["hints"] == []

    def test_hint_on_unknown_item(self, client):
        assert admin(client, "addHint", itemId="ghost", hintText="x").status_code == 404

    def test_hints_go_with_their_item(self, app, client):
        seed_item(app, "s1", "Marie Dupont")
        admin(client, "addHint", itemId="s1", hintText="Indice")
        admin(client, "delete", itemId="s1")
        with app.app_context():
            assert ItemHint.query.count() == 0


class TestDailyAssignments:
    def test_assign_two_items(self, app, client):
        seed_item(app, "s1", "A", day=None)
        seed_item(app, "s2", "B", day=None)
        body = admin(client, "setDailyItems", day=2, secretIds=["s1", "s2"]).get_json()
        assert body["assignment"] == {"day": 2, "item_ids": ["s1", "s2"]}
        by_id = {item["id"]: item for item in body["items"]}
        assert by_id["s1"]["assigned_days"] == [2]

    def test_reassign_replaces(self, app, client):
        seed_item(app, "s1", "A", day=None)
        admin(client, "setDailyItems", day=2, itemIds=["s1"])
        body = admin(client, "setDailyItems", day=2, itemIds=[]).get_json()
        assert body["assignment"] == {"day": 2, "item_ids": []}
        with app.app_context():
            assert db.session.get(DailyAssignment, 2).item_ids == []

    def test_more_than_two_items_refused(self, app, client):
        for item_id in ("s1", "s2", "s3"):
            seed_item(app, item_id, "A")
        assert admin(client, "setDailyItems", day=1, itemIds=["s1", "s2", "s3"]).status_code == 400

    def test_unknown_item_refused(self, client):
        assert admin(client, "setDailyItems", day=1, itemIds=["ghost"]).status_code == 404

    def test_assignment_gates_answers(self, app, client):
        seed_item(app, "s1", "Marie Dupont", day=None)
        admin(client, "setDailyItems", day=5, itemIds=["s1"])
        body = submit(client, "Alice", "s1", "Marie Dupont", day=4).get_json()
        assert body["reason"] == "not_yet_available"


class TestGameConfig:
    def test_round_trip(self, client):
        assert admin(client, "getGameConfig").get_json()["config"] == {"start_date": None, "end_date": None}
        body = admin(client, "updateGameConfig", startDate="2025-12-01", endDate="2025-12-24").get_json()
        assert body["config"] == {"start_date": "2025-12-01", "end_date": "2025-12-24"}
        body = admin(client, "updateGameConfig", startDate="2025-12-02", endDate="2025-12-24").get_json()
        assert body["config"]["start_date"] == "2025-12-02"

    def test_end_before_start(self, client):
        assert admin(client, "updateGameConfig", startDate="2025-12-24", endDate="2025-12-01").status_code == 400

    def test_garbage_dates(self, client):
        assert admin(client, "updateGameConfig", startDate="bientôt").status_code == 400


class TestStats:
    def test_stats_and_leaderboard(self, app, client):
        seed_item(app, "c1", "Marie Dupont")
        seed_item(app, "c2", "Paul Martin")
        submit(client, "Alice", "c1", "Marie Dupont")
        submit(client, "Alice", "c2", "nope")
        submit(client, "Bob", "c1", "Marie Dupont")

        resp = client.post("/api/admin/stats", json={"adminCode": ADMIN_CODE, "day": 1})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["stats"]["total_players"] == 2
        assert body["stats"]["total_submissions"] == 3
        assert body["stats"]["completed_players"] == ["Alice"]
        assert body["stats"]["partial_players"] == ["Bob"]
        assert [(row["name"], row["score"]) for row in body["leaderboard"]] == [("Alice", 10), ("Bob", 10)]
        assert body["submissions"][0]["player_name"] == "Bob"
