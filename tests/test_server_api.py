"""
HTTP API tests against the sample data in data/.

Covers:
- /health and the catalog/rules endpoints
- /api/plan/new, /api/plan/apply (every action), /api/plan/validate
- /api/plan/export CSV attachment
- 400 envelopes for invalid bodies and 404 for unknown /api routes
"""

from datetime import date

import pytest
import server


@pytest.fixture(scope="module")
def client():
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


def _new_plan(client, curriculum="FBA", year="2025/2026"):
    resp = client.post("/api/plan/new", json={"year": year, "curriculum": curriculum, "lang": "en"})
    assert resp.status_code == 200
    return resp.get_json()


def _apply(client, state, action):
    body = {
        "year": state["year"],
        "curriculum": state["curriculum"],
        "lang": "en",
        "plan": state["plan"],
        "action": action,
    }
    return client.post("/api/plan/apply", json=body)


def _tables(state):
    return {entry["name"]: entry["table"] for entry in state["plan"]}


class TestCatalogEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"

    def test_exams_availability_and_tables(self, client):
        resp = client.get("/api/exams?year=2018/2019&curriculum=F94&lang=en")
        assert resp.status_code == 200
        exams = {e["id"]: e for e in resp.get_json()["exams"]}
        deep = exams["Deep Learning"]
        assert deep["available"] is False
        assert deep["next_availability"] == "Available from 2020/2021"
        assert deep["allowed_tables"] == ["B", "C"]
        assert exams["Machine Learning"]["next_availability"] is None

    def test_exams_bad_curriculum(self, client):
        resp = client.get("/api/exams?curriculum=XYZ")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_rules_summary(self, client):
        data = client.get("/api/rules").get_json()
        assert data["common"]["total_credits"] == 120
        assert data["programs"]["F94"]["aggregate"] == {"source": "BC", "tables": ["B", "C"], "min_credits": 48}
        assert data["programs"]["FBA"]["table_minimums"] == {"1": 12, "2": 54}

    def test_rules_year_selector(self, client):
        years = client.get("/api/rules").get_json()["years"]
        assert years[0] == f"{date.today().year}/{date.today().year + 1}"
        assert years[-1] == "2014/2015"
        assert len(years) == date.today().year - 2014 + 1


class TestPlanNew:
    def test_defaults(self, client):
        state = _new_plan(client)
        assert state["ok"] is True
        assert [e["id"] for e in state["plan"]] == ["prova-finale", "tirocinio"]
        assert state["tables"] == ["Obbligatori", "1", "2", "Facoltativi", "Fuori Piano"]
        validation = state["validation"]
        assert validation["total_credits"] == 42
        assert validation["is_valid"] is False
        assert validation["messages"][-1] == "Total: 42/120 CFU"

    def test_bad_year(self, client):
        resp = client.post("/api/plan/new", json={"year": "soon"})
        assert resp.status_code == 400
        assert resp.get_json()["mode"] == "error"


class TestPlanApply:
    def test_add_exam(self, client):
        state = _apply(client, _new_plan(client), {"type": "add", "exam_id": "Algoritmi Avanzati"}).get_json()
        assert state["ok"] is True
        assert _tables(state)["Algoritmi Avanzati"] == "1"

    def test_add_twice(self, client):
        state = _apply(client, _new_plan(client), {"type": "add", "exam_id": "Algoritmi Avanzati"}).get_json()
        again = _apply(client, state, {"type": "add", "exam_id": "Algoritmi Avanzati"}).get_json()
        assert again["ok"] is False
        assert len(again["plan"]) == len(state["plan"])

    def test_add_unknown_exam(self, client):
        state = _apply(client, _new_plan(client), {"type": "add", "exam_id": "Astrologia"}).get_json()
        assert state["ok"] is False

    def test_add_custom(self, client):
        state = _apply(client, _new_plan(client), {"type": "add_custom", "name": "Erasmus", "cfu": 6}).get_json()
        custom = [e for e in state["plan"] if e["isCustom"] and e["table"] != "Obbligatori"]
        assert len(custom) == 1
        assert custom[0]["id"].startswith("custom-")
        assert custom[0]["table"] == "Facoltativi"

    def test_remove_mandatory_refused(self, client):
        state = _apply(client, _new_plan(client), {"type": "remove", "entry_id": "prova-finale"}).get_json()
        assert state["ok"] is False
        assert len(state["plan"]) == 2

    def test_move_disallowed(self, client):
        state = _apply(client, _new_plan(client), {"type": "add", "exam_id": "Algoritmi Avanzati"}).get_json()
        moved = _apply(client, state, {"type": "move", "entry_id": "Algoritmi Avanzati", "table": "2"}).get_json()
        assert moved["ok"] is False

    def test_set_curriculum_migrates(self, client):
        state = _apply(client, _new_plan(client), {"type": "add", "exam_id": "Machine Learning"}).get_json()
        state = _apply(client, state, {"type": "set_curriculum", "curriculum": "F94"}).get_json()
        assert state["curriculum"] == "F94"
        assert _tables(state)["Machine Learning"] == "B"
        assert state["tables"] == ["Obbligatori", "A", "B", "C", "Facoltativi", "Fuori Piano"]

    def test_set_year(self, client):
        state = _apply(client, _new_plan(client), {"type": "set_year", "year": "2020/21"}).get_json()
        assert state["year"] == "2020/2021"

    def test_reset(self, client):
        state = _apply(client, _new_plan(client), {"type": "add", "exam_id": "Data Mining"}).get_json()
        state = _apply(client, state, {"type": "reset"}).get_json()
        assert [e["id"] for e in state["plan"]] == ["prova-finale", "tirocinio"]

    def test_invalid_action(self, client):
        resp = _apply(client, _new_plan(client), {"type": "explode"})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_invalid_plan_entry(self, client):
        state = _new_plan(client)
        state["plan"].append({"id": "x", "cfu": 6, "table": "Nowhere"})
        resp = _apply(client, state, {"type": "reset"})
        assert resp.status_code == 400


class TestPlanValidateAndExport:
    def test_validate_reports_inconsistencies(self, client):
        state = _new_plan(client)
        plan = state["plan"] + [
            {"id": "Ghost", "examId": "Ghost", "name": "Ghost", "cfu": 6, "table": "1", "isCustom": False},
        ]
        resp = client.post("/api/plan/validate", json={"year": "2025/2026", "curriculum": "FBA", "plan": plan, "lang": "en"})
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["tables"]["1"]["current"] == 6
        assert data["inconsistencies"] == [{"entry_id": "Ghost", "issue": "unknown_exam"}]

    def test_export_csv(self, client):
        state = _new_plan(client)
        resp = client.post("/api/plan/export", json={"year": "2025/2026", "curriculum": "FBA", "plan": state["plan"], "lang": "en"})
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "piano_studi_FBA_2025-2026.csv" in resp.headers["Content-Disposition"]
        lines = resp.get_data(as_text=True).splitlines()
        assert lines[0].startswith("Exam,CFU,4 month period,Table")
        assert len(lines) == 3

    def test_unknown_api_route(self, client):
        assert client.get("/api/nope").status_code == 404
