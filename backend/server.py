import os
import sys
import time
import threading
from datetime import date

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, Response, g, jsonify, request
from dotenv import load_dotenv

from data_loader import EXAMS_FILE, RULES_FILE, load_data
from messages import DEFAULT_LANG, normalize_lang
from normalizer import academic_years, current_academic_year, normalize_year
from plan_engine import PlanEngine
from plan_io import export_csv, export_filename, restore, snapshot
from requirements import CURRICULUM_TABLES, DEFAULT_CURRICULUM, table_schema
from validators import find_plan_inconsistencies, validate_action, validate_plan_body

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path
_data_lock = threading.Lock()
_data_mtime = None


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


def _env_choice(name: str, choices, default: str) -> str:
    raw = os.environ.get(name, "").strip()
    return raw if raw in choices else default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
DEFAULT_UI_LANG = normalize_lang(os.environ.get("DEFAULT_LANG", DEFAULT_LANG))
DEFAULT_UI_CURRICULUM = _env_choice("DEFAULT_CURRICULUM", CURRICULUM_TABLES, DEFAULT_CURRICULUM)
DEFAULT_UI_YEAR = normalize_year(os.environ.get("DEFAULT_YEAR", "")) or current_academic_year(date.today())
FIRST_PLAN_YEAR = 2014


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in (EXAMS_FILE, RULES_FILE)
                if os.path.isfile(os.path.join(path, f))
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = load_data(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_data['exams'])} exams from {DATA_PATH}")
except FileNotFoundError:
    # Fall back to the repo data directory when DATA_PATH is stale.
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default data directory ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _data = load_data(DATA_PATH)
        _data_mtime = _data_file_mtime(DATA_PATH)
        print(f"[OK] Loaded {len(_data['exams'])} exams from {DATA_PATH}")
    else:
        print(f"[FATAL] Data directory not found: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload the catalog and rules when DATA_PATH changes on disk.

    Returns True when a reload occurred, else False.
    """
    global _data, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_data(DATA_PATH)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        print(f"[OK] Reloaded {len(new_data['exams'])} exams from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


def _error_response(error_code: str, message: str, status: int):
    return jsonify({
        "mode": "error",
        "error": {"error_code": error_code, "message": message},
    }), status


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    print(f"[ERROR] Unhandled exception: {e!r}", file=sys.stderr)
    return _error_response("SERVER_ERROR", "An unexpected server error occurred.", 500)


# ── Engine helpers ─────────────────────────────────────────────────────────────
def _build_engine(body: dict) -> PlanEngine:
    """
    Fresh engine for one request. The client owns the plan, so nothing is
    shared between requests except the loaded dataset.
    """
    engine = PlanEngine(
        _data["exams"],
        _data["rules"],
        year=DEFAULT_UI_YEAR,
        curriculum=DEFAULT_UI_CURRICULUM,
        lang=body.get("lang") or DEFAULT_UI_LANG,
    )
    plan = body.get("plan")
    if plan is None:
        engine.set_year(body.get("year") or DEFAULT_UI_YEAR)
        engine.set_curriculum(body.get("curriculum") or DEFAULT_UI_CURRICULUM)
        engine.init_defaults()
    else:
        restore(engine, {
            "year": body.get("year") or DEFAULT_UI_YEAR,
            "curriculum": body.get("curriculum") or DEFAULT_UI_CURRICULUM,
            "plan": plan,
        })
    return engine


def _plan_payload(engine: PlanEngine, ok: bool = True) -> dict:
    return {
        "ok": ok,
        **snapshot(engine),
        "tables": table_schema(engine.curriculum),
        "validation": engine.validate(),
    }


def _apply_action(engine: PlanEngine, action: dict) -> bool:
    kind = action["type"]
    if kind == "add":
        exam = engine.get_exam(str(action["exam_id"]))
        if exam is None:
            return False
        return engine.add_exam(exam, action.get("table") or None)
    if kind == "add_custom":
        engine.add_custom_exam(str(action["name"]).strip(), action["cfu"])
        return True
    if kind == "remove":
        return engine.remove_exam(str(action["entry_id"]))
    if kind == "move":
        return engine.move_exam(str(action["entry_id"]), action["table"])
    if kind == "set_year":
        return engine.set_year(action["year"])
    if kind == "set_curriculum":
        return engine.set_curriculum(action["curriculum"])
    if kind == "reset":
        engine.reset()
        return True
    return False


def _read_plan_body():
    body = request.get_json(force=True, silent=True)
    err_code, err_msg = validate_plan_body(body)
    return body, err_code, err_msg


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "exams": len(_data["exams"]),
        "curricula": list(_data["rules"].programs),
    })


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/api/exams", methods=["GET"])
def get_exams():
    """Catalog with availability and allowed tables for the requested year/curriculum."""
    _refresh_data_if_needed()
    year = request.args.get("year") or DEFAULT_UI_YEAR
    curriculum = request.args.get("curriculum") or DEFAULT_UI_CURRICULUM
    if normalize_year(year) is None:
        return _error_response("INVALID_INPUT", f"'year' value '{year}' is not a valid academic year.", 400)
    if curriculum not in CURRICULUM_TABLES:
        return _error_response(
            "INVALID_INPUT", f"'curriculum' must be one of: {', '.join(CURRICULUM_TABLES)}.", 400
        )

    engine = PlanEngine(
        _data["exams"],
        _data["rules"],
        year=year,
        curriculum=curriculum,
        lang=request.args.get("lang") or DEFAULT_UI_LANG,
    )
    exams_payload = [
        {
            "id": exam.id,
            "name": exam.name,
            "cfu": exam.cfu,
            "period": exam.period,
            "pillar": exam.pillar,
            "subpillar": exam.subpillar,
            "language": exam.language,
            "link": exam.link,
            "raw_table": exam.raw_table,
            "allowed_tables": engine.get_allowed_tables(exam),
            "available": engine.is_exam_available(exam),
            "next_availability": engine.get_next_availability_info(exam),
        }
        for exam in engine.exams
    ]
    return jsonify({"year": engine.year, "curriculum": engine.curriculum, "exams": exams_payload})


@app.route("/api/rules", methods=["GET"])
def get_rules():
    _refresh_data_if_needed()
    rules = _data["rules"]
    programs = {}
    for curriculum in CURRICULUM_TABLES:
        cur_rules = rules.for_curriculum(curriculum)
        programs[curriculum] = {
            "tables": table_schema(curriculum),
            "table_minimums": cur_rules.table_minimums(),
            "aggregate": (
                {
                    "source": cur_rules.aggregate.source,
                    "tables": list(cur_rules.aggregate.tables),
                    "min_credits": cur_rules.aggregate.min_credits,
                }
                if cur_rules.aggregate else None
            ),
        }
    return jsonify({
        "common": {
            "mandatory_exams": [
                {"name": ex.name, "credits": ex.credits} for ex in rules.common.mandatory_exams
            ],
            "free_exams_credits": rules.common.free_exams_credits,
            "total_credits": rules.common.total_credits,
        },
        "programs": programs,
        "years": academic_years(FIRST_PLAN_YEAR, date.today().year),
        "defaults": {
            "year": DEFAULT_UI_YEAR,
            "curriculum": DEFAULT_UI_CURRICULUM,
            "lang": DEFAULT_UI_LANG,
        },
    })


@app.route("/api/plan/new", methods=["POST"])
def new_plan():
    _refresh_data_if_needed()
    body = request.get_json(force=True, silent=True) or {}
    body = {k: v for k, v in body.items() if k != "plan"}
    err_code, err_msg = validate_plan_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    return jsonify(_plan_payload(_build_engine(body)))


@app.route("/api/plan/apply", methods=["POST"])
def apply_plan_action():
    """Apply one user action to a client-held plan and return the new state."""
    _refresh_data_if_needed()
    body, err_code, err_msg = _read_plan_body()
    if err_code:
        return _error_response(err_code, err_msg, 400)
    err_code, err_msg = validate_action(body.get("action"))
    if err_code:
        return _error_response(err_code, err_msg, 400)

    engine = _build_engine({**body, "plan": body.get("plan") or []})
    ok = _apply_action(engine, body["action"])
    return jsonify(_plan_payload(engine, ok=ok))


@app.route("/api/plan/validate", methods=["POST"])
def validate_plan():
    _refresh_data_if_needed()
    body, err_code, err_msg = _read_plan_body()
    if err_code:
        return _error_response(err_code, err_msg, 400)

    engine = _build_engine({**body, "plan": body.get("plan") or []})
    issues = find_plan_inconsistencies(body.get("plan") or [], set(_data["exams_by_id"]))
    return jsonify({**engine.validate(), "inconsistencies": issues})


@app.route("/api/plan/export", methods=["POST"])
def export_plan():
    _refresh_data_if_needed()
    body, err_code, err_msg = _read_plan_body()
    if err_code:
        return _error_response(err_code, err_msg, 400)

    engine = _build_engine({**body, "plan": body.get("plan") or []})
    filename = export_filename(engine.curriculum, engine.year)
    return Response(
        export_csv(engine),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = _env_int("PORT", 5000, minimum=1)
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
