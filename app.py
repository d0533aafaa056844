# app.py
from flask import (Flask, render_template, request, redirect, url_for, session, flash, jsonify,
                   g, current_app)
from werkzeug.security import generate_password_hash, check_password_hash
from functools import wraps

import config
from ballots import VotingClient
from db import SessionLocal, init_db
from exceptions import ChapterVoteError, InvalidVoteError, NoActiveEventError, PersistenceError
from models import PHASE_VALUES, EventTypeEnum, PhaseEnum
from notify import EventState, PushNotifier
from positions import group_number, group_positions, live_group
from progression import EventProgression, create_new, reconcile
from store import VoteStore
from tally import (approved_count, rank_results, tally_candidate, tally_event, tally_positions,
                   total_final_votes)
from upload import parse_upload

logger = config.get_logger(__name__)


def get_store() -> VoteStore:
    return current_app.extensions["vote_store"]


def get_notifier() -> PushNotifier:
    return current_app.extensions["event_notifier"]


# auth decorators
def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if g.user is None:
            flash("Please log in first", "warning")
            return redirect(url_for("login"))
        return f(*args, **kwargs)
    return wrapper


def approval_required(f):
    @wraps(f)
    @login_required
    def wrapper(*args, **kwargs):
        if not g.user.is_approved:
            return redirect(url_for("pending"))
        return f(*args, **kwargs)
    return wrapper


def admin_required(f):
    @wraps(f)
    @login_required
    def wrapper(*args, **kwargs):
        if not g.user.is_admin:
            flash("Access denied: this page is only accessible to administrators.", "danger")
            return redirect(url_for("dashboard"))
        return f(*args, **kwargs)
    return wrapper


def create_app(store=None, notifier=None, secret_key=None):
    app = Flask(__name__, template_folder="templates")
    app.secret_key = secret_key or config.SECRET_KEY
    app.extensions["vote_store"] = store or VoteStore(SessionLocal)
    app.extensions["event_notifier"] = notifier or PushNotifier()

    @app.before_request
    def load_user():
        user_id = session.get("user_id")
        g.user = get_store().get_profile(user_id) if user_id else None

    @app.context_processor
    def inject_user():
        return {"current_user": g.get("user"), "poll_interval": config.POLL_INTERVAL_SECONDS}

    @app.errorhandler(PersistenceError)
    def persistence_failed(e):
        return render_template("error.html", message=e.message), 503

    register_routes(app)
    return app


def _progression():
    return EventProgression.load(get_store(), notifier=get_notifier())


def _run_transition(action):
    """Apply an admin transition to the active event and report the outcome."""
    try:
        action(_progression())
    except ChapterVoteError as e:
        flash(e.message, "warning")
    return redirect(url_for("admin_dashboard"))


def register_routes(app):

    @app.route("/")
    def index():
        if g.user is None:
            return redirect(url_for("login"))
        if not g.user.is_approved:
            return redirect(url_for("pending"))
        return redirect(url_for("dashboard"))

    @app.route("/register", methods=["GET", "POST"])
    def register():
        if request.method == "POST":
            email = (request.form.get("email") or "").strip()
            pwd = request.form.get("password") or ""
            if not email or not pwd:
                flash("Email and password are required", "danger")
                return render_template("register.html")
            try:
                u = get_store().create_profile(email, generate_password_hash(pwd),
                                               name=request.form.get("name") or None)
            except PersistenceError as e:
                flash(e.message, "danger")
                return render_template("register.html")
            session["user_id"] = u.id
            return redirect(url_for("pending"))
        return render_template("register.html")

    @app.route("/login", methods=["GET", "POST"])
    def login():
        if request.method == "POST":
            u = get_store().get_profile_by_email(request.form.get("email") or "")
            if u and check_password_hash(u.password, request.form.get("password") or ""):
                session["user_id"] = u.id
                flash("Logged in")
                return redirect(url_for("index"))
            flash("Invalid credentials", "danger")
        return render_template("login.html")

    @app.route("/logout")
    def logout():
        session.clear()
        return redirect(url_for("login"))

    @app.route("/pending")
    @login_required
    def pending():
        if g.user.is_approved:
            return redirect(url_for("dashboard"))
        return render_template("pending.html")

    @app.route("/dashboard")
    @login_required
    def dashboard():
        return render_template("dashboard.html")

    ### STATE POLLING ###
    @app.route("/api/event/state")
    @login_required
    def api_event_state():
        state = EventState.from_event(get_store().get_active_event())
        return jsonify(dict(state.to_dict(), poll_interval=config.POLL_INTERVAL_SECONDS))

    ### VOTER ###
    @app.route("/vote")
    @approval_required
    def vote_page():
        store = get_store()
        event = store.get_active_event()
        if event is None:
            return render_template("vote.html", event=None)
        candidates = store.list_candidates(event.id)
        state = EventState.from_event(event)
        client = VotingClient(store, g.user)
        client.load_voted(event)

        if event.type == EventTypeEnum.exec:
            groups = group_positions(candidates)
            group = live_group(groups, event.current_candidate_index)
            choice = store.position_choice(g.user.id, event.id, group.position) if group else None
            return render_template("vote_exec.html", event=event, state=state, group=group,
                                   group_number=group_number(groups, group) if group else 0,
                                   group_count=len(groups), choice=choice)

        index = event.current_candidate_index
        candidate = candidates[index] if 0 <= index < len(candidates) else None
        has_voted = bool(candidate) and client.has_voted(candidate.id, event.phase)
        return render_template("vote.html", event=event, state=state, candidate=candidate,
                               has_voted=has_voted, choices=_phase_choices(event.phase))

    @app.route("/vote/cast", methods=["POST"])
    @approval_required
    def vote_cast():
        store = get_store()
        try:
            event = store.get_active_event()
            if event is None:
                raise NoActiveEventError()
            candidates = store.list_candidates(event.id)
            candidate = _live_candidate(event, candidates, request.form.get("candidate_id", type=int))
            phase = _parse_phase(request.form.get("phase"))
            VotingClient(store, g.user).submit(event, candidate, phase, request.form.get("value"))
            flash("Vote submitted successfully!", "success")
        except ChapterVoteError as e:
            flash(e.message, "danger")
        return redirect(url_for("vote_page"))

    @app.route("/vote/position", methods=["POST"])
    @approval_required
    def vote_position():
        store = get_store()
        try:
            event = store.get_active_event()
            if event is None:
                raise NoActiveEventError()
            group = live_group(group_positions(store.list_candidates(event.id)),
                               event.current_candidate_index)
            if group is None or group.position != request.form.get("position"):
                raise InvalidVoteError("Voting has moved on to another position.")
            VotingClient(store, g.user).submit_position(event, group,
                                                        request.form.get("candidate_id", type=int))
            flash(f"Vote for {group.position} submitted.", "success")
        except ChapterVoteError as e:
            flash(e.message, "danger")
        return redirect(url_for("vote_page"))

    ### RESULTS ###
    @app.route("/results")
    @approval_required
    def results():
        store = get_store()
        event_id = request.args.get("event_id", type=int)
        event = store.get_event(event_id) if event_id else store.get_active_event()
        if event is None:
            return render_template("results.html", event=None)
        candidates = store.list_candidates(event.id)
        votes = store.fetch_all_votes(event.id)
        ranked = rank_results(tally_event(votes, candidates, event))
        positions = []
        if event.type == EventTypeEnum.exec:
            positions = tally_positions(votes, group_positions(candidates))
        return render_template("results.html", event=event, results=ranked, positions=positions,
                               total_votes=total_final_votes(ranked),
                               approved=approved_count(ranked))

    ### ADMIN ###
    @app.route("/admin")
    @admin_required
    def admin_dashboard():
        return render_template("admin_dashboard.html", **_admin_context())

    @app.route("/admin/users/<int:user_id>/approve", methods=["POST"])
    @admin_required
    def admin_approve_user(user_id):
        try:
            get_store().set_approval(user_id, True)
            flash("User approved", "success")
        except ChapterVoteError as e:
            flash(e.message, "danger")
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin/users/<int:user_id>/revoke", methods=["POST"])
    @admin_required
    def admin_revoke_user(user_id):
        try:
            get_store().set_approval(user_id, False)
            flash("Approval removed", "success")
        except ChapterVoteError as e:
            flash(e.message, "danger")
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin/users/<int:user_id>/voting", methods=["POST"])
    @admin_required
    def admin_toggle_voting(user_id):
        try:
            get_store().set_can_vote(user_id, request.form.get("can_vote") == "1")
        except ChapterVoteError as e:
            flash(e.message, "danger")
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin/upload/preview", methods=["POST"])
    @admin_required
    def admin_upload_preview():
        try:
            plan = parse_upload(request.form.get("json") or "", request.form.get("event_name"))
        except ChapterVoteError as e:
            flash(e.message, "danger")
            return redirect(url_for("admin_dashboard"))
        flash(f"{len(plan.candidates)} candidates ready to upload", "info")
        return render_template("admin_dashboard.html",
                               **_admin_context(preview=plan.preview(),
                                                json_input=request.form.get("json"),
                                                event_name=request.form.get("event_name")))

    @app.route("/admin/upload", methods=["POST"])
    @admin_required
    def admin_upload():
        try:
            plan = parse_upload(request.form.get("json") or "", request.form.get("event_name"))
            threshold = request.form.get("approval_threshold", type=int)
            if threshold is None:
                threshold = config.DEFAULT_APPROVAL_THRESHOLD
            create_new(get_store(), plan, notifier=get_notifier(), approval_threshold=threshold)
            flash("Event and candidates uploaded successfully!", "success")
        except ChapterVoteError as e:
            flash(f"Upload failed: {e.message}", "danger")
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin/event/next", methods=["POST"])
    @admin_required
    def admin_next():
        return _run_transition(_advance)

    @app.route("/admin/event/prev", methods=["POST"])
    @admin_required
    def admin_prev():
        return _run_transition(_retreat)

    @app.route("/admin/event/promote", methods=["POST"])
    @admin_required
    def admin_promote():
        confirmed = request.form.get("confirm") == "yes"
        return _run_transition(lambda p: p.promote_phase(confirmed=confirmed))

    @app.route("/admin/event/end", methods=["POST"])
    @admin_required
    def admin_end():
        return _run_transition(lambda p: p.end())

    @app.route("/admin/event/threshold", methods=["POST"])
    @admin_required
    def admin_threshold():
        threshold = request.form.get("approval_threshold", type=int)
        if threshold is None:
            flash("Approval threshold must be a number.", "danger")
            return redirect(request.referrer or url_for("admin_dashboard"))
        try:
            event_id = request.form.get("event_id", type=int)
            EventProgression.load(get_store(), event_id, notifier=get_notifier()).set_threshold(threshold)
        except ChapterVoteError as e:
            flash(e.message, "warning")
        return redirect(request.referrer or url_for("admin_dashboard"))

    @app.route("/admin/event/reconcile", methods=["POST"])
    @admin_required
    def admin_reconcile():
        ended = reconcile(get_store())
        flash(f"Ended {ended} stale event(s)" if ended else "Only one event is open", "info")
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin/events/<int:event_id>/delete", methods=["POST"])
    @admin_required
    def admin_delete_event(event_id):
        try:
            get_store().delete_event(event_id)
            flash("Event deleted", "success")
        except ChapterVoteError as e:
            flash(e.message, "danger")
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin/display")
    @admin_required
    def admin_display():
        store = get_store()
        event = store.get_active_event()
        if event is None:
            return render_template("display.html", error="No active voting event found")
        if event.phase != PhaseEnum.final:
            return render_template("display.html",
                                   error="Display is only available during the final vote phase")
        candidates = store.list_candidates(event.id)
        if not candidates:
            return render_template("display.html", error="No candidates found for this event")
        i = request.args.get("i", 0, type=int) % len(candidates)
        candidate = candidates[i]
        opinion = tally_candidate(store.fetch_all_votes(event.id), candidate, event).opinion
        return render_template("display.html", error=None, event=event, candidate=candidate,
                               opinion=opinion, index=i, count=len(candidates),
                               prev_index=(i - 1) % len(candidates),
                               next_index=(i + 1) % len(candidates))


def _admin_context(**extra):
    store = get_store()
    event = store.get_active_event()
    candidates = store.list_candidates(event.id) if event else []
    candidate = None
    if event and 0 <= event.current_candidate_index < len(candidates):
        candidate = candidates[event.current_candidate_index]
    group = None
    if event and event.type == EventTypeEnum.exec:
        group = live_group(group_positions(candidates), event.current_candidate_index)
    context = dict(event=event, candidate=candidate, group=group,
                   candidate_count=len(candidates),
                   users=store.list_profiles(),
                   pending=store.list_profiles(pending_only=True),
                   past_events=store.list_events(ended_only=True),
                   preview=None, json_input="", event_name="",
                   default_threshold=config.DEFAULT_APPROVAL_THRESHOLD)
    context.update(extra)
    return context


def _advance(p):
    if p.event.type == EventTypeEnum.exec:
        p.advance_position(group_positions(p.store.list_candidates(p.event.id)))
    else:
        p.advance()


def _retreat(p):
    if p.event.type == EventTypeEnum.exec:
        p.retreat_position(group_positions(p.store.list_candidates(p.event.id)))
    else:
        p.retreat()


def _phase_choices(phase):
    return [v.value for v in PHASE_VALUES[phase]]


def _parse_phase(value):
    try:
        return PhaseEnum(value)
    except ValueError:
        raise InvalidVoteError(f"Unknown voting phase {value!r}.") from None


def _live_candidate(event, candidates, candidate_id):
    index = event.current_candidate_index
    if not 0 <= index < len(candidates):
        raise InvalidVoteError("There is no candidate open for voting.")
    if candidates[index].id != candidate_id:
        raise InvalidVoteError("Voting has moved on to another candidate.")
    return candidates[index]


if __name__ == "__main__":
    config.configure_logging()
    init_db()
    create_app().run(debug=config.DEBUG)
