import threading
from datetime import timedelta
from unittest.mock import MagicMock

import redis
from sqlalchemy.exc import OperationalError

from sessionhub.auth import RequestContext, cleanup_expired_sessions
from sessionhub.clock import utcnow
from sessionhub.config import get_settings
from sessionhub.directory import ActorDirectory, visible_email
from sessionhub.errors import ErrorCode
from sessionhub.models import Actor, AuthSession
from sessionhub.tokens import ExpiringTokenStore

from conftest import PASSWORD

settings = get_settings()


def _recovery_token(mailer):
    html = mailer.send.call_args.args[1]
    return html.split("/change-password/")[1].split('"')[0]


# --- signup ---

def test_signup_creates_actor_and_binds_context(directory, db):
    ctx = RequestContext(db)
    outcome = directory.signup(ctx, "Alice", "Alice@X.com", PASSWORD)

    assert outcome
    actor = outcome.value
    assert directory.get(actor.id).name == "Alice"
    assert actor.lower_case_name == "alice"
    assert actor.password_hash != PASSWORD
    assert ctx.session_id is not None
    assert ctx.current_actor_id() == actor.id
    assert RequestContext(db, ctx.session_id).current_actor_id() == actor.id


def test_distinct_signups_all_succeed(directory, db):
    ids = []
    for i in range(5):
        outcome = directory.signup(RequestContext(db), f"user{i}", f"user{i}@x.com", PASSWORD)
        assert outcome
        ids.append(outcome.value.id)

    assert len(set(ids)) == 5
    assert all(directory.get(i) is not None for i in ids)


def test_signup_validation_errors_are_field_scoped(directory, db):
    outcome = directory.signup(RequestContext(db), "a@b", "not-an-email", "short")

    assert not outcome
    fields = {e.field for e in outcome.errors}
    assert fields == {"name", "email", "password"}
    assert all(e.code == ErrorCode.VALIDATION for e in outcome.errors)


def test_signup_name_taken_is_case_insensitive(directory, db, create_actor):
    create_actor("Bob")
    outcome = directory.signup(RequestContext(db), "BOB", "other@x.com", PASSWORD)

    assert not outcome
    assert outcome.error.field == "name"
    assert outcome.error.message == "name is already taken"
    assert outcome.error.code == ErrorCode.CONFLICT


def test_signup_email_taken(directory, db, create_actor):
    create_actor("Bob", email="bob@x.com")
    outcome = directory.signup(RequestContext(db), "Robert", "BOB@x.com", PASSWORD)

    assert outcome.error.field == "email"
    assert outcome.error.message == "email is already taken"


def test_name_conflict_reported_before_email_conflict(directory, db, create_actor):
    create_actor("Bob", email="bob@x.com")
    outcome = directory.signup(RequestContext(db), "bob", "bob@x.com", PASSWORD)

    assert [e.field for e in outcome.errors] == ["name"]


def test_unique_constraint_violation_maps_to_field_error(directory, db, create_actor, monkeypatch):
    create_actor("Bob")
    # Simulate losing the race: the pre-check sees nothing, the insert collides
    real_find = ActorDirectory._find_conflict
    calls = []

    def find_after_first_call(self, *args):
        calls.append(args)
        return None if len(calls) == 1 else real_find(self, *args)

    monkeypatch.setattr(ActorDirectory, "_find_conflict", find_after_first_call)
    outcome = directory.signup(RequestContext(db), "bob", "fresh@x.com", PASSWORD)

    assert not outcome
    assert outcome.error.field == "name"
    assert db.query(Actor).filter(Actor.lower_case_name == "bob").count() == 1


def test_concurrent_signups_with_same_name(session_factory, token_store, mailer):
    results = []
    barrier = threading.Barrier(2)

    def signup(email):
        db = session_factory()
        try:
            directory = ActorDirectory(db, token_store, mailer)
            barrier.wait()
            results.append(directory.signup(RequestContext(db), "Racer", email, PASSWORD))
        finally:
            db.close()

    threads = [
        threading.Thread(target=signup, args=("one@x.com",)),
        threading.Thread(target=signup, args=("two@x.com",)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r in results if r]
    losers = [r for r in results if not r]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].error.field == "name"
    assert losers[0].error.code == ErrorCode.CONFLICT


# --- login / logout ---

def test_login_by_name_and_by_email(directory, db, create_actor):
    actor = create_actor("Carol", email="carol@x.com")

    by_name = directory.login(RequestContext(db), "CAROL", PASSWORD)
    by_email = directory.login(RequestContext(db), "Carol@X.com", PASSWORD)

    assert by_name.value.id == actor.id
    assert by_email.value.id == actor.id


def test_login_unknown_email(directory, db):
    outcome = directory.login(RequestContext(db), "bob@x.com", PASSWORD)

    assert not outcome
    assert outcome.error.to_dict() == {"field": "nameOrEmail", "message": "name or email doesn't exist"}


def test_login_wrong_password(directory, db, create_actor):
    create_actor("Dave")
    ctx = RequestContext(db)
    outcome = directory.login(ctx, "dave", "wrong-password")

    assert outcome.error.to_dict() == {"field": "password", "message": "password is incorrect"}
    assert ctx.session_id is None


def test_logout_is_idempotent(directory, db, create_actor):
    create_actor("Erin")
    ctx = RequestContext(db)
    directory.login(ctx, "erin", PASSWORD)
    session_id = ctx.session_id

    assert directory.logout(ctx) is True
    assert ctx.session_id is None
    assert RequestContext(db, session_id).current_actor_id() is None
    assert directory.logout(ctx) is True
    assert directory.logout(RequestContext(db, "unknown-session")) is True


def test_current_actor_comes_only_from_server_side_session(directory, db, create_actor):
    actor = create_actor("Frank")
    ctx = RequestContext(db)
    directory.login(ctx, "frank", PASSWORD)

    assert directory.current_actor(RequestContext(db, ctx.session_id)).id == actor.id
    assert directory.current_actor(RequestContext(db, "forged")) is None
    assert directory.current_actor(RequestContext(db)) is None


def test_session_ids_are_not_stored_in_clear(directory, db, create_actor):
    create_actor("Gina")
    ctx = RequestContext(db)
    directory.login(ctx, "gina", PASSWORD)

    stored = [row.session_id for row in db.query(AuthSession).all()]
    assert ctx.session_id not in stored


# --- email privacy ---

def test_email_visible_only_to_self(create_actor):
    alice = create_actor("Alice")
    bob = create_actor("Bob")

    assert visible_email(alice, alice.id) == "alice@x.com"
    assert visible_email(alice, bob.id) == ""
    assert visible_email(alice, None) == ""


# --- password recovery ---

def test_recovery_for_unknown_email_still_succeeds(directory, mailer, redis_client):
    assert directory.request_password_recovery("nobody@x.com") is True
    mailer.send.assert_not_called()
    assert redis_client.keys("*") == []


def test_recovery_round_trip_succeeds_once(directory, db, mailer, create_actor, redis_client):
    actor = create_actor("Hank", email="a@x.com")

    assert directory.request_password_recovery("a@x.com") is True
    mailer.send.assert_called_once()
    assert mailer.send.call_args.args[0] == "a@x.com"

    token = _recovery_token(mailer)
    key = settings.forgot_password_prefix + token
    assert redis_client.get(key) == str(actor.id)
    assert redis_client.ttl(key) > 60 * 60 * 24 * 2

    ctx = RequestContext(db)
    first = directory.complete_password_recovery(ctx, token, "longenough1-new")
    assert first
    assert ctx.current_actor_id() == actor.id
    assert directory.login(RequestContext(db), "hank", "longenough1-new")
    assert not directory.login(RequestContext(db), "hank", PASSWORD)

    second = directory.complete_password_recovery(RequestContext(db), token, "another-password")
    assert second.error.to_dict() == {"field": "token", "message": "token is expired"}
    assert second.error.code == ErrorCode.EXPIRED_TOKEN


def test_recovery_rejects_short_password_without_spending_token(directory, db, mailer, create_actor):
    create_actor("Ivan", email="ivan@x.com")
    directory.request_password_recovery("ivan@x.com")
    token = _recovery_token(mailer)

    short = directory.complete_password_recovery(RequestContext(db), token, "1234567")
    assert short.error.field == "newPassword"
    assert short.error.message == "password has to be at least 8 characters long"

    assert directory.complete_password_recovery(RequestContext(db), token, "12345678")


def test_recovery_for_erased_actor(directory, db, token_store):
    token = token_store.issue(settings.forgot_password_prefix, "9999", 60)
    outcome = directory.complete_password_recovery(RequestContext(db), token, "longenough1")

    assert outcome.error.to_dict() == {"field": "token", "message": "user does not exist"}


def test_recovery_ends_other_logins(directory, db, mailer, create_actor):
    create_actor("Judy", email="judy@x.com")
    other = RequestContext(db)
    directory.login(other, "judy", PASSWORD)

    directory.request_password_recovery("judy@x.com")
    directory.complete_password_recovery(RequestContext(db), _recovery_token(mailer), "brand-new-pass")

    assert RequestContext(db, other.session_id).current_actor_id() is None


def test_email_failure_does_not_change_answer(directory, mailer, create_actor):
    create_actor("Kim", email="kim@x.com")
    mailer.send.return_value = False

    assert directory.request_password_recovery("kim@x.com") is True


def test_recovery_hides_token_store_outage(db, mailer, create_actor):
    create_actor("Lena", email="lena@x.com")
    broken = MagicMock()
    broken.set.side_effect = redis.ConnectionError("connection refused")
    directory = ActorDirectory(db, ExpiringTokenStore(broken), mailer)

    assert directory.request_password_recovery("lena@x.com") is True
    assert directory.request_password_recovery("ghost@x.com") is True
    mailer.send.assert_not_called()


def test_signup_rejects_name_with_trailing_newline(directory, db, create_actor):
    create_actor("bob")
    outcome = directory.signup(RequestContext(db), "bob\n", "bob2@x.com", PASSWORD)

    assert not outcome
    assert outcome.error.field == "name"
    assert db.query(Actor).count() == 1


# --- session housekeeping ---

def test_failed_logout_still_clears_context(directory, db, create_actor, monkeypatch):
    create_actor("Mona")
    ctx = RequestContext(db)
    directory.login(ctx, "mona", PASSWORD)
    session_id = ctx.session_id

    def failing_delete(session, sid):
        raise OperationalError("DELETE FROM auth_sessions", {}, Exception("disk I/O error"))

    monkeypatch.setattr("sessionhub.auth.delete_session", failing_delete)

    assert directory.logout(ctx) is False
    assert ctx.session_id is None
    assert ctx.current_actor_id() is None
    # The row survived; only the store delete failed
    assert RequestContext(db, session_id).current_actor_id() is not None


def test_login_prunes_expired_sessions(directory, db, create_actor):
    create_actor("Nina")
    old = RequestContext(db)
    directory.login(old, "nina", PASSWORD)
    db.query(AuthSession).update({AuthSession.expires_at: utcnow() - timedelta(minutes=1)})
    db.commit()

    directory.login(RequestContext(db), "nina", PASSWORD)

    assert RequestContext(db, old.session_id).current_actor_id() is None
    assert db.query(AuthSession).filter(AuthSession.expires_at <= utcnow()).count() == 0
    # Both the signup and the old login session expired; only the new one is left
    assert db.query(AuthSession).count() == 1


def test_cleanup_expired_sessions_keeps_live_ones(directory, db, create_actor):
    create_actor("Olga")
    ctx = RequestContext(db)
    directory.login(ctx, "olga", PASSWORD)
    db.add(AuthSession(session_id="stale-digest", actor_id=ctx.current_actor_id(),
                       expires_at=utcnow() - timedelta(hours=1)))
    db.commit()

    assert cleanup_expired_sessions(db) == 1
    assert RequestContext(db, ctx.session_id).current_actor_id() is not None
