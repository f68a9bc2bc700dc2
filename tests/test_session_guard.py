from session_guard import GuardOutcome, SessionGuard
from storage import REDIRECT_COUNTER, NATIONAL_ID, TOKEN, IS_AUTHENTICATED, VOTER_ID


def test_unauthenticated_first_load_redirects_once(context):
    outcome = SessionGuard(context).check()

    assert outcome is GuardOutcome.REDIRECT
    assert context.session.get_item(REDIRECT_COUNTER) == "1"
    assert len(context.navigator.history) == 1
    assert context.navigator.location.startswith("login.html?redirect_reason=not_authenticated&time=")
    assert context.events.last("recovery") is None


def test_second_failed_load_shows_recovery_instead_of_redirecting(context):
    context.session.set_item(REDIRECT_COUNTER, 1)

    outcome = SessionGuard(context).check()

    assert outcome is GuardOutcome.RECOVERY
    assert context.navigator.history == []
    panel = context.events.last("recovery")
    assert [a["id"] for a in panel["actions"]] == ["clear_storage", "login"]
    assert panel["actions"][1]["href"] == "login.html"


def test_redirect_loop_is_broken_across_loads(context):
    guard = SessionGuard(context)
    assert guard.check() is GuardOutcome.REDIRECT
    assert guard.check() is GuardOutcome.RECOVERY
    assert guard.check() is GuardOutcome.RECOVERY
    assert len(context.navigator.history) == 1


def test_authenticated_proceeds_and_resets_counter(context, login):
    login()
    context.session.set_item(REDIRECT_COUNTER, 1)

    assert SessionGuard(context).check() is GuardOutcome.PROCEED
    assert REDIRECT_COUNTER not in context.session
    assert context.navigator.history == []


def test_flag_must_be_true(context):
    context.local.set_item(TOKEN, "t")
    context.local.set_item(VOTER_ID, "12345678")
    context.local.set_item(IS_AUTHENTICATED, "false")

    assert SessionGuard(context).check() is GuardOutcome.REDIRECT


def test_national_id_is_accepted_as_voter_id(context):
    context.local.set_item(TOKEN, "t")
    context.local.set_item(NATIONAL_ID, "12345678")
    context.local.set_item(IS_AUTHENTICATED, "true")

    assert SessionGuard(context).check() is GuardOutcome.PROCEED


def test_garbage_counter_counts_as_zero(context):
    context.session.set_item(REDIRECT_COUNTER, "nope")
    assert SessionGuard(context).check() is GuardOutcome.REDIRECT


def test_clear_and_reload(context, login):
    login()
    context.local.set_item("theme", "dark")
    context.session.set_item(REDIRECT_COUNTER, 2)
    context.http.cookies.set("sid", "abc")

    SessionGuard(context).clear_and_reload()

    assert len(context.local) == 0
    assert len(context.session) == 0
    assert len(context.http.cookies) == 0
    assert context.navigator.reloads == 1
