import json

from storage import (
    IS_AUTHENTICATED, NATIONAL_ID, REFRESH_TOKEN, ROLE, THEME, TOKEN, VOTER_ID, ClientStorage, SessionState,
)


def test_values_are_stored_as_strings():
    s = ClientStorage()
    s.set_item("counter", 2)
    assert s.get_item("counter") == "2"
    assert s.get_item("missing") is None


def test_file_backed_storage_survives_reload(tmp_path):
    path = str(tmp_path / "client" / "storage.json")
    s = ClientStorage(path)
    s.set_item(TOKEN, "abc")
    s.set_item(THEME, "dark")
    s.remove_item(THEME)

    again = ClientStorage(path)
    assert again.get_item(TOKEN) == "abc"
    assert THEME not in again
    with open(path) as f:
        assert json.load(f) == {TOKEN: "abc"}


def test_corrupt_file_starts_fresh(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json")

    s = ClientStorage(str(path))
    assert len(s) == 0
    s.set_item("a", "b")
    assert json.loads(path.read_text()) == {"a": "b"}


def test_session_state_round_trip():
    s = ClientStorage()
    SessionState(token="t", refresh_token="r", voter_id="v", role="admin", is_authenticated=True).save(s)

    state = SessionState.load(s)
    assert state.authenticated
    assert (state.token, state.refresh_token, state.voter_id, state.role) == ("t", "r", "v", "admin")


def test_session_state_requires_all_three():
    s = ClientStorage()
    s.set_item(TOKEN, "t")
    s.set_item(IS_AUTHENTICATED, "true")
    assert not SessionState.load(s).authenticated

    s.set_item(NATIONAL_ID, "12345678")
    assert SessionState.load(s).authenticated


def test_clear_only_touches_session_keys():
    s = ClientStorage()
    SessionState(token="t", refresh_token="r", voter_id="v", role="voter", is_authenticated=True).save(s)
    s.set_item(NATIONAL_ID, "12345678")
    s.set_item(THEME, "dark")

    SessionState.clear(s)

    for key in (TOKEN, REFRESH_TOKEN, VOTER_ID, NATIONAL_ID, ROLE, IS_AUTHENTICATED):
        assert key not in s
    assert s.get_item(THEME) == "dark"
