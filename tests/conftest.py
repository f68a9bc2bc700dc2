import pytest

from api_client import ApiClient
from context import ClientContext
from storage import ClientStorage, SessionState

from fakes import FakeHttp

API = "http://api.test"
PROXY = "http://web.test/proxy"


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def context(http):
    return ClientContext(local=ClientStorage(), session=ClientStorage(), http=http)


@pytest.fixture
def api(context):
    return ApiClient(context, base_url=API, proxy_base=PROXY, sleep=lambda s: None)


@pytest.fixture
def login(context):
    def _login(role="voter", token="tok-1", refresh_token="ref-1", voter_id="12345678"):
        SessionState(token=token, refresh_token=refresh_token, voter_id=voter_id,
                     role=role, is_authenticated=True).save(context.local)
        return context
    return _login
