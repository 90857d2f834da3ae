import jwt
import pytest
from fastapi.security import HTTPAuthorizationCredentials

from dropzone_upload.core.config import settings
from dropzone_upload.core.exceptions import Forbidden, Unauthorized
from dropzone_upload.core.security import AuthorizationGate, create_nonce, get_optional_actor, verify_nonce
from dropzone_upload.schemas.token import Actor


@pytest.fixture
def gate():
    return AuthorizationGate("upload_files")


@pytest.fixture
def uploader():
    return Actor(user_id="42", capabilities={"upload_files"})


class TestNonce:

    def test_roundtrip(self):
        assert verify_nonce(create_nonce("42"), "42")

    def test_bound_to_actor(self):
        assert not verify_nonce(create_nonce("42"), "43")

    def test_expired(self):
        assert not verify_nonce(create_nonce("42", ttl_seconds=-10), "42")

    def test_other_action(self):
        token = jwt.encode({"sub": "42", "action": "delete_post", "exp": 9999999999}, settings.NONCE_SECRET_KEY, algorithm="HS256")
        assert not verify_nonce(token, "42")

    def test_wrong_key(self):
        token = jwt.encode({"sub": "42", "action": "dropzone_upload", "exp": 9999999999}, "another-secret-0123456789abcdef012", algorithm="HS256")
        assert not verify_nonce(token, "42")

    @pytest.mark.parametrize("value", [None, "", "garbage"])
    def test_missing_or_malformed(self, value):
        assert not verify_nonce(value, "42")


class TestAuthorizationGate:

    def test_authorized(self, gate, uploader):
        assert gate.authorize(create_nonce("42"), uploader) is uploader

    def test_bad_nonce(self, gate, uploader):
        with pytest.raises(Unauthorized) as exc_info:
            gate.authorize("garbage", uploader)
        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Security check failed."

    def test_no_actor(self, gate):
        with pytest.raises(Forbidden) as exc_info:
            gate.authorize(create_nonce("42"), None)
        assert exc_info.value.message == "Sorry, you are not allowed to upload files."

    def test_no_actor_and_no_nonce(self, gate):
        with pytest.raises(Forbidden):
            gate.authorize(None, None)

    def test_missing_capability(self, gate):
        reader = Actor(user_id="42", capabilities={"read"})
        with pytest.raises(Forbidden) as exc_info:
            gate.authorize(create_nonce("42"), reader)
        assert exc_info.value.status_code == 403


class TestActor:

    def test_capabilities_from_list_and_scope(self):
        actor = Actor.from_payload({"sub": 42, "capabilities": ["upload_files"], "scope": "read edit_posts"})
        assert actor.user_id == "42"
        assert actor.capabilities == {"upload_files", "read", "edit_posts"}

    def test_bearer_token_resolves_actor(self, make_token):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=make_token())
        actor = get_optional_actor(credentials)
        assert actor.user_id == "42"
        assert actor.can("upload_files")

    def test_invalid_bearer_token(self, make_token):
        assert get_optional_actor(None) is None
        assert get_optional_actor(HTTPAuthorizationCredentials(scheme="Bearer", credentials="garbage")) is None
        wrong_audience = make_token(aud="someone-else")
        assert get_optional_actor(HTTPAuthorizationCredentials(scheme="Bearer", credentials=wrong_audience)) is None
