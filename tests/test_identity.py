"""
Identity and Session Tests

Static identity provider (tokens, accounts, auth-state stream), the Firebase
provider's token claims and account emails (HTTP served by httpx.MockTransport),
and the process-wide SessionHolder that follows the identity provider.

Run:
----
    pytest tests/test_identity.py -v
"""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from feedsync.errors import NotFound, TransportError, Unauthenticated, ValidationError
from feedsync.services import Principal, SessionHolder, StaticIdentityProvider, validate_registration
from feedsync.services import identity as identity_module
from feedsync.services.identity import PASSWORD_RESET, VERIFY_EMAIL, FirebaseIdentityProvider


class TestRegistrationValidation:
    def test_valid(self):
        assert validate_registration("  ann@example.com ", "secret") == "ann@example.com"

    @pytest.mark.parametrize(
        "email,password,message",
        [
            ("", "secret", "Please fill all fields"),
            ("ann@example.com", "", "Please fill all fields"),
            ("not-an-email", "secret", "Please enter a valid email address"),
            ("ann@example.com", "12345", "Password should be at least 6 characters"),
        ],
    )
    def test_invalid(self, email, password, message):
        with pytest.raises(ValidationError) as exc:
            validate_registration(email, password)
        assert str(exc.value) == message


class TestStaticIdentityProvider:
    def test_issue_and_verify(self, identity):
        principal = Principal(id="u1", email="u1@example.com")
        token = identity.issue_token(principal)
        assert identity.verify_token(token) == principal
        assert identity.verify_token(f"  {token} ") == principal

    def test_unknown_token(self, identity):
        with pytest.raises(Unauthenticated):
            identity.verify_token("nope")

    def test_preloaded_tokens(self):
        provider = StaticIdentityProvider({"t1": Principal(id="u1")})
        assert provider.verify_token("t1").id == "u1"

    def test_create_account_rejects_duplicate_email(self, identity):
        principal = identity.create_account("ann@example.com", "secret", "Ann")
        assert principal.id
        assert principal.display_name == "Ann"
        with pytest.raises(ValidationError):
            identity.create_account("ANN@example.com", "another")

    def test_password_reset_link(self, identity):
        identity.create_account("ann@example.com", "secret")
        assert "ann@example.com" in identity.password_reset_link("ann@example.com")
        with pytest.raises(NotFound):
            identity.password_reset_link("ghost@example.com")

    def test_email_verification_link(self, identity):
        identity.create_account("ann@example.com", "secret")
        assert "verify-email" in identity.email_verification_link(" Ann@example.com")
        with pytest.raises(NotFound):
            identity.email_verification_link("ghost@example.com")

    def test_account_emails_land_in_outbox(self, identity):
        identity.create_account("ann@example.com", "secret")
        asyncio.run(identity.send_password_reset_email("ann@example.com"))
        asyncio.run(identity.send_email_verification("ann@example.com"))
        assert [(kind, email) for kind, email, _ in identity.outbox] == [
            (PASSWORD_RESET, "ann@example.com"),
            (VERIFY_EMAIL, "ann@example.com"),
        ]
        assert "reset-password" in identity.outbox[0][2]

    def test_reset_email_for_unknown_account(self, identity):
        with pytest.raises(NotFound):
            asyncio.run(identity.send_password_reset_email("ghost@example.com"))
        assert identity.outbox == []

    def test_auth_state_stream(self, identity):
        seen = []
        dispose = identity.on_auth_state_changed(seen.append)
        ann = Principal(id="ann")
        identity.sign_in(ann)
        identity.sign_in(ann)
        identity.sign_out()
        dispose()
        identity.sign_in(ann)
        assert seen == [None, ann, None]
        assert identity.current_principal() == ann


@pytest.fixture
def firebase_identity(monkeypatch):
    """FirebaseIdentityProvider with the firebase-admin app replaced by a stand-in."""
    app = SimpleNamespace(
        project_id="demo-feed",
        credential=SimpleNamespace(get_access_token=lambda: SimpleNamespace(access_token="sa-token")),
    )
    monkeypatch.setattr(identity_module, "ensure_firebase_app", lambda *args: None)
    monkeypatch.setattr(identity_module.firebase_admin, "get_app", lambda: app)
    return FirebaseIdentityProvider()


def _serve(monkeypatch, handler):
    """Route the provider's outbound HTTP calls to handler."""
    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        identity_module.httpx, "AsyncClient", lambda **kwargs: real_client(transport=transport, **kwargs)
    )


class TestFirebaseIdentityProvider:
    def test_verify_token_reads_email_verified(self, firebase_identity, monkeypatch):
        decoded = {"uid": "u1", "email": "ann@example.com", "name": "Ann", "email_verified": True}
        monkeypatch.setattr(identity_module.auth, "verify_id_token", lambda token: decoded)
        principal = firebase_identity.verify_token("id-token")
        assert principal == Principal(id="u1", email="ann@example.com", display_name="Ann", email_verified=True)

    def test_email_verified_defaults_false(self, firebase_identity, monkeypatch):
        monkeypatch.setattr(identity_module.auth, "verify_id_token", lambda token: {"uid": "u1"})
        assert firebase_identity.verify_token("id-token").email_verified is False

    def test_password_reset_email_sent(self, firebase_identity, monkeypatch):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"email": "ann@example.com"})

        _serve(monkeypatch, handler)
        asyncio.run(firebase_identity.send_password_reset_email(" ann@example.com "))

        (request,) = requests
        assert request.url.path == "/v1/projects/demo-feed/accounts:sendOobCode"
        assert request.headers["Authorization"] == "Bearer sa-token"
        assert json.loads(request.content) == {"requestType": PASSWORD_RESET, "email": "ann@example.com"}

    def test_verification_email_sent(self, firebase_identity, monkeypatch):
        bodies = []
        _serve(monkeypatch, lambda request: bodies.append(json.loads(request.content)) or httpx.Response(200, json={}))
        asyncio.run(firebase_identity.send_email_verification("ann@example.com"))
        assert bodies == [{"requestType": VERIFY_EMAIL, "email": "ann@example.com"}]

    def test_unknown_email(self, firebase_identity, monkeypatch):
        _serve(monkeypatch, lambda request: httpx.Response(400, json={"error": {"message": "EMAIL_NOT_FOUND"}}))
        with pytest.raises(NotFound):
            asyncio.run(firebase_identity.send_password_reset_email("ghost@example.com"))

    def test_rejected_request(self, firebase_identity, monkeypatch):
        _serve(monkeypatch, lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(TransportError):
            asyncio.run(firebase_identity.send_email_verification("ann@example.com"))

    def test_connection_failure(self, firebase_identity, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        _serve(monkeypatch, handler)
        with pytest.raises(TransportError):
            asyncio.run(firebase_identity.send_password_reset_email("ann@example.com"))


class TestSessionHolder:
    def test_follows_identity(self, identity):
        session = SessionHolder(identity)
        assert session.principal is None
        with pytest.raises(Unauthenticated):
            session.require_principal()

        changes = []
        session.on_change(changes.append)
        ann = Principal(id="ann")
        identity.sign_in(ann)
        assert session.require_principal() == ann
        identity.sign_out()
        assert session.principal is None
        assert changes == [ann, None]

    def test_close_stops_following(self, identity):
        session = SessionHolder(identity)
        session.close()
        identity.sign_in(Principal(id="ann"))
        assert session.principal is None

    def test_picks_up_existing_principal(self, identity):
        identity.sign_in(Principal(id="ann"))
        assert SessionHolder(identity).principal.id == "ann"
