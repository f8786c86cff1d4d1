"""Tests for the per-request authentication state machine.

Covers issuing, authenticating, refresh-token rotation, sign-out and TTL
inspection against the in-memory store.
"""

import pytest

from conftest import FakeRequest, credential_headers
from scopeward.service.authentication import Authentication
from scopeward.service.credentials import CredentialSource
from scopeward.service.errors import AuthenticationFailed, InvalidState, MisconfiguredScope
from scopeward.service.issuance import issue_access_token, issue_refresh_token, issue_tokens
from scopeward.service.registry import register_scope
from scopeward.service.scope import Scope


@pytest.fixture
def users(store):
    return register_scope("users", access_token_ttl=3600, refresh_token_ttl=7200)


def auth_for(scope, store, **credentials):
    request = FakeRequest(credential_headers(scope.header_prefix, **credentials))
    return Authentication(scope, request, store=store)


class TestAuthenticate:
    def test_issue_then_authenticate(self, users, store):
        token = issue_access_token(users, 1)

        auth = auth_for(users, store, id=1, access_token=token)

        assert auth.authenticated is True
        assert auth.id == "1"
        assert auth.value_for_access_token == token
        assert auth.access_token_key == f"user_1_access_token_{token}"

    def test_issue_by_scope_name(self, users, store):
        token = issue_access_token("users", 7)

        assert auth_for(users, store, id=7, access_token=token).authenticated is True

    def test_wrong_id_is_rejected(self, users, store):
        token = issue_access_token(users, 1)

        auth = auth_for(users, store, id=2, access_token=token)

        assert auth.authenticated is False

    def test_unknown_token_is_rejected(self, users, store):
        auth = auth_for(users, store, id=1, access_token="not-a-real-token")

        with pytest.raises(AuthenticationFailed):
            auth.authenticate_or_raise()

    def test_missing_token_skips_store(self, users, store):
        auth = auth_for(users, store, id=1)

        assert auth.authenticated is False
        assert store.calls["get"] == 0

    def test_empty_token_skips_store(self, users, store):
        auth = auth_for(users, store, id=1, access_token="")

        assert auth.authenticated is False
        assert store.calls["get"] == 0

    def test_expired_token_equals_never_issued(self, users, store, clock):
        token = issue_access_token(users, 1)
        clock.advance(users.access_token_ttl)

        assert auth_for(users, store, id=1, access_token=token).authenticated is False

    def test_result_is_memoized(self, users, store):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token)

        first = auth.authenticate()
        second = auth.authenticate()

        assert first is second is auth
        assert auth.authenticated is True
        assert store.calls["get"] == 1

    def test_failure_is_memoized_and_reraised(self, users, store):
        auth = auth_for(users, store, id=1, access_token="bogus")

        for _ in range(3):
            with pytest.raises(AuthenticationFailed):
                auth.authenticate_or_raise()

        assert store.calls["get"] == 1

    def test_nothing_touches_store_until_asked(self, users, store):
        auth_for(users, store, id=1, access_token="tok")

        assert sum(store.calls.values()) == 0

    def test_custom_value_is_exposed(self, store):
        scope = register_scope(
            "users", value_for_access_token=lambda token, role: f"{role}:{token}"
        )
        token = issue_access_token(scope, 1, "editor")

        auth = auth_for(scope, store, id=1, access_token=token)

        assert auth.value_for_access_token == f"editor:{token}"

    def test_multiple_sessions_per_identity(self, users, store):
        first = issue_access_token(users, 1)
        second = issue_access_token(users, 1)

        assert first != second
        assert auth_for(users, store, id=1, access_token=first).authenticated
        assert auth_for(users, store, id=1, access_token=second).authenticated


class TestRefresh:
    def test_refresh_token_is_single_use(self, users, store):
        refresh_token = issue_refresh_token(users, 1)

        first = auth_for(users, store, id=1, refresh_token=refresh_token)
        second = auth_for(users, store, id=1, refresh_token=refresh_token)

        assert first.validate_refresh_token_or_raise() is first
        assert first.refreshable is True
        with pytest.raises(AuthenticationFailed):
            second.validate_refresh_token_or_raise()
        assert second.refreshable is False

    def test_refresh_rotation_scenario(self, users, store, clock):
        pair = issue_tokens(users, 1)
        clock.advance(users.access_token_ttl)

        auth = auth_for(users, store, id=1, access_token=pair.access_token, refresh_token=pair.refresh_token)

        assert auth.authenticated is False
        assert auth.refreshable is True
        assert auth.id == "1"

        new_access = issue_access_token(users, auth.id)
        assert auth_for(users, store, id=1, access_token=new_access).authenticated

        replay = auth_for(users, store, id=1, refresh_token=pair.refresh_token)
        assert replay.refreshable is False

    def test_refresh_value_is_exposed(self, users, store):
        refresh_token = issue_refresh_token(users, 1)

        auth = auth_for(users, store, id=1, refresh_token=refresh_token)

        assert auth.value_for_refresh_token == refresh_token

    def test_refresh_consumes_with_single_store_call(self, users, store):
        refresh_token = issue_refresh_token(users, 1)
        auth = auth_for(users, store, id=1, refresh_token=refresh_token)

        auth.validate_refresh_token()
        auth.validate_refresh_token()

        assert store.calls["get_and_delete"] == 1

    def test_refresh_with_wrong_id_does_not_consume(self, users, store):
        refresh_token = issue_refresh_token(users, 1)

        assert auth_for(users, store, id=2, refresh_token=refresh_token).refreshable is False
        assert auth_for(users, store, id=1, refresh_token=refresh_token).refreshable is True

    def test_missing_refresh_token(self, users, store):
        auth = auth_for(users, store, id=1)

        assert auth.refreshable is False
        assert store.calls["get_and_delete"] == 0

    def test_disabled_refresh_scope(self, store):
        scope = register_scope("admins", disable_refresh_token=True)
        auth = auth_for(scope, store, id=1, refresh_token="anything")

        with pytest.raises(MisconfiguredScope):
            auth.validate_refresh_token()
        with pytest.raises(MisconfiguredScope):
            issue_refresh_token(scope, 1)

    def test_issue_tokens_without_refresh(self, store):
        scope = register_scope("admins", disable_refresh_token=True)

        pair = issue_tokens(scope, 1)

        assert pair.refresh_token is None
        assert auth_for(scope, store, id=1, access_token=pair.access_token).authenticated


class TestIdentity:
    def test_id_prefers_access_path(self, users, store):
        pair = issue_tokens(users, 1)
        auth = auth_for(users, store, id=1, access_token=pair.access_token, refresh_token=pair.refresh_token)

        assert auth.id == "1"
        # Refresh token untouched when the access token is valid
        assert store.calls["get_and_delete"] == 0

    def test_id_without_any_valid_token(self, users, store):
        auth = auth_for(users, store, id=1, access_token="bogus", refresh_token="bogus")

        with pytest.raises(AuthenticationFailed):
            auth.id

    def test_id_on_scope_without_refresh(self, store):
        scope = register_scope("admins", disable_refresh_token=True)
        auth = auth_for(scope, store, id=1, access_token="bogus")

        with pytest.raises(AuthenticationFailed):
            auth.id
        assert store.calls["get_and_delete"] == 0


class TestSignOut:
    def test_sign_out_invalidates_access_token(self, users, store):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token)
        assert auth.authenticated

        assert auth.sign_out() is True

        assert auth_for(users, store, id=1, access_token=token).authenticated is False

    def test_sign_out_twice_does_not_raise(self, users, store):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token)
        auth.authenticate()

        auth.sign_out()
        auth.sign_out()

    def test_sign_out_leaves_refresh_token_valid(self, users, store):
        pair = issue_tokens(users, 1)
        auth = auth_for(users, store, id=1, access_token=pair.access_token)
        auth.authenticate()
        auth.sign_out()

        assert auth_for(users, store, id=1, refresh_token=pair.refresh_token).refreshable is True

    def test_signed_out_session_stays_revoked(self, users, store):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token)
        auth.authenticate()
        auth.sign_out()

        assert auth.signed_out is True
        assert auth.authenticated is False
        with pytest.raises(AuthenticationFailed):
            auth.authenticate_or_raise()
        with pytest.raises(InvalidState):
            auth.set_ttl_for_access_token(3600)
        with pytest.raises(InvalidState):
            auth.ttl_for_access_token()

        assert store.calls["set_ttl"] == 0
        assert auth_for(users, store, id=1, access_token=token).authenticated is False

    def test_sign_out_without_session_is_noop(self, users, store):
        auth = auth_for(users, store, id=1, access_token="bogus")

        assert auth.sign_out() is False
        assert store.calls["delete"] == 0


class TestAccessTokenTTL:
    def test_ttl_requires_authentication(self, users, store):
        auth = auth_for(users, store, id=1, access_token="bogus")

        with pytest.raises(InvalidState):
            auth.ttl_for_access_token()

        auth.authenticate()
        with pytest.raises(InvalidState):
            auth.set_ttl_for_access_token(60)

    def test_ttl_reports_remaining_time(self, users, store, clock):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token).authenticate()
        clock.advance(600)

        assert auth.ttl_for_access_token() == users.access_token_ttl - 600

    def test_set_ttl_extends_session(self, users, store, clock):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token).authenticate()

        assert auth.set_ttl_for_access_token(users.access_token_ttl * 2) is True
        clock.advance(users.access_token_ttl + 1)

        assert auth_for(users, store, id=1, access_token=token).authenticated is True

    def test_set_ttl_shortens_session(self, users, store, clock):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token).authenticate()

        auth.set_ttl_for_access_token(5)
        clock.advance(5)

        assert auth_for(users, store, id=1, access_token=token).authenticated is False

    def test_set_ttl_after_expiry_does_not_revive(self, users, store, clock):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token).authenticate()
        clock.advance(users.access_token_ttl)

        assert auth.set_ttl_for_access_token(3600) is False
        assert auth_for(users, store, id=1, access_token=token).authenticated is False

    def test_set_ttl_after_revocation_elsewhere_does_not_revive(self, users, store):
        token = issue_access_token(users, 1)
        auth = auth_for(users, store, id=1, access_token=token).authenticate()
        other = auth_for(users, store, id=1, access_token=token).authenticate()
        other.sign_out()

        assert auth.set_ttl_for_access_token(3600) is False
        assert auth_for(users, store, id=1, access_token=token).authenticated is False


class TestCredentialSources:
    def test_header_lookup_is_case_insensitive_for_plain_dicts(self, users, store):
        token = issue_access_token(users, 1)
        request = FakeRequest({"x-user-id": "1", "x-user-access-token": token})

        assert Authentication(users, request, store=store).authenticated is True

    def test_headers_use_camelized_scope_name(self, store):
        scope = register_scope("admin_users")
        token = issue_access_token(scope, 5)
        request = FakeRequest({"X-AdminUser-Id": "5", "X-AdminUser-Access-Token": token})

        assert Authentication(scope, request, store=store).authenticated is True

    def test_custom_credential_source(self, store):
        class QueryCredentialSource(CredentialSource):
            def retrieve_id(self):
                return self.request["uid"]

            def retrieve_access_token(self):
                return self.request.get("token")

            def retrieve_refresh_token(self):
                return None

        scope = Scope("user", credential_source=QueryCredentialSource)
        token = issue_access_token(scope, "u-1", store=store)

        auth = Authentication(scope, {"uid": "u-1", "token": token}, store=store)

        assert auth.authenticated is True
        assert auth.id == "u-1"

    def test_default_store_is_process_wide(self, users, store):
        token = issue_access_token(users, 1)
        request = FakeRequest(credential_headers("User", id=1, access_token=token))

        assert Authentication(users, request).authenticated is True
