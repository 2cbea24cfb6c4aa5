"""Tests for the device-local credential store."""
import json
from unittest.mock import Mock

from core.credential_store import (
    AUTH_TOKEN_KEY,
    UNSYNCED_ONBOARDING_KEY,
    CredentialStore,
    normalize_user,
)


def test_session_round_trip_on_disk(tmp_path):
    path = str(tmp_path / 'credentials.json')
    store = CredentialStore(path=path)
    assert store.save_session('token-1', {'_id': 'user-1', 'email': 'owner@example.com'}, 'refresh-1')

    reloaded = CredentialStore(path=path)
    session = reloaded.get_session()
    assert session.token == 'token-1'
    assert session.refresh_token == 'refresh-1'
    assert session.user['id'] == 'user-1'

    with open(path) as f:
        assert json.load(f)[AUTH_TOKEN_KEY] == 'token-1'


def test_default_path_lives_in_data_dir(isolated_home):
    store = CredentialStore()
    store.set_item('peteat_auth_token', 'token-1')

    assert store.path == str(isolated_home / '.data' / 'credentials.json')
    assert CredentialStore().get_token() == 'token-1'


def test_user_without_id_is_refused():
    store = CredentialStore(persist=False)

    assert not store.save_session('token-1', {'email': 'ghost@example.com'})
    assert store.get_token() is None


def test_normalize_user_copies_mongo_id():
    user = {'_id': 'abc'}

    assert normalize_user(user) == {'_id': 'abc', 'id': 'abc'}
    assert user == {'_id': 'abc'}
    assert normalize_user(None) is None


def test_update_tokens_keeps_refresh_token_when_not_rotated(credential_store):
    credential_store.update_tokens('token-2')

    assert credential_store.get_token() == 'token-2'
    assert credential_store.get_refresh_token() == 'refresh-1'


def test_clear_keeps_pending_onboarding(credential_store):
    credential_store.set_pending_onboarding({'address': 'Manila'})

    credential_store.clear()

    assert credential_store.get_session() is None
    assert credential_store.get_refresh_token() is None
    assert credential_store.get_pending_onboarding() == {'address': 'Manila'}


def test_auth_listeners_fire_and_can_be_removed(credential_store):
    listener = Mock()
    remove = credential_store.add_auth_listener(listener)

    credential_store.update_tokens('token-2')
    listener.assert_called_once()
    assert listener.call_args[0][0]['id'] == 'user-1'

    remove()
    credential_store.clear()
    listener.assert_called_once()


def test_failing_listener_does_not_block_others(credential_store):
    after = Mock()
    credential_store.add_auth_listener(Mock(side_effect=RuntimeError("boom")))
    credential_store.add_auth_listener(after)

    credential_store.clear()

    after.assert_called_once_with(None)


def test_corrupt_files_start_empty(tmp_path):
    path = tmp_path / 'credentials.json'
    path.write_text('{not json')

    assert CredentialStore(path=str(path)).get_token() is None


def test_unreadable_pending_payload_is_discarded():
    store = CredentialStore(persist=False)
    store.set_item(UNSYNCED_ONBOARDING_KEY, '{broken')

    assert store.get_pending_onboarding() is None
    assert store.get_item(UNSYNCED_ONBOARDING_KEY) is None
