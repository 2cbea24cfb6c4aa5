"""Tests for the chat conversation, inbox and lost-pet feed consumers."""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from chat.conversation import ChatConversation
from chat.inbox import ConversationInbox
from chat.lost_pets import LostPetFeed
from core.errors import ApiError
from utils.event_utils import DisconnectReason
from utils.message_utils import utc_now_iso

pytestmark = pytest.mark.asyncio

ME = 'user-1'
PARTNER = 'user-2'


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


def echo(content, _id='srv-1', sender=ME, receiver=PARTNER, **extra):
    return {'_id': _id, 'sender': sender, 'receiver': receiver, 'content': content,
            'timestamp': utc_now_iso(), **extra}


@pytest.fixture
def messages_api():
    api = Mock()
    api.get_conversation = AsyncMock(return_value=[])
    api.get_user_conversations = AsyncMock(return_value=[])
    api.upload_attachment = AsyncMock(return_value='/uploads/chat/photo.jpg')
    return api


@pytest.fixture
def conversation(connected_manager, messages_api):
    conversation = ChatConversation(connected_manager, messages_api, ME, PARTNER)
    yield conversation
    conversation.close()


async def test_sends_show_up_in_order_before_the_network(manager, transport_factory, messages_api):
    """Test two sends are listed as pending at once even while the socket is still connecting."""
    transport_factory.mode = 'hang'
    connecting = asyncio.create_task(manager.initialize())
    await settle()
    conversation = ChatConversation(manager, messages_api, ME, PARTNER)

    first = asyncio.create_task(conversation.send('a'))
    second = asyncio.create_task(conversation.send('b'))
    await settle()

    assert [m.content for m in conversation.messages] == ['a', 'b']
    assert all(m.pending for m in conversation.messages)
    assert not first.done() and not second.done()

    transport_factory.latest.finish_connect()
    await connecting
    await asyncio.gather(first, second)

    emitted = transport_factory.latest.emitted
    assert [data['content'] for event, data in emitted] == ['a', 'b']


async def test_open_loads_history_and_subscribes(conversation, messages_api, transport_factory):
    messages_api.get_conversation.return_value = [
        {'_id': 'm1', 'sender': PARTNER, 'receiver': ME, 'content': 'hello', 'timestamp': '2024-05-01T10:00:00Z'}
    ]

    await conversation.open()

    messages_api.get_conversation.assert_awaited_once_with(PARTNER)
    assert [m.id for m in conversation.messages] == ['m1']
    assert conversation.is_open
    assert transport_factory.latest.listener_count('receiveMessage') == 1
    assert transport_factory.latest.listener_count('messageSaved') == 1


async def test_open_with_failing_history_starts_empty(conversation, messages_api):
    messages_api.get_conversation.side_effect = ApiError(500, 'Server error')

    await conversation.open()

    assert conversation.messages == []
    assert conversation.is_open


async def test_echo_with_client_message_id_replaces_pending(conversation, transport_factory):
    await conversation.open()
    transport = transport_factory.latest

    sent = await conversation.send('hello')
    event, payload = transport.emitted[-1]
    assert event == 'sendMessage'
    assert payload['clientMessageId'] == sent.client_message_id

    saved = echo('hello', clientMessageId=sent.client_message_id)
    await transport.server_emit('messageSaved', saved)
    await transport.server_emit('receiveMessage', saved)

    assert len(conversation.messages) == 1
    assert conversation.messages[0].id == 'srv-1'
    assert not conversation.messages[0].pending


async def test_echo_without_correlation_id_matches_within_window(conversation, transport_factory):
    await conversation.open()
    await conversation.send('hello')

    await transport_factory.latest.server_emit('receiveMessage', echo('hello'))

    assert [(m.id, m.pending) for m in conversation.messages] == [('srv-1', False)]


async def test_old_echo_is_appended(conversation, transport_factory):
    await conversation.open()
    await conversation.send('hello')

    await transport_factory.latest.server_emit(
        'receiveMessage', {**echo('hello'), 'timestamp': '2020-01-01T00:00:00Z'})

    assert [m.pending for m in conversation.messages] == [True, False]


async def test_messages_from_other_conversations_are_ignored(conversation, transport_factory):
    await conversation.open()
    transport = transport_factory.latest

    await transport.server_emit('receiveMessage', echo('not for us', sender='user-3', receiver=ME))
    await transport.server_emit('receiveMessage', echo('hi there', _id='srv-2', sender=PARTNER, receiver=ME))

    assert [m.content for m in conversation.messages] == ['hi there']


async def test_blank_message_is_not_sent(conversation, transport_factory):
    await conversation.open()

    assert await conversation.send('   ') is None
    assert conversation.messages == []
    assert transport_factory.latest.emitted == []


async def test_send_attachment_uploads_then_sends(conversation, messages_api, transport_factory, tmp_path):
    await conversation.open()

    message = await conversation.send_attachment(str(tmp_path / 'photo.jpg'))

    messages_api.upload_attachment.assert_awaited_once_with(str(tmp_path / 'photo.jpg'))
    assert message.attachments == ['/uploads/chat/photo.jpg']
    event, payload = transport_factory.latest.emitted[-1]
    assert payload['attachments'] == ['/uploads/chat/photo.jpg']
    assert payload['content'] == ''


async def test_failed_send_keeps_message_flagged(conversation, transport_factory):
    await conversation.open()
    transport_factory.mode = 'fail'
    await transport_factory.latest.drop(DisconnectReason.CLIENT_DISCONNECT)

    message = await conversation.send('are you there?')

    assert message.failed
    assert conversation.messages == [message]


async def test_mark_read_and_read_receipt(conversation, messages_api, transport_factory):
    messages_api.get_conversation.return_value = [
        {'_id': 'm1', 'sender': PARTNER, 'receiver': ME, 'content': 'hello', 'read': False},
        {'_id': 'm2', 'sender': ME, 'receiver': PARTNER, 'content': 'hey', 'read': False},
    ]
    await conversation.open()
    transport = transport_factory.latest

    assert await conversation.mark_read() == ['m1']
    assert transport.emitted[-1] == ('markRead', {'messageIds': ['m1']})

    await transport.server_emit('readReceipt', {'messageIds': ['m2']})
    assert all(m.read for m in conversation.messages)


async def test_close_removes_only_own_listeners(conversation, connected_manager, transport_factory):
    other = Mock()
    connected_manager.add_listener('receiveMessage', other)
    await conversation.open()

    conversation.close()
    await transport_factory.latest.server_emit('receiveMessage', echo('late', sender=PARTNER, receiver=ME))

    assert conversation.messages == []
    other.assert_called_once()
    assert len(connected_manager.registry) == 1


async def test_inbox_merges_known_and_prepends_new(connected_manager, messages_api, transport_factory):
    messages_api.get_user_conversations.return_value = [
        {'userId': 'user-2', 'partnerName': 'Dr. Santos', 'lastMessage': 'See you', 'unread': 0},
        {'userId': 'user-3', 'lastMessage': 'Thanks', 'unread': 0},
    ]
    inbox = ConversationInbox(connected_manager, messages_api)
    await inbox.open()
    transport = transport_factory.latest

    await transport.server_emit('conversationUpdated', {'userId': 'user-3', 'lastMessage': 'New photo', 'unread': 2})
    await transport.server_emit('conversationUpdated', {'userId': 'user-4', 'lastMessage': 'Hello'})

    assert [c.user_id for c in inbox.conversations] == ['user-4', 'user-2', 'user-3']
    updated = inbox.get('user-3')
    assert updated.last_message == 'New photo'
    assert updated.unread == 2
    assert inbox.get('user-2').partner_name == 'Dr. Santos'

    inbox.close()
    assert transport.listener_count('conversationUpdated') == 0


async def test_inbox_load_failure_sets_error(connected_manager, messages_api):
    messages_api.get_user_conversations.side_effect = ApiError(500, 'Server error')
    inbox = ConversationInbox(connected_manager, messages_api)

    await inbox.open()

    assert inbox.conversations == []
    assert inbox.error
    inbox.close()


async def test_lost_pet_feed(connected_manager, transport_factory):
    nfc_api = Mock()
    nfc_api.get_lost_pets = AsyncMock(return_value=[{'_id': 't1'}, {'_id': 't2'}])
    feed = LostPetFeed(connected_manager, nfc_api)
    await feed.open()
    transport = transport_factory.latest

    await transport.server_emit('lostPetUpdate', {'action': 'lost', 'tag': {'_id': 't3'}})
    await transport.server_emit('lostPetUpdate', {'action': 'found', 'tag': {'_id': 't1'}})
    await transport.server_emit('lostPetUpdate', {'action': 'unknown', 'tag': {'_id': 't9'}})

    assert [t['_id'] for t in feed.tags] == ['t3', 't2']

    feed.close()
    await transport.server_emit('lostPetUpdate', {'action': 'lost', 'tag': {'_id': 't4'}})
    assert len(feed.tags) == 2
