"""Tests for chat payload parsing and message helpers."""
from chat.models import ConversationMessage, ConversationSummary
from utils.message_utils import create_send_message_payload, parse_timestamp


def test_message_from_populated_payload():
    message = ConversationMessage.from_payload({
        '_id': 'm1',
        'sender': {'_id': 'user-2', 'fullName': 'Dr. Santos'},
        'receiver': 'user-1',
        'content': 'Bring the vaccination card',
        'timestamp': '2024-05-01T10:00:00.000Z',
        'clientMessageId': 'c1',
    })

    assert message.sender == 'user-2'
    assert message.client_message_id == 'c1'
    assert message.sent_at.year == 2024
    assert message.between('user-1', 'user-2')
    assert not message.between('user-1', 'user-3')


def test_optimistic_message_is_pending():
    message = ConversationMessage.optimistic('user-1', 'user-2', 'hi', client_message_id='c1')

    assert message.pending
    assert message.id.isdigit()
    assert message.sent_at is not None


def test_summary_merge_keeps_missing_fields():
    summary = ConversationSummary.from_payload({'userId': 'user-2', 'partnerName': 'Dr. Santos', 'unread': 1})

    summary.merge({'userId': 'user-2', 'lastMessage': 'See you', 'partnerName': None, 'conversationId': 'c9'})

    assert summary.partner_name == 'Dr. Santos'
    assert summary.last_message == 'See you'
    assert summary.conversation_id == 'c9'
    assert summary.unread == 1


def test_parse_timestamp_variants():
    assert parse_timestamp('2024-05-01T10:00:00Z').tzinfo is not None
    assert parse_timestamp('2024-05-01T10:00:00').tzinfo is not None
    assert parse_timestamp('yesterday') is None
    assert parse_timestamp(None) is None


def test_send_payload_shape():
    assert create_send_message_payload('user-2', 'hi') == {'receiver': 'user-2', 'content': 'hi'}
    assert create_send_message_payload('user-2', '', ['/uploads/chat/a.jpg'], 'c1') == {
        'receiver': 'user-2',
        'content': '',
        'attachments': ['/uploads/chat/a.jpg'],
        'clientMessageId': 'c1',
    }
