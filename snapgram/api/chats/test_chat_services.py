# snapgram/api/chats/test_chat_services.py
from datetime import datetime, timezone

import pytest
from google.api_core import exceptions as gcp_exceptions

from snapgram.api.chats.services import get_chat_id
from snapgram.core.errors import InvalidInputError, NotFoundError, StoreError


@pytest.fixture
def alice(make_user):
    return make_user('alice')


@pytest.fixture
def bob(make_user):
    return make_user('bob')


def test_chat_id_is_order_independent():
    assert get_chat_id('uid-b', 'uid-a') == get_chat_id('uid-a', 'uid-b') == 'uid-a_uid-b'


def test_open_chat_validation(messaging_service, alice):
    with pytest.raises(InvalidInputError):
        messaging_service.open_chat(alice['uid'], alice['uid'])
    with pytest.raises(NotFoundError):
        messaging_service.open_chat(alice['uid'], 'uid-missing')


def test_send_message_updates_summary(messaging_service, alice, bob):
    first = messaging_service.send_message(alice['uid'], bob['uid'], 'hi bob')
    reply = messaging_service.send_message(bob['uid'], alice['uid'], 'hi alice')

    assert first['chat_id'] == reply['chat_id'] == get_chat_id(alice['uid'], bob['uid'])
    chat = messaging_service.get_chat(first['chat_id'])
    assert chat['participants'] == sorted([alice['uid'], bob['uid']])
    assert chat['last_message'] == 'hi alice'
    assert chat['last_sender_id'] == bob['uid']
    assert chat['last_sent'] == reply['timestamp']
    assert chat['participant_usernames'] == {alice['uid']: 'alice', bob['uid']: 'bob'}

    messages = messaging_service.stream_messages(first['chat_id'])
    assert [m['text'] for m in messages] == ['hi bob', 'hi alice']


def test_blank_message_is_rejected(messaging_service, alice, bob):
    with pytest.raises(InvalidInputError):
        messaging_service.send_message(alice['uid'], bob['uid'], '  ')


def test_failed_send_writes_neither_message_nor_summary(messaging_service, alice, bob, fake_db):
    fake_db.fail_next_commit = gcp_exceptions.ServiceUnavailable('unavailable')
    with pytest.raises(StoreError):
        messaging_service.send_message(alice['uid'], bob['uid'], 'hello')

    chat_id = get_chat_id(alice['uid'], bob['uid'])
    assert messaging_service.get_chat(chat_id) is None
    assert messaging_service.stream_messages(chat_id) == []


def test_list_chats_filters_before_limit(messaging_service, make_user, alice, bob):
    # alice 가 참여하지 않은 채팅이 limit 보다 많아도 alice 의 채팅은 조회되어야 함
    messaging_service.send_message(alice['uid'], bob['uid'], 'old message')
    others = [make_user(f'user{i:02d}') for i in range(6)]
    for sender, recipient in zip(others, others[1:]):
        messaging_service.send_message(sender['uid'], recipient['uid'], 'unrelated')

    chats = messaging_service.list_chats(alice['uid'], limit=3)
    assert [c['chat_id'] for c in chats] == [get_chat_id(alice['uid'], bob['uid'])]


def test_list_chats_most_recent_first(messaging_service, make_user, alice, bob):
    carol = make_user('carol')
    messaging_service.send_message(alice['uid'], bob['uid'], 'to bob')
    messaging_service.send_message(carol['uid'], alice['uid'], 'from carol')

    chats = messaging_service.list_chats(alice['uid'])
    assert [c['last_message'] for c in chats] == ['from carol', 'to bob']


def test_watch_messages_delivers_updates(messaging_service, alice, bob):
    chat_id = get_chat_id(alice['uid'], bob['uid'])
    received = []
    watch = messaging_service.watch_messages(chat_id, received.append)

    messaging_service.send_message(alice['uid'], bob['uid'], 'one')
    messaging_service.send_message(bob['uid'], alice['uid'], 'two')
    assert [m['text'] for m in received[-1]] == ['one', 'two']

    watch.unsubscribe()
    messaging_service.send_message(alice['uid'], bob['uid'], 'three')
    assert [m['text'] for m in received[-1]] == ['one', 'two']


def test_repair_chat_summary(messaging_service, alice, bob, fake_db):
    sent = messaging_service.send_message(alice['uid'], bob['uid'], 'latest')
    chat_ref = fake_db.collection('chats').document(sent['chat_id'])
    chat_ref.update({'last_message': 'stale'})

    assert messaging_service.repair_all_chat_summaries() == 1
    assert messaging_service.get_chat(sent['chat_id'])['last_message'] == 'latest'
    assert messaging_service.repair_chat_summary(sent['chat_id']) is False


def test_repair_creates_missing_summary(messaging_service, alice, bob, fake_db):
    # 메시지는 저장됐지만 요약 문서는 한 번도 쓰이지 않은 채팅
    chat_id = get_chat_id(alice['uid'], bob['uid'])
    sent_at = datetime(2024, 3, 1, tzinfo=timezone.utc)
    fake_db.collection('chats').document(chat_id).collection('messages').document('m1').set({
        'message_id': 'm1',
        'sender_id': bob['uid'],
        'sender_username': 'bob',
        'text': 'orphaned hello',
        'timestamp': sent_at,
    })
    assert messaging_service.get_chat(chat_id) is None

    assert messaging_service.repair_all_chat_summaries() == 1

    chat = messaging_service.get_chat(chat_id)
    assert chat['last_message'] == 'orphaned hello'
    assert chat['last_sender_id'] == bob['uid']
    assert chat['last_sent'] == sent_at
    assert chat['participant_usernames'] == {alice['uid']: 'alice', bob['uid']: 'bob'}
    assert [c['chat_id'] for c in messaging_service.list_chats(alice['uid'])] == [chat_id]
