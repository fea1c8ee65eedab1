"""
Tests for the Telegram Bot API client
"""
import pytest
import requests
from unittest.mock import MagicMock

from exceptions import TelegramAPIException
from telegram_client import TelegramClient


def make_client(response=None, **kwargs):
    client = TelegramClient('123:abc', **kwargs)
    client.session = MagicMock()
    if response is not None:
        client.session.post.return_value.json.return_value = response
    return client


def test_call_posts_json_and_returns_result():
    client = make_client({'ok': True, 'result': {'message_id': 5}})
    assert client.send_message(42, 'hi') == {'message_id': 5}
    url = client.session.post.call_args[0][0]
    assert url == 'https://api.telegram.org/bot123:abc/sendMessage'
    payload = client.session.post.call_args[1]['json']
    assert (payload['chat_id'], payload['text'], payload['parse_mode']) == (42, 'hi', 'HTML')


def test_not_ok_raises():
    client = make_client({'ok': False, 'description': 'Forbidden: bot was blocked by the user'})
    with pytest.raises(TelegramAPIException) as exc:
        client.forward_message(42, -100, 7)
    assert 'blocked' in exc.value.message
    assert exc.value.method == 'forwardMessage'


def test_transport_error_raises():
    client = make_client()
    client.session.post.side_effect = requests.ConnectionError('offline')
    with pytest.raises(TelegramAPIException):
        client.delete_message(42, 7)


def test_rate_limit_waits_for_window():
    now = [0.0]
    sleep = MagicMock(side_effect=lambda s: now.__setitem__(0, now[0] + s))
    client = make_client({'ok': True, 'result': True}, rate_limit_calls=2, rate_limit_window=60,
                         sleep=sleep, clock=lambda: now[0])

    client.send_chat_action(1)
    now[0] = 10.0
    client.send_chat_action(1)
    sleep.assert_not_called()

    client.send_chat_action(1)
    sleep.assert_called_once_with(50.0)

    now[0] = 200.0
    client.send_chat_action(1)
    assert sleep.call_count == 1


def test_reply_markup_and_reply_to():
    client = make_client({'ok': True, 'result': {}})
    client.send_message(42, 'hi', reply_markup={'inline_keyboard': []}, reply_to_message_id=9)
    payload = client.session.post.call_args[1]['json']
    assert payload['reply_markup'] == {'inline_keyboard': []}
    assert payload['reply_to_message_id'] == 9
