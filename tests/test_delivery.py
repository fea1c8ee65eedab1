"""
Tests for record delivery
"""
from unittest.mock import MagicMock

from catalog import CatalogRecord
from delivery import DeliveryDispatcher
from exceptions import TelegramAPIException
from conftest import PUBLIC_CHANNEL, PRIVATE_CHANNEL, USER_ID


def make_dispatcher(telegram, channels):
    return DeliveryDispatcher(telegram, channels, sleep=MagicMock())


def test_public_records_are_forwarded(telegram, channels):
    dispatcher = make_dispatcher(telegram, channels)
    assert dispatcher.deliver(USER_ID, CatalogRecord('Animal', 101, PUBLIC_CHANNEL))
    telegram.forward_message.assert_called_once_with(USER_ID, PUBLIC_CHANNEL, 101)
    telegram.copy_message.assert_not_called()


def test_private_records_are_copied(telegram, channels):
    dispatcher = make_dispatcher(telegram, channels)
    assert dispatcher.deliver(USER_ID, CatalogRecord('Animal', 102, PRIVATE_CHANNEL))
    telegram.copy_message.assert_called_once_with(USER_ID, PRIVATE_CHANNEL, 102)
    telegram.forward_message.assert_not_called()


def test_unknown_channel_gets_text_fallback(telegram, channels):
    dispatcher = make_dispatcher(telegram, channels)
    assert not dispatcher.deliver(USER_ID, CatalogRecord('Tom & Jerry', 103, -555))
    text = telegram.send_message.call_args[0][1]
    assert 'Tom &amp; Jerry' in text
    assert 'Unknown Channel' in text


def test_api_failure_is_reported(telegram, channels):
    telegram.forward_message.side_effect = TelegramAPIException('message not found', method='forwardMessage')
    dispatcher = make_dispatcher(telegram, channels)
    assert not dispatcher.deliver(USER_ID, CatalogRecord('Animal', 101, PUBLIC_CHANNEL))


def test_group_pauses_between_sends(telegram, channels):
    sleep = MagicMock()
    dispatcher = DeliveryDispatcher(telegram, channels, pause=0.5, sleep=sleep)
    telegram.copy_message.side_effect = [None, TelegramAPIException('gone', method='copyMessage')]
    records = [
        CatalogRecord('Animal', 1, PUBLIC_CHANNEL),
        CatalogRecord('Animal', 2, PRIVATE_CHANNEL),
        CatalogRecord('Animal', 3, PRIVATE_CHANNEL),
    ]
    assert dispatcher.deliver_group(USER_ID, records) == 2
    assert sleep.call_count == 2
    sleep.assert_called_with(0.5)
