"""
Tests for the request ledger state machine
"""
import json
import os

import pytest

from constants import SYSTEM_MODERATOR, AUTO_APPROVE_REASON
from requests_ledger import RequestLedger, RequestStatus, ResultCode, MovieRequest
from conftest import ADMIN_ID, USER_ID

OTHER_USER = 5151


class TestSubmit:

    def test_submit_creates_pending_request(self, ledger, clock):
        result = ledger.submit(USER_ID, 'KGF 3', 'rocky')
        assert result.success
        assert result.code == ResultCode.OK
        request = result.request
        assert request.id == 1
        assert request.status == RequestStatus.PENDING
        assert request.display_name == 'rocky'
        assert request.created_at == clock.now.isoformat()

        stats = ledger.stats()
        assert stats == {'total_requests': 1, 'approved': 0, 'rejected': 0, 'pending': 1}
        user = ledger.user_stats(USER_ID)
        assert (user.total_requests, user.pending, user.requests_today) == (1, 1, 1)
        assert user.last_request_date == '2026-03-10'

    def test_ids_are_sequential(self, ledger):
        ids = [ledger.submit(USER_ID, name).request.id for name in ('Animal', 'Pushpa', 'KGF')]
        assert ids == [1, 2, 3]

    @pytest.mark.parametrize('name', ['', 'a', 'x' * 201])
    def test_invalid_name_is_declined(self, ledger, data_dir, name):
        result = ledger.submit(USER_ID, name)
        assert not result.success
        assert result.code == ResultCode.INVALID
        assert not os.path.exists(os.path.join(data_dir, 'requests.json'))

    def test_invalid_user_is_declined(self, ledger):
        assert ledger.submit(0, 'Animal').code == ResultCode.INVALID


class TestDuplicateGate:

    def test_same_pending_title_is_duplicate(self, ledger, clock):
        ledger.submit(USER_ID, 'KGF 3')
        clock.advance(hours=1)
        result = ledger.submit(USER_ID, 'kgf 3')
        assert not result.success
        assert result.code == ResultCode.DUPLICATE
        assert result.request.id == 1
        assert ledger.stats()['total_requests'] == 1

    def test_other_user_is_not_duplicate(self, ledger):
        ledger.submit(USER_ID, 'KGF 3')
        assert ledger.submit(OTHER_USER, 'KGF 3').success

    def test_rejected_request_does_not_block(self, ledger):
        ledger.submit(USER_ID, 'KGF 3')
        ledger.reject(1, ADMIN_ID, 'not yet released')
        assert ledger.submit(USER_ID, 'kgf 3').success

    def test_window_expires(self, ledger, clock):
        ledger.submit(USER_ID, 'KGF 3')
        clock.advance(hours=25)
        assert ledger.submit(USER_ID, 'KGF 3').success


class TestFloodGate:

    def test_fourth_request_same_day_is_declined(self, ledger):
        for name in ('Animal', 'Pushpa', 'Jawan'):
            assert ledger.submit(USER_ID, name).success
        result = ledger.submit(USER_ID, 'Dunki')
        assert not result.success
        assert result.code == ResultCode.FLOOD
        assert ledger.user_stats(USER_ID).requests_today == 3

    def test_counter_resets_next_day(self, ledger, clock):
        for name in ('Animal', 'Pushpa', 'Jawan'):
            ledger.submit(USER_ID, name)
        clock.advance(days=1)
        result = ledger.submit(USER_ID, 'Dunki')
        assert result.success
        assert ledger.user_stats(USER_ID).requests_today == 1

    def test_limit_is_per_user(self, ledger):
        for name in ('Animal', 'Pushpa', 'Jawan'):
            ledger.submit(USER_ID, name)
        assert ledger.submit(OTHER_USER, 'Dunki').success

    def test_configurable_limit(self, data_dir, clock):
        ledger = RequestLedger(os.path.join(data_dir, 'r.json'), max_per_day=1, clock=clock)
        assert ledger.submit(USER_ID, 'Animal').success
        assert ledger.submit(USER_ID, 'Pushpa').code == ResultCode.FLOOD


class TestModeration:

    def test_approve(self, ledger, clock):
        ledger.submit(USER_ID, 'Animal')
        clock.advance(minutes=5)
        result = ledger.approve(1, ADMIN_ID)
        assert result.success
        request = ledger.get(1)
        assert request.status == RequestStatus.APPROVED
        assert request.approved_by == ADMIN_ID
        assert request.approved_at == clock.now.isoformat()
        assert ledger.stats() == {'total_requests': 1, 'approved': 1, 'rejected': 0, 'pending': 0}
        user = ledger.user_stats(USER_ID)
        assert (user.pending, user.approved) == (0, 1)

    def test_reject_stores_reason(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        result = ledger.reject('1', ADMIN_ID, 'Low quality')
        assert result.success
        request = ledger.get(1)
        assert request.status == RequestStatus.REJECTED
        assert request.reason == 'Low quality'
        assert request.rejected_by == ADMIN_ID
        assert ledger.user_stats(USER_ID).rejected == 1

    def test_terminal_states_are_final(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        ledger.reject(1, ADMIN_ID)
        before_stats = ledger.stats()
        before_user = ledger.user_stats(USER_ID)

        result = ledger.approve(1, ADMIN_ID)
        assert not result.success
        assert result.code == ResultCode.NOT_PENDING
        assert ledger.get(1).status == RequestStatus.REJECTED
        assert ledger.stats() == before_stats
        assert ledger.user_stats(USER_ID) == before_user

    def test_approve_twice_does_not_double_count(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        assert ledger.approve(1, ADMIN_ID).success
        assert ledger.approve(1, ADMIN_ID).code == ResultCode.NOT_PENDING
        assert ledger.stats()['approved'] == 1

    def test_unknown_request(self, ledger):
        assert ledger.approve(42, ADMIN_ID).code == ResultCode.NOT_FOUND
        assert ledger.reject('abc', ADMIN_ID).code == ResultCode.INVALID

    def test_bulk_partial_failure(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        ledger.submit(USER_ID, 'Pushpa')
        ledger.reject(2, ADMIN_ID)

        bulk = ledger.bulk_approve([1, 2, 99], ADMIN_ID)
        assert bulk.total_count == 3
        assert bulk.success_count == 1
        assert bulk.results[1].success
        assert bulk.results[2].code == ResultCode.NOT_PENDING
        assert bulk.results[99].code == ResultCode.NOT_FOUND

    def test_bulk_reject(self, ledger):
        for name in ('Animal', 'Pushpa'):
            ledger.submit(USER_ID, name)
        bulk = ledger.bulk_reject([1, 2], ADMIN_ID, 'Duplicate')
        assert bulk.success_count == 2
        assert all(ledger.get(i).reason == 'Duplicate' for i in (1, 2))


class TestAutoApprove:

    def test_catalog_title_approves_matching_request(self, ledger):
        ledger.submit(USER_ID, 'Pathaan')
        ledger.submit(OTHER_USER, 'Jawan')

        approved = ledger.auto_approve('Pathaan (2023) HD')

        assert approved == [1]
        request = ledger.get(1)
        assert request.status == RequestStatus.APPROVED
        assert request.approved_by == SYSTEM_MODERATOR
        assert request.reason == AUTO_APPROVE_REASON
        assert ledger.get(2).status == RequestStatus.PENDING
        assert ledger.stats()['approved'] == 1

    def test_request_containing_catalog_title(self, ledger):
        ledger.submit(USER_ID, 'Animal full movie hindi')
        assert ledger.auto_approve('Animal') == [1]

    def test_similar_title(self, ledger):
        ledger.submit(USER_ID, 'Interstellar')
        assert ledger.auto_approve('Intersteller') == [1]

    def test_only_pending_requests(self, ledger):
        ledger.submit(USER_ID, 'Pathaan')
        ledger.reject(1, ADMIN_ID)
        assert ledger.auto_approve('Pathaan') == []

    def test_no_match(self, ledger):
        ledger.submit(USER_ID, 'Pathaan')
        assert ledger.auto_approve('KGF Chapter 2') == []
        assert ledger.get(1).status == RequestStatus.PENDING


class TestListing:

    def test_list_pending_oldest_first(self, ledger, clock):
        for name in ('Animal', 'Pushpa', 'Jawan'):
            ledger.submit(USER_ID, name)
            clock.advance(minutes=1)
        ledger.approve(2, ADMIN_ID)
        assert [r.id for r in ledger.list_pending()] == [1, 3]
        assert [r.id for r in ledger.list_pending(limit=1)] == [1]

    def test_list_pending_filter(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        ledger.submit(OTHER_USER, 'Animal Kingdom')
        ledger.submit(OTHER_USER, 'KGF')
        assert [r.id for r in ledger.list_pending(movie_filter='ANIMAL')] == [1, 2]

    def test_list_for_user_newest_first(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        ledger.submit(OTHER_USER, 'KGF')
        ledger.submit(USER_ID, 'Pushpa')
        assert [r.id for r in ledger.list_for_user(USER_ID)] == [3, 1]

    def test_unnotified_and_mark_notified(self, ledger):
        ledger.submit(USER_ID, 'Animal')
        ledger.submit(USER_ID, 'Pushpa')
        ledger.approve(1, ADMIN_ID)
        assert [r.id for r in ledger.unnotified()] == [1]
        assert ledger.mark_notified(1)
        assert ledger.unnotified() == []
        assert not ledger.mark_notified(99)


class TestStorage:

    def test_persisted_layout(self, ledger, data_dir):
        ledger.submit(USER_ID, 'Animal')
        with open(os.path.join(data_dir, 'requests.json'), encoding='utf-8') as f:
            data = json.load(f)
        assert data['last_request_id'] == 1
        assert data['requests']['1']['movie_name'] == 'Animal'
        assert data['user_stats'][str(USER_ID)]['pending'] == 1
        assert data['system_stats']['pending'] == 1

    def test_unreadable_ledger_is_not_overwritten(self, ledger, data_dir):
        path = os.path.join(data_dir, 'requests.json')
        with open(path, 'w', encoding='utf-8') as f:
            f.write('{broken')
        result = ledger.submit(USER_ID, 'Animal')
        assert result.code == ResultCode.STORAGE_ERROR
        with open(path, encoding='utf-8') as f:
            assert f.read() == '{broken'

    def test_request_record_validation(self):
        with pytest.raises(ValueError):
            MovieRequest(id=1, user_id=USER_ID, movie_name='A')
        with pytest.raises(ValueError):
            MovieRequest(id=1, user_id=USER_ID, movie_name='Animal', status='archived')
