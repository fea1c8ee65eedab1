"""
Tests for the Flask app: webhook intake and system endpoints
"""
import pytest

from server import create_app
from routes.webhook import SECRET_HEADER
from conftest import PUBLIC_CHANNEL, USER_ID


@pytest.fixture
def app(services):
    app = create_app(services=services, start_jobs=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestWebhook:

    def test_update_is_handled(self, client, services, telegram):
        update = {'update_id': 1, 'channel_post': {
            'message_id': 9, 'chat': {'id': PUBLIC_CHANNEL, 'type': 'channel'}, 'text': 'Animal',
        }}
        response = client.post('/webhook', json=update)
        assert response.status_code == 200
        assert response.get_json() == {'ok': True}
        assert [r.movie_name for r in services.catalog.pending()] == ['Animal']

    def test_secret_is_enforced(self, client, services):
        services.settings['bot']['webhook_secret'] = 's3cret'
        update = {'update_id': 1, 'message': {
            'message_id': 1, 'from': {'id': USER_ID}, 'chat': {'id': USER_ID}, 'text': '/start',
        }}

        assert client.post('/webhook', json=update).status_code == 401
        assert client.post('/webhook', json=update, headers={SECRET_HEADER: 'wrong'}).status_code == 401
        assert client.post('/webhook', json=update, headers={SECRET_HEADER: 's3cret'}).status_code == 200

    def test_non_object_body(self, client):
        response = client.post('/webhook', data='[1, 2]', content_type='application/json')
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_unknown_update_kind_is_acknowledged(self, client, telegram):
        assert client.post('/webhook', json={'update_id': 5, 'poll': {}}).status_code == 200
        telegram.send_message.assert_not_called()


class TestSystemEndpoints:

    def test_health(self, client, services):
        services.catalog.append('Animal', 101, PUBLIC_CHANNEL)
        data = client.get('/api/health').get_json()['data']
        assert data['status'] == 'healthy'
        assert data['pending_writes'] == 1
        assert data['maintenance'] is False

    def test_catalog_stats(self, client, services):
        services.catalog.append('Animal', 101, PUBLIC_CHANNEL)
        data = client.get('/api/catalog/stats').get_json()['data']
        assert data['total_count'] == 1
        assert data['channels'] == {str(PUBLIC_CHANNEL): 1}

    def test_requests_stats(self, client, services):
        services.ledger.submit(USER_ID, 'Animal')
        data = client.get('/api/requests/stats').get_json()['data']
        assert data == {'total_requests': 1, 'approved': 0, 'rejected': 0, 'pending': 1}

    def test_storage_failure_is_503(self, client, services, data_dir):
        with open(services.ledger.path, 'w', encoding='utf-8') as f:
            f.write('{')
        response = client.get('/api/requests/stats')
        assert response.status_code == 503
        assert response.get_json()['code'] == 'SERVICE_UNAVAILABLE'

    def test_metrics(self, client):
        client.get('/api/health')
        response = client.get('/api/metrics')
        assert response.status_code == 200
        assert b'api_requests_total' in response.data
