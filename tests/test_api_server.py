"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API, using Flask's test client.
"""

import pytest

from matnet import api_server
from matnet.model_persistence import save_network, get_network_metadata


NETWORK_PAYLOAD = {
    'weights': [
        [[0.5, -1.0], [1.5, 2.0], [-0.25, 0.75]],
        [[1.0, 0.5, 2.0], [-1.0, 1.0, -4.0]]
    ],
    'biases': [
        [[0.0], [-1.0], [0.5]],
        [[0.25], [1.0]]
    ],
    'relu': [True, False]
}


@pytest.fixture
def client():
    api_server.app.config['TESTING'] = True
    with api_server.app.test_client() as client:
        yield client
        client.delete('/api/networks')
    api_server.active_networks.clear()


@pytest.fixture
def network_id(client):
    response = client.post('/api/networks', json=NETWORK_PAYLOAD)
    assert response.status_code == 201
    return response.get_json()['network_id']


@pytest.mark.unit
class TestMatrixEndpoints:

    def test_multiply(self, client):
        response = client.post('/api/matrix/multiply', json={
            'lhs': [[1, 2, 3, 4], [4, 2, 2, 1], [1, 1, 1, 1]],
            'rhs': [[1, 4, 1], [2, 3, 1], [3, 2, 1], [4, 1, 1]]
        })
        assert response.status_code == 200
        data = response.get_json()
        assert data['result'] == [[30, 20, 10], [18, 27, 9], [10, 10, 4]]
        assert data['shape'] == [3, 3]

    def test_add(self, client):
        response = client.post('/api/matrix/add', json={
            'lhs': [[1, 2, 3, 4], [4, 2, 2, 1], [1, 1, 1, 1]],
            'rhs': [[1, 1, 3, 4], [2, 2, 4, 1], [1, 2, 1, 2]]
        })
        assert response.status_code == 200
        assert response.get_json()['result'] == [[2, 3, 6, 8], [6, 4, 6, 2], [2, 3, 2, 3]]

    def test_multiply_shape_mismatch(self, client):
        response = client.post('/api/matrix/multiply', json={
            'lhs': [[1, 2]],
            'rhs': [[1, 2]]
        })
        assert response.status_code == 400
        assert 'error' in response.get_json()

    def test_add_ragged_matrix(self, client):
        response = client.post('/api/matrix/add', json={
            'lhs': [[1, 2], [3]],
            'rhs': [[1, 2], [3, 4]]
        })
        assert response.status_code == 400

    @pytest.mark.parametrize("bad", [None, [], [1, 2], [[1, 'x']], [[True]]])
    def test_rejects_malformed_matrices(self, client, bad):
        response = client.post('/api/matrix/add', json={'lhs': bad, 'rhs': [[1]]})
        assert response.status_code == 400

    @pytest.mark.parametrize("body", [[1, 2], "abc", 5, []])
    @pytest.mark.parametrize("path", ['/api/matrix/multiply', '/api/matrix/add'])
    def test_rejects_non_object_body(self, client, path, body):
        response = client.post(path, json=body)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Request body must be a JSON object'


@pytest.mark.unit
class TestNetworkEndpoints:

    def test_status(self, client, network_id):
        response = client.get('/api/status')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'online'
        assert data['active_networks'] == 1

    def test_create_network(self, client):
        response = client.post('/api/networks', json=NETWORK_PAYLOAD)
        assert response.status_code == 201
        data = response.get_json()
        assert data['architecture'] == [2, 3, 2]
        assert data['use_relu'] == [True, False]
        assert data['saved'] is True
        assert data['network_id'] in api_server.active_networks

    def test_create_network_saves_to_disk(self, client, network_id):
        metadata = get_network_metadata(network_id, api_server.MODEL_DIR)
        assert metadata is not None
        assert metadata['verified'] is False

    def test_create_network_invalid_layers(self, client):
        payload = dict(NETWORK_PAYLOAD, relu=[True])
        response = client.post('/api/networks', json=payload)
        assert response.status_code == 400

    def test_create_network_bad_relu(self, client):
        payload = dict(NETWORK_PAYLOAD, relu=['yes', 'no'])
        response = client.post('/api/networks', json=payload)
        assert response.status_code == 400

    def test_create_network_missing_weights(self, client):
        response = client.post('/api/networks', json={'relu': [True]})
        assert response.status_code == 400

    def test_get_network(self, client, network_id):
        response = client.get(f'/api/networks/{network_id}')
        assert response.status_code == 200
        data = response.get_json()
        assert data['architecture'] == [2, 3, 2]
        assert data['status'] == 'in_memory'

    def test_get_network_saved_only(self, client, network_id):
        api_server.active_networks.clear()
        response = client.get(f'/api/networks/{network_id}')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'saved'

    def test_get_unknown_network(self, client):
        response = client.get('/api/networks/does-not-exist')
        assert response.status_code == 404

    def test_evaluate(self, client, network_id):
        response = client.post(
            f'/api/networks/{network_id}/evaluate',
            json={'input': [[2.0], [1.0]]}
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data['output'] == [[3.75], [2.0]]
        assert data['shape'] == [2, 1]

    def test_evaluate_loads_saved_network(self, client, network_id):
        api_server.active_networks.clear()
        response = client.post(
            f'/api/networks/{network_id}/evaluate',
            json={'input': [[2.0], [1.0]]}
        )
        assert response.status_code == 200
        assert network_id in api_server.active_networks

    def test_evaluate_wrong_input_shape(self, client, network_id):
        response = client.post(
            f'/api/networks/{network_id}/evaluate',
            json={'input': [[1.0], [2.0], [3.0]]}
        )
        assert response.status_code == 400

    def test_evaluate_unknown_network(self, client):
        response = client.post(
            '/api/networks/does-not-exist/evaluate',
            json={'input': [[1.0]]}
        )
        assert response.status_code == 404

    def test_verify_matching_output(self, client, network_id):
        response = client.post(f'/api/networks/{network_id}/verify', json={
            'input': [[2.0], [1.0]],
            'expected_output': [[3.75], [2.0]]
        })
        assert response.status_code == 200
        assert response.get_json()['matches'] is True
        assert api_server.active_networks[network_id]['verified'] is True
        assert get_network_metadata(network_id, api_server.MODEL_DIR)['verified'] is True

    def test_verify_mismatching_output(self, client, network_id):
        response = client.post(f'/api/networks/{network_id}/verify', json={
            'input': [[2.0], [1.0]],
            'expected_output': [[3.75], [2.5]]
        })
        assert response.status_code == 200
        data = response.get_json()
        assert data['matches'] is False
        assert data['output'] == [[3.75], [2.0]]

    def test_list_networks(self, client, network_id):
        response = client.get('/api/networks')
        assert response.status_code == 200
        networks = response.get_json()['networks']
        assert [n['network_id'] for n in networks] == [network_id]
        assert networks[0]['status'] == 'in_memory'

    def test_list_includes_saved_only(self, client, network_id):
        api_server.active_networks.clear()
        networks = client.get('/api/networks').get_json()['networks']
        assert networks[0]['network_id'] == network_id
        assert networks[0]['status'] == 'saved'
        assert networks[0]['weights_shape'] == [[3, 2], [2, 3]]

    def test_delete_network(self, client, network_id):
        response = client.delete(f'/api/networks/{network_id}')
        assert response.status_code == 200
        data = response.get_json()
        assert data['deleted_from_memory'] is True
        assert data['deleted_from_disk'] is True
        assert network_id not in api_server.active_networks

    def test_delete_unknown_network(self, client):
        response = client.delete('/api/networks/does-not-exist')
        assert response.status_code == 404

    def test_delete_all_networks(self, client, network_id):
        client.post('/api/networks', json=NETWORK_PAYLOAD)
        response = client.delete('/api/networks')
        assert response.status_code == 200
        assert response.get_json()['deleted_count'] == 2
        assert api_server.active_networks == {}

    def test_cleanup_rejects_negative_days(self, client):
        response = client.post('/api/networks/cleanup', json={'days': -1})
        assert response.status_code == 400

    @pytest.mark.parametrize("body", [[1, 2], "abc", 5])
    def test_rejects_non_object_body(self, client, network_id, body):
        paths = [
            '/api/networks',
            f'/api/networks/{network_id}/evaluate',
            f'/api/networks/{network_id}/verify',
            '/api/networks/cleanup',
        ]
        for path in paths:
            response = client.post(path, json=body)
            assert response.status_code == 400, path
            assert 'error' in response.get_json()

    def test_empty_json_object_uses_defaults(self, client):
        response = client.post('/api/networks/cleanup', json={})
        assert response.status_code == 200
        assert response.get_json()['days'] == 2

    def test_cleanup_keeps_recent(self, client, network_id):
        response = client.post('/api/networks/cleanup', json={'days': 2})
        assert response.status_code == 200
        assert response.get_json()['deleted_count'] == 0
        assert network_id in api_server.active_networks


@pytest.mark.integration
class TestStartup:

    def test_reload_saved_networks(self, client, simple_network):
        save_network(simple_network, 'preexisting', model_dir=api_server.MODEL_DIR)
        api_server.active_networks.clear()

        api_server.reload_saved_networks()

        assert 'preexisting' in api_server.active_networks
        assert api_server.active_networks['preexisting']['architecture'] == [2, 3, 2]

    def test_start_cleanup_task_is_idempotent(self):
        assert api_server._cleanup_task_started is True
        api_server.start_cleanup_task()
        assert api_server._cleanup_task_started is True
