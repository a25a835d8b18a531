"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for matrix algebra and
neural network evaluation.

This module provides endpoints for:
- Multiplying and adding matrices
- Creating neural networks from weight and bias matrices
- Evaluating networks and verifying them against expected outputs
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket notifications when evaluations finish
- Gevent for the background cleanup task
- SQLite for network persistence
"""

import os
import sys
import uuid
import logging
from numbers import Number
from typing import Dict, Any, Optional

import gevent
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Local imports
from matnet.matrix import Matrix, InvalidArgumentError
from matnet.network import NeuralNetwork
from matnet.model_persistence import (
    DEFAULT_MODEL_DIR,
    save_network,
    load_network,
    list_saved_networks,
    get_network_metadata,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    # Set up basic logging format
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('matnet').setLevel(logging.INFO)
        logging.getLogger('matnet.api_server').setLevel(logging.INFO)
        logging.getLogger('matnet.model_persistence').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# Directory holding networks.db
MODEL_DIR = os.getenv('MODEL_DIR', DEFAULT_MODEL_DIR)

# SocketIO pushes evaluation results to connected clients
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks(MODEL_DIR)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, MODEL_DIR)
        if net is not None:
            active_networks[network_id] = {
                'network': net,
                'architecture': net_info['architecture'],
                'verified': net_info['verified']
            }
            loaded_count += 1
        else:
            logger.warning(f"Failed to load network {network_id}")

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def sync_active_networks() -> None:
    """Remove networks from memory that no longer exist in the database."""
    saved_ids = {net['network_id'] for net in list_saved_networks(MODEL_DIR)}
    networks_to_remove = [
        nid for nid in active_networks.keys()
        if nid not in saved_ids
    ]
    for nid in networks_to_remove:
        del active_networks[nid]
        logger.info(f"Removed network {nid} from memory (deleted from database)")


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately on startup, then every 24 hours to
    delete networks older than 2 days and sync in-memory networks with the
    database.
    """
    logger.info("Cleanup task started")

    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")

            deleted_count = delete_old_networks(days=2, model_dir=MODEL_DIR)

            if deleted_count > 0:
                logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")
                sync_active_networks()
                logger.info(f"Active networks in memory after cleanup: {len(active_networks)}")
            elif deleted_count == 0:
                logger.info("Cleanup completed: no old networks found to delete")
            else:
                logger.error("Cleanup returned error code")

            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Uses gevent.spawn() directly so it works both when running directly
    and under gunicorn. Calling it more than once has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


# Start the cleanup task when module is loaded (works with gunicorn)
start_cleanup_task()


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def matrix_from_json(value: Any, name: str) -> Matrix:
    """
    Build a matrix from a JSON nested list of numbers.

    Raises:
        InvalidArgumentError: If ``value`` is not a rectangular,
            non-empty list of lists of numbers
    """
    if not isinstance(value, list) or not all(isinstance(row, list) for row in value):
        raise InvalidArgumentError(f"'{name}' must be a list of lists")

    for row in value:
        for item in row:
            if isinstance(item, bool) or not isinstance(item, Number):
                raise InvalidArgumentError(f"'{name}' must contain only numbers")

    try:
        return Matrix(value)
    except InvalidArgumentError as e:
        raise InvalidArgumentError(f"'{name}': {e}") from e


def request_json_object() -> Optional[Dict[str, Any]]:
    """Return the JSON request body, or None if it is not a JSON object."""
    data = request.get_json()
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Rejected non-object JSON body on {request.path}")
        return None
    return data


def matrix_to_json(matrix: Matrix) -> Dict[str, Any]:
    """Serialize a matrix as its nested list plus shape."""
    return {'result': matrix.tolist(), 'shape': list(matrix.shape)}


def get_active_network(network_id: str) -> Optional[Dict[str, Any]]:
    """Return the in-memory entry for a network, loading it from disk if needed."""
    if network_id in active_networks:
        return active_networks[network_id]

    net = load_network(network_id, MODEL_DIR)
    if net is None:
        return None

    metadata = get_network_metadata(network_id, MODEL_DIR) or {}
    active_networks[network_id] = {
        'network': net,
        'architecture': net.sizes,
        'verified': metadata.get('verified', False)
    }
    return active_networks[network_id]


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks)
    }), 200


def _matrix_operation(operation: str):
    data = request_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        lhs = matrix_from_json(data.get('lhs'), 'lhs')
        rhs = matrix_from_json(data.get('rhs'), 'rhs')
        result = lhs.mul(rhs) if operation == 'multiply' else lhs.add(rhs)
    except InvalidArgumentError as e:
        logger.warning(f"Invalid matrix {operation} request: {e}")
        return jsonify({'error': str(e)}), 400

    logger.debug(f"Matrix {operation}: {lhs.shape} with {rhs.shape} -> {result.shape}")
    return jsonify(matrix_to_json(result)), 200


@app.route('/api/matrix/multiply', methods=['POST'])
def multiply_matrices():
    """
    Multiply two matrices.

    Request body:
        {'lhs': [[1, 2], [3, 4]], 'rhs': [[5], [6]]}

    Returns:
        JSON with result and shape
    """
    return _matrix_operation('multiply')


@app.route('/api/matrix/add', methods=['POST'])
def add_matrices():
    """
    Add two matrices of identical shape.

    Request body:
        {'lhs': [[1, 2]], 'rhs': [[3, 4]]}

    Returns:
        JSON with result and shape
    """
    return _matrix_operation('add')


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new neural network and save it.

    Request body:
        {
            'weights': [[[...]], ...],  # one matrix per layer
            'biases': [[[...]], ...],   # one column matrix per layer
            'relu': [true, ...]         # one flag per layer
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    weights_data = data.get('weights')
    biases_data = data.get('biases')
    relu_data = data.get('relu')

    if not isinstance(weights_data, list) or not isinstance(biases_data, list):
        return jsonify({'error': "'weights' and 'biases' must be lists of matrices"}), 400
    if not isinstance(relu_data, list) or not all(isinstance(flag, bool) for flag in relu_data):
        return jsonify({'error': "'relu' must be a list of booleans"}), 400

    try:
        weights = [
            matrix_from_json(m, f'weights[{i}]') for i, m in enumerate(weights_data)
        ]
        biases = [
            matrix_from_json(m, f'biases[{i}]') for i, m in enumerate(biases_data)
        ]
        net = NeuralNetwork(relu_data, weights, biases)
    except InvalidArgumentError as e:
        logger.warning(f"Invalid network requested: {e}")
        return jsonify({'error': f'Invalid network: {e}'}), 400

    network_id = str(uuid.uuid4())

    active_networks[network_id] = {
        'network': net,
        'architecture': net.sizes,
        'verified': False
    }

    saved = save_network(net, network_id, model_dir=MODEL_DIR, verified=False)
    if not saved:
        logger.warning(f"Network {network_id} kept in memory only")

    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'use_relu': net.use_relu,
        'saved': saved,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>', methods=['GET'])
def get_network(network_id: str):
    """Return metadata for a single network."""
    if network_id in active_networks:
        info = active_networks[network_id]
        return jsonify({
            'network_id': network_id,
            'architecture': info['architecture'],
            'use_relu': info['network'].use_relu,
            'verified': info['verified'],
            'status': 'in_memory'
        }), 200

    metadata = get_network_metadata(network_id, MODEL_DIR)
    if metadata is None:
        logger.warning(f"Metadata requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    metadata['status'] = 'saved'
    return jsonify(metadata), 200


@app.route('/api/networks/<network_id>/evaluate', methods=['POST'])
def evaluate_network(network_id: str):
    """
    Compute the network output for an input column matrix.

    Request body:
        {'input': [[1.0], [2.0]]}

    Returns:
        JSON with network_id, output, and shape
    """
    info = get_active_network(network_id)
    if info is None:
        logger.warning(f"Evaluation requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    data = request_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        input_matrix = matrix_from_json(data.get('input'), 'input')
        output = info['network'].compute_output(input_matrix)
    except InvalidArgumentError as e:
        logger.warning(f"Invalid input for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    # Notify connected clients
    socketio.emit('evaluation_complete', {
        'network_id': network_id,
        'output': output.tolist()
    })
    gevent.sleep(0)

    return jsonify({
        'network_id': network_id,
        'output': output.tolist(),
        'shape': list(output.shape)
    }), 200


@app.route('/api/networks/<network_id>/verify', methods=['POST'])
def verify_network(network_id: str):
    """
    Check that a network reproduces an expected output exactly.

    Request body:
        {'input': [[1.0], [2.0]], 'expected_output': [[3.0]]}

    Returns:
        JSON with matches flag and the computed output
    """
    info = get_active_network(network_id)
    if info is None:
        logger.warning(f"Verification requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    data = request_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        input_matrix = matrix_from_json(data.get('input'), 'input')
        expected = matrix_from_json(data.get('expected_output'), 'expected_output')
        output = info['network'].compute_output(input_matrix)
    except InvalidArgumentError as e:
        logger.warning(f"Invalid verification request for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 400

    matches = output == expected
    info['verified'] = matches
    save_network(info['network'], network_id, model_dir=MODEL_DIR, verified=matches)

    logger.info(f"Verified network {network_id}: matches={matches}")

    return jsonify({
        'network_id': network_id,
        'matches': matches,
        'output': output.tolist()
    }), 200


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'verified': info['verified'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    # Get saved networks, excluding duplicates already in memory
    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks(MODEL_DIR):
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = False
    if network_id in active_networks:
        del active_networks[network_id]
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id, MODEL_DIR)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from both memory and disk."""
    in_memory_ids = list(active_networks.keys())
    saved_ids = [net['network_id'] for net in list_saved_networks(MODEL_DIR)]
    all_network_ids = list(set(in_memory_ids + saved_ids))

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0

    for network_id in all_network_ids:
        if network_id in active_networks:
            del active_networks[network_id]
            deleted_from_memory_count += 1

        if delete_network(network_id, MODEL_DIR):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count,
        'message': f'Successfully deleted {len(all_network_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}  # defaults to 2

    Returns:
        JSON with deleted_count, days, and message
    """
    data = request_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    days = data.get('days', 2)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    try:
        deleted_count = delete_old_networks(days=days, model_dir=MODEL_DIR)

        if deleted_count == -1:
            return jsonify({'error': 'Error occurred during cleanup'}), 500

        if deleted_count > 0:
            sync_active_networks()

        logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

        return jsonify({
            'deleted_count': deleted_count,
            'days': days,
            'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
        }), 200

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception(f"Error during manual cleanup: {e}")
        return jsonify({'error': 'Internal server error'}), 500


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    # Check if running in cloud environment (Railway, etc.)
    is_cloud = bool(os.environ.get('RAILWAY_STATIC_URL') or os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    # Start the server with WebSocket support
    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            logger.info("You can use: pkill -f 'python -m matnet.api_server'")
            sys.exit(1)
        else:
            raise
