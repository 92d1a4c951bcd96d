"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for neural network training.

This module provides endpoints for:
- Creating and managing in-memory neural networks
- Training networks with real-time progress updates via WebSockets
- Running predictions and inspecting MNIST test examples

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for cooperative background training tasks
"""

import os
import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from feedforward import mnist_loader
from feedforward.activation import get_activation
from feedforward.cost import SQUARED_ERROR
from feedforward.initialization import normal_fill
from feedforward.logging_config import configure_logging
from feedforward.matrix import Matrix, ShapeMismatchError
from feedforward.network import Network, classify

configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

DEFAULT_LAYER_SIZES = [784, 30, 10]
DEFAULT_ACTIVATION = 'sigmoid'

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# Datasets as (features, labels) pairs, loaded once by load_mnist_data()
training_data: Any = None
validation_data: Any = None
test_data: Any = None


# ============================================================================
# DATA LOADING
# ============================================================================

def load_mnist_data(data_dir: Optional[str] = None) -> None:
    """
    Load the MNIST dataset into global variables.

    Called once at startup to avoid reloading data for each training run.

    Args:
        data_dir: Dataset directory (defaults to MNIST_DATA_DIR, then ./data)
    """
    global training_data, validation_data, test_data

    logger.info("Loading MNIST data...")
    try:
        training_data, validation_data, test_data = (
            mnist_loader.load_data_wrapper(data_dir)
        )
        logger.info(
            f"Data loaded: {len(training_data[0])} training, "
            f"{len(validation_data[0])} validation, "
            f"{len(test_data[0])} test"
        )
    except Exception as e:
        logger.exception(f"Error loading MNIST data: {e}")
        raise


def data_available() -> bool:
    """True once both the training and test sets are loaded and non-empty."""
    return (training_data is not None and test_data is not None
            and len(training_data[0]) > 0 and len(test_data[0]) > 0)


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

def cleanup_finished_training_jobs() -> int:
    """
    Remove completed or failed training jobs from memory.

    This prevents the training_jobs dictionary from growing indefinitely.
    Only removes jobs that are no longer active (completed or failed).

    Returns:
        Number of jobs removed
    """
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")
    return len(jobs_to_remove)


def train_network_task(
    network_id: str,
    job_id: str,
    epochs: int,
    mini_batch_size: int,
    learning_rate: float,
    activation_name: str = DEFAULT_ACTIVATION,
    seed: Optional[int] = None
) -> None:
    """
    Background task that trains a neural network.

    Sends progress updates via WebSocket as training progresses.
    """
    def on_epoch_complete(data: Dict[str, Any]) -> None:
        """Called after each training epoch to send progress updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        # Send update to connected clients via WebSocket
        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'accuracy': data['accuracy'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress,
            'correct': data.get('correct'),
            'total': data.get('total')
        })

        # Let gevent send the message immediately
        gevent.sleep(0)

    def yield_to_other_tasks() -> None:
        # Lets HTTP requests be served between mini-batches
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")

        # The network may have been deleted since the job was queued
        info = active_networks.get(network_id)
        if info is None:
            raise RuntimeError(f"Network {network_id} no longer exists")
        net = info['network']
        activation = get_activation(activation_name)
        rng = np.random.default_rng(seed)

        train_features, train_labels = training_data
        test_features, test_labels = test_data

        net.SGD(
            train_features,
            train_labels,
            epochs,
            mini_batch_size,
            learning_rate,
            activation,
            SQUARED_ERROR,
            test_data=(test_features, test_labels),
            callback=on_epoch_complete,
            yield_func=yield_to_other_tasks,
            rng=rng
        )

        accuracy = (
            net.evaluate(test_features, test_labels, activation)
            / len(test_features)
        )

        info['trained'] = True
        info['accuracy'] = accuracy
        info['activation'] = activation.name

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['accuracy'] = accuracy
        training_jobs[job_id]['progress'] = 100

        logger.info(f"Training completed for job {job_id}: accuracy {accuracy:.2%}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'accuracy': float(accuracy),
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


# ============================================================================
# REQUEST HELPERS
# ============================================================================

def get_json_object() -> Optional[Dict[str, Any]]:
    """
    Return the request's JSON body as a dict.

    A missing or unparsable body counts as empty. Returns None when the
    body is valid JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        return None
    return data


def is_valid_seed(seed: Any) -> bool:
    """True for None or a non-negative integer (booleans excluded)."""
    if seed is None:
        return True
    return isinstance(seed, int) and not isinstance(seed, bool) and seed >= 0


@app.errorhandler(Exception)
def handle_unexpected_error(e: Exception):
    """Log unhandled errors and answer with a JSON 500."""
    if isinstance(e, HTTPException):
        return e

    logger.exception(f"Unhandled error serving {request.path}: {e}")
    return jsonify({'error': 'Internal server error'}), 500


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Returns counts of active networks and training jobs that are
    currently in progress (status='pending' or 'training').
    """
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training,
        'data_loaded': data_available()
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new neural network.

    Request body (optional):
        {
            'layer_sizes': [784, 30, 10],  # defaults to [784, 30, 10]
            'seed': 42                     # seeds the weight initializer
        }

    Weights are drawn from a standard normal distribution; biases start
    at zero.

    Returns:
        JSON with network_id, architecture, and status
    """
    data = get_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    layer_sizes = data.get('layer_sizes', DEFAULT_LAYER_SIZES)
    seed = data.get('seed')

    if not is_valid_seed(seed):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400
    if not isinstance(layer_sizes, list):
        logger.warning(f"Invalid architecture requested: {layer_sizes}")
        return jsonify({
            'error': 'Invalid architecture. Must have at least 2 layers.'
        }), 400

    try:
        net = Network(
            layer_sizes,
            init_weights=normal_fill(np.random.default_rng(seed))
        )
    except ValueError as e:
        logger.warning(f"Invalid architecture requested: {layer_sizes}")
        return jsonify({'error': f'Invalid architecture. {e}'}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'architecture': net.sizes,
        'trained': False,
        'accuracy': None,
        'activation': DEFAULT_ACTIVATION
    }

    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all networks held in memory."""
    networks = []
    for nid, info in active_networks.items():
        architecture = info['architecture']
        networks.append({
            'network_id': nid,
            'architecture': architecture,
            'weights_shape': [
                [architecture[i + 1], architecture[i]]
                for i in range(len(architecture) - 1)
            ],
            'biases_shape': [
                [architecture[i + 1], 1]
                for i in range(len(architecture) - 1)
            ],
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'activation': info['activation']
        })

    logger.debug(f"Listing {len(networks)} networks")
    return jsonify({'networks': networks}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from memory."""
    info = active_networks.pop(network_id, None)
    if info is None:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    info['network'].release()
    logger.info(f"Deleted network {network_id}")

    return jsonify({'network_id': network_id, 'deleted': True}), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from memory."""
    network_ids = list(active_networks.keys())
    for network_id in network_ids:
        active_networks.pop(network_id)['network'].release()

    logger.info(f"Deleted all networks: {len(network_ids)} total")

    return jsonify({
        'deleted_count': len(network_ids),
        'message': f'Successfully deleted {len(network_ids)} network(s)'
    }), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body (all optional):
        {
            'epochs': 5,
            'mini_batch_size': 10,
            'learning_rate': 3.0,
            'activation': 'sigmoid',
            'seed': 7               # seeds the per-epoch shuffle
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if not data_available():
        logger.error("Training requested but no dataset is loaded")
        return jsonify({'error': 'Training data not available'}), 503

    data = get_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    epochs = data.get('epochs', 5)
    mini_batch_size = data.get('mini_batch_size', 10)
    learning_rate = data.get('learning_rate', 3.0)
    activation_name = data.get('activation', DEFAULT_ACTIVATION)
    seed = data.get('seed')

    # Validate training parameters
    if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400
    if (isinstance(mini_batch_size, bool) or not isinstance(mini_batch_size, int)
            or mini_batch_size < 1):
        return jsonify({'error': 'mini_batch_size must be a positive integer'}), 400
    if (isinstance(learning_rate, bool) or not isinstance(learning_rate, (int, float))
            or learning_rate <= 0):
        return jsonify({'error': 'learning_rate must be a positive number'}), 400
    if not is_valid_seed(seed):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400
    try:
        get_activation(activation_name)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    # Reject topologies that cannot consume the loaded data up front
    net = active_networks[network_id]['network']
    input_size = training_data[0][0].rows
    output_size = training_data[1][0].rows
    if net.sizes[0] != input_size or net.sizes[-1] != output_size:
        return jsonify({
            'error': (
                f'Network architecture {net.sizes} does not match the data: '
                f'{input_size} inputs and {output_size} outputs required'
            )
        }), 400

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}, batch_size={mini_batch_size}, lr={learning_rate}, "
        f"activation={activation_name}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task,
        network_id, job_id, epochs, mini_batch_size, learning_rate,
        activation_name, seed
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/training/cleanup', methods=['POST'])
def cleanup_training_jobs_endpoint():
    """Manually drop completed and failed jobs from memory."""
    deleted_count = cleanup_finished_training_jobs()
    return jsonify({
        'deleted_count': deleted_count,
        'message': f'Removed {deleted_count} finished training job(s)'
    }), 200


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run a single forward pass.

    Request body:
        {'features': [0.0, 0.5, ...]}  # one value per input neuron

    Returns:
        JSON with the network output and the predicted class
    """
    if network_id not in active_networks:
        logger.warning(f"Prediction requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    data = get_json_object()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    features = data.get('features')
    if not isinstance(features, list) or not features:
        return jsonify({'error': 'features must be a non-empty list of numbers'}), 400

    info = active_networks[network_id]
    net = info['network']
    activation = get_activation(info['activation'])

    try:
        x = Matrix.from_array(features)
        output = net.predict(x, activation)
    except ShapeMismatchError as e:
        return jsonify({
            'error': f'Expected {net.sizes[0]} features: {e}'
        }), 400
    except (TypeError, ValueError) as e:
        return jsonify({'error': f'Invalid features: {e}'}), 400

    return jsonify({
        'network_id': network_id,
        'predicted_class': classify(output),
        'network_output': array_to_float_list(output)
    }), 200


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(mat: Matrix) -> List[float]:
    """Convert a matrix to a flat list of floats (for JSON serialization)."""
    return [float(val) for val in mat.elements]


def create_digit_image(features: Matrix, predicted: int, actual: int) -> str:
    """
    Create a base64-encoded PNG image of an input sample.

    Args:
        features: Input column vector; square sizes (784 for a 28x28
            digit) are drawn as an image, anything else as a single row
        predicted: The class the network predicted
        actual: The correct class

    Returns:
        Base64-encoded PNG image string
    """
    pixels = features.to_array().ravel()
    side = int(np.sqrt(pixels.size))
    if side * side == pixels.size:
        pixels = pixels.reshape(side, side)
    else:
        pixels = pixels.reshape(1, -1)

    plt.figure(figsize=(3, 3))
    plt.imshow(pixels, cmap='gray')
    plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def find_example(network_id: str, want_correct: bool, max_attempts: int):
    """
    Sample random test examples until one matches ``want_correct``.

    Returns:
        A (response, status) pair for Flask
    """
    if network_id not in active_networks:
        logger.warning(f"Example requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if not data_available():
        logger.error("Test data not loaded")
        return jsonify({'error': 'Test data not available'}), 503

    info = active_networks[network_id]
    net = info['network']
    activation = get_activation(info['activation'])
    features, labels = test_data

    for attempt in range(max_attempts):
        index = int(np.random.randint(0, len(features)))
        x, y = features[index], labels[index]

        output = net.feedforward(x, activation)
        predicted = classify(output)
        actual = classify(y)

        if (predicted == actual) == want_correct:
            logger.debug(f"Found example on attempt {attempt + 1}")

            return jsonify({
                'network_id': network_id,
                'example_index': index,
                'predicted_digit': predicted,
                'actual_digit': actual,
                'image_data': create_digit_image(x, predicted, actual),
                'output_weights': net.weights[-1].tolist(),
                'network_output': array_to_float_list(output)
            }), 200

    kind = 'successful' if want_correct else 'unsuccessful'
    logger.warning(f"No {kind} example found after {max_attempts} attempts")
    return jsonify({
        'error': f'No {kind} example found after {max_attempts} attempts'
    }), 404


# ============================================================================
# EXAMPLE ENDPOINTS
# ============================================================================

@app.route('/api/networks/<network_id>/successful_example', methods=['GET'])
def get_successful_example(network_id: str):
    """Find and return a random example where the network predicted correctly."""
    return find_example(network_id, want_correct=True, max_attempts=100)


@app.route('/api/networks/<network_id>/unsuccessful_example', methods=['GET'])
def get_unsuccessful_example(network_id: str):
    """Find and return a random example where the network predicted incorrectly."""
    return find_example(network_id, want_correct=False, max_attempts=200)


# ============================================================================
# SERVER STARTUP
# ============================================================================

def main() -> None:
    """Load the dataset and serve the API."""
    load_mnist_data()

    # Check if running in cloud environment (Railway, etc.)
    is_cloud = bool(os.environ.get('RAILWAY_STATIC_URL') or os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

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
            sys.exit(1)
        else:
            raise


if __name__ == '__main__':
    main()
