"""
conftest.py
~~~~~~~~~~~

Shared fixtures for the test suite.
"""

import os
import tempfile

import pytest

# The API server reads MODEL_DIR at import; keep its database out of the repo
os.environ.setdefault('MODEL_DIR', tempfile.mkdtemp(prefix='matnet-models-'))

from matnet.matrix import Matrix
from matnet.network import NeuralNetwork

DATA_DIR = os.path.join(os.path.dirname(__file__), 'data')


@pytest.fixture
def matrix_a():
    return Matrix([
        [1, 2, 3, 4],
        [4, 2, 2, 1],
        [1, 1, 1, 1]
    ])


@pytest.fixture
def matrix_b():
    return Matrix([
        [1, 4, 1],
        [2, 3, 1],
        [3, 2, 1],
        [4, 1, 1]
    ])


@pytest.fixture
def matrix_c():
    return Matrix([
        [1, 1, 3, 4],
        [2, 2, 4, 1],
        [1, 2, 1, 2]
    ])


@pytest.fixture
def simple_network():
    """Create a 2-3-2 network with ReLU on the hidden layer."""
    return NeuralNetwork(
        [True, False],
        [
            Matrix([[0.5, -1.0], [1.5, 2.0], [-0.25, 0.75]]),
            Matrix([[1.0, 0.5, 2.0], [-1.0, 1.0, -4.0]])
        ],
        [
            Matrix([[0.0], [-1.0], [0.5]]),
            Matrix([[0.25], [1.0]])
        ]
    )


@pytest.fixture
def fixture_path():
    return os.path.join(DATA_DIR, 'networks.txt')
