"""
matnet package
~~~~~~~~~~~~~~

Generic matrix algebra and a small feed-forward neural network evaluator.
Contains the matrix container, the network evaluator, the text fixture
loader, model persistence, and API server.
"""

from matnet.matrix import (
    Matrix,
    dot,
    InvalidArgumentError,
    BadInternalStateError
)
from matnet.network import NeuralNetwork, relu

__version__ = "1.0.0"

__all__ = [
    'Matrix',
    'dot',
    'InvalidArgumentError',
    'BadInternalStateError',
    'NeuralNetwork',
    'relu',
]
