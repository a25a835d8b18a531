"""
network.py
~~~~~~~~~~

Feed-forward neural network evaluator built on ``matnet.matrix``.

Each layer computes ``W x a + b`` and optionally applies ReLU to the
result. Inputs and activations are column matrices; the weight matrix of
a layer has one row per output neuron and one column per input.
"""

import logging
from typing import List, Sequence

from matnet.matrix import Matrix, InvalidArgumentError, BadInternalStateError

# Configure module logger
logger = logging.getLogger(__name__)


def relu(x):
    """Return ``x`` if it is positive, otherwise the zero of its type."""
    if x > 0:
        return x
    return type(x)()


class NeuralNetwork:
    """
    A stack of fully connected layers.

    Attributes:
        use_relu: Per-layer flag, True to apply ReLU after the bias
        weights: Per-layer weight matrices, shape (outputs, inputs)
        biases: Per-layer bias matrices, shape (outputs, 1)
    """

    def __init__(
        self,
        use_relu: Sequence[bool],
        weights: Sequence[Matrix],
        biases: Sequence[Matrix]
    ):
        """
        Validate and store the layers.

        Raises:
            InvalidArgumentError: If the lists differ in length, are empty,
                or adjacent layer shapes do not chain
        """
        if len(use_relu) != len(weights) or len(weights) != len(biases):
            raise InvalidArgumentError(
                f"Layer lists differ in length: relu={len(use_relu)}, "
                f"weights={len(weights)}, biases={len(biases)}"
            )
        if not weights:
            raise InvalidArgumentError("Network must have at least one layer")

        for index, (w, b) in enumerate(zip(weights, biases)):
            if b.row_count() != w.row_count():
                raise InvalidArgumentError(
                    f"Layer {index + 1}: bias has {b.row_count()} rows, "
                    f"weights have {w.row_count()}"
                )
            if index > 0 and w.col_count() != weights[index - 1].row_count():
                raise InvalidArgumentError(
                    f"Layer {index + 1}: expects {w.col_count()} inputs, "
                    f"previous layer produces {weights[index - 1].row_count()}"
                )

        self.use_relu: List[bool] = [bool(flag) for flag in use_relu]
        self.weights: List[Matrix] = list(weights)
        self.biases: List[Matrix] = list(biases)

    @property
    def sizes(self) -> List[int]:
        """Neuron counts per layer, input layer first."""
        return [self.weights[0].col_count()] + [w.row_count() for w in self.weights]

    @property
    def num_layers(self) -> int:
        return len(self.weights)

    def compute_output(self, input_matrix: Matrix) -> Matrix:
        """
        Run ``input_matrix`` through every layer and return the final activation.

        Args:
            input_matrix: Column matrix with one row per input neuron

        Returns:
            Matrix: Output of the last layer

        Raises:
            InvalidArgumentError: If ``input_matrix`` does not fit the first layer
                or the biases do not fit the activation shape
        """
        activation = input_matrix
        for index, (w, b, apply_relu) in enumerate(
            zip(self.weights, self.biases, self.use_relu)
        ):
            activation = w.mul(activation).add(b)

            if apply_relu:
                try:
                    activation = activation.map(relu)
                except InvalidArgumentError as e:
                    raise BadInternalStateError(
                        f"Layer {index + 1}: activation changed matrix shape"
                    ) from e

        logger.debug(f"Computed output of shape {activation.shape} for network {self.sizes}")
        return activation

    feedforward = compute_output

    def __repr__(self) -> str:
        return f"NeuralNetwork(sizes={self.sizes}, use_relu={self.use_relu})"
