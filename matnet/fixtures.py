"""
fixtures.py
~~~~~~~~~~~

Loader for the plain-text network fixture format.

A fixture file holds one or more networks separated by blank lines. Each
line is ``Key: value`` where the key's first word is one of ``Weights``,
``Biases``, ``Relu``, ``Example_Input`` or ``Example_Output``::

    Weights 1: [[0.5, -1.0], [1.5, 2.0]]
    Biases 1: [[0.0], [-1.0]]
    Relu 1: true
    Example_Input: [[2.0], [1.0]]
    Example_Output: [[0.0], [4.0]]

Layers are taken in the order they appear; the number after the key is
informational only.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from matnet.matrix import Matrix, InvalidArgumentError
from matnet.network import NeuralNetwork

# Configure module logger
logger = logging.getLogger(__name__)


class FixtureFormatError(ValueError):
    """Raised when fixture text cannot be parsed."""


@dataclass
class NetworkFixture:
    """A network together with one example input and its expected output."""

    network: NeuralNetwork
    example_input: Matrix
    example_output: Matrix

    def check(self) -> bool:
        """Return True if the network reproduces the expected output exactly."""
        return self.network.compute_output(self.example_input) == self.example_output


def parse_matrix(text: str) -> Matrix:
    """
    Parse a bracketed matrix literal such as ``[[1.0, 2.0], [3.0, 4.0]]``.

    Args:
        text: Matrix literal

    Returns:
        Matrix of floats

    Raises:
        FixtureFormatError: If a value is not a float or the rows do not
            form a valid matrix
    """
    body = text.replace('[', '').replace(']]', '')

    rows = []
    for row_text in body.split('],'):
        try:
            rows.append([float(value.strip()) for value in row_text.split(',')])
        except ValueError as e:
            raise FixtureFormatError(f"Matrix has non-float value: {row_text.strip()!r}") from e

    try:
        return Matrix(rows)
    except InvalidArgumentError as e:
        raise FixtureFormatError(f"Matrix was not created properly: {e}") from e


class _Block:
    """Accumulates the lines of one network while parsing."""

    def __init__(self):
        self.weights: List[Matrix] = []
        self.biases: List[Matrix] = []
        self.use_relu: List[bool] = []
        self.example_input: Optional[Matrix] = None
        self.example_output: Optional[Matrix] = None
        self.start_line: Optional[int] = None

    def is_empty(self) -> bool:
        return self.start_line is None

    def build(self) -> NetworkFixture:
        if self.example_input is None or self.example_output is None:
            raise FixtureFormatError(
                f"Network starting at line {self.start_line} is missing "
                f"Example_Input or Example_Output"
            )
        try:
            network = NeuralNetwork(self.use_relu, self.weights, self.biases)
        except InvalidArgumentError as e:
            raise FixtureFormatError(
                f"Unable to create network starting at line {self.start_line}: {e}"
            ) from e
        return NetworkFixture(network, self.example_input, self.example_output)


def parse_fixtures(lines: Iterable[str]) -> List[NetworkFixture]:
    """
    Parse fixture text into ``NetworkFixture`` records.

    Args:
        lines: Lines of a fixture file

    Returns:
        One record per blank-line separated block

    Raises:
        FixtureFormatError: On any malformed line or incomplete network
    """
    fixtures = []
    block = _Block()

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()

        if not line:
            if not block.is_empty():
                fixtures.append(block.build())
                block = _Block()
            continue

        key, sep, value = line.partition(':')
        if not sep:
            raise FixtureFormatError(f"Line {line_number}: no value on this line")

        key_parts = key.split()
        if not key_parts:
            raise FixtureFormatError(f"Line {line_number}: this key has no name")
        key_name = key_parts[0]

        if block.is_empty():
            block.start_line = line_number

        try:
            if key_name == 'Weights':
                block.weights.append(parse_matrix(value))
            elif key_name == 'Biases':
                block.biases.append(parse_matrix(value))
            elif key_name == 'Relu':
                flag = value.strip().lower()
                if flag not in ('true', 'false'):
                    raise FixtureFormatError(f"Relu has strange value {value.strip()!r}")
                block.use_relu.append(flag == 'true')
            elif key_name == 'Example_Input':
                block.example_input = parse_matrix(value)
            elif key_name == 'Example_Output':
                block.example_output = parse_matrix(value)
            else:
                logger.debug(f"Line {line_number}: ignoring key {key_name!r}")
        except FixtureFormatError as e:
            raise FixtureFormatError(f"Line {line_number}: {e}") from e

    if not block.is_empty():
        fixtures.append(block.build())

    logger.info(f"Parsed {len(fixtures)} network fixture(s)")
    return fixtures


def load_fixtures(path: str) -> List[NetworkFixture]:
    """
    Read and parse a fixture file.

    Example:
        >>> for fixture in load_fixtures('tests/data/networks.txt'):
        ...     assert fixture.check()
    """
    with open(path, 'r', encoding='utf-8') as f:
        fixtures = parse_fixtures(f)
    logger.info(f"Loaded {len(fixtures)} network fixture(s) from {path}")
    return fixtures
