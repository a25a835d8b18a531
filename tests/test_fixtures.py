"""
test_fixtures.py
~~~~~~~~~~~~~~~~

Tests for the network fixture loader.
"""

import pytest

from matnet.matrix import Matrix
from matnet.fixtures import (
    FixtureFormatError,
    load_fixtures,
    parse_fixtures,
    parse_matrix
)


@pytest.mark.unit
class TestParseMatrix:

    def test_parse_matrix(self):
        m = parse_matrix(' [[1.0, 2.5], [-3, 4e1]]')
        assert m == Matrix([[1.0, 2.5], [-3.0, 40.0]])

    def test_parse_single_value(self):
        assert parse_matrix('[[0.5]]') == Matrix([[0.5]])

    def test_parse_column(self):
        assert parse_matrix('[[1.0], [2.0], [3.0]]').shape == (3, 1)

    def test_non_float_value(self):
        with pytest.raises(FixtureFormatError):
            parse_matrix('[[1.0, abc]]')

    def test_ragged_rows(self):
        with pytest.raises(FixtureFormatError) as exc_info:
            parse_matrix('[[1.0, 2.0], [3.0]]')
        assert "not created properly" in str(exc_info.value)

    def test_empty_value(self):
        with pytest.raises(FixtureFormatError):
            parse_matrix('')


@pytest.mark.unit
class TestParseFixtures:

    def test_single_block_without_trailing_blank(self):
        lines = [
            'Weights 1: [[1.0, -2.0]]',
            'Biases 1: [[-0.5]]',
            'Relu 1: true',
            'Example_Input: [[1.0], [3.0]]',
            'Example_Output: [[0.0]]',
        ]
        fixtures = parse_fixtures(lines)
        assert len(fixtures) == 1
        assert fixtures[0].network.use_relu == [True]
        assert fixtures[0].check()

    def test_multiple_blank_lines(self):
        block = [
            'Weights 1: [[2.0]]',
            'Biases 1: [[1.0]]',
            'Relu 1: False',
            'Example_Input: [[3.0]]',
            'Example_Output: [[7.0]]',
        ]
        fixtures = parse_fixtures(['', ''] + block + ['', '', ''] + block + [''])
        assert len(fixtures) == 2
        assert all(f.check() for f in fixtures)

    def test_unknown_keys_ignored(self):
        lines = [
            'Comment: [[not a matrix]]',
            'Weights 1: [[2.0]]',
            'Biases 1: [[1.0]]',
            'Relu 1: false',
            'Example_Input: [[3.0]]',
            'Example_Output: [[7.0]]',
        ]
        assert len(parse_fixtures(lines)) == 1

    def test_check_detects_wrong_output(self):
        lines = [
            'Weights 1: [[2.0]]',
            'Biases 1: [[1.0]]',
            'Relu 1: false',
            'Example_Input: [[3.0]]',
            'Example_Output: [[7.5]]',
        ]
        assert parse_fixtures(lines)[0].check() is False

    def test_bad_relu_value(self):
        with pytest.raises(FixtureFormatError) as exc_info:
            parse_fixtures(['Relu 1: maybe'])
        assert "Line 1" in str(exc_info.value)

    def test_missing_colon(self):
        with pytest.raises(FixtureFormatError):
            parse_fixtures(['Weights 1 [[1.0]]'])

    def test_missing_example(self):
        lines = [
            'Weights 1: [[2.0]]',
            'Biases 1: [[1.0]]',
            'Relu 1: false',
        ]
        with pytest.raises(FixtureFormatError):
            parse_fixtures(lines)

    def test_inconsistent_network(self):
        lines = [
            'Weights 1: [[2.0]]',
            'Relu 1: false',
            'Example_Input: [[3.0]]',
            'Example_Output: [[7.0]]',
        ]
        with pytest.raises(FixtureFormatError) as exc_info:
            parse_fixtures(lines)
        assert "line 1" in str(exc_info.value)

    def test_empty_input(self):
        assert parse_fixtures([]) == []


@pytest.mark.integration
class TestFixtureFile:

    def test_load_fixture_file(self, fixture_path):
        fixtures = load_fixtures(fixture_path)
        assert len(fixtures) == 3
        assert [f.network.sizes for f in fixtures] == [[2, 3, 2], [2, 1], [3, 2, 1]]

    def test_networks_reproduce_outputs(self, fixture_path):
        for fixture in load_fixtures(fixture_path):
            output = fixture.network.compute_output(fixture.example_input)
            assert output == fixture.example_output
