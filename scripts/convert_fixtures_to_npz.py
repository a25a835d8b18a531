#!/usr/bin/env python3
"""
Convert a network fixture text file to NumPy NPZ format.

The text fixture format (see matnet/fixtures.py) is convenient to write by
hand but slow to parse and awkward to share with NumPy-based tools. This
script stores every network of a fixture file in one compressed .npz
archive.

Usage:
    python scripts/convert_fixtures_to_npz.py [fixtures.txt] [output.npz]

Defaults to tests/data/networks.txt and tests/data/networks.npz.

The script will:
1. Parse the fixture file
2. Save every matrix as a float64 array in the NPZ archive
3. Verify the conversion was successful

Archive keys, for network ``n`` and layer ``k`` (both zero-based):
    net{n}_weights{k}, net{n}_biases{k}, net{n}_relu, net{n}_input,
    net{n}_output, and ``count`` (number of networks)
"""

import os
import sys
from typing import Dict, List

import numpy as np

from matnet.fixtures import NetworkFixture, load_fixtures


def fixtures_to_arrays(fixtures: List[NetworkFixture]) -> Dict[str, np.ndarray]:
    """
    Flatten fixtures into named arrays.

    Parameters:
    -----------
    fixtures : list
        Parsed network fixtures

    Returns:
    --------
    dict
        Archive key to array
    """
    arrays = {'count': np.array(len(fixtures))}

    for n, fixture in enumerate(fixtures):
        network = fixture.network
        for k, (w, b) in enumerate(zip(network.weights, network.biases)):
            arrays[f'net{n}_weights{k}'] = w.to_numpy(dtype=np.float64)
            arrays[f'net{n}_biases{k}'] = b.to_numpy(dtype=np.float64)
        arrays[f'net{n}_relu'] = np.array(network.use_relu, dtype=bool)
        arrays[f'net{n}_input'] = fixture.example_input.to_numpy(dtype=np.float64)
        arrays[f'net{n}_output'] = fixture.example_output.to_numpy(dtype=np.float64)

    return arrays


def save_as_npz(arrays: Dict[str, np.ndarray], filepath: str) -> None:
    """
    Save fixture arrays in NPZ format.

    Parameters:
    -----------
    arrays : dict
        Archive key to array
    filepath : str
        Output path for the .npz file
    """
    print(f"\n💾 Converting to NPZ format: {filepath}")

    np.savez_compressed(filepath, **arrays)

    npz_size = os.path.getsize(filepath) / 1024  # KB
    print(f"✅ Saved successfully (size: {npz_size:.2f} KB)")


def verify_conversion(npz_filepath: str, arrays: Dict[str, np.ndarray]) -> bool:
    """
    Verify that the NPZ file contains the same data as the fixtures.

    Parameters:
    -----------
    npz_filepath : str
        Path to the .npz file
    arrays : dict
        Arrays that were written

    Returns:
    --------
    bool
        True if verification passes
    """
    print(f"\n🔍 Verifying conversion...")

    with np.load(npz_filepath) as data:
        assert set(data.files) == set(arrays), "Archive keys don't match!"
        for key, expected in arrays.items():
            assert np.array_equal(data[key], expected), f"Array '{key}' doesn't match!"

    print("✅ Verification passed! Data is identical.")
    return True


def main():
    """Main conversion function."""
    print("=" * 60)
    print("Network Fixture Converter")
    print("Text fixtures → NPZ format")
    print("=" * 60)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(script_dir)
    data_dir = os.path.join(project_root, 'tests', 'data')

    fixture_path = sys.argv[1] if len(sys.argv) > 1 else os.path.join(data_dir, 'networks.txt')
    npz_path = sys.argv[2] if len(sys.argv) > 2 else os.path.splitext(fixture_path)[0] + '.npz'

    if not os.path.exists(fixture_path):
        print(f"❌ Error: Fixture file not found: {fixture_path}")
        sys.exit(1)

    if os.path.exists(npz_path):
        response = input(f"\n⚠️  {npz_path} already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("❌ Conversion cancelled.")
            sys.exit(0)

    try:
        print(f"📂 Loading fixtures from: {fixture_path}")
        fixtures = load_fixtures(fixture_path)
        print(f"✅ Loaded {len(fixtures)} network(s)")

        arrays = fixtures_to_arrays(fixtures)
        save_as_npz(arrays, npz_path)
        verify_conversion(npz_path, arrays)

        print("\n" + "=" * 60)
        print("✅ CONVERSION COMPLETE!")
        print("=" * 60)
        print(f"\n📁 New NPZ file: {npz_path}")

    except Exception as e:
        print(f"\n❌ Error during conversion: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
