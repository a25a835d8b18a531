"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based persistence for neural network models.
Provides reliable, performant storage with ACID transaction guarantees.
"""

import sqlite3
import pickle
import json
import os
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager
import numpy as np

from matnet.matrix import Matrix

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'


class NetworkEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles matrices and numpy arrays."""

    def default(self, obj: Any) -> Any:
        """
        Convert matrices and numpy arrays to nested lists.

        Args:
            obj: Object to serialize

        Returns:
            JSON-serializable representation
        """
        if isinstance(obj, Matrix):
            return obj.tolist()
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        return super().default(obj)


class ModelDatabase:
    """
    Manages SQLite database for neural network model persistence.

    The database stores:
    - Network metadata (architecture, activation flags, verification status)
    - Serialized network objects as binary blobs
    """

    def __init__(self, db_path: str = f'{DEFAULT_MODEL_DIR}/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    activations TEXT NOT NULL,
                    network_data BLOB NOT NULL,
                    verified INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_verified
                ON networks(verified)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'network_id': row['network_id'],
            'architecture': json.loads(row['architecture']),
            'use_relu': json.loads(row['activations']),
            'verified': bool(row['verified']),
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network,
        network_id: str,
        verified: bool = False
    ) -> bool:
        """
        Save a network to the database.

        Saving under an existing id replaces the stored network but keeps
        its original ``created_at``.

        Args:
            network: NeuralNetwork object to save
            network_id: Unique identifier for the network
            verified: Whether the network reproduced an expected output

        Returns:
            bool: True if successful
        """
        # Serialize the network object using pickle
        network_data = pickle.dumps(network)

        # Serialize architecture and activation flags as JSON for queryability
        architecture_json = json.dumps(network.sizes, cls=NetworkEncoder)
        activations_json = json.dumps(network.use_relu)

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, activations, network_data, verified)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    activations = excluded.activations,
                    network_data = excluded.network_data,
                    verified = excluded.verified,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                architecture_json,
                activations_json,
                network_data,
                1 if verified else 0
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, verified={verified}"
        )
        return True

    def load_network_from_db(self, network_id: str):
        """
        Load a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            NeuralNetwork object or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            # Deserialize the network object
            network = pickle.loads(row['network_data'])
            logger.info(f"Loaded network '{network_id}'")
            return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata.

        Returns:
            List of network metadata dictionaries, newest first
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    activations,
                    verified,
                    created_at,
                    updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')

            networks = []
            for row in cursor.fetchall():
                metadata = self._row_to_metadata(row)
                architecture = metadata['architecture']

                # Calculate weight and bias shapes from architecture
                metadata['weights_shape'] = [
                    [architecture[i+1], architecture[i]]
                    for i in range(len(architecture) - 1)
                ]
                metadata['biases_shape'] = [
                    [architecture[i+1], 1]
                    for i in range(len(architecture) - 1)
                ]
                networks.append(metadata)

            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without loading the full object.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    activations,
                    verified,
                    created_at,
                    updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None

            return self._row_to_metadata(row)

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Args:
            days: Age threshold in days (0 deletes anything older than now)

        Returns:
            int: Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted


# Global database instance
_db = None


def _get_db() -> ModelDatabase:
    """
    Get or create the global database instance.

    Returns:
        ModelDatabase: The global database instance
    """
    global _db
    if _db is None:
        _db = ModelDatabase()
    return _db


def _db_for(model_dir: str) -> ModelDatabase:
    """Use singleton if default path, otherwise create new instance."""
    if model_dir == DEFAULT_MODEL_DIR:
        return _get_db()
    return ModelDatabase(db_path=os.path.join(model_dir, 'networks.db'))


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network,
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR,
    verified: bool = False
) -> bool:
    """
    Save a neural network to the SQLite database.

    Args:
        network: The neural network object to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        verified: Whether the network reproduced an expected output

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = NeuralNetwork([True], [weights], [biases])
        >>> save_network(net, "my_network")
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _db_for(model_dir).save_network_to_db(network, network_id, verified)

    except (AttributeError, pickle.PicklingError) as e:
        logger.error(
            f"Serialization error saving network '{network_id}': {e}"
        )
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(
            f"Unexpected error saving network '{network_id}': {e}"
        )
        return False


def load_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR):
    """
    Load a neural network from the SQLite database.

    Args:
        network_id: The unique identifier of the network to load
        model_dir: Directory where the database is stored

    Returns:
        The loaded neural network object or None if not found

    Example:
        >>> net = load_network("my_network")
        >>> if net:
        ...     print(f"Loaded network with {net.num_layers} layers")
    """
    if not _valid_id(network_id):
        return None

    try:
        return _db_for(model_dir).load_network_from_db(network_id)

    except pickle.UnpicklingError as e:
        logger.error(
            f"Deserialization error loading network '{network_id}': {e}"
        )
        return None
    except sqlite3.Error as e:
        logger.error(
            f"Database error loading network '{network_id}': {e}"
        )
        return None
    except Exception as e:
        logger.exception(
            f"Unexpected error loading network '{network_id}': {e}"
        )
        return None


def list_saved_networks(
    model_dir: str = DEFAULT_MODEL_DIR
) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Args:
        model_dir: Directory where the database is stored

    Returns:
        list: A list of metadata dictionaries for each saved network
    """
    try:
        return _db_for(model_dir).list_networks_from_db()

    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []
    except Exception as e:
        logger.exception(f"Unexpected error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR) -> bool:
    """
    Delete a saved network from the database.

    Args:
        network_id: The unique identifier of the network to delete
        model_dir: Directory where the database is stored

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not _valid_id(network_id):
        return False

    try:
        return _db_for(model_dir).delete_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(
            f"Unexpected error deleting network '{network_id}': {e}"
        )
        return False


def get_network_metadata(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network without loading full network object.

    Args:
        network_id: The unique identifier of the network
        model_dir: Directory where the database is stored

    Returns:
        dict: Network metadata or None if not found
    """
    if not _valid_id(network_id):
        return None

    try:
        return _db_for(model_dir).get_network_metadata_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None
    except Exception as e:
        logger.exception(
            f"Unexpected error getting metadata for '{network_id}': {e}"
        )
        return None


def delete_old_networks(days: int = 2, model_dir: str = DEFAULT_MODEL_DIR) -> int:
    """
    Delete saved networks older than the given number of days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of deleted networks, or -1 on a storage error

    Raises:
        ValueError: If days is negative
    """
    try:
        return _db_for(model_dir).delete_old_networks_from_db(days)

    except ValueError:
        raise
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
    except Exception as e:
        logger.exception(f"Unexpected error deleting old networks: {e}")
        return -1
