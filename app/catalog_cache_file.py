"""
Catalog File-Based Cache
Compressed JSON snapshot of the catalog used as the secondary cache tier
"""
import gzip
import json
import os
import logging
from typing import List, Optional, Tuple

logger = logging.getLogger("main")


class FileSnapshotCache:
    """Snapshot stored as gzip JSON together with the time it was taken and the ledger tag"""

    name = "file"

    def __init__(self, cache_file: str):
        self.cache_file = cache_file

    def save(self, rows: List[dict], cached_at: float, signature=None) -> bool:
        """
        Save catalog rows to the compressed snapshot

        Args:
            rows: catalog rows as dicts
            cached_at: time the rows were read, on the caller's clock
            signature: tag of the ledger the rows were read from

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            os.makedirs(os.path.dirname(self.cache_file) or ".", exist_ok=True)
            tmp_path = f"{self.cache_file}.tmp"
            with gzip.open(tmp_path, 'wt', encoding='utf-8') as f:
                json.dump({"rows": rows, "count": len(rows), "cached_at": cached_at, "signature": signature}, f)
            os.replace(tmp_path, self.cache_file)
            logger.debug(f"Catalog file cache saved: {len(rows)} rows")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save catalog file cache: {e}", exc_info=True)
            return False

    def load(self, max_age_seconds: float, now: float) -> Optional[Tuple[List[dict], float, Optional[list]]]:
        """
        Load the snapshot if it exists and is younger than ``max_age_seconds`` at ``now``

        Returns:
            (rows, cached_at, signature) or None when missing, stale or corrupted
        """
        if not os.path.exists(self.cache_file):
            return None

        try:
            with gzip.open(self.cache_file, 'rt', encoding='utf-8') as f:
                cache_data = json.load(f)
            rows = cache_data["rows"]
            cached_at = float(cache_data["cached_at"])
            signature = cache_data.get("signature")
        except (OSError, EOFError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Failed to load catalog file cache: {e}")
            self.clear()
            return None

        cache_age = now - cached_at
        if cache_age >= max_age_seconds:
            logger.debug(f"File cache age: {cache_age:.0f}s, stale")
            return None

        logger.info(f"Loaded {len(rows)} catalog rows from file cache")
        return rows, cached_at, signature

    def clear(self) -> None:
        try:
            os.remove(self.cache_file)
            logger.debug("Catalog file cache cleared")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove catalog file cache: {e}")
