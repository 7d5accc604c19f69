import json
import os
import shutil
import logging
from typing import Any
from .types import LedgerStoreError

class BlobStore:
    """ Key-value store, one JSON file per key. Values are read and written whole. """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

    def _get_path(self, key: str) -> str:
        return os.path.join(self.data_dir, f"{key}.json")

    def load(self, key: str, default: Any = None) -> Any:
        path = self._get_path(key)
        if not os.path.exists(path):
            return default

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logging.warning(f"Store corruption detected for {key}: {e}")
            self._backup_corrupt_file(path)
            return default

    def save(self, key: str, value: Any) -> None:
        path = self._get_path(key)
        tmp_path = path + ".tmp"

        try:
            # Atomic Write
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(value, f, indent=2, ensure_ascii=False)

            os.replace(tmp_path, path)

        except (OSError, TypeError, ValueError) as e:
            logging.error(f"Failed to save {key}: {e}")
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            raise LedgerStoreError(f"Could not write {key}") from e

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        if not os.path.exists(path):
            return
        try:
            os.remove(path)
        except OSError as e:
            logging.error(f"Failed to remove {key}: {e}")
            raise LedgerStoreError(f"Could not remove {key}") from e
        logging.info(f"Removed {key} from store")

    def _backup_corrupt_file(self, path: str):
        try:
            backup_path = path + ".corrupt"
            shutil.move(path, backup_path)
            logging.info(f"Moved corrupt file to {backup_path}")
        except OSError as e:
            logging.error(f"Failed to backup corrupt file {path}: {e}")
