import os
import shutil
import logging
from datetime import datetime, timezone
from utils import now_utc

logger = logging.getLogger('main')

class BackupManager:
    """Timestamped copies of ledger files. Retention is handled outside the bot."""

    def __init__(self, backup_dir):
        self.backup_dir = backup_dir
        os.makedirs(self.backup_dir, exist_ok=True)

    def create_backup(self, source_path, prefix):
        """Copy ``source_path`` to ``<prefix>_<timestamp><ext>``; returns the backup path or None"""
        if not os.path.exists(source_path):
            logger.warning(f"Nothing to back up, {source_path} does not exist")
            return None

        timestamp = now_utc().strftime('%Y%m%d_%H%M%S')
        ext = os.path.splitext(source_path)[1]
        backup_path = os.path.join(self.backup_dir, f'{prefix}_{timestamp}{ext}')
        # Two rebuilds within the same second must not overwrite each other
        counter = 1
        while os.path.exists(backup_path):
            backup_path = os.path.join(self.backup_dir, f'{prefix}_{timestamp}_{counter}{ext}')
            counter += 1

        try:
            shutil.copy2(source_path, backup_path)
            logger.info(f"Backup created: {backup_path}")
            return backup_path
        except OSError as e:
            logger.error(f"Backup of {source_path} failed: {e}")
            return None

    def list_backups(self, prefix=None):
        """List all available backups, newest first"""
        backups = []
        try:
            for filename in os.listdir(self.backup_dir):
                if prefix and not filename.startswith(f'{prefix}_'):
                    continue
                filepath = os.path.join(self.backup_dir, filename)
                if os.path.isfile(filepath):
                    stat = os.stat(filepath)
                    backups.append({
                        'filename': filename,
                        'path': filepath,
                        'size': stat.st_size,
                        'created': datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                    })

            backups.sort(key=lambda x: x['created'], reverse=True)
            return backups
        except OSError as e:
            logger.error(f"Failed to list backups: {e}")
            return []
