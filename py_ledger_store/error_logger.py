"""
Import error log.

Every export file the importer rejects gets one line in a CSV log, so the
files can be fixed and imported again later.
"""
import csv
import os
from dataclasses import dataclass, fields
from datetime import datetime
from typing import List


@dataclass
class FailedImport:
    logged_at: str
    file: str
    error_type: str
    reason: str


FIELDS = [f.name for f in fields(FailedImport)]


class ImportErrorLogger:

    def __init__(self, output_dir: str, filename: str = "import_errors.csv"):
        self.filepath = os.path.join(output_dir, filename)
        os.makedirs(output_dir, exist_ok=True)
        if not os.path.exists(self.filepath):
            self.clear_log()

    def log_failure(self, path: str, error: Exception) -> FailedImport:
        """
        Records a rejected export. Only the base name of `path` is kept since
        that is the label the file would have been imported under.
        """
        entry = FailedImport(
            logged_at=datetime.now().isoformat(timespec="seconds"),
            file=os.path.basename(path),
            error_type=type(error).__name__,
            # One line per entry
            reason=" ".join(str(error).split()),
        )
        with open(self.filepath, 'a', newline='', encoding='utf-8') as f:
            csv.DictWriter(f, fieldnames=FIELDS).writerow(entry.__dict__)
        return entry

    def get_failures(self) -> List[FailedImport]:
        if not os.path.exists(self.filepath):
            return []
        with open(self.filepath, 'r', newline='', encoding='utf-8') as f:
            return [FailedImport(**{k: row.get(k) or "" for k in FIELDS}) for row in csv.DictReader(f)]

    def failed_files(self) -> List[str]:
        """ Files still waiting for a successful re-import, oldest failure first. """
        seen = {}
        for failure in self.get_failures():
            seen.setdefault(failure.file, None)
        return list(seen)

    def forget(self, file: str) -> None:
        """ Drops the entries of a file that has since been imported. """
        kept = [f for f in self.get_failures() if f.file != file]
        self.clear_log()
        with open(self.filepath, 'a', newline='', encoding='utf-8') as out:
            writer = csv.DictWriter(out, fieldnames=FIELDS)
            for failure in kept:
                writer.writerow(failure.__dict__)

    def clear_log(self) -> None:
        with open(self.filepath, 'w', newline='', encoding='utf-8') as f:
            csv.DictWriter(f, fieldnames=FIELDS).writeheader()
