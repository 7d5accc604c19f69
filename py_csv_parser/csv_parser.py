import os
import re
import sys
import argparse
import logging
from typing import Dict, List, Optional, Tuple

"""
###############################################################################
# P2P Trade Ledger - CSV Import
# Reads Binance P2P order exports and merges them into the ledger store.
###############################################################################
"""

BOM = "\ufeff"
DELIMITER = ","
_LINE_SPLIT = re.compile(r"\r?\n")
_EDGE_QUOTES = re.compile(r'^"|"$')


class IngestionError(Exception):
    pass


class ParseError(IngestionError):
    """ Raised when an export cannot be read as text at all. """
    pass


def _clean_cell(cell: str) -> str:
    return _EDGE_QUOTES.sub("", cell.strip())


def parse_csv(text: str, source: Optional[str] = None) -> List[Dict[str, str]]:
    """
    Splits comma-delimited export text into one mapping per order row.

    The first line names the fields. Missing trailing cells become "" and
    repeated header lines (concatenated exports) are skipped. Rows are never
    rejected. If `source` is given each row is tagged with it as `sourceFile`.
    """
    lines = _LINE_SPLIT.split(text.strip())
    if len(lines) < 2:
        return []

    headers = [_clean_cell(h.lstrip(BOM)).lstrip(BOM) for h in lines[0].split(DELIMITER)]
    rows = []

    for line in lines[1:]:
        if not line.strip():
            continue

        # Plain split: P2P exports carry no commas inside fields
        values = [_clean_cell(v) for v in line.split(DELIMITER)]

        # Concatenated BOM exports repeat the header with its BOM
        if _clean_cell(values[0].lstrip(BOM)).lstrip(BOM) == headers[0]:
            continue

        row = {h: (values[idx] if idx < len(values) else "") for idx, h in enumerate(headers)}
        if source:
            row["sourceFile"] = source
        rows.append(row)

    return rows


def decode_export(raw: bytes, encoding: str = "utf-8-sig") -> str:
    try:
        return raw.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise ParseError(f"Export is not readable as {encoding} text: {e}") from e


def read_export(filepath: str) -> Tuple[str, List[Dict[str, str]]]:
    """ Reads one export file. The file's base name becomes its provenance label. """
    source = os.path.basename(filepath)
    try:
        with open(filepath, "rb") as f:
            raw = f.read()
    except OSError as e:
        raise ParseError(f"Cannot read {filepath}: {e}") from e

    rows = parse_csv(decode_export(raw), source)
    logging.info(f"Parsed {len(rows)} rows from {source}")
    return source, rows


def main(argv: Optional[List[str]] = None) -> int:
    # Imported here so parse_csv stays usable without the store package
    from py_ledger_store.config_loader import load_config
    from py_ledger_store.blob_store import BlobStore
    from py_ledger_store.error_logger import ImportErrorLogger
    from py_ledger_store.ledger import LedgerManager

    parser = argparse.ArgumentParser(description="P2P Trade Ledger - Import Binance P2P CSV exports")
    parser.add_argument("files", nargs="+", help="CSV export files")
    parser.add_argument("--config", default="p2p_config.json", help="Config file (default: p2p_config.json)")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    error_logger = ImportErrorLogger(config.error_log_dir)
    manager = LedgerManager(BlobStore(config.store_dir), config)
    manager.load()

    # Parse the whole batch before touching the ledger
    batch: Dict[str, List[Dict[str, str]]] = {}
    failed = 0
    for path in args.files:
        try:
            source, rows = read_export(path)
        except ParseError as e:
            logging.error(f"Skipping {path}: {e}")
            error_logger.log_failure(path, e)
            failed += 1
            continue
        batch[source] = rows

    if batch:
        imported = manager.import_batch(batch)
        for source in batch:
            error_logger.forget(source)
        logging.info(f"Imported {imported} records from {len(batch)} file(s). Ledger now holds {len(manager.state.records)} records.")
    else:
        logging.warning("No files imported.")

    pending = error_logger.failed_files()
    if pending:
        logging.warning(f"Exports still failing: {', '.join(pending)}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
