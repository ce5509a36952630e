"""
CSV record source for the sales report tool
Reads a sales CSV into an ordered list of read-only records
"""

import os
import logging
from typing import List

import pandas as pd

from data.models import Record, make_record
from utils.exceptions import RecordSourceError, EmptyInputError

logger = logging.getLogger(__name__)


class CSVRecordSource:
    """Loads sales records from a CSV file with a header row"""

    def __init__(self, file_path: str, encoding: str = 'utf-8'):
        if not file_path:
            raise RecordSourceError("CSV file path is not specified")
        self.file_path = file_path
        self.encoding = encoding

    def read(self) -> List[Record]:
        """
        Read all data rows.

        Blank rows are skipped. Every value is kept as a string.

        Raises:
            RecordSourceError: file missing, unreadable, headerless or ragged
            EmptyInputError: the file has a header but no data rows
        """
        if not os.path.isfile(self.file_path):
            raise RecordSourceError(f"CSV file not found: {self.file_path}")

        try:
            df = pd.read_csv(
                self.file_path,
                dtype=object,
                encoding=self.encoding,
                keep_default_na=False,
                skip_blank_lines=True,
                engine='python',
                on_bad_lines='error',
            )
        except pd.errors.EmptyDataError:
            raise RecordSourceError(f"CSV file has no header row: {self.file_path}")
        except pd.errors.ParserError as e:
            raise RecordSourceError(f"CSV file has a row with the wrong number of columns: {e}")
        except (UnicodeDecodeError, OSError) as e:
            raise RecordSourceError(f"Cannot read CSV file {self.file_path}: {e}")

        if df.empty:
            raise EmptyInputError(f"CSV file contains no data: {self.file_path}")

        # A first data row wider than the header turns into an implicit index
        if not isinstance(df.index, pd.RangeIndex):
            raise RecordSourceError("CSV data row 1 has more columns than the header")

        # Short rows are padded with NaN by the parser
        short_rows = df.index[df.isna().any(axis=1)].tolist()
        if short_rows:
            raise RecordSourceError(
                f"CSV data row {short_rows[0] + 1} has fewer columns than the header ({len(df.columns)})"
            )

        df = df[~(df == '').all(axis=1)]
        if df.empty:
            raise EmptyInputError(f"CSV file contains no data: {self.file_path}")

        records = [make_record(row) for row in df.to_dict(orient='records')]
        logger.info(f"Read {len(records)} records from {self.file_path}")
        return records
