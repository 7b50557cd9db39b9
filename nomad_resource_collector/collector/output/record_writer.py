"""
JSON-lines sink for collected job records.
"""

import json
import sys
from typing import IO, Iterable, Optional

from nomad_resource_collector.common.model import JobRecord
from nomad_resource_collector.common.logging import get_logger

logger = get_logger(__name__)


class JsonLinesWriter:
    """Appends one JSON object per record to a file ("-" for stdout) or stream."""

    def __init__(self, target: str = "-", stream: Optional[IO[str]] = None):
        self.target = target
        self._stream = stream
        self._owns_stream = False

    def _open(self) -> IO[str]:
        if self._stream is None:
            if self.target == "-":
                self._stream = sys.stdout
            else:
                self._stream = open(self.target, "a", encoding="utf-8")
                self._owns_stream = True
        return self._stream

    def write(self, records: Iterable[JobRecord]) -> int:
        stream = self._open()
        count = 0
        for record in records:
            stream.write(json.dumps(record.to_dict(), sort_keys=True))
            stream.write("\n")
            count += 1
        stream.flush()
        logger.debug(f"Wrote {count} record(s) to {self.target}")
        return count

    def close(self):
        if self._owns_stream and self._stream is not None:
            self._stream.close()
        self._stream = None
        self._owns_stream = False
