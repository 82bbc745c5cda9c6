"""Chunked CSV serialization with gzip compression."""

import csv
import gzip
import io
from typing import Iterable, List, Optional, Sequence

from catalog_export.models.data_models import CompressionStats, CsvResult, ProductRecord
from catalog_export.processor.transformer import header_for, product_to_row, validate_fields


def compression_stats(original_size: int, compressed_size: int) -> CompressionStats:
    saved = original_size - compressed_size
    savings = round(saved / original_size * 100, 1) if original_size else 0.0
    return CompressionStats(
        original_size=original_size,
        compressed_size=compressed_size,
        savings_percent=savings
    )


def decompress(content: bytes) -> bytes:
    return gzip.decompress(content)


class CsvAssembler:
    """
    Serializes enriched products to a gzip-compressed CSV file.

    Records are mapped and written ``chunk_size`` at a time into the output
    buffer, so only one chunk of row strings exists at once. Every payload,
    including a header-only file, goes through the same compression path.
    """

    def __init__(
        self,
        chunk_size: int = 100,
        compression_level: int = 6,
        media_base_url: Optional[str] = None,
        logger=None
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got: {chunk_size}")
        if not 0 <= compression_level <= 9:
            raise ValueError(f"compression_level must be between 0 and 9, got: {compression_level}")
        self.chunk_size = chunk_size
        self.compression_level = compression_level
        self.media_base_url = media_base_url
        self.logger = logger
        self.chunks_written = 0

    def serialize(self, records: Sequence[ProductRecord], field_order: Iterable[str]) -> bytes:
        """Serialize records to uncompressed UTF-8 CSV bytes."""
        fields = validate_fields(field_order)
        self.chunks_written = 0
        output = bytearray()
        text = io.StringIO()
        writer = csv.writer(text, lineterminator="\n")

        writer.writerow(header_for(fields))
        output += text.getvalue().encode("utf-8")

        for start in range(0, len(records), self.chunk_size):
            text.seek(0)
            text.truncate(0)
            chunk = records[start:start + self.chunk_size]
            writer.writerows(product_to_row(p, fields, self.media_base_url) for p in chunk)
            output += text.getvalue().encode("utf-8")
            self.chunks_written += 1

        return bytes(output)

    def assemble(self, records: Sequence[ProductRecord], field_order: Iterable[str]) -> CsvResult:
        """
        Serialize and compress records.

        Args:
            records: Enriched product records
            field_order: Export fields, in column order

        Returns:
            CsvResult with gzip bytes, data row count and compression stats
        """
        raw = self.serialize(records, field_order)
        compressed = gzip.compress(raw, compresslevel=self.compression_level)
        stats = compression_stats(len(raw), len(compressed))

        if self.logger:
            self.logger.log(
                "csv_assembled",
                rows=len(records),
                chunks=self.chunks_written,
                original_size=stats.original_size,
                compressed_size=stats.compressed_size,
                savings_percent=stats.savings_percent
            )

        return CsvResult(content=compressed, row_count=len(records), stats=stats)


def parse_csv(content: bytes) -> List[List[str]]:
    """Decompress and parse an assembled CSV into rows, header first."""
    return list(csv.reader(io.StringIO(decompress(content).decode("utf-8"))))
