"""JSON output formatter for export outcomes.

Serializes a PipelineOutcome into the camelCase result document consumed by
callers of the export: the stored file descriptor on success, the storage
error when the file could not be persisted, or the failed state and step log
when the run itself failed.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from catalog_export.models.data_models import (
    CompressionStats,
    ExportResult,
    PipelineOutcome,
    StepLog,
)


class JSONOutputFormatter:
    """
    Formats pipeline outcomes as JSON.

    Example success document:
    {
        "fileName": "products.csv.gz",
        "downloadUrl": "https://shop.example.com/download?fileName=products.csv.gz",
        "properties": {"size": 5120, "contentType": "application/gzip",
                       "lastModified": "2024-01-01T00:00:00+00:00"},
        "compressionStats": {"originalSize": 20480, "compressedSize": 5120,
                             "savingsPercent": 75.0},
        "storageType": "s3",
        "recordCount": 120,
        "categoryCount": 12,
        "elapsedSeconds": 1.23,
        "stored": true
    }
    """

    def format(self, outcome: PipelineOutcome) -> Dict[str, Any]:
        """
        Format an outcome as a JSON-serializable dictionary.

        Args:
            outcome: Terminal outcome of a pipeline run

        Returns:
            Result document for DONE outcomes, failure document otherwise
        """
        if outcome.succeeded and outcome.result is not None:
            return self.format_result(outcome.result)
        return self._format_failure(outcome)

    def format_result(self, result: ExportResult) -> Dict[str, Any]:
        data: Dict[str, Any] = {}

        if result.storage is not None:
            data.update({
                "fileName": result.storage.file_name,
                "downloadUrl": result.storage.url,
                "properties": {
                    "size": result.storage.size,
                    "contentType": result.storage.content_type,
                    "lastModified": result.storage.last_modified,
                },
            })

        data.update({
            "compressionStats": self._format_stats(result.compression_stats),
            "storageType": result.storage_type,
            "recordCount": result.record_count,
            "categoryCount": result.category_count,
            "elapsedSeconds": round(result.elapsed_seconds, 3),
            "stored": result.stored,
        })
        if result.memory_peak_bytes is not None:
            data["memoryPeakBytes"] = result.memory_peak_bytes
        if result.error is not None:
            data["error"] = dict(result.error)
        return data

    def _format_stats(self, stats: Optional[CompressionStats]) -> Optional[Dict[str, Any]]:
        if stats is None:
            return None
        return {
            "originalSize": stats.original_size,
            "compressedSize": stats.compressed_size,
            "savingsPercent": stats.savings_percent,
        }

    def _format_failure(self, outcome: PipelineOutcome) -> Dict[str, Any]:
        failure = outcome.failure
        return {
            "status": "failed",
            "stored": False,
            "failedState": failure.state.value if failure else None,
            "error": {
                "message": failure.message if failure else "Pipeline did not complete",
                "type": failure.type if failure else "UnknownError",
            },
            "steps": self._format_steps(outcome.steps),
        }

    def _format_steps(self, steps: List[StepLog]) -> List[Dict[str, Any]]:
        return [
            {
                "state": step.state.value,
                "status": step.status,
                "message": step.message,
                "elapsedMs": round(step.elapsed_ms, 1),
            }
            for step in steps
        ]

    def save(self, outcome: PipelineOutcome, path: str = "out/result.json") -> None:
        """
        Save the formatted outcome to a JSON file.

        Creates parent directories if they don't exist.
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.format(outcome), f, indent=2, ensure_ascii=False)
