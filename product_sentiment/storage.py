"""
Report export to the local file system.

The pipeline itself keeps no files: the report is the workflow result and
lives in Temporal for as long as the run is retained. This module is used by
the CLI when a caller explicitly asks for a copy of the report on disk.
"""
import os
import json
from typing import Any, Dict

import aiofiles
import aiofiles.os


class ReportStore:
    """
    Reads and writes report JSON files, one per run.

    Writes are atomic so a reader never sees a half-written report.
    """

    def __init__(self, output_dir: str) -> None:
        """
        Args:
            output_dir: Directory that holds exported reports
        """
        self.output_dir = output_dir

    def get_file_path(self, run_id: str) -> str:
        """
        Get the file path for a run's report.

        Args:
            run_id: Run identifier

        Returns:
            Path to the run's JSON file
        """
        return os.path.join(self.output_dir, f"report_{run_id}.json")

    async def write_atomic(self, run_id: str, data: Dict[str, Any]) -> str:
        """
        Atomically write a report as JSON.

        Uses staging file + os.replace() so the file is either fully written
        or not present at all.

        Args:
            run_id: Run identifier for file naming
            data: JSON-serializable report data

        Returns:
            Path of the written file
        """
        await aiofiles.os.makedirs(self.output_dir, exist_ok=True)

        report_file = self.get_file_path(run_id)
        staging_file = f"{report_file}.tmp"

        async with aiofiles.open(staging_file, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2))

        await aiofiles.os.replace(staging_file, report_file)
        return report_file

    async def read(self, run_id: str) -> Dict[str, Any]:
        """
        Read an exported report.

        Raises:
            FileNotFoundError: If the report was never exported
            json.JSONDecodeError: If the file is corrupt
        """
        async with aiofiles.open(self.get_file_path(run_id), "r", encoding="utf-8") as f:
            content = await f.read()
            return json.loads(content)

    async def delete(self, run_id: str) -> None:
        """Delete an exported report. Silently succeeds if it doesn't exist."""
        try:
            await aiofiles.os.remove(self.get_file_path(run_id))
        except FileNotFoundError:
            pass
