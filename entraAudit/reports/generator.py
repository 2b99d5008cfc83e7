"""
JSON report generation for audit results
"""

# Standard library imports
import dataclasses
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

# Third-party imports
import jwt


def to_serializable(value: Any) -> Any:
    """Convert dataclasses (recursively), dicts and lists into JSON-ready structures."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_serializable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_serializable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, 'value') and isinstance(value, str):
        # str-based enums
        return value.value
    return value


class ReportGenerator:
    """Writes audit results to JSON files"""

    def __init__(self, token: str = None, source: str = None, output_dir: Path = None, progress_callback=None):
        """Initialize the report generator.

        Extracts tenant ID from the access token for use in report filenames.

        Parameters:
            token (str, optional): Microsoft Graph access token (JWT). Used to extract
                                  tenant ID for filename generation. Default is None.
            source (str, optional): Source of the report ('cli' or 'web'). Included in
                                   filename for tracking. Default is None.
            output_dir (Path, optional): Directory for reports (default: current directory)
            progress_callback (callable, optional): Callback function(percent, message) for progress updates.
        """
        self.token = token
        self.source = source
        self.output_dir = Path(output_dir) if output_dir else Path.cwd()
        self.progress_callback = progress_callback
        self.tenant_id = None

        if token:
            try:
                decoded = jwt.decode(token, options={"verify_signature": False})
                self.tenant_id = decoded.get('tid')
            except jwt.exceptions.DecodeError:
                self.tenant_id = None

    def generate_json_report(self, report: str, results: Any, metadata: Dict = None, filename: str = None) -> str:
        """Write results and metadata to a JSON file.

        Parameters:
            report (str): Report name used in the filename ('policies', 'search', ...)
            results (Any): Results to serialize (dataclasses, lists, dicts)
            metadata (Dict, optional): Extra metadata stored next to the results
            filename (str, optional): Custom output filename

        Returns:
            str: Path to the generated JSON file
        """
        if not filename:
            filename = self._generate_filename(report, "json")
        output_path = Path(filename)
        if not output_path.is_absolute():
            output_path = self.output_dir / output_path
        output_path.parent.mkdir(parents=True, exist_ok=True)

        document = {
            'metadata': {
                'report': report,
                'generated_at': datetime.now().isoformat(timespec='seconds'),
                'tenant_id': self.tenant_id,
                'source': self.source,
                **(metadata or {})
            },
            'results': to_serializable(results)
        }

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=2, ensure_ascii=False)

        if self.progress_callback:
            self.progress_callback(None, f"✓ Report written to {output_path}")

        return str(output_path)

    def _generate_filename(self, report: str, extension: str) -> str:
        """Generate a filename with timestamp, report name, source and tenant ID.

        Format: YYYY-MM-DD_HH-MM-SS_entra_audit_{report}[_{source}][_{tenantId}].{ext}
        """
        datetime_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        filename_parts = [datetime_str, "entra_audit", report]
        if self.source:
            filename_parts.append(self.source)
        if self.tenant_id:
            filename_parts.append(self.tenant_id)
        return "_".join(filename_parts) + f".{extension}"
