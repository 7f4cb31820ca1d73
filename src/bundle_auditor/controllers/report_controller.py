import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd

from bundle_auditor.model import BundleResult, SEVERITY_ORDER

logger = logging.getLogger(__name__)

FINDING_COLUMNS = ["Bundle", "Status", "Check", "Title", "Severity", "Messages", "Offenders"]
SUMMARY_COLUMNS = [
    "Bundle", "Primary", "Ad Size", "Status", "Fails", "Warns", "Passes",
    "Initial KB", "Subload KB", "Zipped KB", "Initial Requests", "Orphans", "Missing Assets"
]
EXPORT_SUFFIXES = (".csv", ".json", ".xlsx")


def _kb(value: int) -> float:
    return round(value / 1024, 1)


def _offender_text(offender) -> str:
    text = offender.path
    if offender.line:
        text += f":{offender.line}"
    if offender.detail:
        text += f" {offender.detail}"
    return text


class ReportController:
    """
    Flattens audit results into tables and writes them to disk.
    One finding row per finding per bundle; one summary row per bundle.
    """

    def __init__(self, results: List[BundleResult]):
        self.results = results

    def summary_rows(self) -> List[Dict[str, Any]]:
        rows = []
        for r in self.results:
            rows.append({
                "Bundle": r.bundle_name,
                "Primary": r.primary or "",
                "Ad Size": r.ad_size.token if r.ad_size else "",
                "Status": r.summary.status,
                "Fails": r.summary.fails,
                "Warns": r.summary.warns,
                "Passes": r.summary.passes,
                "Initial KB": _kb(r.initial_bytes),
                "Subload KB": _kb(r.subsequent_bytes),
                "Zipped KB": _kb(r.zipped_bytes),
                "Initial Requests": r.initial_requests,
                "Orphans": r.summary.orphan_count,
                "Missing Assets": r.summary.missing_asset_count,
            })
        return rows

    def finding_rows(self) -> List[Dict[str, Any]]:
        rows = []
        for r in self.results:
            for f in r.findings:
                rows.append({
                    "Bundle": r.bundle_name,
                    "Status": r.summary.status,
                    "Check": f.id,
                    "Title": f.title,
                    "Severity": f.severity,
                    "Messages": f.messages,
                    "Offenders": [_offender_text(o) for o in f.offenders],
                })
        return rows

    def summary_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.summary_rows(), columns=SUMMARY_COLUMNS)

    def findings_df(self, sort_by_severity: bool = False) -> pd.DataFrame:
        df = pd.DataFrame(self.finding_rows(), columns=FINDING_COLUMNS)
        if sort_by_severity and not df.empty:
            # FAIL first, then WARN, then PASS; stable within a bundle
            df["SevRank"] = df["Severity"].map(lambda s: -SEVERITY_ORDER[s])
            df = df.sort_values(by=["Bundle", "SevRank"], kind="stable").drop(columns=["SevRank"])
        return df

    @staticmethod
    def _stringify(df: pd.DataFrame, joiner: str = " | ") -> pd.DataFrame:
        """List cells become flat strings for CSV/Excel."""
        safe = df.copy()
        for col in safe.columns:
            if safe[col].dtype == "object":
                mask = safe[col].apply(lambda x: isinstance(x, (dict, list)))
                if mask.any():
                    safe[col] = safe[col].apply(
                        lambda x: joiner.join(map(str, x)) if isinstance(x, list)
                        else json.dumps(x, ensure_ascii=False) if isinstance(x, dict) else x
                    )
        return safe

    def export(self, path: Union[str, Path]) -> Path:
        """
        Writes the findings to `path`; the format follows the suffix.

        Args:
            path: Target file ending in .csv, .json or .xlsx.

        Returns:
            Path: The written file.

        Raises:
            ValueError: On an unsupported suffix.
            PermissionError: When the target is locked (e.g. open in Excel).
        """
        output = Path(path)
        suffix = output.suffix.lower()
        if suffix not in EXPORT_SUFFIXES:
            raise ValueError(f"Unsupported export format '{suffix}' (use {', '.join(EXPORT_SUFFIXES)})")

        output.parent.mkdir(parents=True, exist_ok=True)
        findings = self.findings_df()
        logger.info(f"Exporting {len(findings)} finding rows for {len(self.results)} bundle(s) to {output}")

        if suffix == ".csv":
            self._stringify(findings).to_csv(output, index=False)
        elif suffix == ".json":
            findings.to_json(output, orient="records", indent=2, force_ascii=False)
        else:
            self._write_excel(output, findings)
        return output

    def _write_excel(self, output: Path, findings: pd.DataFrame) -> None:
        try:
            with pd.ExcelWriter(output, engine="openpyxl") as writer:
                self.summary_df().to_excel(writer, sheet_name="Summary", index=False)
                self._stringify(findings, joiner="\n").to_excel(writer, sheet_name="Findings", index=False)

                # Auto-adjust column widths for better scannability
                for sheet in writer.sheets.values():
                    for col in sheet.columns:
                        col_letter = col[0].column_letter
                        max_len = max((len(str(cell.value)) for cell in col if cell.value is not None), default=0)
                        sheet.column_dimensions[col_letter].width = min(max_len + 2, 100)
        except PermissionError:
            logger.error(f"Excel file is locked: {output}")
            raise
