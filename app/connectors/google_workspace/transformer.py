"""Staylytics - Google Sheets / Drive Raw → Normalized Transformer."""

from typing import Any, Dict, List, Sequence

from app.connectors.transformer import build_record, pick
from app.models.normalized_models import MetricRecord

FOLDER_MIME = "application/vnd.google-apps.folder"

SHEETS_OVERVIEW_MEASURES = ["sheet_count", "row_count", "column_count"]
SHEET_MEASURES = ["row_count", "column_count"]
DRIVE_OVERVIEW_MEASURES = [
    "storage_limit",
    "storage_usage",
    "storage_usage_in_drive",
    "storage_usage_in_trash",
    "file_count",
    "folder_count",
]
FILE_MEASURES = ["size_bytes"]


def transform_sheets(spreadsheet: Dict[str, Any]) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for sheet in spreadsheet.get("sheets") or []:
        props = sheet.get("properties") or {}
        records.append(
            build_record(
                props.get("title") or f"Sheet {props.get('sheetId', '')}",
                {
                    "row_count": pick(props, "gridProperties.rowCount"),
                    "column_count": pick(props, "gridProperties.columnCount"),
                },
                SHEET_MEASURES,
                dimensions={"sheet_id": props.get("sheetId", "")},
                attributes={"index": props.get("index"), "sheet_type": props.get("sheetType")},
            )
        )
    return records


def transform_sheets_overview(spreadsheet: Dict[str, Any]) -> MetricRecord:
    sheets = transform_sheets(spreadsheet)
    return build_record(
        pick(spreadsheet, "properties.title", default="") or "overview",
        {
            "sheet_count": len(sheets),
            "row_count": sum(s.measure("row_count") for s in sheets),
            "column_count": sum(s.measure("column_count") for s in sheets),
        },
        SHEETS_OVERVIEW_MEASURES,
    )


def transform_drive_overview(
    about: Dict[str, Any], files: Sequence[Dict[str, Any]]
) -> MetricRecord:
    quota = about.get("storageQuota") or {}
    folders = sum(1 for f in files if f.get("mimeType") == FOLDER_MIME)
    return build_record(
        "overview",
        {
            # no limit field means unlimited storage
            "storage_limit": quota.get("limit"),
            "storage_usage": quota.get("usage"),
            "storage_usage_in_drive": quota.get("usageInDrive"),
            "storage_usage_in_trash": quota.get("usageInDriveTrash"),
            "file_count": len(files) - folders,
            "folder_count": folders,
        },
        DRIVE_OVERVIEW_MEASURES,
    )


def transform_files(files: Sequence[Dict[str, Any]]) -> List[MetricRecord]:
    return [
        build_record(
            f.get("name") or f.get("id", ""),
            {"size_bytes": f.get("size")},
            FILE_MEASURES,
            dimensions={"file_id": f.get("id", "")},
            attributes={
                "mime_type": f.get("mimeType"),
                "modified_time": f.get("modifiedTime"),
                "web_view_link": f.get("webViewLink"),
            },
        )
        for f in files
    ]
