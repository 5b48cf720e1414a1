"""Staylytics - Google Sheets & Google Drive Connectors.

Both enumerate their resources through the Drive v3 ``files.list`` API.
Sheets reports describe a spreadsheet's tabs; Drive reports describe
storage quota and the contents of the selected folder.
"""

from datetime import timedelta
from typing import Any, Dict, List

from app.connectors.base import SourceConnector
from app.connectors.google_workspace.transformer import (
    FOLDER_MIME,
    transform_drive_overview,
    transform_files,
    transform_sheets,
    transform_sheets_overview,
)
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportKind, Resource

logger = get_logger("connectors.google_workspace")

DRIVE_API = "https://www.googleapis.com/drive/v3"
SHEETS_API = "https://sheets.googleapis.com/v4"
SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"
ROOT_FOLDER = "root"


async def list_drive_files(
    connector: SourceConnector,
    access_token: str,
    query: str,
    fields: str,
    order_by: str = "modifiedTime desc",
    page_size: int = 100,
    max_pages: int = 10,
) -> List[Dict[str, Any]]:
    return await connector.client.paginate_google(
        f"{DRIVE_API}/files",
        access_token,
        "files",
        params={
            "q": query,
            "fields": f"nextPageToken, files({fields})",
            "orderBy": order_by,
            "pageSize": page_size,
        },
        max_pages=max_pages,
    )


class GoogleSheetsConnector(SourceConnector):
    """Spreadsheets visible to the user and their tab structure."""

    source = SourceType.GOOGLE_SHEETS
    scopes = (
        "https://www.googleapis.com/auth/spreadsheets.readonly",
        "https://www.googleapis.com/auth/drive.readonly",
    )
    reports = {
        "overview": ReportKind.OVERVIEW,
        "sheets": ReportKind.BREAKDOWN,
    }

    async def list_resources(self, access_token: str) -> List[Resource]:
        files = await list_drive_files(
            self,
            access_token,
            f"mimeType='{SPREADSHEET_MIME}' and trashed=false",
            "id,name,modifiedTime,webViewLink",
        )
        return [
            Resource(
                id=f["id"],
                display_name=f.get("name") or f["id"],
                metadata={
                    "modified_time": f.get("modifiedTime"),
                    "web_view_link": f.get("webViewLink"),
                },
            )
            for f in files
            if f.get("id")
        ]

    async def spreadsheet(self, spreadsheet_id: str, access_token: str) -> Dict[str, Any]:
        return await self.client.get(
            f"{SHEETS_API}/spreadsheets/{spreadsheet_id}",
            access_token=access_token,
            params={"fields": "properties.title,sheets.properties"},
        )

    # The spreadsheet structure has no date dimension; date_range is unused.

    async def fetch_overview(self, spreadsheet_id, access_token, date_range, metadata):
        return transform_sheets_overview(
            await self.spreadsheet(spreadsheet_id, access_token)
        )

    async def fetch_sheets(self, spreadsheet_id, access_token, date_range, metadata):
        return transform_sheets(await self.spreadsheet(spreadsheet_id, access_token))


class GoogleDriveConnector(SourceConnector):
    """Drive folders, storage quota and recently modified files."""

    source = SourceType.GOOGLE_DRIVE
    scopes = (
        "https://www.googleapis.com/auth/drive.readonly",
        "https://www.googleapis.com/auth/drive.metadata.readonly",
    )
    reports = {
        "overview": ReportKind.OVERVIEW,
        "recent_files": ReportKind.BREAKDOWN,
    }

    async def list_resources(self, access_token: str) -> List[Resource]:
        folders = await list_drive_files(
            self,
            access_token,
            f"mimeType='{FOLDER_MIME}' and trashed=false",
            "id,name,modifiedTime",
            order_by="name",
        )
        resources = [Resource(id=ROOT_FOLDER, display_name="My Drive", metadata={})]
        resources.extend(
            Resource(
                id=f["id"],
                display_name=f.get("name") or f["id"],
                metadata={"modified_time": f.get("modifiedTime")},
            )
            for f in folders
            if f.get("id")
        )
        return resources

    async def fetch_overview(self, folder_id, access_token, date_range, metadata):
        about = await self.client.get(
            f"{DRIVE_API}/about",
            access_token=access_token,
            params={"fields": "storageQuota"},
        )
        files = await list_drive_files(
            self,
            access_token,
            f"'{folder_id}' in parents and trashed=false",
            "id,mimeType",
            page_size=1000,
        )
        return transform_drive_overview(about, files)

    async def fetch_recent_files(self, folder_id, access_token, date_range, metadata):
        start = date_range.start_date.isoformat()
        end = (date_range.end_date + timedelta(days=1)).isoformat()
        files = await list_drive_files(
            self,
            access_token,
            f"'{folder_id}' in parents and trashed=false "
            f"and modifiedTime >= '{start}T00:00:00' and modifiedTime < '{end}T00:00:00'",
            "id,name,mimeType,modifiedTime,size,webViewLink",
            page_size=50,
            max_pages=1,
        )
        return transform_files(files)
