"""
Google Sheets Document Store

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Non-technical users can look at their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

LAYOUT:
- One worksheet per collection
- Row 1 is the header [id, document]
- Every other row holds a document id and its JSON body

TRADEOFFS:
- Not suitable for high-volume data (we're fine for one household)
- Limited query capabilities (we filter in Python)
- Batches are sent as ONE spreadsheets.batchUpdate call, which the Sheets
  API applies all-or-nothing
"""

import asyncio
import copy
import json
from typing import Any, Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from household_ledger.config import GoogleSheetsSettings, get_settings
from household_ledger.services.storage.interface import (
    BatchWriteError,
    ConnectionError,
    Document,
    DocumentStore,
    FieldFilter,
    NotFoundError,
    StorageError,
    WriteBatch,
    check_expected,
    select_documents,
)


HEADER = ["id", "document"]

logger = structlog.get_logger(__name__)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(collection)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=collection,
                rows=self._settings.initial_rows,
                cols=len(HEADER),
            )
            sheet.append_row(HEADER)
        self._worksheets[collection] = sheet
        return sheet


def _string_cell(value: str) -> dict:
    return {"userEnteredValue": {"stringValue": value}}


def _row_payload(document_id: str, data: Document) -> dict:
    return {"values": [_string_cell(document_id), _string_cell(_encode(data))]}


def _encode(data: Document) -> str:
    body = {key: value for key, value in data.items() if key != "id"}
    return json.dumps(body, default=str, sort_keys=True)


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    gspread is synchronous, so every API call runs in a worker thread and
    concurrent reads issued with asyncio.gather really overlap.
    Writes are serialized: row indexes resolved by one commit must not be
    shifted by another commit before its requests are sent.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Sheet access (sync, run in threads)
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self, collection: str) -> list[tuple[int, str, Document]]:
        """
        Read a collection as (row_index, id, body) triples.

        row_index is 0-based as used by batchUpdate requests; the header is row 0.
        """
        sheet = self._client.get_collection_sheet(collection)
        rows = []
        for index, row in enumerate(sheet.get_all_values()[1:], start=1):
            if not row or not row[0]:
                continue
            try:
                body = json.loads(row[1]) if len(row) > 1 and row[1] else {}
            except json.JSONDecodeError:
                logger.warning(
                    "malformed_sheet_row",
                    collection=collection,
                    row_index=index,
                )
                continue
            rows.append((index, row[0], body))
        return rows

    def _send_requests(self, requests: list[dict]) -> None:
        if requests:
            self._client.get_spreadsheet().batch_update({"requests": requests})

    async def _rows(self, collection: str) -> list[tuple[int, str, Document]]:
        try:
            return await asyncio.to_thread(self._read_rows, collection)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: str, document_id: str) -> Optional[Document]:
        for _, row_id, body in await self._rows(collection):
            if row_id == document_id:
                return {**body, "id": row_id}
        return None

    async def get_all(self, collection: str) -> list[Document]:
        return [{**body, "id": row_id} for _, row_id, body in await self._rows(collection)]

    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        return select_documents(
            await self.get_all(collection),
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Single writes are one-operation batches
    # ------------------------------------------------------------------

    async def create(self, collection: str, data: Document) -> str:
        batch = self.new_batch()
        document_id = batch.create(collection, data)
        await self.commit_batch(batch)
        return document_id

    async def set(self, collection: str, document_id: str, data: Document) -> None:
        batch = self.new_batch()
        batch.set(collection, document_id, data)
        await self.commit_batch(batch)

    async def merge_update(self, collection: str, document_id: str, data: Document) -> None:
        batch = self.new_batch()
        batch.update(collection, document_id, data)
        try:
            await self.commit_batch(batch)
        except BatchWriteError as e:
            raise NotFoundError(str(e))

    async def delete(self, collection: str, document_id: str) -> bool:
        async with self._write_lock:
            rows = await self._rows(collection)
            if not any(row_id == document_id for _, row_id, _ in rows):
                return False
            batch = self.new_batch()
            batch.delete(collection, document_id)
            await self._apply_batch(batch)
        return True

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def commit_batch(self, batch: WriteBatch) -> None:
        async with self._write_lock:
            await self._apply_batch(batch)

    async def _apply_batch(self, batch: WriteBatch) -> None:
        """
        Resolve the batch against current sheet contents, then send one
        batchUpdate request containing every resulting row change.

        Callers hold _write_lock.
        """
        collections = sorted({operation.collection for operation in batch.operations})
        snapshots = dict(zip(
            collections,
            await asyncio.gather(*(self._rows(name) for name in collections)),
        ))

        # collection -> id -> (row_index or None, final body or None)
        state: dict[str, dict[str, tuple[Optional[int], Optional[Document]]]] = {}
        for name, rows in snapshots.items():
            state[name] = {row_id: (index, body) for index, row_id, body in rows}
        original = copy.deepcopy(state)

        for operation in batch.operations:
            documents = state[operation.collection]
            index, current = documents.get(operation.document_id, (None, None))
            payload = {k: v for k, v in (operation.data or {}).items() if k != "id"}

            if operation.kind == "create":
                if current is not None:
                    raise BatchWriteError(
                        f"{operation.collection}/{operation.document_id} already exists"
                    )
                documents[operation.document_id] = (index, payload)
            elif operation.kind == "set":
                documents[operation.document_id] = (index, payload)
            elif operation.kind == "update":
                if current is None:
                    raise BatchWriteError(
                        f"{operation.collection}/{operation.document_id} not found"
                    )
                check_expected(operation, current)
                documents[operation.document_id] = (index, {**current, **payload})
            elif operation.kind == "delete":
                if current is None:
                    raise BatchWriteError(
                        f"{operation.collection}/{operation.document_id} not found"
                    )
                documents[operation.document_id] = (index, None)

        requests = await asyncio.to_thread(self._build_requests, original, state)
        try:
            await asyncio.to_thread(self._send_requests, requests)
        except Exception as e:
            raise StorageError(f"Batch write failed: {e}")

        logger.debug("sheets_batch_committed", requests=len(requests))

    def _build_requests(
        self,
        original: dict[str, dict[str, tuple[Optional[int], Optional[Document]]]],
        final: dict[str, dict[str, tuple[Optional[int], Optional[Document]]]],
    ) -> list[dict[str, Any]]:
        """
        Turn a state diff into batchUpdate requests.

        Requests run in order: in-place updates first, then deletions from
        the bottom up so earlier row indexes stay valid, then appends.
        """
        updates: list[dict] = []
        deletions: list[tuple[int, int]] = []
        appends: list[dict] = []

        for collection, documents in final.items():
            sheet_id = self._client.get_collection_sheet(collection).id
            for document_id, (index, body) in documents.items():
                before = original[collection].get(document_id, (None, None))[1]
                if index is None:
                    if body is not None:
                        appends.append({
                            "appendCells": {
                                "sheetId": sheet_id,
                                "rows": [_row_payload(document_id, body)],
                                "fields": "userEnteredValue",
                            }
                        })
                elif body is None:
                    deletions.append((sheet_id, index))
                elif body != before:
                    updates.append({
                        "updateCells": {
                            "start": {"sheetId": sheet_id, "rowIndex": index, "columnIndex": 0},
                            "rows": [_row_payload(document_id, body)],
                            "fields": "userEnteredValue",
                        }
                    })

        deletions.sort(key=lambda item: item[1], reverse=True)
        delete_requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": index,
                        "endIndex": index + 1,
                    }
                }
            }
            for sheet_id, index in deletions
        ]
        return updates + delete_requests + appends

