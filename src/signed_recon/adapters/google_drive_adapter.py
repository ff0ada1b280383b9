from __future__ import annotations

import json
from uuid import uuid4

import requests

from signed_recon.ports.drive_port import DrivePort


class GoogleDriveAdapter(DrivePort):
    _BASE_URL = "https://www.googleapis.com/drive/v3"
    _UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
    _FOLDER_MIME = "application/vnd.google-apps.folder"

    def __init__(self, access_token: str) -> None:
        self._access_token = access_token
        self._folder_ids: dict[str, str] = {}

    def upload_pdf(self, folder_name: str, filename: str, content: bytes) -> str:
        return self._upload(folder_name, filename, content, "application/pdf")

    def upload_png(self, folder_name: str, filename: str, content: bytes) -> str:
        return self._upload(folder_name, filename, content, "image/png")

    def clear_folder_cache(self) -> None:
        self._folder_ids.clear()

    def _upload(self, folder_name: str, filename: str, content: bytes, mime_type: str) -> str:
        folder_id = self._get_or_create_folder(folder_name)
        boundary = f"signed-recon-{uuid4().hex}"
        metadata = json.dumps({"name": filename, "parents": [folder_id]})
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode("utf-8") + content + f"\r\n--{boundary}--".encode("utf-8")
        try:
            response = requests.post(
                self._UPLOAD_URL,
                headers={
                    **self._auth_header(),
                    "Content-Type": f"multipart/related; boundary={boundary}",
                },
                params={"uploadType": "multipart", "fields": "id,webViewLink"},
                data=body,
                timeout=60,
            )
        except requests.RequestException as exc:
            raise RuntimeError("Failed to upload file to Drive.") from exc
        self._raise_for_status(response, context="upload file")
        payload = response.json()
        file_id = payload.get("id", "")
        return payload.get("webViewLink") or f"https://drive.google.com/file/d/{file_id}/view"

    def _get_or_create_folder(self, folder_name: str) -> str:
        cached = self._folder_ids.get(folder_name)
        if cached:
            return cached
        escaped = folder_name.replace("\\", "\\\\").replace("'", "\\'")
        try:
            response = requests.get(
                f"{self._BASE_URL}/files",
                headers=self._auth_header(),
                params={
                    "q": (
                        f"name='{escaped}' and mimeType='{self._FOLDER_MIME}' "
                        "and trashed=false"
                    ),
                    "fields": "files(id, name)",
                    "pageSize": 1,
                },
                timeout=20,
            )
        except requests.RequestException as exc:
            raise RuntimeError("Failed to look up Drive folder.") from exc
        self._raise_for_status(response, context="find folder")
        files = response.json().get("files", [])
        if files:
            folder_id = files[0].get("id", "")
        else:
            try:
                response = requests.post(
                    f"{self._BASE_URL}/files",
                    headers={**self._auth_header(), "Content-Type": "application/json"},
                    params={"fields": "id"},
                    json={"name": folder_name, "mimeType": self._FOLDER_MIME},
                    timeout=20,
                )
            except requests.RequestException as exc:
                raise RuntimeError("Failed to create Drive folder.") from exc
            self._raise_for_status(response, context="create folder")
            folder_id = response.json().get("id", "")
        self._folder_ids[folder_name] = folder_id
        return folder_id

    def _auth_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    @staticmethod
    def _raise_for_status(response: requests.Response, context: str) -> None:
        if response.status_code in (401, 403):
            raise RuntimeError(f"Auth failed while attempting to {context}.")
        if response.status_code == 404:
            raise RuntimeError(f"Resource not found or no access while attempting to {context}.")
        if response.status_code >= 400:
            raise RuntimeError(
                f"Drive API error {response.status_code} while attempting to {context}."
            )
