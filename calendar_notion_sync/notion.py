"""
Notion API client and page helpers.

The client is a thin wrapper over the Notion REST API using requests.
Every method raises ``requests.exceptions.RequestException`` on failure;
callers decide whether a failure is fatal.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional

import requests

from .core import DEFAULT_TITLE, logger
from .dates import SyncFields, fields_to_notion_date, localize

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
SIGNATURE_HEADER = "X-Notion-Signature"


class NotionAPI:
    """
    Client for interacting with the Notion API.

    Attributes:
        api_key: Integration token
        base_url: API root, overridable for tests
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = NOTION_API_URL,
        timeout: float = 30.0
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Optional[Dict] = None
    ) -> Dict:
        """
        Make an authenticated request to the Notion API.

        Args:
            endpoint: API endpoint to call
            method: HTTP method (GET, POST, PATCH)
            payload: Optional JSON body

        Returns:
            API response as dictionary

        Raises:
            requests.exceptions.RequestException: If the API request fails
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }

        url = f"{self.base_url}/{endpoint}"
        logger.debug(f"Making {method} request to Notion API: {url}")
        if payload:
            logger.debug(f"Payload: {json.dumps(payload, ensure_ascii=False)}")

        response = requests.request(
            method,
            url,
            headers=headers,
            json=payload,
            timeout=self.timeout
        )
        logger.debug(f"Response Status Code: {response.status_code}")
        if not response.ok:
            logger.debug(f"Response Body (raw): {response.text}")

        response.raise_for_status()
        return response.json()

    def retrieve_page(self, page_id: str) -> Dict:
        """Fetch a page with its properties."""
        return self._make_request(f"pages/{page_id}")

    def create_page(self, database_id: str, properties: Dict) -> Dict:
        """
        Create a page in a database.

        Args:
            database_id: Parent database ID
            properties: Page properties in Notion's format

        Returns:
            Created page
        """
        data = {
            "parent": {"database_id": database_id},
            "properties": properties,
        }
        return self._make_request("pages", method="POST", payload=data)

    def update_page(
        self,
        page_id: str,
        properties: Optional[Dict] = None,
        archived: Optional[bool] = None
    ) -> Dict:
        data: Dict[str, Any] = {}
        if properties is not None:
            data["properties"] = properties
        if archived is not None:
            data["archived"] = archived
        return self._make_request(f"pages/{page_id}", method="PATCH", payload=data)

    def archive_page(self, page_id: str) -> bool:
        """
        Archive a page unless it is already archived.

        Returns:
            True if the page was archived by this call
        """
        page = self.retrieve_page(page_id)
        if page.get("archived"):
            return False
        self.update_page(page_id, archived=True)
        return True

    def is_page_archived(self, page_id: str) -> bool:
        return bool(self.retrieve_page(page_id).get("archived"))

    def query_database(
        self,
        database_id: str,
        query_filter: Optional[Dict] = None,
        page_size: int = 10
    ) -> List[Dict]:
        """
        Query a database and return the first page of results.

        Args:
            database_id: Database to query
            query_filter: Optional Notion filter object
            page_size: Maximum number of results

        Returns:
            List of matching pages
        """
        data: Dict[str, Any] = {"page_size": page_size}
        if query_filter:
            data["filter"] = query_filter
        response = self._make_request(
            f"databases/{database_id}/query", method="POST", payload=data
        )
        return response.get("results", [])

    def find_pages_by_title_and_date(
        self,
        database_id: str,
        title_property: str,
        date_property: str,
        fields: SyncFields
    ) -> List[Dict]:
        """
        Find pages whose title and start date equal the given fields.

        Used before creating a page so an earlier copy gets linked
        instead of duplicated.
        """
        conditions = [
            {"property": title_property, "title": {"equals": fields.title}},
        ]
        if fields.start:
            conditions.append(
                {"property": date_property, "date": {"equals": fields.start}}
            )
        results = self.query_database(database_id, {"and": conditions})
        return [page for page in results if not page.get("archived")]


def normalize_id(value: Optional[str]) -> str:
    """Notion IDs are returned with or without dashes."""
    return (value or "").replace("-", "").lower()


def extract_title(page: Dict, default: str = DEFAULT_TITLE) -> str:
    """
    Extract the plain-text title of a page.

    The title is read from whichever property has type ``title``, so the
    property name does not matter.
    """
    for prop in (page.get("properties") or {}).values():
        if prop.get("type") == "title" and prop.get("title"):
            text = " ".join(
                part.get("plain_text", "") for part in prop["title"]
            ).strip()
            if text:
                return text
    return default


def extract_date(page: Dict, date_property: str) -> Optional[Dict]:
    prop = (page.get("properties") or {}).get(date_property) or {}
    return prop.get("date")


def page_to_fields(page: Dict, date_property: str) -> SyncFields:
    """Read the synced fields of a page."""
    date = extract_date(page, date_property) or {}
    time_zone = date.get("time_zone")
    return SyncFields(
        extract_title(page),
        localize(date.get("start"), time_zone),
        localize(date.get("end"), time_zone),
    )


def build_page_properties(
    fields: SyncFields,
    title_property: str,
    date_property: str
) -> Dict:
    """
    Build the properties payload written to Notion for the given fields.

    The date property is only included when there is a start date.
    """
    properties = {
        title_property: {
            "title": [{"type": "text", "text": {"content": fields.title}}]
        }
    }
    date = fields_to_notion_date(fields)
    if date:
        properties[date_property] = {"date": date}
    return properties


def page_parent_database(page: Dict) -> Optional[str]:
    parent = page.get("parent") or {}
    if parent.get("type", "database_id") != "database_id":
        return None
    return parent.get("database_id")


def compute_signature(secret: str, body: bytes) -> str:
    """Compute the ``sha256=<hex>`` signature Notion sends for a body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """
    Verify a Notion webhook signature in constant time.

    Args:
        secret: The verification token of the subscription
        body: Raw request body
        signature: Value of the X-Notion-Signature header

    Returns:
        True if the signature matches
    """
    if not signature:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
