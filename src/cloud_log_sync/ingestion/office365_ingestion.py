#Office 365

from azure.core.exceptions import AzureError
from azure.identity import ClientSecretCredential
from dataclasses import dataclass
from typing import Dict, Any, Iterator, List, Optional, Tuple
from datetime import datetime, timedelta
import requests

from ..errors import AdapterAuthError, AdapterFetchError
from ..sync.models import SyncWindow, TenantGroup
from .base import WindowOnlyAdapter


MANAGEMENT_API = 'https://manage.office.com/api/v1.0'
MANAGEMENT_SCOPE = 'https://manage.office.com/.default'

DEFAULT_CONTENT_TYPES = [
    'Audit.AzureActiveDirectory',
    'Audit.Exchange',
    'Audit.SharePoint',
    'Audit.General',
    'DLP.All',
]

# The content API accepts at most 24 hours per listing request
MAX_LISTING_SPAN = timedelta(hours=24)
SUBSCRIPTION_ALREADY_ENABLED = 'AF20024'


@dataclass
class OfficeSession:
    tenantId: str
    http: requests.Session

    def close(self) -> None:
        self.http.close()


class Office365Ingestion(WindowOnlyAdapter):
    """
    Office 365 Management Activity API.

    The window bounds when content blobs became available, not when the
    events inside them happened, so events are not filtered by their own
    timestamps.
    """

    moduleName = 'o365'
    logType = 'o365'
    checkUrl = 'https://manage.office.com'
    filterToWindow = False

    def __init__(self, config: Optional[Dict[str, Any]] = None, normalizer=None):
        super().__init__(config, normalizer)
        self.contentTypes = list(self.config.get('content_types') or DEFAULT_CONTENT_TYPES)

    def getRequiredFields(self) -> List[str]:
        return ['office365_client_id', 'office365_client_secret', 'office365_tenant_id']

    def authenticate(self, group: TenantGroup) -> OfficeSession:
        tenantId = group.get('office365_tenant_id')

        try:
            credential = ClientSecretCredential(
                tenant_id=tenantId,
                client_id=group.get('office365_client_id'),
                client_secret=group.get('office365_client_secret')
            )
            token = credential.get_token(MANAGEMENT_SCOPE)
        except (AzureError, ValueError) as e:
            raise AdapterAuthError(f"error getting auth token: {e}", group.groupName) from e

        http = self._newHttpSession()
        http.headers.update({'Authorization': f"Bearer {token.token}"})
        session = OfficeSession(tenantId=tenantId, http=http)

        try:
            self.startSubscriptions(session, group)
        except Exception:
            session.close()
            raise

        return session

    def _newHttpSession(self) -> requests.Session:
        return requests.Session()

    def startSubscriptions(self, session: OfficeSession, group: TenantGroup) -> None:
        for contentType in self.contentTypes:
            url = f"{MANAGEMENT_API}/{session.tenantId}/activity/feed/subscriptions/start"
            try:
                response = session.http.post(
                    url,
                    params={'contentType': contentType, 'PublisherIdentifier': session.tenantId},
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                raise AdapterAuthError(f"error starting subscription {contentType}: {e}", group.groupName) from e

            if response.ok or SUBSCRIPTION_ALREADY_ENABLED in (response.text or ''):
                continue

            raise AdapterAuthError(
                f"error starting subscription {contentType}: HTTP {response.status_code} {response.text[:200]}",
                group.groupName
            )

    def fetchWindow(
        self,
        session: OfficeSession,
        window: SyncWindow,
        group: TenantGroup
    ) -> Iterator[Dict[str, Any]]:
        for contentType in self.contentTypes:
            for chunkStart, chunkEnd in splitWindow(window, MAX_LISTING_SPAN):
                for content in self._listContent(session, contentType, chunkStart, chunkEnd, group):
                    contentUri = content.get('contentUri')
                    if not contentUri:
                        continue
                    yield from self._getJson(session, contentUri, group)

    def _listContent(
        self,
        session: OfficeSession,
        contentType: str,
        start: datetime,
        end: datetime,
        group: TenantGroup
    ) -> Iterator[Dict[str, Any]]:
        url: Optional[str] = f"{MANAGEMENT_API}/{session.tenantId}/activity/feed/subscriptions/content"
        params: Optional[Dict[str, str]] = {
            'contentType': contentType,
            'startTime': formatTime(start),
            'endTime': formatTime(end),
            'PublisherIdentifier': session.tenantId,
        }

        while url:
            response = self._get(session, url, params, group)
            yield from self._decode(response, group) or []
            # NextPageUri already carries the query string
            url = response.headers.get('NextPageUri')
            params = None

    def _getJson(self, session: OfficeSession, url: str, group: TenantGroup) -> List[Dict[str, Any]]:
        events = self._decode(self._get(session, url, None, group), group)
        return events if isinstance(events, list) else [events]

    def _get(
        self,
        session: OfficeSession,
        url: str,
        params: Optional[Dict[str, str]],
        group: TenantGroup
    ) -> requests.Response:
        try:
            response = session.http.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterFetchError(f"Office 365 request failed: {e}", group.groupName) from e

        if response.status_code in (401, 403):
            raise AdapterAuthError(f"Office 365 rejected the token: HTTP {response.status_code}", group.groupName)
        if not response.ok:
            raise AdapterFetchError(
                f"Office 365 request failed: HTTP {response.status_code} {response.text[:200]}",
                group.groupName
            )
        return response

    def _decode(self, response: requests.Response, group: TenantGroup) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise AdapterFetchError(f"Office 365 returned a non-JSON body: {e}", group.groupName) from e


def splitWindow(window: SyncWindow, span: timedelta) -> List[Tuple[datetime, datetime]]:
    chunks = []
    start = window.start
    while True:
        end = min(start + span, window.end)
        chunks.append((start, end))
        if end >= window.end:
            return chunks
        start = end


def formatTime(value: datetime) -> str:
    return value.strftime('%Y-%m-%dT%H:%M:%S')
