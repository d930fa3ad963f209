# Sophos Central Ingestion Adapter

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Any, List, Optional
import requests

from ..errors import AdapterAuthError, AdapterFetchError
from ..sync.models import SyncWindow, TenantGroup
from .base import CursorAdapter, Page


TOKEN_URL = 'https://id.sophos.com/api/v2/oauth2/token'
WHOAMI_URL = 'https://api.central.sophos.com/whoami/v1'
EVENTS_PATH = '/siem/v1/events'

# The SIEM API refuses from_date values older than this
MAX_LOOKBACK = timedelta(hours=24)


@dataclass
class SophosSession:
    tenantId: str
    dataRegion: str
    http: requests.Session

    def close(self) -> None:
        self.http.close()


class SophosIngestion(CursorAdapter):
    """
    Sophos Central SIEM events.

    The checkpoint is the API's ``next_cursor``. Without one the first page
    starts at ``window.start``; with one the window is ignored and paging
    resumes right after the last event already delivered.
    """

    moduleName = 'sophos'
    logType = 'sophos-central'
    checkUrl = 'https://id.sophos.com'

    def __init__(self, config: Optional[Dict[str, Any]] = None, normalizer=None):
        super().__init__(config, normalizer)
        self.pageLimit = int(self.config.get('page_limit', 1000))

    def getRequiredFields(self) -> List[str]:
        return ['sophos_client_id', 'sophos_client_secret']

    def _newHttpSession(self) -> requests.Session:
        return requests.Session()

    def authenticate(self, group: TenantGroup) -> SophosSession:
        http = self._newHttpSession()
        try:
            token = self._getAccessToken(http, group)
            http.headers.update({'Authorization': f"Bearer {token}"})

            identity = self._request(http, 'GET', WHOAMI_URL, group, auth=True)
            tenantId = identity.get('id')
            dataRegion = (identity.get('apiHosts') or {}).get('dataRegion')
            if not tenantId or not dataRegion:
                raise AdapterAuthError("Sophos whoami response lacks tenant id or data region", group.groupName)

            http.headers.update({'X-Tenant-ID': tenantId})
            return SophosSession(tenantId=tenantId, dataRegion=dataRegion.rstrip('/'), http=http)
        except Exception:
            http.close()
            raise

    def _getAccessToken(self, http: requests.Session, group: TenantGroup) -> str:
        payload = self._request(
            http,
            'POST',
            TOKEN_URL,
            group,
            auth=True,
            data={
                'grant_type': 'client_credentials',
                'client_id': group.get('sophos_client_id'),
                'client_secret': group.get('sophos_client_secret'),
                'scope': 'token',
            }
        )
        token = payload.get('access_token')
        if not token:
            raise AdapterAuthError("Sophos token response has no access_token", group.groupName)
        return token

    def fetchPage(
        self,
        session: SophosSession,
        window: SyncWindow,
        cursor: Optional[str],
        group: TenantGroup
    ) -> Page:
        params: Dict[str, Any] = {'limit': self.pageLimit}
        if cursor:
            params['cursor'] = cursor
        else:
            fromDate = window.start
            oldest = window.end - MAX_LOOKBACK
            if fromDate < oldest:
                self.logger.warning(f"Window start {fromDate.isoformat()} is older than Sophos allows, using {oldest.isoformat()}")
                fromDate = oldest
            params['from_date'] = int(fromDate.timestamp())

        payload = self._request(
            session.http,
            'GET',
            f"{session.dataRegion}{EVENTS_PATH}",
            group,
            params=params
        )

        return Page(
            items=list(payload.get('items') or []),
            nextCursor=payload.get('next_cursor') or None,
            hasMore=bool(payload.get('has_more'))
        )

    def _request(
        self,
        http: requests.Session,
        method: str,
        url: str,
        group: TenantGroup,
        auth: bool = False,
        **kwargs: Any
    ) -> Dict[str, Any]:
        # auth marks the session-setup calls, whose failures are authentication failures
        errorType = AdapterAuthError if auth else AdapterFetchError

        try:
            response = http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise errorType(f"Sophos request to {url} failed: {e}", group.groupName) from e

        if response.status_code in (401, 403):
            raise AdapterAuthError(f"Sophos rejected credentials: HTTP {response.status_code}", group.groupName)
        if not response.ok:
            raise errorType(
                f"Sophos request to {url} failed: HTTP {response.status_code} {response.text[:200]}",
                group.groupName
            )

        try:
            return response.json()
        except ValueError as e:
            raise errorType(f"Sophos returned a non-JSON body from {url}: {e}", group.groupName) from e
