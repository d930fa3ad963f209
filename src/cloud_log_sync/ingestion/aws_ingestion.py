# AWS Ingestion Adapter

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError
from typing import Dict, Any, Iterator, List

from ..errors import AdapterAuthError, AdapterFetchError
from ..sync.models import SyncWindow, TenantGroup
from .base import WindowOnlyAdapter


AUTH_ERROR_CODES = {
    'AccessDenied',
    'AccessDeniedException',
    'ExpiredToken',
    'ExpiredTokenException',
    'InvalidClientTokenId',
    'SignatureDoesNotMatch',
    'UnrecognizedClientException',
}


class AWSIngestion(WindowOnlyAdapter):
    """CloudWatch Logs events of one log group per tenant, bounded by the window."""

    moduleName = 'aws_iam_user'
    logType = 'aws'
    checkUrl = 'https://sts.amazonaws.com'

    def getRequiredFields(self) -> List[str]:
        return [
            'aws_access_key_id',
            'aws_secret_access_key',
            'aws_default_region',
            'aws_log_group_name',
        ]

    def clientConfig(self) -> Config:
        # One attempt per call; a failed cycle is retried by the next one
        return Config(
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            retries={'total_max_attempts': 1}
        )

    def authenticate(self, group: TenantGroup) -> Any:
        sessionConfig = {
            'region_name': group.get('aws_default_region'),
            'aws_access_key_id': group.get('aws_access_key_id'),
            'aws_secret_access_key': group.get('aws_secret_access_key'),
        }

        try:
            session = boto3.Session(**sessionConfig)
            identity = session.client('sts', config=self.clientConfig()).get_caller_identity()
            self.logger.debug(f"AWS session for {group.groupName} uses account {identity.get('Account')}")
            return session
        except ClientError as e:
            raise AdapterAuthError(f"AWS authentication failed: {e}", group.groupName) from e
        except BotoCoreError as e:
            raise AdapterAuthError(f"AWS session setup failed: {e}", group.groupName) from e

    def fetchWindow(
        self,
        session: Any,
        window: SyncWindow,
        group: TenantGroup
    ) -> Iterator[Dict[str, Any]]:
        logGroupName = group.get('aws_log_group_name')

        try:
            logsClient = session.client('logs', config=self.clientConfig())
            paginator = logsClient.get_paginator('filter_log_events')

            pages = paginator.paginate(
                logGroupName=logGroupName,
                startTime=int(window.start.timestamp() * 1000),
                endTime=int(window.end.timestamp() * 1000),
                PaginationConfig={'PageSize': int(self.config.get('page_size', 1000))}
            )

            for page in pages:
                for event in page.get('events', []):
                    yield {
                        'eventId': event.get('eventId'),
                        'timestamp': event.get('timestamp'),
                        'ingestionTime': event.get('ingestionTime'),
                        'logGroupName': logGroupName,
                        'logStreamName': event.get('logStreamName'),
                        'message': event.get('message', ''),
                    }

        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code in AUTH_ERROR_CODES:
                raise AdapterAuthError(f"AWS rejected credentials reading {logGroupName}: {e}", group.groupName) from e
            raise AdapterFetchError(f"CloudWatch Logs fetch from {logGroupName} failed: {e}", group.groupName) from e
        except BotoCoreError as e:
            raise AdapterFetchError(f"CloudWatch Logs fetch from {logGroupName} failed: {e}", group.groupName) from e
