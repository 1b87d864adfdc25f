"""CloudWatch Logs log group handler."""

from typing import Any, Dict, Optional

from shipyard.state.models import ResourceKind
from .base import ResourceHandler


class LogGroupHandler(ResourceHandler):
    """Handler for CloudWatch log groups."""

    kind = ResourceKind.LOG_GROUP
    service_name = 'logs'
    MANAGED_FIELDS = frozenset({'retention_in_days'})

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        # The API filters by prefix only, so match the exact name client-side
        paginator = self.client.get_paginator('describe_log_groups')
        for page in paginator.paginate(logGroupNamePrefix=name):
            for log_group in page.get('logGroups', []):
                if log_group.get('logGroupName') == name:
                    return {
                        'log_group_name': name,
                        'arn': log_group.get('arn'),
                        'retention_in_days': log_group.get('retentionInDays'),
                    }

        return None

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        self.client.create_log_group(logGroupName=name)

        retention = config.get('retention_in_days')
        if retention is not None:
            self.client.put_retention_policy(logGroupName=name, retentionInDays=int(retention))

        return {
            'log_group_name': name,
            'arn': None,
            'retention_in_days': int(retention) if retention is not None else None,
        }

    def managed_view(self, config: Dict[str, Any]) -> Dict[str, Any]:
        view = super().managed_view(config)
        if view.get('retention_in_days') is not None:
            view['retention_in_days'] = int(view['retention_in_days'])
        return view
