"""EC2 handlers: networks (VPCs) and security groups."""

from typing import Any, Dict, List, Optional

from shipyard.state.models import ResourceKind
from shipyard.utils.errors import ConfigurationError, ErrorContext
from .base import ResourceHandler

# Inbound HTTP from anywhere
DEFAULT_INGRESS = [{'protocol': 'tcp', 'port': 80, 'cidr': '0.0.0.0/0'}]


class NetworkHandler(ResourceHandler):
    """Handler for VPCs.

    With ``default: true`` the declaration stands for the account's default
    VPC in the region; otherwise the VPC is found by its ``Name`` tag.
    """

    kind = ResourceKind.NETWORK
    service_name = 'ec2'
    MANAGED_FIELDS = frozenset({'cidr_block'})

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if config.get('default'):
            filters = [{'Name': 'is-default', 'Values': ['true']}]
        else:
            filters = [{'Name': 'tag:Name', 'Values': [name]}]

        vpcs = self.client.describe_vpcs(Filters=filters).get('Vpcs', [])
        if not vpcs:
            return None

        return self._observed(vpcs[0])

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        if config.get('default'):
            vpc = self.client.create_default_vpc()['Vpc']
            return self._observed(vpc)

        if not config.get('cidr_block'):
            raise ConfigurationError(
                f"Network '{name}' requires 'cidr_block' unless 'default' is set",
                context=ErrorContext(resource_id=name, resource_type=self.kind.value,
                                     operation='create')
            )

        vpc = self.client.create_vpc(
            CidrBlock=config['cidr_block'],
            TagSpecifications=[
                {'ResourceType': 'vpc', 'Tags': [{'Key': 'Name', 'Value': name}]}
            ]
        )['Vpc']
        return self._observed(vpc)

    def _observed(self, vpc: Dict[str, Any]) -> Dict[str, Any]:
        vpc_id = vpc['VpcId']
        return {
            'vpc_id': vpc_id,
            'cidr_block': vpc.get('CidrBlock'),
            'is_default': vpc.get('IsDefault', False),
            'subnet_ids': self._subnet_ids(vpc_id),
        }

    def _subnet_ids(self, vpc_id: str) -> List[str]:
        response = self.client.describe_subnets(
            Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}]
        )
        return sorted(subnet['SubnetId'] for subnet in response.get('Subnets', []))


class SecurityGroupHandler(ResourceHandler):
    """Handler for security groups, looked up by group name within a VPC."""

    kind = ResourceKind.SECURITY_GROUP
    service_name = 'ec2'
    MANAGED_FIELDS = frozenset({'ingress'})
    CREATE_DEFAULTS = {'ingress': DEFAULT_INGRESS}

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        filters = [{'Name': 'group-name', 'Values': [name]}]
        if config.get('vpc_id'):
            filters.append({'Name': 'vpc-id', 'Values': [config['vpc_id']]})

        groups = self.client.describe_security_groups(Filters=filters).get('SecurityGroups', [])
        if not groups:
            return None

        group = groups[0]
        return {
            'group_id': group['GroupId'],
            'group_name': group['GroupName'],
            'vpc_id': group.get('VpcId'),
            'description': group.get('Description'),
            'ingress': self._rules_from_permissions(group.get('IpPermissions', [])),
        }

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        description = config.get('description', f'Security group for {name}')
        params: Dict[str, Any] = {'GroupName': name, 'Description': description}
        if config.get('vpc_id'):
            params['VpcId'] = config['vpc_id']

        group_id = self.client.create_security_group(**params)['GroupId']

        rules = self.normalize_rules(config.get('ingress', self.CREATE_DEFAULTS['ingress']))
        if rules:
            self.client.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[self._permission_from_rule(rule) for rule in rules]
            )

        return {
            'group_id': group_id,
            'group_name': name,
            'vpc_id': config.get('vpc_id'),
            'description': description,
            'ingress': rules,
        }

    def managed_view(self, config: Dict[str, Any]) -> Dict[str, Any]:
        view = super().managed_view(config)
        view['ingress'] = self.normalize_rules(view['ingress'])
        return view

    @staticmethod
    def normalize_rules(rules: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Normalize ingress rules to sorted ``protocol/from_port/to_port/cidr`` dicts.

        A rule may give a single ``port`` or a ``from_port``/``to_port`` range.
        """
        normalized = []
        for rule in rules or []:
            from_port = rule.get('from_port', rule.get('port'))
            to_port = rule.get('to_port', rule.get('port', from_port))
            normalized.append({
                'protocol': str(rule.get('protocol', 'tcp')),
                'from_port': int(from_port) if from_port is not None else None,
                'to_port': int(to_port) if to_port is not None else None,
                'cidr': rule.get('cidr', '0.0.0.0/0'),
            })

        return sorted(
            normalized,
            key=lambda r: (r['protocol'], r['from_port'] or 0, r['to_port'] or 0, r['cidr'])
        )

    def _rules_from_permissions(self, permissions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        rules = []
        for permission in permissions:
            for ip_range in permission.get('IpRanges', []):
                rules.append({
                    'protocol': permission.get('IpProtocol', '-1'),
                    'from_port': permission.get('FromPort'),
                    'to_port': permission.get('ToPort'),
                    'cidr': ip_range.get('CidrIp'),
                })
        return self.normalize_rules(rules)

    @staticmethod
    def _permission_from_rule(rule: Dict[str, Any]) -> Dict[str, Any]:
        permission: Dict[str, Any] = {
            'IpProtocol': rule['protocol'],
            'IpRanges': [{'CidrIp': rule['cidr']}],
        }
        if rule['from_port'] is not None:
            permission['FromPort'] = rule['from_port']
            permission['ToPort'] = rule['to_port']
        return permission
