"""
Network unit
VPC with public and private subnets across availability zones for EKS
"""

import ipaddress
from typing import Dict, List, Tuple

import pulumi_aws as aws

from config import EnvironmentConfig
from . import exports

UNIT_ID = "network"
DEPENDS_ON: Tuple[str, ...] = ()
OUTPUTS = (
    exports.NETWORK_VPC_ID,
    exports.NETWORK_VPC_CIDR,
    exports.NETWORK_PRIVATE_SUBNET_IDS,
    exports.NETWORK_PUBLIC_SUBNET_IDS,
)

MAX_AZS = 3


def subnet_cidrs(vpc_cidr: str, count: int) -> Tuple[List[str], List[str]]:
    """
    Carve public and private subnet CIDRs out of the VPC range

    Args:
        vpc_cidr: VPC CIDR block
        count: Number of subnets of each kind

    Returns:
        (public CIDRs, private CIDRs)
    """
    network = ipaddress.IPv4Network(vpc_cidr)
    new_prefix = max(24, network.prefixlen + 3)
    blocks = [str(block) for block in network.subnets(new_prefix=new_prefix)]
    return blocks[:count], blocks[count:2 * count]


def prepare(config: EnvironmentConfig, registry):
    """Network has no upstream values to read"""

    def program() -> Dict[str, object]:
        name = config.environment
        tags = config.common_tags

        vpc = aws.ec2.Vpc(
            f"{name}-eks-vpc",
            cidr_block=config.effective_vpc_cidr,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags={**tags, "Name": f"{name}-eks-vpc", "Stack": "Network"}
        )

        igw = aws.ec2.InternetGateway(
            f"{name}-igw",
            vpc_id=vpc.id,
            tags={**tags, "Name": f"{name}-igw"}
        )

        azs = aws.get_availability_zones(state="available").names[:MAX_AZS]
        public_cidrs, private_cidrs = subnet_cidrs(config.effective_vpc_cidr, len(azs))

        public_subnets = []
        private_subnets = []
        for i, az in enumerate(azs):
            public_subnets.append(aws.ec2.Subnet(
                f"{name}-public-subnet-{i+1}",
                vpc_id=vpc.id,
                cidr_block=public_cidrs[i],
                availability_zone=az,
                map_public_ip_on_launch=False,
                tags={
                    **tags,
                    "Name": f"{name}-public-subnet-{i+1}",
                    "kubernetes.io/role/elb": "1",
                }
            ))
            private_subnets.append(aws.ec2.Subnet(
                f"{name}-private-subnet-{i+1}",
                vpc_id=vpc.id,
                cidr_block=private_cidrs[i],
                availability_zone=az,
                tags={
                    **tags,
                    "Name": f"{name}-private-subnet-{i+1}",
                    "kubernetes.io/role/internal-elb": "1",
                }
            ))

        # Single NAT gateway for private egress
        nat_eip = aws.ec2.Eip(f"{name}-nat-eip", domain="vpc", tags=tags)
        nat_gateway = aws.ec2.NatGateway(
            f"{name}-nat",
            allocation_id=nat_eip.id,
            subnet_id=public_subnets[0].id,
            tags={**tags, "Name": f"{name}-nat"}
        )

        public_rt = aws.ec2.RouteTable(
            f"{name}-public-rt",
            vpc_id=vpc.id,
            routes=[aws.ec2.RouteTableRouteArgs(
                cidr_block="0.0.0.0/0",
                gateway_id=igw.id)],
            tags={**tags, "Name": f"{name}-public-rt"}
        )
        private_rt = aws.ec2.RouteTable(
            f"{name}-private-rt",
            vpc_id=vpc.id,
            routes=[aws.ec2.RouteTableRouteArgs(
                cidr_block="0.0.0.0/0",
                nat_gateway_id=nat_gateway.id)],
            tags={**tags, "Name": f"{name}-private-rt"}
        )

        for i, subnet in enumerate(public_subnets):
            aws.ec2.RouteTableAssociation(
                f"{name}-public-rta-{i+1}",
                subnet_id=subnet.id,
                route_table_id=public_rt.id)
        for i, subnet in enumerate(private_subnets):
            aws.ec2.RouteTableAssociation(
                f"{name}-private-rta-{i+1}",
                subnet_id=subnet.id,
                route_table_id=private_rt.id)

        return {
            exports.NETWORK_VPC_ID: vpc.id,
            exports.NETWORK_VPC_CIDR: vpc.cidr_block,
            exports.NETWORK_PRIVATE_SUBNET_IDS: [subnet.id for subnet in private_subnets],
            exports.NETWORK_PUBLIC_SUBNET_IDS: [subnet.id for subnet in public_subnets],
        }

    return program
