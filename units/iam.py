"""
IAM policy documents shared by units
"""

import json


def service_assume_role_policy(service: str) -> str:
    """Trust policy letting an AWS service assume a role"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def oidc_issuer_from_provider_arn(provider_arn: str) -> str:
    """
    Issuer host/path of an IAM OIDC provider

    arn:aws:iam::123:oidc-provider/oidc.eks.<region>.amazonaws.com/id/ABC
    -> oidc.eks.<region>.amazonaws.com/id/ABC
    """
    _, _, issuer = provider_arn.partition("oidc-provider/")
    if not issuer:
        raise ValueError(f"Not an OIDC provider ARN: {provider_arn}")
    return issuer


def irsa_assume_role_policy(provider_arn: str, namespace: str, service_account: str) -> str:
    """
    Trust policy for IAM Roles for Service Accounts

    Args:
        provider_arn: ARN of the cluster's IAM OIDC provider
        namespace: Kubernetes namespace of the service account
        service_account: Service account name

    Returns:
        JSON policy document
    """
    issuer = oidc_issuer_from_provider_arn(provider_arn)
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Federated": provider_arn},
            "Action": "sts:AssumeRoleWithWebIdentity",
            "Condition": {
                "StringEquals": {
                    f"{issuer}:sub": f"system:serviceaccount:{namespace}:{service_account}",
                    f"{issuer}:aud": "sts.amazonaws.com"
                }
            }
        }]
    })
