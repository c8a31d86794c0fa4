"""
EKS Observability Deployment
Network -> Infrastructure -> Observability -> Pipelines / Telemetry, one Pulumi stack per unit

Usage: python . --environment dev --region ap-southeast-1
"""
from cli import main

main()
