"""AWS named-profile lookup and S3 client construction."""
from __future__ import annotations

from typing import Optional

import boto3
from botocore.exceptions import ProfileNotFound

from bucketsync.core.errors import ConfigInvalid

REGIONS = {
    "us-east-2": "US East (Ohio)",
    "us-east-1": "US East (N. Virginia)",
    "us-west-1": "US West (N. California)",
    "us-west-2": "US West (Oregon)",
    "af-south-1": "Africa (Cape Town)",
    "ap-east-1": "Asia Pacific (Hong Kong)",
    "ap-south-1": "Asia Pacific (Mumbai)",
    "ap-northeast-3": "Asia Pacific (Osaka)",
    "ap-northeast-2": "Asia Pacific (Seoul)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
    "ap-southeast-2": "Asia Pacific (Sydney)",
    "ap-northeast-1": "Asia Pacific (Tokyo)",
    "ca-central-1": "Canada (Central)",
    "eu-central-1": "Europe (Frankfurt)",
    "eu-west-1": "Europe (Ireland)",
    "eu-west-2": "Europe (London)",
    "eu-south-1": "Europe (Milan)",
    "eu-west-3": "Europe (Paris)",
    "eu-north-1": "Europe (Stockholm)",
    "me-south-1": "Middle East (Bahrain)",
    "sa-east-1": "South America (São Paulo)",
}


def list_profiles() -> list[str]:
    """Profile names found in the shared AWS credentials/config files."""
    return sorted(boto3.session.Session().available_profiles)


def resolve_profile(name: str) -> str:
    profile = (name or "").strip()
    if not profile:
        raise ConfigInvalid("aws_profile_missing")
    if profile not in list_profiles():
        raise ConfigInvalid(f"profile '{profile}' not found")
    return profile


def create_s3_client(profile_name: str, region_name: Optional[str] = None, endpoint: str = ""):
    """S3 client for a named profile; a blank endpoint means AWS itself."""
    try:
        session = boto3.Session(profile_name=profile_name, region_name=region_name or None)
        return session.client("s3", endpoint_url=(endpoint or "").strip() or None)
    except ProfileNotFound as e:
        raise ConfigInvalid(f"profile '{profile_name}' not found") from e
