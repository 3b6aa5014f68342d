# sentinelhub/scanner/adapters/s3_config_adapter.py
"""
S3 bucket configuration auditor (boto3).

Runs against a bucket target, not a single file. Three passes:

    config       encryption, versioning, access logging
    permissions  ACL grants, bucket policy, public access block
    objects      sensitive filenames over the first `object_limit` keys,
                 embedded credentials in the first `content_scan_limit`
                 objects under `max_object_bytes`

"Not configured" answers from S3 (NoSuchBucketPolicy,
ServerSideEncryptionConfigurationNotFoundError, ...) are findings or
clean results. Any other ClientError means the audit itself failed and
is raised as ToolUnavailable.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sentinelhub.exceptions import ToolUnavailable
from sentinelhub.scanner.base import AdapterOptions, BaseAdapter, BucketConfigRaw

logger = logging.getLogger(__name__)

ALL_USERS_URIS = (
    "http://acs.amazonaws.com/groups/global/AllUsers",
    "http://acs.amazonaws.com/groups/global/AuthenticatedUsers",
)

NOT_CONFIGURED = {
    "ServerSideEncryptionConfigurationNotFoundError",
    "NoSuchBucketPolicy",
    "NoSuchPublicAccessBlockConfiguration",
}

SENSITIVE_FILE_RE = re.compile(
    r"(?:^|/)(?:\.env(?:\.[\w.-]+)?|id_rsa|id_dsa|id_ecdsa|id_ed25519|credentials(?:\.json)?"
    r"|[^/]*\.(?:pem|key|p12|pfx|kdbx|sql|bak|dump))$",
    re.IGNORECASE,
)

CONTENT_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]", str], ...] = (
    ("aws-access-key", re.compile(r"AKIA[0-9A-Z]{16}"), "critical"),
    ("private-key", re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----"), "critical"),
    ("stripe-secret-key", re.compile(r"sk_live_[0-9a-zA-Z]{24,}"), "critical"),
    ("github-token", re.compile(r"ghp_[A-Za-z0-9]{36}"), "high"),
    ("slack-bot-token", re.compile(r"xoxb-[0-9A-Za-z-]{10,}"), "high"),
)


def _error_code(e: ClientError) -> str:
    return (e.response.get("Error") or {}).get("Code", "")


def _bucket_name(target: Any) -> str:
    if isinstance(target, str):
        return target
    return getattr(target, "name", None) or ""


class S3ConfigAdapter(BaseAdapter):
    """Audits one bucket's configuration, permissions and object names."""

    def __init__(
        self,
        client=None,
        region: Optional[str] = None,
        object_limit: int = 100,
        content_scan_limit: int = 10,
        max_object_bytes: int = 1_000_000,
    ):
        self._client = client
        self.region = region
        self.object_limit = object_limit
        self.content_scan_limit = content_scan_limit
        self.max_object_bytes = max_object_bytes

    @property
    def name(self) -> str:
        return "s3-config"

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def supports(self, unit: Any) -> bool:
        return getattr(unit, "kind", None) == "bucket" or isinstance(unit, str)

    def execute(self, unit: Any, options: AdapterOptions) -> List[BucketConfigRaw]:
        bucket = _bucket_name(unit)
        if not bucket:
            raise ValueError("bucket name is required")
        try:
            raws: List[BucketConfigRaw] = []
            raws.extend(self.check_configuration(bucket))
            raws.extend(self.check_permissions(bucket))
            raws.extend(self.check_objects(bucket))
            return raws
        except ClientError as e:
            raise ToolUnavailable(self.name, f"{_error_code(e) or 'ClientError'} on {bucket}")
        except BotoCoreError as e:
            raise ToolUnavailable(self.name, str(e))

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _optional(self, call, bucket: str) -> Optional[dict]:
        """Call an S3 getter; None when S3 says the setting does not exist."""
        try:
            return call(Bucket=bucket)
        except ClientError as e:
            if _error_code(e) in NOT_CONFIGURED:
                return None
            raise

    def check_configuration(self, bucket: str) -> List[BucketConfigRaw]:
        raws: List[BucketConfigRaw] = []

        if self._optional(self.client.get_bucket_encryption, bucket) is None:
            raws.append(BucketConfigRaw(
                bucket=bucket, check="encryption-disabled", severity="high",
                category="encryption",
                message="Bucket does not have default server-side encryption enabled",
                recommendation="Enable default encryption (SSE-S3 or SSE-KMS)",
            ))

        versioning = self.client.get_bucket_versioning(Bucket=bucket)
        if versioning.get("Status") != "Enabled":
            raws.append(BucketConfigRaw(
                bucket=bucket, check="versioning-disabled", severity="medium",
                category="backup",
                message="Bucket versioning is not enabled",
                recommendation="Enable versioning to protect against accidental deletion",
            ))

        logging_cfg = self.client.get_bucket_logging(Bucket=bucket)
        if not logging_cfg.get("LoggingEnabled"):
            raws.append(BucketConfigRaw(
                bucket=bucket, check="access-logging-disabled", severity="medium",
                category="logging",
                message="Server access logging is not enabled",
                recommendation="Enable access logging to monitor bucket access",
            ))
        return raws

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def check_permissions(self, bucket: str) -> List[BucketConfigRaw]:
        raws: List[BucketConfigRaw] = []

        acl = self.client.get_bucket_acl(Bucket=bucket)
        public_read = public_write = False
        for grant in acl.get("Grants") or []:
            grantee = grant.get("Grantee") or {}
            if grantee.get("URI") not in ALL_USERS_URIS:
                continue
            permission = grant.get("Permission")
            if permission in ("READ", "FULL_CONTROL"):
                public_read = True
            if permission in ("WRITE", "FULL_CONTROL"):
                public_write = True
        if public_read:
            raws.append(BucketConfigRaw(
                bucket=bucket, check="public-read-access", severity="critical",
                category="access-control",
                message="Bucket ACL grants public read access",
                recommendation="Remove AllUsers / AuthenticatedUsers grants from the bucket ACL",
            ))
        if public_write:
            raws.append(BucketConfigRaw(
                bucket=bucket, check="public-write-access", severity="critical",
                category="access-control",
                message="Bucket ACL grants public write access",
                recommendation="Remove AllUsers / AuthenticatedUsers grants from the bucket ACL",
            ))

        policy = self._optional(self.client.get_bucket_policy, bucket)
        if policy and _policy_is_public(policy.get("Policy")):
            raws.append(BucketConfigRaw(
                bucket=bucket, check="policy-public-access", severity="critical",
                category="access-control",
                message="Bucket policy allows access to any principal (*)",
                recommendation="Restrict the bucket policy Principal to specific accounts or roles",
            ))

        block = self._optional(self.client.get_public_access_block, bucket)
        settings = (block or {}).get("PublicAccessBlockConfiguration") or {}
        flags = ("BlockPublicAcls", "IgnorePublicAcls", "BlockPublicPolicy", "RestrictPublicBuckets")
        if not all(settings.get(f) for f in flags):
            raws.append(BucketConfigRaw(
                bucket=bucket, check="public-access-block-disabled", severity="high",
                category="access-control",
                message="S3 Block Public Access is not fully enabled for this bucket",
                recommendation="Enable all four Block Public Access settings",
            ))
        return raws

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def _list_objects(self, bucket: str) -> Iterable[dict]:
        resp = self.client.list_objects_v2(Bucket=bucket, MaxKeys=self.object_limit)
        return (resp.get("Contents") or [])[: self.object_limit]

    def check_objects(self, bucket: str) -> List[BucketConfigRaw]:
        raws: List[BucketConfigRaw] = []
        scanned = 0
        for obj in self._list_objects(bucket):
            key = obj.get("Key") or ""
            if SENSITIVE_FILE_RE.search(key):
                raws.append(BucketConfigRaw(
                    bucket=bucket, check="sensitive-file", severity="high",
                    category="data-exposure", origin="filename", key=key,
                    message=f"Potentially sensitive file stored in bucket: {key}",
                    recommendation="Move credentials and backups out of the bucket or restrict access",
                ))
            if scanned >= self.content_scan_limit or (obj.get("Size") or 0) > self.max_object_bytes:
                continue
            scanned += 1
            raws.extend(self._scan_object(bucket, key))
        return raws

    def _scan_object(self, bucket: str, key: str) -> List[BucketConfigRaw]:
        body = self.client.get_object(Bucket=bucket, Key=key)["Body"].read()
        text = body.decode("utf-8", errors="ignore")
        raws: List[BucketConfigRaw] = []
        for check, regex, severity in CONTENT_PATTERNS:
            m = regex.search(text)
            if not m:
                continue
            raws.append(BucketConfigRaw(
                bucket=bucket, check=check, severity=severity,
                category="secrets", origin="content", key=key, value=m.group(0),
                message=f"Embedded credential ({check}) found in object {key}",
                recommendation="Rotate the credential and remove it from the object",
            ))
        return raws


def _policy_is_public(policy_text: Optional[str]) -> bool:
    if not policy_text:
        return False
    policy = json.loads(policy_text)
    if not isinstance(policy, dict):
        raise ValueError("bucket policy is not a JSON object")
    statements = policy.get("Statement") or []
    if isinstance(statements, dict):
        statements = [statements]
    for stmt in statements:
        if not isinstance(stmt, dict):
            continue
        if stmt.get("Effect") != "Allow":
            continue
        principal = stmt.get("Principal")
        if principal == "*":
            return True
        if isinstance(principal, dict):
            aws = principal.get("AWS")
            if aws == "*" or (isinstance(aws, list) and "*" in aws):
                return True
    return False
