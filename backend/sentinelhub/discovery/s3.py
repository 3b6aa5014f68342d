# sentinelhub/discovery/s3.py
"""
S3 bucket discoverer: walks prefixes depth-first with
list_objects_v2(Delimiter="/"), following continuation tokens.

Throttling codes and AccessDenied on a prefix abandon that prefix with a
warning. NoSuchBucket on the root means the bucket does not exist.
Object bodies are read lazily through get_object.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sentinelhub.config import DiscoveryLimits, ScanConfig
from sentinelhub.discovery.base import BaseDiscoverer, DiscoveryResult, RequestThrottle, should_descend
from sentinelhub.discovery.filters import (
    detect_language,
    is_critical_by_name,
    is_dependency_file,
    is_scannable,
    should_skip_dir,
)
from sentinelhub.exceptions import DiscoveryError, DiscoveryRateLimited, TargetNotFound
from sentinelhub.scanner.base import ScanTarget, ScanUnit

logger = logging.getLogger(__name__)

THROTTLE_CODES = frozenset({
    "SlowDown", "Throttling", "ThrottlingException",
    "RequestLimitExceeded", "TooManyRequests", "AccessDenied",
})


def _code(e: ClientError) -> str:
    return (e.response.get("Error") or {}).get("Code", "")


class S3Discoverer(BaseDiscoverer):
    name = "s3"
    supported_kinds = ("bucket",)

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        client=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        config = config or ScanConfig()
        self.region = config.aws_region
        self.directory_delay = config.directory_delay_seconds
        self._sleep = sleep
        self.throttle = RequestThrottle(config.fetch_delay_seconds, sleep=sleep)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def _translate(self, e: ClientError, bucket: str, prefix: str) -> DiscoveryError:
        code = _code(e)
        if code in ("NoSuchBucket", "404"):
            return TargetNotFound(f"Bucket {bucket} not found")
        if code in THROTTLE_CODES:
            return DiscoveryRateLimited(prefix, f"S3 refused listing ({code})")
        return DiscoveryError(f"S3 error {code or 'unknown'} at {prefix or '/'}")

    def fetch_object(self, bucket: str, key: str) -> Optional[str]:
        self.throttle.wait()
        try:
            body = self.client.get_object(Bucket=bucket, Key=key)["Body"].read()
        except ClientError as e:
            if _code(e) in THROTTLE_CODES:
                raise DiscoveryRateLimited(key, f"S3 refused read ({_code(e)})")
            logger.warning(f"Could not read s3://{bucket}/{key}: {_code(e)}")
            return None
        if b"\x00" in body[:1024]:
            return None
        return body.decode("utf-8", errors="replace")

    def discover(self, target: ScanTarget, limits: DiscoveryLimits) -> DiscoveryResult:
        bucket = target.name
        if not bucket:
            raise ValueError("bucket target needs a name")
        result = DiscoveryResult()
        self._walk(bucket, "", 0, limits.max_units, limits, result)
        logger.info(f"S3 discovery for {bucket}: {len(result.units)} units, {len(result.warnings)} warnings")
        return result

    def _walk(
        self,
        bucket: str,
        prefix: str,
        depth: int,
        remaining: int,
        limits: DiscoveryLimits,
        result: DiscoveryResult,
    ) -> int:
        if not should_descend(depth, remaining, limits):
            return 0
        if depth > 0:
            self._sleep(self.directory_delay)

        added = 0
        token = None
        while True:
            kwargs = {"Bucket": bucket, "Prefix": prefix, "Delimiter": "/"}
            if token:
                kwargs["ContinuationToken"] = token
            try:
                page = self.client.list_objects_v2(**kwargs)
            except ClientError as e:
                err = self._translate(e, bucket, prefix)
                if isinstance(err, DiscoveryRateLimited):
                    result.rate_limited = True
                    result.warnings.append(err.message)
                    return added
                if depth == 0:
                    raise err
                result.warnings.append(err.message)
                return added
            except BotoCoreError as e:
                if depth == 0:
                    raise DiscoveryError(f"S3 listing failed: {e}")
                result.warnings.append(f"S3 listing failed at {prefix}: {e}")
                return added

            for obj in page.get("Contents") or []:
                key = obj.get("Key") or ""
                if key.endswith("/") or not is_scannable(key):
                    continue
                if added >= remaining:
                    result.truncated = True
                    return added
                result.units.append(self._make_unit(bucket, key, int(obj.get("Size") or 0), limits))
                added += 1

            for common in page.get("CommonPrefixes") or []:
                sub = common.get("Prefix") or ""
                if should_skip_dir(sub):
                    continue
                if added >= remaining:
                    result.truncated = True
                    return added
                added += self._walk(bucket, sub, depth + 1, remaining - added, limits, result)

            token = page.get("NextContinuationToken")
            if not page.get("IsTruncated") or not token:
                return added

    def _make_unit(self, bucket: str, key: str, size: int, limits: DiscoveryLimits) -> ScanUnit:
        unit = ScanUnit(
            path=key,
            size_bytes=size,
            is_critical_by_name=is_critical_by_name(key),
            is_dependency_file=is_dependency_file(key),
            language=detect_language(key),
        )
        if size <= limits.max_unit_size_bytes:
            unit.loader = lambda: self.fetch_object(bucket, key)
        return unit
