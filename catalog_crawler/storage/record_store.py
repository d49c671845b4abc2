"""
Record stores for finished leaf records.

A store only needs to accept inserts. A rejected insert raises PersistError,
which the crawl records against the leaf without touching sibling work.
"""

import asyncio
import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import CrawlerSettings
from ..core.exceptions import PersistError
from ..schema.catalog import LeafRecord

logger = logging.getLogger(__name__)


def _key_part(value: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in value.strip()) or "_"


class RecordStore:
    """Base class for record store backends"""

    def __init__(self):
        self.stats: Dict[str, Any] = {
            "inserts_attempted": 0,
            "inserts_successful": 0,
            "inserts_failed": 0,
        }

    async def insert(self, record: LeafRecord) -> None:
        """
        Persist one finished record.

        Raises:
            PersistError: If the backend rejects the record
        """
        self.stats["inserts_attempted"] += 1
        try:
            await self._insert(record)
        except PersistError:
            self.stats["inserts_failed"] += 1
            raise
        self.stats["inserts_successful"] += 1

    async def _insert(self, record: LeafRecord) -> None:
        raise NotImplementedError


class LocalRecordStore(RecordStore):
    """Appends records as JSON Lines to a local file"""

    def __init__(self, records_file: Path):
        super().__init__()
        self.records_file = Path(records_file)
        self._lock = threading.Lock()

    async def _insert(self, record: LeafRecord) -> None:
        line = json.dumps(record.fields, ensure_ascii=False)
        try:
            with self._lock:
                self.records_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self.records_file, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            raise PersistError(f"Error writing record to {self.records_file}: {e}", e) from e

    def read_all(self) -> List[Dict[str, str]]:
        if not self.records_file.exists():
            return []
        with open(self.records_file, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


class S3RecordStore(RecordStore):
    """
    Stores each record as a JSON object in S3.

    Keys follow <prefix>/<category>/<sub_item>/<uuid>.json, so a replayed
    category produces additional objects rather than overwriting.
    """

    def __init__(self, settings: CrawlerSettings, client: Optional[Any] = None):
        super().__init__()
        self.settings = settings
        self.bucket = settings.s3_records_bucket
        self.prefix = settings.s3_records_prefix.strip("/")
        self._client = client

    def _ensure_client(self) -> Any:
        if self._client is None:
            if self.settings.localstack_endpoint:
                # LocalStack development
                self._client = boto3.client(  # type: ignore
                    "s3",
                    endpoint_url=self.settings.localstack_endpoint,
                    aws_access_key_id=self.settings.aws_access_key_id,
                    aws_secret_access_key=self.settings.aws_secret_access_key,
                    region_name=self.settings.aws_region,
                )
            else:
                self._client = boto3.client("s3", region_name=self.settings.aws_region)  # type: ignore
            logger.debug("Created new S3 client")
        return self._client

    def build_key(self, record: LeafRecord) -> str:
        return f"{self.prefix}/{_key_part(record.category)}/{_key_part(record.sub_item)}/{uuid4().hex}.json"

    async def _insert(self, record: LeafRecord) -> None:
        start_time = time.time()
        key = self.build_key(record)
        body = json.dumps(record.fields, ensure_ascii=False).encode("utf-8")

        def _upload():
            client = self._ensure_client()
            return client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
                Metadata={"category": record.category[:256], "attribute": record.attribute[:256]},
            )

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _upload)

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"S3 upload failed with error {error_code}: {e}")
            raise PersistError(f"S3 upload failed for s3://{self.bucket}/{key}: {error_code}", e) from e

        except BotoCoreError as e:
            logger.error(f"S3 upload failed: {e}")
            raise PersistError(f"S3 upload failed for s3://{self.bucket}/{key}: {e}", e) from e

        logger.debug(
            f"Stored record at s3://{self.bucket}/{key}",
            extra={"bucket": self.bucket, "key": key, "size_bytes": len(body), "upload_time": time.time() - start_time},
        )
