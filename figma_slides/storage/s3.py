"""
S3 Service - Async wrapper for S3 preview storage.

Previews are stored under the SHA-256 of their content, so archiving the
same image twice costs a single HEAD request.
"""

import os
import hashlib
import logging
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import aioboto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv

load_dotenv(override=True)

logger = logging.getLogger(__name__)

# Global singleton
_s3_service_instance = None

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "png": "image/png",
    "svg": "image/svg+xml",
}


def get_s3_service() -> 'S3Service':
    """Get singleton instance of S3Service."""
    global _s3_service_instance
    if _s3_service_instance is None:
        _s3_service_instance = S3Service()
    return _s3_service_instance


class S3Service:
    """
    S3 service for slide preview storage.

    Handles uploads with hash-based naming.
    """

    def __init__(self):
        self.session = None
        self.bucket_name: Optional[str] = None
        self._initialized = False

    async def initialize(
        self,
        bucket_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None
    ):
        """
        Initialize S3 session.

        Args:
            bucket_name: S3 bucket name (defaults to env S3_BUCKET_NAME)
            aws_access_key_id: AWS access key (defaults to env AWS_ACCESS_KEY_ID)
            aws_secret_access_key: AWS secret key (defaults to env AWS_SECRET_ACCESS_KEY)
            region_name: AWS region (defaults to env AWS_REGION or us-east-1)
        """
        if self._initialized:
            logger.debug("S3 already initialized")
            return

        self.bucket_name = bucket_name or os.getenv("S3_BUCKET_NAME")
        aws_access_key_id = aws_access_key_id or os.getenv("AWS_ACCESS_KEY_ID")
        aws_secret_access_key = aws_secret_access_key or os.getenv("AWS_SECRET_ACCESS_KEY")
        region_name = region_name or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1"

        if not self.bucket_name:
            raise ValueError("S3 bucket name is required")

        session_kwargs = {"region_name": region_name}
        if aws_access_key_id:
            session_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            session_kwargs["aws_secret_access_key"] = aws_secret_access_key

        try:
            self.session = aioboto3.Session(**session_kwargs)
            async with self.session.client("s3") as client:
                await client.head_bucket(Bucket=self.bucket_name)
            self._initialized = True
            logger.info(f"S3 initialized: bucket={self.bucket_name}")
        except ClientError as e:
            logger.error(f"S3 initialization failed: {e}")
            raise

    @staticmethod
    def content_hash(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    async def upload_bytes_with_hash(
        self,
        data: bytes,
        file_type: str = "jpg",
        metadata: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Upload raw bytes to S3 under their content hash.

        Args:
            data: Object content
            file_type: Extension used to pick the Content-Type
            metadata: Optional S3 user metadata

        Returns:
            Mapping data with hash, s3_key, s3_url, size and file_type
        """
        if not self._initialized:
            raise RuntimeError("S3 not initialized")

        file_hash = self.content_hash(data)
        mapping_data = {
            "hash": file_hash,
            "s3_key": file_hash,
            "s3_url": f"s3://{self.bucket_name}/{file_hash}",
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
            "size": len(data),
            "file_type": file_type,
        }

        if await self.file_exists(file_hash):
            logger.debug(f"Object with hash {file_hash} already exists in S3")
            return mapping_data

        put_args = {
            "Bucket": self.bucket_name,
            "Key": file_hash,
            "Body": data,
            "ContentType": CONTENT_TYPES.get(file_type, "application/octet-stream"),
        }
        if metadata:
            put_args["Metadata"] = metadata

        try:
            async with self.session.client("s3") as client:
                await client.put_object(**put_args)
        except ClientError as e:
            logger.error(f"Upload failed: {e}")
            raise

        logger.info(f"Uploaded preview with hash: {file_hash}")
        return mapping_data

    async def file_exists(self, s3_key: str) -> bool:
        """Check if an object exists in S3."""
        if not self._initialized:
            raise RuntimeError("S3 not initialized")

        try:
            async with self.session.client("s3") as client:
                await client.head_object(Bucket=self.bucket_name, Key=s3_key)
            return True
        except ClientError:
            return False
