"""
Storage service abstraction for uploaded plan files
Local disk bucket by default, S3 when STORAGE_BACKEND=s3

Uploads are laid out as <project_id>/<upload_id>/<filename>.
"""
import os
import logging
from typing import List, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError

from services.error_types import StorageError, DocumentAcquisitionError

logger = logging.getLogger(__name__)


class StorageService:
    """Local-disk upload bucket"""

    def __init__(self, storage_path: Optional[str] = None, public_base_url: Optional[str] = None):
        self.storage_path = storage_path or os.getenv("PLANSCOPE_STORAGE_PATH", "./storage/uploads")
        self.public_base_url = public_base_url if public_base_url is not None else os.getenv("PUBLIC_STORAGE_URL", "")
        logger.info(f"[STORAGE INIT] Local storage at {self.storage_path}")

    def _full_path(self, reference: str) -> str:
        root = os.path.realpath(self.storage_path)
        path = os.path.realpath(os.path.join(root, reference.lstrip("/")))
        if path != root and not path.startswith(root + os.sep):
            raise DocumentAcquisitionError(f"Reference escapes storage root: {reference}")
        return path

    def read(self, reference: str) -> bytes:
        """
        Raises:
            StorageError: the storage root is not mounted
            DocumentAcquisitionError: the file does not exist
        """
        if not os.path.isdir(self.storage_path):
            raise StorageError(f"Storage path does not exist: {self.storage_path}")

        path = self._full_path(reference)
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise DocumentAcquisitionError(f"File not found in storage: {reference}")
        except OSError as e:
            raise DocumentAcquisitionError(f"Could not read {reference}: {e}")

    def save(self, reference: str, content: bytes) -> str:
        path = self._full_path(reference)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(content)
        logger.info(f"[STORAGE] Saved {reference} ({len(content)} bytes)")
        return reference

    def list(self, prefix: str) -> List[str]:
        """References under a prefix, sorted"""
        base = self._full_path(prefix)
        if not os.path.isdir(base):
            return []
        root = os.path.realpath(self.storage_path)
        found = []
        for dirpath, _, filenames in os.walk(base):
            for name in filenames:
                found.append(os.path.relpath(os.path.join(dirpath, name), root).replace(os.sep, "/"))
        return sorted(found)

    def public_url(self, reference: str) -> Optional[str]:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/{quote(reference.lstrip('/'))}"


class S3StorageService:
    """AWS S3 upload bucket"""

    def __init__(self):
        self.aws_region = os.getenv("AWS_REGION", "us-west-2")
        self.bucket_name = os.getenv("S3_BUCKET", "planscope-uploads")
        self.public_base_url = os.getenv("PUBLIC_STORAGE_URL", "")

        config = Config(
            region_name=self.aws_region,
            retries={'max_attempts': 1, 'mode': 'standard'},
            max_pool_connections=10
        )
        self.s3_client = boto3.client(
            's3',
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            config=config
        )
        logger.info(f"[S3 STORAGE] Using bucket {self.bucket_name} in {self.aws_region}")

    def read(self, reference: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=reference)
            return response['Body'].read()
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code in ('NoSuchKey', '404'):
                raise DocumentAcquisitionError(f"File not found in storage: {reference}")
            if error_code in ('NoSuchBucket', 'AccessDenied', '403'):
                raise StorageError(f"Cannot access S3 bucket {self.bucket_name}: {error_code}")
            raise DocumentAcquisitionError(f"Could not read {reference}: {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 unreachable: {e}")

    def save(self, reference: str, content: bytes) -> str:
        self.s3_client.put_object(Bucket=self.bucket_name, Key=reference, Body=content)
        logger.info(f"[S3 SAVE] Saved {reference} ({len(content)} bytes)")
        return reference

    def list(self, prefix: str) -> List[str]:
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            keys = []
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix.rstrip('/') + '/'):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
            return sorted(keys)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Cannot list S3 prefix {prefix}: {e}")

    def public_url(self, reference: str) -> Optional[str]:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(reference)}"
        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': reference},
                ExpiresIn=3600
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Could not presign {reference}: {e}")
            return None


_storage = None


def get_storage():
    """Storage backend selected by STORAGE_BACKEND (local or s3)"""
    global _storage
    if _storage is None:
        if os.getenv("STORAGE_BACKEND", "local").lower() == "s3":
            _storage = S3StorageService()
        else:
            _storage = StorageService()
    return _storage


def set_storage(storage) -> None:
    global _storage
    _storage = storage
