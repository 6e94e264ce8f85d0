# taxi_ingest/loaders/stage_manager.py
"""
Staging areas that hold fingerprinted batches before promotion
"""

import io
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Any

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from taxi_ingest.config.settings import S3Config
from taxi_ingest.models.batch import Period
from taxi_ingest.models.trip_schema import TripCategory
from taxi_ingest.utils.logger import get_logger
from taxi_ingest.utils.exceptions import ConfigurationError, PipelineError, ProcessingError, StageError


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def staging_key(category: TripCategory, period: Period, source_file: str) -> str:
    """
    Relative key of the staging artifact for one source file

    The key depends only on (category, period, source_file), so staging
    the same file again replaces the previous artifact.
    """
    stem = _UNSAFE_CHARS.sub("_", source_file)
    return f"staging/{category.value}/{period}/{stem}.parquet"


def _missing_artifact(location: str) -> ProcessingError:
    return ProcessingError(
        f"Staging artifact not found: {location}",
        error_code="STAGING_ARTIFACT_MISSING",
        context={'location': location}
    )


class StagingArea(ABC):
    """
    Storage for batches between ``stage`` and ``release``

    Artifacts are isolated from the canonical table; a crashed run can
    leave one behind, but never a partially written one.
    """

    @abstractmethod
    def location_for(self, category: TripCategory, period: Period, source_file: str) -> str:
        """Deterministic location of a batch's artifact"""

    @abstractmethod
    def write(self, location: str, frame: pd.DataFrame) -> None:
        """Atomically replace the artifact at ``location``"""

    @abstractmethod
    def read(self, location: str) -> pd.DataFrame:
        """Read an artifact back"""

    @abstractmethod
    def delete(self, location: str) -> bool:
        """Delete an artifact; returns False if there was nothing to delete"""

    @abstractmethod
    def exists(self, location: str) -> bool:
        pass

    @abstractmethod
    def ensure_ready(self) -> None:
        """Create the underlying storage if it does not exist yet"""

    @abstractmethod
    def purge(self, older_than_days: int) -> int:
        """Delete artifacts older than ``older_than_days``; returns the count"""

    def verify_connectivity(self) -> bool:
        return True


class LocalStagingArea(StagingArea):
    """Parquet artifacts on the local filesystem"""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.logger = get_logger(__name__)

    def location_for(self, category: TripCategory, period: Period, source_file: str) -> str:
        return str(self.root / staging_key(category, period, source_file))

    def write(self, location: str, frame: pd.DataFrame) -> None:
        path = Path(location)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
            frame.to_parquet(tmp_name, index=False)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StageError(f"Failed to write staging file {path}: {str(e)}", cause=e) from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        self.logger.info(f"Staged {len(frame)} rows at {path}")

    def read(self, location: str) -> pd.DataFrame:
        path = Path(location)
        if not path.exists():
            raise _missing_artifact(location)
        try:
            return pd.read_parquet(path)
        except OSError as e:
            raise StageError(f"Failed to read staging file {path}: {str(e)}", cause=e) from e

    def delete(self, location: str) -> bool:
        path = Path(location)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StageError(f"Failed to delete staging file {path}: {str(e)}", cause=e) from e
        self.logger.info(f"Released staging file {path}")
        return True

    def exists(self, location: str) -> bool:
        return Path(location).exists()

    def ensure_ready(self) -> None:
        try:
            (self.root / "staging").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StageError(f"Cannot create staging directory under {self.root}: {str(e)}", cause=e) from e

    def purge(self, older_than_days: int) -> int:
        staging_dir = self.root / "staging"
        if not staging_dir.exists():
            return 0

        cutoff = time.time() - older_than_days * 86400
        deleted_count = 0
        try:
            for path in staging_dir.rglob("*"):
                try:
                    if path.is_file() and path.stat().st_mtime < cutoff:
                        path.unlink()
                        deleted_count += 1
                except FileNotFoundError:
                    # replaced or released by a concurrent run
                    continue
        except OSError as e:
            raise StageError(f"Failed to purge staging files under {staging_dir}: {str(e)}", cause=e) from e

        self.logger.info(f"Purged {deleted_count} staging files older than {older_than_days} days")
        return deleted_count

    def verify_connectivity(self) -> bool:
        return os.access(self.root, os.W_OK)


class S3StagingArea(StagingArea):
    """
    Parquet artifacts in an S3 bucket

    Objects live under ``{prefix}/staging/{category}/{period}/``. A PUT
    replaces an object whole, so readers never see a partial artifact.
    """

    def __init__(self, s3_config: S3Config, client: Optional[Any] = None):
        """
        Initialize S3 staging area

        Args:
            s3_config: S3 configuration
            client: Preconfigured boto3 S3 client (optional)
        """
        self.s3_config = s3_config
        self.logger = get_logger(__name__)
        self._s3_client = client or self._initialize_s3_client()

    def _initialize_s3_client(self):
        """Initialize AWS S3 client with credentials"""
        try:
            return boto3.client(
                's3',
                region_name=self.s3_config.region,
                aws_access_key_id=self.s3_config.access_key_id or None,
                aws_secret_access_key=self.s3_config.secret_access_key or None
            )
        except NoCredentialsError as e:
            raise ConfigurationError("AWS credentials not found or invalid", cause=e) from e
        except BotoCoreError as e:
            raise StageError(f"Failed to initialize S3 client: {str(e)}", cause=e) from e

    @property
    def bucket(self) -> str:
        return self.s3_config.bucket_name

    def location_for(self, category: TripCategory, period: Period, source_file: str) -> str:
        return f"s3://{self.bucket}/{self.s3_config.prefix}/{staging_key(category, period, source_file)}"

    def _key(self, location: str) -> str:
        bucket_url = f"s3://{self.bucket}/"
        if not location.startswith(bucket_url):
            raise ConfigurationError(f"Location {location} is outside bucket {self.bucket}")
        return location[len(bucket_url):]

    def _stage_error(self, action: str, error: Exception) -> PipelineError:
        if isinstance(error, NoCredentialsError):
            return ConfigurationError("AWS credentials not found or invalid", cause=error)
        return StageError(f"Failed to {action}: {str(error)}", cause=error, context={'bucket': self.bucket})

    def write(self, location: str, frame: pd.DataFrame) -> None:
        key = self._key(location)
        buffer = io.BytesIO()
        frame.to_parquet(buffer, index=False)
        body = buffer.getvalue()

        try:
            self._s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ServerSideEncryption='AES256',
                Metadata={
                    'upload-timestamp': pd.Timestamp.now(tz='UTC').isoformat(),
                    'row-count': str(len(frame)),
                    'file-size-bytes': str(len(body))
                }
            )
        except (ClientError, BotoCoreError) as e:
            raise self._stage_error(f"upload {location}", e) from e

        self.logger.info(f"Staged {len(frame)} rows at {location}")

    def read(self, location: str) -> pd.DataFrame:
        key = self._key(location)
        try:
            response = self._s3_client.get_object(Bucket=self.bucket, Key=key)
            body = response['Body'].read()
        except ClientError as e:
            if e.response['Error']['Code'] in ('NoSuchKey', '404'):
                raise _missing_artifact(location) from e
            raise self._stage_error(f"download {location}", e) from e
        except BotoCoreError as e:
            raise self._stage_error(f"download {location}", e) from e

        return pd.read_parquet(io.BytesIO(body))

    def exists(self, location: str) -> bool:
        try:
            self._s3_client.head_object(Bucket=self.bucket, Key=self._key(location))
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise self._stage_error(f"check {location}", e) from e
        except BotoCoreError as e:
            raise self._stage_error(f"check {location}", e) from e

    def delete(self, location: str) -> bool:
        if not self.exists(location):
            return False
        try:
            self._s3_client.delete_object(Bucket=self.bucket, Key=self._key(location))
        except (ClientError, BotoCoreError) as e:
            raise self._stage_error(f"delete {location}", e) from e
        self.logger.info(f"Released staging object {location}")
        return True

    def ensure_ready(self) -> None:
        """Create the staging bucket if it doesn't exist"""
        try:
            self._s3_client.head_bucket(Bucket=self.bucket)
            self.logger.info(f"S3 bucket already exists: {self.bucket}")
            return
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code not in ('404', 'NoSuchBucket'):
                raise self._stage_error(f"access bucket {self.bucket}", e) from e
        except BotoCoreError as e:
            raise self._stage_error(f"access bucket {self.bucket}", e) from e

        try:
            if self.s3_config.region == 'us-east-1':
                # us-east-1 doesn't take a LocationConstraint
                self._s3_client.create_bucket(Bucket=self.bucket)
            else:
                self._s3_client.create_bucket(
                    Bucket=self.bucket,
                    CreateBucketConfiguration={'LocationConstraint': self.s3_config.region}
                )
        except (ClientError, BotoCoreError) as e:
            raise self._stage_error(f"create bucket {self.bucket}", e) from e

        self.logger.info(f"Successfully created S3 bucket: {self.bucket}")

    def purge(self, older_than_days: int) -> int:
        cutoff = pd.Timestamp.now(tz='UTC') - pd.Timedelta(days=older_than_days)
        prefix = f"{self.s3_config.prefix}/staging/"
        files_to_delete = []

        try:
            paginator = self._s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get('Contents', []):
                    if pd.Timestamp(obj['LastModified']) < cutoff:
                        files_to_delete.append({'Key': obj['Key']})

            # S3 allows max 1000 keys per delete request
            for i in range(0, len(files_to_delete), 1000):
                self._s3_client.delete_objects(
                    Bucket=self.bucket,
                    Delete={'Objects': files_to_delete[i:i + 1000], 'Quiet': True}
                )
        except (ClientError, BotoCoreError) as e:
            raise self._stage_error("purge staging objects", e) from e

        self.logger.info(f"Purged {len(files_to_delete)} staging objects older than {older_than_days} days")
        return len(files_to_delete)

    def verify_connectivity(self) -> bool:
        try:
            self._s3_client.head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Cannot access S3 bucket: {str(e)}")
            return False
