"""
Configuration management for the NYC Taxi ingestion engine
"""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional
from pathlib import Path


STORE_BACKENDS = ("snowflake", "memory")
STAGING_BACKENDS = ("local", "s3")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


@dataclass
class SnowflakeConfig:
    """Snowflake connection configuration"""
    account: str
    username: str
    password: str
    warehouse: str
    database: str
    schema: str
    role: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'SnowflakeConfig':
        """Load Snowflake config from environment variables"""
        return cls(
            account=os.getenv('SNOWFLAKE_ACCOUNT', ''),
            username=os.getenv('SNOWFLAKE_USERNAME', ''),
            password=os.getenv('SNOWFLAKE_PASSWORD', ''),
            warehouse=os.getenv('SNOWFLAKE_WAREHOUSE', 'COMPUTE_WH'),
            database=os.getenv('SNOWFLAKE_DATABASE', 'NYC_TAXI_DB'),
            schema=os.getenv('SNOWFLAKE_SCHEMA', 'RAW'),
            role=os.getenv('SNOWFLAKE_ROLE')
        )


@dataclass
class S3Config:
    """AWS S3 configuration for the staging area"""
    bucket_name: str
    region: str
    access_key_id: str
    secret_access_key: str
    prefix: str = "taxi-data"

    @classmethod
    def from_env(cls) -> 'S3Config':
        """Load S3 config from environment variables"""
        return cls(
            bucket_name=os.getenv('S3_BUCKET_NAME', ''),
            region=os.getenv('S3_REGION', 'us-east-1'),
            access_key_id=os.getenv('AWS_ACCESS_KEY_ID', ''),
            secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY', ''),
            prefix=os.getenv('S3_PREFIX', 'taxi-data')
        )


@dataclass
class PipelineConfig:
    """Main pipeline configuration"""
    data_dir: Path
    max_workers: int = 4
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    release_on_failure: bool = False
    store_backend: str = "snowflake"
    staging_backend: str = "local"
    log_level: str = "INFO"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)


class Settings:
    """
    Main settings class that aggregates all configuration
    """

    def __init__(self):
        self.snowflake = SnowflakeConfig.from_env()
        self.s3 = S3Config.from_env()
        self.pipeline = PipelineConfig(
            data_dir=os.getenv('DATA_DIR', './data'),
            max_workers=int(os.getenv('MAX_WORKERS', '4')),
            max_retries=int(os.getenv('MAX_RETRIES', '3')),
            retry_delay_seconds=float(os.getenv('RETRY_DELAY_SECONDS', '1.0')),
            release_on_failure=_env_flag('RELEASE_ON_FAILURE', 'false'),
            store_backend=os.getenv('STORE_BACKEND', 'snowflake').lower(),
            staging_backend=os.getenv('STAGING_BACKEND', 'local').lower(),
            log_level=os.getenv('LOG_LEVEL', 'INFO')
        )

    def missing_settings(
        self,
        store_backend: Optional[str] = None,
        staging_backend: Optional[str] = None
    ) -> List[str]:
        """
        List what the selected backends need but is not configured

        Backends default to the configured ones. Unknown backend names are
        reported as ``STORE_BACKEND=<name>`` / ``STAGING_BACKEND=<name>``.
        """
        store_backend = store_backend or self.pipeline.store_backend
        staging_backend = staging_backend or self.pipeline.staging_backend
        missing = []

        if store_backend not in STORE_BACKENDS:
            missing.append(f"STORE_BACKEND={store_backend}")
        elif store_backend == "snowflake":
            missing.extend(_unset({
                'SNOWFLAKE_ACCOUNT': self.snowflake.account,
                'SNOWFLAKE_USERNAME': self.snowflake.username,
                'SNOWFLAKE_PASSWORD': self.snowflake.password,
            }))

        if staging_backend not in STAGING_BACKENDS:
            missing.append(f"STAGING_BACKEND={staging_backend}")
        elif staging_backend == "s3":
            missing.extend(_unset({
                'S3_BUCKET_NAME': self.s3.bucket_name,
                'AWS_ACCESS_KEY_ID': self.s3.access_key_id,
                'AWS_SECRET_ACCESS_KEY': self.s3.secret_access_key,
            }))

        return missing

    def validate(self, store_backend: Optional[str] = None, staging_backend: Optional[str] = None) -> bool:
        """True when the selected backends have everything they need"""
        return not self.missing_settings(store_backend, staging_backend)


def _unset(values: Dict[str, str]) -> List[str]:
    return [name for name, value in values.items() if not value]


# Global settings instance
settings = Settings()
