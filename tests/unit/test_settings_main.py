# tests/unit/test_settings_main.py
"""Tests for the main Settings class."""

import pytest
import os
import tempfile
from unittest.mock import patch
from taxi_ingest.config.settings import Settings, SnowflakeConfig, S3Config, PipelineConfig


SNOWFLAKE_ENV = {
    'SNOWFLAKE_ACCOUNT': 'test_account',
    'SNOWFLAKE_USERNAME': 'test_user',
    'SNOWFLAKE_PASSWORD': 'test_password'
}

S3_ENV = {
    'S3_BUCKET_NAME': 'test-bucket',
    'AWS_ACCESS_KEY_ID': 'test_key',
    'AWS_SECRET_ACCESS_KEY': 'test_secret'
}


class TestSettings:
    """Test the main Settings class that aggregates all configs."""

    def test_settings_initialization(self):
        """Test Settings class initialization."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {'DATA_DIR': temp_dir}):
                settings = Settings()

                assert isinstance(settings.snowflake, SnowflakeConfig)
                assert isinstance(settings.s3, S3Config)
                assert isinstance(settings.pipeline, PipelineConfig)
                assert not hasattr(settings, 'tlc')

    def test_settings_pipeline_config_from_environment(self, tmp_path):
        """Test that Settings loads pipeline config from environment."""
        env_vars = {
            'DATA_DIR': str(tmp_path / 'data'),
            'MAX_WORKERS': '8',
            'MAX_RETRIES': '5',
            'RETRY_DELAY_SECONDS': '0.5',
            'RELEASE_ON_FAILURE': 'true',
            'STORE_BACKEND': 'MEMORY',
            'STAGING_BACKEND': 's3',
            'LOG_LEVEL': 'DEBUG'
        }

        with patch.dict(os.environ, env_vars):
            settings = Settings()

            assert settings.pipeline.data_dir == tmp_path / 'data'
            assert settings.pipeline.max_workers == 8
            assert settings.pipeline.max_retries == 5
            assert settings.pipeline.retry_delay_seconds == 0.5
            assert settings.pipeline.release_on_failure is True
            assert settings.pipeline.store_backend == 'memory'
            assert settings.pipeline.staging_backend == 's3'
            assert settings.pipeline.log_level == 'DEBUG'

    def test_settings_pipeline_config_defaults(self, tmp_path, monkeypatch):
        """Test Settings uses defaults for pipeline config."""
        monkeypatch.chdir(tmp_path)
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

            assert str(settings.pipeline.data_dir) == 'data'
            assert settings.pipeline.max_workers == 4
            assert settings.pipeline.max_retries == 3
            assert settings.pipeline.retry_delay_seconds == 1.0
            assert settings.pipeline.release_on_failure is False
            assert settings.pipeline.store_backend == 'snowflake'
            assert settings.pipeline.staging_backend == 'local'
            assert settings.pipeline.log_level == 'INFO'

    def test_settings_validate_success(self, tmp_path):
        """Test Settings validation passes with valid config."""
        env_vars = {'DATA_DIR': str(tmp_path), 'STAGING_BACKEND': 's3', **SNOWFLAKE_ENV, **S3_ENV}

        with patch.dict(os.environ, env_vars):
            settings = Settings()
            assert settings.validate() is True

    def test_settings_validate_fails_missing_snowflake(self, tmp_path):
        """Test Settings validation fails with missing Snowflake config."""
        with patch.dict(os.environ, {'DATA_DIR': str(tmp_path), **S3_ENV}, clear=True):
            settings = Settings()
            assert settings.validate() is False

    def test_settings_validate_ignores_s3_for_local_staging(self, tmp_path):
        """Test S3 credentials are only required when staging on S3."""
        with patch.dict(os.environ, {'DATA_DIR': str(tmp_path), **SNOWFLAKE_ENV}, clear=True):
            settings = Settings()
            assert settings.validate() is True
            assert settings.validate(staging_backend='s3') is False

    def test_settings_validate_fails_partial_snowflake_config(self, tmp_path):
        """Test validation fails with partial Snowflake config."""
        env_vars = {
            'DATA_DIR': str(tmp_path),
            'SNOWFLAKE_ACCOUNT': 'test_account',
            'SNOWFLAKE_USERNAME': 'test_user'
            # Missing password
        }

        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()
            assert settings.validate() is False

    def test_settings_validate_fails_partial_s3_config(self, tmp_path):
        """Test validation fails with partial S3 config."""
        env_vars = {
            'DATA_DIR': str(tmp_path),
            'S3_BUCKET_NAME': 'test-bucket',
            'AWS_ACCESS_KEY_ID': 'test_key',
            # Missing secret key
            **SNOWFLAKE_ENV
        }

        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()
            assert settings.validate(staging_backend='s3') is False

    def test_settings_validate_memory_store_needs_no_credentials(self, tmp_path):
        """Test the in-memory store with local staging needs no credentials."""
        with patch.dict(os.environ, {'DATA_DIR': str(tmp_path)}, clear=True):
            settings = Settings()
            assert settings.validate(store_backend='memory', staging_backend='local') is True

    @pytest.mark.parametrize("store, staging", [("oracle", "local"), ("memory", "gcs")])
    def test_settings_validate_rejects_unknown_backends(self, tmp_path, store, staging):
        """Test unknown backend names fail validation."""
        with patch.dict(os.environ, {'DATA_DIR': str(tmp_path)}, clear=True):
            settings = Settings()
            assert settings.validate(store_backend=store, staging_backend=staging) is False

    def test_missing_settings_names_variables(self, tmp_path):
        """Test missing settings are reported by environment variable name."""
        with patch.dict(os.environ, {'DATA_DIR': str(tmp_path), 'SNOWFLAKE_ACCOUNT': 'acct'}, clear=True):
            settings = Settings()
            assert settings.missing_settings(staging_backend='s3') == [
                'SNOWFLAKE_USERNAME', 'SNOWFLAKE_PASSWORD',
                'S3_BUCKET_NAME', 'AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY'
            ]
            assert settings.missing_settings(store_backend='oracle') == ['STORE_BACKEND=oracle']
