"""Configuration management module"""

from .settings import settings, Settings, SnowflakeConfig, S3Config, PipelineConfig

__all__ = ['settings', 'Settings', 'SnowflakeConfig', 'S3Config', 'PipelineConfig']
