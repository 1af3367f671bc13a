"""
Configuration for the Datastore SDK.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SDK configuration loaded from environment."""

    # Target dataset
    project_id: str = Field(default="", description="Dataset (project) identifier")
    namespace: str | None = Field(default=None, description="Default namespace for new keys")

    # API endpoint
    api_host: str = Field(default="www.googleapis.com", description="Datastore API host")
    api_version: str = Field(default="v1beta2", description="Datastore API version")
    scheme: str = Field(default="https", description="URL scheme")

    # Transport
    timeout: float = Field(default=30.0, description="HTTP timeout seconds")
    access_token: str | None = Field(
        default=None,
        description="OAuth2 access token sent as a bearer Authorization header",
    )

    model_config = {"env_prefix": "DATASTORE_"}
