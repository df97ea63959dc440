from pydantic_settings import BaseSettings
from pathlib import Path

# Get the project root directory (parent of study_cycle folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = "sqlite:///./study_cycle.db"
    
    # User key used when the CLI is not given --user
    default_user: str = "local"
    
    # loguru sink level for the CLI
    log_level: str = "WARNING"
    
    class Config:
        env_file = str(PROJECT_ROOT / ".env")

settings = Settings()
