from pydantic_settings import BaseSettings
from pydantic import ConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Process Engine"
    VERSION: str = "1.0.0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Execution bounds (execute_work_item loop / graph walk per call)
    ENGINE_MAX_EXECUTION_STEPS: int = 100
    ENGINE_MAX_WALK_STEPS: int = 1000

    # Participant recorded on automated work items when the runner provides none
    ENGINE_SYSTEM_PARTICIPANT: str = "system"

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()
